"""
Protocol query tests against real helper subprocesses.
"""

import asyncio
import json

import pytest

from src.chainmcp.classifier import HeuristicClassifier
from src.chainmcp.errors import ProtocolExitError, ProtocolSpawnError, ProtocolTimeoutError
from src.chainmcp.models import ServerDescriptor
from src.chainmcp.protocol import (
    TOOLS_LIST_REQUEST,
    ProcessState,
    ProtocolQueryClient,
    QueryLifecycle,
    parse_tools_response,
)
from tests.utils import (
    FAILING_SERVER_SCRIPT,
    NON_FINITE_SERVER_SCRIPT,
    SLEEPING_SERVER_SCRIPT,
    TOOLS_SERVER_SCRIPT,
    python_server,
)


class TestParseToolsResponse:
    def test_skips_malformed_lines_and_nameless_tools(self):
        output = "\n".join([
            "garbage",
            json.dumps({"jsonrpc": "2.0", "method": "notifications/message"}),
            json.dumps({"result": {"tools": [{"name": "get_page"}, {"description": "no name"}]}}),
            json.dumps([1, 2, 3]),
            json.dumps({"result": {"tools": [{"name": "run_job", "description": "Run a job"}]}}),
        ])
        tools = parse_tools_response(output, "helper", HeuristicClassifier())
        assert [t.name for t in tools] == ["get_page", "run_job"]
        assert tools[0].description == "Tool from helper"
        assert tools[1].estimated_complexity == 5

    def test_non_finite_metadata_falls_back_to_classifier(self):
        classifier = HeuristicClassifier()
        output = json.dumps({"result": {"tools": [
            {"name": "good_tool"},
            {"name": "odd", "estimatedComplexity": float("nan"), "estimatedDuration": float("inf")},
            {"name": "odder", "estimatedComplexity": float("-inf"), "estimatedDuration": 250},
        ]}})
        tools = parse_tools_response(output, "helper", classifier)

        assert [t.name for t in tools] == ["good_tool", "odd", "odder"]
        assert tools[1].estimated_complexity == classifier.estimate_complexity("odd", "")
        assert tools[1].estimated_duration == classifier.estimate_duration("odd", "")
        assert tools[2].estimated_complexity == classifier.estimate_complexity("odder", "")
        assert tools[2].estimated_duration == 250

    def test_request_line(self):
        assert TOOLS_LIST_REQUEST.endswith(b"\n")
        assert json.loads(TOOLS_LIST_REQUEST) == {
            "jsonrpc": "2.0",
            "id": 1,
            "method": "tools/list",
            "params": {},
        }


class TestQueryLifecycle:
    def test_illegal_transition_raises(self):
        lifecycle = QueryLifecycle(server_name="x")
        with pytest.raises(RuntimeError):
            lifecycle.transition(ProcessState.RUNNING)

    def test_terminal_state_marks_finished(self):
        lifecycle = QueryLifecycle(server_name="x")
        lifecycle.transition(ProcessState.SPAWNED)
        lifecycle.transition(ProcessState.RUNNING)
        assert not lifecycle.finished
        lifecycle.transition(ProcessState.EXITED)
        assert lifecycle.finished
        assert lifecycle.finished_at is not None


class TestQueryServerTools:
    @pytest.mark.asyncio
    async def test_successful_query(self):
        client = ProtocolQueryClient(timeout=10.0)
        tools = await client.query_server_tools("helper", python_server("helper", TOOLS_SERVER_SCRIPT))

        assert [t.name for t in tools] == ["read_file", "rank_results"]
        read_file, rank_results = tools
        assert (read_file.category, read_file.estimated_complexity, read_file.estimated_duration) == (
            "filesystem", 2, 100,
        )
        assert read_file.input_schema["properties"]["path"]["type"] == "string"
        assert rank_results.category == "web"
        assert rank_results.estimated_complexity == 10
        assert rank_results.estimated_duration == 1
        assert rank_results.description == "Tool from helper"

        lifecycle = client.last_lifecycle("helper")
        assert lifecycle.states == [ProcessState.SPAWNED, ProcessState.RUNNING, ProcessState.EXITED]
        assert lifecycle.exit_code == 0
        assert lifecycle.pid is not None

    @pytest.mark.asyncio
    async def test_non_finite_metadata_keeps_live_tools(self):
        client = ProtocolQueryClient(timeout=10.0)
        tools = await client.query_server_tools("helper", python_server("helper", NON_FINITE_SERVER_SCRIPT))

        assert [t.name for t in tools] == ["good_tool", "odd"]
        assert 1 <= tools[1].estimated_complexity <= 10
        assert tools[1].estimated_duration >= 1

    @pytest.mark.asyncio
    async def test_descriptor_env_is_overlaid(self):
        script = (
            "import json, os, sys; sys.stdin.readline(); "
            "print(json.dumps({'result': {'tools': [{'name': os.environ['HELPER_TOOL']}]}}))"
        )
        descriptor = python_server("env-helper", script, env={"HELPER_TOOL": "from_env"})
        tools = await ProtocolQueryClient(timeout=10.0).query_server_tools("env-helper", descriptor)
        assert [t.name for t in tools] == ["from_env"]

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        client = ProtocolQueryClient(timeout=0.5)
        with pytest.raises(ProtocolTimeoutError) as exc_info:
            await client.query_server_tools("sleeper", python_server("sleeper", SLEEPING_SERVER_SCRIPT))

        assert exc_info.value.server_name == "sleeper"
        lifecycle = client.last_lifecycle("sleeper")
        assert lifecycle.state == ProcessState.TIMED_OUT
        # reaped before the error surfaced
        assert lifecycle.exit_code is not None
        assert lifecycle.exit_code != 0

    @pytest.mark.asyncio
    async def test_non_zero_exit(self):
        client = ProtocolQueryClient(timeout=10.0)
        with pytest.raises(ProtocolExitError) as exc_info:
            await client.query_server_tools("broken", python_server("broken", FAILING_SERVER_SCRIPT))

        assert exc_info.value.exit_code == 3
        assert "boom" in exc_info.value.stderr
        lifecycle = client.last_lifecycle("broken")
        assert lifecycle.state == ProcessState.EXITED
        assert lifecycle.exit_code == 3

    @pytest.mark.asyncio
    async def test_spawn_failure(self):
        client = ProtocolQueryClient(timeout=1.0)
        descriptor = ServerDescriptor(name="ghost", command="/nonexistent/chain-mcp-helper")
        with pytest.raises(ProtocolSpawnError):
            await client.query_server_tools("ghost", descriptor)

        lifecycle = client.last_lifecycle("ghost")
        assert lifecycle.states == []
        assert lifecycle.error

    @pytest.mark.asyncio
    async def test_cancellation_kills_process(self):
        client = ProtocolQueryClient(timeout=30.0)
        task = asyncio.create_task(
            client.query_server_tools("sleeper", python_server("sleeper", SLEEPING_SERVER_SCRIPT))
        )
        for _ in range(500):
            lifecycle = client.last_lifecycle("sleeper")
            if lifecycle is not None and lifecycle.state == ProcessState.RUNNING:
                break
            await asyncio.sleep(0.01)

        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        lifecycle = client.last_lifecycle("sleeper")
        assert lifecycle.state == ProcessState.KILLED
        assert lifecycle.exit_code is not None
