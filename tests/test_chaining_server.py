"""
Tests for ChainingServer tool dispatch.
"""

import json
from pathlib import Path
from unittest.mock import MagicMock

import pytest
from mcp import types

from src.chainmcp.chaining_server import ChainingServer
from src.chainmcp.discovery import ServerDiscovery
from src.chainmcp.models import RetryPolicy, ServerDescriptor
from src.chainmcp.reliability import ReliabilityManager
from src.chainmcp.sequential import SequentialAnalyzer
from src.chainmcp.tool_schemas import TOOL_REQUESTS
from src.chainmcp.utils.audit import AuditLogger
from tests.utils import sample_catalog


@pytest.fixture
def discovery():
    catalog = sample_catalog()
    mock = MagicMock(spec=ServerDiscovery)
    mock.get_tools.return_value = catalog
    mock.get_servers.return_value = [
        ServerDescriptor(name=name, command=f"{name}-mcp")
        for name in dict.fromkeys(t.server_name for t in catalog)
    ]
    mock.get_tools_by_server.side_effect = lambda s: [t for t in catalog if t.server_name == s]
    mock.source_of.return_value = "config"
    return mock


@pytest.fixture
def server(discovery):
    return ChainingServer(discovery, reliability=ReliabilityManager(RetryPolicy(max_retries=0)))


def call(name, arguments=None):
    return types.CallToolRequest(
        method="tools/call",
        params=types.CallToolRequestParams(name=name, arguments=arguments),
    )


def payload(result):
    assert not result.root.isError, result.root.content[0].text
    return json.loads(result.root.content[0].text)


class TestListTools:
    @pytest.mark.asyncio
    async def test_every_tool_is_listed_with_schema(self, server):
        result = await server._list_tools(None)
        tools = {t.name: t for t in result.root.tools}
        assert set(tools) == set(TOOL_REQUESTS)

        schema = tools["generate_route_suggestions"].inputSchema
        assert "task" in schema["properties"]
        assert schema["required"] == ["task"]

        chain_schema = tools["validate_tool_chain"].inputSchema
        assert "toolChain" in chain_schema["properties"]

    def test_request_handlers_registered(self, server):
        assert types.ListToolsRequest in server.request_handlers
        assert types.CallToolRequest in server.request_handlers


class TestCallTool:
    @pytest.mark.asyncio
    async def test_list_mcp_servers(self, server):
        data = payload(await server._call_tool(call("list_mcp_servers")))
        assert data["totalServers"] == 5
        assert data["totalTools"] == 8
        assert data["sequentialThinkingAvailable"] is True
        fs = next(s for s in data["servers"] if s["name"] == "filesystem")
        assert fs["source"] == "config"
        assert fs["toolCount"] == 3

    @pytest.mark.asyncio
    async def test_analyze_tools_filters(self, server):
        data = payload(await server._call_tool(call("analyze_tools", {"category": "filesystem"})))
        assert data["totalTools"] == 3
        assert data["categories"] == {"filesystem": 3}
        assert data["servers"] == ["filesystem"]
        assert data["tools"][0]["serverName"] == "filesystem"

    @pytest.mark.asyncio
    async def test_generate_route_suggestions(self, server):
        data = payload(await server._call_tool(call(
            "generate_route_suggestions",
            {"task": "read file", "criteria": {"prioritizeSimplicity": True}},
        )))
        assert data["task"] == "read file"
        assert data["totalSuggestions"] == len(data["suggestions"]) == 4
        assert data["suggestions"][0]["name"] == "Simple"

    @pytest.mark.asyncio
    async def test_sequential_analysis(self, server):
        data = payload(await server._call_tool(call(
            "analyze_with_sequential_thinking",
            {"problem": "read file", "maxThoughts": 3, "seed": 3},
        )))
        result = data["sequentialThinkingResult"]
        assert len(result["thoughts"]) == 3
        assert result["seed"] == 3
        assert result["analysis"]["recommendedApproach"] == "comprehensive"

    @pytest.mark.asyncio
    async def test_tool_chain_analysis(self, server):
        data = payload(await server._call_tool(call("get_tool_chain_analysis", {"input": "read file"})))
        assert data["analysis"]["totalToolsAvailable"] == 8
        assert data["analysis"]["fastestRoute"].startswith("route_")

    @pytest.mark.asyncio
    async def test_validate_tool_chain(self, server):
        data = payload(await server._call_tool(call("validate_tool_chain", {
            "toolChain": [
                {"id": "a", "serverName": "filesystem", "toolName": "read_file"},
                {"id": "b", "serverName": "github", "toolName": "get_repository", "dependsOn": ["a"]},
            ]
        })))
        assert data["valid"] is False
        assert data["errors"] == ["Tool 'get_repository' is not available in server 'github'"]

    @pytest.mark.asyncio
    async def test_reliability_health(self, server):
        await server._call_tool(call("list_mcp_servers"))
        data = payload(await server._call_tool(call("reliability_health")))
        assert data["health"]["status"] == "healthy"
        assert data["metrics"]["totalRequests"] >= 1


class TestCallToolErrors:
    @pytest.mark.asyncio
    async def test_unknown_tool(self, server):
        result = await server._call_tool(call("does_not_exist"))
        assert result.root.isError
        assert "Unknown tool: does_not_exist" in result.root.content[0].text

    @pytest.mark.asyncio
    async def test_blank_argument_is_a_validation_error(self, server):
        result = await server._call_tool(call("generate_route_suggestions", {"task": "  "}))
        assert result.root.isError
        text = result.root.content[0].text
        assert "Error Type: ValidationError" in text
        assert "Validation failed for generate_route_suggestions" in text
        assert "• Check parameter types and formats" in text

    @pytest.mark.asyncio
    async def test_missing_required_argument(self, server):
        result = await server._call_tool(call("get_tool_chain_analysis", {}))
        assert result.root.isError
        assert "input" in result.root.content[0].text

    @pytest.mark.asyncio
    async def test_disabled_sequential_thinking(self, discovery):
        server = ChainingServer(
            discovery,
            reliability=ReliabilityManager(RetryPolicy(max_retries=0)),
            analyzer=SequentialAnalyzer(enabled=False),
        )
        result = await server._call_tool(call("analyze_with_sequential_thinking", {"problem": "x"}))
        assert result.root.isError
        assert "Error Type: FeatureUnavailableError" in result.root.content[0].text


class TestAuditIntegration:
    @pytest.mark.asyncio
    async def test_dispatches_are_audited(self, discovery, tmp_path):
        audit_logger = AuditLogger(log_dir=str(tmp_path))
        server = ChainingServer(
            discovery,
            reliability=ReliabilityManager(RetryPolicy(max_retries=0)),
            audit_logger=audit_logger,
        )
        try:
            await server._call_tool(call("generate_route_suggestions", {"task": "read", "apiKey": "s3cret"}))
            await server._call_tool(call("does_not_exist", {"x": 1}))
            audit_logger.flush()
        finally:
            audit_logger.close()

        lines = (Path(tmp_path) / "chain-audit.jsonl").read_text().strip().splitlines()
        entries = [json.loads(line) for line in lines]
        assert [e["status"] for e in entries] == ["success", "error"]
        assert entries[0]["tool_name"] == "generate_route_suggestions"
        assert entries[0]["arguments"]["apiKey"] == "***REDACTED***"
        assert entries[0]["summary"] == {"keys": ["suggestions", "task", "totalSuggestions"]}
        assert entries[1]["error_type"] == "ChainingError"
