"""
One-shot ``tools/list`` queries over a spawned server's stdio.

Each query spawns the server, writes a single JSON-RPC line, closes stdin and
collects newline-delimited JSON from stdout until the process exits or the
timeout fires. A timed-out process is killed and reaped before the error is
raised.
"""

from __future__ import annotations

import asyncio
import json
import math
import os
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

from src.chainmcp.classifier import HeuristicClassifier, clamp_complexity, clamp_duration
from src.chainmcp.errors import (
    ProtocolExitError,
    ProtocolSpawnError,
    ProtocolTimeoutError,
)
from src.chainmcp.models import ServerDescriptor, ToolDescriptor
from src.utils.logger import get_logger

logger = get_logger("ProtocolClient")

DEFAULT_QUERY_TIMEOUT = 3.0

TOOLS_LIST_REQUEST = (
    json.dumps(
        {"jsonrpc": "2.0", "id": 1, "method": "tools/list", "params": {}},
        separators=(",", ":"),
    )
    + "\n"
).encode("utf-8")


class ProcessState(str, Enum):
    SPAWNED = "spawned"
    RUNNING = "running"
    EXITED = "exited"
    KILLED = "killed"
    TIMED_OUT = "timed_out"


_TERMINAL_STATES = {ProcessState.EXITED, ProcessState.KILLED, ProcessState.TIMED_OUT}

_ALLOWED_TRANSITIONS = {
    None: {ProcessState.SPAWNED},
    ProcessState.SPAWNED: {ProcessState.RUNNING, ProcessState.KILLED, ProcessState.TIMED_OUT},
    ProcessState.RUNNING: _TERMINAL_STATES,
}


@dataclass
class QueryLifecycle:
    """Observable record of one query's subprocess."""

    server_name: str
    states: list[ProcessState] = field(default_factory=list)
    pid: Optional[int] = None
    exit_code: Optional[int] = None
    error: Optional[str] = None
    started_at: float = field(default_factory=time.monotonic)
    finished_at: Optional[float] = None

    @property
    def state(self) -> Optional[ProcessState]:
        return self.states[-1] if self.states else None

    @property
    def finished(self) -> bool:
        return self.state in _TERMINAL_STATES

    def transition(self, new_state: ProcessState) -> None:
        allowed = _ALLOWED_TRANSITIONS.get(self.state, set())
        if new_state not in allowed:
            raise RuntimeError(
                f"Illegal lifecycle transition for {self.server_name}: "
                f"{self.state} -> {new_state}"
            )
        self.states.append(new_state)
        if new_state in _TERMINAL_STATES:
            self.finished_at = time.monotonic()
        logger.debug(f"{self.server_name}: {new_state.value}")


def parse_tools_response(
    output: str, server_name: str, classifier: HeuristicClassifier
) -> list[ToolDescriptor]:
    """Collect tools from every stdout line whose ``result.tools`` is a list.

    Lines that are not JSON objects, and tool entries without a name, are skipped.
    """
    tools: list[ToolDescriptor] = []
    for line in output.splitlines():
        line = line.strip()
        if not line:
            continue
        try:
            message = json.loads(line)
        except json.JSONDecodeError:
            continue
        if not isinstance(message, dict):
            continue
        result = message.get("result")
        if not isinstance(result, dict) or not isinstance(result.get("tools"), list):
            continue
        for raw in result["tools"]:
            tool = _tool_from_response(raw, server_name, classifier)
            if tool is not None:
                tools.append(tool)
    return tools


def _finite_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and math.isfinite(value)


def _tool_from_response(
    raw: Any, server_name: str, classifier: HeuristicClassifier
) -> Optional[ToolDescriptor]:
    if not isinstance(raw, dict) or not isinstance(raw.get("name"), str) or not raw["name"]:
        return None
    name = raw["name"]
    description = raw.get("description") if isinstance(raw.get("description"), str) else ""
    input_schema = raw.get("inputSchema")
    category = raw.get("category")
    complexity = raw.get("estimatedComplexity")
    duration = raw.get("estimatedDuration")
    return ToolDescriptor(
        name=name,
        description=description or f"Tool from {server_name}",
        input_schema=input_schema if isinstance(input_schema, dict) else {},
        server_name=server_name,
        category=category if isinstance(category, str) and category
        else classifier.classify_category(name, description),
        estimated_complexity=clamp_complexity(complexity) if _finite_number(complexity)
        else classifier.estimate_complexity(name, description),
        estimated_duration=clamp_duration(duration) if _finite_number(duration)
        else classifier.estimate_duration(name, description),
    )


class ProtocolQueryClient:
    """Spawns servers and asks each for its tool list."""

    def __init__(
        self,
        classifier: Optional[HeuristicClassifier] = None,
        timeout: float = DEFAULT_QUERY_TIMEOUT,
    ):
        self.classifier = classifier or HeuristicClassifier()
        self.timeout = timeout
        self._lifecycles: dict[str, QueryLifecycle] = {}

    def last_lifecycle(self, server_name: str) -> Optional[QueryLifecycle]:
        return self._lifecycles.get(server_name)

    async def query_server_tools(
        self, server_name: str, descriptor: ServerDescriptor
    ) -> list[ToolDescriptor]:
        """
        Run one tools/list exchange against a server.

        Raises:
            ProtocolSpawnError: the command could not be started.
            ProtocolTimeoutError: no exit within ``self.timeout`` seconds.
            ProtocolExitError: the process exited with a non-zero code.
        """
        lifecycle = QueryLifecycle(server_name=server_name)
        self._lifecycles[server_name] = lifecycle
        env = {**os.environ, **descriptor.env}

        try:
            process = await asyncio.create_subprocess_exec(
                descriptor.command,
                *descriptor.args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except (OSError, ValueError) as e:
            lifecycle.error = str(e)
            raise ProtocolSpawnError(server_name, e) from e

        lifecycle.pid = process.pid
        lifecycle.transition(ProcessState.SPAWNED)

        try:
            stdout, stderr = await asyncio.wait_for(
                self._exchange(process, lifecycle), timeout=self.timeout
            )
        except asyncio.TimeoutError:
            await self._terminate(process)
            lifecycle.exit_code = process.returncode
            lifecycle.error = f"timed out after {self.timeout}s"
            lifecycle.transition(ProcessState.TIMED_OUT)
            raise ProtocolTimeoutError(server_name, self.timeout) from None
        except asyncio.CancelledError:
            await self._terminate(process)
            lifecycle.exit_code = process.returncode
            lifecycle.transition(ProcessState.KILLED)
            raise

        lifecycle.exit_code = process.returncode
        lifecycle.transition(ProcessState.EXITED)
        stderr_text = stderr.decode("utf-8", errors="replace")

        if process.returncode != 0:
            lifecycle.error = stderr_text.strip() or f"exit code {process.returncode}"
            raise ProtocolExitError(server_name, process.returncode, stderr_text)

        tools = parse_tools_response(
            stdout.decode("utf-8", errors="replace"), server_name, self.classifier
        )
        logger.debug(f"🔍 {server_name} reported {len(tools)} tools")
        return tools

    @staticmethod
    async def _exchange(
        process: asyncio.subprocess.Process, lifecycle: QueryLifecycle
    ) -> tuple[bytes, bytes]:
        lifecycle.transition(ProcessState.RUNNING)
        # communicate() writes the request, closes stdin and drains both pipes
        return await process.communicate(input=TOOLS_LIST_REQUEST)

    @staticmethod
    async def _terminate(process: asyncio.subprocess.Process) -> None:
        if process.returncode is None:
            try:
                process.kill()
            except ProcessLookupError:
                pass  # exited between the check and the kill
        await process.wait()
