import asyncio
import json
import sys
from pathlib import Path
from typing import Optional

from src.chainmcp.config_loader import ConfigLoader
from src.chainmcp.discovery import ServerDiscovery
from src.chainmcp.models import ServerDescriptor, ToolDescriptor

# Helper servers, run as `python -c <script>`
TOOLS_SERVER_SCRIPT = """
import json, sys
sys.stdin.readline()
print("this line is not json")
print(json.dumps({"jsonrpc": "2.0", "id": 1, "result": {"tools": [
    {"name": "read_file", "description": "Read contents of a file",
     "inputSchema": {"type": "object", "properties": {"path": {"type": "string"}}}},
    {"name": "rank_results", "category": "web", "estimatedComplexity": 12, "estimatedDuration": 0},
    {"description": "entry without a name"},
]}}))
sys.stdout.flush()
"""

SLEEPING_SERVER_SCRIPT = "import time; time.sleep(30)"

FAILING_SERVER_SCRIPT = "import sys; sys.stderr.write('boom: missing token'); sys.exit(3)"

NON_FINITE_SERVER_SCRIPT = """
import sys
sys.stdin.readline()
print('{"jsonrpc": "2.0", "id": 1, "result": {"tools": ['
      '{"name": "good_tool"}, '
      '{"name": "odd", "estimatedComplexity": NaN, "estimatedDuration": Infinity}]}}')
sys.stdout.flush()
"""


def python_server(name: str, script: str, **kwargs) -> ServerDescriptor:
    return ServerDescriptor(name=name, command=sys.executable, args=["-c", script], **kwargs)


def make_tool(
    name: str,
    server: str = "srv",
    category: str = "utility",
    complexity: int = 3,
    duration: int = 500,
    description: str = "",
) -> ToolDescriptor:
    return ToolDescriptor(
        name=name,
        description=description,
        server_name=server,
        category=category,
        estimated_complexity=complexity,
        estimated_duration=duration,
    )


def sample_catalog() -> list[ToolDescriptor]:
    """Eight tools over five servers, enough to enable the alternative strategy."""
    return [
        make_tool("read_file", "filesystem", "filesystem", 2, 100, "Read contents of a file"),
        make_tool("list_directory", "filesystem", "filesystem", 2, 150, "List contents of a directory"),
        make_tool("write_file", "filesystem", "filesystem", 3, 200, "Write content to a file"),
        make_tool("web_search", "search", "web", 4, 2000, "Search the web for information"),
        make_tool("execute_command", "terminal", "terminal", 5, 1000, "Execute a terminal command"),
        make_tool("search_wikipedia", "wikipedia", "knowledge", 3, 1500, "Search Wikipedia for articles"),
        make_tool("sequentialthinking", "thinking", "analysis", 5, 2000, "Reflective problem-solving"),
        make_tool("slow_report", "thinking", "utility", 7, 5000, "Build a long report"),
    ]


class FakeQueryClient:
    """Stands in for ProtocolQueryClient. No processes are spawned."""

    def __init__(
        self,
        responses: Optional[dict[str, list[ToolDescriptor]]] = None,
        failures: Optional[dict[str, Exception]] = None,
        delay: float = 0.0,
    ):
        self.responses = responses or {}
        self.failures = failures or {}
        self.delay = delay
        self.calls: list[str] = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def query_server_tools(self, server_name: str, descriptor: ServerDescriptor):
        self.calls.append(server_name)
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if server_name in self.failures:
                raise self.failures[server_name]
            return list(self.responses.get(server_name, []))
        finally:
            self.in_flight -= 1


ESSENTIAL_HELPER = {"name": "essential-helper", "command": "essential-cmd"}


def discovery_environ(config_paths: list[Path], **extra: str) -> dict[str, str]:
    """An environment that never touches the home directory or npx."""
    return {
        "MCP_DISCOVERY_CONFIG_PATHS": json.dumps([str(p) for p in config_paths]),
        "MCP_ESSENTIAL_SERVERS": json.dumps([ESSENTIAL_HELPER]),
        **extra,
    }


def make_discovery(
    tmp_path: Path,
    config_paths: Optional[list[Path]] = None,
    query_client=None,
    search_root: Optional[Path] = None,
    **env: str,
) -> ServerDiscovery:
    config_paths = config_paths or [tmp_path / "no-such-config.json"]
    environ = discovery_environ(config_paths, **env)
    return ServerDiscovery(
        config_loader=ConfigLoader(search_paths=[], environ=environ),
        query_client=query_client or FakeQueryClient(),
        search_root=search_root or tmp_path,
        environ=environ,
    )


def write_json(path: Path, data) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data), encoding="utf-8")
    return path
