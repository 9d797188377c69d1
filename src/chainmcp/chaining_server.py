import json
import time
from dataclasses import asdict
from typing import Any, Awaitable, Callable, Optional

from mcp import server, types

from src.chainmcp.chain_validation import validate_tool_chain
from src.chainmcp.discovery import ServerDiscovery
from src.chainmcp.errors import ChainingError
from src.chainmcp.models import ToolDescriptor
from src.chainmcp.optimizer import RouteOptimizer
from src.chainmcp.reliability import ReliabilityManager
from src.chainmcp.sequential import SequentialAnalyzer
from src.chainmcp.tool_schemas import (
    TOOL_REQUESTS,
    AnalyzeToolsRequest,
    ListServersRequest,
    ReliabilityHealthRequest,
    RouteSuggestionsRequest,
    SequentialAnalysisRequest,
    ToolChainAnalysisRequest,
    ValidateToolChainRequest,
)
from src.chainmcp.utils.audit import AuditLogger
from src.utils.logger import get_logger

Handler = Callable[[Any], Awaitable[dict[str, Any]]]


class ChainingServer(server.Server):
    """An MCP server exposing discovery, route planning and chain validation as tools."""

    def __init__(
        self,
        discovery: ServerDiscovery,
        reliability: Optional[ReliabilityManager] = None,
        optimizer: Optional[RouteOptimizer] = None,
        analyzer: Optional[SequentialAnalyzer] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        super().__init__("Chaining MCP Server")
        self.logger = get_logger("ChainingServer")
        self.discovery = discovery
        self.reliability = reliability or ReliabilityManager()
        self.optimizer = optimizer or RouteOptimizer()
        self.analyzer = analyzer or SequentialAnalyzer(self.optimizer)
        self.audit_logger = audit_logger
        self._handlers: dict[str, Handler] = {
            "list_mcp_servers": self._handle_list_servers,
            "analyze_tools": self._handle_analyze_tools,
            "generate_route_suggestions": self._handle_route_suggestions,
            "analyze_with_sequential_thinking": self._handle_sequential_analysis,
            "get_tool_chain_analysis": self._handle_tool_chain_analysis,
            "validate_tool_chain": self._handle_validate_tool_chain,
            "reliability_health": self._handle_reliability_health,
        }
        self._register_request_handlers()

    def _register_request_handlers(self) -> None:
        self.request_handlers[types.ListToolsRequest] = self._list_tools
        self.request_handlers[types.CallToolRequest] = self._call_tool

    def _catalog(self) -> list[ToolDescriptor]:
        tools = self.discovery.get_tools()
        self.optimizer.set_tools(tools)
        return tools

    ## Tools capabilities
    async def _list_tools(self, _: Any) -> types.ServerResult:
        tools = [
            types.Tool(name=name, description=spec.description, inputSchema=spec.input_schema())
            for name, spec in TOOL_REQUESTS.items()
        ]
        return types.ServerResult(types.ListToolsResult(tools=tools))

    async def _call_tool(self, req: types.CallToolRequest) -> types.ServerResult:
        """Validate, run under retry, audit, and render the result as JSON text."""
        tool_name = req.params.name
        arguments = req.params.arguments or {}
        spec = TOOL_REQUESTS.get(tool_name)
        started = time.perf_counter()

        try:
            if spec is None:
                raise ChainingError(f"Unknown tool: {tool_name}")
            request = self.reliability.validate_input(spec.request_model, arguments, tool_name)
            handler = self._handlers[tool_name]
            payload = await self.reliability.execute_with_retry(
                lambda: handler(request), tool_name
            )
        except ChainingError as e:
            duration_ms = (time.perf_counter() - started) * 1000
            self.logger.error(f"❌ Tool '{tool_name}' failed: {e}")
            if self.audit_logger:
                self.audit_logger.log_dispatch_failure(tool_name, arguments, e, duration_ms)
            return types.ServerResult(
                types.CallToolResult(
                    content=[
                        types.TextContent(
                            type="text",
                            text=self.reliability.format_enhanced_error(e, tool_name, arguments),
                        )
                    ],
                    isError=True,
                )
            )

        duration_ms = (time.perf_counter() - started) * 1000
        self.logger.info(f"✅ Tool '{tool_name}' completed in {duration_ms:.0f}ms")
        if self.audit_logger:
            self.audit_logger.log_dispatch(
                tool_name, arguments, duration_ms, summary={"keys": sorted(payload)}
            )
        return types.ServerResult(
            types.CallToolResult(
                content=[types.TextContent(type="text", text=json.dumps(payload, indent=2))]
            )
        )

    ## Handlers
    async def _handle_list_servers(self, _: ListServersRequest) -> dict[str, Any]:
        servers = []
        for descriptor in self.discovery.get_servers():
            entry = descriptor.to_wire()
            entry["source"] = self.discovery.source_of(descriptor.name)
            entry["toolCount"] = len(self.discovery.get_tools_by_server(descriptor.name))
            servers.append(entry)
        return {
            "servers": servers,
            "totalServers": len(servers),
            "totalTools": len(self.discovery.get_tools()),
            "sequentialThinkingAvailable": self.analyzer.is_available(),
        }

    async def _handle_analyze_tools(self, request: AnalyzeToolsRequest) -> dict[str, Any]:
        tools = self._catalog()
        if request.server_name:
            tools = [t for t in tools if t.server_name == request.server_name]
        if request.category:
            tools = [t for t in tools if t.category == request.category]

        categories: dict[str, int] = {}
        for tool in tools:
            categories[tool.category] = categories.get(tool.category, 0) + 1
        return {
            "tools": [t.to_wire() for t in tools],
            "totalTools": len(tools),
            "categories": categories,
            "servers": sorted({t.server_name for t in tools}),
        }

    async def _handle_route_suggestions(self, request: RouteSuggestionsRequest) -> dict[str, Any]:
        self._catalog()
        routes = self.optimizer.generate_routes(request.task, request.criteria)
        return {
            "task": request.task,
            "suggestions": [r.to_wire() for r in routes],
            "totalSuggestions": len(routes),
        }

    async def _handle_sequential_analysis(self, request: SequentialAnalysisRequest) -> dict[str, Any]:
        result = self.analyzer.analyze_workflow(
            request.problem,
            self._catalog(),
            request.criteria,
            creative=request.creative,
            seed=request.seed,
            max_thoughts=request.max_thoughts,
        )
        return {"problem": request.problem, "sequentialThinkingResult": result.to_wire()}

    async def _handle_tool_chain_analysis(self, request: ToolChainAnalysisRequest) -> dict[str, Any]:
        self._catalog()
        return self.optimizer.analyze_tool_chain(request.input, request.criteria).to_wire()

    async def _handle_validate_tool_chain(self, request: ValidateToolChainRequest) -> dict[str, Any]:
        result = validate_tool_chain(
            request.tool_chain,
            self._catalog(),
            check_circular_dependencies=request.check_circular_dependencies,
            check_tool_availability=request.check_tool_availability,
            check_parameter_compatibility=request.check_parameter_compatibility,
        )
        return result.to_wire()

    async def _handle_reliability_health(self, _: ReliabilityHealthRequest) -> dict[str, Any]:
        return {
            "health": asdict(self.reliability.health_check()),
            "metrics": self.reliability.get_metrics(),
        }
