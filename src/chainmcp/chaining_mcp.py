import asyncio
import signal
from dataclasses import asdict
from typing import Any, Literal, Optional

import anyio
import uvicorn
from mcp.server.sse import SseServerTransport
from mcp.server.stdio import stdio_server
from pydantic_settings import BaseSettings, SettingsConfigDict
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Mount, Route

from src.chainmcp.chaining_server import ChainingServer
from src.chainmcp.discovery import ServerDiscovery
from src.chainmcp.models import RetryPolicy
from src.chainmcp.optimizer import RouteOptimizer
from src.chainmcp.reliability import ReliabilityManager
from src.chainmcp.sequential import SequentialAnalyzer
from src.chainmcp.utils.audit import AuditLogger
from src.chainmcp.utils.config import AuditConfig
from src.utils.logger import configure_logging, get_logger


class ChainingSettings(BaseSettings):
    """Process settings for the chaining server."""

    host: str = "127.0.0.1"
    port: int = 8086
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    transport: Literal["stdio", "sse"] = "stdio"
    sse_server_debug: bool = False
    debug: bool = False  # expose exception details in HTTP error responses
    query_timeout: float = 3.0  # seconds per tools/list query
    max_concurrent_queries: int = 10
    max_retries: int = 3
    sequential_thinking_enabled: bool = True
    audit_enabled: bool = True
    audit_log_dir: str = "./logs"

    model_config = SettingsConfigDict(env_prefix="CHAIN_MCP_")


class ChainingMCP:
    def __init__(self, **settings: Any):
        self.settings = ChainingSettings(**settings)
        configure_logging(level=self.settings.log_level)
        self.logger = get_logger("ChainingMCP")
        self.discovery = ServerDiscovery(
            max_concurrent_queries=self.settings.max_concurrent_queries,
            query_timeout=self.settings.query_timeout,
        )
        self.reliability = ReliabilityManager(
            RetryPolicy(max_retries=self.settings.max_retries)
        )
        self.server: Optional[ChainingServer] = None

    def build_server(self) -> ChainingServer:
        optimizer = RouteOptimizer()
        audit_logger = None
        if self.settings.audit_enabled:
            audit_logger = AuditLogger(config=AuditConfig(log_dir=self.settings.audit_log_dir))
        self.server = ChainingServer(
            self.discovery,
            reliability=self.reliability,
            optimizer=optimizer,
            analyzer=SequentialAnalyzer(
                optimizer, enabled=self.settings.sequential_thinking_enabled
            ),
            audit_logger=audit_logger,
        )
        return self.server

    async def bootstrap(self) -> None:
        """Run the initial discovery sweep."""
        await self.discovery.reload_configuration()
        self.logger.info(
            f"🔍 Catalog ready: {len(self.discovery.get_servers())} server(s), "
            f"{len(self.discovery.get_tools())} tool(s)"
        )

    async def run(self):
        """Entry point: discover servers, build the MCP server, serve until shutdown."""
        self.logger.info(f"🚀 Starting chain-mcp with transport: {self.settings.transport}")
        await self.bootstrap()
        self.build_server()

        loop = asyncio.get_running_loop()
        server_task = asyncio.create_task(self.start_server(), name="chain-mcp-server")

        def _signal_handler(sig: int) -> None:
            self.logger.info(f"🛑 Received {signal.Signals(sig).name}, shutting down...")
            server_task.cancel()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, _signal_handler, sig)

        try:
            await server_task
        except asyncio.CancelledError:
            self.logger.info("✅ Server stopped")
        finally:
            if self.server and self.server.audit_logger:
                self.server.audit_logger.close()

    async def start_server(self):
        if self.settings.transport == "stdio":
            await self.start_stdio_server()
        elif self.settings.transport == "sse":
            await self.start_sse_server()
        else:
            raise ValueError(f"Unsupported transport: {self.settings.transport}")

    async def start_stdio_server(self) -> None:
        async with stdio_server() as (read_stream, write_stream):
            try:
                await self.server.run(
                    read_stream,
                    write_stream,
                    self.server.create_initialization_options(),
                )
            except anyio.ClosedResourceError:
                self.logger.debug("Stdio stream closed during shutdown (expected)")

    def create_starlette_app(self) -> Starlette:
        sse = SseServerTransport("/messages/")

        class _SSEHandler:
            """Raw ASGI endpoint. handle_sse streams and returns None."""

            def __init__(self, chaining_mcp):
                self._mcp = chaining_mcp

            async def __call__(self, scope, receive, send):
                async with sse.connect_sse(scope, receive, send) as streams:
                    await self._mcp.server.run(
                        streams[0],
                        streams[1],
                        self._mcp.server.create_initialization_options(),
                    )

        return Starlette(
            debug=self.settings.sse_server_debug,
            routes=[
                Route("/sse", endpoint=_SSEHandler(self)),
                Mount("/messages/", app=sse.handle_post_message),
                Route("/health", endpoint=self.handle_health, methods=["GET"]),
            ],
        )

    async def start_sse_server(self) -> None:
        config = uvicorn.Config(
            self.create_starlette_app(),
            host=self.settings.host,
            port=self.settings.port,
            log_level=self.settings.log_level.lower(),
        )
        await uvicorn.Server(config).serve()

    async def handle_health(self, request: Request) -> JSONResponse:
        """Reliability health plus catalog counts."""
        try:
            report = self.reliability.health_check()
            return JSONResponse(
                {
                    **asdict(report),
                    "servers": len(self.discovery.get_servers()),
                    "tools": len(self.discovery.get_tools()),
                },
                status_code=503 if report.status == "unhealthy" else 200,
            )
        except Exception as e:
            self.logger.error(f"❌ Error in handle_health: {e}")
            return JSONResponse(
                {"error": "Internal server error", "detail": str(e) if self.settings.debug else None},
                status_code=500,
            )
