from __future__ import annotations

from pathlib import Path
from typing import Optional

from src.chainmcp.config_loader import ConfigLoader
from src.chainmcp.discovery import ServerDiscovery
from src.chainmcp.models import OptimizationCriteria
from src.chainmcp.optimizer import RouteOptimizer
from src.utils.logger import get_logger

logger = get_logger("cli")


async def _sweep(discovery: Optional[ServerDiscovery]) -> ServerDiscovery:
    discovery = discovery or ServerDiscovery()
    await discovery.reload_configuration()
    return discovery


async def cmd_servers(discovery: Optional[ServerDiscovery] = None) -> str:
    discovery = await _sweep(discovery)
    servers = discovery.get_servers()
    if not servers:
        return "No servers discovered."

    lines = ["Discovered MCP Servers", "=" * 40]
    for server in servers:
        tool_count = len(discovery.get_tools_by_server(server.name))
        lines.append(f"\n{server.name}")
        lines.append(f"  Source:   {discovery.source_of(server.name)}")
        lines.append(f"  Command:  {' '.join([server.command, *server.args])}")
        lines.append(f"  Tools:    {tool_count}")
        if server.description:
            lines.append(f"  About:    {server.description}")
    return "\n".join(lines)


async def cmd_tools(
    discovery: Optional[ServerDiscovery] = None,
    server_filter: Optional[str] = None,
    category: Optional[str] = None,
) -> str:
    discovery = await _sweep(discovery)
    lines = []
    for server in discovery.get_servers():
        if server_filter and server.name != server_filter:
            continue
        tools = [
            t for t in discovery.get_tools_by_server(server.name)
            if not category or t.category == category
        ]
        if not tools:
            continue
        if lines:
            lines.append("")
        lines.append(f"[{server.name}] ({len(tools)} tools)")
        for tool in tools:
            lines.append(
                f"  {tool.name:<28} {tool.category:<12} "
                f"complexity={tool.estimated_complexity} duration={tool.estimated_duration}ms"
            )
    return "\n".join(lines) if lines else "No tools found."


async def cmd_routes(
    task: str,
    criteria: Optional[OptimizationCriteria] = None,
    discovery: Optional[ServerDiscovery] = None,
) -> str:
    discovery = await _sweep(discovery)
    routes = RouteOptimizer(discovery.get_tools()).generate_routes(task, criteria)
    if not routes:
        return f"No routes found for: {task}"

    lines = [f"Routes for: {task}", "=" * 40]
    for rank, route in enumerate(routes, start=1):
        lines.append(
            f"\n{rank}. {route.name} (confidence {route.confidence:.2f}, "
            f"complexity {route.complexity:.1f}, ~{route.estimated_duration}ms)"
        )
        lines.append(f"   {' -> '.join(f'{t.server_name}/{t.name}' for t in route.tools)}")
        lines.append(f"   {route.reasoning}")
    return "\n".join(lines)


def cmd_save_config(path: Path, loader: Optional[ConfigLoader] = None) -> str:
    """Write the effective discovery config (env, file or defaults) to path."""
    loader = loader or ConfigLoader()
    loader.load_config()
    loader.save_config(path)
    logger.info(f"Wrote discovery config to {path}")
    return f"Saved discovery config to {path}"
