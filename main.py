import argparse
import asyncio
from pathlib import Path

import anyio

from src.chainmcp.chaining_mcp import ChainingMCP
from src.chainmcp.cli import cmd_routes, cmd_save_config, cmd_servers, cmd_tools
from src.chainmcp.models import OptimizationCriteria
from src.utils.logger import configure_logging


def parse_args():
    parser = argparse.ArgumentParser(description="MCP tool-chaining server")
    sub = parser.add_subparsers(dest="command", required=True)

    # start
    start = sub.add_parser("start", help="Start the chaining server")
    start.add_argument("--transport", choices=["stdio", "sse"], default="stdio")
    start.add_argument("--host", type=str, default="127.0.0.1")
    start.add_argument("--port", type=int, default=8086)
    start.add_argument("--query-timeout", type=float, default=3.0)
    start.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], default="INFO"
    )

    # servers
    sub.add_parser("servers", help="Discover servers and show where each came from")

    # tools
    tools = sub.add_parser("tools", help="List classified tools")
    tools.add_argument("--server", type=str, default=None, help="Filter to one server")
    tools.add_argument("--category", type=str, default=None, help="Filter to one category")

    # routes
    routes = sub.add_parser("routes", help="Suggest tool-chain routes for a task")
    routes.add_argument("task", type=str)
    routes.add_argument("--speed", action="store_true", help="Prioritize speed")
    routes.add_argument("--simplicity", action="store_true", help="Prioritize simplicity")
    routes.add_argument("--reliability", action="store_true", help="Prioritize reliability")
    routes.add_argument("--max-complexity", type=int, default=None)

    # save-config
    save = sub.add_parser("save-config", help="Write the effective discovery config")
    save.add_argument("path", type=Path, help="Target file (.json, .yaml or .yml)")

    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()

    if args.command == "start":
        server = ChainingMCP(
            transport=args.transport,
            host=args.host,
            port=args.port,
            query_timeout=args.query_timeout,
            log_level=args.log_level,
        )
        asyncio.run(server.run())
        raise SystemExit(0)

    configure_logging(level="WARNING")

    if args.command == "servers":
        print(anyio.run(cmd_servers))

    elif args.command == "tools":
        async def _tools():
            return await cmd_tools(server_filter=args.server, category=args.category)
        print(anyio.run(_tools))

    elif args.command == "routes":
        criteria = OptimizationCriteria(
            prioritize_speed=args.speed,
            prioritize_simplicity=args.simplicity,
            prioritize_reliability=args.reliability,
            max_complexity=args.max_complexity,
        )

        async def _routes():
            return await cmd_routes(args.task, criteria)
        print(anyio.run(_routes))

    elif args.command == "save-config":
        print(cmd_save_config(args.path))
