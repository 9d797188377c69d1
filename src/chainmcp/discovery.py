"""
Server and tool discovery.

A sweep gathers server descriptors from four sources, then queries every
server for its tools. Per-source and per-server failures are logged and
absorbed. A failed server contributes its fallback tools instead.
"""

from __future__ import annotations

import asyncio
import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional

from pydantic import ValidationError as PydanticValidationError

from src.chainmcp.classifier import HeuristicClassifier
from src.chainmcp.config_loader import ConfigLoader, PartialConfig
from src.chainmcp.discovery_config import DiscoveryConfig
from src.chainmcp.errors import ConfigError, DiscoveryEntryError
from src.chainmcp.models import ServerDescriptor, ToolDescriptor
from src.chainmcp.protocol import DEFAULT_QUERY_TIMEOUT, ProtocolQueryClient
from src.utils.logger import get_logger

logger = get_logger("Discovery")

# Later sources override earlier ones on a name collision
SOURCE_PRECEDENCE = {"config": 0, "manifest": 1, "environment": 2, "essential": 3}

MANIFEST_NAMES = ("package.json", "mcp-servers.json")
MANIFEST_DOTDIR_FILE = (".mcp", "servers.json")
MANIFEST_EXCLUDED_DIRS = frozenset(
    {"node_modules", "dist", "build", ".git", ".venv", "venv", "__pycache__"}
)
MAX_MANIFEST_DEPTH = 4


def find_manifest_files(root: Path, max_depth: int = MAX_MANIFEST_DEPTH) -> list[Path]:
    """Walk root (bounded depth, pruning excluded dirs) for server manifests."""
    found: list[Path] = []
    root = Path(root)
    for dirpath, dirnames, filenames in os.walk(root):
        current = Path(dirpath)
        depth = len(current.relative_to(root).parts)
        dirnames[:] = sorted(d for d in dirnames if d not in MANIFEST_EXCLUDED_DIRS)
        if depth >= max_depth:
            dirnames[:] = []
        for name in sorted(filenames):
            if name in MANIFEST_NAMES:
                found.append(current / name)
            elif (current.name, name) == MANIFEST_DOTDIR_FILE:
                found.append(current / name)
    return found


def _normalize_entry(entry: dict[str, Any]) -> Optional[dict[str, Any]]:
    """Split a command given as a list into command + args."""
    command = entry.get("command")
    if isinstance(command, list):
        if not command:
            return None
        return {**entry, "command": command[0], "args": list(command[1:]) + list(entry.get("args") or [])}
    return entry


def extract_server_entries(data: Any) -> list[dict[str, Any]]:
    """
    Pull raw server entries out of a parsed config file.

    Supports, in order of preference:
      - { "mcpServers": { name: {command, args, env} } }
      - { "servers": [ ... ] } or { "servers": { name: {...} } }
      - [ {...}, ... ]
      - { "command": ..., ... }  (single server)
    """
    entries: list[Any] = []
    if isinstance(data, dict) and isinstance(data.get("mcpServers"), dict):
        for name, srv in data["mcpServers"].items():
            if not isinstance(srv, dict):
                continue
            entries.append({
                "name": name,
                "command": srv.get("command"),
                "args": srv.get("args") or [],
                "env": srv.get("env") or {},
                "description": srv.get("description") or f"MCP server: {name}",
                "version": "1.0.0",
            })
    elif isinstance(data, dict) and isinstance(data.get("servers"), list):
        entries = list(data["servers"])
    elif isinstance(data, dict) and isinstance(data.get("servers"), dict):
        entries = [
            {"name": name, **srv}
            for name, srv in data["servers"].items()
            if isinstance(srv, dict)
        ]
    elif isinstance(data, list):
        entries = list(data)
    elif isinstance(data, dict) and "command" in data:
        entries = [data]

    normalized = []
    for entry in entries:
        if not isinstance(entry, dict):
            continue
        entry = _normalize_entry(entry)
        if entry is not None:
            normalized.append(entry)
    return normalized


def validate_entries(entries: list[dict[str, Any]], source: str) -> list[ServerDescriptor]:
    """Validate raw entries, dropping (and logging) the invalid ones."""
    servers = []
    for entry in entries:
        try:
            servers.append(ServerDescriptor.model_validate(entry))
        except PydanticValidationError as e:
            name = entry.get("name") or "<unnamed>"
            err = DiscoveryEntryError(source, str(name), f"{e.error_count()} validation error(s)")
            logger.warning(f"⚠️ {err}")
    return servers


class ServerDiscovery:
    """
    Owns the server and tool catalogs produced by discovery sweeps.

    Sweeps are serialized: concurrent callers queue on an asyncio.Lock.
    """

    def __init__(
        self,
        config_loader: Optional[ConfigLoader] = None,
        query_client: Optional[ProtocolQueryClient] = None,
        max_concurrent_queries: int = 10,
        query_timeout: float = DEFAULT_QUERY_TIMEOUT,
        search_root: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self.config_loader = config_loader or ConfigLoader(environ=environ)
        self.config: DiscoveryConfig = self.config_loader.get_config()
        self.classifier = HeuristicClassifier(self.config)
        self.query_client = query_client or ProtocolQueryClient(
            classifier=self.classifier, timeout=query_timeout
        )
        self._search_root = search_root
        self._environ = environ
        self._config_override: dict[str, Any] = {}
        self._servers: dict[str, ServerDescriptor] = {}
        self._sources: dict[str, str] = {}
        self._tools: dict[tuple[str, str], ToolDescriptor] = {}
        self._sweep_lock = asyncio.Lock()
        self._query_semaphore = asyncio.Semaphore(max_concurrent_queries)

    @property
    def environ(self) -> Mapping[str, str]:
        return self._environ if self._environ is not None else os.environ

    @property
    def search_root(self) -> Path:
        return self._search_root if self._search_root is not None else Path.cwd()

    # ------------------------------------------------------------------
    # Server discovery
    # ------------------------------------------------------------------

    async def discover_servers(self) -> list[ServerDescriptor]:
        async with self._sweep_lock:
            return await self._discover_servers()

    async def _discover_servers(self) -> list[ServerDescriptor]:
        self._apply_config(self.config_loader.load_config())

        config_paths = [Path(p) for p in self.config_loader.expand_paths(self.config.config_paths)]
        seen = {p.resolve() for p in config_paths}
        manifest_paths = [
            p for p in find_manifest_files(self.search_root) if p.resolve() not in seen
        ]

        candidates: list[tuple[str, ServerDescriptor]] = []
        for path in config_paths:
            candidates.extend(("config", s) for s in self._load_servers_from_file(path))
        for path in manifest_paths:
            candidates.extend(("manifest", s) for s in self._load_servers_from_file(path))
        candidates.extend(("environment", s) for s in self._discover_from_environment())
        candidates.extend(("essential", s) for s in self.config.essential_servers)

        servers: dict[str, ServerDescriptor] = {}
        sources: dict[str, str] = {}
        for source, server in candidates:
            previous = sources.get(server.name)
            if previous is not None:
                if SOURCE_PRECEDENCE[source] < SOURCE_PRECEDENCE[previous]:
                    logger.debug(f"Keeping {previous} definition of '{server.name}' over {source}")
                    continue
                logger.info(f"🔁 '{server.name}' from {source} overrides {previous} definition")
            servers[server.name] = server
            sources[server.name] = source

        self._servers = servers
        self._sources = sources
        logger.info(f"✅ Discovered {len(servers)} server(s): {', '.join(servers) or 'none'}")
        return list(servers.values())

    def _apply_config(self, loaded: DiscoveryConfig) -> None:
        if self._config_override:
            loaded = self.config_loader.merge_configs(loaded, self._config_override)
        self.config = loaded
        self.classifier.config = loaded

    def _load_servers_from_file(self, path: Path) -> list[ServerDescriptor]:
        if not path.is_file():
            return []
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"⚠️ {ConfigError(str(path), str(e))}")
            return []
        servers = validate_entries(extract_server_entries(data), str(path))
        if servers:
            logger.info(f"📂 Found {len(servers)} server(s) in {path}")
        return servers

    def _discover_from_environment(self) -> list[ServerDescriptor]:
        raw = self.environ.get("MCP_SERVERS")
        if not raw:
            return []
        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError as e:
            logger.warning(f"⚠️ {ConfigError('MCP_SERVERS', str(e))}")
            return []
        if not isinstance(parsed, list):
            logger.warning(f"⚠️ {ConfigError('MCP_SERVERS', 'expected a JSON array')}")
            return []
        entries = [_normalize_entry(e) for e in parsed if isinstance(e, dict)]
        return validate_entries([e for e in entries if e is not None], "MCP_SERVERS")

    # ------------------------------------------------------------------
    # Tool analysis
    # ------------------------------------------------------------------

    async def analyze_tools(self) -> list[ToolDescriptor]:
        async with self._sweep_lock:
            return await self._analyze_tools()

    async def _analyze_tools(self) -> list[ToolDescriptor]:
        names = list(self._servers)
        results = await asyncio.gather(
            *(self._analyze_server(name, self._servers[name]) for name in names)
        )

        tools: dict[tuple[str, str], ToolDescriptor] = {}
        for server_tools in results:
            for tool in server_tools:
                tools[(tool.server_name, tool.name)] = tool
        self._tools = tools
        logger.info(f"✅ Analyzed {len(tools)} tool(s) across {len(names)} server(s)")
        return list(tools.values())

    async def _analyze_server(
        self, server_name: str, descriptor: ServerDescriptor
    ) -> list[ToolDescriptor]:
        async with self._query_semaphore:
            try:
                return await self.query_client.query_server_tools(server_name, descriptor)
            except Exception as e:
                logger.warning(f"⚠️ Failed to analyze tools from {server_name}: {e}")
        fallback = self.classifier.fallback_tools(server_name)
        logger.info(f"🔌 {server_name}: using {len(fallback)} fallback tool(s)")
        return fallback

    # ------------------------------------------------------------------
    # Catalog accessors
    # ------------------------------------------------------------------

    def get_servers(self) -> list[ServerDescriptor]:
        return list(self._servers.values())

    def get_tools(self) -> list[ToolDescriptor]:
        return list(self._tools.values())

    def get_tools_by_category(self, category: str) -> list[ToolDescriptor]:
        return [t for t in self._tools.values() if t.category == category]

    def get_tools_by_server(self, server_name: str) -> list[ToolDescriptor]:
        return [t for t in self._tools.values() if t.server_name == server_name]

    def source_of(self, server_name: str) -> Optional[str]:
        """Which source ("config", "manifest", "environment", "essential") defined a server."""
        return self._sources.get(server_name)

    def get_configuration(self) -> DiscoveryConfig:
        return self.config

    # ------------------------------------------------------------------
    # Reconfiguration
    # ------------------------------------------------------------------

    async def reload_configuration(self) -> None:
        """Clear both catalogs and run a full sweep."""
        async with self._sweep_lock:
            self._servers.clear()
            self._sources.clear()
            self._tools.clear()
            await self._discover_servers()
            await self._analyze_tools()

    async def update_configuration(self, partial: PartialConfig) -> None:
        """Pin the given fields over whatever the loader finds, then reload.

        The override persists across later reloads.
        """
        if isinstance(partial, DiscoveryConfig):
            partial = {name: getattr(partial, name) for name in partial.model_fields_set}
        # Validate eagerly so a bad partial never reaches a sweep
        self.config_loader.merge_configs(self.config, partial)
        self._config_override = {**self._config_override, **dict(partial)}
        await self.reload_configuration()
