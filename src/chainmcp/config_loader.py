from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml
from pydantic import ValidationError as PydanticValidationError

from src.chainmcp.discovery_config import DiscoveryConfig, default_discovery_config
from src.chainmcp.errors import ConfigError
from src.utils.logger import get_logger

logger = get_logger("ConfigLoader")

# Environment variables carrying JSON overrides, in field order
ENV_OVERRIDES = {
    "MCP_DISCOVERY_CONFIG_PATHS": "config_paths",
    "MCP_ESSENTIAL_SERVERS": "essential_servers",
    "MCP_FALLBACK_TOOLS": "fallback_tools",
    "MCP_COMPLEXITY_RULES": "complexity_rules",
    "MCP_DURATION_RULES": "duration_rules",
    "MCP_CATEGORY_RULES": "category_rules",
}

CONFIG_FILE_NAME = "discovery-config.json"

PartialConfig = Union[DiscoveryConfig, Mapping[str, Any]]


def default_search_paths() -> list[Path]:
    """Config file locations, probed in order: project-local, dotfile, home-config."""
    cwd = Path.cwd()
    home = Path.home()
    return [
        cwd / CONFIG_FILE_NAME,
        cwd / ".mcp" / CONFIG_FILE_NAME,
        home / ".config" / "mcp" / CONFIG_FILE_NAME,
        home / ".mcp" / CONFIG_FILE_NAME,
    ]


def _field_for_key(key: str) -> Optional[str]:
    """Map a wire key (camelCase) or a field name onto a DiscoveryConfig field."""
    if key in DiscoveryConfig.model_fields:
        return key
    for name, info in DiscoveryConfig.model_fields.items():
        if info.alias == key:
            return name
    return None


def _is_present(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, (list, dict, str)) and not value:
        return False
    return True


class ConfigLoader:
    """
    Resolves the discovery configuration.

    Precedence: environment variables, then the first config file that
    parses, then the built-in defaults.
    """

    def __init__(
        self,
        search_paths: Optional[list[Path]] = None,
        environ: Optional[Mapping[str, str]] = None,
    ):
        self._search_paths = search_paths
        self._environ = environ
        self.config: DiscoveryConfig = default_discovery_config()

    @property
    def environ(self) -> Mapping[str, str]:
        return self._environ if self._environ is not None else os.environ

    @property
    def search_paths(self) -> list[Path]:
        return self._search_paths if self._search_paths is not None else default_search_paths()

    def load_config(self) -> DiscoveryConfig:
        """Load configuration from environment variables or the first valid config file."""
        env_config = self._load_from_environment()
        if env_config:
            self.config = self.merge_configs(default_discovery_config(), env_config)
            logger.info(f"⚙️ Loaded discovery config from environment ({', '.join(env_config)})")
            return self.config

        for path in self.search_paths:
            if not path.exists():
                continue
            try:
                file_config = self.load_config_file(path)
                self.config = self.merge_configs(default_discovery_config(), file_config)
            except ConfigError as e:
                logger.warning(f"⚠️ {e}")
                continue
            logger.info(f"⚙️ Loaded discovery config from {path}")
            return self.config

        self.config = default_discovery_config()
        logger.debug("No discovery config found, using defaults")
        return self.config

    def _load_from_environment(self) -> dict[str, Any]:
        """Collect every well-formed JSON override. Malformed values are skipped."""
        partial: dict[str, Any] = {}
        for var, field_name in ENV_OVERRIDES.items():
            raw = self.environ.get(var)
            if not raw:
                continue
            try:
                value = json.loads(raw)
                DiscoveryConfig.model_validate({field_name: value})
            except json.JSONDecodeError as e:
                logger.warning(f"⚠️ Ignoring {var}: {ConfigError(var, str(e))}")
                continue
            except PydanticValidationError as e:
                logger.warning(f"⚠️ Ignoring {var}: {ConfigError(var, str(e))}")
                continue
            partial[field_name] = value
        return partial

    def load_config_file(self, path: Union[str, Path]) -> dict[str, Any]:
        """Read a JSON or YAML config file into a partial config dict.

        Raises:
            ConfigError: if the file cannot be read, parsed or validated.
        """
        path = Path(path)
        try:
            with open(path, "r", encoding="utf-8") as f:
                if path.suffix in (".yaml", ".yml"):
                    raw = yaml.safe_load(f) or {}
                else:
                    raw = json.load(f)
        except (OSError, UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as e:
            raise ConfigError(str(path), str(e)) from e

        if not isinstance(raw, dict):
            raise ConfigError(str(path), "top-level value must be an object")
        try:
            DiscoveryConfig.model_validate(raw)
        except PydanticValidationError as e:
            raise ConfigError(str(path), str(e)) from e
        return raw

    def merge_configs(
        self, default_config: DiscoveryConfig, custom_config: PartialConfig
    ) -> DiscoveryConfig:
        """Override top-level fields that are present in custom_config.

        Lists are replaced wholesale, never concatenated.
        """
        if isinstance(custom_config, DiscoveryConfig):
            overrides = {
                name: getattr(custom_config, name)
                for name in custom_config.model_fields_set
            }
        else:
            overrides = {}
            for key, value in custom_config.items():
                name = _field_for_key(key)
                if name is None:
                    logger.warning(f"⚠️ Ignoring unknown config key: {key}")
                    continue
                overrides[name] = value

        merged: dict[str, Any] = {
            name: getattr(default_config, name) for name in DiscoveryConfig.model_fields
        }
        for name, value in overrides.items():
            if _is_present(value):
                merged[name] = value
        try:
            return DiscoveryConfig.model_validate(merged)
        except PydanticValidationError as e:
            raise ConfigError("merged configuration", str(e)) from e

    def get_config(self) -> DiscoveryConfig:
        return self.config

    @staticmethod
    def expand_paths(paths: list[str]) -> list[str]:
        """Resolve a leading ~/ against home and ./ against the cwd."""
        expanded = []
        for path in paths:
            if path.startswith("~/"):
                expanded.append(os.path.join(str(Path.home()), path[2:]))
            elif path.startswith("./"):
                expanded.append(os.path.join(os.getcwd(), path[2:]))
            else:
                expanded.append(path)
        return expanded

    def save_config(self, path: Union[str, Path]) -> None:
        """Write the current config as YAML (.yaml/.yml) or JSON, creating parent dirs."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = self.config.to_wire()
        with open(path, "w", encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                yaml.safe_dump(data, f, default_flow_style=False, sort_keys=False, allow_unicode=True)
            else:
                json.dump(data, f, indent=2)
