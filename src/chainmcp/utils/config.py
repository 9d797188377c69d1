"""
Where the dispatch audit log lives and how loguru rotates it.

ChainingMCP builds one from ``CHAIN_MCP_AUDIT_LOG_DIR``; tests point it at a
temporary directory.
"""

from pathlib import Path
from typing import Any, Dict, Optional


class AuditConfig:
    """File location and rotation policy for one audit sink."""

    def __init__(
        self,
        log_dir: str = "./logs",
        file_name: str = "chain-audit.jsonl",
        rotation: str = "10 MB",
        retention: str = "30 days",
        compression: Optional[str] = "gz",
    ):
        self.log_dir = log_dir
        self.file_name = file_name
        self.rotation = rotation
        self.retention = retention
        self.compression = compression

    @property
    def log_file(self) -> Path:
        return Path(self.log_dir) / self.file_name

    def sink_options(self) -> Dict[str, Any]:
        """Keyword arguments for ``logger.add`` on the audit file."""
        return {
            "rotation": self.rotation,
            "retention": self.retention,
            "compression": self.compression,
        }


DEFAULT_AUDIT_CONFIG = AuditConfig()
