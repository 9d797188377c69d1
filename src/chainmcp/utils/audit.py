"""
Audit log for dispatched chaining tool calls.

Each call to a ChainingServer tool becomes one JSONL record, written through a
dedicated loguru sink with rotation and retention.
"""

from typing import Any, Dict, Optional
from pathlib import Path
from datetime import datetime, timezone
import json
import re
import uuid

from loguru import logger

from .config import AuditConfig, DEFAULT_AUDIT_CONFIG

_SENSITIVE_KEYS = re.compile(
    r"(api[_-]?key|token|password|passwd|secret|credential|auth|bearer)",
    re.IGNORECASE,
)
_REDACTED = "***REDACTED***"


def _sanitize_arguments(args: Any) -> Any:
    """Recursively redact values stored under sensitive-looking keys."""
    if isinstance(args, dict):
        return {
            key: _REDACTED if _SENSITIVE_KEYS.search(str(key)) else _sanitize_arguments(value)
            for key, value in args.items()
        }
    if isinstance(args, list):
        return [_sanitize_arguments(item) for item in args]
    return args


class AuditLogger:
    """
    Writes one record per dispatched tool call.

    Records from this instance only reach this instance's file, so several
    loggers (one per server, or one per test) can coexist.
    """

    def __init__(
        self,
        log_dir: Optional[str] = None,
        config: Optional[AuditConfig] = None,
    ):
        """
        Args:
            log_dir: Directory for audit logs (default: ./logs)
            config: AuditConfig instance (overrides log_dir)
        """
        if config:
            self.config = config
        else:
            self.config = AuditConfig(log_dir=log_dir or DEFAULT_AUDIT_CONFIG.log_dir)

        self.log_path = Path(self.config.log_dir)
        self.log_path.mkdir(parents=True, exist_ok=True)
        self.log_file = self.config.log_file

        self._sink_key = uuid.uuid4().hex
        self._sink_id = logger.add(
            str(self.log_file),
            format="{message}",  # raw JSON
            serialize=False,
            enqueue=True,
            filter=lambda record: record["extra"].get("audit_sink") == self._sink_key,
            **self.config.sink_options(),
        )

    def log_dispatch(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        duration_ms: float,
        summary: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Record a tool call that returned a result."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": "tool_dispatch",
            "tool_name": tool_name,
            "arguments": _sanitize_arguments(arguments),
            "status": "success",
            "duration_ms": round(duration_ms, 3),
        }
        if summary:
            entry["summary"] = summary
        self._write_entry(entry)

    def log_dispatch_failure(
        self,
        tool_name: str,
        arguments: Dict[str, Any],
        error: BaseException,
        duration_ms: float = 0.0,
    ) -> None:
        """Record a tool call that ended in an error result."""
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "event_type": "tool_dispatch",
            "tool_name": tool_name,
            "arguments": _sanitize_arguments(arguments),
            "status": "error",
            "error_type": type(error).__name__,
            "error": str(error),
            "duration_ms": round(duration_ms, 3),
        }
        self._write_entry(entry)

    def _write_entry(self, entry: Dict[str, Any]) -> None:
        json_line = json.dumps(entry, separators=(",", ":"), default=str)
        logger.bind(audit=True, audit_sink=self._sink_key).info(json_line)

    def flush(self) -> None:
        """Block until queued records are written."""
        logger.complete()

    def close(self) -> None:
        """Remove this logger's sink from loguru."""
        logger.remove(self._sink_id)
