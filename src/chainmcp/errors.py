"""
Error taxonomy for discovery, querying, optimization and reliability.

Per-source and per-server failures (ConfigError, DiscoveryEntryError,
ProtocolError) are absorbed where they happen and replaced with a fallback.
Only ValidationError, OperationError and FeatureUnavailableError reach callers.
"""

from typing import Optional


class ChainingError(Exception):
    """Base class for every error raised by chain-mcp."""


class ConfigError(ChainingError):
    """A configuration source could not be parsed."""

    def __init__(self, source: str, message: str):
        super().__init__(f"Invalid configuration in {source}: {message}")
        self.source = source


class DiscoveryEntryError(ChainingError):
    """A single server entry failed schema validation."""

    def __init__(self, source: str, entry_name: str, message: str):
        super().__init__(f"Invalid server entry '{entry_name}' in {source}: {message}")
        self.source = source
        self.entry_name = entry_name


class ProtocolError(ChainingError):
    """A tools/list query against a server failed."""

    def __init__(self, server_name: str, message: str):
        super().__init__(message)
        self.server_name = server_name


class ProtocolTimeoutError(ProtocolError):
    def __init__(self, server_name: str, timeout: float):
        super().__init__(
            server_name, f"Timeout connecting to server {server_name} after {timeout}s"
        )
        self.timeout = timeout


class ProtocolExitError(ProtocolError):
    def __init__(self, server_name: str, exit_code: int, stderr: str = ""):
        super().__init__(
            server_name,
            f"Server {server_name} exited with code {exit_code}: {stderr.strip()}",
        )
        self.exit_code = exit_code
        self.stderr = stderr


class ProtocolSpawnError(ProtocolError):
    def __init__(self, server_name: str, cause: BaseException):
        super().__init__(server_name, f"Failed to spawn server {server_name}: {cause}")
        self.cause = cause


class ValidationError(ChainingError):
    """Caller input is malformed. Never retried."""

    def __init__(self, operation: str, message: str):
        super().__init__(
            f"Validation failed for {operation}: {message}. Please check your input parameters."
        )
        self.operation = operation


class OperationError(ChainingError):
    """A wrapped operation failed."""


class RetryExhaustedError(OperationError):
    def __init__(self, operation: str, attempts: int, last_error: Optional[BaseException]):
        cause = str(last_error) if last_error is not None else "Unknown error"
        super().__init__(f"Operation failed after {attempts} attempts: {cause}")
        self.operation = operation
        self.attempts = attempts
        self.last_error = last_error


class FeatureUnavailableError(ChainingError):
    """A feature is switched off for this process."""
