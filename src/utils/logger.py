import sys
from typing import Literal
from loguru import logger

# Every component logs under chain_mcp.<Component>
BASE_LOGGER_NAMESPACE = "chain_mcp"

_configured = False


def get_logger(name: str) -> "logger":
    """
    Returns the shared loguru logger tagged with a chain-mcp component name.

    Example: get_logger("Discovery") → records carry module="chain_mcp.Discovery"
    """
    return logger.bind(module=f"{BASE_LOGGER_NAMESPACE}.{name}")


def _console_filter(with_module: bool):
    """Console records split on whether a component name is bound.

    Audit records are bound with ``audit=True`` and only reach their own file sink.
    """

    def accept(record) -> bool:
        extra = record["extra"]
        return ("module" in extra) == with_module and not extra.get("audit")

    return accept


def configure_logging(
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO",
) -> None:
    """
    Installs the chain-mcp console sinks. Only the first call has any effect.

    ChainingMCP calls this with ``CHAIN_MCP_LOG_LEVEL``; the one-shot CLI
    commands call it with WARNING so their printed output stays readable.

    Args:
        level: Minimum level for console records.
    """
    global _configured
    if _configured:
        return

    logger.remove()

    # stdout carries the MCP stdio transport, so console output goes to stderr
    logger.add(
        sys.stderr,
        format="<level>{level: <8}</level> | <cyan>{extra[module]}</cyan> | {message}",
        level=level,
        colorize=True,
        filter=_console_filter(with_module=True),
    )
    logger.add(
        sys.stderr,
        format="<level>{level: <8}</level> | {message}",
        level=level,
        colorize=True,
        filter=_console_filter(with_module=False),
    )

    _configured = True
