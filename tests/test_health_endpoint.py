"""
Tests for ChainingMCP settings, server wiring and the /health endpoint.
"""

import json
from unittest.mock import MagicMock

import pytest
from starlette.requests import Request
from starlette.routing import Mount, Route

from src.chainmcp.chaining_mcp import ChainingMCP, ChainingSettings
from src.chainmcp.chaining_server import ChainingServer
from src.chainmcp.errors import RetryExhaustedError


@pytest.fixture
def chaining_mcp(tmp_path):
    return ChainingMCP(transport="sse", max_retries=0, audit_enabled=False, audit_log_dir=str(tmp_path))


def test_settings_from_environment(monkeypatch):
    monkeypatch.setenv("CHAIN_MCP_PORT", "9100")
    monkeypatch.setenv("CHAIN_MCP_SEQUENTIAL_THINKING_ENABLED", "false")
    settings = ChainingSettings()
    assert settings.port == 9100
    assert settings.sequential_thinking_enabled is False
    assert settings.transport == "stdio"


def test_build_server_wires_components(tmp_path):
    mcp = ChainingMCP(sequential_thinking_enabled=False, audit_log_dir=str(tmp_path / "logs"))
    server = mcp.build_server()
    try:
        assert isinstance(server, ChainingServer)
        assert server.reliability is mcp.reliability
        assert server.discovery is mcp.discovery
        assert not server.analyzer.is_available()
        assert server.analyzer.optimizer is server.optimizer
        assert (tmp_path / "logs").is_dir()
    finally:
        server.audit_logger.close()


def test_starlette_routes(chaining_mcp):
    chaining_mcp.build_server()
    app = chaining_mcp.create_starlette_app()
    paths = {route.path for route in app.routes if isinstance(route, (Route, Mount))}
    assert {"/sse", "/messages", "/health"} <= paths


@pytest.mark.asyncio
async def test_health_reports_counts(chaining_mcp):
    response = await chaining_mcp.handle_health(MagicMock(spec=Request))
    body = json.loads(response.body)
    assert response.status_code == 200
    assert body["status"] == "healthy"
    assert body["servers"] == 0
    assert body["tools"] == 0
    assert "errorRate" in body["metrics"]


@pytest.mark.asyncio
async def test_health_unhealthy_returns_503(chaining_mcp):
    async def broken():
        raise RuntimeError("down")

    for _ in range(3):
        with pytest.raises(RetryExhaustedError):
            await chaining_mcp.reliability.execute_with_retry(broken, "probe")

    response = await chaining_mcp.handle_health(MagicMock(spec=Request))
    assert response.status_code == 503
    assert json.loads(response.body)["status"] == "unhealthy"


@pytest.mark.asyncio
async def test_health_error_hides_detail(chaining_mcp):
    chaining_mcp.reliability = MagicMock()
    chaining_mcp.reliability.health_check.side_effect = RuntimeError("secret detail")

    response = await chaining_mcp.handle_health(MagicMock(spec=Request))
    body = json.loads(response.body)
    assert response.status_code == 500
    assert body["detail"] is None
