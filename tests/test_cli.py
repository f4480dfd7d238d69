from __future__ import annotations

import pytest
import typer
from typer.testing import CliRunner

from relaychat import __version__
from relaychat.cli.main import _parse_tool_args, app

runner = CliRunner()


def test_tool_args_are_read_as_json_when_possible() -> None:
    assert _parse_tool_args(["location=40.7128,-74.0060", "days=3"]) == {
        "location": "40.7128,-74.0060",
        "days": 3,
    }


def test_tool_args_require_key_value() -> None:
    with pytest.raises(typer.BadParameter):
        _parse_tool_args(["days"])


def test_version() -> None:
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.stdout


def test_status_reports_unreachable_relay() -> None:
    result = runner.invoke(app, ["status", "--url", "http://127.0.0.1:9"])

    assert result.exit_code == 1
    assert "not reachable" in result.stdout


@pytest.fixture
def captured_run(monkeypatch):
    import uvicorn

    from relaychat import config as config_module

    calls: list[dict] = []
    monkeypatch.setattr(uvicorn, "run", lambda app_path, **kwargs: calls.append({"app": app_path, **kwargs}))
    monkeypatch.setattr(config_module, "_config", None)
    return calls


def test_serve_binds_configured_port(monkeypatch, captured_run) -> None:
    monkeypatch.setenv("RELAYCHAT_PORT", "8081")

    result = runner.invoke(app, ["serve"])

    assert result.exit_code == 0
    assert captured_run == [{"app": "relaychat.main:app", "host": "0.0.0.0", "port": 8081, "reload": False}]


def test_serve_mcp_flags_override_config(monkeypatch, captured_run) -> None:
    monkeypatch.setenv("RELAYCHAT_MCP_PORT", "8082")

    result = runner.invoke(app, ["serve-mcp", "--host", "127.0.0.1"])

    assert result.exit_code == 0
    assert captured_run[0]["app"] == "relaychat.mcp.server:app"
    assert captured_run[0]["host"] == "127.0.0.1"
    assert captured_run[0]["port"] == 8082
