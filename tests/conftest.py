from __future__ import annotations

import os

import pytest


@pytest.fixture(autouse=True)
def reset_sse_app_status():
    """sse-starlette keeps a process-wide exit event bound to the first event loop."""
    from sse_starlette.sse import AppStatus

    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None
    yield
    if hasattr(AppStatus, "should_exit_event"):
        AppStatus.should_exit_event = None


@pytest.fixture(autouse=True)
def isolated_env(monkeypatch, tmp_path):
    """Keep a developer's relaychat.yaml and RELAYCHAT_* variables out of tests."""
    for key in list(os.environ):
        if key.startswith("RELAYCHAT_"):
            monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)
