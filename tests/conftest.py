"""Shared fixtures: stub connectors and isolation from global state."""

from typing import Any

import pytest

import glueflow.persistence as persistence
from glueflow.connectors import BaseConnector, ConnectorRegistry, ConnectorResult
from glueflow.utils import retry


class StaticConnector(BaseConnector):
    """Returns a fixed payload and records every call."""

    type = "static"

    def __init__(self, data: Any = None) -> None:
        self.data = {"ok": True} if data is None else data
        self.calls: list[tuple[dict, dict]] = []

    async def execute(self, config, input):
        self.calls.append((config, input))
        return ConnectorResult.ok(self.data)


class FailingConnector(BaseConnector):
    """Fails the first ``failures`` calls, then succeeds."""

    type = "failing"

    def __init__(self, failures: int = 10**6, code: str = "HTTP_ERROR") -> None:
        self.failures = failures
        self.code = code
        self.calls = 0

    async def execute(self, config, input):
        self.calls += 1
        if self.calls <= self.failures:
            return ConnectorResult.fail("boom", code=self.code)
        return ConnectorResult.ok({"recovered": True})


class SumConnector(BaseConnector):
    """Adds ``a`` and ``b`` from ``input.context`` like a tiny script runner."""

    type = "javascript"

    async def execute(self, config, input):
        context = input.get("context") or {}
        return ConnectorResult.ok({"sum": context["a"] + context["b"]})


@pytest.fixture
def static_connector():
    return StaticConnector()


@pytest.fixture
def registry(static_connector):
    return ConnectorRegistry([static_connector, FailingConnector(), SumConnector()])


@pytest.fixture
def sleeps(monkeypatch):
    """Record retry delays instead of sleeping."""
    delays: list[float] = []

    async def fake_sleep(delay_ms):
        delays.append(delay_ms)

    monkeypatch.setattr(retry, "sleep_ms", fake_sleep)
    return delays


@pytest.fixture(autouse=True)
def isolated_environment(monkeypatch, tmp_path):
    """Keep tests away from local config files and cached repositories."""
    monkeypatch.setenv("GLUEFLOW_CONFIG", str(tmp_path / "missing.yaml"))
    for name in ("GLUEFLOW_TRANSPORT", "GLUEFLOW_DATABASE_URL", "DATABASE_URL"):
        monkeypatch.delenv(name, raising=False)
    persistence._repositories_instance = None
    yield
    persistence._repositories_instance = None
