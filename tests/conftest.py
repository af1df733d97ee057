"""Shared in-memory stubs for tool tests.

No test in this suite talks to GitHub: handlers run against `DummyGraphQL`, which records
every document it is asked to execute and replays queued results in order.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from typing import Any

import github_projects_mcp.tools as tools
import pytest
from github_projects_mcp.audit import AuditEvent
from github_projects_mcp.config import AppConfig, LimitsConfig, PolicyConfig
from github_projects_mcp.graphql_client import GraphQLResult
from github_projects_mcp.runtime import Runtime


@dataclass
class DummyAudit:
    events: list[AuditEvent] = field(default_factory=list)

    def write_event(self, event: AuditEvent) -> None:
        self.events.append(event)

    def measure_start(self) -> float:
        return time.monotonic()

    def measure_duration_ms(self, start: float) -> int:
        return int((time.monotonic() - start) * 1000)


class DummyGraphQL:
    """Replays queued results; a queued exception is raised instead of returned."""

    def __init__(self, results: list[GraphQLResult | dict[str, Any] | Exception] | None = None) -> None:
        self._results = list(results or [])
        self.calls: list[dict[str, Any]] = []
        self.acquired = 0

    async def execute(
        self,
        *,
        query: str,
        variables: dict[str, Any] | None = None,
        budget: object | None = None,
        allow_partial: bool = False,
    ) -> GraphQLResult:
        self.calls.append({"query": query, "variables": variables, "budget": budget, "allow_partial": allow_partial})
        if not self._results:
            raise AssertionError("Unexpected GraphQL call")
        nxt = self._results.pop(0)
        if isinstance(nxt, Exception):
            raise nxt
        if isinstance(nxt, dict):
            return GraphQLResult(data=nxt)
        return nxt

    def queue(self, *results: GraphQLResult | dict[str, Any] | Exception) -> None:
        self._results.extend(results)

    @property
    def remaining(self) -> int:
        return len(self._results)


def build_runtime(
    graphql: DummyGraphQL,
    *,
    read_only: bool = False,
    disabled_tools: frozenset[str] = frozenset(),
    limits: LimitsConfig | None = None,
) -> Runtime:
    cfg = AppConfig(
        token="test-token",
        app=None,
        policy=PolicyConfig(read_only=read_only, disabled_tools=disabled_tools),
        audit_log_path=None,
        audit_max_bytes=5 * 1024 * 1024,
        audit_max_backups=2,
        limits=limits or LimitsConfig(),
    )

    def factory() -> DummyGraphQL:
        graphql.acquired += 1
        return graphql

    return Runtime(
        config=cfg,
        audit=DummyAudit(),
        policy=tools.build_policy(read_only=read_only, disabled_tools=disabled_tools),
        graphql_factory=factory,
    )


@pytest.fixture
def graphql() -> DummyGraphQL:
    return DummyGraphQL()


@pytest.fixture
def runtime(graphql: DummyGraphQL) -> Runtime:
    return build_runtime(graphql)


@pytest.fixture(autouse=True)
def _reset_cached_runtime(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(tools, "_RUNTIME", None)
