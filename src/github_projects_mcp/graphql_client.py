"""GitHub GraphQL client.

Provides:
- strict host allowlist and no-redirect behavior
- finite timeouts
- optional bounded retries with backoff (off by default)
- GraphQL `errors` surfaced as `GraphQLErrors`, transport failures as `SafeError`

Only fixed query/mutation documents defined by this server are sent.
"""

from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Protocol

import httpx

from .config import LimitsConfig
from .errors import SafeError, github_auth_forbidden
from .graphql_errors import GraphQLError, GraphQLErrors

logger = logging.getLogger(__name__)

GITHUB_API_BASE_URL = "https://api.github.com"


@dataclass(frozen=True, slots=True)
class RequestBudget:
    """Budget for a single tool call."""

    total_timeout_s: float


@dataclass(frozen=True, slots=True)
class GraphQLResult:
    """Parsed GraphQL response.

    `errors` is only non-empty for calls made with `allow_partial=True`.
    """

    data: dict[str, Any]
    errors: list[GraphQLError] = field(default_factory=list)


class GraphQLExecutor(Protocol):
    """Anything that can run a GraphQL document; tests substitute in-memory stubs."""

    async def execute(
        self,
        *,
        query: str,
        variables: dict[str, Any] | None = None,
        budget: RequestBudget,
        allow_partial: bool = False,
    ) -> GraphQLResult: ...


class GitHubGraphQLClient:
    """Minimal GitHub GraphQL client (POST /graphql only)."""

    def __init__(
        self,
        *,
        token_provider: Callable[[], Awaitable[str]],
        limits: LimitsConfig,
        api_base_url: str = GITHUB_API_BASE_URL,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._token_provider = token_provider
        self._limits = limits
        self._api_base_url = api_base_url.rstrip("/")
        self._transport = transport

        if self._api_base_url != GITHUB_API_BASE_URL:
            raise SafeError(code="Config", message="Only https://api.github.com is allowed")

    def _headers(self, token: str) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": "2022-11-28",
        }

    def _compute_backoff_s(self, attempt_index: int) -> float:
        base = min(self._limits.max_backoff_s, 0.5 * (2 ** (attempt_index - 1)))
        jitter = min(0.05, 0.01 * attempt_index)
        return min(self._limits.max_backoff_s, base + jitter)

    def _is_retryable_status(self, status_code: int) -> bool:
        return status_code == 429 or 500 <= status_code <= 599

    @staticmethod
    def _error_hint(resp: httpx.Response) -> str | None:
        try:
            payload = resp.json()
        except ValueError:
            return None
        if isinstance(payload, dict) and isinstance(payload.get("message"), str):
            return payload["message"]
        return None

    def _parse_payload(self, resp: httpx.Response, *, allow_partial: bool) -> GraphQLResult:
        try:
            payload = resp.json()
        except json.JSONDecodeError as exc:
            raise SafeError(code="GitHub", message="GitHub returned invalid JSON") from exc
        if not isinstance(payload, dict):
            raise SafeError(code="GitHub", message="GitHub returned invalid JSON")

        data = payload.get("data")
        raw_errors = payload.get("errors")
        if isinstance(raw_errors, list) and raw_errors:
            errors = GraphQLErrors.from_payload(raw_errors)
            if not (allow_partial and isinstance(data, dict)):
                raise errors
            logger.info("GraphQL response carried %s partial error(s)", len(errors.errors))
            return GraphQLResult(data=data, errors=errors.errors)

        if not isinstance(data, dict):
            raise SafeError(code="GitHub", message="GitHub GraphQL returned no data")
        return GraphQLResult(data=data)

    async def execute(
        self,
        *,
        query: str,
        variables: dict[str, Any] | None = None,
        budget: RequestBudget,
        allow_partial: bool = False,
    ) -> GraphQLResult:
        """Execute a fixed GraphQL query/mutation and return parsed data.

        Raises:
            GraphQLErrors: The response carried GraphQL errors (and partial data was not accepted).
            SafeError: HTTP, auth or network failure.
        """
        if not isinstance(query, str) or not query.strip():
            raise SafeError(code="Internal", message="GraphQL query is missing")

        url = f"{self._api_base_url}/graphql"
        token = await self._token_provider()

        timeout = httpx.Timeout(
            timeout=min(budget.total_timeout_s, self._limits.total_timeout_s),
            connect=self._limits.connect_timeout_s,
            read=self._limits.read_timeout_s,
        )
        max_attempts = max(1, self._limits.max_attempts)

        async with httpx.AsyncClient(follow_redirects=False, timeout=timeout, transport=self._transport) as client:
            for attempt in range(1, max_attempts + 1):
                try:
                    resp = await client.post(
                        url,
                        headers=self._headers(token),
                        json={"query": query, "variables": variables or {}},
                    )
                except (httpx.TimeoutException, httpx.TransportError) as exc:
                    if attempt < max_attempts:
                        await asyncio.sleep(self._compute_backoff_s(attempt))
                        continue
                    raise SafeError(code="Network", message="Network request failed") from exc

                if resp.status_code in (401, 403):
                    raise github_auth_forbidden(status_code=resp.status_code)

                if resp.status_code >= 400:
                    if attempt < max_attempts and self._is_retryable_status(resp.status_code):
                        await asyncio.sleep(self._compute_backoff_s(attempt))
                        continue
                    raise SafeError(
                        code="GitHub",
                        message="GitHub GraphQL request failed",
                        hint=self._error_hint(resp),
                        status_code=resp.status_code,
                    )

                return self._parse_payload(resp, allow_partial=allow_partial)

        raise SafeError(code="Network", message="Request failed")  # pragma: no cover
