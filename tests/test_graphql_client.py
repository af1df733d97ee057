"""GitHub GraphQL client tests.

Covers:
- request construction (URL + auth + API version)
- GraphQL `errors` surfaced as GraphQLErrors, partial data on request
- HTTP error mapping and the default of a single attempt
- optional bounded retry
"""

from __future__ import annotations

import json

import httpx
import pytest
from github_projects_mcp.config import LimitsConfig
from github_projects_mcp.errors import SafeError
from github_projects_mcp.graphql_client import GitHubGraphQLClient, RequestBudget
from github_projects_mcp.graphql_errors import GraphQLErrors

BUDGET = RequestBudget(total_timeout_s=5.0)


async def _token() -> str:
    return "tok"


def _client(handler, **limits) -> GitHubGraphQLClient:
    return GitHubGraphQLClient(
        token_provider=_token,
        limits=LimitsConfig(max_backoff_s=0.0, **limits),
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_sends_bearer_auth_and_variables_to_graphql_endpoint() -> None:
    seen: dict[str, object] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers.get("Authorization")
        seen["version"] = request.headers.get("X-GitHub-Api-Version")
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"data": {"viewer": {"login": "octo"}}})

    out = await _client(handler).execute(query="query { viewer { login } }", variables={"a": 1}, budget=BUDGET)

    assert out.data == {"viewer": {"login": "octo"}}
    assert out.errors == []
    assert seen["url"] == "https://api.github.com/graphql"
    assert seen["auth"] == "Bearer tok"
    assert seen["version"] == "2022-11-28"
    assert seen["body"] == {"query": "query { viewer { login } }", "variables": {"a": 1}}


@pytest.mark.asyncio
async def test_graphql_errors_are_raised_with_structure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "data": None,
                "errors": [{"message": "Could not resolve to a node with the global id of 'PVT_x'", "path": ["node"]}],
            },
        )

    with pytest.raises(GraphQLErrors) as exc:
        await _client(handler).execute(query="query { node(id: \"PVT_x\") { id } }", budget=BUDGET)

    assert exc.value.errors[0].path == ("node",)
    assert "Could not resolve" in str(exc.value)


@pytest.mark.asyncio
async def test_partial_data_is_returned_when_allowed() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "data": {"user": {"id": "U_1"}, "organization": None},
                "errors": [{"message": "Could not resolve to an Organization with the login of 'octo'."}],
            },
        )

    client = _client(handler)
    out = await client.execute(query="query { x }", budget=BUDGET, allow_partial=True)
    assert out.data["user"] == {"id": "U_1"}
    assert len(out.errors) == 1

    with pytest.raises(GraphQLErrors):
        await client.execute(query="query { x }", budget=BUDGET)


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403])
async def test_auth_failures_map_to_forbidden(status: int) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(status, json={"message": "Bad credentials"})

    with pytest.raises(SafeError) as exc:
        await _client(handler).execute(query="query { x }", budget=BUDGET)
    assert exc.value.code == "Forbidden"
    assert exc.value.status_code == status


@pytest.mark.asyncio
async def test_no_retry_by_default() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        return httpx.Response(502, json={"message": "bad gateway"})

    with pytest.raises(SafeError) as exc:
        await _client(handler).execute(query="query { x }", budget=BUDGET)
    assert calls["n"] == 1
    assert exc.value.code == "GitHub"
    assert exc.value.hint == "bad gateway"


@pytest.mark.asyncio
async def test_retries_on_429_when_enabled() -> None:
    calls = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["n"] += 1
        if calls["n"] < 3:
            return httpx.Response(429, json={"message": "rate limited"})
        return httpx.Response(200, json={"data": {"ok": True}})

    out = await _client(handler, max_attempts=3).execute(query="query { x }", budget=BUDGET)
    assert out.data == {"ok": True}
    assert calls["n"] == 3


@pytest.mark.asyncio
async def test_transport_error_maps_to_network() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("boom", request=request)

    with pytest.raises(SafeError) as exc:
        await _client(handler).execute(query="query { x }", budget=BUDGET)
    assert exc.value.code == "Network"


@pytest.mark.asyncio
async def test_invalid_json_and_missing_data() -> None:
    def bad_json(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, content=b"not json")

    def no_data(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"data": None})

    with pytest.raises(SafeError) as exc:
        await _client(bad_json).execute(query="query { x }", budget=BUDGET)
    assert exc.value.message == "GitHub returned invalid JSON"

    with pytest.raises(SafeError) as exc:
        await _client(no_data).execute(query="query { x }", budget=BUDGET)
    assert exc.value.message == "GitHub GraphQL returned no data"


def test_only_github_api_host_is_allowed() -> None:
    with pytest.raises(SafeError) as exc:
        GitHubGraphQLClient(token_provider=_token, limits=LimitsConfig(), api_base_url="https://example.com")
    assert exc.value.code == "Config"
