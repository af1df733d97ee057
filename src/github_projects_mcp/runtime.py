"""Per-server runtime shared by the tool handlers.

The GraphQL client is not held directly: handlers ask `acquire_client` for a fresh one on
every invocation, after their arguments have been validated.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable

from .audit import AuditLogger
from .config import AppConfig
from .errors import SafeError
from .graphql_client import GraphQLExecutor, GraphQLResult, RequestBudget
from .graphql_errors import GraphQLErrors, format_graphql_error, permission_denied_message
from .policy import Policy

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class Runtime:
    """Per-server runtime dependencies shared across tool calls."""

    config: AppConfig
    audit: AuditLogger
    policy: Policy
    graphql_factory: Callable[[], GraphQLExecutor]


def acquire_client(runtime: Runtime) -> GraphQLExecutor:
    """Return a GraphQL client for one tool invocation."""
    try:
        return runtime.graphql_factory()
    except SafeError:
        raise
    except Exception as exc:  # pylint: disable=broad-exception-caught
        logger.error("GraphQL client factory failed: %s", type(exc).__name__)
        raise SafeError(code="Internal", message="Failed to get GitHub GraphQL client") from exc


def budget(runtime: Runtime) -> RequestBudget:
    return RequestBudget(total_timeout_s=runtime.config.limits.total_timeout_s)


def text_limit(runtime: Runtime) -> int:
    return runtime.config.limits.text_max_bytes


async def run_graphql(
    client: GraphQLExecutor,
    runtime: Runtime,
    *,
    query: str,
    variables: dict[str, Any],
    action: str,
    resource: str,
    allow_partial: bool = False,
) -> GraphQLResult:
    """Execute one document, translating failures into tool-level errors.

    `action` and `resource` phrase the failure, e.g. "Failed to move card: ...".
    """
    try:
        return await client.execute(
            query=query,
            variables=variables,
            budget=budget(runtime),
            allow_partial=allow_partial,
        )
    except GraphQLErrors as exc:
        raise SafeError(code="GitHub", message=f"Failed to {action} {resource}: {format_graphql_error(exc)}") from exc
    except SafeError as exc:
        if exc.code == "Forbidden":
            raise SafeError(
                code="Forbidden",
                message=permission_denied_message(action, resource),
                status_code=exc.status_code,
            ) from exc
        raise


def error_text(err: BaseException) -> str:
    """Plain-text rendering of a per-item failure inside an otherwise successful result."""
    if isinstance(err, GraphQLErrors):
        return format_graphql_error(err)
    return str(err)
