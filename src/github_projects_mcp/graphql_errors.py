"""GraphQL error classification, formatting and identifier validation.

GitHub reports most failures as a 200 response carrying an `errors` list. This module turns
those entries (or raw error text that merely looks like one) into readable messages with a
remediation hint, and validates the prefixes of the three Projects v2 identifier namespaces.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any

from .errors import SafeError


@dataclass(frozen=True, slots=True)
class GraphQLError:
    """One entry of a GraphQL `errors` list."""

    message: str
    path: tuple[str, ...] = ()
    extensions: dict[str, Any] = field(default_factory=dict)
    type: str | None = None

    @property
    def is_not_found(self) -> bool:
        """True for the entry GitHub emits when a lookup resolves to nothing."""
        if (self.type or self.extensions.get("type")) == "NOT_FOUND":
            return True
        return self.message.lower().startswith("could not resolve to")

    @classmethod
    def from_payload(cls, payload: object) -> GraphQLError | None:
        if not isinstance(payload, dict):
            return None
        message = payload.get("message")
        if not isinstance(message, str):
            return None
        raw_path = payload.get("path")
        path = tuple(str(p) for p in raw_path) if isinstance(raw_path, list) else ()
        ext = payload.get("extensions")
        kind = payload.get("type")
        return cls(
            message=message,
            path=path,
            extensions=ext if isinstance(ext, dict) else {},
            type=kind if isinstance(kind, str) else None,
        )


class GraphQLErrors(Exception):
    """Raised when a GraphQL response carries an `errors` list."""

    def __init__(self, errors: list[GraphQLError]) -> None:
        self.errors = list(errors)
        super().__init__(str(self))

    def __str__(self) -> str:
        if not self.errors:
            return "unknown GraphQL error"
        return "; ".join(e.message for e in self.errors)

    @classmethod
    def from_payload(cls, payload: object) -> GraphQLErrors:
        entries = payload if isinstance(payload, list) else []
        parsed = [GraphQLError.from_payload(e) for e in entries]
        return cls([e for e in parsed if e is not None])


# Substrings that identify a GitHub error even when it arrives as plain text.
_KNOWN_ERROR_MARKERS: tuple[str, ...] = (
    "could not resolve to",
    "was not found",
    "must be a member",
    "insufficient scopes",
)

# Ordered; the first matching rule wins.
_REMEDIATION_RULES: tuple[tuple[str, str], ...] = (
    (
        "could not resolve to a node with the global id",
        "This usually means the item was deleted or you don't have permission to access it.",
    ),
    (
        "must be a member of the",
        "You need to be a member of the organization to perform this action.",
    ),
    (
        "insufficient scopes",
        "Your GitHub token needs additional permissions. Check the required scopes in the documentation.",
    ),
    (
        "was not found",
        "Verify that the ID is correct and that you have access to this resource.",
    ),
)

_NOT_FOUND_SUGGESTIONS: dict[str, str] = {
    "project": "Use 'list_project_boards' to find available projects.",
    "column": "Use 'list_project_columns' to find available columns.",
    "card": "Use 'list_project_cards' to find available cards.",
    "field": "Use 'get_project_board' with include_fields=true to see available fields.",
}


def parse_graphql_error(err: BaseException) -> list[GraphQLError] | None:
    """Recover structured GraphQL errors from an arbitrary client-side error.

    Returns None when the error does not look like a GraphQL error at all.
    """
    if isinstance(err, GraphQLErrors):
        return err.errors

    text = str(err)
    try:
        payload = json.loads(text)
    except ValueError:
        payload = None
    if isinstance(payload, dict) and isinstance(payload.get("errors"), list):
        parsed = GraphQLErrors.from_payload(payload["errors"]).errors
        if parsed:
            return parsed

    lowered = text.lower()
    if any(marker in lowered for marker in _KNOWN_ERROR_MARKERS):
        return [GraphQLError(message=text)]
    return None


def classify_error_hint(message: str) -> str | None:
    """Return the remediation hint for an error message, if one applies."""
    lowered = message.lower()
    for needle, hint in _REMEDIATION_RULES:
        if needle in lowered:
            return hint
    return None


def _format_single_error(error: GraphQLError) -> str:
    text = error.message
    if error.path:
        text += f" (at path: {'.'.join(error.path)})"
    hint = classify_error_hint(error.message)
    if hint:
        text += f"\n{hint}"
    return text


def format_graphql_error(err: BaseException) -> str:
    """Render an error as user-facing text.

    Unrecognized errors pass through verbatim.
    """
    errors = parse_graphql_error(err)
    if not errors:
        return str(err)
    if len(errors) == 1:
        return _format_single_error(errors[0])
    lines = ["Multiple errors:"]
    for idx, error in enumerate(errors, start=1):
        lines.append(f"{idx}. {_format_single_error(error)}")
    return "\n".join(lines)


def not_found_error(resource_type: str, resource_id: str) -> SafeError:
    """NotFound error for a missing project, column, card or field.

    The lookup suggestion travels as the hint.
    """
    return SafeError(
        code="NotFound",
        message=f"{resource_type.capitalize()} with ID '{resource_id}' not found.",
        hint=_NOT_FOUND_SUGGESTIONS.get(resource_type),
    )


def permission_denied_message(action: str, resource: str) -> str:
    """Message for a 401/403 on a Projects v2 operation."""
    return (
        f"Permission denied: Cannot {action} {resource}. "
        f"Ensure your GitHub token has the 'project' scope and you have appropriate access to this {resource}."
    )


def validate_project_id(project_id: str) -> None:
    """Reject identifiers that are not Projects v2 project ids (`PVT_...`)."""
    if not project_id.startswith("PVT_"):
        raise SafeError(
            code="UserInput",
            message=(
                f"invalid project ID format: '{project_id}'. "
                "Project IDs should start with 'PVT_' (e.g., 'PVT_kwDOAM6J184ACzDx')"
            ),
        )


def validate_column_id(column_id: str) -> None:
    """Reject identifiers that are not Status options or single-select fields."""
    if not column_id.startswith(("PVTFSC_", "PVTSSF_")):
        raise SafeError(
            code="UserInput",
            message=f"invalid column ID format: '{column_id}'. Column IDs should start with 'PVTFSC_' or 'PVTSSF_'",
        )


def validate_item_id(item_id: str) -> None:
    """Reject identifiers that are not project item ids (`PVTI_...`)."""
    if not item_id.startswith("PVTI_"):
        raise SafeError(
            code="UserInput",
            message=f"invalid item ID format: '{item_id}'. Item IDs should start with 'PVTI_'",
        )
