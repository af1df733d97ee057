"""Tool registry and dispatch layer.

This module:
- defines the tools (public contract surface) and their input schemas
- builds a per-server runtime from host-provided config
- creates a correlation_id per operation attempt
- performs secret/schema/policy checks before executing any tool implementation
- emits exactly one audit event per call
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable

from . import boards, cards, columns
from .audit import AuditLogger, build_event, new_correlation_id
from .auth import token_provider_from_config
from .config import load_config_from_env
from .errors import SafeError, internal_error, safe_error_to_result
from .graphql_client import GitHubGraphQLClient
from .policy import Policy
from .runtime import Runtime
from .safety import validate_no_secrets

logger = logging.getLogger(__name__)

_BOARD_ID = {"type": "string", "minLength": 1, "description": "Project ID (starts with PVT_)"}
_CARD_ID = {"type": "string", "minLength": 1, "description": "Project item ID (starts with PVTI_)"}
_COLUMN_ID = {"type": "string", "minLength": 1, "description": "Status option ID (starts with PVTFSC_ or PVTSSF_)"}

TOOL_METADATA: dict[str, dict[str, Any]] = {
    # Boards
    "create_project_board": {
        "title": "Create project board",
        "readOnly": False,
        "description": "Create a GitHub Projects v2 board for a user or organization, optionally linked to a repository.",
        "inputSchema": {
            "type": "object",
            "required": ["name", "owner"],
            "properties": {
                "name": {"type": "string", "minLength": 1, "description": "Board title"},
                "owner": {"type": "string", "minLength": 1, "description": "User or organization login"},
                "description": {"type": "string", "description": "Board readme"},
                "repository": {"type": "string", "description": "Repository name or owner/name to link"},
                "template": {"type": "string", "enum": list(boards.BOARD_TEMPLATES)},
                "public": {"type": "boolean", "description": "Make the board public after creation"},
            },
            "additionalProperties": False,
        },
    },
    "update_project_board": {
        "title": "Update project board",
        "readOnly": False,
        "description": "Update a board's title, description, short description, visibility or closed state. Omitted fields are unchanged.",
        "inputSchema": {
            "type": "object",
            "required": ["board_id"],
            "properties": {
                "board_id": _BOARD_ID,
                "title": {"type": "string"},
                "description": {"type": "string"},
                "short_description": {"type": "string"},
                "public": {"type": "boolean"},
                "closed": {"type": "boolean"},
            },
            "additionalProperties": False,
        },
    },
    "delete_project_board": {
        "title": "Delete project board",
        "readOnly": False,
        "description": "Permanently delete a board. Requires confirm=true.",
        "inputSchema": {
            "type": "object",
            "required": ["board_id", "confirm"],
            "properties": {
                "board_id": _BOARD_ID,
                "confirm": {"type": "boolean", "description": "Must be true to delete"},
            },
            "additionalProperties": False,
        },
    },
    "list_project_boards": {
        "title": "List project boards",
        "readOnly": True,
        "description": "List the boards owned by a user and/or organization login.",
        "inputSchema": {
            "type": "object",
            "required": ["owner"],
            "properties": {
                "owner": {"type": "string", "minLength": 1},
                "type": {"type": "string", "enum": list(boards.OWNER_TYPES)},
                "include_closed": {"type": "boolean"},
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "description": f"Maximum boards to return (capped at {boards.MAX_LIST_LIMIT})",
                },
            },
            "additionalProperties": False,
        },
    },
    "get_project_board": {
        "title": "Get project board",
        "readOnly": True,
        "description": "Get a board's metadata, item statistics and field definitions.",
        "inputSchema": {
            "type": "object",
            "required": ["board_id"],
            "properties": {
                "board_id": _BOARD_ID,
                "include_fields": {"type": "boolean"},
                "include_stats": {"type": "boolean"},
            },
            "additionalProperties": False,
        },
    },
    # Columns
    "list_project_columns": {
        "title": "List project columns",
        "readOnly": True,
        "description": "List a board's columns (Status field options) with item counts.",
        "inputSchema": {
            "type": "object",
            "required": ["board_id"],
            "properties": {"board_id": _BOARD_ID},
            "additionalProperties": False,
        },
    },
    "get_project_column": {
        "title": "Get project column",
        "readOnly": True,
        "description": "Get one column (Status option) and the board it belongs to.",
        "inputSchema": {
            "type": "object",
            "required": ["column_id"],
            "properties": {"column_id": _COLUMN_ID},
            "additionalProperties": False,
        },
    },
    "create_project_column": {
        "title": "Create project column",
        "readOnly": False,
        "description": "Validate and describe a new column. Not supported by the Projects v2 API; returns NotImplemented with the intended change.",
        "inputSchema": {
            "type": "object",
            "required": ["board_id", "name"],
            "properties": {
                "board_id": _BOARD_ID,
                "name": {"type": "string", "minLength": 1},
                "description": {"type": "string"},
                "limit": {"type": "integer", "minimum": 0},
                "color": {"type": "string"},
            },
            "additionalProperties": False,
        },
    },
    "update_project_column": {
        "title": "Update project column",
        "readOnly": False,
        "description": "Validate and describe a column change. Not supported by the Projects v2 API; returns NotImplemented.",
        "inputSchema": {
            "type": "object",
            "required": ["column_id"],
            "properties": {
                "column_id": _COLUMN_ID,
                "name": {"type": "string", "minLength": 1},
                "description": {"type": "string"},
                "limit": {"type": "integer", "minimum": 0},
                "color": {"type": "string"},
            },
            "additionalProperties": False,
        },
    },
    "delete_project_column": {
        "title": "Delete project column",
        "readOnly": False,
        "description": "Validate a column removal. Not supported by the Projects v2 API; returns NotImplemented.",
        "inputSchema": {
            "type": "object",
            "required": ["column_id"],
            "properties": {
                "column_id": _COLUMN_ID,
                "archive_cards": {"type": "boolean"},
            },
            "additionalProperties": False,
        },
    },
    "reorder_project_columns": {
        "title": "Reorder project columns",
        "readOnly": False,
        "description": "Validate a new column order. Not supported by the Projects v2 API; returns NotImplemented.",
        "inputSchema": {
            "type": "object",
            "required": ["board_id", "column_order"],
            "properties": {
                "board_id": _BOARD_ID,
                "column_order": {"type": "array", "items": {"type": "string"}},
            },
            "additionalProperties": False,
        },
    },
    # Cards
    "add_card_to_project": {
        "title": "Add card to project",
        "readOnly": False,
        "description": "Add an existing issue or pull request to a board, optionally into a column.",
        "inputSchema": {
            "type": "object",
            "required": ["board_id", "content_id"],
            "properties": {
                "board_id": _BOARD_ID,
                "content_id": {"type": "string", "minLength": 1, "description": "Issue or pull request node ID"},
                "column_id": _COLUMN_ID,
            },
            "additionalProperties": False,
        },
    },
    "move_project_card": {
        "title": "Move project card",
        "readOnly": False,
        "description": "Move a card to another column.",
        "inputSchema": {
            "type": "object",
            "required": ["card_id", "column_id"],
            "properties": {
                "card_id": _CARD_ID,
                "column_id": _COLUMN_ID,
                "position": {"type": "string", "enum": list(cards.CARD_POSITIONS)},
            },
            "additionalProperties": False,
        },
    },
    "update_project_card": {
        "title": "Update project card",
        "readOnly": False,
        "description": "Set custom field values on a card by field name; null clears a field. Reports each field separately.",
        "inputSchema": {
            "type": "object",
            "required": ["card_id", "fields"],
            "properties": {
                "card_id": _CARD_ID,
                "fields": {"type": "object", "description": "Map of field name to value"},
            },
            "additionalProperties": False,
        },
    },
    "remove_card_from_project": {
        "title": "Remove card from project",
        "readOnly": False,
        "description": "Archive a card or delete it from its board.",
        "inputSchema": {
            "type": "object",
            "required": ["card_id"],
            "properties": {
                "card_id": _CARD_ID,
                "board_id": _BOARD_ID,
                "archive": {"type": "boolean", "description": "Archive instead of deleting"},
            },
            "additionalProperties": False,
        },
    },
    "bulk_move_cards": {
        "title": "Bulk move cards",
        "readOnly": False,
        "description": "Move several cards to one column; failures are reported per card.",
        "inputSchema": {
            "type": "object",
            "required": ["card_ids", "target_column_id"],
            "properties": {
                "card_ids": {"type": "array", "items": {"type": "string"}},
                "target_column_id": _COLUMN_ID,
            },
            "additionalProperties": False,
        },
    },
    "list_project_cards": {
        "title": "List project cards",
        "readOnly": True,
        "description": "List a page of cards on a board, optionally filtered by column, content type and archived state.",
        "inputSchema": {
            "type": "object",
            "required": ["board_id"],
            "properties": {
                "board_id": _BOARD_ID,
                "column_id": _COLUMN_ID,
                "content_type": {"type": "string", "enum": list(cards.CONTENT_TYPES)},
                "include_archived": {"type": "boolean"},
                "include_content": {"type": "boolean"},
                "limit": {
                    "type": "integer",
                    "minimum": 1,
                    "description": f"Maximum cards per page (capped at {cards.MAX_LIST_LIMIT})",
                },
                "after": {"type": "string", "description": "Cursor from page_info.end_cursor"},
            },
            "additionalProperties": False,
        },
    },
    "get_project_card": {
        "title": "Get project card",
        "readOnly": True,
        "description": "Get a card with every field value and its issue or pull request details.",
        "inputSchema": {
            "type": "object",
            "required": ["card_id"],
            "properties": {
                "card_id": _CARD_ID,
                "include_history": {"type": "boolean"},
            },
            "additionalProperties": False,
        },
    },
}

READ_ONLY_TOOLS: frozenset[str] = frozenset(name for name, meta in TOOL_METADATA.items() if meta["readOnly"])

_TOOL_FUNCS: dict[str, Callable[[Runtime, dict[str, Any]], Awaitable[dict[str, Any]]]] = {
    "create_project_board": boards.create_project_board,
    "update_project_board": boards.update_project_board,
    "delete_project_board": boards.delete_project_board,
    "list_project_boards": boards.list_project_boards,
    "get_project_board": boards.get_project_board,
    "list_project_columns": columns.list_project_columns,
    "get_project_column": columns.get_project_column,
    "create_project_column": columns.create_project_column,
    "update_project_column": columns.update_project_column,
    "delete_project_column": columns.delete_project_column,
    "reorder_project_columns": columns.reorder_project_columns,
    "add_card_to_project": cards.add_card_to_project,
    "move_project_card": cards.move_project_card,
    "update_project_card": cards.update_project_card,
    "remove_card_from_project": cards.remove_card_from_project,
    "bulk_move_cards": cards.bulk_move_cards,
    "list_project_cards": cards.list_project_cards,
    "get_project_card": cards.get_project_card,
}

_RUNTIME: Runtime | None = None


def _is_integer(value: object) -> bool:
    if isinstance(value, bool):
        return False
    return isinstance(value, int) or (isinstance(value, float) and value.is_integer())


_TYPE_CHECKS: dict[str, tuple[Callable[[object], bool], str]] = {
    "string": (lambda v: isinstance(v, str), "a string"),
    "integer": (_is_integer, "an integer"),
    "number": (lambda v: isinstance(v, (int, float)) and not isinstance(v, bool), "a number"),
    "boolean": (lambda v: isinstance(v, bool), "a boolean"),
    "array": (lambda v: isinstance(v, list), "an array"),
    "object": (lambda v: isinstance(v, dict), "an object"),
}


def validate_tool_arguments(tool_name: str, arguments: dict[str, Any]) -> None:
    """Validate tool arguments against the tool's declared input schema.

    This is a minimal validator that enforces:
    - required fields
    - no extra properties when additionalProperties=false
    - basic JSON types, including array item types
    - enum, minLength, minimum and maximum

    It does NOT implement full JSON Schema.
    """
    if tool_name not in TOOL_METADATA:
        raise SafeError(code="UserInput", message="Unknown tool")

    schema = TOOL_METADATA[tool_name]["inputSchema"]
    props: dict[str, Any] = schema.get("properties", {})
    required: list[str] = schema.get("required", [])

    for k in required:
        if k not in arguments or arguments[k] is None:
            raise SafeError(code="UserInput", message=f"Missing required field: {k}")

    if schema.get("additionalProperties", True) is False:
        extras = sorted(k for k in arguments if k not in props)
        if extras:
            raise SafeError(
                code="UserInput",
                message="Unexpected fields are not allowed",
                hint=f"Unexpected: {', '.join(extras)}",
            )

    for k, spec in props.items():
        v = arguments.get(k)
        if v is None:
            continue
        expected = spec.get("type")
        check = _TYPE_CHECKS.get(expected)
        if check is not None and not check[0](v):
            raise SafeError(code="UserInput", message=f"Field '{k}' must be {check[1]}")

        if expected == "array":
            item_check = _TYPE_CHECKS.get((spec.get("items") or {}).get("type"))
            if item_check is not None and not all(item_check[0](item) for item in v):
                raise SafeError(code="UserInput", message=f"Field '{k}' must contain only {item_check[1].split()[-1]}s")

        enum = spec.get("enum")
        if enum is not None and v not in enum:
            raise SafeError(code="UserInput", message=f"Field '{k}' must be one of: {', '.join(map(str, enum))}")

        if expected == "string":
            min_len = spec.get("minLength")
            if isinstance(min_len, int) and len(v) < min_len:
                raise SafeError(code="UserInput", message=f"Field '{k}' must be at least {min_len} characters")

        if expected in ("integer", "number"):
            minimum = spec.get("minimum")
            maximum = spec.get("maximum")
            if minimum is not None and maximum is not None and not minimum <= v <= maximum:
                raise SafeError(code="UserInput", message=f"Field '{k}' must be between {minimum} and {maximum}")
            if minimum is not None and maximum is None and v < minimum:
                raise SafeError(code="UserInput", message=f"Field '{k}' must be >= {minimum}")
            if maximum is not None and minimum is None and v > maximum:
                raise SafeError(code="UserInput", message=f"Field '{k}' must be <= {maximum}")


def build_policy(*, read_only: bool = False, disabled_tools: frozenset[str] = frozenset()) -> Policy:
    return Policy(
        known_operations=frozenset(TOOL_METADATA),
        read_only_operations=READ_ONLY_TOOLS,
        read_only=read_only,
        disabled_operations=disabled_tools,
    )


def initialize_runtime_from_env() -> Runtime:
    """Initialize and cache runtime from environment.

    Called at server startup (fail-fast), and can also be used lazily.
    """
    global _RUNTIME  # pylint: disable=global-statement
    if _RUNTIME is not None:
        return _RUNTIME

    config = load_config_from_env()
    unknown = sorted(config.policy.disabled_tools - frozenset(TOOL_METADATA))
    if unknown:
        logger.warning("Ignoring unknown tool names in disabled tools: %s", ", ".join(unknown))

    audit = AuditLogger(
        sink_path=config.audit_log_path,
        max_bytes=config.audit_max_bytes,
        max_backups=config.audit_max_backups,
    )
    policy = build_policy(read_only=config.policy.read_only, disabled_tools=config.policy.disabled_tools)
    token_provider = token_provider_from_config(config)

    def graphql_factory() -> GitHubGraphQLClient:
        return GitHubGraphQLClient(token_provider=token_provider, limits=config.limits)

    _RUNTIME = Runtime(config=config, audit=audit, policy=policy, graphql_factory=graphql_factory)
    logger.info("Runtime initialized (auth=%s, read_only=%s)", config.auth_mode, config.policy.read_only)
    return _RUNTIME


def _target_from_args(arguments: dict[str, Any]) -> str:
    for key in ("card_id", "column_id", "target_column_id", "board_id", "owner"):
        value = arguments.get(key)
        if isinstance(value, str) and value:
            return value
    return "<unknown>"


async def dispatch_tool(name: str, arguments: dict[str, Any]) -> dict[str, Any]:
    """Dispatch a tool call.

    Always returns an envelope that includes correlation_id.
    """
    correlation_id = new_correlation_id()
    target = _target_from_args(arguments)

    runtime: Runtime | None = None
    start: float | None = None

    def audit(outcome: str, reason: str | None) -> None:
        if runtime is not None and start is not None:
            runtime.audit.write_event(
                build_event(
                    correlation_id=correlation_id,
                    operation=name,
                    target=target,
                    outcome=outcome,
                    reason=reason,
                    duration_ms=runtime.audit.measure_duration_ms(start),
                )
            )
            return
        # Runtime could not be initialized (e.g., Config failures): still emit to stderr.
        AuditLogger(sink_path=None).write_event(
            build_event(correlation_id=correlation_id, operation=name, target=target, outcome=outcome, reason=reason)
        )

    try:
        runtime = initialize_runtime_from_env()
        start = runtime.audit.measure_start()

        validate_no_secrets(arguments)
        if name not in TOOL_METADATA:
            raise SafeError(
                code="UserInput",
                message=f"Unknown tool: {name}",
                hint=f"Available tools: {', '.join(sorted(TOOL_METADATA.keys()))}",
            )

        validate_tool_arguments(name, arguments)

        decision = runtime.policy.check_operation_allowed(name)
        if not decision.allowed:
            raise SafeError(code="Forbidden", message="Operation is not allowed", hint=decision.reason)

        func = _TOOL_FUNCS.get(name)
        if func is None:
            raise SafeError(code="UserInput", message="Tool not implemented")

        result = await func(runtime, arguments)
        audit("succeeded", None)

        out: dict[str, Any] = {"ok": True, "correlation_id": correlation_id}
        out.update(result)
        return out

    except SafeError as err:
        audit("denied" if err.code in {"UserInput", "Forbidden", "Config"} else "failed", err.message)
        error_result = safe_error_to_result(err)
        error_result["correlation_id"] = correlation_id
        return error_result
    except Exception:  # pylint: disable=broad-exception-caught
        logger.exception("Tool %s raised an unexpected error", name)
        audit("failed", "Internal error")
        error_result = internal_error("Internal error")
        error_result["correlation_id"] = correlation_id
        return error_result
