"""Column tools.

Projects v2 has no column entity: a board's columns are the options of its single-select
field named "Status". Reading them is fully supported. The public mutation surface cannot
add, edit, remove or reorder options individually, so those tools validate their input,
work out the intended change and report it with a NotImplemented error instead of
pretending to apply it.
"""

from __future__ import annotations

from typing import Any

from .errors import SafeError, not_implemented_error, user_input_error
from .graphql_errors import not_found_error, validate_column_id, validate_project_id
from .params import optional_int_param, optional_param, required_param, required_string_array_param
from .runtime import Runtime, acquire_client, run_graphql

STATUS_FIELD_NAME = "Status"
COLUMN_COLORS = ("GRAY", "BLUE", "GREEN", "YELLOW", "ORANGE", "RED", "PINK", "PURPLE")
_ITEMS_PAGE_SIZE = 100

_QUERY_STATUS_FIELD = """
query GetStatusField($projectId: ID!) {
  node(id: $projectId) {
    __typename
    ... on ProjectV2 {
      id
      title
      field(name: "Status") {
        __typename
        ... on ProjectV2SingleSelectField {
          id
          name
          options { id name color description }
        }
      }
    }
  }
}
"""

_QUERY_STATUS_COUNTS = """
query CountItemsByStatus($projectId: ID!, $first: Int!, $after: String) {
  node(id: $projectId) {
    ... on ProjectV2 {
      items(first: $first, after: $after) {
        totalCount
        pageInfo { hasNextPage endCursor }
        nodes {
          fieldValueByName(name: "Status") {
            ... on ProjectV2ItemFieldSingleSelectValue { optionId }
          }
        }
      }
    }
  }
}
"""

_QUERY_RESOLVE_COLUMN = """
query ResolveProjectColumn($columnId: ID!) {
  node(id: $columnId) {
    __typename
    ... on ProjectV2SingleSelectFieldOption {
      id
      name
      color
      description
      field {
        id
        name
        project { id title }
      }
    }
  }
}
"""

_UNSUPPORTED_HINT = "Edit the options of the project's Status field in the GitHub UI"


async def fetch_status_field(client, runtime: Runtime, board_id: str) -> tuple[dict[str, Any], dict[str, Any]]:
    """Return `(project_node, status_field_node)` for a board.

    Raises:
        SafeError: NotFound when the board or its Status field does not exist.
    """
    result = await run_graphql(
        client,
        runtime,
        query=_QUERY_STATUS_FIELD,
        variables={"projectId": board_id},
        action="get",
        resource="status field",
    )
    project = result.data.get("node")
    if not isinstance(project, dict) or project.get("__typename") != "ProjectV2":
        raise not_found_error("project", board_id)
    field = project.get("field")
    if not isinstance(field, dict) or field.get("__typename") != "ProjectV2SingleSelectField":
        raise SafeError(
            code="NotFound",
            message="project does not have a Status field",
            hint="Add a single-select field named 'Status' to the project",
        )
    return project, field


def _status_options(field: dict[str, Any]) -> list[dict[str, Any]]:
    return [o for o in field.get("options") or [] if isinstance(o, dict) and isinstance(o.get("id"), str)]


async def resolve_column(client, runtime: Runtime, column_id: str, *, action: str = "get") -> dict[str, Any]:
    """Resolve a Status option to `{column_id, name, ..., field_id, project_id}`."""
    result = await run_graphql(
        client,
        runtime,
        query=_QUERY_RESOLVE_COLUMN,
        variables={"columnId": column_id},
        action=action,
        resource="column",
    )
    node = result.data.get("node")
    field = node.get("field") if isinstance(node, dict) else None
    project = field.get("project") if isinstance(field, dict) else None
    if not (isinstance(project, dict) and isinstance(project.get("id"), str) and isinstance(field.get("id"), str)):
        raise not_found_error("column", column_id)
    return {
        "column_id": node.get("id") or column_id,
        "name": node.get("name"),
        "description": node.get("description"),
        "color": node.get("color"),
        "field_id": field["id"],
        "field_name": field.get("name"),
        "project_id": project["id"],
        "project_title": project.get("title"),
    }


async def _count_items_by_option(client, runtime: Runtime, board_id: str) -> tuple[dict[str, int], int, int, bool]:
    """Walk the board's items; return (counts per option, total, counted, truncated)."""
    counts: dict[str, int] = {}
    total_items = 0
    counted = 0
    after: str | None = None
    for _ in range(runtime.config.limits.max_item_pages):
        result = await run_graphql(
            client,
            runtime,
            query=_QUERY_STATUS_COUNTS,
            variables={"projectId": board_id, "first": _ITEMS_PAGE_SIZE, "after": after},
            action="count",
            resource="project items",
        )
        node = result.data.get("node")
        items = node.get("items") if isinstance(node, dict) else None
        if not isinstance(items, dict):
            raise SafeError(code="GitHub", message="Unexpected project items response")
        if isinstance(items.get("totalCount"), int):
            total_items = items["totalCount"]
        for item in items.get("nodes") or []:
            counted += 1
            value = item.get("fieldValueByName") if isinstance(item, dict) else None
            option_id = value.get("optionId") if isinstance(value, dict) else None
            if isinstance(option_id, str):
                counts[option_id] = counts.get(option_id, 0) + 1
        page_info = items.get("pageInfo")
        if not (isinstance(page_info, dict) and page_info.get("hasNextPage")):
            return counts, total_items, counted, False
        after = page_info.get("endCursor")
    return counts, total_items, counted, True


async def list_project_columns(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """Status options of a board with the number of items in each."""
    board_id = required_param(arguments, "board_id", str)
    validate_project_id(board_id)

    client = acquire_client(runtime)
    _, field = await fetch_status_field(client, runtime, board_id)
    counts, total_items, counted, truncated = await _count_items_by_option(client, runtime, board_id)

    columns = [
        {
            "id": option["id"],
            "name": option.get("name"),
            "description": option.get("description") or "",
            "color": option.get("color"),
            "position": position,
            "item_count": counts.get(option["id"], 0),
        }
        for position, option in enumerate(_status_options(field))
    ]
    return {
        "board_id": board_id,
        "field_id": field.get("id"),
        "field_name": field.get("name"),
        "columns": columns,
        "total_count": len(columns),
        "total_items": total_items,
        "counted_items": counted,
        "counts_truncated": truncated,
    }


async def get_project_column(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    column_id = required_param(arguments, "column_id", str)
    validate_column_id(column_id)

    client = acquire_client(runtime)
    return await resolve_column(client, runtime, column_id)


def _optional_color(arguments: dict[str, Any]) -> str | None:
    color = optional_param(arguments, "color", str)
    if color is None:
        return None
    normalized = color.strip().upper()
    if normalized not in COLUMN_COLORS:
        raise user_input_error(f"Invalid color: {color}", hint=f"Expected one of: {', '.join(COLUMN_COLORS)}")
    return normalized


async def create_project_column(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """Check the board can take the column, then report the unsupported change."""
    board_id = required_param(arguments, "board_id", str)
    name = required_param(arguments, "name", str)
    description = optional_param(arguments, "description", str, "")
    limit = optional_int_param(arguments, "limit", 10)
    color = _optional_color(arguments) or "GRAY"
    validate_project_id(board_id)
    if limit < 0:
        raise user_input_error("limit must be >= 0")

    client = acquire_client(runtime)
    _, field = await fetch_status_field(client, runtime, board_id)
    existing = [o.get("name") for o in _status_options(field)]
    if any(isinstance(n, str) and n.casefold() == name.casefold() for n in existing):
        raise user_input_error(f"Column '{name}' already exists on this board")

    raise not_implemented_error(
        "Creating columns is not supported: columns are options of the Status field and cannot be added individually",
        hint=_UNSUPPORTED_HINT,
        details={
            "board_id": board_id,
            "field_id": field.get("id"),
            "field_name": field.get("name"),
            "proposed_column": {"name": name, "description": description, "color": color, "limit": limit},
            "resulting_columns": [*existing, name],
        },
    )


async def update_project_column(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    column_id = required_param(arguments, "column_id", str)
    validate_column_id(column_id)

    changes: dict[str, Any] = {}
    for key in ("name", "description"):
        value = optional_param(arguments, key, str)
        if value is not None:
            changes[key] = value
    if arguments.get("limit") is not None:
        changes["limit"] = optional_int_param(arguments, "limit", 0)
    color = _optional_color(arguments)
    if color is not None:
        changes["color"] = color
    if not changes:
        raise user_input_error("No fields to update", hint="Provide at least one of: name, description, limit, color")

    raise not_implemented_error(
        "Updating columns is not supported: Status field options cannot be edited individually",
        hint=_UNSUPPORTED_HINT,
        details={"column_id": column_id, "changes": changes},
    )


async def delete_project_column(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    column_id = required_param(arguments, "column_id", str)
    archive_cards = optional_param(arguments, "archive_cards", bool, True)
    validate_column_id(column_id)

    raise not_implemented_error(
        "Deleting columns is not supported: Status field options cannot be removed individually",
        hint=_UNSUPPORTED_HINT,
        details={"column_id": column_id, "archive_cards": archive_cards},
    )


async def reorder_project_columns(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    board_id = required_param(arguments, "board_id", str)
    column_order = required_string_array_param(arguments, "column_order")
    validate_project_id(board_id)
    if not column_order:
        raise user_input_error("column_order array cannot be empty")
    if len(set(column_order)) != len(column_order):
        raise user_input_error("column_order must not contain duplicate column IDs")
    for column_id in column_order:
        validate_column_id(column_id)

    raise not_implemented_error(
        "Reordering columns is not supported: Status field options cannot be reordered individually",
        hint=_UNSUPPORTED_HINT,
        details={
            "board_id": board_id,
            "column_order": [{"column_id": cid, "position": pos} for pos, cid in enumerate(column_order)],
        },
    )
