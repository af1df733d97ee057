"""Card (Projects v2 item) tools.

A card's column is the value of its Status field, so moving a card is a single-select field
update. Multi-step tools (bulk move, multi-field update) report failures per card or per
field and keep going; only a failure before the first mutation fails the whole call.
"""

from __future__ import annotations

import logging
from typing import Any

from .columns import STATUS_FIELD_NAME, resolve_column
from .errors import SafeError, user_input_error
from .fragments import build_project_cards_document, compose_document
from .graphql_errors import not_found_error, validate_column_id, validate_item_id, validate_project_id
from .normalize import (
    normalize_content,
    normalize_field_definition,
    normalize_field_values,
    put_timestamp,
)
from .params import (
    optional_int_param,
    optional_param,
    required_param,
    required_string_array_param,
)
from .runtime import Runtime, acquire_client, error_text, run_graphql, text_limit
from .safety import enforce_max_bytes

logger = logging.getLogger(__name__)

CARD_POSITIONS = ("top", "bottom")
CONTENT_TYPES = ("issue", "pull_request", "draft_issue")
MAX_LIST_LIMIT = 100
MAX_BULK_CARDS = 100

HISTORY_NOTE = (
    "Field change history is not exposed by the GitHub GraphQL API; "
    "see the item's activity in the GitHub project UI."
)

_MUTATION_ADD_ITEM = """
mutation AddCardToProject($projectId: ID!, $contentId: ID!) {
  addProjectV2ItemById(input: {projectId: $projectId, contentId: $contentId}) {
    item { id }
  }
}
"""

_MUTATION_SET_STATUS = """
mutation SetProjectCardColumn($projectId: ID!, $itemId: ID!, $fieldId: ID!, $optionId: String!) {
  updateProjectV2ItemFieldValue(
    input: {projectId: $projectId, itemId: $itemId, fieldId: $fieldId, value: {singleSelectOptionId: $optionId}}
  ) {
    projectV2Item { id }
  }
}
"""

_MUTATION_MOVE_TO_TOP = """
mutation MoveProjectCardToTop($projectId: ID!, $itemId: ID!) {
  updateProjectV2ItemPosition(input: {projectId: $projectId, itemId: $itemId}) {
    clientMutationId
  }
}
"""

_MUTATION_UPDATE_FIELD = """
mutation UpdateProjectCardField($projectId: ID!, $itemId: ID!, $fieldId: ID!, $value: ProjectV2FieldValue!) {
  updateProjectV2ItemFieldValue(input: {projectId: $projectId, itemId: $itemId, fieldId: $fieldId, value: $value}) {
    projectV2Item { id }
  }
}
"""

_MUTATION_CLEAR_FIELD = """
mutation ClearProjectCardField($projectId: ID!, $itemId: ID!, $fieldId: ID!) {
  clearProjectV2ItemFieldValue(input: {projectId: $projectId, itemId: $itemId, fieldId: $fieldId}) {
    projectV2Item { id }
  }
}
"""

_MUTATION_ARCHIVE_ITEM = """
mutation ArchiveProjectCard($projectId: ID!, $itemId: ID!) {
  archiveProjectV2Item(input: {projectId: $projectId, itemId: $itemId}) {
    item { id }
  }
}
"""

_MUTATION_DELETE_ITEM = """
mutation DeleteProjectCard($projectId: ID!, $itemId: ID!) {
  deleteProjectV2Item(input: {projectId: $projectId, itemId: $itemId}) {
    deletedItemId
  }
}
"""

_QUERY_CARD_PROJECT = """
query GetProjectCardProject($itemId: ID!) {
  node(id: $itemId) {
    __typename
    ... on ProjectV2Item {
      id
      project { id }
    }
  }
}
"""

_QUERY_CARD_FIELDS = """
query GetProjectCardFields($itemId: ID!) {
  node(id: $itemId) {
    __typename
    ... on ProjectV2Item {
      id
      project {
        id
        fields(first: 50) {
          nodes { ...ProjectV2FieldFragment }
        }
      }
    }
  }
}
"""

_QUERY_LIST_CARDS = """
query ListProjectCards($projectId: ID!, $first: Int!, $after: String) {
  node(id: $projectId) {
    __typename
    ... on ProjectV2 {
      id
      title
      items(first: $first, after: $after) {
        totalCount
        pageInfo { hasNextPage endCursor }
        nodes { ...ProjectV2ItemSummaryFragment }
      }
    }
  }
}
"""

_QUERY_GET_CARD = """
query GetProjectCard($itemId: ID!) {
  node(id: $itemId) {
    __typename
    ... on ProjectV2Item { ...ProjectV2ItemFragment }
  }
}
"""


def _item_node(data: dict[str, Any], card_id: str) -> dict[str, Any]:
    node = data.get("node")
    if not isinstance(node, dict) or node.get("__typename") != "ProjectV2Item":
        raise not_found_error("card", card_id)
    return node


async def _set_column(client, runtime: Runtime, *, card_id: str, column: dict[str, Any], action: str) -> None:
    await run_graphql(
        client,
        runtime,
        query=_MUTATION_SET_STATUS,
        variables={
            "projectId": column["project_id"],
            "itemId": card_id,
            "fieldId": column["field_id"],
            "optionId": column["column_id"],
        },
        action=action,
        resource="card",
    )


async def add_card_to_project(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """Add an issue or pull request to a board, optionally straight into a column."""
    board_id = required_param(arguments, "board_id", str)
    content_id = required_param(arguments, "content_id", str)
    column_id = optional_param(arguments, "column_id", str)
    validate_project_id(board_id)
    if column_id:
        validate_column_id(column_id)

    client = acquire_client(runtime)
    column: dict[str, Any] | None = None
    if column_id:
        column = await resolve_column(client, runtime, column_id, action="resolve")
        if column["project_id"] != board_id:
            raise user_input_error(f"Column '{column_id}' does not belong to project '{board_id}'")

    result = await run_graphql(
        client,
        runtime,
        query=_MUTATION_ADD_ITEM,
        variables={"projectId": board_id, "contentId": content_id},
        action="add",
        resource="card",
    )
    payload = result.data.get("addProjectV2ItemById")
    item = payload.get("item") if isinstance(payload, dict) else None
    if not isinstance(item, dict) or not isinstance(item.get("id"), str):
        raise SafeError(code="GitHub", message="Unexpected addProjectV2ItemById response")
    card_id = item["id"]

    out: dict[str, Any] = {
        "success": True,
        "board_id": board_id,
        "content_id": content_id,
        "card_id": card_id,
        "message": "Card added to project",
    }
    if column is None:
        return out

    out["column_id"] = column["column_id"]
    try:
        await _set_column(client, runtime, card_id=card_id, column=column, action="move")
        out["message"] = f"Card added to project in column '{column['name']}'"
    except SafeError as exc:
        logger.warning("Card %s added but setting its column failed: %s", card_id, exc.message)
        out["warning"] = f"Card added, but moving it to column '{column['name']}' failed: {error_text(exc)}"
    return out


async def move_project_card(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """Move a card to another column (Status option)."""
    card_id = required_param(arguments, "card_id", str)
    column_id = required_param(arguments, "column_id", str)
    position = optional_param(arguments, "position", str, "bottom")
    validate_item_id(card_id)
    validate_column_id(column_id)
    if position not in CARD_POSITIONS:
        raise user_input_error(f"Invalid position: {position}", hint="Expected one of: top, bottom")

    client = acquire_client(runtime)
    column = await resolve_column(client, runtime, column_id, action="resolve")
    await _set_column(client, runtime, card_id=card_id, column=column, action="move")

    out: dict[str, Any] = {
        "success": True,
        "card_id": card_id,
        "column_id": column["column_id"],
        "column_name": column["name"],
        "project_id": column["project_id"],
        "position": position,
        "message": f"Card moved to column '{column['name']}'",
    }
    if position == "top":
        try:
            await run_graphql(
                client,
                runtime,
                query=_MUTATION_MOVE_TO_TOP,
                variables={"projectId": column["project_id"], "itemId": card_id},
                action="reposition",
                resource="card",
            )
        except SafeError as exc:
            logger.warning("Card %s moved but repositioning failed: %s", card_id, exc.message)
            out["warning"] = f"Card moved, but placing it at the top failed: {error_text(exc)}"
    return out


def _find_option(options: list[dict[str, Any]], wanted: str, *, label: str) -> str | None:
    lowered = wanted.casefold()
    for opt in options:
        title = opt.get(label)
        if opt.get("id") == wanted or (isinstance(title, str) and title.casefold() == lowered):
            return opt.get("id")
    return None


def _field_value_input(field: dict[str, Any], value: Any, *, max_text_bytes: int) -> dict[str, Any]:
    """Build a `ProjectV2FieldValue` input for `value` according to the field's data type.

    Raises:
        SafeError: The value cannot be written to this field.
    """
    data_type = field.get("data_type")
    name = field.get("name")

    if data_type == "SINGLE_SELECT":
        option_id = _find_option(field.get("options") or [], str(value), label="name")
        if option_id is None:
            raise user_input_error(f"Option '{value}' not found for field '{name}'")
        return {"singleSelectOptionId": option_id}

    if data_type == "ITERATION":
        iterations = (field.get("configuration") or {}).get("iterations") or []
        iteration_id = _find_option(iterations, str(value), label="title")
        if iteration_id is None:
            raise user_input_error(f"Iteration '{value}' not found for field '{name}'")
        return {"iterationId": iteration_id}

    if data_type == "DATE":
        if not isinstance(value, str):
            raise user_input_error(f"Field '{name}' expects a date string (YYYY-MM-DD)")
        return {"date": value}

    if data_type == "NUMBER":
        if isinstance(value, bool):
            raise user_input_error(f"Field '{name}' expects a number")
        try:
            return {"number": float(value)}
        except (TypeError, ValueError) as exc:
            raise user_input_error(f"Field '{name}' expects a number") from exc

    if data_type in ("TEXT", "TITLE", None):
        if isinstance(value, bool):
            text = "true" if value else "false"
        elif isinstance(value, (int, float)) and data_type is None:
            return {"number": float(value)}
        elif isinstance(value, (str, int, float)):
            text = str(value)
        else:
            raise user_input_error(f"Field '{name}' expects a text value")
        enforce_max_bytes(text=text, max_bytes=max_text_bytes, what=f"Value for field '{name}'")
        return {"text": text}

    raise user_input_error(f"Field '{name}' of type {data_type} cannot be set on a card")


async def update_project_card(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """Set several field values by field name, reporting each field separately.

    Names that match no field on the board are skipped. A null value clears the field.
    """
    card_id = required_param(arguments, "card_id", str)
    fields = required_param(arguments, "fields", dict)
    validate_item_id(card_id)
    if not fields:
        raise user_input_error("fields must contain at least one field name")

    client = acquire_client(runtime)
    result = await run_graphql(
        client,
        runtime,
        query=compose_document(_QUERY_CARD_FIELDS),
        variables={"itemId": card_id},
        action="get",
        resource="card",
    )
    node = _item_node(result.data, card_id)
    project = node.get("project")
    if not isinstance(project, dict) or not isinstance(project.get("id"), str):
        raise SafeError(code="GitHub", message="Unexpected project item response")
    project_id = project["id"]

    fields_conn = project.get("fields")
    by_name: dict[str, dict[str, Any]] = {}
    for raw in (fields_conn.get("nodes") if isinstance(fields_conn, dict) else None) or []:
        definition = normalize_field_definition(raw)
        if definition is not None and isinstance(definition.get("name"), str):
            by_name[definition["name"]] = definition

    updates: list[dict[str, Any]] = []
    for field_name, value in fields.items():
        field = by_name.get(field_name)
        if field is None:
            continue
        entry: dict[str, Any] = {"field": field_name, "value": value}
        try:
            if value is None:
                await run_graphql(
                    client,
                    runtime,
                    query=_MUTATION_CLEAR_FIELD,
                    variables={"projectId": project_id, "itemId": card_id, "fieldId": field["id"]},
                    action="clear",
                    resource="field",
                )
            else:
                await run_graphql(
                    client,
                    runtime,
                    query=_MUTATION_UPDATE_FIELD,
                    variables={
                        "projectId": project_id,
                        "itemId": card_id,
                        "fieldId": field["id"],
                        "value": _field_value_input(field, value, max_text_bytes=text_limit(runtime)),
                    },
                    action="update",
                    resource="field",
                )
            entry["status"] = "updated"
        except SafeError as exc:
            entry["status"] = "failed"
            entry["error"] = error_text(exc)
        updates.append(entry)

    updated = sum(1 for u in updates if u["status"] == "updated")
    if updates:
        message = f"Updated {updated} of {len(updates)} fields"
    else:
        message = "No matching fields found on the project"
    return {
        "success": updated > 0,
        "card_id": card_id,
        "project_id": project_id,
        "updates": updates,
        "message": message,
    }


async def _card_project_id(client, runtime: Runtime, card_id: str) -> str:
    result = await run_graphql(
        client,
        runtime,
        query=_QUERY_CARD_PROJECT,
        variables={"itemId": card_id},
        action="get",
        resource="card",
    )
    project = _item_node(result.data, card_id).get("project")
    if not isinstance(project, dict) or not isinstance(project.get("id"), str):
        raise SafeError(code="GitHub", message="Unexpected project item response")
    return project["id"]


async def remove_card_from_project(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """Archive a card, or delete it from the board (the issue itself is untouched)."""
    card_id = required_param(arguments, "card_id", str)
    board_id = optional_param(arguments, "board_id", str)
    archive = optional_param(arguments, "archive", bool, False)
    validate_item_id(card_id)
    if board_id:
        validate_project_id(board_id)

    client = acquire_client(runtime)
    project_id = board_id or await _card_project_id(client, runtime, card_id)
    variables = {"projectId": project_id, "itemId": card_id}

    if archive:
        result = await run_graphql(
            client, runtime, query=_MUTATION_ARCHIVE_ITEM, variables=variables, action="archive", resource="card"
        )
        payload = result.data.get("archiveProjectV2Item")
        item = payload.get("item") if isinstance(payload, dict) else None
        archived_id = item.get("id") if isinstance(item, dict) else None
        return {
            "success": True,
            "card_id": archived_id or card_id,
            "archived": True,
            "message": "Card archived",
        }

    result = await run_graphql(
        client, runtime, query=_MUTATION_DELETE_ITEM, variables=variables, action="delete", resource="card"
    )
    payload = result.data.get("deleteProjectV2Item")
    deleted_id = payload.get("deletedItemId") if isinstance(payload, dict) else None
    return {
        "success": True,
        "card_id": deleted_id or card_id,
        "deleted": True,
        "message": "Card removed from project",
    }


async def bulk_move_cards(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """Move several cards to one column, one mutation per card in order."""
    card_ids = required_string_array_param(arguments, "card_ids")
    target_column_id = required_param(arguments, "target_column_id", str)
    if not card_ids:
        raise user_input_error("card_ids array cannot be empty")
    if len(card_ids) > MAX_BULK_CARDS:
        raise user_input_error(f"card_ids may contain at most {MAX_BULK_CARDS} cards")
    for card_id in card_ids:
        validate_item_id(card_id)
    validate_column_id(target_column_id)

    client = acquire_client(runtime)
    column = await resolve_column(client, runtime, target_column_id, action="resolve")

    results: list[dict[str, Any]] = []
    for card_id in card_ids:
        try:
            await _set_column(client, runtime, card_id=card_id, column=column, action="move")
            results.append({"card_id": card_id, "status": "moved"})
        except SafeError as exc:
            results.append({"card_id": card_id, "status": "failed", "error": error_text(exc)})

    moved = sum(1 for r in results if r["status"] == "moved")
    return {
        "success": moved > 0,
        "total_cards": len(card_ids),
        "moved_count": moved,
        "failed_count": len(card_ids) - moved,
        "target_column_id": target_column_id,
        "results": results,
        "message": f"Moved {moved} of {len(card_ids)} cards successfully",
    }


def _card_summary(node: dict[str, Any], *, include_content: bool) -> dict[str, Any]:
    card: dict[str, Any] = {"id": node.get("id"), "archived": bool(node.get("isArchived"))}
    put_timestamp(card, "created_at", node.get("createdAt"))
    put_timestamp(card, "updated_at", node.get("updatedAt"))
    card["type"] = node.get("type")

    fields: dict[str, Any] = {}
    for value in normalize_field_values(node.get("fieldValues")):
        fields[value["field_name"]] = value["value"]
        if value["field_name"] == STATUS_FIELD_NAME and value["kind"] == "single_select":
            card["column"] = {"id": value["value"]["id"], "name": value["value"]["name"]}
    card["fields"] = fields

    if include_content:
        content = normalize_content(node.get("content"))
        if content is not None:
            card["content"] = content
    return card


async def list_project_cards(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """One page of a board's cards, optionally filtered by column, type and archived state."""
    board_id = required_param(arguments, "board_id", str)
    column_id = optional_param(arguments, "column_id", str)
    content_type = optional_param(arguments, "content_type", str)
    include_archived = optional_param(arguments, "include_archived", bool, False)
    include_content = optional_param(arguments, "include_content", bool, True)
    limit = optional_int_param(arguments, "limit", 20)
    after = optional_param(arguments, "after", str)
    validate_project_id(board_id)
    if column_id:
        validate_column_id(column_id)
    if content_type and content_type not in CONTENT_TYPES:
        raise user_input_error(
            f"Invalid content_type: {content_type}", hint=f"Expected one of: {', '.join(CONTENT_TYPES)}"
        )
    if limit < 1:
        raise user_input_error("limit must be at least 1")
    limit = min(limit, MAX_LIST_LIMIT)

    client = acquire_client(runtime)
    result = await run_graphql(
        client,
        runtime,
        query=build_project_cards_document(_QUERY_LIST_CARDS, include_content=include_content),
        variables={"projectId": board_id, "first": limit, "after": after},
        action="list",
        resource="cards",
    )
    project = result.data.get("node")
    if not isinstance(project, dict) or project.get("__typename") != "ProjectV2":
        raise not_found_error("project", board_id)
    items = project.get("items")
    if not isinstance(items, dict):
        raise SafeError(code="GitHub", message="Unexpected project items response")

    cards: list[dict[str, Any]] = []
    for node in items.get("nodes") or []:
        if not isinstance(node, dict) or not isinstance(node.get("id"), str):
            continue
        if node.get("isArchived") and not include_archived:
            continue
        if content_type and str(node.get("type") or "").lower() != content_type:
            continue
        card = _card_summary(node, include_content=include_content)
        if column_id and (card.get("column") or {}).get("id") != column_id:
            continue
        cards.append(card)

    page_info = items.get("pageInfo") if isinstance(items.get("pageInfo"), dict) else {}
    out: dict[str, Any] = {
        "board_id": board_id,
        "board_title": project.get("title"),
        "cards": cards,
        "count": len(cards),
        "total_count": items.get("totalCount", 0),
        "page_info": {
            "end_cursor": page_info.get("endCursor"),
            "has_next_page": bool(page_info.get("hasNextPage")),
        },
    }
    if column_id:
        out["filtered_by_column"] = column_id
    if content_type:
        out["filtered_by_type"] = content_type
    return out


async def get_project_card(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """Full detail of one card: every field value and its issue/PR content."""
    card_id = required_param(arguments, "card_id", str)
    include_history = optional_param(arguments, "include_history", bool, False)
    validate_item_id(card_id)

    client = acquire_client(runtime)
    result = await run_graphql(
        client,
        runtime,
        query=compose_document(_QUERY_GET_CARD),
        variables={"itemId": card_id},
        action="get",
        resource="card",
    )
    node = _item_node(result.data, card_id)

    out: dict[str, Any] = {"id": node.get("id"), "archived": bool(node.get("isArchived"))}
    put_timestamp(out, "created_at", node.get("createdAt"))
    put_timestamp(out, "updated_at", node.get("updatedAt"))

    creator = node.get("creator")
    out["creator"] = (
        {"login": creator.get("login"), "avatar_url": creator.get("avatarUrl")} if isinstance(creator, dict) else None
    )
    project = node.get("project")
    out["project"] = (
        {"id": project.get("id"), "title": project.get("title"), "url": project.get("url")}
        if isinstance(project, dict)
        else None
    )
    out["type"] = node.get("type")
    out["fields"] = {
        value["field_name"]: {
            "field_id": value["field_id"],
            "data_type": value["data_type"],
            "field_name": value["field_name"],
            "value": value["value"],
        }
        for value in normalize_field_values(node.get("fieldValues"))
    }
    out["content"] = normalize_content(node.get("content"), detailed=True)
    if include_history:
        out["history_note"] = HISTORY_NOTE
    return out
