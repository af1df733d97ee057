"""Board (Projects v2 project) tools."""

from __future__ import annotations

import logging
from typing import Any

from .errors import SafeError, user_input_error
from .fragments import compose_document
from .graphql_errors import GraphQLErrors, format_graphql_error, not_found_error, validate_project_id
from .normalize import normalize_field_definition, normalize_owner, normalize_project_summary, put_timestamp
from .params import optional_int_param, optional_param, required_param
from .runtime import Runtime, acquire_client, error_text, run_graphql, text_limit
from .safety import enforce_max_bytes

logger = logging.getLogger(__name__)

BOARD_TEMPLATES = ("kanban", "scrum", "bug_triage", "none")
OWNER_TYPES = ("user", "organization", "all")
MAX_LIST_LIMIT = 100

_QUERY_RESOLVE_OWNER = """
query ResolveProjectOwner($login: String!) {
  user(login: $login) { id login }
  organization(login: $login) { id login }
}
"""

_QUERY_RESOLVE_REPOSITORY = """
query ResolveProjectRepository($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name) { id nameWithOwner }
}
"""

_MUTATION_CREATE_PROJECT = """
mutation CreateProjectBoard($input: CreateProjectV2Input!) {
  createProjectV2(input: $input) {
    projectV2 { ...ProjectV2SummaryFragment }
  }
}
"""

_MUTATION_UPDATE_PROJECT = """
mutation UpdateProjectBoard($input: UpdateProjectV2Input!) {
  updateProjectV2(input: $input) {
    projectV2 { ...ProjectV2SummaryFragment }
  }
}
"""

_MUTATION_DELETE_PROJECT = """
mutation DeleteProjectBoard($input: DeleteProjectV2Input!) {
  deleteProjectV2(input: $input) {
    projectV2 { id }
  }
}
"""

_QUERY_LIST_PROJECTS = """
query ListProjectBoards($login: String!, $first: Int!, $query: String) {
  user(login: $login) {
    projectsV2(first: $first, query: $query, orderBy: {field: UPDATED_AT, direction: DESC}) {
      nodes {
        ...ProjectV2SummaryFragment
        items(first: 1) { totalCount }
      }
    }
  }
  organization(login: $login) {
    projectsV2(first: $first, query: $query, orderBy: {field: UPDATED_AT, direction: DESC}) {
      nodes {
        ...ProjectV2SummaryFragment
        items(first: 1) { totalCount }
      }
    }
  }
}
"""

_QUERY_GET_PROJECT = """
query GetProjectBoard($id: ID!, $includeFields: Boolean!, $includeStats: Boolean!) {
  node(id: $id) {
    __typename
    ... on ProjectV2 {
      ...ProjectV2SummaryFragment
      owner {
        __typename
        ... on User { login }
        ... on Organization { login }
      }
      items(first: 1) @include(if: $includeStats) { totalCount }
      fields(first: 50) @include(if: $includeFields) {
        totalCount
        nodes { ...ProjectV2FieldFragment }
      }
    }
  }
}
"""


def _node_id(node: object) -> str | None:
    if isinstance(node, dict) and isinstance(node.get("id"), str) and node["id"]:
        return node["id"]
    return None


def _project_node(data: dict[str, Any], key: str) -> dict[str, Any]:
    payload = data.get(key)
    project = payload.get("projectV2") if isinstance(payload, dict) else None
    if not isinstance(project, dict) or not isinstance(project.get("id"), str):
        raise SafeError(code="GitHub", message=f"Unexpected {key} response")
    return project


def _raise_for_owner_errors(data: dict[str, Any], errors: list, *, action: str, resource: str) -> None:
    """Fail when neither owner half resolved for a reason other than NOT_FOUND."""
    if any(isinstance(data.get(key), dict) for key in ("user", "organization")):
        return
    if any(not e.is_not_found for e in errors):
        raise SafeError(
            code="GitHub",
            message=f"Failed to {action} {resource}: {format_graphql_error(GraphQLErrors(errors))}",
        )


async def _resolve_owner_id(client, runtime: Runtime, owner: str) -> str:
    # Exactly one of the two lookups resolves; the other comes back as a NOT_FOUND error.
    result = await run_graphql(
        client,
        runtime,
        query=_QUERY_RESOLVE_OWNER,
        variables={"login": owner},
        action="resolve",
        resource="owner",
        allow_partial=True,
    )
    for key in ("user", "organization"):
        owner_id = _node_id(result.data.get(key))
        if owner_id:
            return owner_id
    _raise_for_owner_errors(result.data, result.errors, action="resolve", resource="owner")
    raise SafeError(
        code="NotFound",
        message=f"owner not found: '{owner}'",
        hint="Check that the login names an existing user or organization",
    )


async def _resolve_repository_id(client, runtime: Runtime, *, owner: str, repository: str) -> str:
    repo_owner, _, repo_name = repository.rpartition("/")
    variables = {"owner": repo_owner or owner, "name": repo_name}
    result = await run_graphql(
        client,
        runtime,
        query=_QUERY_RESOLVE_REPOSITORY,
        variables=variables,
        action="resolve",
        resource="repository",
    )
    repo_id = _node_id(result.data.get("repository"))
    if repo_id is None:
        raise SafeError(code="NotFound", message=f"repository not found: '{variables['owner']}/{variables['name']}'")
    return repo_id


async def create_project_board(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """Create a board, then apply visibility and readme as a best-effort follow-up."""
    name = required_param(arguments, "name", str)
    owner = required_param(arguments, "owner", str)
    description = optional_param(arguments, "description", str, "")
    repository = optional_param(arguments, "repository", str, "")
    template = optional_param(arguments, "template", str, "none")
    public = optional_param(arguments, "public", bool, False)

    if template not in BOARD_TEMPLATES:
        raise user_input_error(f"Invalid template: {template}", hint=f"Expected one of: {', '.join(BOARD_TEMPLATES)}")
    enforce_max_bytes(text=name, max_bytes=text_limit(runtime), what="Board name")
    enforce_max_bytes(text=description, max_bytes=text_limit(runtime), what="Board description")

    client = acquire_client(runtime)
    owner_id = await _resolve_owner_id(client, runtime, owner)

    create_input: dict[str, Any] = {"ownerId": owner_id, "title": name}
    if repository:
        create_input["repositoryId"] = await _resolve_repository_id(
            client, runtime, owner=owner, repository=repository
        )

    created = await run_graphql(
        client,
        runtime,
        query=compose_document(_MUTATION_CREATE_PROJECT),
        variables={"input": create_input},
        action="create",
        resource="project",
    )
    project = _project_node(created.data, "createProjectV2")

    out: dict[str, Any] = {
        "id": project["id"],
        "number": project.get("number"),
        "title": project.get("title") or name,
        "url": project.get("url"),
        "description": description,
        "public": bool(project.get("public")),
        "template": template,
    }

    follow_up: dict[str, Any] = {}
    if public:
        follow_up["public"] = True
    if description:
        follow_up["readme"] = description
    if not follow_up:
        return out

    # Creation already succeeded; a failed follow-up is reported, not raised.
    try:
        updated = await run_graphql(
            client,
            runtime,
            query=compose_document(_MUTATION_UPDATE_PROJECT),
            variables={"input": {"projectId": project["id"], **follow_up}},
            action="update",
            resource="project",
        )
        out["public"] = bool(_project_node(updated.data, "updateProjectV2").get("public"))
    except SafeError as exc:
        logger.warning("Project %s created but follow-up update failed: %s", project["id"], exc.message)
        out["warning"] = f"Project created, but setting visibility/description failed: {error_text(exc)}"
    return out


async def update_project_board(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """Apply a sparse update; absent fields are left untouched."""
    board_id = required_param(arguments, "board_id", str)
    validate_project_id(board_id)

    update_input: dict[str, Any] = {"projectId": board_id}
    for arg_name, input_name in (("title", "title"), ("description", "readme"), ("short_description", "shortDescription")):
        value = optional_param(arguments, arg_name, str)
        if value:
            enforce_max_bytes(text=value, max_bytes=text_limit(runtime), what=f"Board {arg_name}")
            update_input[input_name] = value
    for flag in ("public", "closed"):
        value = optional_param(arguments, flag, bool)
        if value is not None:
            update_input[flag] = value

    if len(update_input) == 1:
        raise user_input_error(
            "No fields to update",
            hint="Provide at least one of: title, description, short_description, public, closed",
        )

    client = acquire_client(runtime)
    result = await run_graphql(
        client,
        runtime,
        query=compose_document(_MUTATION_UPDATE_PROJECT),
        variables={"input": update_input},
        action="update",
        resource="project",
    )
    project = _project_node(result.data, "updateProjectV2")
    summary = normalize_project_summary(project)
    out: dict[str, Any] = {
        "id": summary["id"],
        "title": summary["title"],
        "description": summary["description"],
        "short_description": summary["short_description"],
        "public": summary["public"],
        "closed": summary["closed"],
        "url": summary["url"],
    }
    put_timestamp(out, "updated_at", project.get("updatedAt"))
    return out


async def delete_project_board(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """Delete a board; requires confirm=true."""
    board_id = required_param(arguments, "board_id", str)
    confirm = optional_param(arguments, "confirm", bool, False)
    if not confirm:
        raise user_input_error("deletion not confirmed - set confirm to true to delete")
    validate_project_id(board_id)

    client = acquire_client(runtime)
    result = await run_graphql(
        client,
        runtime,
        query=_MUTATION_DELETE_PROJECT,
        variables={"input": {"projectId": board_id}},
        action="delete",
        resource="project",
    )
    deleted = _project_node(result.data, "deleteProjectV2")
    return {"deleted": True, "id": deleted["id"]}


def _owner_projects(data: dict[str, Any], key: str) -> list[dict[str, Any]]:
    owner = data.get(key)
    conn = owner.get("projectsV2") if isinstance(owner, dict) else None
    nodes = conn.get("nodes") if isinstance(conn, dict) else None
    if not isinstance(nodes, list):
        return []
    return [n for n in nodes if isinstance(n, dict) and isinstance(n.get("id"), str)]


async def list_project_boards(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """List boards of a login, looking it up as both a user and an organization."""
    owner = required_param(arguments, "owner", str)
    owner_type = optional_param(arguments, "type", str, "all")
    include_closed = optional_param(arguments, "include_closed", bool, False)
    limit = optional_int_param(arguments, "limit", 20)

    if owner_type not in OWNER_TYPES:
        raise user_input_error(f"Invalid type: {owner_type}", hint=f"Expected one of: {', '.join(OWNER_TYPES)}")
    if limit < 1:
        raise user_input_error("limit must be at least 1")
    limit = min(limit, MAX_LIST_LIMIT)

    client = acquire_client(runtime)
    # A login is either a user or an organization, so one half always errors.
    # Closed boards are excluded server-side so they do not use up `first`.
    result = await run_graphql(
        client,
        runtime,
        query=compose_document(_QUERY_LIST_PROJECTS),
        variables={"login": owner, "first": limit, "query": None if include_closed else "is:open"},
        action="list",
        resource="projects",
        allow_partial=True,
    )
    _raise_for_owner_errors(result.data, result.errors, action="list", resource="projects")

    projects: list[dict[str, Any]] = []
    for key in ("user", "organization"):
        if owner_type not in ("all", key):
            continue
        for node in _owner_projects(result.data, key):
            if node.get("closed") and not include_closed:
                continue
            entry = normalize_project_summary(node)
            items = node.get("items")
            entry["items_count"] = items.get("totalCount", 0) if isinstance(items, dict) else 0
            entry["owner_type"] = key
            projects.append(entry)

    projects = projects[:limit]
    return {"projects": projects, "total_count": len(projects)}


async def get_project_board(runtime: Runtime, arguments: dict[str, Any]) -> dict[str, Any]:
    """Board metadata plus optional statistics and field definitions."""
    board_id = required_param(arguments, "board_id", str)
    include_fields = optional_param(arguments, "include_fields", bool, True)
    include_stats = optional_param(arguments, "include_stats", bool, True)
    validate_project_id(board_id)

    client = acquire_client(runtime)
    result = await run_graphql(
        client,
        runtime,
        query=compose_document(_QUERY_GET_PROJECT),
        variables={"id": board_id, "includeFields": include_fields, "includeStats": include_stats},
        action="get",
        resource="project",
    )
    node = result.data.get("node")
    if not isinstance(node, dict) or node.get("__typename") != "ProjectV2":
        raise not_found_error("project", board_id)

    out = normalize_project_summary(node)
    out["owner"] = normalize_owner(node.get("owner"))

    if include_stats:
        items = node.get("items")
        out["statistics"] = {"total_items": items.get("totalCount", 0) if isinstance(items, dict) else 0}

    if include_fields:
        fields_conn = node.get("fields")
        raw_fields = fields_conn.get("nodes") if isinstance(fields_conn, dict) else None
        fields: list[dict[str, Any]] = []
        for raw in raw_fields or []:
            normalized = normalize_field_definition(raw)
            if normalized is not None:
                fields.append(normalized)
        out["fields"] = fields
        out["fields_count"] = len(fields)

    return out
