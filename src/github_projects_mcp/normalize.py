"""Flatten polymorphic Projects v2 response nodes into stable result mappings.

Every union in the schema (field values, field definitions, item content, project owner) is
resolved by its `__typename`. Each dispatch table has an explicit unknown arm so a new GitHub
variant shows up in the output instead of disappearing.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Callable

TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def format_timestamp(raw: object) -> str | None:
    """Render an API timestamp as `YYYY-MM-DDTHH:MM:SSZ` in UTC.

    Missing, empty, unparseable and zero (`0001-01-01...`) values yield None; callers omit
    the key in that case.
    """
    if not isinstance(raw, str) or not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.year <= 1:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc).strftime(TIMESTAMP_FORMAT)


def put_timestamp(out: dict[str, Any], key: str, raw: object) -> None:
    """Set `out[key]` only when `raw` is a real timestamp."""
    formatted = format_timestamp(raw)
    if formatted is not None:
        out[key] = formatted


def _nodes(connection: object) -> list[dict[str, Any]]:
    if not isinstance(connection, dict):
        return []
    nodes = connection.get("nodes")
    if not isinstance(nodes, list):
        return []
    return [n for n in nodes if isinstance(n, dict)]


def _total_count(connection: object) -> int:
    if isinstance(connection, dict) and isinstance(connection.get("totalCount"), int):
        return connection["totalCount"]
    return 0


def _login(actor: object) -> str | None:
    if isinstance(actor, dict) and isinstance(actor.get("login"), str):
        return actor["login"]
    return None


# Field values


def _text_value(node: dict[str, Any]) -> Any:
    return node.get("text")


def _number_value(node: dict[str, Any]) -> Any:
    return node.get("number")


def _date_value(node: dict[str, Any]) -> Any:
    return node.get("date")


def _single_select_value(node: dict[str, Any]) -> Any:
    return {
        "id": node.get("optionId"),
        "name": node.get("name"),
        "description": node.get("description"),
        "color": node.get("color"),
    }


def _iteration_value(node: dict[str, Any]) -> Any:
    return {
        "id": node.get("iterationId"),
        "title": node.get("title"),
        "start_date": node.get("startDate"),
        "duration": node.get("duration"),
    }


def _repository_value(node: dict[str, Any]) -> Any:
    repo = node.get("repository")
    if not isinstance(repo, dict):
        return None
    return {
        "id": repo.get("id"),
        "name": repo.get("name"),
        "name_with_owner": repo.get("nameWithOwner"),
        "url": repo.get("url"),
    }


def _users_value(node: dict[str, Any]) -> Any:
    return [
        {"login": u.get("login"), "name": u.get("name"), "avatar_url": u.get("avatarUrl")}
        for u in _nodes(node.get("users"))
    ]


def _labels_value(node: dict[str, Any]) -> Any:
    return [{"name": lbl.get("name"), "color": lbl.get("color")} for lbl in _nodes(node.get("labels"))]


def _milestone_value(node: dict[str, Any]) -> Any:
    milestone = node.get("milestone")
    if not isinstance(milestone, dict):
        return None
    out: dict[str, Any] = {"id": milestone.get("id"), "title": milestone.get("title"), "state": milestone.get("state")}
    put_timestamp(out, "due_on", milestone.get("dueOn"))
    return out


def _pull_requests_value(node: dict[str, Any]) -> Any:
    return [
        {"number": pr.get("number"), "title": pr.get("title"), "url": pr.get("url")}
        for pr in _nodes(node.get("pullRequests"))
    ]


_FIELD_VALUE_KINDS: dict[str, tuple[str, Callable[[dict[str, Any]], Any]]] = {
    "ProjectV2ItemFieldTextValue": ("text", _text_value),
    "ProjectV2ItemFieldNumberValue": ("number", _number_value),
    "ProjectV2ItemFieldDateValue": ("date", _date_value),
    "ProjectV2ItemFieldSingleSelectValue": ("single_select", _single_select_value),
    "ProjectV2ItemFieldIterationValue": ("iteration", _iteration_value),
    "ProjectV2ItemFieldRepositoryValue": ("repository", _repository_value),
    "ProjectV2ItemFieldUserValue": ("users", _users_value),
    "ProjectV2ItemFieldLabelValue": ("labels", _labels_value),
    "ProjectV2ItemFieldMilestoneValue": ("milestone", _milestone_value),
    "ProjectV2ItemFieldPullRequestValue": ("pull_requests", _pull_requests_value),
}


def normalize_field_value(node: object) -> dict[str, Any] | None:
    """Normalize one `ProjectV2ItemFieldValue` node.

    Returns `{field_id, field_name, data_type, kind, value}`, or None for nodes that do not
    belong to a named field (GitHub returns empty objects for some built-in values).
    """
    if not isinstance(node, dict):
        return None
    field = node.get("field")
    if not isinstance(field, dict) or not isinstance(field.get("name"), str):
        return None

    typename = node.get("__typename")
    out: dict[str, Any] = {
        "field_id": field.get("id"),
        "field_name": field["name"],
        "data_type": field.get("dataType"),
    }
    arm = _FIELD_VALUE_KINDS.get(typename) if isinstance(typename, str) else None
    if arm is None:
        out.update({"kind": "unknown", "type": typename, "value": None})
        return out
    kind, extract = arm
    out["kind"] = kind
    out["value"] = extract(node)
    return out


def normalize_field_values(connection: object) -> list[dict[str, Any]]:
    """Normalize every node of a `fieldValues` connection, dropping unnamed ones."""
    out: list[dict[str, Any]] = []
    for node in _nodes(connection):
        normalized = normalize_field_value(node)
        if normalized is not None:
            out.append(normalized)
    return out


# Item content


def _issue_summary(node: dict[str, Any]) -> dict[str, Any]:
    repo = node.get("repository")
    return {
        "type": "Issue",
        "id": node.get("id"),
        "number": node.get("number"),
        "title": node.get("title"),
        "state": node.get("state"),
        "url": node.get("url"),
        "repository": repo.get("nameWithOwner") if isinstance(repo, dict) else None,
        "labels": [lbl.get("name") for lbl in _nodes(node.get("labels"))],
        "assignees": [a.get("login") for a in _nodes(node.get("assignees"))],
    }


def _issue_detail(node: dict[str, Any]) -> dict[str, Any]:
    out = _issue_summary(node)
    out.update(
        {
            "body": node.get("body"),
            "state_reason": node.get("stateReason"),
            "author": _login(node.get("author")),
            "comment_count": _total_count(node.get("comments")),
            "reaction_count": _total_count(node.get("reactions")),
        }
    )
    put_timestamp(out, "created_at", node.get("createdAt"))
    put_timestamp(out, "updated_at", node.get("updatedAt"))
    put_timestamp(out, "closed_at", node.get("closedAt"))
    milestone = node.get("milestone")
    if isinstance(milestone, dict) and milestone.get("title"):
        ms: dict[str, Any] = {"title": milestone["title"]}
        put_timestamp(ms, "due_on", milestone.get("dueOn"))
        out["milestone"] = ms
    return out


def _pull_request_summary(node: dict[str, Any]) -> dict[str, Any]:
    out = _issue_summary(node)
    out["type"] = "PullRequest"
    out["is_draft"] = bool(node.get("isDraft"))
    out["review_decision"] = node.get("reviewDecision")
    return out


def _pull_request_detail(node: dict[str, Any]) -> dict[str, Any]:
    out = _pull_request_summary(node)
    out.update(
        {
            "body": node.get("body"),
            "author": _login(node.get("author")),
            "review_count": _total_count(node.get("reviews")),
            "additions": node.get("additions"),
            "deletions": node.get("deletions"),
            "changed_files": node.get("changedFiles"),
        }
    )
    put_timestamp(out, "created_at", node.get("createdAt"))
    put_timestamp(out, "updated_at", node.get("updatedAt"))
    put_timestamp(out, "closed_at", node.get("closedAt"))
    put_timestamp(out, "merged_at", node.get("mergedAt"))
    return out


def _draft_issue_summary(node: dict[str, Any]) -> dict[str, Any]:
    return {"type": "DraftIssue", "id": node.get("id"), "title": node.get("title")}


def _draft_issue_detail(node: dict[str, Any]) -> dict[str, Any]:
    out = _draft_issue_summary(node)
    out["body"] = node.get("body")
    out["creator"] = _login(node.get("creator"))
    out["assignees"] = [a.get("login") for a in _nodes(node.get("assignees"))]
    put_timestamp(out, "created_at", node.get("createdAt"))
    put_timestamp(out, "updated_at", node.get("updatedAt"))
    return out


_CONTENT_KINDS: dict[str, tuple[Callable[[dict[str, Any]], dict[str, Any]], Callable[[dict[str, Any]], dict[str, Any]]]] = {
    "Issue": (_issue_summary, _issue_detail),
    "PullRequest": (_pull_request_summary, _pull_request_detail),
    "DraftIssue": (_draft_issue_summary, _draft_issue_detail),
}


def normalize_content(node: object, *, detailed: bool = False) -> dict[str, Any] | None:
    """Normalize an item's `content` (Issue, PullRequest or DraftIssue)."""
    if not isinstance(node, dict):
        return None
    typename = node.get("__typename")
    arm = _CONTENT_KINDS.get(typename) if isinstance(typename, str) else None
    if arm is None:
        return {"type": typename if isinstance(typename, str) else "unknown", "id": node.get("id")}
    summary, detail = arm
    return detail(node) if detailed else summary(node)


# Field definitions


def normalize_field_definition(node: object) -> dict[str, Any] | None:
    """Normalize a `ProjectV2FieldConfiguration` node from a board's field list."""
    if not isinstance(node, dict) or not isinstance(node.get("id"), str):
        return None
    typename = node.get("__typename")
    out: dict[str, Any] = {"id": node["id"], "name": node.get("name"), "data_type": node.get("dataType")}

    if typename == "ProjectV2Field":
        out["type"] = "field"
    elif typename == "ProjectV2SingleSelectField":
        out["type"] = "single_select"
        out["options"] = [
            {
                "id": o.get("id"),
                "name": o.get("name"),
                "color": o.get("color"),
                "description": o.get("description"),
            }
            for o in node.get("options") or []
            if isinstance(o, dict)
        ]
    elif typename == "ProjectV2IterationField":
        out["type"] = "iteration"
        config = node.get("configuration")
        if isinstance(config, dict):
            out["configuration"] = {
                "duration": config.get("duration"),
                "start_day": config.get("startDay"),
                "iterations": [
                    {
                        "id": it.get("id"),
                        "title": it.get("title"),
                        "start_date": it.get("startDate"),
                        "duration": it.get("duration"),
                    }
                    for it in config.get("iterations") or []
                    if isinstance(it, dict)
                ],
            }
    else:
        out["type"] = "unknown"
        out["typename"] = typename
    return out


def normalize_owner(owner: object) -> dict[str, Any] | None:
    """Pick the populated owner variant (User or Organization)."""
    if not isinstance(owner, dict):
        return None
    typename = owner.get("__typename")
    login = owner.get("login")
    if typename in ("User", "Organization") and isinstance(login, str) and login:
        return {"login": login, "type": typename}
    if isinstance(login, str) and login:
        return {"login": login, "type": "unknown"}
    return None


def normalize_project_summary(node: dict[str, Any]) -> dict[str, Any]:
    """Core board metadata shared by the list and get operations."""
    out: dict[str, Any] = {
        "id": node.get("id"),
        "number": node.get("number"),
        "title": node.get("title"),
        "description": node.get("readme") or "",
        "short_description": node.get("shortDescription") or "",
        "public": bool(node.get("public")),
        "closed": bool(node.get("closed")),
        "url": node.get("url"),
    }
    put_timestamp(out, "created_at", node.get("createdAt"))
    put_timestamp(out, "updated_at", node.get("updatedAt"))
    return out
