"""Card tools against an in-memory GraphQL stub."""

from __future__ import annotations

import pytest
from conftest import DummyGraphQL, build_runtime
from github_projects_mcp import cards
from github_projects_mcp.errors import SafeError
from github_projects_mcp.graphql_errors import GraphQLError, GraphQLErrors

COLUMN_NODE = {
    "node": {
        "__typename": "ProjectV2SingleSelectFieldOption",
        "id": "PVTFSC_doing",
        "name": "In Progress",
        "color": "YELLOW",
        "description": "",
        "field": {"id": "PVTSSF_status", "name": "Status", "project": {"id": "PVT_1", "title": "Roadmap"}},
    }
}

SET_STATUS_OK = {"updateProjectV2ItemFieldValue": {"projectV2Item": {"id": "PVTI_x"}}}


def _status_value(option_id: str, name: str) -> dict:
    return {
        "__typename": "ProjectV2ItemFieldSingleSelectValue",
        "optionId": option_id,
        "name": name,
        "color": "GRAY",
        "description": "",
        "field": {"id": "PVTSSF_status", "name": "Status", "dataType": "SINGLE_SELECT"},
    }


@pytest.mark.asyncio
async def test_bulk_move_reports_each_card() -> None:
    gql = DummyGraphQL(
        [
            COLUMN_NODE,
            SET_STATUS_OK,
            GraphQLErrors([GraphQLError(message="Could not resolve to a node with the global id of 'PVTI_2'")]),
            SET_STATUS_OK,
        ]
    )

    out = await cards.bulk_move_cards(
        build_runtime(gql), {"card_ids": ["PVTI_1", "PVTI_2", "PVTI_3"], "target_column_id": "PVTFSC_doing"}
    )

    assert out["success"] is True
    assert out["total_cards"] == 3
    assert out["moved_count"] == 2
    assert out["failed_count"] == 1
    assert len(out["results"]) == 3
    assert [r["status"] for r in out["results"]] == ["moved", "failed", "moved"]
    assert "Could not resolve" in out["results"][1]["error"]
    assert out["message"] == "Moved 2 of 3 cards successfully"
    # One column lookup, then one mutation per card in input order.
    assert [c["variables"].get("itemId") for c in gql.calls[1:]] == ["PVTI_1", "PVTI_2", "PVTI_3"]
    assert gql.calls[1]["variables"]["optionId"] == "PVTFSC_doing"


@pytest.mark.asyncio
async def test_bulk_move_all_failed_is_unsuccessful() -> None:
    boom = SafeError(code="GitHub", message="boom")
    gql = DummyGraphQL([COLUMN_NODE, boom])

    out = await cards.bulk_move_cards(build_runtime(gql), {"card_ids": ["PVTI_1"], "target_column_id": "PVTFSC_doing"})

    assert out["success"] is False
    assert out["results"] == [{"card_id": "PVTI_1", "status": "failed", "error": "boom"}]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("card_ids", "message"),
    [
        ([], "card_ids array cannot be empty"),
        ([f"PVTI_{i}" for i in range(101)], "card_ids may contain at most 100 cards"),
    ],
)
async def test_bulk_move_rejects_bad_batches(card_ids: list[str], message: str) -> None:
    gql = DummyGraphQL()

    with pytest.raises(SafeError) as exc:
        await cards.bulk_move_cards(build_runtime(gql), {"card_ids": card_ids, "target_column_id": "PVTFSC_doing"})
    assert exc.value.message == message
    assert gql.acquired == 0


@pytest.mark.asyncio
async def test_bulk_move_validates_every_id_first() -> None:
    gql = DummyGraphQL()

    with pytest.raises(SafeError) as exc:
        await cards.bulk_move_cards(
            build_runtime(gql), {"card_ids": ["PVTI_1", "I_2"], "target_column_id": "PVTFSC_doing"}
        )
    assert "invalid item ID format: 'I_2'" in exc.value.message
    assert gql.acquired == 0


@pytest.mark.asyncio
async def test_move_card() -> None:
    gql = DummyGraphQL([COLUMN_NODE, SET_STATUS_OK])

    out = await cards.move_project_card(build_runtime(gql), {"card_id": "PVTI_1", "column_id": "PVTFSC_doing"})

    assert out == {
        "success": True,
        "card_id": "PVTI_1",
        "column_id": "PVTFSC_doing",
        "column_name": "In Progress",
        "project_id": "PVT_1",
        "position": "bottom",
        "message": "Card moved to column 'In Progress'",
    }
    assert gql.calls[1]["variables"] == {
        "projectId": "PVT_1",
        "itemId": "PVTI_1",
        "fieldId": "PVTSSF_status",
        "optionId": "PVTFSC_doing",
    }


@pytest.mark.asyncio
async def test_move_card_to_top_reposition_failure_is_a_warning() -> None:
    gql = DummyGraphQL([COLUMN_NODE, SET_STATUS_OK, SafeError(code="GitHub", message="position failed")])

    out = await cards.move_project_card(
        build_runtime(gql), {"card_id": "PVTI_1", "column_id": "PVTFSC_doing", "position": "top"}
    )

    assert out["success"] is True
    assert out["position"] == "top"
    assert "position failed" in out["warning"]
    assert "updateProjectV2ItemPosition" in gql.calls[2]["query"]


@pytest.mark.asyncio
async def test_add_card_into_column() -> None:
    gql = DummyGraphQL([COLUMN_NODE, {"addProjectV2ItemById": {"item": {"id": "PVTI_new"}}}, SET_STATUS_OK])

    out = await cards.add_card_to_project(
        build_runtime(gql), {"board_id": "PVT_1", "content_id": "I_kwDO1", "column_id": "PVTFSC_doing"}
    )

    assert out["success"] is True
    assert out["card_id"] == "PVTI_new"
    assert out["column_id"] == "PVTFSC_doing"
    assert out["message"] == "Card added to project in column 'In Progress'"
    assert gql.calls[2]["variables"]["itemId"] == "PVTI_new"


@pytest.mark.asyncio
async def test_add_card_rejects_column_of_another_board() -> None:
    gql = DummyGraphQL([COLUMN_NODE])

    with pytest.raises(SafeError) as exc:
        await cards.add_card_to_project(
            build_runtime(gql), {"board_id": "PVT_other", "content_id": "I_kwDO1", "column_id": "PVTFSC_doing"}
        )
    assert exc.value.code == "UserInput"
    assert len(gql.calls) == 1


def _card_fields_response() -> dict:
    return {
        "node": {
            "__typename": "ProjectV2Item",
            "id": "PVTI_1",
            "project": {
                "id": "PVT_1",
                "fields": {
                    "nodes": [
                        {
                            "__typename": "ProjectV2SingleSelectField",
                            "id": "PVTSSF_status",
                            "name": "Status",
                            "dataType": "SINGLE_SELECT",
                            "options": [{"id": "opt_done", "name": "Done", "color": "GREEN", "description": ""}],
                        },
                        {"__typename": "ProjectV2Field", "id": "PVTF_est", "name": "Estimate", "dataType": "NUMBER"},
                        {"__typename": "ProjectV2Field", "id": "PVTF_notes", "name": "Notes", "dataType": "TEXT"},
                        {
                            "__typename": "ProjectV2IterationField",
                            "id": "PVTIF_sprint",
                            "name": "Sprint",
                            "dataType": "ITERATION",
                            "configuration": {
                                "duration": 14,
                                "startDay": 1,
                                "iterations": [
                                    {"id": "it1", "title": "Sprint 1", "startDate": "2024-01-01", "duration": 14}
                                ],
                            },
                        },
                    ]
                },
            },
        }
    }


@pytest.mark.asyncio
async def test_update_card_reports_each_field() -> None:
    gql = DummyGraphQL([_card_fields_response(), SET_STATUS_OK, SET_STATUS_OK, {"clearProjectV2ItemFieldValue": {}}])

    out = await cards.update_project_card(
        build_runtime(gql),
        {
            "card_id": "PVTI_1",
            "fields": {"Status": "done", "Estimate": 3, "Unknown": "x", "Sprint": "Sprint 9", "Notes": None},
        },
    )

    assert out["success"] is True
    assert out["project_id"] == "PVT_1"
    assert [(u["field"], u["status"]) for u in out["updates"]] == [
        ("Status", "updated"),
        ("Estimate", "updated"),
        ("Sprint", "failed"),
        ("Notes", "updated"),
    ]
    assert out["updates"][2]["error"] == "Iteration 'Sprint 9' not found for field 'Sprint'"
    assert out["message"] == "Updated 3 of 4 fields"

    assert gql.calls[1]["variables"]["value"] == {"singleSelectOptionId": "opt_done"}
    assert gql.calls[2]["variables"]["value"] == {"number": 3.0}
    assert "clearProjectV2ItemFieldValue" in gql.calls[3]["query"]
    assert gql.remaining == 0


@pytest.mark.asyncio
async def test_update_card_with_no_matching_fields() -> None:
    gql = DummyGraphQL([_card_fields_response()])

    out = await cards.update_project_card(build_runtime(gql), {"card_id": "PVTI_1", "fields": {"Nope": 1}})

    assert out["success"] is False
    assert out["updates"] == []
    assert out["message"] == "No matching fields found on the project"


def test_field_value_input_by_data_type() -> None:
    text = {"name": "Notes", "data_type": "TEXT"}
    assert cards._field_value_input(text, True, max_text_bytes=100) == {"text": "true"}
    assert cards._field_value_input(text, 5, max_text_bytes=100) == {"text": "5"}
    assert cards._field_value_input({"name": "X", "data_type": None}, 2, max_text_bytes=100) == {"number": 2.0}
    assert cards._field_value_input({"name": "Due", "data_type": "DATE"}, "2024-05-01", max_text_bytes=100) == {
        "date": "2024-05-01"
    }
    with pytest.raises(SafeError):
        cards._field_value_input({"name": "Estimate", "data_type": "NUMBER"}, True, max_text_bytes=100)
    with pytest.raises(SafeError):
        cards._field_value_input({"name": "Assignees", "data_type": "ASSIGNEES"}, "octo", max_text_bytes=100)
    with pytest.raises(SafeError):
        cards._field_value_input(text, "x" * 101, max_text_bytes=100)


@pytest.mark.asyncio
async def test_remove_card_archives_with_known_board() -> None:
    gql = DummyGraphQL([{"archiveProjectV2Item": {"item": {"id": "PVTI_1"}}}])

    out = await cards.remove_card_from_project(
        build_runtime(gql), {"card_id": "PVTI_1", "board_id": "PVT_1", "archive": True}
    )

    assert out == {"success": True, "card_id": "PVTI_1", "archived": True, "message": "Card archived"}
    assert gql.calls[0]["variables"] == {"projectId": "PVT_1", "itemId": "PVTI_1"}


@pytest.mark.asyncio
async def test_remove_card_looks_up_board_then_deletes() -> None:
    gql = DummyGraphQL(
        [
            {"node": {"__typename": "ProjectV2Item", "id": "PVTI_1", "project": {"id": "PVT_9"}}},
            {"deleteProjectV2Item": {"deletedItemId": "PVTI_1"}},
        ]
    )

    out = await cards.remove_card_from_project(build_runtime(gql), {"card_id": "PVTI_1"})

    assert out["deleted"] is True
    assert out["card_id"] == "PVTI_1"
    assert gql.calls[1]["variables"] == {"projectId": "PVT_9", "itemId": "PVTI_1"}


@pytest.mark.asyncio
async def test_remove_unknown_card() -> None:
    gql = DummyGraphQL([{"node": None}])

    with pytest.raises(SafeError) as exc:
        await cards.remove_card_from_project(build_runtime(gql), {"card_id": "PVTI_gone"})
    assert exc.value.code == "NotFound"
    assert exc.value.hint == "Use 'list_project_cards' to find available cards."


def _list_response() -> dict:
    issue = {
        "id": "PVTI_a",
        "type": "ISSUE",
        "isArchived": False,
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "2024-01-02T00:00:00Z",
        "fieldValues": {"nodes": [_status_value("PVTFSC_doing", "In Progress"), {}]},
        "content": {"__typename": "Issue", "id": "I_1", "number": 1, "title": "Bug"},
    }
    pull = {
        "id": "PVTI_b",
        "type": "PULL_REQUEST",
        "isArchived": False,
        "fieldValues": {"nodes": [_status_value("PVTFSC_done", "Done")]},
        "content": {"__typename": "PullRequest", "id": "PR_1", "number": 2, "title": "Fix"},
    }
    archived = {
        "id": "PVTI_c",
        "type": "ISSUE",
        "isArchived": True,
        "fieldValues": {"nodes": []},
        "content": None,
    }
    return {
        "node": {
            "__typename": "ProjectV2",
            "id": "PVT_1",
            "title": "Roadmap",
            "items": {
                "totalCount": 3,
                "pageInfo": {"hasNextPage": True, "endCursor": "cur1"},
                "nodes": [issue, pull, archived],
            },
        }
    }


@pytest.mark.asyncio
async def test_list_cards_defaults() -> None:
    gql = DummyGraphQL([_list_response()])

    out = await cards.list_project_cards(build_runtime(gql), {"board_id": "PVT_1"})

    assert [c["id"] for c in out["cards"]] == ["PVTI_a", "PVTI_b"]
    assert out["count"] == 2
    assert out["total_count"] == 3
    assert out["board_title"] == "Roadmap"
    assert out["page_info"] == {"end_cursor": "cur1", "has_next_page": True}
    first = out["cards"][0]
    assert first["column"] == {"id": "PVTFSC_doing", "name": "In Progress"}
    assert first["content"]["title"] == "Bug"
    assert first["fields"]["Status"]["name"] == "In Progress"
    assert "...IssueFragment" in gql.calls[0]["query"]
    assert gql.calls[0]["variables"] == {"projectId": "PVT_1", "first": 20, "after": None}


@pytest.mark.asyncio
async def test_list_cards_filters() -> None:
    gql = DummyGraphQL([_list_response(), _list_response()])
    runtime = build_runtime(gql)

    by_column = await cards.list_project_cards(runtime, {"board_id": "PVT_1", "column_id": "PVTFSC_done"})
    assert [c["id"] for c in by_column["cards"]] == ["PVTI_b"]
    assert by_column["filtered_by_column"] == "PVTFSC_done"

    by_type = await cards.list_project_cards(
        runtime, {"board_id": "PVT_1", "content_type": "issue", "include_archived": True, "after": "cur0"}
    )
    assert [c["id"] for c in by_type["cards"]] == ["PVTI_a", "PVTI_c"]
    assert by_type["cards"][1]["archived"] is True
    assert by_type["filtered_by_type"] == "issue"
    assert gql.calls[1]["variables"]["after"] == "cur0"


@pytest.mark.asyncio
async def test_list_cards_without_content_omits_content_fragments() -> None:
    gql = DummyGraphQL([_list_response()])

    out = await cards.list_project_cards(build_runtime(gql), {"board_id": "PVT_1", "include_content": False})

    assert "IssueFragment" not in gql.calls[0]["query"]
    assert all("content" not in c for c in out["cards"])


@pytest.mark.asyncio
async def test_get_card_detail() -> None:
    node = {
        "__typename": "ProjectV2Item",
        "id": "PVTI_a",
        "type": "PULL_REQUEST",
        "isArchived": False,
        "createdAt": "2024-01-01T00:00:00Z",
        "updatedAt": "0001-01-01T00:00:00Z",
        "creator": {"login": "octo", "avatarUrl": "https://avatars/octo"},
        "project": {"id": "PVT_1", "title": "Roadmap", "url": "https://github.com/users/octo/projects/3"},
        "fieldValues": {
            "nodes": [
                _status_value("PVTFSC_doing", "In Progress"),
                {
                    "__typename": "ProjectV2ItemFieldNumberValue",
                    "number": 5,
                    "field": {"id": "PVTF_est", "name": "Estimate", "dataType": "NUMBER"},
                },
            ]
        },
        "content": {
            "__typename": "PullRequest",
            "id": "PR_1",
            "number": 2,
            "title": "Fix",
            "isDraft": False,
            "reviews": {"totalCount": 1},
            "additions": 3,
            "deletions": 1,
            "changedFiles": 1,
        },
    }
    gql = DummyGraphQL([{"node": node}])

    out = await cards.get_project_card(build_runtime(gql), {"card_id": "PVTI_a", "include_history": True})

    assert out["created_at"] == "2024-01-01T00:00:00Z"
    assert "updated_at" not in out
    assert out["creator"] == {"login": "octo", "avatar_url": "https://avatars/octo"}
    assert out["project"]["title"] == "Roadmap"
    assert out["fields"]["Estimate"] == {
        "field_id": "PVTF_est",
        "data_type": "NUMBER",
        "field_name": "Estimate",
        "value": 5,
    }
    assert out["content"]["type"] == "PullRequest"
    assert out["content"]["review_count"] == 1
    assert out["history_note"] == cards.HISTORY_NOTE
    assert "fragment ProjectV2ItemFieldValueFragment" in gql.calls[0]["query"]


@pytest.mark.asyncio
async def test_get_card_not_an_item() -> None:
    gql = DummyGraphQL([{"node": {"__typename": "Issue", "id": "PVTI_a"}}])

    with pytest.raises(SafeError) as exc:
        await cards.get_project_card(build_runtime(gql), {"card_id": "PVTI_a"})
    assert exc.value.code == "NotFound"
