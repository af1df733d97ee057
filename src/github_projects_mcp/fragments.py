"""Reusable GraphQL fragments for Projects v2 documents.

GitHub rejects documents that define unused fragments, and documents that spread undefined
ones, so operations are written with `...FragmentName` spreads and passed through
`compose_document`, which appends exactly the fragments reachable from the operation.
"""

from __future__ import annotations

import re

PROJECT_V2_FIELD_REF_FRAGMENT = """
fragment ProjectV2FieldRefFragment on ProjectV2FieldConfiguration {
  ... on ProjectV2FieldCommon {
    id
    name
    dataType
  }
}
"""

PROJECT_V2_ITEM_FIELD_VALUE_FRAGMENT = """
fragment ProjectV2ItemFieldValueFragment on ProjectV2ItemFieldValue {
  __typename
  ... on ProjectV2ItemFieldTextValue {
    text
    field { ...ProjectV2FieldRefFragment }
  }
  ... on ProjectV2ItemFieldNumberValue {
    number
    field { ...ProjectV2FieldRefFragment }
  }
  ... on ProjectV2ItemFieldDateValue {
    date
    field { ...ProjectV2FieldRefFragment }
  }
  ... on ProjectV2ItemFieldSingleSelectValue {
    optionId
    name
    color
    description
    field { ...ProjectV2FieldRefFragment }
  }
  ... on ProjectV2ItemFieldIterationValue {
    iterationId
    title
    startDate
    duration
    field { ...ProjectV2FieldRefFragment }
  }
  ... on ProjectV2ItemFieldRepositoryValue {
    repository { id name nameWithOwner url }
    field { ...ProjectV2FieldRefFragment }
  }
  ... on ProjectV2ItemFieldUserValue {
    users(first: 10) { nodes { login name avatarUrl } }
    field { ...ProjectV2FieldRefFragment }
  }
  ... on ProjectV2ItemFieldLabelValue {
    labels(first: 20) { nodes { name color } }
    field { ...ProjectV2FieldRefFragment }
  }
  ... on ProjectV2ItemFieldMilestoneValue {
    milestone { id title dueOn state }
    field { ...ProjectV2FieldRefFragment }
  }
  ... on ProjectV2ItemFieldPullRequestValue {
    pullRequests(first: 10) { nodes { number title url } }
    field { ...ProjectV2FieldRefFragment }
  }
}
"""

PROJECT_V2_FIELD_FRAGMENT = """
fragment ProjectV2FieldFragment on ProjectV2FieldConfiguration {
  __typename
  ... on ProjectV2Field {
    id
    name
    dataType
  }
  ... on ProjectV2SingleSelectField {
    id
    name
    dataType
    options { id name color description }
  }
  ... on ProjectV2IterationField {
    id
    name
    dataType
    configuration {
      duration
      startDay
      iterations { id title startDate duration }
    }
  }
}
"""

ISSUE_FRAGMENT = """
fragment IssueFragment on Issue {
  id
  number
  title
  body
  state
  stateReason
  url
  createdAt
  updatedAt
  closedAt
  author { login }
  repository { nameWithOwner }
  labels(first: 20) { nodes { name color } }
  assignees(first: 10) { nodes { login } }
  milestone { title dueOn }
  comments { totalCount }
  reactions { totalCount }
}
"""

PULL_REQUEST_FRAGMENT = """
fragment PullRequestFragment on PullRequest {
  id
  number
  title
  body
  state
  url
  isDraft
  reviewDecision
  createdAt
  updatedAt
  closedAt
  mergedAt
  author { login }
  repository { nameWithOwner }
  labels(first: 20) { nodes { name color } }
  assignees(first: 10) { nodes { login } }
  reviews { totalCount }
  additions
  deletions
  changedFiles
}
"""

DRAFT_ISSUE_FRAGMENT = """
fragment DraftIssueFragment on DraftIssue {
  id
  title
  body
  createdAt
  updatedAt
  creator { login }
  assignees(first: 10) { nodes { login } }
}
"""

PROJECT_V2_ITEM_FRAGMENT = """
fragment ProjectV2ItemFragment on ProjectV2Item {
  id
  type
  isArchived
  createdAt
  updatedAt
  creator { login avatarUrl }
  project { id title url }
  fieldValues(first: 50) {
    nodes { ...ProjectV2ItemFieldValueFragment }
  }
  content {
    __typename
    ...IssueFragment
    ...PullRequestFragment
    ...DraftIssueFragment
  }
}
"""

PROJECT_V2_SUMMARY_FRAGMENT = """
fragment ProjectV2SummaryFragment on ProjectV2 {
  id
  number
  title
  readme
  shortDescription
  public
  closed
  url
  createdAt
  updatedAt
}
"""

_ITEM_SUMMARY_TEMPLATE = """
fragment ProjectV2ItemSummaryFragment on ProjectV2Item {{
  id
  type
  isArchived
  createdAt
  updatedAt
  fieldValues(first: 20) {{
    nodes {{ ...ProjectV2ItemFieldValueFragment }}
  }}{content}
}}
"""

_ITEM_SUMMARY_CONTENT = """
  content {
    __typename
    ...IssueFragment
    ...PullRequestFragment
    ...DraftIssueFragment
  }"""

PROJECT_V2_ITEM_SUMMARY_FRAGMENT = _ITEM_SUMMARY_TEMPLATE.format(content=_ITEM_SUMMARY_CONTENT)

_FRAGMENT_DEF_RE = re.compile(r"fragment\s+(\w+)\s+on\s")
_SPREAD_RE = re.compile(r"\.\.\.([A-Za-z_]\w*)")


def _index(*fragments: str) -> dict[str, str]:
    out: dict[str, str] = {}
    for text in fragments:
        match = _FRAGMENT_DEF_RE.search(text)
        if match is None:
            raise ValueError("Fragment definition is missing a name")
        out[match.group(1)] = text.strip()
    return out


FRAGMENTS: dict[str, str] = _index(
    PROJECT_V2_SUMMARY_FRAGMENT,
    PROJECT_V2_FIELD_REF_FRAGMENT,
    PROJECT_V2_ITEM_FIELD_VALUE_FRAGMENT,
    PROJECT_V2_FIELD_FRAGMENT,
    ISSUE_FRAGMENT,
    PULL_REQUEST_FRAGMENT,
    DRAFT_ISSUE_FRAGMENT,
    PROJECT_V2_ITEM_FRAGMENT,
    PROJECT_V2_ITEM_SUMMARY_FRAGMENT,
)


def compose_document(operation: str, *, fragments: dict[str, str] | None = None) -> str:
    """Append every fragment transitively spread by `operation`.

    Raises:
        KeyError: A spread names a fragment that is not registered.
    """
    registry = FRAGMENTS if fragments is None else fragments
    ordered: list[str] = []
    seen: set[str] = set()
    pending = _SPREAD_RE.findall(operation)
    while pending:
        name = pending.pop(0)
        if name in seen:
            continue
        seen.add(name)
        text = registry[name]
        ordered.append(text)
        pending.extend(_SPREAD_RE.findall(text))
    return "\n\n".join([operation.strip(), *ordered])


def build_project_cards_document(operation: str, *, include_content: bool = True) -> str:
    """Compose a card-listing document around `ProjectV2ItemSummaryFragment`.

    Without content the issue/pull request fragments are left out entirely.
    """
    summary = _ITEM_SUMMARY_TEMPLATE.format(content=_ITEM_SUMMARY_CONTENT if include_content else "")
    registry = dict(FRAGMENTS)
    registry["ProjectV2ItemSummaryFragment"] = summary.strip()
    return compose_document(operation, fragments=registry)
