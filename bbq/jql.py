"""Helpers for composing JQL queries and issue payloads."""

from __future__ import annotations

from typing import Any, Dict, Optional

CURRENT_USER = "currentUser()"


def concat_jql(jql: str, expr: str) -> str:
    """Append ``expr`` to ``jql`` with ``AND``."""
    if jql:
        return f"{jql} AND {expr}"
    return expr


def quote_list(values: str) -> str:
    """Turn ``a,b,,c`` into ``"a","b","c"``."""
    elements = [value for value in values.split(",") if value != ""]
    return ",".join(f'"{value}"' for value in elements)


def build_issue_jql(
    assignee: Optional[str] = None,
    project: Optional[str] = None,
    status: Optional[str] = None,
    statuses: Optional[str] = None,
    order_by: str = "created DESC",
) -> str:
    """Build the JQL used by the issue listing commands.

    Args:
        assignee: Assignee account or display name (defaults to the current user)
        project: Project key
        status: Single status name
        statuses: Comma separated list of statuses
        order_by: ORDER BY clause

    Returns:
        JQL string
    """
    jql = f"assignee = {assignee or CURRENT_USER}"
    if project:
        jql = concat_jql(jql, f'project = "{project}"')
    if status:
        jql = concat_jql(jql, f'status = "{status}"')
    if statuses:
        jql = concat_jql(jql, f"status IN ({quote_list(statuses)})")
    if order_by:
        jql = f"{jql} ORDER BY {order_by}"
    return jql


def create_paragraph(text: str) -> Dict[str, Any]:
    """Wrap plain text in a rich-text document with one paragraph."""
    return {
        "version": 1,
        "type": "doc",
        "content": [
            {
                "type": "paragraph",
                "content": [{"type": "text", "text": text}],
            }
        ],
    }


def paragraph_text(document: Optional[Dict[str, Any]]) -> str:
    """Flatten a rich-text document back to plain text, one line per block."""
    if not document:
        return ""
    if isinstance(document, str):
        return document
    lines = []
    for block in document.get("content") or []:
        texts = [node.get("text", "") for node in block.get("content") or []]
        lines.append("".join(texts))
    return "\n".join(lines)
