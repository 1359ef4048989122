"""Helpers for rendering API objects on the console."""

from __future__ import annotations

from typing import Any, Dict, List, Optional

from rich import box
from rich.table import Table

from .jql import paragraph_text


def format_repository(repo: Dict[str, Any]) -> str:
    """One-line repository summary."""
    visibility = "private" if repo.get("is_private") is True else "public"
    return f'{repo.get("full_name", "")} "{repo.get("language") or ""}" {repo.get("size", 0)} {visibility}'


def format_workspace(workspace: Dict[str, Any]) -> str:
    """One-line workspace summary."""
    return f'{workspace.get("slug", "")} {workspace.get("name", "")} {workspace.get("uuid", "")}'


def format_member(member: Dict[str, Any]) -> str:
    """One-line workspace member summary."""
    user = member.get("user") or {}
    return f'  {user.get("display_name", "")} ({user.get("nickname", "")})'


def format_pullrequest(pullrequest: Dict[str, Any]) -> str:
    """One-line pull request summary with source and destination branches."""
    source = ((pullrequest.get("source") or {}).get("branch") or {}).get("name", "?")
    destination = ((pullrequest.get("destination") or {}).get("branch") or {}).get("name", "?")
    return (
        f'#{pullrequest.get("id", "?")} [{pullrequest.get("state", "")}] '
        f'{pullrequest.get("title", "")} ({source} -> {destination})'
    )


def format_issue_line(issue: Dict[str, Any]) -> str:
    """``KEY "Status" Summary`` line used by issue listings."""
    fields = issue.get("fields") or {}
    status = (fields.get("status") or {}).get("name", "")
    return f'{issue.get("key", "")} "{status}" {fields.get("summary", "")}'


def _display_name(person: Optional[Dict[str, Any]]) -> Optional[str]:
    if not person:
        return None
    return person.get("displayName")


def issue_details(issue: Dict[str, Any]) -> List[tuple[str, str]]:
    """Label/value pairs describing an issue, skipping empty fields."""
    fields = issue.get("fields") or {}
    rows: List[tuple[str, str]] = [
        ("Key", issue.get("key", "")),
        ("Summary", fields.get("summary", "")),
        ("Type", (fields.get("issuetype") or {}).get("name", "")),
        ("Status", (fields.get("status") or {}).get("name", "")),
    ]
    resolution = fields.get("resolution")
    if resolution:
        rows.append(("Resolution", resolution.get("name", "")))
    rows.append(("Assignee", _display_name(fields.get("assignee")) or "Unassigned"))
    for label, name in (("Creator", "creator"), ("Reporter", "reporter")):
        display = _display_name(fields.get(name))
        if display:
            rows.append((label, display))
    description = paragraph_text(fields.get("description"))
    if description:
        rows.append(("Description", description))
    return rows


def create_repository_table(repos: List[Dict[str, Any]], title: str = "Repositories") -> Table:
    """Build a table of repositories."""
    table = Table(title=title, box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Repository", style="cyan", no_wrap=True)
    table.add_column("Language", style="dim")
    table.add_column("Size", justify="right")
    table.add_column("Visibility", justify="right", style="muted")

    for repo in repos:
        table.add_row(
            repo.get("full_name", ""),
            repo.get("language") or "",
            str(repo.get("size", 0)),
            "private" if repo.get("is_private") is True else "public",
        )
    return table


def create_workspace_table(workspaces: List[Dict[str, Any]]) -> Table:
    """Build a table of workspaces."""
    table = Table(title="Workspaces", box=box.ROUNDED, show_header=True, header_style="bold cyan")
    table.add_column("Slug", style="cyan", no_wrap=True)
    table.add_column("UUID", style="dim")
    for workspace in workspaces:
        table.add_row(workspace.get("slug", ""), workspace.get("uuid", ""))
    return table
