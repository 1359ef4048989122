"""Command line interface for bbq."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, TypeVar

import typer
from rich.logging import RichHandler

from .bitbucket import BitBucket, RepositoryPath
from .cache import Cache
from .config import Config
from .console import Console
from .constants import CONFIG_FILE, HTTP_STATUS
from .exceptions import ConfigurationError
from .formatting import (
    create_repository_table,
    create_workspace_table,
    format_issue_line,
    format_member,
    format_pullrequest,
    format_repository,
    format_workspace,
    issue_details,
)
from .jira import Jira
from .jql import build_issue_jql
from .resource_manager import ManagerOptions, ResourceManager
from .utils import format_size, validate_issue_key, validate_url

app = typer.Typer(help="Query Bitbucket and Jira from the terminal.")
ws_app = typer.Typer(help="Operations on workspaces")
repo_app = typer.Typer(help="Operations on repositories")
pr_app = typer.Typer(help="Operations on pull requests")
user_app = typer.Typer(help="Operations on users")
issue_app = typer.Typer(help="Operations on issues")
project_app = typer.Typer(help="Operations on projects")
cache_app = typer.Typer(help="Handle your cache")
config_app = typer.Typer(help="Handle your configuration")

app.add_typer(ws_app, name="ws")
app.add_typer(repo_app, name="repo")
app.add_typer(pr_app, name="pr")
app.add_typer(user_app, name="user")
app.add_typer(issue_app, name="issue")
app.add_typer(project_app, name="project")
app.add_typer(cache_app, name="cache")
app.add_typer(config_app, name="config")

console = Console()
logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class RunOptions:
    """Options shared by every command of one invocation."""

    verbose: bool = False
    force_synchronize: bool = False
    max_pages: Optional[int] = None


_options = RunOptions()


@app.callback()
def main_callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Verbose output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Suppress non-essential output"),
    force_sync: bool = typer.Option(
        False,
        "--force-sync",
        "-s",
        help="Will force synchronization with the server",
    ),
    max_pages: Optional[int] = typer.Option(
        None,
        "--max-pages",
        "-m",
        min=0,
        help="The maximum number of pages to fetch (0 for no limit)",
    ),
) -> None:
    """CLI entry-point callback for shared initialisation."""
    console.set_verbose(verbose)
    console.set_quiet(quiet)
    _options.verbose = verbose
    _options.force_synchronize = force_sync
    _options.max_pages = max_pages

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, show_time=False)],
    )


# ============================================================================
# Shared helpers
# ============================================================================


def _load_config() -> Config:
    try:
        return Config.load(CONFIG_FILE)
    except ValueError as exc:
        console.print_error(exc)
        raise typer.Exit(code=1) from exc


def _cache(config: Config) -> Cache:
    if config.cache.directory:
        return Cache(Path(config.cache.directory).expanduser())
    return Cache()


def _manager(config: Config) -> ResourceManager:
    options = ManagerOptions(
        verbose=_options.verbose,
        force_synchronize=_options.force_synchronize,
        timeout=config.api.timeout,
    )
    return ResourceManager(options, cache=_cache(config))


def _bitbucket() -> BitBucket:
    config = _load_config()
    try:
        return BitBucket(config, _manager(config), max_pages=_options.max_pages)
    except (ConfigurationError, RuntimeError) as exc:
        console.print_error(exc)
        raise typer.Exit(code=1) from exc


def _jira() -> Jira:
    config = _load_config()
    try:
        return Jira(config, _manager(config))
    except (ConfigurationError, RuntimeError) as exc:
        console.print_error(exc)
        raise typer.Exit(code=1) from exc


def _require(value: Optional[T], message: str) -> T:
    """Abort the invocation when a resource could not be resolved."""
    if value is None:
        console.print_error(message)
        raise typer.Exit(code=1)
    return value


def _repository_path(repo: Dict[str, Any]) -> RepositoryPath:
    return RepositoryPath(workspace=repo["workspace"]["uuid"], repository=repo["uuid"])


# ============================================================================
# Workspaces
# ============================================================================


@ws_app.command("list")
def ws_list() -> None:
    """List workspaces."""
    bb = _bitbucket()
    workspaces = _require(bb.get_workspaces(), "Could not get workspaces")
    console.print(create_workspace_table(workspaces))


@ws_app.command("show")
def ws_show(workspace: str = typer.Argument(..., help="Workspace slug/uuid")) -> None:
    """Show workspace info and its members."""
    bb = _bitbucket()
    found = _require(bb.find_workspace(workspace), f'Could not find workspace "{workspace}"')
    members = _require(bb.get_members(found["uuid"]), f"Could not get members of {workspace}")
    console.print(format_workspace(found), highlight=False)
    console.print("[label]Members:[/]")
    for member in members:
        console.print(format_member(member), highlight=False)


# ============================================================================
# Repositories
# ============================================================================


@repo_app.command("list")
def repo_list(
    public: bool = typer.Option(False, "--public", "-p", help="List public repositories"),
) -> None:
    """List repositories of every workspace."""
    bb = _bitbucket()
    if public:
        repos = _require(bb.get_public_repositories(), "Could not get public repositories")
        for repo in repos:
            console.print(repo.get("full_name", ""), highlight=False)
        return

    workspaces = _require(bb.get_workspaces(), "Could not get workspaces")
    repos: List[Dict[str, Any]] = []
    for workspace in workspaces:
        repos.extend(
            _require(bb.get_repositories(workspace["uuid"]), f"Could not get repositories of {workspace.get('slug')}")
        )
    console.print(create_repository_table(repos))


@repo_app.command("show")
def repo_show(
    repository: str = typer.Argument(..., help="Repository full name/uuid"),
    list_files: bool = typer.Option(False, "--list-files", "-f", help="List repository files"),
) -> None:
    """Show repository data."""
    bb = _bitbucket()
    repo = _require(bb.find_repository(repository), f"Could not find repository {repository}")
    console.log(f"found {repo['uuid']} {repo['full_name']}")

    if not list_files:
        console.print(format_repository(repo), highlight=False)
        return

    files = _require(bb.walk_source_tree(_repository_path(repo)), f"Could not list files of {repository}")
    for entry in files:
        console.print(entry["path"], highlight=False)


# ============================================================================
# Pull requests
# ============================================================================


@pr_app.command("list")
def pr_list() -> None:
    """List pull requests authored by the current user."""
    bb = _bitbucket()
    user = _require(bb.get_user(), "Could not get the current user")
    pullrequests = _require(bb.get_pullrequests(user["uuid"]), "Could not get pull requests")
    for pullrequest in pullrequests:
        console.print(format_pullrequest(pullrequest), highlight=False)


@pr_app.command("diff")
def pr_diff(
    repository: str = typer.Argument(..., help="Repository full name/uuid"),
    pullrequest_id: int = typer.Argument(..., help="Pull request id"),
) -> None:
    """Print the diff of a pull request."""
    bb = _bitbucket()
    repo = _require(bb.find_repository(repository), f"Could not find repository {repository}")
    diff = _require(
        bb.get_pullrequest_diff(_repository_path(repo), str(pullrequest_id)),
        f"Could not get diff of #{pullrequest_id}",
    )
    console.print(diff, markup=False, highlight=False)


# ============================================================================
# Users
# ============================================================================


@user_app.command("show")
def user_show() -> None:
    """Show the current Bitbucket user."""
    bb = _bitbucket()
    user = _require(bb.get_user(), "Could not get the current user")
    console.print(
        f"{user.get('username', '')} {user.get('nickname', '')} {user.get('created_on', '')}",
        highlight=False,
    )


@user_app.command("search")
def user_search(query: str = typer.Argument(..., help="Search query")) -> None:
    """Search Jira users."""
    jira = _jira()
    users = _require(jira.search_users(query), f'Could not search users with query "{query}"')
    for user in users:
        console.print(f"[success]{user.get('displayName', '')}[/] [info]{user.get('emailAddress', '')}[/]")


def select_user(jira: Jira, query: str) -> str:
    """Resolve ``query`` to a single account id, prompting on ambiguity."""
    users = _require(jira.search_users(query), f'Could not search users with query "{query}"')
    if not users:
        console.print_error(f'No users found with query "{query}", aborting.')
        raise typer.Exit(code=1)

    if len(users) == 1:
        console.print(f"Found user: [success]{users[0].get('displayName', '')}[/]")
        return users[0]["accountId"]

    console.print("Multiple matches, please select user:")
    for index, user in enumerate(users, 1):
        console.print(f"  {index}. {user.get('displayName', '')}")
    while True:
        choice = typer.prompt("Enter number", default="1").strip()
        if choice.isdigit() and 1 <= int(choice) <= len(users):
            selected = users[int(choice) - 1]
            console.print(f"Selected user: [success]{selected.get('displayName', '')}[/]")
            return selected["accountId"]
        console.print(f"[danger]Invalid selection.[/] Please enter a number between 1 and {len(users)}")


# ============================================================================
# Issues
# ============================================================================


def _print_issues(issues: List[Dict[str, Any]]) -> None:
    for issue in issues:
        console.print(format_issue_line(issue), markup=False, highlight=False)


@issue_app.command("list")
def issue_list(
    assignee: Optional[str] = typer.Option(None, "--assignee", "-a", help="Assignee"),
    project: Optional[str] = typer.Option(None, "--project", "-p", help="Project"),
    status: Optional[str] = typer.Option(None, "--status", "-t", help="Status"),
    max_entries: Optional[int] = typer.Option(
        None, "--max-entries", "-m", min=0, help="Maximum number of issues (0 for all)"
    ),
) -> None:
    """List issues, by default the ones assigned to you."""
    jira = _jira()
    limit = jira.config.jira.max_issues if max_entries is None else max_entries
    jql = build_issue_jql(assignee=assignee, project=project, status=status)
    issues = _require(jira.search_issues(jql, limit), "Could not get issues")
    _print_issues(issues)


@app.command("status")
def status() -> None:
    """Show the issues you are currently working on."""
    jira = _jira()
    jql = build_issue_jql(statuses="in progress,selected for development")
    issues = _require(jira.search_issues(jql, 0), "Could not get issues")
    _print_issues(issues)


def _issue_key(issue: str) -> str:
    try:
        validate_issue_key(issue)
    except ValueError as exc:
        console.print_error(exc)
        raise typer.Exit(code=1) from exc
    return issue.strip()


@issue_app.command("show")
def issue_show(issue: str = typer.Argument(..., help="Issue key/ID")) -> None:
    """Show issue info."""
    key = _issue_key(issue)
    jira = _jira()
    data = _require(jira.get_issue(key), f"Could not find issue {key}")
    for label, value in issue_details(data):
        console.print(f"[label]{label}:[/] {value}", highlight=False)


@issue_app.command("edit")
def issue_edit(
    issue: str = typer.Argument(..., help="Issue key/ID"),
    assignee: Optional[str] = typer.Option(None, "--assignee", "-a", help="Assignee"),
    summary: Optional[str] = typer.Option(None, "--summary", "-s", help="Issue summary"),
) -> None:
    """Edit issue assignee and/or summary."""
    key = _issue_key(issue)
    jira = _jira()
    fields: Dict[str, Any] = {}
    if assignee:
        fields["assignee"] = {"id": select_user(jira, assignee)}
    if summary:
        fields["summary"] = summary
    if not fields:
        console.print("[warning]Nothing to edit.[/]")
        return

    _require(jira.edit_issue(key, fields), f"Could not edit {key}")
    console.print_success(f"{key} updated")


def _print_transitions(current_status: str, transitions: List[Dict[str, Any]]) -> None:
    for transition in transitions:
        name = transition.get("name", "")
        style = "success" if name == current_status else "value"
        console.print(f"[{style}]{name}[/]")


@issue_app.command("transition")
def issue_transition(
    issue: str = typer.Argument(..., help="Issue key/ID"),
    state: Optional[str] = typer.Argument(None, help="Target state"),
) -> None:
    """List available transitions or move an issue to ``state``."""
    key = _issue_key(issue)
    jira = _jira()
    transitions = _require(jira.get_transitions(key), f"Could not get transitions for issue {key}")
    data = _require(jira.get_issue(key), f"Could not get issue {key}")
    current_status = ((data.get("fields") or {}).get("status") or {}).get("name", "")
    available = transitions.get("transitions") or []

    if not state:
        _print_transitions(current_status, available)
        return

    target = state.lower()
    transition = next((t for t in available if t.get("name", "").lower() == target), None)
    if transition is None:
        console.print_error(f"Could not find transition {state}")
        _print_transitions(current_status, available)
        raise typer.Exit(code=1)

    result = jira.post_transition(key, transition["id"])
    if result != HTTP_STATUS['no_content']:
        console.print_error(f'Could not set {key} to "{transition["name"]}"')
        raise typer.Exit(code=1)
    console.print_success(f'{key} set to "{transition["name"]}"')


@issue_app.command("create")
def issue_create(
    project: str = typer.Argument(..., help="Project key"),
    summary: str = typer.Option(..., "--summary", "-s", help="Issue summary"),
    description: Optional[str] = typer.Option(None, "--description", "-d", help="Issue description"),
    issue_type: str = typer.Option("Task", "--type", "-t", help="Issue type"),
) -> None:
    """Create an issue in ``project``."""
    jira = _jira()
    created = _require(
        jira.create_issue(project, summary, description=description, issue_type=issue_type),
        f"Could not create issue in {project}",
    )
    console.print_success(f"Created {created.get('key', '')}")


# ============================================================================
# Projects
# ============================================================================


@project_app.command("list")
def project_list(
    query: Optional[str] = typer.Option(None, "--query", "-q", help="Project query"),
) -> None:
    """List projects."""
    jira = _jira()
    projects = _require(jira.search_projects(query), "Could not get projects")
    for project in projects:
        console.print(f"{project.get('key', '')} {project.get('name', '')}", highlight=False)


# ============================================================================
# Cache
# ============================================================================


@cache_app.command("show")
def cache_show() -> None:
    """Show cache directory and size."""
    cache = _cache(_load_config())
    console.print(f"[label]Directory:[/] {cache.root}")
    console.print(f"[label]Size:[/] {format_size(cache.total_size())}")


@cache_app.command("clear")
def cache_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete every cached response."""
    cache = _cache(_load_config())
    if not cache.exists():
        console.print("[info]No cache found to clear[/]")
        return
    if not yes and not typer.confirm(f"Delete {cache.root}?", default=False):
        console.print("[warning]Cache kept.[/]")
        return
    try:
        cache.clear()
    except OSError as exc:
        console.print_error(exc, "Failed to clear cache:")
        raise typer.Exit(code=1) from exc
    console.print_success("Cleared cache successfully")


# ============================================================================
# Configuration
# ============================================================================


@config_app.command("init")
def config_init(
    username: Optional[str] = typer.Option(None, "--username", "-u", help="Account username/e-mail"),
    secret: Optional[str] = typer.Option(
        None, "--secret", help="API token (not your password)", hide_input=True
    ),
    jira_url: Optional[str] = typer.Option(
        None, "--jira-url", help="Jira site URL (e.g. https://example.atlassian.net)"
    ),
) -> None:
    """Store credentials and connection settings.

    Run without options to be prompted for each value.
    """
    config = _load_config()
    username = username or typer.prompt("Please enter your username")
    secret = secret or typer.prompt("Please enter your API token (not password)", hide_input=True)
    if jira_url is None:
        jira_url = typer.prompt("Jira site URL (leave empty to skip)", default="", show_default=False)

    try:
        if jira_url:
            validate_url(jira_url, "Jira URL")
            config.set_value("jira.url", jira_url)
        config.update_auth(username.strip(), secret.strip())
        config.dump(CONFIG_FILE)
    except (ValueError, RuntimeError) as exc:
        console.print_error(exc)
        raise typer.Exit(code=1) from exc
    console.print_success(f"Configuration saved to {CONFIG_FILE}")


@config_app.command("show")
def config_show() -> None:
    """Display current configuration settings."""
    config = _load_config()
    for section, values in config.to_display_dict().items():
        console.print(f"[title]{section}[/]")
        for name, value in values.items():
            console.print(f"  [label]{name}[/] = {value}", highlight=False)


@config_app.command("get")
def config_get(key: str = typer.Argument(..., help="Configuration key in dot notation (e.g. jira.url)")) -> None:
    """Get a configuration value."""
    config = _load_config()
    try:
        value = config.get_value(key)
    except ValueError as exc:
        console.print_error(exc)
        raise typer.Exit(code=1) from exc
    console.print(f"{key} = {value}", highlight=False)


@config_app.command("set")
def config_set(
    key: str = typer.Argument(..., help="Configuration key in dot notation (e.g. bitbucket.max_pages)"),
    value: str = typer.Argument(..., help="Value to set"),
) -> None:
    """Set a configuration value."""
    config = _load_config()
    try:
        config.set_value(key, value)
        config.dump(CONFIG_FILE)
    except ValueError as exc:
        console.print_error(exc)
        raise typer.Exit(code=1) from exc
    console.print_success(f"Configuration updated: {key} = {value}")


@config_app.command("clear")
def config_clear(
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Delete the stored configuration and credentials."""
    if not CONFIG_FILE.exists():
        console.print("There is no stored data. Skipping.")
        return
    if not yes and not typer.confirm("Are you sure?", default=False):
        return
    config = _load_config()
    config.clear_auth()
    CONFIG_FILE.unlink()
    console.print_success("Configuration deleted successfully!")
