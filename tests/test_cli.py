"""Tests for the bbq command line."""

from __future__ import annotations

from typing import Any, Dict, List

import pytest
from typer.testing import CliRunner

from bbq import cli
from bbq.cache import Cache
from bbq.config import Config

runner = CliRunner()


class DummyBitBucket:
    def __init__(self) -> None:
        self.walked: List[Any] = []

    def get_workspaces(self) -> List[Dict[str, Any]]:
        return [{"slug": "acme", "uuid": "ws1", "name": "Acme"}]

    def find_workspace(self, workspace: str):
        return self.get_workspaces()[0] if workspace == "acme" else None

    def get_members(self, workspace: str):
        return [{"user": {"display_name": "Ada", "nickname": "ada"}}]

    def get_repositories(self, workspace: str):
        return [{"full_name": "acme/widgets", "uuid": "r1", "workspace": {"uuid": "ws1"}, "size": 10}]

    def find_repository(self, repository: str):
        return self.get_repositories("ws1")[0] if repository == "acme/widgets" else None

    def walk_source_tree(self, repo):
        self.walked.append(repo)
        return [{"path": "README.md"}, {"path": "lib/core.py"}]

    def get_user(self):
        return {"uuid": "u1", "username": "ada", "nickname": "ada", "created_on": "2020"}

    def get_pullrequests(self, user: str):
        return None


class DummyJira:
    def __init__(self) -> None:
        self.config = Config()
        self.calls: List[Any] = []

    def search_issues(self, jql: str, num_issues: int = 0):
        self.calls.append(("search", jql, num_issues))
        return [{"key": "CORE-1", "fields": {"summary": "Fix it", "status": {"name": "To Do"}}}]

    def get_issue(self, issue: str):
        return {
            "key": issue,
            "fields": {"summary": "Fix it", "status": {"name": "To Do"}, "issuetype": {"name": "Bug"}},
        }

    def get_transitions(self, issue: str):
        return {"transitions": [{"id": "11", "name": "To Do"}, {"id": "31", "name": "Done"}]}

    def post_transition(self, issue: str, transition_id: str):
        self.calls.append(("transition", issue, transition_id))
        return 204

    def search_users(self, query: str):
        return [
            {"accountId": "acc-1", "displayName": "Ada Lovelace"},
            {"accountId": "acc-2", "displayName": "Ada Yonath"},
        ]

    def edit_issue(self, issue: str, fields: Dict[str, Any]):
        self.calls.append(("edit", issue, fields))
        return 204

    def create_issue(self, project, summary, description=None, issue_type="Task"):
        self.calls.append(("create", project, summary, description, issue_type))
        return {"key": f"{project}-2"}

    def search_projects(self, query=None):
        return [{"key": "CORE", "name": "Core"}]


@pytest.fixture
def bitbucket(monkeypatch: pytest.MonkeyPatch) -> DummyBitBucket:
    client = DummyBitBucket()
    monkeypatch.setattr(cli, "_bitbucket", lambda: client)
    return client


@pytest.fixture
def jira(monkeypatch: pytest.MonkeyPatch) -> DummyJira:
    client = DummyJira()
    monkeypatch.setattr(cli, "_jira", lambda: client)
    return client


@pytest.fixture
def config_file(monkeypatch: pytest.MonkeyPatch, tmp_path):
    path = tmp_path / "config" / "config.toml"
    monkeypatch.setattr(cli, "CONFIG_FILE", path)
    return path


def test_workspace_list_renders_table(bitbucket) -> None:
    result = runner.invoke(cli.app, ["ws", "list"])

    assert result.exit_code == 0
    assert "acme" in result.output


def test_workspace_show_lists_members(bitbucket) -> None:
    result = runner.invoke(cli.app, ["ws", "show", "acme"])

    assert result.exit_code == 0
    assert "Ada (ada)" in result.output


def test_unknown_workspace_exits_non_zero(bitbucket) -> None:
    result = runner.invoke(cli.app, ["ws", "show", "nope"])

    assert result.exit_code == 1
    assert "Could not find workspace" in result.output


def test_repo_show_lists_files(bitbucket) -> None:
    result = runner.invoke(cli.app, ["repo", "show", "acme/widgets", "--list-files"])

    assert result.exit_code == 0
    assert "lib/core.py" in result.output
    assert bitbucket.walked[0].workspace == "ws1"
    assert bitbucket.walked[0].repository == "r1"


def test_absent_result_aborts_command(bitbucket) -> None:
    result = runner.invoke(cli.app, ["pr", "list"])

    assert result.exit_code == 1
    assert "Could not get pull requests" in result.output


def test_status_lists_work_in_progress(jira) -> None:
    result = runner.invoke(cli.app, ["status"])

    assert result.exit_code == 0
    assert 'CORE-1 "To Do" Fix it' in result.output
    _, jql, num_issues = jira.calls[0]
    assert 'status IN ("in progress","selected for development")' in jql
    assert num_issues == 0


def test_issue_list_uses_configured_limit(jira) -> None:
    result = runner.invoke(cli.app, ["issue", "list", "--project", "CORE"])

    assert result.exit_code == 0
    _, jql, num_issues = jira.calls[0]
    assert 'project = "CORE"' in jql
    assert num_issues == 20


def test_issue_show_rejects_malformed_key(jira) -> None:
    result = runner.invoke(cli.app, ["issue", "show", "not a key"])

    assert result.exit_code == 1
    assert "Invalid issue key" in result.output


def test_issue_show_prints_details(jira) -> None:
    result = runner.invoke(cli.app, ["issue", "show", "CORE-1"])

    assert result.exit_code == 0
    assert "Bug" in result.output
    assert "Unassigned" in result.output


def test_issue_transition_matches_name_case_insensitively(jira) -> None:
    result = runner.invoke(cli.app, ["issue", "transition", "CORE-1", "done"])

    assert result.exit_code == 0
    assert ("transition", "CORE-1", "31") in jira.calls


def test_issue_transition_unknown_state(jira) -> None:
    result = runner.invoke(cli.app, ["issue", "transition", "CORE-1", "Shipped"])

    assert result.exit_code == 1
    assert "Could not find transition Shipped" in result.output


def test_issue_edit_prompts_for_ambiguous_assignee(jira) -> None:
    result = runner.invoke(cli.app, ["issue", "edit", "CORE-1", "--assignee", "ada"], input="2\n")

    assert result.exit_code == 0
    assert ("edit", "CORE-1", {"assignee": {"id": "acc-2"}}) in jira.calls


def test_issue_create(jira) -> None:
    result = runner.invoke(cli.app, ["issue", "create", "CORE", "--summary", "Crash", "--type", "Bug"])

    assert result.exit_code == 0
    assert "CORE-2" in result.output
    assert ("create", "CORE", "Crash", None, "Bug") in jira.calls


def test_global_options_reach_the_manager(bitbucket) -> None:
    result = runner.invoke(cli.app, ["--force-sync", "--max-pages", "2", "ws", "list"])

    assert result.exit_code == 0
    assert cli._options.force_synchronize is True
    assert cli._options.max_pages == 2

    config = Config()
    config.set_value("api.timeout", "9")
    manager = cli._manager(config)
    assert manager.options.force_synchronize is True
    assert manager.options.timeout == 9


def test_cache_show_and_clear(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    config = Config()
    config.set_value("cache.directory", str(tmp_path / "cache"))
    monkeypatch.setattr(cli, "_load_config", lambda: config)
    Cache(tmp_path / "cache").write(("user",), None, b"x" * 2048, "data")

    shown = runner.invoke(cli.app, ["cache", "show"])
    assert shown.exit_code == 0
    assert "2 KB" in shown.output

    kept = runner.invoke(cli.app, ["cache", "clear"], input="n\n")
    assert kept.exit_code == 0
    assert (tmp_path / "cache").exists()

    cleared = runner.invoke(cli.app, ["cache", "clear", "--yes"])
    assert cleared.exit_code == 0
    assert not (tmp_path / "cache").exists()


def test_config_set_and_get(config_file) -> None:
    result = runner.invoke(cli.app, ["config", "set", "bitbucket.max_pages", "3"])
    assert result.exit_code == 0
    assert Config.load(config_file).bitbucket.max_pages == 3

    result = runner.invoke(cli.app, ["config", "get", "bitbucket.max_pages"])
    assert result.exit_code == 0
    assert "bitbucket.max_pages = 3" in result.output


def test_config_set_rejects_invalid_value(config_file) -> None:
    result = runner.invoke(cli.app, ["config", "set", "api.timeout", "0"])

    assert result.exit_code == 1
    assert not config_file.exists()


def test_config_init_stores_secret_in_keyring(config_file, fake_keyring) -> None:
    result = runner.invoke(
        cli.app,
        [
            "config", "init",
            "--username", "user@example.com",
            "--secret", "token",
            "--jira-url", "https://example.atlassian.net",
        ],
    )

    assert result.exit_code == 0
    saved = Config.load(config_file)
    assert saved.auth.username == "user@example.com"
    assert saved.jira.url == "https://example.atlassian.net"
    assert fake_keyring[("bbq", "user@example.com")] == "token"
    assert "token" not in config_file.read_text()


def test_config_clear_removes_file_and_secret(config_file, fake_keyring) -> None:
    config = Config()
    config.update_auth("user@example.com", "token")
    config.dump(config_file)

    result = runner.invoke(cli.app, ["config", "clear", "--yes"])

    assert result.exit_code == 0
    assert not config_file.exists()
    assert fake_keyring == {}
