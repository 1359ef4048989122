"""Tests for configuration persistence and credentials."""

import base64

import pytest

from bbq.config import Config
from bbq.exceptions import ConfigurationError


def test_missing_file_yields_defaults(tmp_path):
    config = Config.load(tmp_path / "config.toml")

    assert config.bitbucket.api_url == "https://api.bitbucket.org/2.0"
    assert config.bitbucket.max_pages == 10
    assert config.jira.url == ""
    assert config.jira.api_url == ""
    assert config.api.timeout == 30


def test_dump_and_load_round_trip(tmp_path):
    path = tmp_path / "config.toml"
    config = Config()
    config.set_value("jira.url", "https://example.atlassian.net/")
    config.set_value("bitbucket.max_pages", "0")
    config.dump(path)

    loaded = Config.load(path)

    assert loaded.jira.url == "https://example.atlassian.net"
    assert loaded.jira.api_url == "https://example.atlassian.net/rest/api/3"
    assert loaded.bitbucket.max_pages == 0


def test_dump_keeps_a_backup(tmp_path):
    path = tmp_path / "config.toml"
    Config().dump(path)
    Config().dump(path)

    assert list(tmp_path.glob("config.*.bak"))


def test_corrupted_file_raises_value_error(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[jira\nurl = ")

    with pytest.raises(ValueError, match="Failed to parse"):
        Config.load(path)


def test_invalid_values_raise_value_error(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text('[api]\ntimeout = 0\n')

    with pytest.raises(ValueError, match="Invalid configuration"):
        Config.load(path)


@pytest.mark.parametrize(
    "key, value, message",
    [
        ("jira", "x", "Invalid key format"),
        ("nothing.url", "x", "Invalid section"),
        ("jira.colour", "x", "Invalid field"),
        ("bitbucket.max_pages", "many", "Cannot convert"),
        ("bitbucket.max_pages", "-1", "Validation error"),
        ("jira.url", "ftp://example.test", "Validation error"),
    ],
)
def test_set_value_rejects_bad_input(key, value, message):
    with pytest.raises(ValueError, match=message):
        Config().set_value(key, value)


def test_get_value_reads_dot_notation():
    config = Config()
    config.set_value("api.timeout", "12")

    assert config.get_value("api.timeout") == 12


def test_credentials_are_base64_basic_pair(fake_keyring):
    config = Config()
    config.update_auth("user@example.com", "token")

    assert fake_keyring[("bbq", "user@example.com")] == "token"
    assert config.has_credentials()
    assert base64.b64decode(config.get_credentials()).decode() == "user@example.com:token"


def test_missing_credentials_raise_configuration_error(fake_keyring):
    config = Config()

    assert config.get_secret() is None
    assert not config.has_credentials()
    with pytest.raises(ConfigurationError):
        config.get_credentials()


def test_display_dict_never_exposes_secret(fake_keyring):
    config = Config()
    config.update_auth("user@example.com", "token")

    display = config.to_display_dict()

    assert display["auth"] == {"username": "user@example.com", "secret": "<set>"}
    assert "token" not in str(display)


def test_clear_auth_forgets_user_and_secret(fake_keyring):
    config = Config()
    config.update_auth("user@example.com", "token")

    config.clear_auth()
    config.clear_auth()

    assert config.auth.username == ""
    assert fake_keyring == {}
