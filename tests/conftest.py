"""Shared fixtures: temporary cache, test server, manager factory and keyring."""

from __future__ import annotations

from typing import Dict

import pytest

from bbq.cache import Cache
from bbq.resource_manager import ManagerOptions, ResourceManager
from bbq.resources import ServerDescriptor, basic_auth
from tests.helpers import BASE_URL, CREDENTIALS, FakeSession


@pytest.fixture
def cache(tmp_path) -> Cache:
    return Cache(tmp_path / "cache")


@pytest.fixture
def server() -> ServerDescriptor:
    return ServerDescriptor(
        base_url=BASE_URL,
        cache_patterns=[("user",), ("repositories", "*"), ("repositories", "*", "*", "src", "**")],
        attach_credentials=basic_auth(CREDENTIALS),
    )


@pytest.fixture
def make_manager(cache, server):
    """Factory for a manager wired to a fake session and a temporary cache."""

    def factory(responder, **options) -> ResourceManager:
        manager = ResourceManager(
            ManagerOptions(**options),
            cache=cache,
            session=FakeSession(responder),
        )
        manager.register_server("test", server)
        return manager

    return factory


@pytest.fixture
def fake_keyring(monkeypatch: pytest.MonkeyPatch) -> Dict[tuple, str]:
    """In-memory replacement for the system keyring."""
    import keyring
    from keyring.errors import PasswordDeleteError

    store: Dict[tuple, str] = {}

    def set_password(service, username, password):
        store[(service, username)] = password

    def get_password(service, username):
        return store.get((service, username))

    def delete_password(service, username):
        if (service, username) not in store:
            raise PasswordDeleteError("not found")
        del store[(service, username)]

    monkeypatch.setattr(keyring, "set_password", set_password)
    monkeypatch.setattr(keyring, "get_password", get_password)
    monkeypatch.setattr(keyring, "delete_password", delete_password)
    return store


@pytest.fixture
def config(fake_keyring):
    """Configuration with stored credentials and a Jira site."""
    from bbq.config import Config

    config = Config()
    config.set_value("jira.url", "https://example.atlassian.net")
    config.update_auth("user@example.com", "s3cret")
    return config
