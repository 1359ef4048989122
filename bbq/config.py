"""Configuration utilities for the bbq CLI."""

from __future__ import annotations

import logging
import shutil
import threading
import tomllib
import warnings
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

import keyring
from keyring.backend import get_all_keyring
from keyring.backends import fail
from keyring.errors import PasswordDeleteError
from pydantic import BaseModel, ValidationError, field_validator
from tomli_w import dump as toml_dump

from .constants import API_DEFAULTS, BITBUCKET_API_URL, CONFIG_FILE, JIRA_API_PATH
from .exceptions import ConfigurationError
from .resources import basic_credentials

logger = logging.getLogger(__name__)

CONFIG_VERSION = "1.0.0"
KEYRING_SERVICE = "bbq"

# Lock for thread-safe keyring fallback setup
_keyring_lock = threading.Lock()
_keyring_fallback_attempted = False


def _setup_keyring_fallback() -> bool:
    """Switch to another keyring backend if the default one fails.

    Linux desktops without a usable secrets service are the usual case.

    Returns:
        True if a working keyring backend was set up, False otherwise.
    """
    global _keyring_fallback_attempted

    if _keyring_fallback_attempted:
        return False

    with _keyring_lock:
        if _keyring_fallback_attempted:
            return False
        _keyring_fallback_attempted = True

        viable = [
            backend for backend in get_all_keyring()
            if not isinstance(backend, fail.Keyring) and backend.priority > 0
        ]
        viable.sort(key=lambda backend: backend.priority, reverse=True)

        for backend in viable:
            # SecretService most likely is the backend that already failed
            if "SecretService" in backend.__class__.__name__:
                continue
            try:
                keyring.set_keyring(backend)
                keyring.get_password(KEYRING_SERVICE, "test")
                return True
            except Exception:
                continue

        warnings.warn(
            "System keyring is not accessible. "
            "Install 'keyrings.alt' for file based storage: pip install keyrings.alt",
            UserWarning,
        )
        return False


def _keyring_error(action: str, error: Exception | None) -> RuntimeError:
    return RuntimeError(
        f"Failed to {action} credentials in the system keyring. "
        f"Error: {error}. "
        "\n\n"
        "To fix this issue:\n"
        "1. Install keyrings.alt for file-based storage:\n"
        "   pip install keyrings.alt\n"
        "2. Or set up your system keyring (gnome-keyring, kwallet, macOS Keychain)"
    )


class AuthConfig(BaseModel):
    """Account used for both backends; the secret lives in the keyring."""

    username: str = ""


class BitBucketConfig(BaseModel):
    """Connection details for the source hosting service."""

    api_url: str = BITBUCKET_API_URL
    max_pages: int = API_DEFAULTS['max_pages']

    @field_validator("api_url")
    @classmethod
    def validate_api_url(cls, v: str) -> str:
        """Validate API URL format."""
        if not v.startswith(("http://", "https://")):
            raise ValueError(f"api_url must be a valid HTTP(S) URL, got: {v}")
        return v.rstrip("/")

    @field_validator("max_pages")
    @classmethod
    def validate_max_pages(cls, v: int) -> int:
        """Validate that max_pages is not negative (0 means unbounded)."""
        if v < 0:
            raise ValueError(f"max_pages must not be negative, got {v}")
        return v


class JiraConfig(BaseModel):
    """Connection details for the issue tracker."""

    url: str = ""
    max_issues: int = API_DEFAULTS['max_issues']

    @field_validator("url")
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate site URL format if provided."""
        if v and not v.startswith(("http://", "https://")):
            raise ValueError(f"url must be a valid HTTP(S) URL, got: {v}")
        return v.rstrip("/")

    @field_validator("max_issues")
    @classmethod
    def validate_max_issues(cls, v: int) -> int:
        """Validate that max_issues is not negative (0 means all)."""
        if v < 0:
            raise ValueError(f"max_issues must not be negative, got {v}")
        return v

    @property
    def api_url(self) -> str:
        """REST API base for the configured site."""
        if not self.url:
            return ""
        return f"{self.url}/{JIRA_API_PATH}"


class APIConfig(BaseModel):
    """Configuration for API requests."""

    timeout: int = API_DEFAULTS['timeout']

    @field_validator("timeout")
    @classmethod
    def validate_positive(cls, v: int, info) -> int:
        """Validate that numeric fields are positive."""
        if v <= 0:
            raise ValueError(f"{info.field_name} must be positive, got {v}")
        return v


class CacheConfig(BaseModel):
    """Configuration for the on-disk response cache."""

    directory: str = ""


@dataclass(slots=True)
class Config:
    """Top-level configuration container."""

    version: str = CONFIG_VERSION
    auth: AuthConfig = field(default_factory=AuthConfig)
    bitbucket: BitBucketConfig = field(default_factory=BitBucketConfig)
    jira: JiraConfig = field(default_factory=JiraConfig)
    api: APIConfig = field(default_factory=APIConfig)
    cache: CacheConfig = field(default_factory=CacheConfig)

    def _sections(self) -> Dict[str, BaseModel]:
        return {
            "auth": self.auth,
            "bitbucket": self.bitbucket,
            "jira": self.jira,
            "api": self.api,
            "cache": self.cache,
        }

    @classmethod
    def load(cls, path: Path = CONFIG_FILE) -> "Config":
        """Load configuration data from disk.

        Args:
            path: Optional override for the configuration file path.

        Returns:
            Config: The loaded configuration object.

        Raises:
            ValueError: If configuration file is corrupted or invalid.
        """

        if not path.exists():
            return cls()

        try:
            with path.open("rb") as handle:
                raw: Dict[str, Any] = tomllib.load(handle)
        except (OSError, tomllib.TOMLDecodeError) as exc:
            raise ValueError(f"Failed to parse configuration file: {exc}") from exc

        try:
            return cls(
                version=raw.get("version", CONFIG_VERSION),
                auth=AuthConfig(**raw.get("auth", {})),
                bitbucket=BitBucketConfig(**raw.get("bitbucket", {})),
                jira=JiraConfig(**raw.get("jira", {})),
                api=APIConfig(**raw.get("api", {})),
                cache=CacheConfig(**raw.get("cache", {})),
            )
        except ValidationError as exc:
            raise ValueError(f"Invalid configuration: {exc}") from exc

    def dump(self, path: Path = CONFIG_FILE, backup: bool = True) -> None:
        """Persist the configuration to disk.

        Args:
            path: Path to save the configuration file.
            backup: If True and config file exists, create a backup before overwriting.
        """

        path.parent.mkdir(parents=True, exist_ok=True)

        if backup and path.exists():
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            backup_path = path.parent / f"{path.stem}.{timestamp}.bak"
            shutil.copy2(path, backup_path)

        payload: Dict[str, Any] = {"version": self.version}
        payload.update({name: section.model_dump() for name, section in self._sections().items()})

        with path.open("wb") as handle:
            toml_dump(payload, handle)

    def update_auth(self, username: str, secret: str) -> None:
        """Store the account name and keep its API secret in the keyring.

        Raises:
            RuntimeError: If unable to store credentials in any keyring backend.
        """
        last_error = None
        try:
            keyring.set_password(KEYRING_SERVICE, username, secret)
            self.auth.username = username
            return
        except Exception as e:
            last_error = e

        if _setup_keyring_fallback():
            try:
                keyring.set_password(KEYRING_SERVICE, username, secret)
                self.auth.username = username
                return
            except Exception as fallback_error:
                last_error = fallback_error

        raise _keyring_error("store", last_error) from last_error

    def get_secret(self) -> Optional[str]:
        """Retrieve the API secret of the configured user from the keyring.

        Returns:
            The stored secret, or None if not set.

        Raises:
            RuntimeError: If unable to access the keyring backend.
        """
        if not self.auth.username:
            return None

        last_error = None
        try:
            return keyring.get_password(KEYRING_SERVICE, self.auth.username)
        except Exception as e:
            last_error = e

        if _setup_keyring_fallback():
            try:
                return keyring.get_password(KEYRING_SERVICE, self.auth.username)
            except Exception as fallback_error:
                last_error = fallback_error

        raise _keyring_error("retrieve", last_error) from last_error

    def has_credentials(self) -> bool:
        """True if a username is configured and its secret is in the keyring."""
        try:
            return self.get_secret() is not None
        except RuntimeError:
            return False

    def get_credentials(self) -> str:
        """Return the Base64 ``username:secret`` string for Basic auth.

        Raises:
            ConfigurationError: If credentials are not configured.
        """
        secret = self.get_secret()
        if not secret:
            raise ConfigurationError("Credentials are not configured. Run `bbq config init` first.")
        return basic_credentials(self.auth.username, secret)

    def clear_auth(self) -> None:
        """Forget the stored secret and username."""
        if self.auth.username:
            try:
                keyring.delete_password(KEYRING_SERVICE, self.auth.username)
            except PasswordDeleteError:
                logger.debug(f"No stored secret for {self.auth.username}")
        self.auth.username = ""

    def to_display_dict(self) -> Dict[str, Any]:
        """Return a serialisable representation for display purposes."""

        display = {name: section.model_dump() for name, section in self._sections().items()}
        display["auth"]["secret"] = "<set>" if self.has_credentials() else "<not set>"
        return display

    def _lookup(self, key: str) -> tuple[BaseModel, str]:
        parts = key.split(".")
        if len(parts) != 2:
            raise ValueError(f"Invalid key format '{key}'. Expected format: section.field")

        section, field_name = parts
        sections = self._sections()
        if section not in sections:
            valid_sections = ", ".join(sections.keys())
            raise ValueError(f"Invalid section '{section}'. Valid sections: {valid_sections}")

        config_obj = sections[section]
        if field_name not in type(config_obj).model_fields:
            valid_fields = ", ".join(type(config_obj).model_fields.keys())
            raise ValueError(f"Invalid field '{field_name}' for section '{section}'. Valid fields: {valid_fields}")
        return config_obj, field_name

    def set_value(self, key: str, value: str) -> None:
        """Set a configuration value using dot notation.

        Args:
            key: Configuration key in dot notation (e.g., 'jira.url', 'bitbucket.max_pages')
            value: Value to set (will be converted to appropriate type)

        Raises:
            ValueError: If key is invalid or value cannot be converted
        """
        config_obj, field_name = self._lookup(key)
        field_type = type(config_obj).model_fields[field_name].annotation

        try:
            if field_type is int:
                converted_value: Any = int(value)
            elif field_type is bool:
                converted_value = value.lower() in ("true", "1", "yes", "on")
            else:
                converted_value = value
        except (ValueError, TypeError) as exc:
            raise ValueError(f"Cannot convert '{value}' to {field_type} for {key}") from exc

        # Validate through a fresh model so field validators run
        current_data = config_obj.model_dump()
        current_data[field_name] = converted_value
        try:
            validated_model = type(config_obj).model_validate(current_data)
        except ValidationError as exc:
            error_msg = "; ".join(
                f"{'.'.join(str(loc) for loc in e['loc'])}: {e['msg']}" for e in exc.errors()
            )
            raise ValueError(f"Validation error for {key}: {error_msg}") from exc

        for name in type(validated_model).model_fields:
            setattr(config_obj, name, getattr(validated_model, name))

    def get_value(self, key: str) -> Any:
        """Get a configuration value using dot notation.

        Raises:
            ValueError: If key is invalid
        """
        config_obj, field_name = self._lookup(key)
        return getattr(config_obj, field_name)
