"""Bitbucket Cloud client built on the resource manager."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, TypeVar

from .config import Config
from .constants import (
    BITBUCKET_CACHE_PATTERNS,
    BITBUCKET_SERVER,
    SOURCE_ENTRY_TYPES,
)
from .handlers import DataHandler, JsonHandler, JsonListHandler, RawHandler, TextHandler
from .resource_manager import ResourceManager
from .resources import Resource, ServerDescriptor, basic_auth

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RepositoryPath:
    """Workspace and repository identifiers (slugs or UUIDs)."""

    workspace: str
    repository: str


def bitbucket_server(api_url: str, credentials: str) -> ServerDescriptor:
    """Describe the Bitbucket Cloud API for a resource manager."""
    return ServerDescriptor(
        base_url=api_url,
        cache_patterns=list(BITBUCKET_CACHE_PATTERNS),
        attach_credentials=basic_auth(credentials),
        trailing_slash=True,
    )


class BitBucket:
    """Repository, workspace and pull request operations."""

    def __init__(self, config: Config, manager: ResourceManager, max_pages: Optional[int] = None):
        """Initialize the client and register its server.

        Args:
            config: Loaded configuration
            manager: Resource manager shared by this client
            max_pages: Page cap for list endpoints (defaults to the config value)
        """
        self.config = config
        self.manager = manager
        self.max_pages = config.bitbucket.max_pages if max_pages is None else max_pages
        self.server = bitbucket_server(config.bitbucket.api_url, config.get_credentials())
        self.manager.register_server(BITBUCKET_SERVER, self.server)

    def json_list(self) -> JsonListHandler:
        return JsonListHandler(self.max_pages)

    def json(self) -> JsonHandler:
        return JsonHandler()

    def get(
        self,
        handler: DataHandler[T],
        *resource_id: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Optional[T]:
        resource = Resource(server=BITBUCKET_SERVER, id=resource_id, parameters=parameters or {})
        return self.manager.resolve(resource, handler)

    def get_from_url(self, url: str, handler: DataHandler[T]) -> Optional[T]:
        """Resolve an absolute API link (e.g. ``links.self.href``)."""
        resource_id = self.server.resource_id_from_url(url)
        if resource_id is None:
            logger.error(f"{url} is not a {BITBUCKET_SERVER} URL")
            return None
        return self.get(handler, *resource_id)

    def get_user(self) -> Optional[Dict[str, Any]]:
        return self.get(self.json(), "user")

    def get_pullrequests(self, user: str) -> Optional[List[Dict[str, Any]]]:
        return self.get(self.json_list(), "pullrequests", user)

    def get_pullrequest_diff(self, repo: RepositoryPath, pullrequest_id: str) -> Optional[str]:
        return self.get(
            TextHandler(),
            "repositories", repo.workspace, repo.repository,
            "pullrequests", str(pullrequest_id), "diff",
        )

    def get_workspaces(self) -> Optional[List[Dict[str, Any]]]:
        return self.get(self.json_list(), "workspaces")

    def get_members(self, workspace: str) -> Optional[List[Dict[str, Any]]]:
        return self.get(self.json_list(), "workspaces", workspace, "members")

    def get_public_repositories(self) -> Optional[List[Dict[str, Any]]]:
        return self.get(self.json_list(), "repositories")

    def get_repositories(self, workspace: str) -> Optional[List[Dict[str, Any]]]:
        return self.get(self.json_list(), "repositories", workspace)

    def get_repository_src(self, repo: RepositoryPath, *file_path: str) -> Optional[List[Dict[str, Any]]]:
        """List a source directory; without a path this is the main branch root."""
        return self.get(
            self.json_list(), "repositories", repo.workspace, repo.repository, "src", *file_path
        )

    def get_file_content(self, repo: RepositoryPath, commit: str, *file_path: str) -> Optional[Any]:
        """Fetch a file at ``commit``; binary files come back as bytes."""
        return self.get(
            RawHandler(), "repositories", repo.workspace, repo.repository, "src", commit, *file_path
        )

    def find_workspace(self, workspace_id: str) -> Optional[Dict[str, Any]]:
        """Find a workspace by slug or UUID (case-insensitive)."""
        wanted = workspace_id.lower()
        for workspace in self.get_workspaces() or []:
            if workspace.get("slug", "").lower() == wanted or workspace.get("uuid", "").lower() == wanted:
                return workspace
        return None

    def find_repository(self, repository: str) -> Optional[Dict[str, Any]]:
        """Find a repository by full name or UUID across all workspaces."""
        wanted = repository.lower()
        for workspace in self.get_workspaces() or []:
            for repo in self.get_repositories(workspace["uuid"]) or []:
                if repo.get("full_name", "").lower() == wanted or repo.get("uuid", "").lower() == wanted:
                    return repo
        return None

    def walk_source_tree(self, repo: RepositoryPath) -> Optional[List[Dict[str, Any]]]:
        """Return every file entry of the repository at its main branch head.

        The root listing tells which commit the branch points at; the tree is
        then walked through commit-pinned listings so that they can be cached.
        """
        root_files = self.get_repository_src(repo)
        if root_files is None:
            return None
        if not root_files:
            return []

        commit = root_files[0]["commit"]["hash"]
        return self._walk(repo, commit, [])

    def _walk(self, repo: RepositoryPath, commit: str, path_parts: List[str]) -> Optional[List[Dict[str, Any]]]:
        entries = self.get_repository_src(repo, commit, *path_parts)
        if entries is None:
            return None

        files: List[Dict[str, Any]] = []
        for entry in entries:
            if entry.get("type") == SOURCE_ENTRY_TYPES['file']:
                files.append(entry)
            elif entry.get("type") == SOURCE_ENTRY_TYPES['directory']:
                children = self._walk(repo, commit, entry["path"].split("/"))
                if children is None:
                    return None
                files.extend(children)
        return files
