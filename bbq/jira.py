"""Jira Cloud client built on the resource manager."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, TypeVar

from .config import Config
from .constants import API_DEFAULTS, JIRA_CACHE_PATTERNS, JIRA_SERVER
from .exceptions import ConfigurationError
from .handlers import (
    DataHandler,
    IssueSearchHandler,
    JsonHandler,
    JsonListHandler,
    StatusCodeHandler,
)
from .jql import create_paragraph
from .resource_manager import ResourceManager
from .resources import Resource, ServerDescriptor, basic_auth

logger = logging.getLogger(__name__)

T = TypeVar("T")


def jira_server(api_url: str, credentials: str) -> ServerDescriptor:
    """Describe the Jira Cloud REST API for a resource manager."""
    return ServerDescriptor(
        base_url=api_url,
        cache_patterns=list(JIRA_CACHE_PATTERNS),
        attach_credentials=basic_auth(credentials),
    )


class Jira:
    """Issue, project and user operations."""

    def __init__(self, config: Config, manager: ResourceManager):
        """Initialize the client and register its server.

        Raises:
            ConfigurationError: If no Jira site URL is configured
        """
        if not config.jira.api_url:
            raise ConfigurationError(
                "Jira site URL is not configured. Run `bbq config set jira.url https://<site>.atlassian.net`."
            )
        self.config = config
        self.manager = manager
        self.server = jira_server(config.jira.api_url, config.get_credentials())
        self.manager.register_server(JIRA_SERVER, self.server)

    def _resource(self, *resource_id: str, parameters: Optional[Dict[str, Any]] = None, body: Any = None) -> Resource:
        return Resource(server=JIRA_SERVER, id=resource_id, parameters=parameters or {}, body=body)

    def get(
        self,
        handler: DataHandler[T],
        *resource_id: str,
        parameters: Optional[Dict[str, Any]] = None,
    ) -> Optional[T]:
        return self.manager.resolve(self._resource(*resource_id, parameters=parameters), handler)

    def get_user(self) -> Optional[Dict[str, Any]]:
        return self.get(JsonHandler(), "myself")

    def get_issue(self, issue: str) -> Optional[Dict[str, Any]]:
        return self.get(JsonHandler(), "issue", issue)

    def search_issues(self, jql: str, num_issues: int = 0) -> Optional[List[Dict[str, Any]]]:
        """Run a JQL search.

        Args:
            jql: Query
            num_issues: Number of issues wanted (0 means every match)
        """
        page_size = API_DEFAULTS['issue_page_size']
        if num_issues > 0:
            page_size = min(num_issues, page_size)
        parameters = {"jql": jql, "startAt": 0, "maxResults": page_size}
        return self.get(IssueSearchHandler(num_issues), "search", parameters=parameters)

    def search_projects(self, query: Optional[str] = None) -> Optional[List[Dict[str, Any]]]:
        parameters = {"query": query} if query else {}
        return self.get(
            JsonListHandler(values_field="values", next_field="nextPage"),
            "project", "search",
            parameters=parameters,
        )

    def search_users(self, query: str) -> Optional[List[Dict[str, Any]]]:
        return self.get(JsonHandler(), "user", "search", parameters={"query": query})

    def get_transitions(self, issue: str) -> Optional[Dict[str, Any]]:
        return self.get(JsonHandler(), "issue", issue, "transitions", parameters={"expand": "transitions"})

    def post_transition(self, issue: str, transition_id: str) -> Optional[int]:
        """Move ``issue`` through a workflow transition.

        Returns:
            HTTP status code (204 on success), or None on failure
        """
        body = {"transition": {"id": str(transition_id)}}
        return self.manager.mutate(
            self._resource("issue", issue, "transitions", body=body), StatusCodeHandler(), "POST"
        )

    def edit_issue(self, issue: str, fields: Dict[str, Any]) -> Optional[int]:
        body = {"update": {}, "fields": fields}
        return self.manager.mutate(self._resource("issue", issue, body=body), StatusCodeHandler(), "PUT")

    def create_issue(
        self,
        project: str,
        summary: str,
        description: Optional[str] = None,
        issue_type: str = "Task",
    ) -> Optional[Dict[str, Any]]:
        fields: Dict[str, Any] = {
            "project": {"key": project},
            "summary": summary,
            "issuetype": {"name": issue_type},
        }
        if description:
            fields["description"] = create_paragraph(description)
        return self.manager.mutate(self._resource("issue", body={"fields": fields}), JsonHandler(), "POST")
