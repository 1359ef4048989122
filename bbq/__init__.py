"""Command line access to Bitbucket Cloud and Jira Cloud."""

__version__ = "0.1.0"
