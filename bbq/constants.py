"""Constants shared across the bbq toolkit."""

from __future__ import annotations

from pathlib import Path

# =============================================================================
# Filesystem Locations
# =============================================================================

CACHE_DIR = Path.home() / ".cache" / "bbq"
CONFIG_DIR = Path.home() / ".config" / "bbq"
CONFIG_FILE = CONFIG_DIR / "config.toml"

# Environment override for the cache root
CACHE_DIR_ENV = "BBQ_CACHE_DIR"

# =============================================================================
# Cache Layout
# =============================================================================

CACHE_LAYOUT = {
    'shard_label': 'a',  # Inserted after every non-leaf segment
    'discriminator_separator': '-',
}

CACHE_FILENAMES = {
    'json': 'data.json',
    'text': 'data.txt',
    'raw': 'data',
}

# Bytes inspected when deciding whether a payload is binary
BINARY_SNIFF_BYTES = 8000

# =============================================================================
# Servers
# =============================================================================

BITBUCKET_SERVER = "bb-cloud"
JIRA_SERVER = "jira-cloud"

BITBUCKET_API_URL = "https://api.bitbucket.org/2.0"
JIRA_API_PATH = "rest/api/3"

# Slow-changing resources that may be served from disk
BITBUCKET_CACHE_PATTERNS = [
    ("user",),
    ("workspaces",),
    ("workspaces", "*", "members"),
    ("repositories", "*"),
    ("repositories", "*", "*", "src", "**"),
]

JIRA_CACHE_PATTERNS = [
    ("myself",),
]

# =============================================================================
# API and HTTP Configuration
# =============================================================================

API_DEFAULTS = {
    'timeout': 30,
    'max_pages': 10,
    'issue_page_size': 50,
    'max_issues': 20,
}

HTTP_STATUS = {
    'unauthorized': 401,
    'no_content': 204,
}

# Characters of a failed response body kept for diagnostics
ERROR_BODY_PREVIEW = 200

# Bitbucket source listing entry types
SOURCE_ENTRY_TYPES = {
    'file': 'commit_file',
    'directory': 'commit_directory',
}
