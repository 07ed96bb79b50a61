"""Central configuration constants for the activity export retrieval layer."""

from __future__ import annotations

import os

USER_AGENT = "activity-export/1.0"
BASE_URL = "https://api.github.com"
GRAPHQL_URL = "https://api.github.com/graphql"
WEB_URL = "https://github.com"
JIRA_API_PATH = "rest/api/3"

PER_PAGE = 100
REQUEST_TIMEOUT = 90
MAX_RETRIES = int(os.getenv("MAX_RETRIES", "3"))
NETWORK_BACKOFF_BASE_SEC = float(os.getenv("NETWORK_BACKOFF_BASE_SEC", "2"))
RATE_LIMIT_BACKOFF_BASE_SEC = float(os.getenv("RATE_LIMIT_BACKOFF_BASE_SEC", "1"))
DEFAULT_BACKOFF_BASE_SEC = float(os.getenv("DEFAULT_BACKOFF_BASE_SEC", "0.5"))
MAX_WAIT_SEC = float(os.getenv("MAX_WAIT_SEC", "180"))

DEFAULT_MAX_PAGES = int(os.getenv("MAX_PAGES", "50"))  # 0 = no cap
REPO_LIST_MAX_PAGES = 100
PAGE_PAUSE_SEC = 0.1
PROGRESS_EVERY_PAGES = 10

PR_DETAIL_BATCH_SIZE = int(os.getenv("PR_DETAIL_BATCH_SIZE", "25"))
PR_COMMITS_PER_DETAIL = 250
BATCH_PAUSE_SEC = 0.2
REVIEW_PAUSE_SEC = 0.05

JIRA_PAGE_SIZE = int(os.getenv("JIRA_PAGE_SIZE", "100"))
JIRA_DEFAULT_MAX_RESULTS = 1000
JIRA_STORY_POINTS_FIELD = os.getenv("JIRA_STORY_POINTS_FIELD", "customfield_10016")

SCHEMA_VERSION = "1.0.0"
DEFAULT_OUTPUT_FILE = "arka-data.json"
DEFAULT_JIRA_OUTPUT_FILE = "jira-data.json"
CHECKPOINT_SUFFIX = ".checkpoint.json"

__all__ = [
    "USER_AGENT",
    "BASE_URL",
    "GRAPHQL_URL",
    "WEB_URL",
    "JIRA_API_PATH",
    "PER_PAGE",
    "REQUEST_TIMEOUT",
    "MAX_RETRIES",
    "NETWORK_BACKOFF_BASE_SEC",
    "RATE_LIMIT_BACKOFF_BASE_SEC",
    "DEFAULT_BACKOFF_BASE_SEC",
    "MAX_WAIT_SEC",
    "DEFAULT_MAX_PAGES",
    "REPO_LIST_MAX_PAGES",
    "PAGE_PAUSE_SEC",
    "PROGRESS_EVERY_PAGES",
    "PR_DETAIL_BATCH_SIZE",
    "PR_COMMITS_PER_DETAIL",
    "BATCH_PAUSE_SEC",
    "REVIEW_PAUSE_SEC",
    "JIRA_PAGE_SIZE",
    "JIRA_DEFAULT_MAX_RESULTS",
    "JIRA_STORY_POINTS_FIELD",
    "SCHEMA_VERSION",
    "DEFAULT_OUTPUT_FILE",
    "DEFAULT_JIRA_OUTPUT_FILE",
    "CHECKPOINT_SUFFIX",
]
