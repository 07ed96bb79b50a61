"""Utilities for loading local (gitignored) credentials."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

DEFAULT_SECRETS_FILENAME = "local_secrets.json"


def _default_secrets_path() -> Path:
    root = Path(__file__).resolve().parents[1]
    return root / DEFAULT_SECRETS_FILENAME


def load_local_secrets(path: Optional[str | Path] = None) -> Dict[str, Any]:
    """Load secrets from a JSON file; return {} when unavailable."""

    candidate = path or os.getenv("LOCAL_SECRETS_FILE") or _default_secrets_path()
    secrets_path = Path(candidate).expanduser()
    if not secrets_path.exists():
        return {}
    try:
        with secrets_path.open("r", encoding="utf-8") as handle:
            data = json.load(handle)
            return data if isinstance(data, dict) else {}
    except (OSError, json.JSONDecodeError):
        return {}


def github_tokens(secrets: Optional[Dict[str, Any]] = None) -> List[str]:
    """Return configured GitHub tokens, GITHUB_TOKEN taking precedence."""
    secrets = load_local_secrets() if secrets is None else secrets
    tokens = [t for t in (secrets.get("github_tokens") or []) if t]
    env_token = os.getenv("GITHUB_TOKEN")
    if env_token:
        tokens = [env_token] + [t for t in tokens if t != env_token]
    return tokens


def jira_credentials(secrets: Optional[Dict[str, Any]] = None) -> Tuple[Optional[str], Optional[str]]:
    """Return (email, api_token) for Jira from env, falling back to the secrets file."""
    secrets = load_local_secrets() if secrets is None else secrets
    jira = secrets.get("jira") or {}
    email = os.getenv("JIRA_EMAIL") or jira.get("email")
    token = os.getenv("JIRA_API_TOKEN") or jira.get("api_token")
    return email or None, token or None


__all__ = [
    "load_local_secrets",
    "github_tokens",
    "jira_credentials",
    "DEFAULT_SECRETS_FILENAME",
]
