"""Jira Cloud REST client implementing the remote client capabilities."""

from __future__ import annotations

from typing import Any, Dict, Optional

import requests

from .config import JIRA_API_PATH, PER_PAGE, REQUEST_TIMEOUT, USER_AGENT
from .errors import RequestError
from .http_client import Endpoint, Page, RemoteApiClient, RetryPolicy


def browse_url(domain: str, key: str) -> str:
    return f"https://{domain.strip().rstrip('/')}/browse/{key}"


class JiraClient(RemoteApiClient):
    """Basic-auth Jira client; list endpoints page by `startAt` offset."""

    def __init__(self, domain: str, email: Optional[str], api_token: Optional[str], *,
                 policy: Optional[RetryPolicy] = None,
                 session: Optional[requests.Session] = None) -> None:
        self.domain = domain.strip().rstrip("/")
        self.base_url = f"https://{self.domain}/{JIRA_API_PATH}"
        self.policy = policy or RetryPolicy()
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/json",
                "Content-Type": "application/json",
                "User-Agent": USER_AGENT,
            }
        )
        if email and api_token:
            self.session.auth = (email, api_token)

    def get_one(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        url = f"{self.base_url}/{path.lstrip('/')}"
        resp = self.policy.call(
            lambda: self.session.get(url, params=params or None, timeout=REQUEST_TIMEOUT),
            label=url,
        )
        payload = resp.json()
        # Jira occasionally reports query problems inside a 200 body
        if isinstance(payload, dict) and (payload.get("errorMessages") or payload.get("errors")):
            detail = payload.get("errorMessages") or payload.get("errors")
            raise RequestError(f"Jira API error: {detail}", status=resp.status_code, url=url)
        return payload

    def list_page(self, endpoint: Endpoint, *, page: int = 1, per_page: int = PER_PAGE,
                  cursor: Optional[str] = None) -> Page:
        start_at = (page - 1) * per_page
        params = dict(endpoint.params)
        params.update({"startAt": start_at, "maxResults": per_page})
        payload = self.get_one(endpoint.path, params) or {}
        items = payload.get(endpoint.items_key or "issues") or []
        total = payload.get("total")
        has_more = None
        if isinstance(total, int):
            has_more = start_at + len(items) < total
        return Page(items=list(items), total=total, has_more=has_more)


__all__ = ["browse_url", "JiraClient"]
