"""HTTP and GraphQL helpers with retry/backoff logic for the retrieval workflow."""

from __future__ import annotations

import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

import requests

from .config import (
    BASE_URL,
    DEFAULT_BACKOFF_BASE_SEC,
    GRAPHQL_URL,
    MAX_RETRIES,
    MAX_WAIT_SEC,
    NETWORK_BACKOFF_BASE_SEC,
    PER_PAGE,
    RATE_LIMIT_BACKOFF_BASE_SEC,
    REQUEST_TIMEOUT,
    USER_AGENT,
)
from .errors import (
    ApiError,
    AuthError,
    EmptyRepositoryError,
    GraphQLError,
    NotFoundError,
    RequestError,
    RetriesExhaustedError,
)

SUCCESS = "success"
TRANSIENT_NETWORK = "transient-network"
TRANSIENT_RATE_LIMIT = "transient-rate-limit"
TRANSIENT_SERVER = "transient-server"
FATAL_AUTH = "fatal-auth"
FATAL_NOT_FOUND = "fatal-not-found"
FATAL_CONFLICT = "fatal-conflict"
FATAL_REQUEST = "fatal-request"

TRANSIENT_OUTCOMES = {TRANSIENT_NETWORK, TRANSIENT_RATE_LIMIT, TRANSIENT_SERVER}
_FATAL_ERRORS = {
    FATAL_AUTH: AuthError,
    FATAL_NOT_FOUND: NotFoundError,
    FATAL_CONFLICT: EmptyRepositoryError,
    FATAL_REQUEST: RequestError,
}


def sleep_with_jitter(base: float) -> None:
    """Pause execution with +/- 25% jitter to avoid synchronized retries."""
    jitter = base * 0.25 * (0.5 - (os.urandom(1)[0] / 255.0))
    time.sleep(max(0.0, base + jitter))


def error_message(resp: requests.Response) -> str:
    """Pull a short, human-readable message out of an error response."""
    try:
        body = resp.json()
    except ValueError:
        body = {"text": (resp.text or "")[:300]}
    if not isinstance(body, dict):
        return str(body)[:300]
    msg = body.get("message") or body.get("errorMessages") or body.get("error") or body.get("text")
    return str(msg or "")


def log_http_error(resp: requests.Response, url: str) -> None:
    """Print a short, human-readable message when the remote host returns an error."""
    print(f"[error] HTTP {resp.status_code} for {url}\n  -> {error_message(resp)}")


def is_rate_limited(resp: requests.Response) -> bool:
    """True when a 403/429 carries GitHub's or Jira's rate-limit signals."""
    if resp.status_code == 429:
        return True
    headers = resp.headers or {}
    if headers.get("X-RateLimit-Remaining") == "0":
        return True
    if str(headers.get("Retry-After") or "").isdigit():
        return True
    return "rate limit" in (resp.text or "").lower()


def classify_response(resp: requests.Response) -> str:
    """Map an HTTP response onto exactly one retry-policy outcome."""
    status = resp.status_code
    if 200 <= status < 300:
        return SUCCESS
    if status == 401:
        return FATAL_AUTH
    if status in (403, 429):
        return TRANSIENT_RATE_LIMIT if is_rate_limited(resp) else FATAL_AUTH
    if status in (404, 410):
        return FATAL_NOT_FOUND
    if status == 409:
        return FATAL_CONFLICT
    if status in (400, 422):
        return FATAL_REQUEST
    return TRANSIENT_SERVER


@dataclass
class RetryPolicy:
    """Bounded exponential backoff around one remote call.

    Network failures back off from a longer base than rate limits, which are
    expected and clear on their own. Authentication failures are raised on the
    first attempt without consuming the retry budget.
    """

    max_retries: int = MAX_RETRIES
    network_base_sec: float = NETWORK_BACKOFF_BASE_SEC
    rate_limit_base_sec: float = RATE_LIMIT_BACKOFF_BASE_SEC
    default_base_sec: float = DEFAULT_BACKOFF_BASE_SEC
    max_wait_sec: float = MAX_WAIT_SEC
    sleep: Callable[[float], None] = field(default=sleep_with_jitter, repr=False)

    def wait_seconds(self, outcome: str, attempt: int, retry_after: Optional[str] = None) -> float:
        if outcome == TRANSIENT_RATE_LIMIT and retry_after and str(retry_after).isdigit():
            return min(float(retry_after), self.max_wait_sec)
        if outcome == TRANSIENT_NETWORK:
            base = self.network_base_sec
        elif outcome == TRANSIENT_RATE_LIMIT:
            base = self.rate_limit_base_sec
        else:
            base = self.default_base_sec
        return min(base * (2 ** attempt), self.max_wait_sec)

    def call(self, send: Callable[[], requests.Response], label: str) -> requests.Response:
        """Invoke `send` until it succeeds, fails fatally, or exhausts the budget."""
        last_status: Optional[int] = None
        last_detail = ""
        for attempt in range(1, self.max_retries + 1):
            retry_after = None
            try:
                resp = send()
            except requests.RequestException as exc:
                outcome = TRANSIENT_NETWORK
                last_status = None
                last_detail = str(exc)
            else:
                outcome = classify_response(resp)
                if outcome == SUCCESS:
                    return resp
                last_status = resp.status_code
                last_detail = f"HTTP {resp.status_code}"
                if outcome in _FATAL_ERRORS:
                    log_http_error(resp, label)
                    message = error_message(resp)
                    raise _FATAL_ERRORS[outcome](
                        f"{label}: HTTP {resp.status_code} {message}".strip(),
                        status=resp.status_code,
                        url=label,
                    )
                retry_after = (resp.headers or {}).get("Retry-After")

            if attempt >= self.max_retries:
                break
            delay = self.wait_seconds(outcome, attempt, retry_after)
            tag = "rate-limit" if outcome == TRANSIENT_RATE_LIMIT else "retry"
            print(f"[{tag} {attempt}/{self.max_retries}] {label}: {last_detail} -> sleep {delay:.1f}s")
            self.sleep(delay)

        print(f"[error] giving up on {label} after {self.max_retries} attempts ({last_detail})")
        raise RetriesExhaustedError(
            f"{label}: failed after {self.max_retries} attempts ({last_detail})",
            attempts=self.max_retries,
            status=last_status,
            url=label,
        )


@dataclass(frozen=True)
class Endpoint:
    """Describes one list endpoint for the paginated fetcher.

    `style` is "page" (page number), "offset" (start index) or "cursor"
    (opaque token, GraphQL connections). Cursor endpoints carry the GraphQL
    `query` and the key path to the connection inside the response.
    """

    path: str
    params: Dict[str, Any] = field(default_factory=dict)
    style: str = "page"
    query: Optional[str] = None
    connection: Sequence[str] = ()
    items_key: Optional[str] = None


@dataclass
class Page:
    """One page of raw items plus whatever continuation info the API reported."""

    items: List[Any]
    next_cursor: Optional[str] = None
    total: Optional[int] = None
    has_more: Optional[bool] = None


class RemoteApiClient:
    """Capabilities the pipeline needs from a remote host.

    Implementations own transport and credentials; the pipeline only calls
    these three methods, which lets tests substitute in-memory fakes.
    """

    def list_page(self, endpoint: Endpoint, *, page: int = 1, per_page: int = PER_PAGE,
                  cursor: Optional[str] = None) -> Page:
        raise NotImplementedError

    def batch_query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        raise NotImplementedError

    def get_one(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        raise NotImplementedError


def dig(data: Any, keys: Sequence[str]) -> Any:
    """Walk nested dicts, returning None as soon as a level is missing."""
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


class GitHubClient(RemoteApiClient):
    """GitHub REST + GraphQL client driven through a RetryPolicy."""

    def __init__(self, token: Optional[str] = None, *, policy: Optional[RetryPolicy] = None,
                 session: Optional[requests.Session] = None, base_url: str = BASE_URL,
                 graphql_url: str = GRAPHQL_URL) -> None:
        self.base_url = base_url.rstrip("/")
        self.graphql_url = graphql_url
        self.policy = policy or RetryPolicy()
        self.session = session or requests.Session()
        self.session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "User-Agent": USER_AGENT,
            }
        )
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    def _url(self, path: str) -> str:
        if path.startswith("http"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    def _get(self, path: str, params: Optional[Dict[str, Any]] = None) -> requests.Response:
        url = self._url(path)
        return self.policy.call(
            lambda: self.session.get(url, params=params or None, timeout=REQUEST_TIMEOUT),
            label=url,
        )

    def get_one(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self._get(path, params).json()

    def list_page(self, endpoint: Endpoint, *, page: int = 1, per_page: int = PER_PAGE,
                  cursor: Optional[str] = None) -> Page:
        if endpoint.style == "cursor":
            return self._list_connection_page(endpoint, per_page, cursor)

        params = dict(endpoint.params)
        params.update({"per_page": per_page, "page": page})
        payload = self._get(endpoint.path, params).json()
        if endpoint.items_key and isinstance(payload, dict):
            payload = payload.get(endpoint.items_key)
        if not isinstance(payload, list):
            print(f"[warn] {endpoint.path} page {page} returned {type(payload).__name__}, not a list")
            return Page(items=[], has_more=False)
        return Page(items=payload)

    def _list_connection_page(self, endpoint: Endpoint, per_page: int, cursor: Optional[str]) -> Page:
        variables = dict(endpoint.params)
        variables.update({"first": per_page, "after": cursor})
        data = self.batch_query(endpoint.query or "", variables)
        conn = dig(data, endpoint.connection)
        if not isinstance(conn, dict):
            return Page(items=[], has_more=False)
        info = conn.get("pageInfo") or {}
        has_next = bool(info.get("hasNextPage"))
        return Page(
            items=list(conn.get("nodes") or []),
            next_cursor=info.get("endCursor") if has_next else None,
            total=conn.get("totalCount"),
            has_more=has_next,
        )

    def batch_query(self, query: str, variables: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        """Execute a GraphQL document; GraphQL-level errors raise GraphQLError."""
        payload = {"query": query, "variables": variables or {}}
        resp = self.policy.call(
            lambda: self.session.post(self.graphql_url, json=payload, timeout=REQUEST_TIMEOUT),
            label=self.graphql_url,
        )
        data = resp.json() or {}
        if data.get("errors"):
            messages = ", ".join(
                [str(err.get("message")) for err in data["errors"] if isinstance(err, dict)]
            )
            raise GraphQLError(f"GraphQL error: {messages or data['errors']}", url=self.graphql_url)
        return data.get("data") or {}


__all__ = [
    "SUCCESS",
    "TRANSIENT_NETWORK",
    "TRANSIENT_RATE_LIMIT",
    "TRANSIENT_SERVER",
    "FATAL_AUTH",
    "FATAL_NOT_FOUND",
    "FATAL_CONFLICT",
    "FATAL_REQUEST",
    "ApiError",
    "sleep_with_jitter",
    "error_message",
    "log_http_error",
    "is_rate_limited",
    "classify_response",
    "RetryPolicy",
    "Endpoint",
    "Page",
    "RemoteApiClient",
    "dig",
    "GitHubClient",
]
