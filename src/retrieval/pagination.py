"""Lazy page iteration over list endpoints for page, offset and cursor styles."""

from __future__ import annotations

import time
from typing import Any, Iterator, List

from .config import PAGE_PAUSE_SEC, PER_PAGE, PROGRESS_EVERY_PAGES
from .http_client import Endpoint, RemoteApiClient


def iter_pages(client: RemoteApiClient,
               endpoint: Endpoint,
               *,
               per_page: int = PER_PAGE,
               max_pages: int = 0,
               progress_every: int = PROGRESS_EVERY_PAGES,
               pause_sec: float = PAGE_PAUSE_SEC) -> Iterator[List[Any]]:
    """Yield raw pages until exhaustion, a missing cursor, or `max_pages` (0 = no cap).

    Errors from the client propagate unchanged; retrying is the client's job.
    Cursor endpoints cannot be resumed mid-stream once the token is lost.
    """
    page_number = 1
    cursor = None
    fetched = 0
    while True:
        if max_pages and page_number > max_pages:
            break
        if page_number > 1 and pause_sec:
            time.sleep(pause_sec)

        page = client.list_page(endpoint, page=page_number, per_page=per_page, cursor=cursor)
        if not page.items:
            break

        fetched += len(page.items)
        yield page.items

        if progress_every and page_number % progress_every == 0:
            print(f"  fetched page {page_number} of {endpoint.path}, {fetched} items so far...")

        if endpoint.style == "cursor":
            if not page.next_cursor:
                break
            cursor = page.next_cursor
        else:
            if page.has_more is False:
                break
            if len(page.items) < per_page:
                break
        page_number += 1


def collect_pages(client: RemoteApiClient, endpoint: Endpoint, **kwargs: Any) -> List[Any]:
    """Flatten `iter_pages` into one list."""
    results: List[Any] = []
    for items in iter_pages(client, endpoint, **kwargs):
        results.extend(items)
    return results


__all__ = ["iter_pages", "collect_pages"]
