"""Grouped detail lookups with a degrade-to-singleton fallback per batch."""

from __future__ import annotations

import time
from typing import Callable, Dict, Hashable, List, Optional, Sequence, TypeVar

from .config import BATCH_PAUSE_SEC, PR_DETAIL_BATCH_SIZE
from .errors import ApiError, AuthError

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


def chunked(items: Sequence[K], size: int) -> List[List[K]]:
    """Split `items` into consecutive lists of at most `size` entries."""
    size = max(1, int(size))
    return [list(items[i:i + size]) for i in range(0, len(items), size)]


def resolve_in_batches(ids: Sequence[K],
                       batch_fetch: Callable[[List[K]], Dict[K, V]],
                       single_fetch: Callable[[K], Optional[V]],
                       *,
                       batch_size: int = PR_DETAIL_BATCH_SIZE,
                       pause_sec: float = BATCH_PAUSE_SEC,
                       label: str = "details") -> Dict[K, V]:
    """Resolve details for `ids`, one combined request per batch.

    When a batch call fails, only that batch falls back to `single_fetch` per id;
    one failing id never hides its siblings. Ids missing from every response are
    dropped, so the result is not guaranteed to cover the input. Authentication
    failures propagate.
    """
    results: Dict[K, V] = {}
    batches = chunked(ids, batch_size)
    for index, batch in enumerate(batches):
        try:
            resolved = batch_fetch(batch)
        except AuthError:
            raise
        except ApiError as exc:
            print(f"[warn] batch {index + 1}/{len(batches)} of {label} failed ({exc}); "
                  f"falling back to {len(batch)} individual fetches")
            resolved = _fetch_individually(batch, single_fetch, label)

        for key in batch:
            if key in resolved and resolved[key] is not None:
                results[key] = resolved[key]

        if index + 1 < len(batches) and pause_sec:
            time.sleep(pause_sec)
    return results


def _fetch_individually(batch: List[K],
                        single_fetch: Callable[[K], Optional[V]],
                        label: str) -> Dict[K, V]:
    resolved: Dict[K, V] = {}
    for key in batch:
        try:
            value = single_fetch(key)
        except AuthError:
            raise
        except ApiError as exc:
            print(f"[warn] {label} {key}: individual fetch failed -> {exc}")
            continue
        if value is not None:
            resolved[key] = value
    return resolved


__all__ = ["chunked", "resolve_in_batches"]
