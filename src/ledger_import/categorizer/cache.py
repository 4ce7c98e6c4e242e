"""In-process cache of AI categorization answers.

Keyed by the trimmed, uppercased raw row, so each distinct statement row costs
at most one API call for the lifetime of the cache.
"""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone


def cache_key(raw_row: str) -> str:
    return raw_row.strip().upper()


@dataclass(frozen=True)
class AICacheEntry:
    """A cached categorization answer."""

    description: str
    entity_name: str | None
    category: str | None
    cached_at: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    )

    def to_dict(self) -> dict:
        return {
            "description": self.description,
            "entityName": self.entity_name,
            "category": self.category,
            "cachedAt": self.cached_at,
        }


class AIResponseCache:
    """Thread-safe map of raw row → cached answer.

    Constructed explicitly and handed to the categorizer, so tests and
    separate services never share state by accident.
    """

    def __init__(self) -> None:
        self._entries: dict[str, AICacheEntry] = {}
        self._lock = threading.Lock()

    def get(self, raw_row: str) -> AICacheEntry | None:
        with self._lock:
            return self._entries.get(cache_key(raw_row))

    def set(self, raw_row: str, entry: AICacheEntry) -> None:
        with self._lock:
            self._entries[cache_key(raw_row)] = entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
