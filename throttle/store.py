"""Storage for throttle counters.

The throttle talks to its store only through get/set/delete/iterate, so the
in-process dict below can be replaced by a shared cache when several
processes must agree on quotas.
"""

from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional, Protocol, Tuple


@dataclass
class ThrottleEntry:
    """Fixed-window counter for a single (policy, client) pair."""

    window_start: float
    window_duration_ms: int
    limit: int  # effective limit applied to the latest request
    count: int = 0

    @property
    def expires_at(self) -> float:
        """Epoch milliseconds at which the current window ends."""
        return self.window_start + self.window_duration_ms

    def is_elapsed(self, now: float) -> bool:
        return now >= self.expires_at


class ThrottleStore(Protocol):
    """Minimal key/value interface the throttle needs."""

    def get(self, key: str) -> Optional[ThrottleEntry]: ...

    def set(self, key: str, entry: ThrottleEntry) -> None: ...

    def delete(self, key: str) -> None: ...

    def iterate(self) -> Iterator[Tuple[str, ThrottleEntry]]: ...

    def __len__(self) -> int: ...


class InMemoryStore:
    """Process-local store backed by a plain dict.

    Not synchronized on its own; the Throttle serializes access.
    """

    def __init__(self) -> None:
        self._entries: Dict[str, ThrottleEntry] = {}

    def get(self, key: str) -> Optional[ThrottleEntry]:
        return self._entries.get(key)

    def set(self, key: str, entry: ThrottleEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def iterate(self) -> Iterator[Tuple[str, ThrottleEntry]]:
        """Iterate over a snapshot so callers may delete while looping."""
        snapshot: List[Tuple[str, ThrottleEntry]] = list(self._entries.items())
        return iter(snapshot)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries
