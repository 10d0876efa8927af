"""
Offline — Last-known-good bean snapshot and degraded-mode state

When the backend is unreachable, list requests are answered from the most
recent unfiltered result, filtered in-process the same way the backend
would filter. Snapshots expire after `ttl` seconds.

Degraded mode is a flag, not a counter: `enter_degraded()` reports only the
transition into it, so callers warn the user once per outage rather than
once per call.
"""

import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from ..core.bean import Bean


DEFAULT_CACHE_TTL = 300.0


@dataclass
class BeanFilter:
    """List filter. Empty fields do not constrain the result."""
    status: List[str] = field(default_factory=list)
    type: List[str] = field(default_factory=list)
    search: Optional[str] = None
    parent: Optional[str] = None

    @property
    def is_filtered(self) -> bool:
        return bool(self.status or self.type or self.search or self.parent)

    def matches(self, bean: Bean) -> bool:
        if self.status and bean.status not in self.status:
            return False
        if self.type and bean.type not in self.type:
            return False
        if self.parent and bean.parent != self.parent:
            return False
        if self.search and self.search.lower() not in bean.search_text:
            return False
        return True

    def apply(self, beans: List[Bean]) -> List[Bean]:
        return [b for b in beans if self.matches(b)]

    def to_graphql(self) -> Dict[str, Any]:
        """The BeanFilter input object; unset fields are omitted."""
        result: Dict[str, Any] = {}
        if self.status:
            result["status"] = list(self.status)
        if self.type:
            result["type"] = list(self.type)
        if self.search:
            result["search"] = self.search
        if self.parent:
            result["parent"] = self.parent
        return result


class OfflineCache:
    """Thread-safe snapshot of the last unfiltered list result."""

    def __init__(self, ttl: float = DEFAULT_CACHE_TTL,
                 clock: Callable[[], float] = time.time):
        self.ttl = ttl
        self._clock = clock
        self._lock = threading.Lock()
        self._beans: Optional[List[Bean]] = None
        self._stored_at: Optional[float] = None
        self._degraded = False

    def update(self, beans: List[Bean]) -> None:
        with self._lock:
            self._beans = list(beans)
            self._stored_at = self._clock()

    def _valid_locked(self) -> bool:
        if self._beans is None or self._stored_at is None:
            return False
        return self._clock() - self._stored_at < self.ttl

    def is_valid(self) -> bool:
        with self._lock:
            return self._valid_locked()

    def get(self, bean_filter: Optional[BeanFilter] = None) -> Optional[List[Bean]]:
        """Filtered copy of the snapshot, or None when absent or expired."""
        with self._lock:
            if not self._valid_locked():
                return None
            beans = list(self._beans)
        return bean_filter.apply(beans) if bean_filter else beans

    def clear(self) -> None:
        with self._lock:
            self._beans = None
            self._stored_at = None

    @property
    def degraded(self) -> bool:
        with self._lock:
            return self._degraded

    def enter_degraded(self) -> bool:
        """Set degraded mode. True only if it was not already set."""
        with self._lock:
            was_degraded = self._degraded
            self._degraded = True
            return not was_degraded

    def leave_degraded(self) -> None:
        with self._lock:
            self._degraded = False
