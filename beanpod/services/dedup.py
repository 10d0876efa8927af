"""
Dedup — Collapse identical concurrent backend requests

Requests are keyed by a bounded fingerprint (prefix + 16 hex chars of a
SHA-256 digest), never by the raw payload, so neither keys nor logs can
leak large or sensitive arguments.

The first caller for a fingerprint (the leader) runs the request on its calling
thread and settles a shared Future. Concurrent callers with the same
fingerprint (followers) block on that Future and see the same value or the
same exception. The entry is removed from the in-flight map before the
Future settles, so a call arriving afterwards starts a fresh execution.
"""

import hashlib
import logging
import threading
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, TypeVar

import orjson


logger = logging.getLogger(__name__)

T = TypeVar("T")

FINGERPRINT_LENGTH = 16


def _digest(payload: bytes) -> str:
    return hashlib.sha256(payload).hexdigest()[:FINGERPRINT_LENGTH]


def fingerprint_command(args: List[str]) -> str:
    """Fingerprint for a plain CLI invocation."""
    return "exec:" + _digest("::".join(args).encode("utf-8"))


def fingerprint_graphql(query: str, variables: Optional[Dict[str, Any]] = None) -> str:
    """Fingerprint for a GraphQL document plus its variables."""
    payload = orjson.dumps(
        {"query": query, "variables": variables or {}},
        option=orjson.OPT_SORT_KEYS,
        default=str,
    )
    return "graphql:" + _digest(payload)


@dataclass
class PendingRequest:
    """An in-flight request and how many followers are waiting on it."""
    fingerprint: str
    future: Future
    waiters: int = 0


class RequestDeduplicator:
    """At most one concurrent execution per fingerprint."""

    def __init__(self):
        self._pending: Dict[str, PendingRequest] = {}
        self._lock = threading.Lock()

    @property
    def in_flight_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def waiters(self, fingerprint: str) -> int:
        """Followers currently blocked on `fingerprint` (0 when idle)."""
        with self._lock:
            pending = self._pending.get(fingerprint)
            return pending.waiters if pending else 0

    def run(self, fingerprint: str, fn: Callable[[], T]) -> T:
        """Execute `fn`, or join an identical request already running."""
        with self._lock:
            pending = self._pending.get(fingerprint)
            if pending is not None:
                pending.waiters += 1
                leader = False
            else:
                pending = PendingRequest(fingerprint=fingerprint, future=Future())
                self._pending[fingerprint] = pending
                leader = True

        if not leader:
            logger.debug("Deduplicating request: %s", fingerprint)
            return pending.future.result()

        try:
            result = fn()
        except BaseException as e:
            self._finish(pending)
            pending.future.set_exception(e)
            raise

        self._finish(pending)
        pending.future.set_result(result)
        return result

    def _finish(self, pending: PendingRequest) -> None:
        with self._lock:
            if self._pending.get(pending.fingerprint) is pending:
                del self._pending[pending.fingerprint]
