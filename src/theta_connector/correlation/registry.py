"""In-memory registry of callers awaiting a chain event.

Maps ``(event kind, correlation key)`` to a single one-shot
``Continuation``.  All access happens on one asyncio event loop, so the
mapping needs no lock: register, deregister and dispatch never interleave.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Any, Callable

from theta_connector.core.enums import DuplicatePolicy, EventKind
from theta_connector.core.errors import CallInFlightError
from theta_connector.core.events import correlation_key

logger = logging.getLogger(__name__)


class Continuation:
    """One-shot wrapper around a callback.

    The callback runs at most once.  Calling after it has fired, or after
    the continuation was closed by deregistration, does nothing.
    """

    __slots__ = ("_callback", "_fired", "_closed")

    def __init__(self, callback: Callable[[Any], Any]) -> None:
        self._callback = callback
        self._fired = False
        self._closed = False

    @property
    def fired(self) -> bool:
        return self._fired

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def live(self) -> bool:
        return not (self._fired or self._closed)

    def close(self) -> None:
        self._closed = True

    def __call__(self, payload: Any) -> bool:
        """Invoke the callback.  Returns ``False`` if it was not live."""
        if not self.live:
            return False
        self._fired = True
        self._callback(payload)
        return True


class EventRegistry:
    """At most one live continuation per ``(kind, key)``.

    Parameters
    ----------
    duplicate_policy:
        ``OVERWRITE`` replaces a live registration (the replaced caller is
        never resolved).  ``REJECT`` raises ``CallInFlightError`` instead.
    """

    def __init__(
        self,
        duplicate_policy: DuplicatePolicy = DuplicatePolicy.OVERWRITE,
    ) -> None:
        self._duplicate_policy = duplicate_policy
        # kind -> key -> continuation
        self._entries: dict[EventKind, dict[str, Continuation]] = defaultdict(dict)

        # Observability
        self._dispatched: int = 0
        self._unmatched: int = 0
        self._overwritten: int = 0

    @property
    def duplicate_policy(self) -> DuplicatePolicy:
        return self._duplicate_policy

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def register(
        self,
        kind: EventKind,
        key: Any,
        callback: Callable[[Any], Any],
    ) -> Continuation:
        """Store *callback* for ``(kind, key)`` and return its continuation."""
        key = correlation_key(key)
        continuation = (
            callback if isinstance(callback, Continuation) else Continuation(callback)
        )
        existing = self._entries[kind].get(key)
        if existing is not None and existing.live:
            if self._duplicate_policy == DuplicatePolicy.REJECT:
                raise CallInFlightError(kind.value, key)
            self._overwritten += 1
            existing.close()
            logger.warning(
                "Overwriting live registration for %s[%s]; the previous "
                "caller will not be resolved",
                kind.value,
                key,
            )
        self._entries[kind][key] = continuation
        return continuation

    def deregister(
        self,
        kind: EventKind,
        key: Any,
        continuation: Continuation | None = None,
    ) -> bool:
        """Remove the entry for ``(kind, key)``.

        When *continuation* is given, the entry is only removed if it is
        still that continuation, so a caller cleaning up after itself does
        not remove a newer registration.  Missing entries are not an error.
        """
        key = correlation_key(key)
        entries = self._entries.get(kind)
        if not entries or key not in entries:
            return False
        current = entries[key]
        if continuation is not None and current is not continuation:
            return False
        del entries[key]
        current.close()
        return True

    def clear(self) -> None:
        for entries in self._entries.values():
            for continuation in entries.values():
                continuation.close()
        self._entries.clear()

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def dispatch(self, kind: EventKind, key: Any, payload: Any) -> bool:
        """Invoke the continuation waiting on ``(kind, key)`` with *payload*.

        Returns ``True`` if a live continuation consumed the payload.  An
        event nobody waits for, or a repeat delivery to a continuation that
        already fired, is dropped and ``False`` is returned.
        """
        key = correlation_key(key)
        continuation = self._entries.get(kind, {}).get(key)
        if continuation is None:
            self._unmatched += 1
            logger.info(
                "No caller waiting for %s[%s]; event dropped", kind.value, key
            )
            return False
        if not continuation(payload):
            self._unmatched += 1
            logger.info(
                "Duplicate %s[%s] delivery ignored; continuation already fired",
                kind.value,
                key,
            )
            return False
        self._dispatched += 1
        return True

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def get(self, kind: EventKind, key: Any) -> Continuation | None:
        return self._entries.get(kind, {}).get(correlation_key(key))

    def pending(self) -> list[tuple[EventKind, str]]:
        """All registered ``(kind, key)`` pairs."""
        return [
            (kind, key)
            for kind, entries in self._entries.items()
            for key in entries
        ]

    def __contains__(self, item: tuple[EventKind, Any]) -> bool:
        kind, key = item
        return self.get(kind, key) is not None

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())

    def get_stats(self) -> dict[str, int]:
        return {
            "pending": len(self),
            "dispatched": self._dispatched,
            "unmatched": self._unmatched,
            "overwritten": self._overwritten,
        }
