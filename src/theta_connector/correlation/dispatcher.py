"""Routes decoded chain events to the registry.

Subscribes once per event kind to the chain client and turns each
notification into ``EventRegistry.dispatch`` using the kind's schema.
A malformed event or a failing continuation is logged and counted; it
never stops delivery of later events.
"""

from __future__ import annotations

import logging
from collections import defaultdict

from theta_connector.core.enums import EventKind
from theta_connector.core.events import EVENT_SCHEMAS, ChainEvent, EventSchema
from theta_connector.core.interfaces import EventHandler, IChainClient

from .registry import EventRegistry

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Translation layer between chain logs and waiting callers."""

    def __init__(
        self,
        registry: EventRegistry,
        schemas: dict[EventKind, EventSchema] | None = None,
    ) -> None:
        self._registry = registry
        self._schemas = schemas or EVENT_SCHEMAS
        self._client: IChainClient | None = None
        self._subscriptions: list[str] = []

        # Observability
        self._error_counts: dict[str, int] = defaultdict(int)
        self._routed: int = 0
        self._dropped: int = 0

    @property
    def subscriptions(self) -> list[str]:
        return list(self._subscriptions)

    async def attach(self, client: IChainClient) -> None:
        """Subscribe to every event kind on *client*.

        Subscriptions held on a previous client are discarded first, so
        calling this again after a reconnect leaves exactly one
        subscription per kind.
        """
        await self.detach()
        self._client = client
        for kind in self._schemas:
            sub_id = await client.subscribe(kind.value, self._handler_for(kind))
            self._subscriptions.append(sub_id)
        logger.info(
            "Subscribed to %d event kinds: %s",
            len(self._subscriptions),
            ", ".join(kind.value for kind in self._schemas),
        )

    async def detach(self) -> None:
        client, subs = self._client, self._subscriptions
        self._client = None
        self._subscriptions = []
        if client is None:
            return
        for sub_id in subs:
            try:
                await client.unsubscribe(sub_id)
            except Exception:
                logger.warning(
                    "Failed to unsubscribe %s from previous client",
                    sub_id,
                    exc_info=True,
                )

    def _handler_for(self, kind: EventKind) -> EventHandler:
        async def _handle(event: ChainEvent) -> None:
            await self.handle(kind, event)

        return _handle

    async def handle(self, kind: EventKind, event: ChainEvent) -> bool:
        """Route one event; never raises."""
        try:
            return self.route(kind, event)
        except Exception:
            self._error_counts[kind.value] += 1
            logger.exception(
                "Failed to route %s event %s (tx=%s)",
                kind.value,
                event.event_id,
                event.tx_hash,
            )
            return False

    def route(self, kind: EventKind, event: ChainEvent) -> bool:
        schema = self._schemas[kind]
        key = schema.correlation_key(event)
        payload = schema.payload(event)
        logger.info(
            "Chain %s event: key=%s payload=%s block=%s",
            kind.value,
            key,
            payload,
            event.block_number,
        )
        matched = self._registry.dispatch(kind, key, payload)
        if matched:
            self._routed += 1
        else:
            self._dropped += 1
        return matched

    # ------------------------------------------------------------------
    # Observability
    # ------------------------------------------------------------------

    def get_error_counts(self) -> dict[str, int]:
        """Return per-event-kind handler error counts."""
        return dict(self._error_counts)

    @property
    def events_routed(self) -> int:
        return self._routed

    @property
    def events_dropped(self) -> int:
        return self._dropped
