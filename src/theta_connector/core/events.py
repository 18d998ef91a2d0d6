"""Chain event model and the per-kind field schema.

Every contract event the connector listens to is normalised into a
``ChainEvent`` before routing.  ``EVENT_SCHEMAS`` records, per event kind,
which argument carries the correlation key and which one is handed to the
waiting caller.
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

from pydantic import BaseModel, Field

from .enums import EventKind
from .errors import MalformedEventError

# Key used for event kinds that carry no per-caller discriminator.
SENTINEL_KEY = "_"


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ChainEvent(BaseModel):
    """A decoded contract log."""

    event_id: str = Field(default_factory=_uuid)
    timestamp: datetime = Field(default_factory=_now)
    name: str
    args: dict[str, Any] = Field(default_factory=dict)
    block_number: int | None = None
    log_index: int | None = None
    tx_hash: str = ""


@dataclass(frozen=True)
class EventSchema:
    kind: EventKind
    key_field: str | None  # None: routed under SENTINEL_KEY
    payload_field: str

    def correlation_key(self, event: ChainEvent) -> str:
        if self.key_field is None:
            return SENTINEL_KEY
        return correlation_key(self._field(event, self.key_field))

    def payload(self, event: ChainEvent) -> Any:
        return self._field(event, self.payload_field)

    def _field(self, event: ChainEvent, field_name: str) -> Any:
        try:
            return event.args[field_name]
        except KeyError:
            raise MalformedEventError(
                f"{self.kind.value} event missing field {field_name!r}: "
                f"{sorted(event.args)}"
            ) from None


EVENT_SCHEMAS: dict[EventKind, EventSchema] = {
    EventKind.USER_ALLOCATED: EventSchema(
        EventKind.USER_ALLOCATED, key_field="sessionID", payload_field="userID"
    ),
    EventKind.TURN_ASSIGNED: EventSchema(
        EventKind.TURN_ASSIGNED, key_field="userID", payload_field="turn"
    ),
    EventKind.LINE_PEEKED: EventSchema(
        EventKind.LINE_PEEKED, key_field=None, payload_field="userID"
    ),
    EventKind.TOKEN_REWARDED: EventSchema(
        EventKind.TOKEN_REWARDED, key_field="userID", payload_field="tokenId"
    ),
    EventKind.POINTS_REWARDED: EventSchema(
        EventKind.POINTS_REWARDED, key_field="userID", payload_field="points"
    ),
}


def correlation_key(value: Any) -> str:
    """Normalise a key value so chain integers and caller strings compare equal."""
    return str(value)
