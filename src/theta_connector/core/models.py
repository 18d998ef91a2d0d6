"""Value objects exchanged with the chain collaborator and callers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, Field


class TxHandle(BaseModel):
    """A submitted, not yet confirmed transaction."""

    tx_hash: str
    operation: str
    args: tuple[Any, ...] = ()
    nonce: int | None = None


class TxReceipt(BaseModel):
    """Inclusion receipt for a confirmed transaction."""

    tx_hash: str
    block_number: int
    status: int = 1
    gas_used: int = 0
    logs: list[dict[str, Any]] = Field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return self.status == 1


class Allocation(BaseModel):
    """Result of ``allocate_user``."""

    user_id: Any
    encoded_key: str


@dataclass
class LineMember:
    """Minimal line participant, usable with ``ThetaConnector.sync_user``."""

    user_id: Any
    turn: int = 0

    def get_user_id(self) -> Any:
        return self.user_id

    def assign_turn(self, turn: int) -> None:
        self.turn = int(turn)
