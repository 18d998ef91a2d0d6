"""Protocol interfaces for the connector.

The chain collaborator and the higher-level user abstraction are defined
here as Protocol classes so the web3 client and the in-memory ledger can
be swapped without changing callers.
"""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from .events import ChainEvent
from .models import TxHandle, TxReceipt

# Async handler receiving decoded chain events.
EventHandler = Callable[[ChainEvent], Awaitable[None]]


# ---------------------------------------------------------------------------
# Chain client
# ---------------------------------------------------------------------------

@runtime_checkable
class IChainClient(Protocol):
    """Transaction submission, confirmation, subscription and reads."""

    async def start(self) -> None: ...
    async def close(self) -> None: ...

    async def submit(self, operation: str, *args: Any) -> TxHandle:
        """Send a contract-mutating call.  Raises ``SubmissionError``."""
        ...

    async def wait_for_receipt(self, handle: TxHandle) -> TxReceipt:
        """Wait for inclusion.  Raises ``ConfirmationError``."""
        ...

    async def subscribe(self, event_name: str, handler: EventHandler) -> str:
        """Register a process-lifetime listener.  Returns a subscription id."""
        ...

    async def unsubscribe(self, subscription_id: str) -> None: ...

    async def call(self, function: str, *args: Any) -> Any:
        """Read-only contract call."""
        ...


# ---------------------------------------------------------------------------
# Line member
# ---------------------------------------------------------------------------

@runtime_checkable
class ILineMember(Protocol):
    """The user abstraction consumed by ``sync_user``."""

    def get_user_id(self) -> Any: ...

    def assign_turn(self, turn: int) -> None: ...
