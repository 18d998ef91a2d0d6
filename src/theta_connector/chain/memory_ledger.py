"""In-process ledger: a simulated queueing contract with no network calls.

Keeps allocations, the line, turns, tokens and points in memory and
emits the same events as the deployed contract when a transaction is
confirmed.  Calls are validated on submission (a failing check is a
``SubmissionError``, like a revert during gas estimation) and re-checked
on confirmation (a failing check there yields a status-0 receipt).

Test hooks: ``fail_next_submit`` / ``fail_next_confirmation`` inject
failures, ``hold_events`` keeps emitted events back until
``release_events``, and ``emit`` delivers an arbitrary raw event.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict, deque
from typing import Any, Callable

from theta_connector.core.errors import ConfirmationError, LedgerError, SubmissionError
from theta_connector.core.events import ChainEvent
from theta_connector.core.interfaces import EventHandler
from theta_connector.core.models import TxHandle, TxReceipt

logger = logging.getLogger(__name__)


def _tx_hash() -> str:
    return "0x" + uuid.uuid4().hex + uuid.uuid4().hex


class _Revert(Exception):
    """Raised by an operation whose contract checks fail."""


class MemoryLedger:
    """Simulated chain client implementing ``IChainClient``.

    Parameters
    ----------
    hold_events:
        Keep emitted events back until ``release_events`` is called.
    confirmation_delay:
        Seconds ``wait_for_receipt`` sleeps before mining, to let tests
        interleave concurrent calls.
    """

    def __init__(
        self,
        hold_events: bool = False,
        confirmation_delay: float = 0.0,
    ) -> None:
        self.hold_events = hold_events
        self._confirmation_delay = confirmation_delay

        # event name -> subscription id -> handler
        self._subscribers: dict[str, dict[str, EventHandler]] = defaultdict(dict)
        self._pending: dict[str, TxHandle] = {}
        self._receipts: dict[str, TxReceipt] = {}
        self._held: list[ChainEvent] = []
        self._block = 0
        self._nonce = 0
        self._started = False
        self._closed = False

        # Contract state
        self._sessions: dict[str, int] = {}
        self._next_user_id = 1
        self._line: deque[int] = deque()
        self._turns: dict[int, int] = {}
        self._last_turn = 0
        self._next_token_id = 1
        self._tokens: dict[int, list[tuple[int, str]]] = defaultdict(list)
        self._points: dict[int, int] = defaultdict(int)

        # Failure injection
        self._fail_submit: str | None = None
        self._fail_confirm: str | None = None

        # Inspection
        self.submitted: list[TxHandle] = []

        self._operations: dict[str, Callable[..., list[ChainEvent]]] = {
            "allocateUser": self._allocate_user,
            "addToLine": self._add_to_line,
            "peek": self._peek,
            "rewardGameToken": self._reward_game_token,
            "rewardPoints": self._reward_points,
        }
        self._checks: dict[str, Callable[..., None]] = {
            "addToLine": self._check_add_to_line,
            "peek": self._check_peek,
            "rewardPoints": self._check_reward_points,
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        self._started = True
        self._closed = False

    async def close(self) -> None:
        self._closed = True

    @property
    def started(self) -> bool:
        return self._started and not self._closed

    @property
    def block_number(self) -> int:
        return self._block

    # ------------------------------------------------------------------
    # Failure injection
    # ------------------------------------------------------------------

    def fail_next_submit(self, message: str = "execution reverted") -> None:
        self._fail_submit = message

    def fail_next_confirmation(self, message: str = "transaction not mined") -> None:
        self._fail_confirm = message

    # ------------------------------------------------------------------
    # IChainClient
    # ------------------------------------------------------------------

    async def submit(self, operation: str, *args: Any) -> TxHandle:
        if self._fail_submit is not None:
            message, self._fail_submit = self._fail_submit, None
            raise SubmissionError(f"{operation}: {message}")
        if operation not in self._operations:
            raise SubmissionError(f"Unknown contract function: {operation}")
        try:
            self._check(operation, args)
        except _Revert as exc:
            raise SubmissionError(f"{operation}: execution reverted: {exc}") from exc

        handle = TxHandle(
            tx_hash=_tx_hash(), operation=operation, args=args, nonce=self._nonce
        )
        self._nonce += 1
        self._pending[handle.tx_hash] = handle
        self.submitted.append(handle)
        return handle

    async def wait_for_receipt(self, handle: TxHandle) -> TxReceipt:
        if self._confirmation_delay:
            await asyncio.sleep(self._confirmation_delay)
        if handle.tx_hash in self._receipts:
            return self._receipts[handle.tx_hash]
        if self._fail_confirm is not None:
            message, self._fail_confirm = self._fail_confirm, None
            raise ConfirmationError(message, tx_hash=handle.tx_hash)
        pending = self._pending.pop(handle.tx_hash, None)
        if pending is None:
            raise ConfirmationError("Unknown transaction", tx_hash=handle.tx_hash)

        self._block += 1
        try:
            self._check(pending.operation, pending.args)
            events = self._operations[pending.operation](*pending.args)
            status = 1
        except _Revert as exc:
            logger.info("%s reverted on confirmation: %s", pending.operation, exc)
            events = []
            status = 0

        for index, event in enumerate(events):
            event.block_number = self._block
            event.log_index = index
            event.tx_hash = pending.tx_hash

        receipt = TxReceipt(
            tx_hash=pending.tx_hash,
            block_number=self._block,
            status=status,
            gas_used=21_000,
            logs=[{"event": e.name, "args": e.args} for e in events],
        )
        self._receipts[receipt.tx_hash] = receipt

        for event in events:
            if self.hold_events:
                self._held.append(event)
            else:
                await self._deliver(event)
        return receipt

    async def subscribe(self, event_name: str, handler: EventHandler) -> str:
        sub_id = f"{event_name}:{uuid.uuid4().hex[:8]}"
        self._subscribers[event_name][sub_id] = handler
        return sub_id

    async def unsubscribe(self, subscription_id: str) -> None:
        for handlers in self._subscribers.values():
            handlers.pop(subscription_id, None)

    async def call(self, function: str, *args: Any) -> Any:
        if function == "line_turn":
            return self._turns.get(int(args[0]), 0)
        if function == "first_in_line":
            return self._line[0] if self._line else 0
        raise LedgerError(f"Unknown view function: {function}")

    # ------------------------------------------------------------------
    # Event delivery
    # ------------------------------------------------------------------

    async def emit(self, event_name: str, **args: Any) -> ChainEvent:
        """Deliver a raw event to subscribers, as if read from the chain."""
        event = ChainEvent(name=event_name, args=args, block_number=self._block)
        await self._deliver(event)
        return event

    async def release_events(self) -> int:
        """Deliver held events in emission order."""
        held, self._held = self._held, []
        for event in held:
            await self._deliver(event)
        return len(held)

    @property
    def held_events(self) -> list[ChainEvent]:
        return list(self._held)

    def subscriber_count(self, event_name: str | None = None) -> int:
        if event_name is not None:
            return len(self._subscribers.get(event_name, {}))
        return sum(len(h) for h in self._subscribers.values())

    async def _deliver(self, event: ChainEvent) -> None:
        for sub_id, handler in list(self._subscribers.get(event.name, {}).items()):
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Subscriber %s failed on %s event", sub_id, event.name
                )

    # ------------------------------------------------------------------
    # Contract
    # ------------------------------------------------------------------

    def _check(self, operation: str, args: tuple[Any, ...]) -> None:
        check = self._checks.get(operation)
        if check is not None:
            check(*args)

    def _allocate_user(self, session_id: str, encoded_key: str) -> list[ChainEvent]:
        user_id = self._next_user_id
        self._next_user_id += 1
        self._sessions[session_id] = user_id
        return [
            ChainEvent(
                name="userAllocated",
                args={"sessionID": session_id, "userID": user_id},
            )
        ]

    def _check_add_to_line(self, user_id: Any) -> None:
        if int(user_id) in self._line:
            raise _Revert(f"user {user_id} already in line")

    def _add_to_line(self, user_id: Any) -> list[ChainEvent]:
        uid = int(user_id)
        self._last_turn += 1
        self._turns[uid] = self._last_turn
        self._line.append(uid)
        return [
            ChainEvent(name="turnAssigned", args={"userID": uid, "turn": self._last_turn})
        ]

    def _check_peek(self) -> None:
        if not self._line:
            raise _Revert("line is empty")

    def _peek(self) -> list[ChainEvent]:
        uid = self._line.popleft()
        return [ChainEvent(name="linePeeked", args={"userID": uid})]

    def _reward_game_token(self, user_id: Any, url: str) -> list[ChainEvent]:
        uid = int(user_id)
        token_id = self._next_token_id
        self._next_token_id += 1
        self._tokens[uid].append((token_id, url))
        return [
            ChainEvent(name="tokenRewarded", args={"userID": uid, "tokenId": token_id})
        ]

    def _check_reward_points(self, user_id: Any, points: Any) -> None:
        if int(points) < 0:
            raise _Revert("points must be non-negative")

    def _reward_points(self, user_id: Any, points: Any) -> list[ChainEvent]:
        uid = int(user_id)
        self._points[uid] += int(points)
        return [
            ChainEvent(
                name="pointsRewarded", args={"userID": uid, "points": self._points[uid]}
            )
        ]
