"""Test the correlated call: submit, confirm, await event, clean up.

All chain calls go to a MemoryLedger; events reach the registry through
a real EventDispatcher.
"""

from __future__ import annotations

import asyncio

import pytest

from theta_connector.chain.memory_ledger import MemoryLedger
from theta_connector.core.enums import DuplicatePolicy, EventKind
from theta_connector.core.errors import (
    CallInFlightError,
    ConfirmationError,
    EventTimeoutError,
    NotConnectedError,
    SubmissionError,
)
from theta_connector.correlation.dispatcher import EventDispatcher
from theta_connector.correlation.protocol import CorrelatedCall
from theta_connector.correlation.registry import EventRegistry
from theta_connector.observability.logger import (
    get_call_id,
    reset_call_id,
    set_call_id,
)


async def _settle(rounds: int = 20) -> None:
    for _ in range(rounds):
        await asyncio.sleep(0)


def _points_tx(client):
    # Any transaction that confirms; the protocol does not inspect it.
    return client.submit("rewardPoints", 1, 0)


async def _wired(
    ledger: MemoryLedger,
    registry: EventRegistry | None = None,
    **kwargs,
) -> tuple[EventRegistry, CorrelatedCall]:
    if registry is None:
        registry = EventRegistry()
    await EventDispatcher(registry).attach(ledger)
    return registry, CorrelatedCall(registry, lambda: ledger, **kwargs)


class TestHappyPath:
    async def test_returns_event_payload_and_cleans_up(self, ledger):
        registry, calls = await _wired(ledger)

        user_id = await calls.run(
            EventKind.USER_ALLOCATED,
            "session-42",
            lambda c: c.submit("allocateUser", "session-42", "0x00"),
        )

        assert user_id == 1
        assert len(registry) == 0

    async def test_extract_applied(self, ledger):
        _, calls = await _wired(ledger)

        turn = await calls.run(
            EventKind.TURN_ASSIGNED,
            5,
            lambda c: c.submit("addToLine", 5),
            extract=str,
        )

        assert turn == "1"

    async def test_event_before_confirmation_is_not_lost(self):
        ledger = MemoryLedger(hold_events=True)
        registry, calls = await _wired(ledger)

        async def submit_and_emit(client):
            handle = await client.submit("addToLine", 2)
            await ledger.emit("turnAssigned", userID=2, turn=41)
            return handle

        assert await calls.run(EventKind.TURN_ASSIGNED, 2, submit_and_emit) == 41
        assert len(registry) == 0


class TestNotConnected:
    async def test_fails_fast_without_network_call(self, ledger, registry):
        def require_client():
            raise NotConnectedError()

        calls = CorrelatedCall(registry, require_client)

        with pytest.raises(NotConnectedError):
            await calls.run(EventKind.LINE_PEEKED, "_", lambda c: c.submit("peek"))

        assert ledger.submitted == []
        assert len(registry) == 0


class TestConcurrentSameKey:
    async def test_overwritten_caller_never_resolves(self):
        ledger = MemoryLedger(hold_events=True)
        registry, calls = await _wired(ledger)

        first = asyncio.create_task(calls.run(EventKind.TURN_ASSIGNED, "user-9", _points_tx))
        await _settle()
        c1 = registry.get(EventKind.TURN_ASSIGNED, "user-9")
        second = asyncio.create_task(calls.run(EventKind.TURN_ASSIGNED, "user-9", _points_tx))
        await _settle()

        assert registry.get(EventKind.TURN_ASSIGNED, "user-9") is not c1
        await ledger.emit("turnAssigned", userID="user-9", turn=3)

        assert await asyncio.wait_for(second, timeout=1) == 3
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(asyncio.shield(first), timeout=0.05)
        assert not first.done()
        first.cancel()
        with pytest.raises(asyncio.CancelledError):
            await first

    async def test_reject_policy_surfaces_second_call(self):
        ledger = MemoryLedger(hold_events=True)
        registry, calls = await _wired(
            ledger, EventRegistry(duplicate_policy=DuplicatePolicy.REJECT)
        )

        first = asyncio.create_task(calls.run(EventKind.TURN_ASSIGNED, "user-9", _points_tx))
        await _settle()

        with pytest.raises(CallInFlightError):
            await asyncio.wait_for(
                calls.run(EventKind.TURN_ASSIGNED, "user-9", _points_tx), timeout=1
            )
        assert registry.duplicate_policy == DuplicatePolicy.REJECT
        assert len(ledger.submitted) == 1

        await ledger.emit("turnAssigned", userID="user-9", turn=3)
        assert await asyncio.wait_for(first, timeout=1) == 3

    async def test_different_keys_resolve_independently(self):
        ledger = MemoryLedger(hold_events=True)
        registry, calls = await _wired(ledger)

        a = asyncio.create_task(calls.run(EventKind.TOKEN_REWARDED, 1, _points_tx))
        b = asyncio.create_task(calls.run(EventKind.TOKEN_REWARDED, 2, _points_tx))
        await _settle()

        await ledger.emit("tokenRewarded", userID=2, tokenId=20)
        await ledger.emit("tokenRewarded", userID=1, tokenId=10)

        assert await asyncio.wait_for(asyncio.gather(a, b), timeout=1) == [10, 20]
        assert len(registry) == 0


class TestFailures:
    async def test_submission_failure_cleans_up(self, ledger):
        registry, calls = await _wired(ledger)
        ledger.fail_next_submit()

        with pytest.raises(SubmissionError, match="reverted"):
            await calls.run(EventKind.TURN_ASSIGNED, "user-1", lambda c: c.submit("addToLine", 1))

        assert (EventKind.TURN_ASSIGNED, "user-1") not in registry

    async def test_submission_failure_leaves_residual_entry_without_cleanup(self, ledger):
        registry, calls = await _wired(ledger, cleanup_on_failure=False)
        ledger.fail_next_submit()

        with pytest.raises(SubmissionError):
            await calls.run(EventKind.TURN_ASSIGNED, 1, lambda c: c.submit("addToLine", 1))

        assert (EventKind.TURN_ASSIGNED, 1) in registry

        # A later call for the same key replaces and then removes it.
        assert await calls.run(EventKind.TURN_ASSIGNED, 1, lambda c: c.submit("addToLine", 1)) == 1
        assert len(registry) == 0

    async def test_unexpected_submit_exception_is_wrapped(self, ledger):
        registry, calls = await _wired(ledger)

        async def broken(client):
            raise RuntimeError("socket closed")

        with pytest.raises(SubmissionError, match="socket closed"):
            await calls.run(EventKind.LINE_PEEKED, "_", broken)
        assert len(registry) == 0

    async def test_confirmation_failure_cleans_up(self, ledger):
        registry, calls = await _wired(ledger)
        ledger.fail_next_confirmation("timeout")

        with pytest.raises(ConfirmationError, match="timeout"):
            await calls.run(EventKind.POINTS_REWARDED, 3, lambda c: c.submit("rewardPoints", 3, 5))

        assert len(registry) == 0

    async def test_revert_on_confirmation(self, ledger):
        registry, calls = await _wired(ledger)
        await ledger.submit("addToLine", 1)
        await ledger.wait_for_receipt(ledger.submitted[-1])
        rival = await ledger.submit("peek")

        async def racing_peek(client):
            handle = await client.submit("peek")
            await client.wait_for_receipt(rival)  # drains the line first
            return handle

        with pytest.raises(ConfirmationError, match="reverted"):
            await calls.run(EventKind.LINE_PEEKED, "_", racing_peek)
        assert len(registry) == 0

    async def test_event_timeout(self):
        ledger = MemoryLedger(hold_events=True)
        registry, calls = await _wired(ledger, event_timeout=0.05)

        with pytest.raises(EventTimeoutError, match="turnAssigned"):
            await calls.run(EventKind.TURN_ASSIGNED, 4, lambda c: c.submit("addToLine", 4))

        assert len(registry) == 0
        assert len(ledger.held_events) == 1

    async def test_cancelled_during_confirmation_cleans_up(self):
        ledger = MemoryLedger(confirmation_delay=1.0)
        registry, calls = await _wired(
            ledger, EventRegistry(duplicate_policy=DuplicatePolicy.REJECT)
        )

        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(
                calls.run(EventKind.TURN_ASSIGNED, 1, lambda c: c.submit("addToLine", 1)),
                timeout=0.05,
            )
        assert len(registry) == 0

        # The key is free again, so a retry is not rejected.
        ledger._confirmation_delay = 0.0
        turn = await asyncio.wait_for(
            calls.run(EventKind.TURN_ASSIGNED, 1, lambda c: c.submit("addToLine", 1)),
            timeout=1,
        )
        assert turn == 1
        assert len(registry) == 0


class TestCallId:
    async def test_call_id_scoped_to_the_call(self, ledger):
        _, calls = await _wired(ledger)
        seen = []

        async def submit(client):
            seen.append(get_call_id())
            return await client.submit("addToLine", 1)

        token = set_call_id("outer")
        try:
            await calls.run(EventKind.TURN_ASSIGNED, 1, submit)
            assert get_call_id() == "outer"
        finally:
            reset_call_id(token)

        assert seen[0] not in ("", "outer")

    async def test_call_id_restored_after_failure(self, ledger):
        _, calls = await _wired(ledger)
        ledger.fail_next_submit()
        before = get_call_id()

        with pytest.raises(SubmissionError):
            await calls.run(EventKind.TURN_ASSIGNED, 1, lambda c: c.submit("addToLine", 1))

        assert get_call_id() == before
