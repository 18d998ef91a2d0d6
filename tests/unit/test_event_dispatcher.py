"""Test EventDispatcher subscription wiring and event routing."""

from theta_connector.chain.memory_ledger import MemoryLedger
from theta_connector.core.enums import EventKind
from theta_connector.core.events import ChainEvent
from theta_connector.correlation.dispatcher import EventDispatcher


class TestAttach:
    async def test_subscribes_once_per_kind(self, registry, ledger):
        dispatcher = EventDispatcher(registry)
        await dispatcher.attach(ledger)

        assert ledger.subscriber_count() == len(EventKind)
        for kind in EventKind:
            assert ledger.subscriber_count(kind.value) == 1

    async def test_reattach_is_idempotent(self, registry, ledger):
        dispatcher = EventDispatcher(registry)
        await dispatcher.attach(ledger)
        await dispatcher.attach(ledger)

        assert ledger.subscriber_count() == len(EventKind)

    async def test_reattach_to_new_client_drops_old(self, registry, ledger):
        dispatcher = EventDispatcher(registry)
        await dispatcher.attach(ledger)
        replacement = MemoryLedger()
        await dispatcher.attach(replacement)

        assert ledger.subscriber_count() == 0
        assert replacement.subscriber_count() == len(EventKind)

    async def test_detach(self, registry, ledger):
        dispatcher = EventDispatcher(registry)
        await dispatcher.attach(ledger)
        await dispatcher.detach()

        assert ledger.subscriber_count() == 0
        assert dispatcher.subscriptions == []


class TestRouting:
    async def test_routes_by_session_id(self, registry, ledger):
        dispatcher = EventDispatcher(registry)
        await dispatcher.attach(ledger)
        received = []
        registry.register(EventKind.USER_ALLOCATED, "session-42", received.append)

        await ledger.emit("userAllocated", sessionID="session-42", userID="user-7")

        assert received == ["user-7"]
        assert dispatcher.events_routed == 1

    async def test_peek_uses_sentinel_key(self, registry, ledger):
        dispatcher = EventDispatcher(registry)
        await dispatcher.attach(ledger)
        received = []
        registry.register(EventKind.LINE_PEEKED, "_", received.append)

        await ledger.emit("linePeeked", userID=3)

        assert received == [3]

    async def test_unmatched_event_is_dropped(self, registry, ledger):
        dispatcher = EventDispatcher(registry)
        await dispatcher.attach(ledger)

        await ledger.emit("linePeeked", userID="user-3")

        assert dispatcher.events_dropped == 1
        assert dispatcher.get_error_counts() == {}

    async def test_dispatch_continues_after_unmatched_event(self, registry, ledger):
        dispatcher = EventDispatcher(registry)
        await dispatcher.attach(ledger)
        received = []
        registry.register(EventKind.POINTS_REWARDED, "4", received.append)

        await ledger.emit("linePeeked", userID="user-3")
        await ledger.emit("pointsRewarded", userID=4, points=25)

        assert received == [25]

    async def test_malformed_event_is_contained(self, registry, ledger):
        dispatcher = EventDispatcher(registry)
        await dispatcher.attach(ledger)
        received = []
        registry.register(EventKind.TURN_ASSIGNED, "8", received.append)

        await ledger.emit("turnAssigned", userID=8)  # no turn field
        await ledger.emit("turnAssigned", userID=8, turn=2)

        assert dispatcher.get_error_counts() == {"turnAssigned": 1}
        assert received == [2]

    async def test_failing_continuation_is_contained(self, registry):
        dispatcher = EventDispatcher(registry)

        def boom(payload):
            raise RuntimeError("boom")

        registry.register(EventKind.TOKEN_REWARDED, "1", boom)
        event = ChainEvent(name="tokenRewarded", args={"userID": 1, "tokenId": 9})

        assert await dispatcher.handle(EventKind.TOKEN_REWARDED, event) is False
        assert dispatcher.get_error_counts() == {"tokenRewarded": 1}
