"""Connection lifecycle and the queueing-contract operations.

``ThetaConnector`` owns one registry, one dispatcher and, once connected,
one chain client.  Each instance is independent, so several connectors
(e.g. against different in-memory ledgers) can coexist in one process.

States: ``disconnected`` -> ``connecting`` -> ``connected``.  A failed
connection attempt is logged and returns to ``disconnected``; there is
no automatic retry.  Every operation fails fast with
``NotConnectedError`` until ``init`` succeeds.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from .chain.encoding import encode_key
from .chain.factory import create_chain_client
from .core.config import NetworkProfile, Settings
from .core.enums import ConnectionState, EventKind
from .core.errors import NotConnectedError
from .core.events import SENTINEL_KEY
from .core.interfaces import IChainClient, ILineMember
from .core.models import Allocation
from .correlation.dispatcher import EventDispatcher
from .correlation.protocol import CorrelatedCall
from .correlation.registry import Continuation, EventRegistry

logger = logging.getLogger(__name__)

ClientFactory = Callable[[NetworkProfile, Settings], IChainClient]


class ThetaConnector:
    """Correlates contract transactions with the events they emit.

    Parameters
    ----------
    settings:
        Connector settings; defaults are used when omitted.
    client_factory:
        Builds the chain client for the resolved network profile.
        Defaults to the web3 client.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        client_factory: ClientFactory | None = None,
    ) -> None:
        self._settings = settings or Settings()
        self._client_factory = client_factory or create_chain_client
        self._state = ConnectionState.DISCONNECTED
        self._client: IChainClient | None = None

        corr = self._settings.correlation
        self._registry = EventRegistry(duplicate_policy=corr.duplicate_policy)
        self._dispatcher = EventDispatcher(self._registry)
        self._calls = CorrelatedCall(
            self._registry,
            self._require_client,
            cleanup_on_failure=corr.cleanup_on_failure,
            event_timeout=corr.event_timeout_s,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_connected(self) -> bool:
        return self._state == ConnectionState.CONNECTED

    @property
    def client(self) -> IChainClient | None:
        return self._client

    @property
    def registry(self) -> EventRegistry:
        return self._registry

    @property
    def dispatcher(self) -> EventDispatcher:
        return self._dispatcher

    @property
    def settings(self) -> Settings:
        return self._settings

    async def init(self) -> bool:
        """Connect and subscribe.  Returns whether the connector is connected.

        Errors are logged, not raised.  Calling ``init`` again replaces the
        current client and re-subscribes.
        """
        logger.info("Theta connector initialization (network=%s)", self._settings.network.value)
        if self._client is not None:
            await self._drop_client()
        self._state = ConnectionState.CONNECTING
        try:
            await self._connect()
        except Exception:
            logger.exception("Error connecting to %s", self._settings.network.value)
            await self._drop_client()
            return False
        self._state = ConnectionState.CONNECTED
        logger.info("Connected to %s", self._settings.network.value)
        return True

    async def _connect(self) -> None:
        profile = self._settings.resolve_network()
        client = self._client_factory(profile, self._settings)
        self._client = client
        await client.start()
        await self._dispatcher.attach(client)

    async def close(self) -> None:
        await self._drop_client()

    async def _drop_client(self) -> None:
        client, self._client = self._client, None
        self._state = ConnectionState.DISCONNECTED
        await self._dispatcher.detach()
        if client is not None:
            try:
                await client.close()
            except Exception:
                logger.warning("Error closing chain client", exc_info=True)

    def _require_client(self) -> IChainClient:
        if self._client is None or not self.is_connected:
            raise NotConnectedError()
        return self._client

    # ------------------------------------------------------------------
    # Correlated operations
    # ------------------------------------------------------------------

    async def allocate_user(self, session_id: str, secret_word: str) -> Allocation:
        """Allocate a user for *session_id*; returns its id and the hashed key."""
        self._require_client()
        encoded = encode_key(secret_word)
        user_id = await self._calls.run(
            EventKind.USER_ALLOCATED,
            session_id,
            lambda client: client.submit("allocateUser", session_id, encoded),
        )
        return Allocation(user_id=user_id, encoded_key=encoded)

    async def add_to_line(self, user_id: Any) -> int:
        """Put *user_id* in line; returns the assigned turn."""
        return await self._calls.run(
            EventKind.TURN_ASSIGNED,
            user_id,
            lambda client: client.submit("addToLine", user_id),
            extract=int,
        )

    async def peek(self) -> Any:
        """Remove the first user in line; returns its id.

        Only one peek may be in flight process-wide.
        """
        return await self._calls.run(
            EventKind.LINE_PEEKED,
            SENTINEL_KEY,
            lambda client: client.submit("peek"),
        )

    async def reward_game_token(self, user_id: Any, nft_url: str) -> Any:
        """Mint a game token for *user_id*; returns the token id."""
        return await self._calls.run(
            EventKind.TOKEN_REWARDED,
            user_id,
            lambda client: client.submit("rewardGameToken", user_id, nft_url),
        )

    async def reward_points(self, user_id: Any, points: int) -> int:
        """Add *points* to *user_id*; returns the cumulative total."""
        return await self._calls.run(
            EventKind.POINTS_REWARDED,
            user_id,
            lambda client: client.submit("rewardPoints", user_id, points),
            extract=int,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    async def sync_user(self, user: ILineMember) -> bool:
        """Pull the user's turn from the contract.

        Assigns the on-chain turn when it is still ahead of the turn at the
        head of the line.  Returns whether the user was updated.
        """
        client = self._require_client()
        turn = await client.call("line_turn", user.get_user_id())
        first_in_line = await client.call("first_in_line")
        current_turn = await client.call("line_turn", first_in_line)
        if turn > current_turn:
            user.assign_turn(turn)
            return True
        return False

    # ------------------------------------------------------------------
    # Raw listeners
    # ------------------------------------------------------------------

    def add_event_listener(
        self, kind: EventKind, key: Any, callback: Callable[[Any], Any]
    ) -> Continuation:
        return self._registry.register(kind, key, callback)

    def remove_event_listener(self, kind: EventKind, key: Any) -> bool:
        return self._registry.deregister(kind, key)

    encode_key = staticmethod(encode_key)
