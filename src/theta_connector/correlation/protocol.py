"""Correlated call: submit a transaction, then wait for its domain event.

The sequence for one call is:

1. fail fast with ``NotConnectedError`` if there is no chain client;
2. register a continuation for ``(kind, key)`` that resolves a future;
3. submit the transaction and wait for its receipt;
4. wait for the dispatcher to deliver the matching event;
5. deregister and return the (optionally extracted) payload.

The continuation is registered before submission, so an event observed
while the receipt is still pending resolves the future early and is not
lost.  Only one call per ``(kind, key)`` may be in flight; see
``EventRegistry`` for what happens to a second one.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, TypeVar

from theta_connector.core.enums import EventKind
from theta_connector.core.errors import (
    ConfirmationError,
    EventTimeoutError,
    LedgerError,
    SubmissionError,
)
from theta_connector.core.events import correlation_key
from theta_connector.core.interfaces import IChainClient
from theta_connector.core.models import TxHandle, TxReceipt
from theta_connector.observability.logger import (
    make_call_id,
    reset_call_id,
    set_call_id,
)

from .registry import Continuation, EventRegistry

logger = logging.getLogger(__name__)

T = TypeVar("T")

SubmitFn = Callable[[IChainClient], Awaitable[TxHandle]]


class CorrelatedCall:
    """Runs correlated calls against a shared registry.

    Parameters
    ----------
    registry:
        Registry shared with the ``EventDispatcher``.
    require_client:
        Returns the connected chain client or raises ``NotConnectedError``.
    cleanup_on_failure:
        Deregister when submission or confirmation fails.  When ``False``
        the registration is left behind until a matching event or a
        later registration replaces it.
    event_timeout:
        Seconds to wait for the domain event after confirmation.  ``None``
        waits indefinitely.
    """

    def __init__(
        self,
        registry: EventRegistry,
        require_client: Callable[[], IChainClient],
        cleanup_on_failure: bool = True,
        event_timeout: float | None = None,
    ) -> None:
        self._registry = registry
        self._require_client = require_client
        self._cleanup_on_failure = cleanup_on_failure
        self._event_timeout = event_timeout

    async def run(
        self,
        kind: EventKind,
        key: Any,
        submit: SubmitFn,
        extract: Callable[[Any], T] | None = None,
    ) -> T | Any:
        client = self._require_client()
        call_id = make_call_id()
        token = set_call_id(call_id)
        try:
            return await self._run(
                client, kind, correlation_key(key), submit, extract, call_id
            )
        finally:
            reset_call_id(token)

    async def _run(
        self,
        client: IChainClient,
        kind: EventKind,
        key: str,
        submit: SubmitFn,
        extract: Callable[[Any], T] | None,
        call_id: str,
    ) -> T | Any:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[Any] = loop.create_future()

        continuation = self._registry.register(kind, key, continuation_for(future))
        logger.debug("Registered %s[%s] (call %s)", kind.value, key, call_id)

        try:
            handle = await self._submit(client, submit)
            receipt = await self._confirm(client, handle)
        except BaseException:
            # Includes cancellation of the caller while the receipt is pending.
            if self._cleanup_on_failure:
                self._registry.deregister(kind, key, continuation)
            else:
                logger.warning(
                    "Leaving registration %s[%s] in place after failure",
                    kind.value,
                    key,
                )
            raise

        logger.info(
            "%s confirmed in block %d (tx=%s); waiting for %s[%s]",
            handle.operation,
            receipt.block_number,
            receipt.tx_hash,
            kind.value,
            key,
        )

        try:
            payload = await self._await_event(future, kind, key)
        finally:
            self._registry.deregister(kind, key, continuation)

        return extract(payload) if extract is not None else payload

    async def _submit(self, client: IChainClient, submit: SubmitFn) -> TxHandle:
        try:
            return await submit(client)
        except LedgerError:
            raise
        except Exception as exc:
            raise SubmissionError(str(exc)) from exc

    async def _confirm(self, client: IChainClient, handle: TxHandle) -> TxReceipt:
        try:
            receipt = await client.wait_for_receipt(handle)
        except LedgerError:
            raise
        except Exception as exc:
            raise ConfirmationError(str(exc), tx_hash=handle.tx_hash) from exc
        if not receipt.succeeded:
            raise ConfirmationError(
                f"{handle.operation} reverted in block {receipt.block_number}",
                tx_hash=receipt.tx_hash,
            )
        return receipt

    async def _await_event(
        self,
        future: asyncio.Future[Any],
        kind: EventKind,
        key: str,
    ) -> Any:
        if self._event_timeout is None:
            return await future
        try:
            return await asyncio.wait_for(future, timeout=self._event_timeout)
        except asyncio.TimeoutError:
            raise EventTimeoutError(kind.value, key, self._event_timeout) from None


def continuation_for(future: asyncio.Future[Any]) -> Continuation:
    """Wrap *future* in a continuation that resolves it once."""

    def _resolve(payload: Any) -> None:
        if not future.done():
            future.set_result(payload)

    return Continuation(_resolve)
