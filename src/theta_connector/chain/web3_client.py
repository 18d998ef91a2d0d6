"""Chain client backed by web3.py.

Uses ``AsyncWeb3`` over JSON-RPC to implement the ``IChainClient``
protocol: signs and sends contract transactions with a local key, waits
for receipts, and delivers contract logs to subscribers from a
background polling task.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections import defaultdict
from typing import Any

from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import ContractLogicError, TimeExhausted, Web3Exception

from theta_connector.core.errors import (
    ConfigError,
    ConfirmationError,
    LedgerError,
    SubmissionError,
)
from theta_connector.core.events import ChainEvent
from theta_connector.core.interfaces import EventHandler
from theta_connector.core.models import TxHandle, TxReceipt

logger = logging.getLogger(__name__)


def _plain(value: Any) -> Any:
    """Convert web3 return values (HexBytes, AttributeDict) to plain Python."""
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    if isinstance(value, dict) or hasattr(value, "items"):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


class Web3ChainClient:
    """``IChainClient`` implementation for EVM-compatible JSON-RPC nodes.

    Parameters
    ----------
    url:
        JSON-RPC endpoint.
    contract_address:
        Address of the deployed queueing contract.
    abi:
        Contract ABI.
    private_key:
        Signing key for every contract-mutating call.
    chain_id:
        Chain identifier; read from the node on ``start`` when ``None``.
    gas_limit:
        Gas ceiling applied to every transaction.
    receipt_timeout:
        Seconds to wait for inclusion before raising ``ConfirmationError``.
    receipt_poll:
        Receipt polling latency in seconds.
    poll_interval:
        Seconds between log polls for subscribed events.
    w3:
        Pre-built ``AsyncWeb3`` instance (tests).
    """

    def __init__(
        self,
        url: str,
        contract_address: str,
        abi: list[dict[str, Any]],
        private_key: str,
        chain_id: int | None = None,
        gas_limit: int = 500_000,
        receipt_timeout: float = 120.0,
        receipt_poll: float = 0.5,
        poll_interval: float = 2.0,
        w3: AsyncWeb3 | None = None,
    ) -> None:
        if not private_key:
            raise ConfigError("A signing key is required for the chain client")

        self._w3 = w3 or AsyncWeb3(AsyncHTTPProvider(url))
        self._contract = self._w3.eth.contract(
            address=Web3.to_checksum_address(contract_address), abi=abi
        )
        self._account = self._w3.eth.account.from_key(private_key)
        self._chain_id = chain_id
        self._gas_limit = gas_limit
        self._receipt_timeout = receipt_timeout
        self._receipt_poll = receipt_poll
        self._poll_interval = poll_interval

        # Nonce allocation and sending must not interleave between calls
        self._send_lock = asyncio.Lock()

        # event name -> subscription id -> handler
        self._subscribers: dict[str, dict[str, EventHandler]] = defaultdict(dict)
        self._next_block: int | None = None
        self._poll_task: asyncio.Task[None] | None = None

        logger.info(
            "Web3 chain client for %s at %s (account %s)",
            url,
            contract_address,
            self._account.address,
        )

    @property
    def address(self) -> str:
        return self._account.address

    @property
    def chain_id(self) -> int | None:
        return self._chain_id

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Resolve the chain id, mark the starting block, start polling."""
        try:
            if self._chain_id is None:
                self._chain_id = await self._w3.eth.chain_id
            self._next_block = await self._w3.eth.block_number + 1
        except Web3Exception as exc:
            raise LedgerError(f"Cannot reach chain node: {exc}") from exc
        if self._poll_task is None or self._poll_task.done():
            self._poll_task = asyncio.create_task(self._poll_loop())
        logger.info(
            "Chain client started: chain_id=%s from_block=%s",
            self._chain_id,
            self._next_block,
        )

    async def close(self) -> None:
        task, self._poll_task = self._poll_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        provider = self._w3.provider
        disconnect = getattr(provider, "disconnect", None)
        if disconnect is not None:
            await disconnect()

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def submit(self, operation: str, *args: Any) -> TxHandle:
        """Build, sign and send a contract transaction."""
        try:
            fn = self._contract.get_function_by_name(operation)(*args)
        except (ValueError, Web3Exception) as exc:
            raise SubmissionError(f"Invalid call {operation}{args}: {exc}") from exc

        try:
            async with self._send_lock:
                nonce = await self._w3.eth.get_transaction_count(
                    self._account.address, "pending"
                )
                tx = await fn.build_transaction(
                    {
                        "from": self._account.address,
                        "nonce": nonce,
                        "gas": self._gas_limit,
                        "chainId": self._chain_id,
                    }
                )
                signed = self._account.sign_transaction(tx)
                tx_hash = await self._w3.eth.send_raw_transaction(
                    signed.raw_transaction
                )
        except ContractLogicError as exc:
            raise SubmissionError(f"{operation} reverted: {exc}") from exc
        except (ValueError, Web3Exception) as exc:
            raise SubmissionError(f"{operation} could not be sent: {exc}") from exc

        handle = TxHandle(
            tx_hash=Web3.to_hex(tx_hash),
            operation=operation,
            args=args,
            nonce=nonce,
        )
        logger.info("Sent %s tx=%s nonce=%d", operation, handle.tx_hash, nonce)
        return handle

    async def wait_for_receipt(self, handle: TxHandle) -> TxReceipt:
        try:
            raw = await self._w3.eth.wait_for_transaction_receipt(
                handle.tx_hash,
                timeout=self._receipt_timeout,
                poll_latency=self._receipt_poll,
            )
        except TimeExhausted as exc:
            raise ConfirmationError(
                f"{handle.operation} not mined within {self._receipt_timeout:.0f}s",
                tx_hash=handle.tx_hash,
            ) from exc
        except Web3Exception as exc:
            raise ConfirmationError(str(exc), tx_hash=handle.tx_hash) from exc

        receipt = TxReceipt(
            tx_hash=handle.tx_hash,
            block_number=raw["blockNumber"],
            status=raw.get("status", 1),
            gas_used=raw.get("gasUsed", 0),
            logs=[_plain(log) for log in raw.get("logs", [])],
        )
        if not receipt.succeeded:
            raise ConfirmationError(
                f"{handle.operation} reverted in block {receipt.block_number}",
                tx_hash=handle.tx_hash,
            )
        return receipt

    async def call(self, function: str, *args: Any) -> Any:
        try:
            return await self._contract.get_function_by_name(function)(*args).call()
        except (ValueError, Web3Exception) as exc:
            raise LedgerError(f"Call {function}{args} failed: {exc}") from exc

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    async def subscribe(self, event_name: str, handler: EventHandler) -> str:
        # Fail early on names the ABI does not define
        getattr(self._contract.events, event_name)
        sub_id = f"{event_name}:{uuid.uuid4().hex[:8]}"
        self._subscribers[event_name][sub_id] = handler
        return sub_id

    async def unsubscribe(self, subscription_id: str) -> None:
        for handlers in self._subscribers.values():
            handlers.pop(subscription_id, None)

    async def _poll_loop(self) -> None:
        while True:
            try:
                await self.poll_once()
            except asyncio.CancelledError:
                raise
            except Exception:
                logger.exception("Log poll failed; retrying in %.1fs", self._poll_interval)
            await asyncio.sleep(self._poll_interval)

    async def poll_once(self) -> int:
        """Fetch logs for subscribed events up to the latest block.

        Logs are delivered sorted by (block, log index).  Returns the
        number of logs delivered.
        """
        latest = await self._w3.eth.block_number
        if self._next_block is None:
            self._next_block = latest + 1
            return 0
        if latest < self._next_block:
            return 0

        events: list[ChainEvent] = []
        for event_name, handlers in list(self._subscribers.items()):
            if not handlers:
                continue
            contract_event = getattr(self._contract.events, event_name)
            logs = await contract_event.get_logs(
                from_block=self._next_block, to_block=latest
            )
            events.extend(self._to_event(event_name, log) for log in logs)

        self._next_block = latest + 1
        events.sort(key=lambda e: (e.block_number or 0, e.log_index or 0))
        for event in events:
            await self._deliver(event)
        return len(events)

    @staticmethod
    def _to_event(event_name: str, log: Any) -> ChainEvent:
        return ChainEvent(
            name=event_name,
            args=_plain(log["args"]),
            block_number=log.get("blockNumber"),
            log_index=log.get("logIndex"),
            tx_hash=Web3.to_hex(log["transactionHash"]) if log.get("transactionHash") else "",
        )

    async def _deliver(self, event: ChainEvent) -> None:
        for sub_id, handler in list(self._subscribers.get(event.name, {}).items()):
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Subscriber %s failed on %s event", sub_id, event.name
                )
