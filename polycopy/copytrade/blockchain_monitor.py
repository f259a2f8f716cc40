"""
Mempool Monitor for Polymarket Copy Trading
Watches pending transactions to the exchange contracts and publishes
decoded matchOrders calls for the monitored trader
"""

import asyncio
import logging
from enum import Enum
from datetime import datetime
from typing import Optional, Callable, List, Dict, Any, Set

from web3 import Web3

from config.copytrade_settings import (
    HEARTBEAT_BLOCKS,
    HASH_CACHE_SIZE,
    PENDING_FETCH_CONCURRENCY,
    PENDING_FETCH_BACKLOG,
)
from core.buffers import HashRecencySet
from core.event_bus import EventBus
from core.types import OnchainEvent
from net.rpc_socket import RpcSocket, RpcError
from .polymarket_decoder import PolymarketDecoder

logger = logging.getLogger(__name__)

SocketFactory = Callable[[str, str], Any]


class WatcherState(Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class PendingMode(Enum):
    """How pending transactions are received."""
    ALCHEMY = "alchemy"      # alchemy_pendingTransactions, full txs pushed
    STANDARD = "standard"    # newPendingTransactions hashes + eth_getTransactionByHash
    AUTO = "auto"

    @classmethod
    def resolve(cls, mode: Any, rpc_url: str) -> "PendingMode":
        """Pick a concrete mode; AUTO means ALCHEMY on Alchemy endpoints."""
        mode = mode if isinstance(mode, PendingMode) else cls(str(mode).lower())
        if mode != cls.AUTO:
            return mode
        return cls.ALCHEMY if "alchemy.com" in (rpc_url or "").lower() else cls.STANDARD


def _default_socket_factory(url: str, name: str) -> RpcSocket:
    return RpcSocket(url, name=name)


def _parse_block_number(value: Any) -> Optional[int]:
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16) if value.startswith("0x") else int(value)
        except ValueError:
            return None
    return None


class MempoolWatcher:
    """
    Monitors the pending transaction feed for matchOrders calls.

    Each candidate transaction goes through, in order:
    1. `to` must be a watched address (watch list + fee module)
    2. calldata must start with the selector and contain the trader address
    3. hash must not have been seen recently
    4. decode and classify; published even if decoding failed
    """

    def __init__(
        self,
        rpc_url: str,
        bus: EventBus,
        decoder: PolymarketDecoder,
        watch_addresses: List[str],
        pending_mode: Any = PendingMode.AUTO,
        heartbeat_blocks: int = HEARTBEAT_BLOCKS,
        hash_cache_size: int = HASH_CACHE_SIZE,
        fetch_concurrency: int = PENDING_FETCH_CONCURRENCY,
        fetch_backlog: int = PENDING_FETCH_BACKLOG,
        socket_factory: Optional[SocketFactory] = None,
    ):
        """
        Initialize the mempool watcher

        Args:
            rpc_url: Websocket JSON-RPC endpoint
            bus: Event bus decoded events are published on
            decoder: Decoder bound to the monitored trader
            watch_addresses: Contract addresses (fee module included) to accept as `to`
            pending_mode: ALCHEMY, STANDARD or AUTO
            heartbeat_blocks: Log a heartbeat every N blocks
            hash_cache_size: Recently seen hashes kept for de-duplication
            fetch_concurrency: Parallel eth_getTransactionByHash calls (STANDARD)
            fetch_backlog: Hash lookups allowed to queue before dropping (STANDARD)
            socket_factory: Builds the RPC sockets; (url, name) -> RpcSocket
        """
        if heartbeat_blocks < 1:
            raise ValueError("heartbeat_blocks must be >= 1")

        self.rpc_url = rpc_url
        self.bus = bus
        self.decoder = decoder
        self.watch_addresses = [Web3.to_checksum_address(a) for a in watch_addresses]
        self.pending_mode = PendingMode.resolve(pending_mode, rpc_url)
        self.heartbeat_blocks = heartbeat_blocks
        self.fetch_backlog = fetch_backlog

        self._targets: Set[str] = {a.lower() for a in self.watch_addresses}
        self._recent = HashRecencySet(hash_cache_size)
        self._socket_factory = socket_factory or _default_socket_factory
        self._fetch_slots = asyncio.Semaphore(fetch_concurrency)
        self._fetch_tasks: Set[asyncio.Task] = set()

        self.state = WatcherState.STOPPED
        self.pending_socket: Optional[Any] = None
        self.blocks_socket: Optional[Any] = None
        self.started_at: Optional[datetime] = None

        self.stats: Dict[str, Any] = {
            "seen": 0,
            "filtered_target": 0,
            "filtered_calldata": 0,
            "duplicates": 0,
            "decode_failures": 0,
            "published": 0,
            "fetch_errors": 0,
            "fetch_dropped": 0,
            "blocks": 0,
            "heartbeats": 0,
            "last_block": None,
        }

    # === Lifecycle ===

    async def start(self) -> None:
        """Open the pending and block streams."""
        if self.state != WatcherState.STOPPED:
            logger.warning(f"Watcher already {self.state.value}")
            return

        self.state = WatcherState.STARTING
        logger.info(f"Starting mempool watcher ({self.pending_mode.value} mode)")
        logger.info(f"Monitoring trader: {self.decoder.target_address}")
        logger.info(f"Monitoring contracts: {self.watch_addresses}")

        pending_socket = self._socket_factory(self.rpc_url, "pending")
        blocks_socket = self._socket_factory(self.rpc_url, "blocks")
        self.pending_socket = pending_socket
        self.blocks_socket = blocks_socket

        # a failure on one stream leaves the other running
        await self._start_pending(pending_socket)
        if self.state != WatcherState.STARTING:
            logger.info("Watcher stopped during startup")
            return
        await self._start_blocks(blocks_socket)
        if self.state != WatcherState.STARTING:
            logger.info("Watcher stopped during startup")
            return

        self.started_at = datetime.now()
        self.state = WatcherState.RUNNING

    async def _start_pending(self, socket: Any) -> None:
        try:
            await socket.start()
            if self.state != WatcherState.STARTING:
                return
            if self.pending_mode == PendingMode.ALCHEMY:
                await socket.subscribe(
                    [
                        "alchemy_pendingTransactions",
                        {"toAddress": list(self.watch_addresses), "hashesOnly": False},
                    ],
                    self._on_pending_tx,
                )
            else:
                await socket.subscribe(
                    ["newPendingTransactions"],
                    self._on_pending_hash,
                )
        except RpcError as e:
            logger.error(f"Pending transaction subscription failed: {e}")

    async def _start_blocks(self, socket: Any) -> None:
        try:
            await socket.start()
            if self.state != WatcherState.STARTING:
                return
            await socket.subscribe(["newHeads"], self._on_new_head)
        except RpcError as e:
            logger.error(f"Block header subscription failed: {e}")

    async def stop(self) -> None:
        """Close both streams. Safe to call more than once."""
        if self.state in (WatcherState.STOPPED, WatcherState.STOPPING):
            return

        self.state = WatcherState.STOPPING

        for task in list(self._fetch_tasks):
            task.cancel()
        self._fetch_tasks.clear()

        for socket in (self.pending_socket, self.blocks_socket):
            if socket is None:
                continue
            try:
                await socket.close()
            except RpcError as e:
                logger.warning(f"Error closing {getattr(socket, 'name', 'socket')}: {e}")

        self.pending_socket = None
        self.blocks_socket = None
        self.state = WatcherState.STOPPED
        logger.info("Mempool watcher stopped")

    @property
    def is_running(self) -> bool:
        return self.state == WatcherState.RUNNING

    # === Transport callbacks ===

    def _on_pending_tx(self, tx: Any) -> None:
        if isinstance(tx, dict) and isinstance(tx.get("result"), dict):
            tx = tx["result"]
        if isinstance(tx, dict):
            self.handle_pending_tx(tx)

    def _on_pending_hash(self, tx_hash: Any) -> None:
        if not isinstance(tx_hash, str) or self.state == WatcherState.STOPPING:
            return
        if tx_hash in self._recent:
            self.stats["duplicates"] += 1
            return
        if len(self._fetch_tasks) >= self.fetch_backlog:
            self.stats["fetch_dropped"] += 1
            return

        task = asyncio.ensure_future(self._fetch_pending(tx_hash))
        self._fetch_tasks.add(task)
        task.add_done_callback(self._fetch_tasks.discard)

    async def _fetch_pending(self, tx_hash: str) -> None:
        async with self._fetch_slots:
            socket = self.pending_socket
            if socket is None:
                return
            try:
                tx = await socket.request("eth_getTransactionByHash", [tx_hash])
            except RpcError as e:
                self.stats["fetch_errors"] += 1
                logger.debug(f"Lookup of pending {tx_hash} failed: {e}")
                return

        if isinstance(tx, dict):
            self.handle_pending_tx(tx)

    def _on_new_head(self, head: Any) -> None:
        number = _parse_block_number(head.get("number") if isinstance(head, dict) else head)
        if number is not None:
            self.handle_block(number)

    # === Processing ===

    def handle_pending_tx(self, tx: Dict[str, Any]) -> Optional[OnchainEvent]:
        """
        Filter, de-duplicate, decode and publish one pending transaction.

        Args:
            tx: Transaction dict with to, hash, from, value and input (or data)

        Returns:
            The published event, or None if the transaction was rejected
        """
        if self.state == WatcherState.STOPPING:
            return None

        self.stats["seen"] += 1

        to = tx.get("to")
        if not isinstance(to, str) or to.lower() not in self._targets:
            self.stats["filtered_target"] += 1
            return None

        data = tx.get("input")
        if data is None:
            data = tx.get("data")
        if not self.decoder.prefilter(data):
            self.stats["filtered_calldata"] += 1
            return None

        tx_hash = tx.get("hash")
        if self._recent.seen(tx_hash):
            self.stats["duplicates"] += 1
            return None

        call = self.decoder.decode(data)
        if call is None:
            self.stats["decode_failures"] += 1
            logger.warning(f"Pending tx {tx_hash} matched filters but failed to decode")

        info = self.decoder.infer(call)
        event = OnchainEvent(
            hash=tx_hash,
            role=info.role if info else None,
            side=info.side if info else None,
            token_id=info.token_id if info else None,
            taker_fill=str(call.taker_fill_amount) if call else None,
            taker_receive=str(call.taker_receive_amount) if call and call.taker_receive_amount is not None else None,
            call=call,
            raw=dict(tx),
        )

        logger.info(
            f"Pending tx to target ({self.pending_mode.value}): {tx_hash} "
            f"role={info.role.value if info else None} side={info.side.value if info else None} "
            f"token={event.token_id}"
        )

        self.bus.publish(event)
        self.stats["published"] += 1
        return event

    def handle_block(self, number: int) -> bool:
        """
        Record a new block; heartbeat every heartbeat_blocks blocks.

        Returns:
            True if a heartbeat was emitted
        """
        self.stats["blocks"] += 1
        self.stats["last_block"] = number

        if number % self.heartbeat_blocks == 0:
            self.stats["heartbeats"] += 1
            logger.info(f"Onchain heartbeat: block {number}")
            return True
        return False

    def get_stats(self) -> Dict[str, Any]:
        """Get monitoring statistics"""
        return {
            **self.stats,
            "state": self.state.value,
            "pending_mode": self.pending_mode.value,
            "target_trader": self.decoder.target_address,
            "watch_addresses": list(self.watch_addresses),
            "recent_hashes": len(self._recent),
            "inflight_fetches": len(self._fetch_tasks),
            "started_at": self.started_at.isoformat() if self.started_at else None,
        }
