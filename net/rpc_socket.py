"""
RpcSocket - JSON-RPC 2.0 over a websocket
Handles request/response correlation, eth_subscribe streams and reconnection
"""

import asyncio
import itertools
import json
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from config.copytrade_settings import (
    WS_RECONNECT_DELAY,
    WS_MAX_RECONNECT_DELAY,
    RPC_REQUEST_TIMEOUT,
)

logger = logging.getLogger(__name__)

SubscriptionCallback = Callable[[Any], None]
Connector = Callable[[str], Awaitable[Any]]


class RpcError(Exception):
    """JSON-RPC error response or lost connection."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class RpcResponseError(RpcError):
    """The node answered the request with a JSON-RPC error object."""


@dataclass
class Subscription:
    """A subscription request kept for re-subscribing after reconnect."""
    params: List[Any]
    callback: SubscriptionCallback
    subscription_id: Optional[str] = None
    activating: bool = False


async def _default_connector(url: str) -> Any:
    return await websockets.connect(
        url,
        ping_interval=20,
        ping_timeout=20,
        close_timeout=5,
        max_size=None,
    )


class RpcSocket:
    """
    Persistent JSON-RPC websocket connection.

    Handles:
    - Request ids and response futures
    - Dispatch of eth_subscription notifications to callbacks
    - Reconnection with linear backoff and re-subscription

    Callbacks are invoked inline from the receive loop and must not block.
    """

    def __init__(
        self,
        url: str,
        name: str = "rpc",
        reconnect_delay: float = WS_RECONNECT_DELAY,
        max_reconnect_delay: float = WS_MAX_RECONNECT_DELAY,
        request_timeout: float = RPC_REQUEST_TIMEOUT,
        connector: Optional[Connector] = None,
    ):
        self.url = url
        self.name = name
        self.reconnect_delay = reconnect_delay
        self.max_reconnect_delay = max_reconnect_delay
        self.request_timeout = request_timeout
        self._connector = connector or _default_connector

        self._ws: Optional[Any] = None
        self._running = False
        self._reader: Optional[asyncio.Task] = None
        self._resubscriber: Optional[asyncio.Task] = None
        self._ids = itertools.count(1)
        self._pending: Dict[int, asyncio.Future] = {}
        self._subscriptions: List[Subscription] = []
        self._by_sub_id: Dict[str, Subscription] = {}
        self._reconnect_count = 0
        self.reconnects = 0
        self.notifications = 0

    async def start(self) -> bool:
        """Connect and launch the receive loop."""
        if self._running:
            return True

        self._running = True
        connected = await self._open()
        if not self._running:
            # closed while connecting
            ws, self._ws = self._ws, None
            if ws is not None:
                try:
                    await ws.close()
                except WebSocketException as e:
                    logger.debug(f"[{self.name}] close error: {e}")
            return False
        self._reader = asyncio.create_task(self._receive_loop())
        return connected

    async def close(self) -> None:
        """Unsubscribe, close the socket and stop the receive loop. Safe to call twice."""
        if not self._running and self._ws is None:
            return

        if self._ws is not None:
            for sub in list(self._by_sub_id.values()):
                try:
                    await asyncio.wait_for(
                        self.request("eth_unsubscribe", [sub.subscription_id]),
                        timeout=2.0,
                    )
                except (RpcError, asyncio.TimeoutError) as e:
                    logger.debug(f"[{self.name}] unsubscribe {sub.subscription_id} failed: {e}")

        self._running = False
        self._subscriptions.clear()
        self._by_sub_id.clear()

        ws = self._ws
        self._ws = None
        if ws is not None:
            try:
                await ws.close()
            except WebSocketException as e:
                logger.debug(f"[{self.name}] close error: {e}")

        if self._resubscriber is not None:
            self._resubscriber.cancel()
            try:
                await self._resubscriber
            except asyncio.CancelledError:
                pass
            self._resubscriber = None

        if self._reader is not None:
            self._reader.cancel()
            try:
                await self._reader
            except asyncio.CancelledError:
                pass
            self._reader = None

        self._fail_pending(RpcError("socket closed"))
        logger.info(f"[{self.name}] Disconnected")

    async def request(self, method: str, params: Optional[List[Any]] = None) -> Any:
        """
        Send a JSON-RPC request and wait for its result.

        Raises:
            RpcError: On an error response, a lost connection or a timeout
        """
        if self._ws is None:
            raise RpcError(f"{self.name} not connected")

        request_id = next(self._ids)
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        message = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": params or []}
        try:
            await self._ws.send(json.dumps(message))
            return await asyncio.wait_for(future, timeout=self.request_timeout)
        except asyncio.TimeoutError:
            raise RpcError(f"{method} timed out after {self.request_timeout}s")
        except (ConnectionClosed, WebSocketException) as e:
            raise RpcError(f"{method} failed: {e}")
        finally:
            self._pending.pop(request_id, None)

    async def subscribe(self, params: List[Any], callback: SubscriptionCallback) -> Optional[str]:
        """
        eth_subscribe and route notifications to callback.

        The subscription is remembered and re-issued after every reconnect.
        While the socket is down it is queued and issued once a connection
        is up again.

        Returns:
            Subscription id assigned by the node, or None if queued

        Raises:
            RpcError: If the node rejects the subscription (it is forgotten)
                or the request fails on an open connection (it stays queued)
        """
        sub = Subscription(params=list(params), callback=callback)
        self._subscriptions.append(sub)

        if self._ws is None:
            logger.warning(f"[{self.name}] Not connected, {sub.params[0]} queued until reconnect")
            return None

        try:
            return await self._activate(sub)
        except RpcResponseError:
            self._subscriptions.remove(sub)
            raise

    async def _activate(self, sub: Subscription) -> str:
        sub.activating = True
        try:
            subscription_id = await self.request("eth_subscribe", sub.params)
        finally:
            sub.activating = False
        sub.subscription_id = str(subscription_id)
        self._by_sub_id[sub.subscription_id] = sub
        logger.info(f"[{self.name}] Subscribed {sub.params[0]} -> {sub.subscription_id}")
        return sub.subscription_id

    async def _open(self) -> bool:
        try:
            self._ws = await self._connector(self.url)
            self._reconnect_count = 0
            logger.info(f"[{self.name}] Connected to {self.url}")
            return True
        except (OSError, WebSocketException, asyncio.TimeoutError) as e:
            logger.error(f"[{self.name}] Failed to connect: {e}")
            self._ws = None
            return False

    async def _receive_loop(self) -> None:
        """Main receive loop for websocket messages."""
        while self._running:
            if self._ws is None:
                await self._reconnect()
                continue

            try:
                raw = await self._ws.recv()
            except ConnectionClosed as e:
                logger.warning(f"[{self.name}] Connection closed: {e}")
                self._drop_connection()
                continue
            except WebSocketException as e:
                logger.error(f"[{self.name}] Receive error: {e}")
                self._drop_connection()
                continue

            self._dispatch(raw)

    def _dispatch(self, raw: Any) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.error(f"[{self.name}] Invalid JSON: {str(raw)[:100]}")
            return

        if not isinstance(message, dict):
            return

        if "id" in message and message["id"] in self._pending:
            future = self._pending[message["id"]]
            if future.done():
                return
            error = message.get("error")
            if error:
                future.set_exception(RpcResponseError(str(error.get("message", error)), error.get("code")))
            else:
                future.set_result(message.get("result"))
            return

        if message.get("method") == "eth_subscription":
            params = message.get("params") or {}
            sub = self._by_sub_id.get(str(params.get("subscription")))
            if sub is None:
                return
            self.notifications += 1
            try:
                sub.callback(params.get("result"))
            except Exception as e:
                logger.exception(f"[{self.name}] Subscription callback failed: {e}")

    def _drop_connection(self) -> None:
        self._ws = None
        self._by_sub_id.clear()
        for sub in self._subscriptions:
            sub.subscription_id = None
        self._fail_pending(RpcError("connection lost"))

    def _fail_pending(self, error: RpcError) -> None:
        for future in self._pending.values():
            if not future.done():
                future.set_exception(error)
        self._pending.clear()

    async def _reconnect(self) -> None:
        """Attempt to reconnect and re-subscribe."""
        self._reconnect_count += 1
        delay = min(self.reconnect_delay * self._reconnect_count, self.max_reconnect_delay)

        logger.info(f"[{self.name}] Reconnecting in {delay}s (attempt {self._reconnect_count})")
        await asyncio.sleep(delay)

        if not self._running:
            return

        if await self._open():
            self.reconnects += 1
            # re-subscribing awaits responses that this loop delivers
            self._resubscriber = asyncio.create_task(self._resubscribe())

    async def _resubscribe(self) -> None:
        for sub in list(self._subscriptions):
            if sub.subscription_id is not None or sub.activating:
                continue
            try:
                await self._activate(sub)
            except RpcError as e:
                logger.error(f"[{self.name}] Re-subscribe {sub.params[0]} failed: {e}")

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and self._running

    @property
    def subscription_ids(self) -> List[str]:
        return list(self._by_sub_id.keys())
