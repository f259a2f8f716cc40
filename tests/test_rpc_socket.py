"""
Tests for the JSON-RPC websocket client
"""

import asyncio
import json
import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from websockets.exceptions import ConnectionClosed

from net.rpc_socket import RpcSocket, RpcError, RpcResponseError


class FakeWebSocket:
    """Answers eth_subscribe/eth_unsubscribe/eth_blockNumber; ignores `silent`."""

    def __init__(self, subscription_id="0xsub1", refuse_subscribe=False):
        self.subscription_id = subscription_id
        self.refuse_subscribe = refuse_subscribe
        self.sent = []
        self.incoming = asyncio.Queue()
        self.closed = False

    async def send(self, message):
        data = json.loads(message)
        self.sent.append(data)
        method = data["method"]

        if method == "eth_subscribe" and self.refuse_subscribe:
            self.reply(data["id"], error={"code": -32602, "message": "invalid params"})
        elif method == "eth_subscribe":
            self.reply(data["id"], result=self.subscription_id)
        elif method == "eth_unsubscribe":
            self.reply(data["id"], result=True)
        elif method == "eth_blockNumber":
            self.reply(data["id"], result="0x10")
        elif method == "bad_method":
            self.reply(data["id"], error={"code": -32601, "message": "method not found"})

    def reply(self, request_id, result=None, error=None):
        message = {"jsonrpc": "2.0", "id": request_id}
        if error is not None:
            message["error"] = error
        else:
            message["result"] = result
        self.incoming.put_nowait(json.dumps(message))

    def notify(self, subscription_id, result):
        self.incoming.put_nowait(json.dumps({
            "jsonrpc": "2.0",
            "method": "eth_subscription",
            "params": {"subscription": subscription_id, "result": result},
        }))

    async def recv(self):
        item = await self.incoming.get()
        if isinstance(item, Exception):
            raise item
        return item

    async def close(self):
        self.closed = True

    def methods(self):
        return [m["method"] for m in self.sent]


def connector_for(*sockets):
    """Connector handing out the given sockets in order."""
    queue = list(sockets)

    async def connect(url):
        item = queue.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    return connect


async def wait_until(predicate, timeout=1.0):
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError("condition not reached")
        await asyncio.sleep(0.005)


class TestRpcSocket:
    """Tests for RpcSocket."""

    def test_request_result(self):
        async def run():
            ws = FakeWebSocket()
            socket = RpcSocket("wss://node", connector=connector_for(ws))
            await socket.start()
            result = await socket.request("eth_blockNumber")
            await socket.close()
            return result, ws

        result, ws = asyncio.run(run())
        assert result == "0x10"
        assert ws.sent[0]["jsonrpc"] == "2.0"
        assert ws.sent[0]["params"] == []

    def test_error_response(self):
        async def run():
            socket = RpcSocket("wss://node", connector=connector_for(FakeWebSocket()))
            await socket.start()
            try:
                with pytest.raises(RpcError) as exc_info:
                    await socket.request("bad_method", [])
                return exc_info.value
            finally:
                await socket.close()

        error = asyncio.run(run())
        assert error.code == -32601
        assert "method not found" in str(error)

    def test_request_timeout(self):
        async def run():
            socket = RpcSocket("wss://node", request_timeout=0.05, connector=connector_for(FakeWebSocket()))
            await socket.start()
            try:
                with pytest.raises(RpcError, match="timed out"):
                    await socket.request("silent", [])
            finally:
                await socket.close()

        asyncio.run(run())

    def test_not_connected(self):
        async def run():
            socket = RpcSocket("wss://node")
            with pytest.raises(RpcError):
                await socket.request("eth_blockNumber")

        asyncio.run(run())

    def test_subscription_notifications(self):
        """Notifications reach the callback of their subscription only."""
        async def run():
            ws = FakeWebSocket()
            socket = RpcSocket("wss://node", connector=connector_for(ws))
            received = []
            await socket.start()

            sub_id = await socket.subscribe(["newHeads"], received.append)
            ws.notify(sub_id, {"number": "0x1"})
            ws.notify("0xother", {"number": "0x2"})
            await wait_until(lambda: socket.notifications >= 1)
            await asyncio.sleep(0.01)

            await socket.close()
            return sub_id, received, socket, ws

        sub_id, received, socket, ws = asyncio.run(run())
        assert sub_id == "0xsub1"
        assert received == [{"number": "0x1"}]
        assert socket.notifications == 1
        assert ws.methods() == ["eth_subscribe", "eth_unsubscribe"]

    def test_callback_error_is_contained(self):
        async def run():
            ws = FakeWebSocket()
            socket = RpcSocket("wss://node", connector=connector_for(ws))
            received = []

            def broken(result):
                raise RuntimeError("callback bug")

            await socket.start()
            sub_id = await socket.subscribe(["newHeads"], broken)
            ws.notify(sub_id, {"number": "0x1"})
            await wait_until(lambda: socket.notifications >= 1)

            # loop still alive
            result = await socket.request("eth_blockNumber")
            await socket.close()
            return result

        assert asyncio.run(run()) == "0x10"

    def test_close_is_idempotent(self):
        async def run():
            ws = FakeWebSocket()
            socket = RpcSocket("wss://node", connector=connector_for(ws))
            await socket.start()
            await socket.close()
            await socket.close()
            return socket, ws

        socket, ws = asyncio.run(run())
        assert ws.closed
        assert not socket.is_connected

    def test_reconnect_resubscribes(self):
        """A dropped connection is reopened and subscriptions re-issued."""
        async def run():
            first = FakeWebSocket("0xsub1")
            second = FakeWebSocket("0xsub2")
            socket = RpcSocket("wss://node", reconnect_delay=0.01, connector=connector_for(first, second))
            received = []

            await socket.start()
            await socket.subscribe(["newPendingTransactions"], received.append)

            first.incoming.put_nowait(ConnectionClosed(None, None))
            await wait_until(lambda: socket.subscription_ids == ["0xsub2"])

            second.notify("0xsub2", "0xhash")
            await wait_until(lambda: received == ["0xhash"])
            await socket.close()
            return socket, second

        socket, second = asyncio.run(run())
        assert socket.reconnects == 1
        assert second.sent[0]["method"] == "eth_subscribe"
        assert second.sent[0]["params"] == ["newPendingTransactions"]

    def test_subscribe_while_down_activates_on_reconnect(self):
        """A subscription made before the first connect succeeds is issued once connected."""
        async def run():
            ws = FakeWebSocket("0xsub9")
            socket = RpcSocket(
                "wss://node",
                reconnect_delay=0.01,
                connector=connector_for(OSError("connection refused"), ws),
            )
            received = []

            connected = await socket.start()
            sub_id = await socket.subscribe(["newHeads"], received.append)

            await wait_until(lambda: socket.subscription_ids == ["0xsub9"])
            ws.notify("0xsub9", {"number": "0x1"})
            await wait_until(lambda: received == [{"number": "0x1"}])
            await socket.close()
            return connected, sub_id, socket, ws

        connected, sub_id, socket, ws = asyncio.run(run())
        assert connected is False
        assert sub_id is None
        assert socket.reconnects == 1
        assert ws.methods() == ["eth_subscribe", "eth_unsubscribe"]
        assert ws.sent[0]["params"] == ["newHeads"]

    def test_rejected_subscription_is_forgotten(self):
        """Only an error answer from the node drops the subscription."""
        async def run():
            first = FakeWebSocket(refuse_subscribe=True)
            second = FakeWebSocket("0xsub2")
            socket = RpcSocket("wss://node", reconnect_delay=0.01, connector=connector_for(first, second))
            await socket.start()

            with pytest.raises(RpcResponseError) as exc_info:
                await socket.subscribe(["bogus"], lambda result: None)

            first.incoming.put_nowait(ConnectionClosed(None, None))
            await wait_until(lambda: socket.reconnects == 1)
            await asyncio.sleep(0.02)
            await socket.close()
            return exc_info.value, second

        error, second = asyncio.run(run())
        assert error.code == -32602
        assert "eth_subscribe" not in second.methods()
