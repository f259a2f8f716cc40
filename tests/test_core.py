"""
Tests for core plumbing

Tests cover:
- HashRecencySet: bounded de-duplication
- TtlCache: expiry, negative caching and single-flight loads
- EventBus: synchronous fan-out
- Logging: JSON line formatter
"""

import asyncio
import json
import logging
import pytest
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.buffers import HashRecencySet
from core.cache import TtlCache, MISSING
from core.event_bus import EventBus
from core.logging_setup import JsonFormatter, setup_logging, READABLE_FORMAT


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestHashRecencySet:
    """Tests for HashRecencySet."""

    def test_seen_admits_then_reports(self):
        recent = HashRecencySet(10)
        assert recent.seen("0xAA") is False
        assert recent.seen("0xaa") is True
        assert "0xAa" in recent
        assert len(recent) == 1

    def test_evicts_oldest(self):
        """Capacity is a hard bound; the oldest hash goes first."""
        recent = HashRecencySet(2)
        for tx_hash in ("0x1", "0x2", "0x3"):
            recent.seen(tx_hash)

        assert len(recent) == 2
        assert "0x1" not in recent
        assert recent.snapshot() == ["0x2", "0x3"]

    def test_evicted_hash_is_new_again(self):
        recent = HashRecencySet(1)
        recent.seen("0x1")
        recent.seen("0x2")
        assert recent.seen("0x1") is False

    def test_empty_hash_not_admitted(self):
        recent = HashRecencySet(5)
        assert recent.seen(None) is False
        assert recent.seen("  ") is False
        assert len(recent) == 0
        assert 123 not in recent

    def test_invalid_capacity(self):
        with pytest.raises(ValueError):
            HashRecencySet(0)

    def test_clear(self):
        recent = HashRecencySet(5)
        recent.seen("0x1")
        recent.clear()
        assert recent.seen("0x1") is False


class TestTtlCache:
    """Tests for TtlCache."""

    def test_get_and_expiry(self):
        clock = FakeClock()
        cache = TtlCache(clock=clock)
        cache.set("a", 1, ttl=10)

        assert cache.get("a") == 1
        clock.advance(10)
        assert cache.get("a") is None
        assert cache.get("a", MISSING) is MISSING

    def test_none_is_a_value(self):
        """A cached None is distinguishable from an absent key."""
        cache = TtlCache(clock=FakeClock())
        cache.set("miss", None, ttl=5)
        assert cache.get("miss", MISSING) is None
        assert cache.get("other", MISSING) is MISSING

    def test_cleanup_and_len(self):
        clock = FakeClock()
        cache = TtlCache(clock=clock)
        cache.set("short", 1, ttl=1)
        cache.set("long", 2, ttl=100)
        clock.advance(5)

        assert cache.cleanup() == 1
        assert len(cache) == 1

    def test_delete_and_clear(self):
        cache = TtlCache(clock=FakeClock())
        cache.set("a", 1, ttl=5)
        cache.set("b", 2, ttl=5)
        cache.delete("a")
        assert cache.get("a") is None
        cache.clear()
        assert len(cache) == 0

    def test_single_flight(self):
        """Concurrent callers share one loader run."""
        cache = TtlCache()
        calls = []

        async def loader():
            calls.append(1)
            await asyncio.sleep(0.01)
            return "value"

        async def run():
            return await asyncio.gather(*(cache.get_or_load("k", loader, ttl=60) for _ in range(5)))

        results = asyncio.run(run())

        assert results == ["value"] * 5
        assert len(calls) == 1
        assert cache.get("k") == "value"

    def test_failed_load_is_not_cached(self):
        """Loader errors propagate and the next call retries."""
        cache = TtlCache()
        attempts = []

        async def loader():
            attempts.append(1)
            if len(attempts) == 1:
                raise ValueError("boom")
            return 42

        async def run():
            with pytest.raises(ValueError):
                await cache.get_or_load("k", loader, ttl=60)
            assert not cache.is_loading("k")
            assert cache.get("k", MISSING) is MISSING
            return await cache.get_or_load("k", loader, ttl=60)

        assert asyncio.run(run()) == 42
        assert len(attempts) == 2

    def test_negative_ttl(self):
        """None results use the shorter negative TTL."""
        clock = FakeClock()
        cache = TtlCache(clock=clock)
        calls = []

        async def loader():
            calls.append(1)
            return None

        async def run():
            await cache.get_or_load("k", loader, ttl=60, negative_ttl=5)
            await cache.get_or_load("k", loader, ttl=60, negative_ttl=5)
            clock.advance(6)
            await cache.get_or_load("k", loader, ttl=60, negative_ttl=5)

        asyncio.run(run())
        assert len(calls) == 2

    def test_cancelled_waiter_does_not_cancel_load(self):
        cache = TtlCache()

        async def loader():
            await asyncio.sleep(0.02)
            return "done"

        async def run():
            first = asyncio.ensure_future(cache.get_or_load("k", loader, ttl=60))
            second = asyncio.ensure_future(cache.get_or_load("k", loader, ttl=60))
            await asyncio.sleep(0)
            first.cancel()
            return await second

        assert asyncio.run(run()) == "done"


class TestEventBus:
    """Tests for EventBus."""

    def test_fan_out_in_order(self):
        bus = EventBus()
        seen = []
        bus.subscribe(lambda e: seen.append(("a", e)))
        bus.subscribe(lambda e: seen.append(("b", e)))

        bus.publish(1)

        assert seen == [("a", 1), ("b", 1)]
        assert bus.published == 1

    def test_unsubscribe(self):
        bus = EventBus()
        seen = []
        unsubscribe = bus.subscribe(seen.append)
        unsubscribe()
        unsubscribe()

        bus.publish("x")
        assert seen == []
        assert bus.handler_count == 0

    def test_failing_handler_is_isolated(self):
        """One handler raising does not stop the others."""
        bus = EventBus()
        seen = []

        def broken(event):
            raise RuntimeError("handler bug")

        bus.subscribe(broken)
        bus.subscribe(seen.append)
        bus.publish("x")

        assert seen == ["x"]
        assert bus.handler_errors == 1


class TestLogging:
    """Tests for the log formatters."""

    def test_json_formatter(self):
        record = logging.LogRecord("polycopy.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
        record.role = "MAKER"

        payload = json.loads(JsonFormatter().format(record))

        assert payload["msg"] == "hello world"
        assert payload["level"] == "info"
        assert payload["logger"] == "polycopy.test"
        assert payload["role"] == "MAKER"
        assert payload["ts"].endswith("Z")

    def test_json_formatter_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord("x", logging.ERROR, __file__, 1, "failed", (), sys.exc_info())

        payload = json.loads(JsonFormatter().format(record))
        assert "ValueError: bad" in payload["exc"]

    def test_setup_logging_readable(self, tmp_path):
        log_file = tmp_path / "logs" / "copytrade.log"
        root = setup_logging("DEBUG", "readable", str(log_file))

        try:
            assert root.level == logging.DEBUG
            assert log_file.parent.exists()
            assert any(h.formatter._fmt == READABLE_FORMAT for h in root.handlers)
        finally:
            for handler in list(root.handlers):
                handler.close()
                root.removeHandler(handler)
            root.setLevel(logging.WARNING)
