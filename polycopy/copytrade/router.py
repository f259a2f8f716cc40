"""
Copy Trade Router
Bus subscriber that turns decoded onchain events into copy trades and
operator-facing trade lines
"""

import asyncio
import logging
from typing import Optional, Callable, List, Dict, Any, Set

from config.copytrade_settings import (
    TOKEN_DECIMALS,
    MAX_INFLIGHT_PIPELINES,
    MAX_PIPELINE_BACKLOG,
)
from core.event_bus import EventBus
from core.types import OnchainEvent, CopyFill, FillBreakdown, PlacementResult
from .polymarket_decoder import compute_fill_for_target
from .copy_executor import CopyTradeHandler
from .market_registry import MarketRegistry, TokenResolver, GammaMarket, TokenInfo

logger = logging.getLogger(__name__)

DECIMAL_BASE = 10 ** TOKEN_DECIMALS


def format_units(raw: Optional[str]) -> str:
    """Base units -> display string without trailing zeros ("1500000" -> "1.5")."""
    if raw is None or raw == "":
        return "n/a"
    try:
        value = int(raw)
    except ValueError:
        return str(raw)
    sign = "-" if value < 0 else ""
    whole, frac = divmod(abs(value), DECIMAL_BASE)
    if frac == 0:
        return f"{sign}{whole}"
    frac_text = str(frac).rjust(TOKEN_DECIMALS, "0").rstrip("0")
    return f"{sign}{whole}.{frac_text}"


def format_trade_lines(
    role: str,
    side: str,
    shares: Optional[str],
    cash: Optional[str],
    market: Optional[GammaMarket] = None,
    tx_hash: Optional[str] = None,
) -> List[str]:
    """Readable operator lines for one observed trade."""
    label = market.label if market else "Unknown market"
    lines = [
        f"{role} - {label}",
        f"  {side} {format_units(shares)} shares for {format_units(cash)} USDC",
    ]
    if tx_hash:
        lines.append(f"  hash: {tx_hash}")
    return lines


class CopyTradeRouter:
    """
    Routes onchain events to the copy pipeline.

    The bus callback only schedules work. Each event runs as its own task:
    the copy order and the market enrichment proceed concurrently, and
    pipelines for different events may finish in any order. At most
    `max_inflight` pipelines run at once and at most `max_backlog` wait;
    further events are dropped with a warning.
    """

    def __init__(
        self,
        bus: EventBus,
        target_address: str,
        copy_handler: Optional[CopyTradeHandler] = None,
        market_registry: Optional[MarketRegistry] = None,
        token_resolver: Optional[TokenResolver] = None,
        log_format: str = "json",
        max_inflight: int = MAX_INFLIGHT_PIPELINES,
        max_backlog: int = MAX_PIPELINE_BACKLOG,
        emit: Callable[[str], None] = print,
    ):
        self.bus = bus
        self.target_address = target_address
        self.copy_handler = copy_handler
        self.market_registry = market_registry
        self.token_resolver = token_resolver
        self.log_format = log_format
        self.max_inflight = max_inflight
        self.max_backlog = max_backlog
        self._emit = emit

        self._slots = asyncio.Semaphore(max_inflight)
        self._tasks: Set[asyncio.Task] = set()
        self._unsubscribe: Optional[Callable[[], None]] = None

        self.stats: Dict[str, int] = {
            "events": 0,
            "undecoded": 0,
            "dispatched": 0,
            "dropped": 0,
            "failed": 0,
        }
        self.results: List[PlacementResult] = []

    def attach(self) -> Callable[[], None]:
        """Subscribe to the bus; returns the detach function."""
        if self._unsubscribe is None:
            self._unsubscribe = self.bus.subscribe(self.on_event)
        return self.detach

    def detach(self) -> None:
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def on_event(self, event: Any) -> None:
        """Bus handler. Never blocks on the pipeline."""
        if not isinstance(event, OnchainEvent) or event.source != "onchain":
            return

        self.stats["events"] += 1

        if not event.decoded or not event.token_id:
            self.stats["undecoded"] += 1
            logger.info(
                f"Onchain event {event.hash} (not decoded) "
                f"taker_fill={event.taker_fill} taker_receive={event.taker_receive}"
            )
            return

        if len(self._tasks) >= self.max_inflight + self.max_backlog:
            self.stats["dropped"] += 1
            logger.warning(f"Pipeline backlog full ({len(self._tasks)}), dropping {event.hash}")
            return

        self.stats["dispatched"] += 1
        task = asyncio.ensure_future(self._run(event))
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            self.stats["failed"] += 1
            logger.error(f"Copy pipeline failed: {error!r}")

    async def _run(self, event: OnchainEvent) -> Optional[PlacementResult]:
        async with self._slots:
            return await self.process(event)

    async def process(self, event: OnchainEvent) -> Optional[PlacementResult]:
        """
        Attribute the fill, copy it and report it.

        Returns:
            The placement result, or None when no copy was attempted
        """
        breakdown = compute_fill_for_target(event.call, self.target_address)
        if breakdown is None:
            return None

        fill = CopyFill(
            token_id=breakdown.token_id or event.token_id,
            side=breakdown.side,
            shares=breakdown.shares,
            cash=breakdown.cash,
            source_hash=event.hash,
        )

        result, _ = await asyncio.gather(
            self._copy(fill),
            self._report(event, breakdown),
        )
        if result is not None:
            self.results.append(result)
        return result

    async def _copy(self, fill: CopyFill) -> Optional[PlacementResult]:
        if self.copy_handler is None:
            return None
        return await self.copy_handler.handle(fill)

    async def _report(self, event: OnchainEvent, breakdown: FillBreakdown) -> None:
        market: Optional[GammaMarket] = None
        token: Optional[TokenInfo] = None
        lookups = []
        if self.token_resolver is not None:
            lookups.append(self.token_resolver.resolve(event.token_id))
        if self.market_registry is not None:
            lookups.append(self.market_registry.resolve_by_token_id(event.token_id))

        if lookups:
            resolved = await asyncio.gather(*lookups, return_exceptions=True)
            for value in resolved:
                if isinstance(value, TokenInfo):
                    token = value
                elif isinstance(value, GammaMarket):
                    market = value
                elif isinstance(value, Exception):
                    logger.debug(f"Enrichment failed for {event.hash}: {value}")

        role = breakdown.role.value
        side = breakdown.side.value

        if self.log_format == "readable":
            for line in format_trade_lines(role, side, breakdown.shares, breakdown.cash, market, event.hash):
                self._emit(line)
            return

        logger.info(
            "Onchain trade",
            extra={
                "hash": event.hash,
                "role": role,
                "side": side,
                "token_id": event.token_id,
                "shares": breakdown.shares,
                "cash": breakdown.cash,
                "market_id": token.market_id if token else None,
                "asset_id": token.asset_id if token else None,
                "market_slug": market.slug if market else None,
                "market_title": market.question if market else None,
                "market_closed": market.closed if market else None,
            },
        )

    async def drain(self, timeout: Optional[float] = None) -> None:
        """Wait for in-flight pipelines (shutdown and tests)."""
        if not self._tasks:
            return
        await asyncio.wait(set(self._tasks), timeout=timeout)

    @property
    def inflight(self) -> int:
        return len(self._tasks)

    def get_stats(self) -> Dict[str, Any]:
        return {**self.stats, "inflight": self.inflight}
