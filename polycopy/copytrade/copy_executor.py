"""
Copy Trade Executor for Polymarket
Rounds copy intents to venue precision and places them (or simulates)
"""

import asyncio
import logging
from collections import deque
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional, Dict, Any, List, Tuple, Deque

from config.app_config import AppConfig
from config.copytrade_settings import (
    MARKET_ORDER_TYPES,
    PLACEMENT_TIMEOUT_SECONDS,
)
from core.types import (
    Side,
    CopyConfig,
    CopyFill,
    CopyIntent,
    OrderRequest,
    PlacementResult,
    PlacementStatus,
)
from polycopy.trading.clob_venue import order_id_from_response
from .copy_calculator import build_copy_intent

logger = logging.getLogger(__name__)

AMOUNT_ROUNDED_TO_ZERO = "amount rounded to zero"
PRICE_SIZE_ROUNDED_TO_ZERO = "price/size rounded to zero"


def round_half_up(value: Decimal, places: int) -> Decimal:
    return Decimal(value).quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def shape_order(intent: CopyIntent, order_type: str) -> Tuple[Optional[OrderRequest], Optional[str]]:
    """
    Decide the order shape and round it.

    Market types (FAK, FOK): BUY spends the notional at 2 dp, SELL
    sells the size at 4 dp. Resting types (GTC, GTD): price and size
    at 4 dp.

    Returns:
        (order, None) or (None, skip reason)
    """
    order_type = (order_type or "FAK").upper()

    if order_type in MARKET_ORDER_TYPES:
        if intent.side == Side.BUY:
            amount = round_half_up(intent.notional, 2)
        else:
            amount = round_half_up(intent.size, 4)
        if amount <= 0:
            return None, AMOUNT_ROUNDED_TO_ZERO
        return OrderRequest(
            token_id=intent.token_id,
            side=intent.side,
            order_type=order_type,
            price=intent.limit_price,
            amount=amount,
        ), None

    price = round_half_up(intent.limit_price, 4)
    size = round_half_up(intent.size, 4)
    if price <= 0 or size <= 0:
        return None, PRICE_SIZE_ROUNDED_TO_ZERO
    return OrderRequest(
        token_id=intent.token_id,
        side=intent.side,
        order_type=order_type,
        price=price,
        size=size,
    ), None


class CopyOrderPlacer:
    """
    Places copy intents on the venue.

    Each intent ends in exactly one result: SIMULATED when no venue is
    configured or simulate-only is set, SKIPPED when rounding kills the
    order or the venue rejects it, POSTED otherwise. Failed orders are
    never resubmitted.
    """

    def __init__(
        self,
        venue: Optional[Any] = None,
        order_type: str = "FAK",
        simulate_only: bool = True,
        timeout: float = PLACEMENT_TIMEOUT_SECONDS,
        history_size: int = 500,
    ):
        """
        Initialize copy order placer

        Args:
            venue: Object with a blocking submit(OrderRequest) method, or None
            order_type: FAK, FOK, GTC or GTD
            simulate_only: Never touch the venue when True
            timeout: Seconds before a submission counts as failed
            history_size: Results kept for stats
        """
        self.venue = venue
        self.order_type = order_type
        self.simulate_only = simulate_only
        self.timeout = timeout

        self.results: Deque[PlacementResult] = deque(maxlen=history_size)
        self.counts: Dict[PlacementStatus, int] = {status: 0 for status in PlacementStatus}

        if not self.enabled:
            reason = "simulate-only" if simulate_only else "missing signer or API creds"
            logger.warning(f"Copy trading in simulate-only mode ({reason})")

    @property
    def enabled(self) -> bool:
        return self.venue is not None and not self.simulate_only

    async def place(self, intent: CopyIntent) -> PlacementResult:
        """
        Place one copy intent.

        Never raises; submission errors become SKIPPED results.
        """
        result = await self._place(intent)
        self._record(result)
        return result

    async def _place(self, intent: CopyIntent) -> PlacementResult:
        if not self.enabled:
            logger.info(
                f"[SIMULATE] {intent.side.value} {intent.size} @ {intent.limit_price} "
                f"token {intent.token_id} (tx {intent.source_hash})"
            )
            return PlacementResult.simulated(intent)

        order, reason = shape_order(intent, self.order_type)
        if order is None:
            logger.info(f"Copy skipped for {intent.source_hash}: {reason}")
            return PlacementResult.skipped(intent, reason)

        try:
            response = await asyncio.wait_for(
                asyncio.to_thread(self.venue.submit, order),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            reason = f"submission timed out after {self.timeout}s"
            logger.warning(f"Copy placement failed for {intent.source_hash}: {reason}")
            return PlacementResult.skipped(intent, reason)
        except Exception as e:
            logger.warning(f"Copy placement failed for {intent.source_hash}: {e}")
            return PlacementResult.skipped(intent, str(e) or e.__class__.__name__)

        venue_order_id = order_id_from_response(response)
        logger.info(
            f"Copy posted: {intent.side.value} {order.amount or order.size} @ {order.price} "
            f"{order.order_type} -> {venue_order_id}"
        )
        return PlacementResult.posted(intent, venue_order_id)

    def _record(self, result: PlacementResult) -> None:
        self.results.append(result)
        self.counts[result.status] += 1

    def get_execution_stats(self) -> Dict[str, Any]:
        """Get execution statistics"""
        posted_notional = sum(
            (r.intent.notional for r in self.results if r.status == PlacementStatus.POSTED),
            Decimal(0),
        )
        return {
            "total": sum(self.counts.values()),
            "simulated": self.counts[PlacementStatus.SIMULATED],
            "posted": self.counts[PlacementStatus.POSTED],
            "skipped": self.counts[PlacementStatus.SKIPPED],
            "recent_posted_notional": str(posted_notional),
            "mode": "live" if self.enabled else "simulate",
        }

    def recent(self, limit: int = 20) -> List[PlacementResult]:
        return list(self.results)[-limit:]


class CopyTradeHandler:
    """Builds an intent from an observed fill and hands it to the placer."""

    def __init__(self, config: CopyConfig, placer: CopyOrderPlacer):
        self.config = config
        self.placer = placer
        self.fills_seen = 0
        self.intents_built = 0

    async def handle(self, fill: CopyFill) -> Optional[PlacementResult]:
        self.fills_seen += 1
        intent = build_copy_intent(fill, self.config)
        if intent is None:
            logger.debug(f"No copy intent for {fill.source_hash} ({fill.side.value})")
            return None

        self.intents_built += 1
        return await self.placer.place(intent)


def build_copy_handler(config: AppConfig, venue: Optional[Any] = None) -> CopyTradeHandler:
    """Wire calculator settings and placer from the app config."""
    copy_config = CopyConfig(
        scale=config.copy_scale,
        slippage_bps=config.copy_slippage_bps,
        order_type=config.copy_order_type,
        simulate_only=config.copy_simulate_only,
        allow_buy=config.copy_allow_buy,
        allow_sell=config.copy_allow_sell,
    )
    placer = CopyOrderPlacer(
        venue=venue,
        order_type=config.copy_order_type,
        simulate_only=config.copy_simulate_only,
        timeout=config.placement_timeout,
    )
    return CopyTradeHandler(copy_config, placer)
