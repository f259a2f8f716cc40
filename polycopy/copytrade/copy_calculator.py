"""
Copy Intent Calculator
Turns an observed fill into a scaled order intent using integer fixed point
"""

import logging
from decimal import Decimal, localcontext
from typing import Optional

from config.copytrade_settings import TOKEN_DECIMALS
from core.types import Side, CopyConfig, CopyFill, CopyIntent

logger = logging.getLogger(__name__)

MICROS = 10 ** TOKEN_DECIMALS
BPS_DENOMINATOR = 10_000


def _parse_amount(value: Optional[str]) -> Optional[int]:
    """Base-unit amount as a positive int, or None."""
    if value is None:
        return None
    try:
        amount = int(str(value).strip())
    except ValueError:
        return None
    return amount if amount > 0 else None


def apply_scale(value: int, scale: Decimal) -> int:
    """floor(value * scale), exact for any decimal scale."""
    numerator, denominator = Decimal(scale).as_integer_ratio()
    return value * numerator // denominator


def apply_slippage(price_micros: int, slippage_bps: int, side: Side) -> int:
    """
    Worsen a price by slippage_bps.

    BUY moves up, SELL moves down, anything else is unchanged.
    """
    delta = price_micros * slippage_bps // BPS_DENOMINATOR
    if side == Side.BUY:
        return price_micros + delta
    if side == Side.SELL:
        return price_micros - delta
    return price_micros


def from_micros(value: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = 80
        return Decimal(value) / MICROS


def build_copy_intent(fill: CopyFill, config: CopyConfig) -> Optional[CopyIntent]:
    """
    Derive the copy order for an observed fill.

    Pure and deterministic. Returns None when the scale is not positive,
    the side is disabled or unknown, an amount is missing or not a
    positive integer, the scaled amounts floor to zero, or the slipped
    limit price is not positive.

    Args:
        fill: Observed fill with base-unit share and cash amounts
        config: Scale, slippage and side switches

    Returns:
        CopyIntent in display units, or None
    """
    if config.scale is None or Decimal(config.scale) <= 0:
        return None

    if fill.side == Side.BUY:
        if not config.allow_buy:
            return None
    elif fill.side == Side.SELL:
        if not config.allow_sell:
            return None
    else:
        return None

    shares = _parse_amount(fill.shares)
    cash = _parse_amount(fill.cash)
    if shares is None or cash is None:
        return None

    copy_shares = apply_scale(shares, config.scale)
    copy_cash = apply_scale(cash, config.scale)
    if copy_shares <= 0 or copy_cash <= 0:
        logger.debug(f"Copy size rounds to zero for {fill.source_hash} (scale {config.scale})")
        return None

    implied_micros = cash * MICROS // shares
    limit_micros = apply_slippage(implied_micros, config.slippage_bps, fill.side)
    if limit_micros <= 0:
        return None

    return CopyIntent(
        token_id=fill.token_id,
        side=fill.side,
        size=from_micros(copy_shares),
        limit_price=from_micros(limit_micros),
        implied_price=from_micros(implied_micros),
        notional=from_micros(copy_cash),
        source_hash=fill.source_hash,
    )
