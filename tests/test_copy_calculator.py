"""
Tests for the copy intent calculator
"""

import pytest
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from core.types import Side, CopyConfig, CopyFill
from polycopy.copytrade.copy_calculator import (
    apply_scale,
    apply_slippage,
    build_copy_intent,
    from_micros,
)

TOKEN = "12345"


def fill(side=Side.BUY, shares="1000000000", cash="500000000"):
    return CopyFill(token_id=TOKEN, side=side, shares=shares, cash=cash, source_hash="0xhash")


def config(scale="0.1", slippage_bps=500, **kwargs):
    return CopyConfig(scale=Decimal(scale), slippage_bps=slippage_bps, **kwargs)


class TestBuildCopyIntent:
    """Tests for build_copy_intent."""

    def test_buy_ten_percent(self):
        """1000 shares for 500 USDC at 10% and 500 bps."""
        intent = build_copy_intent(fill(), config())

        assert intent.side == Side.BUY
        assert intent.token_id == TOKEN
        assert intent.size == Decimal("100")
        assert intent.implied_price == Decimal("0.5")
        assert intent.limit_price == Decimal("0.525")
        assert intent.notional == Decimal("50")
        assert intent.source_hash == "0xhash"

    def test_sell_moves_price_down(self):
        """SELL slippage lowers the limit price."""
        intent = build_copy_intent(fill(side=Side.SELL), config())
        assert intent.limit_price == Decimal("0.475")
        assert intent.implied_price == Decimal("0.5")

    def test_base_unit_amounts(self):
        """Small base-unit fills scale to fractional display units."""
        intent = build_copy_intent(fill(shares="1000", cash="500"), config())

        assert intent.size == Decimal("0.0001")
        assert intent.notional == Decimal("0.00005")
        assert intent.implied_price == Decimal("0.5")
        assert intent.limit_price == Decimal("0.525")

    def test_zero_slippage_uses_implied_price(self):
        intent = build_copy_intent(fill(), config(slippage_bps=0))
        assert intent.limit_price == intent.implied_price

    def test_implied_price_is_floored(self):
        """Implied price is floor(cash * 1e6 / shares) micro-dollars."""
        intent = build_copy_intent(fill(shares="3000000", cash="1000000"), config(scale="1", slippage_bps=0))
        assert intent.implied_price == Decimal("0.333333")

    def test_non_positive_scale(self):
        """Zero or negative scale never copies."""
        assert build_copy_intent(fill(), config(scale="0")) is None
        assert build_copy_intent(fill(), config(scale="-0.1")) is None

    def test_unknown_side(self):
        assert build_copy_intent(fill(side=Side.UNKNOWN), config()) is None

    def test_disabled_sides(self):
        """allow_buy / allow_sell switch sides off."""
        assert build_copy_intent(fill(side=Side.BUY), config(allow_buy=False)) is None
        assert build_copy_intent(fill(side=Side.SELL), config(allow_sell=False)) is None
        assert build_copy_intent(fill(side=Side.SELL), config(allow_buy=False)) is not None

    def test_missing_or_invalid_amounts(self):
        """Amounts must be positive integer strings."""
        assert build_copy_intent(fill(cash=None), config()) is None
        assert build_copy_intent(fill(shares=None), config()) is None
        assert build_copy_intent(fill(shares="0"), config()) is None
        assert build_copy_intent(fill(cash="-5"), config()) is None
        assert build_copy_intent(fill(shares="1.5"), config()) is None
        assert build_copy_intent(fill(shares="abc"), config()) is None

    def test_scaled_to_zero(self):
        """Amounts flooring to zero after scaling give no intent."""
        assert build_copy_intent(fill(shares="9", cash="5"), config()) is None

    def test_single_share_at_tiny_scale(self):
        """scale 0.0001 of 1 share floors to zero."""
        assert build_copy_intent(fill(shares="1", cash="1"), config(scale="0.0001")) is None

    def test_full_slippage_sell_kills_price(self):
        """A slipped price of zero gives no intent."""
        assert build_copy_intent(fill(side=Side.SELL), config(slippage_bps=10_000)) is None

    def test_deterministic(self):
        """Same inputs, same intent."""
        assert build_copy_intent(fill(), config()) == build_copy_intent(fill(), config())


class TestFixedPointHelpers:
    """Tests for the integer helpers."""

    def test_apply_scale_is_exact(self):
        """Scale is applied without float rounding."""
        assert apply_scale(10 ** 30, Decimal("0.3")) == 3 * 10 ** 29
        assert apply_scale(3, Decimal("0.1")) == 0
        assert apply_scale(1_000_000, Decimal("1")) == 1_000_000

    def test_apply_slippage(self):
        assert apply_slippage(500_000, 500, Side.BUY) == 525_000
        assert apply_slippage(500_000, 500, Side.SELL) == 475_000
        assert apply_slippage(500_000, 500, Side.UNKNOWN) == 500_000

    def test_apply_slippage_floors_delta(self):
        # 333333 * 1 / 10000 = 33.3333 -> 33
        assert apply_slippage(333_333, 1, Side.BUY) == 333_366

    def test_from_micros(self):
        assert from_micros(1_500_000) == Decimal("1.5")
        assert from_micros(1) == Decimal("0.000001")
        assert from_micros(10 ** 40) == Decimal(10 ** 34)
