"""
Builders for matchOrders calls, pending transactions and copy intents
shared by the test modules.
"""

from decimal import Decimal
from typing import Optional, Sequence

from web3 import Web3

from config.copytrade_settings import (
    TRADER_ADDRESS,
    CTF_EXCHANGE_ADDRESS,
    FEE_MODULE_ADDRESS,
)
from core.types import OrderLeg, MatchCall, CopyIntent, Side
from polycopy.copytrade.polymarket_decoder import encode_match_orders

TARGET = Web3.to_checksum_address(TRADER_ADDRESS)
OTHER = Web3.to_checksum_address("0x" + "11" * 20)
ANOTHER = Web3.to_checksum_address("0x" + "22" * 20)
ZERO_ADDRESS = "0x" + "00" * 20
CTF_EXCHANGE = Web3.to_checksum_address(CTF_EXCHANGE_ADDRESS)
FEE_MODULE = Web3.to_checksum_address(FEE_MODULE_ADDRESS)

TOKEN_ID = 71321045679252212594626385532706912750332728571942532289631379312455583992563

BUY = 0
SELL = 1


def make_leg(
    maker: str = OTHER,
    side: int = BUY,
    maker_amount: int = 50_000_000,
    taker_amount: int = 100_000_000,
    token_id: int = TOKEN_ID,
    signer: Optional[str] = None,
    salt: int = 1,
) -> OrderLeg:
    """Signed order leg; amounts are base units (6 decimals)."""
    return OrderLeg(
        salt=salt,
        maker=maker,
        signer=signer or maker,
        taker=ZERO_ADDRESS,
        token_id=token_id,
        maker_amount=maker_amount,
        taker_amount=taker_amount,
        expiration=0,
        nonce=0,
        fee_rate_bps=0,
        side=side,
        signature_type=0,
        signature=b"\x01" * 65,
    )


def make_call(
    taker_order: OrderLeg,
    maker_orders: Sequence[OrderLeg],
    taker_fill: int,
    taker_receive: Optional[int],
    maker_fills: Optional[Sequence[int]] = None,
) -> MatchCall:
    if maker_fills is None:
        maker_fills = [0] * len(maker_orders)
    return MatchCall(
        taker_order=taker_order,
        maker_orders=tuple(maker_orders),
        taker_fill_amount=taker_fill,
        taker_receive_amount=taker_receive,
        maker_fill_amounts=tuple(maker_fills),
        taker_fee_amount=0,
        maker_fee_amounts=tuple(0 for _ in maker_orders),
    )


def target_maker_call() -> MatchCall:
    """
    Target is the only maker: sells 100 shares at 0.50 into a taker BUY.
    """
    taker = make_leg(maker=OTHER, side=BUY, maker_amount=50_000_000, taker_amount=100_000_000)
    maker = make_leg(maker=TARGET, side=SELL, maker_amount=200_000_000, taker_amount=100_000_000, salt=2)
    return make_call(taker, [maker], 50_000_000, 100_000_000, [100_000_000])


def target_taker_call() -> MatchCall:
    """Target takes 100 shares for 50 USDC against one maker."""
    taker = make_leg(maker=TARGET, side=BUY, maker_amount=50_000_000, taker_amount=100_000_000)
    maker = make_leg(maker=OTHER, side=SELL, maker_amount=100_000_000, taker_amount=50_000_000, salt=2)
    return make_call(taker, [maker], 50_000_000, 100_000_000, [100_000_000])


def make_tx(
    call: Optional[MatchCall] = None,
    tx_hash: str = "0x" + "ab" * 32,
    to: str = CTF_EXCHANGE,
    data: Optional[str] = None,
) -> dict:
    """Pending transaction dict as returned by eth_getTransactionByHash."""
    if data is None:
        data = encode_match_orders(call or target_maker_call())
    return {
        "hash": tx_hash,
        "from": OTHER,
        "to": to,
        "value": "0x0",
        "input": data,
    }


def make_intent(
    side: Side = Side.BUY,
    size: str = "10",
    limit_price: str = "0.525",
    implied_price: str = "0.5",
    notional: str = "5",
    token_id: str = str(TOKEN_ID),
) -> CopyIntent:
    return CopyIntent(
        token_id=token_id,
        side=side,
        size=Decimal(size),
        limit_price=Decimal(limit_price),
        implied_price=Decimal(implied_price),
        notional=Decimal(notional),
        source_hash="0x" + "cd" * 32,
    )
