"""
Polymarket matchOrders Decoder
Decodes CTF Exchange matchOrders calldata and attributes fills to an address
"""

import logging
from typing import Optional, Any, Tuple

from web3 import Web3
from eth_abi import decode, encode

from config.copytrade_settings import MATCH_SELECTOR, MATCH_ORDERS_TYPES
from core.types import (
    Side,
    Role,
    OrderLeg,
    MatchCall,
    TradeInfo,
    FillBreakdown,
)

logger = logging.getLogger(__name__)

SELECTOR_HEX_LEN = 10  # "0x" + 4 bytes


def _as_hex(raw: Any) -> Optional[str]:
    if isinstance(raw, (bytes, bytearray)):
        return "0x" + bytes(raw).hex()
    if isinstance(raw, str):
        return raw.strip().lower()
    return None


def _needle(address: str) -> str:
    needle = address.strip().lower()
    return needle[2:] if needle.startswith("0x") else needle


def _same_address(a: Optional[str], b: Optional[str]) -> bool:
    return bool(a) and bool(b) and a.lower() == b.lower()


def matches_calldata(raw: Any, needle: str, selector: str = MATCH_SELECTOR) -> bool:
    """
    Cheap pre-filter run before the ABI decode.

    True iff raw is hex calldata starting with selector and containing
    needle anywhere. False positives are fine; false negatives are not.

    Args:
        raw: Transaction input (hex string or bytes)
        needle: Address to look for, with or without 0x
        selector: 4-byte function selector as 0x-prefixed hex
    """
    data = _as_hex(raw)
    if data is None or len(data) < SELECTOR_HEX_LEN:
        return False
    if not data.startswith(selector.lower()):
        return False
    return _needle(needle) in data


def _to_leg(values: Tuple) -> OrderLeg:
    (salt, maker, signer, taker, token_id, maker_amount, taker_amount,
     expiration, nonce, fee_rate_bps, side, signature_type, signature) = values
    return OrderLeg(
        salt=salt,
        maker=Web3.to_checksum_address(maker),
        signer=Web3.to_checksum_address(signer),
        taker=Web3.to_checksum_address(taker),
        token_id=token_id,
        maker_amount=maker_amount,
        taker_amount=taker_amount,
        expiration=expiration,
        nonce=nonce,
        fee_rate_bps=fee_rate_bps,
        side=side,
        signature_type=signature_type,
        signature=bytes(signature),
    )


def decode_match_orders(data: Any, selector: str = MATCH_SELECTOR) -> Optional[MatchCall]:
    """
    Decode matchOrders calldata.

    Returns None for anything malformed: wrong selector, truncated
    payload, bad hex, or a maker fill list that does not line up with
    the maker orders. Never raises.
    """
    try:
        hex_data = _as_hex(data)
        if hex_data is None or not hex_data.startswith(selector.lower()):
            return None

        payload = bytes.fromhex(hex_data[SELECTOR_HEX_LEN:])
        (taker_order, maker_orders, taker_fill, taker_receive,
         maker_fills, taker_fee, maker_fees) = decode(MATCH_ORDERS_TYPES, payload)

        if len(maker_fills) != len(maker_orders):
            logger.debug(
                f"matchOrders rejected: {len(maker_orders)} maker orders "
                f"but {len(maker_fills)} fill amounts"
            )
            return None

        return MatchCall(
            taker_order=_to_leg(taker_order),
            maker_orders=tuple(_to_leg(m) for m in maker_orders),
            taker_fill_amount=taker_fill,
            taker_receive_amount=taker_receive,
            maker_fill_amounts=tuple(maker_fills),
            taker_fee_amount=taker_fee,
            maker_fee_amounts=tuple(maker_fees),
        )

    except Exception as e:
        logger.debug(f"matchOrders decode failed: {e}")
        return None


def encode_match_orders(call: MatchCall, selector: str = MATCH_SELECTOR) -> str:
    """Encode a MatchCall as calldata (selector + ABI payload)."""
    payload = encode(
        MATCH_ORDERS_TYPES,
        [
            call.taker_order.as_abi_tuple(),
            [leg.as_abi_tuple() for leg in call.maker_orders],
            call.taker_fill_amount,
            call.taker_receive_amount or 0,
            list(call.maker_fill_amounts),
            call.taker_fee_amount,
            list(call.maker_fee_amounts),
        ],
    )
    return selector.lower() + payload.hex()


def _role_for(call: MatchCall, target: str) -> Role:
    taker = call.taker_order
    if _same_address(taker.maker, target) or _same_address(taker.signer, target):
        return Role.TAKER
    if any(_same_address(leg.maker, target) for leg in call.maker_orders):
        return Role.MAKER
    return Role.UNKNOWN


def infer_role_and_side(call: Optional[MatchCall], target: str) -> Optional[TradeInfo]:
    """
    Classify what part target played in the match.

    Side always comes from the taker leg, whatever the role.
    """
    if call is None:
        return None
    return TradeInfo(
        role=_role_for(call, target),
        side=call.taker_order.order_side,
        token_id=str(call.taker_order.token_id),
    )


def _derive(fill: int, numerator: int, denominator: int) -> Optional[int]:
    # multiply before divide; floor like on-chain settlement
    if denominator == 0:
        return None
    return fill * numerator // denominator


def _maker_leg_fill(leg: OrderLeg, fill: int) -> Tuple[Optional[int], Optional[int]]:
    """(shares, cash) one maker leg contributes."""
    side = leg.order_side

    if leg.maker_amount == 0:
        # no ratio; pass the fill through to the side it is denominated in
        if side == Side.BUY:
            return None, fill
        if side == Side.SELL:
            return fill, None
        return None, None

    if side == Side.BUY:
        # maker pays cash, receives shares
        return _derive(fill, leg.taker_amount, leg.maker_amount), fill
    if side == Side.SELL:
        # maker sells shares, receives cash
        return fill, _derive(fill, leg.taker_amount, leg.maker_amount)
    return None, None


def _taker_fill(call: MatchCall, side: Side) -> Tuple[Optional[int], Optional[int]]:
    """(shares, cash) the taker filled."""
    leg = call.taker_order
    fill = call.taker_fill_amount
    receive = call.taker_receive_amount

    if receive is None:
        receive = _derive(fill, leg.taker_amount, leg.maker_amount)

    if side == Side.BUY:
        return receive, fill
    if side == Side.SELL:
        return fill, receive
    return None, None


def compute_fill_for_target(call: Optional[MatchCall], target: str) -> Optional[FillBreakdown]:
    """
    Exact amounts target filled in this match, in base units.

    TAKER:
        BUY pays taker_fill_amount cash and receives taker_receive_amount
        shares (derived from the taker leg's ratio when absent). SELL is
        the mirror image.
    MAKER:
        Sum over every maker leg whose maker is target, using the fill
        amount at the same index and that leg's own side and ratio.

    Amounts stay None when nothing could be attributed. "0" means an
    attributed zero fill.

    Args:
        call: Decoded matchOrders call
        target: Address to attribute fills to

    Returns:
        FillBreakdown, or None if call is None
    """
    if call is None:
        return None

    role = _role_for(call, target)
    side = call.taker_order.order_side
    shares: Optional[int] = None
    cash: Optional[int] = None

    if role == Role.TAKER:
        shares, cash = _taker_fill(call, side)

    elif role == Role.MAKER:
        for index, leg in enumerate(call.maker_orders):
            if not _same_address(leg.maker, target):
                continue
            leg_shares, leg_cash = _maker_leg_fill(leg, call.maker_fill_amounts[index])
            if leg_shares is not None:
                shares = (shares or 0) + leg_shares
            if leg_cash is not None:
                cash = (cash or 0) + leg_cash

    return FillBreakdown(
        role=role,
        side=side,
        token_id=str(call.taker_order.token_id),
        shares=str(shares) if shares is not None else None,
        cash=str(cash) if cash is not None else None,
    )


class PolymarketDecoder:
    """
    matchOrders decoder bound to one monitored address.
    """

    def __init__(self, target_address: str, selector: str = MATCH_SELECTOR):
        """
        Initialize decoder

        Args:
            target_address: Address whose role and fills are attributed
            selector: matchOrders function selector
        """
        self.target_address = Web3.to_checksum_address(target_address)
        self.selector = selector.lower()
        self.needle = _needle(self.target_address)

    def prefilter(self, raw: Any) -> bool:
        return matches_calldata(raw, self.needle, self.selector)

    def decode(self, raw: Any) -> Optional[MatchCall]:
        return decode_match_orders(raw, self.selector)

    def infer(self, call: Optional[MatchCall]) -> Optional[TradeInfo]:
        return infer_role_and_side(call, self.target_address)

    def fill(self, call: Optional[MatchCall]) -> Optional[FillBreakdown]:
        return compute_fill_for_target(call, self.target_address)
