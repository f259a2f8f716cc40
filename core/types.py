"""
Core types for the mempool copy trader
Data structures shared by the decoder, watcher, calculator and placer
"""

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Tuple, Dict, Any


class Side(Enum):
    """Trade side."""
    BUY = "BUY"
    SELL = "SELL"
    UNKNOWN = "UNKNOWN"

    @classmethod
    def from_order_side(cls, value: Any) -> "Side":
        """Map the on-chain uint8 side (0 = BUY, 1 = SELL)."""
        if value == 0:
            return cls.BUY
        if value == 1:
            return cls.SELL
        return cls.UNKNOWN

    @classmethod
    def parse(cls, value: Any) -> "Side":
        if isinstance(value, Side):
            return value
        try:
            return cls(str(value).upper())
        except ValueError:
            return cls.UNKNOWN


class Role(Enum):
    """Part the monitored address played in a match."""
    MAKER = "MAKER"
    TAKER = "TAKER"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class OrderLeg:
    """One signed order inside a matchOrders call."""
    salt: int
    maker: str
    signer: str
    taker: str
    token_id: int
    maker_amount: int
    taker_amount: int
    expiration: int
    nonce: int
    fee_rate_bps: int
    side: int
    signature_type: int
    signature: bytes = b""

    @property
    def order_side(self) -> Side:
        return Side.from_order_side(self.side)

    def as_abi_tuple(self) -> tuple:
        return (
            self.salt,
            self.maker,
            self.signer,
            self.taker,
            self.token_id,
            self.maker_amount,
            self.taker_amount,
            self.expiration,
            self.nonce,
            self.fee_rate_bps,
            self.side,
            self.signature_type,
            self.signature,
        )


@dataclass(frozen=True)
class MatchCall:
    """Decoded matchOrders arguments."""
    taker_order: OrderLeg
    maker_orders: Tuple[OrderLeg, ...]
    taker_fill_amount: int
    taker_receive_amount: Optional[int]
    maker_fill_amounts: Tuple[int, ...]
    taker_fee_amount: int = 0
    maker_fee_amounts: Tuple[int, ...] = ()


@dataclass(frozen=True)
class TradeInfo:
    """Role/side inference for a target address."""
    role: Role
    side: Side
    token_id: Optional[str] = None


@dataclass(frozen=True)
class FillBreakdown:
    """
    Amounts the target filled, as base-unit integer strings.
    None means unattributable, which is not the same as "0".
    """
    role: Role
    side: Side
    token_id: Optional[str] = None
    shares: Optional[str] = None
    cash: Optional[str] = None


@dataclass(frozen=True)
class OnchainEvent:
    """Normalized pending transaction published on the event bus."""
    hash: Optional[str]
    role: Optional[Role] = None
    side: Optional[Side] = None
    token_id: Optional[str] = None
    taker_fill: Optional[str] = None
    taker_receive: Optional[str] = None
    call: Optional[MatchCall] = None
    raw: Dict[str, Any] = field(default_factory=dict)
    source: str = "onchain"
    received_at: datetime = field(default_factory=datetime.now)

    @property
    def decoded(self) -> bool:
        return self.call is not None


@dataclass(frozen=True)
class CopyConfig:
    """Scaling parameters for copy intents."""
    scale: Decimal
    slippage_bps: int = 0
    order_type: str = "FAK"
    simulate_only: bool = True
    allow_buy: bool = True
    allow_sell: bool = True


@dataclass(frozen=True)
class CopyFill:
    """Observed fill to copy. Amounts are base units (6 decimals)."""
    token_id: str
    side: Side
    shares: Optional[str] = None
    cash: Optional[str] = None
    source_hash: Optional[str] = None


@dataclass(frozen=True)
class CopyIntent:
    """Scaled order derived from an observed fill. Display units."""
    token_id: str
    side: Side
    size: Decimal
    limit_price: Decimal
    implied_price: Decimal
    notional: Decimal
    source_hash: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token_id": self.token_id,
            "side": self.side.value,
            "size": str(self.size),
            "limit_price": str(self.limit_price),
            "implied_price": str(self.implied_price),
            "notional": str(self.notional),
            "source_hash": self.source_hash,
        }


@dataclass(frozen=True)
class OrderRequest:
    """
    Venue-ready order, already rounded to venue precision.

    Market orders carry `amount` (cash for BUY, shares for SELL) and
    `price` as the worst acceptable price. Limit orders carry `price`
    and `size`.
    """
    token_id: str
    side: Side
    order_type: str
    price: Decimal
    amount: Optional[Decimal] = None
    size: Optional[Decimal] = None

    @property
    def is_market(self) -> bool:
        return self.amount is not None


class PlacementStatus(Enum):
    SIMULATED = "simulated"
    POSTED = "posted"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class PlacementResult:
    """Terminal outcome of placing one copy intent."""
    status: PlacementStatus
    intent: CopyIntent
    venue_order_id: Optional[str] = None
    reason: Optional[str] = None
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def simulated(cls, intent: CopyIntent) -> "PlacementResult":
        return cls(status=PlacementStatus.SIMULATED, intent=intent)

    @classmethod
    def posted(cls, intent: CopyIntent, venue_order_id: Optional[str] = None) -> "PlacementResult":
        return cls(status=PlacementStatus.POSTED, intent=intent, venue_order_id=venue_order_id)

    @classmethod
    def skipped(cls, intent: CopyIntent, reason: str) -> "PlacementResult":
        return cls(status=PlacementStatus.SKIPPED, intent=intent, reason=reason)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "venue_order_id": self.venue_order_id,
            "reason": self.reason,
            "intent": self.intent.to_dict(),
            "timestamp": self.timestamp.isoformat(),
        }
