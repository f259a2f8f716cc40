"""Core types, buffers and plumbing for the copy trader."""

from .types import (
    Side,
    Role,
    OrderLeg,
    MatchCall,
    TradeInfo,
    FillBreakdown,
    OnchainEvent,
    CopyConfig,
    CopyFill,
    CopyIntent,
    OrderRequest,
    PlacementStatus,
    PlacementResult,
)
from .buffers import HashRecencySet
from .cache import TtlCache, MISSING
from .event_bus import EventBus

__all__ = [
    "Side",
    "Role",
    "OrderLeg",
    "MatchCall",
    "TradeInfo",
    "FillBreakdown",
    "OnchainEvent",
    "CopyConfig",
    "CopyFill",
    "CopyIntent",
    "OrderRequest",
    "PlacementStatus",
    "PlacementResult",
    "HashRecencySet",
    "TtlCache",
    "MISSING",
    "EventBus",
]
