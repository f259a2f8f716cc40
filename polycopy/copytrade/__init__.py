"""
Polymarket Copy Trading Module
Watch the mempool for a trader's matchOrders fills and replicate them
"""

from .polymarket_decoder import (
    PolymarketDecoder,
    matches_calldata,
    decode_match_orders,
    encode_match_orders,
    infer_role_and_side,
    compute_fill_for_target,
)
from .blockchain_monitor import MempoolWatcher, WatcherState, PendingMode
from .copy_calculator import build_copy_intent
from .copy_executor import (
    CopyOrderPlacer,
    CopyTradeHandler,
    build_copy_handler,
    shape_order,
)
from .market_registry import MarketRegistry, TokenResolver, GammaMarket, TokenInfo, normalize_market
from .router import CopyTradeRouter

__all__ = [
    'PolymarketDecoder',
    'matches_calldata',
    'decode_match_orders',
    'encode_match_orders',
    'infer_role_and_side',
    'compute_fill_for_target',
    'MempoolWatcher',
    'WatcherState',
    'PendingMode',
    'build_copy_intent',
    'CopyOrderPlacer',
    'CopyTradeHandler',
    'build_copy_handler',
    'shape_order',
    'MarketRegistry',
    'TokenResolver',
    'GammaMarket',
    'TokenInfo',
    'normalize_market',
    'CopyTradeRouter',
]
