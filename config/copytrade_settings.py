"""
Copy Trading Defaults for Polymarket
Compiled-in defaults; every value can be overridden from the environment
(see config/app_config.py)
"""

# === TRADER TO MONITOR ===
# Address searched for inside matchOrders calldata and used for maker/taker attribution
TRADER_ADDRESS = "0x557bed924a1bb6f62842c5742d1dc789b8d480d4"

# === POLYMARKET CONTRACTS (Polygon) ===
CTF_EXCHANGE_ADDRESS = "0x4bfb41d5b3570defd03c39a9a4d8de6bd8b8982e"
NEG_RISK_CTF_EXCHANGE = "0xc5d563a36ae78145c45a50134d48a1215220f80a"

# Fee module routes matchOrders to the exchanges; always part of the watch set
FEE_MODULE_ADDRESS = "0xe3f18acc55091e2c48d883fc8c8413319d4ab7b0"

# Extra `to` addresses to watch besides the fee module
TARGET_ADDRESSES = [CTF_EXCHANGE_ADDRESS, NEG_RISK_CTF_EXCHANGE]

# === MATCH ORDERS CALL ===
MATCH_SELECTOR = "0x2287e350"

ORDER_TUPLE = (
    "(uint256,address,address,address,uint256,uint256,uint256,"
    "uint256,uint256,uint256,uint8,uint8,bytes)"
)

# takerOrder, makerOrders, takerFillAmount, takerReceiveAmount,
# makerFillAmounts, takerFeeAmount, makerFeeAmounts
MATCH_ORDERS_TYPES = [
    ORDER_TUPLE,
    f"{ORDER_TUPLE}[]",
    "uint256",
    "uint256",
    "uint256[]",
    "uint256",
    "uint256[]",
]

# USDC and outcome tokens both use 6 decimals
TOKEN_DECIMALS = 6

# === ENDPOINTS ===
POLYGON_RPC_PRIMARY = "https://polygon-rpc.com"
CLOB_REST_URL = "https://clob.polymarket.com"
GAMMA_API_URL = "https://gamma-api.polymarket.com"
CHAIN_ID = 137  # Polygon Mainnet

# === MONITORING SETTINGS ===
# Emit a heartbeat every N blocks
HEARTBEAT_BLOCKS = 1

# Transaction hashes remembered for de-duplication
HASH_CACHE_SIZE = 1000

# Concurrent eth_getTransactionByHash lookups (standard pending mode)
PENDING_FETCH_CONCURRENCY = 32

# Hash lookups allowed to wait for a fetch slot before new hashes are dropped
PENDING_FETCH_BACKLOG = 2000

# Websocket reconnect backoff (seconds)
WS_RECONNECT_DELAY = 1.0
WS_MAX_RECONNECT_DELAY = 30.0
RPC_REQUEST_TIMEOUT = 10.0

# === RESOLVER CACHE ===
MARKET_TTL_SECONDS = 60.0
MARKET_NEGATIVE_TTL_SECONDS = 10.0
HTTP_TIMEOUT_SECONDS = 8.0
HTTP_RETRIES = 1

# === COPY TRADE SETTINGS ===
# Fraction of the observed fill to copy (0.1 = 10%), kept as a string so it parses exactly
COPY_SCALE = "0.1"

# Limit price tolerance in basis points (500 = 5%)
COPY_SLIPPAGE_BPS = 500

# FAK / FOK are sent as market orders, GTC / GTD as resting limit orders
COPY_ORDER_TYPE = "FAK"
ORDER_TYPES = ("FAK", "FOK", "GTC", "GTD")
MARKET_ORDER_TYPES = ("FAK", "FOK")

COPY_SIMULATE_ONLY = True
COPY_ALLOW_BUY = True
COPY_ALLOW_SELL = True

# Venue submission timeout (seconds); failed copies are never retried
PLACEMENT_TIMEOUT_SECONDS = 15.0

# Backpressure for copy/enrichment pipelines
MAX_INFLIGHT_PIPELINES = 64
MAX_PIPELINE_BACKLOG = 1000

# === LOGGING ===
LOG_LEVEL = "INFO"
LOG_FORMAT = "json"  # json | readable
LOG_FILE = None
