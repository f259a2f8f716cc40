"""
Runtime configuration for the mempool copy trader.
Values come from environment variables (optionally loaded from a .env file)
and fall back to config/copytrade_settings.py.

SECURITY WARNING:
- Never commit your private key or CLOB API secrets to git
- Use environment variables or a .env file
- Add .env to .gitignore
"""

import os
from dataclasses import dataclass, field, replace
from decimal import Decimal, InvalidOperation
from typing import Dict, List, Optional, Any

from web3 import Web3

from . import copytrade_settings as settings


class ConfigError(ValueError):
    """Invalid configuration; fatal at startup."""


def parse_bool(raw: Optional[str], default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    return raw.strip().lower() in ("1", "true", "yes", "y")


def parse_number(raw: Optional[str], default: float, minimum: Optional[float] = None) -> float:
    """Parse a float, falling back to default on junk and clamping to minimum."""
    if raw is None or raw.strip() == "":
        return default
    try:
        value = float(raw)
    except ValueError:
        return default
    if value != value:  # NaN
        return default
    if minimum is not None:
        return max(minimum, value)
    return value


def parse_int(raw: Optional[str], default: int, minimum: Optional[int] = None) -> int:
    return int(parse_number(raw, default, minimum))


def parse_decimal(raw: Optional[str], default: str) -> Decimal:
    """Parse a decimal exactly (no binary float round trip)."""
    text = default if raw is None or raw.strip() == "" else raw.strip()
    try:
        value = Decimal(text)
    except InvalidOperation:
        raise ConfigError(f"Invalid decimal value: {text!r}")
    if not value.is_finite():
        raise ConfigError(f"Decimal value must be finite: {text!r}")
    return value


def parse_order_type(raw: Optional[str]) -> str:
    if not raw:
        return settings.COPY_ORDER_TYPE
    value = raw.strip().upper()
    return value if value in settings.ORDER_TYPES else "FAK"


def parse_addresses(raw: Optional[str]) -> List[str]:
    """Split a comma separated list and validate each address."""
    if not raw:
        return []
    addresses = []
    for part in raw.split(","):
        addr = part.strip()
        if not addr:
            continue
        if not Web3.is_address(addr):
            raise ConfigError(f"Invalid TARGET address: {addr}")
        addresses.append(Web3.to_checksum_address(addr))
    return addresses


def parse_address(raw: Optional[str], default: str, name: str) -> str:
    value = (raw or "").strip() or default
    if not Web3.is_address(value):
        raise ConfigError(f"Invalid {name}: {value}")
    return Web3.to_checksum_address(value)


@dataclass
class AppConfig:
    """Configuration for the watcher, the copy pipeline and the venue."""

    # === Chain ===
    rpc_wss_url: str = ""
    rpc_http_url: str = settings.POLYGON_RPC_PRIMARY
    chain_id: int = settings.CHAIN_ID

    # === Watch targets ===
    trader_address: str = Web3.to_checksum_address(settings.TRADER_ADDRESS)
    target_addresses: List[str] = field(
        default_factory=lambda: [Web3.to_checksum_address(a) for a in settings.TARGET_ADDRESSES]
    )
    fee_module_address: str = Web3.to_checksum_address(settings.FEE_MODULE_ADDRESS)
    match_selector: str = settings.MATCH_SELECTOR
    pending_mode: str = "auto"  # auto | alchemy | standard
    heartbeat_blocks: int = settings.HEARTBEAT_BLOCKS
    hash_cache_size: int = settings.HASH_CACHE_SIZE

    # === APIs ===
    clob_rest_url: str = settings.CLOB_REST_URL
    gamma_api_url: str = settings.GAMMA_API_URL
    gamma_api_key: Optional[str] = None
    http_timeout: float = settings.HTTP_TIMEOUT_SECONDS
    http_retries: int = settings.HTTP_RETRIES
    market_ttl: float = settings.MARKET_TTL_SECONDS
    market_negative_ttl: float = settings.MARKET_NEGATIVE_TTL_SECONDS

    # === Authentication ===
    # signature_type:
    #   0 = EOA (MetaMask, hardware wallet, direct private key)
    #   1 = Email/Magic wallet (POLY_PROXY)
    #   2 = Browser wallet proxy (POLY_GNOSIS_SAFE)
    private_key: Optional[str] = None
    funding_address: Optional[str] = None
    signature_type: int = 0
    clob_api_key: Optional[str] = None
    clob_api_secret: Optional[str] = None
    clob_api_passphrase: Optional[str] = None

    # === Copy trading ===
    copy_scale: Decimal = Decimal(settings.COPY_SCALE)
    copy_slippage_bps: int = settings.COPY_SLIPPAGE_BPS
    copy_order_type: str = settings.COPY_ORDER_TYPE
    copy_simulate_only: bool = settings.COPY_SIMULATE_ONLY
    copy_allow_buy: bool = settings.COPY_ALLOW_BUY
    copy_allow_sell: bool = settings.COPY_ALLOW_SELL
    placement_timeout: float = settings.PLACEMENT_TIMEOUT_SECONDS
    max_inflight_pipelines: int = settings.MAX_INFLIGHT_PIPELINES
    max_pipeline_backlog: int = settings.MAX_PIPELINE_BACKLOG

    # === Logging ===
    log_level: str = settings.LOG_LEVEL
    log_format: str = settings.LOG_FORMAT
    log_file: Optional[str] = settings.LOG_FILE

    @classmethod
    def from_env(cls, env: Optional[Dict[str, str]] = None) -> "AppConfig":
        """Load config from environment variables (or the given mapping)."""
        env = os.environ if env is None else env
        get = env.get

        log_format = (get("LOG_FORMAT") or settings.LOG_FORMAT).strip().lower()
        pending_mode = (get("PENDING_MODE") or "auto").strip().lower()
        if parse_bool(get("USE_ALCHEMY_PENDING"), False):
            pending_mode = "alchemy"

        funding_address = (get("FUNDING_ADDRESS") or "").strip() or None

        config = cls(
            rpc_wss_url=(get("POLYGON_RPC_WSS") or "").strip(),
            rpc_http_url=get("POLYGON_RPC_URL") or settings.POLYGON_RPC_PRIMARY,
            chain_id=parse_int(get("CHAIN_ID"), settings.CHAIN_ID),
            trader_address=parse_address(get("TRADER_ADDRESS"), settings.TRADER_ADDRESS, "TRADER_ADDRESS"),
            target_addresses=parse_addresses(get("TARGET_ADDRESSES")) or [
                Web3.to_checksum_address(a) for a in settings.TARGET_ADDRESSES
            ],
            fee_module_address=parse_address(
                get("FEE_MODULE_ADDRESS"), settings.FEE_MODULE_ADDRESS, "FEE_MODULE_ADDRESS"
            ),
            match_selector=(get("MATCH_SELECTOR") or settings.MATCH_SELECTOR).strip().lower(),
            pending_mode=pending_mode,
            heartbeat_blocks=parse_int(get("HEARTBEAT_BLOCKS"), settings.HEARTBEAT_BLOCKS, 1),
            hash_cache_size=parse_int(get("HASH_CACHE_SIZE"), settings.HASH_CACHE_SIZE, 1),
            clob_rest_url=get("CLOB_REST_URL") or settings.CLOB_REST_URL,
            gamma_api_url=get("GAMMA_API_URL") or settings.GAMMA_API_URL,
            gamma_api_key=get("GAMMA_API_KEY") or None,
            http_timeout=parse_number(get("HTTP_TIMEOUT_SECONDS"), settings.HTTP_TIMEOUT_SECONDS, 0.1),
            http_retries=parse_int(get("HTTP_RETRIES"), settings.HTTP_RETRIES, 0),
            market_ttl=parse_number(get("MARKET_TTL_SECONDS"), settings.MARKET_TTL_SECONDS, 0),
            market_negative_ttl=parse_number(
                get("MARKET_NEGATIVE_TTL_SECONDS"), settings.MARKET_NEGATIVE_TTL_SECONDS, 0
            ),
            private_key=get("PRIVATE_KEY") or None,
            funding_address=funding_address,
            signature_type=parse_int(get("SIGNATURE_TYPE"), 0),
            clob_api_key=get("CLOB_API_KEY") or None,
            clob_api_secret=get("CLOB_API_SECRET") or None,
            clob_api_passphrase=get("CLOB_API_PASSPHRASE") or None,
            copy_scale=parse_decimal(get("COPY_SCALE"), settings.COPY_SCALE),
            copy_slippage_bps=parse_int(get("COPY_SLIPPAGE_BPS"), settings.COPY_SLIPPAGE_BPS, 0),
            copy_order_type=parse_order_type(get("COPY_ORDER_TYPE")),
            copy_simulate_only=parse_bool(get("COPY_SIMULATE_ONLY"), settings.COPY_SIMULATE_ONLY),
            copy_allow_buy=parse_bool(get("COPY_ALLOW_BUY"), settings.COPY_ALLOW_BUY),
            copy_allow_sell=parse_bool(get("COPY_ALLOW_SELL"), settings.COPY_ALLOW_SELL),
            placement_timeout=parse_number(
                get("PLACEMENT_TIMEOUT_SECONDS"), settings.PLACEMENT_TIMEOUT_SECONDS, 0.1
            ),
            max_inflight_pipelines=parse_int(
                get("MAX_INFLIGHT_PIPELINES"), settings.MAX_INFLIGHT_PIPELINES, 1
            ),
            max_pipeline_backlog=parse_int(get("MAX_PIPELINE_BACKLOG"), settings.MAX_PIPELINE_BACKLOG, 0),
            log_level=(get("LOG_LEVEL") or settings.LOG_LEVEL).upper(),
            log_format="readable" if log_format == "readable" else "json",
            log_file=get("LOG_FILE") or settings.LOG_FILE,
        )
        config.validate()
        return config

    def with_overrides(self, **changes: Any) -> "AppConfig":
        """Copy with changes applied, validated again."""
        config = replace(self, **changes)
        config.validate()
        return config

    def validate(self) -> None:
        """Raise ConfigError for anything that must stop the process."""
        for name, addr in (
            ("trader_address", self.trader_address),
            ("fee_module_address", self.fee_module_address),
        ):
            if not Web3.is_address(addr):
                raise ConfigError(f"Invalid {name}: {addr}")
        for addr in self.target_addresses:
            if not Web3.is_address(addr):
                raise ConfigError(f"Invalid TARGET address: {addr}")
        if self.funding_address and not Web3.is_address(self.funding_address):
            raise ConfigError(f"Invalid FUNDING_ADDRESS: {self.funding_address}")

        selector = self.match_selector
        if len(selector) != 10 or not selector.startswith("0x"):
            raise ConfigError(f"MATCH_SELECTOR must be 4 bytes of hex, got {selector!r}")
        try:
            bytes.fromhex(selector[2:])
        except ValueError:
            raise ConfigError(f"MATCH_SELECTOR must be 4 bytes of hex, got {selector!r}")

        if not isinstance(self.copy_scale, Decimal):
            raise ConfigError("copy_scale must be a Decimal")
        if not self.copy_scale.is_finite() or self.copy_scale < 0:
            raise ConfigError(f"COPY_SCALE must be a non-negative number, got {self.copy_scale}")
        if self.copy_slippage_bps < 0:
            raise ConfigError("COPY_SLIPPAGE_BPS must be >= 0")
        if self.copy_order_type not in settings.ORDER_TYPES:
            raise ConfigError(f"COPY_ORDER_TYPE must be one of {settings.ORDER_TYPES}")
        if self.heartbeat_blocks < 1:
            raise ConfigError("HEARTBEAT_BLOCKS must be >= 1")
        if self.hash_cache_size < 1:
            raise ConfigError("HASH_CACHE_SIZE must be >= 1")
        if self.pending_mode not in ("auto", "alchemy", "standard"):
            raise ConfigError(f"PENDING_MODE must be auto, alchemy or standard, got {self.pending_mode!r}")
        if self.signature_type not in (0, 1, 2):
            raise ConfigError(f"SIGNATURE_TYPE must be 0, 1 or 2, got {self.signature_type}")

    @property
    def watch_addresses(self) -> List[str]:
        """`to` addresses the watcher accepts: configured targets plus the fee module."""
        addresses = [Web3.to_checksum_address(self.fee_module_address)]
        for addr in self.target_addresses:
            checksum = Web3.to_checksum_address(addr)
            if checksum not in addresses:
                addresses.append(checksum)
        return addresses

    @property
    def has_clob_credentials(self) -> bool:
        return bool(
            self.private_key
            and self.clob_api_key
            and self.clob_api_secret
            and self.clob_api_passphrase
        )

    def masked(self) -> Dict[str, Any]:
        """Config as a dict with secrets hidden, for display."""
        secret_fields = {"private_key", "clob_api_key", "clob_api_secret", "clob_api_passphrase", "gamma_api_key"}
        data = {}
        for name in self.__dataclass_fields__:
            value = getattr(self, name)
            if name in secret_fields:
                value = "***" if value else None
            elif isinstance(value, Decimal):
                value = str(value)
            data[name] = value
        return data


# === Environment Template ===
ENV_TEMPLATE = """
# Polymarket mempool copy trader
# Copy this to .env and fill in your values

# Websocket RPC endpoint (required for `watch`)
POLYGON_RPC_WSS=
# HTTP RPC endpoint (used by `decode`)
POLYGON_RPC_URL=https://polygon-rpc.com

# Trader to copy and extra `to` addresses to watch (comma separated)
TRADER_ADDRESS=
TARGET_ADDRESSES=

# Copy settings
COPY_SCALE=0.1
COPY_SLIPPAGE_BPS=500
COPY_ORDER_TYPE=FAK
COPY_SIMULATE_ONLY=true

# Signer + CLOB L2 credentials (required to post orders)
PRIVATE_KEY=
FUNDING_ADDRESS=
SIGNATURE_TYPE=0
CLOB_API_KEY=
CLOB_API_SECRET=
CLOB_API_PASSPHRASE=

# Logging: json | readable
LOG_FORMAT=json
"""
