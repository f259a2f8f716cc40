"""
Tests for environment configuration
"""

import pytest
import sys
from decimal import Decimal
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from config.app_config import (
    AppConfig,
    ConfigError,
    parse_bool,
    parse_number,
    parse_addresses,
)
from builders import TARGET, OTHER, FEE_MODULE, CTF_EXCHANGE


class TestParsers:
    """Tests for the env value parsers."""

    def test_parse_bool(self):
        assert parse_bool("TRUE", False) is True
        assert parse_bool("yes", False) is True
        assert parse_bool("0", True) is False
        assert parse_bool("", True) is True
        assert parse_bool(None, False) is False

    def test_parse_number(self):
        assert parse_number("2.5", 1.0) == 2.5
        assert parse_number("junk", 1.0) == 1.0
        assert parse_number("nan", 1.0) == 1.0
        assert parse_number("-3", 1.0, minimum=0) == 0

    def test_parse_addresses(self):
        addresses = parse_addresses(f" {OTHER.lower()}, ,{TARGET} ")
        assert addresses == [OTHER, TARGET]
        assert parse_addresses("") == []

        with pytest.raises(ConfigError):
            parse_addresses("0x123")


class TestAppConfig:
    """Tests for AppConfig.from_env."""

    def test_defaults(self):
        config = AppConfig.from_env({})

        assert config.trader_address == TARGET
        assert config.copy_scale == Decimal("0.1")
        assert config.copy_slippage_bps == 500
        assert config.copy_order_type == "FAK"
        assert config.copy_simulate_only is True
        assert config.log_format == "json"
        assert config.pending_mode == "auto"
        assert not config.has_clob_credentials

    def test_watch_addresses_include_fee_module_once(self):
        config = AppConfig.from_env({"TARGET_ADDRESSES": f"{FEE_MODULE.lower()},{OTHER}"})
        assert config.watch_addresses == [FEE_MODULE, OTHER]

        default = AppConfig.from_env({})
        assert default.watch_addresses[0] == FEE_MODULE
        assert CTF_EXCHANGE in default.watch_addresses

    def test_env_values(self):
        config = AppConfig.from_env({
            "POLYGON_RPC_WSS": " wss://node/ws ",
            "TRADER_ADDRESS": OTHER.lower(),
            "COPY_SCALE": "0.25",
            "COPY_SLIPPAGE_BPS": "junk",
            "COPY_ORDER_TYPE": "gtc",
            "COPY_SIMULATE_ONLY": "false",
            "HEARTBEAT_BLOCKS": "0",
            "LOG_FORMAT": "READABLE",
            "LOG_LEVEL": "debug",
            "USE_ALCHEMY_PENDING": "1",
        })

        assert config.rpc_wss_url == "wss://node/ws"
        assert config.trader_address == OTHER
        assert config.copy_scale == Decimal("0.25")
        assert config.copy_slippage_bps == 500
        assert config.copy_order_type == "GTC"
        assert config.copy_simulate_only is False
        assert config.heartbeat_blocks == 1
        assert config.log_format == "readable"
        assert config.log_level == "DEBUG"
        assert config.pending_mode == "alchemy"

    def test_unknown_order_type_falls_back(self):
        assert AppConfig.from_env({"COPY_ORDER_TYPE": "IOC"}).copy_order_type == "FAK"

    def test_invalid_values_raise(self):
        with pytest.raises(ConfigError):
            AppConfig.from_env({"TRADER_ADDRESS": "not-an-address"})
        with pytest.raises(ConfigError):
            AppConfig.from_env({"TARGET_ADDRESSES": "0xdead"})
        with pytest.raises(ConfigError):
            AppConfig.from_env({"COPY_SCALE": "ten percent"})
        with pytest.raises(ConfigError):
            AppConfig.from_env({"MATCH_SELECTOR": "0x1234"})
        with pytest.raises(ConfigError):
            AppConfig.from_env({"PENDING_MODE": "magic"})

    def test_with_overrides_validates(self):
        config = AppConfig()
        assert config.with_overrides(copy_scale=Decimal("0.5")).copy_scale == Decimal("0.5")

        with pytest.raises(ConfigError):
            config.with_overrides(copy_scale=Decimal("-1"))

    def test_credentials_and_masking(self):
        config = AppConfig.from_env({
            "PRIVATE_KEY": "0x" + "01" * 32,
            "CLOB_API_KEY": "key",
            "CLOB_API_SECRET": "secret",
            "CLOB_API_PASSPHRASE": "pass",
        })
        masked = config.masked()

        assert config.has_clob_credentials
        assert masked["private_key"] == "***"
        assert masked["clob_api_secret"] == "***"
        assert masked["gamma_api_key"] is None
        assert masked["copy_scale"] == "0.1"
