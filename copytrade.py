#!/usr/bin/env python3
"""
Polymarket Mempool Copy Trader
==============================

Watch Polygon's pending transactions for matchOrders calls involving a
trader, attribute the exact fill, and copy it at a configurable scale
(default 10%).

Usage:
    python copytrade.py --help
    python copytrade.py watch                      # Watch and simulate copies
    python copytrade.py watch --live               # Post copies to the CLOB
    python copytrade.py watch --scale 0.2          # Copy 20% of each fill
    python copytrade.py decode 0xTXHASH            # Decode one transaction
    python copytrade.py config                     # Show effective config

Configuration:
    1. Create a .env file (see `config/app_config.py` ENV_TEMPLATE)
    2. Set POLYGON_RPC_WSS to a websocket RPC endpoint
    3. For live trading set PRIVATE_KEY and CLOB_API_KEY/SECRET/PASSPHRASE

Environment Variables (via .env file):
    POLYGON_RPC_WSS  - Websocket RPC (required for watch)
    POLYGON_RPC_URL  - HTTP RPC (used by decode)
    TRADER_ADDRESS   - Trader to copy
    COPY_SCALE       - Fraction of each fill to copy
"""

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()
import sys
import json
import signal
import asyncio
import logging
import argparse
from datetime import datetime
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Optional

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))

from web3 import Web3
from web3.exceptions import TransactionNotFound

from config.app_config import AppConfig, ConfigError
from core.event_bus import EventBus
from core.logging_setup import setup_logging
from core.types import CopyConfig, CopyFill
from net.http_client import GammaClient
from polycopy.copytrade.polymarket_decoder import PolymarketDecoder
from polycopy.copytrade.blockchain_monitor import MempoolWatcher
from polycopy.copytrade.copy_calculator import build_copy_intent
from polycopy.copytrade.copy_executor import build_copy_handler
from polycopy.copytrade.market_registry import MarketRegistry, TokenResolver
from polycopy.copytrade.router import CopyTradeRouter, format_units
from polycopy.trading.clob_venue import ClobVenue

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2
EXIT_NOT_FOUND = 1


class CopyTradingBot:
    """
    Main copy trading bot that orchestrates:
    - Mempool watching
    - Calldata decoding and fill attribution
    - Copy intent sizing and order placement
    """

    def __init__(self, config: AppConfig):
        self.config = config
        self.logger = logging.getLogger(self.__class__.__name__)

        if not config.rpc_wss_url:
            raise ConfigError("POLYGON_RPC_WSS is required to watch the mempool")

        self.bus = EventBus()
        self.decoder = PolymarketDecoder(config.trader_address, config.match_selector)

        self.watcher = MempoolWatcher(
            rpc_url=config.rpc_wss_url,
            bus=self.bus,
            decoder=self.decoder,
            watch_addresses=config.watch_addresses,
            pending_mode=config.pending_mode,
            heartbeat_blocks=config.heartbeat_blocks,
            hash_cache_size=config.hash_cache_size,
        )

        self.gamma_client = GammaClient(
            config.gamma_api_url,
            api_key=config.gamma_api_key,
            timeout=config.http_timeout,
            retries=config.http_retries,
        )
        self.clob_client = GammaClient(
            config.clob_rest_url,
            timeout=config.http_timeout,
            retries=config.http_retries,
        )

        venue = None if config.copy_simulate_only else ClobVenue.from_config(config)
        if not config.copy_simulate_only and venue is None:
            self.logger.warning("Live mode requested but signer or CLOB API creds are missing")

        self.copy_handler = build_copy_handler(config, venue)
        self.router = CopyTradeRouter(
            bus=self.bus,
            target_address=config.trader_address,
            copy_handler=self.copy_handler,
            market_registry=MarketRegistry(
                self.gamma_client, config.market_ttl, config.market_negative_ttl
            ),
            token_resolver=TokenResolver(
                self.clob_client, config.market_ttl, config.market_negative_ttl
            ),
            log_format=config.log_format,
            max_inflight=config.max_inflight_pipelines,
            max_backlog=config.max_pipeline_backlog,
        )

        self.start_time: Optional[datetime] = None
        self._stop_event: Optional[asyncio.Event] = None

    async def run(self) -> None:
        """Run until SIGINT/SIGTERM."""
        self.start_time = datetime.now()
        self._stop_event = asyncio.Event()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._stop_event.set)
            except NotImplementedError:
                pass

        self.logger.info("=" * 60)
        self.logger.info("POLYMARKET MEMPOOL COPY TRADER")
        self.logger.info("=" * 60)
        self.logger.info(f"Trader: {self.config.trader_address}")
        self.logger.info(f"Copy scale: {self.config.copy_scale}")
        self.logger.info(f"Slippage: {self.config.copy_slippage_bps} bps")
        self.logger.info(f"Order type: {self.config.copy_order_type}")
        self.logger.info(f"Mode: {'LIVE' if self.copy_handler.placer.enabled else 'SIMULATE'}")
        self.logger.info("=" * 60)

        self.router.attach()
        await self.watcher.start()
        try:
            await self._stop_event.wait()
            self.logger.info("Shutdown signal received...")
        finally:
            await self.stop()

    def request_stop(self) -> None:
        if self._stop_event is not None:
            self._stop_event.set()

    async def stop(self) -> None:
        """Stop watching, let in-flight copies finish, print final stats."""
        await self.watcher.stop()
        self.router.detach()
        await self.router.drain(timeout=self.config.placement_timeout)
        await self.gamma_client.close()
        await self.clob_client.close()

        runtime = datetime.now() - self.start_time if self.start_time else None
        status = self.get_status()

        self.logger.info("=" * 60)
        self.logger.info("FINAL STATISTICS")
        self.logger.info("=" * 60)
        self.logger.info(f"Runtime: {runtime}")
        self.logger.info(f"Pending txs published: {status['watcher']['published']}")
        self.logger.info(f"Copies simulated: {status['executor']['simulated']}")
        self.logger.info(f"Copies posted: {status['executor']['posted']}")
        self.logger.info(f"Copies skipped: {status['executor']['skipped']}")
        self.logger.info("=" * 60)

    def get_status(self) -> dict:
        """Get current bot status"""
        return {
            "trader": self.config.trader_address,
            "watcher": self.watcher.get_stats(),
            "router": self.router.get_stats(),
            "executor": self.copy_handler.placer.get_execution_stats(),
            "start_time": self.start_time.isoformat() if self.start_time else None,
        }


def load_config(args) -> AppConfig:
    """Environment config with command line overrides applied."""
    config = AppConfig.from_env()
    overrides = {}

    if getattr(args, "live", False):
        overrides["copy_simulate_only"] = False
    if getattr(args, "scale", None) is not None:
        try:
            overrides["copy_scale"] = Decimal(args.scale)
        except InvalidOperation:
            raise ConfigError(f"Invalid --scale: {args.scale}")
    if getattr(args, "trader", None):
        if not Web3.is_address(args.trader):
            raise ConfigError(f"Invalid --trader address: {args.trader}")
        overrides["trader_address"] = Web3.to_checksum_address(args.trader)

    return config.with_overrides(**overrides) if overrides else config


def cmd_watch(args):
    """Start watching command"""
    config = load_config(args)
    setup_logging(config.log_level, config.log_format, config.log_file)

    bot = CopyTradingBot(config)
    try:
        asyncio.run(bot.run())
    except KeyboardInterrupt:
        logger.info("Interrupted by user")


def cmd_decode(args):
    """Decode one transaction"""
    config = load_config(args)
    setup_logging(config.log_level, "readable", config.log_file)

    web3 = Web3(Web3.HTTPProvider(config.rpc_http_url, request_kwargs={'timeout': 30}))
    try:
        tx = web3.eth.get_transaction(args.tx_hash)
    except TransactionNotFound:
        print(f"Transaction not found: {args.tx_hash}", file=sys.stderr)
        sys.exit(EXIT_NOT_FOUND)

    decoder = PolymarketDecoder(config.trader_address, config.match_selector)
    data = tx.get("input")
    call = decoder.decode(data)

    print("\n" + "=" * 60)
    print(f"TRANSACTION {args.tx_hash}")
    print("=" * 60)
    print(f"  To: {tx.get('to')}")
    print(f"  Matches prefilter: {decoder.prefilter(data)}")

    if call is None:
        print("  Not a decodable matchOrders call")
        return

    fill = decoder.fill(call)
    print(f"  Taker: {call.taker_order.maker} ({call.taker_order.order_side.value})")
    print(f"  Maker legs: {len(call.maker_orders)}")
    print(f"  Token: {fill.token_id}")
    print(f"\nTrader {decoder.target_address}:")
    print(f"  Role: {fill.role.value}")
    print(f"  Side: {fill.side.value}")
    print(f"  Shares: {format_units(fill.shares)}")
    print(f"  USDC: {format_units(fill.cash)}")

    async def resolve_market():
        async with GammaClient(config.gamma_api_url, api_key=config.gamma_api_key,
                               timeout=config.http_timeout, retries=config.http_retries) as client:
            return await MarketRegistry(client).resolve_by_token_id(fill.token_id)

    market = asyncio.run(resolve_market())
    if market:
        print(f"\nMarket: {market.label}")
        outcome = market.outcome_for_token(fill.token_id)
        if outcome:
            print(f"  Outcome: {outcome}")

    intent = build_copy_intent(
        CopyFill(
            token_id=fill.token_id,
            side=fill.side,
            shares=fill.shares,
            cash=fill.cash,
            source_hash=args.tx_hash,
        ),
        CopyConfig(
            scale=config.copy_scale,
            slippage_bps=config.copy_slippage_bps,
            order_type=config.copy_order_type,
            allow_buy=config.copy_allow_buy,
            allow_sell=config.copy_allow_sell,
        ),
    )
    print(f"\nCopy intent (scale {config.copy_scale}):")
    if intent is None:
        print("  none")
    else:
        for key, value in intent.to_dict().items():
            print(f"  {key}: {value}")
    print("=" * 60)


def cmd_config(args):
    """Show effective configuration"""
    config = load_config(args)
    print(json.dumps(config.masked(), indent=2))


def main():
    """Main entry point"""
    parser = argparse.ArgumentParser(
        description="Polymarket Mempool Copy Trader",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__
    )

    subparsers = parser.add_subparsers(dest='command', help='Commands')

    # Watch command
    watch_parser = subparsers.add_parser('watch', help='Watch the mempool and copy trades')
    watch_parser.add_argument(
        '--live', '-l',
        action='store_true',
        help='Post copy orders (requires PRIVATE_KEY and CLOB API creds)'
    )
    watch_parser.add_argument(
        '--scale', '-s',
        help='Fraction of each fill to copy (default: COPY_SCALE)'
    )
    watch_parser.add_argument(
        '--trader', '-t',
        help='Trader address to copy (default: TRADER_ADDRESS)'
    )
    watch_parser.set_defaults(func=cmd_watch)

    # Decode command
    decode_parser = subparsers.add_parser('decode', help='Decode a matchOrders transaction')
    decode_parser.add_argument('tx_hash', help='Transaction hash')
    decode_parser.add_argument('--scale', '-s', help='Fraction to size the copy intent with')
    decode_parser.add_argument('--trader', '-t', help='Trader address to attribute fills to')
    decode_parser.set_defaults(func=cmd_decode)

    # Config command
    config_parser = subparsers.add_parser('config', help='Show effective configuration')
    config_parser.set_defaults(func=cmd_config)

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    try:
        args.func(args)
    except ConfigError as e:
        print(f"Configuration error: {e}", file=sys.stderr)
        sys.exit(EXIT_CONFIG_ERROR)


if __name__ == "__main__":
    main()
