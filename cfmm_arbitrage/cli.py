#!/usr/bin/env python3
"""
CFMM arbitrage scanner CLI.

Evaluates a set of Uniswap V2 style pairs on every new block and prints the
ranked opportunities in a console-friendly table. Nothing is executed.

Usage:
    cfmm-arb --pools 0xPAIR1 0xPAIR2
    cfmm-arb --config configs/engine.yaml --pools 0xPAIR1 0xPAIR2 --once
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional, Sequence

from dotenv import load_dotenv
from prometheus_client import start_http_server
from tabulate import tabulate
from web3 import Web3

from dex.market_data import Web3MarketDataSource

from . import logging_config
from .config_loader import get_default_config, load_engine_config
from .config_schema import EngineConfig
from .engine import ArbitrageEngine
from .exceptions import ConfigurationError, DataError
from .metrics import EngineMetrics
from .utils import format_wad, get_logger

logger = get_logger(__name__)


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="CFMM arbitrage opportunity scanner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Scan two pairs with default thresholds
  cfmm-arb --pools 0xB4e16d0168e52d35CaCD2c6185b44281Ec28C9Dc 0x397FF1542f962076d0BFE58eA045FfA2d347ACa0

  # Single evaluation (for testing/CI)
  cfmm-arb --config configs/engine.yaml --pools 0x... --once
        """,
    )

    parser.add_argument(
        "--config",
        default=None,
        help="Path to config YAML file (defaults built in when omitted)",
    )
    parser.add_argument(
        "--pools",
        nargs="+",
        required=True,
        metavar="ADDR",
        help="Pair contract addresses to evaluate",
    )
    parser.add_argument(
        "--once",
        action="store_true",
        help="Run a single evaluation cycle and exit",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose prometheus metrics on this port",
    )
    return parser.parse_args(argv)


def format_opportunities(opportunities: List) -> str:
    """
    Render ranked opportunities as a table.

    Profit strings are passed through verbatim so tabulate never reparses
    them as floats.
    """
    if not opportunities:
        return "No profitable opportunities"
    rows = [
        [rank, opp.kind.value, opp.describe(), format_wad(opp.expected_profit)]
        for rank, opp in enumerate(opportunities, start=1)
    ]
    return tabulate(
        rows,
        headers=["#", "Kind", "Route", "Profit (ETH)"],
        tablefmt="simple",
        disable_numparse=True,
    )


async def load_pools(market_data: Web3MarketDataSource, addresses: Sequence[str]) -> List:
    """Fetch pool snapshots, skipping pairs that cannot be read."""
    results = await asyncio.gather(
        *(market_data.fetch_pool(addr) for addr in addresses), return_exceptions=True
    )
    pools = []
    for addr, result in zip(addresses, results):
        if isinstance(result, Exception):
            logger.warning(f"Skipping pair {addr}: {result}")
        elif isinstance(result, BaseException):
            raise result
        else:
            pools.append(result)
    if not pools:
        raise DataError("None of the requested pairs could be read", source="rpc")
    logger.info(f"Loaded {len(pools)}/{len(addresses)} pools")
    return pools


async def run(
    config: EngineConfig,
    web3: Web3,
    addresses: Sequence[str],
    once: bool,
    metrics: Optional[EngineMetrics] = None,
) -> None:
    """Evaluate the pools on every new block until interrupted."""
    market_data = Web3MarketDataSource(web3, base_token=config.base_token)
    pools = await load_pools(market_data, addresses)
    engine = ArbitrageEngine(
        config,
        market_data=market_data,
        balance_source=market_data,
        metrics=metrics,
    )

    loop = asyncio.get_running_loop()
    last_block = None
    while True:
        block = await loop.run_in_executor(None, lambda: web3.eth.block_number)
        if block != last_block:
            last_block = block
            opportunities = await engine.evaluate(pools)
            print(f"\nBlock #{block:,}")
            print(format_opportunities(opportunities))
        if once:
            return
        await asyncio.sleep(config.poll_sec)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Main entry point.

    Returns:
        Exit code (0 for success, 1 for error)
    """
    args = parse_args(argv)
    load_dotenv()
    if args.log_level == "DEBUG":
        logging_config.setup_debug()
    else:
        logging_config.setup(getattr(logging, args.log_level))

    try:
        config = load_engine_config(args.config) if args.config else get_default_config()
    except ConfigurationError as e:
        print(f"Config error: {e}", file=sys.stderr)
        return 1

    rpc_url = os.getenv(config.rpc_url_env)
    if not rpc_url:
        print(f"Environment variable {config.rpc_url_env} is not set", file=sys.stderr)
        return 1
    if not rpc_url.startswith(("http://", "https://")):
        print(f"Invalid RPC URL format: {rpc_url}", file=sys.stderr)
        return 1

    web3 = Web3(
        Web3.HTTPProvider(
            rpc_url, request_kwargs={"timeout": config.concurrency.rpc_timeout}
        )
    )
    if args.metrics_port:
        start_http_server(args.metrics_port)
        logger.info(f"Metrics exposed on :{args.metrics_port}")

    try:
        asyncio.run(run(config, web3, args.pools, args.once, metrics=EngineMetrics()))
    except KeyboardInterrupt:
        print("\nStopped by user")
        return 0
    except DataError as e:
        print(f"Initialization failed: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
