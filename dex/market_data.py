"""
Web3-backed market data for Uniswap V2 style pairs.

Implements the engine's MarketDataSource and BalanceSource collaborators on
top of the v2 adapter: pair discovery, reserve refresh and base-asset (WETH)
balance lookups. RPC calls run in the default executor so the event loop is
never blocked.
"""

from fractions import Fraction
from typing import Optional

from web3 import Web3

from cfmm_arbitrage.constants import WETH_ADDRESS
from cfmm_arbitrage.exceptions import DataError
from cfmm_arbitrage.utils import get_logger

from .adapters.v2 import fetch_pool_async, fetch_token_balance_async
from .pool import DEFAULT_FEE_RATE, CFMMPool, ConstantProductPool

logger = get_logger(__name__)


class Web3MarketDataSource:
    """
    Chain reads for constant-product pairs.

    Args:
        web3: Connected Web3 instance
        fee_rate: Fee applied to pools built by fetch_pool
        base_token: Token whose balances balance_of reports (WETH)
        dex: Label attached to fetched pools
        max_retries: Attempts per pair read on rate limiting
    """

    def __init__(
        self,
        web3: Web3,
        fee_rate: Fraction = DEFAULT_FEE_RATE,
        base_token: str = WETH_ADDRESS,
        dex: str = "uniswap",
        max_retries: int = 3,
    ):
        self.web3 = web3
        self.fee_rate = fee_rate
        self.base_token = Web3.to_checksum_address(base_token)
        self.dex = dex
        self.max_retries = max_retries

    async def fetch_pool(self, address: str) -> CFMMPool:
        """
        Build a pool snapshot from the pair contract at address.

        Raises:
            DataError: If the pair cannot be read
        """
        try:
            pair_addr = Web3.to_checksum_address(address)
        except (TypeError, ValueError) as e:
            raise DataError(f"Invalid pair address: {address}", source="rpc") from e

        token0, token1, r0, r1 = await fetch_pool_async(
            self.web3, pair_addr, max_retries=self.max_retries
        )
        logger.debug(f"Fetched pair {pair_addr}: {token0}/{token1} reserves={r0}/{r1}")
        return ConstantProductPool(
            address=pair_addr,
            tokens=(token0, token1),
            reserves=(r0, r1),
            fee_rate=self.fee_rate,
            dex=self.dex,
        )

    async def update_reserves(self, pool: CFMMPool) -> CFMMPool:
        """
        Fresh snapshot of pool with current on-chain reserves.

        Raises:
            DataError: If the read fails or the pair reports other tokens
        """
        token0, token1, r0, r1 = await fetch_pool_async(
            self.web3, pool.address, max_retries=self.max_retries
        )
        if (token0, token1) != tuple(pool.tokens):
            raise DataError(
                f"Pair {pool.address} token mismatch: "
                f"expected {pool.tokens}, got {(token0, token1)}",
                source="rpc",
                pool=pool.address,
            )
        return pool.with_reserves(r0, r1)

    async def balance_of(self, address: str, token: Optional[str] = None) -> int:
        """
        Balance of address in token (the base token by default), in wei.

        Raises:
            DataError: If the RPC call fails
        """
        return await fetch_token_balance_async(
            self.web3,
            Web3.to_checksum_address(token or self.base_token),
            Web3.to_checksum_address(address),
        )
