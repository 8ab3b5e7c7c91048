"""
Collaborator interfaces for the arbitrage engine.

Provides lightweight protocols for the market data source, balance lookups,
market statistics and per-pool quoting so that the engine can be driven by
web3 adapters in production and by in-memory fakes in tests.
"""

from typing import Protocol, Tuple, runtime_checkable

from dex.pool import CFMMPool


@runtime_checkable
class MarketDataSource(Protocol):
    """Protocol for reading pool state from the chain."""

    async def fetch_pool(self, address: str) -> CFMMPool:
        """Build a pool snapshot (tokens, reserves, fee) for address."""
        ...

    async def update_reserves(self, pool: CFMMPool) -> CFMMPool:
        """Return a fresh snapshot of pool. Raises DataError on failure."""
        ...


@runtime_checkable
class BalanceSource(Protocol):
    """Protocol for base-asset (WETH) balance lookups."""

    async def balance_of(self, address: str) -> int:
        """WETH balance held by address, in wei."""
        ...


@runtime_checkable
class MarketStatsSource(Protocol):
    """Protocol for off-chain market statistics used by the pool filter."""

    async def volume_24h(self, pool: CFMMPool) -> int:
        """Trailing 24h volume of pool, in wei of the base asset."""
        ...

    async def market_cap(self, token: str) -> int:
        """Market capitalisation of token, in wei of the base asset."""
        ...


@runtime_checkable
class QuotingPool(Protocol):
    """Quoting capability required from every pool by the detectors."""

    address: str
    tokens: Tuple[str, str]

    def get_reserve(self, token: str) -> int:
        """Reserve held by the pool for token."""
        ...

    def other_token(self, token: str) -> str:
        """Counter-token of token in this pool."""
        ...

    def get_tokens_out(self, token_in: str, token_out: str, amount_in: int) -> int:
        """Output amount for selling amount_in of token_in."""
        ...

    def get_price_impact(self, token: str, amount: int) -> int:
        """Price impact of trading amount of token, as a wad fraction."""
        ...

    def get_trading_fee(self) -> int:
        """Fee rate as a wad fraction."""
        ...

    def sell_tokens(self, token_in: str, amount_in: int, recipient: str) -> bytes:
        """Calldata selling amount_in of token_in, output sent to recipient."""
        ...
