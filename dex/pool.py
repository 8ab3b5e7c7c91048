"""
Pool model for constant-function market makers.

`CFMMPool` is the single capability interface the engine talks to (reserves,
fee, trading function, quoting, trade encoding and the per-pool arbitrage
sub-problem). Concrete variants form a closed set registered in
`POOL_KINDS`; the engine never duck-types market objects.

Pools are immutable snapshots. A reserve refresh produces a new snapshot via
`with_reserves()`, the engine only ever proposes trades.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from fractions import Fraction
from typing import Dict, Sequence, Tuple, Type

from cfmm_arbitrage.constants import WAD
from cfmm_arbitrage.exceptions import ConfigurationError, InvalidReserves, QuoteError

from .adapters import v2
from .types import NO_TRADE, Amount, DexKind, PoolId, PoolTrade, TokenId

DEFAULT_FEE_RATE = Fraction(3, 1000)


class CFMMPool(ABC):
    """Capability interface shared by every pool variant."""

    kind: DexKind
    address: PoolId
    tokens: Tuple[TokenId, TokenId]
    reserves: Tuple[Amount, Amount]
    fee_rate: Fraction

    @abstractmethod
    def trading_function(self, reserves: Sequence[int] = None) -> int:
        """Invariant of the pool evaluated at the given (or current) reserves."""

    @abstractmethod
    def trading_function_gradient(
        self, reserves: Sequence[int] = None
    ) -> Tuple[int, int]:
        """Gradient of the trading function with respect to the reserves."""

    @abstractmethod
    def get_output_amount(self, amount_in: int, reserve_in: int, reserve_out: int) -> int:
        """Output for a swap of amount_in against the given reserves."""

    @abstractmethod
    def arbitrage(self, prices: Sequence[int]) -> PoolTrade:
        """Optimal trade against this pool at the given per-asset prices."""

    @abstractmethod
    def with_reserves(self, reserve0: int, reserve1: int) -> "CFMMPool":
        """Snapshot of the same pool with refreshed reserves."""

    def token_index(self, token: TokenId) -> int:
        """Position of token in the pool's token pair."""
        try:
            return self.tokens.index(token)
        except ValueError:
            raise QuoteError(
                f"Token {token} not traded by pool {self.address}",
                pool=self.address,
                token_in=token,
            ) from None

    def other_token(self, token: TokenId) -> TokenId:
        """Counter-token of token in this pool."""
        return self.tokens[1 - self.token_index(token)]

    def get_reserve(self, token: TokenId) -> Amount:
        """Reserve held by the pool for token."""
        return self.reserves[self.token_index(token)]

    @property
    def has_zero_reserve(self) -> bool:
        return any(r == 0 for r in self.reserves)

    def validate(self) -> None:
        """
        Check the snapshot is usable for pricing.

        Raises:
            InvalidReserves: If either reserve is zero
        """
        if self.has_zero_reserve:
            raise InvalidReserves(
                f"Pool {self.address} has a zero reserve: {self.reserves}",
                pool=self.address,
                reserves=self.reserves,
            )

    def get_tokens_out(self, token_in: TokenId, token_out: TokenId, amount_in: int) -> int:
        """Quote the output of selling amount_in of token_in for token_out."""
        i = self.token_index(token_in)
        if self.tokens[1 - i] != token_out:
            raise QuoteError(
                f"Pool {self.address} does not trade {token_in} for {token_out}",
                pool=self.address,
                token_in=token_in,
                token_out=token_out,
            )
        return self.get_output_amount(amount_in, self.reserves[i], self.reserves[1 - i])

    def get_trading_fee(self) -> Amount:
        """Fee rate as a wad fraction (0.3% -> 3e15)."""
        return self.fee_rate.numerator * WAD // self.fee_rate.denominator

    def get_price_impact(self, token: TokenId, amount: int) -> Amount:
        """Share of the token reserve consumed by trading amount, as a wad."""
        return v2.get_price_impact(amount, self.get_reserve(token))


@dataclass(frozen=True)
class ConstantProductPool(CFMMPool):
    """
    Uniswap V2 style x*y=k pool.

    Attributes:
        address: Checksummed pair address
        tokens: (token0, token1) addresses in pair order
        reserves: (reserve0, reserve1) in wad
        fee_rate: Fee charged on input (Fraction(3, 1000) for 30 bps)
        dex: Name of the DEX the pair belongs to
    """

    address: PoolId
    tokens: Tuple[TokenId, TokenId]
    reserves: Tuple[Amount, Amount]
    fee_rate: Fraction = DEFAULT_FEE_RATE
    dex: str = "uniswap"
    kind: DexKind = field(default="v2", init=False)

    def __post_init__(self):
        object.__setattr__(self, "tokens", tuple(self.tokens))
        object.__setattr__(self, "reserves", tuple(int(r) for r in self.reserves))
        if len(self.tokens) != 2 or len(self.reserves) != 2:
            raise ValueError(
                f"Pool {self.address} needs exactly two tokens and two reserves"
            )
        if self.tokens[0] == self.tokens[1]:
            raise ValueError(f"Pool {self.address} pairs {self.tokens[0]} with itself")
        if any(r < 0 for r in self.reserves):
            raise InvalidReserves(
                f"Pool {self.address} has a negative reserve: {self.reserves}",
                pool=self.address,
                reserves=self.reserves,
            )
        if not Fraction(0) <= self.fee_rate < Fraction(1):
            raise ValueError(f"Fee must be in [0, 1): {self.fee_rate}")

    def trading_function(self, reserves: Sequence[int] = None) -> int:
        r0, r1 = reserves if reserves is not None else self.reserves
        return r0 * r1

    def trading_function_gradient(
        self, reserves: Sequence[int] = None
    ) -> Tuple[int, int]:
        r0, r1 = reserves if reserves is not None else self.reserves
        return (r1, r0)

    def get_output_amount(self, amount_in: int, reserve_in: int, reserve_out: int) -> int:
        try:
            return v2.get_output_amount(amount_in, reserve_in, reserve_out, self.fee_rate)
        except InvalidReserves as e:
            raise InvalidReserves(str(e), pool=self.address, reserves=self.reserves) from e

    def arbitrage(self, prices: Sequence[int]) -> PoolTrade:
        """
        Optimal trade at prices (price0, price1) for the pool's two tokens.

        Returns NO_TRADE when the prices fall inside the fee band.

        Raises:
            InvalidReserves: If either reserve is zero
        """
        self.validate()
        delta, value = v2.optimal_arbitrage(
            self.reserves[0], self.reserves[1], self.fee_rate, prices[0], prices[1]
        )
        if value == 0:
            return NO_TRADE
        return PoolTrade(delta=delta, value=value)

    def accepts_trade(self, delta: Sequence[int]) -> bool:
        """
        Whether the pair contract would accept a proposed trade.

        delta is what the trader receives (negative = tendered). The fee-
        adjusted invariant must not decrease, matching the pair's K check.
        """
        den = self.fee_rate.denominator
        adjusted = []
        for reserve, d in zip(self.reserves, delta):
            balance = reserve - d
            if balance < 0:
                return False
            amount_in = -d if d < 0 else 0
            adjusted.append(balance * den - amount_in * self.fee_rate.numerator)
        return adjusted[0] * adjusted[1] >= self.reserves[0] * self.reserves[1] * den * den

    def sell_tokens(self, token_in: TokenId, amount_in: int, recipient: str) -> bytes:
        """
        Calldata for selling amount_in of token_in to this pair.

        The input must already have been transferred to the pair; the output
        is sent to recipient.
        """
        i = self.token_index(token_in)
        amount_out = self.get_output_amount(
            amount_in, self.reserves[i], self.reserves[1 - i]
        )
        amounts = [0, 0]
        amounts[1 - i] = amount_out
        return v2.encode_swap(amounts[0], amounts[1], recipient)

    def with_reserves(self, reserve0: int, reserve1: int) -> "ConstantProductPool":
        return replace(self, reserves=(reserve0, reserve1))


POOL_KINDS: Dict[str, Type[CFMMPool]] = {"v2": ConstantProductPool}


def build_pool(kind: str, **kwargs) -> CFMMPool:
    """
    Construct a pool of a registered kind.

    Raises:
        ConfigurationError: If kind is not a supported pool variant
    """
    pool_cls = POOL_KINDS.get(kind)
    if pool_cls is None:
        raise ConfigurationError(
            f"Unsupported pool kind '{kind}' (must be one of {sorted(POOL_KINDS)})"
        )
    return pool_cls(**kwargs)
