"""
Core data types for CFMM pool evaluation.
"""

from dataclasses import dataclass
from typing import Literal, Tuple

# Checksummed token contract address
TokenId = str
# Checksummed pool (pair) contract address
PoolId = str
# Integer amount scaled to 18 decimals
Amount = int

DexKind = Literal["v2"]


@dataclass(frozen=True)
class PoolTrade:
    """
    Optimal trade against a single pool at a proposed price pair.

    Attributes:
        delta: Signed per-asset amounts received by the arbitrageur, in the
            pool's token order. Positive leaves the pool, negative is tendered.
        value: Value of the trade at the proposed prices (wad)
    """

    delta: Tuple[Amount, Amount]
    value: Amount

    @property
    def is_empty(self) -> bool:
        """True when the prices imply no profitable trade."""
        return self.delta == (0, 0)


NO_TRADE = PoolTrade(delta=(0, 0), value=0)
