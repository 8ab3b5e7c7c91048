"""
Uniswap V2 style adapter for constant-product AMM pools.

Implements reserve fetching, swap simulation and optimal-arbitrage sizing
using the x*y=k formula with fees embedded in the swap calculation. All
math is exact integer arithmetic on wad amounts; fees are Fractions.
"""

import asyncio
import math
from fractions import Fraction
from typing import Tuple

from eth_abi import encode
from web3 import Web3

from cfmm_arbitrage.constants import WAD
from cfmm_arbitrage.exceptions import DataError, InvalidReserves

from ..abi import (
    ERC20_ABI,
    UNISWAP_V2_PAIR_ABI,
    UNISWAP_V2_SWAP_ARG_TYPES,
    UNISWAP_V2_SWAP_SIGNATURE,
)

SWAP_SELECTOR = Web3.keccak(text=UNISWAP_V2_SWAP_SIGNATURE)[:4]


RATE_LIMIT_MARKERS = ("429", "too many requests", "-32005", "limit exceeded")


def _is_rate_limit(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in RATE_LIMIT_MARKERS)


async def fetch_pool_async(
    web3: Web3, pair_addr: str, max_retries: int = 3
) -> Tuple[str, str, int, int]:
    """
    Read a pair's tokens and reserves without blocking the event loop.

    The three view calls run concurrently in the default executor. Only
    rate-limit responses are retried, with a doubling delay (1s, 2s, ...);
    any other failure is reported immediately.

    Args:
        web3: Web3 instance connected to the chain
        pair_addr: Checksummed address of the pair contract
        max_retries: Attempts made before giving up on a rate-limited node

    Returns:
        Tuple of (token0, token1, reserve0, reserve1)

    Raises:
        DataError: If the pair cannot be read
        ValueError: If pair_addr is not checksummed
    """
    if not Web3.is_checksum_address(pair_addr):
        raise ValueError(f"Invalid pair address: {pair_addr}")

    pair = web3.eth.contract(address=pair_addr, abi=UNISWAP_V2_PAIR_ABI)
    loop = asyncio.get_running_loop()

    for attempt in range(1, max_retries + 1):
        try:
            token0, token1, reserves = await asyncio.gather(
                loop.run_in_executor(None, pair.functions.token0().call),
                loop.run_in_executor(None, pair.functions.token1().call),
                loop.run_in_executor(None, pair.functions.getReserves().call),
            )
        except Exception as e:
            if _is_rate_limit(e) and attempt < max_retries:
                await asyncio.sleep(2 ** (attempt - 1))
                continue
            raise DataError(
                f"Failed to read pair {pair_addr} (attempt {attempt}/{max_retries}): {e}",
                source="rpc",
                pool=pair_addr,
            ) from e
        return (
            Web3.to_checksum_address(token0),
            Web3.to_checksum_address(token1),
            int(reserves[0]),
            int(reserves[1]),
        )

    raise DataError(f"No attempts made to read pair {pair_addr}", source="rpc", pool=pair_addr)


async def fetch_token_balance_async(web3: Web3, token_addr: str, owner: str) -> int:
    """
    Read an ERC20 balance without blocking the event loop.

    Raises:
        DataError: If the RPC call fails
    """
    token = web3.eth.contract(address=token_addr, abi=ERC20_ABI)
    loop = asyncio.get_running_loop()
    try:
        balance = await loop.run_in_executor(
            None, token.functions.balanceOf(owner).call
        )
    except Exception as e:
        raise DataError(
            f"Failed to fetch balance of {owner} in {token_addr}: {e}",
            source="rpc",
            pool=owner,
        ) from e
    return int(balance)


def get_output_amount(
    amount_in: int, reserve_in: int, reserve_out: int, fee_rate: Fraction
) -> int:
    """
    Calculate output amount for a V2 swap using constant-product formula.

    Formula (with fee embedded):
        amountInWithFee = amountIn * (1 - fee)
        amountOut = (amountInWithFee * reserveOut) / (reserveIn + amountInWithFee)

    Evaluated over the fee's numerator/denominator so the single integer
    division truncates exactly like the on-chain pair contract.

    Args:
        amount_in: Input token amount (wad)
        reserve_in: Reserve of input token
        reserve_out: Reserve of output token
        fee_rate: Fee charged on input (e.g., Fraction(3, 1000))

    Returns:
        Output token amount (wad), always strictly below reserve_out

    Raises:
        InvalidReserves: If either reserve is zero or negative
        ValueError: If amount_in is negative
    """
    if reserve_in <= 0 or reserve_out <= 0:
        raise InvalidReserves(
            f"Reserves must be positive: in={reserve_in}, out={reserve_out}",
            reserves=(reserve_in, reserve_out),
        )
    if amount_in < 0:
        raise ValueError(f"amount_in must not be negative: {amount_in}")

    retained = fee_rate.denominator - fee_rate.numerator
    amount_in_with_fee = amount_in * retained

    numerator = amount_in_with_fee * reserve_out
    denominator = reserve_in * fee_rate.denominator + amount_in_with_fee

    return numerator // denominator


def get_price_impact(amount: int, reserve: int) -> int:
    """
    Fraction of the pool's reserve consumed by a trade, as a wad.

    Returns amount / (reserve + amount) scaled by 1e18.

    Raises:
        InvalidReserves: If the reserve is zero or negative
    """
    if reserve <= 0:
        raise InvalidReserves(f"Reserve must be positive: {reserve}")
    if amount <= 0:
        return 0
    return amount * WAD // (reserve + amount)


def _optimal_input(
    price_out: int,
    price_in: int,
    reserve_out: int,
    reserve_in: int,
    fee_rate: Fraction,
) -> int:
    """
    Input amount maximizing price_out * out - price_in * amount_in.

    At the optimum (reserve_in + g * amount_in)^2 equals
    g * reserve_in * reserve_out * price_out / price_in, with g = 1 - fee.
    """
    retained = fee_rate.denominator - fee_rate.numerator
    if price_out * retained * reserve_out <= price_in * fee_rate.denominator * reserve_in:
        return 0
    target = math.isqrt(
        price_out * retained * reserve_in * reserve_out
        // (price_in * fee_rate.denominator)
    )
    if target <= reserve_in:
        return 0
    return (target - reserve_in) * fee_rate.denominator // retained


def optimal_arbitrage(
    reserve0: int, reserve1: int, fee_rate: Fraction, price0: int, price1: int
) -> Tuple[Tuple[int, int], int]:
    """
    Optimal trade against a constant-product pool at external prices.

    Args:
        reserve0: Reserve of token0 (wad)
        reserve1: Reserve of token1 (wad)
        fee_rate: Fee charged on input
        price0: Price of token0 (wad)
        price1: Price of token1 (wad)

    Returns:
        Tuple of ((delta0, delta1), value) where delta is what the
        arbitrageur receives (negative = tendered) and value is
        (price0 * delta0 + price1 * delta1) / 1e18. A zero delta and zero
        value are returned when the prices sit inside the no-trade band.

    Raises:
        InvalidReserves: If either reserve is zero or negative
    """
    if reserve0 <= 0 or reserve1 <= 0:
        raise InvalidReserves(
            f"Reserves must be positive: r0={reserve0}, r1={reserve1}",
            reserves=(reserve0, reserve1),
        )
    # A zero price says nothing about the exchange rate
    if price0 <= 0 or price1 <= 0:
        return (0, 0), 0

    # Token0 cheap in the pool: tender token1, receive token0
    amount1_in = _optimal_input(price0, price1, reserve0, reserve1, fee_rate)
    if amount1_in > 0:
        amount0_out = get_output_amount(amount1_in, reserve1, reserve0, fee_rate)
        delta = (amount0_out, -amount1_in)
    else:
        # Token1 cheap in the pool: tender token0, receive token1
        amount0_in = _optimal_input(price1, price0, reserve1, reserve0, fee_rate)
        if amount0_in <= 0:
            return (0, 0), 0
        amount1_out = get_output_amount(amount0_in, reserve0, reserve1, fee_rate)
        delta = (-amount0_in, amount1_out)

    value = (price0 * delta[0] + price1 * delta[1]) // WAD
    if value <= 0:
        return (0, 0), 0
    return delta, value


def encode_swap(
    amount0_out: int, amount1_out: int, recipient: str, data: bytes = b""
) -> bytes:
    """
    Encode calldata for UniswapV2Pair.swap().

    Args:
        amount0_out: Amount of token0 to send to recipient
        amount1_out: Amount of token1 to send to recipient
        recipient: Address receiving the output
        data: Callback payload (empty for a plain swap)

    Returns:
        4-byte selector followed by the ABI-encoded arguments
    """
    args = encode(
        UNISWAP_V2_SWAP_ARG_TYPES,
        [amount0_out, amount1_out, Web3.to_checksum_address(recipient), data],
    )
    return bytes(SWAP_SELECTOR) + args
