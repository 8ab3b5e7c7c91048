"""
Dual (price-space) optimizer for network-wide CFMM arbitrage.

Minimizes the dual objective

    g(v) = U*(v) + sum over pools of pool.arbitrage(v_local).value

over a non-negative price vector v with a bound-constrained L-BFGS method.
The gradient of each pool term is the pool's optimal trade delta, so one
objective evaluation yields both the dual value and the trades that realize
it. Everything is integer arithmetic on wad values: the curvature product
stored in memory is scaled by RHO_SCALE so it survives floor division.
"""

from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List, Optional, Protocol, Sequence, Tuple

from dex.pool import CFMMPool
from dex.types import PoolTrade

from .constants import DEFAULT_OPTIMIZER, MAX_AMOUNT, RHO_SCALE, WAD
from .exceptions import OptimizerError
from .utils import clamp, get_logger, to_wad

logger = get_logger(__name__)

PriceVector = List[int]


def _dot(a: Sequence[int], b: Sequence[int]) -> int:
    return sum(x * y for x, y in zip(a, b))


class Utility(Protocol):
    """Convex conjugate of the arbitrageur's utility."""

    def conjugate(self, prices: Sequence[int]) -> Tuple[int, List[int]]:
        """Return (U*(v), grad U*(v)) for the wad price vector v."""
        ...


class QuadraticUtility:
    """
    U*(v) = sum (v_i - c_i)^2 in wad fixed point.

    With no center this is sum v_i^2, whose minimizer is the zero vector.
    """

    def __init__(self, center: Optional[Sequence[int]] = None):
        self.center = list(center) if center is not None else None

    def conjugate(self, prices: Sequence[int]) -> Tuple[int, List[int]]:
        if self.center is None:
            offsets = list(prices)
        else:
            if len(self.center) != len(prices):
                raise ValueError(
                    f"Utility center has {len(self.center)} coordinates, "
                    f"prices have {len(prices)}"
                )
            offsets = [p - c for p, c in zip(prices, self.center)]
        value = sum(o * o for o in offsets) // WAD
        return value, [2 * o for o in offsets]


class CFMMNetwork:
    """
    Index of the tokens traded by a set of pools.

    Coordinates follow the sorted token addresses unless an explicit token
    list is given; each pool maps onto the two coordinates of its tokens.
    """

    def __init__(self, pools: Sequence[CFMMPool], tokens: Optional[Sequence[str]] = None):
        self.pools = list(pools)
        if tokens is None:
            tokens = sorted({t for pool in self.pools for t in pool.tokens})
        self.tokens = list(tokens)
        self.index: Dict[str, int] = {t: i for i, t in enumerate(self.tokens)}

        self.coordinates: List[Tuple[int, int]] = []
        for pool in self.pools:
            try:
                self.coordinates.append(
                    (self.index[pool.tokens[0]], self.index[pool.tokens[1]])
                )
            except KeyError as e:
                raise ValueError(
                    f"Pool {pool.address} trades token {e.args[0]} outside the network"
                ) from None

        self.incident: Dict[int, List[int]] = {i: [] for i in range(len(self.tokens))}
        for k, (i, j) in enumerate(self.coordinates):
            self.incident[i].append(k)
            self.incident[j].append(k)

    def __len__(self) -> int:
        return len(self.tokens)

    def _pool_trade(self, k: int, prices: Sequence[int]) -> PoolTrade:
        i, j = self.coordinates[k]
        return self.pools[k].arbitrage((prices[i], prices[j]))

    def arbitrage(self, prices: Sequence[int]) -> Tuple[int, List[int], List[PoolTrade]]:
        """
        Sum of every pool's optimal trade at prices.

        Returns:
            Tuple of (total value, scattered delta gradient, per-pool trades)

        Raises:
            OptimizerError: If any pool fails to price its sub-problem
        """
        value = 0
        gradient = [0] * len(self.tokens)
        trades = []
        for k, pool in enumerate(self.pools):
            try:
                trade = self._pool_trade(k, prices)
            except Exception as e:
                raise OptimizerError(
                    f"Pool {pool.address} failed during dual evaluation: {e}",
                    pool=pool.address,
                ) from e
            i, j = self.coordinates[k]
            gradient[i] += trade.delta[0]
            gradient[j] += trade.delta[1]
            value += trade.value
            trades.append(trade)
        return value, gradient, trades

    def partial(self, prices: Sequence[int], coordinate: int) -> int:
        """Pool contribution to the partial derivative along one coordinate."""
        total = 0
        for k in self.incident[coordinate]:
            trade = self._pool_trade(k, prices)
            i, _ = self.coordinates[k]
            total += trade.delta[0] if i == coordinate else trade.delta[1]
        return total


@dataclass
class CurvaturePair:
    """One (s, y) curvature pair with its scaled inverse product."""

    s: List[int]
    y: List[int]
    rho: int


class OptimizerMemory:
    """Bounded FIFO of curvature pairs, oldest first."""

    def __init__(self, size: int):
        if size < 1:
            raise ValueError(f"Memory size must be positive: {size}")
        self.size = size
        self._pairs: Deque[CurvaturePair] = deque(maxlen=size)

    def __len__(self) -> int:
        return len(self._pairs)

    def __iter__(self):
        return iter(self._pairs)

    def __reversed__(self):
        return reversed(self._pairs)

    @property
    def latest(self) -> Optional[CurvaturePair]:
        return self._pairs[-1] if self._pairs else None

    def update(self, s: List[int], y: List[int]) -> bool:
        """
        Store the pair if it satisfies the curvature condition y.s > 0.

        The oldest pair is evicted once the window is full.

        Returns:
            True if the pair was stored
        """
        ys = _dot(y, s)
        if ys <= 0:
            return False
        self._pairs.append(CurvaturePair(s=s, y=y, rho=RHO_SCALE * WAD * WAD // ys))
        return True

    def direction(self, gradient: Sequence[int]) -> List[int]:
        """
        Two-loop recursion: approximate inverse Hessian times gradient.

        The result is the ascent direction; callers negate it.
        """
        q = list(gradient)
        alphas = []
        for pair in reversed(self._pairs):
            alpha = pair.rho * _dot(pair.s, q) // (WAD * WAD)
            q = [qi - alpha * yi // RHO_SCALE for qi, yi in zip(q, pair.y)]
            alphas.append(alpha)

        latest = self.latest
        if latest is not None:
            sy = _dot(latest.s, latest.y)
            yy = _dot(latest.y, latest.y)
            if yy > 0:
                q = [qi * sy // yy for qi in q]

        for pair, alpha in zip(self._pairs, reversed(alphas)):
            beta = pair.rho * _dot(pair.y, q) // (WAD * WAD)
            q = [qi + si * (alpha - beta) // RHO_SCALE for qi, si in zip(q, pair.s)]
        return q


@dataclass
class Bounds:
    """Per-coordinate box constraint of one optimizer run."""

    lower: List[int]
    upper: List[int]

    def project(self, point: Sequence[int]) -> List[int]:
        return [
            clamp(p, lo, hi) for p, lo, hi in zip(point, self.lower, self.upper)
        ]


@dataclass(frozen=True)
class LBFGSOptions:
    """
    L-BFGS-B run parameters.

    Attributes:
        max_iterations: Iteration cap
        tolerance: Gradient norm below which the run converges (wad)
        memory: Number of curvature pairs kept
        bounds_precision: Width at which bounds discovery stops (wei)
    """

    max_iterations: int = DEFAULT_OPTIMIZER["MAX_ITERATIONS"]
    tolerance: int = to_wad(DEFAULT_OPTIMIZER["TOLERANCE"])
    memory: int = DEFAULT_OPTIMIZER["MEMORY"]
    bounds_precision: int = DEFAULT_OPTIMIZER["BOUNDS_PRECISION"]

    def __post_init__(self):
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be positive: {self.max_iterations}")
        if self.tolerance <= 0:
            raise ValueError(f"tolerance must be positive: {self.tolerance}")
        if self.memory < 1:
            raise ValueError(f"memory must be positive: {self.memory}")
        if self.bounds_precision < 1:
            raise ValueError(
                f"bounds_precision must be positive: {self.bounds_precision}"
            )

    @classmethod
    def from_config(cls, config) -> "LBFGSOptions":
        """Build options from an OptimizerConfig."""
        return cls(
            max_iterations=config.max_iterations,
            tolerance=config.tolerance,
            memory=config.memory,
            bounds_precision=config.bounds_precision,
        )


@dataclass
class OptimizationResult:
    """
    Outcome of one optimizer run.

    converged=False means the iteration cap was hit or progress stalled;
    the point is a best-effort solution, not a failure.
    """

    prices: PriceVector
    dual_value: int
    converged: bool
    iterations: int
    trades: List[Tuple[str, PoolTrade]] = field(default_factory=list)
    bounds: Optional[Bounds] = None
    memory_size: int = 0

    @property
    def trade_value(self) -> int:
        return sum(trade.value for _, trade in self.trades)


class DualOptimizer:
    """Bound-constrained L-BFGS over the dual of the network arbitrage problem."""

    def __init__(
        self,
        network: CFMMNetwork,
        utility: Optional[Utility] = None,
        options: Optional[LBFGSOptions] = None,
    ):
        self.network = network
        self.utility = utility or QuadraticUtility()
        self.options = options or LBFGSOptions()

    def evaluate(self, prices: Sequence[int]) -> Tuple[int, List[int], List[PoolTrade]]:
        """
        Dual objective, gradient and per-pool trades at prices.

        Raises:
            OptimizerError: If a pool or the utility cannot be evaluated
        """
        try:
            value, gradient = self.utility.conjugate(prices)
        except (ValueError, ArithmeticError) as e:
            raise OptimizerError(f"Utility evaluation failed: {e}") from e
        pool_value, pool_gradient, trades = self.network.arbitrage(prices)
        gradient = [a + b for a, b in zip(gradient, pool_gradient)]
        return value + pool_value, gradient, trades

    def _partial(self, prices: Sequence[int], coordinate: int) -> int:
        _, utility_gradient = self.utility.conjugate(prices)
        return utility_gradient[coordinate] + self.network.partial(prices, coordinate)

    def find_bounds(self, initial: Sequence[int]) -> Bounds:
        """
        Per-coordinate box for the run.

        Each coordinate is binary searched over [0, MAX_AMOUNT] with the other
        coordinates held at initial, narrowing toward the point past which the
        objective only increases along that coordinate. The upper bound is
        twice the converged right end. An evaluation failure shrinks the
        interval from the right.

        The test is the sign of the partial derivative rather than of the
        objective value: U* is non-negative, so testing the value would put
        every bound at zero.
        """
        precision = self.options.bounds_precision
        lower = [0] * len(initial)
        upper = []
        for i in range(len(initial)):
            left, right = 0, MAX_AMOUNT
            point = list(initial)
            while right - left > precision:
                mid = (left + right) // 2
                point[i] = mid
                try:
                    slope = self._partial(point, i)
                except Exception as e:
                    logger.debug(f"Bounds evaluation failed at coordinate {i}, v={mid}: {e}")
                    right = mid
                    continue
                if slope > 0:
                    right = mid
                else:
                    left = mid
            upper.append(min(2 * right, MAX_AMOUNT))
        return Bounds(lower=lower, upper=upper)

    def _gradient_small(self, gradient: Sequence[int]) -> bool:
        return _dot(gradient, gradient) < self.options.tolerance**2

    def optimize(self, initial: Optional[Sequence[int]] = None) -> OptimizationResult:
        """
        Run L-BFGS-B from initial (WAD per coordinate by default).

        Returns:
            OptimizationResult with the final point and its trades

        Raises:
            OptimizerError: If the objective cannot be evaluated
        """
        n = len(self.network)
        v = list(initial) if initial is not None else [WAD] * n
        if len(v) != n:
            raise ValueError(f"Initial vector has {len(v)} coordinates, network has {n}")

        value, gradient, trades = self.evaluate(v)
        bounds = self.find_bounds(v)
        memory = OptimizerMemory(self.options.memory)

        converged = self._gradient_small(gradient)
        iterations = 0
        while not converged and iterations < self.options.max_iterations:
            iterations += 1
            direction = memory.direction(gradient)
            v_new = bounds.project([vi - di for vi, di in zip(v, direction)])
            if v_new == v:
                logger.debug(f"Projected step made no progress at iteration {iterations}")
                break

            try:
                value_new, gradient_new, trades = self.evaluate(v_new)
            except OptimizerError as e:
                e.iteration = iterations
                raise

            s = [a - b for a, b in zip(v_new, v)]
            y = [a - b for a, b in zip(gradient_new, gradient)]
            memory.update(s, y)

            v, value, gradient = v_new, value_new, gradient_new
            converged = self._gradient_small(gradient)

        logger.debug(
            f"Dual optimization finished: converged={converged}, "
            f"iterations={iterations}, dual_value={value}, memory={len(memory)}"
        )
        return OptimizationResult(
            prices=v,
            dual_value=value,
            converged=converged,
            iterations=iterations,
            trades=[
                (pool.address, trade)
                for pool, trade in zip(self.network.pools, trades)
                if not trade.is_empty
            ],
            bounds=bounds,
            memory_size=len(memory),
        )
