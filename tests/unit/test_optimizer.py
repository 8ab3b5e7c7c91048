"""
Unit tests for the dual optimizer.
"""

import pytest

from cfmm_arbitrage.constants import RHO_SCALE, WAD
from cfmm_arbitrage.exceptions import InvalidReserves, OptimizerError
from cfmm_arbitrage.optimizer import (
    Bounds,
    CFMMNetwork,
    DualOptimizer,
    LBFGSOptions,
    OptimizerMemory,
    QuadraticUtility,
)
from conftest import TOKEN_X, TOKEN_Y, pair


@pytest.fixture
def mispriced_network():
    """Two X/Y pools quoting X at 1.0 and 1.2 Y."""
    return CFMMNetwork(
        [
            pair("0xpool1", TOKEN_X, 100, TOKEN_Y, 100),
            pair("0xpool2", TOKEN_X, 100, TOKEN_Y, 120),
        ]
    )


class TestQuadraticUtility:
    def test_uncentred(self):
        value, gradient = QuadraticUtility().conjugate([2 * WAD, 0])
        assert value == 4 * WAD
        assert gradient == [4 * WAD, 0]

    def test_centred(self):
        value, gradient = QuadraticUtility(center=[WAD]).conjugate([3 * WAD])
        assert value == 4 * WAD
        assert gradient == [4 * WAD]

    def test_center_length_mismatch(self):
        with pytest.raises(ValueError):
            QuadraticUtility(center=[WAD]).conjugate([WAD, WAD])


class TestNetwork:
    def test_tokens_sorted_and_indexed(self, mispriced_network):
        assert mispriced_network.tokens == sorted([TOKEN_X, TOKEN_Y])
        assert len(mispriced_network) == 2
        assert mispriced_network.coordinates == [(0, 1), (0, 1)]

    def test_gradient_scatters_deltas(self, mispriced_network):
        value, gradient, trades = mispriced_network.arbitrage([WAD, WAD])
        assert value == sum(t.value for t in trades)
        assert gradient[0] == sum(t.delta[0] for t in trades)
        assert gradient[1] == sum(t.delta[1] for t in trades)
        # pool1 agrees with the prices, pool2 does not
        assert trades[0].is_empty
        assert not trades[1].is_empty

    def test_pool_outside_network_rejected(self):
        with pytest.raises(ValueError):
            CFMMNetwork([pair("0xp", TOKEN_X, 1, TOKEN_Y, 1)], tokens=[TOKEN_X])

    def test_pool_error_aborts_evaluation(self):
        broken = pair("0xbroken", TOKEN_X, 0, TOKEN_Y, 100)
        network = CFMMNetwork([broken])
        with pytest.raises(OptimizerError) as exc_info:
            network.arbitrage([WAD, WAD])
        assert exc_info.value.pool == "0xbroken"
        assert isinstance(exc_info.value.__cause__, InvalidReserves)


class TestOptimizerMemory:
    def test_window_is_bounded(self):
        memory = OptimizerMemory(3)
        for k in range(1, 11):
            assert memory.update([k * WAD], [WAD])
            assert len(memory) <= 3
        assert len(memory) == 3
        assert [pair.s for pair in memory] == [[8 * WAD], [9 * WAD], [10 * WAD]]

    def test_rejects_non_positive_curvature(self):
        memory = OptimizerMemory(2)
        assert not memory.update([WAD], [-WAD])
        assert not memory.update([WAD], [0])
        assert len(memory) == 0

    def test_rho_is_scaled(self):
        memory = OptimizerMemory(1)
        memory.update([2 * WAD], [WAD])
        assert memory.latest.rho == RHO_SCALE // 2

    def test_direction_without_memory_is_gradient(self):
        assert OptimizerMemory(5).direction([3, -4]) == [3, -4]

    def test_direction_recovers_quadratic_newton_step(self):
        # f(v) = v^2 / WAD has gradient 2v; one pair makes the step exact
        memory = OptimizerMemory(5)
        memory.update([WAD], [2 * WAD])
        assert memory.direction([6 * WAD]) == [3 * WAD]

    def test_size_must_be_positive(self):
        with pytest.raises(ValueError):
            OptimizerMemory(0)


def test_bounds_project():
    bounds = Bounds(lower=[0, 0], upper=[5, 5])
    assert bounds.project([-3, 9]) == [0, 5]
    assert bounds.project([2, 4]) == [2, 4]


def test_options_validation():
    with pytest.raises(ValueError):
        LBFGSOptions(max_iterations=0)
    with pytest.raises(ValueError):
        LBFGSOptions(tolerance=0)
    assert LBFGSOptions().tolerance == 10**12


def test_empty_network_converges_immediately():
    result = DualOptimizer(CFMMNetwork([])).optimize()
    assert result.converged
    assert result.iterations == 0
    assert result.prices == []


def test_zero_pools_quadratic_minimizer_is_zero():
    network = CFMMNetwork([], tokens=[TOKEN_X, TOKEN_Y])
    result = DualOptimizer(network, QuadraticUtility()).optimize([WAD, WAD])
    assert result.prices == [0, 0]
    assert result.converged
    assert result.iterations <= 1
    assert result.dual_value == 0
    assert result.trades == []


def test_bounds_bracket_utility_minimum():
    network = CFMMNetwork([], tokens=[TOKEN_X])
    options = LBFGSOptions(bounds_precision=10**15)
    optimizer = DualOptimizer(network, QuadraticUtility(center=[5 * WAD]), options)
    bounds = optimizer.find_bounds([WAD])
    assert bounds.lower == [0]
    assert 10 * WAD <= bounds.upper[0] <= 10 * WAD + 2 * 10**15


def test_bounds_follow_slope_not_objective_sign():
    network = CFMMNetwork([], tokens=[TOKEN_X])
    optimizer = DualOptimizer(network, QuadraticUtility(center=[3 * WAD]))
    # The objective is non-negative everywhere, the bound still brackets the minimum
    for v in (0, WAD, 3 * WAD, 100 * WAD):
        assert optimizer.evaluate([v])[0] >= 0
    assert optimizer.find_bounds([WAD]).upper[0] >= 6 * WAD


def test_bounds_failed_evaluation_shrinks_interval():
    broken = pair("0xbroken", TOKEN_X, 0, TOKEN_Y, 100)
    optimizer = DualOptimizer(CFMMNetwork([broken]))
    bounds = optimizer.find_bounds([WAD, WAD])
    assert bounds.upper == [bounds.upper[0]] * 2
    assert all(u <= 2 * 10**15 for u in bounds.upper)


def test_pool_error_aborts_run():
    broken = pair("0xbroken", TOKEN_X, 0, TOKEN_Y, 100)
    with pytest.raises(OptimizerError):
        DualOptimizer(CFMMNetwork([broken])).optimize()


def test_memory_never_exceeds_window(mispriced_network):
    options = LBFGSOptions(max_iterations=25, memory=2)
    optimizer = DualOptimizer(
        mispriced_network, QuadraticUtility(center=[WAD, WAD]), options
    )
    result = optimizer.optimize([WAD, WAD])
    assert result.memory_size <= 2
    assert result.iterations <= 25


def test_result_stays_within_bounds(mispriced_network):
    optimizer = DualOptimizer(
        mispriced_network,
        QuadraticUtility(center=[WAD, WAD]),
        LBFGSOptions(max_iterations=10),
    )
    result = optimizer.optimize([WAD, WAD])
    assert result.bounds is not None
    assert result.bounds.project(result.prices) == result.prices or result.iterations == 0
    assert result.dual_value >= 0
    for address, trade in result.trades:
        assert address in ("0xpool1", "0xpool2")
        assert trade.value > 0
    assert result.trade_value == sum(t.value for _, t in result.trades)


def test_initial_vector_length_checked(mispriced_network):
    with pytest.raises(ValueError):
        DualOptimizer(mispriced_network).optimize([WAD])
