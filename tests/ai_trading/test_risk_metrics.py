import math
import random

import pytest

from ai_trading.domain.models import AccountSnapshot, Position, PriceQuote
from ai_trading.risk_engine.risk_metrics import RiskMetricsEngine
from ai_trading.risk_engine.simulation import (
    DEFAULT_CORRELATION,
    ReturnStats,
    SimulatedAsset,
    cholesky,
    pearson,
    return_stats,
    simulate_var,
    value_at_risk,
)
from ai_trading.risk_engine.state_store import PRICE_WINDOW, RiskState


def _position(symbol: str, quantity: float, price: float, avg_price: float | None = None) -> Position:
    return Position(
        symbol=symbol,
        quantity=quantity,
        avg_price=avg_price or price,
        current_price=price,
        evaluation_amount=quantity * price,
    )


def _account(cash: float, *positions: Position) -> AccountSnapshot:
    stock = sum(position.evaluation_amount for position in positions)
    return AccountSnapshot(total_assets=cash + stock, cash_balance=cash, stock_value=stock, positions=positions)


def _engine(**kwargs) -> RiskMetricsEngine:
    kwargs.setdefault("rng", random.Random(7))
    kwargs.setdefault("simulations", 2000)
    return RiskMetricsEngine(**kwargs)


def test_leverage_is_stock_over_total():
    account = AccountSnapshot(total_assets=1_000_000, cash_balance=200_000, stock_value=800_000)
    assert RiskMetricsEngine.leverage(account) == pytest.approx(0.8)


def test_leverage_is_zero_for_empty_account():
    account = AccountSnapshot(total_assets=0, cash_balance=0, stock_value=0)
    leverage = RiskMetricsEngine.leverage(account)
    assert leverage == 0.0
    assert math.isfinite(leverage)


def test_var_is_zero_without_positions():
    metrics = _engine().calculate(_account(500_000), {})
    assert (metrics.var95, metrics.var99, metrics.expected_shortfall) == (0.0, 0.0, 0.0)


@pytest.mark.parametrize("correlated", [True, False])
def test_var99_not_below_var95(correlated):
    engine = _engine(correlated=correlated)
    account = _account(
        200_000,
        _position("005930", 10, 70_000),
        _position("000660", 2, 120_000),
        _position("051910", 1, 60_000),
    )
    metrics = engine.calculate(account, {})
    assert metrics.var99 >= metrics.var95 >= 0
    assert metrics.expected_shortfall >= metrics.var95


def test_value_at_risk_uses_floor_indices():
    values = [float(v) for v in range(100)]
    result = value_at_risk(values, 100.0)
    assert result.var95 == pytest.approx(100 - 5)
    assert result.var99 == pytest.approx(100 - 1)
    assert result.expected_shortfall == pytest.approx(100 - sum(range(6)) / 6)


def test_simulation_is_deterministic_for_seeded_rng():
    assets = [SimulatedAsset(quantity=10, price=1000, stats=ReturnStats(0.001, 0.02))]
    first, _ = simulate_var(assets, 0, 10_000, random.Random(3), simulations=500)
    second, _ = simulate_var(assets, 0, 10_000, random.Random(3), simulations=500)
    assert first == second


def test_return_stats_default_when_history_short():
    assert return_stats([0.01] * 5) == ReturnStats(0.001, 0.02)
    stats = return_stats([0.01, -0.01] * 10)
    assert stats.mean == pytest.approx(0.0)
    assert stats.std == pytest.approx(0.01)


def test_concentration_bounds_and_sector_sum():
    account = _account(
        100_000,
        _position("005930", 5, 70_000),
        _position("000660", 1, 120_000),
        _position("999999", 3, 10_000),
    )
    concentration = _engine().concentration(account)
    assert 0.0 <= concentration.max_single_position <= 1.0
    position_weights = sum(p.evaluation_amount for p in account.positions) / account.total_assets
    assert sum(concentration.by_sector.values()) == pytest.approx(position_weights)
    assert set(concentration.by_sector) == {"Technology", "Others"}
    assert [p.symbol for p in concentration.top_positions] == ["005930", "000660", "999999"]


def test_concentration_with_zero_total_assets():
    account = AccountSnapshot(
        total_assets=0, cash_balance=0, stock_value=0, positions=(_position("005930", 1, 70_000),)
    )
    concentration = _engine().concentration(account)
    assert concentration.max_single_position == 0.0


def test_top_positions_limited_to_five():
    positions = [_position(f"00000{i}", 1, 1000 * (i + 1)) for i in range(7)]
    concentration = _engine().concentration(_account(0, *positions))
    assert len(concentration.top_positions) == 5
    assert concentration.top_positions[0].symbol == "000006"


def test_liquidity_cash_only_account():
    liquidity = RiskMetricsEngine.liquidity(_account(100_000), {})
    assert liquidity.ratio == pytest.approx(1.0)
    assert liquidity.market_impact_score == 0.0


def test_liquidity_zero_volume_counts_as_illiquid():
    account = _account(50_000, _position("005930", 10, 5_000))
    quotes = {"005930": PriceQuote(symbol="005930", price=5_000, volume=0)}
    liquidity = RiskMetricsEngine.liquidity(account, quotes)
    assert liquidity.ratio == pytest.approx(0.5)
    # (1.0 - 0.05) * 0.1 * 50_000 / 100_000
    assert liquidity.market_impact_score == pytest.approx(0.0475)


def test_liquidity_deep_market_has_no_impact():
    account = _account(50_000, _position("005930", 10, 5_000))
    quotes = {"005930": PriceQuote(symbol="005930", price=5_000, volume=1_000_000)}
    liquidity = RiskMetricsEngine.liquidity(account, quotes)
    assert liquidity.ratio == pytest.approx(1.0)
    assert liquidity.market_impact_score == 0.0


def test_pearson_defaults_and_degenerate_series():
    assert pearson([0.1] * 5, [0.2] * 30) == DEFAULT_CORRELATION
    assert pearson([0.01] * 30, [0.01 * i for i in range(30)]) == 0.0
    series = [0.01 * ((-1) ** i) * (i % 5) for i in range(40)]
    assert pearson(series, series) == pytest.approx(1.0)
    assert pearson(series, [-value for value in series]) == pytest.approx(-1.0)


def test_correlation_uses_default_for_short_history():
    account = _account(0, _position("A", 1, 100), _position("B", 1, 100))
    correlation = _engine().correlation(account)
    assert correlation.avg == pytest.approx(DEFAULT_CORRELATION)
    assert correlation.max == pytest.approx(DEFAULT_CORRELATION)
    assert correlation.symbols == ("A", "B")
    assert correlation.matrix[0][0] == 1.0


def test_cholesky_rejects_non_positive_definite_matrix():
    assert cholesky([[1.0, 0.3], [0.3, 1.0]]) is not None
    assert cholesky([[1.0, 1.0], [1.0, 1.0]]) is None


def test_drawdown_tracks_running_peak():
    engine = _engine()
    engine.calculate(_account(1_200_000), {})
    metrics = engine.calculate(_account(1_000_000), {})
    assert metrics.drawdown.current == pytest.approx(1 / 6)
    assert metrics.drawdown.max == pytest.approx(1 / 6)
    assert metrics.drawdown.duration_cycles == 1

    recovered = engine.calculate(_account(1_300_000), {})
    assert recovered.drawdown.current == 0.0
    assert recovered.drawdown.max == pytest.approx(1 / 6)
    assert recovered.drawdown.duration_cycles == 0


def test_price_window_is_bounded():
    state = RiskState()
    for index in range(PRICE_WINDOW + 10):
        state.record_price("A", 100 + index)
    state.record_price("A", 0)
    assert len(state.price_history["A"]) == PRICE_WINDOW
    assert len(state.returns_for("A")) == PRICE_WINDOW - 1
