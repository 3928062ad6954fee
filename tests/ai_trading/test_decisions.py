from datetime import date

import pytest

from ai_trading.config.models import RiskLimits, TradingConfiguration
from ai_trading.domain.models import AccountSnapshot, MarketSentiment, OrderSide, Position, Prediction, TradingDecision
from ai_trading.trading.decisions import (
    build_decisions,
    calculate_risk_score,
    calculate_target_weight,
    filter_decisions,
    protective_exit,
)
from ai_trading.trading.state import EngineState


def _position(symbol: str, evaluation: float, rate: float = 0.0, quantity: float = 10) -> Position:
    return Position(
        symbol=symbol,
        quantity=quantity,
        avg_price=evaluation / quantity,
        current_price=evaluation / quantity,
        evaluation_amount=evaluation,
        profit_loss_rate=rate,
    )


def _decision(symbol: str, confidence: float = 0.9, risk: float = 0.3) -> TradingDecision:
    return TradingDecision(symbol=symbol, action=OrderSide.BUY, confidence=confidence, target_weight=0.1, risk_score=risk)


@pytest.mark.parametrize(
    "sentiment, expected",
    [
        (MarketSentiment.BULLISH, 0.1),  # 0.9 * 0.1 * 1.2 capped at 0.1
        (MarketSentiment.NEUTRAL, 0.09),
        (MarketSentiment.BEARISH, 0.072),
    ],
)
def test_target_weight_sentiment_multiplier(sentiment, expected):
    assert calculate_target_weight(0.9, 0.1, sentiment) == pytest.approx(expected)


def test_risk_score_formula():
    assert calculate_risk_score(0.8, None) == pytest.approx(0.28)
    losing = _position("A", 1000, rate=-0.06)
    assert calculate_risk_score(0.8, losing) == pytest.approx(0.58)
    assert calculate_risk_score(0.0, losing) <= 1.0


def test_build_decisions_buy_sell_and_hold():
    account = AccountSnapshot(
        total_assets=1_000_000,
        cash_balance=700_000,
        stock_value=300_000,
        positions=(_position("HOLD", 90_000), _position("TRIM", 210_000)),
    )
    predictions = {
        "NEW": Prediction(prediction=0.03, confidence=0.8, target_price=110.0),
        "HOLD": Prediction(prediction=0.01, confidence=0.9, target_price=9_900.0),
        "TRIM": Prediction(prediction=-0.02, confidence=0.8, target_price=21_000.0),
    }
    config = TradingConfiguration(risk_limits=RiskLimits(max_position_size=0.1))

    decisions = {d.symbol: d for d in build_decisions(account, predictions, MarketSentiment.NEUTRAL, config)}

    assert set(decisions) == {"NEW", "TRIM"}
    assert decisions["NEW"].action is OrderSide.BUY
    assert decisions["NEW"].target_weight == pytest.approx(0.08)
    assert decisions["NEW"].expected_return == pytest.approx(0.03)
    assert decisions["TRIM"].action is OrderSide.SELL
    assert decisions["TRIM"].expected_return == pytest.approx(0.0)
    assert any("neutral" in reason for reason in decisions["NEW"].reasoning)


def test_filter_drops_risky_and_unconfident_decisions():
    state = EngineState()
    config = TradingConfiguration(confidence_threshold=0.75, max_trades_per_day=10)
    decisions = [_decision("OK"), _decision("RISKY", risk=0.71), _decision("WEAK", confidence=0.5)]

    outcome = filter_decisions(decisions, state, config, today=date(2024, 1, 2))

    assert [d.symbol for d in outcome.accepted] == ["OK"]
    assert sorted(breach.symbol for breach in outcome.dropped) == ["RISKY", "WEAK"]


def test_filter_respects_remaining_daily_quota():
    state = EngineState(daily_trade_count=2, last_trade_date=date(2024, 1, 2))
    config = TradingConfiguration(max_trades_per_day=3)

    outcome = filter_decisions([_decision("A"), _decision("B")], state, config, today=date(2024, 1, 2))

    assert [d.symbol for d in outcome.accepted] == ["A"]


def test_filter_resets_quota_on_new_day():
    state = EngineState(daily_trade_count=3, last_trade_date=date(2024, 1, 2))
    config = TradingConfiguration(max_trades_per_day=3)

    outcome = filter_decisions([_decision("A")], state, config, today=date(2024, 1, 3))

    assert state.daily_trade_count == 0
    assert [d.symbol for d in outcome.accepted] == ["A"]


def test_protective_exit_levels():
    account = AccountSnapshot(total_assets=10_000, cash_balance=0, stock_value=10_000)

    stop = protective_exit(_position("A", 1_000, rate=-0.06, quantity=7), account)
    assert stop.forced_quantity == 7
    assert stop.confidence == 1.0
    assert stop.action is OrderSide.SELL

    take = protective_exit(_position("B", 1_000, rate=0.25, quantity=7), account)
    assert take.forced_quantity == 3

    assert protective_exit(_position("C", 1_000, rate=0.1), account) is None
    assert protective_exit(_position("D", 1_000, rate=0.3, quantity=1), account) is None
