"""Pure signal-to-decision conversion and pre-trade filtering."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from datetime import date
from typing import List, Mapping, Optional

from ai_trading.config.models import TradingConfiguration
from ai_trading.domain.models import (
    AccountSnapshot,
    MarketSentiment,
    OrderSide,
    Position,
    Prediction,
    TradingDecision,
)
from ai_trading.errors import RiskLimitBreach
from ai_trading.signals import sentiment_multiplier

from .state import EngineState

logger = logging.getLogger(__name__)

WEIGHT_TOLERANCE = 0.01
MAX_RISK_SCORE = 0.7
LOSS_FLAG_RATE = -0.05
STOP_LOSS_RATE = -0.05
TAKE_PROFIT_RATE = 0.20


def calculate_target_weight(confidence: float, max_position_size: float, sentiment: MarketSentiment) -> float:
    weight = confidence * max_position_size * sentiment_multiplier(sentiment)
    return min(weight, max_position_size)


def calculate_risk_score(confidence: float, position: Optional[Position]) -> float:
    score = 0.4 * (1.0 - confidence) + 0.2
    if position is not None and position.profit_loss_rate < LOSS_FLAG_RATE:
        score += 0.3
    return min(score, 1.0)


def current_weight(account: AccountSnapshot, position: Optional[Position]) -> float:
    if position is None or account.total_assets <= 0:
        return 0.0
    return position.evaluation_amount / account.total_assets


def build_decisions(
    account: AccountSnapshot,
    predictions: Mapping[str, Prediction],
    sentiment: MarketSentiment,
    config: TradingConfiguration,
) -> List[TradingDecision]:
    """Turn confident predictions into buy or sell decisions.

    Symbols whose target weight is within one percentage point of the current
    weight produce no decision.
    """

    decisions: List[TradingDecision] = []
    max_position_size = config.risk_limits.max_position_size
    for symbol, prediction in predictions.items():
        position = account.position_for(symbol)
        weight = current_weight(account, position)
        target = calculate_target_weight(prediction.confidence, max_position_size, sentiment)
        if target > weight + WEIGHT_TOLERANCE:
            action = OrderSide.BUY
        elif target < weight - WEIGHT_TOLERANCE:
            action = OrderSide.SELL
        else:
            continue

        if position is not None and position.current_price > 0:
            expected_return = (prediction.target_price - position.current_price) / position.current_price
        else:
            expected_return = prediction.prediction

        decisions.append(
            TradingDecision(
                symbol=symbol,
                action=action,
                confidence=prediction.confidence,
                target_weight=target,
                reasoning=(
                    f"AI confidence: {prediction.confidence:.1%}",
                    f"Current weight: {weight:.2%}",
                    f"Target weight: {target:.2%}",
                    f"Market sentiment: {sentiment.value}",
                ),
                risk_score=calculate_risk_score(prediction.confidence, position),
                expected_return=expected_return,
            )
        )
    return decisions


@dataclass
class FilterOutcome:
    accepted: List[TradingDecision] = field(default_factory=list)
    dropped: List[RiskLimitBreach] = field(default_factory=list)


def _check_decision(decision: TradingDecision, config: TradingConfiguration) -> None:
    if decision.risk_score > MAX_RISK_SCORE:
        raise RiskLimitBreach(decision.symbol, f"risk score {decision.risk_score:.2f} above {MAX_RISK_SCORE}")
    if decision.confidence < config.confidence_threshold:
        raise RiskLimitBreach(
            decision.symbol,
            f"confidence {decision.confidence:.2f} below threshold {config.confidence_threshold:.2f}",
        )


def filter_decisions(
    decisions: List[TradingDecision],
    state: EngineState,
    config: TradingConfiguration,
    *,
    today: date,
) -> FilterOutcome:
    """Apply the daily quota, risk score and confidence filters in order."""

    state.roll_date(today)
    outcome = FilterOutcome()
    for decision in decisions:
        if state.daily_trade_count + len(outcome.accepted) >= config.max_trades_per_day:
            breach = RiskLimitBreach(decision.symbol, f"daily trade limit {config.max_trades_per_day} reached")
            logger.info("Daily trade quota exhausted", extra={"symbol": decision.symbol, "reason": breach.reason})
            outcome.dropped.append(breach)
            continue
        try:
            _check_decision(decision, config)
        except RiskLimitBreach as breach:
            logger.info("Decision filtered", extra={"symbol": breach.symbol, "reason": breach.reason})
            outcome.dropped.append(breach)
            continue
        outcome.accepted.append(decision)
    return outcome


def protective_exit(position: Position, account: AccountSnapshot) -> Optional[TradingDecision]:
    """Return a forced sell for stop-loss or take-profit levels, if one applies."""

    rate = position.profit_loss_rate
    weight = current_weight(account, position)
    if rate <= STOP_LOSS_RATE:
        quantity = position.quantity
        target = 0.0
        reason = f"Stop loss triggered at {rate:.2%}"
    elif rate >= TAKE_PROFIT_RATE:
        quantity = math.floor(position.quantity / 2)
        target = weight / 2
        reason = f"Take profit triggered at {rate:.2%}"
    else:
        return None
    if quantity <= 0:
        return None
    return TradingDecision(
        symbol=position.symbol,
        action=OrderSide.SELL,
        confidence=1.0,
        target_weight=target,
        reasoning=(reason, f"Current weight: {weight:.2%}"),
        risk_score=0.0,
        expected_return=0.0,
        forced_quantity=quantity,
    )


__all__ = [
    "FilterOutcome",
    "build_decisions",
    "calculate_risk_score",
    "calculate_target_weight",
    "current_weight",
    "filter_decisions",
    "protective_exit",
]
