"""Pure alert and circuit breaker evaluation over a risk snapshot."""

from __future__ import annotations

import logging
from typing import List, Tuple

from ai_trading.config.models import RiskLimits
from ai_trading.domain.models import (
    AlertCategory,
    AlertLevel,
    BreakerAction,
    CircuitBreaker,
    RiskAlert,
    RiskMetrics,
)

logger = logging.getLogger(__name__)

# VaR limits are scaled from the daily-loss fraction into currency units.
VAR_ALERT_SCALE = 10_000
VAR_BREAKER_SCALE = 20_000
MIN_LIQUIDITY_RATIO = 0.30
MAX_AVG_CORRELATION = 0.70
DRAWDOWN_BREAKER_MULTIPLIER = 2.0
LEVERAGE_BREAKER_MULTIPLIER = 1.5


class AlertGenerator:
    """Evaluate the six alert rules without side effects."""

    def __init__(self, limits: RiskLimits) -> None:
        self.limits = limits

    def generate(self, metrics: RiskMetrics) -> List[RiskAlert]:
        limits = self.limits
        alerts: List[RiskAlert] = []

        var_limit = limits.max_daily_loss * VAR_ALERT_SCALE
        if metrics.var95 > var_limit:
            alerts.append(
                RiskAlert(
                    level=AlertLevel.CRITICAL,
                    category=AlertCategory.VAR,
                    message=f"95% VaR {metrics.var95:,.0f} exceeds limit {var_limit:,.0f}",
                    recommendation="Reduce overall exposure or hedge the largest positions",
                )
            )

        concentration = metrics.concentration
        if concentration.max_single_position > limits.max_position_size:
            alerts.append(
                RiskAlert(
                    level=AlertLevel.WARNING,
                    category=AlertCategory.CONCENTRATION,
                    message=(
                        f"Largest position weight {concentration.max_single_position:.2%} exceeds "
                        f"limit {limits.max_position_size:.2%}"
                    ),
                    recommendation="Trim oversized positions and diversify holdings",
                    affected_symbols=self._oversized_symbols(metrics),
                )
            )

        if metrics.leverage > limits.max_leverage:
            alerts.append(
                RiskAlert(
                    level=AlertLevel.CRITICAL,
                    category=AlertCategory.LEVERAGE,
                    message=f"Leverage {metrics.leverage:.2f} exceeds limit {limits.max_leverage:.2f}",
                    recommendation="Reduce invested exposure until leverage is within limits",
                )
            )

        if metrics.drawdown.current > limits.max_drawdown:
            alerts.append(
                RiskAlert(
                    level=AlertLevel.EMERGENCY,
                    category=AlertCategory.DRAWDOWN,
                    message=(
                        f"Drawdown {metrics.drawdown.current:.2%} exceeds limit {limits.max_drawdown:.2%}"
                    ),
                    recommendation="Suspend new entries and review open positions",
                )
            )

        if metrics.liquidity.ratio < MIN_LIQUIDITY_RATIO:
            alerts.append(
                RiskAlert(
                    level=AlertLevel.WARNING,
                    category=AlertCategory.LIQUIDITY,
                    message=(
                        f"Liquidity ratio {metrics.liquidity.ratio:.2%} below {MIN_LIQUIDITY_RATIO:.0%}"
                    ),
                    recommendation="Raise cash or rotate into more liquid names",
                )
            )

        if metrics.correlation.avg > MAX_AVG_CORRELATION:
            alerts.append(
                RiskAlert(
                    level=AlertLevel.INFO,
                    category=AlertCategory.CORRELATION,
                    message=(
                        f"Average correlation {metrics.correlation.avg:.2f} above {MAX_AVG_CORRELATION:.2f}"
                    ),
                    recommendation="Add positions with lower correlation to the portfolio",
                )
            )

        for alert in alerts:
            logger.log(
                _log_level(alert.level),
                "Risk alert raised",
                extra={"level": alert.level.value, "category": alert.category.value, "alert": alert.message},
            )
        return alerts

    def _oversized_symbols(self, metrics: RiskMetrics) -> Tuple[str, ...]:
        limit = self.limits.max_position_size
        return tuple(symbol for symbol, weight in metrics.concentration.weights.items() if weight > limit)


class CircuitBreakerEvaluator:
    """Evaluate the three fixed breakers; all of them are always returned."""

    def __init__(self, limits: RiskLimits) -> None:
        self.limits = limits

    def evaluate(self, metrics: RiskMetrics) -> List[CircuitBreaker]:
        limits = self.limits
        breakers = [
            _breaker(
                "Emergency VaR Breaker",
                limits.max_daily_loss * VAR_BREAKER_SCALE,
                metrics.var99,
                BreakerAction.EMERGENCY_EXIT,
                "99% VaR beyond twice the daily loss budget; liquidate all positions",
            ),
            _breaker(
                "Drawdown Breaker",
                limits.max_drawdown * DRAWDOWN_BREAKER_MULTIPLIER,
                metrics.drawdown.current,
                BreakerAction.HALT_TRADING,
                "Drawdown beyond twice the allowed maximum; halt trading",
            ),
            _breaker(
                "Leverage Breaker",
                limits.max_leverage * LEVERAGE_BREAKER_MULTIPLIER,
                metrics.leverage,
                BreakerAction.REDUCE_POSITION,
                "Leverage beyond 1.5x the allowed maximum; halve positions",
            ),
        ]
        for breaker in breakers:
            if breaker.triggered:
                logger.error(
                    "Circuit breaker triggered",
                    extra={
                        "breaker": breaker.name,
                        "threshold": breaker.threshold,
                        "current_value": breaker.current_value,
                        "action": breaker.action.value,
                    },
                )
        return breakers


def _breaker(name: str, threshold: float, value: float, action: BreakerAction, description: str) -> CircuitBreaker:
    return CircuitBreaker(
        name=name,
        threshold=threshold,
        current_value=value,
        triggered=value > threshold,
        action=action,
        description=description,
    )


def _log_level(level: AlertLevel) -> int:
    if level is AlertLevel.INFO:
        return logging.INFO
    if level is AlertLevel.WARNING:
        return logging.WARNING
    return logging.ERROR


def generate_risk_alerts(metrics: RiskMetrics, limits: RiskLimits) -> List[RiskAlert]:
    return AlertGenerator(limits).generate(metrics)


def evaluate_circuit_breakers(metrics: RiskMetrics, limits: RiskLimits) -> List[CircuitBreaker]:
    return CircuitBreakerEvaluator(limits).evaluate(metrics)


__all__ = [
    "AlertGenerator",
    "CircuitBreakerEvaluator",
    "evaluate_circuit_breakers",
    "generate_risk_alerts",
]
