"""Top-level orchestration for one risk evaluation pass."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from ai_trading.config.models import RiskLimits
from ai_trading.domain.models import AccountSnapshot, CircuitBreaker, PriceQuote, RiskAlert, RiskMetrics
from ai_trading.errors import DataUnavailable

from .action_executor import EmergencyActionResult, EmergencyResponder, RunningState
from .broker_client import Broker
from .metrics import MetricRegistry, Timer
from .risk_metrics import RiskMetricsEngine
from .risk_rules import evaluate_circuit_breakers, generate_risk_alerts

logger = logging.getLogger(__name__)


@dataclass
class RiskCycleResult:
    metrics: RiskMetrics
    alerts: List[RiskAlert] = field(default_factory=list)
    breakers: List[CircuitBreaker] = field(default_factory=list)
    emergency_actions: List[EmergencyActionResult] = field(default_factory=list)

    @property
    def triggered(self) -> List[CircuitBreaker]:
        return [breaker for breaker in self.breakers if breaker.triggered]

    def to_payload(self) -> Dict[str, Any]:
        return {
            "metrics": self.metrics.to_payload(),
            "alerts": [alert.to_payload() for alert in self.alerts],
            "breakers": [breaker.to_payload() for breaker in self.breakers],
            "emergency_actions": [action.to_payload() for action in self.emergency_actions],
        }


async def fetch_quotes(account: AccountSnapshot, broker: Broker) -> Dict[str, PriceQuote]:
    """Fetch a quote per held position, skipping symbols whose quote is unavailable."""

    quotes: Dict[str, PriceQuote] = {}
    for position in account.positions:
        try:
            quotes[position.symbol] = await broker.get_real_time_price(position.symbol)
        except DataUnavailable as exc:
            logger.warning(
                "Quote unavailable; symbol excluded from liquidity metrics",
                extra={"symbol": position.symbol, "error": str(exc)},
            )
    return quotes


async def risk_cycle(
    account: AccountSnapshot,
    broker: Broker,
    risk_engine: RiskMetricsEngine,
    limits: RiskLimits,
    responder: EmergencyResponder,
    engine_state: RunningState,
    *,
    metrics: Optional[MetricRegistry] = None,
    emergency_broker: Optional[Broker] = None,
) -> RiskCycleResult:
    """Run a single iteration of the risk pipeline.

    Steps:
    1. Fetch a quote per held position and fold it into the trailing price windows.
    2. Compute the risk snapshot.
    3. Evaluate alert rules and the three circuit breakers.
    4. Hand triggered breakers to ``responder``, submitting through
       ``emergency_broker`` when one is given.
    """

    metrics = metrics or MetricRegistry()
    loop_start = time.perf_counter()
    quotes = await fetch_quotes(account, broker)
    for quote in quotes.values():
        risk_engine.record_price(quote)

    with Timer(metrics, "risk_metrics_latency_seconds"):
        snapshot = risk_engine.calculate(account, quotes)
    alerts = generate_risk_alerts(snapshot, limits)
    breakers = evaluate_circuit_breakers(snapshot, limits)
    for alert in alerts:
        metrics.inc("risk_alerts_total", labels={"level": alert.level.value, "category": alert.category.value})

    result = RiskCycleResult(metrics=snapshot, alerts=alerts, breakers=breakers)
    if result.triggered:
        result.emergency_actions = await responder.handle_emergency(
            breakers, account, emergency_broker or broker, engine_state
        )

    duration = time.perf_counter() - loop_start
    metrics.observe("risk_loop_latency_seconds", duration)
    logger.info(
        "Risk cycle completed",
        extra={
            "alerts": len(alerts),
            "triggered_breakers": [breaker.name for breaker in result.triggered],
            "drawdown": round(snapshot.drawdown.current, 4),
            "duration": duration,
        },
    )
    return result


__all__ = ["RiskCycleResult", "fetch_quotes", "risk_cycle"]
