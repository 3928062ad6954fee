"""Risk engine components for the trading decision pipeline.

The package provides a minimal, testable surface composed of a broker adapter,
risk metric computation, alert and breaker rules, side-effectful emergency
response, and engine-owned running state.
"""

from .action_executor import EmergencyActionResult, EmergencyResponder
from .broker_client import Broker, BrokerClientAdapter, EmergencyBroker
from .metrics import MetricRegistry
from .risk_loop import RiskCycleResult, risk_cycle
from .risk_metrics import RiskMetricsEngine
from .risk_rules import AlertGenerator, CircuitBreakerEvaluator, evaluate_circuit_breakers, generate_risk_alerts
from .state_store import RiskState

__all__ = [
    "AlertGenerator",
    "Broker",
    "BrokerClientAdapter",
    "CircuitBreakerEvaluator",
    "EmergencyActionResult",
    "EmergencyBroker",
    "EmergencyResponder",
    "MetricRegistry",
    "RiskCycleResult",
    "RiskMetricsEngine",
    "RiskState",
    "evaluate_circuit_breakers",
    "generate_risk_alerts",
    "risk_cycle",
]
