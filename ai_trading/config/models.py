from __future__ import annotations

from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Mapping

from services.telemetry import ResiliencePolicy

REBALANCE_FREQUENCIES = ("realtime", "hourly", "daily")
MIN_TRADE_DELAY_SECONDS = 1.0


@dataclass()
class RiskLimits:
    """Portfolio limits expressed as fractions of total assets.

    ``max_daily_loss`` is the exception: it scales fixed currency amounts. The
    VaR alert fires above ``max_daily_loss * 10_000`` and the emergency exit
    breaker above ``max_daily_loss * 20_000``, so the default of 0.02 liquidates
    every holding once 99% VaR exceeds 400 units of the quote currency. Raise it
    to match the portfolio scale (a KRW account needs values in the hundreds or
    more) before running with ``EmergencyConfig.dry_run`` disabled.
    """

    max_position_size: float = 0.1
    max_daily_loss: float = 0.02
    max_drawdown: float = 0.05
    min_cash_ratio: float = 0.1
    max_leverage: float = 1.0


@dataclass()
class EmergencyConfig:
    """Safety rails for circuit breaker mitigation.

    Mitigation submits real market sells unless ``dry_run`` is set; set
    ``TRADING_EMERGENCY_DRY_RUN=1`` while tuning ``RiskLimits.max_daily_loss``.
    """

    dry_run: bool = False
    reduce_ratio: float = 0.5


@dataclass()
class TradingConfiguration:
    """Live, process-wide trading configuration."""

    risk_limits: RiskLimits = field(default_factory=RiskLimits)
    confidence_threshold: float = 0.75
    max_trades_per_day: int = 10
    target_symbols: List[str] = field(
        default_factory=lambda: ["005930", "000660", "035420", "051910", "068270"]
    )
    rebalance_frequency: str = "daily"
    enable_auto_trading: bool = False
    trade_delay_seconds: float = MIN_TRADE_DELAY_SECONDS
    request_timeout_seconds: float = 10.0
    monitoring_interval_seconds: float = 300.0
    prediction_horizon: str = "1d"
    correlated_var: bool = True
    emergency: EmergencyConfig = field(default_factory=EmergencyConfig)
    resilience: ResiliencePolicy = field(default_factory=ResiliencePolicy)

    def __post_init__(self) -> None:
        if self.rebalance_frequency not in REBALANCE_FREQUENCIES:
            raise ValueError(
                f"rebalance_frequency must be one of {', '.join(REBALANCE_FREQUENCIES)}, "
                f"not {self.rebalance_frequency!r}"
            )
        if self.trade_delay_seconds < MIN_TRADE_DELAY_SECONDS:
            raise ValueError(
                f"trade_delay_seconds must be at least {MIN_TRADE_DELAY_SECONDS} second(s)"
            )
        if self.max_trades_per_day < 0:
            raise ValueError("max_trades_per_day must not be negative")
        if not 0.0 <= self.confidence_threshold <= 1.0:
            raise ValueError("confidence_threshold must be within [0, 1]")

    def to_payload(self) -> Dict[str, Any]:
        return {
            "risk_limits": _dataclass_payload(self.risk_limits),
            "confidence_threshold": self.confidence_threshold,
            "max_trades_per_day": self.max_trades_per_day,
            "target_symbols": list(self.target_symbols),
            "rebalance_frequency": self.rebalance_frequency,
            "enable_auto_trading": self.enable_auto_trading,
            "trade_delay_seconds": self.trade_delay_seconds,
            "request_timeout_seconds": self.request_timeout_seconds,
            "monitoring_interval_seconds": self.monitoring_interval_seconds,
            "prediction_horizon": self.prediction_horizon,
            "correlated_var": self.correlated_var,
            "emergency": _dataclass_payload(self.emergency),
            "resilience": _dataclass_payload(self.resilience),
        }


def _dataclass_payload(instance: Any) -> Dict[str, Any]:
    return {item.name: getattr(instance, item.name) for item in fields(instance)}


def field_names(cls: type) -> List[str]:
    return [item.name for item in fields(cls)]


def nested_sections() -> Mapping[str, type]:
    """Configuration keys holding nested dataclasses that merge field-wise."""

    return {
        "risk_limits": RiskLimits,
        "emergency": EmergencyConfig,
        "resilience": ResiliencePolicy,
    }


__all__ = [
    "EmergencyConfig",
    "MIN_TRADE_DELAY_SECONDS",
    "REBALANCE_FREQUENCIES",
    "RiskLimits",
    "TradingConfiguration",
    "field_names",
    "nested_sections",
]
