"""Value objects shared by the risk engine and the trading pipeline."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


class OrderSide(str, Enum):
    BUY = "buy"
    SELL = "sell"


class OrderMethod(str, Enum):
    MARKET = "market"
    LIMIT = "limit"


class OrderStatus(str, Enum):
    PENDING = "pending"
    FILLED = "filled"
    CANCELLED = "cancelled"
    REJECTED = "rejected"


class AlertLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"
    EMERGENCY = "emergency"


class AlertCategory(str, Enum):
    VAR = "var"
    CONCENTRATION = "concentration"
    LIQUIDITY = "liquidity"
    CORRELATION = "correlation"
    DRAWDOWN = "drawdown"
    LEVERAGE = "leverage"


class BreakerAction(str, Enum):
    HALT_TRADING = "halt_trading"
    REDUCE_POSITION = "reduce_position"
    EMERGENCY_EXIT = "emergency_exit"


class MarketSentiment(str, Enum):
    BULLISH = "bullish"
    NEUTRAL = "neutral"
    BEARISH = "bearish"

    @classmethod
    def _missing_(cls, value: object) -> Optional["MarketSentiment"]:
        if isinstance(value, str):
            lowered = value.strip().lower()
            for member in cls:
                if member.value == lowered:
                    return member
            return cls.NEUTRAL
        return None


@dataclass(frozen=True)
class Position:
    """Read-only mirror of a brokerage position."""

    symbol: str
    quantity: float
    avg_price: float
    current_price: float
    evaluation_amount: float
    profit_loss: float = 0.0
    profit_loss_rate: float = 0.0
    symbol_name: Optional[str] = None


@dataclass(frozen=True)
class AccountSnapshot:
    """Broker account state fetched once per cycle."""

    total_assets: float
    cash_balance: float
    stock_value: float
    positions: Tuple[Position, ...] = ()

    def position_for(self, symbol: str) -> Optional[Position]:
        for position in self.positions:
            if position.symbol == symbol:
                return position
        return None

    def cash_ratio(self) -> float:
        if self.total_assets <= 0:
            return 0.0
        return self.cash_balance / self.total_assets


@dataclass(frozen=True)
class PriceQuote:
    symbol: str
    price: float
    change: float = 0.0
    volume: float = 0.0
    timestamp: str = field(default_factory=utc_timestamp)
    change_rate: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None


@dataclass(frozen=True)
class OrderResult:
    order_id: str
    status: OrderStatus
    executed_qty: float
    executed_price: float
    timestamp: str = field(default_factory=utc_timestamp)
    fee: float = 0.0

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["status"] = self.status.value
        return payload


@dataclass(frozen=True)
class ConcentrationMetrics:
    max_single_position: float
    by_sector: Mapping[str, float]
    top_positions: Tuple[Position, ...]
    weights: Mapping[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class LiquidityMetrics:
    ratio: float
    market_impact_score: float


@dataclass(frozen=True)
class CorrelationMetrics:
    avg: float
    max: float
    matrix: Tuple[Tuple[float, ...], ...]
    symbols: Tuple[str, ...] = ()


@dataclass(frozen=True)
class DrawdownMetrics:
    current: float
    max: float
    duration_cycles: int


@dataclass(frozen=True)
class RiskMetrics:
    """Risk snapshot recomputed every cycle."""

    var95: float
    var99: float
    expected_shortfall: float
    leverage: float
    concentration: ConcentrationMetrics
    liquidity: LiquidityMetrics
    correlation: CorrelationMetrics
    drawdown: DrawdownMetrics
    generated_at: str = field(default_factory=utc_timestamp)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "var95": self.var95,
            "var99": self.var99,
            "expected_shortfall": self.expected_shortfall,
            "leverage": self.leverage,
            "concentration": {
                "max_single_position": self.concentration.max_single_position,
                "by_sector": dict(self.concentration.by_sector),
                "top_positions": [position.symbol for position in self.concentration.top_positions],
            },
            "liquidity": {
                "ratio": self.liquidity.ratio,
                "market_impact_score": self.liquidity.market_impact_score,
            },
            "correlation": {
                "avg": self.correlation.avg,
                "max": self.correlation.max,
                "symbols": list(self.correlation.symbols),
                "matrix": [list(row) for row in self.correlation.matrix],
            },
            "drawdown": {
                "current": self.drawdown.current,
                "max": self.drawdown.max,
                "duration_cycles": self.drawdown.duration_cycles,
            },
            "generated_at": self.generated_at,
        }


@dataclass(frozen=True)
class RiskAlert:
    level: AlertLevel
    category: AlertCategory
    message: str
    recommendation: str
    timestamp: str = field(default_factory=utc_timestamp)
    affected_symbols: Optional[Tuple[str, ...]] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["level"] = self.level.value
        payload["category"] = self.category.value
        if self.affected_symbols is not None:
            payload["affected_symbols"] = list(self.affected_symbols)
        return payload


@dataclass(frozen=True)
class CircuitBreaker:
    name: str
    threshold: float
    current_value: float
    triggered: bool
    action: BreakerAction
    description: str

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["action"] = self.action.value
        return payload


@dataclass(frozen=True)
class TradingDecision:
    symbol: str
    action: OrderSide
    confidence: float
    target_weight: float
    reasoning: Tuple[str, ...] = ()
    risk_score: float = 0.0
    expected_return: float = 0.0
    # Protective exits sell an explicit quantity instead of rebalancing to a weight.
    forced_quantity: Optional[float] = None

    def to_payload(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["action"] = self.action.value
        payload["reasoning"] = list(self.reasoning)
        return payload


@dataclass(frozen=True)
class TradingResult:
    """Audit record for a single trade attempt."""

    decision: TradingDecision
    executed: bool
    order: Optional[OrderResult] = None
    error_message: Optional[str] = None
    timestamp: str = field(default_factory=utc_timestamp)

    def to_payload(self) -> Dict[str, Any]:
        return {
            "decision": self.decision.to_payload(),
            "executed": self.executed,
            "order": self.order.to_payload() if self.order else None,
            "error_message": self.error_message,
            "timestamp": self.timestamp,
        }


@dataclass(frozen=True)
class MarketAnalysis:
    sentiment: MarketSentiment = MarketSentiment.NEUTRAL
    top_picks: Tuple[str, ...] = ()


@dataclass(frozen=True)
class Prediction:
    """AI price prediction; ``prediction`` is the expected return over the horizon."""

    prediction: float
    confidence: float
    target_price: float


__all__ = [
    "AccountSnapshot",
    "AlertCategory",
    "AlertLevel",
    "BreakerAction",
    "CircuitBreaker",
    "ConcentrationMetrics",
    "CorrelationMetrics",
    "DrawdownMetrics",
    "LiquidityMetrics",
    "MarketAnalysis",
    "MarketSentiment",
    "OrderMethod",
    "OrderResult",
    "OrderSide",
    "OrderStatus",
    "Position",
    "Prediction",
    "PriceQuote",
    "RiskAlert",
    "RiskMetrics",
    "TradingDecision",
    "TradingResult",
    "utc_timestamp",
]
