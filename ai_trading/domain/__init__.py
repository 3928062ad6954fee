"""Domain package for trading and risk value objects."""

from .models import (
    AccountSnapshot,
    AlertCategory,
    AlertLevel,
    BreakerAction,
    CircuitBreaker,
    ConcentrationMetrics,
    CorrelationMetrics,
    DrawdownMetrics,
    LiquidityMetrics,
    MarketAnalysis,
    MarketSentiment,
    OrderMethod,
    OrderResult,
    OrderSide,
    OrderStatus,
    Position,
    Prediction,
    PriceQuote,
    RiskAlert,
    RiskMetrics,
    TradingDecision,
    TradingResult,
)

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
]
