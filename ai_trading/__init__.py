"""Risk-aware AI trading engine."""

from .config import EmergencyConfig, RiskLimits, TradingConfiguration
from .trading import TradingDecisionEngine

__all__ = ["EmergencyConfig", "RiskLimits", "TradingConfiguration", "TradingDecisionEngine"]
