"""Configuration models for the trading engine."""

from .models import EmergencyConfig, RiskLimits, TradingConfiguration

__all__ = ["EmergencyConfig", "RiskLimits", "TradingConfiguration"]
