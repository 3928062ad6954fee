"""Exception hierarchy for the trading engine."""

from __future__ import annotations


class TradingEngineError(Exception):
    """Base class for engine failures surfaced to callers."""


class AuthenticationFailure(TradingEngineError):
    """Broker or AI service rejected our credentials."""


class DataUnavailable(TradingEngineError):
    """A collaborator fetch failed and the current cycle cannot proceed."""


class OrderRejected(TradingEngineError):
    """The broker refused an order submission."""

    def __init__(self, message: str, *, symbol: str | None = None, code: str | None = None) -> None:
        super().__init__(message)
        self.symbol = symbol
        self.code = code


class RiskLimitBreach(TradingEngineError):
    """A decision violated a pre-trade risk limit and was dropped."""

    def __init__(self, symbol: str, reason: str) -> None:
        super().__init__(f"{symbol}: {reason}")
        self.symbol = symbol
        self.reason = reason


class SafetyCheckFailed(TradingEngineError):
    """Start-up safety checks did not pass."""


class EngineNotRunning(TradingEngineError):
    pass


class EngineAlreadyRunning(TradingEngineError):
    pass


class RebalanceInProgress(TradingEngineError):
    """Another rebalancing batch is still executing on this engine."""


__all__ = [
    "AuthenticationFailure",
    "DataUnavailable",
    "EngineAlreadyRunning",
    "EngineNotRunning",
    "OrderRejected",
    "RebalanceInProgress",
    "RiskLimitBreach",
    "SafetyCheckFailed",
    "TradingEngineError",
]
