"""Signal intake, filtering and sequential trade execution."""

from .decisions import build_decisions, filter_decisions
from .engine import TradingDecisionEngine
from .state import EngineState, PerformanceCounters

__all__ = [
    "EngineState",
    "PerformanceCounters",
    "TradingDecisionEngine",
    "build_decisions",
    "filter_decisions",
]
