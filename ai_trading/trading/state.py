"""Running state owned by a single decision engine instance."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class PerformanceCounters:
    total_trades: int = 0
    win_trades: int = 0
    total_pnl: float = 0.0
    max_drawdown: float = 0.0

    def record_trade(self, pnl: float = 0.0) -> None:
        self.total_trades += 1
        self.total_pnl += pnl
        if pnl > 0:
            self.win_trades += 1

    @property
    def win_rate(self) -> float:
        if self.total_trades == 0:
            return 0.0
        return self.win_trades / self.total_trades

    @property
    def avg_pnl_per_trade(self) -> float:
        if self.total_trades == 0:
            return 0.0
        return self.total_pnl / self.total_trades

    def to_payload(self) -> Dict[str, Any]:
        return {
            "total_trades": self.total_trades,
            "win_trades": self.win_trades,
            "total_pnl": self.total_pnl,
            "max_drawdown": self.max_drawdown,
            "win_rate": self.win_rate,
            "avg_pnl_per_trade": self.avg_pnl_per_trade,
        }


@dataclass
class EngineState:
    is_running: bool = False
    daily_trade_count: int = 0
    last_trade_date: Optional[date] = None
    performance: PerformanceCounters = field(default_factory=PerformanceCounters)

    def roll_date(self, today: date) -> bool:
        """Reset the daily counter when ``today`` differs from the tracked date.

        Returns ``True`` when a reset happened.
        """

        if self.last_trade_date == today:
            return False
        previous = self.last_trade_date
        self.last_trade_date = today
        if previous is None:
            return False
        logger.info(
            "Resetting daily trade count",
            extra={"previous_date": previous.isoformat(), "date": today.isoformat(), "count": self.daily_trade_count},
        )
        self.daily_trade_count = 0
        return True

    def to_payload(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "daily_trade_count": self.daily_trade_count,
            "last_trade_date": self.last_trade_date.isoformat() if self.last_trade_date else None,
            "performance": self.performance.to_payload(),
        }


__all__ = ["EngineState", "PerformanceCounters"]
