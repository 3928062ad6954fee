"""Running state owned by a single risk engine instance.

Nothing here is persisted: a process restart resets the drawdown baseline and
the trailing return windows.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Deque, Dict, List

from ai_trading.domain.models import DrawdownMetrics

logger = logging.getLogger(__name__)

PRICE_WINDOW = 252
VALUE_HISTORY_LIMIT = 10_000


def _price_window() -> Deque[float]:
    return deque(maxlen=PRICE_WINDOW)


@dataclass
class RiskState:
    """Peak value, drawdown counters and trailing price windows."""

    peak_value: float = 0.0
    max_drawdown: float = 0.0
    drawdown_cycles: int = 0
    value_history: Deque[float] = field(default_factory=lambda: deque(maxlen=VALUE_HISTORY_LIMIT))
    price_history: Dict[str, Deque[float]] = field(default_factory=dict)

    def record_price(self, symbol: str, price: float) -> None:
        if price is None or price <= 0:
            logger.debug("Ignoring non-positive price for %s: %r", symbol, price)
            return
        self.price_history.setdefault(symbol, _price_window()).append(float(price))

    def returns_for(self, symbol: str) -> List[float]:
        """Simple returns between successive observed prices inside the window."""

        prices = self.price_history.get(symbol)
        if not prices or len(prices) < 2:
            return []
        series = list(prices)
        return [(current - previous) / previous for previous, current in zip(series, series[1:])]

    def record_total(self, total_assets: float) -> DrawdownMetrics:
        """Fold ``total_assets`` into the running peak and return drawdown figures."""

        self.value_history.append(total_assets)
        self.peak_value = max(self.peak_value, total_assets)
        if self.peak_value > 0:
            current = (self.peak_value - total_assets) / self.peak_value
        else:
            current = 0.0
        self.max_drawdown = max(self.max_drawdown, current)
        if total_assets < self.peak_value:
            self.drawdown_cycles += 1
        else:
            self.drawdown_cycles = 0
        return DrawdownMetrics(current=current, max=self.max_drawdown, duration_cycles=self.drawdown_cycles)


__all__ = ["PRICE_WINDOW", "RiskState"]
