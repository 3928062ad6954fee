"""Lightweight orchestrator bridging the decision engine and the HTTP layer."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional

from ai_trading.trading.engine import TradingDecisionEngine

logger = logging.getLogger(__name__)


class EngineController:
    """Serialise engine operations into JSON-ready payloads.

    When auto trading is enabled, ``start`` also launches the monitoring loop as
    a background task. The loop exits on its own after ``stop``.
    """

    def __init__(self, engine: TradingDecisionEngine) -> None:
        self.engine = engine
        self._monitor_task: Optional[asyncio.Task] = None

    async def start(self) -> Dict[str, Any]:
        await self.engine.start()
        if self.engine.config.enable_auto_trading and (self._monitor_task is None or self._monitor_task.done()):
            self._monitor_task = asyncio.create_task(self.engine.monitor_forever())
            logger.info("Monitoring loop scheduled", extra={"interval": self.engine.config.monitoring_interval_seconds})
        return self.status()

    def stop(self) -> Dict[str, Any]:
        self.engine.stop()
        return self.status()

    def status(self) -> Dict[str, Any]:
        return {
            "is_running": self.engine.state.is_running,
            "monitoring": bool(self._monitor_task and not self._monitor_task.done()),
        }

    async def rebalance(self) -> List[Dict[str, Any]]:
        results = await self.engine.execute_rebalancing()
        return [result.to_payload() for result in results]

    async def protective_sweep(self) -> List[Dict[str, Any]]:
        results = await self.engine.check_stop_loss_and_take_profit()
        return [result.to_payload() for result in results]

    def performance(self) -> Dict[str, Any]:
        return self.engine.get_performance_metrics()

    def configuration(self) -> Dict[str, Any]:
        return self.engine.config.to_payload()

    def update_configuration(self, partial: Mapping[str, Any]) -> Dict[str, Any]:
        return self.engine.update_configuration(partial).to_payload()

    def risk_report(self) -> str:
        return self.engine.generate_risk_report()

    def risk_snapshot(self) -> Optional[Dict[str, Any]]:
        cycle = self.engine.last_risk_cycle
        return cycle.to_payload() if cycle else None

    def trade_history(self, limit: int = 50) -> List[Dict[str, Any]]:
        return [result.to_payload() for result in self.engine.trade_history[-limit:]]

    def health(self) -> Dict[str, Any]:
        return self.engine.health()


__all__ = ["EngineController"]
