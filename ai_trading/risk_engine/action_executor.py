"""Side-effectful mitigation of triggered circuit breakers."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, Sequence

from ai_trading.config.models import EmergencyConfig
from ai_trading.domain.models import (
    AccountSnapshot,
    BreakerAction,
    CircuitBreaker,
    OrderMethod,
    OrderSide,
    Position,
)

from .broker_client import Broker
from .metrics import MetricRegistry

logger = logging.getLogger(__name__)


class RunningState(Protocol):
    is_running: bool


@dataclass(frozen=True)
class EmergencyActionResult:
    breaker: str
    action: BreakerAction
    symbol: Optional[str] = None
    quantity: float = 0.0
    submitted: bool = False
    error: Optional[str] = None

    def to_payload(self) -> Dict[str, Any]:
        return {
            "breaker": self.breaker,
            "action": self.action.value,
            "symbol": self.symbol,
            "quantity": self.quantity,
            "submitted": self.submitted,
            "error": self.error,
        }


class EmergencyResponder:
    """Perform breaker actions with continue-on-error semantics and optional dry-run."""

    def __init__(self, config: Optional[EmergencyConfig] = None, *, metrics: Optional[MetricRegistry] = None) -> None:
        self.config = config or EmergencyConfig()
        self._metrics = metrics or MetricRegistry()

    async def handle_emergency(
        self,
        breakers: Sequence[CircuitBreaker],
        account: AccountSnapshot,
        broker: Broker,
        engine_state: RunningState,
    ) -> List[EmergencyActionResult]:
        results: List[EmergencyActionResult] = []
        for breaker in breakers:
            if not breaker.triggered:
                continue
            logger.critical(
                "Handling circuit breaker",
                extra={"breaker": breaker.name, "action": breaker.action.value, "current_value": breaker.current_value},
            )
            self._metrics.inc("emergency_actions_total", labels={"action": breaker.action.value})
            try:
                results.extend(await self._dispatch(breaker, account, broker, engine_state))
            except Exception as exc:
                logger.error(
                    "Emergency action failed",
                    extra={"breaker": breaker.name, "action": breaker.action.value, "error": str(exc)},
                    exc_info=True,
                )
                results.append(EmergencyActionResult(breaker=breaker.name, action=breaker.action, error=str(exc)))
        return results

    async def _dispatch(
        self,
        breaker: CircuitBreaker,
        account: AccountSnapshot,
        broker: Broker,
        engine_state: RunningState,
    ) -> List[EmergencyActionResult]:
        action = breaker.action
        if action is BreakerAction.EMERGENCY_EXIT:
            return await self._sell_all(breaker, account.positions, broker, ratio=1.0)
        if action is BreakerAction.HALT_TRADING:
            return [self._halt(breaker, engine_state)]
        if action is BreakerAction.REDUCE_POSITION:
            return await self._sell_all(breaker, account.positions, broker, ratio=self.config.reduce_ratio)
        raise ValueError(f"Unsupported breaker action: {action!r}")

    def _halt(self, breaker: CircuitBreaker, engine_state: RunningState) -> EmergencyActionResult:
        if self.config.dry_run:
            logger.warning("[DRY-RUN] Would halt trading", extra={"breaker": breaker.name})
            return EmergencyActionResult(breaker=breaker.name, action=breaker.action)
        engine_state.is_running = False
        logger.critical("Trading halted", extra={"breaker": breaker.name})
        return EmergencyActionResult(breaker=breaker.name, action=breaker.action, submitted=True)

    async def _sell_all(
        self,
        breaker: CircuitBreaker,
        positions: Sequence[Position],
        broker: Broker,
        *,
        ratio: float,
    ) -> List[EmergencyActionResult]:
        results: List[EmergencyActionResult] = []
        for position in positions:
            quantity = position.quantity if ratio >= 1.0 else math.floor(position.quantity * ratio)
            if quantity <= 0:
                continue
            if self.config.dry_run:
                logger.warning(
                    "[DRY-RUN] Would submit emergency sell",
                    extra={"breaker": breaker.name, "symbol": position.symbol, "quantity": quantity},
                )
                results.append(
                    EmergencyActionResult(
                        breaker=breaker.name, action=breaker.action, symbol=position.symbol, quantity=quantity
                    )
                )
                continue
            try:
                await broker.place_order(position.symbol, OrderSide.SELL, OrderMethod.MARKET, quantity)
            except Exception as exc:
                self._metrics.inc(
                    "emergency_order_errors_total",
                    labels={"action": breaker.action.value, "code": str(getattr(exc, "code", None) or "unknown")},
                )
                logger.error(
                    "Emergency sell failed",
                    extra={
                        "breaker": breaker.name,
                        "symbol": position.symbol,
                        "quantity": quantity,
                        "error": str(exc),
                    },
                    exc_info=True,
                )
                results.append(
                    EmergencyActionResult(
                        breaker=breaker.name,
                        action=breaker.action,
                        symbol=position.symbol,
                        quantity=quantity,
                        error=str(exc),
                    )
                )
                continue
            logger.warning(
                "Emergency sell submitted",
                extra={"breaker": breaker.name, "symbol": position.symbol, "quantity": quantity},
            )
            results.append(
                EmergencyActionResult(
                    breaker=breaker.name,
                    action=breaker.action,
                    symbol=position.symbol,
                    quantity=quantity,
                    submitted=True,
                )
            )
        return results


__all__ = ["EmergencyActionResult", "EmergencyResponder"]
