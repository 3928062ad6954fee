"""Orchestration of the trading decision pipeline."""

from __future__ import annotations

import asyncio
import logging
import math
import random
from datetime import date
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional

from ai_trading.config.models import TradingConfiguration
from ai_trading.configuration import apply_configuration_update
from ai_trading.domain.models import (
    AccountSnapshot,
    OrderMethod,
    OrderResult,
    OrderSide,
    TradingDecision,
    TradingResult,
)
from ai_trading.errors import (
    AuthenticationFailure,
    DataUnavailable,
    EngineAlreadyRunning,
    EngineNotRunning,
    RebalanceInProgress,
    SafetyCheckFailed,
    TradingEngineError,
)
from ai_trading.reporting import generate_risk_report
from ai_trading.risk_engine.action_executor import EmergencyResponder
from ai_trading.risk_engine.broker_client import Broker, BrokerClientAdapter
from ai_trading.risk_engine.metrics import MetricRegistry
from ai_trading.risk_engine.risk_loop import RiskCycleResult, risk_cycle
from ai_trading.risk_engine.risk_metrics import RiskMetricsEngine
from ai_trading.sectors import SectorLookup, lookup_sector
from ai_trading.signals import SignalService, SignalServiceAdapter
from services.telemetry import Telemetry

from .decisions import build_decisions, filter_decisions, protective_exit
from .state import EngineState

logger = logging.getLogger(__name__)

TRADE_HISTORY_LIMIT = 1000
NO_QUANTITY = "No quantity to trade"


class TradingDecisionEngine:
    """Convert AI signals into rate-limited orders under continuous risk checks.

    All running state (drawdown peak, return windows, counters, trade history)
    belongs to this instance. Cycles never interleave: rebalancing and the
    protective sweep share one lock and a second caller is rejected rather
    than queued.
    """

    def __init__(
        self,
        broker: Broker,
        signals: SignalService,
        config: Optional[TradingConfiguration] = None,
        *,
        risk_engine: Optional[RiskMetricsEngine] = None,
        responder: Optional[EmergencyResponder] = None,
        telemetry: Optional[Telemetry] = None,
        metrics: Optional[MetricRegistry] = None,
        sector_lookup: SectorLookup = lookup_sector,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        today: Callable[[], date] = date.today,
    ) -> None:
        self.config = config or TradingConfiguration()
        self.metrics = metrics or MetricRegistry()
        self.telemetry = telemetry or Telemetry(policy=self.config.resilience)
        self.state = EngineState()
        timeout = self.config.request_timeout_seconds
        self._broker = BrokerClientAdapter(broker, telemetry=self.telemetry, metrics=self.metrics, timeout=timeout)
        self._signals = SignalServiceAdapter(signals, telemetry=self.telemetry, metrics=self.metrics, timeout=timeout)
        self.risk_engine = risk_engine or RiskMetricsEngine(
            sector_lookup=sector_lookup, rng=rng, correlated=self.config.correlated_var
        )
        self.responder = responder or EmergencyResponder(self.config.emergency, metrics=self.metrics)
        self._sleep = sleep
        self._today = today
        self._lock = asyncio.Lock()
        self.trade_history: List[TradingResult] = []
        self.last_risk_cycle: Optional[RiskCycleResult] = None

    # lifecycle -----------------------------------------------------------

    async def start(self) -> None:
        if self.state.is_running:
            raise EngineAlreadyRunning("Trading engine is already running")
        try:
            account = await self._broker.get_account_balance()
            if account.cash_ratio() < self.config.risk_limits.min_cash_ratio:
                logger.warning(
                    "Cash ratio below minimum",
                    extra={"cash_ratio": account.cash_ratio(), "min_cash_ratio": self.config.risk_limits.min_cash_ratio},
                )
            await self._signals.get_market_analysis()
        except AuthenticationFailure:
            logger.error("Start aborted: authentication failed", exc_info=True)
            raise
        except Exception as exc:
            logger.error("Start aborted: safety checks failed", extra={"error": str(exc)}, exc_info=True)
            raise SafetyCheckFailed(f"Safety checks failed: {exc}") from exc
        self.state.is_running = True
        logger.info("Trading engine started", extra={"symbols": list(self.config.target_symbols)})

    def stop(self) -> None:
        self.state.is_running = False
        logger.info("Trading engine stopped")

    # rebalancing ---------------------------------------------------------

    async def execute_rebalancing(self) -> List[TradingResult]:
        if not self.state.is_running:
            raise EngineNotRunning("Trading engine is not running")
        if self._lock.locked():
            raise RebalanceInProgress("A trading batch is already executing")
        async with self._lock:
            return await self._rebalance(self.config)

    async def _rebalance(self, config: TradingConfiguration) -> List[TradingResult]:
        account = await self._broker.get_account_balance()
        cycle = await self.run_risk_cycle(account, config)
        if cycle.triggered:
            logger.warning(
                "Rebalancing skipped after circuit breaker",
                extra={"breakers": [breaker.name for breaker in cycle.triggered]},
            )
            return []

        sentiment = await self._signals.sentiment_or_neutral()
        predictions = await self._signals.confident_predictions(
            config.target_symbols, horizon=config.prediction_horizon, threshold=config.confidence_threshold
        )
        decisions = build_decisions(account, predictions, sentiment, config)
        outcome = filter_decisions(decisions, self.state, config, today=self._today())
        for breach in outcome.dropped:
            self.metrics.inc("decisions_filtered_total", labels={"symbol": breach.symbol})
        logger.info(
            "Rebalancing decisions prepared",
            extra={
                "sentiment": sentiment.value,
                "predictions": len(predictions),
                "decisions": len(decisions),
                "accepted": len(outcome.accepted),
            },
        )
        return await self._execute_batch(outcome.accepted, account, config, count_toward_quota=True)

    async def run_risk_cycle(
        self, account: AccountSnapshot, config: Optional[TradingConfiguration] = None
    ) -> RiskCycleResult:
        config = config or self.config
        self.risk_engine.correlated = config.correlated_var
        cycle = await risk_cycle(
            account,
            self._broker,
            self.risk_engine,
            config.risk_limits,
            self.responder,
            self.state,
            metrics=self.metrics,
            emergency_broker=self._broker.for_emergency(),
        )
        performance = self.state.performance
        performance.max_drawdown = max(performance.max_drawdown, cycle.metrics.drawdown.max)
        self.last_risk_cycle = cycle
        return cycle

    async def _execute_batch(
        self,
        decisions: List[TradingDecision],
        account: AccountSnapshot,
        config: TradingConfiguration,
        *,
        count_toward_quota: bool,
    ) -> List[TradingResult]:
        results: List[TradingResult] = []
        for index, decision in enumerate(decisions):
            if index:
                await self._sleep(config.trade_delay_seconds)
            result = await self._execute_decision(decision, account)
            if result.executed:
                self._record_execution(result, account, count_toward_quota=count_toward_quota)
            results.append(result)
        self.trade_history.extend(results)
        del self.trade_history[:-TRADE_HISTORY_LIMIT]
        return results

    async def _execute_decision(self, decision: TradingDecision, account: AccountSnapshot) -> TradingResult:
        symbol = decision.symbol
        try:
            quote = await self._broker.get_real_time_price(symbol)
            if quote.price <= 0:
                raise DataUnavailable(f"Invalid price for {symbol}: {quote.price}")
            if decision.forced_quantity is not None:
                quantity = math.floor(decision.forced_quantity)
            else:
                position = account.position_for(symbol)
                current_amount = position.evaluation_amount if position else 0.0
                delta = account.total_assets * decision.target_weight - current_amount
                quantity = math.floor(abs(delta) / quote.price)
            if quantity <= 0:
                logger.info("Skipping decision without quantity", extra={"symbol": symbol})
                return TradingResult(decision=decision, executed=False, error_message=NO_QUANTITY)
            order = await self._broker.place_order(symbol, decision.action, OrderMethod.MARKET, quantity)
        except Exception as exc:
            self.metrics.inc("trade_failures_total", labels={"symbol": symbol, "action": decision.action.value})
            logger.error(
                "Trade execution failed",
                extra={"symbol": symbol, "action": decision.action.value, "error": str(exc)},
                exc_info=not isinstance(exc, TradingEngineError),
            )
            return TradingResult(decision=decision, executed=False, error_message=str(exc) or exc.__class__.__name__)
        logger.info(
            "Trade executed",
            extra={
                "symbol": symbol,
                "action": decision.action.value,
                "quantity": order.executed_qty,
                "price": order.executed_price,
                "order_id": order.order_id,
            },
        )
        return TradingResult(decision=decision, executed=True, order=order)

    def _record_execution(self, result: TradingResult, account: AccountSnapshot, *, count_toward_quota: bool) -> None:
        if count_toward_quota:
            self.state.daily_trade_count += 1
        self.state.performance.record_trade(self._realised_pnl(result.decision, result.order, account))
        self.metrics.inc("trades_executed_total", labels={"action": result.decision.action.value})

    @staticmethod
    def _realised_pnl(decision: TradingDecision, order: Optional[OrderResult], account: AccountSnapshot) -> float:
        if order is None or decision.action is not OrderSide.SELL:
            return 0.0
        position = account.position_for(decision.symbol)
        if position is None:
            return 0.0
        return (order.executed_price - position.avg_price) * order.executed_qty - order.fee

    # protective exits ----------------------------------------------------

    async def check_stop_loss_and_take_profit(self) -> List[TradingResult]:
        """Force sells for positions beyond stop-loss or take-profit levels.

        These exits skip the confidence, risk score and daily quota filters and
        are not counted toward the daily trade count.
        """

        if self._lock.locked():
            raise RebalanceInProgress("A trading batch is already executing")
        async with self._lock:
            config = self.config
            account = await self._broker.get_account_balance()
            decisions = [
                decision
                for decision in (protective_exit(position, account) for position in account.positions)
                if decision is not None
            ]
            if decisions:
                logger.warning(
                    "Protective exits triggered",
                    extra={"symbols": [decision.symbol for decision in decisions]},
                )
            return await self._execute_batch(decisions, account, config, count_toward_quota=False)

    # monitoring ----------------------------------------------------------

    async def run_monitoring_cycle(self) -> List[TradingResult]:
        results: List[TradingResult] = []
        try:
            results.extend(await self.check_stop_loss_and_take_profit())
        except TradingEngineError as exc:
            logger.error("Protective sweep failed", extra={"error": str(exc)})
        if self.state.is_running and self.config.enable_auto_trading:
            try:
                results.extend(await self.execute_rebalancing())
            except TradingEngineError as exc:
                logger.error("Scheduled rebalancing failed", extra={"error": str(exc)})
        return results

    async def monitor_forever(self) -> None:
        while self.state.is_running:
            await self.run_monitoring_cycle()
            await self._sleep(self.config.monitoring_interval_seconds)

    # reporting and configuration ----------------------------------------

    def get_performance_metrics(self) -> Dict[str, Any]:
        payload = self.state.performance.to_payload()
        payload["daily_trade_count"] = self.state.daily_trade_count
        payload["is_running"] = self.state.is_running
        return payload

    def update_configuration(self, partial: Mapping[str, Any]) -> TradingConfiguration:
        """Merge ``partial`` into the live configuration; in-flight cycles keep the old one."""

        config = apply_configuration_update(self.config, partial)
        self.config = config
        self._broker.timeout = config.request_timeout_seconds
        self._signals.timeout = config.request_timeout_seconds
        self.telemetry.policy = config.resilience
        self.responder.config = config.emergency
        logger.info("Configuration updated", extra={"fields": sorted(partial)})
        return config

    def generate_risk_report(self) -> str:
        return generate_risk_report(self.last_risk_cycle)

    def health(self) -> Dict[str, Any]:
        snapshot = self.telemetry.health_snapshot()
        snapshot["engine"] = self.state.to_payload()
        snapshot["metrics"] = self.metrics.snapshot()
        return snapshot


__all__ = ["TradingDecisionEngine"]
