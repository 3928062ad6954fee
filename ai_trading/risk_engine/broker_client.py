"""Adapter that bounds broker calls with timeouts and records latency and errors."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional, Protocol

from ai_trading.domain.models import (
    AccountSnapshot,
    OrderMethod,
    OrderResult,
    OrderSide,
    OrderStatus,
    PriceQuote,
)
from ai_trading.errors import AuthenticationFailure, DataUnavailable, OrderRejected
from services.telemetry import Telemetry

from .metrics import MetricRegistry, Timer

logger = logging.getLogger(__name__)

SERVICE_NAME = "broker"


class Broker(Protocol):
    """Brokerage collaborator. Token refresh is the implementation's concern."""

    async def get_account_balance(self) -> AccountSnapshot:
        ...

    async def get_real_time_price(self, symbol: str) -> PriceQuote:
        ...

    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        method: OrderMethod,
        quantity: float,
        price: Optional[float] = None,
    ) -> OrderResult:
        ...


class BrokerClientAdapter:
    """Thin wrapper translating collaborator failures into engine errors.

    Reads run under the telemetry retry policy. Orders are submitted exactly
    once: a timed out acknowledgement is reported as a rejection, never resent.
    """

    def __init__(
        self,
        broker: Broker,
        *,
        telemetry: Optional[Telemetry] = None,
        metrics: Optional[MetricRegistry] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._broker = broker
        self._telemetry = telemetry or Telemetry()
        self._metrics = metrics or MetricRegistry()
        self.timeout = timeout

    @property
    def broker(self) -> Broker:
        return self._broker

    async def get_account_balance(self) -> AccountSnapshot:
        with Timer(self._metrics, "broker_api_latency_seconds", labels={"op": "get_account_balance"}):
            try:
                return await self._telemetry.execute_with_resilience(
                    SERVICE_NAME,
                    "get_account_balance",
                    self._broker.get_account_balance,
                    timeout=self.timeout,
                    non_retryable=(AuthenticationFailure,),
                )
            except AuthenticationFailure:
                self._count_error("get_account_balance", "auth")
                raise
            except Exception as exc:
                self._count_error("get_account_balance", _error_code(exc))
                logger.error(
                    "Failed to fetch account balance",
                    extra={"op": "get_account_balance", "error": _describe(exc)},
                    exc_info=True,
                )
                raise DataUnavailable(f"Account balance unavailable: {_describe(exc)}") from exc

    async def get_real_time_price(self, symbol: str) -> PriceQuote:
        with Timer(self._metrics, "broker_api_latency_seconds", labels={"op": "get_real_time_price"}):
            try:
                return await self._telemetry.execute_with_resilience(
                    SERVICE_NAME,
                    "get_real_time_price",
                    lambda: self._broker.get_real_time_price(symbol),
                    timeout=self.timeout,
                    non_retryable=(AuthenticationFailure,),
                    circuit_key=f"{SERVICE_NAME}:{symbol}",
                )
            except AuthenticationFailure:
                self._count_error("get_real_time_price", "auth")
                raise
            except Exception as exc:
                self._count_error("get_real_time_price", _error_code(exc))
                logger.warning(
                    "Failed to fetch quote",
                    extra={"symbol": symbol, "op": "get_real_time_price", "error": _describe(exc)},
                )
                raise DataUnavailable(f"Quote for {symbol} unavailable: {_describe(exc)}") from exc

    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        method: OrderMethod,
        quantity: float,
        price: Optional[float] = None,
        *,
        bypass_circuit: bool = False,
    ) -> OrderResult:
        labels = {"op": "place_order", "side": side.value}
        with Timer(self._metrics, "broker_api_latency_seconds", labels=labels):
            try:
                result = await self._telemetry.execute_with_resilience(
                    SERVICE_NAME,
                    "place_order",
                    lambda: self._broker.place_order(symbol, side, method, quantity, price),
                    retries=0,
                    timeout=self.timeout,
                    expected_errors=(OrderRejected,),
                    bypass_circuit=bypass_circuit,
                )
            except OrderRejected as exc:
                self._count_error("place_order", exc.code or "rejected")
                raise
            except Exception as exc:
                code = _error_code(exc)
                self._count_error("place_order", code)
                logger.error(
                    "Broker order failed",
                    extra={"symbol": symbol, "side": side.value, "quantity": quantity, "error_code": code, "error": _describe(exc)},
                )
                raise OrderRejected(_describe(exc), symbol=symbol, code=code) from exc
        if result.status is OrderStatus.REJECTED:
            self._count_error("place_order", "rejected")
            raise OrderRejected(f"Order {result.order_id} rejected by broker", symbol=symbol, code="rejected")
        self._metrics.inc("orders_submitted_total", labels={"side": side.value})
        logger.info(
            "Order submitted",
            extra={
                "symbol": symbol,
                "side": side.value,
                "quantity": quantity,
                "order_id": result.order_id,
                "status": result.status.value,
            },
        )
        return result

    def _count_error(self, op: str, code: str) -> None:
        self._metrics.inc("broker_api_errors_total", labels={"op": op, "code": code})

    def for_emergency(self) -> "EmergencyBroker":
        return EmergencyBroker(self)


class EmergencyBroker:
    """Adapter view for liquidation orders, which go out even while the circuit is open."""

    def __init__(self, adapter: BrokerClientAdapter) -> None:
        self._adapter = adapter

    async def get_account_balance(self) -> AccountSnapshot:
        return await self._adapter.get_account_balance()

    async def get_real_time_price(self, symbol: str) -> PriceQuote:
        return await self._adapter.get_real_time_price(symbol)

    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        method: OrderMethod,
        quantity: float,
        price: Optional[float] = None,
    ) -> OrderResult:
        return await self._adapter.place_order(symbol, side, method, quantity, price, bypass_circuit=True)


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "request timed out"
    return str(exc) or exc.__class__.__name__


def _error_code(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "timeout"
    code = getattr(exc, "code", None)
    if isinstance(code, (int, str)) and str(code):
        return str(code)
    return "unknown"


__all__ = ["Broker", "BrokerClientAdapter", "EmergencyBroker"]
