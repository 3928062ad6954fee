"""Broker implementation backed by ccxt asynchronous exchanges."""

from __future__ import annotations

import inspect
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, MutableMapping, Optional

import ccxt.async_support as ccxt_async
from ccxt.base.errors import AuthenticationError, BaseError, InsufficientFunds, InvalidOrder, NetworkError

from ai_trading.domain.models import (
    AccountSnapshot,
    OrderMethod,
    OrderResult,
    OrderSide,
    OrderStatus,
    Position,
    PriceQuote,
    utc_timestamp,
)
from ai_trading.errors import AuthenticationFailure, DataUnavailable, OrderRejected

logger = logging.getLogger(__name__)

_ORDER_STATUS = {
    "open": OrderStatus.PENDING,
    "closed": OrderStatus.FILLED,
    "canceled": OrderStatus.CANCELLED,
    "cancelled": OrderStatus.CANCELLED,
    "expired": OrderStatus.CANCELLED,
    "rejected": OrderStatus.REJECTED,
}


@dataclass
class BrokerAccountConfig:
    """Connection details for a single brokerage account."""

    name: str
    exchange: str
    credentials: Mapping[str, Any] = field(default_factory=dict)
    quote_currency: str = "KRW"
    # Entry prices for holdings acquired outside this process, keyed by symbol.
    cost_basis: Mapping[str, float] = field(default_factory=dict)
    min_balance: float = 0.0


def _coerce_float(value: Any, fallback: float = 0.0) -> float:
    if value in (None, ""):
        return fallback
    try:
        return float(value)
    except (TypeError, ValueError):
        return fallback


def _iso_timestamp(milliseconds: Any) -> str:
    if isinstance(milliseconds, (int, float)) and milliseconds > 0:
        return datetime.fromtimestamp(milliseconds / 1000, tz=timezone.utc).isoformat()
    return utc_timestamp()


def _instantiate_ccxt_client(exchange_id: str, credentials: Mapping[str, Any]) -> Any:
    try:
        exchange_class = getattr(ccxt_async, exchange_id.strip().lower())
    except AttributeError as exc:
        raise ValueError(f"Exchange '{exchange_id}' is not supported by ccxt.") from exc
    params: MutableMapping[str, Any] = dict(credentials)
    params.setdefault("enableRateLimit", True)
    return exchange_class(params)


class CCXTBroker:
    """Broker collaborator mapping balances, tickers and orders onto ccxt."""

    def __init__(self, config: BrokerAccountConfig, *, client: Any = None) -> None:
        self.config = config
        self.client = client if client is not None else _instantiate_ccxt_client(config.exchange, config.credentials)
        self._cost_basis: Dict[str, float] = {str(key): float(value) for key, value in config.cost_basis.items()}
        self._held_quantity: Dict[str, float] = {}

    def market_symbol(self, symbol: str) -> str:
        if "/" in symbol:
            return symbol
        return f"{symbol}/{self.config.quote_currency}"

    def _translate_ccxt_error(self, error: BaseError, *, symbol: Optional[str] = None) -> Exception:
        message = f"[{self.config.name}] {error}"
        if isinstance(error, AuthenticationError):
            return AuthenticationFailure(message)
        if isinstance(error, (InsufficientFunds, InvalidOrder)):
            return OrderRejected(message, symbol=symbol, code=error.__class__.__name__)
        return DataUnavailable(message)

    async def get_account_balance(self) -> AccountSnapshot:
        try:
            payload = await self.client.fetch_balance()
        except BaseError as exc:
            raise self._translate_ccxt_error(exc)

        totals = payload.get("total") or {}
        quote = self.config.quote_currency
        cash = _coerce_float(totals.get(quote))
        positions: List[Position] = []
        for currency, amount in totals.items():
            quantity = _coerce_float(amount)
            if currency == quote or quantity <= self.config.min_balance:
                continue
            try:
                quote_data = await self.get_real_time_price(currency)
            except DataUnavailable as exc:
                # Connectivity failures abort the snapshot; unlisted or unpriced assets are left out.
                if isinstance(exc.__cause__, NetworkError):
                    raise
                logger.warning("[%s] Skipping %s holding without a market price: %s", self.config.name, currency, exc)
                continue
            positions.append(self._build_position(currency, quantity, quote_data.price))
            self._held_quantity[currency] = quantity

        stock_value = sum(position.evaluation_amount for position in positions)
        snapshot = AccountSnapshot(
            total_assets=cash + stock_value,
            cash_balance=cash,
            stock_value=stock_value,
            positions=tuple(positions),
        )
        logger.debug(
            "[%s] Account balance fetched: total=%s cash=%s positions=%s",
            self.config.name,
            snapshot.total_assets,
            snapshot.cash_balance,
            len(snapshot.positions),
        )
        return snapshot

    def _build_position(self, symbol: str, quantity: float, price: float) -> Position:
        avg_price = self._cost_basis.get(symbol, price)
        evaluation = quantity * price
        profit_loss = (price - avg_price) * quantity
        rate = (price - avg_price) / avg_price if avg_price > 0 else 0.0
        return Position(
            symbol=symbol,
            quantity=quantity,
            avg_price=avg_price,
            current_price=price,
            evaluation_amount=evaluation,
            profit_loss=profit_loss,
            profit_loss_rate=rate,
        )

    async def get_real_time_price(self, symbol: str) -> PriceQuote:
        try:
            ticker = await self.client.fetch_ticker(self.market_symbol(symbol))
        except BaseError as exc:
            raise self._translate_ccxt_error(exc, symbol=symbol) from exc
        price = _coerce_float(ticker.get("last"), fallback=_coerce_float(ticker.get("close")))
        if price <= 0:
            raise DataUnavailable(f"[{self.config.name}] No price available for {symbol}")
        percentage = ticker.get("percentage")
        return PriceQuote(
            symbol=symbol,
            price=price,
            change=_coerce_float(ticker.get("change")),
            volume=_coerce_float(ticker.get("baseVolume")),
            timestamp=_iso_timestamp(ticker.get("timestamp")),
            change_rate=_coerce_float(percentage) / 100 if percentage is not None else None,
            high=ticker.get("high"),
            low=ticker.get("low"),
        )

    async def place_order(
        self,
        symbol: str,
        side: OrderSide,
        method: OrderMethod,
        quantity: float,
        price: Optional[float] = None,
    ) -> OrderResult:
        if method is OrderMethod.LIMIT and price is None:
            raise OrderRejected("Limit orders require a price", symbol=symbol, code="missing_price")
        try:
            order = await self.client.create_order(
                self.market_symbol(symbol), method.value, side.value, quantity, price
            )
        except BaseError as exc:
            raise self._translate_ccxt_error(exc, symbol=symbol)

        executed_qty = _coerce_float(order.get("filled"))
        executed_price = _coerce_float(order.get("average"), fallback=_coerce_float(order.get("price"), price or 0.0))
        fee = _coerce_float((order.get("fee") or {}).get("cost"))
        result = OrderResult(
            order_id=str(order.get("id", "")),
            status=_ORDER_STATUS.get(str(order.get("status", "")).lower(), OrderStatus.PENDING),
            executed_qty=executed_qty,
            executed_price=executed_price,
            timestamp=_iso_timestamp(order.get("timestamp")),
            fee=fee,
        )
        if side is OrderSide.BUY and executed_qty > 0:
            self._record_buy(symbol, executed_qty, executed_price, fee)
        elif side is OrderSide.SELL and executed_qty > 0:
            remaining = self._held_quantity.get(symbol, 0.0) - executed_qty
            self._held_quantity[symbol] = max(remaining, 0.0)
        return result

    def _record_buy(self, symbol: str, quantity: float, price: float, fee: float) -> None:
        """Blend a buy fill into the running average entry price.

        Assumes the fill has not yet been reflected in the account balance.
        """

        previous = self._cost_basis.get(symbol)
        held = self._held_quantity.get(symbol, 0.0) if previous is not None else 0.0
        total_quantity = held + quantity
        cost = (previous or 0.0) * held + price * quantity + fee
        self._cost_basis[symbol] = cost / total_quantity
        self._held_quantity[symbol] = total_quantity

    async def close(self) -> None:
        closer = getattr(self.client, "close", None)
        if closer is None:
            return
        try:
            result = closer()
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.debug("[%s] Failed to close client cleanly", self.config.name, exc_info=True)


__all__ = ["BrokerAccountConfig", "CCXTBroker"]
