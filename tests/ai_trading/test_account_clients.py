import asyncio
from typing import Dict, Optional

import pytest

pytest.importorskip("ccxt")

from ccxt.base.errors import AuthenticationError, BadSymbol, InsufficientFunds, NetworkError  # noqa: E402

from ai_trading.account_clients import BrokerAccountConfig, CCXTBroker  # noqa: E402
from ai_trading.domain.models import OrderMethod, OrderSide, OrderStatus  # noqa: E402
from ai_trading.errors import AuthenticationFailure, DataUnavailable, OrderRejected  # noqa: E402


class StubExchange:
    def __init__(
        self,
        *,
        totals: Optional[Dict[str, float]] = None,
        tickers: Optional[Dict[str, dict]] = None,
        balance_error: Optional[Exception] = None,
        order_error: Optional[Exception] = None,
        order_payload: Optional[dict] = None,
        ticker_errors: Optional[Dict[str, Exception]] = None,
    ) -> None:
        self._ticker_errors = ticker_errors or {}
        self._totals = totals or {}
        self._tickers = tickers or {}
        self._balance_error = balance_error
        self._order_error = order_error
        self._order_payload = order_payload
        self.orders = []
        self.closed = False

    async def fetch_balance(self):
        if self._balance_error is not None:
            raise self._balance_error
        return {"total": dict(self._totals)}

    async def fetch_ticker(self, symbol):
        if symbol in self._ticker_errors:
            raise self._ticker_errors[symbol]
        if symbol not in self._tickers:
            raise NetworkError(f"no ticker for {symbol}")
        return self._tickers[symbol]

    async def create_order(self, symbol, order_type, side, amount, price=None, params=None):
        self.orders.append({"symbol": symbol, "type": order_type, "side": side, "amount": amount, "price": price})
        if self._order_error is not None:
            raise self._order_error
        payload = {"id": "abc", "status": "closed", "filled": amount, "average": 1000.0, "fee": {"cost": 5.0}}
        payload.update(self._order_payload or {})
        return payload

    async def close(self):
        self.closed = True


def _broker(exchange: StubExchange, **config) -> CCXTBroker:
    return CCXTBroker(BrokerAccountConfig(name="Demo", exchange="upbit", **config), client=exchange)


def test_account_balance_prices_holdings_with_cost_basis() -> None:
    exchange = StubExchange(
        totals={"KRW": 500_000, "BTC": 0.5, "DUST": 0.0},
        tickers={"BTC/KRW": {"last": 1_000_000, "baseVolume": 12.0, "percentage": 1.5, "timestamp": 1_700_000_000_000}},
    )
    broker = _broker(exchange, cost_basis={"BTC": 800_000})

    account = asyncio.run(broker.get_account_balance())

    assert account.cash_balance == 500_000
    assert account.stock_value == 500_000
    assert account.total_assets == 1_000_000
    (position,) = account.positions
    assert position.symbol == "BTC"
    assert position.avg_price == 800_000
    assert position.profit_loss_rate == pytest.approx(0.25)
    assert position.profit_loss == pytest.approx(100_000)


def test_unlisted_holdings_are_left_out_of_the_snapshot() -> None:
    exchange = StubExchange(
        totals={"KRW": 100_000, "BTC": 0.1, "AIRDROP": 5_000, "DELISTED": 3},
        tickers={"BTC/KRW": {"last": 1_000_000}, "DELISTED/KRW": {"last": 0}},
        ticker_errors={"AIRDROP/KRW": BadSymbol("upbit does not have market symbol AIRDROP/KRW")},
    )

    account = asyncio.run(_broker(exchange).get_account_balance())

    assert [position.symbol for position in account.positions] == ["BTC"]
    assert account.total_assets == 200_000


def test_network_failure_while_pricing_aborts_the_snapshot() -> None:
    exchange = StubExchange(
        totals={"KRW": 100_000, "BTC": 0.1},
        ticker_errors={"BTC/KRW": NetworkError("connection reset")},
    )

    with pytest.raises(DataUnavailable):
        asyncio.run(_broker(exchange).get_account_balance())


def test_quote_falls_back_to_close_and_scales_percentage() -> None:
    exchange = StubExchange(tickers={"ETH/KRW": {"last": None, "close": 3_000.0, "percentage": -2.0}})
    quote = asyncio.run(_broker(exchange).get_real_time_price("ETH"))

    assert quote.price == 3_000.0
    assert quote.change_rate == pytest.approx(-0.02)
    assert quote.volume == 0.0


def test_quote_without_price_is_unavailable() -> None:
    exchange = StubExchange(tickers={"ETH/KRW": {"last": 0}})
    with pytest.raises(DataUnavailable):
        asyncio.run(_broker(exchange).get_real_time_price("ETH"))


def test_ccxt_errors_are_translated() -> None:
    auth = StubExchange(balance_error=AuthenticationError("bad key"))
    with pytest.raises(AuthenticationFailure):
        asyncio.run(_broker(auth).get_account_balance())

    network = StubExchange(balance_error=NetworkError("offline"))
    with pytest.raises(DataUnavailable):
        asyncio.run(_broker(network).get_account_balance())

    funds = StubExchange(order_error=InsufficientFunds("not enough KRW"))
    with pytest.raises(OrderRejected) as excinfo:
        asyncio.run(_broker(funds).place_order("BTC", OrderSide.BUY, OrderMethod.MARKET, 1))
    assert excinfo.value.code == "InsufficientFunds"


def test_place_order_maps_fill_and_status() -> None:
    exchange = StubExchange()
    broker = _broker(exchange)

    result = asyncio.run(broker.place_order("BTC", OrderSide.BUY, OrderMethod.MARKET, 2))

    assert exchange.orders == [{"symbol": "BTC/KRW", "type": "market", "side": "buy", "amount": 2, "price": None}]
    assert result.status is OrderStatus.FILLED
    assert result.executed_qty == 2
    assert result.executed_price == 1000.0
    assert result.fee == 5.0


def test_open_order_is_pending() -> None:
    exchange = StubExchange(order_payload={"status": "open", "filled": 0})
    result = asyncio.run(_broker(exchange).place_order("BTC", OrderSide.SELL, OrderMethod.MARKET, 1))
    assert result.status is OrderStatus.PENDING


def test_limit_order_requires_price() -> None:
    exchange = StubExchange()
    with pytest.raises(OrderRejected):
        asyncio.run(_broker(exchange).place_order("BTC", OrderSide.BUY, OrderMethod.LIMIT, 1))
    assert exchange.orders == []


def test_buy_fills_update_cost_basis() -> None:
    exchange = StubExchange(
        totals={"KRW": 0, "BTC": 1.0},
        tickers={"BTC/KRW": {"last": 1000.0}},
        order_payload={"average": 1200.0, "fee": {"cost": 0.0}},
    )
    broker = _broker(exchange, cost_basis={"BTC": 900.0})

    asyncio.run(broker.get_account_balance())
    asyncio.run(broker.place_order("BTC", OrderSide.BUY, OrderMethod.MARKET, 1))
    account = asyncio.run(broker.get_account_balance())

    # (900 * 1 + 1200 * 1) / 2
    assert account.positions[0].avg_price == pytest.approx(1050.0)


def test_close_closes_exchange_client() -> None:
    exchange = StubExchange()
    asyncio.run(_broker(exchange).close())
    assert exchange.closed
