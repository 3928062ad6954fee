"""HTTP contract tests for the engine control surface."""

from __future__ import annotations

import random

import pytest

pytest.importorskip("fastapi")
pytest.importorskip("httpx")

from fastapi.testclient import TestClient  # noqa: E402

from ai_trading.config.models import RiskLimits, TradingConfiguration  # noqa: E402
from ai_trading.domain.models import (  # noqa: E402
    AccountSnapshot,
    MarketAnalysis,
    OrderResult,
    OrderStatus,
    Prediction,
    PriceQuote,
)
from ai_trading.errors import AuthenticationFailure  # noqa: E402
from ai_trading.risk_engine.risk_metrics import RiskMetricsEngine  # noqa: E402
from ai_trading.trading.engine import TradingDecisionEngine  # noqa: E402
from ai_trading.web import create_app  # noqa: E402
from services.telemetry import ResiliencePolicy  # noqa: E402


class DummyBroker:
    def __init__(self) -> None:
        self.auth_error = False

    async def get_account_balance(self):
        if self.auth_error:
            raise AuthenticationFailure("token expired")
        return AccountSnapshot(total_assets=1_000_000, cash_balance=1_000_000, stock_value=0)

    async def get_real_time_price(self, symbol):
        return PriceQuote(symbol=symbol, price=1000.0, volume=10_000)

    async def place_order(self, symbol, side, method, quantity, price=None):
        return OrderResult(order_id="1", status=OrderStatus.FILLED, executed_qty=quantity, executed_price=1000.0)


class DummySignals:
    async def get_market_analysis(self):
        return MarketAnalysis()

    async def predict_price(self, symbol, horizon):
        return Prediction(prediction=0.02, confidence=0.9, target_price=1020.0)


async def _no_sleep(_seconds) -> None:
    return None


def _client(broker=None):
    config = TradingConfiguration(
        risk_limits=RiskLimits(max_daily_loss=5.0),
        target_symbols=["005930"],
        resilience=ResiliencePolicy(max_retries=0),
    )
    engine = TradingDecisionEngine(
        broker or DummyBroker(),
        DummySignals(),
        config,
        risk_engine=RiskMetricsEngine(simulations=200, rng=random.Random(2)),
        sleep=_no_sleep,
    )
    return TestClient(create_app(engine)), engine


def test_engine_lifecycle_and_rebalance() -> None:
    client, engine = _client()

    assert client.post("/api/engine/rebalance").status_code == 409

    response = client.post("/api/engine/start")
    assert response.status_code == 200
    assert response.json() == {"is_running": True, "monitoring": False}
    assert client.post("/api/engine/start").status_code == 409

    response = client.post("/api/engine/rebalance")
    assert response.status_code == 200
    (result,) = response.json()["results"]
    assert result["executed"] is True
    assert result["decision"]["symbol"] == "005930"
    assert result["order"]["executed_qty"] == 90

    trades = client.get("/api/trades", params={"limit": 10}).json()["trades"]
    assert len(trades) == 1
    assert client.get("/api/performance").json()["total_trades"] == 1

    assert client.post("/api/engine/stop").json()["is_running"] is False
    assert not engine.state.is_running


def test_start_reports_authentication_failure() -> None:
    broker = DummyBroker()
    broker.auth_error = True
    client, _ = _client(broker)

    response = client.post("/api/engine/start")

    assert response.status_code == 503


def test_configuration_patch() -> None:
    client, engine = _client()

    response = client.patch("/api/configuration", json={"max_trades_per_day": 3})
    assert response.status_code == 200
    assert response.json()["max_trades_per_day"] == 3
    assert response.json()["confidence_threshold"] == 0.75
    assert engine.config.max_trades_per_day == 3

    assert client.patch("/api/configuration", json={"bogus": 1}).status_code == 422
    assert client.patch("/api/configuration", json=[1, 2]).status_code == 422
    assert (
        client.patch(
            "/api/configuration", content=b"{oops", headers={"content-type": "application/json"}
        ).status_code
        == 400
    )
    assert client.get("/api/configuration").json()["max_trades_per_day"] == 3


def test_risk_endpoints() -> None:
    client, _ = _client()

    assert client.get("/api/risk/snapshot").status_code == 404
    assert "No risk metrics" in client.get("/api/risk/report").text

    client.post("/api/engine/start")
    client.post("/api/engine/rebalance")

    snapshot = client.get("/api/risk/snapshot").json()
    assert [breaker["name"] for breaker in snapshot["breakers"]] == [
        "Emergency VaR Breaker",
        "Drawdown Breaker",
        "Leverage Breaker",
    ]
    report = client.get("/api/risk/report")
    assert report.headers["content-type"].startswith("text/plain")
    assert "Circuit breakers" in report.text


def test_health_endpoint() -> None:
    client, _ = _client()
    client.post("/api/engine/start")

    payload = client.get("/health").json()

    assert payload["engine"]["is_running"] is True
    assert payload["services"]["broker"]["status"] == "healthy"
