"""AI signal service protocol and the adapter the decision engine talks to."""

from __future__ import annotations

import asyncio
import logging
import math
from typing import Dict, Iterable, Mapping, Optional, Protocol

from ai_trading.domain.models import MarketAnalysis, MarketSentiment, Prediction
from ai_trading.errors import AuthenticationFailure, DataUnavailable
from ai_trading.risk_engine.metrics import MetricRegistry
from services.telemetry import Telemetry

logger = logging.getLogger(__name__)

SERVICE_NAME = "ai_signals"

SENTIMENT_MULTIPLIERS: Mapping[MarketSentiment, float] = {
    MarketSentiment.BULLISH: 1.2,
    MarketSentiment.NEUTRAL: 1.0,
    MarketSentiment.BEARISH: 0.8,
}


def sentiment_multiplier(sentiment: MarketSentiment) -> float:
    return SENTIMENT_MULTIPLIERS.get(sentiment, 1.0)


def _describe(exc: BaseException) -> str:
    if isinstance(exc, asyncio.TimeoutError):
        return "request timed out"
    return str(exc) or exc.__class__.__name__


def _prediction_problem(prediction: Prediction) -> Optional[str]:
    values = (prediction.prediction, prediction.confidence, prediction.target_price)
    if not all(isinstance(value, (int, float)) and math.isfinite(value) for value in values):
        return "non-finite value"
    if not 0.0 <= prediction.confidence <= 1.0:
        return "confidence outside [0, 1]"
    return None


class SignalService(Protocol):
    """Opaque AI scoring collaborator; its answers are treated as untrusted."""

    async def get_market_analysis(self) -> MarketAnalysis:
        ...

    async def predict_price(self, symbol: str, horizon: str) -> Prediction:
        ...


class SignalServiceAdapter:
    def __init__(
        self,
        service: SignalService,
        *,
        telemetry: Optional[Telemetry] = None,
        metrics: Optional[MetricRegistry] = None,
        timeout: Optional[float] = None,
    ) -> None:
        self._service = service
        self._telemetry = telemetry or Telemetry()
        self._metrics = metrics or MetricRegistry()
        self.timeout = timeout

    async def get_market_analysis(self) -> MarketAnalysis:
        """Return the market analysis or raise :class:`DataUnavailable`."""

        try:
            analysis = await self._telemetry.execute_with_resilience(
                SERVICE_NAME,
                "get_market_analysis",
                self._service.get_market_analysis,
                timeout=self.timeout,
                non_retryable=(AuthenticationFailure,),
            )
        except AuthenticationFailure:
            raise
        except Exception as exc:
            self._metrics.inc("ai_signal_errors_total", labels={"op": "get_market_analysis"})
            raise DataUnavailable(f"Market analysis unavailable: {_describe(exc)}") from exc
        if not isinstance(analysis.sentiment, MarketSentiment):
            analysis = MarketAnalysis(sentiment=MarketSentiment(analysis.sentiment), top_picks=analysis.top_picks)
        return analysis

    async def sentiment_or_neutral(self) -> MarketSentiment:
        try:
            return (await self.get_market_analysis()).sentiment
        except DataUnavailable as exc:
            logger.warning("Market analysis unavailable; assuming neutral sentiment", extra={"error": str(exc)})
            return MarketSentiment.NEUTRAL

    async def predict_price(self, symbol: str, horizon: str) -> Prediction:
        """Fetch a prediction for ``symbol``; out-of-range answers raise :class:`DataUnavailable`."""

        try:
            prediction = await self._telemetry.execute_with_resilience(
                SERVICE_NAME,
                "predict_price",
                lambda: self._service.predict_price(symbol, horizon),
                timeout=self.timeout,
                non_retryable=(AuthenticationFailure,),
                circuit_key=f"{SERVICE_NAME}:{symbol}",
            )
        except Exception as exc:
            self._metrics.inc("ai_signal_errors_total", labels={"op": "predict_price"})
            raise DataUnavailable(f"Prediction for {symbol} unavailable: {_describe(exc)}") from exc
        problem = _prediction_problem(prediction)
        if problem:
            self._metrics.inc("ai_signal_errors_total", labels={"op": "predict_price", "code": "invalid"})
            logger.warning(
                "Discarding invalid prediction",
                extra={"symbol": symbol, "problem": problem, "confidence": prediction.confidence},
            )
            raise DataUnavailable(f"Prediction for {symbol} rejected: {problem}")
        return prediction

    async def confident_predictions(
        self, symbols: Iterable[str], *, horizon: str, threshold: float
    ) -> Dict[str, Prediction]:
        """Predictions at or above ``threshold``; a failing symbol is skipped alone."""

        predictions: Dict[str, Prediction] = {}
        for symbol in symbols:
            try:
                prediction = await self.predict_price(symbol, horizon)
            except DataUnavailable as exc:
                logger.warning("Skipping symbol without prediction", extra={"symbol": symbol, "error": str(exc)})
                continue
            if prediction.confidence < threshold:
                logger.debug(
                    "Prediction below confidence threshold",
                    extra={"symbol": symbol, "confidence": prediction.confidence, "threshold": threshold},
                )
                continue
            predictions[symbol] = prediction
        return predictions


__all__ = [
    "SENTIMENT_MULTIPLIERS",
    "SignalService",
    "SignalServiceAdapter",
    "sentiment_multiplier",
]
