"""HTTP client for a remote AI signal service."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

import httpx

from ai_trading.domain.models import MarketAnalysis, MarketSentiment, Prediction
from ai_trading.errors import AuthenticationFailure, DataUnavailable

logger = logging.getLogger(__name__)


class HttpSignalService:
    """Fetch market analysis and price predictions over HTTP.

    Expected endpoints, relative to ``base_url``:
    ``GET /market/analysis`` returning ``{"sentiment", "top_picks"}`` and
    ``GET /predictions/{symbol}?horizon=1d`` returning
    ``{"prediction", "confidence", "target_price"}``.
    """

    def __init__(
        self,
        base_url: str,
        *,
        api_key: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        headers = {"Authorization": f"Bearer {api_key}"} if api_key else {}
        self._client = client or httpx.AsyncClient(base_url=base_url.rstrip("/"), headers=headers, timeout=timeout)

    async def _get(self, path: str, params: Optional[Mapping[str, Any]] = None) -> Mapping[str, Any]:
        try:
            response = await self._client.get(path, params=params)
        except httpx.TimeoutException as exc:
            raise DataUnavailable(f"AI service timed out on {path}") from exc
        except httpx.RequestError as exc:
            raise DataUnavailable(f"AI service request failed on {path}: {exc}") from exc
        if response.status_code in (401, 403):
            raise AuthenticationFailure(f"AI service rejected credentials ({response.status_code})")
        if response.status_code != 200:
            raise DataUnavailable(f"AI service returned {response.status_code} for {path}")
        payload = response.json()
        if not isinstance(payload, Mapping):
            raise DataUnavailable(f"AI service returned a malformed payload for {path}")
        return payload

    async def get_market_analysis(self) -> MarketAnalysis:
        payload = await self._get("/market/analysis")
        picks = payload.get("top_picks") or ()
        return MarketAnalysis(
            sentiment=MarketSentiment(str(payload.get("sentiment", "neutral"))),
            top_picks=tuple(str(symbol) for symbol in picks),
        )

    async def predict_price(self, symbol: str, horizon: str) -> Prediction:
        payload = await self._get(f"/predictions/{symbol}", params={"horizon": horizon})
        try:
            return Prediction(
                prediction=float(payload["prediction"]),
                confidence=float(payload["confidence"]),
                target_price=float(payload["target_price"]),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DataUnavailable(f"Malformed prediction for {symbol}: {exc}") from exc

    async def close(self) -> None:
        await self._client.aclose()


__all__ = ["HttpSignalService"]
