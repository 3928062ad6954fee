"""FastAPI control surface for the trading decision engine."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request, status
from fastapi.responses import JSONResponse, PlainTextResponse

from .api.controllers import EngineController
from .errors import (
    AuthenticationFailure,
    DataUnavailable,
    EngineAlreadyRunning,
    EngineNotRunning,
    RebalanceInProgress,
    SafetyCheckFailed,
    TradingEngineError,
)
from .trading.engine import TradingDecisionEngine

logger = logging.getLogger(__name__)

_CONFLICTS = (EngineAlreadyRunning, EngineNotRunning, RebalanceInProgress)
_UNAVAILABLE = (AuthenticationFailure, DataUnavailable, SafetyCheckFailed)
# Spelled out because starlette renamed the 422 constant across releases.
HTTP_422_UNPROCESSABLE = 422


def _to_http_error(exc: TradingEngineError) -> HTTPException:
    if isinstance(exc, _CONFLICTS):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, _UNAVAILABLE):
        return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(exc))
    logger.error("Unhandled engine error", extra={"error": str(exc)}, exc_info=True)
    return HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc))


def create_app(engine: TradingDecisionEngine, *, controller: Optional[EngineController] = None) -> FastAPI:
    app = FastAPI(title="AI Trading Engine")
    app.state.controller = controller or EngineController(engine)

    def get_controller(request: Request) -> EngineController:
        return request.app.state.controller

    @app.get("/health", response_class=JSONResponse)
    async def health(controller: EngineController = Depends(get_controller)) -> JSONResponse:
        return JSONResponse(controller.health())

    @app.post("/api/engine/start", response_class=JSONResponse)
    async def start_engine(controller: EngineController = Depends(get_controller)) -> JSONResponse:
        try:
            return JSONResponse(await controller.start())
        except TradingEngineError as exc:
            raise _to_http_error(exc) from exc

    @app.post("/api/engine/stop", response_class=JSONResponse)
    async def stop_engine(controller: EngineController = Depends(get_controller)) -> JSONResponse:
        return JSONResponse(controller.stop())

    @app.post("/api/engine/rebalance", response_class=JSONResponse)
    async def rebalance(controller: EngineController = Depends(get_controller)) -> JSONResponse:
        try:
            results = await controller.rebalance()
        except TradingEngineError as exc:
            raise _to_http_error(exc) from exc
        return JSONResponse({"results": results})

    @app.post("/api/engine/protective-sweep", response_class=JSONResponse)
    async def protective_sweep(controller: EngineController = Depends(get_controller)) -> JSONResponse:
        try:
            results = await controller.protective_sweep()
        except TradingEngineError as exc:
            raise _to_http_error(exc) from exc
        return JSONResponse({"results": results})

    @app.get("/api/performance", response_class=JSONResponse)
    async def performance(controller: EngineController = Depends(get_controller)) -> JSONResponse:
        return JSONResponse(controller.performance())

    @app.get("/api/trades", response_class=JSONResponse)
    async def trades(
        limit: int = Query(50, ge=1, le=1000),
        controller: EngineController = Depends(get_controller),
    ) -> JSONResponse:
        return JSONResponse({"trades": controller.trade_history(limit)})

    @app.get("/api/configuration", response_class=JSONResponse)
    async def get_configuration(controller: EngineController = Depends(get_controller)) -> JSONResponse:
        return JSONResponse(controller.configuration())

    @app.patch("/api/configuration", response_class=JSONResponse)
    async def patch_configuration(
        request: Request, controller: EngineController = Depends(get_controller)
    ) -> JSONResponse:
        try:
            payload: Any = await request.json()
        except Exception as exc:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON payload") from exc
        if not isinstance(payload, Mapping):
            raise HTTPException(
                status_code=HTTP_422_UNPROCESSABLE, detail="Configuration update must be an object"
            )
        try:
            updated = controller.update_configuration(payload)
        except (TypeError, ValueError) as exc:
            raise HTTPException(status_code=HTTP_422_UNPROCESSABLE, detail=str(exc)) from exc
        return JSONResponse(updated)

    @app.get("/api/risk/report", response_class=PlainTextResponse)
    async def risk_report(controller: EngineController = Depends(get_controller)) -> PlainTextResponse:
        return PlainTextResponse(controller.risk_report())

    @app.get("/api/risk/snapshot", response_class=JSONResponse)
    async def risk_snapshot(controller: EngineController = Depends(get_controller)) -> JSONResponse:
        snapshot = controller.risk_snapshot()
        if snapshot is None:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No risk cycle has run yet")
        return JSONResponse(snapshot)

    return app


__all__ = ["create_app"]
