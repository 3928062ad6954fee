"""Portfolio risk snapshot: VaR, leverage, concentration, liquidity, correlation, drawdown."""

from __future__ import annotations

import logging
import random
from collections import defaultdict
from typing import Dict, List, Mapping, Optional

from ai_trading.domain.models import (
    AccountSnapshot,
    ConcentrationMetrics,
    CorrelationMetrics,
    LiquidityMetrics,
    PriceQuote,
    RiskMetrics,
)
from ai_trading.sectors import SectorLookup, lookup_sector

from .simulation import (
    NUM_SIMULATIONS,
    SimulatedAsset,
    VaRResult,
    cholesky,
    correlation_matrix,
    return_stats,
    simulate_var,
)
from .state_store import RiskState

logger = logging.getLogger(__name__)

TOP_POSITIONS = 5
IMPACT_FREE_VOLUME_SHARE = 0.05
IMPACT_SLOPE = 0.1


class RiskMetricsEngine:
    """Compute :class:`RiskMetrics` for an account snapshot.

    The engine owns a :class:`RiskState` holding the running peak and trailing
    price windows, so one instance must only ever serve one decision engine.
    """

    def __init__(
        self,
        *,
        state: Optional[RiskState] = None,
        sector_lookup: SectorLookup = lookup_sector,
        rng: Optional[random.Random] = None,
        simulations: int = NUM_SIMULATIONS,
        correlated: bool = True,
    ) -> None:
        self.state = state or RiskState()
        self._sector_lookup = sector_lookup
        self._rng = rng or random.Random()
        self._simulations = simulations
        self.correlated = correlated
        self.latest: Optional[RiskMetrics] = None

    def record_price(self, quote: PriceQuote) -> None:
        self.state.record_price(quote.symbol, quote.price)

    def calculate(self, account: AccountSnapshot, quotes: Mapping[str, PriceQuote]) -> RiskMetrics:
        correlation = self.correlation(account)
        metrics = RiskMetrics(
            **self._var_fields(self.value_at_risk(account, quotes, correlation)),
            leverage=self.leverage(account),
            concentration=self.concentration(account),
            liquidity=self.liquidity(account, quotes),
            correlation=correlation,
            drawdown=self.state.record_total(account.total_assets),
        )
        self.latest = metrics
        logger.info(
            "Calculated risk metrics",
            extra={
                "var95": round(metrics.var95, 2),
                "var99": round(metrics.var99, 2),
                "leverage": round(metrics.leverage, 4),
                "max_single_position": round(metrics.concentration.max_single_position, 4),
                "liquidity_ratio": round(metrics.liquidity.ratio, 4),
                "drawdown": round(metrics.drawdown.current, 4),
            },
        )
        return metrics

    @staticmethod
    def _var_fields(result: VaRResult) -> Dict[str, float]:
        return {
            "var95": result.var95,
            "var99": result.var99,
            "expected_shortfall": result.expected_shortfall,
        }

    def value_at_risk(
        self,
        account: AccountSnapshot,
        quotes: Mapping[str, PriceQuote],
        correlation: Optional[CorrelationMetrics] = None,
    ) -> VaRResult:
        assets: List[SimulatedAsset] = []
        for position in account.positions:
            quote = quotes.get(position.symbol)
            price = quote.price if quote is not None else position.current_price
            assets.append(
                SimulatedAsset(
                    quantity=position.quantity,
                    price=price,
                    stats=return_stats(self.state.returns_for(position.symbol)),
                )
            )
        if not assets:
            return VaRResult(0.0, 0.0, 0.0)

        factor = None
        if self.correlated and len(assets) > 1:
            correlation = correlation or self.correlation(account)
            factor = cholesky(correlation.matrix)
            if factor is None:
                logger.warning(
                    "Correlation matrix is not positive definite; sampling assets independently",
                    extra={"symbols": list(correlation.symbols)},
                )
        result, _ = simulate_var(
            assets,
            account.cash_balance,
            account.total_assets,
            self._rng,
            factor=factor,
            simulations=self._simulations,
        )
        return result

    @staticmethod
    def leverage(account: AccountSnapshot) -> float:
        if account.total_assets <= 0:
            return 0.0
        return account.stock_value / account.total_assets

    def concentration(self, account: AccountSnapshot) -> ConcentrationMetrics:
        total = account.total_assets
        by_sector: Dict[str, float] = defaultdict(float)
        weights: Dict[str, float] = {}
        for position in account.positions:
            weight = position.evaluation_amount / total if total > 0 else 0.0
            weights[position.symbol] = weights.get(position.symbol, 0.0) + weight
            by_sector[self._sector_lookup(position.symbol)] += weight
        top = sorted(account.positions, key=lambda item: item.evaluation_amount, reverse=True)[:TOP_POSITIONS]
        return ConcentrationMetrics(
            max_single_position=max(weights.values(), default=0.0),
            by_sector=dict(by_sector),
            top_positions=tuple(top),
            weights=weights,
        )

    @staticmethod
    def liquidity(account: AccountSnapshot, quotes: Mapping[str, PriceQuote]) -> LiquidityMetrics:
        total = account.total_assets
        if total <= 0:
            return LiquidityMetrics(ratio=0.0, market_impact_score=0.0)
        liquid_value = account.cash_balance
        impact = 0.0
        for position in account.positions:
            quote = quotes.get(position.symbol)
            if quote is None:
                continue
            position_value = position.quantity * quote.price
            if position_value <= 0:
                continue
            daily_volume_value = quote.volume * quote.price
            if daily_volume_value <= 0:
                # Untraded today: nothing can be unwound without moving the price.
                volume_ratio = 1.0
                liquid_share = 0.0
            else:
                volume_ratio = position_value / daily_volume_value
                liquid_share = min(daily_volume_value / position_value, 1.0)
            liquid_value += position_value * liquid_share
            impact += max(0.0, (volume_ratio - IMPACT_FREE_VOLUME_SHARE) * IMPACT_SLOPE) * position_value / total
        return LiquidityMetrics(ratio=liquid_value / total, market_impact_score=impact)

    def correlation(self, account: AccountSnapshot) -> CorrelationMetrics:
        symbols = tuple(position.symbol for position in account.positions)
        matrix = correlation_matrix([self.state.returns_for(symbol) for symbol in symbols])
        off_diagonal = [
            abs(matrix[i][j]) for i in range(len(symbols)) for j in range(len(symbols)) if i != j
        ]
        avg = sum(off_diagonal) / len(off_diagonal) if off_diagonal else 0.0
        return CorrelationMetrics(
            avg=avg,
            max=max(off_diagonal) if off_diagonal else 0.0,
            matrix=tuple(tuple(row) for row in matrix),
            symbols=symbols,
        )


__all__ = ["RiskMetricsEngine"]
