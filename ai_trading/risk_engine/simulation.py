"""Monte Carlo value-at-risk and return statistics."""

from __future__ import annotations

import math
import random
from dataclasses import dataclass
from statistics import fmean, pstdev
from typing import List, Optional, Sequence, Tuple

NUM_SIMULATIONS = 10_000
MIN_RETURN_SAMPLES = 20
DEFAULT_MEAN_RETURN = 0.001
DEFAULT_RETURN_STD = 0.02
DEFAULT_CORRELATION = 0.3


@dataclass(frozen=True)
class ReturnStats:
    mean: float
    std: float


@dataclass(frozen=True)
class SimulatedAsset:
    quantity: float
    price: float
    stats: ReturnStats


@dataclass(frozen=True)
class VaRResult:
    var95: float
    var99: float
    expected_shortfall: float


def box_muller(rng: random.Random) -> float:
    """Return one standard normal draw."""

    u1 = 1.0 - rng.random()  # (0, 1], keeps log finite
    u2 = rng.random()
    return math.sqrt(-2.0 * math.log(u1)) * math.cos(2.0 * math.pi * u2)


def return_stats(returns: Sequence[float]) -> ReturnStats:
    if len(returns) < MIN_RETURN_SAMPLES:
        return ReturnStats(DEFAULT_MEAN_RETURN, DEFAULT_RETURN_STD)
    return ReturnStats(fmean(returns), pstdev(returns))


def pearson(first: Sequence[float], second: Sequence[float]) -> float:
    """Correlation of the most recent aligned samples of two return series."""

    if len(first) < MIN_RETURN_SAMPLES or len(second) < MIN_RETURN_SAMPLES:
        return DEFAULT_CORRELATION
    n = min(len(first), len(second))
    a = list(first)[-n:]
    b = list(second)[-n:]
    mean_a = fmean(a)
    mean_b = fmean(b)
    numerator = 0.0
    denom_a = 0.0
    denom_b = 0.0
    for x, y in zip(a, b):
        dx = x - mean_a
        dy = y - mean_b
        numerator += dx * dy
        denom_a += dx * dx
        denom_b += dy * dy
    denominator = math.sqrt(denom_a * denom_b)
    if denominator == 0:
        return 0.0
    return numerator / denominator


def correlation_matrix(series: Sequence[Sequence[float]]) -> List[List[float]]:
    size = len(series)
    matrix = [[0.0] * size for _ in range(size)]
    for i in range(size):
        matrix[i][i] = 1.0
        for j in range(i + 1, size):
            value = pearson(series[i], series[j])
            matrix[i][j] = value
            matrix[j][i] = value
    return matrix


def cholesky(matrix: Sequence[Sequence[float]]) -> Optional[List[List[float]]]:
    """Lower-triangular factor of ``matrix``; ``None`` when not positive definite."""

    size = len(matrix)
    lower = [[0.0] * size for _ in range(size)]
    for i in range(size):
        for j in range(i + 1):
            total = sum(lower[i][k] * lower[j][k] for k in range(j))
            if i == j:
                remainder = matrix[i][i] - total
                if remainder <= 1e-12:
                    return None
                lower[i][j] = math.sqrt(remainder)
            else:
                lower[i][j] = (matrix[i][j] - total) / lower[j][j]
    return lower


def simulate_portfolio_values(
    assets: Sequence[SimulatedAsset],
    cash: float,
    rng: random.Random,
    *,
    factor: Optional[Sequence[Sequence[float]]] = None,
    simulations: int = NUM_SIMULATIONS,
) -> List[float]:
    """Return ascending simulated one-day portfolio values.

    With ``factor`` the per-asset standard normals are mixed through the
    Cholesky factor of the correlation matrix; without it each asset is drawn
    independently.
    """

    values: List[float] = []
    size = len(assets)
    for _ in range(simulations):
        shocks = [box_muller(rng) for _ in range(size)]
        if factor is not None:
            shocks = [sum(factor[i][k] * shocks[k] for k in range(i + 1)) for i in range(size)]
        total = cash
        for asset, shock in zip(assets, shocks):
            simulated_return = asset.stats.mean + asset.stats.std * shock
            total += asset.quantity * asset.price * (1.0 + simulated_return)
        values.append(total)
    values.sort()
    return values


def value_at_risk(sorted_values: Sequence[float], current_total: float) -> VaRResult:
    if not sorted_values:
        return VaRResult(0.0, 0.0, 0.0)
    count = len(sorted_values)
    index95 = int(count * 0.05)
    index99 = int(count * 0.01)
    tail = sorted_values[: index95 + 1]
    return VaRResult(
        var95=current_total - sorted_values[index95],
        var99=current_total - sorted_values[index99],
        expected_shortfall=current_total - fmean(tail),
    )


def simulate_var(
    assets: Sequence[SimulatedAsset],
    cash: float,
    current_total: float,
    rng: random.Random,
    *,
    factor: Optional[Sequence[Sequence[float]]] = None,
    simulations: int = NUM_SIMULATIONS,
) -> Tuple[VaRResult, List[float]]:
    if not assets:
        return VaRResult(0.0, 0.0, 0.0), []
    values = simulate_portfolio_values(assets, cash, rng, factor=factor, simulations=simulations)
    return value_at_risk(values, current_total), values
