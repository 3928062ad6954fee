"""Plain-text risk report built from the latest risk cycle."""

from __future__ import annotations

from typing import List, Optional

from ai_trading.risk_engine.risk_loop import RiskCycleResult

_RULE = "=" * 48


def _money(value: float) -> str:
    return f"{value:,.0f}"


def generate_risk_report(cycle: Optional[RiskCycleResult]) -> str:
    """Summarise the latest metrics, alerts and breaker states."""

    if cycle is None:
        return "Risk report\n" + _RULE + "\nNo risk metrics have been calculated yet.\n"

    metrics = cycle.metrics
    lines: List[str] = [
        "Risk report",
        _RULE,
        f"Generated at: {metrics.generated_at}",
        "",
        "Value at risk",
        f"  VaR 95%:            {_money(metrics.var95)}",
        f"  VaR 99%:            {_money(metrics.var99)}",
        f"  Expected shortfall: {_money(metrics.expected_shortfall)}",
        "",
        "Exposure",
        f"  Leverage:             {metrics.leverage:.2f}",
        f"  Largest position:     {metrics.concentration.max_single_position:.2%}",
        f"  Liquidity ratio:      {metrics.liquidity.ratio:.2%}",
        f"  Market impact score:  {metrics.liquidity.market_impact_score:.4f}",
        f"  Average correlation:  {metrics.correlation.avg:.2f}",
        f"  Maximum correlation:  {metrics.correlation.max:.2f}",
        f"  Current drawdown:     {metrics.drawdown.current:.2%}",
        f"  Maximum drawdown:     {metrics.drawdown.max:.2%}",
        f"  Drawdown duration:    {metrics.drawdown.duration_cycles} cycle(s)",
    ]

    if metrics.concentration.by_sector:
        lines.extend(["", "Sector weights"])
        for sector, weight in sorted(metrics.concentration.by_sector.items(), key=lambda item: -item[1]):
            lines.append(f"  {sector:<20} {weight:.2%}")

    lines.extend(["", f"Alerts ({len(cycle.alerts)})"])
    if not cycle.alerts:
        lines.append("  none")
    for alert in cycle.alerts:
        lines.append(f"  [{alert.level.value.upper()}] {alert.category.value}: {alert.message}")
        lines.append(f"      -> {alert.recommendation}")
        if alert.affected_symbols:
            lines.append(f"      symbols: {', '.join(alert.affected_symbols)}")

    lines.extend(["", "Circuit breakers"])
    for breaker in cycle.breakers:
        state = "TRIGGERED" if breaker.triggered else "ok"
        lines.append(
            f"  {breaker.name:<22} {state:<9} value={breaker.current_value:,.4f} "
            f"threshold={breaker.threshold:,.4f} action={breaker.action.value}"
        )

    if cycle.emergency_actions:
        lines.extend(["", "Emergency actions"])
        for action in cycle.emergency_actions:
            target = f" {action.symbol} x{action.quantity:g}" if action.symbol else ""
            outcome = "submitted" if action.submitted else f"not submitted ({action.error or 'dry-run'})"
            lines.append(f"  {action.action.value}{target}: {outcome}")

    return "\n".join(lines) + "\n"


__all__ = ["generate_risk_report"]
