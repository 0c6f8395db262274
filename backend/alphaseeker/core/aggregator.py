"""Portfolio valuation.

Derives a summary from the ledger's current state, recomputed from scratch
on every call:

    value[c]     = Σ quantity * current_price   (holdings of class c, + cash)
    cost[c]      = Σ quantity * cost_basis      (holdings of class c, + cash)
    total_return = (value - cost, excluding cash) + realized_profit - realized_loss
"""

from typing import Any

from alphaseeker.core.ledger import AssetLedger
from alphaseeker.core.money import pct
from alphaseeker.core.types import AssetClass, PortfolioSummary, TypeDetail


def summarize(ledger: AssetLedger) -> PortfolioSummary:
    values = {c: 0.0 for c in AssetClass}
    costs = {c: 0.0 for c in AssetClass}
    invest_value = 0.0
    invest_cost = 0.0

    for holding in ledger.holdings():
        value = holding.market_value
        cost = holding.cost_value
        values[holding.asset_class] += value
        costs[holding.asset_class] += cost
        invest_value += value
        invest_cost += cost

    # Cash is valued at 1.0 and can neither gain nor lose
    cash = ledger.cash_balance
    values[AssetClass.CASH] += cash
    costs[AssetClass.CASH] += cash

    total_value = invest_value + cash
    total_cost = invest_cost + cash
    total_return = (
        (invest_value - invest_cost) + ledger.realized_profit - ledger.realized_loss
    )

    type_details = {}
    for c in AssetClass:
        profit = values[c] - costs[c]
        type_details[c] = TypeDetail(
            value=values[c],
            cost=costs[c],
            profit=profit,
            return_percent=pct(profit, costs[c]),
        )

    allocation = {c: pct(values[c], total_value) for c in AssetClass}

    return PortfolioSummary(
        total_value=total_value,
        total_cost=total_cost,
        total_return=total_return,
        total_return_percent=pct(total_return, total_cost),
        allocation=allocation,
        type_details=type_details,
        cash_balance=cash,
        realized_profit=ledger.realized_profit,
        realized_loss=ledger.realized_loss,
    )


def profit_distribution(summary: PortfolioSummary) -> list[dict[str, Any]]:
    """Per-class profit contribution, best first.

    Classes with no value and a negligible return are left out.
    """
    rows = [
        {
            "asset_class": c,
            "profit": d.profit,
            "value": d.value,
            "cost": d.cost,
            "return_percent": d.return_percent,
        }
        for c, d in summary.type_details.items()
        if d.value > 0 or abs(d.profit) > 1
    ]
    rows.sort(key=lambda r: r["profit"], reverse=True)
    return rows


def holding_rows(ledger: AssetLedger, summary: PortfolioSummary) -> list[dict[str, Any]]:
    """Position table: market value, floating P&L and weight per holding."""
    return [
        {
            "holding": h,
            "market_value": h.market_value,
            "cost_value": h.cost_value,
            "profit": h.unrealized_pnl,
            "profit_pct": h.unrealized_pnl_pct,
            "weight": pct(h.market_value, summary.total_value),
        }
        for h in ledger.holdings()
    ]
