"""Tiered profit-sharing and downside-guarantee settlement.

With r = total_return_percent / 100 and thresholds t1 < t2:

    bracket1 = min(total_return - cost * t1, cost * (t2 - t1)) * rate1   if r > t1
    bracket2 = (total_return - cost * t2) * rate2                        if r > t2
    guarantee = max(0, cost * (1 + g) - total_value)

Threshold ordering is not checked here; use validate_settlement_config at
the configuration boundary.
"""

from dataclasses import dataclass

from alphaseeker.core.errors import InvalidSettlementConfigError
from alphaseeker.core.types import PortfolioSummary, SettlementConfig


@dataclass(frozen=True)
class SettlementResult:
    sharing_amount: float
    guarantee_amount: float
    bracket1: float
    bracket2: float
    target_value: float
    return_rate: float  # percent


def compute_settlement(
    summary: PortfolioSummary, config: SettlementConfig
) -> SettlementResult:
    total_cost = summary.total_cost
    total_return = summary.total_return

    return_rate = summary.total_return_percent / 100
    t1 = config.profit_threshold1 / 100
    t2 = config.profit_threshold2 / 100
    r1 = config.sharing_rate1 / 100
    r2 = config.sharing_rate2 / 100

    bracket1 = 0.0
    bracket2 = 0.0
    if return_rate > t1:
        bracket1 = min(total_return - total_cost * t1, total_cost * (t2 - t1)) * r1
        if return_rate > t2:
            bracket2 = (total_return - total_cost * t2) * r2

    target_value = total_cost * (1 + config.guarantee_threshold / 100)
    guarantee_amount = max(0.0, target_value - summary.total_value)

    return SettlementResult(
        sharing_amount=max(0.0, bracket1 + bracket2),
        guarantee_amount=guarantee_amount,
        bracket1=bracket1,
        bracket2=bracket2,
        target_value=target_value,
        return_rate=summary.total_return_percent,
    )


def validate_settlement_config(config: SettlementConfig) -> None:
    values = config.to_dict()
    negative = [k for k, v in values.items() if v < 0]
    if negative:
        raise InvalidSettlementConfigError(
            f"Settlement parameters must be non-negative: {', '.join(negative)}"
        )
    if config.profit_threshold1 > config.profit_threshold2:
        raise InvalidSettlementConfigError(
            "profit_threshold1 must not exceed profit_threshold2"
        )
