"""Compare the current allocation against a target strategy."""

import math
from dataclasses import dataclass
from enum import Enum

from alphaseeker.core.errors import InvalidStrategyError
from alphaseeker.core.types import AssetClass, PortfolioSummary, TargetStrategy


class DeviationStatus(str, Enum):
    ON_TARGET = "on_target"
    WARNING = "warning"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ClassDeviation:
    asset_class: AssetClass
    current_pct: float
    target_pct: float
    relative_deviation: float  # percent of target; inf when target is 0
    status: DeviationStatus


@dataclass(frozen=True)
class StrategyReport:
    deviations: list[ClassDeviation]
    investable_cash: float
    target_cash: float

    def by_class(self) -> dict[AssetClass, ClassDeviation]:
        return {d.asset_class: d for d in self.deviations}


def relative_deviation(current_pct: float, target_pct: float) -> float:
    if target_pct > 0:
        return abs(current_pct - target_pct) / target_pct * 100
    return math.inf if current_pct > 0 else 0.0


def classify(deviation: float, max_deviation: float) -> DeviationStatus:
    if deviation <= max_deviation:
        return DeviationStatus.ON_TARGET
    if deviation <= 2 * max_deviation:
        return DeviationStatus.WARNING
    return DeviationStatus.CRITICAL


def target_cash(summary: PortfolioSummary, strategy: TargetStrategy) -> float:
    return summary.total_value * strategy.target_for(AssetClass.CASH) / 100


def investable_cash(summary: PortfolioSummary, strategy: TargetStrategy) -> float:
    """Cash held above the strategic cash target."""
    return max(0.0, summary.cash_balance - target_cash(summary, strategy))


def evaluate(summary: PortfolioSummary, strategy: TargetStrategy) -> StrategyReport:
    """Flag how far each asset class has drifted from its target weight.

    Drift is relative: a 20% target sitting at 23% is a 15% deviation.
    Advisory only, nothing is mutated.
    """
    deviations = []
    for c in AssetClass:
        current = summary.allocation.get(c, 0.0)
        target = strategy.target_for(c)
        dev = relative_deviation(current, target)
        deviations.append(
            ClassDeviation(
                asset_class=c,
                current_pct=current,
                target_pct=target,
                relative_deviation=dev,
                status=classify(dev, strategy.max_deviation),
            )
        )
    return StrategyReport(
        deviations=deviations,
        investable_cash=investable_cash(summary, strategy),
        target_cash=target_cash(summary, strategy),
    )


def validate_strategy(strategy: TargetStrategy) -> None:
    """Reject negative weights or a non-positive drift threshold.

    The weights are not required to sum to 100.
    """
    if strategy.max_deviation <= 0:
        raise InvalidStrategyError("max_deviation must be positive")
    negative = [c.name for c, w in strategy.allocations.items() if w < 0]
    if negative:
        raise InvalidStrategyError(f"Negative target weight for {', '.join(negative)}")
