"""Value types shared by the ledger, aggregator, comparator and settlement engine."""

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any

from alphaseeker.core.money import pct


class AssetClass(str, Enum):
    """The fixed set of asset classes tracked by the dashboard."""

    GOLD = "黄金"
    QUANT_FUND = "量化基金"
    BOND = "债券"
    NASDAQ = "纳斯达克100"
    BITCOIN = "比特币"
    CASH = "现金"

    @classmethod
    def parse(cls, text: str) -> "AssetClass":
        """Resolve an enum name ("GOLD") or value ("黄金")."""
        text = text.strip()
        for member in cls:
            if text == member.value or text.upper() == member.name:
                return member
        raise ValueError(f"Unknown asset class: {text!r}")

    @classmethod
    def from_label(cls, text: str) -> "AssetClass":
        """Infer a class from a loose label typed into a batch import.

        Anything unrecognised is filed under QUANT_FUND.
        """
        try:
            return cls.parse(text)
        except ValueError:
            pass
        s = text.strip().lower()
        if "金" in s or "gold" in s:
            return cls.GOLD
        if "债" in s or "bond" in s:
            return cls.BOND
        if "纳" in s or "tech" in s or "nasdaq" in s:
            return cls.NASDAQ
        if "币" in s or "btc" in s:
            return cls.BITCOIN
        return cls.QUANT_FUND


def _now() -> str:
    return datetime.now().isoformat()


@dataclass
class Holding:
    """One owned position, merged by normalized symbol."""

    id: str
    symbol: str
    display_name: str
    asset_class: AssetClass
    quantity: float
    cost_basis: float
    current_price: float
    last_updated: str = field(default_factory=_now)

    @property
    def market_value(self) -> float:
        return self.quantity * self.current_price

    @property
    def cost_value(self) -> float:
        return self.quantity * self.cost_basis

    @property
    def unrealized_pnl(self) -> float:
        return self.market_value - self.cost_value

    @property
    def unrealized_pnl_pct(self) -> float:
        return pct(self.unrealized_pnl, self.cost_value)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "symbol": self.symbol,
            "display_name": self.display_name,
            "asset_class": self.asset_class.name,
            "quantity": self.quantity,
            "cost_basis": self.cost_basis,
            "current_price": self.current_price,
            "last_updated": self.last_updated,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Holding":
        return cls(
            id=str(data["id"]),
            symbol=data["symbol"],
            display_name=data.get("display_name") or data["symbol"],
            asset_class=AssetClass.parse(data["asset_class"]),
            quantity=float(data["quantity"]),
            cost_basis=float(data["cost_basis"]),
            current_price=float(data["current_price"]),
            last_updated=data.get("last_updated") or _now(),
        )


@dataclass(frozen=True)
class TypeDetail:
    value: float = 0.0
    cost: float = 0.0
    profit: float = 0.0
    return_percent: float = 0.0


@dataclass(frozen=True)
class PortfolioSummary:
    """Point-in-time valuation derived from a ledger."""

    total_value: float
    total_cost: float
    total_return: float
    total_return_percent: float
    allocation: dict[AssetClass, float]
    type_details: dict[AssetClass, TypeDetail]
    cash_balance: float
    realized_profit: float
    realized_loss: float


@dataclass
class TargetStrategy:
    """Target weight (percent) per asset class plus the relative drift threshold."""

    allocations: dict[AssetClass, float]
    max_deviation: float

    def target_for(self, asset_class: AssetClass) -> float:
        return self.allocations.get(asset_class, 0.0)

    def to_dict(self) -> dict[str, Any]:
        return {
            "allocations": {c.name: w for c, w in self.allocations.items()},
            "max_deviation": self.max_deviation,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TargetStrategy":
        allocations = {
            AssetClass.parse(k): float(v)
            for k, v in data.get("allocations", {}).items()
        }
        return cls(allocations=allocations, max_deviation=float(data["max_deviation"]))


@dataclass
class SettlementConfig:
    """Percent thresholds and take-rates for the profit-sharing calculation."""

    profit_threshold1: float
    profit_threshold2: float
    sharing_rate1: float
    sharing_rate2: float
    guarantee_threshold: float

    def to_dict(self) -> dict[str, float]:
        return {
            "profit_threshold1": self.profit_threshold1,
            "profit_threshold2": self.profit_threshold2,
            "sharing_rate1": self.sharing_rate1,
            "sharing_rate2": self.sharing_rate2,
            "guarantee_threshold": self.guarantee_threshold,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SettlementConfig":
        return cls(
            profit_threshold1=float(data["profit_threshold1"]),
            profit_threshold2=float(data["profit_threshold2"]),
            sharing_rate1=float(data["sharing_rate1"]),
            sharing_rate2=float(data["sharing_rate2"]),
            guarantee_threshold=float(data["guarantee_threshold"]),
        )


DEFAULT_STRATEGY = TargetStrategy(
    allocations={
        AssetClass.QUANT_FUND: 50,
        AssetClass.GOLD: 20,
        AssetClass.BOND: 15,
        AssetClass.NASDAQ: 10,
        AssetClass.BITCOIN: 0,
        AssetClass.CASH: 5,
    },
    # Relative drift (percent of the target weight) before an asset turns red
    max_deviation=15,
)

DEFAULT_SETTLEMENT_CONFIG = SettlementConfig(
    profit_threshold1=3,
    profit_threshold2=5,
    sharing_rate1=20,
    sharing_rate2=50,
    guarantee_threshold=3,
)


def default_strategy() -> TargetStrategy:
    """Fresh copy of the default strategy, safe to mutate."""
    return replace(DEFAULT_STRATEGY, allocations=dict(DEFAULT_STRATEGY.allocations))


def default_settlement_config() -> SettlementConfig:
    return replace(DEFAULT_SETTLEMENT_CONFIG)


@dataclass
class LedgerSnapshot:
    """Everything a storage collaborator needs to persist and restore a ledger."""

    holdings: list[Holding] = field(default_factory=list)
    cash_balance: float = 0.0
    realized_profit: float = 0.0
    realized_loss: float = 0.0
    strategy: TargetStrategy = field(default_factory=default_strategy)
    settlement_config: SettlementConfig = field(default_factory=default_settlement_config)

    def to_dict(self) -> dict[str, Any]:
        return {
            "holdings": [h.to_dict() for h in self.holdings],
            "cash_balance": self.cash_balance,
            "realized_profit": self.realized_profit,
            "realized_loss": self.realized_loss,
            "strategy": self.strategy.to_dict(),
            "settlement_config": self.settlement_config.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "LedgerSnapshot":
        snapshot = cls(
            holdings=[Holding.from_dict(h) for h in data.get("holdings", [])],
            cash_balance=float(data.get("cash_balance", 0.0)),
            realized_profit=float(data.get("realized_profit", 0.0)),
            realized_loss=float(data.get("realized_loss", 0.0)),
        )
        if data.get("strategy"):
            snapshot.strategy = TargetStrategy.from_dict(data["strategy"])
        if data.get("settlement_config"):
            snapshot.settlement_config = SettlementConfig.from_dict(data["settlement_config"])
        return snapshot
