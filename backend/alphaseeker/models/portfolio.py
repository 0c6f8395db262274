"""Portfolio, PortfolioHolding and PortfolioSnapshot tables.

A portfolio row carries the ledger's scalar state (cash, realized P&L) and
its strategy and settlement configuration as JSON. Holdings live in their
own table, one row per normalized symbol.
"""

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Float, ForeignKey, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from alphaseeker.models.database import Base


class PortfolioSnapshot(Base):
    __tablename__ = "portfolio_snapshot"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    portfolio_id: Mapped[int] = mapped_column(Integer, index=True)
    snapshot_date: Mapped[str] = mapped_column(String(10), index=True)  # "YYYY-MM-DD"
    total_value: Mapped[float] = mapped_column(Float)
    total_cost: Mapped[float] = mapped_column(Float)
    total_return: Mapped[float] = mapped_column(Float, default=0.0)

    @property
    def profit_pct(self) -> float:
        if self.total_cost <= 0:
            return 0.0
        return self.total_return / self.total_cost * 100


class Portfolio(Base):
    __tablename__ = "portfolio"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100))
    created_at: Mapped[str] = mapped_column(
        String(30), default=lambda: datetime.now().isoformat()
    )
    cash_balance: Mapped[float] = mapped_column(Float, default=0.0)
    realized_profit: Mapped[float] = mapped_column(Float, default=0.0)
    realized_loss: Mapped[float] = mapped_column(Float, default=0.0)
    strategy: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)
    settlement_config: Mapped[dict[str, Any] | None] = mapped_column(
        JSON, nullable=True
    )


class PortfolioHolding(Base):
    __tablename__ = "portfolio_holding"
    __table_args__ = (UniqueConstraint("portfolio_id", "symbol"),)

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    portfolio_id: Mapped[int] = mapped_column(
        ForeignKey("portfolio.id", ondelete="CASCADE"), index=True
    )
    symbol: Mapped[str] = mapped_column(String(20))
    display_name: Mapped[str] = mapped_column(String(100))
    asset_class: Mapped[str] = mapped_column(String(20))  # AssetClass name
    quantity: Mapped[float] = mapped_column(Float)
    cost_basis: Mapped[float] = mapped_column(Float)
    current_price: Mapped[float] = mapped_column(Float)
    last_updated: Mapped[str] = mapped_column(
        String(30), default=lambda: datetime.now().isoformat()
    )
