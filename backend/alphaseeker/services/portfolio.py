"""Portfolio persistence service.

Loads a portfolio's rows into an AssetLedger and writes ledger snapshots
back. The ledger itself never touches the database: it hands snapshots to a
SnapshotBuffer, which the caller flushes once the mutation is done.
"""

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from alphaseeker.core.aggregator import summarize
from alphaseeker.core.ledger import AssetLedger
from alphaseeker.core.money import round_money
from alphaseeker.core.types import (
    AssetClass,
    Holding,
    LedgerSnapshot,
    SettlementConfig,
    TargetStrategy,
    default_settlement_config,
    default_strategy,
)
from alphaseeker.models.portfolio import Portfolio, PortfolioHolding, PortfolioSnapshot


class SnapshotBuffer:
    """Save port that keeps the latest ledger snapshot until it is flushed."""

    def __init__(self):
        self.latest: LedgerSnapshot | None = None

    def save(self, snapshot: LedgerSnapshot) -> None:
        self.latest = snapshot


def _to_snapshot(portfolio: Portfolio, rows: list[PortfolioHolding]) -> LedgerSnapshot:
    holdings = [
        Holding(
            id=r.id,
            symbol=r.symbol,
            display_name=r.display_name,
            asset_class=AssetClass.parse(r.asset_class),
            quantity=r.quantity,
            cost_basis=r.cost_basis,
            current_price=r.current_price,
            last_updated=r.last_updated,
        )
        for r in rows
    ]
    strategy = (
        TargetStrategy.from_dict(portfolio.strategy)
        if portfolio.strategy
        else default_strategy()
    )
    config = (
        SettlementConfig.from_dict(portfolio.settlement_config)
        if portfolio.settlement_config
        else default_settlement_config()
    )
    return LedgerSnapshot(
        holdings=holdings,
        cash_balance=portfolio.cash_balance,
        realized_profit=portfolio.realized_profit,
        realized_loss=portfolio.realized_loss,
        strategy=strategy,
        settlement_config=config,
    )


class PortfolioService:
    """Manages portfolios and the persisted state of their ledgers."""

    async def create_portfolio(self, session: AsyncSession, name: str) -> Portfolio:
        portfolio = Portfolio(
            name=name,
            strategy=default_strategy().to_dict(),
            settlement_config=default_settlement_config().to_dict(),
        )
        session.add(portfolio)
        await session.commit()
        return portfolio

    async def get_portfolio(
        self, session: AsyncSession, portfolio_id: int
    ) -> Portfolio | None:
        return await session.get(Portfolio, portfolio_id)

    async def list_portfolios(self, session: AsyncSession) -> list[Portfolio]:
        result = await session.execute(select(Portfolio))
        return list(result.scalars().all())

    async def delete_portfolio(self, session: AsyncSession, portfolio_id: int) -> None:
        await session.execute(
            delete(PortfolioHolding).where(PortfolioHolding.portfolio_id == portfolio_id)
        )
        await session.execute(
            delete(PortfolioSnapshot).where(PortfolioSnapshot.portfolio_id == portfolio_id)
        )
        await session.execute(delete(Portfolio).where(Portfolio.id == portfolio_id))
        await session.commit()

    async def rename_portfolio(
        self, session: AsyncSession, portfolio_id: int, name: str
    ) -> Portfolio | None:
        portfolio = await session.get(Portfolio, portfolio_id)
        if portfolio is None:
            return None
        portfolio.name = name
        await session.commit()
        return portfolio

    async def get_holdings(
        self, session: AsyncSession, portfolio_id: int
    ) -> list[PortfolioHolding]:
        result = await session.execute(
            select(PortfolioHolding).where(PortfolioHolding.portfolio_id == portfolio_id)
        )
        return list(result.scalars().all())

    async def load_ledger(
        self, session: AsyncSession, portfolio_id: int
    ) -> tuple[AssetLedger, SnapshotBuffer] | None:
        """Rebuild a portfolio's ledger, wired to a fresh SnapshotBuffer.

        Returns None if the portfolio does not exist.
        """
        portfolio = await session.get(Portfolio, portfolio_id)
        if portfolio is None:
            return None
        rows = await self.get_holdings(session, portfolio_id)
        buffer = SnapshotBuffer()
        ledger = AssetLedger.from_snapshot(_to_snapshot(portfolio, rows), sink=buffer)
        return ledger, buffer

    async def save_snapshot(
        self, session: AsyncSession, portfolio_id: int, snapshot: LedgerSnapshot
    ) -> None:
        """Replace the stored ledger state with `snapshot`."""
        portfolio = await session.get(Portfolio, portfolio_id)
        if portfolio is None:
            return
        portfolio.cash_balance = snapshot.cash_balance
        portfolio.realized_profit = snapshot.realized_profit
        portfolio.realized_loss = snapshot.realized_loss
        portfolio.strategy = snapshot.strategy.to_dict()
        portfolio.settlement_config = snapshot.settlement_config.to_dict()

        existing = {r.id: r for r in await self.get_holdings(session, portfolio_id)}
        keep = {h.id for h in snapshot.holdings}
        for row_id, row in existing.items():
            if row_id not in keep:
                await session.delete(row)
        # Flush deletes first so a re-bought symbol can reuse its unique slot
        await session.flush()

        for h in snapshot.holdings:
            row = existing.get(h.id)
            if row is None:
                row = PortfolioHolding(id=h.id, portfolio_id=portfolio_id)
                session.add(row)
            row.symbol = h.symbol
            row.display_name = h.display_name
            row.asset_class = h.asset_class.name
            row.quantity = h.quantity
            row.cost_basis = h.cost_basis
            row.current_price = h.current_price
            row.last_updated = h.last_updated
        await session.commit()

    async def flush(
        self, session: AsyncSession, portfolio_id: int, buffer: SnapshotBuffer
    ) -> bool:
        """Persist the buffered snapshot, if any mutation produced one."""
        if buffer.latest is None:
            return False
        await self.save_snapshot(session, portfolio_id, buffer.latest)
        buffer.latest = None
        return True

    async def record_daily_snapshot(
        self, session: AsyncSession, portfolio_id: int, snapshot_date: str
    ) -> PortfolioSnapshot | None:
        """Upsert today's valuation for the history chart."""
        loaded = await self.load_ledger(session, portfolio_id)
        if loaded is None:
            return None
        ledger, _ = loaded
        summary = summarize(ledger)

        await session.execute(
            delete(PortfolioSnapshot).where(
                PortfolioSnapshot.portfolio_id == portfolio_id,
                PortfolioSnapshot.snapshot_date == snapshot_date,
            )
        )
        snap = PortfolioSnapshot(
            portfolio_id=portfolio_id,
            snapshot_date=snapshot_date,
            total_value=round_money(summary.total_value),
            total_cost=round_money(summary.total_cost),
            total_return=round_money(summary.total_return),
        )
        session.add(snap)
        await session.commit()
        return snap

    async def get_history(
        self, session: AsyncSession, portfolio_id: int, cutoff_date: str
    ) -> list[PortfolioSnapshot]:
        result = await session.execute(
            select(PortfolioSnapshot)
            .where(
                PortfolioSnapshot.portfolio_id == portfolio_id,
                PortfolioSnapshot.snapshot_date >= cutoff_date,
            )
            .order_by(PortfolioSnapshot.snapshot_date)
        )
        return list(result.scalars().all())


portfolio_service = PortfolioService()
