"""Tests for portfolio service."""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from alphaseeker.core.ledger import AssetLedger
from alphaseeker.core.types import AssetClass, TargetStrategy
from alphaseeker.models.database import Base
from alphaseeker.models.portfolio import Portfolio
from alphaseeker.services.portfolio import PortfolioService, SnapshotBuffer


@pytest_asyncio.fixture
async def db_session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )
    async with session_factory() as session:
        yield session
    await engine.dispose()


@pytest.fixture
def portfolio_service():
    return PortfolioService()


@pytest.mark.asyncio
async def test_create_portfolio(db_session, portfolio_service):
    p = await portfolio_service.create_portfolio(db_session, "我的组合")
    assert p.id is not None
    assert p.name == "我的组合"
    assert p.strategy["allocations"]["QUANT_FUND"] == 50
    assert p.settlement_config["profit_threshold2"] == 5


@pytest.mark.asyncio
async def test_get_portfolio(db_session, portfolio_service):
    created = await portfolio_service.create_portfolio(db_session, "组合A")
    fetched = await portfolio_service.get_portfolio(db_session, created.id)
    assert fetched is not None
    assert fetched.name == "组合A"


@pytest.mark.asyncio
async def test_list_portfolios(db_session, portfolio_service):
    await portfolio_service.create_portfolio(db_session, "组合A")
    await portfolio_service.create_portfolio(db_session, "组合B")
    portfolios = await portfolio_service.list_portfolios(db_session)
    assert len(portfolios) == 2


@pytest.mark.asyncio
async def test_rename_portfolio(db_session, portfolio_service):
    p = await portfolio_service.create_portfolio(db_session, "组合A")
    renamed = await portfolio_service.rename_portfolio(db_session, p.id, "组合B")
    assert renamed.name == "组合B"
    assert await portfolio_service.rename_portfolio(db_session, 999, "x") is None


@pytest.mark.asyncio
async def test_load_missing_portfolio(db_session, portfolio_service):
    assert await portfolio_service.load_ledger(db_session, 999) is None


@pytest.mark.asyncio
async def test_ledger_round_trip(db_session, portfolio_service):
    p = await portfolio_service.create_portfolio(db_session, "组合A")
    ledger, buffer = await portfolio_service.load_ledger(db_session, p.id)
    hid = ledger.apply_buy("518880", AssetClass.GOLD, 1000, 4.2, "黄金ETF")
    ledger.apply_buy("sh518880", AssetClass.GOLD, 500, 4.6)
    ledger.apply_sell(hid, 3000, 5.0)
    ledger.record_manual_loss(20)
    assert await portfolio_service.flush(db_session, p.id, buffer)

    reloaded, _ = await portfolio_service.load_ledger(db_session, p.id)
    h = reloaded.get(hid)
    assert h.quantity == pytest.approx(900)
    assert h.cost_basis == pytest.approx((1000 * 4.2 + 500 * 4.6) / 1500)
    assert h.display_name == "黄金ETF"
    assert h.asset_class is AssetClass.GOLD
    assert reloaded.cash_balance == 3000
    assert reloaded.realized_profit == pytest.approx(400)
    assert reloaded.realized_loss == 20


@pytest.mark.asyncio
async def test_flush_without_mutation(db_session, portfolio_service):
    p = await portfolio_service.create_portfolio(db_session, "组合A")
    _, buffer = await portfolio_service.load_ledger(db_session, p.id)
    assert not await portfolio_service.flush(db_session, p.id, buffer)


@pytest.mark.asyncio
async def test_closed_holding_row_deleted(db_session, portfolio_service):
    p = await portfolio_service.create_portfolio(db_session, "组合A")
    ledger, buffer = await portfolio_service.load_ledger(db_session, p.id)
    hid = ledger.apply_buy("QQQ", AssetClass.NASDAQ, 10, 400)
    await portfolio_service.flush(db_session, p.id, buffer)

    ledger, buffer = await portfolio_service.load_ledger(db_session, p.id)
    ledger.apply_sell(hid, 4500, 450)
    await portfolio_service.flush(db_session, p.id, buffer)

    assert await portfolio_service.get_holdings(db_session, p.id) == []


@pytest.mark.asyncio
async def test_rebuy_after_close(db_session, portfolio_service):
    p = await portfolio_service.create_portfolio(db_session, "组合A")
    ledger, buffer = await portfolio_service.load_ledger(db_session, p.id)
    hid = ledger.apply_buy("QQQ", AssetClass.NASDAQ, 10, 400)
    ledger.apply_sell(hid, 4500, 450)
    new_id = ledger.apply_buy("QQQ", AssetClass.NASDAQ, 2, 440)
    await portfolio_service.flush(db_session, p.id, buffer)

    rows = await portfolio_service.get_holdings(db_session, p.id)
    assert [r.id for r in rows] == [new_id]
    assert rows[0].cost_basis == 440


@pytest.mark.asyncio
async def test_strategy_persisted(db_session, portfolio_service):
    p = await portfolio_service.create_portfolio(db_session, "组合A")
    ledger, buffer = await portfolio_service.load_ledger(db_session, p.id)
    ledger.set_strategy(TargetStrategy({AssetClass.GOLD: 60, AssetClass.CASH: 40}, 10))
    await portfolio_service.flush(db_session, p.id, buffer)

    reloaded, _ = await portfolio_service.load_ledger(db_session, p.id)
    assert reloaded.strategy.allocations == {AssetClass.GOLD: 60, AssetClass.CASH: 40}
    assert reloaded.strategy.max_deviation == 10


@pytest.mark.asyncio
async def test_missing_config_falls_back_to_defaults(db_session, portfolio_service):
    p = Portfolio(name="旧组合")
    db_session.add(p)
    await db_session.commit()
    ledger, _ = await portfolio_service.load_ledger(db_session, p.id)
    assert ledger.strategy.allocations[AssetClass.QUANT_FUND] == 50
    assert ledger.settlement_config.sharing_rate2 == 50


@pytest.mark.asyncio
async def test_delete_portfolio(db_session, portfolio_service):
    p = await portfolio_service.create_portfolio(db_session, "组合A")
    ledger, buffer = await portfolio_service.load_ledger(db_session, p.id)
    ledger.apply_buy("518880", AssetClass.GOLD, 100, 4.0)
    await portfolio_service.flush(db_session, p.id, buffer)
    await portfolio_service.record_daily_snapshot(db_session, p.id, "2026-02-18")

    await portfolio_service.delete_portfolio(db_session, p.id)

    assert await portfolio_service.list_portfolios(db_session) == []
    assert await portfolio_service.get_holdings(db_session, p.id) == []
    assert await portfolio_service.get_history(db_session, p.id, "2000-01-01") == []


def test_snapshot_buffer_keeps_latest():
    buffer = SnapshotBuffer()
    assert buffer.latest is None
    ledger = AssetLedger(sink=buffer)
    ledger.set_cash_balance(1)
    ledger.set_cash_balance(2)
    assert buffer.latest.cash_balance == 2
