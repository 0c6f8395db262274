"""Integration test: full flow from buys through sell, drift and settlement."""

import pytest
import pytest_asyncio
from unittest.mock import patch
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

from alphaseeker.main import app
from alphaseeker.models.database import Base, get_db
from alphaseeker.services.market_data import PriceQuote


@pytest_asyncio.fixture
async def db_session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False
    )

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield
    app.dependency_overrides.clear()
    await engine.dispose()


def _mock_lookup(code: str):
    return {
        "518880": PriceQuote(name="华安黄金ETF", price=4.6),
        "QQQ": PriceQuote(name="Invesco QQQ", price=445.0),
    }.get(code)


@pytest.mark.asyncio
async def test_full_flow(db_session):
    """Test: create portfolio -> buy twice -> sell -> cash -> strategy -> settlement."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        resp = await client.post("/api/portfolio", json={"name": "AlphaSeeker"})
        pid = resp.json()["id"]

        with patch(
            "alphaseeker.api.portfolio_routes.market_data_service.lookup_asset",
            side_effect=_mock_lookup,
        ):
            resp = await client.post(
                f"/api/portfolio/{pid}/buy",
                json={"code": "sh518880", "asset_class": "黄金", "quantity": 1000, "unit_cost": 4.2},
            )
            hid = resp.json()["holding_id"]
            assert resp.json()["name"] == "华安黄金ETF"

            resp = await client.post(
                f"/api/portfolio/{pid}/buy",
                json={"code": "518880", "asset_class": "GOLD", "quantity": 500, "unit_cost": 4.6},
            )
            assert resp.json()["status"] == "merged"
            assert resp.json()["holding_id"] == hid

        # 3000 at 5.0 sells 600 units with cost 4.3333 each
        resp = await client.post(
            f"/api/portfolio/{pid}/holdings/{hid}/sell",
            json={"amount": 3000, "price": 5.0},
        )
        sold = resp.json()
        assert sold["quantity_sold"] == pytest.approx(600)
        assert sold["pnl"] == pytest.approx(400)

        detail = (await client.get(f"/api/portfolio/{pid}")).json()
        assert detail["cash_balance"] == 3000
        assert detail["realized_profit"] == 400
        gold = detail["holdings"][0]
        assert gold["quantity"] == pytest.approx(900)
        assert gold["current_price"] == 4.6
        # 900 * (4.6 - 4.3333) unrealized + 400 realized
        assert detail["total_return"] == pytest.approx(900 * (4.6 - 13 / 3) + 400, abs=0.01)

        await client.post(f"/api/portfolio/{pid}/loss", json={"amount": 40})
        report = (await client.get(f"/api/portfolio/{pid}/strategy")).json()
        by_class = {d["asset_class"]: d for d in report["deviations"]}
        assert by_class["GOLD"]["status"] == "critical"
        assert by_class["QUANT_FUND"]["status"] == "critical"
        assert report["investable_cash"] > 0

        settlement = (await client.get(f"/api/portfolio/{pid}/settlement")).json()
        assert settlement["total_return"] == pytest.approx(detail["total_return"] - 40, abs=0.01)
        assert settlement["sharing_amount"] >= 0
        assert settlement["guarantee_amount"] >= 0

        # full liquidation at the current price closes the position
        resp = await client.post(
            f"/api/portfolio/{pid}/holdings/{hid}/sell",
            json={"amount": 900 * 4.6},
        )
        assert resp.json()["closed"]
        detail = (await client.get(f"/api/portfolio/{pid}")).json()
        assert detail["holdings"] == []
        assert detail["allocation"]["CASH"] == 100
