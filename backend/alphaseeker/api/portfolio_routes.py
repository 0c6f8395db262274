"""Portfolio API routes."""

import asyncio
import logging
import math
from datetime import datetime, timedelta

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from alphaseeker.api.schemas import (
    BatchBuyRequest,
    BatchBuyResponse,
    BuyRequest,
    BuyResponse,
    CashRequest,
    DeviationResponse,
    DistributionRow,
    HoldingResponse,
    LossRequest,
    PortfolioCreateRequest,
    PortfolioDetailResponse,
    PortfolioRenameRequest,
    PortfolioResponse,
    SellRequest,
    SellResponse,
    SettlementConfigRequest,
    SettlementResponse,
    StrategyReportResponse,
    StrategyRequest,
    TypeDetailResponse,
)
from alphaseeker.core.aggregator import holding_rows, profit_distribution, summarize
from alphaseeker.core.errors import (
    HoldingNotFoundError,
    InvalidSettlementConfigError,
    InvalidStrategyError,
)
from alphaseeker.core.ledger import AssetLedger, normalize_symbol
from alphaseeker.core.money import round_money, round_price
from alphaseeker.core.settlement import compute_settlement, validate_settlement_config
from alphaseeker.core.strategy import evaluate, investable_cash, validate_strategy
from alphaseeker.core.types import SettlementConfig, TargetStrategy
from alphaseeker.models.database import get_db
from alphaseeker.services.batch_import import parse_batch
from alphaseeker.services.market_data import market_data_service
from alphaseeker.services.portfolio import SnapshotBuffer, portfolio_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/portfolio", tags=["portfolio"])


async def _open_ledger(
    db: AsyncSession, portfolio_id: int
) -> tuple[AssetLedger, SnapshotBuffer]:
    loaded = await portfolio_service.load_ledger(db, portfolio_id)
    if loaded is None:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    return loaded


def _not_found(e: HoldingNotFoundError) -> HTTPException:
    return HTTPException(status_code=404, detail=str(e))


@router.post("", response_model=PortfolioResponse)
async def create_portfolio(
    req: PortfolioCreateRequest, db: AsyncSession = Depends(get_db)
):
    name = req.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name cannot be empty")
    p = await portfolio_service.create_portfolio(db, name)
    return PortfolioResponse(id=p.id, name=p.name, created_at=p.created_at)


@router.get("", response_model=list[PortfolioResponse])
async def list_portfolios(db: AsyncSession = Depends(get_db)):
    portfolios = await portfolio_service.list_portfolios(db)
    return [
        PortfolioResponse(id=p.id, name=p.name, created_at=p.created_at)
        for p in portfolios
    ]


@router.get("/{portfolio_id}", response_model=PortfolioDetailResponse)
async def get_portfolio_detail(portfolio_id: int, db: AsyncSession = Depends(get_db)):
    portfolio = await portfolio_service.get_portfolio(db, portfolio_id)
    if portfolio is None:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    ledger, _ = await _open_ledger(db, portfolio_id)
    summary = summarize(ledger)

    holdings = [
        HoldingResponse(
            id=row["holding"].id,
            code=row["holding"].symbol,
            name=row["holding"].display_name,
            asset_class=row["holding"].asset_class.name,
            quantity=row["holding"].quantity,
            cost_basis=round_price(row["holding"].cost_basis),
            current_price=round_price(row["holding"].current_price),
            market_value=round_money(row["market_value"]),
            cost=round_money(row["cost_value"]),
            profit=round_money(row["profit"]),
            profit_pct=round(row["profit_pct"], 4),
            weight=round(row["weight"], 4),
            last_updated=row["holding"].last_updated,
        )
        for row in holding_rows(ledger, summary)
    ]

    return PortfolioDetailResponse(
        id=portfolio.id,
        name=portfolio.name,
        created_at=portfolio.created_at,
        holdings=holdings,
        cash_balance=round_money(summary.cash_balance),
        total_value=round_money(summary.total_value),
        total_cost=round_money(summary.total_cost),
        total_return=round_money(summary.total_return),
        total_return_pct=round(summary.total_return_percent, 4),
        realized_profit=round_money(summary.realized_profit),
        realized_loss=round_money(summary.realized_loss),
        investable_cash=round_money(investable_cash(summary, ledger.strategy)),
        allocation={c.name: round(v, 4) for c, v in summary.allocation.items()},
        type_details={
            c.name: TypeDetailResponse(
                value=round_money(d.value),
                cost=round_money(d.cost),
                profit=round_money(d.profit),
                return_percent=round(d.return_percent, 4),
            )
            for c, d in summary.type_details.items()
        },
    )


@router.patch("/{portfolio_id}", response_model=PortfolioResponse)
async def rename_portfolio(
    portfolio_id: int,
    req: PortfolioRenameRequest,
    db: AsyncSession = Depends(get_db),
):
    name = req.name.strip()
    if not name:
        raise HTTPException(status_code=400, detail="Name cannot be empty")
    portfolio = await portfolio_service.rename_portfolio(db, portfolio_id, name)
    if portfolio is None:
        raise HTTPException(status_code=404, detail="Portfolio not found")
    return PortfolioResponse(id=portfolio.id, name=portfolio.name, created_at=portfolio.created_at)


@router.delete("/{portfolio_id}")
async def delete_portfolio(portfolio_id: int, db: AsyncSession = Depends(get_db)):
    await portfolio_service.delete_portfolio(db, portfolio_id)
    return {"status": "ok"}


@router.post("/{portfolio_id}/buy", response_model=BuyResponse)
async def buy(
    portfolio_id: int,
    req: BuyRequest,
    db: AsyncSession = Depends(get_db),
):
    ledger, buffer = await _open_ledger(db, portfolio_id)
    code = normalize_symbol(req.code)
    merged = ledger.find_by_symbol(code) is not None

    quote = market_data_service.lookup_asset(code) if req.lookup else None
    holding_id = ledger.apply_buy(
        code,
        req.asset_class,
        req.quantity,
        req.unit_cost,
        display_name=req.name,
        resolved_price=quote.price if quote else None,
        resolved_name=quote.name if quote else None,
    )
    await portfolio_service.flush(db, portfolio_id, buffer)

    holding = ledger.get(holding_id)
    return BuyResponse(
        status="merged" if merged else "created",
        holding_id=holding.id,
        code=holding.symbol,
        name=holding.display_name,
        quantity=holding.quantity,
        cost_basis=round_price(holding.cost_basis),
        current_price=round_price(holding.current_price),
    )


@router.post("/{portfolio_id}/buy/batch", response_model=BatchBuyResponse)
async def buy_batch(
    portfolio_id: int,
    req: BatchBuyRequest,
    db: AsyncSession = Depends(get_db),
):
    ledger, buffer = await _open_ledger(db, portfolio_id)
    entries, skipped = parse_batch(req.text)
    if not entries:
        raise HTTPException(status_code=400, detail="No valid holding lines found")

    holding_ids = []
    for entry in entries:
        quote = market_data_service.lookup_asset(entry.code) if req.lookup else None
        holding_ids.append(
            ledger.apply_buy(
                entry.code,
                entry.asset_class,
                entry.quantity,
                entry.unit_cost,
                display_name=entry.name,
                resolved_price=quote.price if quote else None,
                resolved_name=quote.name if quote else None,
            )
        )
    await portfolio_service.flush(db, portfolio_id, buffer)
    return BatchBuyResponse(added=len(entries), skipped=skipped, holding_ids=holding_ids)


@router.post(
    "/{portfolio_id}/holdings/{holding_id}/sell", response_model=SellResponse
)
async def sell(
    portfolio_id: int,
    holding_id: str,
    req: SellRequest,
    db: AsyncSession = Depends(get_db),
):
    ledger, buffer = await _open_ledger(db, portfolio_id)
    try:
        result = ledger.apply_sell(holding_id, req.amount, req.price)
    except HoldingNotFoundError as e:
        raise _not_found(e)
    await portfolio_service.flush(db, portfolio_id, buffer)

    return SellResponse(
        holding_id=result.holding_id,
        quantity_sold=result.quantity_sold,
        cost_of_sold=round_money(result.cost_of_sold),
        pnl=round_money(result.pnl),
        remaining_quantity=result.remaining_quantity,
        closed=result.closed,
        oversold=result.oversold,
        cash_balance=round_money(ledger.cash_balance),
    )


@router.delete("/{portfolio_id}/holdings/{holding_id}")
async def remove_holding(
    portfolio_id: int,
    holding_id: str,
    db: AsyncSession = Depends(get_db),
):
    ledger, buffer = await _open_ledger(db, portfolio_id)
    try:
        ledger.remove_holding(holding_id)
    except HoldingNotFoundError as e:
        raise _not_found(e)
    await portfolio_service.flush(db, portfolio_id, buffer)
    return {"status": "ok"}


@router.put("/{portfolio_id}/cash")
async def set_cash(
    portfolio_id: int,
    req: CashRequest,
    db: AsyncSession = Depends(get_db),
):
    ledger, buffer = await _open_ledger(db, portfolio_id)
    if req.amount < 0:
        logger.warning(f"Portfolio {portfolio_id} cash set to negative {req.amount}")
    ledger.set_cash_balance(req.amount)
    await portfolio_service.flush(db, portfolio_id, buffer)
    return {"status": "ok", "cash_balance": ledger.cash_balance}


@router.post("/{portfolio_id}/loss")
async def record_loss(
    portfolio_id: int,
    req: LossRequest,
    db: AsyncSession = Depends(get_db),
):
    ledger, buffer = await _open_ledger(db, portfolio_id)
    ledger.record_manual_loss(req.amount)
    await portfolio_service.flush(db, portfolio_id, buffer)
    return {"status": "ok", "realized_loss": ledger.realized_loss}


@router.post("/{portfolio_id}/refresh-prices")
async def refresh_prices(portfolio_id: int, db: AsyncSession = Depends(get_db)):
    """Fetch the latest price for every holding; failures keep the last price."""
    ledger, buffer = await _open_ledger(db, portfolio_id)
    prices = await asyncio.to_thread(
        market_data_service.fetch_latest_prices, ledger.holdings()
    )
    updated = ledger.update_prices(prices)
    await portfolio_service.flush(db, portfolio_id, buffer)
    return {
        "status": "ok",
        "updated": updated,
        "prices": {hid: round_price(p) for hid, p in prices.items()},
    }


@router.get("/{portfolio_id}/strategy", response_model=StrategyReportResponse)
async def get_strategy_report(portfolio_id: int, db: AsyncSession = Depends(get_db)):
    ledger, _ = await _open_ledger(db, portfolio_id)
    report = evaluate(summarize(ledger), ledger.strategy)
    return StrategyReportResponse(
        max_deviation=ledger.strategy.max_deviation,
        investable_cash=round_money(report.investable_cash),
        target_cash=round_money(report.target_cash),
        deviations=[
            DeviationResponse(
                asset_class=d.asset_class.name,
                current_pct=round(d.current_pct, 4),
                target_pct=d.target_pct,
                relative_deviation=(
                    None if math.isinf(d.relative_deviation)
                    else round(d.relative_deviation, 4)
                ),
                status=d.status.value,
            )
            for d in report.deviations
        ],
    )


@router.put("/{portfolio_id}/strategy")
async def update_strategy(
    portfolio_id: int,
    req: StrategyRequest,
    db: AsyncSession = Depends(get_db),
):
    ledger, buffer = await _open_ledger(db, portfolio_id)
    strategy = TargetStrategy(allocations=dict(req.allocations), max_deviation=req.max_deviation)
    try:
        validate_strategy(strategy)
    except InvalidStrategyError as e:
        raise HTTPException(status_code=400, detail=str(e))
    ledger.set_strategy(strategy)
    await portfolio_service.flush(db, portfolio_id, buffer)
    return {"status": "ok", "strategy": strategy.to_dict()}


def _settlement_response(ledger: AssetLedger, config: SettlementConfig) -> SettlementResponse:
    summary = summarize(ledger)
    result = compute_settlement(summary, config)
    return SettlementResponse(
        total_cost=round_money(summary.total_cost),
        total_value=round_money(summary.total_value),
        total_return=round_money(summary.total_return),
        return_rate=round(result.return_rate, 4),
        sharing_amount=round_money(result.sharing_amount),
        guarantee_amount=round_money(result.guarantee_amount),
        bracket1=round_money(result.bracket1),
        bracket2=round_money(result.bracket2),
        target_value=round_money(result.target_value),
        config=config.to_dict(),
    )


@router.get("/{portfolio_id}/settlement", response_model=SettlementResponse)
async def get_settlement(
    portfolio_id: int,
    profit_threshold1: float | None = None,
    profit_threshold2: float | None = None,
    sharing_rate1: float | None = None,
    sharing_rate2: float | None = None,
    guarantee_threshold: float | None = None,
    db: AsyncSession = Depends(get_db),
):
    """Settlement against the stored config; query parameters override it for a what-if."""
    ledger, _ = await _open_ledger(db, portfolio_id)
    overrides = {
        "profit_threshold1": profit_threshold1,
        "profit_threshold2": profit_threshold2,
        "sharing_rate1": sharing_rate1,
        "sharing_rate2": sharing_rate2,
        "guarantee_threshold": guarantee_threshold,
    }
    values = ledger.settlement_config.to_dict()
    values.update({k: v for k, v in overrides.items() if v is not None})
    config = SettlementConfig.from_dict(values)
    try:
        validate_settlement_config(config)
    except InvalidSettlementConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _settlement_response(ledger, config)


@router.put("/{portfolio_id}/settlement", response_model=SettlementResponse)
async def update_settlement_config(
    portfolio_id: int,
    req: SettlementConfigRequest,
    db: AsyncSession = Depends(get_db),
):
    ledger, buffer = await _open_ledger(db, portfolio_id)
    config = SettlementConfig.from_dict(req.model_dump())
    try:
        validate_settlement_config(config)
    except InvalidSettlementConfigError as e:
        raise HTTPException(status_code=400, detail=str(e))
    ledger.set_settlement_config(config)
    await portfolio_service.flush(db, portfolio_id, buffer)
    return _settlement_response(ledger, config)


@router.get("/{portfolio_id}/distribution", response_model=list[DistributionRow])
async def get_profit_distribution(portfolio_id: int, db: AsyncSession = Depends(get_db)):
    """Per-asset-class profit contribution, best first."""
    ledger, _ = await _open_ledger(db, portfolio_id)
    return [
        DistributionRow(
            asset_class=row["asset_class"].name,
            profit=round_money(row["profit"]),
            value=round_money(row["value"]),
            cost=round_money(row["cost"]),
            return_percent=round(row["return_percent"], 4),
        )
        for row in profit_distribution(summarize(ledger))
    ]


@router.get("/{portfolio_id}/history")
async def get_portfolio_history(
    portfolio_id: int,
    period: str = "30d",
    db: AsyncSession = Depends(get_db),
):
    """Get daily portfolio value snapshots for chart display."""
    portfolio = await portfolio_service.get_portfolio(db, portfolio_id)
    if portfolio is None:
        raise HTTPException(status_code=404, detail="Portfolio not found")

    today = datetime.now()
    period_map = {
        "7d": today - timedelta(days=7),
        "30d": today - timedelta(days=30),
        "ytd": datetime(today.year, 1, 1),
        "1y": today - timedelta(days=365),
    }
    cutoff = period_map.get(period, today - timedelta(days=30))
    snapshots = await portfolio_service.get_history(
        db, portfolio_id, cutoff.strftime("%Y-%m-%d")
    )

    return {
        "dates": [s.snapshot_date for s in snapshots],
        "values": [s.total_value for s in snapshots],
        "costs": [s.total_cost for s in snapshots],
        "profit_pcts": [round(s.profit_pct, 4) for s in snapshots],
    }
