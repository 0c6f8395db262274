"""Background jobs: nightly price refresh and daily valuation snapshots."""

import asyncio
import logging
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from alphaseeker.config import PRICE_REFRESH_TIME, SNAPSHOT_TIME
from alphaseeker.models.database import async_session_factory
from alphaseeker.services.market_data import market_data_service
from alphaseeker.services.portfolio import portfolio_service

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def _weekday_trigger(hhmm: str) -> CronTrigger:
    hour, minute = hhmm.split(":")
    return CronTrigger(hour=int(hour), minute=int(minute), day_of_week="mon-fri")


async def refresh_all_prices():
    """After official NAVs are published, refresh prices for every portfolio."""
    try:
        async with async_session_factory() as session:
            portfolios = await portfolio_service.list_portfolios(session)
            updated = 0
            for portfolio in portfolios:
                loaded = await portfolio_service.load_ledger(session, portfolio.id)
                if loaded is None:
                    continue
                ledger, buffer = loaded
                prices = await asyncio.to_thread(
                    market_data_service.fetch_latest_prices, ledger.holdings()
                )
                updated += ledger.update_prices(prices)
                await portfolio_service.flush(session, portfolio.id, buffer)
            logger.info(f"Refreshed {updated} holding prices across {len(portfolios)} portfolios")
    except Exception as e:
        logger.error(f"Failed to refresh prices: {e}")


async def save_portfolio_snapshots():
    """At market close, record each portfolio's valuation for the history chart."""
    try:
        async with async_session_factory() as session:
            portfolios = await portfolio_service.list_portfolios(session)
            today = datetime.now().strftime("%Y-%m-%d")
            for portfolio in portfolios:
                await portfolio_service.record_daily_snapshot(session, portfolio.id, today)
            logger.info(f"Saved portfolio snapshots for {len(portfolios)} portfolios")
    except Exception as e:
        logger.error(f"Failed to save portfolio snapshots: {e}")


def start_scheduler():
    """Start the background scheduler."""
    scheduler.add_job(
        save_portfolio_snapshots,
        trigger=_weekday_trigger(SNAPSHOT_TIME),
        id="save_portfolio_snapshots",
        replace_existing=True,
    )
    scheduler.add_job(
        refresh_all_prices,
        trigger=_weekday_trigger(PRICE_REFRESH_TIME),
        id="refresh_all_prices",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started: snapshots at {SNAPSHOT_TIME}, prices at {PRICE_REFRESH_TIME}"
    )


def stop_scheduler():
    """Stop the background scheduler."""
    if scheduler.running:
        scheduler.shutdown()
        logger.info("Scheduler stopped")
