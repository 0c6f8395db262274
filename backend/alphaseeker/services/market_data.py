"""Price lookup for holdings.

Resolution order for a code:
    1. Eastmoney pingzhongdata script (six-digit CN funds and ETFs)
    2. akshare open-fund NAV table
    3. Static fallback table for instruments Eastmoney does not cover
"""

import json
import logging
import re
import threading
import time
from collections.abc import Iterable
from dataclasses import dataclass

import akshare as ak
import httpx
import pandas as pd

from alphaseeker.config import LOOKUP_DELAY, LOOKUP_TIMEOUT
from alphaseeker.core.ledger import normalize_symbol
from alphaseeker.core.types import Holding
from alphaseeker.services.cache import CacheService, price_cache

logger = logging.getLogger(__name__)

PINGZHONGDATA_URL = "https://fund.eastmoney.com/pingzhongdata/{code}.js"

_NAME_RE = re.compile(r'var\s+fS_name\s*=\s*"([^"]*)"')
_TREND_RE = re.compile(r"var\s+Data_netWorthTrend\s*=\s*(\[.*?\]);", re.S)


@dataclass(frozen=True)
class PriceQuote:
    name: str
    price: float


# Instruments Eastmoney does not cover (US stocks, crypto)
FALLBACK_PRICES: dict[str, tuple[str, float]] = {
    "QQQ": ("Invesco QQQ", 445.00),
    "NVDA": ("NVIDIA Corp", 920.00),
    "AAPL": ("Apple Inc", 175.00),
    "BTC": ("Bitcoin USD", 68000.00),
    "IBIT": ("iShares Bitcoin Trust", 38.50),
}


def parse_pingzhongdata(text: str) -> PriceQuote | None:
    """Extract the fund name and latest official NAV from a pingzhongdata script."""
    name_match = _NAME_RE.search(text)
    trend_match = _TREND_RE.search(text)
    if not name_match or not trend_match:
        return None
    try:
        trend = json.loads(trend_match.group(1))
    except ValueError:
        return None
    if not trend:
        return None
    try:
        price = float(trend[-1]["y"])
    except (KeyError, TypeError, ValueError):
        return None
    if price <= 0:
        return None
    return PriceQuote(name=name_match.group(1), price=price)


class MarketDataService:
    """Resolves names and prices for holding codes.

    Lookups are serialized: the upstream endpoints are rate sensitive.
    """

    def __init__(self, cache: CacheService | None = None):
        self._cache = cache if cache is not None else price_cache
        self._lock = threading.Lock()

    def get_pingzhongdata(self, code: str) -> PriceQuote | None:
        try:
            url = PINGZHONGDATA_URL.format(code=code)
            resp = httpx.get(
                url, params={"v": int(time.time() * 1000)}, timeout=LOOKUP_TIMEOUT
            )
            resp.raise_for_status()
            return parse_pingzhongdata(resp.text)
        except Exception as e:
            logger.error(f"Failed to fetch pingzhongdata for {code}: {e}")
            return None

    def get_fund_basic_info(self, fund_code: str) -> dict[str, str] | None:
        """Get fund name and type from akshare.

        Returns {fund_name, fund_type} or None.
        """
        try:
            df = ak.fund_name_em()
            row = df[df["基金代码"] == fund_code]
            if row.empty:
                return None
            first = row.iloc[0]
            return {
                "fund_name": str(first["基金简称"]),
                "fund_type": str(first["基金类型"]),
            }
        except Exception as e:
            logger.error(f"Failed to fetch fund basic info for {fund_code}: {e}")
            return None

    def get_fund_nav(self, fund_code: str) -> dict[str, float | str] | None:
        """Get the latest NAV for a fund.

        Returns {nav, nav_date} or None.
        """
        try:
            df = ak.fund_open_fund_info_em(symbol=fund_code, indicator="单位净值走势")
            if df.empty:
                return None
            navs = pd.to_numeric(df["单位净值"], errors="coerce")
            latest = df.iloc[-1]
            nav = navs.iloc[-1]
            if pd.isna(nav):
                return None
            return {"nav": float(nav), "nav_date": str(latest["净值日期"])}
        except Exception as e:
            logger.error(f"Failed to fetch NAV for {fund_code}: {e}")
            return None

    def _resolve(self, code: str) -> PriceQuote | None:
        if re.fullmatch(r"\d{6}", code):
            quote = self.get_pingzhongdata(code)
            if quote is not None:
                return quote
            nav_data = self.get_fund_nav(code)
            if nav_data is not None and nav_data["nav"] > 0:
                info = self.get_fund_basic_info(code)
                name = info["fund_name"] if info else code
                return PriceQuote(name=name, price=float(nav_data["nav"]))

        entry = FALLBACK_PRICES.get(code)
        if entry is not None:
            name, price = entry
            return PriceQuote(name=name, price=price)
        return None

    def lookup_asset(self, code: str) -> PriceQuote | None:
        """Resolve the official name and latest price for a code.

        Returns None when no source has a positive price.
        """
        code = normalize_symbol(code)
        if not code:
            return None
        with self._lock:
            return self._cache.get_or_load(f"price:{code}", lambda: self._resolve(code))

    def fetch_latest_prices(self, holdings: Iterable[Holding]) -> dict[str, float]:
        """Map holding id -> latest price, keeping the current price on failure."""
        prices: dict[str, float] = {}
        for i, holding in enumerate(holdings):
            if not holding.symbol:
                continue
            if i and LOOKUP_DELAY > 0:
                time.sleep(LOOKUP_DELAY)
            quote = self.lookup_asset(holding.symbol)
            if quote is not None and quote.price > 0:
                prices[holding.id] = quote.price
            else:
                prices[holding.id] = holding.current_price
        return prices


# Global instance
market_data_service = MarketDataService()
