"""Asset ledger: holdings, cash and cumulative realized P&L.

Buys merge into one holding per normalized symbol using a weighted-average
cost basis:

    cost' = (q_old * cost_old + q_new * cost_new) / (q_old + q_new)

Sells derive the quantity from the proceeds and execution price and book the
difference against the average cost as realized profit or loss. Inputs are
assumed to be validated by the caller.
"""

import logging
import re
import uuid
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol

from alphaseeker.core.errors import HoldingNotFoundError
from alphaseeker.core.money import EPSILON
from alphaseeker.core.types import (
    AssetClass,
    Holding,
    LedgerSnapshot,
    SettlementConfig,
    TargetStrategy,
    default_settlement_config,
    default_strategy,
)

logger = logging.getLogger(__name__)

_EXCHANGE_PREFIX = re.compile(r"^(sh|sz|of)", re.IGNORECASE)


def normalize_symbol(code: str) -> str:
    """Strip sh/sz/of exchange prefixes, trim and upper-case."""
    if not code:
        return ""
    return _EXCHANGE_PREFIX.sub("", code.strip()).strip().upper()


class SnapshotSink(Protocol):
    """Save port invoked after every ledger mutation."""

    def save(self, snapshot: LedgerSnapshot) -> None: ...


@dataclass(frozen=True)
class SellResult:
    holding_id: str
    quantity_sold: float
    cost_of_sold: float
    pnl: float
    remaining_quantity: float
    closed: bool
    oversold: bool


class AssetLedger:
    """Owns the holdings of one portfolio plus its cash and realized P&L.

    Single-writer: callers serialize mutations against one instance.
    """

    def __init__(self, sink: SnapshotSink | None = None):
        self._holdings: dict[str, Holding] = {}
        self.cash_balance = 0.0
        self.realized_profit = 0.0
        self.realized_loss = 0.0
        self.strategy: TargetStrategy = default_strategy()
        self.settlement_config: SettlementConfig = default_settlement_config()
        self._sink = sink

    @classmethod
    def from_snapshot(
        cls, snapshot: LedgerSnapshot, sink: SnapshotSink | None = None
    ) -> "AssetLedger":
        ledger = cls(sink=sink)
        for h in snapshot.holdings:
            holding = replace(h, symbol=normalize_symbol(h.symbol))
            ledger._holdings[holding.symbol] = holding
        ledger.cash_balance = snapshot.cash_balance
        ledger.realized_profit = snapshot.realized_profit
        ledger.realized_loss = snapshot.realized_loss
        ledger.strategy = snapshot.strategy
        ledger.settlement_config = snapshot.settlement_config
        return ledger

    # -- queries --

    def holdings(self) -> list[Holding]:
        return list(self._holdings.values())

    def get(self, holding_id: str) -> Holding:
        for holding in self._holdings.values():
            if holding.id == holding_id:
                return holding
        raise HoldingNotFoundError(holding_id)

    def find_by_symbol(self, symbol: str) -> Holding | None:
        return self._holdings.get(normalize_symbol(symbol))

    def snapshot(self) -> LedgerSnapshot:
        """Detached copy of the full ledger state for persistence."""
        return LedgerSnapshot(
            holdings=[replace(h) for h in self._holdings.values()],
            cash_balance=self.cash_balance,
            realized_profit=self.realized_profit,
            realized_loss=self.realized_loss,
            strategy=replace(self.strategy, allocations=dict(self.strategy.allocations)),
            settlement_config=replace(self.settlement_config),
        )

    # -- mutations --

    def apply_buy(
        self,
        symbol: str,
        asset_class: AssetClass,
        quantity: float,
        unit_cost: float,
        display_name: str | None = None,
        resolved_price: float | None = None,
        resolved_name: str | None = None,
    ) -> str:
        """Add a position or merge into the existing one; returns the holding id."""
        key = normalize_symbol(symbol)
        now = datetime.now().isoformat()
        existing = self._holdings.get(key)

        if existing is not None:
            total_qty = existing.quantity + quantity
            total_cost = existing.quantity * existing.cost_basis + quantity * unit_cost
            existing.cost_basis = total_cost / total_qty if total_qty > 0 else 0.0
            existing.quantity = total_qty
            if resolved_price is not None and resolved_price > 0:
                existing.current_price = resolved_price
            if resolved_name:
                existing.display_name = resolved_name
            existing.last_updated = now
            holding_id = existing.id
        else:
            price = unit_cost
            if resolved_price is not None and resolved_price > 0:
                price = resolved_price
            holding = Holding(
                id=uuid.uuid4().hex,
                symbol=key,
                display_name=resolved_name or display_name or key,
                asset_class=asset_class,
                quantity=quantity,
                cost_basis=unit_cost,
                current_price=max(price, 0.0),
                last_updated=now,
            )
            self._holdings[key] = holding
            holding_id = holding.id

        self._notify()
        return holding_id

    def apply_sell(
        self,
        holding_id: str,
        proceeds: float,
        execution_price: float | None = None,
    ) -> SellResult:
        """Sell `proceeds` worth of a holding at `execution_price`.

        A non-positive price sells zero quantity, so the whole proceeds are
        booked as profit. Selling more than is held clamps the position at
        zero and sets `oversold` on the result.
        """
        holding = self.get(holding_id)
        price = holding.current_price if execution_price is None else execution_price

        quantity_sold = proceeds / price if price > 0 else 0.0
        cost_of_sold = quantity_sold * holding.cost_basis
        pnl = proceeds - cost_of_sold
        oversold = quantity_sold - holding.quantity > EPSILON
        if oversold:
            logger.warning(
                f"Oversell on {holding.symbol}: sold {quantity_sold:.4f}, "
                f"held {holding.quantity:.4f}"
            )

        holding.quantity = max(0.0, holding.quantity - quantity_sold)
        holding.last_updated = datetime.now().isoformat()
        closed = holding.quantity <= EPSILON
        if closed:
            del self._holdings[holding.symbol]

        self.cash_balance += proceeds
        if pnl > 0:
            self.realized_profit += pnl
        else:
            self.realized_loss += abs(pnl)

        self._notify()
        return SellResult(
            holding_id=holding_id,
            quantity_sold=quantity_sold,
            cost_of_sold=cost_of_sold,
            pnl=pnl,
            remaining_quantity=0.0 if closed else holding.quantity,
            closed=closed,
            oversold=oversold,
        )

    def set_cash_balance(self, amount: float) -> None:
        self.cash_balance = amount
        self._notify()

    def record_manual_loss(self, amount: float) -> None:
        """Book an out-of-band write-off."""
        self.realized_loss += amount
        self._notify()

    def remove_holding(self, holding_id: str) -> Holding:
        """Drop a position without selling it. Realized P&L is untouched."""
        holding = self.get(holding_id)
        del self._holdings[holding.symbol]
        self._notify()
        return holding

    def update_prices(self, prices: dict[str, float]) -> int:
        """Apply refreshed prices keyed by holding id.

        Missing or non-positive prices keep the last known price.
        Returns the number of holdings whose price was set.
        """
        now = datetime.now().isoformat()
        updated = 0
        for holding in self._holdings.values():
            price = prices.get(holding.id)
            if price is None or price <= 0:
                continue
            holding.current_price = price
            holding.last_updated = now
            updated += 1
        self._notify()
        return updated

    def set_strategy(self, strategy: TargetStrategy) -> None:
        self.strategy = strategy
        self._notify()

    def set_settlement_config(self, config: SettlementConfig) -> None:
        self.settlement_config = config
        self._notify()

    def _notify(self) -> None:
        if self._sink is not None:
            self._sink.save(self.snapshot())
