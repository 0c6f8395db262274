"""Parse pasted holding lists.

Each line is `name,type,code,cost,quantity`; full-width commas (，) work too.
Lines that do not parse, or carry a non-positive quantity or a negative cost,
are skipped.
"""

import logging
import re
from dataclasses import dataclass

from alphaseeker.core.ledger import normalize_symbol
from alphaseeker.core.types import AssetClass

logger = logging.getLogger(__name__)

_SEPARATOR = re.compile(r"[,，]")


@dataclass(frozen=True)
class BatchEntry:
    name: str
    asset_class: AssetClass
    code: str
    unit_cost: float
    quantity: float


def parse_line(line: str) -> BatchEntry | None:
    parts = [p.strip() for p in _SEPARATOR.split(line)]
    if len(parts) < 5:
        return None
    name, type_label, code, cost_str, qty_str = parts[:5]
    if not name:
        return None
    try:
        unit_cost = float(cost_str)
        quantity = float(qty_str)
    except ValueError:
        return None
    if quantity <= 0 or unit_cost < 0:
        return None
    return BatchEntry(
        name=name,
        asset_class=AssetClass.from_label(type_label),
        code=normalize_symbol(code) or name,
        unit_cost=unit_cost,
        quantity=quantity,
    )


def parse_batch(text: str) -> tuple[list[BatchEntry], int]:
    """Return the parsed entries and the number of non-blank lines skipped."""
    entries = []
    skipped = 0
    for line in text.splitlines():
        if not line.strip():
            continue
        entry = parse_line(line)
        if entry is None:
            skipped += 1
            continue
        entries.append(entry)
    if skipped:
        logger.info(f"Batch import skipped {skipped} unparseable lines")
    return entries, skipped
