"""Currency and percentage helpers."""

# Quantity at or below which a holding is treated as closed.
EPSILON = 1e-3


def round_money(value: float) -> float:
    return round(value, 2)


def round_price(value: float) -> float:
    """NAV-style precision."""
    return round(value, 4)


def pct(part: float, whole: float) -> float:
    """Return part as a percentage of whole, 0 when whole is not positive."""
    if whole <= 0:
        return 0.0
    return part / whole * 100
