"""Domain exceptions for the portfolio engine."""


class PortfolioError(Exception):
    """Base class for portfolio engine errors."""


class HoldingNotFoundError(PortfolioError):
    def __init__(self, holding_id: str):
        super().__init__(f"Holding not found: {holding_id}")
        self.holding_id = holding_id


class InvalidSettlementConfigError(PortfolioError):
    """Settlement parameters are negative or thresholds are inverted."""


class InvalidStrategyError(PortfolioError):
    """Target strategy has negative weights or a non-positive deviation."""
