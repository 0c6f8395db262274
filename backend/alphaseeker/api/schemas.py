"""Pydantic schemas for API request/response."""

from typing import Any

from pydantic import BaseModel, Field, field_validator

from alphaseeker.core.ledger import normalize_symbol
from alphaseeker.core.types import AssetClass


def _parse_asset_class(value: Any) -> Any:
    if isinstance(value, str):
        return AssetClass.parse(value)
    return value


class PortfolioCreateRequest(BaseModel):
    name: str


class PortfolioRenameRequest(BaseModel):
    name: str


class BuyRequest(BaseModel):
    code: str = Field(min_length=1)
    asset_class: AssetClass
    quantity: float = Field(gt=0)
    unit_cost: float = Field(ge=0)
    name: str | None = None
    lookup: bool = True  # resolve official name and latest price

    @field_validator("code")
    @classmethod
    def _code_not_blank(cls, value: str) -> str:
        if not normalize_symbol(value):
            raise ValueError("code is empty once the exchange prefix is stripped")
        return value

    @field_validator("asset_class", mode="before")
    @classmethod
    def _parse_class(cls, value: Any) -> Any:
        return _parse_asset_class(value)


class BatchBuyRequest(BaseModel):
    """One holding per line: name,type,code,cost,quantity."""

    text: str
    lookup: bool = True


class SellRequest(BaseModel):
    amount: float = Field(gt=0)
    price: float | None = Field(default=None, gt=0)


class CashRequest(BaseModel):
    amount: float


class LossRequest(BaseModel):
    amount: float = Field(gt=0)


class StrategyRequest(BaseModel):
    allocations: dict[AssetClass, float]
    max_deviation: float

    @field_validator("allocations", mode="before")
    @classmethod
    def _parse_keys(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {_parse_asset_class(k): v for k, v in value.items()}
        return value


class SettlementConfigRequest(BaseModel):
    profit_threshold1: float
    profit_threshold2: float
    sharing_rate1: float
    sharing_rate2: float
    guarantee_threshold: float


class PortfolioResponse(BaseModel):
    id: int
    name: str
    created_at: str


class HoldingResponse(BaseModel):
    id: str
    code: str
    name: str
    asset_class: str
    quantity: float
    cost_basis: float
    current_price: float
    market_value: float
    cost: float
    profit: float
    profit_pct: float
    weight: float
    last_updated: str


class TypeDetailResponse(BaseModel):
    value: float
    cost: float
    profit: float
    return_percent: float


class PortfolioDetailResponse(BaseModel):
    id: int
    name: str
    created_at: str
    holdings: list[HoldingResponse]
    cash_balance: float
    total_value: float
    total_cost: float
    total_return: float
    total_return_pct: float
    realized_profit: float
    realized_loss: float
    investable_cash: float
    allocation: dict[str, float]
    type_details: dict[str, TypeDetailResponse]


class BuyResponse(BaseModel):
    status: str
    holding_id: str
    code: str
    name: str
    quantity: float
    cost_basis: float
    current_price: float


class BatchBuyResponse(BaseModel):
    added: int
    skipped: int
    holding_ids: list[str]


class SellResponse(BaseModel):
    holding_id: str
    quantity_sold: float
    cost_of_sold: float
    pnl: float
    remaining_quantity: float
    closed: bool
    oversold: bool
    cash_balance: float


class DeviationResponse(BaseModel):
    asset_class: str
    current_pct: float
    target_pct: float
    relative_deviation: float | None  # None when the target is 0 and we hold some
    status: str


class StrategyReportResponse(BaseModel):
    max_deviation: float
    investable_cash: float
    target_cash: float
    deviations: list[DeviationResponse]


class SettlementResponse(BaseModel):
    total_cost: float
    total_value: float
    total_return: float
    return_rate: float
    sharing_amount: float
    guarantee_amount: float
    bracket1: float
    bracket2: float
    target_value: float
    config: dict[str, float]


class DistributionRow(BaseModel):
    asset_class: str
    profit: float
    value: float
    cost: float
    return_percent: float
