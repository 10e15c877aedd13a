"""Input schemas for buyer quotes and provider commitments."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional

from pydantic import BaseModel, Field, ValidationError

MAX_COVERAGE_BTC = 100
MAX_LIQUIDITY_BTC = 1000
MAX_PERIOD_DAYS = 365


class BuyerParameters(BaseModel):
    """Protection a buyer asks to be quoted for."""

    coverage_amount: float = Field(..., gt=0, le=MAX_COVERAGE_BTC, description="BTC to protect")
    strike_price: float = Field(..., gt=0, description="Protected value in USD")
    premium: float = Field(..., ge=0, description="Premium in USD")
    duration_days: int = Field(..., ge=1, le=MAX_PERIOD_DAYS, description="Protection period")
    bitcoin_price: Optional[float] = Field(None, gt=0, description="Spot BTC price in USD")


class ProviderParameters(BaseModel):
    """Capital a liquidity provider offers to commit."""

    liquidity_amount: float = Field(..., gt=0, le=MAX_LIQUIDITY_BTC, description="BTC committed")
    risk_tolerance: float = Field(..., ge=0, le=1, description="0 is most conservative")
    expected_yield: float = Field(..., ge=0, description="Target yield as a ratio")
    lock_period_days: int = Field(..., ge=1, le=MAX_PERIOD_DAYS, description="Lock-up period")
    bitcoin_price: Optional[float] = Field(None, gt=0, description="Spot BTC price in USD")


@dataclass(frozen=True)
class ValidationResult:
    success: bool
    data: dict[str, Any] | None
    errors: dict[str, list[str]] | None


def _format_errors(exc: ValidationError) -> dict[str, list[str]]:
    errors: dict[str, list[str]] = {}
    for error in exc.errors():
        field_name = ".".join(str(part) for part in error["loc"]) or "_root"
        errors.setdefault(field_name, []).append(error["msg"])
    return errors


def _validate(model: type[BaseModel], params: dict[str, Any]) -> ValidationResult:
    try:
        parsed = model.model_validate(params)
    except ValidationError as exc:
        return ValidationResult(success=False, data=None, errors=_format_errors(exc))
    return ValidationResult(success=True, data=parsed.model_dump(exclude_none=True), errors=None)


def validate_buyer_parameters(params: dict[str, Any]) -> ValidationResult:
    return _validate(BuyerParameters, params)


def validate_provider_parameters(params: dict[str, Any]) -> ValidationResult:
    return _validate(ProviderParameters, params)
