"""Input validation rules shared by the risk profile and the coordinator."""

from __future__ import annotations

import math
from typing import Optional, Union

from riskledger.utils.exceptions import ValidationError

NumericInput = Union[str, int, float, None]


def parse_number(field_name: str, value: NumericInput) -> float:
    """Parse user input into a finite float or raise ValidationError."""
    if value is None:
        raise ValidationError(f"{field_name} is required", code="REQUIRED")
    if isinstance(value, bool):
        raise ValidationError(f"{field_name} must be a valid number", code="NOT_A_NUMBER")
    if isinstance(value, str):
        text = value.strip()
        if not text:
            raise ValidationError(f"{field_name} is required", code="REQUIRED")
        try:
            number = float(text)
        except ValueError:
            raise ValidationError(f"{field_name} must be a valid number", code="NOT_A_NUMBER") from None
    else:
        number = float(value)
    if math.isnan(number) or math.isinf(number):
        raise ValidationError(f"{field_name} must be a finite number", code="NOT_FINITE")
    return number


def validate_numeric(
    field_name: str,
    value: NumericInput,
    min_value: Optional[float] = None,
    max_value: Optional[float] = None,
    message: Optional[str] = None,
) -> float:
    number = parse_number(field_name, value)
    if min_value is not None and number < min_value:
        raise ValidationError(message or f"{field_name} must be at least {min_value}", code="OUT_OF_RANGE")
    if max_value is not None and number > max_value:
        raise ValidationError(message or f"{field_name} must be at most {max_value}", code="OUT_OF_RANGE")
    return number


def validate_account_balance(value: NumericInput) -> float:
    return validate_numeric(
        "Account balance", value, min_value=0.0,
        message="Account balance must be a positive number",
    )


def validate_max_drawdown(value: NumericInput, account_balance: float) -> float:
    max_drawdown = validate_numeric(
        "Max drawdown", value, min_value=0.0,
        message="Max drawdown must be a positive number",
    )
    if max_drawdown > account_balance:
        raise ValidationError("Max drawdown cannot exceed account balance", code="DRAWDOWN_TOO_HIGH")
    return max_drawdown


def validate_loss_percentage(value: NumericInput) -> float:
    pct = parse_number("Loss percentage per trade", value)
    if pct <= 0 or pct > 100:
        raise ValidationError("Loss per trade must be between 0 and 100", code="OUT_OF_RANGE")
    return pct


def validate_trade_result(value: NumericInput) -> float:
    return parse_number("Trade result", value)
