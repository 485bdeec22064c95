"""
Validation utilities
"""
import re
from decimal import Decimal, InvalidOperation

from app.domain.errors import BillingValidationError


def normalize_decimal_input(value: str) -> str:
    """
    Normalize an amount: comma decimal separator becomes a dot

    Example:
        >>> normalize_decimal_input("100,50")
        "100.50"
    """
    return value.strip().replace(",", ".")


def validate_decimal_amount(value: str, max_decimal_places: int = 2) -> tuple[bool, str | None]:
    """
    Validate a money amount

    Returns:
        (is_valid, error_message)

    Example:
        >>> validate_decimal_amount("100.50")
        (True, None)
        >>> validate_decimal_amount("100.505")
        (False, "At most 2 decimal places")
    """
    normalized = normalize_decimal_input(value)

    try:
        Decimal(normalized)
    except (InvalidOperation, ValueError):
        return False, "Invalid amount"

    pattern = rf"^-?\d+(\.\d{{1,{max_decimal_places}}})?$"
    if not re.match(pattern, normalized):
        return False, f"At most {max_decimal_places} decimal places"

    return True, None


def to_amount(value, field: str = "amount", allow_zero: bool = True) -> Decimal:
    """
    Parse a non-negative money amount (str / int / float / Decimal)

    Raises:
        BillingValidationError: non-numeric, negative, or zero when not allowed
    """
    if value is None or value == "":
        raise BillingValidationError(f"{field} is required")
    if isinstance(value, bool):
        raise BillingValidationError(f"{field} must be a number")
    if isinstance(value, Decimal):
        amount = value
    else:
        is_valid, error = validate_decimal_amount(str(value))
        if not is_valid:
            raise BillingValidationError(f"{field}: {error}")
        amount = Decimal(normalize_decimal_input(str(value)))

    if amount < 0:
        raise BillingValidationError(f"{field} must not be negative")
    if not allow_zero and amount == 0:
        raise BillingValidationError(f"{field} must be greater than zero")
    return amount
