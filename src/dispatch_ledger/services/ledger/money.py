"""Parsing of client-supplied amounts and payment methods."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation

from ...exceptions import ValidationError
from ...models.domain import PaymentMethod

ZERO = Decimal("0")
CENT = Decimal("0.01")
# Largest value a numeric(14, 2) column holds. Fourteen significant digits also
# survive the round trip through a JSON number.
MAX_AMOUNT = Decimal("999999999999.99")


def parse_amount(value) -> Decimal:
    """Coerce a client-supplied amount to a non-negative Decimal. Missing means zero."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise ValidationError(f"Invalid amount: {value!r}", {"amount": str(value)})
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ValidationError(f"Invalid amount: {value!r}", {"amount": str(value)}) from exc
    if not amount.is_finite() or amount < ZERO:
        raise ValidationError(f"Amount must be zero or positive, got {value}", {"amount": str(value)})
    if amount > MAX_AMOUNT:
        raise ValidationError(f"Amount {value} exceeds the maximum of {MAX_AMOUNT}", {"amount": str(value)})
    if amount != amount.quantize(CENT):
        raise ValidationError(f"Amount {value} has more than two decimal places", {"amount": str(value)})
    return amount


def parse_payment_method(value) -> PaymentMethod:
    if isinstance(value, PaymentMethod):
        return value
    try:
        return PaymentMethod(str(value or PaymentMethod.CASH.value).lower())
    except ValueError as exc:
        raise ValidationError(f"Unknown payment method: {value!r}", {"payment_method": value}) from exc
