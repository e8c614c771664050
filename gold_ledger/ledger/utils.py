# gold_ledger/ledger/utils.py

from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from gold_ledger.ledger.exceptions import InvalidAmountException

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


def to_decimal(value: Any) -> Decimal:
    """Parse a user supplied amount without rounding it"""
    if isinstance(value, bool) or value is None:
        raise InvalidAmountException(value, "Amount must be a number")
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise InvalidAmountException(value, "Amount must be a number")
    if not amount.is_finite():
        raise InvalidAmountException(value, "Amount must be finite")
    return amount


def quantize_amount(value: Decimal) -> Decimal:
    """Round to two decimal places (hundredths of a gram)"""
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def parse_positive_amount(value: Any) -> Decimal:
    """Parse, round and require a strictly positive amount"""
    amount = quantize_amount(to_decimal(value))
    if amount <= ZERO:
        raise InvalidAmountException(value, "Amount must be greater than zero")
    return amount


def exceeds_with_tolerance(requested: Decimal, limit: Decimal, tolerance: Decimal) -> bool:
    return requested > limit + tolerance


def floor_at_zero(value: Decimal) -> Decimal:
    return value if value > ZERO else ZERO


def build_receivable_correlative(prefix: str, record_number: str) -> str:
    """
    Receivable correlative from the smelting record number.

    AF/2025/NORTE/0007 -> <prefix>/NORTE/0007
    """
    parts = record_number.split("/")
    suffix = "/".join(parts[2:]) if len(parts) > 2 else record_number
    return f"{prefix}/{suffix}"


def build_payment_nomenclature(prefix: str, alliance_id: int, sequence: int, delivered_on: date) -> str:
    """Nomenclature of a payment event: <prefix>-<alliance>-<NNNN>/<MM>/<YYYY>"""
    return f"{prefix}-{alliance_id}-{sequence:04d}/{delivered_on.month:02d}/{delivered_on.year}"
