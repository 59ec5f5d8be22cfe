"""
Module: recurrence_kernel.db.types
Responsibility: Amount helpers shared by models, domain, and services.

Invariants enforced:
    - Amounts are Decimal with explicit precision.  No floats anywhere.
    - An amount accepted by the engine is finite and strictly positive.
"""

from decimal import Decimal, InvalidOperation


def to_money(value: object) -> Decimal:
    """
    Coerce a user-supplied amount to Decimal.

    Floats are converted through ``str`` so ``0.1`` becomes ``Decimal("0.1")``
    rather than its binary expansion.

    Raises:
        ValueError: If the value is not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise ValueError(f"Not a monetary amount: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a monetary amount: {value!r}") from exc


def is_positive_amount(value: Decimal) -> bool:
    """True when value is finite and strictly greater than zero."""
    return value.is_finite() and value > 0
