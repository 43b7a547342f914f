from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

CENT = Decimal("0.01")


def to_cents(value: Decimal | int | float | str) -> int:
    """Convert a decimal amount (dollars) into integer cents, rounding half up."""
    try:
        amount = Decimal(str(value).strip())
    except (InvalidOperation, ValueError) as exc:
        raise ValueError(f"Invalid money amount: {value!r}") from exc
    if not amount.is_finite():
        raise ValueError(f"Invalid money amount: {value!r}")
    return int((amount / CENT).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def apply_rate(cents: int, rate: Decimal) -> int:
    return int((Decimal(cents) * rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def to_decimal(cents: int) -> Decimal:
    return (Decimal(cents) * CENT).quantize(CENT)


def format_cents(cents: int | None) -> str | None:
    if cents is None:
        return None
    return f"{to_decimal(cents):.2f}"


def format_dollars(cents: int) -> str:
    return f"${to_decimal(cents):,.2f}"
