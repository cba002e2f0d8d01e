from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from vinimai.errors import ValidationError

# 3% charged to each side of every order. Not configurable per category.
PLATFORM_FEE_BPS = 300

CENT = Decimal("0.01")
MAX_AMOUNT = Decimal("99999999.99")  # Numeric(10, 2)


@dataclass(frozen=True)
class FeeBreakdown:
    amount: Decimal
    buyer_fee: Decimal
    seller_fee: Decimal
    platform_fee: Decimal
    buyer_total: Decimal
    seller_receives: Decimal

    def to_dict(self) -> dict:
        return {
            "amount": format_money(self.amount),
            "buyer_fee": format_money(self.buyer_fee),
            "seller_fee": format_money(self.seller_fee),
            "platform_fee": format_money(self.platform_fee),
            "buyer_total": format_money(self.buyer_total),
            "seller_receives": format_money(self.seller_receives),
        }


def quantize_money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def format_money(value: Decimal | int | float | None) -> str:
    if value is None:
        return "0.00"
    return str(quantize_money(Decimal(str(value))))


def parse_money(value, field: str = "amount", *, allow_zero: bool = False) -> Decimal:
    """Parse a client supplied amount into a paisa-precision Decimal.

    Accepts decimal strings and numbers. Floats go through ``str`` so that
    ``19.99`` stays ``19.99`` instead of its binary approximation.
    """
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required", fields={field: "required"})
    try:
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a decimal amount", fields={field: "invalid"})
    if not parsed.is_finite():
        raise ValidationError(f"{field} must be a decimal amount", fields={field: "invalid"})
    parsed = quantize_money(parsed)
    if parsed < 0 or (parsed == 0 and not allow_zero):
        raise ValidationError(f"{field} must be greater than zero", fields={field: "must_be_positive"})
    if parsed > MAX_AMOUNT:
        raise ValidationError(f"{field} is too large", fields={field: "too_large"})
    return parsed


def _bps_half_up(amount: Decimal, bps: int) -> Decimal:
    return quantize_money((amount * Decimal(int(bps))) / Decimal("10000"))


def compute_fees(amount) -> FeeBreakdown:
    base = parse_money(amount, "amount")
    fee = _bps_half_up(base, PLATFORM_FEE_BPS)
    return FeeBreakdown(
        amount=base,
        buyer_fee=fee,
        seller_fee=fee,
        platform_fee=fee * 2,
        buyer_total=base + fee,
        seller_receives=base - fee,
    )


def money_major_to_minor(amount) -> int:
    try:
        parsed = Decimal(str(amount or 0))
    except (InvalidOperation, ValueError):
        parsed = Decimal("0")
    minor = (parsed * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return max(0, int(minor))


def money_minor_to_major(minor) -> Decimal:
    try:
        parsed = Decimal(int(minor or 0))
    except (InvalidOperation, ValueError, TypeError):
        parsed = Decimal("0")
    return quantize_money(parsed / Decimal("100"))
