"""Identifier generation and loan arithmetic."""

from __future__ import annotations

import secrets
import uuid
from datetime import datetime, timedelta
from decimal import ROUND_HALF_EVEN, ROUND_HALF_UP, Decimal, localcontext

from .models import Payment

_DIVISION_PLACES = Decimal("1e-16")
_CENTS = Decimal("0.01")
_PRECISION = 400


def generate_id() -> str:
    """Return a new random UUID string."""
    return str(uuid.uuid4())


def generate_account_number() -> str:
    """Return an 18-digit account number with the retail prefix."""
    return f"40817810{secrets.randbelow(9_000_000_000) + 1_000_000_000:010d}"


def generate_card_number() -> str:
    """Return a card number starting with 4."""
    first = secrets.randbelow(9000) + 100
    groups = "".join(f"{secrets.randbelow(10000):04d}" for _ in range(3))
    return f"4{first:03d}{groups}"


def generate_cvv() -> str:
    """Return a three-digit card verification value."""
    return f"{secrets.randbelow(900) + 100:03d}"


def generate_expiry_date(now: datetime | None = None) -> tuple[int, int]:
    """Return (month, year) of a card issued at ``now``: four years ahead."""
    if now is None:
        now = datetime.now().astimezone()
    return now.month, now.year + 4


def add_months(moment: datetime, months: int) -> datetime:
    """Add calendar months, letting overflowing days roll into the next month."""
    year, month_index = divmod(moment.year * 12 + moment.month - 1 + months, 12)
    first = moment.replace(year=year, month=month_index + 1, day=1)
    return first + timedelta(days=moment.day - 1)


def _divide(numerator: Decimal, denominator: Decimal) -> Decimal:
    return (numerator / denominator).quantize(_DIVISION_PLACES, rounding=ROUND_HALF_UP)


def _monthly_rate(annual_rate: Decimal) -> Decimal:
    return _divide(_divide(annual_rate, Decimal(12)), Decimal(100))


def calculate_monthly_payment(loan_amount: Decimal, annual_rate: Decimal, term_months: int) -> Decimal:
    """Annuity payment for a loan, rounded to cents with banker's rounding."""
    if term_months <= 0:
        return Decimal(0)
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        monthly_rate = _monthly_rate(annual_rate)
        if monthly_rate.is_zero():
            return _divide(loan_amount, Decimal(term_months))
        growth = (Decimal(1) + monthly_rate) ** term_months
        numerator = monthly_rate * growth
        denominator = growth - 1
        if denominator.is_zero():
            return Decimal(0)
        payment = loan_amount * _divide(numerator, denominator)
        return payment.quantize(_CENTS, rounding=ROUND_HALF_EVEN)


def generate_payment_schedule(
    loan_amount: Decimal,
    annual_rate: Decimal,
    term_months: int,
    start_date: datetime,
    monthly_payment: Decimal,
) -> list[Payment]:
    """Build the monthly repayment schedule; the last payment clears the principal."""
    schedule: list[Payment] = []
    with localcontext() as ctx:
        ctx.prec = _PRECISION
        remaining = loan_amount
        monthly_rate = _monthly_rate(annual_rate)
        for month in range(1, term_months + 1):
            interest = (remaining * monthly_rate).quantize(_CENTS, rounding=ROUND_HALF_EVEN)
            principal = monthly_payment - interest
            if month == term_months or remaining - principal <= 0:
                principal = remaining
                monthly_payment = (principal + interest).quantize(_CENTS, rounding=ROUND_HALF_EVEN)
            schedule.append(
                Payment(
                    due_date=add_months(start_date, month),
                    amount=monthly_payment,
                    principal_part=principal,
                    interest_part=interest,
                )
            )
            remaining -= principal
            if remaining <= 0:
                break
    return schedule