"""
Billing rules - pure functions shared by every use case

Month entries and subscribers are passed in as plain objects (ORM rows or
anything exposing the same attributes); nothing here touches the database.
"""
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable

from app.domain.calendar import CivilClock
from app.domain.errors import BillingValidationError

# Subscriber statuses
STATUS_PAID = "paid"
STATUS_PARTIAL = "partial"
STATUS_UNPAID = "unpaid"
STATUS_PENDING = "pending"
STATUS_SUPERBALANCE = "superbalance"
STATUS_REVERSED = "reversed"

SUBSCRIBER_STATUSES = (
    STATUS_PAID, STATUS_PARTIAL, STATUS_UNPAID,
    STATUS_PENDING, STATUS_SUPERBALANCE, STATUS_REVERSED,
)
MONTH_STATUSES = (STATUS_UNPAID, STATUS_PARTIAL, STATUS_PAID, STATUS_PENDING, STATUS_REVERSED)

SERVICE_ACTIVE = "active"
SERVICE_INACTIVE = "inactive"

# Payment methods
METHOD_CASH = "Cash"
METHOD_BANK = "Bank Transfer"
METHOD_NOT_PAID = "Not Paid"
METHOD_PENDING = "Pending"
PAYMENT_METHODS = (METHOD_CASH, METHOD_BANK)

PAYMENT_MODE_NOW = "now"
PAYMENT_MODE_LATER = "later"

ZERO = Decimal("0")


def month_remaining(package_fee: Decimal, discount: Decimal, paid_amount: Decimal) -> Decimal:
    """remaining = max(0, fee - discount - paid)"""
    return max(ZERO, Decimal(package_fee) - Decimal(discount) - Decimal(paid_amount))


def month_status(paid_amount: Decimal, remaining_amount: Decimal) -> str:
    """Status implied by the amounts of a non-reversed month."""
    if remaining_amount <= 0:
        return STATUS_PAID
    if paid_amount > 0:
        return STATUS_PARTIAL
    return STATUS_UNPAID


def is_reversed(month) -> bool:
    return month.refund_date is not None or month.status == STATUS_REVERSED


def active_months(months: Iterable) -> list:
    """Months that count towards balances (reversed ones are excluded)."""
    return [m for m in months if not is_reversed(m)]


def total_outstanding(months: Iterable) -> Decimal:
    return sum(
        (Decimal(m.remaining_amount) for m in active_months(months) if m.remaining_amount > 0),
        ZERO,
    )


def total_paid(months: Iterable) -> Decimal:
    return sum((Decimal(m.paid_amount) for m in active_months(months)), ZERO)


def derive_subscriber_status(months: list) -> str:
    """
    Coarse subscriber status from voucher months.

    An open unpaid month always wins over paid/partial ones: such a subscriber
    must surface in the unpaid view.
    """
    if months and all(is_reversed(m) for m in months):
        return STATUS_REVERSED

    live = active_months(months)
    remaining = total_outstanding(live)
    if remaining <= 0:
        return STATUS_PAID
    if any(m.status == STATUS_UNPAID for m in live):
        return STATUS_UNPAID
    if total_paid(live) > 0:
        return STATUS_PARTIAL
    return STATUS_UNPAID


@dataclass
class CreationBilling:
    """Status and amounts of a freshly created subscriber"""
    status: str
    paid_amount: Decimal
    remaining_amount: Decimal
    first_month_paid: bool


def creation_billing(
    payment_mode: str,
    package_fee: Decimal,
    discount: Decimal,
    number_of_months: int,
    explicit_status: str | None = None,
) -> CreationBilling:
    """
    Status chosen at signup, before any voucher activity.

    - explicit "pending": classification suppressed, nothing paid
    - "now": first month paid; multi-month prepay leaves the rest open (partial)
    - "later": unpaid, whatever the expiry date
    """
    monthly = max(ZERO, Decimal(package_fee) - Decimal(discount))
    total = monthly * number_of_months

    if explicit_status == STATUS_PENDING:
        return CreationBilling(STATUS_PENDING, ZERO, total, False)
    if payment_mode == PAYMENT_MODE_NOW:
        status = STATUS_PARTIAL if number_of_months > 1 else STATUS_PAID
        return CreationBilling(status, monthly, total - monthly, True)
    if payment_mode == PAYMENT_MODE_LATER:
        return CreationBilling(STATUS_UNPAID, ZERO, total, False)
    raise BillingValidationError(f"payment_mode must be 'now' or 'later', got {payment_mode!r}")


def is_expiring_soon(expiry_date: date | None, clock: CivilClock) -> bool:
    """Expiry is tomorrow, or today while the rollover cutoff has not passed yet."""
    if expiry_date is None:
        return False
    if expiry_date == clock.tomorrow():
        return True
    return expiry_date == clock.today() and not clock.cutoff_passed()


def income_bucket(method: str | None) -> str:
    """'bank' for bank transfers, 'cash' for everything else."""
    if method and method.strip().lower() in ("bank transfer", "bank"):
        return "bank"
    return "cash"
