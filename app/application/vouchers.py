"""
Voucher ledger use cases - month entries, payments, reversals.

Every mutation:
  1. locks the subscriber row
  2. changes the voucher months and recomputes remaining amounts
  3. re-derives the subscriber status
  4. commits, then settles income in a separate commit (see settle_income)
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from decimal import Decimal

from sqlalchemy.orm import Session

from app.application.clock import get_clock
from app.application.income import IncomeAdjustment, settle_income, CREDIT, DEBIT
from app.application.persistence import commit, lock_subscriber
from app.application.status_engine import load_months, sync_subscriber
from app.domain.billing import (
    month_remaining, month_status, is_reversed, income_bucket, total_outstanding as _outstanding,
    STATUS_PENDING, STATUS_REVERSED, STATUS_UNPAID, MONTH_STATUSES,
    METHOD_CASH, METHOD_BANK, METHOD_NOT_PAID, ZERO,
)
from app.domain.calendar import CivilClock
from app.domain.errors import NotFoundError, InvalidStateError, BillingValidationError
from app.infrastructure.db.models import (
    SubscriberModel, VoucherModel, VoucherMonthModel, MonthPaymentModel, RefundRecordModel,
)
from app.utils.validation import to_amount

logger = logging.getLogger(__name__)


@dataclass
class PaymentInput:
    amount: Decimal
    method: str
    received_by: str
    paid_at: datetime | None = None


@dataclass
class MonthInput:
    """Incoming month data for append-or-merge"""
    label: str
    package_fee: Decimal = ZERO
    discount: Decimal = ZERO
    paid_amount: Decimal | None = None
    status: str | None = None
    payment_method: str | None = None
    received_by: str | None = None
    payment_history: list[PaymentInput] | None = None
    charge_date: date | None = None


@dataclass
class LedgerResult:
    subscriber_id: int
    subscriber_status: str
    months: list[VoucherMonthModel] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)


# ============================================================================
# Helpers
# ============================================================================


def normalize_method(method: str | None) -> str:
    """Accept "cash"/"bank"/"Bank Transfer" in any case."""
    value = (method or "").strip().lower()
    if value == "cash":
        return METHOD_CASH
    if value in ("bank", "bank transfer"):
        return METHOD_BANK
    raise BillingValidationError(f"Payment method must be Cash or Bank Transfer, got {method!r}")


def get_voucher(db: Session, subscriber_id: int) -> VoucherModel:
    db.flush()
    voucher = db.query(VoucherModel).filter(VoucherModel.subscriber_id == subscriber_id).first()
    if not voucher:
        raise NotFoundError(f"Voucher for subscriber {subscriber_id} not found")
    return voucher


def ensure_voucher(db: Session, sub: SubscriberModel) -> VoucherModel:
    """Fetch-or-create the subscriber's single voucher."""
    db.flush()
    voucher = db.query(VoucherModel).filter(VoucherModel.subscriber_id == sub.id).first()
    if voucher is None:
        voucher = VoucherModel(
            subscriber_id=sub.id,
            subscriber_name=sub.name,
            recharge_date=sub.recharge_date,
            expiry_date=sub.expiry_date,
        )
        db.add(voucher)
        db.flush()
    return voucher


def find_month(db: Session, voucher: VoucherModel, label: str) -> VoucherMonthModel:
    db.flush()
    month = db.query(VoucherMonthModel).filter(
        VoucherMonthModel.voucher_id == voucher.id,
        VoucherMonthModel.label == label.strip(),
    ).first()
    if not month:
        raise NotFoundError(f"Month {label!r} not found in voucher")
    return month


def month_payments(db: Session, month_id: int) -> list[MonthPaymentModel]:
    db.flush()
    return db.query(MonthPaymentModel).filter(
        MonthPaymentModel.month_id == month_id,
    ).order_by(MonthPaymentModel.paid_at, MonthPaymentModel.id).all()


def recompute(month: VoucherMonthModel) -> None:
    """Restore remaining = max(0, fee - discount - paid) and a matching status."""
    month.remaining_amount = month_remaining(month.package_fee, month.discount, month.paid_amount)
    if is_reversed(month):
        return
    if month.status == STATUS_PENDING and month.paid_amount == 0 and month.remaining_amount > 0:
        return
    month.status = month_status(Decimal(month.paid_amount), month.remaining_amount)


def income_attribution(db: Session, month: VoucherMonthModel) -> list[IncomeAdjustment]:
    """
    Debits that undo the income a month brought in.

    Walks the payment history; whatever the history does not explain is
    attributed to the month's receiver.
    """
    left = Decimal(month.paid_amount)
    out = []
    for p in month_payments(db, month.id):
        if left <= 0:
            break
        portion = min(Decimal(p.amount), left)
        out.append(IncomeAdjustment(DEBIT, p.received_by, portion, p.method))
        left -= portion
    if left > 0:
        out.append(IncomeAdjustment(DEBIT, month.received_by, left, month.payment_method))
    return out


def _attributed(db: Session, month: VoucherMonthModel) -> dict[tuple[str, str], Decimal]:
    """Income a month has brought in, per (receiver, bucket)."""
    totals: dict[tuple[str, str], Decimal] = {}
    for adj in income_attribution(db, month):
        key = ((adj.receiver or "").strip(), income_bucket(adj.method))
        totals[key] = totals.get(key, ZERO) + adj.amount
    return totals


def income_changes(before: dict, after: dict) -> list[IncomeAdjustment]:
    """Credits and debits that move income from one attribution to the other."""
    out = []
    for receiver, bucket in sorted(set(before) | set(after)):
        delta = after.get((receiver, bucket), ZERO) - before.get((receiver, bucket), ZERO)
        if delta == 0:
            continue
        method = METHOD_BANK if bucket == "bank" else METHOD_CASH
        out.append(IncomeAdjustment(CREDIT if delta > 0 else DEBIT, receiver, abs(delta), method))
    return out


def total_outstanding(db: Session, voucher: VoucherModel) -> Decimal:
    """Open balance over non-reversed months."""
    return _outstanding(load_months(db, voucher.id))


def _paid_at(value, clock: CivilClock) -> datetime:
    if value is None:
        return clock.now()
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=clock.tz)
    d = clock.parse(value)
    return datetime.combine(d, time(0, 0), tzinfo=clock.tz)


# ============================================================================
# Use cases
# ============================================================================


class AppendOrMergeMonthsUseCase:
    """
    Merge incoming month data into the voucher.

    Existing months keep their package_fee/discount; only payment fields are
    overlaid. A later rate change therefore never rewrites historical charges.
    Whatever the overlay changes in a month's attributed payments is credited
    or debited to the receivers, so a later reversal undoes exactly that.
    """

    def __init__(self, db: Session, clock: CivilClock | None = None):
        self.db = db
        self.clock = clock or get_clock()

    def execute(self, subscriber_id: int, incoming: list[MonthInput]) -> LedgerResult:
        labels = [m.label.strip() for m in incoming]
        if any(not label for label in labels):
            raise BillingValidationError("Month label is required")
        if len(set(labels)) != len(labels):
            raise BillingValidationError("Duplicate month labels in request")
        for m in incoming:
            if m.status is not None and m.status not in MONTH_STATUSES:
                raise BillingValidationError(f"Unknown month status {m.status!r}")
            if m.status == STATUS_REVERSED:
                raise BillingValidationError("Use the reversal operation to reverse a month")

        sub = lock_subscriber(self.db, subscriber_id)
        voucher = ensure_voucher(self.db, sub)
        existing = {m.label: m for m in load_months(self.db, voucher.id)}

        touched = []
        adjustments = []
        for data in incoming:
            label = data.label.strip()
            month = existing.get(label)
            if month is None:
                month = VoucherMonthModel(
                    voucher_id=voucher.id,
                    label=label,
                    package_fee=to_amount(data.package_fee, "package_fee"),
                    discount=to_amount(data.discount, "discount"),
                    paid_amount=ZERO,
                    remaining_amount=ZERO,
                    status=STATUS_UNPAID,
                    payment_method=METHOD_NOT_PAID,
                    received_by="",
                    charge_date=data.charge_date or self.clock.today(),
                )
                self.db.add(month)
                self.db.flush()
                existing[label] = month
            elif is_reversed(month):
                raise InvalidStateError(f"Month {label!r} is reversed")

            before = _attributed(self.db, month)
            self._overlay(month, data)
            adjustments.extend(income_changes(before, _attributed(self.db, month)))
            touched.append(month)

        status = sync_subscriber(self.db, sub, self.clock)
        commit(self.db)
        logger.info("Merged %d months into voucher of subscriber %s", len(touched), subscriber_id)

        warnings = settle_income(self.db, adjustments)
        return LedgerResult(subscriber_id, status, touched, warnings)

    def _overlay(self, month: VoucherMonthModel, data: MonthInput) -> None:
        history = data.payment_history
        if history is not None:
            self.db.query(MonthPaymentModel).filter(
                MonthPaymentModel.month_id == month.id,
            ).delete(synchronize_session="fetch")
            for p in history:
                self.db.add(MonthPaymentModel(
                    month_id=month.id,
                    amount=to_amount(p.amount, allow_zero=False),
                    method=normalize_method(p.method),
                    received_by=p.received_by or "",
                    paid_at=_paid_at(p.paid_at, self.clock),
                ))

        if data.paid_amount is not None:
            month.paid_amount = to_amount(data.paid_amount, "paid_amount")
        elif history is not None:
            month.paid_amount = sum((to_amount(p.amount) for p in history), ZERO)

        if data.payment_method is not None:
            month.payment_method = data.payment_method
        if data.received_by is not None:
            month.received_by = data.received_by
        if data.status is not None:
            month.status = data.status
        recompute(month)


class RecordPaymentUseCase:
    def __init__(self, db: Session, clock: CivilClock | None = None):
        self.db = db
        self.clock = clock or get_clock()

    def execute(
        self,
        subscriber_id: int,
        month_label: str,
        amount,
        method: str,
        receiver: str,
        paid_on=None,
    ) -> LedgerResult:
        amount = to_amount(amount, allow_zero=False)
        method = normalize_method(method)
        receiver = (receiver or "").strip()
        if not receiver:
            raise BillingValidationError("receiver is required")

        sub = lock_subscriber(self.db, subscriber_id)
        voucher = get_voucher(self.db, subscriber_id)
        month = find_month(self.db, voucher, month_label)

        if is_reversed(month):
            raise InvalidStateError(f"Month {month.label!r} is reversed")
        if month.remaining_amount <= 0:
            raise InvalidStateError(f"Month {month.label!r} is already paid")
        if amount > month.remaining_amount:
            raise InvalidStateError(
                f"Payment {amount} exceeds remaining {month.remaining_amount} for {month.label!r}"
            )

        self.db.add(MonthPaymentModel(
            month_id=month.id,
            amount=amount,
            method=method,
            received_by=receiver,
            paid_at=_paid_at(paid_on, self.clock),
        ))
        month.paid_amount = Decimal(month.paid_amount) + amount
        month.payment_method = method
        month.received_by = receiver
        recompute(month)

        status = sync_subscriber(self.db, sub, self.clock)
        commit(self.db)
        logger.info(
            "Payment %s (%s) by %s for subscriber %s, %s: month now %s",
            amount, method, receiver, subscriber_id, month.label, month.status,
        )

        warnings = settle_income(self.db, [IncomeAdjustment(CREDIT, receiver, amount, method)])
        return LedgerResult(subscriber_id, status, [month], warnings)


class ReverseMonthsUseCase:
    def __init__(self, db: Session, clock: CivilClock | None = None):
        self.db = db
        self.clock = clock or get_clock()

    def execute(self, subscriber_id: int, labels: list[str]) -> LedgerResult:
        labels = [label.strip() for label in labels]
        if not labels:
            raise BillingValidationError("At least one month is required")
        if len(set(labels)) != len(labels):
            raise BillingValidationError("Duplicate month labels in request")

        sub = lock_subscriber(self.db, subscriber_id)
        voucher = get_voucher(self.db, subscriber_id)
        months = [find_month(self.db, voucher, label) for label in labels]
        for month in months:
            if is_reversed(month):
                raise InvalidStateError(f"Month {month.label!r} is already reversed")

        now = self.clock.now()
        adjustments = []
        audit = []
        total = ZERO
        for month in months:
            adjustments.extend(income_attribution(self.db, month))
            refunded = Decimal(month.paid_amount) + Decimal(month.remaining_amount)
            audit.append({
                "label": month.label,
                "package_fee": str(month.package_fee),
                "discount": str(month.discount),
                "paid_amount": str(month.paid_amount),
                "refunded_amount": str(refunded),
                "received_by": month.received_by,
            })
            month.refunded_amount = refunded
            month.refund_date = now
            month.status = STATUS_REVERSED
            total += refunded

        self.db.add(RefundRecordModel(
            subscriber_id=subscriber_id,
            voucher_id=voucher.id,
            months=audit,
            total_refunded=total,
        ))
        status = sync_subscriber(self.db, sub, self.clock)
        commit(self.db)
        logger.info("Reversed %s for subscriber %s", labels, subscriber_id)

        warnings = settle_income(self.db, adjustments)
        return LedgerResult(subscriber_id, status, months, warnings)


class ConvertToUnpaidUseCase:
    """
    Undo an erroneous payment: the month becomes unpaid again.

    On a reversed month this also clears the reversal; income was already
    debited by the reversal and is not debited twice.
    """

    def __init__(self, db: Session, clock: CivilClock | None = None):
        self.db = db
        self.clock = clock or get_clock()

    def execute(
        self,
        subscriber_id: int,
        month_label: str,
        new_fee=None,
        new_discount=None,
    ) -> LedgerResult:
        sub = lock_subscriber(self.db, subscriber_id)
        voucher = get_voucher(self.db, subscriber_id)
        month = find_month(self.db, voucher, month_label)

        adjustments = [] if is_reversed(month) else income_attribution(self.db, month)

        self.db.query(MonthPaymentModel).filter(
            MonthPaymentModel.month_id == month.id,
        ).delete(synchronize_session="fetch")
        if new_fee is not None:
            month.package_fee = to_amount(new_fee, "package_fee")
        if new_discount is not None:
            month.discount = to_amount(new_discount, "discount")
        month.paid_amount = ZERO
        month.refund_date = None
        month.refunded_amount = None
        month.status = STATUS_UNPAID
        month.payment_method = METHOD_NOT_PAID
        month.received_by = ""
        recompute(month)

        status = sync_subscriber(self.db, sub, self.clock)
        commit(self.db)
        logger.info("Month %s of subscriber %s converted to unpaid", month.label, subscriber_id)

        warnings = settle_income(self.db, adjustments)
        return LedgerResult(subscriber_id, status, [month], warnings)


def reprice_open_months(db: Session, voucher: VoucherModel, package_fee, discount) -> int:
    """
    Apply a package change to months that are still open.

    Paid and reversed months keep their historical charge. Returns the number
    of months changed. Does not commit.
    """
    changed = 0
    for month in load_months(db, voucher.id):
        if is_reversed(month):
            continue
        if month.status not in (STATUS_UNPAID, STATUS_PENDING) and month.remaining_amount <= 0:
            continue
        if package_fee is not None:
            month.package_fee = package_fee
        if discount is not None:
            month.discount = discount
        recompute(month)
        changed += 1
    return changed


class ResetVoucherUseCase:
    """Explicit voucher reset: physically removes the voucher and its months."""

    def __init__(self, db: Session):
        self.db = db

    def execute(self, subscriber_id: int) -> int:
        lock_subscriber(self.db, subscriber_id)
        voucher = get_voucher(self.db, subscriber_id)
        removed = delete_voucher(self.db, voucher)
        commit(self.db)
        logger.info("Voucher of subscriber %s reset (%d months removed)", subscriber_id, removed)
        return removed


def delete_voucher(db: Session, voucher: VoucherModel) -> int:
    """Delete voucher, months and payments. Does not commit."""
    months = load_months(db, voucher.id)
    month_ids = [m.id for m in months]
    if month_ids:
        db.query(MonthPaymentModel).filter(
            MonthPaymentModel.month_id.in_(month_ids),
        ).delete(synchronize_session="fetch")
    for month in months:
        db.delete(month)
    db.delete(voucher)
    db.flush()
    return len(months)


# ============================================================================
# Read side
# ============================================================================


def voucher_detail(db: Session, subscriber_id: int) -> dict:
    voucher = get_voucher(db, subscriber_id)
    months = load_months(db, voucher.id)
    return {
        "voucher_id": voucher.id,
        "subscriber_id": voucher.subscriber_id,
        "subscriber_name": voucher.subscriber_name,
        "recharge_date": voucher.recharge_date,
        "expiry_date": voucher.expiry_date,
        "total_outstanding": _outstanding(months),
        "months": [
            {
                "label": m.label,
                "package_fee": m.package_fee,
                "discount": m.discount,
                "paid_amount": m.paid_amount,
                "remaining_amount": m.remaining_amount,
                "status": m.status,
                "payment_method": m.payment_method,
                "received_by": m.received_by,
                "charge_date": m.charge_date,
                "refund_date": m.refund_date,
                "refunded_amount": m.refunded_amount,
                "payment_history": [
                    {
                        "amount": p.amount,
                        "method": p.method,
                        "received_by": p.received_by,
                        "paid_at": p.paid_at,
                    }
                    for p in month_payments(db, m.id)
                ],
            }
            for m in months
        ],
    }


def transaction_history(db: Session, subscriber_id: int) -> dict:
    """
    Statement of a subscriber: one debit per billed month, one credit per
    payment, with a running balance (negative = owes money).
    """
    sub = db.query(SubscriberModel).filter(SubscriberModel.id == subscriber_id).first()
    if not sub:
        raise NotFoundError(f"Subscriber {subscriber_id} not found")
    voucher = db.query(VoucherModel).filter(VoucherModel.subscriber_id == subscriber_id).first()
    months = load_months(db, voucher.id) if voucher else []

    lines = []
    balance = ZERO
    for month in months:
        if is_reversed(month):
            continue
        charge = max(ZERO, Decimal(month.package_fee) - Decimal(month.discount))
        balance -= charge
        lines.append({
            "date": month.charge_date,
            "description": f"{month.label} Fee",
            "debit": charge,
            "credit": None,
            "balance": balance,
        })

        payments = month_payments(db, month.id)
        explained = ZERO
        for p in payments:
            balance += Decimal(p.amount)
            explained += Decimal(p.amount)
            lines.append({
                "date": p.paid_at.date(),
                "description": f"Payment Received ({p.method}, {p.received_by})",
                "debit": None,
                "credit": p.amount,
                "balance": balance,
            })
        if Decimal(month.paid_amount) > explained:
            extra = Decimal(month.paid_amount) - explained
            balance += extra
            lines.append({
                "date": month.charge_date,
                "description": "Payment Received",
                "debit": None,
                "credit": extra,
                "balance": balance,
            })

    return {
        "subscriber": {"id": sub.id, "name": sub.name, "status": sub.status},
        "transactions": lines,
        "current_balance": balance,
    }
