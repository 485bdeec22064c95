"""
Subscriber use cases - signup, edits, deletion and the listing views of the
admin panel.

Signup status comes from the chosen payment mode; after that the status is
derived from the voucher (see status_engine).
"""
import logging
from dataclasses import dataclass, field
from decimal import Decimal

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.application.clock import get_clock
from app.application.income import IncomeAdjustment, IncomeLedger, settle_income, CREDIT
from app.application.persistence import commit, lock_subscriber
from app.application.status_engine import load_months, mark_unpaid, sync_subscriber
from app.application.vouchers import (
    ensure_voucher, delete_voucher, income_attribution, normalize_method,
    reprice_open_months,
)
from app.domain.billing import (
    creation_billing, derive_subscriber_status, is_expiring_soon, is_reversed,
    SUBSCRIBER_STATUSES, STATUS_PAID, STATUS_PARTIAL, STATUS_PENDING, STATUS_UNPAID, STATUS_REVERSED,
    SERVICE_ACTIVE, SERVICE_INACTIVE, METHOD_CASH, METHOD_NOT_PAID, ZERO,
)
from app.domain.calendar import CivilClock, add_months, days_between, month_label
from app.domain.errors import NotFoundError, InvalidStateError, BillingValidationError
from app.infrastructure.db.models import (
    SubscriberModel, VoucherModel, VoucherMonthModel, MonthPaymentModel, PaymentReminderModel,
)
from app.utils.validation import to_amount

logger = logging.getLogger(__name__)

_PROFILE_FIELDS = ("external_id", "sim_no", "whatsapp_no", "package_name", "assign_to")

# only accepted as a manual status when the voucher already says so
_DERIVED_STATUSES = (STATUS_PAID, STATUS_PARTIAL, STATUS_REVERSED)


@dataclass
class SubscriberResult:
    subscriber_id: int
    status: str
    warnings: list[str] = field(default_factory=list)


def get_subscriber(db: Session, subscriber_id: int) -> SubscriberModel:
    sub = db.query(SubscriberModel).filter(SubscriberModel.id == subscriber_id).first()
    if not sub:
        raise NotFoundError(f"Subscriber {subscriber_id} not found")
    return sub


class CreateSubscriberUseCase:
    """
    Signup.

    The voucher is opened with the first month (labelled after the recharge
    date): paid for "now", unpaid for "later". Pending signups get an empty
    voucher; their first month is billed by the rollover.
    """

    def __init__(self, db: Session, clock: CivilClock | None = None):
        self.db = db
        self.clock = clock or get_clock()

    def execute(
        self,
        name: str,
        package_fee,
        discount=0,
        number_of_months: int = 1,
        payment_mode: str = "later",
        explicit_status: str | None = None,
        recharge_date=None,
        expiry_date=None,
        received_by: str | None = None,
        payment_method: str | None = None,
        **profile,
    ) -> SubscriberResult:
        name = (name or "").strip()
        if not name:
            raise BillingValidationError("Subscriber name is required")
        if explicit_status is not None and explicit_status != STATUS_PENDING:
            raise BillingValidationError("Only 'pending' may be requested explicitly")
        if number_of_months is None or int(number_of_months) < 1:
            raise BillingValidationError("number_of_months must be at least 1")
        number_of_months = int(number_of_months)
        fee = to_amount(package_fee, "package_fee")
        disc = to_amount(discount or 0, "discount")

        billing = creation_billing(payment_mode, fee, disc, number_of_months, explicit_status)

        recharge = self.clock.parse(recharge_date) or self.clock.today()
        expiry = self.clock.parse(expiry_date) or add_months(recharge, 1)
        if expiry < recharge:
            raise BillingValidationError("expiry_date must not be before recharge_date")

        sub = SubscriberModel(
            name=name,
            package_fee=fee,
            discount=disc,
            number_of_months=number_of_months,
            # Provisional until the first voucher change: a multi-month "now"
            # signup counts all n months here, the voucher only holds the
            # first one, and the next sync_subscriber replaces these totals.
            status=billing.status,
            paid_amount=billing.paid_amount,
            remaining_amount=billing.remaining_amount,
            recharge_date=recharge,
            expiry_date=expiry,
            service_status=SERVICE_ACTIVE,
            unpaid_since=self.clock.now() if billing.status == STATUS_UNPAID else None,
            show_in_expiring_soon=is_expiring_soon(expiry, self.clock),
            **{k: (profile.get(k) or "").strip() for k in _PROFILE_FIELDS},
        )
        self.db.add(sub)
        self.db.flush()

        voucher = ensure_voucher(self.db, sub)
        adjustments = []
        if billing.status != STATUS_PENDING:
            month = VoucherMonthModel(
                voucher_id=voucher.id,
                label=month_label(recharge),
                package_fee=fee,
                discount=disc,
                paid_amount=ZERO,
                remaining_amount=max(ZERO, fee - disc),
                status=STATUS_UNPAID,
                payment_method=METHOD_NOT_PAID,
                received_by="",
                charge_date=recharge,
            )
            self.db.add(month)
            self.db.flush()

            if billing.first_month_paid:
                method = normalize_method(payment_method or METHOD_CASH)
                receiver = (received_by or "").strip() or IncomeLedger(self.db).admin_receiver
                month.paid_amount = billing.paid_amount
                month.remaining_amount = ZERO
                month.status = STATUS_PAID
                month.payment_method = method
                month.received_by = receiver
                if billing.paid_amount > 0:
                    self.db.add(MonthPaymentModel(
                        month_id=month.id,
                        amount=billing.paid_amount,
                        method=method,
                        received_by=receiver,
                        paid_at=self.clock.now(),
                    ))
                    adjustments.append(IncomeAdjustment(CREDIT, receiver, billing.paid_amount, method))

        commit(self.db)
        logger.info(
            "Subscriber %s created: %s, status=%s, expiry=%s",
            sub.id, name, billing.status, expiry,
        )
        warnings = settle_income(self.db, adjustments)
        return SubscriberResult(sub.id, billing.status, warnings)


class UpdateSubscriberUseCase:
    """
    Profile edits, service status, manual status override and package changes.

    A fee/discount change re-prices open voucher months only.
    """

    def __init__(self, db: Session, clock: CivilClock | None = None):
        self.db = db
        self.clock = clock or get_clock()

    def execute(self, subscriber_id: int, **changes) -> SubscriberResult:
        sub = lock_subscriber(self.db, subscriber_id)
        voucher = self.db.query(VoucherModel).filter(VoucherModel.subscriber_id == sub.id).first()

        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise BillingValidationError("Subscriber name cannot be empty")
            sub.name = name
            if voucher:
                voucher.subscriber_name = name
        for key in _PROFILE_FIELDS:
            if key in changes:
                setattr(sub, key, (changes[key] or "").strip())

        if "service_status" in changes:
            if changes["service_status"] not in (SERVICE_ACTIVE, SERVICE_INACTIVE):
                raise BillingValidationError("service_status must be active or inactive")
            sub.service_status = changes["service_status"]

        if "recharge_date" in changes:
            sub.recharge_date = self.clock.parse(changes["recharge_date"])
            if voucher:
                voucher.recharge_date = sub.recharge_date
        if "expiry_date" in changes:
            sub.expiry_date = self.clock.parse(changes["expiry_date"])
            sub.show_in_expiring_soon = is_expiring_soon(sub.expiry_date, self.clock)
            if voucher:
                voucher.expiry_date = sub.expiry_date

        if "package_fee" in changes or "discount" in changes:
            fee = to_amount(changes["package_fee"], "package_fee") if "package_fee" in changes else None
            disc = to_amount(changes["discount"] or 0, "discount") if "discount" in changes else None
            if fee is not None:
                sub.package_fee = fee
            if disc is not None:
                sub.discount = disc
            if voucher:
                changed = reprice_open_months(self.db, voucher, fee, disc)
                logger.info("Package change for subscriber %s re-priced %d open months", sub.id, changed)
                sync_subscriber(self.db, sub, self.clock)

        if "status" in changes:
            status = changes["status"]
            if status not in SUBSCRIBER_STATUSES:
                raise BillingValidationError(f"Unknown status {status!r}")
            if status in _DERIVED_STATUSES:
                months = load_months(self.db, voucher.id) if voucher else []
                derived = derive_subscriber_status(months) if months else None
                if status != derived:
                    raise InvalidStateError(
                        f"Status {status!r} contradicts the voucher of subscriber {sub.id} "
                        f"({derived or 'no months'})"
                    )
            if status == STATUS_UNPAID:
                mark_unpaid(sub, self.clock)
            else:
                sub.status = status
            logger.info("Subscriber %s status manually set to %s", sub.id, status)

        commit(self.db)
        return SubscriberResult(sub.id, sub.status)


class DeleteSubscriberUseCase:
    """
    Delete a subscriber: income from its paid months is debited first, then
    the voucher and the subscriber go, all in one transaction.
    """

    def __init__(self, db: Session):
        self.db = db

    def execute(self, subscriber_id: int) -> SubscriberResult:
        sub = lock_subscriber(self.db, subscriber_id)
        voucher = self.db.query(VoucherModel).filter(VoucherModel.subscriber_id == sub.id).first()

        debited = ZERO
        if voucher:
            ledger = IncomeLedger(self.db)
            for month in load_months(self.db, voucher.id):
                if is_reversed(month):
                    continue
                for adj in income_attribution(self.db, month):
                    ledger.apply(adj)
                    debited += adj.amount
            delete_voucher(self.db, voucher)

        self.db.query(PaymentReminderModel).filter(
            PaymentReminderModel.subscriber_id == sub.id,
        ).delete(synchronize_session="fetch")
        status = sub.status
        self.db.delete(sub)
        commit(self.db)
        logger.info("Subscriber %s deleted, %s income reversed", subscriber_id, debited)
        return SubscriberResult(subscriber_id, status)


# ============================================================================
# Listing views
# ============================================================================


def _active_only(q):
    return q.filter(SubscriberModel.service_status != SERVICE_INACTIVE)


def list_subscribers(
    db: Session,
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[SubscriberModel], int]:
    """Subscribers by coarse status (active service only when filtering by status)."""
    q = db.query(SubscriberModel)
    if status:
        if status not in SUBSCRIBER_STATUSES:
            raise BillingValidationError(f"Unknown status {status!r}")
        q = _active_only(q.filter(SubscriberModel.status == status))
    if search:
        pattern = f"%{search.strip()}%"
        q = q.filter(or_(
            SubscriberModel.name.ilike(pattern),
            SubscriberModel.external_id.ilike(pattern),
            SubscriberModel.whatsapp_no.ilike(pattern),
        ))
    total = q.count()
    page = max(page, 1)
    items = (
        q.order_by(SubscriberModel.created_at.desc(), SubscriberModel.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, total


def list_expiring_soon(db: Session, clock: CivilClock | None = None) -> list[dict]:
    clock = clock or get_clock()
    today = clock.today()
    subs = _active_only(db.query(SubscriberModel).filter(
        SubscriberModel.show_in_expiring_soon == True,  # noqa: E712
    )).order_by(SubscriberModel.expiry_date, SubscriberModel.id).all()
    return [
        {"subscriber": s, "days_left": days_between(today, s.expiry_date) if s.expiry_date else None}
        for s in subs
    ]


def list_expired(db: Session, clock: CivilClock | None = None) -> list[dict]:
    """Active subscribers whose expiry date is already behind them."""
    clock = clock or get_clock()
    today = clock.today()
    subs = _active_only(db.query(SubscriberModel).filter(
        SubscriberModel.expiry_date < today,
    )).order_by(SubscriberModel.expiry_date.desc()).all()
    return [{"subscriber": s, "days_passed": days_between(s.expiry_date, today)} for s in subs]


def list_outstanding(db: Session) -> list[dict]:
    """Open balance per subscriber, straight from the voucher months."""
    rows = (
        db.query(
            VoucherModel.subscriber_id,
            VoucherModel.subscriber_name,
            func.sum(VoucherMonthModel.remaining_amount),
        )
        .join(VoucherMonthModel, VoucherMonthModel.voucher_id == VoucherModel.id)
        .filter(
            VoucherMonthModel.refund_date.is_(None),
            VoucherMonthModel.status != STATUS_REVERSED,
            VoucherMonthModel.remaining_amount > 0,
        )
        .group_by(VoucherModel.subscriber_id, VoucherModel.subscriber_name)
        .order_by(VoucherModel.subscriber_id)
        .all()
    )
    return [
        {"subscriber_id": sid, "subscriber_name": name, "total_outstanding": Decimal(str(total))}
        for sid, name, total in rows
    ]


def subscriber_outstanding(db: Session, subscriber_id: int) -> Decimal:
    get_subscriber(db, subscriber_id)
    voucher = db.query(VoucherModel).filter(VoucherModel.subscriber_id == subscriber_id).first()
    if not voucher:
        return ZERO
    return sum(
        (Decimal(m.remaining_amount) for m in load_months(db, voucher.id)
         if not is_reversed(m) and m.remaining_amount > 0),
        ZERO,
    )
