"""
Subscriber status engine - keeps the coarse subscriber status in line with
the voucher months.
"""
import logging

from sqlalchemy.orm import Session

from app.domain.billing import (
    derive_subscriber_status, total_outstanding, total_paid, STATUS_UNPAID,
)
from app.domain.calendar import CivilClock
from app.infrastructure.db.models import SubscriberModel, VoucherModel, VoucherMonthModel

logger = logging.getLogger(__name__)


def load_months(db: Session, voucher_id: int) -> list[VoucherMonthModel]:
    """Voucher months in FIFO order (charge date ascending)."""
    db.flush()
    return db.query(VoucherMonthModel).filter(
        VoucherMonthModel.voucher_id == voucher_id,
    ).order_by(VoucherMonthModel.charge_date, VoucherMonthModel.id).all()


def mark_unpaid(sub: SubscriberModel, clock: CivilClock) -> None:
    if sub.status != STATUS_UNPAID:
        sub.unpaid_since = clock.now()
    sub.status = STATUS_UNPAID


def sync_subscriber(
    db: Session,
    sub: SubscriberModel,
    clock: CivilClock,
    months: list[VoucherMonthModel] | None = None,
) -> str:
    """
    Re-derive status and paid/remaining totals from the voucher.

    A subscriber without voucher months keeps its current status (e.g. a
    pending signup that has not been billed yet). A manually set
    "superbalance" does not survive this.
    """
    if months is None:
        db.flush()
        voucher = db.query(VoucherModel).filter(VoucherModel.subscriber_id == sub.id).first()
        months = load_months(db, voucher.id) if voucher else []
    if not months:
        return sub.status

    previous = sub.status
    status = derive_subscriber_status(months)
    sub.paid_amount = total_paid(months)
    sub.remaining_amount = total_outstanding(months)
    if status == STATUS_UNPAID:
        mark_unpaid(sub, clock)
    else:
        sub.status = status

    if previous != status:
        logger.info("Subscriber %s status %s -> %s", sub.id, previous, status)
    return status
