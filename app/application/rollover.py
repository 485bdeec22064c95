"""
Billing rollover - the daily job that moves subscribers into their next cycle.

Runs at/after the noon cutoff (civil time), never before:
  Phase A: subscribers expiring tomorrow are flagged "expiring soon"
  Phase B: subscribers expiring today or earlier become unpaid, their expiry
           moves one calendar month forward and the just-closed month is
           billed in the voucher (once per cycle)

RECURRING CYCLE:
  recharge 28-10-2025, expiry 28-11-2025, paid
  27-11 noon -> flagged expiring soon
  28-11 noon -> unpaid, "November 2025" billed, expiry 28-12-2025
  pays       -> paid
  27-12 noon -> flagged again, and so on
"""
import logging
from dataclasses import dataclass, field
from datetime import date

from sqlalchemy import update
from sqlalchemy.orm import Session

from app.application.clock import get_clock
from app.application.persistence import commit, lock_subscriber
from app.application.status_engine import load_months, sync_subscriber
from app.application.vouchers import ensure_voucher
from app.domain.billing import (
    month_remaining, month_status, SERVICE_INACTIVE, METHOD_PENDING, STATUS_UNPAID, ZERO,
)
from app.domain.calendar import CivilClock, add_months, month_label
from app.infrastructure.db.models import SubscriberModel, VoucherMonthModel

logger = logging.getLogger(__name__)


@dataclass
class RolloverReport:
    skipped: bool = False
    flagged: int = 0
    rolled: int = 0
    months_created: int = 0
    failed: list[int] = field(default_factory=list)


def run_daily_rollover(db: Session, clock: CivilClock | None = None) -> RolloverReport:
    """Both phases, gated on the cutoff. Safe to run any number of times a day."""
    clock = clock or get_clock()
    if not clock.cutoff_passed():
        logger.info("Rollover skipped: %s is before the %02d:00 cutoff", clock.now(), clock.cutoff_hour)
        return RolloverReport(skipped=True)

    report = RolloverReport()
    report.flagged = flag_expiring_tomorrow(db, clock)
    rollover_expired(db, clock, report)
    logger.info(
        "Rollover done: flagged=%d rolled=%d months_created=%d failed=%d",
        report.flagged, report.rolled, report.months_created, len(report.failed),
    )
    return report


def flag_expiring_tomorrow(db: Session, clock: CivilClock) -> int:
    """Phase A. Status is left untouched."""
    tomorrow = clock.tomorrow()
    result = db.execute(
        update(SubscriberModel)
        .where(
            SubscriberModel.expiry_date == tomorrow,
            SubscriberModel.service_status != SERVICE_INACTIVE,
            SubscriberModel.show_in_expiring_soon == False,  # noqa: E712
        )
        .values(show_in_expiring_soon=True)
        .execution_options(synchronize_session="fetch")
    )
    commit(db)
    logger.info("Flagged %d subscribers expiring on %s", result.rowcount, tomorrow)
    return result.rowcount


def rollover_expired(db: Session, clock: CivilClock, report: RolloverReport | None = None) -> RolloverReport:
    """
    Phase B. One subscriber's failure never stops the batch; failed ones are
    picked up again by the next run because their expiry is still behind.
    """
    report = report or RolloverReport()
    today = clock.today()
    ids = [
        sid for (sid,) in db.query(SubscriberModel.id).filter(
            SubscriberModel.expiry_date <= today,
            SubscriberModel.service_status != SERVICE_INACTIVE,
        ).order_by(SubscriberModel.id).all()
    ]
    logger.info("Rollover: %d subscribers expired on or before %s", len(ids), today)

    for sid in ids:
        try:
            created = roll_subscriber(db, sid, clock)
        except Exception:
            db.rollback()
            logger.exception("Rollover failed for subscriber_id=%d", sid)
            report.failed.append(sid)
            continue
        report.rolled += 1
        report.months_created += created
    return report


def _free_label(closed: date, months: dict[str, VoucherMonthModel]) -> str:
    """Month label of the cycle starting at `closed`, moved forward past labels already in use."""
    step = 0
    label = month_label(closed)
    while label in months:
        step += 1
        label = month_label(add_months(closed, step))
    return label


def roll_subscriber(db: Session, subscriber_id: int, clock: CivilClock) -> int:
    """
    Advance one subscriber past today. Returns the number of months billed.

    A subscriber that missed several runs is advanced cycle by cycle, billing
    each closed cycle once. A month with the cycle's label charged on or after
    the cycle start is that cycle's charge (second run, or entered by hand);
    an earlier one belongs to a previous cycle, e.g. a signup month in the
    same calendar month.
    """
    sub = lock_subscriber(db, subscriber_id)
    today = clock.today()
    if sub.expiry_date is None or sub.expiry_date > today or sub.service_status == SERVICE_INACTIVE:
        return 0

    voucher = ensure_voucher(db, sub)
    months = {m.label: m for m in load_months(db, voucher.id)}
    created = 0
    while sub.expiry_date <= today:
        closed = sub.expiry_date
        sub.expiry_date = add_months(closed, 1)
        billed = months.get(month_label(closed))
        if billed is not None and billed.charge_date >= closed:
            logger.info("Subscriber %s: %s already billed, skipping", sub.id, billed.label)
            continue

        label = _free_label(closed, months)
        remaining = month_remaining(sub.package_fee, sub.discount, ZERO)
        month = VoucherMonthModel(
            voucher_id=voucher.id,
            label=label,
            package_fee=sub.package_fee,
            discount=sub.discount,
            paid_amount=ZERO,
            remaining_amount=remaining,
            status=month_status(ZERO, remaining),
            payment_method=METHOD_PENDING,
            received_by="",
            charge_date=closed,
        )
        db.add(month)
        months[label] = month
        created += 1
        logger.info("Subscriber %s: billed %s, next expiry %s", sub.id, label, sub.expiry_date)

    sub.show_in_expiring_soon = False
    voucher.expiry_date = sub.expiry_date
    sync_subscriber(db, sub, clock)
    sub.status = STATUS_UNPAID
    sub.unpaid_since = clock.now()
    commit(db)
    return created
