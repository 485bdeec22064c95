"""
Payment reminders - admin notes "collect from X on day D", delivered in the
evening of D. Delivery is a log line; reminders not delivered on their day
are picked up by the next sweep (including the one at startup).
"""
import logging

from sqlalchemy.orm import Session

from app.application.clock import get_clock
from app.application.persistence import commit
from app.application.subscribers import get_subscriber
from app.domain.calendar import CivilClock
from app.domain.errors import NotFoundError, BillingValidationError
from app.infrastructure.db.models import PaymentReminderModel
from app.utils.validation import to_amount

logger = logging.getLogger(__name__)


class CreateReminderUseCase:
    def __init__(self, db: Session, clock: CivilClock | None = None):
        self.db = db
        self.clock = clock or get_clock()

    def execute(self, subscriber_id: int, remind_on, amount=0, note: str = "") -> int:
        remind_date = self.clock.parse(remind_on)
        if remind_date is None:
            raise BillingValidationError("remind_on is required")
        sub = get_subscriber(self.db, subscriber_id)

        reminder = PaymentReminderModel(
            subscriber_id=sub.id,
            subscriber_name=sub.name,
            amount=to_amount(amount or 0),
            remind_on=remind_date,
            note=(note or "").strip(),
            sent=False,
        )
        self.db.add(reminder)
        self.db.flush()
        commit(self.db)
        logger.info("Reminder %s created for %s on %s", reminder.id, sub.name, remind_date)
        return reminder.id


class DeleteReminderUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, reminder_id: int) -> None:
        reminder = self.db.query(PaymentReminderModel).filter(
            PaymentReminderModel.id == reminder_id,
        ).first()
        if not reminder:
            raise NotFoundError(f"Reminder {reminder_id} not found")
        self.db.delete(reminder)
        commit(self.db)


def list_pending_reminders(db: Session, subscriber_id: int | None = None) -> list[PaymentReminderModel]:
    q = db.query(PaymentReminderModel).filter(PaymentReminderModel.sent == False)  # noqa: E712
    if subscriber_id is not None:
        q = q.filter(PaymentReminderModel.subscriber_id == subscriber_id)
    return q.order_by(PaymentReminderModel.remind_on, PaymentReminderModel.id).all()


def dispatch_due_reminders(
    db: Session,
    clock: CivilClock | None = None,
    include_today: bool = True,
) -> int:
    """
    Deliver unsent reminders due before today (overdue) and, when
    include_today is set, those due today. Returns the number delivered.
    """
    clock = clock or get_clock()
    today = clock.today()
    q = db.query(PaymentReminderModel).filter(PaymentReminderModel.sent == False)  # noqa: E712
    if include_today:
        q = q.filter(PaymentReminderModel.remind_on <= today)
    else:
        q = q.filter(PaymentReminderModel.remind_on < today)
    reminders = q.order_by(PaymentReminderModel.remind_on, PaymentReminderModel.id).all()

    sent = 0
    now = clock.now()
    for reminder in reminders:
        reminder_id = reminder.id
        try:
            logger.info(
                "Payment reminder: %s (subscriber %s) amount=%s due=%s note=%s",
                reminder.subscriber_name, reminder.subscriber_id,
                reminder.amount, reminder.remind_on, reminder.note or "-",
            )
            reminder.sent = True
            reminder.sent_at = now
            commit(db)
            sent += 1
        except Exception:
            db.rollback()
            logger.exception("Reminder delivery failed for reminder_id=%d", reminder_id)
    return sent
