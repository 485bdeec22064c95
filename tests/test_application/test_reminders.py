"""
Tests for payment reminders
"""
from datetime import date
from decimal import Decimal

import pytest

from app.application.reminders import (
    CreateReminderUseCase, DeleteReminderUseCase, list_pending_reminders, dispatch_due_reminders,
)
from app.application.subscribers import CreateSubscriberUseCase
from app.domain.errors import NotFoundError, BillingValidationError
from app.infrastructure.db.models import PaymentReminderModel


@pytest.fixture
def subscriber_id(db_session, clock):
    return CreateSubscriberUseCase(db_session, clock).execute(
        name="Ahmed", package_fee="1500",
    ).subscriber_id


def _reminder(db, reminder_id) -> PaymentReminderModel:
    return db.query(PaymentReminderModel).filter(PaymentReminderModel.id == reminder_id).one()


class TestReminders:
    def test_create(self, db_session, clock, subscriber_id):
        rid = CreateReminderUseCase(db_session, clock).execute(
            subscriber_id, "30-11-2025", amount="1500", note=" collect at shop ",
        )
        reminder = _reminder(db_session, rid)
        assert reminder.remind_on == date(2025, 11, 30)
        assert reminder.amount == Decimal("1500")
        assert reminder.note == "collect at shop"
        assert reminder.subscriber_name == "Ahmed"
        assert reminder.sent is False

    def test_create_validation(self, db_session, clock, subscriber_id):
        use_case = CreateReminderUseCase(db_session, clock)
        with pytest.raises(BillingValidationError):
            use_case.execute(subscriber_id, "")
        with pytest.raises(BillingValidationError):
            use_case.execute(subscriber_id, "30-11-2025", amount="-10")
        with pytest.raises(NotFoundError):
            use_case.execute(9999, "30-11-2025")

    def test_dispatch_due_and_overdue(self, db_session, clock, subscriber_id):
        use_case = CreateReminderUseCase(db_session, clock)
        overdue = use_case.execute(subscriber_id, "25-11-2025")
        today = use_case.execute(subscriber_id, "28-11-2025")
        future = use_case.execute(subscriber_id, "01-12-2025")

        assert dispatch_due_reminders(db_session, clock) == 2
        assert _reminder(db_session, overdue).sent is True
        assert _reminder(db_session, today).sent is True
        assert _reminder(db_session, future).sent is False
        assert [r.id for r in list_pending_reminders(db_session)] == [future]

        # already delivered ones are not sent again
        assert dispatch_due_reminders(db_session, clock) == 0

    def test_startup_sweep_before_evening_skips_today(self, db_session, clock, subscriber_id):
        use_case = CreateReminderUseCase(db_session, clock)
        overdue = use_case.execute(subscriber_id, "25-11-2025")
        today = use_case.execute(subscriber_id, "28-11-2025")

        assert dispatch_due_reminders(db_session, clock, include_today=False) == 1
        assert _reminder(db_session, overdue).sent is True
        assert _reminder(db_session, today).sent is False

    def test_delete(self, db_session, clock, subscriber_id):
        rid = CreateReminderUseCase(db_session, clock).execute(subscriber_id, "30-11-2025")
        DeleteReminderUseCase(db_session).execute(rid)

        assert list_pending_reminders(db_session, subscriber_id) == []
        with pytest.raises(NotFoundError):
            DeleteReminderUseCase(db_session).execute(rid)
