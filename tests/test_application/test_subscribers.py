"""
Tests for subscriber signup, edits, deletion and listing views
"""
from datetime import date
from decimal import Decimal

import pytest

from app.application.subscribers import (
    CreateSubscriberUseCase, UpdateSubscriberUseCase, DeleteSubscriberUseCase,
    list_subscribers, list_expiring_soon, list_expired, list_outstanding,
    subscriber_outstanding,
)
from app.application.reminders import CreateReminderUseCase
from app.application.vouchers import (
    AppendOrMergeMonthsUseCase, RecordPaymentUseCase, MonthInput, voucher_detail,
)
from app.domain.errors import NotFoundError, InvalidStateError, BillingValidationError
from app.infrastructure.db.models import (
    SubscriberModel, VoucherModel, IncomeRecordModel, PaymentReminderModel,
)

NOV = "November 2025"


def _sub(db, sid) -> SubscriberModel:
    return db.query(SubscriberModel).filter(SubscriberModel.id == sid).one()


def _months(db, sid) -> list[dict]:
    return voucher_detail(db, sid)["months"]


def _income(db, receiver) -> IncomeRecordModel | None:
    return db.query(IncomeRecordModel).filter(IncomeRecordModel.receiver_name == receiver).first()


# ============================================================================
# Signup
# ============================================================================


class TestCreateSubscriber:
    def test_pay_later(self, db_session, clock):
        result = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500", payment_mode="later",
        )
        sub = _sub(db_session, result.subscriber_id)

        assert result.status == "unpaid"
        assert sub.recharge_date == date(2025, 11, 28)
        assert sub.expiry_date == date(2025, 12, 28)
        assert sub.remaining_amount == Decimal("1500")
        assert sub.unpaid_since is not None
        months = _months(db_session, sub.id)
        assert [m["label"] for m in months] == [NOV]
        assert months[0]["status"] == "unpaid"

    def test_pay_now_credits_receiver(self, db_session, clock):
        result = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500", discount="100", payment_mode="now",
            received_by="Ali", payment_method="Bank Transfer",
        )
        sub = _sub(db_session, result.subscriber_id)

        assert result.status == "paid"
        assert sub.paid_amount == Decimal("1400")
        assert sub.unpaid_since is None
        month = _months(db_session, sub.id)[0]
        assert month["status"] == "paid"
        assert month["received_by"] == "Ali"
        assert _income(db_session, "Ali").bank_income == Decimal("1400")

    def test_pay_now_without_receiver_goes_to_admin(self, db_session, clock):
        CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500", payment_mode="now",
        )
        assert _income(db_session, "Admin").cash_income == Decimal("1500")

    def test_pay_now_multi_month_is_partial(self, db_session, clock):
        result = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1000", payment_mode="now", number_of_months=3,
        )
        sub = _sub(db_session, result.subscriber_id)
        assert sub.status == "partial"
        assert sub.paid_amount == Decimal("1000")
        assert sub.remaining_amount == Decimal("2000")

    def test_multi_month_totals_give_way_to_voucher_totals(self, db_session, clock):
        sid = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1000", payment_mode="now", number_of_months=3,
        ).subscriber_id
        AppendOrMergeMonthsUseCase(db_session, clock).execute(
            sid, [MonthInput(label="December 2025", package_fee=Decimal("1000"))],
        )
        sub = _sub(db_session, sid)
        assert sub.status == "unpaid"
        assert sub.paid_amount == Decimal("1000")
        assert sub.remaining_amount == Decimal("1000")

    def test_pending_gets_empty_voucher(self, db_session, clock):
        result = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500", explicit_status="pending",
        )
        assert result.status == "pending"
        assert _months(db_session, result.subscriber_id) == []

    def test_past_expiry_still_unpaid_not_expired(self, db_session, clock):
        result = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500", recharge_date="01-10-2025",
            expiry_date="01-11-2025",
        )
        assert _sub(db_session, result.subscriber_id).status == "unpaid"

    def test_expiring_tomorrow_is_flagged(self, db_session, clock):
        result = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500", recharge_date="29-10-2025",
            expiry_date="29-11-2025",
        )
        assert _sub(db_session, result.subscriber_id).show_in_expiring_soon is True

    def test_profile_fields_are_stored(self, db_session, clock):
        result = CreateSubscriberUseCase(db_session, clock).execute(
            name="  Ahmed  ", package_fee="1500", external_id="NB-17",
            whatsapp_no=" 03001234567 ", package_name="10 Mbps",
        )
        sub = _sub(db_session, result.subscriber_id)
        assert sub.name == "Ahmed"
        assert sub.external_id == "NB-17"
        assert sub.whatsapp_no == "03001234567"
        assert sub.sim_no == ""

    @pytest.mark.parametrize("kwargs", [
        {"name": "", "package_fee": "1500"},
        {"name": "Ahmed", "package_fee": "abc"},
        {"name": "Ahmed", "package_fee": "-1"},
        {"name": "Ahmed", "package_fee": "1500", "payment_mode": "someday"},
        {"name": "Ahmed", "package_fee": "1500", "explicit_status": "paid"},
        {"name": "Ahmed", "package_fee": "1500", "number_of_months": 0},
        {"name": "Ahmed", "package_fee": "1500", "recharge_date": "31-02-2025"},
        {"name": "Ahmed", "package_fee": "1500", "recharge_date": "28-11-2025",
         "expiry_date": "01-11-2025"},
    ])
    def test_invalid_input(self, db_session, clock, kwargs):
        with pytest.raises(BillingValidationError):
            CreateSubscriberUseCase(db_session, clock).execute(**kwargs)
        assert db_session.query(SubscriberModel).count() == 0


# ============================================================================
# Edits
# ============================================================================


class TestUpdateSubscriber:
    def test_package_change_reprices_open_months_only(self, db_session, clock):
        sid = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500", payment_mode="now",
        ).subscriber_id
        AppendOrMergeMonthsUseCase(db_session, clock).execute(
            sid, [MonthInput(label="December 2025", package_fee=Decimal("1500"))],
        )

        UpdateSubscriberUseCase(db_session, clock).execute(sid, package_fee="2000")

        months = {m["label"]: m for m in _months(db_session, sid)}
        assert months[NOV]["package_fee"] == Decimal("1500")
        assert months["December 2025"]["package_fee"] == Decimal("2000")
        assert months["December 2025"]["remaining_amount"] == Decimal("2000")
        sub = _sub(db_session, sid)
        assert sub.package_fee == Decimal("2000")
        assert sub.remaining_amount == Decimal("2000")

    def test_manual_superbalance_is_overwritten_by_next_derivation(self, db_session, clock):
        sid = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500",
        ).subscriber_id
        UpdateSubscriberUseCase(db_session, clock).execute(sid, status="superbalance")
        assert _sub(db_session, sid).status == "superbalance"

        RecordPaymentUseCase(db_session, clock).execute(sid, NOV, "500", "Cash", "Ali")
        assert _sub(db_session, sid).status == "partial"

    def test_paid_override_rejected_while_months_are_open(self, db_session, clock):
        sid = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500",
        ).subscriber_id
        use_case = UpdateSubscriberUseCase(db_session, clock)
        for status in ("paid", "partial", "reversed"):
            with pytest.raises(InvalidStateError):
                use_case.execute(sid, status=status)
            db_session.rollback()

        sub = _sub(db_session, sid)
        assert sub.status == "unpaid"
        assert sub.remaining_amount == Decimal("1500")
        assert subscriber_outstanding(db_session, sid) == Decimal("1500")

    def test_paid_override_accepted_when_voucher_agrees(self, db_session, clock):
        sid = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500", payment_mode="now",
        ).subscriber_id
        UpdateSubscriberUseCase(db_session, clock).execute(sid, status="pending")
        assert _sub(db_session, sid).status == "pending"

        UpdateSubscriberUseCase(db_session, clock).execute(sid, status="paid")
        assert _sub(db_session, sid).status == "paid"

    def test_expiry_edit_updates_flag_and_voucher(self, db_session, clock):
        sid = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500",
        ).subscriber_id
        UpdateSubscriberUseCase(db_session, clock).execute(sid, expiry_date="29-11-2025")

        sub = _sub(db_session, sid)
        assert sub.expiry_date == date(2025, 11, 29)
        assert sub.show_in_expiring_soon is True
        voucher = db_session.query(VoucherModel).filter(VoucherModel.subscriber_id == sid).one()
        assert voucher.expiry_date == date(2025, 11, 29)

    def test_rename_propagates_to_voucher(self, db_session, clock):
        sid = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500",
        ).subscriber_id
        UpdateSubscriberUseCase(db_session, clock).execute(sid, name="Ahmed Khan")
        assert voucher_detail(db_session, sid)["subscriber_name"] == "Ahmed Khan"

    def test_invalid_values(self, db_session, clock):
        sid = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500",
        ).subscriber_id
        use_case = UpdateSubscriberUseCase(db_session, clock)
        with pytest.raises(BillingValidationError):
            use_case.execute(sid, status="gold")
        with pytest.raises(BillingValidationError):
            use_case.execute(sid, service_status="paused")
        with pytest.raises(NotFoundError):
            use_case.execute(9999, name="X")


# ============================================================================
# Deletion
# ============================================================================


class TestDeleteSubscriber:
    def test_delete_reverses_income_and_removes_everything(self, db_session, clock):
        sid = CreateSubscriberUseCase(db_session, clock).execute(
            name="Ahmed", package_fee="1500", payment_mode="now", received_by="Ali",
        ).subscriber_id
        other = CreateSubscriberUseCase(db_session, clock).execute(
            name="Bashir", package_fee="1000", payment_mode="now", received_by="Ali",
        ).subscriber_id
        CreateReminderUseCase(db_session, clock).execute(sid, "30-11-2025", amount="1500")
        assert _income(db_session, "Ali").cash_income == Decimal("2500")

        DeleteSubscriberUseCase(db_session).execute(sid)

        assert _income(db_session, "Ali").cash_income == Decimal("1000")
        assert db_session.query(SubscriberModel).filter(SubscriberModel.id == sid).first() is None
        assert db_session.query(VoucherModel).filter(VoucherModel.subscriber_id == sid).first() is None
        assert db_session.query(PaymentReminderModel).count() == 0
        assert _sub(db_session, other).status == "paid"

    def test_delete_missing(self, db_session):
        with pytest.raises(NotFoundError):
            DeleteSubscriberUseCase(db_session).execute(9999)


# ============================================================================
# Listing views
# ============================================================================


class TestListingViews:
    def _make(self, db, clock, name, **kw):
        return CreateSubscriberUseCase(db, clock).execute(name=name, package_fee="1500", **kw).subscriber_id

    def test_list_by_status_and_search(self, db_session, clock):
        self._make(db_session, clock, "Ahmed")
        self._make(db_session, clock, "Bashir", payment_mode="now")
        inactive = self._make(db_session, clock, "Chaudhry")
        UpdateSubscriberUseCase(db_session, clock).execute(inactive, service_status="inactive")

        items, total = list_subscribers(db_session, status="unpaid")
        assert total == 1
        assert items[0].name == "Ahmed"

        items, total = list_subscribers(db_session, search="bash")
        assert [s.name for s in items] == ["Bashir"]

        _, total = list_subscribers(db_session)
        assert total == 3

    def test_expiring_soon_view(self, db_session, clock):
        sid = self._make(db_session, clock, "Ahmed", recharge_date="29-10-2025", expiry_date="29-11-2025")
        self._make(db_session, clock, "Bashir")

        rows = list_expiring_soon(db_session, clock)
        assert [(r["subscriber"].id, r["days_left"]) for r in rows] == [(sid, 1)]

    def test_expired_view(self, db_session, clock):
        sid = self._make(db_session, clock, "Ahmed", recharge_date="20-10-2025", expiry_date="20-11-2025")
        self._make(db_session, clock, "Bashir")

        rows = list_expired(db_session, clock)
        assert [(r["subscriber"].id, r["days_passed"]) for r in rows] == [(sid, 8)]

    def test_outstanding(self, db_session, clock):
        unpaid = self._make(db_session, clock, "Ahmed")
        self._make(db_session, clock, "Bashir", payment_mode="now")

        rows = list_outstanding(db_session)
        assert [r["subscriber_id"] for r in rows] == [unpaid]
        assert rows[0]["total_outstanding"] == Decimal("1500")
        assert subscriber_outstanding(db_session, unpaid) == Decimal("1500")

    def test_unknown_status_filter(self, db_session):
        with pytest.raises(BillingValidationError):
            list_subscribers(db_session, status="gold")
