"""
SQLAlchemy ORM models (billing tables)
"""
from decimal import Decimal
from datetime import date as date_type, datetime
from sqlalchemy import (
    String, Integer, Text, TIMESTAMP, Date, func, Boolean, Numeric,
    UniqueConstraint, Index,
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.dialects.postgresql import JSONB

from app.infrastructure.db.session import Base


class SubscriberModel(Base):
    """
    Billed ISP customer ("user" in the admin panel)
    """
    __tablename__ = "subscribers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    external_id: Mapped[str] = mapped_column(String(64), nullable=False, server_default="")
    sim_no: Mapped[str] = mapped_column(String(32), nullable=False, server_default="")
    whatsapp_no: Mapped[str] = mapped_column(String(32), nullable=False, server_default="")
    package_name: Mapped[str] = mapped_column(String(128), nullable=False, server_default="")
    assign_to: Mapped[str] = mapped_column(String(128), nullable=False, server_default="")

    # Per-month charge and discount
    package_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, server_default="0")
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, server_default="0")
    number_of_months: Mapped[int] = mapped_column(Integer, nullable=False, server_default="1")

    # paid / partial / unpaid / pending / superbalance / reversed
    status: Mapped[str] = mapped_column(String(16), nullable=False, index=True)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, server_default="0")
    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, server_default="0")

    recharge_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date_type | None] = mapped_column(Date, nullable=True, index=True)

    service_status: Mapped[str] = mapped_column(
        String(16), nullable=False, default="active", server_default="active",
    )  # active / inactive
    unpaid_since: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    show_in_expiring_soon: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False, server_default="false",
    )

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class VoucherModel(Base):
    """Per-subscriber ledger document (1:1 with subscribers)"""
    __tablename__ = "vouchers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    subscriber_id: Mapped[int] = mapped_column(Integer, nullable=False, unique=True)  # -> subscribers
    subscriber_name: Mapped[str] = mapped_column(String(255), nullable=False)
    recharge_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date_type | None] = mapped_column(Date, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class VoucherMonthModel(Base):
    """One billing cycle's charge/payment record inside a voucher"""
    __tablename__ = "voucher_months"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    voucher_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)  # -> vouchers

    label: Mapped[str] = mapped_column(String(32), nullable=False)  # "November 2025"
    package_fee: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, server_default="0")
    discount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, server_default="0")
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, server_default="0")
    remaining_amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, server_default="0")

    status: Mapped[str] = mapped_column(String(16), nullable=False)  # unpaid / partial / paid / pending / reversed
    payment_method: Mapped[str] = mapped_column(String(32), nullable=False, server_default="Not Paid")
    received_by: Mapped[str] = mapped_column(String(128), nullable=False, server_default="")

    # FIFO order key
    charge_date: Mapped[date_type] = mapped_column(Date, nullable=False)

    refund_date: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    refunded_amount: Mapped[Decimal | None] = mapped_column(Numeric(12, 2), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )

    __table_args__ = (
        UniqueConstraint('voucher_id', 'label', name='uq_voucher_month_label'),
        Index('ix_voucher_months_order', 'voucher_id', 'charge_date'),
    )


class MonthPaymentModel(Base):
    """Itemized payment against a voucher month"""
    __tablename__ = "month_payments"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    month_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)  # -> voucher_months

    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    method: Mapped[str] = mapped_column(String(32), nullable=False)  # Cash / Bank Transfer
    received_by: Mapped[str] = mapped_column(String(128), nullable=False)
    paid_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), nullable=False)


class IncomeRecordModel(Base):
    """Running cash/bank totals per payment receiver (employee name or Admin)"""
    __tablename__ = "income_records"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    receiver_name: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    cash_income: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, server_default="0")
    bank_income: Mapped[Decimal] = mapped_column(Numeric(14, 2), nullable=False, server_default="0")

    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )


class IncomeTransferModel(Base):
    """Append-only log: cash handed over from a fee collector to Admin"""
    __tablename__ = "income_transfers"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    from_receiver: Mapped[str] = mapped_column(String(128), nullable=False, index=True)
    to_receiver: Mapped[str] = mapped_column(String(128), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    message: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class RefundRecordModel(Base):
    """Append-only audit of reversed months"""
    __tablename__ = "refund_records"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    subscriber_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    voucher_id: Mapped[int] = mapped_column(Integer, nullable=False)
    months: Mapped[list] = mapped_column(JSONB, nullable=False)  # [{label, package_fee, ...}]
    total_refunded: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )


class PaymentReminderModel(Base):
    """Admin-scheduled payment reminder, dispatched in the evening of remind_on"""
    __tablename__ = "payment_reminders"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    subscriber_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    subscriber_name: Mapped[str] = mapped_column(String(255), nullable=False)
    amount: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False, server_default="0")
    remind_on: Mapped[date_type] = mapped_column(Date, nullable=False, index=True)
    note: Mapped[str] = mapped_column(Text, nullable=False, server_default="")

    sent: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default="false")
    sent_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), server_default=func.now(), nullable=False
    )
