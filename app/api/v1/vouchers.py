"""
Voucher API endpoints (month entries, payments, reversals)
"""
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_clock
from app.application.vouchers import (
    AppendOrMergeMonthsUseCase, RecordPaymentUseCase, ReverseMonthsUseCase,
    ConvertToUnpaidUseCase, ResetVoucherUseCase, LedgerResult,
    MonthInput, PaymentInput, voucher_detail,
)
from app.domain.calendar import CivilClock


router = APIRouter(prefix="/api/v1/vouchers", tags=["vouchers"])


# === Request/Response models ===

class PaymentIn(BaseModel):
    amount: Decimal
    method: str
    received_by: str
    paid_at: str | None = None


class MonthIn(BaseModel):
    label: str  # "November 2025"
    package_fee: Decimal = Decimal("0")
    discount: Decimal = Decimal("0")
    paid_amount: Decimal | None = None
    status: str | None = None
    payment_method: str | None = None
    received_by: str | None = None
    payment_history: list[PaymentIn] | None = None
    charge_date: str | None = None


class MergeMonthsRequest(BaseModel):
    months: list[MonthIn]


class RecordPaymentRequest(BaseModel):
    month: str
    amount: Decimal
    method: str  # Cash / Bank Transfer
    receiver: str
    date: str | None = None


class ReverseMonthsRequest(BaseModel):
    months: list[str]


class ConvertToUnpaidRequest(BaseModel):
    package_fee: Decimal | None = None
    discount: Decimal | None = None


class PaymentOut(BaseModel):
    amount: str
    method: str
    received_by: str
    paid_at: datetime


class MonthOut(BaseModel):
    label: str
    package_fee: str
    discount: str
    paid_amount: str
    remaining_amount: str
    status: str
    payment_method: str
    received_by: str
    charge_date: date
    refund_date: datetime | None = None
    refunded_amount: str | None = None
    payment_history: list[PaymentOut] = []


class VoucherResponse(BaseModel):
    voucher_id: int
    subscriber_id: int
    subscriber_name: str
    recharge_date: date | None
    expiry_date: date | None
    total_outstanding: str
    months: list[MonthOut]


class LedgerResponse(BaseModel):
    subscriber_id: int
    subscriber_status: str
    months: list[str]
    warnings: list[str] = []


# === Helper function ===

def _money(value) -> str | None:
    return None if value is None else str(value)


def _ledger_response(result: LedgerResult) -> LedgerResponse:
    return LedgerResponse(
        subscriber_id=result.subscriber_id,
        subscriber_status=result.subscriber_status,
        months=[m.label for m in result.months],
        warnings=result.warnings,
    )


# === Endpoints ===

@router.get("/{subscriber_id}", response_model=VoucherResponse)
def get_voucher(subscriber_id: int, db: Session = Depends(get_db)):
    detail = voucher_detail(db, subscriber_id)
    return VoucherResponse(
        voucher_id=detail["voucher_id"],
        subscriber_id=detail["subscriber_id"],
        subscriber_name=detail["subscriber_name"],
        recharge_date=detail["recharge_date"],
        expiry_date=detail["expiry_date"],
        total_outstanding=str(detail["total_outstanding"]),
        months=[
            MonthOut(
                label=m["label"],
                package_fee=str(m["package_fee"]),
                discount=str(m["discount"]),
                paid_amount=str(m["paid_amount"]),
                remaining_amount=str(m["remaining_amount"]),
                status=m["status"],
                payment_method=m["payment_method"],
                received_by=m["received_by"],
                charge_date=m["charge_date"],
                refund_date=m["refund_date"],
                refunded_amount=_money(m["refunded_amount"]),
                payment_history=[
                    PaymentOut(
                        amount=str(p["amount"]),
                        method=p["method"],
                        received_by=p["received_by"],
                        paid_at=p["paid_at"],
                    )
                    for p in m["payment_history"]
                ],
            )
            for m in detail["months"]
        ],
    )


@router.post("/{subscriber_id}/months", response_model=LedgerResponse)
def merge_months(
    subscriber_id: int,
    req: MergeMonthsRequest,
    db: Session = Depends(get_db),
    clock: CivilClock = Depends(get_clock),
):
    """Append new months / overlay payment data on existing ones"""
    incoming = [
        MonthInput(
            label=m.label,
            package_fee=m.package_fee,
            discount=m.discount,
            paid_amount=m.paid_amount,
            status=m.status,
            payment_method=m.payment_method,
            received_by=m.received_by,
            payment_history=None if m.payment_history is None else [
                PaymentInput(
                    amount=p.amount,
                    method=p.method,
                    received_by=p.received_by,
                    paid_at=p.paid_at,
                )
                for p in m.payment_history
            ],
            charge_date=clock.parse(m.charge_date),
        )
        for m in req.months
    ]
    result = AppendOrMergeMonthsUseCase(db, clock).execute(subscriber_id, incoming)
    return _ledger_response(result)


@router.post("/{subscriber_id}/payments", response_model=LedgerResponse)
def record_payment(
    subscriber_id: int,
    req: RecordPaymentRequest,
    db: Session = Depends(get_db),
    clock: CivilClock = Depends(get_clock),
):
    result = RecordPaymentUseCase(db, clock).execute(
        subscriber_id=subscriber_id,
        month_label=req.month,
        amount=req.amount,
        method=req.method,
        receiver=req.receiver,
        paid_on=req.date,
    )
    return _ledger_response(result)


@router.post("/{subscriber_id}/reversals", response_model=LedgerResponse)
def reverse_months(
    subscriber_id: int,
    req: ReverseMonthsRequest,
    db: Session = Depends(get_db),
    clock: CivilClock = Depends(get_clock),
):
    """Refund months: excluded from balances, income debited"""
    result = ReverseMonthsUseCase(db, clock).execute(subscriber_id, req.months)
    return _ledger_response(result)


@router.post("/{subscriber_id}/months/{label}/unpaid", response_model=LedgerResponse)
def convert_to_unpaid(
    subscriber_id: int,
    label: str,
    req: ConvertToUnpaidRequest | None = None,
    db: Session = Depends(get_db),
    clock: CivilClock = Depends(get_clock),
):
    """Undo an erroneous payment"""
    req = req or ConvertToUnpaidRequest()
    result = ConvertToUnpaidUseCase(db, clock).execute(
        subscriber_id, label, new_fee=req.package_fee, new_discount=req.discount,
    )
    return _ledger_response(result)


@router.delete("/{subscriber_id}")
def reset_voucher(subscriber_id: int, db: Session = Depends(get_db)):
    removed = ResetVoucherUseCase(db).execute(subscriber_id)
    return {"status": "deleted", "months_removed": removed}
