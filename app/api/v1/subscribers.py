"""
Subscriber API endpoints
"""
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_clock
from app.application.subscribers import (
    CreateSubscriberUseCase, UpdateSubscriberUseCase, DeleteSubscriberUseCase,
    get_subscriber, list_subscribers, list_expiring_soon, list_expired,
    list_outstanding, subscriber_outstanding,
)
from app.application.vouchers import transaction_history
from app.domain.calendar import CivilClock
from app.infrastructure.db.models import SubscriberModel


router = APIRouter(prefix="/api/v1/subscribers", tags=["subscribers"])


# === Request/Response models ===

class CreateSubscriberRequest(BaseModel):
    name: str
    package_fee: Decimal
    discount: Decimal = Decimal("0")
    number_of_months: int = 1
    payment_mode: str = "later"  # now / later
    status: str | None = None  # only "pending"
    recharge_date: str | None = None  # DD-MM-YYYY, DD/MM/YYYY or ISO
    expiry_date: str | None = None
    received_by: str | None = None
    payment_method: str | None = None  # Cash / Bank Transfer
    external_id: str | None = None
    sim_no: str | None = None
    whatsapp_no: str | None = None
    package_name: str | None = None
    assign_to: str | None = None


class UpdateSubscriberRequest(BaseModel):
    name: str | None = None
    external_id: str | None = None
    sim_no: str | None = None
    whatsapp_no: str | None = None
    package_name: str | None = None
    assign_to: str | None = None
    package_fee: Decimal | None = None
    discount: Decimal | None = None
    status: str | None = None
    service_status: str | None = None
    recharge_date: str | None = None
    expiry_date: str | None = None


class SubscriberResponse(BaseModel):
    id: int
    name: str
    external_id: str
    whatsapp_no: str
    package_name: str
    package_fee: str  # Decimal as string
    discount: str
    number_of_months: int
    status: str
    paid_amount: str
    remaining_amount: str
    recharge_date: date | None
    expiry_date: date | None
    service_status: str
    unpaid_since: datetime | None
    show_in_expiring_soon: bool


class SubscriberMutationResponse(BaseModel):
    subscriber: SubscriberResponse
    warnings: list[str] = []


class SubscriberPageResponse(BaseModel):
    items: list[SubscriberResponse]
    total: int
    page: int
    limit: int


class ExpiringSubscriberResponse(BaseModel):
    subscriber: SubscriberResponse
    days_left: int | None


class ExpiredSubscriberResponse(BaseModel):
    subscriber: SubscriberResponse
    days_passed: int


class OutstandingResponse(BaseModel):
    subscriber_id: int
    subscriber_name: str
    total_outstanding: str


# === Helper function ===

def _to_response(sub: SubscriberModel) -> SubscriberResponse:
    return SubscriberResponse(
        id=sub.id,
        name=sub.name,
        external_id=sub.external_id,
        whatsapp_no=sub.whatsapp_no,
        package_name=sub.package_name,
        package_fee=str(sub.package_fee),
        discount=str(sub.discount),
        number_of_months=sub.number_of_months,
        status=sub.status,
        paid_amount=str(sub.paid_amount),
        remaining_amount=str(sub.remaining_amount),
        recharge_date=sub.recharge_date,
        expiry_date=sub.expiry_date,
        service_status=sub.service_status,
        unpaid_since=sub.unpaid_since,
        show_in_expiring_soon=sub.show_in_expiring_soon,
    )


# === Endpoints ===

@router.post("/", response_model=SubscriberMutationResponse, status_code=201)
def create_subscriber(
    req: CreateSubscriberRequest,
    db: Session = Depends(get_db),
    clock: CivilClock = Depends(get_clock),
):
    """Register a subscriber; status follows the payment mode"""
    result = CreateSubscriberUseCase(db, clock).execute(
        name=req.name,
        package_fee=req.package_fee,
        discount=req.discount,
        number_of_months=req.number_of_months,
        payment_mode=req.payment_mode,
        explicit_status=req.status,
        recharge_date=req.recharge_date,
        expiry_date=req.expiry_date,
        received_by=req.received_by,
        payment_method=req.payment_method,
        external_id=req.external_id,
        sim_no=req.sim_no,
        whatsapp_no=req.whatsapp_no,
        package_name=req.package_name,
        assign_to=req.assign_to,
    )
    sub = get_subscriber(db, result.subscriber_id)
    return SubscriberMutationResponse(subscriber=_to_response(sub), warnings=result.warnings)


@router.get("/", response_model=SubscriberPageResponse)
def list_all(
    status: str | None = None,
    search: str | None = None,
    page: int = 1,
    limit: int = 20,
    db: Session = Depends(get_db),
):
    """Subscribers, optionally by coarse status (paid / unpaid / partial / ...)"""
    items, total = list_subscribers(db, status=status, search=search, page=page, limit=limit)
    return SubscriberPageResponse(
        items=[_to_response(s) for s in items], total=total, page=page, limit=limit,
    )


@router.get("/expiring-soon", response_model=list[ExpiringSubscriberResponse])
def expiring_soon(db: Session = Depends(get_db), clock: CivilClock = Depends(get_clock)):
    return [
        ExpiringSubscriberResponse(subscriber=_to_response(row["subscriber"]), days_left=row["days_left"])
        for row in list_expiring_soon(db, clock)
    ]


@router.get("/expired", response_model=list[ExpiredSubscriberResponse])
def expired(db: Session = Depends(get_db), clock: CivilClock = Depends(get_clock)):
    return [
        ExpiredSubscriberResponse(subscriber=_to_response(row["subscriber"]), days_passed=row["days_passed"])
        for row in list_expired(db, clock)
    ]


@router.get("/outstanding", response_model=list[OutstandingResponse])
def outstanding(db: Session = Depends(get_db)):
    """Open balance per subscriber"""
    return [
        OutstandingResponse(
            subscriber_id=row["subscriber_id"],
            subscriber_name=row["subscriber_name"],
            total_outstanding=str(row["total_outstanding"]),
        )
        for row in list_outstanding(db)
    ]


@router.get("/{subscriber_id}")
def get_one(subscriber_id: int, db: Session = Depends(get_db)):
    sub = get_subscriber(db, subscriber_id)
    return {
        "subscriber": _to_response(sub),
        "total_outstanding": str(subscriber_outstanding(db, subscriber_id)),
    }


@router.patch("/{subscriber_id}", response_model=SubscriberMutationResponse)
def update_subscriber(
    subscriber_id: int,
    req: UpdateSubscriberRequest,
    db: Session = Depends(get_db),
    clock: CivilClock = Depends(get_clock),
):
    """Edit profile / package / status; only the fields sent are changed"""
    changes = req.model_dump(exclude_unset=True)
    result = UpdateSubscriberUseCase(db, clock).execute(subscriber_id, **changes)
    sub = get_subscriber(db, result.subscriber_id)
    return SubscriberMutationResponse(subscriber=_to_response(sub), warnings=result.warnings)


@router.delete("/{subscriber_id}")
def delete_subscriber(subscriber_id: int, db: Session = Depends(get_db)):
    """Delete subscriber, its voucher, and the income it brought in"""
    DeleteSubscriberUseCase(db).execute(subscriber_id)
    return {"status": "deleted"}


@router.get("/{subscriber_id}/transactions")
def get_transactions(subscriber_id: int, db: Session = Depends(get_db)):
    """Statement: charges, payments and running balance"""
    history = transaction_history(db, subscriber_id)
    return {
        "subscriber": history["subscriber"],
        "current_balance": str(history["current_balance"]),
        "transactions": [
            {
                "date": line["date"],
                "description": line["description"],
                "debit": None if line["debit"] is None else str(line["debit"]),
                "credit": None if line["credit"] is None else str(line["credit"]),
                "balance": str(line["balance"]),
            }
            for line in history["transactions"]
        ],
    }
