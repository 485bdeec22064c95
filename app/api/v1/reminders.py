"""
Payment reminder API endpoints
"""
from datetime import date, datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.orm import Session

from app.api.deps import get_db, get_clock
from app.application.reminders import (
    CreateReminderUseCase, DeleteReminderUseCase, list_pending_reminders,
)
from app.domain.calendar import CivilClock
from app.infrastructure.db.models import PaymentReminderModel


router = APIRouter(prefix="/api/v1/reminders", tags=["reminders"])


class CreateReminderRequest(BaseModel):
    subscriber_id: int
    remind_on: str  # DD-MM-YYYY or ISO
    amount: Decimal = Decimal("0")
    note: str = ""


class ReminderResponse(BaseModel):
    id: int
    subscriber_id: int
    subscriber_name: str
    amount: str
    remind_on: date
    note: str
    sent: bool
    sent_at: datetime | None


def _to_response(r: PaymentReminderModel) -> ReminderResponse:
    return ReminderResponse(
        id=r.id,
        subscriber_id=r.subscriber_id,
        subscriber_name=r.subscriber_name,
        amount=str(r.amount),
        remind_on=r.remind_on,
        note=r.note,
        sent=r.sent,
        sent_at=r.sent_at,
    )


@router.post("/", response_model=ReminderResponse, status_code=201)
def create_reminder(
    req: CreateReminderRequest,
    db: Session = Depends(get_db),
    clock: CivilClock = Depends(get_clock),
):
    reminder_id = CreateReminderUseCase(db, clock).execute(
        req.subscriber_id, req.remind_on, amount=req.amount, note=req.note,
    )
    reminder = db.query(PaymentReminderModel).filter(PaymentReminderModel.id == reminder_id).one()
    return _to_response(reminder)


@router.get("/", response_model=list[ReminderResponse])
def list_reminders(subscriber_id: int | None = None, db: Session = Depends(get_db)):
    """Reminders not yet delivered"""
    return [_to_response(r) for r in list_pending_reminders(db, subscriber_id)]


@router.delete("/{reminder_id}")
def delete_reminder(reminder_id: int, db: Session = Depends(get_db)):
    DeleteReminderUseCase(db).execute(reminder_id)
    return {"status": "deleted"}
