"""
Income API endpoints (per-receiver totals, cash hand-over)
"""
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from app.api.deps import get_db
from app.application.income import IncomeLedger, TransferIncomeUseCase
from app.infrastructure.db.models import IncomeRecordModel, IncomeTransferModel


router = APIRouter(prefix="/api/v1/income", tags=["income"])


# === Request/Response models ===

class TransferRequest(BaseModel):
    from_receiver: str
    amount: Decimal
    to_receiver: str | None = None  # defaults to Admin
    message: str | None = None

    @field_validator("from_receiver")
    @classmethod
    def validate_receiver(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("from_receiver is required")
        return v


class IncomeResponse(BaseModel):
    receiver_name: str
    cash_income: str
    bank_income: str
    total_income: str
    updated_at: datetime | None


class TransferResponse(BaseModel):
    id: int
    from_receiver: str
    to_receiver: str
    amount: str
    message: str | None
    created_at: datetime | None


def _income_response(record: IncomeRecordModel) -> IncomeResponse:
    cash = Decimal(record.cash_income)
    bank = Decimal(record.bank_income)
    return IncomeResponse(
        receiver_name=record.receiver_name,
        cash_income=str(cash),
        bank_income=str(bank),
        total_income=str(cash + bank),
        updated_at=record.updated_at,
    )


def _transfer_response(entry: IncomeTransferModel) -> TransferResponse:
    return TransferResponse(
        id=entry.id,
        from_receiver=entry.from_receiver,
        to_receiver=entry.to_receiver,
        amount=str(entry.amount),
        message=entry.message,
        created_at=entry.created_at,
    )


# === Endpoints ===

@router.get("/", response_model=list[IncomeResponse])
def list_income(db: Session = Depends(get_db)):
    return [_income_response(r) for r in IncomeLedger(db).list_income()]


@router.post("/transfers", response_model=TransferResponse, status_code=201)
def create_transfer(req: TransferRequest, db: Session = Depends(get_db)):
    """Hand collected cash over to Admin"""
    entry = TransferIncomeUseCase(db).execute(
        req.from_receiver, req.amount, req.to_receiver, req.message,
    )
    return _transfer_response(entry)


@router.get("/transfers", response_model=list[TransferResponse])
def list_transfers(from_receiver: str | None = None, db: Session = Depends(get_db)):
    return [_transfer_response(t) for t in IncomeLedger(db).list_transfers(from_receiver)]


@router.get("/{receiver}", response_model=IncomeResponse)
def get_income(receiver: str, db: Session = Depends(get_db)):
    return _income_response(IncomeLedger(db).get_income(receiver))
