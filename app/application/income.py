"""
Income ledger - per-receiver cash/bank running totals.

The ledger is the only source of truth for collected income. It performs blind
increments/decrements; callers (payment recording, reversal, deletion) apply
exactly one adjustment per logical event.
"""
import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy import case, update
from sqlalchemy.orm import Session

from app.config import get_settings
from app.domain.billing import income_bucket, ZERO
from app.domain.errors import InvalidStateError, NotFoundError
from app.infrastructure.db.models import IncomeRecordModel, IncomeTransferModel
from app.application.persistence import commit
from app.utils.validation import to_amount

logger = logging.getLogger(__name__)

CREDIT = "credit"
DEBIT = "debit"


@dataclass
class IncomeAdjustment:
    """A pending change to one receiver's bucket"""
    kind: str  # credit / debit
    receiver: str
    amount: Decimal
    method: str


class IncomeLedger:
    def __init__(self, db: Session, admin_receiver: str | None = None):
        self.db = db
        self.admin_receiver = admin_receiver or get_settings().ADMIN_RECEIVER

    def _receiver(self, name: str | None) -> str:
        name = (name or "").strip()
        return name or self.admin_receiver

    def _ensure(self, receiver: str) -> IncomeRecordModel:
        record = self.db.query(IncomeRecordModel).filter(
            IncomeRecordModel.receiver_name == receiver,
        ).first()
        if record is None:
            record = IncomeRecordModel(receiver_name=receiver, cash_income=ZERO, bank_income=ZERO)
            self.db.add(record)
            self.db.flush()
        return record

    def _bump(self, receiver: str, column: str, delta: Decimal) -> None:
        col = getattr(IncomeRecordModel, column)
        if delta >= 0:
            value = col + delta
        else:
            # never below zero
            value = case((col + delta < 0, 0), else_=col + delta)
        self.db.execute(
            update(IncomeRecordModel)
            .where(IncomeRecordModel.receiver_name == receiver)
            .values({column: value})
            .execution_options(synchronize_session="fetch")
        )

    def credit(self, receiver: str | None, amount, method: str | None) -> None:
        amount = to_amount(amount)
        receiver = self._receiver(receiver)
        self._ensure(receiver)
        self._bump(receiver, f"{income_bucket(method)}_income", amount)
        logger.info("Income credit: %s +%s (%s)", receiver, amount, income_bucket(method))

    def debit(self, receiver: str | None, amount, method: str | None) -> None:
        amount = to_amount(amount)
        receiver = self._receiver(receiver)
        self._ensure(receiver)
        self._bump(receiver, f"{income_bucket(method)}_income", -amount)
        logger.info("Income debit: %s -%s (%s)", receiver, amount, income_bucket(method))

    def apply(self, adjustment: IncomeAdjustment) -> None:
        if adjustment.kind == CREDIT:
            self.credit(adjustment.receiver, adjustment.amount, adjustment.method)
        else:
            self.debit(adjustment.receiver, adjustment.amount, adjustment.method)

    def transfer(
        self,
        from_receiver: str,
        amount,
        to_receiver: str | None = None,
        message: str | None = None,
    ) -> IncomeTransferModel:
        """Move cash from a fee collector to Admin (or another receiver)."""
        amount = to_amount(amount, allow_zero=False)
        source = self._receiver(from_receiver)
        target = self._receiver(to_receiver)
        if source == target:
            raise InvalidStateError("Cannot transfer income to the same receiver")

        record = self.db.query(IncomeRecordModel).filter(
            IncomeRecordModel.receiver_name == source,
        ).with_for_update().first()
        if record is None:
            raise NotFoundError(f"No income recorded for {source}")
        if Decimal(record.cash_income) < amount:
            raise InvalidStateError(
                f"{source} holds {record.cash_income} in cash, cannot transfer {amount}"
            )

        self._bump(source, "cash_income", -amount)
        self._ensure(target)
        self._bump(target, "cash_income", amount)

        entry = IncomeTransferModel(
            from_receiver=source,
            to_receiver=target,
            amount=amount,
            message=message,
        )
        self.db.add(entry)
        self.db.flush()
        logger.info("Income transfer: %s -> %s %s", source, target, amount)
        return entry

    def reset_all(self) -> int:
        """Month-end reset: zero every receiver's totals. Returns rows touched."""
        result = self.db.execute(
            update(IncomeRecordModel)
            .values(cash_income=0, bank_income=0)
            .execution_options(synchronize_session="fetch")
        )
        return result.rowcount

    def get_income(self, receiver: str) -> IncomeRecordModel:
        record = self.db.query(IncomeRecordModel).filter(
            IncomeRecordModel.receiver_name == receiver.strip(),
        ).first()
        if record is None:
            raise NotFoundError(f"No income recorded for {receiver}")
        return record

    def list_income(self) -> list[IncomeRecordModel]:
        return self.db.query(IncomeRecordModel).order_by(IncomeRecordModel.receiver_name).all()

    def list_transfers(self, from_receiver: str | None = None) -> list[IncomeTransferModel]:
        q = self.db.query(IncomeTransferModel)
        if from_receiver:
            q = q.filter(IncomeTransferModel.from_receiver == from_receiver)
        return q.order_by(IncomeTransferModel.created_at.desc(), IncomeTransferModel.id.desc()).all()


def settle_income(db: Session, adjustments: list[IncomeAdjustment]) -> list[str]:
    """
    Apply income adjustments after the ledger mutation has been committed.

    A failure here is rolled back and reported as a warning; the already
    committed voucher change stays in place.
    """
    if not adjustments:
        return []
    ledger = IncomeLedger(db)
    try:
        for adj in adjustments:
            if adj.amount > 0:
                ledger.apply(adj)
        commit(db)
    except Exception as exc:
        db.rollback()
        logger.exception("Income adjustment failed: %s", adjustments)
        return [f"Income ledger not updated: {exc}"]
    return []


class TransferIncomeUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self, from_receiver: str, amount, to_receiver: str | None = None,
                message: str | None = None) -> IncomeTransferModel:
        entry = IncomeLedger(self.db).transfer(from_receiver, amount, to_receiver, message)
        commit(self.db)
        return entry


class ResetIncomeUseCase:
    def __init__(self, db: Session):
        self.db = db

    def execute(self) -> int:
        count = IncomeLedger(self.db).reset_all()
        commit(self.db)
        logger.info("Income totals reset for %d receivers", count)
        return count
