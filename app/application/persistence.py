"""
Session helpers shared by the billing use cases
"""
import logging

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.domain.errors import PersistenceError, NotFoundError
from app.infrastructure.db.models import SubscriberModel

logger = logging.getLogger(__name__)


def commit(db: Session) -> None:
    """Commit or surface the failure as PersistenceError (no silent retry)."""
    try:
        db.commit()
    except SQLAlchemyError as exc:
        db.rollback()
        logger.exception("Commit failed")
        raise PersistenceError(str(exc)) from exc


def lock_subscriber(db: Session, subscriber_id: int) -> SubscriberModel:
    """
    Load a subscriber with a row lock (SELECT ... FOR UPDATE).

    All writes to one subscriber's subscriber/voucher/income triple go through
    this, so concurrent payments for the same subscriber are serialized.
    """
    sub = db.query(SubscriberModel).filter(
        SubscriberModel.id == subscriber_id,
    ).with_for_update().first()
    if not sub:
        raise NotFoundError(f"Subscriber {subscriber_id} not found")
    return sub
