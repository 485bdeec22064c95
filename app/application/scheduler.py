"""
Background scheduler: runs periodic jobs inside the FastAPI process.

Jobs (civil time, TIMEZONE setting):
  - Billing rollover (ROLLOVER_CUTOFF_HOUR, 12:00)
  - Payment reminders (REMINDER_HOUR, 20:00)
  - Month-end income reset (last day 23:55, only if INCOME_MONTHLY_RESET_ENABLED)
"""
import logging

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from app.config import get_settings

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler(daemon=True)


def _run_rollover():
    from app.infrastructure.db.session import get_session_factory
    from app.application.rollover import run_daily_rollover

    Session = get_session_factory()
    db = Session()
    try:
        run_daily_rollover(db)
    except Exception:
        logger.exception("Billing rollover job failed")
    finally:
        db.close()


def _run_reminders(include_today: bool = True):
    from app.infrastructure.db.session import get_session_factory
    from app.application.reminders import dispatch_due_reminders

    Session = get_session_factory()
    db = Session()
    try:
        dispatch_due_reminders(db, include_today=include_today)
    except Exception:
        logger.exception("Reminder dispatch job failed")
    finally:
        db.close()


def _run_income_reset():
    from app.infrastructure.db.session import get_session_factory
    from app.application.income import ResetIncomeUseCase

    Session = get_session_factory()
    db = Session()
    try:
        ResetIncomeUseCase(db).execute()
    except Exception:
        logger.exception("Income reset job failed")
    finally:
        db.close()


def run_startup_checks():
    """Catch up after downtime: rollover (no-op before the cutoff) and missed reminders."""
    from app.application.clock import get_clock

    settings = get_settings()
    _run_rollover()
    _run_reminders(include_today=get_clock().now().hour >= settings.REMINDER_HOUR)


def start_scheduler():
    """Start the background scheduler with all periodic jobs."""
    settings = get_settings()
    tz = settings.TIMEZONE

    scheduler.add_job(
        _run_rollover,
        CronTrigger(hour=settings.ROLLOVER_CUTOFF_HOUR, minute=0, timezone=tz),
        id="billing_rollover",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    scheduler.add_job(
        _run_reminders,
        CronTrigger(hour=settings.REMINDER_HOUR, minute=0, timezone=tz),
        id="payment_reminders",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )

    if settings.INCOME_MONTHLY_RESET_ENABLED:
        scheduler.add_job(
            _run_income_reset,
            CronTrigger(day="last", hour=23, minute=55, timezone=tz),
            id="income_reset",
            replace_existing=True,
            max_instances=1,
        )

    scheduler.start()
    logger.info(
        "Scheduler started: billing_rollover (%02d:00 %s), payment_reminders (%02d:00 %s), income_reset (%s)",
        settings.ROLLOVER_CUTOFF_HOUR, tz, settings.REMINDER_HOUR, tz,
        "enabled" if settings.INCOME_MONTHLY_RESET_ENABLED else "disabled",
    )


def shutdown_scheduler():
    """Gracefully stop the scheduler."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
