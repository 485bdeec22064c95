"""
FastAPI dependencies (DB session, civil clock)
"""
from app.application.clock import get_clock as _get_clock
from app.domain.calendar import CivilClock
from app.infrastructure.db.session import get_db as _get_db


# Re-export get_db for convenience
get_db = _get_db


def get_clock() -> CivilClock:
    """
    Billing clock dependency; tests override it to pin "now".

    Usage:
        @router.post("/")
        def create(clock: CivilClock = Depends(get_clock)):
            ...
    """
    return _get_clock()
