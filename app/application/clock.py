"""
Default civil clock built from settings
"""
from functools import lru_cache

from app.config import get_settings
from app.domain.calendar import CivilClock


@lru_cache
def get_clock() -> CivilClock:
    settings = get_settings()
    return CivilClock(timezone=settings.TIMEZONE, cutoff_hour=settings.ROLLOVER_CUTOFF_HOUR)
