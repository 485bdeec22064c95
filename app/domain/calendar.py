"""
Civil calendar adapter.

Every billing-cycle and scheduler decision is made on civil dates in one fixed
timezone (Asia/Karachi by default). Text dates coming from the admin panel are
converted here, at the boundary, into `datetime.date`; nothing downstream
compares strings.
"""
import calendar
import re
from datetime import date, datetime, timedelta
from typing import Callable
from zoneinfo import ZoneInfo

from app.domain.errors import BillingValidationError

_DMY_RE = re.compile(r"^(\d{1,2})[-/](\d{1,2})[-/](\d{4})$")
_ISO_DATE_RE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


class CivilClock:
    """
    "Now" and "today" in the billing timezone.

    `now_fn` lets tests pin the instant; it must return an aware datetime.
    """

    def __init__(
        self,
        timezone: str = "Asia/Karachi",
        cutoff_hour: int = 12,
        now_fn: Callable[[], datetime] | None = None,
    ):
        self.tz = ZoneInfo(timezone)
        self.cutoff_hour = cutoff_hour
        self._now_fn = now_fn

    def now(self) -> datetime:
        if self._now_fn is not None:
            return self._now_fn().astimezone(self.tz)
        return datetime.now(self.tz)

    def today(self) -> date:
        return self.now().date()

    def tomorrow(self) -> date:
        return self.today() + timedelta(days=1)

    def cutoff_passed(self) -> bool:
        """True at/after the daily rollover cutoff (noon by default)."""
        return self.now().hour >= self.cutoff_hour

    def to_civil_date(self, value: datetime) -> date:
        """Calendar day of an instant, as seen in the billing timezone."""
        if value.tzinfo is None:
            return value.date()
        return value.astimezone(self.tz).date()

    def parse(self, value) -> date | None:
        return parse_civil_date(value, self.tz)


def is_same_day(a: date, b: date) -> bool:
    return a == b


def add_months(d: date, n: int) -> date:
    """
    Calendar-month arithmetic; the day is clamped to the target month's length.

        add_months(date(2025, 1, 31), 1) -> date(2025, 2, 28)
    """
    month = d.month - 1 + n
    year = d.year + month // 12
    month = month % 12 + 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def days_between(a: date, b: date) -> int:
    """Signed number of days from a to b."""
    return (b - a).days


def month_label(d: date) -> str:
    """Human label of a billing month: "November 2025"."""
    return f"{calendar.month_name[d.month]} {d.year}"


def format_civil_date(d: date | None) -> str | None:
    """DD-MM-YYYY, the form the admin panel displays."""
    if d is None:
        return None
    return d.strftime("%d-%m-%Y")


def parse_civil_date(value, tz: ZoneInfo | None = None) -> date | None:
    """
    Convert any of the date forms seen in the admin panel into a civil date.

    Accepted: date, datetime (converted into `tz` when aware), "DD-MM-YYYY",
    "DD/MM/YYYY", "YYYY-MM-DD" and ISO-8601 datetimes ("2025-11-28T00:00:00Z").
    Empty values yield None.

    Raises:
        BillingValidationError: unrecognized text or impossible calendar date
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        if value.tzinfo is not None and tz is not None:
            return value.astimezone(tz).date()
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise BillingValidationError(f"Unsupported date value: {value!r}")

    text = value.strip()
    try:
        m = _DMY_RE.match(text)
        if m:
            day, month, year = (int(p) for p in m.groups())
            return date(year, month, day)
        m = _ISO_DATE_RE.match(text)
        if m:
            year, month, day = (int(p) for p in m.groups())
            return date(year, month, day)
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        raise BillingValidationError(f"Invalid date: {value!r}")
    if parsed.tzinfo is not None and tz is not None:
        return parsed.astimezone(tz).date()
    return parsed.date()
