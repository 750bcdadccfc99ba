from __future__ import annotations
from datetime import datetime, timedelta, timezone as dt_tz
from crown.schemas.contest import TimeLeft

# stored statuses that win over the calendar
STICKY_STATUSES = ("draft", "archived", "hidden")


def ensure_utc(dt: datetime) -> datetime:
    # sqlite hands back naive datetimes
    return dt.replace(tzinfo=dt_tz.utc) if dt.tzinfo is None else dt.astimezone(dt_tz.utc)


def compute_status(stored: str, start: datetime, end: datetime, now: datetime | None = None) -> str:
    if stored in STICKY_STATUSES:
        return stored
    now = now or datetime.now(dt_tz.utc)
    start, end = ensure_utc(start), ensure_utc(end)
    if now < start:
        return "draft"
    if now <= end:
        return "active"
    return "ended"


def _split(delta: timedelta) -> tuple[int, int, int, int]:
    total = max(int(delta.total_seconds()), 0)
    days, rem = divmod(total, 86400)
    hours, rem = divmod(rem, 3600)
    minutes, seconds = divmod(rem, 60)
    return days, hours, minutes, seconds


def format_time_left(days: int, hours: int, minutes: int, seconds: int) -> str:
    if days > 0:
        return f"{days}d {hours}h {minutes}m"
    if hours > 0:
        return f"{hours}h {minutes}m {seconds}s"
    if minutes > 0:
        return f"{minutes}m {seconds}s"
    return f"{seconds}s"


def _time_left(delta: timedelta) -> TimeLeft:
    d, h, m, s = _split(delta)
    return TimeLeft(days=d, hours=h, minutes=m, seconds=s, label=format_time_left(d, h, m, s))


def time_remaining(stored: str, start: datetime, end: datetime, now: datetime | None = None) -> TimeLeft | None:
    """Time until the end of an active contest; None otherwise."""
    now = now or datetime.now(dt_tz.utc)
    if compute_status(stored, start, end, now) != "active":
        return None
    return _time_left(ensure_utc(end) - now)


def time_until_start(start: datetime, now: datetime | None = None) -> TimeLeft | None:
    now = now or datetime.now(dt_tz.utc)
    start = ensure_utc(start)
    if now >= start:
        return None
    return _time_left(start - now)


def validate_dates(start: datetime, end: datetime, now: datetime | None = None) -> str | None:
    """Error message for an invalid start/end pair, or None when valid."""
    now = now or datetime.now(dt_tz.utc)
    start, end = ensure_utc(start), ensure_utc(end)
    if start >= end:
        return "End date must be after start date"
    if end <= now:
        return "End date must be in the future"
    return None


def is_joinable(stored: str, start: datetime, end: datetime, deadline: datetime | None, now: datetime | None = None) -> str | None:
    """Reason a contest can't be joined right now, or None."""
    now = now or datetime.now(dt_tz.utc)
    status = compute_status(stored, start, end, now)
    if status != "active":
        return "This contest is not currently accepting entries"
    if deadline is not None and now > ensure_utc(deadline):
        return "The submission deadline for this contest has passed"
    return None


def extend_end(end: datetime, days: int) -> datetime:
    if days < 1:
        raise ValueError("days must be >= 1")
    return ensure_utc(end) + timedelta(days=days)
