from __future__ import annotations

from datetime import date, datetime, timedelta, timezone, tzinfo


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def week_start_date(moment: datetime | date | None = None, tz: tzinfo = timezone.utc) -> date:
    """Monday of the ISO week containing ``moment``.

    Aware datetimes are converted to ``tz`` before taking the calendar date,
    naive datetimes are read as already being in ``tz``.
    """
    if moment is None:
        moment = datetime.now(tz)

    if isinstance(moment, datetime):
        if moment.tzinfo is not None:
            moment = moment.astimezone(tz)
        day = moment.date()
    else:
        day = moment

    return day - timedelta(days=day.weekday())


def parse_week(raw: str) -> date:
    """Parse ``YYYY-MM-DD`` and snap it to its Monday."""
    return week_start_date(date.fromisoformat(raw.strip()))
