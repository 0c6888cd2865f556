from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Optional


class InvalidDate(ValueError):
    pass


@dataclass(frozen=True)
class Period:
    slug: str
    start: datetime
    end: datetime


def _next_month(first: datetime) -> datetime:
    if first.month == 12:
        return first.replace(year=first.year + 1, month=1)
    return first.replace(month=first.month + 1)


def month_bounds(reference: datetime) -> tuple[datetime, datetime]:
    """Half-open ``[start, end)`` bounds of the calendar month containing ``reference``."""
    start = datetime(reference.year, reference.month, 1)
    return start, _next_month(start)


def month_period(year: int, month: int, slug: str = "month") -> Period:
    """Inclusive bounds, first to last instant of the month."""
    start = datetime(year, month, 1)
    end = _next_month(start) - timedelta(microseconds=1)
    return Period(slug, start, end)


def parse_datetime(value: str) -> datetime:
    """Parse ``YYYY-MM-DD``, a full ISO timestamp or ``YYYY-MM``.

    Aware timestamps are converted to naive local-calendar values by dropping
    the offset, matching how record dates are stored.
    """
    raw = (value or "").strip()
    if not raw:
        raise InvalidDate("Invalid date format")
    try:
        parsed = datetime.fromisoformat(raw)
    except ValueError:
        try:
            parsed = datetime.strptime(raw, "%Y-%m")
        except ValueError as exc:
            raise InvalidDate(f"Invalid date format: {raw}") from exc
    return parsed.replace(tzinfo=None)


def parse_month_reference(value: Optional[str]) -> datetime:
    if not value:
        raise InvalidDate(
            "Month is required in query string (e.g. ?month=2025-06-01)"
        )
    return parse_datetime(value)


def _parse_month(value: str) -> datetime:
    raw = value.strip()
    for fmt in ("%Y-%m", "%Y-%m-%d"):
        try:
            return datetime.strptime(raw, fmt)
        except ValueError:
            continue
    raise InvalidDate(f"Invalid month: {value}")


def resolve_summary_period(
    month: Optional[str],
    start: Optional[str],
    end: Optional[str],
    *,
    today: Optional[date] = None,
) -> Period:
    today = today or date.today()
    if month:
        parsed = _parse_month(month)
        return month_period(parsed.year, parsed.month)

    current = month_period(today.year, today.month, slug="this_month")
    if not start and not end:
        return current

    start_at = parse_datetime(start) if start else current.start
    end_at = parse_datetime(end) if end else current.end
    if start_at > end_at:
        raise InvalidDate("Start date must be before end date")
    return Period("custom", start_at, end_at)
