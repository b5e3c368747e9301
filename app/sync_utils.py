"""
Shared time and number helpers: reporting-day (IST) conversion, date range presets, tolerant parsing.
"""
from datetime import date, datetime, timezone, timedelta
from typing import Any, Optional

from app.core.errors import ValidationError

# business reporting day is UTC+5:30
IST = timezone(timedelta(minutes=330))

DATE_RANGE_PRESETS = [
    {"value": "today", "label": "Today"},
    {"value": "yesterday", "label": "Yesterday"},
    {"value": "last_7_days", "label": "Last 7 Days"},
    {"value": "last_30_days", "label": "Last 30 Days"},
    {"value": "this_month", "label": "This Month"},
    {"value": "custom", "label": "Custom Range"},
]


def now_iso() -> str:
    """Current UTC time, ISO-8601 with milliseconds and Z suffix."""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO timestamp or date string into an aware datetime.
    Naive values are taken as UTC. Returns None when unparseable.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, tzinfo=timezone.utc)
    s = str(value).strip()
    if not s:
        return None
    try:
        dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    except ValueError:
        # Shopify CSV style: '2024-01-02 10:11:12 +0530'
        try:
            dt = datetime.strptime(s, "%Y-%m-%d %H:%M:%S %z")
        except ValueError:
            return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_ist_date(value: Any, offset_minutes: int = 330) -> Optional[str]:
    """Shift a timestamp by the reporting offset and return its YYYY-MM-DD date."""
    dt = parse_timestamp(value)
    if dt is None:
        return None
    shifted = dt.astimezone(timezone.utc) + timedelta(minutes=offset_minutes)
    return shifted.date().isoformat()


def current_ist(now: Optional[datetime] = None) -> datetime:
    now = now or datetime.now(timezone.utc)
    return now.astimezone(IST)


def date_range_preset(date_range: Any = "last_30_days", now: Optional[datetime] = None) -> dict[str, str]:
    """
    Resolve a preset name or {'since', 'until'} into an IST {since, until} pair.
    Unknown presets fall back to last_30_days.
    """
    if isinstance(date_range, dict) and date_range.get("since") and date_range.get("until"):
        return {"since": date_range["since"], "until": date_range["until"]}

    today = current_ist(now).date()
    until = today
    if date_range == "today":
        since = today
    elif date_range == "yesterday":
        since = until = today - timedelta(days=1)
    elif date_range == "last_7_days":
        since = today - timedelta(days=7)
    elif date_range == "this_month":
        since = today.replace(day=1)
    else:
        since = today - timedelta(days=30)
    return {"since": since.isoformat(), "until": until.isoformat()}


def safe_float(value: Any, default: float = 0.0) -> float:
    try:
        if value is None or (isinstance(value, str) and not value.strip()):
            return default
        return float(value)
    except (TypeError, ValueError):
        return default


def safe_int(value: Any, default: int = 0) -> int:
    try:
        if value is None or (isinstance(value, str) and not value.strip()):
            return default
        return int(float(value))
    except (TypeError, ValueError):
        return default


def format_money(value: Any) -> str:
    """Parse with fallback 0 and render with two decimals."""
    return f"{safe_float(value):.2f}"


def split_list(value: Optional[str]) -> list[str]:
    """'a, b,,c' -> ['a', 'b', 'c']"""
    if not value:
        return []
    return [part.strip() for part in str(value).split(",") if part.strip()]


def report_date_range(start_date: Optional[str], end_date: Optional[str], offset_minutes: int = 330) -> tuple[str, str]:
    """
    Validate startDate/endDate query values and shift them into reporting-day dates.
    Raises ValidationError (400) when missing or unparseable.
    """
    if not start_date or not end_date:
        raise ValidationError("Start date and end date are required")
    since = to_ist_date(start_date, offset_minutes)
    until = to_ist_date(end_date, offset_minutes)
    if not since or not until:
        raise ValidationError("Invalid date format")
    return since, until


def requested_date_range(date_range: Optional[str], since: Optional[str], until: Optional[str]) -> Any:
    """Query/body parameters -> preset name or {'since', 'until'}; explicit dates win."""
    if since and until:
        return {"since": since, "until": until}
    return date_range or "last_30_days"
