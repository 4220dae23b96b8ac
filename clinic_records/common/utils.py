import time
from datetime import date, datetime, timezone


def now_millis() -> int:
    """Return the current time as epoch milliseconds.

    `createdAt` columns store this value so rows written by older backups
    (which used a JavaScript `Date.now()`) sort together with new rows.
    """
    return int(time.time() * 1000)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def now_iso() -> str:
    """Current UTC time as an ISO string with millisecond precision and a `Z` suffix."""
    now = utc_now()
    return now.strftime('%Y-%m-%dT%H:%M:%S.') + f"{now.microsecond // 1000:03d}Z"


def backup_timestamp(dt: datetime | None = None) -> str:
    """ISO timestamp safe for file names: ':' and '.' become '-'.

    Example: 2025-12-07T06-30-00-000Z
    """
    dt = dt or utc_now()
    if dt.tzinfo is not None:
        dt = dt.astimezone(timezone.utc)
    return dt.strftime('%Y-%m-%dT%H-%M-%S-') + f"{dt.microsecond // 1000:03d}Z"


def parse_datetime(dt: datetime | str | None) -> datetime | None:
    """
    Parse an ISO datetime string to a datetime object.
    Accepts datetime objects, 'YYYY-MM-DD', 'YYYY-MM-DD HH:MM:SS' and
    'YYYY-MM-DDTHH:MM:SS(.fff)Z'. Returns None when the value cannot be parsed.
    """
    if dt is None:
        return None

    if isinstance(dt, datetime):
        return dt

    if isinstance(dt, str):
        value = dt.strip()
        if not value:
            return None
        if value.endswith('Z'):
            value = value[:-1] + '+00:00'
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


def parse_date(value: date | str | None) -> date | None:
    """Parse a 'YYYY-MM-DD' birthday string; None when invalid."""
    if value is None:
        return None
    if isinstance(value, date):
        return value
    try:
        return datetime.strptime(str(value).strip(), '%Y-%m-%d').date()
    except ValueError:
        return None


def to_float(value, default: float = 0.0) -> float:
    if value is None or value == '':
        return default
    return float(value)
