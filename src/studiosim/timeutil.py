"""ISO-8601 timestamps with millisecond precision, always UTC with a trailing Z."""

from datetime import datetime, timedelta, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(moment: datetime) -> str:
    """Format as 2024-01-01T00:00:00.000Z (truncated to milliseconds)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S.") + f"{moment.microsecond // 1000:03d}Z"


def parse_iso(value: str) -> datetime:
    """Parse an ISO-8601 string; naive values are taken as UTC."""
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    parsed = datetime.fromisoformat(text)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def parse_iso_ms(value: str) -> float:
    """Epoch milliseconds for an ISO string, or 0 when it does not parse."""
    try:
        return parse_iso(value).timestamp() * 1000.0
    except ValueError:
        return 0.0


def add_ms(moment: datetime, ms: float) -> datetime:
    return moment + timedelta(milliseconds=ms)


def add_minutes(moment: datetime, minutes: float) -> datetime:
    return add_ms(moment, minutes * 60_000)


def add_hours(moment: datetime, hours: float) -> datetime:
    return add_ms(moment, hours * 3_600_000)
