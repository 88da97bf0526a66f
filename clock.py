"""Local wall-clock helpers. Timestamps are stored as ISO-8601 strings with offset."""
from datetime import datetime
from typing import Optional


def local_now() -> datetime:
    return datetime.now().astimezone()


def timestamp(now: Optional[datetime] = None) -> str:
    return (now or local_now()).isoformat()


def start_of_day(now: datetime) -> datetime:
    if now.tzinfo is None:
        now = now.astimezone()
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.astimezone()
    return parsed


def ddmmyy(now: datetime) -> str:
    return now.strftime("%d%m%y")
