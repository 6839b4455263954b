# chatsync/utils.py
import time
from datetime import date, datetime, timezone
from typing import Any, Optional

from chatsync.config import DEFAULT_HISTORY_LIMIT, MAX_HISTORY_LIMIT


def utc_now() -> datetime:
    """Naive UTC timestamp; every DateTime column stores naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso_now() -> str:
    return datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")


def epoch_ms() -> int:
    return int(time.time() * 1000)


def iso(value: Any) -> Optional[str]:
    if value is None:
        return None
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)


def clamp_limit(raw: Optional[str], default: int = DEFAULT_HISTORY_LIMIT,
                maximum: int = MAX_HISTORY_LIMIT) -> int:
    try:
        value = int(raw) if raw is not None else 0
    except (TypeError, ValueError):
        value = 0
    if value <= 0:
        value = default
    return min(value, maximum)
