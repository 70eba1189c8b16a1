from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

_FALLBACK_FORMATS = ("%Y/%m/%d %H:%M:%S", "%Y/%m/%d %H:%M", "%Y/%m/%d")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def utc_now_iso() -> str:
    return utc_now().isoformat(timespec="milliseconds").replace("+00:00", "Z")


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Parse ISO-8601 (or sheet-style ``YYYY/MM/DD``) text to an aware UTC datetime; naive values are UTC."""
    raw = str(value or "").strip()
    if not raw:
        return None
    parsed: Optional[datetime] = None
    try:
        parsed = datetime.fromisoformat(raw.replace("Z", "+00:00"))
    except ValueError:
        for fmt in _FALLBACK_FORMATS:
            try:
                parsed = datetime.strptime(raw, fmt)
                break
            except ValueError:
                continue
    if parsed is None:
        return None
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def timestamp_ms(value: Any) -> Optional[int]:
    parsed = parse_timestamp(value)
    if parsed is None:
        return None
    return int(parsed.timestamp() * 1000)


def first_timestamp_ms(*values: Any) -> Optional[int]:
    """Epoch ms of the first non-empty value, mirroring ``a || b`` fallbacks on text columns."""
    for value in values:
        if str(value or "").strip():
            return timestamp_ms(value)
    return None
