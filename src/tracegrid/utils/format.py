from __future__ import annotations

import math
from datetime import datetime, timezone, tzinfo
from typing import Any, Optional, Union
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from babel import Locale, UnknownLocaleError, default_locale
from babel.dates import format_datetime, format_time
from babel.localtime import get_localzone
from babel.numbers import format_currency

FALLBACK_LOCALE = "en_US"

# LLM costs are fractions of a cent; keep up to five fraction digits.
COST_PATTERN = "¤#,##0.00###"

LocaleLike = Union[str, Locale, None]


def resolve_locale(preferred: LocaleLike = None) -> Locale:
    """
    Viewer locale: explicit preference, then the process environment,
    then FALLBACK_LOCALE.
    """
    if isinstance(preferred, Locale):
        return preferred
    for candidate in (preferred, default_locale("LC_TIME")):
        if not candidate:
            continue
        try:
            return Locale.parse(str(candidate).replace("-", "_"))
        except (UnknownLocaleError, ValueError):
            continue
    return Locale.parse(FALLBACK_LOCALE)


def resolve_timezone(name: Union[str, tzinfo, None] = None) -> tzinfo:
    if isinstance(name, tzinfo):
        return name
    if name:
        try:
            return ZoneInfo(str(name))
        except (ZoneInfoNotFoundError, ValueError):
            pass
    # Viewer's local zone, with its daylight-saving rules (honours TZ).
    try:
        return get_localzone()
    except (LookupError, ValueError):
        return timezone.utc


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Accepts datetime, ISO-8601 strings (trailing Z allowed) and epoch milliseconds.
    Naive values are taken as UTC. Anything else returns None.
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, (int, float)):
        if isinstance(value, float) and math.isnan(value):
            return None
        try:
            dt = datetime.fromtimestamp(value / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    elif isinstance(value, str):
        s = value.strip()
        if not s:
            return None
        if s.endswith("Z") or s.endswith("z"):
            s = s[:-1] + "+00:00"
        try:
            dt = datetime.fromisoformat(s)
        except ValueError:
            return None
    else:
        return None

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


def to_epoch_ms(value: Any) -> Optional[float]:
    dt = parse_timestamp(value)
    if dt is None:
        return None
    return dt.timestamp() * 1000.0


def format_date_time(value: Any, *, locale: LocaleLike = None, tz: Union[str, tzinfo, None] = None) -> str:
    dt = parse_timestamp(value)
    if dt is None:
        return ""
    return format_datetime(dt, format="medium", tzinfo=resolve_timezone(tz), locale=resolve_locale(locale))


def time_of_day_or_date(
    value: Any,
    *,
    now: Optional[datetime] = None,
    locale: LocaleLike = None,
    tz: Union[str, tzinfo, None] = None,
) -> str:
    """
    Time of day when the timestamp falls on today's calendar date in the
    viewer's zone, full date-time otherwise.
    """
    dt = parse_timestamp(value)
    if dt is None:
        return ""
    zone = resolve_timezone(tz)
    current = parse_timestamp(now) if now is not None else datetime.now(zone)
    if current is None:
        current = datetime.now(zone)

    if dt.astimezone(zone).date() == current.astimezone(zone).date():
        return format_time(dt, format="medium", tzinfo=zone, locale=resolve_locale(locale))
    return format_date_time(dt, locale=locale, tz=zone)


def _as_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        n = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(n) or math.isinf(n):
        return None
    return n


def format_cost(amount: Any, *, currency: str = "USD", locale: LocaleLike = None) -> str:
    n = _as_number(amount)
    if n is None:
        return ""
    return format_currency(
        n,
        currency,
        format=COST_PATTERN,
        locale=resolve_locale(locale),
        currency_digits=False,
    )


def format_seconds(duration_ms: Any) -> str:
    n = _as_number(duration_ms)
    if n is None:
        return ""
    return f"{n / 1000:.2f}s"


def ms_to_time(duration_ms: Any) -> str:
    """
    Expanded duration, e.g. 3723000 -> "1h 2m 3s". Zero units are dropped;
    under a second renders as milliseconds.
    """
    n = _as_number(duration_ms)
    if n is None:
        return ""
    if n < 0:
        return "-" + ms_to_time(-n)
    if n < 1000:
        return f"{int(n)}ms"

    total_seconds = int(n // 1000)
    hours, rem = divmod(total_seconds, 3600)
    minutes, seconds = divmod(rem, 60)

    parts = []
    if hours:
        parts.append(f"{hours}h")
    if minutes:
        parts.append(f"{minutes}m")
    if seconds or not parts:
        parts.append(f"{seconds}s")
    return " ".join(parts)


def capitalize(s: str) -> str:
    if not s:
        return ""
    return s[0].upper() + s[1:]
