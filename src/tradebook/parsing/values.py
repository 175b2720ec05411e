"""
Cell value parsing for broker CSV exports.

Brokers format numbers and dates differently ("$1,234.56", "(12.50)",
"1/2/2024 9:31:00 AM", "2024-01-02, 09:31:00"). These helpers never raise:
they return None when a value cannot be understood so the caller can turn
it into a row warning.
"""

from datetime import date, datetime, time, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional

from tradebook.models import Direction, Side


# Tried in order after ISO parsing fails.
DATE_FORMATS = [
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M",
    "%Y-%m-%d",
    "%Y-%m-%d, %H:%M:%S",
    "%Y/%m/%d %H:%M:%S",
    "%Y/%m/%d",
    "%m/%d/%Y %H:%M:%S",
    "%m/%d/%Y %I:%M:%S %p",
    "%m/%d/%Y %I:%M %p",
    "%m/%d/%Y %H:%M",
    "%m/%d/%Y",
    "%m-%d-%Y %H:%M:%S",
    "%m-%d-%Y",
    "%m/%d/%y %H:%M:%S",
    "%m/%d/%y %H:%M",
    "%m/%d/%y",
    "%Y%m%d;%H%M%S",
    "%Y%m%d",
    "%b %d, %Y",
    "%B %d, %Y",
]

# WeBull appends the exchange timezone ("01/02/2024 09:31:00 EST").
_TZ_SUFFIXES = (" EST", " EDT", " ET", " UTC", " GMT")


def parse_decimal(value_str: Optional[str]) -> Optional[Decimal]:
    """
    Parse a broker number (e.g., '$3,500.00', '-1,234.56', '(12.50)').

    Returns:
        Decimal value, or None if empty, unparseable or not finite
    """
    if value_str is None:
        return None

    cleaned = value_str.strip().strip('"').replace("$", "").replace(",", "").strip()
    if not cleaned:
        return None

    negative = False
    if cleaned.startswith("(") and cleaned.endswith(")"):
        # Accounting format for negatives
        negative = True
        cleaned = cleaned[1:-1].strip()

    try:
        value = Decimal(cleaned)
    except InvalidOperation:
        return None

    if not value.is_finite():
        return None

    return -value if negative else value


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def _as_datetime(value: date | datetime) -> datetime:
    if isinstance(value, datetime):
        return _to_naive_utc(value)
    return datetime.combine(value, time.min)


def parse_timestamp(
    date_str: Optional[str],
    default: Optional[date | datetime] = None,
) -> Optional[datetime]:
    """
    Parse an execution timestamp from the formats brokers commonly emit.

    ISO 8601 is tried first, then the fixed DATE_FORMATS list. Timezone
    aware values are converted to naive UTC.

    Args:
        date_str: Raw cell text
        default: Fallback (e.g., the journal day being viewed) used when the
                 cell is empty or unparseable

    Returns:
        Parsed datetime, the default as a datetime, or None when parsing
        fails and no default exists
    """
    text = (date_str or "").strip().strip('"')
    if not text:
        return _as_datetime(default) if default is not None else None

    iso_text = text[:-1] + "+00:00" if text.endswith("Z") else text
    try:
        return _to_naive_utc(datetime.fromisoformat(iso_text))
    except ValueError:
        pass

    for suffix in _TZ_SUFFIXES:
        if text.upper().endswith(suffix):
            text = text[: -len(suffix)].strip()
            break

    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue

    return _as_datetime(default) if default is not None else None


def parse_direction(value: Optional[str]) -> Direction:
    """
    Parse a trade direction from free text.

    long/buy/bot/l/b mean LONG; short/sell/sld/s mean SHORT. Anything else
    defaults to LONG, matching how journals treat unlabeled trades.
    """
    v = (value or "").strip().lower()

    if "long" in v or "buy" in v or "bot" in v or v in ("l", "b"):
        return Direction.LONG
    if "short" in v or "sell" in v or "sld" in v or v == "s":
        return Direction.SHORT

    return Direction.LONG


def parse_side(value: Optional[str]) -> Optional[Side]:
    """
    Parse a fill side.

    Returns:
        BUY for buy/bot/b, SELL for sell/sld/s (including "sell short",
        "buy to cover" style labels), None when the text is neither
    """
    v = (value or "").strip().lower()

    if "buy" in v or "bot" in v or v in ("b", "long"):
        return Side.BUY
    if "sell" in v or "sld" in v or v in ("s", "short"):
        return Side.SELL

    return None
