import re
from datetime import datetime, timezone
from typing import Any, Dict, Literal, Optional, Sequence


YesNo = Literal["yes", "no", "unknown"]

_YES = {"yes", "y", "true", "1", "checked", "on"}
_NO = {"no", "n", "false", "0", "off"}
_TRUTHY = {"true", "yes", "1", "y", "checked", "on"}

_NON_NUMERIC = re.compile(r"[^0-9.]")


def to_str(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value).strip()


def lower(value: Any) -> str:
    return to_str(value).lower()


def resolve(lead: Dict[str, Any], aliases: Sequence[str]) -> Optional[str]:
    """Return the first alias value with a non-blank string form, else None."""
    for key in aliases:
        s = to_str(lead.get(key))
        if s:
            return s
    return None


def yes_no(value: Any) -> YesNo:
    s = lower(value)
    if s in _YES:
        return "yes"
    if s in _NO:
        return "no"
    return "unknown"


def extract_number(value: Any) -> Optional[float]:
    digits = _NON_NUMERIC.sub("", to_str(value))
    if not digits:
        return None
    try:
        num = float(digits)
    except ValueError:
        return None
    return num if num > 0 else None


def truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return lower(value) in _TRUTHY


def normalize_phone(phone: Any) -> str:
    digits = re.sub(r"\D", "", to_str(phone))
    if len(digits) > 10:
        digits = digits[-10:]
    return digits


def iso_utc(now: Optional[datetime] = None) -> str:
    ts = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
    return ts.isoformat(timespec="milliseconds").replace("+00:00", "Z")
