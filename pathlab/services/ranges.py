import math
import re

from pathlab.schemas.report import BucketedRange, Parameter, PatientContext

_UNIT_DAYS = {"d": 1, "m": 30, "y": 365}
_AGE_UNIT_DAYS = {"day": 1, "month": 30, "year": 365}

_UP_TO_RE = re.compile(r"^\s*up\s*(?:to\s*)?([\d.]+)\s*$", re.IGNORECASE)
_SPAN_RE = re.compile(r"^\s*([\d.]+)\s*(?:-|to)\s*([\d.]+)\s*$", re.IGNORECASE)
_LEADING_FLOAT_RE = re.compile(r"^[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def _to_number(text: str | None) -> float:
    """Strict numeric conversion: blank is 0, garbage is NaN."""
    if text is None:
        return math.nan
    text = text.strip()
    if not text:
        return 0.0
    try:
        return float(text)
    except ValueError:
        return math.nan


def parse_range_key(range_key: str) -> tuple[float, float]:
    """Turn an age bucket key like '1-12m' into an inclusive [lower, upper] span in days."""
    key = range_key.strip()
    multiplier = _UNIT_DAYS.get(key[-1:], 1)
    core = re.sub(r"[dmy]$", "", key)
    parts = core.split("-")
    low = _to_number(parts[0]) * multiplier
    high = _to_number(parts[1] if len(parts) > 1 else None) * multiplier
    lower = 0.0 if math.isnan(low) or low == 0 else low
    upper = math.inf if math.isnan(high) or high == 0 else high
    return lower, upper


def age_in_days(patient: PatientContext) -> float:
    if patient.total_day:
        return float(patient.total_day)
    age = _to_number(str(patient.age))
    if math.isnan(age):
        return 0.0
    return age * _AGE_UNIT_DAYS.get((patient.day_type or "year").lower(), 365)


def _buckets_for_gender(bucketed: BucketedRange, gender: str | None):
    key = (gender or "").strip().lower()
    if key == "male":
        return bucketed.male
    if key == "female":
        return bucketed.female
    return []


def resolve_range(parameter: Parameter, age_days: float, gender: str | None) -> str:
    """Return the reference-range text that applies to a patient.

    Literal ranges come back verbatim. Bucketed ranges are scanned in stored
    order and the first bucket whose age span contains ``age_days`` wins;
    when none does, the last bucket of the gender list is used.
    """
    reference = parameter.range
    if not isinstance(reference, BucketedRange):
        return reference or ""

    buckets = _buckets_for_gender(reference, gender)
    for item in buckets:
        lower, upper = parse_range_key(item.range_key)
        if lower <= age_days <= upper:
            return item.range_value
    if buckets:
        return buckets[-1].range_value
    return ""


def display_range(range_text: str) -> str:
    return range_text.replace("/n", "\n")


def parse_numeric_range(range_text: str | None) -> tuple[float, float] | None:
    """Parse 'up to N' or 'A - B' / 'A to B'. Anything else is not comparable."""
    if not range_text:
        return None
    match = _UP_TO_RE.match(range_text)
    if match:
        upper = parse_leading_float(match.group(1))
        return None if upper is None else (0.0, upper)

    match = _SPAN_RE.match(range_text)
    if not match:
        return None
    lower = parse_leading_float(match.group(1))
    upper = parse_leading_float(match.group(2))
    if lower is None or upper is None:
        return None
    return lower, upper


def parse_leading_float(value) -> float | None:
    """Read the numeric prefix of a value ('12.5 mg' -> 12.5); None when there is none."""
    if isinstance(value, bool) or value is None:
        return None
    if isinstance(value, (int, float)):
        return None if math.isnan(value) else float(value)
    match = _LEADING_FLOAT_RE.match(str(value).strip())
    if not match:
        return None
    return float(match.group(0))


def is_numeric_text(value) -> bool:
    """Whole-string numeric check; blank counts as numeric (it converts to 0)."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return True
    return not math.isnan(_to_number("" if value is None else str(value)))


def is_out_of_range(raw_value, range_text: str | None) -> bool:
    bounds = parse_numeric_range(range_text)
    if bounds is None:
        return False
    number = parse_leading_float(raw_value)
    if number is None:
        return False
    lower, upper = bounds
    return number < lower or number > upper


def format_value(value) -> str:
    """Display text for a stored value; whole floats drop their trailing '.0'."""
    if value is None:
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
