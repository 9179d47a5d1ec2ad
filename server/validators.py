# validators.py
"""
Deterministic normalization of model output.

Dates become ``YYYY-MM-DD`` and times become 24-hour ``HH:MM``. Nothing here
guesses: input that no rule recognises is reported as a failure.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any, List, Mapping, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ValidationError

from models import AIExtractedShift, ValidatedShift
from patterns import MONTHS, WEEKDAYS, patterns


@dataclass
class NormalizationResult:
    ok: bool
    value: Optional[str] = None
    error: Optional[str] = None


@dataclass
class ShiftValidationResult:
    valid_shifts: List[ValidatedShift] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


# ------------------------------------------------------------------------------
# DATES
# ------------------------------------------------------------------------------

def is_valid_calendar_date(year: int, month: int, day: int) -> bool:
    """True when (year, month, day) survives a round-trip through ``date``."""
    try:
        d = date(year, month, day)
    except ValueError:
        return False
    return (d.year, d.month, d.day) == (year, month, day)


def _month(name: str) -> Optional[int]:
    return MONTHS.get(name.lower().rstrip("."))


def _named(day: str, month_name: str, year: Union[str, int, None], assumed_year: int):
    month = _month(month_name)
    if not month:
        return None
    return int(year) if year else assumed_year, month, int(day)


def _next_weekday(name: str, reference: date) -> date:
    target = WEEKDAYS[name[:3]]
    return reference + timedelta(days=(target - reference.weekday()) % 7)


def _match_date(text: str, assumed_year: int, reference_date: Optional[date]) -> Optional[Tuple[int, int, int]]:
    m = patterns.DATE_ISO.match(text)
    if m:
        return int(m.group(1)), int(m.group(2)), int(m.group(3))

    m = patterns.DATE_DAY_MONTH_YEAR.match(text)
    if m and _month(m.group(2)):
        return _named(m.group(1), m.group(2), m.group(3), assumed_year)

    m = patterns.DATE_DAY_MONTH.match(text)
    if m and _month(m.group(2)):
        return _named(m.group(1), m.group(2), None, assumed_year)

    m = patterns.DATE_MONTH_DAY.match(text)
    if m and _month(m.group(1)):
        return _named(m.group(2), m.group(1), m.group(3), assumed_year)

    m = patterns.DATE_DAY_DASH_MONTH.match(text)
    if m and _month(m.group(2)):
        return _named(m.group(1), m.group(2), m.group(3), assumed_year)

    m = patterns.DATE_MONTH_DASH_DAY.match(text)
    if m and _month(m.group(1)):
        return _named(m.group(2), m.group(1), m.group(3), assumed_year)

    # Slash dates are day/month: the roster locale never writes month first.
    m = patterns.DATE_SLASH_DM.match(text)
    if m:
        day, month = int(m.group(1)), int(m.group(2))
        if 1 <= day <= 31 and 1 <= month <= 12:
            return assumed_year, month, day

    m = patterns.DATE_SLASH_DMY.match(text)
    if m:
        return int(m.group(3)), int(m.group(2)), int(m.group(1))

    m = patterns.DATE_SLASH_YMD.match(text)
    if m:
        return int(m.group(1)), int(m.group(2)), int(m.group(3))

    m = patterns.DATE_KOREAN.match(text)
    if m:
        year = int(m.group(1)) if m.group(1) else assumed_year
        return year, int(m.group(2)), int(m.group(3))

    if reference_date is not None:
        m = patterns.WEEKDAY_ONLY.match(text)
        if m:
            d = _next_weekday(m.group(1), reference_date)
            return d.year, d.month, d.day

    return None


def normalize_date(
    text: Optional[str],
    assumed_year: int,
    reference_date: Optional[date] = None,
) -> NormalizationResult:
    """
    Normalize a loosely formatted date to ``YYYY-MM-DD``.

    ``assumed_year`` fills in forms without a year ("15th January", "15/1").
    A bare weekday ("Mon") is only resolved when ``reference_date`` is given,
    to the first such day on or after it.
    """
    if not text or not isinstance(text, str) or not text.strip():
        return NormalizationResult(ok=False, error="Empty or invalid date input")

    cleaned = " ".join(text.strip().lower().split())
    parts = _match_date(cleaned, assumed_year, reference_date)
    if parts is None:
        return NormalizationResult(ok=False, error=f'Could not parse date: "{text.strip()}"')

    year, month, day = parts
    if not is_valid_calendar_date(year, month, day):
        return NormalizationResult(ok=False, error=f"Invalid date values: {text.strip()}")

    return NormalizationResult(ok=True, value=f"{year:04d}-{month:02d}-{day:02d}")


# ------------------------------------------------------------------------------
# TIMES
# ------------------------------------------------------------------------------

def _hhmm(hours: int, minutes: int) -> Optional[str]:
    if 0 <= hours <= 23 and 0 <= minutes <= 59:
        return f"{hours:02d}:{minutes:02d}"
    return None


def _meridiem(hours: int, minutes: int, pm: bool) -> Optional[str]:
    if not 1 <= hours <= 12:
        return None
    if pm and hours != 12:
        hours += 12
    elif not pm and hours == 12:
        hours = 0
    return _hhmm(hours, minutes)


def _match_time(raw: str) -> Optional[str]:
    text = raw.strip().lower().replace("a.m.", "am").replace("p.m.", "pm")

    m = patterns.TIME_24H.match(text)
    if m:
        return _hhmm(int(m.group(1)), int(m.group(2)))

    m = patterns.TIME_MERIDIEM.match(text) or patterns.TIME_MERIDIEM_SPACED.match(text)
    if m:
        return _meridiem(int(m.group(1)), int(m.group(2) or 0), m.group(3) == "pm")

    m = patterns.TIME_MILITARY.match(text)
    if m:
        padded = m.group(1).zfill(4)
        return _hhmm(int(padded[:2]), int(padded[2:]))

    if patterns.TIME_NOON.match(text):
        return "12:00"
    if patterns.TIME_MIDNIGHT.match(text):
        return "00:00"

    m = patterns.TIME_KOREAN.match(text)
    if m:
        return _meridiem(int(m.group(2)), int(m.group(3) or 0), m.group(1) == "오후")

    return None


def normalize_time(text: Optional[str]) -> NormalizationResult:
    """Normalize a time to 24-hour ``HH:MM``; ``ok=False`` means unspecified."""
    if not text or not isinstance(text, str) or not text.strip():
        return NormalizationResult(ok=False)

    value = _match_time(text)
    if value is None:
        return NormalizationResult(ok=False, error=f'Could not parse time: "{text}"')
    return NormalizationResult(ok=True, value=value)


def _bare_hour(text: str) -> Optional[int]:
    m = patterns.TIME_BARE_HOUR.match(text.strip())
    return int(m.group(1)) if m else None


def parse_time_range(text: Optional[str]) -> Tuple[Optional[str], Optional[str]]:
    """
    Split "9am-5pm" / "09:00 – 17:00" / "9 to 5" into normalized (start, end).

    Bare hours are read as whole hours. A bare end hour below a morning start
    hour is afternoon ("9-5" ends 17:00) and 24 means midnight.
    """
    if not text or not isinstance(text, str):
        return None, None

    m = patterns.TIME_RANGE.match(text.strip())
    if not m:
        return None, None

    left, right = m.group(1), m.group(2)
    start, end = normalize_time(left).value, normalize_time(right).value
    start_hour, end_hour = _bare_hour(left), _bare_hour(right)

    if start is None and start_hour is not None:
        start = _hhmm(start_hour, 0)
    if end is None and end_hour is not None:
        if end_hour == 24:
            end_hour = 0
        elif start_hour is not None and start_hour <= 12 and end_hour < start_hour:
            end_hour += 12
        end = _hhmm(end_hour, 0)
    return start, end


# ------------------------------------------------------------------------------
# SHIFTS
# ------------------------------------------------------------------------------

RawShift = Union[AIExtractedShift, ValidatedShift, Mapping[str, Any]]


def _coerce(raw: Any) -> Optional[AIExtractedShift]:
    if isinstance(raw, AIExtractedShift):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump()
    if not isinstance(raw, Mapping):
        return None
    try:
        return AIExtractedShift.model_validate(dict(raw))
    except ValidationError:
        return None


def _resolve_time(
    label: str,
    value: Optional[str],
    range_half: Optional[str],
    index: int,
    warnings: List[str],
) -> Optional[str]:
    if value:
        result = normalize_time(value)
        if result.ok:
            return result.value
        warnings.append(f'Shift {index}: Could not parse {label} time "{value}"')
    if range_half:
        warnings.append(f"Shift {index}: Used rawTimeText fallback for {label} time")
        return range_half
    return None


def validate_shifts(
    raw_shifts: Sequence[RawShift],
    assumed_year: int,
    reference_date: Optional[date] = None,
) -> ShiftValidationResult:
    """
    Validate model-extracted shifts.

    A shift without a resolvable date is dropped and reported in ``errors``.
    Times are optional: an unreadable time is reported in ``warnings`` and
    left as ``None``. Raw date/time text is carried through for auditing.
    """
    result = ShiftValidationResult()

    if not isinstance(raw_shifts, (list, tuple)):
        result.errors.append("Invalid shifts array")
        return result

    for index, raw in enumerate(raw_shifts, start=1):
        shift = _coerce(raw)
        if shift is None:
            result.errors.append(f"Shift {index}: Invalid shift object")
            continue

        date_result = normalize_date(shift.date, assumed_year, reference_date)
        normalized_date = date_result.value if date_result.ok else None
        if normalized_date is None and shift.raw_date_text:
            fallback = normalize_date(shift.raw_date_text, assumed_year, reference_date)
            if fallback.ok:
                normalized_date = fallback.value
                result.warnings.append(f"Shift {index}: Used rawDateText fallback for date")

        if normalized_date is None:
            result.errors.append(f"Shift {index}: {date_result.error or 'Invalid date'}")
            continue

        # The carried raw text is the range read here, so a second pass sees the same input.
        raw_time_text = shift.raw_time_text or f"{shift.start_time or ''}-{shift.end_time or ''}"
        range_start, range_end = None, None
        if not (normalize_time(shift.start_time).ok and normalize_time(shift.end_time).ok):
            range_start, range_end = parse_time_range(raw_time_text)

        start = _resolve_time("start", shift.start_time, range_start, index, result.warnings)
        end = _resolve_time("end", shift.end_time, range_end, index, result.warnings)

        result.valid_shifts.append(
            ValidatedShift(
                date=normalized_date,
                start_time=start,
                end_time=end,
                location=shift.location or None,
                job_name=shift.job_name or None,
                raw_date_text=shift.raw_date_text or shift.date or "",
                raw_time_text=raw_time_text,
                note=shift.note or None,
            )
        )

    return result
