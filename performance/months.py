"""
Reporting-month arithmetic.

The ledger keys every fact by a month label of the form ``"MAR 2025"``
(three-letter English abbreviation, upper-cased, space, four-digit year).
Report forms send month pickers as ``"MM:YYYY"``.  Everything here works on
``(year, month)`` tuples internally and converts at the edges.

The "current" reporting month is never read from the clock inside a service:
callers build a :class:`ReportingPeriod` (usually via
:meth:`ReportingPeriod.for_date`) and pass it in.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Sequence

from performance.errors import ValidationError
from utils.patterns import MONTH_INPUT, MONTH_LABEL

MONTH_ABBREVIATIONS = (
    "JAN", "FEB", "MAR", "APR", "MAY", "JUN",
    "JUL", "AUG", "SEP", "OCT", "NOV", "DEC",
)
_MONTH_INDEX = {abbr: i + 1 for i, abbr in enumerate(MONTH_ABBREVIATIONS)}

# Upper bound on a start/end expansion; ten years of months
MAX_RANGE_MONTHS = 120


def _check_month(month: int) -> None:
    if not 1 <= month <= 12:
        raise ValidationError(f"Month must be between 1 and 12, got {month}")


def month_label(year: int, month: int) -> str:
    """Return the ledger label for *year*/*month*, e.g. ``"MAR 2025"``."""
    _check_month(month)
    return f"{MONTH_ABBREVIATIONS[month - 1]} {year:04d}"


def parse_month_label(label: str) -> tuple[int, int]:
    """Parse ``"MAR 2025"`` (any case) into ``(2025, 3)``."""
    m = MONTH_LABEL.match(label or "")
    if not m:
        raise ValidationError(f"Invalid month label: {label!r}")
    month = _MONTH_INDEX.get(m.group(1).upper())
    if month is None:
        raise ValidationError(f"Invalid month label: {label!r}")
    return int(m.group(2)), month


def normalize_month_label(label: str) -> str:
    """Return *label* in canonical upper-case form."""
    return month_label(*parse_month_label(label))


def parse_month_input(value: str) -> tuple[int, int]:
    """Parse a month picker value ``"03:2025"`` into ``(2025, 3)``."""
    m = MONTH_INPUT.match(value or "")
    if not m:
        raise ValidationError(
            f"Invalid month {value!r}; expected MM:YYYY", details={"value": value}
        )
    month = int(m.group(1))
    _check_month(month)
    return int(m.group(2)), month


def shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    """Move *delta* months forward (negative for backward)."""
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def month_sort_key(label: str) -> tuple[int, int]:
    return parse_month_label(label)


def sort_month_labels(labels: Iterable[str]) -> list[str]:
    """Return *labels* in chronological order."""
    return sorted(labels, key=month_sort_key)


@dataclass(frozen=True)
class ReportingPeriod:
    """The month a form is filled for, plus the month before it."""

    year: int
    month: int

    def __post_init__(self) -> None:
        _check_month(self.month)

    @classmethod
    def for_date(cls, today: date, offset: int = 0) -> "ReportingPeriod":
        """Reporting period for the calendar date *today*.

        *offset* months are subtracted, so ``offset=1`` reports on the
        month that has just closed.
        """
        return cls(*shift_month(today.year, today.month, -offset))

    @classmethod
    def from_label(cls, label: str) -> "ReportingPeriod":
        return cls(*parse_month_label(label))

    @property
    def label(self) -> str:
        return month_label(self.year, self.month)

    @property
    def previous(self) -> "ReportingPeriod":
        return ReportingPeriod(*shift_month(self.year, self.month, -1))

    @property
    def previous_label(self) -> str:
        return self.previous.label


def expand_month_range(start: str, end: str) -> list[str]:
    """Expand two ``"MM:YYYY"`` values into the inclusive list of labels.

    Raises:
        ValidationError: malformed input, start after end, or a range
            longer than MAX_RANGE_MONTHS.
    """
    sy, sm = parse_month_input(start)
    ey, em = parse_month_input(end)
    span = (ey * 12 + em) - (sy * 12 + sm)
    if span < 0:
        raise ValidationError(
            "startMonth must not be after endMonth",
            details={"startMonth": start, "endMonth": end},
        )
    if span >= MAX_RANGE_MONTHS:
        raise ValidationError(
            f"Month range may cover at most {MAX_RANGE_MONTHS} months"
        )
    return [month_label(*shift_month(sy, sm, i)) for i in range(span + 1)]


def resolve_months(
    start: str | None = None,
    end: str | None = None,
    months: Sequence[str] | None = None,
) -> list[str]:
    """Pick the month labels a report covers.

    An explicit *months* list wins; otherwise ``start``/``end`` are expanded
    (a lone bound means a single month).  No input at all yields ``[]``.
    """
    if months:
        seen: dict[str, None] = {}
        for label in months:
            seen[normalize_month_label(label)] = None
        return list(seen)
    if start or end:
        return expand_month_range(start or end, end or start)
    return []


def financial_year_labels(period: ReportingPeriod, fy_start: int = 4) -> list[str]:
    """Labels from the opening month of *period*'s financial year through *period*.

    With ``fy_start=4`` the period ``FEB 2025`` belongs to the financial year
    that opened in ``APR 2024``.
    """
    _check_month(fy_start)
    back = (period.month - fy_start) % 12
    year, month = shift_month(period.year, period.month, -back)
    return [month_label(*shift_month(year, month, i)) for i in range(back + 1)]


def month_in_window(month: int, start: int | None, end: int | None) -> bool:
    """True when calendar *month* lies in the inclusive window [start, end].

    Windows may wrap the year end (``start=10, end=3`` covers OCT..MAR).
    A missing bound leaves that side open.
    """
    if start is None and end is None:
        return True
    if start is None:
        return month <= end
    if end is None:
        return month >= start
    if start <= end:
        return start <= month <= end
    return month >= start or month <= end
