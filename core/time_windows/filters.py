"""
Record Filtering Utilities

Functions to scope production records and plan entries by date range,
line and shift before they reach the calculators.
"""

from typing import Iterable, List, Optional

from core.records.models import ProductionRecord, WeeklyPlanEntry

from .models import DateRange, WeekWindow


def normalize_shift(shift) -> str:
    """Canonical shift label used for comparisons ("1st Shift " -> "1st shift")."""
    if shift is None:
        return ""
    return " ".join(str(shift).split()).casefold()


def shift_matches(record_shift: str, shift: Optional[str]) -> bool:
    """True when no shift filter is given or the labels match case-insensitively."""
    if shift is None or normalize_shift(shift) == "":
        return True
    return normalize_shift(record_shift) == normalize_shift(shift)


def filter_records(
    records: Iterable[ProductionRecord],
    date_range: Optional[DateRange] = None,
    line_id: Optional[str] = None,
    shift: Optional[str] = None,
) -> List[ProductionRecord]:
    """
    Filter production records by date range, line and shift.

    Args:
        records: Normalized production records
        date_range: Optional inclusive date range
        line_id: Optional line identifier or display name
        shift: Optional shift label

    Returns:
        Records matching every given criterion, in their original order

    Example:
        >>> scoped = filter_records(records, DateRange(d1, d2), line_id="L1")
    """
    filtered = []

    for record in records:
        if date_range is not None and not date_range.contains(record.date):
            continue
        if line_id is not None and not record.line.matches(line_id):
            continue
        if not shift_matches(record.shift, shift):
            continue
        filtered.append(record)

    return filtered


def filter_plan_entries(
    entries: Iterable[WeeklyPlanEntry],
    week: WeekWindow,
) -> List[WeeklyPlanEntry]:
    """Plan entries whose target day falls within the week."""
    return [entry for entry in entries if week.contains(entry.target_day)]


def get_date_range_summary(date_range: DateRange, records: Iterable[ProductionRecord]) -> dict:
    """
    Summarize how many records a date range selects.

    Returns:
        Dictionary with the range bounds, day count and record coverage
    """
    records = list(records)
    selected = filter_records(records, date_range)
    return {
        'start': date_range.start,
        'end': date_range.end,
        'days': date_range.days,
        'total_records': len(records),
        'included_records': len(selected),
        'coverage_percentage': (len(selected) / len(records) * 100) if records else 0.0,
    }
