"""
Formatting Utilities

Functions for formatting engine results as text and pandas tables, and for
validating report date ranges.
"""

import logging
from datetime import date
from typing import Iterable, List, Mapping, Tuple

import pandas as pd

from core.calculations.downtime import ParetoEntry
from core.calculations.goals import WeeklyGoal
from core.calculations.inventory import LiveBalance, SnapshotBalance
from core.calculations.oee import LineEfficiency
from core.calculations.readiness import OrderReadiness

logger = logging.getLogger(__name__)


def format_minutes(minutes) -> str:
    """
    Format a duration in minutes as "1h 05min" (or "45min" under an hour).

    Example:
        >>> format_minutes(65)
        '1h 05min'
    """
    if minutes is None or pd.isna(minutes):
        return ""
    minutes = int(round(float(minutes)))
    hours, rest = divmod(abs(minutes), 60)
    sign = "-" if minutes < 0 else ""
    if hours:
        return f"{sign}{hours}h {rest:02d}min"
    return f"{sign}{rest}min"


def format_percentage(value, decimals: int = 1) -> str:
    if value is None or pd.isna(value):
        return ""
    return f"{float(value):.{decimals}f}%"


def format_quantity(value) -> str:
    """Thousands-separated integer ("12,345")."""
    if value is None or pd.isna(value):
        return ""
    return f"{int(round(float(value))):,}"


def convert_all_dates_to_str(df: pd.DataFrame) -> pd.DataFrame:
    """
    Convert date and datetime columns in a DataFrame to YYYY-MM-DD strings.

    Args:
        df: DataFrame with date columns

    Returns:
        Copy of the DataFrame with date columns converted to strings
    """
    df = df.copy()
    for col in df.columns:
        if pd.api.types.is_datetime64_any_dtype(df[col]):
            df[col] = df[col].dt.strftime("%Y-%m-%d")
        elif df[col].map(lambda value: isinstance(value, date)).any():
            df[col] = df[col].map(lambda value: value.isoformat() if isinstance(value, date) else "")
    return df


def validate_date_range(start: date, end: date, today: date) -> Tuple[List[str], List[str], bool]:
    """
    Validate a report date range and return errors/warnings.

    Args:
        start: First day of the range
        end: Last day of the range
        today: Current local date

    Returns:
        Tuple of (validation_errors, validation_warnings, is_valid)
    """
    validation_errors = []
    validation_warnings = []

    if end < start:
        validation_errors.append("End date must not be before start date")
        return validation_errors, validation_warnings, False

    days = (end - start).days + 1
    if days > 366:
        validation_errors.append("Date range too large (> 366 days) - please select a smaller range")
        return validation_errors, validation_warnings, False

    if days > 31:
        validation_warnings.append(f"Large date range ({days} days) - the report may take longer")

    if start > today:
        validation_warnings.append("Start date is in the future - no production is recorded yet")

    return validation_errors, validation_warnings, True


def live_balances_to_frame(balances: Mapping[str, LiveBalance]) -> pd.DataFrame:
    """Live balances as a table, most critical forecast first."""
    rows = [balance.to_dict() for balance in balances.values()]
    if not rows:
        return pd.DataFrame(columns=['product_id', 'product_name', 'total_produced', 'total_shipped', 'stock', 'pending_demand', 'forecast', 'critical'])
    return pd.DataFrame(rows).sort_values('forecast', kind='mergesort').reset_index(drop=True)


def snapshot_balances_to_frame(balances: Mapping[str, SnapshotBalance]) -> pd.DataFrame:
    rows = [balance.to_dict() for balance in balances.values()]
    if not rows:
        return pd.DataFrame(columns=['product_id', 'product_name', 'seeded_stock', 'scheduled', 'demand', 'balance', 'status'])
    return pd.DataFrame(rows).sort_values('balance', kind='mergesort').reset_index(drop=True)


def efficiency_to_frame(overview: Iterable[LineEfficiency]) -> pd.DataFrame:
    """Per-line availability and performance with formatted percentages."""
    df = pd.DataFrame([efficiency.to_dict() for efficiency in overview])
    if df.empty:
        return df
    for col in ('availability', 'performance'):
        df[col] = df[col].map(format_percentage)
    return df


def pareto_to_frame(entries: Iterable[ParetoEntry]) -> pd.DataFrame:
    df = pd.DataFrame(
        [
            {
                'name': entry.name,
                'minutes': entry.minutes,
                'stops': entry.stops,
                'share': format_percentage(entry.percentage),
                'cumulative': format_percentage(entry.cumulative_percentage),
            }
            for entry in entries
        ],
        columns=['name', 'minutes', 'stops', 'share', 'cumulative'],
    )
    return df


def goals_to_frame(goals: Iterable[WeeklyGoal]) -> pd.DataFrame:
    df = pd.DataFrame([goal.to_dict() for goal in goals])
    if not df.empty:
        df['progress'] = df['progress'].map(format_percentage)
    return df


def readiness_to_frame(readiness: OrderReadiness) -> pd.DataFrame:
    """One row per order line with required, available and shortfall."""
    return pd.DataFrame(
        [
            {
                'product_id': line.product.key,
                'product': line.product.name,
                'required': line.required,
                'available': line.available,
                'shortfall': line.shortfall,
                'covered': line.covered,
            }
            for line in readiness.lines
        ],
        columns=['product_id', 'product', 'required', 'available', 'shortfall', 'covered'],
    )
