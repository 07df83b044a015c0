"""
Downtime Aggregation Functions

Classifies stop events by equipment category, reason and stop type, and
computes totals, Pareto rankings and MTTR for a set of production records.

Two scopes are always reported side by side:
- raw: every stop event, whatever its type
- bottleneck: Scheduled stops excluded (planned downtime is not a reliability failure)

Callers decide which scope to display.
"""

import logging
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Iterable, Optional, Tuple

import numpy as np
import pandas as pd

from core.records.models import ProductionRecord, StopType

logger = logging.getLogger(__name__)


OTHER_CATEGORY = "OTHER"

# Ordered (keywords, category) pairs; the first match wins.
EQUIPMENT_CATEGORIES: Tuple[Tuple[Tuple[str, ...], str], ...] = (
    (("LABEL",), "LABELER"),
    (("BLOW", "MOLDER"), "BLOW MOLDER"),
    (("FILL",), "FILLER"),
    (("SETUP", "CHANGEOVER"), "SETUP"),
    (("MAINT",), "MAINTENANCE"),
    (("PACK", "WRAP"), "PACKER"),
)

# Units per 8-hour shift when neither the record nor its product carries a capacity
DEFAULT_FALLBACK_CAPACITY = 7200.0

STOP_COLUMNS = [
    "record_id", "date", "line", "equipment", "category", "reason",
    "stop_type", "minutes", "lost_units", "notes",
]


def categorize_equipment(
    equipment: str,
    table: Tuple[Tuple[Tuple[str, ...], str], ...] = EQUIPMENT_CATEGORIES,
) -> str:
    """
    Categorize an equipment label using the classification table.

    Matching is a case-insensitive substring test against each keyword, in
    table order. Labels matching nothing fall into "OTHER".

    Args:
        equipment: Equipment label from a stop event
        table: Ordered (keywords, category) pairs

    Returns:
        Category name
    """
    if not equipment or not isinstance(equipment, str):
        return OTHER_CATEGORY

    label = equipment.upper()
    for keywords, category in table:
        if any(keyword.upper() in label for keyword in keywords):
            return category

    return OTHER_CATEGORY


def calculate_mttr(total_minutes: float, stop_count: int) -> float:
    """Mean time to repair in minutes; 0 when there were no stops."""
    if stop_count <= 0:
        return 0.0
    return total_minutes / stop_count


@dataclass(frozen=True)
class ParetoEntry:
    """One contributor in a Pareto ranking."""
    name: str
    minutes: int
    stops: int
    percentage: float             # share of the scope total, 0-100
    cumulative_percentage: float  # running share, 0-100


@dataclass(frozen=True)
class FailureDetail:
    """Flattened stop event for drill-down tables."""
    date: date
    line: str
    equipment: str
    category: str
    stop_type: str
    reason: str
    minutes: int
    lost_units: int
    notes: str


@dataclass(frozen=True)
class DowntimeSummary:
    """Downtime totals and rankings for one scope (raw or bottleneck)."""
    total_minutes: int
    stop_count: int
    mttr: float
    by_equipment: Dict[str, int]
    by_category: Dict[str, int]
    by_reason: Dict[str, int]
    by_type: Dict[str, int]
    pareto: Tuple[ParetoEntry, ...]           # by equipment
    category_pareto: Tuple[ParetoEntry, ...]
    reason_pareto: Tuple[ParetoEntry, ...]
    type_pareto: Tuple[ParetoEntry, ...]

    def to_dict(self) -> Dict:
        """Convert to dictionary for easy display"""
        return {
            'total_minutes': self.total_minutes,
            'stop_count': self.stop_count,
            'mttr': self.mttr,
            'by_equipment': dict(self.by_equipment),
            'by_category': dict(self.by_category),
            'by_reason': dict(self.by_reason),
            'by_type': dict(self.by_type),
        }


@dataclass(frozen=True)
class DowntimeBreakdown:
    """
    Downtime analysis of a record set.

    raw and bottleneck are complete, independent summaries. The named
    shortcuts below are what the downtime reports display.
    """
    raw: DowntimeSummary
    bottleneck: DowntimeSummary
    top_equipment: Tuple[Tuple[str, int], ...] = field(default_factory=tuple)
    most_critical_type: Optional[str] = None
    critical_type_equipment: Tuple[ParetoEntry, ...] = field(default_factory=tuple)
    lost_units: int = 0
    failures: Tuple[FailureDetail, ...] = field(default_factory=tuple)

    @property
    def raw_total(self) -> int:
        return self.raw.total_minutes

    @property
    def bottleneck_total(self) -> int:
        return self.bottleneck.total_minutes

    @property
    def total_stop_count(self) -> int:
        return self.raw.stop_count

    @property
    def mttr(self) -> float:
        return self.raw.mttr

    @property
    def pareto(self) -> Tuple[ParetoEntry, ...]:
        """Bottleneck Pareto by equipment."""
        return self.bottleneck.pareto


def stop_events_frame(
    records: Iterable[ProductionRecord],
    fallback_capacity: float = DEFAULT_FALLBACK_CAPACITY,
) -> pd.DataFrame:
    """
    Flatten the stop events of records into one row per event.

    Zero-minute events are dropped: they carry neither downtime nor a stop.
    Lost units estimate what the line would have produced during the stop,
    at the capacity recorded on the entry, else the product's nominal
    capacity, else fallback_capacity (all per 8-hour shift).

    Args:
        records: Normalized production records
        fallback_capacity: Capacity per 8h used when nothing else is known

    Returns:
        DataFrame with STOP_COLUMNS
    """
    rows = []

    for record in records:
        capacity = record.capacity_snapshot or record.product.nominal_capacity or fallback_capacity
        per_minute = capacity / 480.0

        for stop in record.stops:
            if stop.minutes <= 0:
                continue
            rows.append({
                "record_id": record.id,
                "date": record.date,
                "line": record.line.name,
                "equipment": stop.equipment,
                "category": categorize_equipment(stop.equipment),
                "reason": stop.reason,
                "stop_type": stop.stop_type.value,
                "minutes": stop.minutes,
                "lost_units": stop.minutes * per_minute,
                "notes": record.notes,
            })

    return pd.DataFrame(rows, columns=STOP_COLUMNS)


def _minutes_by(frame: pd.DataFrame, column: str) -> Dict[str, int]:
    if frame.empty:
        return {}
    totals = frame.groupby(column, sort=True)["minutes"].sum()
    return {str(name): int(minutes) for name, minutes in totals.items()}


def build_pareto(frame: pd.DataFrame, column: str) -> Tuple[ParetoEntry, ...]:
    """
    Rank contributors of a stop frame by downtime minutes.

    Ties are broken by name so the ranking is reproducible.

    Args:
        frame: Stop frame from stop_events_frame()
        column: Grouping column ('equipment', 'category', 'reason', 'stop_type')

    Returns:
        Pareto entries in descending order of minutes
    """
    if frame.empty:
        return ()

    grouped = (
        frame.groupby(column)
        .agg(minutes=("minutes", "sum"), stops=("minutes", "size"))
        .reset_index()
        .sort_values(["minutes", column], ascending=[False, True], kind="mergesort")
    )

    total = grouped["minutes"].sum()
    minutes = grouped["minutes"].to_numpy(dtype=float)
    if total > 0:
        percentage = minutes / total * 100
        cumulative = np.cumsum(minutes) / total * 100
    else:
        percentage = np.zeros(len(grouped))
        cumulative = np.zeros(len(grouped))

    return tuple(
        ParetoEntry(
            name=str(name),
            minutes=int(row_minutes),
            stops=int(stops),
            percentage=float(pct),
            cumulative_percentage=float(cum),
        )
        for name, row_minutes, stops, pct, cum in zip(
            grouped[column], grouped["minutes"], grouped["stops"], percentage, cumulative
        )
    )


def summarize_stops(frame: pd.DataFrame) -> DowntimeSummary:
    """Totals, MTTR and rankings for one stop frame."""
    total = int(frame["minutes"].sum()) if not frame.empty else 0
    count = int(len(frame))

    return DowntimeSummary(
        total_minutes=total,
        stop_count=count,
        mttr=calculate_mttr(total, count),
        by_equipment=_minutes_by(frame, "equipment"),
        by_category=_minutes_by(frame, "category"),
        by_reason=_minutes_by(frame, "reason"),
        by_type=_minutes_by(frame, "stop_type"),
        pareto=build_pareto(frame, "equipment"),
        category_pareto=build_pareto(frame, "category"),
        reason_pareto=build_pareto(frame, "reason"),
        type_pareto=build_pareto(frame, "stop_type"),
    )


def top_equipment_by_frequency(frame: pd.DataFrame, limit: int = 3) -> Tuple[Tuple[str, int], ...]:
    """Equipment with the most stop events (ties by name)."""
    if frame.empty:
        return ()
    counts = frame.groupby("equipment").size().reset_index(name="stops")
    counts = counts.sort_values(["stops", "equipment"], ascending=[False, True], kind="mergesort")
    return tuple((str(name), int(stops)) for name, stops in counts.head(limit).itertuples(index=False))


def _failure_details(frame: pd.DataFrame) -> Tuple[FailureDetail, ...]:
    if frame.empty:
        return ()
    ordered = frame.sort_values("date", ascending=False, kind="mergesort")
    return tuple(
        FailureDetail(
            date=row.date,
            line=row.line,
            equipment=row.equipment,
            category=row.category,
            stop_type=row.stop_type,
            reason=row.reason,
            minutes=int(row.minutes),
            lost_units=int(round(row.lost_units)),
            notes=row.notes,
        )
        for row in ordered.itertuples(index=False)
    )


def calculate_downtime_breakdown(
    records: Iterable[ProductionRecord],
    fallback_capacity: float = DEFAULT_FALLBACK_CAPACITY,
    top_n: int = 3,
) -> DowntimeBreakdown:
    """
    Aggregate the downtime of records that the caller already scoped.

    Args:
        records: Production records filtered by date/line/shift
        fallback_capacity: Capacity per 8h for lost-volume estimates
        top_n: How many equipment to report by stop frequency

    Returns:
        DowntimeBreakdown with raw and bottleneck summaries

    Example:
        >>> breakdown = calculate_downtime_breakdown(records)
        >>> print(breakdown.raw_total, breakdown.bottleneck_total, breakdown.mttr)
    """
    frame = stop_events_frame(records, fallback_capacity)
    bottleneck_frame = frame[frame["stop_type"] != StopType.SCHEDULED.value]

    raw = summarize_stops(frame)
    bottleneck = summarize_stops(bottleneck_frame)

    most_critical_type = raw.type_pareto[0].name if raw.type_pareto else None
    critical_type_equipment = ()
    if most_critical_type is not None:
        critical_type_equipment = build_pareto(
            frame[frame["stop_type"] == most_critical_type], "equipment"
        )

    lost_units = int(round(frame["lost_units"].sum())) if not frame.empty else 0

    logger.debug(
        f"Downtime breakdown: raw={raw.total_minutes} min / {raw.stop_count} stops, "
        f"bottleneck={bottleneck.total_minutes} min / {bottleneck.stop_count} stops"
    )

    return DowntimeBreakdown(
        raw=raw,
        bottleneck=bottleneck,
        top_equipment=top_equipment_by_frequency(frame, top_n),
        most_critical_type=most_critical_type,
        critical_type_equipment=critical_type_equipment,
        lost_units=lost_units,
        failures=_failure_details(frame),
    )
