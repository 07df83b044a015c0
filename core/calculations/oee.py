"""
Line Efficiency Calculator

Availability and performance ratios for a production line (optionally one
shift) computed from shift apportionment records:

- Availability = (worked minutes - bottleneck downtime) / worked minutes
- Performance  = units produced / capacity target

Capacity is linearly scaled from the product's nominal 8-hour basis to the
hours actually worked. Both ratios are reported independently; reports that
need a composite OEE figure compose it themselves.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

import numpy as np

from core.records.models import Line, ProductionRecord
from core.records.normalizer import parse_volume_liters

logger = logging.getLogger(__name__)


NOMINAL_SHIFT_HOURS = 8.0
DEFAULT_UNITS_PER_PACK = 12
DEFAULT_PACKS_PER_PALLET = 84

# Bottleneck downtime (minutes) above which a line is flagged critical
CRITICAL_DOWNTIME_MINUTES = 30


@dataclass(frozen=True)
class LineEfficiency:
    """Container for line efficiency results"""
    line_id: Optional[str]
    line_name: Optional[str]
    shift: Optional[str]
    record_count: int
    worked_minutes: float
    raw_downtime_minutes: int
    bottleneck_downtime_minutes: int
    units_produced: int
    capacity_target: float
    availability: float   # 0 to 100
    performance: float    # 0 to 100 (can exceed 100)
    has_capacity: bool
    packs: float
    pallets: float
    liters: float         # produced volume, 0 for products without a volume label

    @property
    def alert_severity(self) -> str:
        return alert_severity(self.bottleneck_downtime_minutes)

    def to_dict(self) -> Dict[str, object]:
        """Convert to dictionary for easy display"""
        return {
            'line_id': self.line_id,
            'line_name': self.line_name,
            'shift': self.shift,
            'record_count': self.record_count,
            'worked_minutes': self.worked_minutes,
            'raw_downtime_minutes': self.raw_downtime_minutes,
            'bottleneck_downtime_minutes': self.bottleneck_downtime_minutes,
            'units_produced': self.units_produced,
            'capacity_target': self.capacity_target,
            'availability': self.availability,
            'performance': self.performance,
            'has_capacity': self.has_capacity,
            'packs': self.packs,
            'pallets': self.pallets,
            'liters': self.liters,
            'alert_severity': self.alert_severity,
        }

    def to_percentage_dict(self) -> Dict[str, float]:
        """Rounded ratios for display"""
        return {
            'availability': round(self.availability, 1),
            'performance': round(self.performance, 1),
        }


def calculate_availability(worked_minutes: float, downtime_minutes: float) -> float:
    """
    Calculate availability as a percentage of worked time.

    Args:
        worked_minutes: Total scheduled working time in minutes
        downtime_minutes: Downtime counted against availability

    Returns:
        Availability (0-100); 0 when no time was worked

    Example:
        >>> calculate_availability(480, 48)
        90.0
    """
    if worked_minutes <= 0:
        return 0.0
    availability = (worked_minutes - downtime_minutes) / worked_minutes * 100
    return float(np.clip(availability, 0.0, 100.0))


def calculate_capacity_target(records: Iterable[ProductionRecord]) -> float:
    """
    Sum of nominal capacity scaled to the hours worked on each record.

    Records whose product has no nominal capacity do not contribute.
    """
    target = 0.0
    for record in records:
        if record.product.has_capacity:
            target += record.product.nominal_capacity / NOMINAL_SHIFT_HOURS * record.hours_worked
    return target


def calculate_performance(units_produced: float, capacity_target: float) -> float:
    """
    Calculate performance ratio as a percentage.

    Example:
        >>> round(calculate_performance(3000, 3600), 1)
        83.3
    """
    if capacity_target <= 0:
        return 0.0
    return units_produced / capacity_target * 100


def calculate_packaging(records: Iterable[ProductionRecord]) -> Dict[str, float]:
    """
    Convert produced units into packs, pallets and liters using each product's factors.

    Products without packaging data use 12 units per pack and 84 packs per pallet.
    Liters come from the product's volume label ("500ml", "2L").
    """
    packs = 0.0
    pallets = 0.0
    liters = 0.0
    for record in records:
        units_per_pack = record.product.units_per_pack or DEFAULT_UNITS_PER_PACK
        packs_per_pallet = record.product.packs_per_pallet or DEFAULT_PACKS_PER_PALLET
        record_packs = record.quantity / units_per_pack
        packs += record_packs
        pallets += record_packs / packs_per_pallet
        liters += record.quantity * parse_volume_liters(record.product.volume)
    return {'packs': packs, 'pallets': pallets, 'liters': liters}


def alert_severity(bottleneck_minutes: float, critical_minutes: float = CRITICAL_DOWNTIME_MINUTES) -> str:
    """NONE without downtime, CRITICAL above the threshold, MODERATE otherwise."""
    if bottleneck_minutes > critical_minutes:
        return "CRITICAL"
    if bottleneck_minutes > 0:
        return "MODERATE"
    return "NONE"


def calculate_line_efficiency(
    records: Iterable[ProductionRecord],
    line: Optional[Line] = None,
    shift: Optional[str] = None,
) -> LineEfficiency:
    """
    Calculate availability and performance for records of one line.

    The records must already be scoped to the line (and shift) by the caller;
    line and shift are only carried into the result for labelling.

    Args:
        records: Production records of the line
        line: Line the records belong to
        shift: Shift label the records were filtered on

    Returns:
        LineEfficiency with both ratios and the inputs behind them
    """
    records = list(records)

    worked_minutes = sum(record.worked_minutes for record in records)
    raw_downtime = sum(record.downtime_minutes for record in records)
    bottleneck_downtime = sum(record.bottleneck_minutes for record in records)
    units = sum(record.quantity for record in records)
    capacity_target = calculate_capacity_target(records)
    packaging = calculate_packaging(records)

    return LineEfficiency(
        line_id=line.id if line is not None else None,
        line_name=line.name if line is not None else None,
        shift=shift,
        record_count=len(records),
        worked_minutes=worked_minutes,
        raw_downtime_minutes=raw_downtime,
        bottleneck_downtime_minutes=bottleneck_downtime,
        units_produced=units,
        capacity_target=capacity_target,
        availability=calculate_availability(worked_minutes, bottleneck_downtime),
        performance=calculate_performance(units, capacity_target),
        has_capacity=any(record.product.has_capacity for record in records),
        packs=packaging['packs'],
        pallets=packaging['pallets'],
        liters=packaging['liters'],
    )


def calculate_lines_overview(
    lines: Iterable[Line],
    records: Iterable[ProductionRecord],
    shift: Optional[str] = None,
) -> List[LineEfficiency]:
    """
    Efficiency for every line, including lines without records.

    Records must already be scoped to the date range (and shift).
    """
    records = list(records)
    overview = []
    for line in lines:
        line_records = [record for record in records if record.line.id == line.id and record.line.identified]
        overview.append(calculate_line_efficiency(line_records, line, shift))

    critical = [efficiency.line_name for efficiency in overview if efficiency.alert_severity == "CRITICAL"]
    if critical:
        logger.info(f"Lines above {CRITICAL_DOWNTIME_MINUTES} min of bottleneck downtime: {', '.join(critical)}")

    return overview
