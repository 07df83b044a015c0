"""
Production Record Models

Typed, immutable representations of the five Data Store collections:
- Product / Line: reference data
- ProductionRecord (with embedded StopEvents): shift apportionment entries
- Order (with OrderLines): customer backlog
- WeeklyPlanEntry: planned quantity per product and day

Raw rows are converted into these types once, by the normalizer, before any
aggregation runs.
"""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional, Tuple


UNIDENTIFIED_PREFIX = "?"


class StopType(str, Enum):
    """Stop event classification recorded by shift operators."""
    SCHEDULED = "Scheduled"
    UNPLANNED = "Unplanned"
    CHANGEOVER = "Changeover"
    LOGISTICS = "Logistics"
    ADMINISTRATIVE = "Administrative"


class OrderStatus(str, Enum):
    """
    Order lifecycle as observed by the engine.

    Pending -> Scheduled -> Finalized -> Delivered, with Cancelled reachable
    from any non-terminal state. Transitions are made by external collaborators.
    """
    PENDING = "Pending"
    SCHEDULED = "Scheduled"
    FINALIZED = "Finalized"
    DELIVERED = "Delivered"
    CANCELLED = "Cancelled"

    @property
    def is_shipped(self) -> bool:
        """Stock has already left the warehouse for this order."""
        return self in (OrderStatus.FINALIZED, OrderStatus.DELIVERED)

    @property
    def is_backlog(self) -> bool:
        """Order still waits for fulfillment."""
        return self not in (OrderStatus.FINALIZED, OrderStatus.DELIVERED, OrderStatus.CANCELLED)


@dataclass(frozen=True)
class Product:
    """A SKU from the product catalog."""
    id: str
    name: str
    nominal_capacity: Optional[float] = None  # units per 8-hour shift
    units_per_pack: Optional[int] = None
    packs_per_pallet: Optional[int] = None
    volume: Optional[str] = None
    product_type: Optional[str] = None
    identified: bool = True

    @property
    def key(self) -> str:
        """Stable grouping key, also for unidentified references."""
        return self.id if self.identified else f"{UNIDENTIFIED_PREFIX}{self.id}"

    @property
    def has_capacity(self) -> bool:
        return bool(self.nominal_capacity) and self.nominal_capacity > 0

    @classmethod
    def unidentified(cls, reference) -> "Product":
        """Placeholder for a reference that matches neither id nor name."""
        label = "" if reference is None else str(reference).strip()
        return cls(id=label, name=label or "UNIDENTIFIED SKU", identified=False)


@dataclass(frozen=True)
class Line:
    """Production line. Only used to scope aggregation."""
    id: str
    name: str
    identified: bool = True

    @classmethod
    def unidentified(cls, reference) -> "Line":
        label = "" if reference is None else str(reference).strip()
        return cls(id=label, name=label or "UNKNOWN LINE", identified=False)

    def matches(self, reference) -> bool:
        """Case-insensitive match against id or display name."""
        if reference is None:
            return False
        ref = str(reference).strip().upper()
        return ref in (str(self.id).upper(), str(self.name).upper())


@dataclass(frozen=True)
class StopEvent:
    """A single stop/downtime event owned by one production record."""
    stop_type: StopType
    equipment: str
    reason: str
    minutes: int
    start_time: Optional[str] = None
    end_time: Optional[str] = None

    @property
    def is_scheduled(self) -> bool:
        return self.stop_type is StopType.SCHEDULED


@dataclass(frozen=True)
class ProductionRecord:
    """Shift apportionment entry with its resolved product and line."""
    id: str
    date: date
    shift: str
    line: Line
    product: Product
    quantity: int
    hours_worked: float = 8.0
    capacity_snapshot: Optional[float] = None
    stops: Tuple[StopEvent, ...] = field(default_factory=tuple)
    notes: str = ""
    batch: Optional[str] = None

    @property
    def worked_minutes(self) -> float:
        return self.hours_worked * 60

    @property
    def downtime_minutes(self) -> int:
        return sum(stop.minutes for stop in self.stops)

    @property
    def bottleneck_minutes(self) -> int:
        """Downtime without Scheduled stops."""
        return sum(stop.minutes for stop in self.stops if not stop.is_scheduled)


@dataclass(frozen=True)
class OrderLine:
    product: Product
    quantity: int


@dataclass(frozen=True)
class Order:
    id: str
    customer: str
    delivery_date: Optional[date]
    status: OrderStatus
    lines: Tuple[OrderLine, ...] = field(default_factory=tuple)

    def quantity_for(self, product_key: str) -> int:
        """Total quantity this order requests for a product key."""
        return sum(line.quantity for line in self.lines if line.product.key == product_key)


@dataclass(frozen=True)
class WeeklyPlanEntry:
    product: Product
    target_day: date
    planned_quantity: int
