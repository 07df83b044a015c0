"""
Inventory Reconciliation Functions

Two balance definitions are used by different reports and are kept apart on
purpose:

- Live balance: full production history minus shipped orders
    stock     = total produced - total shipped (Finalized/Delivered orders)
    forecast  = stock - pending demand (orders not Finalized/Delivered/Cancelled)
    critical  when stock < pending demand

- Snapshot balance: point-in-time availability estimate
    seeded stock = 15% of nominal capacity
    balance      = seeded stock + scheduled (weekly plan) - demand (Pending orders)
    critical     when balance < 0
"""

import logging
import math
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, Optional

from core.records.models import Order, OrderStatus, Product, ProductionRecord, WeeklyPlanEntry

logger = logging.getLogger(__name__)


SNAPSHOT_SEED_FRACTION = 0.15
EXCESS_DEMAND_FACTOR = 3


class BalanceStatus(str, Enum):
    CRITICAL = "Critical"
    EXCESS = "Excess"
    BALANCED = "Balanced"


@dataclass(frozen=True)
class LiveBalance:
    """Full-history inventory position of one product."""
    product: Product
    total_produced: int
    total_shipped: int
    pending_demand: int

    @property
    def stock(self) -> int:
        return self.total_produced - self.total_shipped

    @property
    def forecast(self) -> int:
        return self.stock - self.pending_demand

    @property
    def is_critical(self) -> bool:
        return self.stock < self.pending_demand

    def to_dict(self) -> Dict[str, object]:
        return {
            'product_id': self.product.key,
            'product_name': self.product.name,
            'total_produced': self.total_produced,
            'total_shipped': self.total_shipped,
            'stock': self.stock,
            'pending_demand': self.pending_demand,
            'forecast': self.forecast,
            'critical': self.is_critical,
        }


@dataclass(frozen=True)
class SnapshotBalance:
    """Point-in-time balance seeded from nominal capacity."""
    product: Product
    seeded_stock: int
    scheduled: int
    demand: int

    @property
    def balance(self) -> int:
        return self.seeded_stock + self.scheduled - self.demand

    @property
    def status(self) -> BalanceStatus:
        if self.balance < 0:
            return BalanceStatus.CRITICAL
        if self.demand > 0 and self.balance > self.demand * EXCESS_DEMAND_FACTOR:
            return BalanceStatus.EXCESS
        return BalanceStatus.BALANCED

    @property
    def is_critical(self) -> bool:
        return self.status is BalanceStatus.CRITICAL

    def to_dict(self) -> Dict[str, object]:
        return {
            'product_id': self.product.key,
            'product_name': self.product.name,
            'seeded_stock': self.seeded_stock,
            'scheduled': self.scheduled,
            'demand': self.demand,
            'balance': self.balance,
            'status': self.status.value,
        }


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero for positives."""
    return int(math.floor(value + 0.5))


def calculate_live_balances(
    products: Iterable[Product],
    records: Iterable[ProductionRecord],
    orders: Iterable[Order],
) -> Dict[str, LiveBalance]:
    """
    Reconcile stock per product from the complete production and order history.

    Products referenced by records or orders but missing from the catalog get
    their own unidentified bucket, so totals stay complete with dirty data.

    Args:
        products: Product catalog
        records: Every production record available (not date-filtered)
        orders: Every order, any status

    Returns:
        LiveBalance per product key, catalog products first
    """
    known: Dict[str, Product] = {}
    produced: Dict[str, int] = {}
    shipped: Dict[str, int] = {}
    pending: Dict[str, int] = {}

    for product in products:
        known.setdefault(product.key, product)

    for record in records:
        key = record.product.key
        known.setdefault(key, record.product)
        produced[key] = produced.get(key, 0) + record.quantity

    for order in orders:
        for line in order.lines:
            key = line.product.key
            known.setdefault(key, line.product)
            if order.status.is_shipped:
                shipped[key] = shipped.get(key, 0) + line.quantity
            elif order.status.is_backlog:
                pending[key] = pending.get(key, 0) + line.quantity

    balances = {
        key: LiveBalance(
            product=product,
            total_produced=produced.get(key, 0),
            total_shipped=shipped.get(key, 0),
            pending_demand=pending.get(key, 0),
        )
        for key, product in known.items()
    }

    critical = sum(1 for balance in balances.values() if balance.is_critical)
    logger.debug(f"Live balances for {len(balances)} products ({critical} critical)")
    return balances


def calculate_snapshot_balances(
    products: Iterable[Product],
    plan_entries: Iterable[WeeklyPlanEntry],
    orders: Iterable[Order],
    seed_fraction: float = SNAPSHOT_SEED_FRACTION,
    product_type: Optional[str] = None,
) -> Dict[str, SnapshotBalance]:
    """
    Point-in-time availability balance for catalog products.

    Stock is not reconciled from history here: it is seeded from a fraction
    of each product's nominal capacity. Only Pending orders count as demand.

    Args:
        products: Product catalog
        plan_entries: Weekly plan entries (scheduled production)
        orders: Orders, any status
        seed_fraction: Fraction of nominal capacity used as opening stock
        product_type: Only products of this type (case-insensitive); all when None

    Returns:
        SnapshotBalance per catalog product key
    """
    plan_entries = list(plan_entries)
    orders = [order for order in orders if order.status is OrderStatus.PENDING]

    balances = {}
    for product in products:
        if product_type is not None and not _is_type(product, product_type):
            continue
        key = product.key
        scheduled = sum(entry.planned_quantity for entry in plan_entries if entry.product.key == key)
        demand = sum(order.quantity_for(key) for order in orders)
        balances[key] = SnapshotBalance(
            product=product,
            seeded_stock=round_half_up((product.nominal_capacity or 0) * seed_fraction),
            scheduled=scheduled,
            demand=demand,
        )

    return balances


def _is_type(product: Product, product_type: str) -> bool:
    return (product.product_type or "").strip().upper() == product_type.strip().upper()


def stock_levels(balances: Dict[str, LiveBalance]) -> Dict[str, int]:
    """Live stock per product key, the input of the readiness matcher."""
    return {key: balance.stock for key, balance in balances.items()}
