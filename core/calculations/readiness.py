"""
Order Readiness

An order is ready when live stock covers every one of its lines. Readiness
gates the "finalize order" transition, which is performed outside the engine.
"""

from dataclasses import dataclass
from typing import Mapping, Tuple

from core.records.models import Order, OrderStatus, Product


@dataclass(frozen=True)
class LineCoverage:
    product: Product
    required: int
    available: int

    @property
    def covered(self) -> bool:
        return self.available >= self.required

    @property
    def shortfall(self) -> int:
        return max(0, self.required - self.available)


@dataclass(frozen=True)
class OrderReadiness:
    order: Order
    lines: Tuple[LineCoverage, ...]

    @property
    def is_ready(self) -> bool:
        return all(line.covered for line in self.lines)

    @property
    def coverage_percentage(self) -> float:
        """Share of the ordered quantity that stock already covers (100 for empty orders)."""
        required = sum(line.required for line in self.lines)
        if required <= 0:
            return 100.0
        covered = sum(min(max(line.available, 0), line.required) for line in self.lines)
        return covered / required * 100

    @property
    def can_finalize(self) -> bool:
        """Ready, and not already shipped or cancelled."""
        return self.is_ready and self.order.status not in (
            OrderStatus.FINALIZED, OrderStatus.DELIVERED, OrderStatus.CANCELLED
        )


def check_order_readiness(order: Order, stock: Mapping[str, int]) -> OrderReadiness:
    """
    Match each order line against live stock.

    Args:
        order: Order to check
        stock: Live stock per product key (see inventory.stock_levels)

    Returns:
        OrderReadiness with per-line coverage
    """
    return OrderReadiness(
        order=order,
        lines=tuple(
            LineCoverage(
                product=line.product,
                required=line.quantity,
                available=stock.get(line.product.key, 0),
            )
            for line in order.lines
        ),
    )


def is_ready(order: Order, stock: Mapping[str, int]) -> bool:
    """True when stock covers every line of the order."""
    return all(stock.get(line.product.key, 0) >= line.quantity for line in order.lines)
