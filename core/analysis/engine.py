"""
Analytics Engine

Read-only views over the current snapshot. Every view is a pure function of
the snapshot (plus its arguments), so results are memoized per snapshot
version: repeated calls, and refreshes that bring back identical data,
reuse the previous results.

Views:
- Inventory: stock, pending demand, forecast (live) and snapshot balance
- Efficiency: availability and performance per line
- Downtime: raw and bottleneck breakdown for a date range
- Weekly goals: plan vs. actual for the current week
- Readiness: whether live stock covers an order
"""

import logging
import threading
from datetime import date
from typing import Any, Callable, Dict, List, Optional

from core.calculations.downtime import DEFAULT_FALLBACK_CAPACITY, DowntimeBreakdown, calculate_downtime_breakdown
from core.calculations.goals import WeeklyGoal, calculate_weekly_goals
from core.calculations.inventory import (
    SNAPSHOT_SEED_FRACTION,
    LiveBalance,
    SnapshotBalance,
    calculate_live_balances,
    calculate_snapshot_balances,
    stock_levels,
)
from core.calculations.oee import LineEfficiency, calculate_line_efficiency, calculate_lines_overview
from core.calculations.readiness import OrderReadiness, check_order_readiness
from core.records.models import Product
from core.records.normalizer import resolve_line
from core.time_windows.filters import filter_records
from core.time_windows.models import DEFAULT_TIMEZONE, DateRange, current_week, today_in_timezone

from .snapshot import Snapshot, SnapshotStore

logger = logging.getLogger(__name__)


class AnalyticsEngine:
    """Memoized analytics views over a SnapshotStore."""

    def __init__(
        self,
        store: SnapshotStore,
        timezone: str = DEFAULT_TIMEZONE,
        seed_fraction: float = SNAPSHOT_SEED_FRACTION,
        fallback_capacity: float = DEFAULT_FALLBACK_CAPACITY,
        today: Optional[Callable[[], date]] = None,
    ):
        """
        Args:
            store: Source of snapshots
            timezone: Local timezone of the plant, used for "today"
            seed_fraction: Opening stock fraction for snapshot balances
            fallback_capacity: Capacity per 8h used when a record has none
            today: Optional clock override returning the local date
        """
        self.store = store
        self.timezone = timezone
        self.seed_fraction = seed_fraction
        self.fallback_capacity = fallback_capacity
        self._today = today or (lambda: today_in_timezone(self.timezone))

        self._cache: Dict[tuple, Any] = {}
        self._cache_version: Optional[str] = None
        self._cache_lock = threading.Lock()
        self.stats = {"hits": 0, "misses": 0}

    def _memoized(self, key: tuple, compute: Callable[[Snapshot], Any], snapshot: Optional[Snapshot] = None) -> Any:
        """
        Cached view result for the current snapshot.

        A caller already computing over a snapshot passes it so nested views use
        the same data; results for a superseded snapshot are computed but not cached.
        """
        current = snapshot is None
        if current:
            snapshot = self.store.snapshot

        with self._cache_lock:
            if current and snapshot.version != self._cache_version:
                self._cache.clear()
                self._cache_version = snapshot.version
            if snapshot.version == self._cache_version and key in self._cache:
                self.stats["hits"] += 1
                return self._cache[key]

        value = compute(snapshot)

        with self._cache_lock:
            self.stats["misses"] += 1
            # A refresh may have landed while computing; only cache for the live version.
            if snapshot.version == self._cache_version:
                self._cache[key] = value
        return value

    # ------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------

    def get_live_balances(self, snapshot: Optional[Snapshot] = None) -> Dict[str, LiveBalance]:
        """Live balance for every known product, keyed by product key."""
        return self._memoized(
            ("live_balances",),
            lambda s: calculate_live_balances(s.products, s.records, s.orders),
            snapshot,
        )

    def get_snapshot_balances(self, product_type: Optional[str] = None) -> Dict[str, SnapshotBalance]:
        """Seeded snapshot balance for every catalog product, optionally of one product type."""
        return self._memoized(
            ("snapshot_balances", self.seed_fraction, product_type),
            lambda s: calculate_snapshot_balances(s.products, s.plan, s.orders, self.seed_fraction, product_type),
        )

    def _live_balance(self, product_id: str) -> Optional[LiveBalance]:
        return self.get_live_balances().get(str(product_id))

    def get_stock(self, product_id: str) -> int:
        """Produced minus shipped; 0 for unknown products."""
        balance = self._live_balance(product_id)
        return balance.stock if balance is not None else 0

    def get_pending_demand(self, product_id: str) -> int:
        balance = self._live_balance(product_id)
        return balance.pending_demand if balance is not None else 0

    def get_forecast(self, product_id: str) -> int:
        """Stock minus pending demand; negative means the backlog is not covered."""
        balance = self._live_balance(product_id)
        return balance.forecast if balance is not None else 0

    def get_snapshot_balance(self, product_id: str) -> SnapshotBalance:
        """Snapshot balance of one product (all zeros for unknown products)."""
        balance = self.get_snapshot_balances().get(str(product_id))
        if balance is None:
            return SnapshotBalance(product=Product.unidentified(product_id), seeded_stock=0, scheduled=0, demand=0)
        return balance

    # ------------------------------------------------------------
    # Efficiency
    # ------------------------------------------------------------

    def get_line_efficiency(self, line_id: str, date_range: DateRange, shift: Optional[str] = None) -> LineEfficiency:
        """
        Availability and performance of one line over a date range.

        Args:
            line_id: Line identifier or display name
            date_range: Inclusive date range
            shift: Optional shift label

        Returns:
            LineEfficiency (zero ratios when the line has no records)
        """
        def compute(snapshot: Snapshot) -> LineEfficiency:
            line = resolve_line(line_id, snapshot.lines)
            records = filter_records(snapshot.records, date_range, line_id=line_id, shift=shift)
            return calculate_line_efficiency(records, line, shift)

        return self._memoized(("line_efficiency", str(line_id), date_range, shift), compute)

    def get_line_availability(self, line_id: str, date_range: DateRange, shift: Optional[str] = None) -> float:
        return self.get_line_efficiency(line_id, date_range, shift).availability

    def get_line_performance(self, line_id: str, date_range: DateRange, shift: Optional[str] = None) -> float:
        return self.get_line_efficiency(line_id, date_range, shift).performance

    def get_lines_overview(self, date_range: DateRange, shift: Optional[str] = None) -> List[LineEfficiency]:
        """Efficiency of every registered line over a date range."""
        def compute(snapshot: Snapshot) -> List[LineEfficiency]:
            records = filter_records(snapshot.records, date_range, shift=shift)
            return calculate_lines_overview(snapshot.lines, records, shift)

        return self._memoized(("lines_overview", date_range, shift), compute)

    # ------------------------------------------------------------
    # Downtime
    # ------------------------------------------------------------

    def get_downtime_breakdown(
        self,
        date_range: DateRange,
        line_id: Optional[str] = None,
        shift: Optional[str] = None,
    ) -> DowntimeBreakdown:
        """
        Raw and bottleneck downtime for a date range, optionally one line.

        Example:
            >>> breakdown = engine.get_downtime_breakdown(DateRange(d1, d2), line_id="L1")
            >>> breakdown.bottleneck_total <= breakdown.raw_total
            True
        """
        def compute(snapshot: Snapshot) -> DowntimeBreakdown:
            records = filter_records(snapshot.records, date_range, line_id=line_id, shift=shift)
            return calculate_downtime_breakdown(records, self.fallback_capacity)

        return self._memoized(("downtime", date_range, line_id, shift), compute)

    # ------------------------------------------------------------
    # Weekly goals
    # ------------------------------------------------------------

    def get_weekly_goal_status(self, today: Optional[date] = None) -> List[WeeklyGoal]:
        """
        Plan vs. actual for the week containing today (plant timezone).

        Args:
            today: Optional date override, mostly for reports of past weeks

        Returns:
            WeeklyGoal list sorted by ascending progress
        """
        week = current_week(self.timezone, today=today or self._today())
        return self._memoized(
            ("weekly_goals", week.monday, week.today),
            lambda s: calculate_weekly_goals(s.plan, s.records, week),
        )

    # ------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------

    def get_order_readiness(self, order_id: str) -> Optional[OrderReadiness]:
        """Per-line stock coverage of an order; None for unknown orders."""
        def compute(snapshot: Snapshot) -> Optional[OrderReadiness]:
            order = snapshot.find_order(order_id)
            if order is None:
                logger.warning(f"Readiness requested for unknown order {order_id}")
                return None
            balances = self.get_live_balances(snapshot)
            return check_order_readiness(order, stock_levels(balances))

        return self._memoized(("order_readiness", str(order_id)), compute)

    def is_order_ready(self, order_id: str) -> bool:
        """True when live stock covers every line of the order; False for unknown orders."""
        readiness = self.get_order_readiness(order_id)
        return readiness is not None and readiness.is_ready

    def get_stats(self) -> Dict[str, Any]:
        with self._cache_lock:
            stats = self.stats.copy()
            stats["cached_views"] = len(self._cache)
            stats["version"] = self._cache_version
        return stats
