"""
Weekly Goal Tracking

Compares planned against actual cumulative output per product for the
Monday-Sunday planning week.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, Iterable, List

from core.records.models import Product, ProductionRecord, WeeklyPlanEntry
from core.time_windows.filters import filter_plan_entries, filter_records
from core.time_windows.models import WeekWindow

logger = logging.getLogger(__name__)


LATE_DAYS_REMAINING = 2
LATE_PROGRESS_PERCENT = 50.0


class GoalStatus(str, Enum):
    COMPLETED = "Completed"
    IN_PROGRESS = "InProgress"
    LATE = "Late"


@dataclass(frozen=True)
class WeeklyGoal:
    product: Product
    planned: int
    actual: int
    progress: float  # percent of plan, can exceed 100
    status: GoalStatus

    def to_dict(self) -> Dict[str, object]:
        return {
            'product_id': self.product.key,
            'product_name': self.product.name,
            'planned': self.planned,
            'actual': self.actual,
            'progress': self.progress,
            'status': self.status.value,
        }


def goal_status(progress: float, days_remaining: int) -> GoalStatus:
    """
    Classify goal progress.

    Completed at 100% or more; Late when at most two days remain and less
    than half the plan is done; otherwise in progress.
    """
    if progress >= 100:
        return GoalStatus.COMPLETED
    if days_remaining <= LATE_DAYS_REMAINING and progress < LATE_PROGRESS_PERCENT:
        return GoalStatus.LATE
    return GoalStatus.IN_PROGRESS


def calculate_weekly_goals(
    plan_entries: Iterable[WeeklyPlanEntry],
    records: Iterable[ProductionRecord],
    week: WeekWindow,
) -> List[WeeklyGoal]:
    """
    Planned vs. actual production per product for one week.

    Only products with a plan entry in the week are reported; production of
    unplanned products is ignored.

    Args:
        plan_entries: Weekly plan entries (entries outside the week are ignored)
        records: Production records (records outside the week are ignored)
        week: Week window, including "today" for the days-remaining rule

    Returns:
        WeeklyGoal list sorted by ascending progress (most at-risk first)
    """
    products: Dict[str, Product] = {}
    planned: Dict[str, int] = {}
    actual: Dict[str, int] = {}

    for entry in filter_plan_entries(plan_entries, week):
        key = entry.product.key
        products.setdefault(key, entry.product)
        planned[key] = planned.get(key, 0) + entry.planned_quantity

    for record in filter_records(records, week.range):
        key = record.product.key
        if key in planned:
            actual[key] = actual.get(key, 0) + record.quantity

    goals = []
    for key, product in products.items():
        target = planned[key]
        done = actual.get(key, 0)
        progress = done / target * 100 if target > 0 else 0.0
        goals.append(WeeklyGoal(
            product=product,
            planned=target,
            actual=done,
            progress=progress,
            status=goal_status(progress, week.days_remaining),
        ))

    goals.sort(key=lambda goal: (goal.progress, goal.product.name, goal.product.key))

    late = sum(1 for goal in goals if goal.status is GoalStatus.LATE)
    if late:
        logger.info(f"{late} of {len(goals)} weekly goals are late ({week.days_remaining} days remaining)")

    return goals
