from datetime import date

import pytest

from core.analysis.engine import AnalyticsEngine
from core.analysis.snapshot import Snapshot, SnapshotStore
from core.calculations.downtime import calculate_downtime_breakdown
from core.calculations.goals import calculate_weekly_goals
from core.calculations.goals import GoalStatus
from core.calculations.inventory import BalanceStatus, calculate_live_balances, calculate_snapshot_balances
from core.calculations.oee import calculate_line_efficiency
from core.time_windows.models import DateRange, WeekWindow

from fixtures_pcp import raw_collections

FIRST_DAYS = DateRange(date(2024, 6, 3), date(2024, 6, 4))


@pytest.fixture
def data():
    return raw_collections()


@pytest.fixture
def store(data):
    store = SnapshotStore(lambda: data)
    store.refresh()
    yield store
    store.shutdown()


@pytest.fixture
def engine(store):
    return AnalyticsEngine(store, today=lambda: date(2024, 6, 5))


def test_live_inventory_views(engine):
    assert engine.get_stock("P1") == 800
    assert engine.get_pending_demand("P1") == 300
    assert engine.get_forecast("P1") == 500

    assert engine.get_stock("P2") == 20
    assert engine.get_forecast("P2") == -30
    assert engine.get_live_balances()["P2"].is_critical


def test_unknown_product_has_zero_balances(engine):
    assert engine.get_stock("NOPE") == 0
    assert engine.get_pending_demand("NOPE") == 0
    assert engine.get_forecast("NOPE") == 0

    balance = engine.get_snapshot_balance("NOPE")
    assert balance.balance == 0
    assert balance.status is BalanceStatus.BALANCED


def test_snapshot_balance_view(engine):
    balance = engine.get_snapshot_balance("P1")

    # round(7200 * 0.15) + 800 planned - 300 pending
    assert balance.balance == 1580
    assert balance.status is BalanceStatus.EXCESS
    assert set(engine.get_snapshot_balances()) == {"P1", "P2"}


def test_line_efficiency_views(engine):
    efficiency = engine.get_line_efficiency("L1", FIRST_DAYS)

    assert efficiency.record_count == 2
    assert efficiency.bottleneck_downtime_minutes == 30
    assert engine.get_line_availability("L1", FIRST_DAYS) == pytest.approx((720 - 30) / 720 * 100)
    assert engine.get_line_performance("Line 01", FIRST_DAYS) == pytest.approx(1000 / 10800 * 100)


def test_line_efficiency_by_shift(engine):
    assert engine.get_line_availability("L1", FIRST_DAYS, shift="2nd Shift") == pytest.approx(100.0)
    assert engine.get_line_performance("L1", FIRST_DAYS, shift="2nd shift") == pytest.approx(400 / 3600 * 100)


def test_lines_overview(engine):
    overview = engine.get_lines_overview(FIRST_DAYS)

    assert [efficiency.line_id for efficiency in overview] == ["L1", "L2"]
    assert overview[1].raw_downtime_minutes == 45
    assert overview[1].alert_severity == "CRITICAL"


def test_downtime_breakdown_views(engine):
    everything = engine.get_downtime_breakdown(FIRST_DAYS)
    assert everything.raw_total == 95
    assert everything.bottleneck_total == 75
    assert everything.total_stop_count == 3

    line_2 = engine.get_downtime_breakdown(FIRST_DAYS, line_id="L2")
    assert line_2.raw_total == 45
    assert line_2.pareto[0].name == "LABELER"

    assert engine.get_downtime_breakdown(DateRange.single_day(date(2024, 6, 20))).raw_total == 0


def test_weekly_goal_status(engine):
    goals = engine.get_weekly_goal_status()

    assert [goal.product.id for goal in goals] == ["P2", "P1"]
    assert goals[0].progress == pytest.approx(10.0)
    assert goals[0].status is GoalStatus.IN_PROGRESS
    assert goals[1].progress == pytest.approx(125.0)
    assert goals[1].status is GoalStatus.COMPLETED

    # Saturday of the same week: 10% with one day left is late
    assert engine.get_weekly_goal_status(today=date(2024, 6, 8))[0].status is GoalStatus.LATE


def test_order_readiness_views(engine):
    assert engine.is_order_ready("O1")
    assert not engine.is_order_ready("O3")
    assert not engine.is_order_ready("UNKNOWN")
    assert engine.get_order_readiness("UNKNOWN") is None

    readiness = engine.get_order_readiness("O3")
    assert readiness.lines[0].shortfall == 30


def test_views_are_memoized_per_version(engine, store, data):
    first = engine.get_live_balances()
    assert engine.get_live_balances() is first

    # identical data: same version, cached result reused
    store.refresh()
    assert engine.get_live_balances() is first
    assert engine.get_stats()["hits"] >= 2

    data["production_records"][0]["quantity"] = 700
    store.refresh()
    refreshed = engine.get_live_balances()

    assert refreshed is not first
    assert engine.get_stock("P1") == 900


def test_engine_on_empty_store():
    engine = AnalyticsEngine(SnapshotStore(dict), today=lambda: date(2024, 6, 5))

    assert engine.get_stock("P1") == 0
    assert engine.get_lines_overview(FIRST_DAYS) == []
    assert engine.get_downtime_breakdown(FIRST_DAYS).raw_total == 0
    assert engine.get_weekly_goal_status() == []
    assert not engine.is_order_ready("O1")


def test_snapshot_balances_by_product_type(engine):
    assert set(engine.get_snapshot_balances("water")) == {"P1"}
    assert set(engine.get_snapshot_balances("Soda")) == {"P2"}
    assert engine.get_snapshot_balances("Juice") == {}
    assert set(engine.get_snapshot_balances()) == {"P1", "P2"}


def test_lines_overview_reports_liters(engine):
    overview = engine.get_lines_overview(FIRST_DAYS)

    # 1000 units of 500ml on line 1, 20 units of 2L on line 2
    assert overview[0].liters == pytest.approx(500.0)
    assert overview[1].liters == pytest.approx(40.0)


def test_recomputation_is_idempotent(data):
    snapshot = Snapshot.from_raw(data)
    week = WeekWindow.containing(date(2024, 6, 5))

    def compute_all():
        return (
            calculate_live_balances(snapshot.products, snapshot.records, snapshot.orders),
            calculate_snapshot_balances(snapshot.products, snapshot.plan, snapshot.orders),
            calculate_downtime_breakdown(snapshot.records),
            calculate_line_efficiency(snapshot.records),
            calculate_weekly_goals(snapshot.plan, snapshot.records, week),
        )

    first = compute_all()
    second = compute_all()

    assert first == second
    assert list(first[0]) == list(second[0])
    assert list(first[1]) == list(second[1])
    assert [entry.name for entry in first[2].pareto] == [entry.name for entry in second[2].pareto]
    assert list(first[2].raw.by_equipment) == list(second[2].raw.by_equipment)


def test_fresh_engines_agree_on_one_store(store):
    views = []
    for _ in range(2):
        engine = AnalyticsEngine(store, today=lambda: date(2024, 6, 5))
        views.append((
            engine.get_live_balances(),
            engine.get_snapshot_balances(),
            engine.get_downtime_breakdown(FIRST_DAYS),
            engine.get_lines_overview(FIRST_DAYS),
            engine.get_weekly_goal_status(),
            engine.get_order_readiness("O3"),
        ))

    first, second = views
    assert first == second
    assert first[0] is not second[0]
    assert list(first[0]) == list(second[0])
    assert first[2].pareto == second[2].pareto


def test_order_readiness_reuses_live_balances(engine):
    engine.get_live_balances()
    hits = engine.get_stats()["hits"]

    engine.get_order_readiness("O1")

    assert engine.get_stats()["hits"] == hits + 1
