import pytest

from core.calculations.oee import (
    alert_severity,
    calculate_availability,
    calculate_line_efficiency,
    calculate_lines_overview,
    calculate_packaging,
    calculate_performance,
)
from core.records.models import StopType

from fixtures_pcp import make_line, make_product, make_record, make_stop


def test_performance_scaled_to_hours_worked():
    record = make_record(make_product(capacity=7200.0), 3000, hours=4.0)

    efficiency = calculate_line_efficiency([record], make_line())

    assert efficiency.capacity_target == pytest.approx(3600.0)
    assert round(efficiency.performance, 1) == 83.3
    assert efficiency.to_percentage_dict()['performance'] == 83.3


def test_availability_uses_bottleneck_downtime():
    record = make_record(make_product(), 6000, stops=[
        make_stop(48, StopType.UNPLANNED),
        make_stop(30, StopType.SCHEDULED, equipment="SETUP"),
    ])

    efficiency = calculate_line_efficiency([record], make_line())

    assert efficiency.worked_minutes == 480
    assert efficiency.raw_downtime_minutes == 78
    assert efficiency.bottleneck_downtime_minutes == 48
    assert efficiency.availability == pytest.approx(90.0)
    assert efficiency.alert_severity == "CRITICAL"


def test_availability_is_clamped():
    assert calculate_availability(480, 600) == 0.0
    assert calculate_availability(480, 0) == 100.0
    assert calculate_availability(0, 10) == 0.0


def test_performance_can_exceed_target():
    assert calculate_performance(4000, 3600) > 100
    assert calculate_performance(100, 0) == 0.0


def test_product_without_capacity_has_no_performance():
    record = make_record(make_product(capacity=None), 500)

    efficiency = calculate_line_efficiency([record], make_line())

    assert efficiency.performance == 0.0
    assert not efficiency.has_capacity
    assert efficiency.availability == 100.0


def test_no_records():
    efficiency = calculate_line_efficiency([], make_line())

    assert efficiency.record_count == 0
    assert efficiency.availability == 0.0
    assert efficiency.performance == 0.0
    assert efficiency.alert_severity == "NONE"


def test_packaging_defaults():
    unknown_packaging = make_record(make_product(), 1008)
    six_pack = make_record(make_product("P2", units_per_pack=6, packs_per_pallet=50), 600, record_id="R2")

    assert calculate_packaging([unknown_packaging]) == {'packs': 84.0, 'pallets': 1.0, 'liters': 0.0}
    assert calculate_packaging([six_pack]) == {'packs': 100.0, 'pallets': 2.0, 'liters': 0.0}


@pytest.mark.parametrize("minutes, severity", [
    (0, "NONE"),
    (1, "MODERATE"),
    (30, "MODERATE"),
    (31, "CRITICAL"),
])
def test_alert_severity(minutes, severity):
    assert alert_severity(minutes) == severity


def test_lines_overview_includes_idle_lines():
    line_1 = make_line("L1", "Line 01")
    line_2 = make_line("L2", "Line 02")
    records = [
        make_record(make_product(), 3600, line=line_1, record_id="R1"),
        make_record(make_product(), 7200, line=line_1, record_id="R2"),
    ]

    overview = calculate_lines_overview([line_1, line_2], records)

    assert [efficiency.line_id for efficiency in overview] == ["L1", "L2"]
    assert overview[0].units_produced == 10800
    assert overview[0].performance == pytest.approx(75.0)
    assert overview[1].record_count == 0
    assert overview[1].to_dict()['alert_severity'] == "NONE"


def test_produced_liters_follow_volume_labels():
    water = make_record(make_product(volume="500ml"), 600)
    soda = make_record(make_product("P2", "SODA 2L", volume="2L"), 20, record_id="R2")

    assert calculate_packaging([water, soda])['liters'] == pytest.approx(340.0)

    efficiency = calculate_line_efficiency([water, soda], make_line())
    assert efficiency.liters == pytest.approx(340.0)
    assert efficiency.to_dict()['liters'] == pytest.approx(340.0)
