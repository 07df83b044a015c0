import pytest

from core.calculations.inventory import calculate_live_balances, stock_levels
from core.calculations.readiness import check_order_readiness, is_ready
from core.records.models import OrderStatus

from fixtures_pcp import make_order, make_product, make_record


def test_order_becomes_ready_after_new_production():
    sku_a = make_product("A", "SKU A")
    order = make_order("O1", OrderStatus.PENDING, (sku_a, 100))
    records = [make_record(sku_a, 80, record_id="R1")]

    stock = stock_levels(calculate_live_balances([sku_a], records, [order]))
    assert stock["A"] == 80
    assert not is_ready(order, stock)

    records.append(make_record(sku_a, 30, record_id="R2"))
    stock = stock_levels(calculate_live_balances([sku_a], records, [order]))
    assert stock["A"] == 110
    assert is_ready(order, stock)


def test_every_line_must_be_covered():
    sku_a = make_product("A", "SKU A")
    sku_b = make_product("B", "SKU B")
    order = make_order("O1", OrderStatus.PENDING, (sku_a, 10), (sku_b, 20))

    readiness = check_order_readiness(order, {"A": 50, "B": 5})

    assert not readiness.is_ready
    assert [line.shortfall for line in readiness.lines] == [0, 15]
    assert readiness.coverage_percentage == pytest.approx(50.0)
    assert not readiness.can_finalize


def test_empty_order_is_ready():
    order = make_order("O1", OrderStatus.PENDING)

    readiness = check_order_readiness(order, {})

    assert readiness.is_ready
    assert readiness.coverage_percentage == 100.0
    assert is_ready(order, {})


def test_missing_stock_counts_as_zero():
    order = make_order("O1", OrderStatus.PENDING, (make_product("A"), 1))
    assert not is_ready(order, {})


def test_negative_stock_does_not_count_as_coverage():
    order = make_order("O1", OrderStatus.PENDING, (make_product("A"), 10))
    readiness = check_order_readiness(order, {"A": -5})
    assert readiness.coverage_percentage == 0.0


def test_readiness_is_monotonic_in_stock():
    order = make_order("O1", OrderStatus.PENDING, (make_product("A"), 37))

    results = [is_ready(order, {"A": stock}) for stock in range(0, 80)]

    first_ready = results.index(True)
    assert first_ready == 37
    assert all(results[first_ready:])


@pytest.mark.parametrize("status, can_finalize", [
    (OrderStatus.PENDING, True),
    (OrderStatus.SCHEDULED, True),
    (OrderStatus.FINALIZED, False),
    (OrderStatus.DELIVERED, False),
    (OrderStatus.CANCELLED, False),
])
def test_can_finalize_depends_on_status(status, can_finalize):
    order = make_order("O1", status, (make_product("A"), 10))
    assert check_order_readiness(order, {"A": 10}).can_finalize is can_finalize
