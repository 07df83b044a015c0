"""
Record Normalization

Converts heterogeneous Data Store rows into typed records. Every loosely-typed
field is parsed exactly once here; aggregation code downstream trusts the
resulting types.

Tolerated irregularities:
- Stop durations stored as numbers or as free text ("30min", "45 min")
- Products referenced by identifier or by legacy display name
- Lines referenced by identifier or by name
- Stop lists stored as JSON text, lists, or NULL
- Missing/NaN numeric fields
"""

import json
import logging
import math
import numbers
import re
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

import pandas as pd
from dateutil import parser as dateutil_parser

from .models import (
    Line,
    Order,
    OrderLine,
    OrderStatus,
    Product,
    ProductionRecord,
    StopEvent,
    StopType,
    WeeklyPlanEntry,
)

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"\d+")
_VOLUME = re.compile(r"\d+(?:[.,]\d+)?")

DEFAULT_HOURS_WORKED = 8.0
DEFAULT_EQUIPMENT = "GENERAL"
DEFAULT_REASON = "NOT INFORMED"

DURATION_KEYS = ("duration", "minutes", "total_min")

STOP_TYPE_ALIASES = {
    "scheduled": StopType.SCHEDULED,
    "planned": StopType.SCHEDULED,
    "unplanned": StopType.UNPLANNED,
    "unscheduled": StopType.UNPLANNED,
    "changeover": StopType.CHANGEOVER,
    "setup": StopType.CHANGEOVER,
    "logistics": StopType.LOGISTICS,
    "administrative": StopType.ADMINISTRATIVE,
}


def _is_missing(value: Any) -> bool:
    """True for None, NaN and pandas NA values."""
    if value is None:
        return True
    if isinstance(value, (list, tuple, dict)):
        return False
    try:
        return bool(pd.isna(value))
    except (TypeError, ValueError):
        return False


def parse_duration(value: Any) -> int:
    """
    Parse a stop duration into whole minutes.

    Args:
        value: Native number, or a string carrying a minute count ("30min")

    Returns:
        Minutes (>= 0). Unparsable input yields 0; this never raises.

    Example:
        >>> parse_duration("30min"), parse_duration(45), parse_duration(None)
        (30, 45, 0)
    """
    if isinstance(value, bool) or _is_missing(value):
        return 0

    if isinstance(value, (numbers.Real, Decimal)):
        number = float(value)
        if not math.isfinite(number):
            return 0
        return max(0, int(number))

    if isinstance(value, str):
        match = _DIGITS.search(value)
        return int(match.group(0)) if match else 0

    return 0


def parse_volume_liters(value: Any) -> float:
    """
    Parse a product volume label into liters per unit.

    Labels ending in "ml" are converted from milliliters; any other number is
    taken as liters ("2L", "1.5", "1,5 l"). Missing or unparsable labels give 0.

    Example:
        >>> parse_volume_liters("500ml"), parse_volume_liters("2L")
        (0.5, 2.0)
    """
    if _is_missing(value):
        return 0.0
    text = str(value).lower().replace(" ", "")
    match = _VOLUME.search(text)
    if not match:
        return 0.0
    liters = float(match.group(0).replace(",", "."))
    if "ml" in text:
        liters /= 1000
    return liters


def _to_number(value: Any, default: Optional[float] = None) -> Optional[float]:
    if isinstance(value, bool) or _is_missing(value):
        return default
    try:
        number = float(value)
    except (TypeError, ValueError):
        return default
    return number if math.isfinite(number) else default


def _to_quantity(value: Any) -> int:
    """Non-negative integer quantity; garbage becomes 0."""
    return max(0, int(_to_number(value, 0.0)))


def _to_text(value: Any, default: str = "") -> str:
    if _is_missing(value):
        return default
    text = str(value).strip()
    return text or default


def _to_date(value: Any) -> Optional[date]:
    if _is_missing(value):
        return None
    if isinstance(value, pd.Timestamp):
        return value.date()
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return dateutil_parser.parse(str(value)).date()
    except (ValueError, OverflowError):
        logger.warning(f"Unparsable date ignored: {value!r}")
        return None


def build_catalog(products: Iterable[Product]) -> Dict[str, Any]:
    """Index products by identifier and by name for reference resolution."""
    by_id = {}
    by_name = {}
    for product in products:
        by_id.setdefault(str(product.id), product)
        by_name.setdefault(str(product.name), product)
    return {"by_id": by_id, "by_name": by_name}


def resolve_product(reference: Any, catalog: Mapping[str, Any]) -> Product:
    """
    Resolve a product reference by identifier, then by exact display name.

    Records written by older screens stored the product name instead of its
    identifier, so both must resolve. Anything else becomes an unidentified
    placeholder labelled with the raw reference.

    Args:
        reference: Identifier or legacy display name
        catalog: Index returned by build_catalog()

    Returns:
        The matching Product, or Product.unidentified(reference)
    """
    if _is_missing(reference):
        return Product.unidentified(None)

    ref = str(reference).strip()
    product = catalog["by_id"].get(ref) or catalog["by_name"].get(ref)
    if product is not None:
        return product
    return Product.unidentified(ref)


def resolve_line(reference: Any, lines: Iterable[Line]) -> Line:
    """Resolve a line by identifier or name (case-insensitive)."""
    for line in lines:
        if line.matches(reference):
            return line
    return Line.unidentified(None if _is_missing(reference) else reference)


def parse_stop_type(value: Any) -> StopType:
    """Map a free-text stop type to StopType; missing or unknown is Unplanned."""
    text = _to_text(value).lower()
    if not text:
        return StopType.UNPLANNED
    stop_type = STOP_TYPE_ALIASES.get(text)
    if stop_type is None:
        logger.debug(f"Unknown stop type {value!r}, counted as Unplanned")
        return StopType.UNPLANNED
    return stop_type


def _stop_duration(raw: Mapping[str, Any]) -> int:
    for key in DURATION_KEYS:
        value = raw.get(key)
        if not _is_missing(value) and value != "":
            return parse_duration(value)
    return 0


def parse_stop_event(raw: Mapping[str, Any]) -> StopEvent:
    equipment = _to_text(raw.get("equipment")) or _to_text(raw.get("machine_id"), DEFAULT_EQUIPMENT)
    return StopEvent(
        stop_type=parse_stop_type(raw.get("type")),
        equipment=equipment.upper(),
        reason=_to_text(raw.get("reason"), DEFAULT_REASON).upper(),
        minutes=_stop_duration(raw),
        start_time=_to_text(raw.get("start_time")) or None,
        end_time=_to_text(raw.get("end_time")) or None,
    )


def parse_stop_events(payload: Any) -> Tuple[StopEvent, ...]:
    """
    Parse the embedded stop list of a production record.

    Args:
        payload: List of dicts, JSON text of such a list, or None

    Returns:
        Tuple of StopEvent (non-dict items are skipped)
    """
    if isinstance(payload, str):
        if not payload.strip():
            return ()
        try:
            payload = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Stop list is not valid JSON, ignoring it")
            return ()

    if not isinstance(payload, (list, tuple)):
        return ()

    return tuple(parse_stop_event(item) for item in payload if isinstance(item, Mapping))


def normalize_product(row: Mapping[str, Any]) -> Product:
    units = _to_number(row.get("units_per_pack"))
    packs = _to_number(row.get("packs_per_pallet"))
    return Product(
        id=_to_text(row.get("id")),
        name=_to_text(row.get("name")),
        nominal_capacity=_to_number(row.get("nominal_capacity")),
        units_per_pack=int(units) if units else None,
        packs_per_pallet=int(packs) if packs else None,
        volume=_to_text(row.get("volume")) or None,
        product_type=_to_text(row.get("product_type")) or None,
    )


def normalize_line(row: Mapping[str, Any]) -> Line:
    line_id = _to_text(row.get("id"))
    return Line(id=line_id, name=_to_text(row.get("name"), line_id))


def normalize_production_record(
    row: Mapping[str, Any],
    catalog: Mapping[str, Any],
    lines: Iterable[Line],
) -> Optional[ProductionRecord]:
    """Normalize one production row; rows without a usable date are dropped."""
    record_date = _to_date(row.get("record_date"))
    if record_date is None:
        logger.warning(f"Production record {row.get('id')!r} has no valid date, skipped")
        return None

    product_ref = row.get("product_id")
    if _is_missing(product_ref) or product_ref == "":
        product_ref = row.get("product_ref")

    hours = _to_number(row.get("hours_worked"), DEFAULT_HOURS_WORKED)
    if hours is None or hours <= 0:
        hours = DEFAULT_HOURS_WORKED

    return ProductionRecord(
        id=_to_text(row.get("id")),
        date=record_date,
        shift=_to_text(row.get("shift")),
        line=resolve_line(row.get("line_ref"), lines),
        product=resolve_product(product_ref, catalog),
        quantity=_to_quantity(row.get("quantity")),
        hours_worked=hours,
        capacity_snapshot=_to_number(row.get("capacity_snapshot")),
        stops=parse_stop_events(row.get("stops")),
        notes=_to_text(row.get("notes")),
        batch=_to_text(row.get("batch")) or None,
    )


def parse_order_status(value: Any) -> OrderStatus:
    text = _to_text(value).lower()
    for status in OrderStatus:
        if status.value.lower() == text:
            return status
    logger.warning(f"Unknown order status {value!r}, treated as Pending")
    return OrderStatus.PENDING


def normalize_order(
    row: Mapping[str, Any],
    line_rows: Iterable[Mapping[str, Any]],
    catalog: Mapping[str, Any],
) -> Order:
    order_lines = []
    for line_row in line_rows:
        quantity = _to_quantity(line_row.get("quantity"))
        if quantity <= 0:
            continue
        order_lines.append(OrderLine(
            product=resolve_product(line_row.get("product_id"), catalog),
            quantity=quantity,
        ))

    return Order(
        id=_to_text(row.get("id")),
        customer=_to_text(row.get("customer")),
        delivery_date=_to_date(row.get("delivery_date")),
        status=parse_order_status(row.get("status")),
        lines=tuple(order_lines),
    )


def normalize_plan_entry(row: Mapping[str, Any], catalog: Mapping[str, Any]) -> Optional[WeeklyPlanEntry]:
    target_day = _to_date(row.get("target_day"))
    if target_day is None:
        return None
    return WeeklyPlanEntry(
        product=resolve_product(row.get("product_id"), catalog),
        target_day=target_day,
        planned_quantity=_to_quantity(row.get("planned_quantity")),
    )


def _rows(collection: Any) -> List[Dict[str, Any]]:
    """Accept DataFrames or plain iterables of mappings."""
    if collection is None:
        return []
    if isinstance(collection, pd.DataFrame):
        if collection.empty:
            return []
        return collection.to_dict("records")
    return [dict(row) for row in collection]


def normalize_collections(raw: Mapping[str, Any]) -> Dict[str, tuple]:
    """
    Normalize the five raw collections of a Data Store snapshot.

    Args:
        raw: Mapping with keys 'products', 'lines', 'orders', 'order_lines',
             'production_records' and 'weekly_plan' (DataFrames or lists of
             dicts). Missing keys are treated as empty collections.

    Returns:
        Dict with typed tuples under 'products', 'lines', 'orders',
        'records' and 'plan'
    """
    products = tuple(normalize_product(row) for row in _rows(raw.get("products")))
    lines = tuple(normalize_line(row) for row in _rows(raw.get("lines")))
    catalog = build_catalog(products)

    lines_by_order: Dict[str, List[Dict[str, Any]]] = {}
    for line_row in _rows(raw.get("order_lines")):
        lines_by_order.setdefault(_to_text(line_row.get("order_id")), []).append(line_row)

    orders = tuple(
        normalize_order(row, lines_by_order.get(_to_text(row.get("id")), []), catalog)
        for row in _rows(raw.get("orders"))
    )

    records = []
    for row in _rows(raw.get("production_records")):
        record = normalize_production_record(row, catalog, lines)
        if record is not None:
            records.append(record)

    plan = []
    for row in _rows(raw.get("weekly_plan")):
        entry = normalize_plan_entry(row, catalog)
        if entry is not None:
            plan.append(entry)

    logger.info(
        f"Normalized snapshot: {len(products)} products, {len(lines)} lines, "
        f"{len(orders)} orders, {len(records)} records, {len(plan)} plan entries"
    )

    return {
        "products": products,
        "lines": lines,
        "orders": orders,
        "records": tuple(records),
        "plan": tuple(plan),
    }
