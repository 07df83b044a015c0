"""
Secure Query Builder Module

This module provides parameterized query builders for the five PCP
collections. All user inputs are validated before being bound as query
parameters; values are never interpolated into SQL text.
"""

import logging
import re

from typing import Any, List, Optional, Sequence, Tuple

from core.records.models import OrderStatus
from core.time_windows.models import DateRange

logger = logging.getLogger(__name__)


class SecureQueryBuilder:
    """Secure query builder with parameterized queries and input validation."""

    IDENTIFIER_PATTERN = re.compile(r'^[a-zA-Z0-9_-]+$')
    SHIFT_PATTERN = re.compile(r'^[\w .ºª-]+$')

    @classmethod
    def validate_identifier(cls, identifier: Any) -> bool:
        """
        Validate a record identifier (UUIDs, numeric ids, short codes).

        Returns:
            bool: True if valid identifier format
        """
        if identifier is None:
            return False
        text = str(identifier)
        if not text or len(text) > 64:
            return False
        return bool(cls.IDENTIFIER_PATTERN.match(text))

    @classmethod
    def validate_line_reference(cls, reference: Any) -> bool:
        """Line references may be identifiers or display names ("Line 01")."""
        if reference is None:
            return False
        text = str(reference).strip()
        if not text or len(text) > 100:
            return False
        return bool(cls.SHIFT_PATTERN.match(text))

    @classmethod
    def validate_shift(cls, shift: Any) -> bool:
        """
        Validate a shift label such as "1st Shift" or "2º Turno".

        Returns:
            bool: True if valid shift label
        """
        if shift is None:
            return False
        text = str(shift).strip()
        if not text or len(text) > 50:
            return False
        return bool(cls.SHIFT_PATTERN.match(text))

    def build_products_query(self) -> Tuple[str, List[Any]]:
        query = """
            SELECT id, name, nominal_capacity, units_per_pack, packs_per_pallet,
                   volume, product_type
            FROM products
            ORDER BY name ASC;
        """
        return query, []

    def build_lines_query(self) -> Tuple[str, List[Any]]:
        query = """
            SELECT id, name
            FROM lines
            ORDER BY name ASC;
        """
        return query, []

    def build_orders_query(self, statuses: Optional[Sequence[OrderStatus]] = None) -> Tuple[str, List[Any]]:
        """
        Build query for orders, optionally restricted to some statuses.

        Args:
            statuses: OrderStatus values (or their labels) to include

        Returns:
            Tuple[str, List[Any]]: (query_string, parameters)

        Raises:
            ValueError: If a status is not a known order status
        """
        base_query = """
            SELECT id, customer, delivery_date, status
            FROM orders
        """

        if not statuses:
            return f"{base_query} ORDER BY delivery_date ASC NULLS LAST, id ASC;", []

        parameters = []
        for status in statuses:
            try:
                parameters.append(OrderStatus(status).value)
            except ValueError:
                raise ValueError(f"Unknown order status: {status!r}")

        placeholders = ','.join(['%s'] * len(parameters))
        query = f"{base_query} WHERE status IN ({placeholders}) ORDER BY delivery_date ASC NULLS LAST, id ASC;"
        return query, parameters

    def build_order_lines_query(self, order_ids: Optional[Sequence[str]] = None) -> Tuple[str, List[Any]]:
        """
        Build query for order lines, optionally for specific orders.

        Returns:
            Tuple[str, List[Any]]: (query_string, parameters)
        """
        base_query = """
            SELECT id, order_id, product_id, quantity
            FROM order_lines
        """

        if order_ids is None:
            return f"{base_query} ORDER BY order_id ASC, id ASC;", []

        validated = []
        for order_id in order_ids:
            if self.validate_identifier(order_id):
                validated.append(str(order_id))
            else:
                logger.warning(f"Invalid order id filtered out: {order_id}")

        if not validated:
            return f"{base_query} WHERE 1=0;", []

        placeholders = ','.join(['%s'] * len(validated))
        query = f"{base_query} WHERE order_id IN ({placeholders}) ORDER BY order_id ASC, id ASC;"
        return query, validated

    def build_production_records_query(
        self,
        date_range: Optional[DateRange] = None,
        line_ref: Optional[str] = None,
        shift: Optional[str] = None,
    ) -> Tuple[str, List[Any]]:
        """
        Build query for production records with their embedded stop lists.

        Args:
            date_range: Optional inclusive record date range
            line_ref: Optional line identifier or name
            shift: Optional shift label

        Returns:
            Tuple[str, List[Any]]: (query_string, parameters)

        Raises:
            ValueError: If line_ref or shift has an invalid format
        """
        base_query = """
            SELECT id, record_date, shift, line_ref, product_id, product_ref, batch,
                   quantity, hours_worked, capacity_snapshot, stops, notes
            FROM production_records
        """

        conditions = []
        parameters: List[Any] = []

        if date_range is not None:
            conditions.append("record_date BETWEEN %s AND %s")
            parameters.extend([date_range.start, date_range.end])

        if line_ref is not None:
            if not self.validate_line_reference(line_ref):
                raise ValueError(f"Invalid line reference: {line_ref!r}")
            conditions.append("upper(line_ref) = upper(%s)")
            parameters.append(str(line_ref).strip())

        if shift is not None:
            if not self.validate_shift(shift):
                raise ValueError(f"Invalid shift label: {shift!r}")
            conditions.append("lower(trim(shift)) = lower(%s)")
            parameters.append(str(shift).strip())

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        query = f"{base_query}{where} ORDER BY record_date DESC, id ASC;"
        return query, parameters

    def build_weekly_plan_query(self, date_range: Optional[DateRange] = None) -> Tuple[str, List[Any]]:
        """
        Build query for weekly plan entries, optionally within a date range.

        Returns:
            Tuple[str, List[Any]]: (query_string, parameters)
        """
        base_query = """
            SELECT id, product_id, target_day, planned_quantity
            FROM weekly_plan
        """

        if date_range is None:
            return f"{base_query} ORDER BY target_day ASC, id ASC;", []

        query = f"{base_query} WHERE target_day BETWEEN %s AND %s ORDER BY target_day ASC, id ASC;"
        return query, [date_range.start, date_range.end]


# Global instance
secure_query_builder = SecureQueryBuilder()
