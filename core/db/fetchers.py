"""
Data Fetching Module

Database fetchers for the five PCP collections. Each fetcher returns a
pandas DataFrame with one row per database row; normalization into typed
records happens afterwards (core.records.normalizer).

Fetchers log and re-raise database errors: the snapshot store decides how
to degrade when a refresh fails.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import pandas as pd

from core.records.models import OrderStatus
from core.time_windows.models import DateRange

from .pool import get_pcp_connection
from .queries import secure_query_builder

logger = logging.getLogger(__name__)


COLLECTIONS = ("products", "lines", "orders", "order_lines", "production_records", "weekly_plan")


def _run_query(query: str, parameters: List[Any], label: str) -> pd.DataFrame:
    """Execute a query and return its rows as a DataFrame."""
    try:
        with get_pcp_connection() as conn:
            with conn.cursor() as cursor:
                cursor.execute(query, parameters)
                data = cursor.fetchall()
                columns = [desc[0] for desc in cursor.description]

        df = pd.DataFrame(data, columns=columns)
        logger.info(f"Successfully fetched {len(df)} {label} rows")
        return df

    except Exception as e:
        logger.error(f"Error fetching {label} data: {e}", exc_info=True)
        raise


def fetch_products() -> pd.DataFrame:
    """Fetch the product catalog."""
    query, parameters = secure_query_builder.build_products_query()
    return _run_query(query, parameters, "product")


def fetch_lines() -> pd.DataFrame:
    """Fetch production lines."""
    query, parameters = secure_query_builder.build_lines_query()
    return _run_query(query, parameters, "line")


def fetch_orders(statuses: Optional[Sequence[OrderStatus]] = None) -> pd.DataFrame:
    """
    Fetch orders, optionally restricted to some statuses.

    Args:
        statuses: Optional list of OrderStatus to include

    Returns:
        DataFrame with id, customer, delivery_date, status
    """
    query, parameters = secure_query_builder.build_orders_query(statuses)
    return _run_query(query, parameters, "order")


def fetch_order_lines(order_ids: Optional[Sequence[str]] = None) -> pd.DataFrame:
    """Fetch order lines, optionally for specific orders only."""
    query, parameters = secure_query_builder.build_order_lines_query(order_ids)
    return _run_query(query, parameters, "order line")


def fetch_production_records(
    date_range: Optional[DateRange] = None,
    line_ref: Optional[str] = None,
    shift: Optional[str] = None,
) -> pd.DataFrame:
    """
    Fetch production records with their embedded stop lists.

    Stock reconciliation needs the full history, so the snapshot loader calls
    this without filters; the filters serve ad hoc reports.

    Args:
        date_range: Optional inclusive date range
        line_ref: Optional line identifier or name
        shift: Optional shift label

    Returns:
        DataFrame with one row per production record ('stops' holds the raw list)
    """
    query, parameters = secure_query_builder.build_production_records_query(date_range, line_ref, shift)
    df = _run_query(query, parameters, "production record")

    if not df.empty and 'record_date' in df.columns:
        df['record_date'] = pd.to_datetime(df['record_date'], errors='coerce')

    return df


def fetch_weekly_plan(date_range: Optional[DateRange] = None) -> pd.DataFrame:
    """Fetch weekly plan entries, optionally within a date range."""
    query, parameters = secure_query_builder.build_weekly_plan_query(date_range)
    return _run_query(query, parameters, "weekly plan")


def fetch_collections() -> Dict[str, pd.DataFrame]:
    """
    Fetch a complete snapshot of the PCP collections.

    Returns:
        Dictionary of DataFrames keyed by collection name (see COLLECTIONS)

    Raises:
        Exception: Any database error; a partial snapshot is never returned
    """
    logger.info("Fetching PCP snapshot")

    collections = {
        "products": fetch_products(),
        "lines": fetch_lines(),
        "orders": fetch_orders(),
        "order_lines": fetch_order_lines(),
        "production_records": fetch_production_records(),
        "weekly_plan": fetch_weekly_plan(),
    }

    summary = ", ".join(f"{name}={len(df)}" for name, df in collections.items())
    logger.info(f"Fetched PCP snapshot: {summary}")
    return collections
