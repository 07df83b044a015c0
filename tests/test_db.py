from contextlib import contextmanager

import pandas as pd
import psycopg2
import pytest

from core.db import fetchers, pool
from core.db.pool import DatabasePool

DB_CONFIG = {"host": "localhost", "port": "5432", "database": "pcp", "user": "pcp", "password": "secret"}


class FakeCursor:
    def __init__(self, tables, executed):
        self.tables = tables
        self.executed = executed
        self.description = []
        self._rows = []

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        return False

    def execute(self, query, parameters=None):
        self.executed.append((query, parameters))
        table = query.split("FROM")[1].split()[0] if "FROM" in query else None
        columns, rows = self.tables.get(table, (["?column?"], [(1,)]))
        self.description = [(name,) for name in columns]
        self._rows = rows

    def fetchall(self):
        return list(self._rows)

    def fetchone(self):
        return self._rows[0] if self._rows else None


class FakeConnection:
    def __init__(self, tables=None):
        self.tables = tables or {}
        self.executed = []
        self.closed = False
        self.session = None

    def set_session(self, **kwargs):
        self.session = kwargs

    def cursor(self):
        return FakeCursor(self.tables, self.executed)

    def close(self):
        self.closed = True


TABLES = {
    "products": (["id", "name", "nominal_capacity"], [("P1", "WATER 500ML", 7200)]),
    "lines": (["id", "name"], [("L1", "Line 01")]),
    "orders": (["id", "customer", "delivery_date", "status"], [("O1", "ACME", None, "Pending")]),
    "order_lines": (["id", "order_id", "product_id", "quantity"], [(1, "O1", "P1", 10)]),
    "production_records": (
        ["id", "record_date", "shift", "line_ref", "product_id", "quantity", "stops"],
        [("R1", "2024-06-03", "1st Shift", "L1", "P1", 100, [{"duration": "10min"}])],
    ),
    "weekly_plan": (["id", "product_id", "target_day", "planned_quantity"], [(1, "P1", "2024-06-03", 500)]),
}


@pytest.fixture
def fake_connection(monkeypatch):
    connection = FakeConnection(TABLES)

    @contextmanager
    def fake_get_pcp_connection():
        yield connection

    monkeypatch.setattr(fetchers, "get_pcp_connection", fake_get_pcp_connection)
    return connection


def test_fetch_collections_returns_every_collection(fake_connection):
    collections = fetchers.fetch_collections()

    assert set(collections) == set(fetchers.COLLECTIONS)
    assert all(isinstance(df, pd.DataFrame) for df in collections.values())
    assert collections["products"].loc[0, "name"] == "WATER 500ML"
    assert pd.api.types.is_datetime64_any_dtype(collections["production_records"]["record_date"])
    assert len(fake_connection.executed) == 6


def test_fetch_orders_with_status_filter(fake_connection):
    fetchers.fetch_orders(["Pending"])
    query, parameters = fake_connection.executed[-1]
    assert "status IN" in query
    assert parameters == ["Pending"]


def test_fetch_errors_propagate(monkeypatch):
    @contextmanager
    def failing_connection():
        raise psycopg2.OperationalError("could not connect")
        yield

    monkeypatch.setattr(fetchers, "get_pcp_connection", failing_connection)

    with pytest.raises(psycopg2.OperationalError):
        fetchers.fetch_collections()


def test_pool_falls_back_to_direct_connection(monkeypatch):
    direct = FakeConnection()
    monkeypatch.setattr(pool.psycopg2, "connect", lambda **kwargs: direct)

    db_pool = DatabasePool(DB_CONFIG)

    with db_pool.get_connection() as conn:
        assert conn is direct

    assert direct.closed
    assert direct.session == {"readonly": True, "autocommit": True}
    stats = db_pool.get_stats()
    assert stats["direct"] == 1
    assert not stats["pooled"]


def test_pool_returns_pooled_connections(monkeypatch):
    pooled = FakeConnection()

    class FakeThreadedPool:
        def __init__(self, minconn, maxconn, **kwargs):
            self.kwargs = kwargs
            self.returned = []

        def getconn(self):
            return pooled

        def putconn(self, conn):
            self.returned.append(conn)

        def closeall(self):
            pass

    monkeypatch.setattr(pool.psycopg2.pool, "ThreadedConnectionPool", FakeThreadedPool)

    db_pool = DatabasePool(DB_CONFIG)
    assert db_pool.initialize_pool(1, 2)
    assert db_pool.pool.kwargs["sslmode"] == "prefer"
    assert db_pool.pool.kwargs["connect_timeout"] == 10

    with db_pool.get_connection() as conn:
        assert conn is pooled

    assert db_pool.pool.returned == [pooled]
    assert not pooled.closed
    assert db_pool.get_stats()["checkins"] == 1

    db_pool.close_pool()
    assert db_pool.pool is None


def test_health_check(monkeypatch):
    monkeypatch.setattr(pool.psycopg2, "connect", lambda **kwargs: FakeConnection())
    assert DatabasePool(DB_CONFIG).health_check()

    def refuse(**kwargs):
        raise psycopg2.OperationalError("refused")

    monkeypatch.setattr(pool.psycopg2, "connect", refuse)
    assert not DatabasePool(DB_CONFIG).health_check()


def test_pool_requires_configuration(monkeypatch):
    for key in ("PCPDB_HOST", "PCPDB_NAME", "PCPDB_USER", "PCPDB_PASS"):
        monkeypatch.delenv(key, raising=False)

    with pytest.raises(ValueError, match="Missing PCP database configuration"):
        DatabasePool()
