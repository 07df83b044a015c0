import pytest

import app
from core.analysis.engine import AnalyticsEngine
from core.analysis.snapshot import SnapshotStore

from fixtures_pcp import raw_collections


@pytest.fixture
def offline(monkeypatch):
    """Run the CLI against in-memory collections instead of the database."""
    monkeypatch.setattr(app, "fetch_collections", raw_collections)
    monkeypatch.setattr(app, "validate_config", lambda: [])
    monkeypatch.setattr(app, "load_config", lambda env_path=None: False)


def test_arg_parser():
    args = app.build_arg_parser().parse_args(["downtime", "--start", "2024-06-03", "--line", "L1"])
    assert args.command == "downtime"
    assert str(args.start) == "2024-06-03"
    assert args.end is None
    assert args.line == "L1"


def test_arg_parser_rejects_bad_dates():
    with pytest.raises(SystemExit):
        app.build_arg_parser().parse_args(["lines", "--start", "someday"])


def test_stock_report(offline, capsys):
    assert app.main(["stock"]) == 0
    out = capsys.readouterr().out
    assert "Live balance" in out
    assert "WATER 500ML" in out
    assert "Critical products: 1 of 2" in out


def test_downtime_report(offline, capsys):
    assert app.main(["downtime", "--start", "2024-06-03", "--end", "2024-06-04"]) == 0
    out = capsys.readouterr().out
    assert "Raw downtime: 1h 35min in 3 stops" in out
    assert "Bottleneck downtime: 1h 15min" in out


def test_lines_report_rejects_inverted_range(offline):
    assert app.main(["lines", "--start", "2024-06-04", "--end", "2024-06-03"]) == 2


def test_order_report_exit_codes(offline, capsys):
    assert app.main(["order", "O1"]) == 0
    assert app.main(["order", "O3"]) == 1
    assert app.main(["order", "MISSING"]) == 1
    assert "Order MISSING not found" in capsys.readouterr().out


def test_goals_report(offline, capsys):
    assert app.main(["goals", "--today", "2024-06-05"]) == 0
    assert "Weekly goals" in capsys.readouterr().out


def test_configuration_errors_stop_the_report(monkeypatch):
    monkeypatch.setattr(app, "load_config", lambda env_path=None: False)
    monkeypatch.setattr(app, "validate_config", lambda: ["PCP: missing host"])
    assert app.main(["stock"]) == 2


def test_database_failure_is_reported(offline, monkeypatch):
    def unreachable():
        raise ConnectionError("database unreachable")

    monkeypatch.setattr(app, "fetch_collections", unreachable)
    assert app.main(["stock"]) == 1


def test_report_order_uses_engine():
    store = SnapshotStore(raw_collections)
    store.refresh()
    assert app.report_order(AnalyticsEngine(store), "O1") is True
