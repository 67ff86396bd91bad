"""
Unit tests for history aggregation and dashboard deltas.
"""
import math

import pytest

from conftest import make_stored
from core.history import (
    ALL_ACCOUNTS,
    build_dashboard,
    compute_deltas,
    enumerate_accounts,
    filter_by_account,
    history_frame,
    latest_pair,
    percent_change,
    project_series,
)


@pytest.mark.parametrize("current,previous,expected", [
    (1200, 1000, 20.0),
    (500, 1000, -50.0),
    (1000, 1000, 0.0),
    (-50, 100, -150.0),
])
def test_percent_change(current, previous, expected):
    assert percent_change(current, previous) == pytest.approx(expected)


@pytest.mark.parametrize("current,previous", [
    (100, 0),
    (100, 0.0),
    (None, 100),
    (100, None),
    ("100", 50),
    (True, 1),
    (float("nan"), 10),
    (10, float("inf")),
])
def test_percent_change_undefined(current, previous):
    assert percent_change(current, previous) is None


def test_latest_pair():
    records = [make_stored("b"), make_stored("a", days_ago=1)]
    assert latest_pair(records) == (records[0], records[1])
    assert latest_pair(records[:1]) == (records[0], None)
    assert latest_pair([]) == (None, None)


def test_compute_deltas():
    current = make_stored("new", income=1200, expenses=500, balance=2000)
    previous = make_stored("old", income=1000, expenses=500, balance=0, days_ago=30)

    deltas = compute_deltas(current, previous)

    assert deltas.income == pytest.approx(20.0)
    assert deltas.expenses == pytest.approx(0.0)
    assert deltas.net_flow == pytest.approx(40.0)
    # Previous balance 0: undefined
    assert deltas.balance is None


def test_compute_deltas_needs_two_records():
    deltas = compute_deltas(make_stored("only"), None)
    assert deltas.income is None
    assert deltas.model_dump(exclude_none=True) == {}


def test_enumerate_accounts():
    records = [
        make_stored("1", account_name="Savings"),
        make_stored("2", account_name="Checking"),
        make_stored("3", account_name="Savings"),
        make_stored("4", account_name="  "),
    ]
    assert enumerate_accounts(records) == [ALL_ACCOUNTS, "Savings", "Checking"]
    assert enumerate_accounts([]) == [ALL_ACCOUNTS]


def test_filter_by_account():
    records = [make_stored("1", account_name="Savings"), make_stored("2", account_name="Checking")]
    assert [r.id for r in filter_by_account(records, "Checking")] == ["2"]
    assert len(filter_by_account(records, ALL_ACCOUNTS)) == 2
    assert len(filter_by_account(records, None)) == 2


def test_history_frame_parses_end_dates():
    records = [
        make_stored("1", end_date="2024-02-29"),
        make_stored("2", end_date="N/A"),
    ]
    frame = history_frame(records)
    assert list(frame["id"]) == ["1", "2"]
    assert frame["end_date"].iloc[0].month == 2
    assert frame["end_date"].isna().iloc[1]


def test_history_frame_empty():
    assert history_frame([]).empty


def test_series_is_chronological_and_skips_undated():
    records = [
        make_stored("mar", end_date="2024-03-31", income=3000),
        make_stored("bad", end_date="not a date", days_ago=1),
        make_stored("feb", end_date="2024-02-29", income=2000, days_ago=2),
        make_stored("none", end_date="N/A", days_ago=3),
        make_stored("jan", end_date="2024-01-31", income=1000, days_ago=4),
    ]
    series = project_series(records)

    assert [point.period for point in series] == ["Jan 2024", "Feb 2024", "Mar 2024"]
    assert [point.income for point in series] == [1000, 2000, 3000]
    assert series[0].end_date == "2024-01-31"


def test_series_follows_store_order_not_dates():
    # Store order is authoritative even when end dates disagree
    records = [
        make_stored("older-statement", end_date="2023-12-31"),
        make_stored("newer-statement", end_date="2024-05-31", days_ago=1),
    ]
    assert [p.period for p in project_series(records)] == ["May 2024", "Dec 2023"]


def test_dashboard_scenario():
    records = [
        make_stored("cur", account_name="Checking", income=1200, expenses=800, balance=1500, end_date="2024-02-29"),
        make_stored("other", account_name="Savings", income=50, expenses=0, balance=9000, days_ago=1),
        make_stored("prev", account_name="Checking", income=1000, expenses=800, balance=1000, days_ago=30),
    ]
    view = build_dashboard(records, "Checking")

    assert view.current.id == "cur"
    assert view.previous.id == "prev"
    assert view.deltas.income == pytest.approx(20.0)
    assert view.deltas.balance == pytest.approx(50.0)
    assert view.accounts == [ALL_ACCOUNTS, "Checking", "Savings"]
    assert [point.period for point in view.series] == ["Jan 2024", "Feb 2024"]


def test_dashboard_wire_omits_undefined_deltas():
    records = [
        make_stored("cur", income=1200, expenses=0, balance=100),
        make_stored("prev", income=0, expenses=0, balance=50, days_ago=30),
    ]
    wire = build_dashboard(records).to_wire()

    assert wire["account"] == ALL_ACCOUNTS
    assert "income" not in wire["deltas"]
    assert "expenses" not in wire["deltas"]
    assert wire["deltas"]["balance"] == pytest.approx(100.0)
    assert wire["current"]["accountName"] == "Checking"
    assert all(not isinstance(v, float) or math.isfinite(v) for v in wire["deltas"].values())


def test_dashboard_empty_history():
    view = build_dashboard([])
    assert view.current is None
    assert view.previous is None
    assert view.series == []
    assert view.to_wire()["deltas"] == {}
