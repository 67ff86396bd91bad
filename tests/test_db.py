"""
Unit tests for the analysis stores.
"""
import json

import pytest
import requests

from conftest import make_analysis
from core.config import Settings
from core.db import RestAnalysisStore, SQLiteAnalysisStore, create_store, row_to_analysis
from core.exceptions import ConfigurationError, DatabaseError
from core.schema import NewAnalysisRecord


def new_record(account_name="Checking", file_name="jan.pdf", **kwargs):
    analysis = make_analysis(**kwargs)
    return NewAnalysisRecord(
        file_name=file_name,
        account_name=account_name,
        balance=analysis.summary.balance,
        analysis=analysis,
    )


def test_sqlite_insert_and_list(sqlite_store):
    analysis_id = sqlite_store.insert(new_record(balance=1000))

    records = sqlite_store.list_analyses()
    assert len(records) == 1
    stored = records[0]
    assert stored.id == analysis_id
    assert stored.file_name == "jan.pdf"
    assert stored.account_name == "Checking"
    assert stored.balance == 1000
    assert stored.analysis == make_analysis(balance=1000)
    assert stored.created_at.tzinfo is not None


def test_sqlite_lists_newest_first(sqlite_store):
    ids = [sqlite_store.insert(new_record(file_name=f"{n}.pdf")) for n in range(3)]
    assert [r.id for r in sqlite_store.list_analyses()] == list(reversed(ids))


def test_sqlite_filter_by_account(sqlite_store):
    sqlite_store.insert(new_record(account_name="Checking"))
    savings_id = sqlite_store.insert(new_record(account_name="Savings"))

    records = sqlite_store.list_analyses("Savings")
    assert [r.id for r in records] == [savings_id]
    assert sqlite_store.list_analyses("Unknown") == []


def test_sqlite_delete_is_idempotent(sqlite_store):
    analysis_id = sqlite_store.insert(new_record())
    sqlite_store.delete(analysis_id)
    sqlite_store.delete(analysis_id)
    sqlite_store.delete("never-existed")
    assert sqlite_store.list_analyses() == []


def test_sqlite_health_check(sqlite_store):
    assert sqlite_store.health_check()["status"] == "healthy"


def test_row_to_analysis_rejects_bad_rows():
    with pytest.raises(DatabaseError):
        row_to_analysis({"id": "1", "created_at": "2024-01-01T00:00:00+00:00", "analysis": "{broken"})
    with pytest.raises(DatabaseError):
        row_to_analysis({"id": "1", "analysis": json.dumps(make_analysis().to_wire())})


def test_create_store_sqlite(settings):
    assert isinstance(create_store(settings), SQLiteAnalysisStore)


def test_create_store_rest_requires_credentials(monkeypatch):
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("DATABASE_KEY", raising=False)
    settings = Settings(_env_file=None, database_backend="rest")
    with pytest.raises(ConfigurationError):
        create_store(settings)


class FakeResponse:
    def __init__(self, payload=None, status_code=200):
        self.payload = payload
        self.status_code = status_code
        self.text = json.dumps(payload)

    def json(self):
        return self.payload

    def raise_for_status(self):
        if self.status_code >= 400:
            raise requests.exceptions.HTTPError(f"{self.status_code} Error", response=self)


@pytest.fixture
def rest_store():
    return RestAnalysisStore("https://db.example.com/", "secret", table="analyses")


def stored_row(analysis_id="abc", account_name="Checking"):
    return {
        "id": analysis_id,
        "created_at": "2024-06-01T10:00:00+00:00",
        "file_name": "jan.pdf",
        "account_name": account_name,
        "balance": 10,
        "analysis": make_analysis().to_wire(),
    }


def test_rest_store_headers(rest_store):
    assert rest_store.endpoint == "https://db.example.com/rest/v1/analyses"
    assert rest_store.session.headers["apikey"] == "secret"
    assert rest_store.session.headers["Authorization"] == "Bearer secret"


def test_rest_insert(rest_store, monkeypatch):
    calls = []

    def fake_request(method, url, **kwargs):
        calls.append((method, url, kwargs))
        return FakeResponse([stored_row("new-id")], status_code=201)

    monkeypatch.setattr(rest_store.session, "request", fake_request)

    assert rest_store.insert(new_record()) == "new-id"
    method, url, kwargs = calls[0]
    assert method == "POST"
    assert kwargs["headers"] == {"Prefer": "return=representation"}
    assert kwargs["json"]["account_name"] == "Checking"
    assert kwargs["json"]["analysis"]["summary"]["netFlow"] == 1000


def test_rest_list_filters_and_orders(rest_store, monkeypatch):
    calls = []

    def fake_request(method, url, **kwargs):
        calls.append(kwargs)
        return FakeResponse([stored_row("b"), stored_row("a")])

    monkeypatch.setattr(rest_store.session, "request", fake_request)

    records = rest_store.list_analyses("Checking")
    assert [r.id for r in records] == ["b", "a"]
    assert calls[0]["params"] == {
        "select": "*",
        "order": "created_at.desc",
        "account_name": "eq.Checking",
    }


def test_rest_delete(rest_store, monkeypatch):
    calls = []

    def fake_request(method, url, **kwargs):
        calls.append((method, kwargs))
        return FakeResponse(None, status_code=204)

    monkeypatch.setattr(rest_store.session, "request", fake_request)
    rest_store.delete("abc")
    assert calls == [("DELETE", {"params": {"id": "eq.abc"}, "timeout": 30, "verify": True})]


def test_rest_http_error(rest_store, monkeypatch):
    monkeypatch.setattr(
        rest_store.session, "request",
        lambda method, url, **kwargs: FakeResponse({"message": "denied"}, status_code=401)
    )
    with pytest.raises(DatabaseError) as exc_info:
        rest_store.list_analyses()
    assert exc_info.value.details["status_code"] == 401
    assert exc_info.value.status_code == 502


def test_rest_connection_error(rest_store, monkeypatch):
    def fake_request(method, url, **kwargs):
        raise requests.exceptions.ConnectionError("unreachable")

    monkeypatch.setattr(rest_store.session, "request", fake_request)
    with pytest.raises(DatabaseError):
        rest_store.insert(new_record())
