"""
Shared fixtures for statement analyzer tests.
"""
import json
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import pytest

from core.config import Settings
from core.db import AnalysisStore, SQLiteAnalysisStore
from core.schema import AnalysisResult, NewAnalysisRecord, StoredAnalysis

FLAT_REPLY = {
    "income_summary": {"Salary": 5000, "Total Income": 5000},
    "expense_summary": {"Groceries": 450, "Total Expenses": 450},
    "net_flow": 4550,
    "statement_period": {"start_date": "2024-01-01", "end_date": "2024-01-31"},
    "balance": 1000,
}

CANONICAL_REPLY = {
    "income": {
        "total": 5500.0,
        "categories": [
            {"name": "Salary", "amount": 5000.0},
            {"name": "Freelance", "amount": 500.0},
        ],
    },
    "expenses": {
        "total": 1950.25,
        "categories": [
            {"name": "Rent/Mortgage", "amount": 1500.0},
            {"name": "Groceries", "amount": 450.25},
        ],
    },
    "summary": {
        "netFlow": 3549.75,
        "startDate": "2023-07-01",
        "endDate": "2023-07-31",
        "account": "...XXXX 1234",
        "balance": 8200.5,
    },
}


class FakeClient:
    """Completion client returning a canned reply."""

    def __init__(self, reply: str):
        self.reply = reply
        self.prompts: List[str] = []

    def complete(self, prompt, system_prompt=None, temperature=0.1):
        self.prompts.append(prompt)
        return self.reply


class MemoryStore(AnalysisStore):
    """In-memory store recording every call."""

    def __init__(self):
        self.records: List[StoredAnalysis] = []
        self.insert_calls = 0
        self.deleted: List[str] = []

    def insert(self, record: NewAnalysisRecord) -> str:
        self.insert_calls += 1
        analysis_id = f"id-{self.insert_calls}"
        stored = StoredAnalysis(
            id=analysis_id,
            created_at=datetime.now(timezone.utc),
            file_name=record.file_name,
            account_name=record.account_name,
            balance=record.balance,
            analysis=record.analysis,
        )
        self.records.insert(0, stored)
        return analysis_id

    def list_analyses(self, account_name: Optional[str] = None) -> List[StoredAnalysis]:
        return [r for r in self.records if not account_name or r.account_name == account_name]

    def delete(self, analysis_id: str) -> None:
        self.deleted.append(analysis_id)
        self.records = [r for r in self.records if r.id != analysis_id]


def make_analysis(
    income: float = 5000.0,
    expenses: float = 4000.0,
    net_flow: Optional[float] = None,
    end_date: str = "2024-01-31",
    start_date: str = "2024-01-01",
    balance: float = 0.0,
) -> AnalysisResult:
    return AnalysisResult.model_validate({
        "income": {"total": income, "categories": [{"name": "Salary", "amount": income}]},
        "expenses": {"total": expenses, "categories": [{"name": "Groceries", "amount": expenses}]},
        "summary": {
            "netFlow": income - expenses if net_flow is None else net_flow,
            "startDate": start_date,
            "endDate": end_date,
            "account": "N/A",
            "balance": balance,
        },
    })


def make_stored(
    analysis_id: str,
    account_name: str = "Checking",
    days_ago: int = 0,
    balance: float = 0.0,
    **analysis_kwargs,
) -> StoredAnalysis:
    return StoredAnalysis(
        id=analysis_id,
        created_at=datetime(2024, 6, 1, tzinfo=timezone.utc) - timedelta(days=days_ago),
        file_name=f"{analysis_id}.pdf",
        account_name=account_name,
        balance=balance,
        analysis=make_analysis(balance=balance, **analysis_kwargs),
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings isolated from the environment and .env files."""
    return Settings(
        _env_file=None,
        openai_api_key="test-key",
        database_backend="sqlite",
        database_path=str(tmp_path / "statements.db"),
        temp_storage_path=str(tmp_path / "exports"),
    )


@pytest.fixture
def sqlite_store(tmp_path) -> SQLiteAnalysisStore:
    return SQLiteAnalysisStore(str(tmp_path / "store.db"))


@pytest.fixture
def memory_store() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def flat_reply_text() -> str:
    return json.dumps(FLAT_REPLY)


@pytest.fixture
def canonical_reply_text() -> str:
    return json.dumps(CANONICAL_REPLY)
