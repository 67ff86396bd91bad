"""
Pydantic schemas for the canonical analysis result and stored records.
The camelCase aliases are the wire and storage field names.
"""
from datetime import datetime
from typing import List

from pydantic import BaseModel, ConfigDict, Field

NOT_AVAILABLE = "N/A"


class CanonicalModel(BaseModel):
    """Base for immutable models serialized by alias."""
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    def to_wire(self) -> dict:
        """Serialize using the camelCase wire names."""
        return self.model_dump(by_alias=True, mode="json")


class CategoryAmount(CanonicalModel):
    """A named bucket of same-type transactions."""
    name: str = Field(..., min_length=1)
    amount: float = Field(default=0.0, ge=0.0)


class MoneyGroup(CanonicalModel):
    """Income or expenses: an upstream total plus its category breakdown."""
    total: float = 0.0
    categories: List[CategoryAmount] = Field(default_factory=list)

    @property
    def category_sum(self) -> float:
        return sum(category.amount for category in self.categories)


class StatementSummary(CanonicalModel):
    """Statement-level figures."""
    net_flow: float = Field(default=0.0, alias="netFlow")
    start_date: str = Field(default=NOT_AVAILABLE, alias="startDate")
    end_date: str = Field(default=NOT_AVAILABLE, alias="endDate")
    account: str = NOT_AVAILABLE
    balance: float = 0.0


class AnalysisResult(CanonicalModel):
    """
    Canonical analysis of one statement.
    This is the only shape exposed outside the pipeline.
    """
    income: MoneyGroup
    expenses: MoneyGroup
    summary: StatementSummary


class NewAnalysisRecord(CanonicalModel):
    """Payload inserted into the analysis store (no id or timestamp yet)."""
    file_name: str = Field(..., alias="fileName")
    account_name: str = Field(..., alias="accountName")
    balance: float = 0.0
    analysis: AnalysisResult


class StoredAnalysis(CanonicalModel):
    """An analysis as persisted by the store, with its provenance."""
    id: str
    created_at: datetime = Field(..., alias="createdAt")
    file_name: str = Field(..., alias="fileName")
    account_name: str = Field(..., alias="accountName")
    balance: float = 0.0
    analysis: AnalysisResult
