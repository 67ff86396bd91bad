"""
Category taxonomy used for prompting and for normalizing AI replies.
"""
from typing import List

from pydantic import BaseModel, ConfigDict, Field, model_validator


class Taxonomy(BaseModel):
    """
    Closed set of category names the AI is asked to use.

    Unmatched income must fall back to `income_fallback`; unmatched
    expenses may keep a newly coined name.
    """
    model_config = ConfigDict(frozen=True)

    income_categories: List[str] = Field(..., min_length=1)
    expense_categories: List[str] = Field(..., min_length=1)
    income_fallback: str
    balance_label: str = "Closing Balance"
    income_total_key: str = "Total Income"
    expense_total_key: str = "Total Expenses"

    @model_validator(mode="after")
    def check_fallback(self):
        if self.income_fallback not in self.income_categories:
            raise ValueError("Income fallback must be one of the income categories")
        return self


DEFAULT_TAXONOMY = Taxonomy(
    income_categories=[
        "Salary",
        "Freelance",
        "Investments",
        "Refunds",
        "Transfers In",
        "Other Income",
    ],
    expense_categories=[
        "Rent/Mortgage",
        "Groceries",
        "Transport",
        "Utilities",
        "Subscriptions",
        "Dining Out",
        "Shopping",
        "Healthcare",
        "Entertainment",
        "Insurance",
        "Transfers Out",
        "Fees & Charges",
    ],
    income_fallback="Other Income",
)
