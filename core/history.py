"""
History aggregation for the dashboard.

Works on stored analyses ordered newest first, exactly as the store
returns them; request arrival order is never consulted.
"""
import math
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pandas as pd
from pydantic import Field

from core.logger import setup_logger
from core.schema import CanonicalModel, StoredAnalysis

logger = setup_logger(__name__)

ALL_ACCOUNTS = "All Accounts"
PERIOD_LABEL_FORMAT = "%b %Y"

FRAME_COLUMNS = [
    "id",
    "created_at",
    "account_name",
    "file_name",
    "start_date",
    "end_date",
    "income",
    "expenses",
    "net_flow",
    "balance",
]


class HistoryPoint(CanonicalModel):
    """One chart point derived from a stored analysis."""
    period: str
    end_date: str = Field(..., alias="endDate")
    income: float
    expenses: float
    net_flow: float = Field(..., alias="netFlow")
    balance: float


class MetricDeltas(CanonicalModel):
    """Period-over-period percentage changes; None means undefined."""
    income: Optional[float] = None
    expenses: Optional[float] = None
    net_flow: Optional[float] = Field(default=None, alias="netFlow")
    balance: Optional[float] = None


class DashboardView(CanonicalModel):
    """Everything the dashboard needs for one account selection."""
    account: str
    accounts: List[str]
    series: List[HistoryPoint]
    current: Optional[StoredAnalysis] = None
    previous: Optional[StoredAnalysis] = None
    deltas: MetricDeltas = Field(default_factory=MetricDeltas)

    def to_wire(self) -> dict:
        data = self.model_dump(by_alias=True, mode="json", exclude={"deltas"})
        # Undefined deltas are omitted, never sent as 0 or NaN
        data["deltas"] = self.deltas.model_dump(by_alias=True, mode="json", exclude_none=True)
        return data


def _is_number(value: Any) -> bool:
    return (
        isinstance(value, (int, float))
        and not isinstance(value, bool)
        and math.isfinite(value)
    )


def percent_change(current: Any, previous: Any) -> Optional[float]:
    """
    Percentage change from previous to current.

    Args:
        current: Current value
        previous: Comparison value

    Returns:
        (current - previous) / previous * 100, or None when either value is
        not numeric or previous is zero
    """
    if not (_is_number(current) and _is_number(previous)) or previous == 0:
        return None
    return (current - previous) * 100 / previous


def metric_values(record: StoredAnalysis) -> Dict[str, float]:
    """Key metrics of a stored analysis."""
    return {
        "income": record.analysis.income.total,
        "expenses": record.analysis.expenses.total,
        "net_flow": record.analysis.summary.net_flow,
        "balance": record.balance,
    }


def compute_deltas(
    current: Optional[StoredAnalysis],
    previous: Optional[StoredAnalysis]
) -> MetricDeltas:
    """
    Compute percentage deltas between two stored analyses.

    Args:
        current: Newest analysis
        previous: Analysis before it

    Returns:
        MetricDeltas with None for every undefined metric
    """
    if current is None or previous is None:
        return MetricDeltas()

    current_values = metric_values(current)
    previous_values = metric_values(previous)
    return MetricDeltas(**{
        name: percent_change(current_values[name], previous_values[name])
        for name in current_values
    })


def filter_by_account(
    records: Iterable[StoredAnalysis],
    account: Optional[str] = None
) -> List[StoredAnalysis]:
    """Keep records of one account; no account or ALL_ACCOUNTS keeps everything."""
    if not account or account == ALL_ACCOUNTS:
        return list(records)
    return [record for record in records if record.account_name == account]


def enumerate_accounts(records: Iterable[StoredAnalysis]) -> List[str]:
    """
    Distinct account labels in order of first appearance.

    Returns:
        ALL_ACCOUNTS followed by every non-empty label, without duplicates
    """
    accounts = [ALL_ACCOUNTS]
    seen = {ALL_ACCOUNTS}
    for record in records:
        label = (record.account_name or "").strip()
        if label and label not in seen:
            seen.add(label)
            accounts.append(label)
    return accounts


def latest_pair(
    records: Sequence[StoredAnalysis]
) -> Tuple[Optional[StoredAnalysis], Optional[StoredAnalysis]]:
    """First two records of a newest-first list: (current, comparison)."""
    current = records[0] if len(records) > 0 else None
    previous = records[1] if len(records) > 1 else None
    return current, previous


def history_frame(records: Iterable[StoredAnalysis]) -> pd.DataFrame:
    """
    Tabulate stored analyses, one row per record, in the given order.
    `end_date` is parsed; unparseable dates become NaT.

    Args:
        records: Stored analyses

    Returns:
        DataFrame with FRAME_COLUMNS
    """
    rows = [
        {
            "id": record.id,
            "created_at": record.created_at,
            "account_name": record.account_name,
            "file_name": record.file_name,
            "start_date": record.analysis.summary.start_date,
            "end_date": record.analysis.summary.end_date,
            **metric_values(record),
        }
        for record in records
    ]
    frame = pd.DataFrame(rows, columns=FRAME_COLUMNS)
    frame["end_date"] = pd.to_datetime(frame["end_date"], format="%Y-%m-%d", errors="coerce")
    return frame


def project_series(records: Sequence[StoredAnalysis]) -> List[HistoryPoint]:
    """
    Chart series, oldest first.
    Records whose endDate is absent or unparseable are left out.

    Args:
        records: Stored analyses, newest first

    Returns:
        History points in reversed (chronological) store order
    """
    frame = history_frame(records)
    dated = frame[frame["end_date"].notna()]

    excluded = len(frame) - len(dated)
    if excluded:
        logger.debug(f"Excluded {excluded} records without a valid end date from the series")

    return [
        HistoryPoint(
            period=row.end_date.strftime(PERIOD_LABEL_FORMAT),
            end_date=row.end_date.strftime("%Y-%m-%d"),
            income=row.income,
            expenses=row.expenses,
            net_flow=row.net_flow,
            balance=row.balance,
        )
        for row in dated.iloc[::-1].itertuples(index=False)
    ]


def build_dashboard(
    records: Sequence[StoredAnalysis],
    account: Optional[str] = None
) -> DashboardView:
    """
    Assemble the dashboard view for an account selection.

    Args:
        records: All stored analyses, newest first
        account: Account label, or None / ALL_ACCOUNTS for every account

    Returns:
        DashboardView
    """
    filtered = filter_by_account(records, account)
    current, previous = latest_pair(filtered)

    return DashboardView(
        account=account or ALL_ACCOUNTS,
        accounts=enumerate_accounts(records),
        series=project_series(filtered),
        current=current,
        previous=previous,
        deltas=compute_deltas(current, previous),
    )
