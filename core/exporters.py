"""
Excel export of analysis history.
One sheet with a row per statement, one with a row per category amount.
"""
from datetime import datetime
from pathlib import Path
from typing import List, Optional, Sequence

import pandas as pd

from core.exceptions import ExportError
from core.history import history_frame
from core.logger import setup_logger
from core.schema import StoredAnalysis

logger = setup_logger(__name__)

HISTORY_SHEET = "History"
CATEGORIES_SHEET = "Categories"

HISTORY_HEADERS = {
    "id": "ID",
    "created_at": "Uploaded",
    "account_name": "Account",
    "file_name": "File",
    "start_date": "Start Date",
    "end_date": "End Date",
    "income": "Income",
    "expenses": "Expenses",
    "net_flow": "Net Flow",
    "balance": "Balance",
}


def build_history_sheet(records: Sequence[StoredAnalysis]) -> pd.DataFrame:
    """One row per stored analysis with human-readable headers."""
    frame = history_frame(records)
    frame["created_at"] = frame["created_at"].astype(str)
    frame["end_date"] = frame["end_date"].dt.strftime("%Y-%m-%d").fillna("N/A")
    return frame.rename(columns=HISTORY_HEADERS)


def build_categories_sheet(records: Sequence[StoredAnalysis]) -> pd.DataFrame:
    """One row per (statement, side, category) amount."""
    rows: List[dict] = []
    for record in records:
        for side, group in (("Income", record.analysis.income), ("Expenses", record.analysis.expenses)):
            for category in group.categories:
                rows.append({
                    "ID": record.id,
                    "Account": record.account_name,
                    "End Date": record.analysis.summary.end_date,
                    "Type": side,
                    "Category": category.name,
                    "Amount": category.amount,
                })
    return pd.DataFrame(rows, columns=["ID", "Account", "End Date", "Type", "Category", "Amount"])


def export_history_to_excel(records: Sequence[StoredAnalysis], output_path: str) -> str:
    """
    Export stored analyses to an Excel workbook.

    Args:
        records: Stored analyses, newest first
        output_path: Output file path

    Returns:
        Path to created file

    Raises:
        ExportError: If export fails
    """
    logger.info(f"Exporting {len(records)} analyses to {output_path}")

    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)

    try:
        history_df = build_history_sheet(records)
        categories_df = build_categories_sheet(records)

        with pd.ExcelWriter(output_path, engine="xlsxwriter") as writer:
            history_df.to_excel(writer, sheet_name=HISTORY_SHEET, index=False)
            categories_df.to_excel(writer, sheet_name=CATEGORIES_SHEET, index=False)

            workbook = writer.book
            money_format = workbook.add_format({"num_format": "#,##0.00"})

            # Auto-fit columns (approximate)
            for sheet_name, df in ((HISTORY_SHEET, history_df), (CATEGORIES_SHEET, categories_df)):
                worksheet = writer.sheets[sheet_name]
                for idx, col in enumerate(df.columns):
                    values = df[col].astype(str).map(len)
                    max_len = max(values.max() if len(values) else 0, len(str(col)))
                    is_money = col in ("Income", "Expenses", "Net Flow", "Balance", "Amount")
                    worksheet.set_column(idx, idx, min(max_len + 2, 50), money_format if is_money else None)

        logger.info(f"Successfully exported to {output_path}")
        return output_path

    except Exception as e:
        logger.error(f"Failed to export Excel: {e}")
        raise ExportError(
            "Failed to export analysis history",
            details={"output_path": output_path, "error": str(e)}
        )


def create_output_filename(base_path: str, account: Optional[str] = None) -> str:
    """
    Create timestamped output filename.

    Args:
        base_path: Directory for the export
        account: Account label included in the name

    Returns:
        Full output file path
    """
    Path(base_path).mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
    slug = "".join(char if char.isalnum() else "_" for char in (account or "all_accounts")).strip("_")

    filename = f"statement_history_{slug or 'account'}_{timestamp}.xlsx"
    return str(Path(base_path) / filename)
