"""
Analysis store: persists analyses with their provenance.

Two backends share one interface: a local SQLite file and a
PostgREST-style REST endpoint (e.g. a hosted Postgres table).
Both are append-only; records are never updated in place.
"""
import json
import sqlite3
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

import requests
import urllib3
from pydantic import ValidationError as PydanticValidationError

from core.config import Settings, get_settings
from core.exceptions import DatabaseError
from core.logger import setup_logger
from core.schema import AnalysisResult, NewAnalysisRecord, StoredAnalysis

logger = setup_logger(__name__)


def row_to_analysis(row: Dict[str, Any]) -> StoredAnalysis:
    """
    Build a StoredAnalysis from a storage row.

    Args:
        row: Mapping with snake_case column names; `analysis` may be JSON text

    Returns:
        StoredAnalysis

    Raises:
        DatabaseError: If the row does not hold a valid analysis
    """
    analysis = row.get("analysis")
    try:
        if isinstance(analysis, str):
            analysis = json.loads(analysis)
        return StoredAnalysis(
            id=str(row["id"]),
            created_at=row["created_at"],
            file_name=row.get("file_name") or "",
            account_name=row.get("account_name") or "",
            balance=row.get("balance") or 0.0,
            analysis=AnalysisResult.model_validate(analysis),
        )
    except (KeyError, json.JSONDecodeError, PydanticValidationError) as e:
        raise DatabaseError(
            "Stored analysis record is invalid",
            details={"id": row.get("id"), "error": str(e)}
        )


class AnalysisStore(ABC):
    """Record store for analyses."""

    @abstractmethod
    def insert(self, record: NewAnalysisRecord) -> str:
        """Persist a new analysis and return its id."""

    @abstractmethod
    def list_analyses(self, account_name: Optional[str] = None) -> List[StoredAnalysis]:
        """Return stored analyses newest first, optionally for one account."""

    @abstractmethod
    def delete(self, analysis_id: str) -> None:
        """Delete an analysis; unknown ids are not an error."""

    def health_check(self) -> Dict[str, Any]:
        self.list_analyses()
        return {"status": "healthy", "backend": type(self).__name__}


class SQLiteAnalysisStore(AnalysisStore):
    def __init__(self, db_path: str):
        self.db_path = db_path
        self.init_db()

    def get_connection(self) -> sqlite3.Connection:
        """Create a database connection."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self) -> None:
        """Initialize database tables."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS analyses (
                    id TEXT PRIMARY KEY,
                    created_at TEXT NOT NULL,
                    file_name TEXT NOT NULL,
                    account_name TEXT NOT NULL,
                    balance REAL NOT NULL DEFAULT 0,
                    analysis TEXT NOT NULL
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_analyses_account ON analyses (account_name)"
            )
            conn.commit()
            logger.info("Database initialized successfully")
        except sqlite3.Error as e:
            logger.error(f"Database initialization failed: {e}")
            raise DatabaseError("Database initialization failed", details={"error": str(e)})
        finally:
            conn.close()

    def insert(self, record: NewAnalysisRecord) -> str:
        """Insert an analysis record."""
        analysis_id = str(uuid.uuid4())
        now = datetime.now(timezone.utc).isoformat()
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute(
                "INSERT INTO analyses (id, created_at, file_name, account_name, balance, analysis) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (
                    analysis_id,
                    now,
                    record.file_name,
                    record.account_name,
                    record.balance,
                    json.dumps(record.analysis.to_wire()),
                )
            )
            conn.commit()
            logger.info(f"Stored analysis {analysis_id} for account '{record.account_name}'")
            return analysis_id
        except sqlite3.Error as e:
            logger.error(f"Failed to insert analysis: {e}")
            raise DatabaseError("Failed to save analysis", details={"error": str(e)})
        finally:
            conn.close()

    def list_analyses(self, account_name: Optional[str] = None) -> List[StoredAnalysis]:
        """Get analyses newest first."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            # rowid breaks ties between inserts sharing a timestamp
            if account_name:
                cursor.execute(
                    "SELECT * FROM analyses WHERE account_name = ? "
                    "ORDER BY created_at DESC, rowid DESC",
                    (account_name,)
                )
            else:
                cursor.execute("SELECT * FROM analyses ORDER BY created_at DESC, rowid DESC")
            rows = cursor.fetchall()
        except sqlite3.Error as e:
            logger.error(f"Failed to list analyses: {e}")
            raise DatabaseError("Failed to load analysis history", details={"error": str(e)})
        finally:
            conn.close()

        return [row_to_analysis(dict(row)) for row in rows]

    def delete(self, analysis_id: str) -> None:
        """Delete an analysis by id."""
        conn = self.get_connection()
        cursor = conn.cursor()

        try:
            cursor.execute("DELETE FROM analyses WHERE id = ?", (analysis_id,))
            conn.commit()
            if cursor.rowcount == 0:
                logger.info(f"Analysis {analysis_id} not found, nothing deleted")
            else:
                logger.info(f"Deleted analysis {analysis_id}")
        except sqlite3.Error as e:
            logger.error(f"Failed to delete analysis {analysis_id}: {e}")
            raise DatabaseError("Failed to delete analysis", details={"id": analysis_id, "error": str(e)})
        finally:
            conn.close()


class RestAnalysisStore(AnalysisStore):
    """Store backed by a PostgREST-compatible HTTP endpoint."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        table: str = "analyses",
        timeout: Optional[int] = 30,
        verify_ssl: bool = True,
    ):
        self.endpoint = f"{base_url.rstrip('/')}/rest/v1/{table}"
        self.api_key = api_key
        self.timeout = timeout
        self.verify_ssl = verify_ssl
        self.session = requests.Session()
        self.session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {api_key}",
            "Content-Type": "application/json",
        })
        if not verify_ssl:
            urllib3.disable_warnings(urllib3.exceptions.InsecureRequestWarning)

    def _request(self, method: str, **kwargs) -> requests.Response:
        try:
            response = self.session.request(
                method,
                self.endpoint,
                timeout=self.timeout,
                verify=self.verify_ssl,
                **kwargs
            )
            response.raise_for_status()
            return response

        except requests.exceptions.Timeout as e:
            logger.error(f"Store request timeout: {e}")
            raise DatabaseError(
                f"Analysis store did not respond within {self.timeout}s",
                details={"endpoint": self.endpoint}
            )

        except requests.exceptions.HTTPError as e:
            logger.error(f"Store HTTP error: {e}")
            raise DatabaseError(
                f"Analysis store returned HTTP error: {e}",
                details={
                    "endpoint": self.endpoint,
                    "status_code": getattr(e.response, "status_code", None),
                    "response_text": getattr(e.response, "text", None),
                }
            )

        except requests.exceptions.RequestException as e:
            logger.error(f"Store request failed: {e}")
            raise DatabaseError(
                f"Failed to connect to analysis store: {e}",
                details={"endpoint": self.endpoint}
            )

    def insert(self, record: NewAnalysisRecord) -> str:
        payload = {
            "file_name": record.file_name,
            "account_name": record.account_name,
            "balance": record.balance,
            "analysis": record.analysis.to_wire(),
        }
        response = self._request(
            "POST",
            json=payload,
            headers={"Prefer": "return=representation"},
        )
        try:
            rows = response.json()
            analysis_id = str(rows[0]["id"] if isinstance(rows, list) else rows["id"])
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise DatabaseError(
                "Analysis store did not return the inserted record",
                details={"error": str(e), "response_text": response.text}
            )
        logger.info(f"Stored analysis {analysis_id} for account '{record.account_name}'")
        return analysis_id

    def list_analyses(self, account_name: Optional[str] = None) -> List[StoredAnalysis]:
        params = {"select": "*", "order": "created_at.desc"}
        if account_name:
            params["account_name"] = f"eq.{account_name}"
        response = self._request("GET", params=params)
        try:
            rows = response.json()
        except ValueError as e:
            raise DatabaseError(
                "Analysis store returned invalid JSON",
                details={"error": str(e)}
            )
        if not isinstance(rows, list):
            raise DatabaseError("Analysis store returned an unexpected payload")
        return [row_to_analysis(row) for row in rows]

    def delete(self, analysis_id: str) -> None:
        self._request("DELETE", params={"id": f"eq.{analysis_id}"})
        logger.info(f"Deleted analysis {analysis_id}")


def create_store(settings: Settings) -> AnalysisStore:
    """
    Build the configured store backend.

    Raises:
        ConfigurationError: If the backend's settings are missing
    """
    settings.validate_for_store()
    if settings.database_backend == "rest":
        return RestAnalysisStore(
            settings.database_url,
            settings.database_key,
            table=settings.database_table,
            verify_ssl=settings.verify_ssl,
        )
    return SQLiteAnalysisStore(settings.database_path)


# Global store instance
_store: Optional[AnalysisStore] = None


def get_store(settings: Optional[Settings] = None) -> AnalysisStore:
    global _store
    if _store is None:
        _store = create_store(settings or get_settings())
    return _store


def reset_store() -> None:
    """Reset store singleton (useful for testing)."""
    global _store
    _store = None
