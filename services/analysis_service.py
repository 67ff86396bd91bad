"""
Statement analysis service.
Encapsulates the analyze pipeline and the history operations.
"""
import asyncio
from functools import partial
from typing import Callable, List, Optional

from core.config import Settings, get_settings
from core.db import AnalysisStore, create_store
from core.exceptions import InputError
from core.exporters import create_output_filename, export_history_to_excel
from core.history import ALL_ACCOUNTS, DashboardView, build_dashboard, enumerate_accounts
from core.logger import preview_text, setup_logger
from core.parsing import extract_text
from core.schema import AnalysisResult, NewAnalysisRecord, StoredAnalysis
from core.taxonomy import DEFAULT_TAXONOMY, Taxonomy
from llm.classify import CompletionClient, categorize_statement
from llm.client import OpenAIClientWrapper

logger = setup_logger(__name__)


class StatementAnalysisService:
    """Service running statements through extraction, categorization and persistence."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[AnalysisStore] = None,
        client: Optional[CompletionClient] = None,
        extractor: Callable[[bytes], str] = extract_text,
        taxonomy: Taxonomy = DEFAULT_TAXONOMY,
    ):
        """
        Initialize the service.

        Collaborators left as None are built from settings on first use,
        after the configuration they need has been validated.
        """
        self.settings = settings or get_settings()
        self._store = store
        self._client = client
        self.extractor = extractor
        self.taxonomy = taxonomy

    @property
    def store(self) -> AnalysisStore:
        if self._store is None:
            self._store = create_store(self.settings)
        return self._store

    @property
    def client(self) -> CompletionClient:
        if self._client is None:
            self._client = OpenAIClientWrapper(self.settings)
        return self._client

    @staticmethod
    def validate_inputs(
        content: Optional[bytes],
        file_name: Optional[str],
        account_name: Optional[str]
    ) -> None:
        """
        Check caller-supplied inputs.

        Raises:
            InputError: If the document or the account label is missing
        """
        if not content:
            raise InputError("No statement file uploaded")
        if not account_name or not account_name.strip():
            raise InputError("Account name is required")

    def run_pipeline(self, content: bytes, file_name: str, account_name: str) -> AnalysisResult:
        """
        Run extraction -> categorization -> persistence synchronously.

        Args:
            content: Document bytes
            file_name: Original file name
            account_name: Account label chosen by the user

        Returns:
            The normalized AnalysisResult, already persisted

        Raises:
            StatementAnalyzerError: On the first failing stage; nothing is persisted
        """
        text = self.extractor(content)
        logger.debug(f"Extracted text preview: {preview_text(text)}")

        result = categorize_statement(
            text,
            client=self.client,
            taxonomy=self.taxonomy,
            max_chars=self.settings.max_statement_chars,
            match_threshold=self.settings.category_match_threshold,
        )

        # Persist only once normalization has fully succeeded
        record = NewAnalysisRecord(
            file_name=file_name,
            account_name=account_name,
            balance=result.summary.balance,
            analysis=result,
        )
        analysis_id = self.store.insert(record)
        logger.info(f"Analysis {analysis_id} saved for '{file_name}' ({account_name})")
        return result

    async def analyze(
        self,
        content: Optional[bytes],
        file_name: Optional[str],
        account_name: Optional[str]
    ) -> AnalysisResult:
        """
        Analyze one statement document.

        Args:
            content: Document bytes
            file_name: Original file name
            account_name: Account label chosen by the user

        Returns:
            Complete AnalysisResult
        """
        self.validate_inputs(content, file_name, account_name)
        account_name = account_name.strip()
        file_name = file_name or "statement.pdf"

        logger.info(f"Analyzing '{file_name}' for account '{account_name}' ({len(content)} bytes)")

        # Fail fast before any network call
        self.settings.validate_for_analysis()

        # Extraction, AI call and store insert all block; keep them off the event loop
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, partial(self.run_pipeline, content, file_name, account_name)
        )

    async def history(self, account_name: Optional[str] = None) -> List[StoredAnalysis]:
        """Stored analyses newest first, optionally for one account."""
        if account_name == ALL_ACCOUNTS:
            account_name = None
        self.settings.validate_for_store()
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self.store.list_analyses, account_name)

    async def delete(self, analysis_id: str) -> None:
        """Delete a stored analysis; unknown ids succeed."""
        if not analysis_id or not analysis_id.strip():
            raise InputError("Analysis id is required")
        self.settings.validate_for_store()
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self.store.delete, analysis_id)

    async def accounts(self) -> List[str]:
        """Account labels with the all-accounts entry first."""
        return enumerate_accounts(await self.history())

    async def dashboard(self, account: Optional[str] = None) -> DashboardView:
        """Series, latest pair and deltas for an account selection."""
        records = await self.history()
        return build_dashboard(records, account)

    async def export_history(self, account: Optional[str] = None) -> str:
        """
        Export history to Excel.

        Returns:
            Path of the created workbook
        """
        records = await self.history(account)
        output_path = create_output_filename(self.settings.temp_storage_path, account)
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, export_history_to_excel, records, output_path)
