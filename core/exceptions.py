"""
Custom exceptions for the statement analysis pipeline.

Every error carries an HTTP status code so the API layer can map it
to a single-field error response.
"""
from typing import Any, Dict, Optional


class StatementAnalyzerError(Exception):
    """Base exception for all statement analyzer errors."""

    status_code: int = 500

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        """
        Initialize exception.
        
        Args:
            message: Error message
            details: Additional error details
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InputError(StatementAnalyzerError):
    """Raised when the caller omits the document or the account label."""
    status_code = 400


class ConfigurationError(StatementAnalyzerError):
    """Raised when a required credential or endpoint is not configured."""
    status_code = 500


class ExtractionError(StatementAnalyzerError):
    """Raised when a statement cannot be turned into an analysis result."""
    status_code = 422
    reason = "ExtractionFailed"


class DocumentExtractionError(ExtractionError):
    """Raised when text cannot be extracted from the uploaded document."""
    reason = "DocumentUnreadable"


class MalformedResponseError(ExtractionError):
    """Raised when the AI reply cannot be parsed as a JSON object."""
    reason = "MalformedResponse"


class InvalidStructureError(ExtractionError):
    """Raised when the normalized reply lacks income, expenses or summary."""
    reason = "InvalidStructure"


class UpstreamError(StatementAnalyzerError):
    """Raised when an external service reports a failure."""
    status_code = 502


class LLMError(UpstreamError):
    """Raised when the AI categorization call fails."""
    pass


class DatabaseError(UpstreamError):
    """Raised when the analysis store reports a failure."""
    pass


class ExportError(StatementAnalyzerError):
    """Raised when history export fails."""
    pass
