"""
Bank statement document parsing.
Extracts plain text from uploaded PDF statements.
"""
import io
from typing import Optional

import pdfplumber

from core.exceptions import DocumentExtractionError, InputError
from core.logger import setup_logger

logger = setup_logger(__name__)

PDF_MAGIC = b"%PDF"
SUPPORTED_EXTENSIONS = (".pdf",)


def validate_file_extension(filename: Optional[str]) -> None:
    """
    Validate file has correct extension.

    Args:
        filename: Name of file to validate

    Raises:
        InputError: If file extension is invalid
    """
    if not filename or not filename.lower().endswith(SUPPORTED_EXTENSIONS):
        raise InputError(
            f"Invalid file type: {filename}. Only PDF statements are supported.",
            details={"filename": filename}
        )


def extract_text(content: bytes) -> str:
    """
    Extract text from all pages of a PDF document.

    Args:
        content: Raw document bytes

    Returns:
        Page texts joined by newlines

    Raises:
        DocumentExtractionError: If the document is not a readable PDF or has no text
    """
    if not content:
        raise DocumentExtractionError("Uploaded document is empty")

    if not content.lstrip()[:4].startswith(PDF_MAGIC):
        raise DocumentExtractionError(
            "Uploaded document is not a PDF",
            details={"header": content[:8].hex()}
        )

    try:
        with pdfplumber.open(io.BytesIO(content)) as pdf:
            page_texts = [page.extract_text() or "" for page in pdf.pages]
    except Exception as e:
        logger.error(f"Failed to read PDF: {e}", exc_info=True)
        raise DocumentExtractionError(
            "Failed to read PDF document",
            details={"error": str(e)}
        )

    text = "\n".join(page_texts).strip()
    if not text:
        raise DocumentExtractionError(
            "No extractable text found in document (scanned statements are not supported)",
            details={"pages": len(page_texts)}
        )

    logger.info(f"Extracted {len(text)} characters from {len(page_texts)} pages")
    return text
