"""
Statement categorization using the AI capability.
Prompt -> AI call -> normalization. No retries: a bad reply fails the request.
"""
from typing import Optional, Protocol

from core.logger import setup_logger
from core.normalize import normalize_response
from core.schema import AnalysisResult
from core.taxonomy import DEFAULT_TAXONOMY, Taxonomy
from llm.client import get_client
from llm.prompts import MAX_STATEMENT_CHARS, SYSTEM_PROMPT, build_categorization_prompt

logger = setup_logger(__name__)


class CompletionClient(Protocol):
    def complete(self, prompt: str, system_prompt: Optional[str] = None, temperature: float = 0.1) -> str:
        ...


def categorize_statement(
    text: str,
    client: Optional[CompletionClient] = None,
    taxonomy: Taxonomy = DEFAULT_TAXONOMY,
    max_chars: int = MAX_STATEMENT_CHARS,
    match_threshold: Optional[float] = None,
    temperature: float = 0.1,
) -> AnalysisResult:
    """
    Categorize a statement's transactions with the AI capability.

    Args:
        text: Extracted statement text
        client: Completion client (defaults to the configured OpenAI client)
        taxonomy: Category taxonomy for prompting and normalization
        max_chars: Character budget for the statement text
        match_threshold: Fuzzy match threshold for category names
        temperature: LLM temperature (0.0-1.0)

    Returns:
        Normalized AnalysisResult

    Raises:
        LLMError: If the AI call fails
        ExtractionError: If the reply cannot be normalized
    """
    prompt = build_categorization_prompt(text, taxonomy=taxonomy, max_chars=max_chars)
    client = client or get_client()

    logger.info(f"Requesting categorization ({len(prompt)} prompt characters)")
    raw_reply = client.complete(prompt, system_prompt=SYSTEM_PROMPT, temperature=temperature)

    result = normalize_response(raw_reply, taxonomy=taxonomy, match_threshold=match_threshold)
    logger.info(
        f"Categorized statement: income {result.income.total:.2f}, "
        f"expenses {result.expenses.total:.2f}, period {result.summary.start_date}..{result.summary.end_date}"
    )
    return result
