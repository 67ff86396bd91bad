"""
Prompts for AI categorization of bank statements.
Builds the categorization instruction from the taxonomy and statement text.
"""
import json

from core.logger import setup_logger
from core.taxonomy import DEFAULT_TAXONOMY, Taxonomy

logger = setup_logger(__name__)

# Statement text beyond this many characters is dropped (prefix is kept).
MAX_STATEMENT_CHARS = 30000

SYSTEM_PROMPT = (
    "You are a meticulous financial analyst. You read bank statements and "
    "return structured JSON summaries. You never invent values."
)


def truncate_statement_text(text: str, max_chars: int = MAX_STATEMENT_CHARS) -> str:
    """
    Truncate statement text to a fixed character budget.
    The policy is a plain prefix cut so identical input always yields an identical prompt.

    Args:
        text: Extracted statement text
        max_chars: Character budget (0 disables truncation)

    Returns:
        The first `max_chars` characters of text
    """
    text = text or ""
    if max_chars and len(text) > max_chars:
        logger.info(f"Statement text truncated from {len(text)} to {max_chars} characters")
        return text[:max_chars]
    return text


def build_response_template(taxonomy: Taxonomy) -> str:
    """
    JSON template the AI must fill in, listing every taxonomy category.

    Args:
        taxonomy: Category taxonomy

    Returns:
        Pretty-printed JSON template
    """
    income_summary = {name: 0 for name in taxonomy.income_categories}
    income_summary[taxonomy.income_total_key] = 0

    expense_summary = {name: 0 for name in taxonomy.expense_categories}
    expense_summary[taxonomy.expense_total_key] = 0

    template = {
        "income_summary": income_summary,
        "expense_summary": expense_summary,
        "net_flow": 0,
        "statement_period": {"start_date": "YYYY-MM-DD", "end_date": "YYYY-MM-DD"},
        "account": "N/A",
        "balance": 0,
    }
    return json.dumps(template, indent=2)


def build_categorization_prompt(
    text: str,
    taxonomy: Taxonomy = DEFAULT_TAXONOMY,
    max_chars: int = MAX_STATEMENT_CHARS
) -> str:
    """
    Build the categorization instruction for one statement.

    Args:
        text: Extracted statement text
        taxonomy: Category taxonomy
        max_chars: Character budget for the statement text

    Returns:
        Complete instruction string including the statement text
    """
    statement_text = truncate_statement_text(text, max_chars)
    income_list = "\n".join(f"- {name}" for name in taxonomy.income_categories)
    expense_list = "\n".join(f"- {name}" for name in taxonomy.expense_categories)

    prompt = f"""Analyze the bank statement below and summarize its income and expenses.

**CLASSIFICATION RULES:**
1. Amounts in columns labeled debit, withdrawal or payment are EXPENSES.
2. Amounts in columns labeled credit, deposit or receipt are INCOME.
3. Sum the transactions of each category.

**INCOME CATEGORIES (closed list):**
{income_list}
Every income transaction MUST use one of these categories. If none fits, use "{taxonomy.income_fallback}".

**EXPENSE CATEGORIES:**
{expense_list}
Use these categories where they fit. If an expense fits none of them, you may create a new, short category name.

**OUTPUT RULES:**
1. Include EVERY category listed above, even when it has no transactions; use 0 for its amount.
2. "{taxonomy.income_total_key}" is the sum of all income; "{taxonomy.expense_total_key}" is the sum of all expenses.
3. "net_flow" is total income minus total expenses.
4. Find the field labeled "{taxonomy.balance_label}" and report it as a number in "balance".
5. Write all dates in YYYY-MM-DD format.
6. Use "N/A" for any text you cannot determine and 0 for any number you cannot determine. Never guess or fabricate values.
7. Return ONLY the JSON object below, filled in. No explanations, no markdown, no text before or after it.

**OUTPUT FORMAT:**
{build_response_template(taxonomy)}

**BANK STATEMENT TEXT:**
{statement_text}
"""
    return prompt
