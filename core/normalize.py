"""
Normalization of AI replies into the canonical AnalysisResult.

The AI capability returns best-effort text: usually a JSON object, sometimes
wrapped in markdown fences or surrounded by prose, in one of two shapes:

- canonical: ``income.total``, ``income.categories[]``, ``summary.netFlow``...
- flat summary: ``income_summary``/``expense_summary`` mappings of
  category name -> amount with a distinguished total key, plus top-level
  ``net_flow``, ``statement_period`` and ``balance``.

The reply is parsed, its shape detected, then mapped onto the canonical
model through a single defaulting pass. Anything that cannot be mapped
raises an ExtractionError subclass; no partial result is ever returned.
"""
import json
import math
import re
from dataclasses import dataclass
from typing import Annotated, Any, Callable, Dict, List, Literal, Optional, Tuple, Union

import pandas as pd
from pydantic import BaseModel, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from core.exceptions import InvalidStructureError, MalformedResponseError
from core.logger import preview_text, setup_logger
from core.matching import match_category, normalize_string
from core.schema import (
    NOT_AVAILABLE,
    AnalysisResult,
    CategoryAmount,
    MoneyGroup,
    StatementSummary,
)
from core.taxonomy import Taxonomy

logger = setup_logger(__name__)

CONSISTENCY_TOLERANCE = 0.01

FENCE_RE = re.compile(r"```[A-Za-z0-9_-]*[ \t]*\n?(.*?)```", re.DOTALL)
ISO_DATE_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:[T ][\d:.]+(?:Z|[+-]\d{2}:?\d{2})?)?$")
NUMBER_RE = re.compile(
    r"^([+-])?\s*((?:\d{1,3}(?:[, ]\d{3})+|\d+)(?:\.\d*)?|\.\d+)([eE][+-]?\d+)?\s*(-)?$"
)
CURRENCY_SYMBOLS = "$€£¥₹₸₽"
CURRENCY_CODE_RE = re.compile(r"^[A-Z]{3}\s*|\s*[A-Z]{3}$")

# Every accepted spelling has a day and an unambiguous month position
DATE_FORMATS = (
    "%Y/%m/%d",
    "%B %d, %Y",
    "%b %d, %Y",
    "%B %d %Y",
    "%b %d %Y",
    "%d %B %Y",
    "%d %b %Y",
    "%d-%b-%Y",
)

FLAT_INCOME_KEYS = ("income_summary", "incomeSummary")
FLAT_EXPENSE_KEYS = ("expense_summary", "expenses_summary", "expenseSummary", "expensesSummary")
PERIOD_KEYS = ("statement_period", "statementPeriod", "period")
INCOME_TOTAL_KEYS = ("Total Income", "Income Total")
EXPENSE_TOTAL_KEYS = ("Total Expenses", "Total Expense", "Expenses Total", "Expense Total")
CATEGORY_NAME_KEYS = ("name", "category")
CATEGORY_AMOUNT_KEYS = ("amount", "total", "value")


# ---------------------------------------------------------------------------
# Value coercion
# ---------------------------------------------------------------------------

def coerce_number(value: Any) -> Optional[float]:
    """
    Convert a numeric-looking value to float.

    Accepts an optional leading sign or trailing minus ("50.00-"),
    comma or space thousands separators, a decimal part and an exponent.
    Currency symbols and a leading or trailing ISO currency code are ignored;
    "(12.50)" is negative. Anything else (e.g. "1.234,56") is not a number.

    Args:
        value: Raw value from the AI reply

    Returns:
        Float value or None if not numeric
    """
    if value is None or isinstance(value, bool):
        return None

    if isinstance(value, (int, float)):
        result = float(value)
        return result if math.isfinite(result) else None

    if not isinstance(value, str):
        return None

    amount_str = value.replace("\xa0", " ").strip()
    negative = amount_str.startswith("(") and amount_str.endswith(")")
    if negative:
        amount_str = amount_str[1:-1]

    for symbol in CURRENCY_SYMBOLS:
        amount_str = amount_str.replace(symbol, "")
    amount_str = CURRENCY_CODE_RE.sub("", amount_str.strip()).strip()

    match = NUMBER_RE.match(amount_str)
    if not match:
        logger.debug(f"Failed to parse amount: '{value}'")
        return None

    sign, body, exponent, trailing_minus = match.groups()
    if sign and trailing_minus:
        return None

    result = float(body.replace(",", "").replace(" ", "") + (exponent or ""))
    if not math.isfinite(result):
        return None

    if negative or sign == "-" or trailing_minus:
        return -abs(result)
    return result


def coerce_text(value: Any) -> Optional[str]:
    """Convert a scalar to a stripped string, None if empty or not scalar."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = str(value).strip()
    return text or None


def coerce_date(value: Any) -> Optional[str]:
    """
    Normalize a date to YYYY-MM-DD.

    Only complete dates are accepted: ISO dates (optionally followed by a
    time) and the DATE_FORMATS spellings, which all carry a day and either
    a named month or a leading year. Partial dates ("January 2024") and numeric day/month orders
    ("01/02/2024") are rejected.

    Args:
        value: Raw date value

    Returns:
        ISO date string or None if the value is not a complete date
    """
    text = coerce_text(value)
    if text is None or text.upper() == NOT_AVAILABLE:
        return None

    iso = ISO_DATE_RE.match(text)
    candidates = [(iso.group(1), "%Y-%m-%d")] if iso else [(text, fmt) for fmt in DATE_FORMATS]

    for candidate, fmt in candidates:
        try:
            parsed = pd.to_datetime(candidate, format=fmt, errors="coerce")
        except (ValueError, TypeError, OverflowError):
            continue
        if not pd.isna(parsed):
            return parsed.strftime("%Y-%m-%d")

    return None


# ---------------------------------------------------------------------------
# Defaulting schema
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class FieldSpec:
    """One summary field: canonical name, accepted spellings, coercion and default."""
    name: str
    aliases: Tuple[str, ...]
    coerce: Callable[[Any], Any]
    default: Any


SUMMARY_SCHEMA: Tuple[FieldSpec, ...] = (
    FieldSpec("net_flow", ("netFlow", "net_flow", "netflow"), coerce_number, 0.0),
    FieldSpec("start_date", ("startDate", "start_date", "start"), coerce_date, NOT_AVAILABLE),
    FieldSpec("end_date", ("endDate", "end_date", "end"), coerce_date, NOT_AVAILABLE),
    FieldSpec(
        "account",
        ("account", "account_name", "accountName", "account_number", "accountNumber"),
        coerce_text,
        NOT_AVAILABLE,
    ),
    FieldSpec(
        "balance",
        ("balance", "closing_balance", "closingBalance", "ending_balance", "endingBalance"),
        coerce_number,
        0.0,
    ),
)


def apply_defaults(sources: List[Dict[str, Any]], schema: Tuple[FieldSpec, ...]) -> Dict[str, Any]:
    """
    Resolve every field of a schema from an ordered list of source mappings.
    The first source holding a coercible value for any alias wins.

    Args:
        sources: Mappings searched in order
        schema: Field specifications

    Returns:
        Dictionary keyed by canonical field name
    """
    resolved: Dict[str, Any] = {}
    for spec in schema:
        value = None
        for source in sources:
            for alias in spec.aliases:
                if alias in source:
                    value = spec.coerce(source[alias])
                    if value is not None:
                        break
            if value is not None:
                break
        resolved[spec.name] = spec.default if value is None else value
    return resolved


# ---------------------------------------------------------------------------
# Reply shapes
# ---------------------------------------------------------------------------

class CanonicalReply(BaseModel):
    """Reply already shaped like AnalysisResult."""
    kind: Literal["canonical"] = "canonical"
    income: Optional[Dict[str, Any]] = None
    expenses: Optional[Dict[str, Any]] = None
    summary: Optional[Dict[str, Any]] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


class FlatSummaryReply(BaseModel):
    """Reply with per-side category -> amount mappings and top-level summary fields."""
    kind: Literal["flat_summary"] = "flat_summary"
    income_summary: Optional[Dict[str, Any]] = None
    expense_summary: Optional[Dict[str, Any]] = None
    payload: Dict[str, Any] = Field(default_factory=dict)


RawReply = Annotated[Union[CanonicalReply, FlatSummaryReply], Field(discriminator="kind")]
_raw_reply_adapter = TypeAdapter(RawReply)


def _first_present(payload: Dict[str, Any], keys: Tuple[str, ...]) -> Any:
    for key in keys:
        if key in payload:
            return payload[key]
    return None


def _first_json_object(text: str) -> Optional[str]:
    """Slice of text holding the first decodable JSON object, scanning each "{"."""
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, end = decoder.raw_decode(text, start)
            if isinstance(obj, dict):
                return text[start:end]
        except json.JSONDecodeError:
            # Brace in prose; the object starts later
            pass
        start = text.find("{", start + 1)
    return None


def strip_noise(raw_text: Optional[str]) -> str:
    """
    Remove markdown fences and surrounding prose from an AI reply.
    Prose may itself contain braces, so the first "{" that opens a valid
    JSON object is used rather than the outermost pair of braces.

    Args:
        raw_text: Raw reply text

    Returns:
        Text expected to hold a single JSON object
    """
    text = (raw_text or "").strip()

    fenced = FENCE_RE.search(text)
    if fenced:
        text = fenced.group(1).strip()

    try:
        json.loads(text)
        return text
    except json.JSONDecodeError:
        pass

    found = _first_json_object(text)
    return found if found is not None else text


def parse_reply(raw_text: Optional[str]) -> Dict[str, Any]:
    """
    Parse an AI reply into a JSON object.

    Raises:
        MalformedResponseError: If the text is not a JSON object
    """
    text = strip_noise(raw_text)
    if not text:
        raise MalformedResponseError("AI response was empty")

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as e:
        logger.error(f"AI response is not valid JSON: {e}")
        raise MalformedResponseError(
            "AI response could not be parsed as JSON",
            details={"error": str(e), "preview": preview_text(raw_text or "", 200)}
        )

    if not isinstance(payload, dict):
        raise MalformedResponseError(
            "AI response is not a JSON object",
            details={"type": type(payload).__name__}
        )
    return payload


def detect_shape(payload: Dict[str, Any]) -> Union[CanonicalReply, FlatSummaryReply]:
    """
    Classify a parsed reply as canonical or flat-summary.

    Raises:
        InvalidStructureError: If the reply matches neither shape
    """
    if any(key in payload for key in FLAT_INCOME_KEYS + FLAT_EXPENSE_KEYS):
        candidate = {
            "kind": "flat_summary",
            "income_summary": _first_present(payload, FLAT_INCOME_KEYS),
            "expense_summary": _first_present(payload, FLAT_EXPENSE_KEYS),
            "payload": payload,
        }
    elif any(key in payload for key in ("income", "expenses", "summary")):
        candidate = {
            "kind": "canonical",
            "income": payload.get("income"),
            "expenses": payload.get("expenses"),
            "summary": payload.get("summary"),
            "payload": payload,
        }
    else:
        raise InvalidStructureError(
            "AI response has neither income/expenses/summary nor summary mappings",
            details={"keys": list(payload.keys())}
        )

    try:
        return _raw_reply_adapter.validate_python(candidate)
    except PydanticValidationError as e:
        raise InvalidStructureError(
            "AI response sections have unexpected types",
            details={"error": str(e)}
        )


# ---------------------------------------------------------------------------
# Group mapping
# ---------------------------------------------------------------------------

def _category_pairs_from_list(items: Any) -> List[Tuple[str, float]]:
    if isinstance(items, dict):
        return _category_pairs_from_mapping(items, total_keys=())[1]

    pairs: List[Tuple[str, float]] = []
    for item in items if isinstance(items, list) else []:
        if not isinstance(item, dict):
            logger.warning(f"Skipping non-object category entry: {item!r}")
            continue
        name = coerce_text(_first_present(item, CATEGORY_NAME_KEYS))
        if name is None:
            logger.warning("Skipping category entry without a name")
            continue
        amount = coerce_number(_first_present(item, CATEGORY_AMOUNT_KEYS))
        pairs.append((name, 0.0 if amount is None else amount))
    return pairs


def _is_total_key(key: str, total_keys: Tuple[str, ...]) -> bool:
    key_norm = normalize_string(str(key).replace("_", " "))
    accepted = {normalize_string(total_key.replace("_", " ")) for total_key in total_keys}
    return key_norm == "total" or key_norm in accepted


def _category_pairs_from_mapping(
    mapping: Dict[str, Any],
    total_keys: Tuple[str, ...]
) -> Tuple[Optional[float], List[Tuple[str, float]]]:
    total = None
    pairs: List[Tuple[str, float]] = []
    for key, value in mapping.items():
        if _is_total_key(key, total_keys):
            total = coerce_number(value)
            continue
        name = coerce_text(key)
        if name is None:
            continue
        if isinstance(value, (dict, list)):
            logger.warning(f"Skipping nested value for category '{name}'")
            continue
        amount = coerce_number(value)
        pairs.append((name, 0.0 if amount is None else amount))
    return total, pairs


def _reconcile_categories(
    pairs: List[Tuple[str, float]],
    taxonomy_names: List[str],
    fallback: Optional[str],
    threshold: Optional[float],
) -> List[Tuple[str, float]]:
    # Rewrite names onto the taxonomy, merge duplicates, then add empty categories.
    merged: Dict[str, float] = {}
    for name, amount in pairs:
        target = match_category(name, taxonomy_names, threshold)
        if target is None:
            target = fallback or name
            if fallback:
                logger.debug(f"Income category '{name}' folded into '{fallback}'")
        merged[target] = merged.get(target, 0.0) + amount

    for name in taxonomy_names:
        merged.setdefault(name, 0.0)

    return list(merged.items())


def build_money_group(
    total: Optional[float],
    pairs: List[Tuple[str, float]],
    side: str,
    taxonomy_names: Optional[List[str]] = None,
    fallback: Optional[str] = None,
    threshold: Optional[float] = None,
) -> MoneyGroup:
    """
    Build a MoneyGroup from a total and (name, amount) pairs.

    Args:
        total: Upstream total (None defaults to 0)
        pairs: Category names and amounts in reply order
        side: "income" or "expenses", used for logging
        taxonomy_names: When given, every taxonomy category is present in the result
        fallback: Category receiving names that match no taxonomy entry
        threshold: Fuzzy match threshold

    Returns:
        MoneyGroup with non-negative category amounts
    """
    cleaned: List[Tuple[str, float]] = []
    for name, amount in pairs:
        if amount < 0:
            logger.warning(f"Negative {side} amount for '{name}': {amount}, using absolute value")
            amount = abs(amount)
        cleaned.append((name, amount))

    if taxonomy_names:
        cleaned = _reconcile_categories(cleaned, taxonomy_names, fallback, threshold)

    return MoneyGroup(
        total=0.0 if total is None else total,
        categories=[CategoryAmount(name=name, amount=amount) for name, amount in cleaned],
    )


def _summary_sources(primary: Optional[Dict[str, Any]], fields: Dict[str, Any]) -> List[Dict[str, Any]]:
    sources: List[Dict[str, Any]] = []
    for container in (primary, fields):
        if not isinstance(container, dict):
            continue
        sources.append(container)
        for key in PERIOD_KEYS:
            period = container.get(key)
            if isinstance(period, dict):
                sources.append(period)
    return sources


# ---------------------------------------------------------------------------
# Public entry points
# ---------------------------------------------------------------------------

def normalize_payload(
    payload: Dict[str, Any],
    taxonomy: Optional[Taxonomy] = None,
    match_threshold: Optional[float] = None,
) -> AnalysisResult:
    """
    Map a parsed reply onto AnalysisResult.

    Args:
        payload: Parsed JSON object
        taxonomy: When given, categories are reconciled with the taxonomy
        match_threshold: Fuzzy match threshold for reconciliation

    Returns:
        Structurally valid AnalysisResult

    Raises:
        InvalidStructureError: If income, expenses or summary cannot be built
    """
    reply = detect_shape(payload)
    logger.info(f"AI reply shape: {reply.kind}")

    income_names = taxonomy.income_categories if taxonomy else None
    expense_names = taxonomy.expense_categories if taxonomy else None
    income_fallback = taxonomy.income_fallback if taxonomy else None

    if isinstance(reply, FlatSummaryReply):
        income_source, expense_source = reply.income_summary, reply.expense_summary
        summary_source: Optional[Dict[str, Any]] = reply.payload.get("summary")
        if not isinstance(summary_source, dict):
            summary_source = {}
        income_keys = INCOME_TOTAL_KEYS + ((taxonomy.income_total_key,) if taxonomy else ())
        expense_keys = EXPENSE_TOTAL_KEYS + ((taxonomy.expense_total_key,) if taxonomy else ())

        missing = [
            name for name, section in (("income", income_source), ("expenses", expense_source))
            if section is None
        ]
        if missing:
            raise InvalidStructureError(
                f"AI response is missing required sections: {', '.join(missing)}",
                details={"missing": missing, "shape": reply.kind}
            )
        income_total, income_pairs = _category_pairs_from_mapping(income_source, income_keys)
        expense_total, expense_pairs = _category_pairs_from_mapping(expense_source, expense_keys)
    else:
        summary_source = reply.summary
        missing = [
            name for name, section in (
                ("income", reply.income), ("expenses", reply.expenses), ("summary", reply.summary)
            )
            if section is None
        ]
        if missing:
            raise InvalidStructureError(
                f"AI response is missing required sections: {', '.join(missing)}",
                details={"missing": missing, "shape": reply.kind}
            )
        income_total = coerce_number(reply.income.get("total"))
        income_pairs = _category_pairs_from_list(reply.income.get("categories"))
        expense_total = coerce_number(reply.expenses.get("total"))
        expense_pairs = _category_pairs_from_list(reply.expenses.get("categories"))

    try:
        income = build_money_group(
            income_total, income_pairs, "income",
            taxonomy_names=income_names, fallback=income_fallback, threshold=match_threshold,
        )
        expenses = build_money_group(
            expense_total, expense_pairs, "expenses",
            taxonomy_names=expense_names, threshold=match_threshold,
        )
        summary = StatementSummary(
            **apply_defaults(_summary_sources(summary_source, reply.payload), SUMMARY_SCHEMA)
        )
        result = AnalysisResult(income=income, expenses=expenses, summary=summary)
    except PydanticValidationError as e:
        raise InvalidStructureError(
            "Normalized analysis failed validation",
            details={"error": str(e)}
        )

    for warning in check_consistency(result):
        logger.warning(warning)

    return result


def normalize_response(
    raw_text: Optional[str],
    taxonomy: Optional[Taxonomy] = None,
    match_threshold: Optional[float] = None,
) -> AnalysisResult:
    """
    Turn a noisy AI reply into a valid AnalysisResult or fail explicitly.

    Args:
        raw_text: Reply text from the AI capability
        taxonomy: When given, categories are reconciled with the taxonomy
        match_threshold: Fuzzy match threshold for reconciliation

    Returns:
        Structurally valid AnalysisResult

    Raises:
        MalformedResponseError: If the reply is not a JSON object
        InvalidStructureError: If required sections are absent
    """
    payload = parse_reply(raw_text)
    return normalize_payload(payload, taxonomy=taxonomy, match_threshold=match_threshold)


def check_consistency(result: AnalysisResult, tolerance: float = CONSISTENCY_TOLERANCE) -> List[str]:
    """
    Soft internal-consistency checks. Totals are trusted as reported.

    Args:
        result: Normalized analysis
        tolerance: Allowed absolute difference

    Returns:
        Human-readable warnings, empty when consistent
    """
    warnings: List[str] = []

    for side, group in (("income", result.income), ("expenses", result.expenses)):
        if group.categories and abs(group.total - group.category_sum) > tolerance:
            warnings.append(
                f"{side} total {group.total:.2f} differs from category sum {group.category_sum:.2f}"
            )

    expected_net = result.income.total - result.expenses.total
    if abs(result.summary.net_flow - expected_net) > tolerance:
        warnings.append(
            f"netFlow {result.summary.net_flow:.2f} differs from income - expenses {expected_net:.2f}"
        )

    return warnings
