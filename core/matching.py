"""
Fuzzy matching of AI-coined category names onto the taxonomy.
Uses exact, per-part and Levenshtein similarity matching.
"""
from typing import Iterable, Optional

import Levenshtein

from core.logger import setup_logger

logger = setup_logger(__name__)

DEFAULT_MATCH_THRESHOLD = 0.85


def normalize_string(text: Optional[str]) -> str:
    """
    Normalize string for matching: lowercase, trim, remove extra spaces.

    Args:
        text: Input string

    Returns:
        Normalized string
    """
    if not text or not isinstance(text, str):
        return ""

    return " ".join(text.lower().strip().split())


def calculate_similarity(s1: str, s2: str) -> float:
    """
    Calculate Levenshtein similarity ratio between two strings.

    Args:
        s1: First string
        s2: Second string

    Returns:
        Similarity score (0.0 to 1.0)
    """
    s1_norm = normalize_string(s1)
    s2_norm = normalize_string(s2)

    if not s1_norm or not s2_norm:
        return 0.0

    return Levenshtein.ratio(s1_norm, s2_norm)


def singularize(text: str) -> str:
    """Crude singular form of each word: "groceries" -> "grocery", "fees" -> "fee"."""
    words = []
    for word in text.split():
        if word.endswith("ies") and len(word) > 4:
            word = word[:-3] + "y"
        elif word.endswith("s") and not word.endswith("ss") and len(word) > 3:
            word = word[:-1]
        words.append(word)
    return " ".join(words)


def _candidate_parts(candidate: str) -> list:
    # "Rent/Mortgage" is matched by "Rent" and by "Mortgage"
    return [singularize(normalize_string(part)) for part in candidate.split("/") if part.strip()]


def match_category(
    name: Optional[str],
    candidates: Iterable[str],
    threshold: Optional[float] = None
) -> Optional[str]:
    """
    Find the taxonomy category a free-form category name refers to.

    Args:
        name: Category name returned by the AI
        candidates: Taxonomy category names
        threshold: Minimum similarity for a fuzzy match

    Returns:
        The matching candidate spelled as in the taxonomy, or None
    """
    threshold = DEFAULT_MATCH_THRESHOLD if threshold is None else threshold
    name_norm = normalize_string(name)
    if not name_norm:
        return None

    candidates = list(candidates)

    name_singular = singularize(name_norm)
    for candidate in candidates:
        if singularize(normalize_string(candidate)) == name_singular:
            return candidate

    for candidate in candidates:
        if name_singular in _candidate_parts(candidate):
            return candidate

    best_match = None
    best_score = 0.0
    for candidate in candidates:
        score = calculate_similarity(name_norm, candidate)
        if score > best_score:
            best_match, best_score = candidate, score

    if best_match is not None and best_score >= threshold:
        logger.debug(f"Category '{name}' matched '{best_match}' (score {best_score:.2f})")
        return best_match

    return None
