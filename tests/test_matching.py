"""
Unit tests for category matching.
"""
import pytest

from core.matching import calculate_similarity, match_category, normalize_string, singularize
from core.taxonomy import DEFAULT_TAXONOMY

EXPENSES = DEFAULT_TAXONOMY.expense_categories


def test_normalize_string():
    assert normalize_string("  Dining   OUT ") == "dining out"
    assert normalize_string(None) == ""
    assert normalize_string(42) == ""


def test_singularize():
    assert singularize("groceries") == "grocery"
    assert singularize("subscriptions") == "subscription"
    assert singularize("gas") == "gas"
    assert singularize("business") == "business"


def test_similarity_bounds():
    assert calculate_similarity("Groceries", "groceries") == 1.0
    assert calculate_similarity("", "Groceries") == 0.0
    assert 0.0 < calculate_similarity("Grocerys", "Groceries") < 1.0


@pytest.mark.parametrize("name,expected", [
    ("Groceries", "Groceries"),
    ("groceries ", "Groceries"),
    ("Grocery", "Groceries"),
    ("Rent", "Rent/Mortgage"),
    ("mortgage", "Rent/Mortgage"),
    ("Subscription", "Subscriptions"),
    ("Utilites", "Utilities"),
    ("Pet Care", None),
    ("", None),
    (None, None),
])
def test_match_category(name, expected):
    assert match_category(name, EXPENSES) == expected


def test_threshold_controls_fuzzy_matches():
    assert match_category("Utilites", EXPENSES, threshold=1.0) is None
