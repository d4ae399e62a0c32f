import pytest

from budget_inference import build_payee_patterns, find_matching_patterns, format_patterns_for_prompt
from budget_inference.models import PayeePattern
from tests.helpers.records import mk_category, mk_tx

CATEGORIES = [
    mk_category("cat-groceries", "Groceries"),
    mk_category("cat-dining", "Dining Out"),
    mk_category("cat-fuel", "Fuel"),
]


def test_dominant_category_and_confidence():
    txs = [
        mk_tx(-1000, payee="Whole Foods", category="cat-groceries"),
        mk_tx(-2000, payee="WHOLE FOODS", category="cat-groceries"),
        mk_tx(-3000, payee="Whole Foods!", category="cat-groceries"),
        mk_tx(-4000, payee="whole foods", category="cat-dining"),
    ]

    patterns = build_payee_patterns(txs, CATEGORIES)

    assert len(patterns) == 1
    p = patterns[0]
    assert p.payee_name == "Whole Foods"  # first-seen spelling
    assert p.normalized_name == "wholefoods"
    assert p.category_id == "cat-groceries"
    assert p.category_name == "Groceries"
    assert p.occurrences == 3
    assert p.confidence == pytest.approx(0.75)


def test_single_category_payee_has_full_confidence():
    txs = [mk_tx(-500, payee="Shell", category="cat-fuel") for _ in range(4)]

    (p,) = build_payee_patterns(txs, CATEGORIES)

    assert p.confidence == 1.0
    assert p.occurrences == 4


def test_tie_goes_to_first_seen_category():
    txs = [
        mk_tx(-1, payee="Costco", category="cat-dining"),
        mk_tx(-1, payee="Costco", category="cat-groceries"),
        mk_tx(-1, payee="Costco", category="cat-groceries"),
        mk_tx(-1, payee="Costco", category="cat-dining"),
    ]

    (p,) = build_payee_patterns(txs, CATEGORIES)

    assert p.category_id == "cat-dining"
    assert p.confidence == pytest.approx(0.5)


def test_skips_uncategorized_deleted_and_nameless():
    txs = [
        mk_tx(-1, payee="Cafe", category=None),
        mk_tx(-1, payee="Cafe", category="cat-dining", deleted=True),
        mk_tx(-1, payee=None, category="cat-dining"),
        mk_tx(-1, payee="***", category="cat-dining"),
    ]

    assert build_payee_patterns(txs, CATEGORIES) == []


def test_unknown_winning_category_is_dropped():
    txs = [
        mk_tx(-1, payee="Old Shop", category="cat-deleted"),
        mk_tx(-1, payee="Old Shop", category="cat-deleted"),
        mk_tx(-1, payee="Old Shop", category="cat-groceries"),
    ]

    assert build_payee_patterns(txs, CATEGORIES) == []


def test_sorted_by_occurrences_descending():
    txs = [mk_tx(-1, payee="A Shop", category="cat-groceries")]
    txs += [mk_tx(-1, payee="B Diner", category="cat-dining") for _ in range(3)]
    txs += [mk_tx(-1, payee="C Fuel", category="cat-fuel") for _ in range(2)]

    patterns = build_payee_patterns(txs, CATEGORIES)

    assert [p.occurrences for p in patterns] == [3, 2, 1]
    for p in patterns:
        assert 0.0 < p.confidence <= 1.0


def test_long_names_group_on_truncated_key():
    base = "Amazon Marketplace Seattle WA Reference"
    txs = [
        mk_tx(-1, payee=f"{base} 0001", category="cat-groceries"),
        mk_tx(-1, payee=f"{base} 0002", category="cat-groceries"),
    ]

    (p,) = build_payee_patterns(txs, CATEGORIES)

    assert len(p.normalized_name) == 30
    assert p.occurrences == 2


def _pattern(name: str, key: str, occurrences: int = 1, confidence: float = 1.0) -> PayeePattern:
    return PayeePattern(
        payee_name=name,
        normalized_name=key,
        category_id="cat-groceries",
        category_name="Groceries",
        occurrences=occurrences,
        confidence=confidence,
    )


def test_find_matching_patterns_uses_substring_both_ways():
    patterns = [
        _pattern("Rewe", "rewe"),
        _pattern("Rewe Markt GmbH", "rewemarktgmbh"),
        _pattern("Aldi", "aldi"),
    ]

    names = [p.payee_name for p in find_matching_patterns("REWE Markt", patterns)]

    assert names == ["Rewe", "Rewe Markt GmbH"]
    assert find_matching_patterns("", patterns) == []


def test_format_patterns_for_prompt():
    patterns = [_pattern("Rewe", "rewe", occurrences=8, confidence=0.875), _pattern("Aldi", "aldi")]

    text = format_patterns_for_prompt(patterns, limit=1)

    assert text == '- "Rewe" → Groceries (88% of 8 txns)'
    assert format_patterns_for_prompt([]) == ""
