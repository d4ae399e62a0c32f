"""Learn payee -> category preferences from already-categorized history.

The patterns are a cheap, explainable prior: callers consult them before
paying for a model call, and the categorizer embeds them in its prompt.
"""

from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from .models import CategoryRecord, PayeePattern, TransactionRecord
from .normalizers import pattern_key


@dataclass(slots=True)
class _PayeeTally:
    original_name: str
    # category_id -> count, insertion ordered
    counts: dict[str, int] = field(default_factory=dict)


def build_payee_patterns(
    transactions: Iterable[TransactionRecord],
    categories: Iterable[CategoryRecord],
) -> list[PayeePattern]:
    """Return one pattern per normalized payee, most frequent first.

    Only non-deleted transactions with both a payee name and a category
    contribute. The dominant category wins with ``confidence = top / total``;
    on equal counts the category seen first wins. Payees whose dominant
    category is not in ``categories`` are dropped as stale.
    """

    category_names = {c.id: c.name for c in categories}

    tallies: dict[str, _PayeeTally] = {}
    for tx in transactions:
        if tx.deleted or not tx.category_id or not tx.payee_name:
            continue
        key = pattern_key(tx.payee_name)
        if not key:
            continue
        tally = tallies.get(key)
        if tally is None:
            tally = tallies[key] = _PayeeTally(original_name=tx.payee_name)
        tally.counts[tx.category_id] = tally.counts.get(tx.category_id, 0) + 1

    patterns: list[PayeePattern] = []
    for key, tally in tallies.items():
        top_id, top_count = None, 0
        for category_id, count in tally.counts.items():
            if count > top_count:
                top_id, top_count = category_id, count
        if top_id is None:
            continue

        category_name = category_names.get(top_id)
        if category_name is None:
            continue

        patterns.append(
            PayeePattern(
                payee_name=tally.original_name,
                normalized_name=key,
                category_id=top_id,
                category_name=category_name,
                occurrences=top_count,
                confidence=top_count / sum(tally.counts.values()),
            )
        )

    return sorted(patterns, key=lambda p: p.occurrences, reverse=True)


def find_matching_patterns(payee_name: str, patterns: Sequence[PayeePattern]) -> list[PayeePattern]:
    """Return patterns whose key equals, contains, or is contained in ``payee_name``'s key."""

    key = pattern_key(payee_name)
    if not key:
        return []
    return [
        p
        for p in patterns
        if p.normalized_name == key or key in p.normalized_name or p.normalized_name in key
    ]


def format_patterns_for_prompt(patterns: Sequence[PayeePattern], limit: int = 50) -> str:
    """Render the first ``limit`` patterns as one bullet line each."""

    return "\n".join(
        f'- "{p.payee_name}" → {p.category_name} '
        f"({math.floor(p.confidence * 100 + 0.5)}% of {p.occurrences} txns)"
        for p in patterns[:limit]
    )


__all__ = [
    "build_payee_patterns",
    "find_matching_patterns",
    "format_patterns_for_prompt",
]
