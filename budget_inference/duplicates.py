"""Near-duplicate payee detection.

Bank imports tend to create several payee records for one merchant
("AMAZON", "Amazon", "Amazon US", "Amazn"). This module clusters payee rules
by display-name similarity so the user can merge them.

Scoring between two normalized names (see
:func:`~budget_inference.normalizers.normalize_for_comparison`):

- equal names score ``1.0``;
- a prefix relation scores ``0.9`` when the shorter name is longer than
  ``MIN_PREFIX_LEN`` characters and covers more than half of the longer one;
- otherwise the Levenshtein ratio counts only above ``MIN_EDIT_RATIO``.

With these guards ``"ABC"`` and ``"ABC Corp"`` are not
considered duplicates.
"""

from __future__ import annotations

from collections.abc import Iterable

from rapidfuzz.distance import Levenshtein

from .models import DuplicateGroup, PayeeRecord
from .normalizers import normalize_for_comparison

EXACT_SCORE: float = 1.0
PREFIX_SCORE: float = 0.9
MIN_PREFIX_LEN: int = 3
MIN_PREFIX_COVERAGE: float = 0.5
MIN_EDIT_RATIO: float = 0.85


def levenshtein_ratio(a: str, b: str) -> float:
    """Return ``1 - distance / max(len(a), len(b))`` (``1.0`` for two empty strings)."""

    longest = max(len(a), len(b))
    if longest == 0:
        return 1.0
    return 1.0 - Levenshtein.distance(a, b) / longest


def name_similarity(norm_a: str, norm_b: str) -> float:
    """Score two already-normalized names; ``0.0`` means unrelated."""

    if not norm_a or not norm_b:
        return 0.0
    if norm_a == norm_b:
        return EXACT_SCORE

    shorter, longer = sorted((norm_a, norm_b), key=len)
    if longer.startswith(shorter):
        if len(shorter) > MIN_PREFIX_LEN and len(shorter) / len(longer) > MIN_PREFIX_COVERAGE:
            return PREFIX_SCORE

    ratio = levenshtein_ratio(norm_a, norm_b)
    return ratio if ratio > MIN_EDIT_RATIO else 0.0


def pair_similarity(a: PayeeRecord, b: PayeeRecord) -> float:
    """Score two payee rules by display name.

    Records already merged into another payee never relate to anything.
    """

    if a.duplicate_of_payee_id or b.duplicate_of_payee_id:
        return 0.0
    return name_similarity(
        normalize_for_comparison(a.display_name),
        normalize_for_comparison(b.display_name),
    )


def find_duplicate_groups(payees: Iterable[PayeeRecord]) -> list[DuplicateGroup]:
    """Cluster payee rules that look like variants of one another.

    The most used payee (highest ``transaction_count``) of a cluster becomes
    its primary; ties keep input order. Every payee lands in at most one
    group. Groups are returned with the largest duplicate count first.
    """

    candidates = [p for p in payees if not p.duplicate_of_payee_id]
    ranked = sorted(candidates, key=lambda p: p.transaction_count, reverse=True)
    normalized = {p.payee_id: normalize_for_comparison(p.display_name) for p in ranked}

    groups: list[DuplicateGroup] = []
    processed: set[str] = set()

    for payee in ranked:
        if payee.payee_id in processed:
            continue

        matches: list[tuple[PayeeRecord, float]] = []
        for other in ranked:
            if other.payee_id == payee.payee_id or other.payee_id in processed:
                continue
            score = name_similarity(normalized[payee.payee_id], normalized[other.payee_id])
            if score > 0:
                matches.append((other, score))

        if not matches:
            continue

        processed.add(payee.payee_id)
        processed.update(other.payee_id for other, _ in matches)
        groups.append(
            DuplicateGroup(
                primary=payee,
                duplicates=tuple(other for other, _ in matches),
                similarity=sum(score for _, score in matches) / len(matches),
            )
        )

    return sorted(groups, key=lambda g: len(g.duplicates), reverse=True)


def duplicate_group_count(payees: Iterable[PayeeRecord]) -> int:
    return len(find_duplicate_groups(payees))


__all__ = [
    "duplicate_group_count",
    "find_duplicate_groups",
    "levenshtein_ratio",
    "name_similarity",
    "pair_similarity",
]
