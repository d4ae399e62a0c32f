"""Transfer detection between the user's own accounts.

An uncategorized outflow on one account and an uncategorized inflow of the
same absolute amount on another account, a few days apart, are most likely a
single movement of money rather than spending plus income.

Matching is a single greedy pass: amounts are bucketed, and within a bucket
each outflow (in encounter order) claims the best still-unclaimed inflow.
This is not a globally optimal assignment; an early outflow can take the
inflow a later outflow would have matched better. Downstream review screens
rely on this exact tie-breaking order.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from .logging_setup import get_logger
from .models import AccountRecord, TransactionRecord, TransferPair

# Pairs further apart than this are never proposed.
MAX_GAP_DAYS: int = 3

_logger = get_logger("budget_inference.transfers")


def transfer_confidence(a: TransactionRecord, b: TransactionRecord) -> float:
    """Return ``1 - 0.1 * days_apart``, or ``0.0`` beyond ``MAX_GAP_DAYS``.

    Symmetric in its arguments. A same-day pair scores exactly ``1.0``.
    """

    days = abs((a.date - b.date).days)
    if days > MAX_GAP_DAYS:
        return 0.0
    # 1.0, 0.9, 0.8, 0.7 as the nearest floats
    return (10 - days) / 10


def detect_transfers(
    transactions: Iterable[TransactionRecord],
    accounts: Iterable[AccountRecord],
) -> list[TransferPair]:
    """Pair uncategorized outflows with inflows on other accounts.

    Only non-deleted transactions without a category are candidates.
    Transactions on accounts missing from ``accounts`` are ignored. The
    result is sorted by confidence (descending); equal confidences keep
    bucket/outflow encounter order.
    """

    account_by_id = {a.id: a for a in accounts}

    # abs(amount) -> candidates in encounter order
    buckets: dict[int, list[TransactionRecord]] = {}
    skipped = 0
    for tx in transactions:
        if tx.deleted or tx.category_id:
            continue
        if tx.account_id not in account_by_id:
            skipped += 1
            continue
        buckets.setdefault(abs(tx.amount), []).append(tx)

    if skipped:
        _logger.debug("transfers:skip_unknown_account count=%d", skipped)

    pairs: list[TransferPair] = []
    used: set[str] = set()

    for candidates in buckets.values():
        if len(candidates) < 2:
            continue
        outflows = [tx for tx in candidates if tx.amount < 0]
        inflows = [tx for tx in candidates if tx.amount > 0]

        for outflow in outflows:
            if outflow.id in used:
                continue

            best: TransactionRecord | None = None
            best_confidence = 0.0
            for inflow in inflows:
                if inflow.id in used or inflow.id == outflow.id:
                    continue
                # Same-account reversals are refunds, not transfers.
                if inflow.account_id == outflow.account_id:
                    continue
                confidence = transfer_confidence(outflow, inflow)
                if confidence > best_confidence:
                    best, best_confidence = inflow, confidence

            if best is None:
                continue

            pairs.append(
                TransferPair(
                    outflow=outflow,
                    inflow=best,
                    from_account=account_by_id[outflow.account_id],
                    to_account=account_by_id[best.account_id],
                    confidence=best_confidence,
                )
            )
            used.add(outflow.id)
            used.add(best.id)

    # sorted() is stable, so ties keep encounter order
    return sorted(pairs, key=lambda p: p.confidence, reverse=True)


def find_transfer_pair(pairs: Sequence[TransferPair], transaction_id: str) -> TransferPair | None:
    """Return the pair that contains ``transaction_id`` on either side."""

    for pair in pairs:
        if transaction_id in (pair.outflow.id, pair.inflow.id):
            return pair
    return None


def other_transaction(pair: TransferPair, transaction_id: str) -> TransactionRecord:
    """Return the counterpart of ``transaction_id`` within ``pair``."""

    return pair.inflow if pair.outflow.id == transaction_id else pair.outflow


def is_transfer_transaction(pairs: Sequence[TransferPair], transaction_id: str) -> bool:
    return find_transfer_pair(pairs, transaction_id) is not None


__all__ = [
    "MAX_GAP_DAYS",
    "detect_transfers",
    "find_transfer_pair",
    "is_transfer_transaction",
    "other_transaction",
    "transfer_confidence",
]
