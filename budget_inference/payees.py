"""Payee rule helpers: creation, sync against the budgeting service, usage counts.

Everything here is pure; persisting the rules is the caller's job.
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .models import PayeeRecord, PayeeSnapshot, TransactionRecord
from .normalizers import normalize_payee_name

UNKNOWN_PAYEE_NAME = "Unknown"


@dataclass(frozen=True, slots=True)
class PayeeSyncResult:
    records: tuple[PayeeRecord, ...]
    new_payees: tuple[PayeeRecord, ...]

    @property
    def updated_count(self) -> int:
        return len(self.records) - len(self.new_payees)


def create_payee_record(payee_id: str, name: str, *, today: dt.date) -> PayeeRecord:
    """Return an unconfigured rule for a payee seen for the first time."""

    return PayeeRecord(
        payee_id=payee_id,
        raw_name=name,
        display_name=name,
        normalized_name=normalize_payee_name(name),
        last_seen=today,
        is_new=True,
    )


def sync_payees(
    existing: Iterable[PayeeRecord],
    snapshots: Iterable[PayeeSnapshot],
    *,
    today: dt.date,
) -> PayeeSyncResult:
    """Merge the service's payee list into the local rules.

    Known payees keep their configuration and get a refreshed raw name and
    ``last_seen``; unknown ones become new rules flagged ``is_new``. Rules for
    payees the service no longer lists (or lists as deleted) are dropped.
    """

    by_id = {r.payee_id: r for r in existing}
    records: list[PayeeRecord] = []
    new_payees: list[PayeeRecord] = []

    for snap in snapshots:
        if snap.deleted:
            continue
        current = by_id.get(snap.id)
        if current is None:
            rule = create_payee_record(snap.id, snap.name or UNKNOWN_PAYEE_NAME, today=today)
            new_payees.append(rule)
            records.append(rule)
        else:
            records.append(
                current.model_copy(
                    update={"raw_name": snap.name or current.raw_name, "last_seen": today}
                )
            )

    return PayeeSyncResult(records=tuple(records), new_payees=tuple(new_payees))


def apply_usage(
    records: Iterable[PayeeRecord],
    transactions: Iterable[TransactionRecord],
) -> list[PayeeRecord]:
    """Recompute ``transaction_count`` and ``last_seen`` from transaction history.

    Deleted transactions are ignored. Payees without transactions keep their
    previous ``last_seen`` and get a count of zero.
    """

    counts: dict[str, int] = {}
    latest: dict[str, dt.date] = {}
    for tx in transactions:
        if tx.deleted or not tx.payee_id:
            continue
        counts[tx.payee_id] = counts.get(tx.payee_id, 0) + 1
        seen = latest.get(tx.payee_id)
        if seen is None or tx.date > seen:
            latest[tx.payee_id] = tx.date

    return [
        r.model_copy(
            update={
                "transaction_count": counts.get(r.payee_id, 0),
                "last_seen": latest.get(r.payee_id, r.last_seen),
            }
        )
        for r in records
    ]


def find_payee_rule(records: Sequence[PayeeRecord], payee_name: str | None) -> PayeeRecord | None:
    """Return the first rule whose normalized name equals ``payee_name``'s."""

    normalized = normalize_payee_name(payee_name)
    if not normalized:
        return None
    for r in records:
        if r.normalized_name == normalized:
            return r
    return None


__all__ = [
    "PayeeSyncResult",
    "apply_usage",
    "create_payee_record",
    "find_payee_rule",
    "sync_payees",
]
