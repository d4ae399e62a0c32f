"""Load a JSON budget export into validated records.

Expected document shape (every key optional)::

    {
      "transactions": [...],
      "accounts": [...],
      "categories": [...],
      "payees": [...],        # raw payee list from the budgeting service
      "payee_rules": [...]    # locally maintained PayeeRecord objects
    }

Malformed records are skipped (see :func:`~budget_inference.models.validate_records`).
"""

from __future__ import annotations

import datetime as dt
import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .logging_setup import get_logger
from .models import (
    AccountRecord,
    CategoryRecord,
    PayeeRecord,
    PayeeSnapshot,
    TransactionRecord,
    validate_records,
)
from .payees import apply_usage, sync_payees

_logger = get_logger("budget_inference.snapshot")


class ExportLoadError(Exception):
    """The export file could not be read or is not a JSON object."""


@dataclass(frozen=True, slots=True)
class BudgetExport:
    transactions: tuple[TransactionRecord, ...] = ()
    accounts: tuple[AccountRecord, ...] = ()
    categories: tuple[CategoryRecord, ...] = ()
    payees: tuple[PayeeSnapshot, ...] = ()
    payee_rules: tuple[PayeeRecord, ...] = ()

    def resolved_payee_rules(self, *, today: dt.date | None = None) -> list[PayeeRecord]:
        """Return payee rules with fresh usage counts.

        When the export carries a raw payee list, rules are first synced
        against it so payees without a rule still take part.
        """

        rules: list[PayeeRecord] = list(self.payee_rules)
        if self.payees:
            rules = list(
                sync_payees(rules, self.payees, today=today or dt.date.today()).records
            )
        return apply_usage(rules, self.transactions)


def _section(doc: dict[str, Any], name: str) -> list[Any]:
    value = doc.get(name)
    if value is None:
        return []
    if not isinstance(value, list):
        _logger.warning("export:section_not_a_list section=%s", name)
        return []
    return value


def load_budget_export(path: Path | str) -> BudgetExport:
    """Read and validate the export at ``path``.

    Raises :class:`ExportLoadError` when the file is missing, unreadable, or
    not a JSON object.
    """

    p = Path(path)
    try:
        doc = json.loads(p.read_text(encoding="utf-8"))
    except FileNotFoundError as e:
        raise ExportLoadError(f"File not found: {os.fspath(p)}") from e
    except (OSError, UnicodeDecodeError) as e:
        raise ExportLoadError(f"Unable to read {os.fspath(p)}: {e}") from e
    except json.JSONDecodeError as e:
        raise ExportLoadError(f"Invalid JSON in {os.fspath(p)}: {e}") from e
    if not isinstance(doc, dict):
        raise ExportLoadError(f"Expected a JSON object at the top of {os.fspath(p)}")

    export = BudgetExport(
        transactions=tuple(validate_records(TransactionRecord, _section(doc, "transactions"))),
        accounts=tuple(validate_records(AccountRecord, _section(doc, "accounts"))),
        categories=tuple(validate_records(CategoryRecord, _section(doc, "categories"))),
        payees=tuple(validate_records(PayeeSnapshot, _section(doc, "payees"))),
        payee_rules=tuple(validate_records(PayeeRecord, _section(doc, "payee_rules"))),
    )
    _logger.info(
        "export:loaded transactions=%d accounts=%d categories=%d payees=%d payee_rules=%d",
        len(export.transactions),
        len(export.accounts),
        len(export.categories),
        len(export.payees),
        len(export.payee_rules),
    )
    return export


__all__ = ["BudgetExport", "ExportLoadError", "load_budget_export"]
