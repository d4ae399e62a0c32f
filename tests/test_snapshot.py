import json
from pathlib import Path

import pytest

from budget_inference.snapshot import ExportLoadError, load_budget_export
from tests.helpers.records import d


def _write(path: Path, doc: object) -> Path:
    path.write_text(json.dumps(doc), encoding="utf-8")
    return path


def test_loads_sections_and_skips_malformed_records(tmp_path: Path):
    path = _write(
        tmp_path / "export.json",
        {
            "transactions": [
                {"id": "t1", "date": "2024-01-01", "amount": -100, "account_id": "a"},
                {"id": "t2", "date": "2024-01-01"},
            ],
            "accounts": [{"id": "a", "name": "Checking"}],
            "categories": [{"id": "c1", "name": "Groceries", "group_name": "Everyday"}],
            "payees": "not-a-list",
            "unrelated": True,
        },
    )

    export = load_budget_export(path)

    assert [t.id for t in export.transactions] == ["t1"]
    assert export.accounts[0].name == "Checking"
    assert export.categories[0].group_name == "Everyday"
    assert export.payees == ()
    assert export.payee_rules == ()


def test_empty_object_is_an_empty_export(tmp_path: Path):
    export = load_budget_export(_write(tmp_path / "e.json", {}))
    assert export.transactions == ()
    assert export.resolved_payee_rules() == []


@pytest.mark.parametrize("content", ["{oops", "[]", "42"])
def test_invalid_documents_raise(tmp_path: Path, content: str):
    path = tmp_path / "bad.json"
    path.write_text(content, encoding="utf-8")

    with pytest.raises(ExportLoadError):
        load_budget_export(path)


def test_missing_file_raises(tmp_path: Path):
    with pytest.raises(ExportLoadError, match="File not found"):
        load_budget_export(tmp_path / "missing.json")


def test_resolved_payee_rules_sync_then_count(tmp_path: Path):
    path = _write(
        tmp_path / "export.json",
        {
            "transactions": [
                {"id": "t1", "date": "2024-02-01", "amount": -1, "account_id": "a", "payee_id": "p1"},
                {"id": "t2", "date": "2024-03-01", "amount": -1, "account_id": "a", "payee_id": "p1"},
            ],
            "payees": [{"id": "p1", "name": "Rewe"}, {"id": "p2", "name": "Aldi"}],
            "payee_rules": [
                {
                    "payee_id": "p1",
                    "raw_name": "Rewe",
                    "display_name": "REWE Markt",
                    "normalized_name": "rewe",
                    "default_category_id": "c1",
                    "default_category_name": "Groceries",
                    "last_seen": "2023-12-01",
                }
            ],
        },
    )

    rules = load_budget_export(path).resolved_payee_rules(today=d("2024-06-01"))

    by_id = {r.payee_id: r for r in rules}
    assert by_id["p1"].display_name == "REWE Markt"
    assert by_id["p1"].transaction_count == 2
    assert by_id["p1"].last_seen == d("2024-03-01")
    assert by_id["p2"].is_new is True
    assert by_id["p2"].transaction_count == 0
    assert by_id["p2"].last_seen == d("2024-06-01")
