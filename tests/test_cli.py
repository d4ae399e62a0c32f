import json
from pathlib import Path

import pytest
from typer.testing import CliRunner

import budget_inference.categorize as categorize_mod
from budget_inference.cli import app
from tests.helpers.openai_stub import OpenAIStub, result_payload

runner = CliRunner()


def _tx(id: str, account: str, amount: int, payee: str, *, payee_id=None, category=None):
    return {
        "id": id,
        "date": "2024-01-15",
        "amount": amount,
        "account_id": account,
        "payee_id": payee_id,
        "payee_name": payee,
        "category_id": category,
    }


EXPORT = {
    "accounts": [{"id": "a", "name": "Checking"}, {"id": "b", "name": "Savings"}],
    "categories": [
        {"id": "c-groc", "name": "Groceries"},
        {"id": "c-shop", "name": "Shopping"},
        {"id": "c-dining", "name": "Dining Out"},
    ],
    "payees": [
        {"id": "p-rewe", "name": "Rewe"},
        {"id": "p-amz1", "name": "Amazon"},
        {"id": "p-amz2", "name": "AMAZON"},
    ],
    "transactions": [
        _tx("t-out", "a", -50_000, "Transfer : Savings"),
        _tx("t-in", "b", 50_000, "Transfer : Checking"),
        _tx("t-r1", "a", -2_000, "Rewe", payee_id="p-rewe", category="c-groc"),
        _tx("t-r2", "a", -3_000, "Rewe", payee_id="p-rewe", category="c-groc"),
        _tx("t-a1", "a", -10_000, "Amazon", payee_id="p-amz1", category="c-shop"),
        _tx("t-a2", "a", -11_000, "Amazon", payee_id="p-amz1", category="c-shop"),
        _tx("t-a3", "a", -12_000, "Amazon", payee_id="p-amz1", category="c-shop"),
        _tx("t-a4", "a", -1_999, "AMAZON", payee_id="p-amz2"),
        _tx("t-new", "a", -450, "Corner Cafe"),
    ],
}


@pytest.fixture
def export_path(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    # Keep a stray .env in the real working directory out of the picture.
    monkeypatch.chdir(tmp_path)
    path = tmp_path / "export.json"
    path.write_text(json.dumps(EXPORT), encoding="utf-8")
    return path


def test_transfers_command(export_path: Path):
    result = runner.invoke(app, ["transfers", "--export", str(export_path)])

    assert result.exit_code == 0, result.output
    assert result.stdout.splitlines() == ["1.00\tChecking\tSavings\tt-out\tt-in\t50.00"]


def test_duplicates_command(export_path: Path):
    result = runner.invoke(app, ["duplicates", "--export", str(export_path)])

    assert result.exit_code == 0, result.output
    assert result.stdout.splitlines() == ["1.00\tAmazon\tAMAZON"]


def test_patterns_command(export_path: Path):
    result = runner.invoke(app, ["patterns", "--export", str(export_path)])

    assert result.exit_code == 0, result.output
    assert result.stdout.splitlines() == [
        '- "Amazon" → Shopping (100% of 3 txns)',
        '- "Rewe" → Groceries (100% of 2 txns)',
    ]


def test_categorize_command(export_path: Path, monkeypatch: pytest.MonkeyPatch):
    stub = OpenAIStub(lambda payee: result_payload("c-dining", "Dining Out"))
    monkeypatch.setattr(categorize_mod, "_create_client", lambda: stub)
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")

    result = runner.invoke(app, ["categorize", "--export", str(export_path)])

    assert result.exit_code == 0, result.output
    # Transfers are skipped; "AMAZON" is answered from history without a model call.
    assert result.stdout.splitlines() == [
        "t-a4\tc-shop\tShopping\t1.00",
        "t-new\tc-dining\tDining Out\t0.80",
    ]
    assert len(stub.calls) == 1


def test_categorize_requires_api_key(export_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)

    result = runner.invoke(app, ["categorize", "--export", str(export_path)])

    assert result.exit_code == 1
    assert "OPENAI_API_KEY" in result.output


def test_missing_export_exits_with_error(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)

    result = runner.invoke(app, ["transfers", "--export", str(tmp_path / "nope.json")])

    assert result.exit_code == 1
    assert "File not found" in result.output


def test_cache_stats_and_cleanup(tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.chdir(tmp_path)
    cache_file = tmp_path / "ai-cache.json"
    cache_file.write_text(
        json.dumps(
            {
                "old": {"response": 1, "timestamp": 0},
                "new": {"response": 2, "timestamp": 32_503_680_000_000},
            }
        ),
        encoding="utf-8",
    )

    stats = runner.invoke(app, ["cache-stats", "--cache-path", str(cache_file)])
    assert stats.exit_code == 0, stats.output
    assert stats.stdout.startswith("entries=2\t")

    cleanup = runner.invoke(app, ["cache-cleanup", "--cache-path", str(cache_file)])
    assert cleanup.exit_code == 0, cleanup.output
    assert cleanup.stdout.strip() == "removed=1"
    assert set(json.loads(cache_file.read_text(encoding="utf-8"))) == {"new"}
