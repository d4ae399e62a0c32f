"""Command-line interface for ``budget_inference``.

Commands operate on a JSON budget export (see
:mod:`budget_inference.snapshot`) and print tab-separated rows to stdout.
Errors go to stderr with exit status 1. Environment variables (notably
``OPENAI_API_KEY``) are loaded from a local ``.env`` via ``python-dotenv``
before any command runs.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path
from typing import Annotated

import typer
from dotenv import load_dotenv
from typer.models import OptionInfo

from .cache import ResponseCache
from .duplicates import find_duplicate_groups
from .history import build_payee_patterns, format_patterns_for_prompt
from .logging_setup import configure_logging
from .snapshot import BudgetExport, ExportLoadError, load_budget_export
from .transfers import detect_transfers


def _load(export_path: Path) -> BudgetExport | None:
    try:
        return load_budget_export(export_path)
    except ExportLoadError as e:
        print(f"Error: {e}", file=sys.stderr)
        return None


# ---- Command handlers (plain functions, exit status as return value) ----------


def cmd_transfers(export_path: Path) -> int:
    export = _load(export_path)
    if export is None:
        return 1
    for pair in detect_transfers(export.transactions, export.accounts):
        print(
            f"{pair.confidence:.2f}\t{pair.from_account.name}\t{pair.to_account.name}\t"
            f"{pair.outflow.id}\t{pair.inflow.id}\t{abs(pair.outflow.amount) / 1000:.2f}"
        )
    return 0


def cmd_duplicates(export_path: Path) -> int:
    export = _load(export_path)
    if export is None:
        return 1
    for group in find_duplicate_groups(export.resolved_payee_rules()):
        names = ", ".join(d.display_name for d in group.duplicates)
        print(f"{group.similarity:.2f}\t{group.primary.display_name}\t{names}")
    return 0


def cmd_patterns(export_path: Path, *, limit: int) -> int:
    export = _load(export_path)
    if export is None:
        return 1
    patterns = build_payee_patterns(export.transactions, export.categories)
    text = format_patterns_for_prompt(patterns, limit=limit)
    if text:
        print(text)
    return 0


def cmd_categorize(export_path: Path, *, model: str | None) -> int:
    if not os.getenv("OPENAI_API_KEY"):
        print("Error: OPENAI_API_KEY is not set in the environment.", file=sys.stderr)
        return 1
    export = _load(export_path)
    if export is None:
        return 1
    if not export.categories:
        print("Error: the export contains no categories.", file=sys.stderr)
        return 1

    from .categorize import Categorizer  # deferred: pulls in the OpenAI SDK

    transfers = detect_transfers(export.transactions, export.accounts)
    transfer_ids = {tx.id for p in transfers for tx in (p.outflow, p.inflow)}
    pending = [
        tx
        for tx in export.transactions
        if not tx.deleted and not tx.category_id and tx.id not in transfer_ids
    ]

    categorizer = Categorizer(
        export.categories,
        build_payee_patterns(export.transactions, export.categories),
        payee_rules=export.resolved_payee_rules(),
        model=model,
    )
    results = categorizer.categorize_batch(pending)
    for tx in pending:
        r = results[tx.id]
        print(f"{tx.id}\t{r.category_id}\t{r.category_name}\t{r.confidence:.2f}")
    return 0


def cmd_cache_stats(cache_path: Path | None) -> int:
    cache = ResponseCache(cache_path)
    stats = cache.stats()
    print(f"entries={stats.entries}\tsize_kb={stats.size_kb}\tpath={os.fspath(cache.path)}")
    return 0


def cmd_cache_cleanup(cache_path: Path | None) -> int:
    removed = ResponseCache(cache_path).cleanup_all()
    print(f"removed={removed}")
    return 0


# ---- Typer-based console interface -------------------------------------------


app = typer.Typer(
    no_args_is_help=True,
    add_completion=False,
    help=(
        "Transfer detection, payee de-duplication, pattern learning and cached "
        "categorization over a JSON budget export."
    ),
)

# Module-level option objects keep calls out of parameter defaults (ruff B008).
EXPORT_PATH_OPTION: OptionInfo = typer.Option(
    ...,
    "--export",
    help="Path to a JSON budget export (transactions, accounts, categories, payees).",
    dir_okay=False,
    file_okay=True,
    exists=False,  # the handler reports missing files itself
)
CACHE_PATH_OPTION: OptionInfo = typer.Option(
    "--cache-path",
    help="Cache file (defaults to $BUDGET_INFERENCE_CACHE_DIR/ai-cache.json).",
    dir_okay=False,
)


@app.command("transfers")
def transfers_cmd(export_path: Annotated[Path, EXPORT_PATH_OPTION]) -> None:
    """List likely transfers between your own accounts."""

    raise typer.Exit(cmd_transfers(export_path))


@app.command("duplicates")
def duplicates_cmd(export_path: Annotated[Path, EXPORT_PATH_OPTION]) -> None:
    """List groups of payees that look like duplicates."""

    raise typer.Exit(cmd_duplicates(export_path))


@app.command("patterns")
def patterns_cmd(
    export_path: Annotated[Path, EXPORT_PATH_OPTION],
    *,
    limit: int = typer.Option(50, min=1, help="Maximum number of patterns to print."),
) -> None:
    """Print payee -> category patterns learned from history."""

    raise typer.Exit(cmd_patterns(export_path, limit=limit))


@app.command("categorize")
def categorize_cmd(
    export_path: Annotated[Path, EXPORT_PATH_OPTION],
    *,
    model: str | None = typer.Option(
        None, help="Model name (falls back to BUDGET_INFERENCE_MODEL)."
    ),
) -> None:
    """Suggest categories for uncategorized, non-transfer transactions."""

    raise typer.Exit(cmd_categorize(export_path, model=model))


@app.command("cache-stats")
def cache_stats_cmd(cache_path: Annotated[Path | None, CACHE_PATH_OPTION] = None) -> None:
    """Show the number of cached responses and the file size."""

    raise typer.Exit(cmd_cache_stats(cache_path))


@app.command("cache-cleanup")
def cache_cleanup_cmd(cache_path: Annotated[Path | None, CACHE_PATH_OPTION] = None) -> None:
    """Remove expired cache entries."""

    raise typer.Exit(cmd_cache_cleanup(cache_path))


@app.callback()
def _root() -> None:
    """Load ``.env`` from the working directory and configure logging."""

    # override=False keeps variables already set in the environment
    load_dotenv(dotenv_path=Path.cwd() / ".env", override=False)
    configure_logging()


if __name__ == "__main__":  # pragma: no cover
    app()
