"""Prompt pieces and the strict response schema for transaction categorization.

Builds:
- the system instructions (category list plus learned payee patterns);
- the per-transaction user content;
- the ``response_format`` JSON Schema for the OpenAI Responses API.
"""

from __future__ import annotations

from collections.abc import Sequence

from openai.types.responses.response_format_text_json_schema_config_param import (
    ResponseFormatTextJSONSchemaConfigParam,
)

from .history import format_patterns_for_prompt
from .models import CategoryRecord, PayeePattern, TransactionRecord


def format_amount(milliunits: int) -> str:
    """Render milliunits as ``"expense of 12.34"`` / ``"income of 12.34"``."""

    amount = milliunits / 1000
    kind = "expense" if amount < 0 else "income"
    return f"{kind} of {abs(amount):.2f}"


def build_system_instructions(
    categories: Sequence[CategoryRecord],
    patterns: Sequence[PayeePattern],
) -> str:
    category_list = "\n".join(f"- {c.id}: {c.name}" for c in categories)
    patterns_text = format_patterns_for_prompt(patterns) or "No historical data available yet."
    return (
        "You categorize personal budget transactions. Pick exactly one category id "
        "from the list below; never invent ids. Prefer the historical payee pattern "
        "when one applies. Lower your confidence and offer up to three alternatives "
        "when unsure. Only suggest a memo when the transaction has none.\n\n"
        f"Available categories:\n{category_list}\n\n"
        f"Historical patterns (payee -> most common category):\n{patterns_text}"
    )


def build_user_content(tx: TransactionRecord) -> str:
    memo = tx.memo.strip() if tx.memo and tx.memo.strip() else "[empty]"
    return (
        "Categorize this transaction:\n"
        f"Payee: {tx.payee_name or 'Unknown'}\n"
        f"Amount: {format_amount(tx.amount)}\n"
        f"Memo: {memo}\n"
        f"Date: {tx.date.isoformat()}"
    )


def build_response_format(
    categories: Sequence[CategoryRecord],
) -> ResponseFormatTextJSONSchemaConfigParam:
    """Return the strict JSON Schema ``response_format`` for one categorization.

    ``category_id`` is constrained to the supplied category ids. Strict mode
    requires every property to be listed as required, so optional fields are
    expressed as nullable.
    """

    ids: list[str] = [c for c in dict.fromkeys(cat.id for cat in categories) if c]
    if not ids:
        raise ValueError("categories must contain at least one id")

    alternative = {
        "type": "object",
        "properties": {
            "category_id": {"type": "string", "enum": ids},
            "category_name": {"type": "string"},
            "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        },
        "required": ["category_id", "category_name", "confidence"],
        "additionalProperties": False,
    }
    memo = {
        "type": ["object", "null"],
        "properties": {
            "short": {"type": "string"},
            "detailed": {"type": "string"},
        },
        "required": ["short", "detailed"],
        "additionalProperties": False,
    }

    return {
        "type": "json_schema",
        "name": "transaction_categorization",
        "schema": {
            "type": "object",
            "properties": {
                "category_id": {"type": "string", "enum": ids},
                "category_name": {"type": "string"},
                "confidence": {"type": "number", "minimum": 0, "maximum": 1},
                "reasoning": {"type": "string"},
                "alternatives": {"type": "array", "items": alternative},
                "suggested_memo": memo,
            },
            "required": [
                "category_id",
                "category_name",
                "confidence",
                "reasoning",
                "alternatives",
                "suggested_memo",
            ],
            "additionalProperties": False,
        },
        "strict": True,
    }


__all__ = [
    "build_response_format",
    "build_system_instructions",
    "build_user_content",
    "format_amount",
]
