"""Data models for ``budget_inference``.

Two families live here:

- Boundary records (Pydantic) for data arriving from the budgeting service:
  :class:`TransactionRecord`, :class:`AccountRecord`, :class:`CategoryRecord`,
  :class:`PayeeSnapshot` and the locally maintained :class:`PayeeRecord`.
  They are frozen, ignore unknown fields, and are validated once via
  :func:`validate_records` so the matchers never see partially-typed input.
- Derived results (frozen dataclasses) returned by the matchers:
  :class:`TransferPair`, :class:`DuplicateGroup`, :class:`PayeePattern`.
  These are recomputed on every call and never persisted.

Amounts are integer milliunits (1000 == one major currency unit).
"""

from __future__ import annotations

import datetime as dt
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .logging_setup import get_logger

_logger = get_logger("budget_inference.models")


# ---------------------------------------------------------------------------
# Boundary records
# ---------------------------------------------------------------------------


class _Record(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", str_strip_whitespace=True)


class TransactionRecord(_Record):
    """Immutable snapshot of a single budget transaction."""

    id: str = Field(min_length=1)
    date: dt.date
    amount: int
    account_id: str = Field(min_length=1)
    payee_id: str | None = None
    payee_name: str | None = None
    category_id: str | None = None
    memo: str | None = None
    deleted: bool = False

    @field_validator("payee_id", "payee_name", "category_id", "memo")
    @classmethod
    def _blank_to_none(cls, v: str | None) -> str | None:
        # The budgeting API sends "" and null interchangeably for unset fields.
        return v or None


class AccountRecord(_Record):
    id: str = Field(min_length=1)
    name: str


class CategoryRecord(_Record):
    id: str = Field(min_length=1)
    name: str
    group_name: str | None = None


class PayeeSnapshot(_Record):
    """A payee as listed by the budgeting service (no local configuration)."""

    id: str = Field(min_length=1)
    name: str | None = None
    deleted: bool = False


class PayeeRecord(_Record):
    """Locally maintained payee rule.

    ``tags`` behaves as an ordered set: blanks are dropped and repeated tags
    keep only their first position. ``duplicate_of_payee_id`` points at the
    primary payee once the user has merged this record into another.
    """

    payee_id: str = Field(min_length=1)
    raw_name: str
    display_name: str
    normalized_name: str
    default_category_id: str | None = None
    default_category_name: str | None = None
    context: str = ""
    tags: tuple[str, ...] = ()
    last_seen: dt.date
    transaction_count: int = Field(default=0, ge=0)
    duplicate_of_payee_id: str | None = None
    is_new: bool = False

    @field_validator("tags", mode="before")
    @classmethod
    def _ordered_unique_tags(cls, v: Any) -> tuple[str, ...]:
        if v is None:
            return ()
        if isinstance(v, str):
            v = [v]
        seen: dict[str, None] = {}
        for tag in v:
            if isinstance(tag, str) and tag.strip():
                seen.setdefault(tag.strip(), None)
        return tuple(seen)


def validate_records[R: BaseModel](
    model: type[R], items: Iterable[Mapping[str, Any] | R]
) -> list[R]:
    """Validate raw mappings into ``model`` instances, skipping malformed ones.

    Already-validated instances pass through untouched. A record that fails
    validation is logged and dropped; it never aborts the rest of the batch.
    """

    out: list[R] = []
    for pos, item in enumerate(items):
        if isinstance(item, model):
            out.append(item)
            continue
        try:
            out.append(model.model_validate(item))
        except ValidationError as e:
            _logger.warning(
                "records:skip_malformed model=%s position=%d errors=%d",
                model.__name__,
                pos,
                e.error_count(),
            )
    return out


# ---------------------------------------------------------------------------
# Derived results
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class TransferPair:
    """An outflow/inflow pair believed to be money moved between own accounts."""

    outflow: TransactionRecord
    inflow: TransactionRecord
    from_account: AccountRecord
    to_account: AccountRecord
    confidence: float


@dataclass(frozen=True, slots=True)
class DuplicateGroup:
    """A primary payee and the records that look like variants of it.

    ``similarity`` is the mean of the primary-to-duplicate scores.
    """

    primary: PayeeRecord
    duplicates: tuple[PayeeRecord, ...]
    similarity: float


@dataclass(frozen=True, slots=True)
class PayeePattern:
    """Dominant category learned for one normalized payee."""

    payee_name: str
    normalized_name: str
    category_id: str
    category_name: str
    occurrences: int
    confidence: float


# ---------------------------------------------------------------------------
# Inference results
# ---------------------------------------------------------------------------


def _unit_interval(v: float) -> float:
    fv = float(v)
    if 0.0 <= fv <= 1.0:
        return fv
    raise ValueError("confidence must be within [0,1]")


class SuggestedMemo(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    short: str
    detailed: str


class CategoryAlternative(BaseModel):
    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    category_id: str
    category_name: str
    confidence: float

    @field_validator("confidence")
    @classmethod
    def _confidence_in_unit_interval(cls, v: float) -> float:
        return _unit_interval(v)


class CategorizationResult(BaseModel):
    """Category decision for one transaction, from a rule, a pattern, or the model."""

    model_config = ConfigDict(extra="ignore", str_strip_whitespace=True)

    category_id: str
    category_name: str
    confidence: float
    reasoning: str
    alternatives: tuple[CategoryAlternative, ...] = ()
    suggested_memo: SuggestedMemo | None = None

    @field_validator("confidence")
    @classmethod
    def _confidence_in_unit_interval(cls, v: float) -> float:
        return _unit_interval(v)

    @field_validator("alternatives", mode="after")
    @classmethod
    def _at_most_three(
        cls, v: tuple[CategoryAlternative, ...]
    ) -> tuple[CategoryAlternative, ...]:
        return v[:3]


# ---------------------------------------------------------------------------
# Cache file entries
# ---------------------------------------------------------------------------


class CacheEntry(BaseModel):
    """One persisted inference result; ``timestamp`` is epoch milliseconds."""

    model_config = ConfigDict(frozen=True, extra="ignore")

    response: Any
    timestamp: int


__all__ = [
    "AccountRecord",
    "CacheEntry",
    "CategorizationResult",
    "CategoryAlternative",
    "CategoryRecord",
    "DuplicateGroup",
    "PayeePattern",
    "PayeeRecord",
    "PayeeSnapshot",
    "SuggestedMemo",
    "TransactionRecord",
    "TransferPair",
    "validate_records",
]
