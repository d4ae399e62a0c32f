"""Transaction categorization on top of the inference engine.

Public API:
    - :class:`Categorizer`

Each transaction goes through progressively more expensive sources and
stops at the first that answers:

1. a payee rule with a default category (confidence ``0.99``);
2. a strong historical payee pattern;
3. the response cache (memo-less transactions only, since a memo adds
   context the cache key does not capture);
4. an OpenAI Responses call with a strict JSON schema, retried on 429/5xx.

No side effects occur at import time (no client creation, no environment
reads).
"""

from __future__ import annotations

import json
import os
import random
import threading
import time
from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from openai import OpenAI
from openai.types.responses import ResponseTextConfigParam
from pydantic import ValidationError

from . import prompting
from .cache import ResponseCache, compute_cache_key
from .logging_setup import get_logger
from .models import (
    CategorizationResult,
    CategoryRecord,
    PayeePattern,
    PayeeRecord,
    TransactionRecord,
)
from .normalizers import pattern_key
from .payees import find_payee_rule
from .pmap import p_map

# ---- Tunables (private) ------------------------------------------------------

_MODEL: str = "gpt-5"
_BATCH_CONCURRENCY: int = 3
_MAX_ATTEMPTS: int = 3
_BACKOFF_SCHEDULE_SEC: tuple[float, ...] = (0.5, 2.0)
_JITTER_PCT: float = 0.20

_RULE_CONFIDENCE: float = 0.99
_PATTERN_MIN_OCCURRENCES: int = 3
_PATTERN_MIN_CONFIDENCE: float = 0.95

_CACHE_KIND: str = "categorize"

_logger = get_logger("budget_inference.categorize")


# ---- Internal helpers --------------------------------------------------------


def resolve_model(model: str | None = None) -> str:
    """Return ``model``, else ``BUDGET_INFERENCE_MODEL``, else the built-in default."""

    if model and model.strip():
        return model.strip()
    env_model = os.getenv("BUDGET_INFERENCE_MODEL")
    if env_model and env_model.strip():
        return env_model.strip()
    return _MODEL


def _create_client() -> OpenAI:
    return OpenAI()


def _extract_response_json_mapping(resp: Any) -> Mapping[str, Any]:
    """Decode the JSON object from a Responses SDK result.

    Prefers ``resp.output_text``; falls back to ``resp.output[0].content[0].text``.
    Raises ``ValueError`` when no text is found or it is not a JSON object.
    """

    text: str | None = getattr(resp, "output_text", None)
    if not text:
        try:
            first = resp.output[0] if getattr(resp, "output", None) else None
            content = getattr(first, "content", None)
            if content:
                candidate = getattr(content[0], "text", None)
                text = candidate if isinstance(candidate, str) else None
        except (AttributeError, IndexError, TypeError):
            text = None
    if not text or not isinstance(text, str):
        raise ValueError("Unexpected Responses API shape; unable to locate text output")

    try:
        decoded = json.loads(text)
    except json.JSONDecodeError as e:
        raise ValueError("Model output was not valid JSON per the requested schema") from e
    if not isinstance(decoded, Mapping):
        raise ValueError("Model output was not a JSON object")
    return decoded


def _is_retryable(exc: BaseException) -> bool:
    """Return True only for HTTP 429 and 5xx errors."""

    sc = getattr(exc, "status_code", None)
    return isinstance(sc, int) and (sc == 429 or 500 <= sc < 600)


def _sleep_backoff(attempt_no: int) -> None:
    base = _BACKOFF_SCHEDULE_SEC[min(attempt_no, len(_BACKOFF_SCHEDULE_SEC)) - 1]
    jitter = base * _JITTER_PCT
    time.sleep(max(0.0, base + random.uniform(-jitter, jitter)))


def _error_result(tx: TransactionRecord, exc: Exception) -> CategorizationResult:
    return CategorizationResult(
        category_id="",
        category_name="Error",
        confidence=0.0,
        reasoning=f"Failed to categorize: {exc}",
    )


def _has_memo(tx: TransactionRecord) -> bool:
    return bool(tx.memo and tx.memo.strip())


# ---- Public API ----------------------------------------------------------------


class Categorizer:
    """Assign categories to transactions, consulting cheap sources first.

    Parameters
    ----------
    categories:
        The budget's category list; model output is constrained to these ids.
    patterns:
        Output of :func:`~budget_inference.history.build_payee_patterns`.
    payee_rules:
        Local payee rules; those with a default category short-circuit
        inference entirely.
    cache:
        Response cache; a default :class:`ResponseCache` is created when
        omitted.
    client:
        OpenAI client; created lazily on the first model call when omitted.
    model:
        Model name (see :func:`resolve_model`).
    """

    def __init__(
        self,
        categories: Sequence[CategoryRecord],
        patterns: Sequence[PayeePattern],
        *,
        payee_rules: Sequence[PayeeRecord] = (),
        cache: ResponseCache | None = None,
        client: OpenAI | None = None,
        model: str | None = None,
    ) -> None:
        self._categories = list(categories)
        self._category_by_id = {c.id: c for c in self._categories}
        self._rules = [r for r in payee_rules if r.default_category_id and r.default_category_name]
        # Patterns arrive most-frequent first; keep the first per key.
        self._pattern_by_key: dict[str, PayeePattern] = {}
        for p in patterns:
            self._pattern_by_key.setdefault(p.normalized_name, p)
        self._cache = cache if cache is not None else ResponseCache()
        self._client = client
        self._client_lock = threading.Lock()
        self._model = resolve_model(model)
        self._instructions = prompting.build_system_instructions(self._categories, patterns)
        self._text_cfg = ResponseTextConfigParam(
            format=prompting.build_response_format(self._categories)
        )

    @property
    def model(self) -> str:
        return self._model

    def cache_key(self, tx: TransactionRecord) -> str | None:
        """Return the cache key for ``tx``, or ``None`` when it must not be cached."""

        if _has_memo(tx):
            return None
        direction = "expense" if tx.amount < 0 else "income"
        return compute_cache_key(_CACHE_KIND, tx.payee_name or "", direction, self._model)

    def categorize(self, tx: TransactionRecord) -> CategorizationResult:
        """Categorize a single transaction.

        Raises whatever the model call raises once retries are exhausted
        (``ValueError`` for unusable output, ``RuntimeError`` otherwise).
        """

        rule = find_payee_rule(self._rules, tx.payee_name)
        if rule is not None:
            return CategorizationResult(
                category_id=rule.default_category_id or "",
                category_name=rule.default_category_name or "",
                confidence=_RULE_CONFIDENCE,
                reasoning=f'Matched payee rule: "{rule.display_name}"',
            )

        pattern = self._pattern_by_key.get(pattern_key(tx.payee_name))
        if (
            pattern is not None
            and pattern.occurrences >= _PATTERN_MIN_OCCURRENCES
            and pattern.confidence >= _PATTERN_MIN_CONFIDENCE
        ):
            return CategorizationResult(
                category_id=pattern.category_id,
                category_name=pattern.category_name,
                confidence=pattern.confidence,
                reasoning=(
                    f'Historical pattern: "{pattern.payee_name}" was {pattern.category_name} '
                    f"in {pattern.occurrences} transactions"
                ),
            )

        key = self.cache_key(tx)
        if key is not None:
            cached = self._cache.get(key)
            if cached is not None:
                try:
                    result = CategorizationResult.model_validate(cached)
                except ValidationError:
                    _logger.debug("categorize:cache_entry_invalid tx_id=%s", tx.id)
                else:
                    _logger.info("categorize:cache_hit tx_id=%s", tx.id)
                    return result

        result = self._infer(tx)

        if key is not None:
            self._cache.set(key, result.model_dump(mode="json"))
        return result

    def categorize_batch(
        self, transactions: Iterable[TransactionRecord]
    ) -> dict[str, CategorizationResult]:
        """Categorize many transactions, at most three model calls at a time.

        A transaction whose categorization fails gets a zero-confidence
        ``"Error"`` result; the rest of the batch is unaffected.
        """

        txs = list(transactions)
        results = p_map(
            txs, self.categorize, concurrency=_BATCH_CONCURRENCY, on_error=_error_result
        )
        return {tx.id: r for tx, r in zip(txs, results, strict=True)}

    # ---- internals -----------------------------------------------------------

    def _get_client(self) -> OpenAI:
        with self._client_lock:
            if self._client is None:
                self._client = _create_client()
            return self._client

    def _infer(self, tx: TransactionRecord) -> CategorizationResult:
        user_content = prompting.build_user_content(tx)
        client = self._get_client()
        _logger.info("categorize:llm tx_id=%s model=%s", tx.id, self._model)

        attempt = 1
        while True:
            t0 = time.perf_counter()
            try:
                resp = client.responses.create(
                    model=self._model,
                    instructions=self._instructions,
                    input=user_content,
                    text=self._text_cfg,
                )
                decoded = _extract_response_json_mapping(resp)
                result = self._repair_category(CategorizationResult.model_validate(decoded))
                _logger.info(
                    "categorize:llm_done tx_id=%s latency_ms=%.2f",
                    tx.id,
                    (time.perf_counter() - t0) * 1000.0,
                )
                return result
            except Exception as e:  # noqa: BLE001
                dt_ms = (time.perf_counter() - t0) * 1000.0
                if attempt >= _MAX_ATTEMPTS or not _is_retryable(e):
                    _logger.error(
                        "categorize:llm_failed_terminal tx_id=%s latency_ms=%.2f error=%s",
                        tx.id,
                        dt_ms,
                        e.__class__.__name__,
                    )
                    if isinstance(e, ValueError):
                        raise
                    raise RuntimeError(f"categorize failed for transaction {tx.id}: {e}") from e
                _logger.warning(
                    "categorize:llm_retry tx_id=%s latency_ms=%.2f error=%s attempt=%d",
                    tx.id,
                    dt_ms,
                    e.__class__.__name__,
                    attempt,
                )
                _sleep_backoff(attempt)
                attempt += 1

    def _repair_category(self, result: CategorizationResult) -> CategorizationResult:
        """Map an unknown ``category_id`` back to a category by case-insensitive name."""

        if result.category_id in self._category_by_id:
            return result
        wanted = result.category_name.casefold()
        for c in self._categories:
            if c.name.casefold() == wanted:
                return result.model_copy(update={"category_id": c.id, "category_name": c.name})
        return result


__all__ = ["Categorizer", "resolve_model"]
