"""Persistent cache for expensive inference responses.

The cache is a single JSON object on disk mapping a key (hex digest, see
:func:`compute_cache_key`) to ``{"response": <any JSON>, "timestamp": <epoch ms>}``.
There is no schema version; anything unexpected is read as a miss.

Lifecycle
---------
One :class:`ResponseCache` per process. The file is loaded lazily on first
access (or eagerly via :meth:`ResponseCache.load`) and mirrored in memory.
Every mutation is written through before it returns.

Concurrency
-----------
Mutations (``set``, expiry on ``get``, ``cleanup_all``) run one at a time
under a lock: copy the mirror, apply the change, persist, then publish the
new mirror. Readers never take the lock; they look at whichever mirror is
currently published, which is never modified in place.

Failure policy
--------------
The cache is an optimization. A missing, unreadable, or corrupt file reads as
an empty cache, and a failed write is logged and dropped. Nothing here raises
to the caller for I/O reasons.

Atomicity: writes target ``<file>.tmp`` first and then ``os.replace`` into place.
"""

from __future__ import annotations

import contextlib
import hashlib
import json
import os
import threading
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .logging_setup import get_logger
from .models import CacheEntry

CACHE_TTL: timedelta = timedelta(days=30)
CACHE_FILE_NAME: str = "ai-cache.json"
KEY_SEPARATOR: str = "|"

_logger = get_logger("budget_inference.cache")


def compute_cache_key(kind: str, *inputs: str) -> str:
    """Return the MD5 hex digest of ``kind`` and ``inputs`` joined by ``"|"``.

    Same kind and inputs in the same order always give the same key. Inputs
    are joined without escaping, so ``("a|b", "c")`` and ``("a", "b|c")``
    collide. Changing that would re-key every entry already on disk; bump the
    ``kind`` string instead when a caller needs a new scheme.
    """

    data = KEY_SEPARATOR.join((kind, *inputs))
    return hashlib.md5(data.encode("utf-8"), usedforsecurity=False).hexdigest()


def default_cache_path() -> Path:
    """Return the cache file location.

    Default: ``~/.config/budget-inference/ai-cache.json``.
    Override the directory with ``BUDGET_INFERENCE_CACHE_DIR``.
    """

    root = os.getenv("BUDGET_INFERENCE_CACHE_DIR")
    if root and root.strip():
        return Path(root).expanduser().resolve() / CACHE_FILE_NAME
    return Path.home() / ".config" / "budget-inference" / CACHE_FILE_NAME


def _now_ms() -> int:
    return int(time.time() * 1000)


@dataclass(frozen=True, slots=True)
class CacheStats:
    entries: int
    size_kb: int


class ResponseCache:
    """File-backed key/value cache with a time-to-live.

    Parameters
    ----------
    path:
        Cache file; defaults to :func:`default_cache_path` resolved at
        construction time.
    ttl:
        Entries strictly older than this read as absent.
    clock:
        Returns the current time in epoch milliseconds (injectable for tests).
    """

    def __init__(
        self,
        path: Path | str | None = None,
        *,
        ttl: timedelta = CACHE_TTL,
        clock: Callable[[], int] = _now_ms,
    ) -> None:
        self._path = Path(path) if path is not None else default_cache_path()
        self._ttl_ms = int(ttl.total_seconds() * 1000)
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: Mapping[str, CacheEntry] | None = None

    @property
    def path(self) -> Path:
        return self._path

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def load(self) -> None:
        """Read the file into memory if not done yet. Safe to call repeatedly."""

        if self._entries is not None:
            return
        with self._lock:
            if self._entries is None:
                self._entries = self._read_file()

    def get(self, key: str) -> Any | None:
        """Return the cached response for ``key`` or ``None``.

        Finding an expired entry deletes it and persists the deletion before
        returning ``None``.
        """

        entry = self._snapshot().get(key)
        if entry is None:
            return None
        if not self._is_expired(entry):
            return entry.response

        with self._lock:
            current = self._snapshot_locked()
            # Re-check: a concurrent set may have refreshed the entry.
            latest = current.get(key)
            if latest is not None and self._is_expired(latest):
                updated = dict(current)
                del updated[key]
                self._persist(updated)
                self._entries = updated
                _logger.debug("cache:expired_on_read key=%s", key)
            elif latest is not None:
                return latest.response
        return None

    def set(self, key: str, value: Any) -> None:
        """Store ``value`` under ``key`` with the current timestamp and persist.

        ``value`` must be JSON-serializable; anything else is logged and not
        stored.
        """

        try:
            json.dumps(value)
        except (TypeError, ValueError):
            _logger.warning("cache:unserializable_value key=%s type=%s", key, type(value).__name__)
            return

        with self._lock:
            updated = dict(self._snapshot_locked())
            updated[key] = CacheEntry(response=value, timestamp=self._clock())
            self._persist(updated)
            self._entries = updated

    def cleanup_all(self) -> int:
        """Purge every expired entry in a single write; return how many were removed."""

        with self._lock:
            current = self._snapshot_locked()
            updated = {k: e for k, e in current.items() if not self._is_expired(e)}
            removed = len(current) - len(updated)
            if removed:
                self._persist(updated)
                self._entries = updated
                _logger.info("cache:cleanup removed=%d remaining=%d", removed, len(updated))
            return removed

    def stats(self) -> CacheStats:
        entries = self._snapshot()
        size = len(_serialize(entries))
        return CacheStats(entries=len(entries), size_kb=round(size / 1024))

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _is_expired(self, entry: CacheEntry) -> bool:
        return self._clock() - entry.timestamp > self._ttl_ms

    def _snapshot(self) -> Mapping[str, CacheEntry]:
        self.load()
        return self._entries if self._entries is not None else {}

    def _snapshot_locked(self) -> Mapping[str, CacheEntry]:
        # Caller holds ``self._lock``; ``load()`` would deadlock here.
        if self._entries is None:
            self._entries = self._read_file()
        return self._entries

    def _read_file(self) -> dict[str, CacheEntry]:
        try:
            raw = json.loads(self._path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return {}
        except (OSError, UnicodeDecodeError, json.JSONDecodeError):
            _logger.warning(
                "cache:read_failed; starting empty path=%s", os.fspath(self._path), exc_info=True
            )
            return {}

        if not isinstance(raw, dict):
            _logger.warning("cache:unexpected_shape; starting empty path=%s", os.fspath(self._path))
            return {}

        entries: dict[str, CacheEntry] = {}
        dropped = 0
        for key, value in raw.items():
            try:
                entries[key] = CacheEntry.model_validate(value)
            except ValidationError:
                dropped += 1
        if dropped:
            _logger.debug("cache:dropped_malformed_entries count=%d", dropped)
        _logger.debug("cache:loaded entries=%d path=%s", len(entries), os.fspath(self._path))
        return entries

    def _persist(self, entries: Mapping[str, CacheEntry]) -> None:
        tmp = self._path.with_suffix(self._path.suffix + ".tmp")
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(_serialize(entries), encoding="utf-8")
            os.replace(tmp, self._path)
        except OSError:
            with contextlib.suppress(OSError):
                tmp.unlink()
            _logger.warning(
                "cache:write_failed; keeping in-memory state path=%s",
                os.fspath(self._path),
                exc_info=True,
            )


def _serialize(entries: Mapping[str, CacheEntry]) -> str:
    return json.dumps(
        {k: e.model_dump(mode="json") for k, e in entries.items()},
        ensure_ascii=False,
        indent=2,
    )


__all__ = [
    "CACHE_TTL",
    "CacheStats",
    "ResponseCache",
    "compute_cache_key",
    "default_cache_path",
]
