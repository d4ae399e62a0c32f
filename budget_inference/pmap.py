"""Bounded-concurrency map over a thread pool, in the spirit of ``p-map``.

Used for batches of network-bound inference calls where a third-party rate
limit caps how many requests may be in flight.

- ``concurrency`` caps the number of mapper calls running at once; new work
  is submitted only as earlier calls complete.
- Output preserves input order.
- With ``on_error`` set, a failing item is replaced by
  ``on_error(item, exc)`` and its siblings keep running. Without it, every
  item still runs to completion and the failures are raised together as an
  ``ExceptionGroup``.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait

from .logging_setup import get_logger

_logger = get_logger("budget_inference.pmap")


def p_map[InT, OutT](
    iterable: Iterable[InT],
    mapper: Callable[[InT], OutT],
    *,
    concurrency: int,
    on_error: Callable[[InT, Exception], OutT] | None = None,
) -> list[OutT]:
    """Map ``iterable`` through ``mapper`` with at most ``concurrency`` calls in flight."""

    if isinstance(concurrency, bool) or not isinstance(concurrency, int) or concurrency < 1:
        raise ValueError("concurrency must be a positive integer")

    # Not materialized up front; items are pulled as the window frees up.
    it = enumerate(iterable)

    results: dict[int, OutT] = {}
    errors: list[Exception] = []
    pending: dict[Future[OutT], tuple[int, InT]] = {}

    def _submit(pool: ThreadPoolExecutor) -> bool:
        try:
            idx, item = next(it)
        except StopIteration:
            return False
        pending[pool.submit(mapper, item)] = (idx, item)
        return True

    with ThreadPoolExecutor(max_workers=concurrency) as pool:
        for _ in range(concurrency):
            if not _submit(pool):
                break

        while pending:
            done, _ = wait(set(pending), return_when=FIRST_COMPLETED)
            for fut in done:
                idx, item = pending.pop(fut)
                try:
                    results[idx] = fut.result()
                except Exception as e:  # noqa: BLE001
                    if on_error is None:
                        errors.append(e)
                        continue
                    _logger.warning(
                        "p_map:item_failed position=%d error=%s", idx, e.__class__.__name__
                    )
                    results[idx] = on_error(item, e)

            for _ in range(len(done)):
                if not _submit(pool):
                    break

    if errors:
        raise ExceptionGroup("p_map: one or more mapper calls failed", errors)

    return [results[i] for i in sorted(results)]


__all__ = ["p_map"]
