"""Public interface for the ``budget_inference`` package.

Matching and inference engine for a personal-finance TUI: transfer-pair
detection, payee duplicate clustering, payee -> category pattern learning and
a persistent response cache. This module only re-exports the stable import
surface; there is no runtime logic here.
"""

from .cache import CacheStats, ResponseCache, compute_cache_key
from .duplicates import duplicate_group_count, find_duplicate_groups, pair_similarity
from .history import build_payee_patterns, find_matching_patterns, format_patterns_for_prompt
from .models import (
    AccountRecord,
    CategorizationResult,
    CategoryRecord,
    DuplicateGroup,
    PayeePattern,
    PayeeRecord,
    PayeeSnapshot,
    TransactionRecord,
    TransferPair,
    validate_records,
)
from .normalizers import normalize_for_comparison, normalize_payee_name
from .transfers import (
    detect_transfers,
    find_transfer_pair,
    is_transfer_transaction,
    other_transaction,
)

__all__ = [
    # Matchers
    "detect_transfers",
    "find_transfer_pair",
    "is_transfer_transaction",
    "other_transaction",
    "find_duplicate_groups",
    "duplicate_group_count",
    "pair_similarity",
    "build_payee_patterns",
    "find_matching_patterns",
    "format_patterns_for_prompt",
    # Cache
    "ResponseCache",
    "CacheStats",
    "compute_cache_key",
    # Normalization
    "normalize_for_comparison",
    "normalize_payee_name",
    # Models / types
    "TransactionRecord",
    "AccountRecord",
    "CategoryRecord",
    "PayeeSnapshot",
    "PayeeRecord",
    "TransferPair",
    "DuplicateGroup",
    "PayeePattern",
    "CategorizationResult",
    "validate_records",
]
