"""Payee name normalization shared by the clusterer, learner and payee rules.

Three flavours exist because each consumer compares names differently:

- :func:`normalize_for_comparison` keeps word boundaries so edit distance and
  prefix checks see ``"amazon us"`` rather than ``"amazonus"``.
- :func:`normalize_payee_name` is the identity key stored on payee rules.
- :func:`pattern_key` is the (truncated) key historical patterns are grouped by.

Only ASCII letters and digits survive; accented characters are dropped rather
than transliterated.
"""

from __future__ import annotations

import re

_NON_ALNUM_SPACE_RE = re.compile(r"[^a-z0-9\s]")
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")
_WHITESPACE_RE = re.compile(r"\s+")

# Bank descriptors often carry long trailing reference codes; the learner only
# looks at the leading part of the name.
PATTERN_KEY_MAX_LEN: int = 30


def normalize_for_comparison(name: str | None) -> str:
    if not name:
        return ""
    s = _NON_ALNUM_SPACE_RE.sub("", name.lower())
    return _WHITESPACE_RE.sub(" ", s).strip()


def normalize_payee_name(name: str | None) -> str:
    """Lowercase ``name`` and strip everything but ``[a-z0-9]``."""

    if not name:
        return ""
    return _NON_ALNUM_RE.sub("", name.lower())


def pattern_key(name: str | None) -> str:
    return normalize_payee_name(name)[:PATTERN_KEY_MAX_LEN]


__all__ = [
    "PATTERN_KEY_MAX_LEN",
    "normalize_for_comparison",
    "normalize_payee_name",
    "pattern_key",
]
