"""Whole-word, case-insensitive keyword counting."""

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable


@lru_cache(maxsize=256)
def _pattern(keyword: str) -> re.Pattern[str]:
    # Lookarounds instead of \b so keywords ending in symbols ("C++") still match.
    return re.compile(rf"(?<!\w){re.escape(keyword)}(?!\w)", re.IGNORECASE)


def score_keywords(text: str, keywords: Iterable[str]) -> dict[str, int]:
    """Return ``{keyword: occurrences}`` for every keyword in *keywords*.

    Absent keywords map to ``0``; blank keywords are ignored.  An empty
    keyword list yields an empty dict.
    """
    counts: dict[str, int] = {}
    for keyword in keywords:
        if not keyword or not keyword.strip():
            continue
        counts[keyword] = len(_pattern(keyword.strip()).findall(text or ""))
    return counts


def total_matches(counts: dict[str, int]) -> int:
    """Sum of all per-keyword counts."""
    return sum(counts.values())
