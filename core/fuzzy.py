"""Subsequence fuzzy matcher used for list filtering and palette suggestions.

A candidate matches when every query character appears in it, in order,
ignoring case. Matching is greedy left-to-right, so the result depends only on
the two strings.
"""

from typing import Iterable, List, Optional, Tuple

SCORE_MATCH = 16
BONUS_CONSECUTIVE = 8
BONUS_START = 24
BONUS_SEPARATOR = 12
PENALTY_GAP = 2

SEPARATORS = frozenset(" -_")


def _positions(query: str, candidate: str) -> Optional[List[int]]:
    needle = [ch.lower() for ch in query]
    if not needle:
        return []
    positions: List[int] = []
    qi = 0
    for idx, ch in enumerate(candidate):
        if ch.lower() == needle[qi]:
            positions.append(idx)
            qi += 1
            if qi == len(needle):
                return positions
    return None


def match_positions(query: str, candidate: str) -> Optional[List[int]]:
    """Indices of `candidate` matched by `query`, or None when it does not match."""
    return _positions(query or "", candidate or "")


def score(query: str, candidate: str) -> Optional[int]:
    """Score `candidate` against `query`; None when it is not a subsequence match."""
    positions = _positions(query or "", candidate or "")
    if positions is None:
        return None
    if not positions:
        return 0

    total = 0
    run_bonus = 0
    prev: Optional[int] = None
    for idx in positions:
        total += SCORE_MATCH
        if prev is not None and idx == prev + 1:
            run_bonus += BONUS_CONSECUTIVE
            total += run_bonus
        else:
            run_bonus = 0
        if idx > 0 and candidate[idx - 1] in SEPARATORS:
            total += BONUS_SEPARATOR
        prev = idx

    if positions[0] == 0:
        total += BONUS_START

    gaps = (positions[-1] - positions[0] + 1) - len(positions)
    total -= PENALTY_GAP * gaps
    return total


def rank_key(query: str, candidate: str) -> Optional[Tuple[int, int, str]]:
    """Sort key placing better matches first: score desc, length asc, then text."""
    value = score(query, candidate)
    if value is None:
        return None
    return (-value, len(candidate), candidate)


def rank(query: str, candidates: Iterable[str]) -> List[Tuple[str, int]]:
    """Matching candidates with their scores, best first."""
    scored = []
    for candidate in candidates:
        key = rank_key(query, candidate)
        if key is not None:
            scored.append((key, candidate))
    scored.sort(key=lambda item: item[0])
    return [(candidate, -key[0]) for key, candidate in scored]


__all__ = ["score", "rank", "rank_key", "match_positions"]
