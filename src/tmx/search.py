"""Fuzzy subsequence matching of a query against session names."""

from __future__ import annotations

import unicodedata
from typing import Sequence

from tmx.models import MatchResult, Session

MATCH_SCORE = 16
RUN_BONUS = 6
RUN_BONUS_CAP = 24
BOUNDARY_BONUS = 12
START_BONUS = 8
GAP_PENALTY = 2
GAP_PENALTY_CAP = 12
EXACT_BONUS = 10_000

_SEPARATORS = frozenset("/_-.: ")


def fold_char(ch: str) -> str:
    """Case-fold ch and strip its diacritics, always yielding one character.

    Keeping one output character per input character lets match offsets
    index straight into the original name.
    """
    decomposed = unicodedata.normalize("NFKD", ch)
    stripped = "".join(c for c in decomposed if not unicodedata.combining(c))
    if len(stripped) != 1:
        stripped = ch
    return stripped.casefold()[0]


def fold(text: str) -> str:
    return "".join(fold_char(ch) for ch in text)


def _is_boundary(name: str, idx: int) -> bool:
    if idx == 0:
        return True
    prev = name[idx - 1]
    if prev in _SEPARATORS:
        return True
    return prev.islower() and name[idx].isupper()


def _score_from(query: str, name: str, folded: str, start: int) -> tuple[int, list[int]] | None:
    positions = [start]
    idx = start
    for needle in query[1:]:
        idx = folded.find(needle, idx + 1)
        if idx < 0:
            return None
        positions.append(idx)

    score = 0
    run = 0
    prev = -1
    for idx in positions:
        score += MATCH_SCORE
        if prev >= 0 and idx == prev + 1:
            run += 1
            score += min(RUN_BONUS_CAP, run * RUN_BONUS)
        else:
            run = 0
            if prev >= 0:
                score -= min(GAP_PENALTY_CAP, (idx - prev - 1) * GAP_PENALTY)
        if _is_boundary(name, idx):
            score += BOUNDARY_BONUS
        prev = idx
    if positions[0] == 0:
        score += START_BONUS
    return score, positions


def fuzzy_score(query: str, name: str) -> tuple[int, frozenset[int]] | None:
    """Best score of query as a subsequence of name, with matched offsets.

    Returns None when query is not a subsequence. Scores are always >= 1.
    """
    folded_query = fold(query)
    folded = fold(name)
    if not folded_query:
        return 0, frozenset()

    best: tuple[int, list[int]] | None = None
    start = folded.find(folded_query[0])
    while start >= 0:
        candidate = _score_from(folded_query, name, folded, start)
        if candidate is None:
            break
        if best is None or candidate[0] > best[0]:
            best = candidate
        start = folded.find(folded_query[0], start + 1)

    if best is None:
        return None
    score, positions = best
    score -= min(MATCH_SCORE, (len(folded) - len(folded_query)) // 4)
    if folded == folded_query:
        score += EXACT_BONUS
    return max(1, score), frozenset(positions)


def fuzzy_match_sessions(sessions: Sequence[Session], query: str) -> list[MatchResult]:
    """Rank sessions by how well their names match query, best first.

    An empty query keeps every session in its original order with score 0.
    """
    if not query:
        return [MatchResult(source_index=i, score=0) for i in range(len(sessions))]

    results: list[MatchResult] = []
    for i, session in enumerate(sessions):
        scored = fuzzy_score(query, session.name)
        if scored is None:
            continue
        score, positions = scored
        results.append(MatchResult(source_index=i, score=score, matched_positions=positions))

    # list.sort is stable, so equal scores keep list order.
    results.sort(key=lambda r: r.score, reverse=True)
    return results
