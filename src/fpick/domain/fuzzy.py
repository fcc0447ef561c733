"""Subsequence fuzzy matching.

``fuzzy_score`` answers two questions about a lower-cased (haystack, needle)
pair: is the needle a subsequence of the haystack, and how good is the match.

Scoring:
- every matched character earns SCORE_MATCH
- a character that starts a word (after whitespace or punctuation, or at a
  lower->upper camel hump) earns a boundary bonus, doubled for the first
  needle character
- runs of consecutive matches keep the bonus of the run's first character
- gaps cost GAP_START for the first skipped character, GAP_EXTENSION after
- a contiguous occurrence of the whole needle gets SUBSTRING_BONUS per char,
  which keeps substring matches above any scattered match of the same needle
"""

from __future__ import annotations

from typing import Optional

from rapidfuzz.distance import LCSseq

SCORE_MATCH = 16
GAP_START = -3
GAP_EXTENSION = -1
BONUS_BOUNDARY = SCORE_MATCH // 2
BONUS_NON_WORD = SCORE_MATCH // 2
BONUS_CAMEL = BONUS_BOUNDARY + GAP_EXTENSION
BONUS_CONSECUTIVE = -(GAP_START + GAP_EXTENSION)
BONUS_FIRST_CHAR_MULTIPLIER = 2
SUBSTRING_BONUS = 12

_WHITE = 0
_DELIMITER = 1
_NON_WORD = 2
_LOWER = 3
_UPPER = 4
_NUMBER = 5

_DELIMITERS = frozenset("/,:;|-_.")


def _char_class(ch: str) -> int:
    if ch.isspace():
        return _WHITE
    if ch in _DELIMITERS:
        return _DELIMITER
    if ch.isdigit():
        return _NUMBER
    if ch.isupper():
        return _UPPER
    if ch.isalnum():
        return _LOWER
    return _NON_WORD


def _bonus_for(prev_class: int, cls: int) -> int:
    if cls > _NON_WORD:
        if prev_class in (_WHITE, _DELIMITER):
            return BONUS_BOUNDARY
        if prev_class == _NON_WORD:
            return BONUS_BOUNDARY
        if prev_class == _LOWER and cls == _UPPER:
            return BONUS_CAMEL
        if prev_class != _NUMBER and cls == _NUMBER:
            return BONUS_CAMEL
        return 0
    if cls in (_WHITE, _DELIMITER):
        return BONUS_BOUNDARY
    return BONUS_NON_WORD


def _score_window(haystack: str, needle: str, start: int, end: int) -> int:
    score = 0
    in_gap = False
    consecutive = 0
    first_bonus = 0
    pidx = 0
    prev_class = _char_class(haystack[start - 1]) if start > 0 else _WHITE

    for idx in range(start, end + 1):
        ch = haystack[idx]
        cls = _char_class(ch)
        if pidx < len(needle) and ch == needle[pidx]:
            score += SCORE_MATCH
            bonus = _bonus_for(prev_class, cls)
            if consecutive == 0:
                first_bonus = bonus
            else:
                if bonus >= BONUS_BOUNDARY and bonus > first_bonus:
                    first_bonus = bonus
                bonus = max(bonus, first_bonus, BONUS_CONSECUTIVE)
            if pidx == 0:
                score += bonus * BONUS_FIRST_CHAR_MULTIPLIER
            else:
                score += bonus
            in_gap = False
            consecutive += 1
            pidx += 1
        else:
            score += GAP_EXTENSION if in_gap else GAP_START
            in_gap = True
            consecutive = 0
            first_bonus = 0
        prev_class = cls
    return score


def _tightest_window(haystack: str, needle: str) -> Optional[tuple[int, int]]:
    pidx = 0
    end = -1
    for idx, ch in enumerate(haystack):
        if ch == needle[pidx]:
            pidx += 1
            if pidx == len(needle):
                end = idx
                break
    if end < 0:
        return None

    # Walk back from the end to find the latest start of the same match.
    pidx = len(needle) - 1
    start = end
    for idx in range(end, -1, -1):
        if haystack[idx] == needle[pidx]:
            pidx -= 1
            if pidx < 0:
                start = idx
                break
    return start, end


def _substring_score(haystack: str, needle: str) -> Optional[int]:
    best: Optional[int] = None
    pos = haystack.find(needle)
    while pos >= 0:
        score = _score_window(haystack, needle, pos, pos + len(needle) - 1)
        if best is None or score > best:
            best = score
        pos = haystack.find(needle, pos + 1)
    if best is None:
        return None
    return best + SUBSTRING_BONUS * len(needle)


def is_subsequence(haystack: str, needle: str) -> bool:
    if len(needle) > len(haystack):
        return False
    return LCSseq.similarity(needle, haystack) == len(needle)


def fuzzy_score(haystack: str, needle: str) -> Optional[int]:
    """Score ``needle`` as a subsequence of ``haystack``; ``None`` if it is not one."""
    if not needle:
        return 0
    if not is_subsequence(haystack, needle):
        return None

    score = _substring_score(haystack, needle)
    if score is None:
        window = _tightest_window(haystack, needle)
        if window is None:  # pragma: no cover
            return None
        score = _score_window(haystack, needle, *window)
    return max(score, 1)
