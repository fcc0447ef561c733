from __future__ import annotations

from dataclasses import dataclass
from enum import Enum, IntEnum
from typing import Iterator, Optional, Sequence

from fpick.domain.fuzzy import fuzzy_score
from fpick.domain.models import PRIMARY_WEIGHT, Item, ItemKind

TIER_GAP = 1_000_000
MATCHER_MULTIPLIER = 100
MAX_MATCHER_SCORE = 8_999
FRECENCY_MULTIPLIER = 10

EXACT_TIER_GAP = 100_000
EXACT_PIN_BOOST = 50_000


class MatchMode(str, Enum):
    FUZZY = "fuzzy"
    EXACT = "exact"


class Tier(IntEnum):
    """Fuzzy-mode tiers, higher value ranks higher."""

    FUZZY = 1
    PINNED_FUZZY = 2
    SECONDARY_WORD_START = 3
    PRIMARY_WORD_START = 4
    SECONDARY_PREFIX = 5
    PRIMARY_PREFIX = 6
    SECONDARY_EXACT = 7
    PRIMARY_EXACT = 8
    PINNED_SECONDARY_WORD_START = 9
    PINNED_PRIMARY_WORD_START = 10
    PINNED_SECONDARY_PREFIX = 11
    PINNED_PRIMARY_PREFIX = 12
    PINNED_SECONDARY_EXACT = 13
    PINNED_PRIMARY_EXACT = 14


class ExactTier(IntEnum):
    SECONDARY_CONTAINS = 1
    PRIMARY_CONTAINS = 2
    SECONDARY_PREFIX = 3
    PRIMARY_PREFIX = 4
    SECONDARY_EXACT = 5
    PRIMARY_EXACT = 6


_EXACT = "exact"
_PREFIX = "prefix"
_WORD_START = "word_start"

_STRUCTURAL_TIERS: dict[tuple[str, bool, bool], Tier] = {
    (_EXACT, True, True): Tier.PINNED_PRIMARY_EXACT,
    (_EXACT, False, True): Tier.PINNED_SECONDARY_EXACT,
    (_PREFIX, True, True): Tier.PINNED_PRIMARY_PREFIX,
    (_PREFIX, False, True): Tier.PINNED_SECONDARY_PREFIX,
    (_WORD_START, True, True): Tier.PINNED_PRIMARY_WORD_START,
    (_WORD_START, False, True): Tier.PINNED_SECONDARY_WORD_START,
    (_EXACT, True, False): Tier.PRIMARY_EXACT,
    (_EXACT, False, False): Tier.SECONDARY_EXACT,
    (_PREFIX, True, False): Tier.PRIMARY_PREFIX,
    (_PREFIX, False, False): Tier.SECONDARY_PREFIX,
    (_WORD_START, True, False): Tier.PRIMARY_WORD_START,
    (_WORD_START, False, False): Tier.SECONDARY_WORD_START,
}


@dataclass(frozen=True)
class ScoringConfig:
    mode: MatchMode = MatchMode.FUZZY
    prefix_depth: int = 3
    match_nth: tuple[int, ...] = ()
    explain: bool = False


@dataclass(frozen=True)
class ScoreBreakdown:
    tier: str
    bucket_score: int
    matcher_score: int
    frecency_boost: int

    @property
    def total(self) -> int:
        return self.bucket_score + self.matcher_score + self.frecency_boost


@dataclass(frozen=True)
class _Field:
    text: str
    weight: int
    primary: bool


EMPTY_QUERY_BREAKDOWN = ScoreBreakdown(tier="EMPTY_QUERY", bucket_score=0, matcher_score=0, frecency_boost=0)


def frecency_boost(item: Item) -> int:
    return round(item.frecency * FRECENCY_MULTIPLIER)


def _is_word_start(text: str, query: str) -> bool:
    return any(word.startswith(query) for word in text.split())


def normalize_query(query: str) -> str:
    return query.strip().lower()


def _quoted(query: str) -> Optional[str]:
    if len(query) >= 2 and query[0] == query[-1] and query[0] in ("'", '"'):
        return query[1:-1]
    return None


class Scorer:
    """Maps an (item, query) pair to a single comparable score.

    Items that reach no tier are excluded (``None``). Tier buckets are spaced
    so that the matcher and frecency terms added inside a tier can never lift
    an item into the next one.
    """

    def __init__(self, config: Optional[ScoringConfig] = None) -> None:
        self.config = config or ScoringConfig()

    def score(self, item: Item, query: str) -> Optional[int]:
        breakdown = self.evaluate(item, query)
        return None if breakdown is None else breakdown.total

    def evaluate(self, item: Item, query: str) -> Optional[ScoreBreakdown]:
        q = normalize_query(query)
        if not q:
            return EMPTY_QUERY_BREAKDOWN
        fields = list(self._fields(item))
        if not fields:
            return None
        if self.config.mode == MatchMode.EXACT:
            return self._evaluate_exact(item, q, fields)
        return self._evaluate_fuzzy(item, q, fields)

    def _fields(self, item: Item) -> Iterator[_Field]:
        if self.config.match_nth:
            columns = item.columns_lower
            picked = [columns[n - 1] for n in self.config.match_nth if 0 < n <= len(columns)]
            for i, text in enumerate(picked):
                yield _Field(text=text, weight=PRIMARY_WEIGHT if i == 0 else 1, primary=i == 0)
            return

        yield _Field(text=item.primary_lower, weight=PRIMARY_WEIGHT, primary=True)
        for i, text in enumerate(item.secondary_lower):
            yield _Field(text=text, weight=item.weight_of(i), primary=False)

    def _evaluate_fuzzy(self, item: Item, q: str, fields: Sequence[_Field]) -> Optional[ScoreBreakdown]:
        structural = self._structural_match(q, fields)
        if structural is not None:
            kind, is_primary, matched = structural
            tier = _STRUCTURAL_TIERS[(kind, is_primary, item.pinned)]
            matcher = self._matcher_score(q, matched)
        else:
            matcher = self._matcher_score(q, fields)
            if matcher <= 0:
                return None
            tier = Tier.PINNED_FUZZY if item.pinned else Tier.FUZZY

        return ScoreBreakdown(
            tier=tier.name,
            bucket_score=int(tier) * TIER_GAP,
            matcher_score=matcher * MATCHER_MULTIPLIER,
            frecency_boost=frecency_boost(item),
        )

    def _structural_match(
        self, q: str, fields: Sequence[_Field]
    ) -> Optional[tuple[str, bool, list[_Field]]]:
        primary = [f for f in fields if f.primary]
        secondary = [f for f in fields if not f.primary]

        checks = [
            (_EXACT, lambda text: text == q),
            (_PREFIX, lambda text: text.startswith(q)),
        ]
        if len(q) <= self.config.prefix_depth:
            checks.append((_WORD_START, lambda text: _is_word_start(text, q)))

        for kind, check in checks:
            for is_primary, group in ((True, primary), (False, secondary)):
                matched = [f for f in group if check(f.text)]
                if matched:
                    return kind, is_primary, matched
        return None

    @staticmethod
    def _matcher_score(q: str, fields: Sequence[_Field]) -> int:
        best = 0
        for f in fields:
            raw = fuzzy_score(f.text, q)
            if raw is None:
                continue
            best = max(best, raw * f.weight)
        return min(best, MAX_MATCHER_SCORE)

    def _evaluate_exact(self, item: Item, q: str, fields: Sequence[_Field]) -> Optional[ScoreBreakdown]:
        quoted = _quoted(q)
        if quoted is not None:
            checks = [(ExactTier.PRIMARY_EXACT, ExactTier.SECONDARY_EXACT, lambda text: text == quoted)]
        else:
            checks = [
                (ExactTier.PRIMARY_EXACT, ExactTier.SECONDARY_EXACT, lambda text: text == q),
                (ExactTier.PRIMARY_PREFIX, ExactTier.SECONDARY_PREFIX, lambda text: text.startswith(q)),
                (ExactTier.PRIMARY_CONTAINS, ExactTier.SECONDARY_CONTAINS, lambda text: q in text),
            ]

        for primary_tier, secondary_tier, check in checks:
            for f in fields:
                if f.primary and check(f.text):
                    return self._exact_breakdown(item, primary_tier)
            for f in fields:
                if not f.primary and check(f.text):
                    return self._exact_breakdown(item, secondary_tier)
        return None

    @staticmethod
    def _exact_breakdown(item: Item, tier: ExactTier) -> ScoreBreakdown:
        bucket = int(tier) * EXACT_TIER_GAP
        if item.pinned:
            bucket += EXACT_PIN_BOOST
        return ScoreBreakdown(
            tier=f"EXACT_{tier.name}",
            bucket_score=bucket,
            matcher_score=0,
            frecency_boost=frecency_boost(item),
        )


def sort_key(item: Item) -> tuple[int, str, int]:
    """Order for a non-empty query: score, then name (apps) or input order."""
    name = item.primary_lower if item.kind == ItemKind.APP else ""
    return (-item.score, name, item.ordinal)


def default_order_key(item: Item) -> tuple[int, float, str, int]:
    """Order for an empty query.

    Apps: pinned first, then frecency, then name. Lines and clipboard records
    keep their input order.
    """
    if item.kind == ItemKind.APP:
        return (0 if item.pinned else 1, -item.frecency, item.primary_lower, item.ordinal)
    return (0, 0.0, "", item.ordinal)


def filter_and_rank(items: Sequence[Item], query: str, scorer: Optional[Scorer] = None) -> list[Item]:
    """One-shot ranking of ``items`` for ``query`` without a FilterState."""
    scorer = scorer or Scorer()
    if not normalize_query(query):
        for item in items:
            item.score = 0
        return sorted(items, key=default_order_key)

    matched: list[Item] = []
    for item in items:
        score = scorer.score(item, query)
        if score is None:
            continue
        item.score = score
        matched.append(item)
    matched.sort(key=sort_key)
    return matched
