from __future__ import annotations

from fpick.domain.models import DesktopApp, Item, item_from_app, item_from_line
from fpick.domain.search import (
    TIER_GAP,
    MatchMode,
    Scorer,
    ScoringConfig,
    Tier,
    filter_and_rank,
)


def _app(name: str, command: str, ordinal: int = 0, *, pinned: bool = False, frecency: float = 0.0) -> Item:
    item = item_from_app(DesktopApp(name=name, command=command), ordinal)
    item.pinned = pinned
    item.frecency = frecency
    return item


def _pool() -> list[Item]:
    return [
        _app("Firefox", "firefox %u", 0),
        _app("Files", "nautilus", 1),
        _app("Firebird", "firebird", 2, pinned=True, frecency=333.3),
    ]


def _names(items: list[Item]) -> list[str]:
    return [i.primary_text for i in items]


def test_fire_ranks_pinned_prefix_first_and_excludes_files() -> None:
    assert _names(filter_and_rank(_pool(), "fire")) == ["Firebird", "Firefox"]


def test_empty_query_pinned_first_then_alphabetical() -> None:
    assert _names(filter_and_rank(_pool(), "")) == ["Firebird", "Files", "Firefox"]


def test_empty_query_scores_zero() -> None:
    assert all(item.score == 0 for item in filter_and_rank(_pool(), ""))


def test_pinned_exact_beats_unpinned_fuzzy_regardless_of_usage() -> None:
    scorer = Scorer()
    exact_score = scorer.score(_app("Term", "term", pinned=True), "term")
    fuzzy_score = scorer.score(_app("Teleport Manager", "tpm", frecency=999.9), "term")
    assert exact_score is not None and fuzzy_score is not None
    assert exact_score > fuzzy_score


def test_tier_terms_never_cross_a_tier_gap() -> None:
    scorer = Scorer()
    item = _app("Teleport Manager", "tpm", frecency=999.99)
    breakdown = scorer.evaluate(item, "term")
    assert breakdown is not None
    assert breakdown.tier == Tier.FUZZY.name
    assert breakdown.matcher_score + breakdown.frecency_boost < TIER_GAP


def test_primary_exact_and_secondary_exact_tiers() -> None:
    scorer = Scorer()
    primary = scorer.evaluate(_app("Kitty", "kitty"), "kitty")
    secondary = scorer.evaluate(_app("Terminal", "kitty"), "kitty")
    assert primary is not None and secondary is not None
    assert primary.tier == Tier.PRIMARY_EXACT.name
    assert secondary.tier == Tier.SECONDARY_EXACT.name
    assert primary.total > secondary.total


def test_word_start_only_within_prefix_depth() -> None:
    item = _app("Visual Studio Code", "code")
    shallow = Scorer(ScoringConfig(prefix_depth=3)).evaluate(item, "stu")
    deep = Scorer(ScoringConfig(prefix_depth=2)).evaluate(item, "stu")
    assert shallow is not None and deep is not None
    assert shallow.tier == Tier.PRIMARY_WORD_START.name
    assert deep.tier == Tier.FUZZY.name


def test_secondary_fields_make_items_findable() -> None:
    item = _app("Files", "nautilus")
    breakdown = Scorer().evaluate(item, "naut")
    assert breakdown is not None
    assert breakdown.tier == Tier.SECONDARY_PREFIX.name


def test_app_ties_break_on_name_not_input_order() -> None:
    items = [_app("Bravo X", "b", 0), _app("Alpha X", "a", 1)]
    ranked = filter_and_rank(items, "x")
    assert ranked[0].score == ranked[1].score
    assert _names(ranked) == ["Alpha X", "Bravo X"]


def test_line_ties_break_on_input_order() -> None:
    items = [item_from_line("zeta one", 0), item_from_line("alpha one", 1)]
    ranked = filter_and_rank(items, "one")
    assert [i.ordinal for i in ranked] == [0, 1]


def test_exact_mode_cascade_and_pin_boost() -> None:
    scorer = Scorer(ScoringConfig(mode=MatchMode.EXACT))
    ranked = filter_and_rank(_pool(), "fire", scorer)
    assert _names(ranked) == ["Firebird", "Firefox"]
    assert ranked[0].score - ranked[1].score >= 50_000


def test_exact_mode_requires_contiguous_text() -> None:
    scorer = Scorer(ScoringConfig(mode=MatchMode.EXACT))
    assert scorer.score(_app("Firefox", "firefox"), "ffx") is None
    contains = scorer.evaluate(_app("Mozilla Firefox", "mozilla"), "fox")
    assert contains is not None
    assert contains.tier == "EXACT_PRIMARY_CONTAINS"


def test_exact_mode_quoted_query_needs_full_match() -> None:
    scorer = Scorer(ScoringConfig(mode=MatchMode.EXACT))
    assert scorer.score(_app("Firefox", "x"), '"firefox"') is not None
    assert scorer.score(_app("Firefox Nightly", "x"), '"firefox"') is None


def test_match_nth_restricts_searched_columns() -> None:
    scorer = Scorer(ScoringConfig(match_nth=(2,)))
    item = item_from_line("alpha beta", 0)
    assert scorer.score(item, "alp") is None
    assert scorer.score(item, "bet") is not None


def test_frecency_breaks_ties_inside_a_tier() -> None:
    items = [_app("Firefox", "a", 0), _app("Firefly", "b", 1, frecency=500.0)]
    assert _names(filter_and_rank(items, "firef")) == ["Firefly", "Firefox"]


def test_whitespace_query_counts_as_empty() -> None:
    ranked = filter_and_rank(_pool(), "   ")
    assert _names(ranked) == ["Firebird", "Files", "Firefox"]
    assert Scorer().score(_app("Files", "nautilus"), " ") == 0


def test_padded_query_scores_like_trimmed() -> None:
    item = _app("Firefox", "firefox")
    assert Scorer().score(item, "  fire ") == Scorer().score(item, "fire")
