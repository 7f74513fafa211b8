"""Slot key parsing, template resolution, overrides and the fallback chain."""
import pytest

from app.services.diagnostics import PROMOTION_FALLBACK_USED, RecordingDiagnostics
from app.services.errors import PromotionError, TemplatesNotFoundError
from app.services.promotion_eligibility import analyze_promotion_eligibility
from app.services.promotion_slots import (
    BlockPosition,
    Bye,
    InvalidSlotKey,
    MatchOutcome,
    parse_slot,
    try_parse_slot,
)
from app.services.slot_resolver import (
    STRATEGY_TEMPLATE,
    STRATEGY_TOP_TWO_FALLBACK,
    BlockOutcome,
    ResolutionContext,
    SourceOverride,
    TemplateEntry,
    TemplateSlotResolver,
    TopTwoFallbackResolver,
    resolve_with_fallback,
)
from app.services.standings_calculator import STATUS_COMPLETED, MatchResult, TeamStanding


class TestParseSlot:
    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("A_1", BlockPosition("A", 1)),
            ("B12_3", BlockPosition("B12", 3)),
            ("M5_winner", MatchOutcome("M5", "winner")),
            ("3P_loser", MatchOutcome("3P", "loser")),
            ("BYE", Bye()),
            (" A_2 ", BlockPosition("A", 2)),
            ("", None),
            (None, None),
        ],
    )
    def test_known_keys(self, raw, expected):
        assert parse_slot(raw) == expected

    @pytest.mark.parametrize("raw", ["A1位", "A_0", "winner", "M5_champion"])
    def test_unknown_keys_raise(self, raw):
        with pytest.raises(InvalidSlotKey):
            parse_slot(raw)
        assert try_parse_slot(raw) is None

    def test_key_round_trip(self):
        assert BlockPosition("A", 1).key == "A_1"
        assert MatchOutcome("SF1", "loser").key == "SF1_loser"


def block(name, rows, complete=True, required=(1, 2)):
    standings = tuple(
        TeamStanding(team_id=tid, team_name=team, position=pos) for tid, team, pos in rows
    )
    eligibility = analyze_promotion_eligibility(name, standings, required)
    return BlockOutcome(block_name=name, is_complete=complete, standings=standings, eligibility=eligibility)


BLOCK_A = block("A", [(1, "Lions", 1), (2, "Bears", 2), (3, "Owls", 3)])
BLOCK_B = block("B", [(4, "Falcons", 1), (5, "Kites", 2), (6, "Crows", 3)])

SEMIS = [
    TemplateEntry("SF1", "A_1", "B_2", "A1位", "B2位"),
    TemplateEntry("SF2", "B_1", "A_2", "B1位", "A2位"),
    TemplateEntry("F1", "SF1_winner", "SF2_winner", "SF1勝者", "SF2勝者", round_index=2),
]


def bracket_result(code, t1, t2, winner):
    return MatchResult(
        match_id=100,
        match_code=code,
        team1_id=t1,
        team2_id=t2,
        team1_score="2",
        team2_score="1",
        winner_team_id=winner,
        status=STATUS_COMPLETED,
        is_confirmed=True,
    )


def context(templates=SEMIS, overrides=None, blocks=(BLOCK_A, BLOCK_B), bracket=(), names=None):
    return ResolutionContext(
        templates=list(templates),
        overrides=overrides or {},
        blocks=list(blocks),
        bracket_matches=list(bracket),
        team_names=names or {},
    )


def team_ids(result):
    return {key: p.team_id for key, p in result.expected.items()}


class TestTemplateSlotResolver:
    def test_block_positions_resolve(self):
        result = TemplateSlotResolver().resolve(context())
        assert result.strategy == STRATEGY_TEMPLATE
        assert team_ids(result) == {
            ("SF1", "team1"): 1,
            ("SF1", "team2"): 5,
            ("SF2", "team1"): 4,
            ("SF2", "team2"): 2,
        }
        assert result.expected[("SF1", "team1")].source == "A_1"
        assert result.expected[("SF1", "team1")].display_name == "Lions"
        assert result.unresolved == [("F1", "team1"), ("F1", "team2")]

    def test_override_replaces_template_source(self):
        overrides = {"SF1": SourceOverride("SF1", team1_source_override="B_2")}
        result = TemplateSlotResolver().resolve(context(overrides=overrides))
        assert result.expected[("SF1", "team1")].team_id == 5
        assert result.expected[("SF1", "team1")].source == "B_2"
        # the other side keeps its template source
        assert result.expected[("SF1", "team2")].source == "B_2"

    def test_winner_and_loser_slots(self):
        bracket = [bracket_result("SF1", 1, 5, 1), bracket_result("SF2", 4, 2, 2)]
        templates = SEMIS + [TemplateEntry("3P", "SF1_loser", "SF2_loser", "SF1敗者", "SF2敗者", round_index=2)]
        names = {1: "Lions", 2: "Bears", 4: "Falcons", 5: "Kites"}
        result = TemplateSlotResolver().resolve(context(templates=templates, bracket=bracket, names=names))
        assert result.expected[("F1", "team1")].team_id == 1
        assert result.expected[("F1", "team2")].display_name == "Bears"
        assert team_ids(result)[("3P", "team1")] == 5
        assert team_ids(result)[("3P", "team2")] == 4

    def test_unconfirmed_bracket_match_releases_nothing(self):
        pending = MatchResult(match_id=1, match_code="SF1", team1_id=1, team2_id=5, winner_team_id=1)
        result = TemplateSlotResolver().resolve(context(bracket=[pending]))
        assert ("F1", "team1") not in result.expected

    def test_incomplete_block_releases_nothing(self):
        open_a = block("A", [(1, "Lions", 1), (2, "Bears", 2)], complete=False)
        result = TemplateSlotResolver().resolve(context(blocks=[open_a, BLOCK_B]))
        assert ("SF1", "team1") not in result.expected
        assert ("SF1", "team2") in result.expected

    def test_tied_position_stays_unresolved(self):
        tied_a = block("A", [(1, "Lions", 1), (2, "Bears", 1), (3, "Owls", 3)])
        result = TemplateSlotResolver().resolve(context(blocks=[tied_a, BLOCK_B]))
        assert ("SF1", "team1") in result.unresolved
        assert ("SF2", "team2") in result.unresolved

    def test_bye_never_resolves(self):
        templates = [TemplateEntry("Q1", "A_1", "BYE", "A1位", "BYE")]
        result = TemplateSlotResolver().resolve(context(templates=templates))
        assert team_ids(result) == {("Q1", "team1"): 1}
        assert result.unresolved == [("Q1", "team2")]

    def test_resolution_is_idempotent(self):
        ctx = context()
        assert TemplateSlotResolver().resolve(ctx).expected == TemplateSlotResolver().resolve(ctx).expected

    def test_no_templates_raises(self):
        with pytest.raises(TemplatesNotFoundError):
            TemplateSlotResolver().resolve(context(templates=[]))


class TestFallbackChain:
    def test_primary_result_is_used_when_it_succeeds(self):
        result = resolve_with_fallback(context())
        assert result.strategy == STRATEGY_TEMPLATE
        assert not result.used_fallback

    def test_bad_key_falls_back_to_top_two(self):
        diagnostics = RecordingDiagnostics()
        templates = SEMIS + [TemplateEntry("X1", "A-first", "B_1", "?", "B1位")]
        result = resolve_with_fallback(context(templates=templates), diagnostics=diagnostics)

        assert result.strategy == STRATEGY_TOP_TWO_FALLBACK
        assert result.used_fallback
        assert result.expected[("SF1", "team1")].team_id == 1
        assert result.expected[("X1", "team2")].team_id == 4
        assert ("X1", "team1") in result.unresolved
        (event,) = diagnostics.named(PROMOTION_FALLBACK_USED)
        assert event.fields["failed_strategy"] == STRATEGY_TEMPLATE
        assert "InvalidSlotKey" in event.fields["error"]

    def test_fallback_ignores_overrides(self):
        overrides = {"SF1": SourceOverride("SF1", team1_source_override="B_2")}
        result = TopTwoFallbackResolver().resolve(context(overrides=overrides))
        assert result.expected[("SF1", "team1")].team_id == 1

    def test_fallback_skips_ties(self):
        tied_a = block("A", [(1, "Lions", 1), (2, "Bears", 1), (3, "Owls", 3)])
        result = TopTwoFallbackResolver().resolve(context(blocks=[tied_a, BLOCK_B]))
        assert ("SF1", "team1") in result.unresolved

    def test_missing_templates_are_not_retried(self):
        with pytest.raises(TemplatesNotFoundError):
            resolve_with_fallback(context(templates=[]))

    def test_all_resolvers_failing_raises(self):
        class Broken:
            strategy = "broken"

            def resolve(self, ctx):
                raise RuntimeError("boom")

        with pytest.raises(PromotionError):
            resolve_with_fallback(context(), resolvers=[Broken(), Broken()])
