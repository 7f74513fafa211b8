"""Ranking snapshot boundary and manual ranking rules."""
import json

import pytest

from app.services.diagnostics import RANKING_PAYLOAD_INVALID, RecordingDiagnostics
from app.services.errors import ManualRankingError
from app.services.manual_ranking import build_manual_ranking, reconcile_manual_ranking
from app.services.ranking_store import SOURCE_MANUAL, dump_ranking, load_ranking
from app.services.standings_calculator import TeamStanding


def rows():
    return [
        TeamStanding(team_id=1, team_name="Lions", position=1, points=4, matches_played=2, wins=1, draws=1),
        TeamStanding(team_id=2, team_name="Bears", position=1, points=4, matches_played=2, wins=1, draws=1),
        TeamStanding(team_id=3, team_name="Owls", position=3, points=0, matches_played=2, losses=2),
    ]


class TestLoadRanking:
    def test_round_trips_through_json_text(self):
        snapshot = load_ranking(json.dumps(dump_ranking(rows())), SOURCE_MANUAL)
        assert snapshot.standings == rows()
        assert snapshot.is_manual

    def test_none_is_absent_without_diagnostics(self):
        diagnostics = RecordingDiagnostics()
        assert load_ranking(None, diagnostics=diagnostics).is_absent
        assert diagnostics.events == []

    @pytest.mark.parametrize(
        "payload",
        [
            "{not json",
            '{"team_id": 1}',
            [{"team_name": "no id", "position": 1}],
            [{"team_id": "x", "team_name": "Lions", "position": 1}],
        ],
    )
    def test_malformed_payload_is_absent(self, payload):
        diagnostics = RecordingDiagnostics()
        snapshot = load_ranking(payload, diagnostics=diagnostics, block_name="A")
        assert snapshot.is_absent
        assert not snapshot.is_manual
        (event,) = diagnostics.named(RANKING_PAYLOAD_INVALID)
        assert event.fields["block"] == "A"


class TestManualRanking:
    def test_positions_are_applied_and_sorted(self):
        ranked = build_manual_ranking(rows(), {1: 2, 2: 1, 3: 3})
        assert [(s.team_name, s.position) for s in ranked] == [("Bears", 1), ("Lions", 2), ("Owls", 3)]
        assert ranked[0].points == 4

    def test_shared_positions_are_allowed(self):
        ranked = build_manual_ranking(rows(), {1: 1, 2: 1, 3: 3})
        assert [s.position for s in ranked] == [1, 1, 3]

    @pytest.mark.parametrize(
        "positions",
        [
            {1: 1, 2: 2},
            {1: 1, 2: 2, 3: 3, 4: 4},
            {1: 1, 2: 2, 3: 4},
            {1: 0, 2: 2, 3: 3},
            {1: 2, 2: 2, 3: 3},
        ],
    )
    def test_invalid_submissions_raise(self, positions):
        with pytest.raises(ManualRankingError):
            build_manual_ranking(rows(), positions)

    def test_kept_while_statistics_are_unchanged(self):
        manual = build_manual_ranking(rows(), {1: 2, 2: 1, 3: 3})
        fresh = [s.with_position(0) for s in rows()]
        fresh[0].team_name = "Lions FC"
        kept = reconcile_manual_ranking(manual, fresh)
        assert [(s.team_name, s.position) for s in kept] == [("Bears", 1), ("Lions FC", 2), ("Owls", 3)]

    def test_discarded_when_a_result_changes(self):
        manual = build_manual_ranking(rows(), {1: 2, 2: 1, 3: 3})
        fresh = rows()
        fresh[2].points = 3
        fresh[2].wins = 1
        assert reconcile_manual_ranking(manual, fresh) is None

    def test_discarded_when_the_team_set_changes(self):
        manual = build_manual_ranking(rows(), {1: 2, 2: 1, 3: 3})
        fresh = rows() + [TeamStanding(team_id=4, team_name="Crows")]
        assert reconcile_manual_ranking(manual, fresh) is None
