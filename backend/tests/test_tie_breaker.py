"""Ranking order and shared positions."""
from app.services.standings_calculator import (
    STATUS_COMPLETED,
    MatchResult,
    TeamRef,
    calculate_block_standings,
)
from app.services.tie_breaker import head_to_head, name_sort_key, rank_standings, tied_groups

_ids = iter(range(1, 10_000))


def played(t1, t2, s1, s2):
    match_id = next(_ids)
    return MatchResult(
        match_id=match_id,
        match_code=f"M{match_id}",
        team1_id=t1,
        team2_id=t2,
        team1_score=str(s1),
        team2_score=str(s2),
        winner_team_id=None if s1 == s2 else (t1 if s1 > s2 else t2),
        is_draw=s1 == s2,
        status=STATUS_COMPLETED,
        is_confirmed=True,
    )


def ranked(teams, matches):
    return rank_standings(calculate_block_standings(teams, matches), matches)


def summary(rows):
    return [(s.team_name, s.position) for s in rows]


class TestPositions:
    def test_level_pair_shares_first_place_and_numbering_skips(self):
        teams = [TeamRef(1, "A"), TeamRef(2, "B"), TeamRef(3, "C"), TeamRef(4, "D")]
        matches = [
            played(1, 2, 1, 1),
            played(1, 3, 1, 0),
            played(2, 3, 1, 0),
            played(1, 4, 1, 0),
            played(2, 4, 1, 0),
            played(3, 4, 1, 0),
        ]
        assert [s.position for s in ranked(teams, matches)] == [1, 1, 3, 4]

    def test_head_to_head_beats_goal_difference(self):
        """Bravo and Alpha both on 6; Bravo won their meeting."""
        teams = [TeamRef(1, "Alpha"), TeamRef(2, "Bravo"), TeamRef(3, "Charlie"), TeamRef(4, "Delta")]
        matches = [
            played(2, 1, 1, 0),
            played(1, 3, 5, 0),
            played(1, 4, 5, 0),
            played(3, 2, 1, 0),
            played(2, 4, 1, 0),
            played(3, 4, 0, 0),
        ]
        assert summary(ranked(teams, matches)) == [
            ("Bravo", 1),
            ("Alpha", 2),
            ("Charlie", 3),
            ("Delta", 4),
        ]

    def test_split_meetings_with_different_goals_fall_back_to_name(self):
        teams = [TeamRef(1, "Zulu"), TeamRef(2, "Yankee")]
        matches = [played(1, 2, 3, 0), played(2, 1, 1, 0)]
        rows = ranked(teams, matches)
        assert summary(rows) == [("Yankee", 1), ("Zulu", 2)]

    def test_unplayed_teams_share_a_position(self):
        teams = [TeamRef(1, "Kestrels"), TeamRef(2, "Falcons"), TeamRef(3, "Owls")]
        rows = ranked(teams, [])
        assert summary(rows) == [("Falcons", 1), ("Kestrels", 1), ("Owls", 1)]

    def test_inputs_are_not_mutated(self):
        teams = [TeamRef(1, "A"), TeamRef(2, "B")]
        matches = [played(1, 2, 2, 0)]
        standings = calculate_block_standings(teams, matches)
        rank_standings(standings, matches)
        assert all(s.position == 0 for s in standings)

    def test_input_order_does_not_matter(self):
        teams = [TeamRef(1, "A"), TeamRef(2, "B"), TeamRef(3, "C"), TeamRef(4, "D")]
        matches = [played(1, 2, 1, 1), played(3, 4, 2, 1), played(1, 3, 0, 0)]
        standings = calculate_block_standings(teams, matches)
        forward = rank_standings(standings, matches)
        backward = rank_standings(list(reversed(standings)), list(reversed(matches)))
        assert forward == backward


class TestNameKey:
    def test_width_and_case_are_normalised(self):
        assert name_sort_key("ＢＥＴＡ") == name_sort_key("beta")

    def test_fullwidth_name_sorts_with_its_ascii_form(self):
        teams = [TeamRef(1, "ｃｈａｒｌｉｅ"), TeamRef(2, "Bravo"), TeamRef(3, "delta")]
        assert [s.team_name for s in ranked(teams, [])] == ["Bravo", "ｃｈａｒｌｉｅ", "delta"]

    def test_hiragana_and_katakana_collate_together(self):
        teams = [TeamRef(1, "いぬ"), TeamRef(2, "アヒル"), TeamRef(3, "うし"), TeamRef(4, "ｴﾋﾞ")]
        rows = ranked(teams, [])
        assert [s.team_name for s in rows] == ["アヒル", "いぬ", "うし", "ｴﾋﾞ"]
        assert [s.position for s in rows] == [1, 1, 1, 1]

    def test_kana_collation_decides_a_split_meeting(self):
        teams = [TeamRef(1, "うし"), TeamRef(2, "アリ")]
        matches = [played(1, 2, 3, 0), played(2, 1, 1, 0)]
        assert summary(ranked(teams, matches)) == [("アリ", 1), ("うし", 2)]


def test_head_to_head_only_counts_mutual_matches():
    matches = [played(1, 2, 2, 1), played(1, 3, 5, 0), played(2, 1, 1, 1)]
    record = head_to_head(1, 2, matches)
    assert (record.team_a_wins, record.team_b_wins, record.draws) == (1, 0, 1)
    assert (record.team_a_goals, record.team_b_goals) == (3, 2)
    assert record.matches == 2
    assert not record.is_level


def test_tied_groups():
    teams = [TeamRef(1, "A"), TeamRef(2, "B"), TeamRef(3, "C")]
    matches = [played(1, 3, 1, 0), played(2, 3, 1, 0)]
    groups = tied_groups(ranked(teams, matches))
    assert [[s.team_name for s in g] for g in groups] == [["A", "B"]]
