"""Row builders shared by the integration tests."""
from dataclasses import dataclass, field
from datetime import datetime
from itertools import combinations
from typing import Dict, List, Mapping, Optional, Sequence, Tuple
from uuid import uuid4

from sqlmodel import Session

from app.models.match import MATCH_COMPLETED, Match
from app.models.match_block import PHASE_FINAL, PHASE_PRELIMINARY, MatchBlock
from app.models.match_template import MatchTemplate
from app.models.team import Team
from app.models.tournament import Tournament
from app.models.tournament_format import TournamentFormat

# (match_code, team1_source, team2_source, team1_label, team2_label, round_index)
TemplateSpec = Tuple[str, str, str, str, str, int]

# match_code -> (winner_position, loser_position_start, loser_position_end)
PlacementSpec = Mapping[str, Tuple[Optional[int], Optional[int], Optional[int]]]

# Semifinals cross the two blocks; final and 3rd place come from the semis.
TWO_BLOCK_BRACKET: List[TemplateSpec] = [
    ("SF1", "A_1", "B_2", "A1位", "B2位", 1),
    ("SF2", "B_1", "A_2", "B1位", "A2位", 1),
    ("F1", "SF1_winner", "SF2_winner", "SF1勝者", "SF2勝者", 2),
    ("3P", "SF1_loser", "SF2_loser", "SF1敗者", "SF2敗者", 2),
]

TWO_BLOCK_PLACINGS: PlacementSpec = {"F1": (1, 2, 2), "3P": (3, 4, 4)}


@dataclass
class Setup:
    tournament: Tournament
    teams: Dict[str, Team] = field(default_factory=dict)
    blocks: Dict[str, MatchBlock] = field(default_factory=dict)
    matches: Dict[str, Match] = field(default_factory=dict)
    bracket_block: Optional[MatchBlock] = None

    def team_id(self, name: str) -> int:
        return self.teams[name].id

    def match_between(self, first: str, second: str) -> Match:
        pair = {self.team_id(first), self.team_id(second)}
        for m in self.matches.values():
            if {m.team1_id, m.team2_id} == pair:
                return m
        raise KeyError((first, second))


def create_tournament(
    session: Session,
    templates: Sequence[TemplateSpec] = (),
    placings: Optional[PlacementSpec] = None,
) -> Setup:
    fmt = TournamentFormat(name=f"format-{uuid4().hex[:8]}")
    session.add(fmt)
    session.commit()
    session.refresh(fmt)

    placings = placings or {}
    for code, src1, src2, label1, label2, round_index in templates:
        winner_position, loser_start, loser_end = placings.get(code, (None, None, None))
        session.add(
            MatchTemplate(
                format_id=fmt.id,
                phase=PHASE_FINAL,
                match_code=code,
                team1_source=src1,
                team2_source=src2,
                team1_display_name=label1,
                team2_display_name=label2,
                round_index=round_index,
                winner_position=winner_position,
                loser_position_start=loser_start,
                loser_position_end=loser_end,
            )
        )

    tournament = Tournament(name=f"Cup {uuid4().hex[:6]}", format_id=fmt.id)
    session.add(tournament)
    session.commit()
    session.refresh(tournament)

    setup = Setup(tournament=tournament)
    if templates:
        add_bracket(session, setup, templates)
    return setup


def add_block(session: Session, setup: Setup, block_name: str, team_names: Sequence[str]) -> MatchBlock:
    """A round-robin block: one match per pair, coded <block><n>."""
    block = MatchBlock(tournament_id=setup.tournament.id, phase=PHASE_PRELIMINARY, block_name=block_name)
    session.add(block)
    for name in team_names:
        team = Team(tournament_id=setup.tournament.id, name=name, assigned_block=block_name)
        session.add(team)
        setup.teams[name] = team
    session.commit()
    session.refresh(block)

    for index, (first, second) in enumerate(combinations(team_names, 2), start=1):
        t1, t2 = setup.teams[first], setup.teams[second]
        match = Match(
            tournament_id=setup.tournament.id,
            match_block_id=block.id,
            match_code=f"{block_name}{index}",
            team1_id=t1.id,
            team2_id=t2.id,
            team1_display_name=t1.name,
            team2_display_name=t2.name,
        )
        session.add(match)
        setup.matches[match.match_code] = match
    session.commit()
    for match in setup.matches.values():
        session.refresh(match)
    setup.blocks[block_name] = block
    return block


def add_bracket(session: Session, setup: Setup, templates: Sequence[TemplateSpec]) -> MatchBlock:
    block = MatchBlock(
        tournament_id=setup.tournament.id,
        phase=PHASE_FINAL,
        block_name="final",
        display_round_name="Final tournament",
    )
    session.add(block)
    session.commit()
    session.refresh(block)

    for code, _src1, _src2, label1, label2, _round in templates:
        match = Match(
            tournament_id=setup.tournament.id,
            match_block_id=block.id,
            match_code=code,
            team1_display_name=label1,
            team2_display_name=label2,
        )
        session.add(match)
        setup.matches[code] = match
    session.commit()
    setup.bracket_block = block
    return block


def settle(
    session: Session,
    match: Match,
    team1_score: int,
    team2_score: int,
    confirmed: bool = True,
) -> Match:
    """Record a played result directly in the database (no recalculation)."""
    match.team1_score = str(team1_score)
    match.team2_score = str(team2_score)
    match.is_draw = team1_score == team2_score
    if match.is_draw:
        match.winner_team_id = None
    else:
        match.winner_team_id = match.team1_id if team1_score > team2_score else match.team2_id
    match.status = MATCH_COMPLETED
    match.is_confirmed = confirmed
    match.confirmed_at = datetime.utcnow() if confirmed else None
    session.add(match)
    session.commit()
    session.refresh(match)
    return match


def result_payload(team1_score: int, team2_score: int, match: Match) -> dict:
    """PATCH body for a confirmed, played result."""
    payload = {
        "team1_score": str(team1_score),
        "team2_score": str(team2_score),
        "is_draw": team1_score == team2_score,
        "status": MATCH_COMPLETED,
        "is_confirmed": True,
    }
    if team1_score != team2_score:
        payload["winner_team_id"] = match.team1_id if team1_score > team2_score else match.team2_id
    return payload
