"""
Read side of the storage boundary: SQLModel rows -> engine value objects.
"""
from typing import Dict, List

from sqlmodel import Session, select

from app.models.match import Match
from app.models.match_block import PHASE_FINAL, PHASE_PRELIMINARY, MatchBlock
from app.models.match_override import MatchOverride
from app.models.match_template import MatchTemplate
from app.models.team import Team
from app.models.tournament import Tournament
from app.models.tournament_point_rules import TournamentPointRules
from app.services.bracket_validation import BracketMatchState
from app.services.final_ranking import PlacementRule
from app.services.slot_resolver import SourceOverride, TemplateEntry
from app.services.standings_calculator import DEFAULT_POINT_RULES, MatchResult, PointRules, TeamRef


def to_match_result(m: Match) -> MatchResult:
    return MatchResult(
        match_id=m.id,
        match_code=m.match_code,
        team1_id=m.team1_id,
        team2_id=m.team2_id,
        team1_score=m.team1_score,
        team2_score=m.team2_score,
        winner_team_id=m.winner_team_id,
        is_draw=bool(m.is_draw),
        is_walkover=bool(m.is_walkover),
        status=m.status,
        is_confirmed=bool(m.is_confirmed),
        block_id=m.match_block_id,
    )


def to_bracket_state(m: Match) -> BracketMatchState:
    return BracketMatchState(
        match_id=m.id,
        match_code=m.match_code,
        team1_id=m.team1_id,
        team2_id=m.team2_id,
        team1_display_name=m.team1_display_name,
        team2_display_name=m.team2_display_name,
        is_confirmed=bool(m.is_confirmed),
    )


def to_template_entry(t: MatchTemplate) -> TemplateEntry:
    return TemplateEntry(
        match_code=t.match_code,
        team1_source=t.team1_source,
        team2_source=t.team2_source,
        team1_display_name=t.team1_display_name,
        team2_display_name=t.team2_display_name,
        round_index=t.round_index,
        round_name=t.round_name,
    )


def load_point_rules(session: Session, tournament_id: int) -> PointRules:
    row = session.exec(
        select(TournamentPointRules).where(TournamentPointRules.tournament_id == tournament_id)
    ).first()
    if row is None:
        return DEFAULT_POINT_RULES
    return PointRules(
        win=row.win_points,
        draw=row.draw_points,
        loss=row.loss_points,
        walkover_winner_goals=row.walkover_winner_goals,
        walkover_loser_goals=row.walkover_loser_goals,
    )


def load_blocks(session: Session, tournament_id: int, phase: str) -> List[MatchBlock]:
    return list(
        session.exec(
            select(MatchBlock)
            .where(MatchBlock.tournament_id == tournament_id, MatchBlock.phase == phase)
            .order_by(MatchBlock.block_name)
        ).all()
    )


def load_block_matches(session: Session, block_id: int) -> List[Match]:
    return list(
        session.exec(
            select(Match).where(Match.match_block_id == block_id).order_by(Match.match_code)
        ).all()
    )


def load_bracket_matches(session: Session, tournament_id: int) -> List[Match]:
    return list(
        session.exec(
            select(Match)
            .join(MatchBlock, Match.match_block_id == MatchBlock.id)
            .where(Match.tournament_id == tournament_id, MatchBlock.phase == PHASE_FINAL)
            .order_by(Match.match_code)
        ).all()
    )


def load_team_names(session: Session, tournament_id: int) -> Dict[int, str]:
    teams = session.exec(select(Team).where(Team.tournament_id == tournament_id)).all()
    return {t.id: t.name for t in teams}


def load_block_participants(session: Session, block: MatchBlock, matches: List[Match]) -> List[TeamRef]:
    """Teams drawn into the block plus anyone appearing in its matches, by name."""
    teams: Dict[int, Team] = {}
    if block.phase == PHASE_PRELIMINARY:
        for team in session.exec(
            select(Team).where(
                Team.tournament_id == block.tournament_id,
                Team.assigned_block == block.block_name,
            )
        ).all():
            teams[team.id] = team

    missing = {
        team_id
        for m in matches
        for team_id in (m.team1_id, m.team2_id)
        if team_id is not None and team_id not in teams
    }
    if missing:
        for team in session.exec(select(Team).where(Team.id.in_(missing))).all():
            teams[team.id] = team

    ordered = sorted(teams.values(), key=lambda t: (t.name, t.id))
    return [TeamRef(team_id=t.id, display_name=t.name, abbreviation=t.abbreviation) for t in ordered]


def load_bracket_templates(session: Session, tournament: Tournament) -> List[TemplateEntry]:
    rows = session.exec(
        select(MatchTemplate)
        .where(MatchTemplate.format_id == tournament.format_id, MatchTemplate.phase == PHASE_FINAL)
        .order_by(MatchTemplate.round_index, MatchTemplate.match_code)
    ).all()
    return [to_template_entry(t) for t in rows]


def load_placement_rules(session: Session, tournament: Tournament) -> List[PlacementRule]:
    rows = session.exec(
        select(MatchTemplate).where(
            MatchTemplate.format_id == tournament.format_id, MatchTemplate.phase == PHASE_FINAL
        )
    ).all()
    return [
        PlacementRule(
            match_code=t.match_code,
            round_index=t.round_index,
            winner_position=t.winner_position,
            loser_position_start=t.loser_position_start,
            loser_position_end=t.loser_position_end,
            position_note=t.position_note,
        )
        for t in rows
    ]


def load_overrides(session: Session, tournament_id: int) -> Dict[str, SourceOverride]:
    rows = session.exec(
        select(MatchOverride).where(MatchOverride.tournament_id == tournament_id)
    ).all()
    return {
        o.match_code: SourceOverride(
            match_code=o.match_code,
            team1_source_override=o.team1_source_override,
            team2_source_override=o.team2_source_override,
        )
        for o in rows
    }
