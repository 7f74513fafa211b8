"""
Write side for bracket promotion: puts expected participants into bracket
match rows. Only team ids and display names are touched.

Confirmed matches are overwritten too, so the bracket always agrees with
upstream results after a correction. Commits once unless the caller runs
its own transaction (commit=False).
"""
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional, Sequence

from sqlmodel import Session

from app.models.match import Match
from app.services.diagnostics import (
    BRACKET_CONFIRMED_OVERWRITTEN,
    BRACKET_SLOT_UPDATED,
    Diagnostics,
    default_diagnostics,
)
from app.services.slot_resolver import SIDE_TEAM1, SIDES, ExpectedMap


@dataclass(frozen=True)
class SlotChange:
    match_id: int
    match_code: str
    side: str
    old_team_id: Optional[int]
    new_team_id: int
    old_display_name: str
    new_display_name: str
    was_confirmed: bool


def write_bracket_assignments(
    session: Session,
    matches: Sequence[Match],
    expected: ExpectedMap,
    diagnostics: Optional[Diagnostics] = None,
    commit: bool = True,
) -> List[SlotChange]:
    diagnostics = diagnostics or default_diagnostics()
    changes: List[SlotChange] = []

    for match in sorted(matches, key=lambda m: m.match_code):
        touched = False
        for side in SIDES:
            want = expected.get((match.match_code, side))
            if want is None:
                continue
            id_attr = "team1_id" if side == SIDE_TEAM1 else "team2_id"
            name_attr = "team1_display_name" if side == SIDE_TEAM1 else "team2_display_name"
            old_id = getattr(match, id_attr)
            old_name = getattr(match, name_attr)
            if old_id == want.team_id and old_name == want.display_name:
                continue

            setattr(match, id_attr, want.team_id)
            setattr(match, name_attr, want.display_name)
            touched = True
            change = SlotChange(
                match_id=match.id,
                match_code=match.match_code,
                side=side,
                old_team_id=old_id,
                new_team_id=want.team_id,
                old_display_name=old_name,
                new_display_name=want.display_name,
                was_confirmed=bool(match.is_confirmed),
            )
            changes.append(change)
            diagnostics.emit(
                BRACKET_SLOT_UPDATED,
                match_code=match.match_code,
                side=side,
                old_team_id=old_id,
                new_team_id=want.team_id,
                source=want.source,
            )
            if match.is_confirmed:
                diagnostics.emit(
                    BRACKET_CONFIRMED_OVERWRITTEN,
                    match_code=match.match_code,
                    side=side,
                    old_team_id=old_id,
                    new_team_id=want.team_id,
                )

        if touched:
            match.updated_at = datetime.utcnow()
            session.add(match)

    if commit:
        session.commit()
    return changes
