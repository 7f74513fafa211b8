"""
Ranking snapshot (de)serialization.

MatchBlock.team_rankings holds the whole ranked list as one JSON value.
This module is the only place that reads or writes it: payloads are
validated with pydantic on read, and anything malformed becomes an
absent snapshot (the caller then recomputes) instead of an exception.
"""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass
from typing import Any, List, Optional

from pydantic import BaseModel, ValidationError

from app.services.diagnostics import RANKING_PAYLOAD_INVALID, Diagnostics, default_diagnostics
from app.services.standings_calculator import TeamStanding

SOURCE_COMPUTED = "computed"
SOURCE_MANUAL = "manual"


class TeamStandingRecord(BaseModel):
    team_id: int
    team_name: str
    team_abbreviation: Optional[str] = None
    position: int
    points: int = 0
    matches_played: int = 0
    wins: int = 0
    draws: int = 0
    losses: int = 0
    goals_for: int = 0
    goals_against: int = 0
    goal_difference: int = 0


@dataclass(frozen=True)
class RankingSnapshot:
    standings: Optional[List[TeamStanding]]
    source: str = SOURCE_COMPUTED

    @classmethod
    def absent(cls) -> "RankingSnapshot":
        return cls(standings=None)

    @property
    def is_absent(self) -> bool:
        return self.standings is None

    @property
    def is_manual(self) -> bool:
        return not self.is_absent and self.source == SOURCE_MANUAL


def dump_ranking(standings: List[TeamStanding]) -> List[dict]:
    return [asdict(s) for s in standings]


def load_ranking(
    raw: Any,
    source: str = SOURCE_COMPUTED,
    diagnostics: Optional[Diagnostics] = None,
    block_name: Optional[str] = None,
) -> RankingSnapshot:
    """Parse a stored payload. Legacy text payloads are accepted too."""
    if raw is None:
        return RankingSnapshot.absent()

    diagnostics = diagnostics or default_diagnostics()
    payload = raw
    if isinstance(raw, (str, bytes)):
        try:
            payload = json.loads(raw)
        except (json.JSONDecodeError, TypeError, ValueError) as exc:
            diagnostics.emit(RANKING_PAYLOAD_INVALID, block=block_name, reason=f"json: {exc}")
            return RankingSnapshot.absent()

    if not isinstance(payload, list):
        diagnostics.emit(RANKING_PAYLOAD_INVALID, block=block_name, reason="not a list")
        return RankingSnapshot.absent()

    try:
        records = [TeamStandingRecord.model_validate(item) for item in payload]
    except ValidationError as exc:
        diagnostics.emit(RANKING_PAYLOAD_INVALID, block=block_name, reason=f"schema: {exc.error_count()} errors")
        return RankingSnapshot.absent()

    standings = [TeamStanding(**record.model_dump()) for record in records]
    return RankingSnapshot(standings=standings, source=source)
