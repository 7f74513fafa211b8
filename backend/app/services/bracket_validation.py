"""
Bracket drift report.

Compares stored bracket participants with what slot resolution expects.
Read-only: fixing is a separate, explicit apply step
(promotion_service.apply_bracket_fix).

Issues are returned in stable order: by match_code, then side.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import List, Mapping, Optional, Sequence

from pydantic import BaseModel

from app.services.diagnostics import VALIDATION_ISSUE, Diagnostics, default_diagnostics
from app.services.slot_resolver import SIDE_TEAM1, SIDES, ExpectedMap, TemplateEntry

SEVERITY_ERROR = "error"
SEVERITY_WARNING = "warning"


@dataclass(frozen=True)
class BracketMatchState:
    match_id: int
    match_code: str
    team1_id: Optional[int]
    team2_id: Optional[int]
    team1_display_name: str
    team2_display_name: str
    is_confirmed: bool = False

    def team_id_for(self, side: str) -> Optional[int]:
        return self.team1_id if side == SIDE_TEAM1 else self.team2_id

    def display_name_for(self, side: str) -> str:
        return self.team1_display_name if side == SIDE_TEAM1 else self.team2_display_name


class ValidationIssue(BaseModel):
    match_id: int
    match_code: str
    position: str  # "team1" | "team2"
    expected_source: str
    expected_team_id: int
    expected_team_name: str
    current_team_id: Optional[int] = None
    current_team_name: Optional[str] = None
    is_placeholder: bool
    severity: str  # "error" | "warning"
    message: str


class ValidationSummary(BaseModel):
    error_count: int = 0
    warning_count: int = 0
    placeholder_count: int = 0


class ValidationReport(BaseModel):
    is_valid: bool
    total_matches: int
    checked_matches: int
    issues: List[ValidationIssue]
    summary: ValidationSummary


def validate_bracket(
    expected: ExpectedMap,
    matches: Sequence[BracketMatchState],
    templates: Mapping[str, TemplateEntry],
    diagnostics: Optional[Diagnostics] = None,
) -> ValidationReport:
    diagnostics = diagnostics or default_diagnostics()
    issues: List[ValidationIssue] = []
    checked = 0

    for match in sorted(matches, key=lambda m: m.match_code):
        template = templates.get(match.match_code)
        if template is None:
            continue
        checked += 1
        for side in SIDES:
            want = expected.get((match.match_code, side))
            if want is None:
                continue
            current_id = match.team_id_for(side)
            if current_id == want.team_id:
                continue

            current_name = match.display_name_for(side)
            is_placeholder = current_id is None or current_name == template.label_for(side)
            severity = SEVERITY_ERROR if match.is_confirmed else SEVERITY_WARNING
            if is_placeholder:
                message = f"{side} still shows placeholder {current_name!r}; expected {want.display_name!r}"
            else:
                message = f"{side} is {current_name!r}; expected {want.display_name!r}"

            issue = ValidationIssue(
                match_id=match.match_id,
                match_code=match.match_code,
                position=side,
                expected_source=want.source,
                expected_team_id=want.team_id,
                expected_team_name=want.display_name,
                current_team_id=current_id,
                current_team_name=current_name,
                is_placeholder=is_placeholder,
                severity=severity,
                message=message,
            )
            issues.append(issue)
            diagnostics.emit(
                VALIDATION_ISSUE,
                match_code=match.match_code,
                side=side,
                severity=severity,
                is_placeholder=is_placeholder,
            )

    summary = ValidationSummary(
        error_count=sum(1 for i in issues if i.severity == SEVERITY_ERROR),
        warning_count=sum(1 for i in issues if i.severity == SEVERITY_WARNING),
        placeholder_count=sum(1 for i in issues if i.is_placeholder),
    )
    return ValidationReport(
        is_valid=not issues,
        total_matches=len(matches),
        checked_matches=checked,
        issues=issues,
        summary=summary,
    )
