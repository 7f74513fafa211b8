"""
Structured diagnostics for the standings/promotion engine.

Every component takes a ``Diagnostics`` instance. Events are written to the
module logger as ``event key=value ...`` lines and forwarded to an optional
sink, so tests can assert on event names and fields instead of log text.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)

# Event names
STANDINGS_RECOMPUTED = "standings.recomputed"
RANKING_PAYLOAD_INVALID = "ranking.payload_invalid"
RANKING_MANUAL_KEPT = "ranking.manual_kept"
RANKING_MANUAL_DISCARDED = "ranking.manual_discarded"
BLOCK_INCOMPLETE = "block.incomplete"
PROMOTION_TIE = "promotion.tie"
PROMOTION_RESOLVED = "promotion.resolved"
PROMOTION_FALLBACK_USED = "promotion.fallback_used"
BRACKET_SLOT_UPDATED = "bracket.slot_updated"
BRACKET_CONFIRMED_OVERWRITTEN = "bracket.confirmed_overwritten"
VALIDATION_ISSUE = "validation.issue"
FINAL_RANKING_UPDATED = "final_ranking.updated"

_WARNING_EVENTS = {
    RANKING_PAYLOAD_INVALID,
    RANKING_MANUAL_DISCARDED,
    PROMOTION_TIE,
    PROMOTION_FALLBACK_USED,
    BRACKET_CONFIRMED_OVERWRITTEN,
}


@dataclass(frozen=True)
class DiagnosticEvent:
    name: str
    fields: Dict[str, Any] = field(default_factory=dict)


class Diagnostics:
    def __init__(
        self,
        sink: Optional[Callable[[DiagnosticEvent], None]] = None,
        log: Optional[logging.Logger] = None,
    ) -> None:
        self._sink = sink
        self._log = log or logger

    def emit(self, name: str, **fields: Any) -> DiagnosticEvent:
        event = DiagnosticEvent(name=name, fields=fields)
        level = logging.WARNING if name in _WARNING_EVENTS else logging.INFO
        if self._log.isEnabledFor(level):
            rendered = " ".join(f"{k}={fields[k]!r}" for k in sorted(fields))
            self._log.log(level, "%s %s", name, rendered)
        if self._sink is not None:
            self._sink(event)
        return event


class RecordingDiagnostics(Diagnostics):
    """Diagnostics that also keeps every event in memory."""

    def __init__(self, log: Optional[logging.Logger] = None) -> None:
        self.events: List[DiagnosticEvent] = []
        super().__init__(sink=self.events.append, log=log)

    def named(self, name: str) -> List[DiagnosticEvent]:
        return [e for e in self.events if e.name == name]


def default_diagnostics() -> Diagnostics:
    return Diagnostics()
