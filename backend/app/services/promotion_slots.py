"""
Promotion slot keys.

Slots are stored as strings for compatibility with existing templates
("A_1", "M5_winner", "M5_loser", "BYE") and parsed once here into typed
values. Everything past this boundary works with the typed form.
"""
from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional, Union

OUTCOME_WINNER = "winner"
OUTCOME_LOSER = "loser"

BYE_KEYS = {"BYE", "bye", "-"}

_BLOCK_POSITION_RE = re.compile(r"^(?P<block>[A-Za-z][A-Za-z0-9]*)_(?P<position>\d+)$")
_MATCH_OUTCOME_RE = re.compile(r"^(?P<code>[A-Za-z0-9]+)_(?P<outcome>winner|loser)$")


class InvalidSlotKey(ValueError):
    pass


@dataclass(frozen=True)
class BlockPosition:
    block: str
    position: int

    @property
    def key(self) -> str:
        return f"{self.block}_{self.position}"


@dataclass(frozen=True)
class MatchOutcome:
    match_code: str
    outcome: str  # "winner" | "loser"

    @property
    def key(self) -> str:
        return f"{self.match_code}_{self.outcome}"


@dataclass(frozen=True)
class Bye:
    @property
    def key(self) -> str:
        return "BYE"


PromotionSlot = Union[BlockPosition, MatchOutcome, Bye]


def parse_slot(raw: Optional[str]) -> Optional[PromotionSlot]:
    """Parse a stored slot key. Returns None for empty input.

    Raises InvalidSlotKey for anything that is not a recognised key.
    """
    if raw is None:
        return None
    text = raw.strip()
    if not text:
        return None
    if text in BYE_KEYS:
        return Bye()

    m = _MATCH_OUTCOME_RE.match(text)
    if m:
        return MatchOutcome(match_code=m.group("code"), outcome=m.group("outcome"))

    m = _BLOCK_POSITION_RE.match(text)
    if m:
        position = int(m.group("position"))
        if position < 1:
            raise InvalidSlotKey(f"Block position must be >= 1: {raw!r}")
        return BlockPosition(block=m.group("block"), position=position)

    raise InvalidSlotKey(f"Unrecognised slot key: {raw!r}")


def try_parse_slot(raw: Optional[str]) -> Optional[PromotionSlot]:
    """Lenient variant for reporting paths: unknown keys yield None."""
    try:
        return parse_slot(raw)
    except InvalidSlotKey:
        return None
