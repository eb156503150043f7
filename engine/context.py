"""Handles passed into every resolution call during a turn."""

from __future__ import annotations

import random
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from engine.dice import roll_detailed
from engine.notices import emit_debug
from models.game_state import Notice, NoticeKind

if TYPE_CHECKING:
    from engine.grid import SpatialQuery
    from engine.notices import NoticeSink
    from models.abilities import AbilityDef
    from models.characters import Creature


@dataclass
class TurnContext:
    """Collaborator handles for one encounter.

    The turn driver builds one of these and threads it through awareness,
    behaviour, abilities and combat; nothing in the engine reaches for a
    global.
    """
    spatial: SpatialQuery
    sink: NoticeSink
    creatures: dict[str, Creature] = field(default_factory=dict)
    rng: random.Random = field(default_factory=random.Random)
    catalog: dict[str, AbilityDef] | None = None   # None uses the built-in catalog
    turn_order: list[str] = field(default_factory=list)   # Active-turn set
    round_number: int = 0

    def creature(self, creature_id: str | None) -> Creature | None:
        if creature_id is None:
            return None
        return self.creatures.get(creature_id)

    def roll(self, notation: str | int) -> int:
        """Roll with the encounter's random source; malformed notation is reported."""
        result = roll_detailed(notation, rng=self.rng)
        if not result.parsed:
            emit_debug(self.sink, f"Malformed dice notation {notation!r}, using {result.total}",
                       notation=str(notation))
        return result.total

    def notify(self, kind: NoticeKind, message: str, **fields) -> Notice:
        notice = Notice(kind=kind, message=message, round=self.round_number, **fields)
        self.sink.emit(notice)
        return notice
