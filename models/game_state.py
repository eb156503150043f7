"""Encounter state and outward notice models."""

from enum import Enum

from pydantic import BaseModel

from models.characters import Creature


class GridCell(BaseModel):
    """A single map tile as seen by the reference spatial adapter."""
    x: int
    y: int
    terrain: str = "open"           # "open", "wall", "door", "water"


class NoticeLevel(str, Enum):
    """Audience of a notice."""
    INFO = "info"
    DEBUG = "debug"                 # Invalid input reports


class NoticeKind(str, Enum):
    """Discrete outcome events produced for UI, loot and spawn collaborators."""
    ATTACK_HIT = "attack_hit"
    ATTACK_MISSED = "attack_missed"
    DAMAGE_RESISTED = "damage_resisted"
    EFFECT_REFLECTED = "effect_reflected"
    CONDITION_APPLIED = "condition_applied"
    CONDITION_EXPIRED = "condition_expired"
    CREATURE_DIED = "creature_died"
    ABILITY_USED = "ability_used"
    PACK_ALERTED = "pack_alerted"
    BECAME_HOSTILE = "became_hostile"
    LOST_TARGET = "lost_target"
    WOKE_UP = "woke_up"
    MOVED = "moved"
    HEALED = "healed"
    LOOT_REQUESTED = "loot_requested"
    SUMMON_REQUESTED = "summon_requested"
    ITEM_TRANSFER_REQUESTED = "item_transfer_requested"
    TERRAIN_CHANGE_REQUESTED = "terrain_change_requested"
    EQUIPMENT_DAMAGED = "equipment_damaged"
    INVALID_INPUT = "invalid_input"


class Notice(BaseModel):
    """One outward event, renderable without further lookups."""
    kind: NoticeKind
    message: str
    level: NoticeLevel = NoticeLevel.INFO
    round: int = 0
    actor_id: str | None = None
    target_id: str | None = None
    amount: int | None = None
    damage_kind: str | None = None
    condition: str | None = None
    position: tuple[int, int] | None = None
    details: dict = {}


class EncounterState(BaseModel):
    """The creature roster and turn bookkeeping for one dungeon level."""
    encounter_id: str
    round_number: int = 1
    creatures: dict[str, Creature] = {}   # creature_id -> Creature
    turn_order: list[str] = []            # Active-turn set, in acting order
    player_id: str | None = None
    dead_ids: list[str] = []
