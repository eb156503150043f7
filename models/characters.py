"""Creature and attack data models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from config import (
    DEFAULT_ALERT_RADIUS,
    DEFAULT_HEARING_RANGE,
    DEFAULT_SIGHT_RANGE,
    DEFAULT_TARGET_AC,
)


class CreatureState(str, Enum):
    """Primary awareness state. Fleeing is a behaviour of HOSTILE, not a state."""
    SLEEPING = "sleeping"
    WANDERING = "wandering"
    GUARDING = "guarding"
    HOSTILE = "hostile"


class AIPattern(str, Enum):
    """Combat archetype chosen when the creature is created."""
    AGGRESSIVE = "aggressive"
    DEFENSIVE = "defensive"
    RANGED = "ranged"
    INTELLIGENT = "intelligent"
    COWARDLY = "cowardly"
    PACK_HUNTER = "pack_hunter"


class AttackDelivery(str, Enum):
    """How an attack reaches its target."""
    MELEE = "melee"
    RANGED = "ranged"               # Single target, needs line of sight
    CONE = "cone"                   # Area, every occupant in the cone
    GAZE = "gaze"
    ENGULF = "engulf"
    TOUCH = "touch"


class Attack(BaseModel):
    """A natural or weapon attack. Read-only once created."""
    model_config = ConfigDict(frozen=True)

    type: str = "weapon"            # e.g., "bite", "claw", "weapon", "breath"
    damage: str = "1d4"             # Dice notation
    damage_kind: str = "physical"   # e.g., "fire", "poison", "slash"
    delivery: AttackDelivery = AttackDelivery.MELEE
    range: int = 1                  # Tiles, for ranged/cone/gaze
    condition: str | None = None    # Secondary status applied on hit
    condition_chance: float = 0.0
    condition_duration: int = 3


class CreatureFlags(BaseModel):
    """Static traits from the creature's template."""
    undead: bool = False
    demonic: bool = False
    keen: bool = False              # Extended sight range
    blind: bool = False
    see_invisible: bool = False
    reflection: bool = False
    wall_pass: bool = False
    no_flee: bool = False
    mindless: bool = False
    aggressive: bool = False        # Attacks creatures of other factions in its way


class Condition(BaseModel):
    """A transient status on a creature."""
    name: str
    remaining: int | None = 1       # Turns left; None means until removed
    stackable: bool = False
    stacks: int = 1
    max_stacks: int = 1
    damage_per_turn: int = 0
    ac_modifier: int = 0            # Added to armor class (lower is better)
    damage_multiplier: float = 1.0
    speed_modifier: int = 0
    magical: bool = False           # Removed by cancellation
    source_id: str | None = None


class LootDrop(BaseModel):
    """An item id that may drop on death."""
    item: str
    chance: float = 0.5
    amount: str | None = None       # Dice notation for stackables


class LootTable(BaseModel):
    """What a creature leaves behind."""
    corpse: str | None = None
    gold: str | None = None         # Dice notation
    items: list[LootDrop] = []


class Creature(BaseModel):
    """A live creature (or the player) on the map."""
    id: str                         # Unique instance id
    kind: str                       # Template id, shared by pack members
    name: str
    symbol: str = "?"
    position: tuple[int, int] = (0, 0)
    level: int = 1
    max_hp: int
    hp: int
    to_hit: int | None = None       # THAC0; None uses the level table
    armor_class: int = DEFAULT_TARGET_AC   # Lower is better
    speed: int = 12
    attacks: list[Attack] = []
    abilities: list[str] = []       # Names in the ability catalog
    resistances: list[str] = []
    weaknesses: list[str] = []
    flags: CreatureFlags = CreatureFlags()
    pattern: AIPattern = AIPattern.AGGRESSIVE
    state: CreatureState = CreatureState.WANDERING
    sight_range: int = DEFAULT_SIGHT_RANGE
    hearing_range: int = DEFAULT_HEARING_RANGE
    alert_radius: int = DEFAULT_ALERT_RADIUS
    flee_threshold: float | None = None   # Overrides the pattern default
    conditions: dict[str, Condition] = {}
    cooldowns: dict[str, int] = {}
    energy: int = 0                 # Speed banked toward the next turn
    aware_of_target: bool = False
    target_id: str | None = None
    guard_post: tuple[int, int] | None = None
    wander_direction: tuple[int, int] | None = None
    engulfed_id: str | None = None  # Creature this one has swallowed
    engulfed_by: str | None = None
    form: str | None = None         # Current shapechange form
    inventory: list[str] = []       # Item ids
    gold: int = 0
    loot: LootTable = LootTable()
    is_player: bool = False
    is_alive: bool = True

    @property
    def hp_fraction(self) -> float:
        return self.hp / self.max_hp if self.max_hp > 0 else 0.0

    def has_condition(self, name: str) -> bool:
        return name in self.conditions

    def has_reflection(self) -> bool:
        return self.flags.reflection

    def is_blind(self) -> bool:
        return self.flags.blind or "blinded" in self.conditions

    def is_invisible(self) -> bool:
        return "invisible" in self.conditions

    def can_see_invisible(self) -> bool:
        return self.flags.see_invisible

    def resists(self, kind: str) -> bool:
        return kind in self.resistances
