"""Special ability definitions shared by every creature that owns them."""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from config import DEFAULT_ABILITY_COOLDOWN


class AbilityKind(str, Enum):
    """Resolution family; each kind maps to one resolver function."""
    BREATH = "breath"
    DISINTEGRATION = "disintegration"
    SLEEP_BREATH = "sleep_breath"
    GAZE = "gaze"
    PETRIFICATION_GAZE = "petrification_gaze"
    DEATH_GAZE = "death_gaze"
    CANCELLATION_GAZE = "cancellation_gaze"
    ENGULF = "engulf"
    DIGESTION = "digestion"
    TOUCH = "touch"
    STONE_TOUCH = "stone_touch"
    DRAIN_TOUCH = "drain_touch"
    DRAIN_LIFE = "drain_life"
    PROJECTILE = "projectile"
    STATUS = "status"               # Apply a condition to the target
    SELF_BUFF = "self_buff"         # Apply a condition to the user
    TELEPORT = "teleport"
    TELEPORT_OTHER = "teleport_other"
    WARP = "warp"
    CHARGE = "charge"
    SHAPECHANGE = "shapechange"
    SUMMON = "summon"
    RAISE_DEAD = "raise_dead"
    LAY_EGGS = "lay_eggs"
    CREATE_WEB = "create_web"
    STEAL_ITEM = "steal_item"
    STEAL_GOLD = "steal_gold"
    STEAL_WEAPON = "steal_weapon"
    DISARM = "disarm"
    EQUIPMENT = "equipment"
    REGENERATION = "regeneration"
    ON_HIT = "on_hit"
    BERSERK = "berserk"
    SPLIT = "split"
    EXPLODE = "explode"
    TURN_TO_GOLD = "turn_to_gold"


class AbilityDef(BaseModel):
    """Immutable ability definition. Cooldown state lives on the creature."""
    model_config = ConfigDict(frozen=True)

    name: str
    kind: AbilityKind
    cooldown: int = DEFAULT_ABILITY_COOLDOWN
    range: int | None = None        # Tiles; None means no range requirement
    duration: int | None = None     # Condition length in turns
    damage: str | None = None       # Dice notation
    damage_kind: str = "physical"
    condition: str | None = None    # Condition applied by the ability
    condition_chance: float = 1.0
    area: str = "single"            # "single" or "cone"
    multiplier: float = 1.0
    count: str | None = None        # Dice notation for summon/egg counts
    summon_kind: str | None = None
    amount: int = 0                 # Heal per turn, AC change, drain levels...
    threshold: float | None = None  # Fraction of max HP that triggers the ability
    teleport_after: float = 0.0     # Chance to teleport away after a theft
    equipment_damage: str | None = None   # "rust", "acid", "fire", "cold"
    forms: tuple[str, ...] = ()
    passive: bool = False
    message: str = ""
