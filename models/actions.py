"""Behaviour decisions, player attack inputs, and combat outcome models."""

from enum import Enum

from pydantic import BaseModel, ConfigDict


class AIAction(str, Enum):
    """The single action a creature commits to on its turn."""
    ATTACK = "attack"
    PURSUE = "pursue"
    STEP_BACK = "step_back"
    CIRCLE = "circle"
    FLEE = "flee"
    GUARD_RETURN = "guard_return"
    WANDER = "wander"
    IDLE = "idle"                   # Holds position and watches


class Decision(BaseModel):
    """What the behaviour selector chose, before it is executed."""
    action: AIAction
    target_id: str | None = None
    destination: tuple[int, int] | None = None   # Overrides the target as move goal
    ability: str | None = None      # Use this ability instead of basic attacks
    retreat_after: bool = False     # Step back after attacking
    reason: str = ""


class QuizResult(BaseModel):
    """Result delivered by the quiz collaborator for one player attack."""
    success: bool
    score: int                      # Consecutive correct answers, 0 on outright failure
    total_questions: int = 0


class ChainWeapon(BaseModel):
    """Resolved player weapon modifiers from the equipment subsystem."""
    model_config = ConfigDict(frozen=True)

    name: str
    base_damage: int
    chain_multipliers: list[float] = [1]
    damage_kind: str = "physical"
    reach: int = 1
    enchantment: int = 0
    blessed: bool = False
    cursed: bool = False
    stun_chance: float = 0.0


class CombatOutcome(BaseModel):
    """Ephemeral result of one resolved attack or ability against one target."""
    success: bool = True            # False: precondition failed, nothing happened
    attacker_id: str | None = None
    target_id: str | None = None
    hit: bool = False
    damage: int = 0
    damage_kind: str = "physical"
    condition: str | None = None
    killed: bool = False
    reflected: bool = False         # Effect was redirected onto the attacker
    resisted: bool = False
    deflected: bool = False         # Element bounced off a reflecting target
    roll: int | None = None         # d20 roll for THAC0 resolution
    description: str = ""
    error: str | None = None
