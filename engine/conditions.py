"""Transient conditions: application, per-turn ticking, and derived stats."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from models.characters import Condition, CreatureState
from models.game_state import NoticeKind

if TYPE_CHECKING:
    from engine.context import TurnContext
    from models.characters import Creature

logger = logging.getLogger(__name__)

# Defaults per condition name; unknown names get a plain Condition.
CONDITION_DEFAULTS: dict[str, dict] = {
    "poisoned": {"damage_per_turn": 2, "stackable": True, "max_stacks": 3},
    "drowning": {"damage_per_turn": 3},
    "confused": {},
    "stunned": {},
    "paralyzed": {},
    "sleeping": {},
    "webbed": {},
    "blinded": {},
    "slowed": {"speed_modifier": -6},
    "hasted": {"speed_modifier": 12, "magical": True},
    "feared": {},
    "diseased": {},
    "invisible": {"magical": True},
    "phasing": {"magical": True},
    "flying": {"magical": True},
    "swimming": {},
    "polymorphed": {"magical": True},
    "shapechanged": {"magical": True},
    "invulnerable": {"magical": True},
    "stone_skin": {"ac_modifier": -4, "magical": True},
    "raging": {"damage_multiplier": 1.5},
    "berserk": {"damage_multiplier": 2.0, "ac_modifier": 2},
}

# Resistance that wards off a condition, besides the condition's own name
CONDITION_RESISTANCES: dict[str, str] = {
    "poisoned": "poison",
    "sleeping": "sleep",
    "paralyzed": "paralysis",
    "confused": "confusion",
    "feared": "fear",
    "slowed": "slow",
    "diseased": "disease",
    "stunned": "stun",
    "blinded": "blindness",
    "webbed": "web",
    "drowning": "drowning",
}

SKIP_TURN_CONDITIONS = ("sleeping", "stunned", "paralyzed")
INCAPACITATING_CONDITIONS = ("sleeping", "stunned", "paralyzed", "confused")
IMMOBILIZING_CONDITIONS = ("webbed", "paralyzed")


def resists_condition(creature: Creature, name: str) -> bool:
    return creature.resists(name) or creature.resists(CONDITION_RESISTANCES.get(name, name))


def apply_condition(
    creature: Creature,
    name: str,
    duration: int | None,
    ctx: TurnContext | None = None,
    source_id: str | None = None,
    **overrides,
) -> Condition:
    """Add a condition, or refresh it if already active.

    Re-application resets the remaining duration; it never adds durations
    together. Stackable conditions gain a stack (up to their maximum).

    Args:
        creature: The creature receiving the condition.
        name: Condition name, e.g. "poisoned".
        duration: Turns it lasts; None for permanent.
        ctx: Turn context for notices (optional).
        source_id: Creature that caused it.
        **overrides: Field overrides such as damage_per_turn.

    Returns:
        The active Condition.
    """
    existing = creature.conditions.get(name)
    if existing is not None:
        if existing.stackable and existing.stacks < existing.max_stacks:
            existing.stacks += 1
        existing.remaining = duration
        condition = existing
    else:
        fields = {**CONDITION_DEFAULTS.get(name, {}), **overrides}
        condition = Condition(name=name, remaining=duration, source_id=source_id, **fields)
        creature.conditions[name] = condition

    if ctx is not None:
        ctx.notify(
            NoticeKind.CONDITION_APPLIED,
            f"The {creature.name} is {name.replace('_', ' ')}!",
            actor_id=source_id,
            target_id=creature.id,
            condition=name,
            amount=duration,
        )
    logger.debug("%s gains %s (%s turns)", creature.id, name, duration)
    return condition


def remove_condition(
    creature: Creature,
    name: str,
    ctx: TurnContext | None = None,
) -> bool:
    """Remove a condition and fire its expiry effect once.

    Returns:
        False if the creature did not have it.
    """
    condition = creature.conditions.pop(name, None)
    if condition is None:
        return False

    _on_expire(creature, condition)
    if ctx is not None:
        ctx.notify(
            NoticeKind.CONDITION_EXPIRED,
            f"The {creature.name} is no longer {name.replace('_', ' ')}.",
            target_id=creature.id,
            condition=name,
        )
    return True


def _on_expire(creature: Creature, condition: Condition) -> None:
    # Stat modifiers live on the condition itself and vanish with it.
    if condition.name == "shapechanged":
        creature.form = None


def tick_conditions(creature: Creature, ctx: TurnContext | None = None) -> int:
    """Advance every condition by one turn.

    Damage-over-time is computed first, then durations count down; a
    condition reaching 0 is removed and its expiry fires exactly once.

    Returns:
        Damage-over-time owed this turn (the caller applies it).
    """
    damage = 0
    for condition in list(creature.conditions.values()):
        if condition.damage_per_turn > 0:
            damage += condition.damage_per_turn * condition.stacks

        if condition.remaining is None:
            continue
        condition.remaining = max(0, condition.remaining - 1)
        if condition.remaining == 0:
            remove_condition(creature, condition.name, ctx)

    return damage


def clear_magical_conditions(creature: Creature, ctx: TurnContext | None = None) -> list[str]:
    """Strip every magical condition (cancellation). Returns the removed names."""
    removed = [name for name, c in creature.conditions.items() if c.magical]
    for name in removed:
        remove_condition(creature, name, ctx)
    return removed


def effective_armor_class(creature: Creature) -> int:
    return creature.armor_class + sum(c.ac_modifier for c in creature.conditions.values())


def damage_multiplier(creature: Creature) -> float:
    multiplier = 1.0
    for condition in creature.conditions.values():
        multiplier *= condition.damage_multiplier
    return multiplier


def effective_speed(creature: Creature) -> int:
    return max(0, creature.speed + sum(c.speed_modifier for c in creature.conditions.values()))


def turn_skip_reason(creature: Creature) -> str | None:
    """Name of whatever makes the creature lose its whole turn, if anything."""
    if creature.state == CreatureState.SLEEPING:
        return "sleeping"
    for name in SKIP_TURN_CONDITIONS:
        if name in creature.conditions:
            return name
    return None


def is_incapacitated(creature: Creature) -> bool:
    """True when the creature cannot use special abilities."""
    if creature.state == CreatureState.SLEEPING:
        return True
    return any(name in creature.conditions for name in INCAPACITATING_CONDITIONS)


def can_move(creature: Creature) -> bool:
    return not any(name in creature.conditions for name in IMMOBILIZING_CONDITIONS)
