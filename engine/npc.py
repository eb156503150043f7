"""Creature definitions and server-controlled AI logic.

``select_action`` is the behaviour selector: it reads the creature, its
target and the spatial collaborator and returns a Decision without
changing anything. The turn driver in ``engine.combat`` executes it.
"""

from __future__ import annotations

import logging
import random
from typing import TYPE_CHECKING
from uuid import uuid4

from config import (
    ADJACENT_DISTANCE,
    CAUTIOUS_APPROACH_THRESHOLD,
    COWARDLY_FLEE_THRESHOLD,
    COWARDLY_HURT_THRESHOLD,
    DEFAULT_ALERT_RADIUS,
    DEFAULT_FLEE_THRESHOLD,
    DEFAULT_HEARING_RANGE,
    DEFAULT_SIGHT_RANGE,
    DEFAULT_TARGET_AC,
    DEFENSIVE_MAX_DISTANCE,
    GUARD_ALERT_RADIUS,
    GUARD_LEASH,
    INTELLIGENT_RETREAT_THRESHOLD,
    PACK_MIN_ALLIES,
    PACK_RADIUS,
    RANGED_MAX_DISTANCE,
    RANGED_MIN_DISTANCE,
    WEAK_TARGET_THRESHOLD,
)
from engine.abilities import get_ability, ready_abilities
from engine.dice import roll
from engine.grid import (
    NEIGHBOR_OFFSETS,
    distance,
    safe_is_passable,
    safe_line_of_sight,
    safe_occupant_at,
    safe_occupants_in_radius,
)
from engine.movement import is_cornered
from engine.rules import distance_attack_for
from models.abilities import AbilityKind
from models.actions import AIAction, Decision
from models.characters import (
    AIPattern,
    Attack,
    Creature,
    CreatureFlags,
    CreatureState,
    LootTable,
)

if TYPE_CHECKING:
    from engine.context import TurnContext

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Creature definitions
# ---------------------------------------------------------------------------

MONSTER_TEMPLATES: dict[str, dict] = {
    "jackal": {
        "name": "Jackal", "symbol": "d", "level": 1, "hp": "1d4+1", "armor_class": 7,
        "attacks": [{"type": "bite", "damage": "1d2", "damage_kind": "pierce"}],
        "pattern": "pack_hunter", "sight_range": 6, "alert_radius": 5,
        "loot": {"corpse": "jackal_corpse"},
    },
    "wolf": {
        "name": "Wolf", "symbol": "d", "level": 3, "hp": "3d8", "armor_class": 6,
        "attacks": [{"type": "bite", "damage": "2d4", "damage_kind": "pierce"}],
        "pattern": "pack_hunter", "flags": {"keen": True}, "alert_radius": 6,
        "loot": {"corpse": "wolf_corpse"},
    },
    "goblin": {
        "name": "Goblin", "symbol": "g", "level": 1, "hp": "1d6+1", "armor_class": 6,
        "attacks": [{"type": "weapon", "damage": "1d6", "damage_kind": "slash"}],
        "pattern": "cowardly",
        "loot": {"corpse": "goblin_corpse", "gold": "1d10",
                 "items": [{"item": "orcish_dagger", "chance": 0.2}]},
    },
    "kobold_archer": {
        "name": "Kobold Archer", "symbol": "k", "level": 2, "hp": "2d6", "armor_class": 7,
        "attacks": [
            {"type": "arrow", "damage": "1d6", "damage_kind": "pierce",
             "delivery": "ranged", "range": 6},
            {"type": "weapon", "damage": "1d4", "damage_kind": "slash"},
        ],
        "pattern": "ranged", "loot": {"gold": "2d6", "items": [{"item": "arrow", "chance": 0.5, "amount": "2d4"}]},
    },
    "orc_guard": {
        "name": "Orc Guard", "symbol": "o", "level": 3, "hp": "2d8+2", "armor_class": 5,
        "attacks": [{"type": "weapon", "damage": "1d8", "damage_kind": "slash"}],
        "pattern": "aggressive", "state": "guarding", "alert_radius": 5,
        "loot": {"corpse": "orc_corpse", "gold": "3d10"},
    },
    "skeleton": {
        "name": "Skeleton", "symbol": "Z", "level": 2, "hp": "2d8", "armor_class": 7,
        "attacks": [{"type": "claw", "damage": "1d6", "damage_kind": "slash"}],
        "resistances": ["pierce", "poison", "cold"], "weaknesses": ["bludgeon"],
        "flags": {"undead": True, "mindless": True},
    },
    "troll": {
        "name": "Troll", "symbol": "T", "level": 7, "hp": "6d8+10", "armor_class": 4,
        "attacks": [
            {"type": "claw", "damage": "1d6", "damage_kind": "slash"},
            {"type": "claw", "damage": "1d6", "damage_kind": "slash"},
            {"type": "bite", "damage": "2d6", "damage_kind": "pierce"},
        ],
        "abilities": ["regeneration", "berserk"], "weaknesses": ["fire", "acid"],
        "loot": {"corpse": "troll_corpse", "gold": "5d10"},
    },
    "giant_spider": {
        "name": "Giant Spider", "symbol": "s", "level": 5, "hp": "5d8", "armor_class": 4,
        "attacks": [{"type": "bite", "damage": "2d4", "damage_kind": "pierce"}],
        "abilities": ["web", "poison"], "resistances": ["poison", "web"],
        "loot": {"corpse": "spider_corpse"},
    },
    "gelatinous_cube": {
        "name": "Gelatinous Cube", "symbol": "b", "level": 6, "hp": "6d8", "armor_class": 8,
        "speed": 6,
        "attacks": [{"type": "touch", "damage": "2d4", "damage_kind": "acid",
                     "delivery": "touch", "condition": "paralyzed", "condition_chance": 0.2}],
        "abilities": ["acid_engulf", "digestion"], "resistances": ["acid", "paralysis"],
        "flags": {"mindless": True},
    },
    "medusa": {
        "name": "Medusa", "symbol": "@", "level": 20, "hp": "20d8", "armor_class": 2,
        "attacks": [
            {"type": "weapon", "damage": "2d4", "damage_kind": "slash"},
            {"type": "bite", "damage": "1d6", "damage_kind": "poison",
             "condition": "poisoned", "condition_chance": 0.5},
        ],
        "abilities": ["petrification_gaze"], "resistances": ["poison", "petrification"],
        "pattern": "intelligent", "loot": {"gold": "10d20"},
    },
    "red_dragon": {
        "name": "Red Dragon", "symbol": "D", "level": 15, "hp": "15d8+20", "armor_class": -1,
        "attacks": [
            {"type": "bite", "damage": "3d8", "damage_kind": "pierce"},
            {"type": "claw", "damage": "1d8", "damage_kind": "slash"},
            {"type": "claw", "damage": "1d8", "damage_kind": "slash"},
        ],
        "abilities": ["fire_breath", "fly"], "resistances": ["fire"],
        "pattern": "intelligent", "flags": {"see_invisible": True, "keen": True},
        "loot": {"corpse": "red_dragon_corpse", "gold": "20d20",
                 "items": [{"item": "red_dragon_scales", "chance": 1.0}]},
    },
    "nymph": {
        "name": "Nymph", "symbol": "n", "level": 3, "hp": "3d6", "armor_class": 9,
        "attacks": [],
        "abilities": ["steal_item", "teleport"], "pattern": "cowardly",
        "loot": {"items": [{"item": "mirror", "chance": 0.3}]},
    },
    "leprechaun": {
        "name": "Leprechaun", "symbol": "l", "level": 5, "hp": "5d6", "armor_class": 8,
        "speed": 15,
        "attacks": [{"type": "claw", "damage": "1d2", "damage_kind": "slash"}],
        "abilities": ["steal_gold", "blink"], "pattern": "cowardly",
        "loot": {"gold": "1d20"},
    },
    "vampire": {
        "name": "Vampire", "symbol": "V", "level": 10, "hp": "10d8", "armor_class": 1,
        "attacks": [{"type": "claw", "damage": "1d6", "damage_kind": "slash"}],
        "abilities": ["drain_life", "shapechange", "regeneration"],
        "resistances": ["poison", "sleep", "drain"], "weaknesses": ["fire"],
        "pattern": "intelligent", "flags": {"undead": True},
    },
    "gas_spore": {
        "name": "Gas Spore", "symbol": "e", "level": 1, "hp": "1d8", "armor_class": 10,
        "speed": 3, "attacks": [], "abilities": ["explode_on_death"],
        "flags": {"mindless": True, "no_flee": True},
    },
    "imp": {
        "name": "Imp", "symbol": "i", "level": 3, "hp": "3d6", "armor_class": 5,
        "attacks": [{"type": "claw", "damage": "1d4", "damage_kind": "slash"}],
        "abilities": ["invisibility", "blink"], "resistances": ["fire"],
        "pattern": "defensive", "flags": {"demonic": True, "see_invisible": True},
    },
}


def create_creature_from_template(
    kind: str,
    position: tuple[int, int],
    rng: random.Random | None = None,
    template: dict | None = None,
    creature_id: str | None = None,
) -> Creature:
    """Create a fresh creature from a template.

    HP is rolled from the template's dice notation. Guards take their
    starting position as their post.

    Args:
        kind: Template id, shared by every creature built from it.
        position: Starting (x, y).
        rng: Random source for the HP roll.
        template: Template data; defaults to MONSTER_TEMPLATES[kind].
        creature_id: Instance id; a random one is generated if omitted.

    Raises:
        ValueError: If no template exists for the kind.
    """
    data = template if template is not None else MONSTER_TEMPLATES.get(kind)
    if data is None:
        raise ValueError(f"No creature template for {kind!r}")

    hp = max(1, roll(data.get("hp", "1d8"), rng=rng))
    state = CreatureState(data.get("state", CreatureState.WANDERING.value))
    return Creature(
        id=creature_id or str(uuid4()),
        kind=kind,
        name=data.get("name", kind.replace("_", " ").title()),
        symbol=data.get("symbol", "?"),
        position=position,
        level=data.get("level", 1),
        max_hp=hp,
        hp=hp,
        to_hit=data.get("to_hit"),
        armor_class=data.get("armor_class", DEFAULT_TARGET_AC),
        speed=data.get("speed", 12),
        attacks=[Attack(**a) for a in data.get("attacks", [])],
        abilities=list(data.get("abilities", [])),
        resistances=list(data.get("resistances", [])),
        weaknesses=list(data.get("weaknesses", [])),
        flags=CreatureFlags(**data.get("flags", {})),
        pattern=AIPattern(data.get("pattern", AIPattern.AGGRESSIVE.value)),
        state=state,
        sight_range=data.get("sight_range", DEFAULT_SIGHT_RANGE),
        hearing_range=data.get("hearing_range", DEFAULT_HEARING_RANGE),
        alert_radius=data.get("alert_radius", DEFAULT_ALERT_RADIUS),
        flee_threshold=data.get("flee_threshold"),
        guard_post=position if state == CreatureState.GUARDING else None,
        loot=LootTable(**data.get("loot", {})),
    )


# ---------------------------------------------------------------------------
# Behaviour selector
# ---------------------------------------------------------------------------

# Ability kinds that need eye contact or a clear line to the target
_SIGHTED_KINDS = frozenset({
    AbilityKind.BREATH, AbilityKind.SLEEP_BREATH, AbilityKind.DISINTEGRATION,
    AbilityKind.GAZE, AbilityKind.PETRIFICATION_GAZE, AbilityKind.DEATH_GAZE,
    AbilityKind.CANCELLATION_GAZE, AbilityKind.PROJECTILE, AbilityKind.STATUS,
    AbilityKind.CHARGE,
})

OFFENSIVE_KINDS = frozenset(_SIGHTED_KINDS | {
    AbilityKind.ENGULF, AbilityKind.TOUCH, AbilityKind.STONE_TOUCH,
    AbilityKind.DRAIN_TOUCH, AbilityKind.DRAIN_LIFE, AbilityKind.TELEPORT_OTHER,
    AbilityKind.STEAL_ITEM, AbilityKind.STEAL_GOLD, AbilityKind.STEAL_WEAPON,
    AbilityKind.DISARM, AbilityKind.EQUIPMENT,
})

SUPPORT_KINDS = frozenset({
    AbilityKind.SELF_BUFF, AbilityKind.SHAPECHANGE, AbilityKind.SUMMON,
    AbilityKind.RAISE_DEAD, AbilityKind.LAY_EGGS, AbilityKind.CREATE_WEB,
})

ESCAPE_KINDS = frozenset({AbilityKind.TELEPORT, AbilityKind.WARP})


def flee_threshold_for(creature: Creature) -> float:
    if creature.flee_threshold is not None:
        return creature.flee_threshold
    if creature.pattern == AIPattern.COWARDLY:
        return COWARDLY_FLEE_THRESHOLD
    return DEFAULT_FLEE_THRESHOLD


def should_flee(creature: Creature) -> bool:
    """True when HP is strictly below the flee threshold (fearless creatures never flee)."""
    if creature.flags.no_flee or creature.flags.mindless:
        return False
    return creature.hp_fraction < flee_threshold_for(creature)


def get_nearby_allies(creature: Creature, ctx: TurnContext, radius: float = PACK_RADIUS) -> list[Creature]:
    """Hostile, living creatures of the same kind within radius."""
    x, y = creature.position
    return [
        other for other in safe_occupants_in_radius(ctx.spatial, x, y, radius, sink=ctx.sink)
        if other.id != creature.id
        and other.kind == creature.kind
        and other.is_alive
        and other.state == CreatureState.HOSTILE
    ]


def surround_position(creature: Creature, target: Creature, ctx: TurnContext) -> tuple[int, int] | None:
    """First free neighbour of the target, in the fixed surround order."""
    tx, ty = target.position
    for dx, dy in NEIGHBOR_OFFSETS:
        cell = (tx + dx, ty + dy)
        if not safe_is_passable(ctx.spatial, *cell, sink=ctx.sink):
            continue
        occupant = safe_occupant_at(ctx.spatial, *cell, sink=ctx.sink)
        if occupant is None or occupant.id == creature.id:
            return cell
    return None


def choose_ability(
    creature: Creature,
    target: Creature,
    ctx: TurnContext,
    kinds: frozenset[AbilityKind],
    has_los: bool,
) -> str | None:
    """First ready ability of the given kinds, skipping sighted ones without line of sight."""
    for name in ready_abilities(creature, target, ctx):
        ability = get_ability(name, ctx.catalog)
        if ability.kind not in kinds:
            continue
        if ability.kind in _SIGHTED_KINDS and not has_los:
            continue
        return name
    return None


def _attack_or_pursue(creature: Creature, target: Creature, dist: float, reason: str) -> Decision:
    if dist <= ADJACENT_DISTANCE:
        return Decision(action=AIAction.ATTACK, target_id=target.id, reason=reason)
    return Decision(action=AIAction.PURSUE, target_id=target.id, reason=reason)


def _ranged_option(creature: Creature, dist: float, has_los: bool) -> bool:
    attack = distance_attack_for(creature)
    return attack is not None and has_los and dist <= attack.range


def aggressive_action(creature, target, ctx, dist, has_los) -> Decision:
    ability = choose_ability(creature, target, ctx, OFFENSIVE_KINDS | {AbilityKind.SELF_BUFF}, has_los)
    if ability:
        return Decision(action=AIAction.ATTACK, target_id=target.id, ability=ability, reason="ability")
    if dist > ADJACENT_DISTANCE and _ranged_option(creature, dist, has_los):
        return Decision(action=AIAction.ATTACK, target_id=target.id, reason="ranged")
    return _attack_or_pursue(creature, target, dist, "aggressive")


def defensive_action(creature, target, ctx, dist, has_los) -> Decision:
    """Hold ground near the target and hit back, stepping away after each blow."""
    ability = choose_ability(creature, target, ctx, SUPPORT_KINDS | OFFENSIVE_KINDS, has_los)
    if ability:
        return Decision(action=AIAction.ATTACK, target_id=target.id, ability=ability, reason="ability")
    if dist <= ADJACENT_DISTANCE:
        return Decision(
            action=AIAction.ATTACK, target_id=target.id,
            retreat_after=creature.hp_fraction < COWARDLY_HURT_THRESHOLD, reason="defensive",
        )
    if _ranged_option(creature, dist, has_los):
        return Decision(action=AIAction.ATTACK, target_id=target.id, reason="ranged")
    if dist <= DEFENSIVE_MAX_DISTANCE:
        return Decision(action=AIAction.CIRCLE, target_id=target.id, reason="holding distance")
    return Decision(action=AIAction.PURSUE, target_id=target.id, reason="closing in")


def ranged_action(creature, target, ctx, dist, has_los) -> Decision:
    """Keep between RANGED_MIN and RANGED_MAX tiles and shoot."""
    ability = choose_ability(creature, target, ctx, OFFENSIVE_KINDS, has_los)
    if distance_attack_for(creature) is None and ability is None:
        return aggressive_action(creature, target, ctx, dist, has_los)

    if dist < RANGED_MIN_DISTANCE:
        if is_cornered(creature, ctx):
            return Decision(action=AIAction.ATTACK, target_id=target.id, ability=ability, reason="cornered")
        return Decision(action=AIAction.STEP_BACK, target_id=target.id, reason="too close")
    if dist <= RANGED_MAX_DISTANCE and has_los:
        if ability:
            return Decision(action=AIAction.ATTACK, target_id=target.id, ability=ability, reason="ability")
        if _ranged_option(creature, dist, has_los):
            return Decision(action=AIAction.ATTACK, target_id=target.id, reason="ranged")
    return Decision(action=AIAction.PURSUE, target_id=target.id, reason="finding a shot")


def intelligent_action(creature, target, ctx, dist, has_los) -> Decision:
    """Uses its whole kit: escapes when hurt, abilities first, flanks stronger foes."""
    if creature.hp_fraction < INTELLIGENT_RETREAT_THRESHOLD:
        escape = choose_ability(creature, target, ctx, ESCAPE_KINDS, has_los)
        if escape:
            return Decision(action=AIAction.FLEE, target_id=target.id, ability=escape, reason="escaping")
        if dist <= ADJACENT_DISTANCE and not is_cornered(creature, ctx):
            return Decision(action=AIAction.STEP_BACK, target_id=target.id, reason="retreating")

    ability = choose_ability(creature, target, ctx, OFFENSIVE_KINDS | SUPPORT_KINDS, has_los)
    if ability:
        return Decision(action=AIAction.ATTACK, target_id=target.id, ability=ability, reason="ability")
    if dist <= ADJACENT_DISTANCE:
        return Decision(action=AIAction.ATTACK, target_id=target.id, reason="melee")
    if _ranged_option(creature, dist, has_los):
        return Decision(action=AIAction.ATTACK, target_id=target.id, reason="ranged")

    stronger = target.hp_fraction > creature.hp_fraction
    if stronger and not get_nearby_allies(creature, ctx) and dist <= DEFENSIVE_MAX_DISTANCE:
        return Decision(action=AIAction.CIRCLE, target_id=target.id, reason="sizing up")
    return Decision(action=AIAction.PURSUE, target_id=target.id, reason="intelligent")


def cowardly_action(creature, target, ctx, dist, has_los) -> Decision:
    """Keeps away unless cornered or the target is nearly dead."""
    target_weak = target.hp_fraction < WEAK_TARGET_THRESHOLD
    cornered = is_cornered(creature, ctx)

    if creature.hp_fraction < COWARDLY_HURT_THRESHOLD:
        if cornered or target_weak:
            return _attack_or_pursue(creature, target, dist, "desperate")
        return _flee(creature, target, ctx, has_los, "hurt")

    if dist <= ADJACENT_DISTANCE:
        ability = choose_ability(creature, target, ctx, OFFENSIVE_KINDS, has_los)
        if cornered or target_weak:
            return Decision(action=AIAction.ATTACK, target_id=target.id, ability=ability, reason="no way out")
        if ability:
            # Thieves strike and run
            return Decision(action=AIAction.ATTACK, target_id=target.id, ability=ability, reason="snatch")
        return _flee(creature, target, ctx, has_los, "too close")

    if dist > RANGED_MAX_DISTANCE:
        if target.hp_fraction < CAUTIOUS_APPROACH_THRESHOLD:
            return Decision(action=AIAction.PURSUE, target_id=target.id, reason="easy prey")
        return Decision(action=AIAction.WANDER, reason="keeping away")

    if _ranged_option(creature, dist, has_los):
        return Decision(action=AIAction.ATTACK, target_id=target.id, reason="ranged")
    return Decision(action=AIAction.IDLE, target_id=target.id, reason="watching")


def pack_hunter_action(creature, target, ctx, dist, has_los) -> Decision:
    """With enough of the pack nearby, fan out around the target; alone, fight like anyone else."""
    if dist <= ADJACENT_DISTANCE:
        return Decision(action=AIAction.ATTACK, target_id=target.id, reason="pack attack")

    allies = get_nearby_allies(creature, ctx)
    if len(allies) >= PACK_MIN_ALLIES:
        spot = surround_position(creature, target, ctx)
        return Decision(action=AIAction.PURSUE, target_id=target.id, destination=spot, reason="surround")

    return aggressive_action(creature, target, ctx, dist, has_los)


PATTERN_ACTIONS = {
    AIPattern.AGGRESSIVE: aggressive_action,
    AIPattern.DEFENSIVE: defensive_action,
    AIPattern.RANGED: ranged_action,
    AIPattern.INTELLIGENT: intelligent_action,
    AIPattern.COWARDLY: cowardly_action,
    AIPattern.PACK_HUNTER: pack_hunter_action,
}


def _flee(creature, target, ctx, has_los, reason) -> Decision:
    escape = choose_ability(creature, target, ctx, ESCAPE_KINDS, has_los)
    return Decision(action=AIAction.FLEE, target_id=target.id, ability=escape, reason=reason)


def guard_action(creature: Creature, target: Creature | None, ctx: TurnContext) -> Decision:
    """Engage intruders near the post, otherwise drift back to it."""
    post = creature.guard_post or creature.position
    if target is not None and target.is_alive and distance(target.position, post) <= GUARD_ALERT_RADIUS:
        dist = distance(creature.position, target.position)
        return _attack_or_pursue(creature, target, dist, "intruder")
    if distance(creature.position, post) > GUARD_LEASH:
        return Decision(action=AIAction.GUARD_RETURN, destination=post, reason="returning to post")
    return Decision(action=AIAction.IDLE, reason="on guard")


def select_action(creature: Creature, target: Creature | None, ctx: TurnContext) -> Decision:
    """Choose exactly one action for this turn.

    A guard still holding its post follows the guard rule even once it is
    hostile. Otherwise fear and the flee check come before the creature's
    pattern; cowardly creatures that are cornered or facing a nearly dead
    target fight instead of fleeing. Nothing is mutated.

    Args:
        creature: The acting creature.
        target: Its current target, if any.
        ctx: Turn context (spatial queries and ability catalog).

    Returns:
        The Decision to execute.
    """
    if creature.state == CreatureState.GUARDING or (
        creature.state == CreatureState.HOSTILE and creature.guard_post is not None
    ):
        return guard_action(creature, target, ctx)
    if creature.state != CreatureState.HOSTILE or target is None or not target.is_alive:
        return Decision(action=AIAction.WANDER, reason="no target")

    dist = distance(creature.position, target.position)
    has_los = safe_line_of_sight(ctx.spatial, creature.position, target.position, sink=ctx.sink)

    if creature.engulfed_id == target.id:
        digest = choose_ability(creature, target, ctx, frozenset({AbilityKind.DIGESTION}), has_los)
        if digest:
            return Decision(action=AIAction.ATTACK, target_id=target.id, ability=digest, reason="digesting")

    if creature.has_condition("feared"):
        return _flee(creature, target, ctx, has_los, "terrified")

    if should_flee(creature):
        cornered = is_cornered(creature, ctx)
        target_weak = target.hp_fraction < WEAK_TARGET_THRESHOLD
        if creature.pattern == AIPattern.COWARDLY and (cornered or target_weak):
            return _attack_or_pursue(creature, target, dist, "cornered" if cornered else "target is weak")
        return _flee(creature, target, ctx, has_los, "low health")

    decision = PATTERN_ACTIONS[creature.pattern](creature, target, ctx, dist, has_los)
    logger.debug("%s (%s) chose %s: %s", creature.id, creature.pattern.value, decision.action.value, decision.reason)
    return decision
