"""Special abilities: the shared catalog, a kind -> resolver registry, and usage rules.

Every resolver has the signature ``(creature, ability, target, ctx)`` and
returns a list of CombatOutcome on success, or None when the ability could
not take effect (nothing changes and no cooldown is spent). World changes
the engine does not own (new monsters, item transfers, terrain) are emitted
as request notices.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Callable

from config import (
    ADJACENT_DISTANCE,
    DEATH_GAZE_KILL_CHANCE,
    DEFAULT_CONDITION_DURATION,
    DIGESTION_KILL_CHANCE,
    DIGESTION_KILL_THRESHOLD,
    DRAIN_HP_PER_LEVEL,
    EQUIPMENT_DAMAGE_CHANCE,
    GAZE_RANGE,
    STEAL_GOLD_MAX,
    STEAL_GOLD_MIN,
    WARP_RETREAT_RANGE,
    WARP_RETREAT_THRESHOLD,
)
from engine.conditions import (
    apply_condition,
    clear_magical_conditions,
    is_incapacitated,
    resists_condition,
)
from engine.dice import random_choice, roll_chance
from engine.grid import (
    NEIGHBOR_OFFSETS,
    distance,
    safe_is_passable,
    safe_line_of_sight,
    safe_occupant_at,
    safe_occupants_in_radius,
)
from engine.notices import emit_debug
from engine.rules import (
    apply_damage,
    cone_occupants,
    engulf_target,
    gaze_blocked,
    heal,
    release_engulf,
    strike,
)
from models.abilities import AbilityDef, AbilityKind
from models.actions import CombatOutcome
from models.game_state import NoticeKind

if TYPE_CHECKING:
    from engine.context import TurnContext
    from models.characters import Creature

logger = logging.getLogger(__name__)

Resolver = Callable[["Creature", AbilityDef, "Creature | None", "TurnContext"], "list[CombatOutcome] | None"]


def _breath(name: str, damage_kind: str, damage: str = "4d6", **kwargs) -> AbilityDef:
    return AbilityDef(
        name=name, kind=AbilityKind.BREATH, cooldown=5, range=6, area="cone",
        damage=damage, damage_kind=damage_kind, **kwargs,
    )


def _gaze(name: str, condition: str | None, duration: int = 3, **kwargs) -> AbilityDef:
    return AbilityDef(
        name=name, kind=AbilityKind.GAZE, cooldown=4, range=GAZE_RANGE,
        condition=condition, duration=duration, **kwargs,
    )


def _summon(name: str, count: str, summon_kind: str | None) -> AbilityDef:
    return AbilityDef(
        name=name, kind=AbilityKind.SUMMON, cooldown=10, count=count,
        summon_kind=summon_kind, message="calls for help",
    )


def _buff(name: str, condition: str, duration: int, cooldown: int = 8, **kwargs) -> AbilityDef:
    return AbilityDef(
        name=name, kind=AbilityKind.SELF_BUFF, cooldown=cooldown,
        condition=condition, duration=duration, **kwargs,
    )


ABILITY_CATALOG: dict[str, AbilityDef] = {a.name: a for a in [
    # Breath
    _breath("fire_breath", "fire", message="breathes fire"),
    _breath("cold_breath", "cold", message="breathes frost"),
    _breath("frost_breath", "cold", damage="3d6", condition="slowed",
            condition_chance=0.3, duration=3, message="exhales a freezing mist"),
    _breath("lightning_breath", "lightning", condition="blinded",
            condition_chance=0.3, duration=5, message="breathes lightning"),
    _breath("acid_breath", "acid", equipment_damage="acid", message="spews acid"),
    _breath("poison_breath", "poison", damage="3d6", condition="poisoned",
            duration=10, message="breathes a cloud of poison"),
    _breath("breath_weapon", "fire", damage="3d6", message="breathes"),
    AbilityDef(name="sleep_breath", kind=AbilityKind.SLEEP_BREATH, cooldown=6, range=6,
               area="cone", condition="sleeping", duration=5, message="breathes sleeping gas"),
    AbilityDef(name="disintegration_breath", kind=AbilityKind.DISINTEGRATION, cooldown=10,
               range=6, damage_kind="disintegration", multiplier=0.75,
               message="breathes a disintegration beam"),

    # Gaze
    AbilityDef(name="petrification_gaze", kind=AbilityKind.PETRIFICATION_GAZE, cooldown=5,
               range=GAZE_RANGE, damage_kind="petrification", message="gazes"),
    AbilityDef(name="death_gaze", kind=AbilityKind.DEATH_GAZE, cooldown=8,
               range=GAZE_RANGE, damage_kind="death", message="gazes with deadly eyes"),
    _gaze("paralysis_gaze", "paralyzed", 3, message="gazes with paralyzing eyes"),
    _gaze("confusion_gaze", "confused", 4, message="gazes with swirling eyes"),
    _gaze("fear_gaze", "feared", 4, message="gazes with terrifying eyes"),
    _gaze("slow_gaze", "slowed", 5, message="gazes with heavy eyes"),
    _gaze("gaze_attack", None, damage="2d6", damage_kind="magic", message="gazes"),
    AbilityDef(name="cancellation_gaze", kind=AbilityKind.CANCELLATION_GAZE, cooldown=6,
               range=GAZE_RANGE, message="gazes with empty eyes"),

    # Engulf
    AbilityDef(name="engulf", kind=AbilityKind.ENGULF, cooldown=4, range=1,
               damage="1d6", message="engulfs its prey"),
    AbilityDef(name="acid_engulf", kind=AbilityKind.ENGULF, cooldown=4, range=1,
               damage="2d6", damage_kind="acid", equipment_damage="acid",
               message="engulfs its prey in acid"),
    AbilityDef(name="fire_engulf", kind=AbilityKind.ENGULF, cooldown=4, range=1,
               damage="2d6", damage_kind="fire", message="engulfs its prey in flame"),
    AbilityDef(name="drowning", kind=AbilityKind.ENGULF, cooldown=6, range=1,
               condition="drowning", duration=5, message="drags its prey under"),
    AbilityDef(name="digestion", kind=AbilityKind.DIGESTION, cooldown=1,
               damage="2d6", damage_kind="digestion", message="digests"),

    # Movement
    AbilityDef(name="teleport", kind=AbilityKind.TELEPORT, cooldown=5, amount=10,
               message="vanishes"),
    AbilityDef(name="blink", kind=AbilityKind.TELEPORT, cooldown=3, amount=3,
               message="blinks"),
    AbilityDef(name="teleport_other", kind=AbilityKind.TELEPORT_OTHER, cooldown=6, range=1,
               amount=10, message="touches you and the world shifts"),
    AbilityDef(name="covetous_warp", kind=AbilityKind.WARP, cooldown=3, amount=4,
               message="warps through space"),
    AbilityDef(name="charge", kind=AbilityKind.CHARGE, cooldown=4, range=6,
               damage="2d6", multiplier=2.0, message="charges"),
    _buff("phase", "phasing", 3, message="fades into the walls"),
    _buff("fly", "flying", 5, message="takes flight"),
    _buff("swim", "swimming", 5, message="dives"),
    _buff("speed_burst", "hasted", 3, message="speeds up"),

    # Summoning and creation
    _summon("summon_monsters", "1d3", None),
    _summon("summon_minions", "1d4", "minion"),
    _summon("summon_insects", "2d4", "insect"),
    _summon("summon_undead", "1d3", "undead"),
    _summon("summon_demons", "1d2", "demon"),
    AbilityDef(name="raise_dead", kind=AbilityKind.RAISE_DEAD, cooldown=8, amount=5,
               summon_kind="skeleton", message="raises the dead"),
    AbilityDef(name="lay_eggs", kind=AbilityKind.LAY_EGGS, cooldown=12, count="1d3",
               message="lays eggs"),
    AbilityDef(name="create_web", kind=AbilityKind.CREATE_WEB, cooldown=8,
               message="spins a web"),

    # Transformation
    _buff("invisibility", "invisible", 10, cooldown=15, message="turns invisible"),
    AbilityDef(name="shapechange", kind=AbilityKind.SHAPECHANGE, cooldown=10,
               condition="shapechanged", duration=10, forms=("bat", "wolf", "mist"),
               message="changes shape"),
    AbilityDef(name="polymorph", kind=AbilityKind.SHAPECHANGE, cooldown=15,
               condition="polymorphed", duration=10,
               forms=("newt", "troll", "giant", "dragon"), message="polymorphs"),

    # Theft and equipment
    AbilityDef(name="steal_item", kind=AbilityKind.STEAL_ITEM, cooldown=5, range=1,
               teleport_after=0.5, message="steals something"),
    AbilityDef(name="steal_gold", kind=AbilityKind.STEAL_GOLD, cooldown=5, range=1,
               teleport_after=0.5, message="snatches some gold"),
    AbilityDef(name="steal_weapon", kind=AbilityKind.STEAL_WEAPON, cooldown=6, range=1,
               teleport_after=0.3, message="grabs your weapon"),
    AbilityDef(name="disarm", kind=AbilityKind.DISARM, cooldown=6, range=1,
               message="knocks your weapon away"),
    AbilityDef(name="rust_items", kind=AbilityKind.EQUIPMENT, cooldown=4, range=1,
               equipment_damage="rust", message="touches your gear"),
    AbilityDef(name="corrode_items", kind=AbilityKind.EQUIPMENT, cooldown=4, range=1,
               equipment_damage="acid", message="dissolves your gear"),

    # Touch
    AbilityDef(name="stone_touch", kind=AbilityKind.STONE_TOUCH, cooldown=6, range=1,
               damage_kind="petrification", message="reaches out with a stony touch"),
    AbilityDef(name="rust_touch", kind=AbilityKind.TOUCH, cooldown=3, range=1,
               equipment_damage="rust", message="touches you"),
    AbilityDef(name="shock_touch", kind=AbilityKind.TOUCH, cooldown=3, range=1,
               damage="2d6", damage_kind="lightning", message="sparks"),
    AbilityDef(name="freeze_touch", kind=AbilityKind.TOUCH, cooldown=3, range=1,
               damage="1d6", damage_kind="cold", condition="slowed",
               condition_chance=0.3, duration=3, message="touches you with icy fingers"),
    AbilityDef(name="acid_touch", kind=AbilityKind.TOUCH, cooldown=3, range=1,
               damage="1d8", damage_kind="acid", equipment_damage="acid",
               message="touches you with acid"),
    AbilityDef(name="paralyze_touch", kind=AbilityKind.TOUCH, cooldown=5, range=1,
               condition="paralyzed", duration=3, message="touches you"),
    AbilityDef(name="disease_attack", kind=AbilityKind.TOUCH, cooldown=5, range=1,
               damage="1d4", condition="diseased", duration=20, message="infects you"),
    AbilityDef(name="drain_touch", kind=AbilityKind.DRAIN_TOUCH, cooldown=6, range=1,
               damage_kind="drain", amount=1, message="drains your life force"),
    AbilityDef(name="drain_life", kind=AbilityKind.DRAIN_LIFE, cooldown=4, range=1,
               damage="2d6", damage_kind="necrotic", message="drains your life"),

    # Projectiles and status
    AbilityDef(name="spit_venom", kind=AbilityKind.PROJECTILE, cooldown=3, range=4,
               damage="1d6", damage_kind="poison", condition="poisoned", duration=5,
               message="spits venom"),
    AbilityDef(name="spit_acid", kind=AbilityKind.PROJECTILE, cooldown=3, range=4,
               damage="2d4", damage_kind="acid", equipment_damage="acid",
               message="spits acid"),
    AbilityDef(name="spit_web", kind=AbilityKind.PROJECTILE, cooldown=4, range=4,
               condition="webbed", duration=3, message="spits a sticky web"),
    AbilityDef(name="web", kind=AbilityKind.STATUS, cooldown=5, range=3,
               condition="webbed", duration=4, message="shoots a web"),
    AbilityDef(name="throw_boulder", kind=AbilityKind.PROJECTILE, cooldown=4, range=6,
               damage="3d6", damage_kind="bludgeon", message="hurls a boulder"),

    # Self buffs
    _buff("stone_skin", "stone_skin", 5, message="hardens its skin"),
    _buff("rage", "raging", 5, message="flies into a rage"),

    # Passives
    AbilityDef(name="regeneration", kind=AbilityKind.REGENERATION, cooldown=0,
               amount=2, passive=True),
    AbilityDef(name="poison", kind=AbilityKind.ON_HIT, cooldown=0, condition="poisoned",
               condition_chance=0.5, duration=5, passive=True),
    AbilityDef(name="berserk", kind=AbilityKind.BERSERK, cooldown=0, threshold=0.3,
               passive=True, message="goes berserk"),
    AbilityDef(name="split_on_damage", kind=AbilityKind.SPLIT, cooldown=5, threshold=0.5,
               passive=True, message="splits in two"),
    AbilityDef(name="explode_on_death", kind=AbilityKind.EXPLODE, cooldown=0,
               damage="4d6", damage_kind="fire", passive=True, message="explodes"),
    AbilityDef(name="turn_to_gold", kind=AbilityKind.TURN_TO_GOLD, cooldown=0,
               count="10d10", passive=True, message="crumbles into gold"),
]}

# Abilities acting on the user or the surroundings rather than a target
SELF_TARGETED_KINDS = frozenset({
    AbilityKind.SELF_BUFF,
    AbilityKind.TELEPORT,
    AbilityKind.SHAPECHANGE,
    AbilityKind.SUMMON,
    AbilityKind.RAISE_DEAD,
    AbilityKind.LAY_EGGS,
    AbilityKind.CREATE_WEB,
})

_EQUIPMENT_VERBS = {"rust": "rusts", "acid": "corrodes", "fire": "burns", "cold": "cracks"}


def get_ability(name: str, catalog: dict[str, AbilityDef] | None = None) -> AbilityDef | None:
    return (catalog if catalog is not None else ABILITY_CATALOG).get(name)


def _in_range(creature: Creature, target: Creature, reach: int) -> bool:
    limit = ADJACENT_DISTANCE if reach <= 1 else reach
    return distance(creature.position, target.position) <= limit


def can_use_ability(
    creature: Creature,
    name: str,
    target: Creature | None,
    ctx: TurnContext,
) -> tuple[bool, str]:
    """Check every precondition before an ability is resolved.

    Returns:
        (usable, reason) tuple.
    """
    ability = get_ability(name, ctx.catalog)
    if ability is None:
        return False, f"Unknown ability: {name}"
    if name not in creature.abilities:
        return False, f"{creature.name} does not have {name}"
    if ability.passive:
        return False, f"{name} is passive"
    if not creature.is_alive:
        return False, f"{creature.name} is dead"
    if is_incapacitated(creature):
        return False, f"{creature.name} is incapacitated"
    if creature.cooldowns.get(name, 0) > 0:
        return False, f"{name} is on cooldown"
    if ability.threshold is not None and creature.hp_fraction >= ability.threshold:
        return False, f"{name} is not triggered yet"

    if ability.kind in SELF_TARGETED_KINDS:
        return True, ""
    if target is None or not target.is_alive:
        return False, "No living target"
    if ability.range is not None and not _in_range(creature, target, ability.range):
        return False, "Target is out of range"
    return True, ""


def ready_abilities(
    creature: Creature,
    target: Creature | None,
    ctx: TurnContext,
) -> list[str]:
    """Names of active abilities usable right now, in the creature's own order."""
    return [
        name for name in creature.abilities
        if can_use_ability(creature, name, target, ctx)[0]
    ]


def resolve_ability(
    creature: Creature,
    ability: AbilityDef,
    target: Creature | None,
    ctx: TurnContext,
) -> list[CombatOutcome] | None:
    resolver = ABILITY_RESOLVERS.get(ability.kind)
    if resolver is None:
        emit_debug(ctx.sink, f"No resolver for ability kind {ability.kind.value}",
                   ability=ability.name)
        return None
    return resolver(creature, ability, target, ctx)


def use_ability(
    creature: Creature,
    name: str,
    target: Creature | None,
    ctx: TurnContext,
) -> bool:
    """Use a named ability.

    On success the ability's cooldown is set; on failure nothing changes.

    Args:
        creature: The creature using the ability.
        name: Ability name from the catalog.
        target: The ability's target (ignored by self-targeted abilities).
        ctx: Turn context.

    Returns:
        True if the ability took effect.
    """
    ability = get_ability(name, ctx.catalog)
    if ability is None:
        emit_debug(ctx.sink, f"Unknown ability: {name}", creature_id=creature.id, ability=name)
        return False

    usable, reason = can_use_ability(creature, name, target, ctx)
    if not usable:
        logger.debug("%s cannot use %s: %s", creature.id, name, reason)
        return False

    outcomes = resolve_ability(creature, ability, target, ctx)
    if outcomes is None:
        logger.debug("%s: %s had no effect", creature.id, name)
        return False

    creature.cooldowns[name] = ability.cooldown
    ctx.notify(
        NoticeKind.ABILITY_USED,
        f"The {creature.name} {ability.message or 'uses ' + name.replace('_', ' ')}!",
        actor_id=creature.id,
        target_id=target.id if target is not None else None,
        details={"ability": name, "outcomes": len(outcomes)},
    )
    return True


def tick_cooldowns(creature: Creature) -> None:
    """Count every cooldown down by one, never below 0."""
    for name, remaining in creature.cooldowns.items():
        creature.cooldowns[name] = max(0, remaining - 1)


# ---------------------------------------------------------------------------
# Shared effect helpers
# ---------------------------------------------------------------------------


def _inflict(
    creature: Creature,
    victim: Creature,
    ability: AbilityDef,
    ctx: TurnContext,
) -> str | None:
    """Apply the ability's condition to the victim, if it lands."""
    if not ability.condition or not victim.is_alive:
        return None
    if resists_condition(victim, ability.condition):
        return None
    if not roll_chance(ability.condition_chance, rng=ctx.rng):
        return None
    duration = ability.duration if ability.duration is not None else DEFAULT_CONDITION_DURATION
    apply_condition(victim, ability.condition, duration, ctx, source_id=creature.id)
    return ability.condition


def _damage_equipment(
    creature: Creature,
    victim: Creature,
    effect: str,
    ctx: TurnContext,
    chance: float = EQUIPMENT_DAMAGE_CHANCE,
) -> bool:
    if victim.resists(effect) or not roll_chance(chance, rng=ctx.rng):
        return False
    ctx.notify(
        NoticeKind.EQUIPMENT_DAMAGED,
        f"The {victim.name}'s equipment {_EQUIPMENT_VERBS.get(effect, 'is damaged')}!",
        actor_id=creature.id,
        target_id=victim.id,
        damage_kind=effect,
        details={"effect": effect},
    )
    return True


def _hit_with(
    creature: Creature,
    victim: Creature,
    ability: AbilityDef,
    ctx: TurnContext,
) -> CombatOutcome:
    """Damage, condition and equipment effects of one ability against one victim."""
    if ability.damage:
        raw = math.floor(ctx.roll(ability.damage) * ability.multiplier)
        outcome = strike(creature, victim, raw, ability.damage_kind, ctx)
        # A reflected element carries no rider effect
        if outcome.deflected:
            return outcome
    else:
        outcome = CombatOutcome(
            attacker_id=creature.id, target_id=victim.id, hit=True,
            damage_kind=ability.damage_kind,
        )

    outcome.condition = _inflict(creature, victim, ability, ctx)
    if ability.equipment_damage and victim.is_alive:
        _damage_equipment(creature, victim, ability.equipment_damage, ctx)
    return outcome


def _slay(creature: Creature, victim: Creature, ctx: TurnContext, message: str) -> CombatOutcome:
    """Instant death (petrification, death gaze, complete digestion)."""
    ctx.notify(
        NoticeKind.ATTACK_HIT,
        message,
        actor_id=creature.id,
        target_id=victim.id,
        amount=victim.hp,
    )
    was_alive = victim.is_alive
    dealt = apply_damage(victim, victim.hp, ctx, attacker_id=creature.id)
    return CombatOutcome(
        attacker_id=creature.id,
        target_id=victim.id,
        hit=True,
        damage=dealt,
        killed=was_alive and not victim.is_alive,
        reflected=victim.id == creature.id,
        description=message,
    )


def _needs_sight(creature: Creature, target: Creature, ctx: TurnContext) -> bool:
    if safe_line_of_sight(ctx.spatial, creature.position, target.position, sink=ctx.sink):
        return True
    logger.debug("%s has no line of sight to %s", creature.id, target.id)
    return False


def _free_cell(x: int, y: int, ctx: TurnContext) -> bool:
    return (
        safe_is_passable(ctx.spatial, x, y, sink=ctx.sink)
        and safe_occupant_at(ctx.spatial, x, y, sink=ctx.sink) is None
    )


def _open_cells(center: tuple[int, int], radius: int, ctx: TurnContext) -> list[tuple[int, int]]:
    """Passable, unoccupied cells in the square around center, excluding it."""
    cx, cy = center
    cells = []
    for y in range(cy - radius, cy + radius + 1):
        for x in range(cx - radius, cx + radius + 1):
            if (x, y) == center:
                continue
            if _free_cell(x, y, ctx):
                cells.append((x, y))
    return cells


def _relocate(creature: Creature, dest: tuple[int, int], ctx: TurnContext) -> None:
    origin = creature.position
    release_engulf(creature, ctx)
    creature.position = dest
    ctx.notify(
        NoticeKind.MOVED,
        f"The {creature.name} disappears and reappears elsewhere.",
        actor_id=creature.id,
        position=dest,
        details={"from": list(origin), "teleport": True},
    )


def _teleport_within(creature: Creature, radius: int, ctx: TurnContext) -> bool:
    dest = random_choice(_open_cells(creature.position, radius, ctx), rng=ctx.rng)
    if dest is None:
        return False
    _relocate(creature, dest, ctx)
    return True


def _free_neighbor(
    around: tuple[int, int],
    ctx: TurnContext,
    closest_to: tuple[int, int] | None = None,
) -> tuple[int, int] | None:
    cells = []
    for dx, dy in NEIGHBOR_OFFSETS:
        x, y = around[0] + dx, around[1] + dy
        if _free_cell(x, y, ctx):
            cells.append((x, y))
    if not cells:
        return None
    if closest_to is not None:
        # min() keeps the first of equals, so neighbour order breaks ties
        return min(cells, key=lambda cell: distance(cell, closest_to))
    return cells[0]


def _request_transfer(
    creature: Creature,
    target: Creature,
    ctx: TurnContext,
    message: str,
    **details,
) -> None:
    ctx.notify(
        NoticeKind.ITEM_TRANSFER_REQUESTED,
        message,
        actor_id=creature.id,
        target_id=target.id,
        position=creature.position,
        details={"from": target.id, **details},
    )


def _request_summon(
    creature: Creature,
    summon_kind: str | None,
    count: int,
    position: tuple[int, int],
    ctx: TurnContext,
    **details,
) -> None:
    label = summon_kind or "monster"
    ctx.notify(
        NoticeKind.SUMMON_REQUESTED,
        f"{count} {label}{'s' if count != 1 else ''} appear!",
        actor_id=creature.id,
        position=position,
        amount=count,
        details={"summon_kind": summon_kind, "count": count, **details},
    )


# ---------------------------------------------------------------------------
# Resolvers
# ---------------------------------------------------------------------------


def resolve_breath(creature, ability, target, ctx):
    """Elemental breath; a cone breath hits every occupant, allies included."""
    if not _needs_sight(creature, target, ctx):
        return None
    if ability.area == "cone":
        victims = cone_occupants(creature, target.position, ability.range or 1, ctx)
    else:
        victims = [target]
    return [_hit_with(creature, victim, ability, ctx) for victim in victims]


def resolve_sleep_breath(creature, ability, target, ctx):
    if not _needs_sight(creature, target, ctx):
        return None
    outcomes = []
    for victim in cone_occupants(creature, target.position, ability.range or 1, ctx):
        outcomes.append(CombatOutcome(
            attacker_id=creature.id,
            target_id=victim.id,
            hit=True,
            condition=_inflict(creature, victim, ability, ctx),
            resisted=resists_condition(victim, "sleeping"),
        ))
    return outcomes


def resolve_disintegration(creature, ability, target, ctx):
    """Beam taking most of the target's remaining HP; a reflected beam kills the user."""
    if not _needs_sight(creature, target, ctx):
        return None
    if target.has_reflection():
        ctx.notify(
            NoticeKind.EFFECT_REFLECTED,
            f"The disintegration beam reflects back at the {creature.name}!",
            actor_id=creature.id,
            target_id=target.id,
            damage_kind=ability.damage_kind,
        )
        return [_slay(creature, creature, ctx, f"The {creature.name} is disintegrated!")]
    if target.resists(ability.damage_kind):
        ctx.notify(
            NoticeKind.DAMAGE_RESISTED,
            f"The {target.name} is unaffected by the beam.",
            actor_id=creature.id,
            target_id=target.id,
            damage_kind=ability.damage_kind,
        )
        return [CombatOutcome(attacker_id=creature.id, target_id=target.id, hit=True, resisted=True)]

    damage = max(1, math.floor(target.hp * ability.multiplier))
    return [strike(creature, target, damage, ability.damage_kind, ctx, verb="disintegrates")]


def _gaze_victim(creature, target, ctx):
    """Whoever receives a gaze's effect: the target, or the user when reflected.

    Returns None if eye contact is impossible.
    """
    reason = gaze_blocked(creature, target)
    if reason is not None:
        logger.debug("%s gaze blocked: %s", creature.id, reason)
        return None
    if not _needs_sight(creature, target, ctx):
        return None
    if target.has_reflection():
        ctx.notify(
            NoticeKind.EFFECT_REFLECTED,
            f"The {creature.name}'s gaze is reflected back at it!",
            actor_id=creature.id,
            target_id=target.id,
        )
        return creature
    return target


def resolve_gaze(creature, ability, target, ctx):
    victim = _gaze_victim(creature, target, ctx)
    if victim is None:
        return None
    outcome = _hit_with(creature, victim, ability, ctx)
    outcome.reflected = victim is creature
    return [outcome]


def resolve_petrification_gaze(creature, ability, target, ctx):
    victim = _gaze_victim(creature, target, ctx)
    if victim is None:
        return None
    if victim.resists("petrification"):
        return [CombatOutcome(attacker_id=creature.id, target_id=victim.id, hit=True,
                              resisted=True, reflected=victim is creature)]
    return [_slay(creature, victim, ctx, f"The {victim.name} turns to stone!")]


def resolve_death_gaze(creature, ability, target, ctx):
    victim = _gaze_victim(creature, target, ctx)
    if victim is None:
        return None
    if victim.resists("death"):
        return [CombatOutcome(attacker_id=creature.id, target_id=victim.id, hit=True,
                              resisted=True, reflected=victim is creature)]
    if roll_chance(DEATH_GAZE_KILL_CHANCE, rng=ctx.rng):
        return [_slay(creature, victim, ctx, f"The {victim.name} is struck dead!")]

    damage = max(1, victim.hp // 2)
    ctx.notify(
        NoticeKind.ATTACK_HIT,
        f"The {victim.name} withers under the deadly gaze!",
        actor_id=creature.id,
        target_id=victim.id,
        amount=damage,
        damage_kind=ability.damage_kind,
    )
    apply_damage(victim, damage, ctx, attacker_id=creature.id)
    return [CombatOutcome(attacker_id=creature.id, target_id=victim.id, hit=True,
                          damage=damage, damage_kind=ability.damage_kind,
                          killed=not victim.is_alive, reflected=victim is creature)]


def resolve_cancellation_gaze(creature, ability, target, ctx):
    victim = _gaze_victim(creature, target, ctx)
    if victim is None:
        return None
    removed = clear_magical_conditions(victim, ctx)
    return [CombatOutcome(
        attacker_id=creature.id,
        target_id=victim.id,
        hit=True,
        reflected=victim is creature,
        description=f"cancelled {', '.join(removed) or 'nothing'}",
    )]


def resolve_engulf(creature, ability, target, ctx):
    if not engulf_target(creature, target):
        return None
    ctx.notify(
        NoticeKind.CONDITION_APPLIED,
        f"The {creature.name} engulfs the {target.name}!",
        actor_id=creature.id,
        target_id=target.id,
        condition="engulfed",
    )
    outcome = _hit_with(creature, target, ability, ctx)
    outcome.condition = outcome.condition or "engulfed"
    return [outcome]


def resolve_digestion(creature, ability, target, ctx):
    """Repeat damage to the engulfed target, with a chance to finish it off when low."""
    if target is None or creature.engulfed_id != target.id:
        return None
    outcome = _hit_with(creature, target, ability, ctx)
    if (
        target.is_alive
        and target.hp_fraction < DIGESTION_KILL_THRESHOLD
        and roll_chance(DIGESTION_KILL_CHANCE, rng=ctx.rng)
    ):
        return [outcome, _slay(creature, target, ctx, f"The {target.name} is totally digested!")]
    return [outcome]


def resolve_touch(creature, ability, target, ctx):
    return [_hit_with(creature, target, ability, ctx)]


def resolve_stone_touch(creature, ability, target, ctx):
    if target.resists("petrification"):
        return [CombatOutcome(attacker_id=creature.id, target_id=target.id, hit=True, resisted=True)]
    return [_slay(creature, target, ctx, f"The {target.name} slowly turns to stone!")]


def resolve_drain_touch(creature, ability, target, ctx):
    """Permanently lowers the target's level and max HP."""
    if target.resists(ability.damage_kind):
        return [CombatOutcome(attacker_id=creature.id, target_id=target.id, hit=True, resisted=True)]
    levels = max(1, ability.amount)
    lost = min(target.max_hp - 1, DRAIN_HP_PER_LEVEL * levels)
    target.max_hp -= lost
    target.hp = min(target.hp, target.max_hp)
    target.level = max(1, target.level - levels)
    ctx.notify(
        NoticeKind.CONDITION_APPLIED,
        f"The {target.name} feels weaker!",
        actor_id=creature.id,
        target_id=target.id,
        amount=lost,
        condition="drained",
        damage_kind=ability.damage_kind,
    )
    return [CombatOutcome(attacker_id=creature.id, target_id=target.id, hit=True,
                          damage=lost, damage_kind=ability.damage_kind, condition="drained")]


def resolve_drain_life(creature, ability, target, ctx):
    outcome = _hit_with(creature, target, ability, ctx)
    healed = heal(creature, outcome.damage)
    if healed:
        ctx.notify(
            NoticeKind.HEALED,
            f"The {creature.name} looks healthier.",
            actor_id=creature.id,
            amount=healed,
        )
    return [outcome]


def resolve_projectile(creature, ability, target, ctx):
    if not _needs_sight(creature, target, ctx):
        return None
    return [_hit_with(creature, target, ability, ctx)]


def resolve_status(creature, ability, target, ctx):
    if not _needs_sight(creature, target, ctx):
        return None
    return [CombatOutcome(
        attacker_id=creature.id,
        target_id=target.id,
        hit=True,
        condition=_inflict(creature, target, ability, ctx),
    )]


def resolve_self_buff(creature, ability, target, ctx):
    duration = ability.duration if ability.duration is not None else DEFAULT_CONDITION_DURATION
    apply_condition(creature, ability.condition, duration, ctx, source_id=creature.id)
    return [CombatOutcome(attacker_id=creature.id, target_id=creature.id, condition=ability.condition)]


def resolve_teleport(creature, ability, target, ctx):
    if not _teleport_within(creature, max(1, ability.amount), ctx):
        return None
    return []


def resolve_teleport_other(creature, ability, target, ctx):
    dest = random_choice(_open_cells(target.position, max(1, ability.amount), ctx), rng=ctx.rng)
    if dest is None:
        return None
    _relocate(target, dest, ctx)
    return [CombatOutcome(attacker_id=creature.id, target_id=target.id, hit=True)]


def resolve_warp(creature, ability, target, ctx):
    """Covetous warp: retreat far away when hurt, otherwise appear beside the target."""
    if creature.hp_fraction < WARP_RETREAT_THRESHOLD:
        if not _teleport_within(creature, WARP_RETREAT_RANGE, ctx):
            return None
        healed = heal(creature, ability.amount)
        if healed:
            ctx.notify(NoticeKind.HEALED, f"The {creature.name} recovers.",
                       actor_id=creature.id, amount=healed)
        return []

    if distance(creature.position, target.position) <= ADJACENT_DISTANCE:
        return None
    dest = _free_neighbor(target.position, ctx)
    if dest is None:
        return None
    _relocate(creature, dest, ctx)
    return []


def resolve_charge(creature, ability, target, ctx):
    """Rush to the target and strike with extra force."""
    if distance(creature.position, target.position) <= ADJACENT_DISTANCE:
        return None
    if not _needs_sight(creature, target, ctx):
        return None
    dest = _free_neighbor(target.position, ctx, closest_to=creature.position)
    if dest is None:
        return None
    origin = creature.position
    creature.position = dest
    ctx.notify(
        NoticeKind.MOVED,
        f"The {creature.name} charges!",
        actor_id=creature.id,
        position=dest,
        details={"from": list(origin)},
    )
    return [_hit_with(creature, target, ability, ctx)]


def resolve_shapechange(creature, ability, target, ctx):
    form = random_choice(ability.forms, rng=ctx.rng)
    if form is None:
        return None
    duration = ability.duration if ability.duration is not None else DEFAULT_CONDITION_DURATION
    apply_condition(creature, ability.condition or "shapechanged", duration, ctx,
                    source_id=creature.id)
    creature.form = form
    return [CombatOutcome(attacker_id=creature.id, target_id=creature.id,
                          condition=ability.condition, description=f"became a {form}")]


def resolve_summon(creature, ability, target, ctx):
    count = max(1, ctx.roll(ability.count or "1"))
    _request_summon(creature, ability.summon_kind, count, creature.position, ctx,
                    near=list(creature.position))
    return []


def resolve_raise_dead(creature, ability, target, ctx):
    """Pick the nearest unraised corpse in range and ask for it to rise."""
    corpses = [
        c for c in ctx.creatures.values()
        if not c.is_alive and not c.is_player and not c.has_condition("raised")
        and distance(creature.position, c.position) <= max(1, ability.amount)
    ]
    if not corpses:
        return None
    corpse = min(corpses, key=lambda c: distance(creature.position, c.position))
    apply_condition(corpse, "raised", None)
    _request_summon(creature, ability.summon_kind, 1, corpse.position, ctx,
                    corpse_of=corpse.id, corpse_kind=corpse.kind)
    return []


def resolve_lay_eggs(creature, ability, target, ctx):
    count = max(1, ctx.roll(ability.count or "1"))
    _request_summon(creature, ability.summon_kind or f"{creature.kind}_egg", count,
                    creature.position, ctx, parent_kind=creature.kind)
    return []


def resolve_create_web(creature, ability, target, ctx):
    cells = [creature.position]
    for dx, dy in NEIGHBOR_OFFSETS:
        x, y = creature.position[0] + dx, creature.position[1] + dy
        if safe_is_passable(ctx.spatial, x, y, sink=ctx.sink):
            cells.append((x, y))
    ctx.notify(
        NoticeKind.TERRAIN_CHANGE_REQUESTED,
        f"The {creature.name} fills the area with webbing.",
        actor_id=creature.id,
        position=creature.position,
        details={"terrain": "web", "cells": [list(c) for c in cells]},
    )
    return []


def _flee_after_theft(creature, ability, ctx):
    if roll_chance(ability.teleport_after, rng=ctx.rng):
        _teleport_within(creature, 10, ctx)


def resolve_steal_item(creature, ability, target, ctx):
    item = random_choice(target.inventory, rng=ctx.rng)
    if item is None:
        return None
    creature.inventory.append(item)
    _request_transfer(creature, target, ctx, f"The {creature.name} stole something!",
                      item=item, to=creature.id)
    _flee_after_theft(creature, ability, ctx)
    return [CombatOutcome(attacker_id=creature.id, target_id=target.id, hit=True)]


def resolve_steal_gold(creature, ability, target, ctx):
    if target.gold <= 0:
        return None
    amount = min(target.gold, ctx.rng.randint(STEAL_GOLD_MIN, STEAL_GOLD_MAX))
    creature.gold += amount
    _request_transfer(creature, target, ctx, f"The {creature.name} stole {amount} gold!",
                      gold=amount, to=creature.id)
    _flee_after_theft(creature, ability, ctx)
    return [CombatOutcome(attacker_id=creature.id, target_id=target.id, hit=True, damage=0)]


def resolve_steal_weapon(creature, ability, target, ctx):
    _request_transfer(creature, target, ctx, f"The {creature.name} snatches the {target.name}'s weapon!",
                      slot="weapon", to=creature.id)
    _flee_after_theft(creature, ability, ctx)
    return [CombatOutcome(attacker_id=creature.id, target_id=target.id, hit=True)]


def resolve_disarm(creature, ability, target, ctx):
    landing = _free_neighbor(target.position, ctx) or target.position
    _request_transfer(creature, target, ctx, f"The {target.name}'s weapon is knocked away!",
                      slot="weapon", to=None, drop_at=list(landing))
    return [CombatOutcome(attacker_id=creature.id, target_id=target.id, hit=True)]


def resolve_equipment(creature, ability, target, ctx):
    damaged = _damage_equipment(creature, target, ability.equipment_damage or "rust", ctx, chance=1.0)
    return [CombatOutcome(attacker_id=creature.id, target_id=target.id, hit=True,
                          resisted=not damaged, damage_kind=ability.equipment_damage or "rust")]


ABILITY_RESOLVERS: dict[AbilityKind, Resolver] = {
    AbilityKind.BREATH: resolve_breath,
    AbilityKind.SLEEP_BREATH: resolve_sleep_breath,
    AbilityKind.DISINTEGRATION: resolve_disintegration,
    AbilityKind.GAZE: resolve_gaze,
    AbilityKind.PETRIFICATION_GAZE: resolve_petrification_gaze,
    AbilityKind.DEATH_GAZE: resolve_death_gaze,
    AbilityKind.CANCELLATION_GAZE: resolve_cancellation_gaze,
    AbilityKind.ENGULF: resolve_engulf,
    AbilityKind.DIGESTION: resolve_digestion,
    AbilityKind.TOUCH: resolve_touch,
    AbilityKind.STONE_TOUCH: resolve_stone_touch,
    AbilityKind.DRAIN_TOUCH: resolve_drain_touch,
    AbilityKind.DRAIN_LIFE: resolve_drain_life,
    AbilityKind.PROJECTILE: resolve_projectile,
    AbilityKind.STATUS: resolve_status,
    AbilityKind.SELF_BUFF: resolve_self_buff,
    AbilityKind.TELEPORT: resolve_teleport,
    AbilityKind.TELEPORT_OTHER: resolve_teleport_other,
    AbilityKind.WARP: resolve_warp,
    AbilityKind.CHARGE: resolve_charge,
    AbilityKind.SHAPECHANGE: resolve_shapechange,
    AbilityKind.SUMMON: resolve_summon,
    AbilityKind.RAISE_DEAD: resolve_raise_dead,
    AbilityKind.LAY_EGGS: resolve_lay_eggs,
    AbilityKind.CREATE_WEB: resolve_create_web,
    AbilityKind.STEAL_ITEM: resolve_steal_item,
    AbilityKind.STEAL_GOLD: resolve_steal_gold,
    AbilityKind.STEAL_WEAPON: resolve_steal_weapon,
    AbilityKind.DISARM: resolve_disarm,
    AbilityKind.EQUIPMENT: resolve_equipment,
}


# ---------------------------------------------------------------------------
# Passives and hooks
# ---------------------------------------------------------------------------


def _owned(creature: Creature, ctx: TurnContext, kinds: set[AbilityKind]) -> list[AbilityDef]:
    owned = []
    for name in creature.abilities:
        ability = get_ability(name, ctx.catalog)
        if ability is not None and ability.passive and ability.kind in kinds:
            owned.append(ability)
    return owned


def _regenerate(creature, ability, ctx):
    healed = heal(creature, ability.amount)
    if healed:
        ctx.notify(NoticeKind.HEALED, f"The {creature.name} regenerates.",
                   actor_id=creature.id, amount=healed)


def _berserk(creature, ability, ctx):
    if creature.has_condition("berserk") or creature.hp_fraction >= (ability.threshold or 0):
        return
    apply_condition(creature, "berserk", None, ctx, source_id=creature.id)


def _split(creature, ability, ctx):
    if creature.cooldowns.get(ability.name, 0) > 0 or creature.hp < 2:
        return
    if creature.hp_fraction > (ability.threshold or 0):
        return
    spawn_hp = creature.hp // 2
    creature.hp -= spawn_hp
    creature.cooldowns[ability.name] = ability.cooldown
    _request_summon(creature, creature.kind, 1, creature.position, ctx,
                    hp=spawn_hp, split_from=creature.id)


_PASSIVE_EFFECTS = {
    AbilityKind.REGENERATION: _regenerate,
    AbilityKind.BERSERK: _berserk,
    AbilityKind.SPLIT: _split,
}


def run_passives(creature: Creature, ctx: TurnContext) -> None:
    """Run every per-turn passive the creature owns, once."""
    if not creature.is_alive:
        return
    for ability in _owned(creature, ctx, set(_PASSIVE_EFFECTS)):
        _PASSIVE_EFFECTS[ability.kind](creature, ability, ctx)


def run_on_hit_passives(attacker: Creature, target: Creature, ctx: TurnContext) -> str | None:
    """On-hit passives (e.g. poison) after a successful melee hit."""
    applied = None
    for ability in _owned(attacker, ctx, {AbilityKind.ON_HIT}):
        applied = _inflict(attacker, target, ability, ctx) or applied
    return applied


def run_death_hooks(creature: Creature, ctx: TurnContext) -> int:
    """Fire death-triggered abilities.

    Returns:
        Extra gold to add to the loot request.
    """
    bonus_gold = 0
    for ability in _owned(creature, ctx, {AbilityKind.EXPLODE, AbilityKind.TURN_TO_GOLD}):
        if ability.kind == AbilityKind.TURN_TO_GOLD:
            bonus_gold += ctx.roll(ability.count or "0")
            ctx.notify(NoticeKind.ABILITY_USED, f"The {creature.name} {ability.message}!",
                       actor_id=creature.id, details={"ability": ability.name})
            continue

        ctx.notify(NoticeKind.ABILITY_USED, f"The {creature.name} {ability.message}!",
                   actor_id=creature.id, details={"ability": ability.name})
        x, y = creature.position
        for victim in safe_occupants_in_radius(ctx.spatial, x, y, ADJACENT_DISTANCE, sink=ctx.sink):
            if victim.id == creature.id or not victim.is_alive:
                continue
            raw = ctx.roll(ability.damage or "0")
            strike(creature, victim, raw, ability.damage_kind, ctx, verb="blasts")
    return bonus_gold
