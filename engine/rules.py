"""Combat resolution: THAC0 creature attacks, quiz-chain player attacks, damage, death."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from config import (
    ADJACENT_DISTANCE,
    BLESSED_UNHOLY_MULTIPLIER,
    CURSED_DAMAGE_PENALTY,
    REFLECTABLE_KINDS,
    WEAKNESS_MULTIPLIER,
    WEAPON_STUN_TURNS,
)
from engine.conditions import (
    apply_condition,
    damage_multiplier,
    effective_armor_class,
    resists_condition,
)
from engine.dice import roll_chance, roll_d20
from engine.grid import (
    cone_cells,
    distance,
    grid_distance,
    safe_line_of_sight,
    safe_occupant_at,
)
from models.actions import ChainWeapon, CombatOutcome
from models.characters import Attack, AttackDelivery
from models.game_state import NoticeKind

if TYPE_CHECKING:
    from engine.context import TurnContext
    from engine.grid import SpatialQuery
    from models.actions import QuizResult
    from models.characters import Creature

logger = logging.getLogger(__name__)

# Classical THAC0 by creature level, capped at level 30
THAC0_TABLE = {
    1: 19, 2: 19, 3: 18, 4: 18, 5: 17, 6: 17, 7: 16, 8: 16, 9: 15, 10: 15,
    11: 14, 12: 14, 13: 13, 14: 13, 15: 12, 16: 12, 17: 11, 18: 11, 19: 10, 20: 10,
    21: 9, 22: 9, 23: 8, 24: 8, 25: 7, 26: 7, 27: 6, 28: 6, 29: 5, 30: 5,
}

DEFAULT_ATTACK = Attack(type="punch", damage="1", damage_kind="bludgeon")
MELEE_DELIVERIES = (AttackDelivery.MELEE, AttackDelivery.TOUCH, AttackDelivery.ENGULF)
DISTANCE_DELIVERIES = (AttackDelivery.RANGED, AttackDelivery.CONE, AttackDelivery.GAZE)


def thac0_for_level(level: int) -> int:
    """Look up the to-hit value for a creature level."""
    return THAC0_TABLE[min(max(level, 1), 30)]


def creature_to_hit(creature: Creature) -> int:
    if creature.to_hit is not None:
        return creature.to_hit
    return thac0_for_level(creature.level)


def attack_hits(hit_roll: int, target_ac: int, to_hit: int) -> bool:
    """THAC0 check: the attack lands when d20 + target AC reaches the to-hit value."""
    return hit_roll + target_ac >= to_hit


def is_unholy(creature: Creature) -> bool:
    return creature.flags.undead or creature.flags.demonic


def _failure(attacker: Creature | None, target: Creature | None, error: str) -> CombatOutcome:
    logger.debug("Attack not resolved: %s", error)
    return CombatOutcome(
        success=False,
        attacker_id=attacker.id if attacker else None,
        target_id=target.id if target else None,
        error=error,
    )


# ---------------------------------------------------------------------------
# Damage, healing, death
# ---------------------------------------------------------------------------


def mitigate_damage(target: Creature, damage: int, damage_kind: str) -> tuple[int, str | None]:
    """Apply resistance, reflection and weakness to a raw damage roll.

    Resistance halves (rounding down) and takes precedence; otherwise a
    reflecting target takes nothing from reflectable elements; otherwise a
    weakness doubles the damage.

    Returns:
        (final_damage, note) where note is "resisted", "reflected", "weak" or None.
    """
    if target.resists(damage_kind):
        return damage // 2, "resisted"
    if target.has_reflection() and damage_kind in REFLECTABLE_KINDS:
        return 0, "reflected"
    if damage_kind in target.weaknesses:
        return damage * WEAKNESS_MULTIPLIER, "weak"
    return damage, None


def apply_damage(
    target: Creature,
    damage: int,
    ctx: TurnContext,
    attacker_id: str | None = None,
) -> int:
    """Subtract HP, clamping at 0, and run death handling exactly once.

    Damage against a dead creature is a no-op.

    Returns:
        HP actually removed.
    """
    if not target.is_alive or damage <= 0:
        return 0
    if target.has_condition("invulnerable"):
        return 0

    dealt = min(damage, target.hp)
    target.hp -= dealt
    if target.hp <= 0:
        target.hp = 0
        handle_death(target, ctx, killer_id=attacker_id)
    return dealt


def heal(creature: Creature, amount: int) -> int:
    """Restore HP up to max. Returns HP actually restored."""
    if not creature.is_alive or amount <= 0:
        return 0
    restored = min(amount, creature.max_hp - creature.hp)
    creature.hp += restored
    return restored


def handle_death(creature: Creature, ctx: TurnContext, killer_id: str | None = None) -> bool:
    """Mark a creature dead, announce it, and hand off to loot generation.

    Returns:
        False if the creature was already dead (nothing happens twice).
    """
    if not creature.is_alive:
        return False

    creature.is_alive = False
    creature.hp = 0
    release_engulf(creature, ctx)
    if creature.id in ctx.turn_order:
        ctx.turn_order.remove(creature.id)

    ctx.notify(
        NoticeKind.CREATURE_DIED,
        "You die!" if creature.is_player else f"The {creature.name} dies!",
        actor_id=killer_id,
        target_id=creature.id,
        position=creature.position,
    )
    logger.debug("%s killed by %s", creature.id, killer_id)

    if not creature.is_player:
        from engine.abilities import run_death_hooks

        bonus_gold = run_death_hooks(creature, ctx)
        request_loot(creature, ctx, bonus_gold=bonus_gold)
    return True


def request_loot(creature: Creature, ctx: TurnContext, bonus_gold: int = 0) -> None:
    """Ask the loot collaborator to drop this creature's remains and treasure."""
    loot = creature.loot
    items = [
        {"item": drop.item, "amount": max(1, ctx.roll(drop.amount)) if drop.amount else 1}
        for drop in loot.items
        if roll_chance(drop.chance, rng=ctx.rng)
    ]
    gold = (ctx.roll(loot.gold) if loot.gold else 0) + creature.gold + bonus_gold

    ctx.notify(
        NoticeKind.LOOT_REQUESTED,
        f"The {creature.name} leaves something behind.",
        actor_id=creature.id,
        position=creature.position,
        amount=gold,
        details={
            "kind": creature.kind,
            "corpse": loot.corpse,
            "items": items,
            "carried": list(creature.inventory),
            "gold": gold,
        },
    )


def engulf_target(engulfer: Creature, target: Creature) -> bool:
    """Swallow a target. A creature holds at most one target at a time."""
    if engulfer.engulfed_id is not None or target.engulfed_by is not None:
        return False
    if engulfer.id == target.id:
        return False
    engulfer.engulfed_id = target.id
    target.engulfed_by = engulfer.id
    return True


def release_engulf(creature: Creature, ctx: TurnContext) -> None:
    """Break any engulf relation this creature is part of."""
    if creature.engulfed_id is not None:
        victim = ctx.creature(creature.engulfed_id)
        if victim is not None:
            victim.engulfed_by = None
        creature.engulfed_id = None
    if creature.engulfed_by is not None:
        engulfer = ctx.creature(creature.engulfed_by)
        if engulfer is not None:
            engulfer.engulfed_id = None
        creature.engulfed_by = None


def strike(
    attacker: Creature,
    target: Creature,
    raw_damage: int,
    damage_kind: str,
    ctx: TurnContext,
    verb: str = "hits",
) -> CombatOutcome:
    """Mitigate and apply damage that has already connected.

    Shared by melee, cones, projectiles and damaging abilities.
    """
    was_alive = target.is_alive
    damage, note = mitigate_damage(target, raw_damage, damage_kind)
    outcome = CombatOutcome(
        attacker_id=attacker.id,
        target_id=target.id,
        hit=True,
        damage=damage,
        damage_kind=damage_kind,
        resisted=note == "resisted",
        deflected=note == "reflected",
    )

    if note == "resisted":
        ctx.notify(
            NoticeKind.DAMAGE_RESISTED,
            f"The {target.name} resists the {damage_kind}!",
            actor_id=attacker.id,
            target_id=target.id,
            damage_kind=damage_kind,
        )
    elif note == "reflected":
        ctx.notify(
            NoticeKind.EFFECT_REFLECTED,
            f"The {damage_kind} reflects off the {target.name}!",
            actor_id=attacker.id,
            target_id=target.id,
            damage_kind=damage_kind,
        )

    if damage > 0:
        ctx.notify(
            NoticeKind.ATTACK_HIT,
            f"The {attacker.name} {verb} the {target.name} for {damage} {damage_kind} damage!",
            actor_id=attacker.id,
            target_id=target.id,
            amount=damage,
            damage_kind=damage_kind,
        )
        apply_damage(target, damage, ctx, attacker_id=attacker.id)

    outcome.killed = was_alive and not target.is_alive
    outcome.description = f"{attacker.name} {verb} {target.name} for {damage}"
    return outcome


# ---------------------------------------------------------------------------
# Creature -> target (THAC0)
# ---------------------------------------------------------------------------


def resolve_monster_attack(
    attacker: Creature,
    target: Creature | None,
    attack: Attack,
    ctx: TurnContext,
) -> CombatOutcome:
    """Resolve one attack with the classical to-hit roll.

    Args:
        attacker: The attacking creature.
        target: The target creature or player.
        attack: The attack being used.
        ctx: Turn context.

    Returns:
        CombatOutcome; success=False if the target is gone.
    """
    if target is None or not target.is_alive:
        return _failure(attacker, target, "Target is missing or already dead")
    if not attacker.is_alive:
        return _failure(attacker, target, "Attacker is dead")

    hit_roll = roll_d20(rng=ctx.rng)
    to_hit = creature_to_hit(attacker)
    target_ac = effective_armor_class(target)

    if not attack_hits(hit_roll, target_ac, to_hit):
        ctx.notify(
            NoticeKind.ATTACK_MISSED,
            f"The {attacker.name} misses the {target.name}.",
            actor_id=attacker.id,
            target_id=target.id,
            details={"roll": hit_roll, "thac0": to_hit, "target_ac": target_ac},
        )
        return CombatOutcome(
            attacker_id=attacker.id,
            target_id=target.id,
            hit=False,
            damage_kind=attack.damage_kind,
            roll=hit_roll,
            description=f"{attacker.name} misses {target.name} (roll {hit_roll}+{target_ac} < {to_hit})",
        )

    raw = math.floor(ctx.roll(attack.damage) * damage_multiplier(attacker))
    outcome = strike(attacker, target, raw, attack.damage_kind, ctx, verb=_verb(attack))
    outcome.roll = hit_roll

    if target.is_alive:
        if attack.delivery == AttackDelivery.ENGULF and engulf_target(attacker, target):
            ctx.notify(
                NoticeKind.CONDITION_APPLIED,
                f"The {attacker.name} engulfs the {target.name}!",
                actor_id=attacker.id,
                target_id=target.id,
                condition="engulfed",
            )
            outcome.condition = "engulfed"
        applied = apply_on_hit_effects(attacker, target, attack, ctx)
        outcome.condition = outcome.condition or applied
    return outcome


def _verb(attack: Attack) -> str:
    return {
        "bite": "bites",
        "claw": "claws",
        "kick": "kicks",
        "sting": "stings",
        "touch": "touches",
        "butt": "butts",
    }.get(attack.type, "hits")


def apply_on_hit_effects(
    attacker: Creature,
    target: Creature,
    attack: Attack,
    ctx: TurnContext,
) -> str | None:
    """Secondary status from the attack's declared parameters and on-hit passives.

    Returns:
        Name of the condition applied, if any.
    """
    from engine.abilities import run_on_hit_passives

    applied = None
    if (
        attack.condition
        and not resists_condition(target, attack.condition)
        and roll_chance(attack.condition_chance, rng=ctx.rng)
    ):
        apply_condition(target, attack.condition, attack.condition_duration, ctx, source_id=attacker.id)
        applied = attack.condition

    passive = run_on_hit_passives(attacker, target, ctx)
    return applied or passive


def gaze_blocked(user: Creature, target: Creature) -> str | None:
    """Reason a gaze cannot connect, or None if eye contact is possible."""
    if user.is_blind():
        return "user is blind"
    if target.is_blind():
        return "target is blind"
    if target.is_invisible() and not user.can_see_invisible():
        return "target is invisible"
    return None


def cone_occupants(
    attacker: Creature,
    toward: tuple[int, int],
    length: int,
    ctx: TurnContext,
) -> list[Creature]:
    """Living occupants of a cone, friend or foe, nearest first.

    Cells hidden behind walls from the attacker are spared.
    """
    victims = []
    for x, y in cone_cells(attacker.position, toward, length):
        victim = safe_occupant_at(ctx.spatial, x, y, sink=ctx.sink)
        if victim is None or victim.id == attacker.id or not victim.is_alive:
            continue
        if not safe_line_of_sight(ctx.spatial, attacker.position, (x, y), sink=ctx.sink):
            continue
        victims.append(victim)
    return victims


def resolve_cone_attack(
    attacker: Creature,
    toward: tuple[int, int],
    length: int,
    damage: str,
    damage_kind: str,
    ctx: TurnContext,
) -> list[CombatOutcome]:
    """Hit every occupant of a cone; each victim gets an independent damage roll."""
    outcomes = []
    for victim in cone_occupants(attacker, toward, length, ctx):
        raw = math.floor(ctx.roll(damage) * damage_multiplier(attacker))
        outcomes.append(strike(attacker, victim, raw, damage_kind, ctx, verb="blasts"))
    return outcomes


def creature_attack(
    attacker: Creature,
    target: Creature | None,
    attack: Attack,
    ctx: TurnContext,
) -> list[CombatOutcome]:
    """Resolve any attack from a creature's list according to its delivery."""
    if target is None or not target.is_alive:
        return [_failure(attacker, target, "Target is missing or already dead")]

    dist = distance(attacker.position, target.position)

    if attack.delivery in MELEE_DELIVERIES:
        if dist > ADJACENT_DISTANCE:
            return [_failure(attacker, target, "Target is out of reach")]
        return [resolve_monster_attack(attacker, target, attack, ctx)]

    if dist > attack.range or not safe_line_of_sight(
        ctx.spatial, attacker.position, target.position, sink=ctx.sink
    ):
        return [_failure(attacker, target, "No line of sight to target")]

    if attack.delivery == AttackDelivery.CONE:
        return resolve_cone_attack(
            attacker, target.position, attack.range, attack.damage, attack.damage_kind, ctx,
        )

    if attack.delivery == AttackDelivery.GAZE:
        reason = gaze_blocked(attacker, target)
        if reason:
            return [_failure(attacker, target, f"Gaze blocked: {reason}")]
        victim = attacker if target.has_reflection() else target
        raw = ctx.roll(attack.damage)
        outcome = strike(attacker, victim, raw, attack.damage_kind, ctx, verb="gazes at")
        outcome.reflected = victim is attacker
        return [outcome]

    return [resolve_monster_attack(attacker, target, attack, ctx)]


def melee_attack(attacker: Creature, target: Creature | None, ctx: TurnContext) -> list[CombatOutcome]:
    """Run every melee/touch attack in the creature's list, stopping if the target dies."""
    attacks = [a for a in attacker.attacks if a.delivery in MELEE_DELIVERIES] or [DEFAULT_ATTACK]
    outcomes = []
    for attack in attacks:
        if target is None or not target.is_alive:
            break
        outcomes.append(resolve_monster_attack(attacker, target, attack, ctx))
    if not outcomes:
        outcomes.append(_failure(attacker, target, "Target is missing or already dead"))
    return outcomes


def distance_attack_for(creature: Creature) -> Attack | None:
    """First ranged, cone or gaze attack the creature has."""
    for attack in creature.attacks:
        if attack.delivery in DISTANCE_DELIVERIES:
            return attack
    return None


# ---------------------------------------------------------------------------
# Player -> target (quiz chain)
# ---------------------------------------------------------------------------


SAMPLE_WEAPONS: dict[str, ChainWeapon] = {
    "fists": ChainWeapon(
        name="Fists", base_damage=2, chain_multipliers=[1, 1, 1, 1, 1, 1],
        damage_kind="bludgeon",
    ),
    "iron_sword": ChainWeapon(
        name="Iron Sword", base_damage=8, chain_multipliers=[1, 2, 4, 6, 8, 10],
        damage_kind="slash",
    ),
    "steel_dagger": ChainWeapon(
        name="Steel Dagger", base_damage=4, chain_multipliers=[1, 1, 2, 2, 4, 8, 16],
        damage_kind="pierce",
    ),
    "oak_staff": ChainWeapon(
        name="Oak Staff", base_damage=6, chain_multipliers=[1, 2, 3, 4, 5, 6],
        damage_kind="bludgeon", stun_chance=0.2,
    ),
    "iron_spear": ChainWeapon(
        name="Iron Spear", base_damage=7, chain_multipliers=[1, 2, 3, 5, 7, 9],
        damage_kind="pierce", reach=2,
    ),
}


def chain_multiplier(weapon: ChainWeapon, score: int) -> float:
    """Multiplier for a run of `score` correct answers (last tier repeats)."""
    if not weapon.chain_multipliers or score <= 0:
        return 1
    index = min(score - 1, len(weapon.chain_multipliers) - 1)
    return weapon.chain_multipliers[index]


def calculate_chain_damage(weapon: ChainWeapon, score: int, target: Creature) -> int:
    """Player damage from a quiz chain.

    base x multiplier, x1.5 for a blessed weapon against undead/demons,
    floored, plus enchantment, minus one for a cursed weapon, never less
    than 1. A score of 0 is a miss.
    """
    if score <= 0:
        return 0
    damage = weapon.base_damage * chain_multiplier(weapon, score)
    if weapon.blessed and is_unholy(target):
        damage *= BLESSED_UNHOLY_MULTIPLIER
    damage = math.floor(damage) + weapon.enchantment
    if weapon.cursed:
        damage -= CURSED_DAMAGE_PENALTY
    return max(1, damage)


def quiz_time_budget(wisdom: int, weapon: ChainWeapon) -> int:
    """Seconds the quiz collaborator should allow for an attack with this weapon."""
    return wisdom + weapon.enchantment + (2 if weapon.blessed else 0)


def validate_player_attack(
    player: Creature,
    target: Creature | None,
    weapon: ChainWeapon,
    spatial: SpatialQuery,
) -> tuple[bool, str]:
    """Check if the player may start a quiz-gated attack on the target.

    Returns:
        (valid, error_message) tuple.
    """
    if target is None:
        return False, "There's nothing there to attack"
    if target.id == player.id or target.is_player:
        return False, "You can't attack that"
    if not target.is_alive:
        return False, "Target is already dead"

    reach = max(1, weapon.reach)
    if grid_distance(player.position, target.position) > reach:
        return False, "You can't reach that far"
    if reach > 1 and not safe_line_of_sight(spatial, player.position, target.position):
        return False, "Your attack is blocked"
    return True, ""


def resolve_player_attack(
    player: Creature,
    target: Creature | None,
    weapon: ChainWeapon,
    quiz: QuizResult,
    ctx: TurnContext,
) -> CombatOutcome:
    """Resolve a player attack once the quiz collaborator has a result.

    Args:
        player: The attacking player.
        target: The creature being attacked.
        weapon: Resolved weapon modifiers.
        quiz: Score and success flag from the quiz.
        ctx: Turn context.

    Returns:
        CombatOutcome; success=False if the target is gone.
    """
    if target is None or not target.is_alive:
        return _failure(player, target, "Target is missing or already dead")

    if quiz.score <= 0:
        ctx.notify(
            NoticeKind.ATTACK_MISSED,
            f"You miss the {target.name}!",
            actor_id=player.id,
            target_id=target.id,
            details={"score": quiz.score, "quiz_success": quiz.success},
        )
        return CombatOutcome(
            attacker_id=player.id,
            target_id=target.id,
            hit=False,
            damage_kind=weapon.damage_kind,
            description=f"{player.name} misses {target.name}",
        )

    multiplier = chain_multiplier(weapon, quiz.score)
    damage = calculate_chain_damage(weapon, quiz.score, target)
    ctx.notify(
        NoticeKind.ATTACK_HIT,
        f"You hit the {target.name} for {damage} damage! "
        f"({quiz.score} correct, {multiplier:g}x multiplier)",
        actor_id=player.id,
        target_id=target.id,
        amount=damage,
        damage_kind=weapon.damage_kind,
        details={"score": quiz.score, "multiplier": multiplier, "weapon": weapon.name},
    )
    apply_damage(target, damage, ctx, attacker_id=player.id)

    outcome = CombatOutcome(
        attacker_id=player.id,
        target_id=target.id,
        hit=True,
        damage=damage,
        damage_kind=weapon.damage_kind,
        killed=not target.is_alive,
        description=f"{player.name} hits {target.name} for {damage}",
    )

    if target.is_alive and roll_chance(weapon.stun_chance, rng=ctx.rng):
        apply_condition(target, "stunned", WEAPON_STUN_TURNS, ctx, source_id=player.id)
        outcome.condition = "stunned"
    return outcome
