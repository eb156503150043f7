"""Turn driver: encounter setup, per-creature turns, rounds, player attacks, snapshots."""

from __future__ import annotations

import logging
import random

from config import ADJACENT_DISTANCE, NORMAL_SPEED, RNG_SEED
from engine.abilities import run_passives, tick_cooldowns, use_ability
from engine.awareness import become_hostile, provoke, update_awareness
from engine.conditions import effective_speed, tick_conditions, turn_skip_reason
from engine.context import TurnContext
from engine.grid import (
    SpatialQuery,
    distance,
    safe_is_passable,
    safe_occupant_at,
)
from engine.movement import (
    circle_target,
    flee_from,
    move_toward,
    random_step,
    step_back,
    try_move,
    wander,
)
from engine.notices import NoticeSink
from engine.npc import select_action
from engine.rules import (
    apply_damage,
    creature_attack,
    distance_attack_for,
    melee_attack,
    resolve_player_attack,
    validate_player_attack,
)
from models.abilities import AbilityDef
from models.actions import AIAction, ChainWeapon, CombatOutcome, Decision, QuizResult
from models.characters import Creature, CreatureState
from models.game_state import EncounterState, NoticeKind

logger = logging.getLogger(__name__)


def create_encounter(
    encounter_id: str,
    player: Creature | None = None,
    creatures: list[Creature] | None = None,
) -> EncounterState:
    """Initialize an encounter roster.

    Args:
        encounter_id: Unique identifier for the encounter.
        player: The player's creature record, if present.
        creatures: Monsters to add, in acting order.

    Returns:
        A fresh EncounterState; the player acts first in the turn order.
    """
    state = EncounterState(encounter_id=encounter_id)
    if player is not None:
        player.is_player = True
        add_creature(state, player)
        state.player_id = player.id
    for creature in creatures or []:
        add_creature(state, creature)
    return state


def add_creature(
    state: EncounterState,
    creature: Creature,
    spatial: SpatialQuery | None = None,
) -> EncounterState:
    """Add a creature to the roster and the active-turn set.

    Args:
        state: Current encounter state.
        creature: The creature to add, already positioned.
        spatial: If given, the position is checked against the map.

    Returns:
        Updated encounter state.

    Raises:
        ValueError: If the id is taken, or the position is blocked or occupied.
    """
    if creature.id in state.creatures:
        raise ValueError(f"Creature {creature.id} is already in the encounter")

    if spatial is not None:
        x, y = creature.position
        if not safe_is_passable(spatial, x, y):
            raise ValueError(f"Position ({x}, {y}) is not passable")
        if safe_occupant_at(spatial, x, y) is not None:
            raise ValueError(f"Position ({x}, {y}) is already occupied")

    state.creatures[creature.id] = creature
    if creature.is_alive:
        state.turn_order.append(creature.id)
    return state


def remove_dead_creatures(state: EncounterState) -> list[str]:
    """Drop dead monsters from the roster. The player's record is never removed.

    Returns:
        IDs of the removed creatures.
    """
    removed = [
        cid for cid, c in state.creatures.items()
        if not c.is_alive and not c.is_player
    ]
    for cid in removed:
        del state.creatures[cid]
        if cid in state.turn_order:
            state.turn_order.remove(cid)
        state.dead_ids.append(cid)
    return removed


def build_context(
    state: EncounterState,
    spatial: SpatialQuery,
    sink: NoticeSink,
    rng: random.Random | None = None,
    catalog: dict[str, AbilityDef] | None = None,
) -> TurnContext:
    """Bundle the collaborators for an encounter.

    The context shares the encounter's roster and turn order, so deaths
    recorded during resolution are visible to the round loop immediately.
    """
    return TurnContext(
        spatial=spatial,
        sink=sink,
        creatures=state.creatures,
        rng=rng or random.Random(RNG_SEED),
        catalog=catalog,
        turn_order=state.turn_order,
        round_number=state.round_number,
    )


def _resolve_target(creature: Creature, fallback: Creature | None, ctx: TurnContext) -> Creature | None:
    current = ctx.creature(creature.target_id)
    if current is not None and current.is_alive:
        return current
    return fallback


def _attack(creature: Creature, target: Creature, ctx: TurnContext) -> bool:
    """Basic attack: melee when adjacent, otherwise a distance attack, otherwise close in."""
    if distance(creature.position, target.position) <= ADJACENT_DISTANCE:
        melee_attack(creature, target, ctx)
        return True
    attack = distance_attack_for(creature)
    if attack is not None:
        outcomes = creature_attack(creature, target, attack, ctx)
        if any(o.success for o in outcomes):
            return True
    return move_toward(creature, target.position, ctx)


def execute_decision(
    creature: Creature,
    decision: Decision,
    target: Creature | None,
    ctx: TurnContext,
) -> bool:
    """Carry out a Decision.

    A guard that attacks or pursues leaves its post for good and stays
    hostile. An ability that fails falls back to the basic action.

    Returns:
        True if the creature accomplished something this turn.
    """
    target = ctx.creature(decision.target_id) or target
    action = decision.action

    if action in (AIAction.ATTACK, AIAction.PURSUE) and target is not None:
        if creature.state == CreatureState.GUARDING or creature.guard_post is not None:
            become_hostile(creature, target, ctx)
            creature.guard_post = None

    if action == AIAction.ATTACK and target is not None and target.is_alive:
        acted = bool(decision.ability) and use_ability(creature, decision.ability, target, ctx)
        if not acted:
            acted = _attack(creature, target, ctx)
        if decision.retreat_after and target.is_alive and creature.is_alive:
            step_back(creature, target.position, ctx)
        return acted

    if action == AIAction.PURSUE and target is not None:
        goal = decision.destination or target.position
        return move_toward(creature, goal, ctx)

    if action == AIAction.STEP_BACK and target is not None:
        return step_back(creature, target.position, ctx)

    if action == AIAction.CIRCLE and target is not None:
        return circle_target(creature, target.position, ctx)

    if action == AIAction.FLEE and target is not None:
        if decision.ability and use_ability(creature, decision.ability, target, ctx):
            return True
        return flee_from(creature, target.position, ctx)

    if action == AIAction.GUARD_RETURN and decision.destination is not None:
        return move_toward(creature, decision.destination, ctx)

    if action == AIAction.WANDER:
        return wander(creature, ctx)

    return False


def confused_move(creature: Creature, target: Creature | None, ctx: TurnContext) -> bool:
    """Stumble in a random direction; stumbling into the hostile target attacks it."""
    dest = random_step(creature, ctx)
    occupant = safe_occupant_at(ctx.spatial, *dest, sink=ctx.sink)
    if (
        occupant is not None
        and target is not None
        and occupant.id == target.id
        and creature.state == CreatureState.HOSTILE
    ):
        melee_attack(creature, target, ctx)
        return True
    return try_move(creature, dest, ctx)


def end_of_turn(creature: Creature, ctx: TurnContext) -> int:
    """Tick conditions and apply any damage-over-time they carry.

    Returns:
        Damage taken from conditions.
    """
    if not creature.is_alive:
        return 0
    owed = tick_conditions(creature, ctx)
    if owed <= 0:
        return 0
    ctx.notify(
        NoticeKind.ATTACK_HIT,
        f"The {creature.name} suffers {owed} damage from its afflictions.",
        target_id=creature.id,
        amount=owed,
        details={"source": "conditions"},
    )
    return apply_damage(creature, owed, ctx)


def run_creature_turn(
    creature: Creature,
    ctx: TurnContext,
    target: Creature | None = None,
    noise_level: int = 0,
) -> Decision | None:
    """Run one creature's whole turn.

    Order: cooldowns tick, passives run, awareness updates, then either the
    turn is skipped (asleep, stunned, paralyzed), replaced by a confused
    stumble, or decided and executed. Conditions tick last.

    Args:
        creature: The acting creature.
        ctx: Turn context.
        target: Who the creature hunts when it has no target of its own.
        noise_level: Loudness of the player's last action.

    Returns:
        The Decision executed, or None if the turn was skipped.
    """
    if not creature.is_alive:
        return None

    tick_cooldowns(creature)
    run_passives(creature, ctx)

    target = _resolve_target(creature, target, ctx)
    update_awareness(creature, target, ctx, noise_level)

    decision = None
    skip = turn_skip_reason(creature)
    if skip is not None:
        logger.debug("%s skips its turn (%s)", creature.id, skip)
    elif creature.has_condition("confused"):
        confused_move(creature, target, ctx)
        decision = Decision(action=AIAction.WANDER, reason="confused")
    else:
        decision = select_action(creature, target, ctx)
        execute_decision(creature, decision, target, ctx)

    end_of_turn(creature, ctx)
    return decision


def run_round(state: EncounterState, ctx: TurnContext, noise_level: int = 0) -> EncounterState:
    """Run every creature's turns in order, then tick the player's conditions once.

    Each creature banks its effective speed as energy and takes one turn
    per NORMAL_SPEED spent, so hasted creatures act twice and slowed ones
    act every other round. Creatures that die mid-round are dropped from
    the turn order and do not act.

    Args:
        state: Current encounter state (shares roster and order with ctx).
        ctx: Turn context built by build_context.
        noise_level: Loudness of the player's last action.

    Returns:
        Updated encounter state with the round counter advanced.
    """
    ctx.round_number = state.round_number
    player = state.creatures.get(state.player_id) if state.player_id else None

    for creature_id in list(state.turn_order):
        if creature_id not in state.turn_order or creature_id == state.player_id:
            continue
        creature = state.creatures.get(creature_id)
        if creature is None or not creature.is_alive:
            continue
        creature.energy += effective_speed(creature)
        while (
            creature.energy >= NORMAL_SPEED
            and creature.is_alive
            and creature_id in state.turn_order
        ):
            creature.energy -= NORMAL_SPEED
            run_creature_turn(creature, ctx, target=player, noise_level=noise_level)

    if player is not None and player.is_alive:
        end_of_turn(player, ctx)

    state.round_number += 1
    ctx.round_number = state.round_number
    return state


def player_attack(
    state: EncounterState,
    ctx: TurnContext,
    target_id: str,
    weapon: ChainWeapon,
    quiz: QuizResult,
) -> CombatOutcome:
    """Resolve a player attack once the quiz collaborator reports back.

    Args:
        state: Current encounter state.
        ctx: Turn context.
        target_id: The creature being attacked.
        weapon: Resolved weapon modifiers.
        quiz: The quiz result for this attack.

    Returns:
        CombatOutcome; success=False with an error if the attack was invalid.
    """
    player = ctx.creature(state.player_id)
    target = ctx.creature(target_id)
    if player is None or not player.is_alive:
        return CombatOutcome(success=False, target_id=target_id, error="No living player")

    valid, error = validate_player_attack(player, target, weapon, ctx.spatial)
    if not valid:
        return CombatOutcome(success=False, attacker_id=player.id, target_id=target_id, error=error)

    outcome = resolve_player_attack(player, target, weapon, quiz, ctx)
    provoke(target, player, ctx)
    return outcome


def snapshot(state: EncounterState) -> dict:
    """Plain-data copy of the encounter for the persistence collaborator."""
    return state.model_dump(mode="json")


def restore(data: dict) -> EncounterState:
    return EncounterState.model_validate(data)
