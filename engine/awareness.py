"""Creature awareness: sleeping, wandering, guarding and hostile transitions."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from config import AGGRO_ESCAPE_FACTOR, KEEN_SIGHT_RANGE
from engine.dice import roll_chance
from engine.grid import distance, safe_line_of_sight, safe_occupants_in_radius, valid_position
from models.characters import CreatureState
from models.game_state import NoticeKind

if TYPE_CHECKING:
    from engine.context import TurnContext
    from models.characters import Creature

logger = logging.getLogger(__name__)


def base_sight_range(creature: Creature) -> int:
    if creature.flags.keen:
        return max(creature.sight_range, KEEN_SIGHT_RANGE)
    return creature.sight_range


def effective_sight_range(creature: Creature) -> int:
    """Sight range right now: 0 while asleep or blind."""
    if creature.state == CreatureState.SLEEPING or creature.is_blind():
        return 0
    return base_sight_range(creature)


def effective_hearing_range(creature: Creature) -> int:
    if creature.state == CreatureState.SLEEPING:
        return 0
    return creature.hearing_range


def can_see_target(creature: Creature, target: Creature, ctx: TurnContext) -> bool:
    """Within sight range, visible, and not blocked by opaque terrain.

    A spatial query that cannot answer counts as "not visible".
    """
    if distance(creature.position, target.position) > effective_sight_range(creature):
        return False
    if target.is_invisible() and not creature.can_see_invisible():
        return False
    return safe_line_of_sight(ctx.spatial, creature.position, target.position, sink=ctx.sink)


def can_hear_target(creature: Creature, target: Creature, noise_level: int) -> bool:
    if noise_level <= 0:
        return False
    return distance(creature.position, target.position) <= effective_hearing_range(creature)


def wake_chance(dist: float, noise_level: int) -> float:
    """Louder noise and shorter distance make waking more likely."""
    if noise_level <= 0 or dist > noise_level:
        return 0.0
    return max(0.0, min(1.0, (noise_level - dist + 1) / noise_level))


def check_wake_up(
    creature: Creature,
    noise_origin: tuple[int, int],
    noise_level: int,
    ctx: TurnContext,
) -> bool:
    """Roll for a sleeping creature to wake from a noise.

    Returns:
        True if the creature woke (it is now wandering).
    """
    if creature.state != CreatureState.SLEEPING:
        return False
    chance = wake_chance(distance(creature.position, noise_origin), noise_level)
    if not roll_chance(chance, rng=ctx.rng):
        return False

    creature.state = CreatureState.WANDERING
    ctx.notify(
        NoticeKind.WOKE_UP,
        f"The {creature.name} wakes up!",
        actor_id=creature.id,
        position=creature.position,
    )
    return True


def alert_pack(creature: Creature, target: Creature, ctx: TurnContext) -> list[str]:
    """Force every same-kind creature within the alert radius to hostile.

    No line of sight is needed, and alerted creatures do not alert further.

    Returns:
        IDs of the creatures that were alerted.
    """
    x, y = creature.position
    alerted = []
    for other in safe_occupants_in_radius(ctx.spatial, x, y, creature.alert_radius, sink=ctx.sink):
        if other.id == creature.id or other.kind != creature.kind:
            continue
        if not other.is_alive or other.is_player or other.state == CreatureState.HOSTILE:
            continue
        other.state = CreatureState.HOSTILE
        other.aware_of_target = True
        other.target_id = target.id
        alerted.append(other.id)

    if alerted:
        ctx.notify(
            NoticeKind.PACK_ALERTED,
            f"The {creature.name} alerts its pack!",
            actor_id=creature.id,
            target_id=target.id,
            amount=len(alerted),
            details={"alerted": alerted},
        )
    return alerted


def become_hostile(creature: Creature, target: Creature, ctx: TurnContext) -> bool:
    """Switch to hostile and alert the pack. Returns False if already hostile."""
    creature.aware_of_target = True
    creature.target_id = target.id
    if creature.state == CreatureState.HOSTILE:
        return False

    creature.state = CreatureState.HOSTILE
    ctx.notify(
        NoticeKind.BECAME_HOSTILE,
        f"The {creature.name} notices the {target.name}!",
        actor_id=creature.id,
        target_id=target.id,
    )
    alert_pack(creature, target, ctx)
    return True


def provoke(creature: Creature, attacker: Creature, ctx: TurnContext) -> None:
    """Being attacked wakes a creature and makes it hostile toward the attacker."""
    if not creature.is_alive or creature.is_player:
        return
    if creature.state == CreatureState.SLEEPING:
        creature.state = CreatureState.WANDERING
        ctx.notify(
            NoticeKind.WOKE_UP,
            f"The {creature.name} wakes up!",
            actor_id=creature.id,
            position=creature.position,
        )
    become_hostile(creature, attacker, ctx)


def update_awareness(
    creature: Creature,
    target: Creature | None,
    ctx: TurnContext,
    noise_level: int = 0,
) -> CreatureState:
    """Advance the creature's awareness of its target for this turn.

    Hostility is sticky: a hostile creature keeps its target whatever the
    terrain until the target is more than AGGRO_ESCAPE_FACTOR times its
    sight range away. Guards turn hostile like anyone else; while they
    still hold a post the guard behaviour decides when they leave it.

    A target at coordinates the map does not know is ignored for the turn
    and reported as invalid input.

    Args:
        creature: The creature whose awareness is updated.
        target: The creature it is hunting (usually the player).
        ctx: Turn context.
        noise_level: Loudness of the target's last action, 0 for silence.

    Returns:
        The creature's state after the update.
    """
    if target is None or not target.is_alive:
        if creature.state == CreatureState.HOSTILE:
            _lose_target(creature, ctx)
        return creature.state

    if not valid_position(ctx.spatial, *target.position, sink=ctx.sink):
        return creature.state

    dist = distance(creature.position, target.position)

    if creature.state == CreatureState.HOSTILE:
        if dist > AGGRO_ESCAPE_FACTOR * base_sight_range(creature):
            _lose_target(creature, ctx)
        else:
            creature.aware_of_target = True
            creature.target_id = target.id
        return creature.state

    if creature.state == CreatureState.SLEEPING:
        if not check_wake_up(creature, target.position, noise_level, ctx):
            return creature.state

    if can_see_target(creature, target, ctx) or can_hear_target(creature, target, noise_level):
        become_hostile(creature, target, ctx)
    return creature.state


def _lose_target(creature: Creature, ctx: TurnContext) -> None:
    lost = creature.target_id
    # A guard that never left its post goes back to guarding it
    creature.state = CreatureState.GUARDING if creature.guard_post is not None else CreatureState.WANDERING
    creature.aware_of_target = False
    creature.target_id = None
    ctx.notify(
        NoticeKind.LOST_TARGET,
        f"The {creature.name} loses interest.",
        actor_id=creature.id,
        target_id=lost,
    )
    logger.debug("%s lost track of %s", creature.id, lost)
