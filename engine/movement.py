"""Movement attempts and the tie-break order shared by pursuit, flight and guarding."""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING

from config import WANDER_TURN_CHANCE
from engine.conditions import can_move
from engine.dice import random_choice, roll_chance
from engine.grid import (
    CARDINAL_OFFSETS,
    NEIGHBOR_OFFSETS,
    distance,
    safe_is_passable,
    safe_occupant_at,
    sign,
    valid_position,
)

if TYPE_CHECKING:
    from engine.context import TurnContext
    from models.characters import Creature

logger = logging.getLogger(__name__)


def _enterable(creature: Creature, x: int, y: int, ctx: TurnContext) -> bool:
    if safe_is_passable(ctx.spatial, x, y, sink=ctx.sink):
        return True
    if not (creature.flags.wall_pass or creature.has_condition("phasing")):
        return False
    # Phasing goes through walls but never off the map
    return valid_position(ctx.spatial, x, y)


def try_move(creature: Creature, dest: tuple[int, int], ctx: TurnContext) -> bool:
    """Attempt a single step. A blocked step is a normal outcome, not an error.

    Returns:
        True if the creature moved.
    """
    if not can_move(creature) or creature.engulfed_by or creature.engulfed_id:
        return False
    if dest == creature.position:
        return False
    x, y = dest
    if not _enterable(creature, x, y, ctx):
        return False
    if safe_occupant_at(ctx.spatial, x, y, sink=ctx.sink) is not None:
        return False

    logger.debug("%s moves %s -> %s", creature.id, creature.position, dest)
    creature.position = dest
    return True


def toward_candidates(origin: tuple[int, int], goal: tuple[int, int]) -> list[tuple[int, int]]:
    """Steps toward goal in tie-break order: diagonal, horizontal, vertical, detours."""
    x, y = origin
    dx = sign(goal[0] - x)
    dy = sign(goal[1] - y)
    if dx == 0 and dy == 0:
        return []

    steps = []
    if dx and dy:
        steps.append((x + dx, y + dy))
    if dx:
        steps.append((x + dx, y))
    if dy:
        steps.append((x, y + dy))
    steps.extend(detour_candidates(origin, dx, dy))

    unique = []
    for step in steps:
        if step not in unique:
            unique.append(step)
    return unique


def detour_candidates(origin: tuple[int, int], dx: int, dy: int) -> list[tuple[int, int]]:
    """Perpendicular sidesteps around an obstacle."""
    x, y = origin
    cells = []
    if dx:
        cells += [(x, y + 1), (x, y - 1)]
    if dy:
        cells += [(x + 1, y), (x - 1, y)]
    return cells


def move_toward(creature: Creature, goal: tuple[int, int], ctx: TurnContext) -> bool:
    """Take one step toward goal, trying each candidate once."""
    for step in toward_candidates(creature.position, goal):
        if try_move(creature, step, ctx):
            return True
    return False


def try_detour(creature: Creature, goal: tuple[int, int], ctx: TurnContext) -> bool:
    dx = sign(goal[0] - creature.position[0])
    dy = sign(goal[1] - creature.position[1])
    for step in detour_candidates(creature.position, dx, dy):
        if try_move(creature, step, ctx):
            return True
    return False


def step_back(creature: Creature, threat: tuple[int, int], ctx: TurnContext) -> bool:
    """One step directly away from the threat; no alternatives are tried."""
    x, y = creature.position
    dest = (x + sign(x - threat[0]), y + sign(y - threat[1]))
    return try_move(creature, dest, ctx)


def circle_target(creature: Creature, target: tuple[int, int], ctx: TurnContext) -> bool:
    """Sidestep perpendicular to the line toward the target."""
    x, y = creature.position
    px = -sign(target[1] - y)
    py = sign(target[0] - x)
    if roll_chance(0.5, rng=ctx.rng):
        px, py = -px, -py
    if px == 0 and py == 0:
        return False
    if try_move(creature, (x + px, y + py), ctx):
        return True
    return try_move(creature, (x - px, y - py), ctx)


def flee_from(creature: Creature, threat: tuple[int, int], ctx: TurnContext) -> bool:
    """Run directly away, falling back to a panicked scramble."""
    x, y = creature.position
    vx, vy = x - threat[0], y - threat[1]
    length = math.hypot(vx, vy)
    if length > 0:
        goal = (x + math.floor(vx / length + 0.5), y + math.floor(vy / length + 0.5))
        if move_toward(creature, goal, ctx):
            return True
    return panic_move(creature, threat, ctx)


def panic_move(creature: Creature, threat: tuple[int, int], ctx: TurnContext) -> bool:
    """Try every direction in random order that does not close on the threat."""
    x, y = creature.position
    current = distance(creature.position, threat)
    offsets = list(NEIGHBOR_OFFSETS)
    ctx.rng.shuffle(offsets)
    for dx, dy in offsets:
        dest = (x + dx, y + dy)
        if distance(dest, threat) < current:
            continue
        if try_move(creature, dest, ctx):
            return True
    return False


def wander(creature: Creature, ctx: TurnContext) -> bool:
    """Amble in a remembered direction, occasionally picking a new one."""
    if creature.wander_direction is None or roll_chance(WANDER_TURN_CHANCE, rng=ctx.rng):
        creature.wander_direction = random_choice(NEIGHBOR_OFFSETS, rng=ctx.rng)

    dx, dy = creature.wander_direction
    x, y = creature.position
    if try_move(creature, (x + dx, y + dy), ctx):
        return True
    creature.wander_direction = None
    return False


def random_step(creature: Creature, ctx: TurnContext) -> tuple[int, int]:
    """The cell a confused creature stumbles toward."""
    dx, dy = random_choice(NEIGHBOR_OFFSETS, rng=ctx.rng)
    return creature.position[0] + dx, creature.position[1] + dy


def count_escape_routes(creature: Creature, ctx: TurnContext) -> int:
    """Open, unoccupied cardinal directions around the creature."""
    x, y = creature.position
    return sum(
        1 for dx, dy in CARDINAL_OFFSETS
        if safe_is_passable(ctx.spatial, x + dx, y + dy, sink=ctx.sink)
        and safe_occupant_at(ctx.spatial, x + dx, y + dy, sink=ctx.sink) is None
    )


def is_cornered(creature: Creature, ctx: TurnContext) -> bool:
    return count_escape_routes(creature, ctx) <= 1
