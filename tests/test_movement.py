"""Tests for step candidates, blocked moves, flight and wandering."""

import random

from engine.conditions import apply_condition
from engine.context import TurnContext
from engine.grid import DungeonGrid, distance, is_adjacent
from engine.movement import (
    circle_target,
    count_escape_routes,
    flee_from,
    is_cornered,
    move_toward,
    panic_move,
    random_step,
    step_back,
    toward_candidates,
    try_detour,
    try_move,
    wander,
)
from engine.notices import NoticeLog
from models.characters import Creature, CreatureFlags


class ScriptedRandom(random.Random):
    """Random source that replays scripted float draws first."""

    def __init__(self, floats=()):
        super().__init__(0)
        self.floats = list(floats)

    def random(self):
        if self.floats:
            return self.floats.pop(0)
        return super().random()

    def getrandbits(self, k):
        return super().getrandbits(k)


def _make_creature(
    creature_id: str = "c1",
    position: tuple[int, int] = (2, 2),
    **overrides,
) -> Creature:
    """Helper to create a test creature."""
    fields = dict(id=creature_id, kind="goblin", name="Goblin", position=position, max_hp=8, hp=8)
    fields.update(overrides)
    return Creature(**fields)


def _make_context(*creatures: Creature, size: int = 10, rng: random.Random | None = None) -> TurnContext:
    roster = {c.id: c for c in creatures}
    return TurnContext(
        spatial=DungeonGrid(size, size, roster),
        sink=NoticeLog(),
        creatures=roster,
        rng=rng or random.Random(11),
    )


class TestCandidates:
    def test_diagonal_first_then_axes_then_detours(self):
        assert toward_candidates((2, 2), (5, 5)) == [(3, 3), (3, 2), (2, 3), (2, 1), (1, 2)]

    def test_straight_line(self):
        assert toward_candidates((2, 2), (5, 2)) == [(3, 2), (2, 3), (2, 1)]
        assert toward_candidates((2, 2), (2, 0)) == [(2, 1), (3, 2), (1, 2)]

    def test_already_there(self):
        assert toward_candidates((2, 2), (2, 2)) == []


class TestTryMove:
    def test_open_step(self):
        goblin = _make_creature()
        ctx = _make_context(goblin)
        assert try_move(goblin, (3, 2), ctx)
        assert goblin.position == (3, 2)

    def test_walls_block(self):
        goblin = _make_creature()
        ctx = _make_context(goblin)
        ctx.spatial.add_walls([(3, 2)])
        assert not try_move(goblin, (3, 2), ctx)
        assert goblin.position == (2, 2)

    def test_occupied_cells_block(self):
        goblin = _make_creature()
        other = _make_creature("c2", position=(3, 2))
        ctx = _make_context(goblin, other)
        assert not try_move(goblin, (3, 2), ctx)

    def test_webbed_creatures_stay_put(self):
        goblin = _make_creature()
        apply_condition(goblin, "webbed", 2)
        ctx = _make_context(goblin)
        assert not try_move(goblin, (3, 2), ctx)

    def test_engulf_pins_both(self):
        cube = _make_creature("cube", engulfed_id="c2")
        victim = _make_creature("c2", position=(5, 5), engulfed_by="cube")
        ctx = _make_context(cube, victim)
        assert not try_move(cube, (3, 2), ctx)
        assert not try_move(victim, (5, 6), ctx)

    def test_phasing_through_walls_but_not_off_map(self):
        ghost = _make_creature(position=(0, 2), flags=CreatureFlags(wall_pass=True))
        ctx = _make_context(ghost)
        ctx.spatial.add_walls([(1, 2)])
        assert try_move(ghost, (1, 2), ctx)
        ghost.position = (0, 2)
        assert not try_move(ghost, (-1, 2), ctx)


class TestMoveToward:
    def test_prefers_diagonal(self):
        goblin = _make_creature()
        ctx = _make_context(goblin)
        assert move_toward(goblin, (5, 5), ctx)
        assert goblin.position == (3, 3)

    def test_falls_back_to_horizontal(self):
        goblin = _make_creature()
        ctx = _make_context(goblin)
        ctx.spatial.add_walls([(3, 3)])
        assert move_toward(goblin, (5, 5), ctx)
        assert goblin.position == (3, 2)

    def test_detours_around_a_wall(self):
        goblin = _make_creature()
        ctx = _make_context(goblin)
        ctx.spatial.add_walls([(3, 2)])
        assert move_toward(goblin, (6, 2), ctx)
        assert goblin.position == (2, 3)

    def test_fully_blocked(self):
        goblin = _make_creature()
        ctx = _make_context(goblin)
        ctx.spatial.add_walls([(3, 2), (2, 3), (2, 1)])
        assert not move_toward(goblin, (6, 2), ctx)
        assert goblin.position == (2, 2)

    def test_try_detour(self):
        goblin = _make_creature()
        ctx = _make_context(goblin)
        ctx.spatial.add_walls([(2, 3)])
        assert try_detour(goblin, (6, 2), ctx)
        assert goblin.position == (2, 1)


class TestStepBack:
    def test_directly_away(self):
        archer = _make_creature(position=(3, 3))
        ctx = _make_context(archer)
        assert step_back(archer, (2, 2), ctx)
        assert archer.position == (4, 4)

    def test_no_alternatives(self):
        archer = _make_creature(position=(3, 3))
        ctx = _make_context(archer)
        ctx.spatial.add_walls([(4, 4)])
        assert not step_back(archer, (2, 2), ctx)
        assert archer.position == (3, 3)


class TestCircle:
    def test_sidesteps_perpendicular(self):
        wolf = _make_creature()
        ctx = _make_context(wolf)
        assert circle_target(wolf, (4, 2), ctx)
        assert wolf.position in {(2, 1), (2, 3)}

    def test_tries_other_side(self):
        wolf = _make_creature()
        ctx = _make_context(wolf)
        ctx.spatial.add_walls([(2, 1)])
        assert circle_target(wolf, (4, 2), ctx)
        assert wolf.position == (2, 3)


class TestFlee:
    def test_runs_directly_away(self):
        kobold = _make_creature(position=(5, 5))
        ctx = _make_context(kobold)
        assert flee_from(kobold, (4, 5), ctx)
        assert kobold.position == (6, 5)

    def test_panic_never_closes_distance(self):
        kobold = _make_creature(position=(5, 5))
        ctx = _make_context(kobold)
        ctx.spatial.add_walls([(6, 5), (6, 4), (6, 6), (5, 4), (5, 6)])
        before = distance((5, 5), (4, 5))
        moved = flee_from(kobold, (4, 5), ctx)
        assert not moved or distance(kobold.position, (4, 5)) >= before

    def test_panic_when_trapped(self):
        kobold = _make_creature(position=(0, 0))
        ctx = _make_context(kobold)
        ctx.spatial.add_walls([(1, 0), (0, 1), (1, 1)])
        assert not panic_move(kobold, (2, 2), ctx)
        assert kobold.position == (0, 0)


class TestWander:
    def test_keeps_heading(self):
        rat = _make_creature(wander_direction=(1, 0))
        ctx = _make_context(rat, rng=ScriptedRandom(floats=[0.9]))
        assert wander(rat, ctx)
        assert rat.position == (3, 2)
        assert rat.wander_direction == (1, 0)

    def test_blocked_heading_is_forgotten(self):
        rat = _make_creature(wander_direction=(1, 0))
        ctx = _make_context(rat, rng=ScriptedRandom(floats=[0.9]))
        ctx.spatial.add_walls([(3, 2)])
        assert not wander(rat, ctx)
        assert rat.wander_direction is None
        assert rat.position == (2, 2)

    def test_random_step_is_adjacent(self):
        rat = _make_creature()
        ctx = _make_context(rat)
        for _ in range(20):
            assert is_adjacent(rat.position, random_step(rat, ctx))


class TestEscapeRoutes:
    def test_open_field(self):
        goblin = _make_creature(position=(5, 5))
        ctx = _make_context(goblin)
        assert count_escape_routes(goblin, ctx) == 4
        assert not is_cornered(goblin, ctx)

    def test_corner(self):
        goblin = _make_creature(position=(0, 0))
        ctx = _make_context(goblin)
        assert count_escape_routes(goblin, ctx) == 2
        ctx.spatial.add_walls([(1, 0)])
        assert is_cornered(goblin, ctx)

    def test_occupants_close_routes(self):
        goblin = _make_creature(position=(0, 0))
        other = _make_creature("c2", position=(0, 1))
        ctx = _make_context(goblin, other)
        ctx.spatial.add_walls([(1, 0)])
        assert count_escape_routes(goblin, ctx) == 0
