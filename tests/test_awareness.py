"""Tests for detection, waking, sticky hostility and pack alerts."""

import random

from engine import notices
from engine.awareness import (
    alert_pack,
    can_hear_target,
    can_see_target,
    check_wake_up,
    effective_sight_range,
    provoke,
    update_awareness,
    wake_chance,
)
from engine.conditions import apply_condition
from engine.context import TurnContext
from engine.grid import DungeonGrid
from engine.notices import NoticeLog
from models.characters import Creature, CreatureFlags, CreatureState
from models.game_state import NoticeKind


def _make_creature(
    creature_id: str = "w1",
    position: tuple[int, int] = (2, 2),
    kind: str = "wolf",
    state: CreatureState = CreatureState.WANDERING,
    **overrides,
) -> Creature:
    """Helper to create a test creature."""
    fields = dict(
        id=creature_id,
        kind=kind,
        name=kind.title(),
        position=position,
        max_hp=10,
        hp=10,
        state=state,
    )
    fields.update(overrides)
    return Creature(**fields)


def _make_player(position: tuple[int, int] = (4, 2)) -> Creature:
    return Creature(id="p1", kind="player", name="Hero", position=position,
                    max_hp=30, hp=30, is_player=True)


def _make_context(*creatures: Creature, width: int = 20, height: int = 20) -> TurnContext:
    roster = {c.id: c for c in creatures}
    return TurnContext(
        spatial=DungeonGrid(width, height, roster),
        sink=NoticeLog(limit=500),
        creatures=roster,
        rng=random.Random(3),
    )


class TestSenses:
    def test_sleeping_creatures_see_nothing(self):
        wolf = _make_creature(state=CreatureState.SLEEPING)
        assert effective_sight_range(wolf) == 0

    def test_blind_creatures_see_nothing(self):
        wolf = _make_creature()
        apply_condition(wolf, "blinded", 3)
        assert effective_sight_range(wolf) == 0

    def test_keen_sight(self):
        assert effective_sight_range(_make_creature(flags=CreatureFlags(keen=True))) == 8
        assert effective_sight_range(_make_creature()) == 5

    def test_sight_blocked_by_walls(self):
        wolf = _make_creature(position=(2, 2))
        hero = _make_player(position=(5, 2))
        ctx = _make_context(wolf, hero)
        assert can_see_target(wolf, hero, ctx)
        ctx.spatial.add_walls([(3, 2)])
        assert not can_see_target(wolf, hero, ctx)

    def test_invisible_targets(self):
        wolf = _make_creature(position=(2, 2))
        hero = _make_player(position=(3, 2))
        apply_condition(hero, "invisible", 5)
        ctx = _make_context(wolf, hero)
        assert not can_see_target(wolf, hero, ctx)
        wolf.flags = CreatureFlags(see_invisible=True)
        assert can_see_target(wolf, hero, ctx)

    def test_hearing_needs_noise(self):
        wolf = _make_creature(position=(2, 2))
        hero = _make_player(position=(8, 2))
        assert not can_hear_target(wolf, hero, 0)
        assert can_hear_target(wolf, hero, 3)


class TestWaking:
    def test_wake_chance(self):
        assert wake_chance(2, 5) == 0.8
        assert wake_chance(1, 5) == 1.0
        assert wake_chance(6, 5) == 0.0
        assert wake_chance(1, 0) == 0.0

    def test_silence_never_wakes(self):
        wolf = _make_creature(state=CreatureState.SLEEPING)
        hero = _make_player(position=(3, 2))
        ctx = _make_context(wolf, hero)
        for _ in range(20):
            assert update_awareness(wolf, hero, ctx) == CreatureState.SLEEPING
        assert len(ctx.sink) == 0

    def test_loud_noise_next_to_sleeper(self):
        wolf = _make_creature(state=CreatureState.SLEEPING)
        ctx = _make_context(wolf)
        assert check_wake_up(wolf, (3, 2), 4, ctx)
        assert wolf.state == CreatureState.WANDERING
        assert len(ctx.sink.of_kind(NoticeKind.WOKE_UP)) == 1

    def test_woken_creature_notices_target_at_once(self):
        wolf = _make_creature(state=CreatureState.SLEEPING)
        hero = _make_player(position=(3, 2))
        ctx = _make_context(wolf, hero)
        assert update_awareness(wolf, hero, ctx, noise_level=5) == CreatureState.HOSTILE
        assert wolf.aware_of_target
        assert wolf.target_id == "p1"

    def test_provoke_wakes_and_angers(self):
        wolf = _make_creature(state=CreatureState.SLEEPING)
        hero = _make_player()
        ctx = _make_context(wolf, hero)
        provoke(wolf, hero, ctx)
        assert wolf.state == CreatureState.HOSTILE
        assert len(ctx.sink.of_kind(NoticeKind.WOKE_UP)) == 1
        assert len(ctx.sink.of_kind(NoticeKind.BECAME_HOSTILE)) == 1


class TestHostility:
    def test_spotting_target(self):
        wolf = _make_creature()
        hero = _make_player(position=(5, 2))
        ctx = _make_context(wolf, hero)
        assert update_awareness(wolf, hero, ctx) == CreatureState.HOSTILE
        assert len(ctx.sink.of_kind(NoticeKind.BECAME_HOSTILE)) == 1

    def test_out_of_sight_stays_wandering(self):
        wolf = _make_creature(position=(0, 0))
        hero = _make_player(position=(10, 10))
        ctx = _make_context(wolf, hero)
        assert update_awareness(wolf, hero, ctx) == CreatureState.WANDERING
        assert not wolf.aware_of_target

    def test_hostility_survives_walls(self):
        wolf = _make_creature(position=(0, 0), state=CreatureState.HOSTILE)
        hero = _make_player(position=(10, 0))
        ctx = _make_context(wolf, hero)
        ctx.spatial.add_walls([(5, 0), (5, 1)])
        assert update_awareness(wolf, hero, ctx) == CreatureState.HOSTILE
        assert wolf.target_id == "p1"

    def test_escape_beyond_three_sight_ranges(self):
        wolf = _make_creature(position=(0, 0), state=CreatureState.HOSTILE,
                              aware_of_target=True, target_id="p1")
        hero = _make_player(position=(16, 0))
        ctx = _make_context(wolf, hero)
        assert update_awareness(wolf, hero, ctx) == CreatureState.WANDERING
        assert not wolf.aware_of_target
        assert wolf.target_id is None
        assert len(ctx.sink.of_kind(NoticeKind.LOST_TARGET)) == 1

    def test_exactly_at_escape_distance_keeps_hunting(self):
        wolf = _make_creature(position=(0, 0), state=CreatureState.HOSTILE)
        hero = _make_player(position=(15, 0))
        ctx = _make_context(wolf, hero)
        assert update_awareness(wolf, hero, ctx) == CreatureState.HOSTILE

    def test_dead_target_is_dropped(self):
        wolf = _make_creature(state=CreatureState.HOSTILE, target_id="p1")
        hero = _make_player()
        hero.is_alive = False
        ctx = _make_context(wolf, hero)
        assert update_awareness(wolf, hero, ctx) == CreatureState.WANDERING

    def test_guard_turns_hostile_and_raises_the_alarm(self):
        guard = _make_creature("g1", kind="orc_guard", state=CreatureState.GUARDING,
                               guard_post=(2, 2))
        mate = _make_creature("g2", position=(3, 2), kind="orc_guard",
                              state=CreatureState.GUARDING, guard_post=(3, 2))
        hero = _make_player(position=(6, 2))
        ctx = _make_context(guard, mate, hero)
        assert update_awareness(guard, hero, ctx) == CreatureState.HOSTILE
        assert guard.target_id == "p1"
        assert guard.guard_post == (2, 2)
        assert mate.state == CreatureState.HOSTILE
        assert len(ctx.sink.of_kind(NoticeKind.BECAME_HOSTILE)) == 1
        (alert,) = ctx.sink.of_kind(NoticeKind.PACK_ALERTED)
        assert alert.details == {"alerted": ["g2"]}

    def test_posted_guard_goes_back_to_guarding(self):
        guard = _make_creature("g1", kind="orc_guard", state=CreatureState.HOSTILE,
                               guard_post=(2, 2), target_id="p1", aware_of_target=True)
        hero = _make_player(position=(19, 19))
        ctx = _make_context(guard, hero)
        assert update_awareness(guard, hero, ctx) == CreatureState.GUARDING
        assert guard.target_id is None
        assert len(ctx.sink.of_kind(NoticeKind.LOST_TARGET)) == 1

    def test_unmapped_target_is_ignored_and_reported(self, monkeypatch):
        monkeypatch.setattr(notices, "DEBUG_NOTICES", True)
        wolf = _make_creature()
        hero = _make_player(position=(500, 500))
        ctx = _make_context(wolf, hero)
        assert update_awareness(wolf, hero, ctx, noise_level=20) == CreatureState.WANDERING
        assert not wolf.aware_of_target
        (notice,) = ctx.sink.of_kind(NoticeKind.INVALID_INPUT)
        assert notice.details == {"x": 500, "y": 500}


class TestPackAlert:
    def test_alert_needs_no_line_of_sight(self):
        leader = _make_creature("w1", position=(5, 5))
        behind_wall = _make_creature("w2", position=(7, 5))
        ctx = _make_context(leader, behind_wall, _make_player(position=(2, 5)))
        ctx.spatial.add_walls([(6, 5), (6, 4), (6, 6)])
        hero = ctx.creature("p1")
        update_awareness(leader, hero, ctx)
        assert behind_wall.state == CreatureState.HOSTILE
        assert behind_wall.target_id == "p1"
        (notice,) = ctx.sink.of_kind(NoticeKind.PACK_ALERTED)
        assert notice.details["alerted"] == ["w2"]

    def test_only_same_kind_within_radius(self):
        leader = _make_creature("w1", position=(5, 5))
        jackal = _make_creature("j1", position=(6, 5), kind="jackal")
        far_wolf = _make_creature("w3", position=(5, 10))
        hero = _make_player(position=(3, 5))
        ctx = _make_context(leader, jackal, far_wolf, hero)
        assert alert_pack(leader, hero, ctx) == []
        assert jackal.state == CreatureState.WANDERING
        assert far_wolf.state == CreatureState.WANDERING

    def test_sleeping_packmates_are_roused(self):
        leader = _make_creature("w1", position=(5, 5))
        sleeper = _make_creature("w2", position=(5, 7), state=CreatureState.SLEEPING)
        hero = _make_player(position=(3, 5))
        ctx = _make_context(leader, sleeper, hero)
        assert alert_pack(leader, hero, ctx) == ["w2"]
        assert sleeper.state == CreatureState.HOSTILE

    def test_alert_does_not_chain(self):
        leader = _make_creature("w1", position=(2, 5))
        middle = _make_creature("w2", position=(4, 5))
        last = _make_creature("w3", position=(6, 5))
        hero = _make_player(position=(0, 5))
        ctx = _make_context(leader, middle, last, hero)
        update_awareness(leader, hero, ctx)
        assert middle.state == CreatureState.HOSTILE
        assert last.state == CreatureState.WANDERING
