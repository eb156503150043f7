"""Tests for condition application, ticking, and derived stats."""

import random

from engine.conditions import (
    apply_condition,
    can_move,
    clear_magical_conditions,
    damage_multiplier,
    effective_armor_class,
    effective_speed,
    is_incapacitated,
    remove_condition,
    resists_condition,
    tick_conditions,
    turn_skip_reason,
)
from engine.context import TurnContext
from engine.grid import DungeonGrid
from engine.notices import NoticeLog
from models.characters import Creature, CreatureState
from models.game_state import NoticeKind


def _make_creature(**overrides) -> Creature:
    """Helper to create a test creature."""
    fields = dict(id="c1", kind="orc", name="Orc", max_hp=20, hp=20, armor_class=6)
    fields.update(overrides)
    return Creature(**fields)


def _make_context(creature: Creature) -> TurnContext:
    roster = {creature.id: creature}
    return TurnContext(
        spatial=DungeonGrid(5, 5, roster),
        sink=NoticeLog(),
        creatures=roster,
        rng=random.Random(1),
    )


class TestApplyCondition:
    def test_defaults_from_catalog(self):
        orc = _make_creature()
        condition = apply_condition(orc, "poisoned", 4)
        assert condition.damage_per_turn == 2
        assert condition.stackable
        assert orc.has_condition("poisoned")

    def test_refresh_resets_duration(self):
        orc = _make_creature()
        apply_condition(orc, "confused", 2)
        apply_condition(orc, "confused", 5)
        assert orc.conditions["confused"].remaining == 5

    def test_stacking_caps(self):
        orc = _make_creature()
        for _ in range(5):
            apply_condition(orc, "poisoned", 3)
        assert orc.conditions["poisoned"].stacks == 3

    def test_notice(self):
        orc = _make_creature()
        ctx = _make_context(orc)
        apply_condition(orc, "stunned", 2, ctx, source_id="p1")
        (notice,) = ctx.sink.of_kind(NoticeKind.CONDITION_APPLIED)
        assert notice.target_id == "c1"
        assert notice.actor_id == "p1"
        assert notice.condition == "stunned"

    def test_resistance_by_alias(self):
        orc = _make_creature(resistances=["poison"])
        assert resists_condition(orc, "poisoned")
        assert not resists_condition(orc, "stunned")


class TestTickConditions:
    def test_countdown_and_expiry(self):
        orc = _make_creature()
        ctx = _make_context(orc)
        apply_condition(orc, "stunned", 2, ctx)
        tick_conditions(orc, ctx)
        assert orc.conditions["stunned"].remaining == 1
        tick_conditions(orc, ctx)
        assert not orc.has_condition("stunned")
        assert len(ctx.sink.of_kind(NoticeKind.CONDITION_EXPIRED)) == 1

    def test_expiry_fires_once(self):
        orc = _make_creature()
        ctx = _make_context(orc)
        apply_condition(orc, "stunned", 1, ctx)
        for _ in range(3):
            tick_conditions(orc, ctx)
        assert len(ctx.sink.of_kind(NoticeKind.CONDITION_EXPIRED)) == 1

    def test_damage_over_time_counts_stacks(self):
        orc = _make_creature()
        apply_condition(orc, "poisoned", 5)
        apply_condition(orc, "poisoned", 5)
        assert tick_conditions(orc) == 4

    def test_permanent_condition_stays(self):
        orc = _make_creature()
        apply_condition(orc, "berserk", None)
        for _ in range(10):
            tick_conditions(orc)
        assert orc.has_condition("berserk")

    def test_shapechange_reverts_on_expiry(self):
        orc = _make_creature(form="wolf")
        apply_condition(orc, "shapechanged", 1)
        tick_conditions(orc)
        assert orc.form is None


class TestDerivedStats:
    def test_armor_class_modifiers(self):
        orc = _make_creature()
        apply_condition(orc, "stone_skin", 5)
        assert effective_armor_class(orc) == 2
        apply_condition(orc, "berserk", None)
        assert effective_armor_class(orc) == 4

    def test_damage_multiplier(self):
        orc = _make_creature()
        assert damage_multiplier(orc) == 1.0
        apply_condition(orc, "raging", 5)
        assert damage_multiplier(orc) == 1.5

    def test_speed(self):
        orc = _make_creature(speed=12)
        apply_condition(orc, "slowed", 3)
        assert effective_speed(orc) == 6

    def test_cancellation_strips_magic_only(self):
        orc = _make_creature()
        apply_condition(orc, "invisible", 5)
        apply_condition(orc, "hasted", 5)
        apply_condition(orc, "poisoned", 5)
        removed = clear_magical_conditions(orc)
        assert set(removed) == {"invisible", "hasted"}
        assert orc.has_condition("poisoned")

    def test_remove_missing(self):
        assert remove_condition(_make_creature(), "stunned") is False


class TestTurnEffects:
    def test_skip_reasons(self):
        orc = _make_creature()
        assert turn_skip_reason(orc) is None
        apply_condition(orc, "paralyzed", 2)
        assert turn_skip_reason(orc) == "paralyzed"

    def test_sleeping_state_skips(self):
        orc = _make_creature(state=CreatureState.SLEEPING)
        assert turn_skip_reason(orc) == "sleeping"
        assert is_incapacitated(orc)

    def test_confusion_incapacitates_but_does_not_skip(self):
        orc = _make_creature()
        apply_condition(orc, "confused", 2)
        assert is_incapacitated(orc)
        assert turn_skip_reason(orc) is None

    def test_web_blocks_movement(self):
        orc = _make_creature()
        apply_condition(orc, "webbed", 2)
        assert not can_move(orc)
