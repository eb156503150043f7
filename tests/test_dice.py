"""Tests for dice rolling utilities."""

import random

import pytest

from engine.dice import (
    DiceResult,
    dice_range,
    parse_notation,
    random_choice,
    roll,
    roll_chance,
    roll_d20,
    roll_detailed,
)


class TestRoll:
    """Tests for the roll() function."""

    def test_zero_dice(self):
        assert roll("0d6+0") == 0

    def test_single_sided_dice(self):
        assert roll("3d1") == 3

    def test_modifier_range(self):
        rng = random.Random(42)
        for _ in range(200):
            assert 11 <= roll("1d6+10", rng=rng) <= 16

    def test_negative_total_clamps_to_zero(self):
        rng = random.Random(42)
        for _ in range(50):
            assert roll("2d6-100", rng=rng) == 0

    def test_bare_integer(self):
        assert roll(7) == 7
        assert roll(-3) == 0

    def test_integer_string(self):
        assert roll("12") == 12

    def test_unparsable_falls_back_to_leading_integer(self):
        assert roll("5 goblins") == 5

    def test_garbage_is_zero(self):
        assert roll("bad") == 0
        assert roll("") == 0

    def test_independent_draws(self):
        """The same notation rolled repeatedly is not cached."""
        rng = random.Random(7)
        results = {roll("1d20", rng=rng) for _ in range(50)}
        assert len(results) > 1

    def test_seeded_determinism(self):
        """Same seed produces same results."""
        first = [roll("4d6", rng=random.Random(123)) for _ in range(3)]
        second = [roll("4d6", rng=random.Random(123)) for _ in range(3)]
        assert first == second


class TestRollDetailed:
    """Tests for roll_detailed()."""

    def test_multiple_dice(self):
        rng = random.Random(42)
        result = roll_detailed("3d6", rng=rng)
        assert isinstance(result, DiceResult)
        assert len(result.rolls) == 3
        assert all(1 <= r <= 6 for r in result.rolls)
        assert result.total == sum(result.rolls)

    def test_positive_modifier(self):
        rng = random.Random(42)
        result = roll_detailed("1d8+3", rng=rng)
        assert result.modifier == 3
        assert result.total == result.rolls[0] + 3

    def test_multi_term(self):
        rng = random.Random(42)
        result = roll_detailed("1d6 + 1D4 + 2", rng=rng)
        assert len(result.rolls) == 2
        assert result.modifier == 2
        assert result.total == sum(result.rolls) + 2

    def test_notation_stored(self):
        result = roll_detailed("2d6+3")
        assert result.notation == "2d6+3"

    def test_malformed_notation_flagged(self):
        assert roll_detailed("2d6").parsed
        result = roll_detailed("3 goblins")
        assert not result.parsed
        assert result.total == 3


class TestParseNotation:
    """Tests for the strict parser."""

    def test_terms(self):
        assert parse_notation("2d6+3") == [(1, 2, 6), (1, 3, 0)]

    def test_negative_term(self):
        assert parse_notation("1d8-2") == [(1, 1, 8), (-1, 2, 0)]

    def test_invalid_notation(self):
        with pytest.raises(ValueError):
            parse_notation("bad")
        with pytest.raises(ValueError):
            parse_notation("")
        with pytest.raises(ValueError):
            parse_notation("2d")


class TestDiceRange:
    """Tests for dice_range()."""

    def test_simple(self):
        result = dice_range("2d6+3")
        assert result.min == 5
        assert result.max == 15
        assert result.average == 10.0

    def test_floors_at_zero(self):
        result = dice_range("1d4-10")
        assert result.min == 0
        assert result.max == 0

    def test_integer(self):
        result = dice_range(4)
        assert (result.min, result.max) == (4, 4)


class TestHelpers:
    """Tests for d20, chance and choice helpers."""

    def test_d20_range(self):
        rng = random.Random(42)
        for _ in range(100):
            assert 1 <= roll_d20(rng=rng) <= 20

    def test_advantage_never_lower(self):
        for seed in range(30):
            plain = random.Random(seed)
            first, second = plain.randint(1, 20), plain.randint(1, 20)
            assert roll_d20(advantage=True, rng=random.Random(seed)) == max(first, second)

    def test_disadvantage_takes_lower(self):
        for seed in range(30):
            plain = random.Random(seed)
            first, second = plain.randint(1, 20), plain.randint(1, 20)
            assert roll_d20(disadvantage=True, rng=random.Random(seed)) == min(first, second)

    def test_chance_bounds(self):
        rng = random.Random(1)
        assert roll_chance(0, rng=rng) is False
        assert roll_chance(1.0, rng=rng) is True

    def test_random_choice(self):
        rng = random.Random(3)
        assert random_choice([], rng=rng) is None
        assert random_choice(["a", "b", "c"], rng=rng) in {"a", "b", "c"}
