"""Dice rolling utilities: notation parsing, damage rolls, chance checks."""

from __future__ import annotations

import logging
import random
import re
from typing import Sequence, TypeVar

from pydantic import BaseModel

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TERM = re.compile(r"^(\d+)d(\d+)$")
_LEADING_INT = re.compile(r"^\s*([+-]?\d+)")


class DiceResult(BaseModel):
    """Result of a dice roll."""
    total: int                      # Floored at 0
    rolls: list[int]
    modifier: int
    notation: str
    parsed: bool = True             # False when malformed notation fell back


class DiceRange(BaseModel):
    """Minimum, maximum and average outcome of a notation."""
    min: int
    max: int
    average: float


def parse_notation(notation: str) -> list[tuple[int, int, int]]:
    """Split notation like '2d6+3' or '1d6+1d4-1' into signed terms.

    Each term is (sign, count, sides); flat modifiers use sides=0.

    Raises:
        ValueError: If any term is not NdM or a plain integer.
    """
    text = re.sub(r"\s", "", str(notation)).lower()
    if not text:
        raise ValueError("Empty dice notation")

    terms: list[tuple[int, int, int]] = []
    for part in re.split(r"(?=[+-])", text):
        if not part:
            continue
        sign = -1 if part.startswith("-") else 1
        body = part.lstrip("+-")
        match = _TERM.match(body)
        if match:
            terms.append((sign, int(match.group(1)), int(match.group(2))))
        elif body.isdigit():
            terms.append((sign, int(body), 0))
        else:
            raise ValueError(f"Invalid dice notation: {notation}")
    return terms


def roll_detailed(notation: str | int, rng: random.Random | None = None) -> DiceResult:
    """Roll dice notation and keep the individual die results.

    Bare integers are returned as-is (as a modifier). Malformed notation
    falls back to its leading integer, or 0.

    Args:
        notation: Dice notation string (e.g. "2d6+3") or an integer.
        rng: Optional Random instance for seeded/testing rolls.

    Returns:
        DiceResult whose total never goes below 0.
    """
    if isinstance(notation, bool):
        notation = int(notation)
    if isinstance(notation, int):
        return DiceResult(total=max(0, notation), rolls=[], modifier=notation, notation=str(notation))

    rng = rng or random.Random()
    try:
        terms = parse_notation(notation)
    except ValueError:
        match = _LEADING_INT.match(str(notation))
        fallback = int(match.group(1)) if match else 0
        logger.debug("Unparsable dice notation %r, using %d", notation, fallback)
        return DiceResult(
            total=max(0, fallback), rolls=[], modifier=fallback, notation=str(notation), parsed=False,
        )

    rolls: list[int] = []
    modifier = 0
    dice_total = 0
    for sign, count, sides in terms:
        if sides == 0:
            modifier += sign * count
            continue
        if sides < 1:
            continue
        term_rolls = [rng.randint(1, sides) for _ in range(count)]
        rolls.extend(term_rolls)
        dice_total += sign * sum(term_rolls)

    return DiceResult(
        total=max(0, dice_total + modifier),
        rolls=rolls,
        modifier=modifier,
        notation=str(notation).strip().lower(),
    )


def roll(notation: str | int, rng: random.Random | None = None) -> int:
    """Roll dice notation and return the total (never negative).

    Each call is an independent draw.
    """
    return roll_detailed(notation, rng=rng).total


def roll_d20(
    advantage: bool = False,
    disadvantage: bool = False,
    rng: random.Random | None = None,
) -> int:
    """Roll a d20, optionally with advantage or disadvantage.

    Args:
        advantage: Roll twice, take the higher.
        disadvantage: Roll twice, take the lower.
        rng: Optional Random instance for seeded/testing rolls.

    Returns:
        The resulting d20 roll.
    """
    rng = rng or random.Random()

    if advantage and disadvantage:
        # They cancel out
        return rng.randint(1, 20)

    if advantage:
        return max(rng.randint(1, 20), rng.randint(1, 20))

    if disadvantage:
        return min(rng.randint(1, 20), rng.randint(1, 20))

    return rng.randint(1, 20)


def roll_chance(probability: float, rng: random.Random | None = None) -> bool:
    """Return True with the given probability (0.0 - 1.0)."""
    if probability <= 0:
        return False
    if probability >= 1:
        return True
    rng = rng or random.Random()
    return rng.random() < probability


def random_choice(items: Sequence[T], rng: random.Random | None = None) -> T | None:
    """Pick one element, or None for an empty sequence."""
    if not items:
        return None
    rng = rng or random.Random()
    return items[rng.randrange(len(items))]


def dice_range(notation: str | int) -> DiceRange:
    """Compute min/max/average of a notation without rolling.

    Malformed notation is treated like roll() treats it.
    """
    if isinstance(notation, int):
        value = max(0, notation)
        return DiceRange(min=value, max=value, average=float(value))

    try:
        terms = parse_notation(notation)
    except ValueError:
        match = _LEADING_INT.match(str(notation))
        value = max(0, int(match.group(1))) if match else 0
        return DiceRange(min=value, max=value, average=float(value))

    low = high = 0
    avg = 0.0
    for sign, count, sides in terms:
        if sides == 0:
            low += sign * count
            high += sign * count
            avg += sign * count
            continue
        term_min, term_max = count, count * sides
        term_avg = count * (sides + 1) / 2
        if sign < 0:
            low -= term_max
            high -= term_min
            avg -= term_avg
        else:
            low += term_min
            high += term_max
            avg += term_avg

    return DiceRange(min=max(0, low), max=max(0, high), average=max(0.0, avg))
