"""Spatial query interface, distance helpers, and a reference grid adapter.

The dungeon owns the map; the engine only asks it questions. ``DungeonGrid``
is a small in-memory implementation of those questions, suitable for tests
and for embedding the engine without a full dungeon subsystem.
"""

from __future__ import annotations

import logging
import math
from typing import TYPE_CHECKING, Protocol

from engine.notices import NoticeSink, emit_debug
from models.game_state import GridCell

if TYPE_CHECKING:
    from models.characters import Creature

logger = logging.getLogger(__name__)

# Fixed neighbour order, also the surround order for pack hunters
NEIGHBOR_OFFSETS: tuple[tuple[int, int], ...] = (
    (-1, 0), (1, 0), (0, -1), (0, 1),
    (-1, -1), (1, -1), (-1, 1), (1, 1),
)

CARDINAL_OFFSETS: tuple[tuple[int, int], ...] = ((0, -1), (1, 0), (0, 1), (-1, 0))


class SpatialQuery(Protocol):
    """Questions the engine asks the dungeon collaborator."""

    def is_passable(self, x: int, y: int) -> bool: ...

    def is_wall(self, x: int, y: int) -> bool: ...

    def get_occupant_at(self, x: int, y: int) -> Creature | None: ...

    def get_occupants_in_radius(self, x: int, y: int, radius: float) -> list[Creature]: ...

    def has_line_of_sight(self, origin: tuple[int, int], dest: tuple[int, int]) -> bool: ...


def distance(pos1: tuple[int, int], pos2: tuple[int, int]) -> float:
    """Euclidean distance in tiles (adjacent diagonals are ~1.41)."""
    return math.hypot(pos1[0] - pos2[0], pos1[1] - pos2[1])


def grid_distance(pos1: tuple[int, int], pos2: tuple[int, int]) -> int:
    """Chebyshev distance in tiles (diagonal steps count as 1)."""
    return max(abs(pos1[0] - pos2[0]), abs(pos1[1] - pos2[1]))


def is_adjacent(pos1: tuple[int, int], pos2: tuple[int, int]) -> bool:
    """True if the positions touch, including diagonals."""
    return pos1 != pos2 and grid_distance(pos1, pos2) <= 1


def sign(value: float) -> int:
    return (value > 0) - (value < 0)


def _round_half_up(value: float) -> int:
    return math.floor(value + 0.5)


def cone_cells(
    origin: tuple[int, int],
    toward: tuple[int, int],
    length: int,
) -> list[tuple[int, int]]:
    """Cells of a cone radiating from origin in the direction of toward.

    Each step d along the axis is widened by ceil(d / 2) cells on either
    side, so the cone grows into a triangle. Cells are returned nearest
    first, without duplicates, and never include the origin.
    """
    dx = toward[0] - origin[0]
    dy = toward[1] - origin[1]
    length_to_target = math.hypot(dx, dy)
    if length_to_target == 0 or length <= 0:
        return []
    dir_x = dx / length_to_target
    dir_y = dy / length_to_target

    cells: list[tuple[int, int]] = []
    seen: set[tuple[int, int]] = {origin}
    for step in range(1, length + 1):
        width = math.ceil(step / 2)
        for offset in range(-width, width + 1):
            cell = (
                _round_half_up(origin[0] + dir_x * step + dir_y * offset),
                _round_half_up(origin[1] + dir_y * step - dir_x * offset),
            )
            if cell not in seen:
                seen.add(cell)
                cells.append(cell)
    return cells


# ---------------------------------------------------------------------------
# Conservative wrappers: a collaborator that cannot answer means "no".
# Given a sink, the failure is also reported as a debug notice.
# ---------------------------------------------------------------------------


def _unanswered(sink: NoticeSink | None, message: str, **details) -> None:
    if sink is None:
        logger.debug(message)
        return
    emit_debug(sink, message, **details)


def safe_line_of_sight(
    spatial: SpatialQuery,
    origin: tuple[int, int],
    dest: tuple[int, int],
    sink: NoticeSink | None = None,
) -> bool:
    try:
        return bool(spatial.has_line_of_sight(origin, dest))
    except (ValueError, IndexError, KeyError) as exc:
        _unanswered(sink, f"Line of sight {origin} -> {dest} unavailable: {exc}",
                    origin=list(origin), dest=list(dest))
        return False


def safe_is_passable(spatial: SpatialQuery, x: int, y: int, sink: NoticeSink | None = None) -> bool:
    try:
        return bool(spatial.is_passable(x, y))
    except (ValueError, IndexError, KeyError) as exc:
        _unanswered(sink, f"Passability of ({x}, {y}) unavailable: {exc}", x=x, y=y)
        return False


def valid_position(spatial: SpatialQuery, x: int, y: int, sink: NoticeSink | None = None) -> bool:
    """True if the map knows the cell at all (wall or floor)."""
    try:
        spatial.is_wall(x, y)
    except (ValueError, IndexError, KeyError) as exc:
        _unanswered(sink, f"Invalid coordinates ({x}, {y}): {exc}", x=x, y=y)
        return False
    return True


def safe_occupant_at(spatial: SpatialQuery, x: int, y: int, sink: NoticeSink | None = None) -> Creature | None:
    try:
        return spatial.get_occupant_at(x, y)
    except (ValueError, IndexError, KeyError) as exc:
        _unanswered(sink, f"Occupant of ({x}, {y}) unavailable: {exc}", x=x, y=y)
        return None


def safe_occupants_in_radius(
    spatial: SpatialQuery,
    x: int,
    y: int,
    radius: float,
    sink: NoticeSink | None = None,
) -> list[Creature]:
    try:
        return list(spatial.get_occupants_in_radius(x, y, radius))
    except (ValueError, IndexError, KeyError) as exc:
        _unanswered(sink, f"Radius search at ({x}, {y}) unavailable: {exc}", x=x, y=y)
        return []


# ---------------------------------------------------------------------------
# Reference implementation
# ---------------------------------------------------------------------------


def create_grid(width: int, height: int) -> list[list[GridCell]]:
    """Initialize an open grid of GridCells.

    Args:
        width: Number of columns.
        height: Number of rows.

    Returns:
        A 2D list indexed as grid[y][x].
    """
    return [
        [GridCell(x=x, y=y) for x in range(width)]
        for y in range(height)
    ]


class DungeonGrid:
    """In-memory SpatialQuery backed by a tile grid and the creature roster.

    Occupancy is read from the roster on every query, so moving a creature
    only requires updating its ``position``.
    """

    def __init__(
        self,
        width: int,
        height: int,
        creatures: dict[str, Creature] | None = None,
    ) -> None:
        self.width = width
        self.height = height
        self.cells = create_grid(width, height)
        self.creatures: dict[str, Creature] = creatures if creatures is not None else {}

    def in_bounds(self, x: int, y: int) -> bool:
        return 0 <= x < self.width and 0 <= y < self.height

    def _cell(self, x: int, y: int) -> GridCell:
        if not self.in_bounds(x, y):
            raise ValueError(f"Position ({x}, {y}) is out of bounds")
        return self.cells[y][x]

    def set_terrain(self, x: int, y: int, terrain: str) -> None:
        self._cell(x, y).terrain = terrain

    def add_walls(self, positions: list[tuple[int, int]]) -> None:
        for x, y in positions:
            self.set_terrain(x, y, "wall")

    def is_wall(self, x: int, y: int) -> bool:
        return self._cell(x, y).terrain == "wall"

    def is_passable(self, x: int, y: int) -> bool:
        if not self.in_bounds(x, y):
            return False
        return self.cells[y][x].terrain != "wall"

    def get_occupant_at(self, x: int, y: int) -> Creature | None:
        for creature in self.creatures.values():
            if creature.is_alive and creature.position == (x, y):
                return creature
        return None

    def get_occupants_in_radius(self, x: int, y: int, radius: float) -> list[Creature]:
        return [
            c for c in self.creatures.values()
            if c.is_alive and distance((x, y), c.position) <= radius
        ]

    def has_line_of_sight(self, origin: tuple[int, int], dest: tuple[int, int]) -> bool:
        """Check if origin can see dest; only walls block.

        Uses Bresenham's line algorithm to trace between positions.

        Raises:
            ValueError: If either endpoint is off the map.
        """
        self._cell(*origin)
        self._cell(*dest)

        x0, y0 = origin
        x1, y1 = dest

        dx = abs(x1 - x0)
        dy = abs(y1 - y0)
        sx = 1 if x0 < x1 else -1
        sy = 1 if y0 < y1 else -1
        err = dx - dy

        while True:
            if (x0, y0) != origin and (x0, y0) != dest:
                if self.cells[y0][x0].terrain == "wall":
                    return False
            if x0 == x1 and y0 == y1:
                break
            e2 = 2 * err
            if e2 > -dy:
                err -= dy
                x0 += sx
            if e2 < dx:
                err += dx
                y0 += sy

        return True
