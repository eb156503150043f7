"""Tests for distance helpers, cone geometry, and the reference spatial grid."""

import pytest

from engine import notices
from engine.grid import (
    NEIGHBOR_OFFSETS,
    DungeonGrid,
    cone_cells,
    create_grid,
    distance,
    grid_distance,
    is_adjacent,
    safe_is_passable,
    safe_line_of_sight,
    safe_occupant_at,
    valid_position,
)
from engine.notices import NoticeLog
from models.characters import Creature
from models.game_state import GridCell, NoticeKind


def _make_creature(creature_id: str = "c1", position: tuple[int, int] = (0, 0), alive: bool = True) -> Creature:
    """Helper to create a test creature."""
    return Creature(
        id=creature_id,
        kind="rat",
        name="Rat",
        position=position,
        max_hp=5,
        hp=5 if alive else 0,
        is_alive=alive,
    )


class _BrokenSpatial:
    """A collaborator that cannot answer anything."""

    def is_passable(self, x, y):
        raise IndexError("no map")

    def is_wall(self, x, y):
        raise IndexError("no map")

    def get_occupant_at(self, x, y):
        raise KeyError("no index")

    def get_occupants_in_radius(self, x, y, radius):
        raise KeyError("no index")

    def has_line_of_sight(self, origin, dest):
        raise ValueError("no map")


class TestCreateGrid:
    def test_dimensions(self):
        grid = create_grid(10, 8)
        assert len(grid) == 8
        assert len(grid[0]) == 10

    def test_cells_are_gridcells(self):
        grid = create_grid(5, 5)
        assert isinstance(grid[0][0], GridCell)
        assert grid[3][2].x == 2
        assert grid[3][2].y == 3


class TestDistance:
    def test_same_position(self):
        assert distance((3, 3), (3, 3)) == 0

    def test_euclidean(self):
        assert distance((0, 0), (3, 4)) == 5

    def test_diagonal_is_longer_than_one(self):
        assert 1.41 < distance((0, 0), (1, 1)) < 1.42

    def test_grid_distance_is_chebyshev(self):
        assert grid_distance((0, 0), (3, 4)) == 4

    def test_adjacent(self):
        assert is_adjacent((2, 2), (3, 3))
        assert not is_adjacent((2, 2), (4, 2))
        assert not is_adjacent((2, 2), (2, 2))


class TestNeighborOrder:
    def test_cardinals_before_diagonals(self):
        assert NEIGHBOR_OFFSETS[:4] == ((-1, 0), (1, 0), (0, -1), (0, 1))
        assert len(NEIGHBOR_OFFSETS) == 8


class TestConeCells:
    def test_cone_widens(self):
        cells = cone_cells((5, 5), (8, 5), 3)
        assert len(cells) == 11
        assert (6, 5) in cells
        assert (8, 3) in cells and (8, 7) in cells
        assert (7, 3) not in cells

    def test_excludes_origin_and_beyond_range(self):
        cells = cone_cells((5, 5), (8, 5), 3)
        assert (5, 5) not in cells
        assert (9, 5) not in cells

    def test_nearest_first(self):
        cells = cone_cells((5, 5), (5, 9), 3)
        assert cells[0][1] == 6
        assert cells[-1][1] == 8

    def test_no_duplicates(self):
        cells = cone_cells((0, 0), (4, 3), 5)
        assert len(cells) == len(set(cells))

    def test_degenerate(self):
        assert cone_cells((2, 2), (2, 2), 3) == []
        assert cone_cells((2, 2), (4, 2), 0) == []


class TestDungeonGrid:
    def test_walls(self):
        grid = DungeonGrid(5, 5)
        grid.add_walls([(2, 2)])
        assert grid.is_wall(2, 2)
        assert not grid.is_passable(2, 2)
        assert grid.is_passable(1, 1)

    def test_out_of_bounds(self):
        grid = DungeonGrid(5, 5)
        assert not grid.is_passable(-1, 0)
        with pytest.raises(ValueError):
            grid.is_wall(5, 0)

    def test_occupancy_follows_roster(self):
        rat = _make_creature("r1", (1, 1))
        grid = DungeonGrid(5, 5, {"r1": rat})
        assert grid.get_occupant_at(1, 1) is rat
        rat.position = (2, 1)
        assert grid.get_occupant_at(1, 1) is None
        assert grid.get_occupant_at(2, 1) is rat

    def test_dead_creatures_do_not_occupy(self):
        corpse = _make_creature("r1", (1, 1), alive=False)
        grid = DungeonGrid(5, 5, {"r1": corpse})
        assert grid.get_occupant_at(1, 1) is None

    def test_occupants_in_radius(self):
        roster = {
            "a": _make_creature("a", (0, 0)),
            "b": _make_creature("b", (2, 0)),
            "c": _make_creature("c", (4, 4)),
        }
        grid = DungeonGrid(6, 6, roster)
        found = {c.id for c in grid.get_occupants_in_radius(0, 0, 2)}
        assert found == {"a", "b"}


class TestLineOfSight:
    def test_clear(self):
        grid = DungeonGrid(10, 10)
        assert grid.has_line_of_sight((0, 0), (5, 5))

    def test_blocked_by_wall(self):
        grid = DungeonGrid(10, 10)
        grid.add_walls([(2, 0)])
        assert not grid.has_line_of_sight((0, 0), (4, 0))

    def test_endpoints_do_not_block(self):
        grid = DungeonGrid(10, 10)
        grid.add_walls([(4, 0)])
        assert grid.has_line_of_sight((0, 0), (4, 0))

    def test_off_map_raises(self):
        grid = DungeonGrid(5, 5)
        with pytest.raises(ValueError):
            grid.has_line_of_sight((0, 0), (9, 9))


class TestSafeWrappers:
    """A collaborator that cannot answer is treated conservatively."""

    def test_off_map_line_of_sight_is_not_visible(self):
        grid = DungeonGrid(5, 5)
        assert safe_line_of_sight(grid, (0, 0), (9, 9)) is False

    def test_broken_collaborator(self):
        spatial = _BrokenSpatial()
        assert safe_line_of_sight(spatial, (0, 0), (1, 1)) is False
        assert safe_is_passable(spatial, 0, 0) is False
        assert valid_position(spatial, 0, 0) is False
        assert safe_occupant_at(spatial, 0, 0) is None

    def test_valid_position(self):
        grid = DungeonGrid(5, 5)
        grid.add_walls([(1, 1)])
        assert valid_position(grid, 1, 1)
        assert valid_position(grid, 4, 4)
        assert not valid_position(grid, 5, 0)

    def test_failures_reported_to_a_sink(self, monkeypatch):
        monkeypatch.setattr(notices, "DEBUG_NOTICES", True)
        log = NoticeLog()
        grid = DungeonGrid(5, 5)
        assert safe_line_of_sight(grid, (0, 0), (9, 9), sink=log) is False
        assert valid_position(grid, -1, 2, sink=log) is False
        reported = log.of_kind(NoticeKind.INVALID_INPUT)
        assert len(reported) == 2
        assert reported[1].details == {"x": -1, "y": 2}
