"""
Tests for the board engine.

These tests verify:
    - Sliding toward each wall
    - Merging (once per tile per tilt) and ghost tiles
    - No-op detection
    - Tile spawning
"""

import random

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from tilebot.game.board import (
    Tile, Direction, BoardFullError, ACTIONS, tilt, is_noop, board_key,
    active_tiles, empty_cells, count_empty_cells, merge_score, max_tile_value,
    spawn_tile, tiles_from_grid, tiles_to_grid,
)


def grid_after(direction, grid):
    return tiles_to_grid(tilt(direction, tiles_from_grid(grid)))


EMPTY = [[0] * 4 for _ in range(4)]


class TestDirection:
    """Test the direction enum."""

    def test_action_order(self):
        assert ACTIONS == [Direction.UP, Direction.DOWN, Direction.LEFT, Direction.RIGHT]
        assert [int(d) for d in ACTIONS] == [0, 1, 2, 3]

    def test_vectors(self):
        assert Direction.UP.vector == (0, -1)
        assert Direction.DOWN.vector == (0, 1)
        assert Direction.LEFT.vector == (-1, 0)
        assert Direction.RIGHT.vector == (1, 0)


class TestTile:
    """Test the tile value type."""

    def test_ghost_flag(self):
        assert not Tile(1, 0, 0, 2).is_ghost
        assert Tile(2, 0, 0, 2, merged_into=1).is_ghost

    def test_tiles_are_hashable_values(self):
        assert Tile(1, 2, 3, 4) == Tile(1, 2, 3, 4)
        assert len({Tile(1, 2, 3, 4), Tile(1, 2, 3, 4)}) == 1
        with pytest.raises(AttributeError):
            Tile(1, 0, 0, 2).value = 4


class TestSlide:
    """Test sliding without merges."""

    def test_single_tile_slides_left(self):
        grid = [[0, 0, 0, 2]] + EMPTY[1:]
        assert grid_after(Direction.LEFT, grid)[0] == [2, 0, 0, 0]

    def test_single_tile_slides_down(self):
        grid = [[0, 4, 0, 0]] + EMPTY[1:]
        result = grid_after(Direction.DOWN, grid)
        assert result[3][1] == 4
        assert sum(v for row in result for v in row) == 4

    def test_tiles_keep_order(self):
        grid = [[0, 2, 0, 4]] + EMPTY[1:]
        assert grid_after(Direction.LEFT, grid)[0] == [2, 4, 0, 0]
        assert grid_after(Direction.RIGHT, grid)[0] == [0, 0, 2, 4]

    def test_tile_against_wall_is_noop(self):
        tiles = [Tile(id=1, x=0, y=0, value=2)]
        assert is_noop(tiles, tilt(Direction.LEFT, tiles))
        assert is_noop(tiles, tilt(Direction.UP, tiles))

    def test_input_not_modified(self):
        tiles = tiles_from_grid([[2, 0, 2, 0]] + EMPTY[1:])
        before = list(tiles)
        tilt(Direction.LEFT, tiles)
        assert tiles == before


class TestMerge:
    """Test merging equal neighbours."""

    def test_two_tiles_merge_up(self):
        tiles = [Tile(id=1, x=0, y=0, value=2), Tile(id=2, x=0, y=1, value=2)]
        result = {t.id: t for t in tilt(Direction.UP, tiles)}

        assert result[1].merged_into == 2
        assert result[2].merged_into is None
        assert result[2].value == 4
        assert (result[2].x, result[2].y) == (0, 0)

    def test_ghost_synced_to_consumer(self):
        tiles = tiles_from_grid([[2, 2, 0, 0]] + EMPTY[1:])
        result = tilt(Direction.RIGHT, tiles)
        ghosts = [t for t in result if t.is_ghost]
        assert len(ghosts) == 1
        consumer = next(t for t in result if t.id == ghosts[0].merged_into)
        assert (ghosts[0].x, ghosts[0].y) == (consumer.x, consumer.y) == (3, 0)

    def test_row_of_four_merges_into_two_pairs(self):
        tiles = tiles_from_grid([[2, 2, 2, 2]] + EMPTY[1:])
        result = tilt(Direction.LEFT, tiles)
        assert tiles_to_grid(result)[0] == [4, 4, 0, 0]
        assert len([t for t in result if t.is_ghost]) == 2

    def test_each_tile_merges_once(self):
        assert grid_after(Direction.LEFT, [[2, 2, 4, 0]] + EMPTY[1:])[0] == [4, 4, 0, 0]
        assert grid_after(Direction.LEFT, [[4, 2, 2, 0]] + EMPTY[1:])[0] == [4, 4, 0, 0]

    def test_merge_with_gap(self):
        assert grid_after(Direction.LEFT, [[2, 0, 0, 2]] + EMPTY[1:])[0] == [4, 0, 0, 0]

    def test_unequal_tiles_do_not_merge(self):
        tiles = tiles_from_grid([[2, 4, 0, 0]] + EMPTY[1:])
        assert is_noop(tiles, tilt(Direction.LEFT, tiles))

    def test_incoming_ghosts_dropped(self):
        tiles = [
            Tile(id=1, x=0, y=0, value=4),
            Tile(id=2, x=0, y=0, value=2, merged_into=1),
        ]
        result = tilt(Direction.RIGHT, tiles)
        assert [t.id for t in result] == [1]
        assert (result[0].x, result[0].y) == (3, 0)

    def test_column_merge_down(self):
        grid = [[8, 0, 0, 0], [8, 0, 0, 0], [4, 0, 0, 0], [4, 0, 0, 0]]
        result = grid_after(Direction.DOWN, grid)
        assert [row[0] for row in result] == [0, 0, 16, 8]


class TestBoardHelpers:
    """Test keys, scores and cell queries."""

    def test_board_key_ignores_order_and_ghosts(self):
        a = [Tile(1, 0, 0, 2), Tile(2, 1, 0, 4)]
        b = [Tile(7, 1, 0, 4), Tile(8, 0, 0, 2), Tile(9, 0, 0, 2, merged_into=8)]
        assert board_key(a) == board_key(b)

    def test_is_noop_detects_value_change(self):
        before = [Tile(1, 0, 0, 2)]
        after = [Tile(1, 0, 0, 4)]
        assert not is_noop(before, after)

    def test_merge_score_is_sum_of_merged_values(self):
        tiles = tiles_from_grid([[2, 2, 4, 4]] + EMPTY[1:])
        assert merge_score(tilt(Direction.LEFT, tiles)) == 4 + 8

    def test_merge_score_zero_without_merge(self):
        tiles = tiles_from_grid([[0, 2, 0, 4]] + EMPTY[1:])
        assert merge_score(tilt(Direction.LEFT, tiles)) == 0

    def test_empty_cells(self):
        tiles = tiles_from_grid([[2, 0, 0, 0]] + EMPTY[1:])
        cells = empty_cells(tiles)
        assert len(cells) == 15
        assert (0, 0) not in cells
        assert count_empty_cells(tiles) == 15

    def test_active_tiles_and_max(self):
        tiles = [Tile(1, 0, 0, 8), Tile(2, 0, 0, 16, merged_into=1)]
        assert active_tiles(tiles) == [tiles[0]]
        assert max_tile_value(tiles) == 8
        assert max_tile_value([]) == 0

    def test_grid_round_trip(self):
        grid = [[2, 0, 4, 0], [0, 8, 0, 0], [0, 0, 0, 16], [32, 0, 0, 0]]
        assert tiles_to_grid(tiles_from_grid(grid)) == grid


class TestSpawn:
    """Test tile spawning."""

    def test_spawn_on_empty_cell(self):
        tiles = tiles_from_grid([[2, 4, 8, 16], [32, 64, 128, 256], [2, 4, 8, 16], [32, 64, 128, 0]])
        tile = spawn_tile(tiles, tile_id=99, rng=random.Random(0))
        assert (tile.x, tile.y) == (3, 3)
        assert tile.id == 99
        assert tile.value in (2, 4)

    def test_spawn_value_probability(self):
        rng = random.Random(1)
        assert spawn_tile([], 1, rng, two_probability=1.0).value == 2
        assert spawn_tile([], 2, rng, two_probability=0.0).value == 4

    def test_spawn_mostly_twos(self):
        rng = random.Random(42)
        values = [spawn_tile([], i, rng).value for i in range(1000)]
        assert 0.85 < values.count(2) / len(values) < 0.95

    def test_spawn_on_full_board_raises(self):
        full = tiles_from_grid([[2, 4, 2, 4], [4, 2, 4, 2], [2, 4, 2, 4], [4, 2, 4, 2]])
        with pytest.raises(BoardFullError):
            spawn_tile(full, 17, random.Random(0))
