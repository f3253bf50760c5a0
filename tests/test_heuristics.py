"""
Tests for the heuristic model.

These tests verify:
    - Each sub-score on hand-computed boards
    - Composite reward components (merge bonus, stagnation, game over)
    - Game-over detection
"""

import math

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import RewardWeights, REWARD_WEIGHTS
from tilebot.game.board import Tile, tiles_from_grid
from tilebot.game.heuristics import (
    calculate_monotonicity, calculate_corner_bonus, calculate_smoothness,
    calculate_max_tile_bonus, empty_fraction, board_heuristic_value,
    calculate_reward, merge_bonus, is_game_over, STAGNATION_PENALTY,
)

EMPTY_ROWS = [[0, 0, 0, 0]] * 3

CHECKERBOARD = [[2, 4, 2, 4], [4, 2, 4, 2], [2, 4, 2, 4], [4, 2, 4, 2]]


class TestSubScores:
    """Test the individual board scores."""

    def test_empty_board(self):
        assert calculate_monotonicity([]) == 0.0
        assert calculate_corner_bonus([]) == 0.0
        assert calculate_smoothness([]) == 1.0
        assert calculate_max_tile_bonus([]) == 0.0
        assert empty_fraction([]) == 1.0

    def test_monotonicity_single_row(self):
        # Row: inc 3. Columns: each drops from log2(v) to 0, giving 1+2+3+4.
        tiles = tiles_from_grid([[2, 4, 8, 16]] + EMPTY_ROWS)
        assert calculate_monotonicity(tiles) == pytest.approx(13 / 120)

    def test_monotonicity_in_unit_range(self):
        tiles = tiles_from_grid([[2 ** 15, 2 ** 14, 2 ** 13, 2 ** 12],
                                 [2 ** 8, 2 ** 9, 2 ** 10, 2 ** 11],
                                 [2 ** 7, 2 ** 6, 2 ** 5, 2 ** 4],
                                 [2, 4, 8, 16]])
        assert 0.0 <= calculate_monotonicity(tiles) <= 1.0

    def test_corner_bonus(self):
        assert calculate_corner_bonus([Tile(1, 0, 0, 8)]) == pytest.approx(3 / 17)
        assert calculate_corner_bonus([Tile(1, 3, 3, 8), Tile(2, 1, 1, 2)]) == pytest.approx(3 / 17)
        assert calculate_corner_bonus([Tile(1, 1, 1, 8), Tile(2, 0, 0, 2)]) == 0.0

    def test_smoothness_adjacent_pair(self):
        tiles = [Tile(1, 0, 0, 2), Tile(2, 1, 0, 8)]
        assert calculate_smoothness(tiles) == pytest.approx(1 - 2 / 360)

    def test_smoothness_ignores_non_adjacent(self):
        tiles = [Tile(1, 0, 0, 2), Tile(2, 2, 0, 1024)]
        assert calculate_smoothness(tiles) == 1.0

    def test_max_tile_bonus(self):
        assert calculate_max_tile_bonus([Tile(1, 2, 2, 16)]) == pytest.approx(4 / 17)

    def test_ghosts_ignored(self):
        tiles = [Tile(1, 0, 0, 4), Tile(2, 0, 0, 2, merged_into=1)]
        assert empty_fraction(tiles) == 15 / 16
        assert calculate_max_tile_bonus(tiles) == pytest.approx(2 / 17)

    def test_heuristic_value_is_weighted_sum(self):
        tiles = tiles_from_grid([[16, 8, 0, 0], [2, 0, 0, 0]] + EMPTY_ROWS[:2])
        w = REWARD_WEIGHTS
        expected = (
            calculate_monotonicity(tiles) * w.monotonicity
            + calculate_corner_bonus(tiles) * w.corner_bonus
            + calculate_smoothness(tiles) * w.smoothness
            + calculate_max_tile_bonus(tiles) * w.max_tile_bonus
            + empty_fraction(tiles) * w.empty_tiles
        )
        assert board_heuristic_value(tiles) == pytest.approx(expected)


class TestReward:
    """Test the composite reward."""

    @pytest.fixture
    def boards(self):
        prev = tiles_from_grid([[2, 2, 0, 0]] + EMPTY_ROWS)
        nxt = tiles_from_grid([[4, 0, 0, 0], [0, 0, 0, 2]] + EMPTY_ROWS[:2])
        return prev, nxt

    def test_merge_bonus(self):
        assert merge_bonus(0) == 0.0
        assert merge_bonus(-4) == 0.0
        assert merge_bonus(4) == pytest.approx(2 / 17)

    def test_merge_component_increases_with_delta(self, boards):
        prev, nxt = boards
        rewards = [calculate_reward(prev, nxt, 0, delta) for delta in (0, 4, 8, 64)]
        assert rewards == sorted(rewards)
        assert len(set(rewards)) == len(rewards)

    def test_reward_components(self, boards):
        prev, nxt = boards
        expected = merge_bonus(4) + board_heuristic_value(nxt)
        assert calculate_reward(prev, nxt, 0, 4) == pytest.approx(expected)

    def test_stagnation_penalty(self, boards):
        _, nxt = boards
        reward = calculate_reward(nxt, nxt, 10, 10)
        assert reward == pytest.approx(board_heuristic_value(nxt) + STAGNATION_PENALTY)

    def test_game_over_penalty(self, boards):
        prev, nxt = boards
        w = RewardWeights(game_over_penalty=-7.0)
        alive = calculate_reward(prev, nxt, 0, 4, w, done=False)
        dead = calculate_reward(prev, nxt, 0, 4, w, done=True)
        assert dead - alive == pytest.approx(-7.0)

    def test_weights_applied(self, boards):
        prev, nxt = boards
        only_empty = RewardWeights(merge_bonus=0, empty_tiles=1.0, monotonicity=0,
                                   corner_bonus=0, smoothness=0, max_tile_bonus=0)
        assert calculate_reward(prev, nxt, 0, 4, only_empty) == pytest.approx(14 / 16)

    def test_negative_weights_rejected(self):
        with pytest.raises(AssertionError):
            RewardWeights(empty_tiles=-1.0)
        with pytest.raises(AssertionError):
            RewardWeights(game_over_penalty=1.0)


class TestGameOver:
    """Test game-over detection."""

    def test_board_with_empty_cell(self):
        grid = [row[:] for row in CHECKERBOARD]
        grid[2][1] = 0
        assert not is_game_over(tiles_from_grid(grid))

    def test_checkerboard_is_over(self):
        assert is_game_over(tiles_from_grid(CHECKERBOARD))

    def test_full_board_of_twos_is_not_over(self):
        assert not is_game_over(tiles_from_grid([[2] * 4 for _ in range(4)]))

    def test_vertical_pair_keeps_game_alive(self):
        grid = [row[:] for row in CHECKERBOARD]
        grid[1][3] = 4  # matches grid[0][3]
        assert not is_game_over(tiles_from_grid(grid))

    def test_empty_board(self):
        assert not is_game_over([])
