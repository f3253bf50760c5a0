"""
Tests for the lookahead search.

These tests verify:
    - No-op moves always score -inf
    - Scores match the recursive definition at shallow depths
    - Direction bias and chain-tail detection
    - Action selection from scores
"""

import math

import pytest
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Config
from tilebot.game.board import Direction, Tile, active_tiles, is_noop, tilt, tiles_from_grid
from tilebot.game.heuristics import board_heuristic_value
from tilebot.ai.lookahead import (
    DIRECTION_BIAS, LOOKAHEAD_DISCOUNT, LookaheadSearch, compute_direction_bias,
    compute_lookahead_scores, find_chain_tail, lookahead_value, select_lookahead_action,
)

NEG_INF = float('-inf')

CHECKERBOARD = [[2, 4, 2, 4], [4, 2, 4, 2], [2, 4, 2, 4], [4, 2, 4, 2]]


class TestScores:
    """Test per-direction scores."""

    def test_stuck_board_scores_all_neg_inf(self):
        scores = compute_lookahead_scores(tiles_from_grid(CHECKERBOARD), depth=2)
        assert scores == [NEG_INF] * 4

    def test_noop_directions_neg_inf(self):
        tiles = [Tile(1, 0, 0, 2)]
        scores = compute_lookahead_scores(tiles, depth=2)
        assert scores[Direction.UP] == NEG_INF
        assert scores[Direction.LEFT] == NEG_INF
        assert math.isfinite(scores[Direction.DOWN])
        assert math.isfinite(scores[Direction.RIGHT])

    @pytest.mark.parametrize("depth", [1, 2, 3])
    def test_never_finite_for_noop(self, depth):
        tiles = tiles_from_grid([[2, 4, 8, 16], [0, 0, 0, 0], [0, 0, 0, 0], [0, 0, 0, 2]])
        scores = compute_lookahead_scores(tiles, depth=depth)
        for direction, score in zip(Direction, scores):
            noop = is_noop(tiles, tilt(direction, tiles))
            assert math.isfinite(score) != noop

    def test_depth_one_score(self):
        tiles = [Tile(1, 0, 0, 2)]
        nxt = active_tiles(tilt(Direction.RIGHT, tiles))
        h = board_heuristic_value(nxt)
        bias = compute_direction_bias(tiles)
        expected = h + LOOKAHEAD_DISCOUNT * h + bias[Direction.RIGHT]
        assert compute_lookahead_scores(tiles, depth=1)[Direction.RIGHT] == pytest.approx(expected)

    def test_lookahead_value_depth_zero_is_heuristic(self):
        tiles = tiles_from_grid([[4, 2, 0, 0]] + [[0] * 4] * 3)
        assert lookahead_value(tiles, 0) == pytest.approx(board_heuristic_value(tiles))

    def test_lookahead_value_stuck_board(self):
        tiles = tiles_from_grid(CHECKERBOARD)
        assert lookahead_value(tiles, 3) == pytest.approx(board_heuristic_value(tiles))

    def test_ghosts_stripped(self):
        tiles = [Tile(1, 0, 0, 4), Tile(2, 0, 0, 2, merged_into=1)]
        assert compute_lookahead_scores(tiles, depth=2) == compute_lookahead_scores([tiles[0]], depth=2)


class TestDirectionBias:
    """Test the funnel bias."""

    def test_empty_board_prefers_left_and_up(self):
        assert compute_direction_bias([]) == [DIRECTION_BIAS, 0.0, DIRECTION_BIAS, 0.0]

    def test_chain_tail_on_bottom_prefers_down(self):
        tiles = [Tile(1, 0, 2, 8), Tile(2, 0, 3, 4)]
        assert compute_direction_bias(tiles) == [0.0, DIRECTION_BIAS, DIRECTION_BIAS, 0.0]

    def test_chain_tail_elsewhere_prefers_up(self):
        tiles = [Tile(1, 0, 3, 8), Tile(2, 1, 3, 4), Tile(3, 1, 2, 2)]
        assert compute_direction_bias(tiles) == [DIRECTION_BIAS, 0.0, DIRECTION_BIAS, 0.0]

    def test_find_chain_tail(self):
        tiles = [Tile(1, 0, 0, 16), Tile(2, 1, 0, 8), Tile(3, 2, 0, 4), Tile(4, 2, 1, 2)]
        tail = find_chain_tail(tiles)
        assert tail.id == 4

    def test_chain_stops_without_half_neighbour(self):
        tiles = [Tile(1, 0, 0, 16), Tile(2, 2, 0, 8)]
        assert find_chain_tail(tiles).id == 1

    def test_chain_tail_empty_board(self):
        assert find_chain_tail([]) is None


class TestSelection:
    """Test action selection."""

    def test_picks_max_finite(self):
        assert select_lookahead_action([NEG_INF, 1.0, 3.0, 2.0]) == 2

    def test_all_neg_inf_defaults_to_zero(self):
        assert select_lookahead_action([NEG_INF] * 4) == 0

    def test_first_max_wins_ties(self):
        assert select_lookahead_action([1.0, 5.0, 5.0, NEG_INF]) == 1

    def test_search_never_picks_noop(self):
        search = LookaheadSearch(depth=2)
        tiles = [Tile(1, 0, 0, 2), Tile(2, 0, 1, 4)]
        action = search.select_action(tiles)
        assert not is_noop(tiles, tilt(Direction(action), tiles))

    def test_from_config(self):
        search = LookaheadSearch.from_config(Config(LOOKAHEAD_DEPTH=3, LOOKAHEAD_DISCOUNT=0.5))
        assert search.depth == 3
        assert search.discount == 0.5
