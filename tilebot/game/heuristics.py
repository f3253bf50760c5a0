"""
Heuristic Model
===============

Hand-crafted board evaluation used both as the lookahead's leaf value and as
the shaped reward the DQN learns from.

Sub-scores (each in [0, 1]):
    1. Monotonicity  - values trend consistently along rows and columns
    2. Corner bonus  - the largest tile sits in a corner
    3. Smoothness    - neighbouring tiles are close in value
    4. Max tile      - log2 of the largest tile
    5. Empty cells   - fraction of the board left free

Normalizations assume a 4x4 board whose tiles never exceed 2^17.
"""

import math
from typing import Iterable, List, Optional, Sequence

from .board import Tile, board_key, count_empty_cells, tiles_to_grid

import sys
sys.path.append('../..')
from config import GRID_SIZE, RewardWeights, REWARD_WEIGHTS


# Largest exponent a tile can reach on a 4x4 board
MAX_EXPONENT = 17

# 8 lines (4 rows + 4 columns), at most 15 log2 steps each
MONOTONICITY_NORMALIZER = 120.0

# 24 adjacent pairs, at most 15 log2 steps each
SMOOTHNESS_NORMALIZER = 360.0

STAGNATION_PENALTY = -0.5

CORNERS = (
    (0, 0),
    (GRID_SIZE - 1, 0),
    (0, GRID_SIZE - 1),
    (GRID_SIZE - 1, GRID_SIZE - 1),
)


def _log2(value: int) -> float:
    """log2 of a tile value, treating empty cells as 1."""
    return math.log2(value or 1)


def _lines(grid: List[List[int]]) -> List[List[int]]:
    """All rows followed by all columns."""
    columns = [[grid[r][c] for r in range(GRID_SIZE)] for c in range(GRID_SIZE)]
    return grid + columns


def calculate_monotonicity(tiles: Iterable[Tile]) -> float:
    """
    Monotonicity score in [0, 1].

    For each row and column the log2 increases and decreases between
    consecutive cells are summed separately; the larger of the two counts.
    """
    score = 0.0
    for line in _lines(tiles_to_grid(tiles)):
        inc = dec = 0.0
        for cur_value, next_value in zip(line, line[1:]):
            cur = _log2(cur_value)
            nxt = _log2(next_value)
            if cur <= nxt:
                inc += nxt - cur
            if cur >= nxt:
                dec += cur - nxt
        score += max(inc, dec)
    return score / MONOTONICITY_NORMALIZER


def calculate_corner_bonus(tiles: Iterable[Tile]) -> float:
    """log2(max) / 17 when a max-valued tile occupies a corner, else 0."""
    active = [t for t in tiles if t.merged_into is None]
    if not active:
        return 0.0
    max_value = max(t.value for t in active)
    in_corner = any(t.value == max_value and (t.x, t.y) in CORNERS for t in active)
    return math.log2(max_value) / MAX_EXPONENT if in_corner else 0.0


def calculate_smoothness(tiles: Iterable[Tile]) -> float:
    """
    Smoothness score in [0, 1].

    One minus the summed log2 difference of every orthogonally adjacent pair
    of occupied cells, normalized. An empty board is perfectly smooth.
    """
    grid = tiles_to_grid(tiles)
    total = 0.0
    for y in range(GRID_SIZE):
        for x in range(GRID_SIZE):
            value = grid[y][x]
            if not value:
                continue
            if x + 1 < GRID_SIZE and grid[y][x + 1]:
                total += abs(math.log2(value) - math.log2(grid[y][x + 1]))
            if y + 1 < GRID_SIZE and grid[y + 1][x]:
                total += abs(math.log2(value) - math.log2(grid[y + 1][x]))
    return max(0.0, 1.0 - total / SMOOTHNESS_NORMALIZER)


def calculate_max_tile_bonus(tiles: Iterable[Tile]) -> float:
    """log2(max) / 17, 0 on an empty board."""
    max_value = max((t.value for t in tiles if t.merged_into is None), default=0)
    if max_value <= 0:
        return 0.0
    return math.log2(max_value) / MAX_EXPONENT


def empty_fraction(tiles: Iterable[Tile]) -> float:
    return count_empty_cells(tiles) / (GRID_SIZE * GRID_SIZE)


def board_heuristic_value(tiles: Sequence[Tile], weights: Optional[RewardWeights] = None) -> float:
    """
    Weighted sum of the five sub-scores.

    Excludes the merge bonus, stagnation penalty and game-over penalty, so it
    depends on the board alone. This is the lookahead's evaluation function.
    """
    w = weights or REWARD_WEIGHTS
    return (
        calculate_monotonicity(tiles) * w.monotonicity
        + calculate_corner_bonus(tiles) * w.corner_bonus
        + calculate_smoothness(tiles) * w.smoothness
        + calculate_max_tile_bonus(tiles) * w.max_tile_bonus
        + empty_fraction(tiles) * w.empty_tiles
    )


def merge_bonus(score_delta: float, weights: Optional[RewardWeights] = None) -> float:
    """log2(delta) / 17, weighted. Zero for non-positive deltas."""
    w = weights or REWARD_WEIGHTS
    if score_delta <= 0:
        return 0.0
    return math.log2(score_delta) / MAX_EXPONENT * w.merge_bonus


def calculate_reward(
    prev_tiles: Sequence[Tile],
    next_tiles: Sequence[Tile],
    prev_score: float,
    next_score: float,
    weights: Optional[RewardWeights] = None,
    done: bool = False,
) -> float:
    """
    Composite reward for one transition.

    Args:
        prev_tiles: Board before the move
        next_tiles: Board after the move (and spawn)
        prev_score: Score before the move
        next_score: Score after the move
        weights: Reward weights (defaults to REWARD_WEIGHTS)
        done: Whether the move ended the game

    Returns:
        Merge bonus + weighted board sub-scores + stagnation penalty
        + game-over penalty
    """
    w = weights or REWARD_WEIGHTS

    reward = merge_bonus(next_score - prev_score, w)
    reward += board_heuristic_value(next_tiles, w)

    # Wasted move: the active tile set did not change
    if board_key(prev_tiles) == board_key(next_tiles):
        reward += STAGNATION_PENALTY

    if done:
        reward += w.game_over_penalty

    return reward


def is_game_over(tiles: Iterable[Tile]) -> bool:
    """
    True when the board is full and no two orthogonal neighbours match.
    """
    grid = tiles_to_grid(tiles)
    for y in range(GRID_SIZE):
        for x in range(GRID_SIZE):
            if not grid[y][x]:
                return False
    for y in range(GRID_SIZE):
        for x in range(GRID_SIZE):
            value = grid[y][x]
            if x + 1 < GRID_SIZE and grid[y][x + 1] == value:
                return False
            if y + 1 < GRID_SIZE and grid[y + 1][x] == value:
                return False
    return True
