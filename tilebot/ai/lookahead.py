"""
Lookahead Search
================

Bounded-depth search over tilts, scoring each candidate move by the
heuristic value of the boards it leads to.

    score(a) = H(next) + discount * value(next, depth - 1) + bias[a]

    value(board, d) = H(board)                              if d == 0
                    = max over moves m of                   otherwise
                        H(m(board)) + discount * value(m(board), d - 1)

Spawns are not simulated, so the search is deterministic. Moves that leave
the board unchanged score -inf and are skipped inside the recursion. Subtrees
reached by different move orders are evaluated independently.

A fixed bias steers ties toward a "funnel" strategy: LEFT is always
preferred, together with UP, or DOWN when the tail of the descending chain
from the largest tile sits on the bottom row.
"""

import math
from typing import List, Optional, Sequence

from ..game.board import ACTIONS, Tile, active_tiles, board_key, tilt
from ..game.heuristics import board_heuristic_value

import sys
sys.path.append('../..')
from config import Config, GRID_SIZE, RewardWeights, REWARD_WEIGHTS


LOOKAHEAD_DEPTH = 6
LOOKAHEAD_DISCOUNT = 0.9
LOOKAHEAD_WEIGHT = 0.6

# Calibrated against typical single-step heuristic sums (about 14 at most)
DIRECTION_BIAS = 5.0

NEG_INF = float('-inf')


def find_chain_tail(tiles: Sequence[Tile]) -> Optional[Tile]:
    """
    Walk the descending chain from the largest tile.

    Each step moves to an orthogonally adjacent tile of exactly half the
    current value. Returns the last tile reached, or None on an empty board.
    """
    active = active_tiles(tiles)
    if not active:
        return None
    max_value = max(t.value for t in active)
    current = next(t for t in active if t.value == max_value)
    visited = {current.id}

    while current.value // 2 >= 2:
        target = current.value // 2
        step = next(
            (t for t in active
             if t.id not in visited
             and t.value == target
             and abs(t.x - current.x) + abs(t.y - current.y) == 1),
            None,
        )
        if step is None:
            break
        visited.add(step.id)
        current = step
    return current


def compute_direction_bias(tiles: Sequence[Tile]) -> List[float]:
    """
    Per-action bias, indexed like ACTIONS (UP, DOWN, LEFT, RIGHT).

    LEFT always gets DIRECTION_BIAS. UP gets it as well, unless the chain
    tail is on the bottom row, in which case DOWN gets it instead.
    """
    bias = [0.0] * len(ACTIONS)
    bias[2] = DIRECTION_BIAS

    tail = find_chain_tail(tiles)
    if tail is not None and tail.y == GRID_SIZE - 1:
        bias[1] = DIRECTION_BIAS
    else:
        bias[0] = DIRECTION_BIAS
    return bias


def lookahead_value(
    tiles: List[Tile],
    depth: int,
    weights: Optional[RewardWeights] = None,
    discount: float = LOOKAHEAD_DISCOUNT,
) -> float:
    """Best discounted heuristic value reachable from ``tiles`` in ``depth`` moves."""
    w = weights or REWARD_WEIGHTS
    if depth <= 0:
        return board_heuristic_value(tiles, w)

    key = board_key(tiles)
    best = NEG_INF
    for direction in ACTIONS:
        nxt = active_tiles(tilt(direction, tiles))
        if board_key(nxt) == key:
            continue
        value = board_heuristic_value(nxt, w) + discount * lookahead_value(nxt, depth - 1, w, discount)
        if value > best:
            best = value

    # Fully stuck: fall back to the board's own value
    return board_heuristic_value(tiles, w) if best == NEG_INF else best


def compute_lookahead_scores(
    tiles: Sequence[Tile],
    depth: int = LOOKAHEAD_DEPTH,
    weights: Optional[RewardWeights] = None,
    discount: float = LOOKAHEAD_DISCOUNT,
) -> List[float]:
    """
    Score each of the four moves.

    Args:
        tiles: Current board (ghosts are ignored)
        depth: Total search depth, counting the scored move itself
        weights: Heuristic weights (defaults to REWARD_WEIGHTS)
        discount: Per-level discount

    Returns:
        Four scores indexed like ACTIONS; -inf marks a no-op move.
    """
    w = weights or REWARD_WEIGHTS
    board = active_tiles(tiles)
    key = board_key(board)
    bias = compute_direction_bias(board)

    scores = []
    for i, direction in enumerate(ACTIONS):
        nxt = active_tiles(tilt(direction, board))
        if board_key(nxt) == key:
            scores.append(NEG_INF)
            continue
        scores.append(
            board_heuristic_value(nxt, w)
            + discount * lookahead_value(nxt, depth - 1, w, discount)
            + bias[i]
        )
    return scores


def select_lookahead_action(scores: Sequence[float]) -> int:
    """Index of the highest finite score, 0 when none is finite."""
    best_index = 0
    best_score = NEG_INF
    for i, score in enumerate(scores):
        if math.isfinite(score) and score > best_score:
            best_score = score
            best_index = i
    return best_index


class LookaheadSearch:
    """
    Lookahead search bound to a depth, discount and set of weights.

    Example:
        >>> search = LookaheadSearch(depth=2)
        >>> scores = search.scores(tiles)
        >>> action = search.select_action(tiles)
    """

    def __init__(
        self,
        depth: int = LOOKAHEAD_DEPTH,
        discount: float = LOOKAHEAD_DISCOUNT,
        weights: Optional[RewardWeights] = None,
    ):
        self.depth = depth
        self.discount = discount
        self.weights = weights or REWARD_WEIGHTS

    @classmethod
    def from_config(cls, config: Config, weights: Optional[RewardWeights] = None) -> 'LookaheadSearch':
        return cls(config.LOOKAHEAD_DEPTH, config.LOOKAHEAD_DISCOUNT, weights)

    def scores(self, tiles: Sequence[Tile]) -> List[float]:
        return compute_lookahead_scores(tiles, self.depth, self.weights, self.discount)

    def select_action(self, tiles: Sequence[Tile]) -> int:
        return select_lookahead_action(self.scores(tiles))
