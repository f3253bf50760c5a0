"""
Game Session
============

Explicit state of one live 2048 game: board, score, tile id counter, random
source, reward weights and speed mode. A session is owned and mutated by a
single training loop; nothing here is shared between instances.

Flow per move:
    1. Tilt the board
    2. Detect a no-op (nothing is mutated in that case)
    3. Add the merge score and spawn one tile
    4. Check for game over and compute the shaped reward
"""

import random
from dataclasses import dataclass, field
from typing import List, Optional

from .board import (
    Direction, Tile, BoardFullError, tilt, is_noop, merge_score,
    spawn_tile, active_tiles, max_tile_value, count_empty_cells,
)
from .heuristics import calculate_reward, is_game_over

import sys
sys.path.append('../..')
from config import Config, RewardWeights, REWARD_WEIGHTS


@dataclass
class MoveResult:
    """Outcome of applying one direction to the session."""
    direction: Direction
    moved: bool
    prev_tiles: List[Tile]
    prev_score: int
    tiles: List[Tile]
    score: int
    done: bool = False
    reward: float = 0.0
    spawned: Optional[Tile] = None

    @property
    def score_gained(self) -> int:
        return self.score - self.prev_score


@dataclass
class GameSession:
    """
    One game instance.

    Attributes:
        tiles: Current board, including ghosts from the last tilt
        score: Sum of merged tile values this episode
        moves: Moves applied this episode (no-ops excluded)
        game_over: Whether the episode has ended
        weights: Reward weights used for shaping
        speed_mode: Whether the loop runs without move delays
    """
    config: Config = field(default_factory=Config)
    weights: RewardWeights = REWARD_WEIGHTS
    speed_mode: bool = False
    seed: Optional[int] = None

    tiles: List[Tile] = field(default_factory=list, init=False)
    score: int = field(default=0, init=False)
    moves: int = field(default=0, init=False)
    game_over: bool = field(default=False, init=False)
    episodes: int = field(default=0, init=False)

    def __post_init__(self):
        self.rng = random.Random(self.seed)
        self._next_id = 1

    def next_tile_id(self) -> int:
        tile_id = self._next_id
        self._next_id += 1
        return tile_id

    def reset(self) -> List[Tile]:
        """
        Start a new episode: empty the board and spawn the initial tiles.

        Returns:
            The fresh board
        """
        self.tiles = []
        self.score = 0
        self.moves = 0
        self.game_over = False
        self.episodes += 1
        for _ in range(self.config.INITIAL_TILES):
            self.tiles.append(self._spawn(self.tiles))
        return list(self.tiles)

    def _spawn(self, tiles: List[Tile]) -> Tile:
        return spawn_tile(tiles, self.next_tile_id(), self.rng,
                          self.config.SPAWN_TWO_PROBABILITY)

    @property
    def active(self) -> List[Tile]:
        return active_tiles(self.tiles)

    @property
    def max_tile(self) -> int:
        return max_tile_value(self.tiles)

    @property
    def empty_count(self) -> int:
        return count_empty_cells(self.tiles)

    def apply(self, direction: Direction) -> MoveResult:
        """
        Apply one move.

        A no-op tilt leaves the session untouched and returns
        ``moved=False``. Otherwise the merge score is added, one tile is
        spawned and the reward is computed against the pre-move snapshot.

        Raises:
            BoardFullError: If no cell is free for the spawned tile. The
                session is left unchanged.
        """
        direction = Direction(direction)
        prev_tiles = self.active
        prev_score = self.score

        tilted = tilt(direction, prev_tiles)
        if is_noop(prev_tiles, tilted):
            return MoveResult(direction, False, prev_tiles, prev_score,
                              list(self.tiles), prev_score)

        score = prev_score + merge_score(tilted)
        spawned = self._spawn(tilted)
        tiles = tilted + [spawned]
        done = is_game_over(tiles)
        reward = calculate_reward(prev_tiles, tiles, prev_score, score,
                                  self.weights, done)

        self.tiles = tiles
        self.score = score
        self.moves += 1
        self.game_over = done
        return MoveResult(direction, True, prev_tiles, prev_score, list(tiles),
                          score, done, reward, spawned)


__all__ = ['GameSession', 'MoveResult', 'BoardFullError']
