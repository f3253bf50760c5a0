"""
Loop Messages
=============

Messages exchanged between a TrainingLoop and its caller.

Caller → loop (Command):
    Init, StartGame, ResetGame, StopGame, SetSpeedMode, SetRewardWeights,
    SaveModel, LoadModel

Loop → caller (Event):
    Ready, Display, GameOver, TrainResult, SaveDone, LoadDone, Error

Every message is an immutable dataclass. The loop dispatches on the exact
type; anything outside the Command union is answered with Error.
"""

from dataclasses import dataclass
from typing import Optional, Tuple, Union

from ..game.board import Tile

import sys
sys.path.append('../..')
from config import DQNConfig, RewardWeights


# =============================================================================
# Caller → loop
# =============================================================================

@dataclass(frozen=True)
class Init:
    """Create the agent. ``config`` overrides the default hyperparameters."""
    config: Optional[DQNConfig] = None


@dataclass(frozen=True)
class StartGame:
    """Start a fresh game. None keeps the current setting."""
    speed_mode: Optional[bool] = None
    reward_weights: Optional[RewardWeights] = None


@dataclass(frozen=True)
class ResetGame:
    """Discard the current game and start a fresh one."""
    speed_mode: Optional[bool] = None
    reward_weights: Optional[RewardWeights] = None


@dataclass(frozen=True)
class StopGame:
    pass


@dataclass(frozen=True)
class SetSpeedMode:
    speed_mode: bool


@dataclass(frozen=True)
class SetRewardWeights:
    weights: RewardWeights


@dataclass(frozen=True)
class SaveModel:
    """Save the policy network. None uses the configured MODEL_KEY."""
    key: Optional[str] = None


@dataclass(frozen=True)
class LoadModel:
    key: Optional[str] = None


Command = Union[Init, StartGame, ResetGame, StopGame, SetSpeedMode,
                SetRewardWeights, SaveModel, LoadModel]


# =============================================================================
# Loop → caller
# =============================================================================

@dataclass(frozen=True)
class Ready:
    """The agent is initialized. ``backend`` names the compute device."""
    backend: str


@dataclass(frozen=True)
class Display:
    """Snapshot of the board for rendering."""
    tiles: Tuple[Tile, ...]
    score: int
    game_over: bool


@dataclass(frozen=True)
class GameOver:
    score: int


@dataclass(frozen=True)
class TrainResult:
    """Loss of the step's training update, None if no update ran."""
    loss: Optional[float]


@dataclass(frozen=True)
class SaveDone:
    key: str


@dataclass(frozen=True)
class LoadDone:
    key: str
    found: bool


@dataclass(frozen=True)
class Error:
    message: str


Event = Union[Ready, Display, GameOver, TrainResult, SaveDone, LoadDone, Error]
