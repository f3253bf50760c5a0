"""
Configuration file for the 2048 Learning Agent
===============================================

All hyperparameters, board settings, reward weights and loop timing are
centralized here. Modify these values to experiment with different training
configurations.

Usage:
    from config import Config
    cfg = Config()
    print(cfg.LEARNING_RATE)
"""

from dataclasses import dataclass, field, replace, asdict
from typing import List, Optional, Dict, Any
import torch


# Board is GRID_SIZE x GRID_SIZE. Heuristic normalizations assume the 4x4 board.
GRID_SIZE = 4


@dataclass(frozen=True)
class RewardWeights:
    """
    Weights applied to the heuristic sub-scores of the composite reward.

    Passed around by value: create a new instance (or use ``replace``)
    instead of mutating an existing one.
    """
    merge_bonus: float = 1.0
    empty_tiles: float = 2.7
    monotonicity: float = 1.0
    corner_bonus: float = 3.0
    smoothness: float = 1.0
    max_tile_bonus: float = 1.0
    game_over_penalty: float = -10.0

    def __post_init__(self):
        for name in ('merge_bonus', 'empty_tiles', 'monotonicity', 'corner_bonus',
                     'smoothness', 'max_tile_bonus'):
            assert getattr(self, name) >= 0, f"{name} must be non-negative"
        assert self.game_over_penalty <= 0, "game_over_penalty must be non-positive"

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RewardWeights':
        return cls(**{k: float(v) for k, v in data.items() if k in cls.__dataclass_fields__})


# Default weights (tuned by hand against typical single-step heuristic sums)
REWARD_WEIGHTS = RewardWeights()


@dataclass(frozen=True)
class DQNConfig:
    """
    Agent hyperparameters accepted by the training loop's INIT message.

    Any field left as None keeps the value from the base Config.
    """
    memory_capacity: Optional[int] = None
    batch_size: Optional[int] = None
    gamma: Optional[float] = None
    epsilon_start: Optional[float] = None
    epsilon_min: Optional[float] = None
    epsilon_decay_steps: Optional[int] = None
    target_update_frequency: Optional[int] = None


# DQNConfig field -> Config attribute
_DQN_FIELDS = {
    'memory_capacity': 'MEMORY_SIZE',
    'batch_size': 'BATCH_SIZE',
    'gamma': 'GAMMA',
    'epsilon_start': 'EPSILON_START',
    'epsilon_min': 'EPSILON_END',
    'epsilon_decay_steps': 'EPSILON_DECAY_STEPS',
    'target_update_frequency': 'TARGET_UPDATE',
}


@dataclass
class Config:
    """
    Central configuration for the entire project.

    Sections:
    1. Board Settings - Grid and tile spawning
    2. Neural Network - Architecture configuration
    3. Training - Learning hyperparameters
    4. Exploration - Epsilon-greedy settings
    5. Lookahead - Heuristic search settings
    6. Training Loop - Scheduling, reporting, persistence
    7. System - Hardware and paths
    """

    # =========================================================================
    # BOARD SETTINGS
    # =========================================================================

    # Probability that a spawned tile is a 2 (otherwise a 4)
    SPAWN_TWO_PROBABILITY: float = 0.9

    # Tiles on a fresh board
    INITIAL_TILES: int = 2

    # =========================================================================
    # NEURAL NETWORK ARCHITECTURE
    # =========================================================================

    # One-hot channels per cell: tile values 2^1 .. 2^17
    NUM_CHANNELS: int = 17

    @property
    def STATE_SIZE(self) -> int:
        """Calculate input layer size from the board encoding."""
        return self.NUM_CHANNELS * GRID_SIZE * GRID_SIZE

    # Action space: UP, DOWN, LEFT, RIGHT
    ACTION_SIZE: int = 4

    # Network type: 'conv' (2x2 convolutions over the board) or 'mlp'
    NETWORK_TYPE: str = 'conv'

    # Convolution filters (conv network only)
    CONV_FILTERS: List[int] = field(default_factory=lambda: [32, 64])

    # Hidden layer architecture (dense head of the conv net, or the full MLP)
    HIDDEN_LAYERS: List[int] = field(default_factory=lambda: [256])

    # Activation function: 'relu', 'leaky_relu', 'tanh', 'elu'
    ACTIVATION: str = 'relu'

    # =========================================================================
    # TRAINING HYPERPARAMETERS
    # =========================================================================

    # Adam learning rate
    LEARNING_RATE: float = 1e-4

    # Discount factor (gamma) for Bellman targets
    GAMMA: float = 0.99

    # Transitions per training step
    BATCH_SIZE: int = 64

    # Replay memory capacity
    MEMORY_SIZE: int = 50_000

    # Hard copy policy -> target network every N gradient steps
    TARGET_UPDATE: int = 500

    # Gradient clipping (0 disables)
    GRAD_CLIP: float = 0.0

    # =========================================================================
    # EXPLORATION SETTINGS (Epsilon-Greedy)
    # =========================================================================

    # Starting exploration rate (1.0 = 100% random)
    EPSILON_START: float = 1.0

    # Floor the agent never decays below (keeps lifelong exploration)
    EPSILON_END: float = 0.05

    # Gradient steps over which epsilon is linearly annealed to EPSILON_END
    EPSILON_DECAY_STEPS: int = 50_000

    # =========================================================================
    # LOOKAHEAD SEARCH
    # =========================================================================

    # Moves simulated ahead per candidate action
    LOOKAHEAD_DEPTH: int = 6

    # Discount per depth level
    LOOKAHEAD_DISCOUNT: float = 0.9

    # Weight of lookahead scores when blended with Q-values (0 = pure DQN)
    LOOKAHEAD_WEIGHT: float = 0.6

    # Steps of pure lookahead play before blending in the network
    DEMO_PHASE_STEPS: int = 2000

    # =========================================================================
    # TRAINING LOOP
    # =========================================================================

    # Move delay bounds (ms); the delay grows as the board fills up
    MOVE_INTERVAL_MIN_MS: int = 5
    MOVE_INTERVAL_MAX_MS: int = 500

    # Display updates in speed mode are throttled to one per interval
    SPEED_MODE_DISPLAY_INTERVAL_MS: int = 500

    # Auto-save the policy network every N loop steps (0 disables)
    AUTOSAVE_EVERY: int = 1000

    # Key used when SAVE_MODEL / LOAD_MODEL carry no key
    MODEL_KEY: str = '2048-dqn-policy'

    # Number of episodes kept in training metrics
    PLOT_HISTORY_LENGTH: int = 1000

    # =========================================================================
    # SYSTEM SETTINGS
    # =========================================================================

    # Force CPU device (small models are faster on CPU)
    FORCE_CPU: bool = False

    # Device selection
    @property
    def DEVICE(self) -> torch.device:
        """Auto-detect CUDA/MPS/CPU, or force CPU if configured."""
        if self.FORCE_CPU:
            return torch.device('cpu')
        if torch.cuda.is_available():
            return torch.device('cuda')
        elif hasattr(torch.backends, 'mps') and torch.backends.mps.is_available():
            return torch.device('mps')
        return torch.device('cpu')

    # Paths
    MODEL_DIR: str = 'models'
    LOG_DIR: str = 'logs'

    # Random seed for reproducibility (None for random)
    SEED: Optional[int] = None

    def __post_init__(self):
        """Validation and derived calculations."""
        assert 0 <= self.SPAWN_TWO_PROBABILITY <= 1, "Spawn probability must be in [0, 1]"
        assert self.NETWORK_TYPE in ('conv', 'mlp'), "NETWORK_TYPE must be 'conv' or 'mlp'"
        assert self.LEARNING_RATE > 0, "Learning rate must be positive"
        assert 0 < self.GAMMA <= 1, "Gamma must be in (0, 1]"
        assert self.BATCH_SIZE > 0, "Batch size must be positive"
        assert self.BATCH_SIZE <= self.MEMORY_SIZE, "Batch size must not exceed memory size"
        assert self.TARGET_UPDATE > 0, "Target update frequency must be positive"
        assert self.EPSILON_START >= self.EPSILON_END, "Epsilon start must be >= end"
        assert self.EPSILON_END >= 0, "Epsilon floor must be non-negative"
        assert self.EPSILON_DECAY_STEPS > 0, "Epsilon decay steps must be positive"
        assert self.LOOKAHEAD_DEPTH >= 0, "Lookahead depth must be non-negative"
        assert 0 < self.LOOKAHEAD_DISCOUNT < 1, "Lookahead discount must be in (0, 1)"
        assert 0 <= self.LOOKAHEAD_WEIGHT <= 1, "Lookahead weight must be in [0, 1]"
        assert self.MOVE_INTERVAL_MIN_MS <= self.MOVE_INTERVAL_MAX_MS, "Move interval bounds inverted"

    def with_dqn(self, dqn: Optional[DQNConfig]) -> 'Config':
        """Return a copy with the non-None fields of ``dqn`` applied."""
        if dqn is None:
            return replace(self)
        overrides = {
            attr: getattr(dqn, name)
            for name, attr in _DQN_FIELDS.items()
            if getattr(dqn, name) is not None
        }
        return replace(self, **overrides)


# Global config instance for easy importing
config = Config()


if __name__ == "__main__":
    # Print configuration summary
    cfg = Config()
    print("=" * 60)
    print("2048 Learning Agent - Configuration Summary")
    print("=" * 60)
    print(f"\nBoard: {GRID_SIZE}x{GRID_SIZE}")
    print(f"\nNeural Network ({cfg.NETWORK_TYPE}):")
    print(f"   Input size: {cfg.STATE_SIZE}")
    print(f"   Hidden layers: {cfg.HIDDEN_LAYERS}")
    print(f"   Output size: {cfg.ACTION_SIZE}")
    print(f"\nTraining:")
    print(f"   Learning rate: {cfg.LEARNING_RATE}")
    print(f"   Batch size: {cfg.BATCH_SIZE}")
    print(f"   Gamma: {cfg.GAMMA}")
    print(f"\nExploration:")
    print(f"   Epsilon: {cfg.EPSILON_START} -> {cfg.EPSILON_END} over {cfg.EPSILON_DECAY_STEPS} steps")
    print(f"\nLookahead: depth={cfg.LOOKAHEAD_DEPTH}, discount={cfg.LOOKAHEAD_DISCOUNT}")
    print(f"\nDevice: {cfg.DEVICE}")
    print("=" * 60)
