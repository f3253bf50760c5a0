"""
Experience Replay Buffer
========================

A memory buffer that stores board transitions for training the DQN.

Why Experience Replay?
    1. Breaks correlation between consecutive moves
       (Neural networks learn poorly from correlated data)

    2. Improves sample efficiency
       (Each transition can be used for multiple training steps)

How it works:
    1. The loop plays moves and stores (state, action, reward, next_state, done)
    2. During training, uniform random batches are sampled from the buffer
    3. Once the buffer is full, the oldest transition is overwritten (ring)

References:
    Mnih et al., 2015 - "Human-level control through deep reinforcement learning"
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class Experience:
    """One stored transition."""
    state: np.ndarray
    action: int
    reward: float
    next_state: np.ndarray
    done: bool


Batch = Tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray, np.ndarray]


class ReplayBuffer:
    """
    Fixed-size ring buffer of transitions with contiguous numpy storage.

    Optimizations:
        - Contiguous numpy arrays for all data (cache-friendly)
        - Vectorized batch extraction via numpy fancy indexing
        - Lazy initialization to support unknown state_size at creation

    Example:
        >>> buffer = ReplayBuffer(capacity=10000, state_size=272)
        >>> buffer.push(state, action, reward, next_state, done)
        >>> states, actions, rewards, next_states, dones = buffer.sample(64)
    """

    def __init__(self, capacity: int, state_size: int = 0, seed: Optional[int] = None):
        """
        Initialize the replay buffer.

        Args:
            capacity: Maximum number of transitions to store
            state_size: Size of state vector (auto-detected on first push if 0)
            seed: Seed for the sampling generator (None for random)
        """
        assert capacity > 0, "Capacity must be positive"
        self.capacity = capacity
        self._state_size = state_size
        self._size = 0
        self._position = 0  # Next write slot
        self._initialized = False
        self._rng = np.random.default_rng(seed)

        if state_size > 0:
            self._init_arrays(state_size)

    def _init_arrays(self, state_size: int) -> None:
        """Initialize contiguous storage arrays."""
        self._state_size = state_size
        self.states = np.empty((self.capacity, state_size), dtype=np.float32)
        self.actions = np.empty(self.capacity, dtype=np.int64)
        self.rewards = np.empty(self.capacity, dtype=np.float32)
        self.next_states = np.empty((self.capacity, state_size), dtype=np.float32)
        self.dones = np.empty(self.capacity, dtype=np.float32)
        self._initialized = True

    def push(
        self,
        state: np.ndarray,
        action: int,
        reward: float,
        next_state: np.ndarray,
        done: bool
    ) -> None:
        """
        Add a transition, overwriting the oldest one when full.

        Args:
            state: Encoded board before the move
            action: Direction index taken
            reward: Shaped reward received
            next_state: Encoded board after the move
            done: Whether the move ended the game
        """
        if not self._initialized:
            self._init_arrays(len(state))

        np.copyto(self.states[self._position], state)
        self.actions[self._position] = action
        self.rewards[self._position] = reward
        np.copyto(self.next_states[self._position], next_state)
        self.dones[self._position] = float(done)

        self._position = (self._position + 1) % self.capacity
        self._size = min(self._size + 1, self.capacity)

    def append(self, experience: Experience) -> None:
        """Store an Experience record."""
        self.push(experience.state, experience.action, experience.reward,
                  experience.next_state, experience.done)

    def sample(self, batch_size: int) -> Batch:
        """
        Sample a uniform random batch (with replacement).

        Returns:
            Tuple of numpy arrays: (states, actions, rewards, next_states, dones).
            Fancy indexing returns copies, so callers may modify them.

        Raises:
            RuntimeError: If nothing has been pushed yet
        """
        if not self._initialized or self._size == 0:
            raise RuntimeError("Cannot sample from an empty buffer. Call push() first.")

        indices = self._rng.integers(0, self._size, size=batch_size)
        return (
            self.states[indices],
            self.actions[indices],
            self.rewards[indices],
            self.next_states[indices],
            self.dones[indices],
        )

    def __len__(self) -> int:
        """Return current buffer size."""
        return self._size

    def is_ready(self, batch_size: int) -> bool:
        """Check if buffer has enough transitions for one batch."""
        return self._size >= batch_size

    def contents(self) -> List[Experience]:
        """All stored transitions, oldest first."""
        if self._size == 0:
            return []
        start = (self._position - self._size) % self.capacity
        result = []
        for offset in range(self._size):
            i = (start + offset) % self.capacity
            result.append(Experience(
                state=self.states[i].copy(),
                action=int(self.actions[i]),
                reward=float(self.rewards[i]),
                next_state=self.next_states[i].copy(),
                done=bool(self.dones[i]),
            ))
        return result

    def clear(self) -> None:
        """Clear all transitions from the buffer."""
        self._size = 0
        self._position = 0


# The memory the agent learns from
ReplayMemory = ReplayBuffer
