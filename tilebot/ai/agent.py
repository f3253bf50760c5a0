"""
DQN Agent
=========

The value agent that learns to play 2048 using Deep Q-Learning.

Key Components:
    1. Policy Network  - Used for action selection, trained every step
    2. Target Network  - Hard copy of the policy net, used for stable targets
    3. Replay Buffer   - Stores transitions for training
    4. Epsilon-Greedy  - Balances exploration vs exploitation

Training Algorithm (DQN):
    1. Observe state s
    2. Choose action a (epsilon-greedy, optionally blended with lookahead)
    3. Execute action, observe reward r and next state s'
    4. Store (s, a, r, s', done) in replay buffer
    5. Sample mini-batch from replay buffer
    6. Calculate target: y = r + γ * max_a' Q_target(s', a') * (1 - done)
    7. Update policy network: minimize (Q(s,a) - y)²
    8. Every TARGET_UPDATE steps copy policy weights into the target network

Epsilon decays linearly from EPSILON_START to EPSILON_END over
EPSILON_DECAY_STEPS gradient steps and never drops below the floor.

References:
    Mnih et al., 2015 - "Human-level control through deep reinforcement learning"
"""

import math
import random
import threading
from collections import deque
from typing import Dict, List, Optional, Sequence

import numpy as np
import torch
import torch.nn.functional as F
import torch.optim as optim

from .network import ValueNetwork, build_network
from .replay_buffer import Experience, ReplayBuffer
from .model_store import ModelNotFoundError, ModelStore, Weights
from ..utils.logger import get_logger, log_model_event

import sys
sys.path.append('../..')
from config import Config

logger = get_logger(__name__)


class DivergentLossError(ArithmeticError):
    """Raised when a training step produces a NaN or infinite loss."""


class Agent:
    """
    DQN Agent for 2048.

    The agent maintains two networks:
        - policy_net: Updated every training step
        - target_net: Updated periodically for stability

    Action Selection:
        - With probability epsilon: random valid action (exploration)
        - Otherwise: best Q-value, or best blend of Q-values and
          external (lookahead) scores

    Example:
        >>> agent = Agent(config=Config(FORCE_CPU=True))
        >>> action = agent.select_action(state)
        >>> agent.remember(Experience(state, action, reward, next_state, done))
        >>> loss = agent.train_step()
    """

    policy_net: ValueNetwork
    target_net: ValueNetwork

    def __init__(
        self,
        state_size: Optional[int] = None,
        action_size: Optional[int] = None,
        config: Optional[Config] = None,
        seed: Optional[int] = None
    ):
        """
        Initialize the DQN agent.

        Args:
            state_size: Dimension of state vector (defaults to config.STATE_SIZE)
            action_size: Number of possible actions (defaults to config.ACTION_SIZE)
            config: Configuration object
            seed: Seed for exploration and replay sampling
        """
        self.config = config or Config()
        self.state_size = state_size or self.config.STATE_SIZE
        self.action_size = action_size or self.config.ACTION_SIZE
        self.device = self.config.DEVICE

        self.policy_net = build_network(self.state_size, self.action_size, self.config).to(self.device)
        self.target_net = build_network(self.state_size, self.action_size, self.config).to(self.device)
        self.target_net.load_state_dict(self.policy_net.state_dict())
        self.target_net.eval()  # Target network is never trained directly

        self.optimizer = optim.Adam(self.policy_net.parameters(), lr=self.config.LEARNING_RATE)

        self.memory = ReplayBuffer(self.config.MEMORY_SIZE, self.state_size, seed=seed)

        # Exploration
        self.epsilon = self.config.EPSILON_START
        self._rng = random.Random(seed)
        self._last_action_explored = False

        # Gradient steps taken
        self.steps = 0

        # Training metrics (bounded to prevent memory growth during long training)
        self.losses: deque = deque(maxlen=10000)
        self._losses_lock = threading.Lock()

    @property
    def backend(self) -> str:
        """Human-readable label of the compute backend."""
        return f"torch-{self.device.type}"

    # ------------------------------------------------------------------
    # Action selection
    # ------------------------------------------------------------------

    def _explore(self, valid_actions: Optional[Sequence[int]], training: bool) -> Optional[int]:
        """Random action with probability epsilon, else None."""
        if not training or self.epsilon <= 0 or self._rng.random() >= self.epsilon:
            self._last_action_explored = False
            return None
        self._last_action_explored = True
        if valid_actions:
            return self._rng.choice(list(valid_actions))
        return self._rng.randrange(self.action_size)

    def get_q_values(self, state: np.ndarray) -> np.ndarray:
        """
        Get Q-values for all actions.

        Args:
            state: Encoded board

        Returns:
            Array of Q-values for each action
        """
        with torch.inference_mode():
            state_t = torch.as_tensor(state, dtype=torch.float32, device=self.device).reshape(1, -1)
            return self.policy_net(state_t).cpu().numpy()[0]

    def select_action(
        self,
        state: np.ndarray,
        valid_actions: Optional[Sequence[int]] = None,
        training: bool = True
    ) -> int:
        """
        Select an action using the epsilon-greedy policy.

        Args:
            state: Encoded board
            valid_actions: Actions exploration may choose from (all if None)
            training: If True, use exploration; if False, use greedy

        Returns:
            Selected action index
        """
        explored = self._explore(valid_actions, training)
        if explored is not None:
            return explored
        return int(np.argmax(self.get_q_values(state)))

    def select_action_blended(
        self,
        state: np.ndarray,
        external_scores: Sequence[float],
        blend_weight: Optional[float] = None,
        training: bool = True
    ) -> int:
        """
        Epsilon-greedy selection blending Q-values with external scores.

        Exploration picks uniformly among actions with a finite external
        score. Otherwise Q-values and finite external scores are min-max
        normalized to [0, 1] independently and combined as
        ``(1 - w) * q + w * ext``; actions with a non-finite external score
        are never chosen. With no finite external score at all the plain
        Q-value argmax is returned.

        Args:
            state: Encoded board
            external_scores: One score per action; -inf marks invalid moves
            blend_weight: Weight of the external scores (config default if None)
            training: If True, use exploration

        Returns:
            Selected action index
        """
        w = self.config.LOOKAHEAD_WEIGHT if blend_weight is None else blend_weight
        valid = self.valid_actions(external_scores)

        explored = self._explore(valid, training)
        if explored is not None:
            return explored

        q_values = self.get_q_values(state)
        q_range = float(q_values.max() - q_values.min()) or 1.0
        q_norm = (q_values - q_values.min()) / q_range

        if not valid:
            return int(np.argmax(q_norm))

        finite = [external_scores[i] for i in valid]
        ext_min = min(finite)
        ext_range = (max(finite) - ext_min) or 1.0

        combined = np.full(self.action_size, -np.inf)
        for i in valid:
            ext_norm = (external_scores[i] - ext_min) / ext_range
            combined[i] = (1 - w) * q_norm[i] + w * ext_norm
        return int(np.argmax(combined))

    # ------------------------------------------------------------------
    # Learning
    # ------------------------------------------------------------------

    def remember(self, experience: Experience) -> None:
        """Store a transition in the replay buffer."""
        self.memory.append(experience)

    def train_step(self) -> Optional[float]:
        """
        Perform one training step.

        Returns:
            Loss value, or None while the buffer holds less than one batch

        Raises:
            DivergentLossError: If the loss is NaN or infinite. The network
                is left untouched in that case.
        """
        batch_size = self.config.BATCH_SIZE
        if not self.memory.is_ready(batch_size):
            return None

        states_np, actions_np, rewards_np, next_states_np, dones_np = self.memory.sample(batch_size)

        states = torch.from_numpy(states_np).to(self.device)
        actions = torch.from_numpy(actions_np).to(self.device)
        rewards = torch.from_numpy(rewards_np).to(self.device)
        next_states = torch.from_numpy(next_states_np).to(self.device)
        dones = torch.from_numpy(dones_np).to(self.device)

        current_q = self.policy_net(states).gather(1, actions.unsqueeze(1)).squeeze(1)

        with torch.no_grad():
            next_q = self.target_net(next_states).max(dim=1).values
            target_q = rewards + (1 - dones) * self.config.GAMMA * next_q

        loss = F.mse_loss(current_q, target_q)
        loss_value = loss.item()
        if not math.isfinite(loss_value):
            raise DivergentLossError(f"Non-finite loss: {loss_value}")

        self.optimizer.zero_grad()
        loss.backward()

        if self.config.GRAD_CLIP > 0:
            torch.nn.utils.clip_grad_norm_(self.policy_net.parameters(), self.config.GRAD_CLIP)

        self.optimizer.step()

        self.steps += 1
        self.decay_epsilon()
        if self.steps % self.config.TARGET_UPDATE == 0:
            self.update_target_network()

        with self._losses_lock:
            self.losses.append(loss_value)

        return loss_value

    def decay_epsilon(self) -> None:
        """Linear decay from EPSILON_START toward the floor."""
        progress = self.steps / self.config.EPSILON_DECAY_STEPS
        self.epsilon = max(
            self.config.EPSILON_END,
            self.config.EPSILON_START * (1.0 - progress)
        )

    def update_target_network(self) -> None:
        """Hard update: Copy policy network weights to target network."""
        self.target_net.load_state_dict(self.policy_net.state_dict())

    def get_average_loss(self, n: int = 100) -> float:
        """Mean of the last ``n`` losses (0.0 before any training)."""
        with self._losses_lock:
            recent = list(self.losses)[-n:]
        return float(np.mean(recent)) if recent else 0.0

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def policy_weights(self) -> Weights:
        """CPU snapshot of the policy network's weights."""
        return {k: v.detach().cpu().clone() for k, v in self.policy_net.state_dict().items()}

    def save_metadata(self) -> Dict[str, object]:
        return {
            'steps': self.steps,
            'epsilon': self.epsilon,
            'network_type': self.config.NETWORK_TYPE,
            'state_size': self.state_size,
            'action_size': self.action_size,
        }

    def apply_weights(self, weights: Weights) -> None:
        """Load policy weights and re-sync the target network."""
        self.policy_net.load_state_dict(weights)
        self.update_target_network()

    def save_model(self, key: str, store: ModelStore) -> None:
        """Save the policy network's weights under ``key``."""
        store.save(key, self.policy_weights(), self.save_metadata())
        log_model_event('save', key, steps=self.steps, epsilon=f"{self.epsilon:.4f}")

    def load_model(self, key: str, store: ModelStore) -> bool:
        """
        Load policy weights stored under ``key``.

        Returns:
            True if a model was found, False if the agent keeps its current
            (untrained) weights
        """
        try:
            weights = store.load(key)
        except ModelNotFoundError:
            logger.warning(f"No saved model under '{key}', keeping current weights")
            return False
        self.apply_weights(weights)
        log_model_event('load', key)
        return True

    def valid_actions(self, scores: Sequence[float]) -> List[int]:
        """Indices whose external score is finite."""
        return [i for i, s in enumerate(scores) if math.isfinite(s)]
