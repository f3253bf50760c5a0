"""
AI Module
=========

Lookahead search and Deep Reinforcement Learning components for 2048.

Classes:
    LookaheadSearch - Bounded-depth heuristic search over tilts
    ConvDQN, DQN    - Value network architectures
    Agent           - DQN agent with epsilon-greedy and blended selection
    ReplayBuffer    - Experience replay memory
    TrainingLoop    - Actor driving one game and training the agent
"""

from .lookahead import LookaheadSearch
from .network import DQN, ConvDQN
from .agent import Agent
from .replay_buffer import ReplayBuffer, Experience
from .model_store import FileModelStore, MemoryModelStore
from .trainer import TrainingLoop

__all__ = [
    'LookaheadSearch', 'DQN', 'ConvDQN', 'Agent', 'ReplayBuffer', 'Experience',
    'FileModelStore', 'MemoryModelStore', 'TrainingLoop',
]
