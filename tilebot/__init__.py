"""
tilebot - 2048 Learning Agent
=============================

An agent that learns to play 2048 by blending a heuristic lookahead search
with a Deep Q-Network trained from its own play.

Modules:
    game/   - Board engine, heuristics and the live game session
    ai/     - Lookahead, network, agent, model store and training loop
    utils/  - Logging
"""

__version__ = "1.0.0"
