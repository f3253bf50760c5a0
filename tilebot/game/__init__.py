"""
Game Module
===========

Board rules and evaluation for 2048.

Classes:
    Tile        - A tile on the board (ghost when merged away)
    Direction   - Tilt direction, doubling as the action index
    GameSession - Explicit state of one live game
"""

from .board import Tile, Direction, BoardFullError, tilt, spawn_tile, board_key, is_noop
from .heuristics import calculate_reward, board_heuristic_value, is_game_over
from .session import GameSession, MoveResult

__all__ = [
    'Tile', 'Direction', 'BoardFullError', 'tilt', 'spawn_tile', 'board_key', 'is_noop',
    'calculate_reward', 'board_heuristic_value', 'is_game_over',
    'GameSession', 'MoveResult',
]
