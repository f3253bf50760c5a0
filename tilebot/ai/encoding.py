"""
Board Encoding
==============

Turns a board into the network's input vector.

Each power of two gets its own one-hot channel:
    channel c is set at (row, col) when the tile there equals 2^(c + 1)

Layout is (channels, rows, cols), flattened channel-major to
NUM_CHANNELS * GRID_SIZE * GRID_SIZE float32 values (272 on a 4x4 board).
"""

import math
from typing import Iterable

import numpy as np

from ..game.board import Tile

import sys
sys.path.append('../..')
from config import GRID_SIZE

NUM_CHANNELS = 17


def encode_board(tiles: Iterable[Tile]) -> np.ndarray:
    """
    One-hot encode the active tiles.

    Returns:
        Array of shape (NUM_CHANNELS, GRID_SIZE, GRID_SIZE)
    """
    board = np.zeros((NUM_CHANNELS, GRID_SIZE, GRID_SIZE), dtype=np.float32)
    for tile in tiles:
        if tile.merged_into is not None:
            continue
        channel = int(round(math.log2(tile.value))) - 1
        # Values outside 2^1..2^17 have no channel
        if 0 <= channel < NUM_CHANNELS:
            board[channel, tile.y, tile.x] = 1.0
    return board


def encode_board_flat(tiles: Iterable[Tile]) -> np.ndarray:
    """Flat float32 state vector for the network."""
    return encode_board(tiles).reshape(-1)
