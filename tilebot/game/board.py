"""
Board Engine
============

Pure functions computing board transitions for the 2048 puzzle.

A board is a list of Tiles. Tiles that were consumed by a merge during the
last tilt are kept as "ghosts" (``merged_into`` set) so that a renderer can
animate them sliding into their consumer; they take no part in game logic.

Coordinates: ``x`` is the column, ``y`` the row, with ``y = 0`` at the top.
"""

import random
from dataclasses import dataclass, replace
from enum import IntEnum
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

import sys
sys.path.append('../..')
from config import GRID_SIZE

BoardKey = Tuple[Tuple[int, int, int], ...]


class BoardFullError(RuntimeError):
    """Raised when a tile is spawned on a board without empty cells."""


@dataclass(frozen=True)
class Tile:
    """A single tile on the board."""
    id: int
    x: int
    y: int
    value: int
    merged_into: Optional[int] = None

    @property
    def is_ghost(self) -> bool:
        return self.merged_into is not None


class Direction(IntEnum):
    """Tilt directions. The integer value is the agent's action index."""
    UP = 0
    DOWN = 1
    LEFT = 2
    RIGHT = 3

    @property
    def vector(self) -> Tuple[int, int]:
        return _VECTORS[self]


_VECTORS = {
    Direction.UP: (0, -1),
    Direction.DOWN: (0, 1),
    Direction.LEFT: (-1, 0),
    Direction.RIGHT: (1, 0),
}

# Action order shared by the search and the agent
ACTIONS: List[Direction] = list(Direction)


def in_bounds(x: int, y: int) -> bool:
    return 0 <= x < GRID_SIZE and 0 <= y < GRID_SIZE


def active_tiles(tiles: Iterable[Tile]) -> List[Tile]:
    """Tiles that are logically on the board (ghosts removed)."""
    return [t for t in tiles if t.merged_into is None]


def board_key(tiles: Iterable[Tile]) -> BoardKey:
    """Order-independent key of the active board: sorted (x, y, value)."""
    return tuple(sorted((t.x, t.y, t.value) for t in tiles if t.merged_into is None))


def is_noop(before: Iterable[Tile], after: Iterable[Tile]) -> bool:
    """True when a tilt changed neither positions nor values."""
    return board_key(before) == board_key(after)


def empty_cells(tiles: Iterable[Tile]) -> List[Tuple[int, int]]:
    """Unoccupied cells in row-major order."""
    occupied = {(t.x, t.y) for t in tiles if t.merged_into is None}
    return [
        (x, y)
        for y in range(GRID_SIZE)
        for x in range(GRID_SIZE)
        if (x, y) not in occupied
    ]


def count_empty_cells(tiles: Iterable[Tile]) -> int:
    occupied = {(t.x, t.y) for t in tiles if t.merged_into is None}
    return GRID_SIZE * GRID_SIZE - len(occupied)


def max_tile_value(tiles: Iterable[Tile]) -> int:
    """Highest active tile value, 0 on an empty board."""
    return max((t.value for t in tiles if t.merged_into is None), default=0)


def merge_score(tiles: Iterable[Tile]) -> int:
    """
    Score gained by a tilt result.

    Every ghost contributes twice its value, which is the value of the tile
    it merged into.
    """
    return sum(t.value * 2 for t in tiles if t.merged_into is not None)


def _slide(order: List[int], tiles: Dict[int, Tile], occupied: Dict[Tuple[int, int], int],
           dx: int, dy: int) -> None:
    """Move every tile in ``order`` as far toward the wall as it can go."""
    for tile_id in order:
        tile = tiles[tile_id]
        if tile.merged_into is not None:
            continue
        x, y = tile.x, tile.y
        while in_bounds(x + dx, y + dy) and (x + dx, y + dy) not in occupied:
            x += dx
            y += dy
        if (x, y) != (tile.x, tile.y):
            del occupied[(tile.x, tile.y)]
            occupied[(x, y)] = tile_id
            tiles[tile_id] = replace(tile, x=x, y=y)


def _merge(order: List[int], tiles: Dict[int, Tile], occupied: Dict[Tuple[int, int], int],
           dx: int, dy: int) -> None:
    """Merge each tile into its wall-ward neighbour when values match."""
    for tile_id in order:
        tile = tiles[tile_id]
        if tile.merged_into is not None:
            continue
        target = (tile.x + dx, tile.y + dy)
        neighbour_id = occupied.get(target)
        if neighbour_id is None:
            continue
        neighbour = tiles[neighbour_id]
        if neighbour.value != tile.value:
            continue
        tiles[neighbour_id] = replace(neighbour, merged_into=tile_id)
        tiles[tile_id] = replace(tile, value=tile.value * 2, x=target[0], y=target[1])
        del occupied[(tile.x, tile.y)]
        occupied[target] = tile_id


def tilt(direction: Direction, tiles: Sequence[Tile]) -> List[Tile]:
    """
    Tilt the board one step in ``direction``.

    Tiles slide toward the wall, equal neighbours merge (each tile at most
    once), and the gaps left by merges are closed. Ghosts from a previous
    tilt are dropped; ghosts created by this tilt are returned at their
    consumer's final position.

    Args:
        direction: Direction of travel
        tiles: Current board

    Returns:
        New list of tiles, nearest-to-wall first. Inputs are not modified.
    """
    dx, dy = Direction(direction).vector

    # Nearest to the target wall first, so no tile overtakes another
    current = sorted(active_tiles(tiles), key=lambda t: -(t.x * dx + t.y * dy))
    order = [t.id for t in current]
    by_id = {t.id: t for t in current}
    occupied = {(t.x, t.y): t.id for t in current}

    _slide(order, by_id, occupied, dx, dy)
    _merge(order, by_id, occupied, dx, dy)
    _slide(order, by_id, occupied, dx, dy)

    result = []
    for tile_id in order:
        tile = by_id[tile_id]
        if tile.merged_into is not None:
            consumer = by_id[tile.merged_into]
            tile = replace(tile, x=consumer.x, y=consumer.y)
        result.append(tile)
    return result


def spawn_tile(
    tiles: Sequence[Tile],
    tile_id: int,
    rng: Optional[random.Random] = None,
    two_probability: float = 0.9,
) -> Tile:
    """
    Create a new tile on a uniformly random empty cell.

    Args:
        tiles: Current board
        tile_id: Id for the new tile
        rng: Random source (module random if None)
        two_probability: Chance that the new tile is a 2 rather than a 4

    Returns:
        The new tile (the caller appends it to the board)

    Raises:
        BoardFullError: If no cell is empty
    """
    rng = rng or random
    cells = empty_cells(tiles)
    if not cells:
        raise BoardFullError("No empty cells")
    x, y = cells[rng.randrange(len(cells))]
    value = 2 if rng.random() < two_probability else 4
    return Tile(id=tile_id, x=x, y=y, value=value)


def tiles_from_grid(grid: Sequence[Sequence[int]], first_id: int = 1) -> List[Tile]:
    """
    Build a board from a row-major grid of values (0 = empty).

    Handy for setting up positions in tests and scripts.
    """
    tiles = []
    next_id = first_id
    for y, row in enumerate(grid):
        for x, value in enumerate(row):
            if value:
                tiles.append(Tile(id=next_id, x=x, y=y, value=int(value)))
                next_id += 1
    return tiles


def tiles_to_grid(tiles: Iterable[Tile]) -> List[List[int]]:
    """Row-major grid of active tile values (0 = empty)."""
    grid = [[0] * GRID_SIZE for _ in range(GRID_SIZE)]
    for t in tiles:
        if t.merged_into is None:
            grid[t.y][t.x] = t.value
    return grid
