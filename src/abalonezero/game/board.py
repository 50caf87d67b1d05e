"""
Hexagonal board geometry and precomputed lookup tables.

The 61-cell board is stored in an 11 x 11 array. Cells are (row, col)
pairs in axial coordinates; the outer ring of the array and the two
triangular corners are "off-board" so that any single step from an
on-board cell stays inside the array.

Rows are labelled I (top, row 1) down to A (bottom, row 9), diagonals
1-9, which gives standard Abalone notation:

        I5 I6 I7 I8 I9
       H4 H5 H6 H7 H8 H9
         ...
        A1 A2 A3 A4 A5

Tables built at import time:
- ON_BOARD: boolean mask of playable cells
- CELLS: playable cells in canonical (row, col) order
- ACTIONS / ACTION_INDEX: every geometrically possible
  (marbles, direction) pair, the fixed policy-index scheme
- ZOBRIST: random keys for incremental-free position hashing
"""

from __future__ import annotations

from enum import IntEnum
from typing import Optional
import numpy as np


BOARD_SIZE = 11
MAX_GROUP = 3

Cell = tuple[int, int]


class Marble(IntEnum):
    """Contents of a playable cell."""
    EMPTY = 0
    WHITE = 1
    BLACK = 2

    @property
    def opponent(self) -> Marble:
        if self is Marble.WHITE:
            return Marble.BLACK
        if self is Marble.BLACK:
            return Marble.WHITE
        raise ValueError("EMPTY has no opponent")


OFF_BOARD = 3

# Layout of playable (0) and off-board (3) cells
EMPTY_LAYOUT = np.array([
    [3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3],
    [3, 3, 3, 3, 3, 0, 0, 0, 0, 0, 3],
    [3, 3, 3, 3, 0, 0, 0, 0, 0, 0, 3],
    [3, 3, 3, 0, 0, 0, 0, 0, 0, 0, 3],
    [3, 3, 0, 0, 0, 0, 0, 0, 0, 0, 3],
    [3, 0, 0, 0, 0, 0, 0, 0, 0, 0, 3],
    [3, 0, 0, 0, 0, 0, 0, 0, 0, 3, 3],
    [3, 0, 0, 0, 0, 0, 0, 0, 3, 3, 3],
    [3, 0, 0, 0, 0, 0, 0, 3, 3, 3, 3],
    [3, 0, 0, 0, 0, 0, 3, 3, 3, 3, 3],
    [3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3],
], dtype=np.int8)

ON_BOARD = EMPTY_LAYOUT == 0

CELLS: tuple[Cell, ...] = tuple(
    (int(r), int(c)) for r, c in zip(*np.nonzero(ON_BOARD))
)

# Direction i and (i + 3) % 6 are opposite. The first three are the
# "positive" steps: they move to a lexicographically larger cell, so a
# group built by stepping along them from its smallest cell is sorted.
DIRECTIONS: tuple[tuple[int, int], ...] = (
    (1, 0),
    (1, -1),
    (0, 1),
    (-1, 0),
    (-1, 1),
    (0, -1),
)
DIRECTION_NAMES = ("SE", "SW", "E", "NW", "NE", "W")
AXES = (0, 1, 2)

ROW_LABELS = "ABCDEFGHI"


def opposite(direction: int) -> int:
    """Index of the direction pointing the other way."""
    return (direction + 3) % 6


def step(cell: Cell, direction: int, times: int = 1) -> Cell:
    """Cell reached by moving `times` steps in `direction`."""
    dr, dc = DIRECTIONS[direction]
    return (cell[0] + dr * times, cell[1] + dc * times)


def on_board(cell: Cell) -> bool:
    """True if cell is one of the 61 playable cells."""
    r, c = cell
    return 0 <= r < BOARD_SIZE and 0 <= c < BOARD_SIZE and bool(ON_BOARD[r, c])


def cell_name(cell: Cell) -> str:
    """Standard Abalone notation, e.g. (9, 1) -> 'A1'."""
    r, c = cell
    return f"{ROW_LABELS[BOARD_SIZE - 2 - r]}{c}"


def parse_cell(name: str) -> Cell:
    """Inverse of cell_name."""
    name = name.strip().upper()
    if len(name) != 2 or name[0] not in ROW_LABELS or not name[1].isdigit():
        raise ValueError(f"Invalid cell name '{name}'")
    cell = (BOARD_SIZE - 2 - ROW_LABELS.index(name[0]), int(name[1]))
    if not on_board(cell):
        raise ValueError(f"Cell '{name}' is not on the board")
    return cell


def group_axis(marbles: tuple[Cell, ...]) -> Optional[int]:
    """
    Axis of a sorted marble group, or None if it is not a contiguous line.

    Single marbles have no axis and also return None.
    """
    if len(marbles) < 2 or len(marbles) > MAX_GROUP:
        return None
    delta = (marbles[1][0] - marbles[0][0], marbles[1][1] - marbles[0][1])
    for axis in AXES:
        if DIRECTIONS[axis] == delta:
            break
    else:
        return None
    for prev, cell in zip(marbles[1:], marbles[2:]):
        if step(prev, axis) != cell:
            return None
    return axis


def iter_groups(cell: Cell):
    """Yield every line of 1-3 on-board cells whose smallest cell is `cell`."""
    yield (cell,)
    for axis in AXES:
        group = [cell]
        for _ in range(MAX_GROUP - 1):
            nxt = step(group[-1], axis)
            if not on_board(nxt):
                break
            group.append(nxt)
            yield tuple(group)


def _geometrically_possible(marbles: tuple[Cell, ...], direction: int) -> bool:
    """Whether a move of this shape could ever be legal on an empty-enough board."""
    if len(marbles) == 1:
        return on_board(step(marbles[0], direction))
    axis = group_axis(marbles)
    if direction % 3 == axis:
        front = marbles[-1] if direction == axis else marbles[0]
        return on_board(step(front, direction))
    return all(on_board(step(cell, direction)) for cell in marbles)


def _build_action_table() -> tuple[tuple[tuple[Cell, ...], int], ...]:
    actions = []
    for cell in CELLS:
        for group in iter_groups(cell):
            for direction in range(len(DIRECTIONS)):
                if _geometrically_possible(group, direction):
                    actions.append((group, direction))
    actions.sort()
    return tuple(actions)


ACTIONS = _build_action_table()
ACTION_INDEX: dict[tuple[tuple[Cell, ...], int], int] = {
    action: i for i, action in enumerate(ACTIONS)
}
NUM_ACTIONS = len(ACTIONS)


# Zobrist keys: one per (marble colour, cell) plus one for side to move.
# Fixed seed so keys are stable across processes.
_zobrist_rng = np.random.default_rng(0xABA1)
ZOBRIST = _zobrist_rng.integers(
    0, np.iinfo(np.int64).max, size=(3, BOARD_SIZE, BOARD_SIZE), dtype=np.int64
)
ZOBRIST_BLACK_TO_MOVE = int(_zobrist_rng.integers(0, np.iinfo(np.int64).max, dtype=np.int64))


def zobrist_key(board: np.ndarray, to_move: Marble) -> int:
    """Position identity from occupancy and side to move."""
    rows, cols = np.nonzero((board == Marble.WHITE) | (board == Marble.BLACK))
    key = 0
    if rows.size:
        key = int(np.bitwise_xor.reduce(ZOBRIST[board[rows, cols], rows, cols]))
    if to_move == Marble.BLACK:
        key ^= ZOBRIST_BLACK_TO_MOVE
    return key
