"""
Abalone game rules.

Rules:
- 61-cell hexagonal board, 14 marbles per side, Black moves first
- A move shifts 1-3 own marbles forming a straight contiguous line by
  one cell in one of six directions
- In-line moves slide the line along its own axis; broadside moves
  shift it sideways and need every target cell empty
- Sumito: an in-line group may push a strictly shorter opposing line
  (2v1, 3v1, 3v2) if the cell behind it is empty or off the board;
  a marble pushed off the board is ejected
- A side loses when 6 of its marbles have been ejected
- Draw after 50 full turns without an ejection, on the third repetition
  of a position, or when the side to move has no legal move

States are immutable; apply_move and undo_move return new states.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from functools import cached_property
from typing import Optional
import numpy as np

from ..errors import IllegalMoveError
from .board import (
    ACTION_INDEX,
    BOARD_SIZE,
    DIRECTIONS,
    DIRECTION_NAMES,
    EMPTY_LAYOUT,
    OFF_BOARD,
    ON_BOARD,
    ROW_LABELS,
    Cell,
    Marble,
    cell_name,
    group_axis,
    iter_groups,
    step,
    zobrist_key,
)


MARBLES_PER_SIDE = 14
LOSS_DEFEAT = 6
NOLOSS_DRAW_TURNS = 50
REPETITIONS_TO_DRAW = 3


def _layout(rows: list[list[int]]) -> np.ndarray:
    board = np.array(rows, dtype=np.int8)
    board.setflags(write=False)
    return board


STANDARD = _layout([
    [3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3],
    [3, 3, 3, 3, 3, 1, 1, 1, 1, 1, 3],
    [3, 3, 3, 3, 1, 1, 1, 1, 1, 1, 3],
    [3, 3, 3, 0, 0, 1, 1, 1, 0, 0, 3],
    [3, 3, 0, 0, 0, 0, 0, 0, 0, 0, 3],
    [3, 0, 0, 0, 0, 0, 0, 0, 0, 0, 3],
    [3, 0, 0, 0, 0, 0, 0, 0, 0, 3, 3],
    [3, 0, 0, 2, 2, 2, 0, 0, 3, 3, 3],
    [3, 2, 2, 2, 2, 2, 2, 3, 3, 3, 3],
    [3, 2, 2, 2, 2, 2, 3, 3, 3, 3, 3],
    [3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3],
])

BELGIAN_DAISY = _layout([
    [3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3],
    [3, 3, 3, 3, 3, 1, 1, 0, 2, 2, 3],
    [3, 3, 3, 3, 1, 1, 1, 2, 2, 2, 3],
    [3, 3, 3, 0, 1, 1, 0, 2, 2, 0, 3],
    [3, 3, 0, 0, 0, 0, 0, 0, 0, 0, 3],
    [3, 0, 0, 0, 0, 0, 0, 0, 0, 0, 3],
    [3, 0, 0, 0, 0, 0, 0, 0, 0, 3, 3],
    [3, 0, 2, 2, 0, 1, 1, 0, 3, 3, 3],
    [3, 2, 2, 2, 1, 1, 1, 3, 3, 3, 3],
    [3, 2, 2, 0, 1, 1, 3, 3, 3, 3, 3],
    [3, 3, 3, 3, 3, 3, 3, 3, 3, 3, 3],
])

LAYOUTS = {
    "standard": STANDARD,
    "belgian_daisy": BELGIAN_DAISY,
}


class MoveKind(Enum):
    INLINE = "inline"
    BROADSIDE = "broadside"
    PUSH = "push"


@dataclass(frozen=True)
class Move:
    """
    A marble move.

    Attributes:
        marbles: Own marbles moved, sorted
        direction: Index into DIRECTIONS
        kind: In-line advance, broadside shift or push
        pushed: Opponent marbles displaced by a push, nearest first
        ejected: Opponent marble pushed off the board, if any
    """
    marbles: tuple[Cell, ...]
    direction: int
    kind: MoveKind
    pushed: tuple[Cell, ...] = ()
    ejected: Optional[Cell] = None

    @property
    def action_index(self) -> int:
        """Index of this move in the fixed policy vector."""
        return ACTION_INDEX[(self.marbles, self.direction)]

    @property
    def sort_key(self) -> tuple:
        return (self.marbles, self.direction)

    def targets(self) -> tuple[Cell, ...]:
        """Cells occupied by the moved own marbles afterwards."""
        return tuple(step(cell, self.direction) for cell in self.marbles)

    def __str__(self) -> str:
        cells = "-".join(cell_name(c) for c in self.marbles)
        text = f"{cells}>{DIRECTION_NAMES[self.direction]}"
        if self.ejected is not None:
            text += f" x{cell_name(self.ejected)}"
        return text


@dataclass(frozen=True, eq=False)
class GameState:
    """
    Immutable Abalone position.

    `history` holds the Zobrist key of every position since the start
    (including this one) and `capture_plies` the move numbers at which an
    ejection happened; both are needed for the draw rules and for undo.
    """
    board: np.ndarray
    to_move: Marble = Marble.BLACK
    white_ejected: int = 0
    black_ejected: int = 0
    move_number: int = 0
    capture_plies: tuple[int, ...] = ()
    history: tuple[int, ...] = field(default=())

    def __post_init__(self):
        board = self.board
        if board.shape != (BOARD_SIZE, BOARD_SIZE):
            raise ValueError(f"Board must be {BOARD_SIZE}x{BOARD_SIZE}")
        if board.flags.writeable or board.dtype != np.int8:
            board = np.array(board, dtype=np.int8)
            board.setflags(write=False)
            object.__setattr__(self, "board", board)
        object.__setattr__(self, "to_move", Marble(self.to_move))
        if not self.history:
            object.__setattr__(self, "history", (self.key,))

    @cached_property
    def key(self) -> int:
        """Zobrist identity of board and side to move."""
        return zobrist_key(self.board, self.to_move)

    @property
    def opponent(self) -> Marble:
        return self.to_move.opponent

    @property
    def plies_since_capture(self) -> int:
        last = self.capture_plies[-1] if self.capture_plies else 0
        return self.move_number - last

    def ejected(self, color: Marble) -> int:
        """Number of `color` marbles pushed off the board."""
        return self.white_ejected if color == Marble.WHITE else self.black_ejected

    def in_play(self, color: Marble) -> int:
        """Number of `color` marbles on the board."""
        return int(np.count_nonzero(self.board == color))

    def marbles(self, color: Marble) -> list[Cell]:
        """Cells holding `color` marbles, in canonical order."""
        rows, cols = np.nonzero(self.board == color)
        return [(int(r), int(c)) for r, c in zip(rows, cols)]

    def repetitions(self) -> int:
        return self.history.count(self.key)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GameState):
            return NotImplemented
        return (
            self.to_move == other.to_move
            and self.white_ejected == other.white_ejected
            and self.black_ejected == other.black_ejected
            and self.move_number == other.move_number
            and self.capture_plies == other.capture_plies
            and self.history == other.history
            and np.array_equal(self.board, other.board)
        )

    def __hash__(self) -> int:
        return hash((self.key, self.move_number, self.history))


def validate_board(board: np.ndarray) -> bool:
    """Check frame, cell codes and marble counts of a raw board."""
    board = np.asarray(board)
    if board.shape != (BOARD_SIZE, BOARD_SIZE):
        return False
    if np.any(board[~ON_BOARD] != OFF_BOARD):
        return False
    playable = board[ON_BOARD]
    if np.any((playable < 0) | (playable > Marble.BLACK)):
        return False
    for color in (Marble.WHITE, Marble.BLACK):
        if np.count_nonzero(playable == color) > MARBLES_PER_SIDE:
            return False
    return True


def from_board(
    board: np.ndarray,
    to_move: Marble = Marble.BLACK,
    move_number: int = 0,
) -> GameState:
    """
    Build a state from a raw board.

    Missing marbles are counted as ejected, so any position with at most
    14 marbles per side keeps the conservation invariant.
    """
    if not validate_board(board):
        raise ValueError("Invalid Abalone board")
    board = np.array(board, dtype=np.int8)
    return GameState(
        board=board,
        to_move=Marble(to_move),
        white_ejected=MARBLES_PER_SIDE - int(np.count_nonzero(board == Marble.WHITE)),
        black_ejected=MARBLES_PER_SIDE - int(np.count_nonzero(board == Marble.BLACK)),
        move_number=move_number,
    )


def initial_state(layout: str = "standard") -> GameState:
    """Return a starting position; Black moves first."""
    if layout not in LAYOUTS:
        available = ", ".join(LAYOUTS)
        raise ValueError(f"Unknown layout '{layout}'. Available: {available}")
    return GameState(board=LAYOUTS[layout], to_move=Marble.BLACK)


def empty_board() -> np.ndarray:
    """Writable board with every playable cell empty."""
    return EMPTY_LAYOUT.copy()


def resolve_move(
    board: np.ndarray,
    own: Marble,
    marbles: tuple[Cell, ...],
    direction: int,
) -> Optional[Move]:
    """
    Work out what moving `marbles` in `direction` does on `board`.

    Returns the fully tagged Move, or None if the move is illegal.
    """
    if not marbles or not 0 <= direction < len(DIRECTIONS):
        return None
    for cell in marbles:
        if board[cell] != own:
            return None

    if len(marbles) == 1:
        if board[step(marbles[0], direction)] == Marble.EMPTY:
            return Move(marbles, direction, MoveKind.INLINE)
        return None

    axis = group_axis(marbles)
    if axis is None:
        return None

    if direction % 3 != axis:
        for cell in marbles:
            if board[step(cell, direction)] != Marble.EMPTY:
                return None
        return Move(marbles, direction, MoveKind.BROADSIDE)

    front = marbles[-1] if direction == axis else marbles[0]
    cell = step(front, direction)
    if board[cell] == Marble.EMPTY:
        return Move(marbles, direction, MoveKind.INLINE)
    if board[cell] != own.opponent:
        return None

    # Sumito: count the opposing line, it must be strictly shorter
    pushed = []
    while board[cell] == own.opponent:
        pushed.append(cell)
        if len(pushed) >= len(marbles):
            return None
        cell = step(cell, direction)

    if board[cell] == Marble.EMPTY:
        return Move(marbles, direction, MoveKind.PUSH, pushed=tuple(pushed))
    if board[cell] == OFF_BOARD:
        return Move(
            marbles, direction, MoveKind.PUSH,
            pushed=tuple(pushed), ejected=pushed[-1],
        )
    return None


def legal_moves(state: GameState) -> list[Move]:
    """All legal moves for the side to move, sorted by (marbles, direction)."""
    board = state.board
    own = state.to_move
    moves = []
    for cell in state.marbles(own):
        for group in iter_groups(cell):
            if any(board[c] != own for c in group):
                continue
            for direction in range(len(DIRECTIONS)):
                move = resolve_move(board, own, group, direction)
                if move is not None:
                    moves.append(move)
    moves.sort(key=lambda m: m.sort_key)
    return moves


def apply_move(state: GameState, move: Move) -> GameState:
    """
    Apply a move and return the new state.

    Raises:
        IllegalMoveError: if the move is not legal in `state`
    """
    expected = resolve_move(state.board, state.to_move, tuple(move.marbles), move.direction)
    if expected is None or expected != move:
        raise IllegalMoveError(f"Move {move} is not legal for {state.to_move.name}")

    own = state.to_move
    opp = own.opponent
    board = state.board.copy()

    for cell in move.marbles:
        board[cell] = Marble.EMPTY
    for cell in move.pushed:
        board[cell] = Marble.EMPTY
    for cell in move.pushed:
        if cell != move.ejected:
            board[step(cell, move.direction)] = opp
    for cell in move.targets():
        board[cell] = own
    board.setflags(write=False)

    new_number = state.move_number + 1
    white_ejected = state.white_ejected
    black_ejected = state.black_ejected
    capture_plies = state.capture_plies
    if move.ejected is not None:
        if opp == Marble.WHITE:
            white_ejected += 1
        else:
            black_ejected += 1
        capture_plies = capture_plies + (new_number,)

    return GameState(
        board=board,
        to_move=opp,
        white_ejected=white_ejected,
        black_ejected=black_ejected,
        move_number=new_number,
        capture_plies=capture_plies,
        history=state.history + (zobrist_key(board, opp),),
    )


def undo_move(state: GameState, move: Move) -> GameState:
    """
    Take back `move`, which must be the last move played to reach `state`.

    Raises:
        IllegalMoveError: if the board does not match the move
    """
    if state.move_number < 1 or len(state.history) < 2:
        raise IllegalMoveError("No move to undo")

    mover = state.opponent
    victim = state.to_move
    board = state.board

    targets = move.targets()
    pushed_targets = tuple(
        step(cell, move.direction) for cell in move.pushed if cell != move.ejected
    )
    occupied = set(targets) | set(pushed_targets)

    consistent = (
        all(board[cell] == mover for cell in targets)
        and all(board[cell] == victim for cell in pushed_targets)
        and all(
            board[cell] == Marble.EMPTY
            for cell in list(move.marbles) + list(move.pushed)
            if cell not in occupied
        )
    )
    if move.ejected is not None:
        consistent = (
            consistent
            and state.ejected(victim) > 0
            and bool(state.capture_plies)
            and state.capture_plies[-1] == state.move_number
        )
    if not consistent:
        raise IllegalMoveError(f"Move {move} cannot be undone from this position")

    restored = board.copy()
    for cell in targets + pushed_targets:
        restored[cell] = Marble.EMPTY
    for cell in move.pushed:
        restored[cell] = victim
    for cell in move.marbles:
        restored[cell] = mover
    restored.setflags(write=False)

    if zobrist_key(restored, mover) != state.history[-2]:
        raise IllegalMoveError(f"Move {move} is not the last move played")

    white_ejected = state.white_ejected
    black_ejected = state.black_ejected
    capture_plies = state.capture_plies
    if move.ejected is not None:
        if victim == Marble.WHITE:
            white_ejected -= 1
        else:
            black_ejected -= 1
        capture_plies = capture_plies[:-1]

    return GameState(
        board=restored,
        to_move=mover,
        white_ejected=white_ejected,
        black_ejected=black_ejected,
        move_number=state.move_number - 1,
        capture_plies=capture_plies,
        history=state.history[:-1],
    )


def game_outcome(state: GameState) -> Optional[float]:
    """
    Rule-based result from the side to move's perspective, or None.

    Does not generate moves; a position without legal moves is only
    detected by is_terminal.
    """
    if state.ejected(state.to_move) >= LOSS_DEFEAT:
        return -1.0
    if state.ejected(state.opponent) >= LOSS_DEFEAT:
        return 1.0
    if state.plies_since_capture >= 2 * NOLOSS_DRAW_TURNS:
        return 0.0
    if state.repetitions() >= REPETITIONS_TO_DRAW:
        return 0.0
    return None


def is_terminal(state: GameState) -> tuple[bool, float]:
    """
    Check if the game is over.

    Returns:
        (done, value) with value from the side to move's perspective:
        +1 win, -1 loss, 0 draw or undecided
    """
    outcome = game_outcome(state)
    if outcome is not None:
        return True, outcome
    if not legal_moves(state):
        return True, 0.0
    return False, 0.0


def render(state: GameState) -> str:
    """Render board as ASCII art (x = Black, o = White)."""
    symbols = {Marble.EMPTY: ".", Marble.WHITE: "o", Marble.BLACK: "x"}

    lines = []
    for r in range(1, BOARD_SIZE - 1):
        cells = [
            symbols[Marble(int(state.board[r, c]))]
            for c in range(BOARD_SIZE)
            if ON_BOARD[r, c]
        ]
        indent = " " * abs(r - 5)
        lines.append(f"{ROW_LABELS[BOARD_SIZE - 2 - r]} {indent}{' '.join(cells)}")

    lines.append(
        f"to move: {state.to_move.name.lower()}  "
        f"ejected: black {state.black_ejected}, white {state.white_ejected}"
    )
    return "\n".join(lines)
