"""
Tensor encoding for neural network input/output.

Input encoding:
- Shape: (C, 11, 11) where C=5
- Channel 0: side-to-move marbles
- Channel 1: opponent marbles
- Channel 2: empty playable cells
- Channel 3: off-board frame
- Channel 4: constant plane, 1.0 when Black is to move

Output:
- Policy: NUM_ACTIONS logits, one per entry of the fixed action table
- Value: scalar in [-1, 1] from the side to move's perspective
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional, Sequence
import numpy as np
import torch

from .abalone import GameState, Move, legal_moves
from .board import BOARD_SIZE, NUM_ACTIONS, ON_BOARD, Marble


NUM_CHANNELS = 5


@dataclass(frozen=True)
class GameSpec:
    """
    Describes the board and action space for the network.
    """
    name: str
    board_shape: tuple[int, ...]
    num_actions: int
    num_input_channels: int

    @property
    def board_size(self) -> int:
        """Total number of array cells."""
        result = 1
        for dim in self.board_shape:
            result *= dim
        return result


ABALONE_SPEC = GameSpec(
    name="abalone",
    board_shape=(BOARD_SIZE, BOARD_SIZE),
    num_actions=NUM_ACTIONS,
    num_input_channels=NUM_CHANNELS,
)


def encode_state(state: GameState) -> np.ndarray:
    """
    Encode game state as tensor for neural network input.

    Returns:
        numpy array of shape (5, 11, 11) with float32 dtype
    """
    board = state.board
    encoded = np.zeros((NUM_CHANNELS, BOARD_SIZE, BOARD_SIZE), dtype=np.float32)
    encoded[0] = board == state.to_move
    encoded[1] = board == state.opponent
    encoded[2] = ON_BOARD & (board == Marble.EMPTY)
    encoded[3] = ~ON_BOARD
    if state.to_move == Marble.BLACK:
        encoded[4] = 1.0
    return encoded


def encode_state_batch(states: Sequence[GameState]) -> np.ndarray:
    """Encode multiple states as a (batch, 5, 11, 11) array."""
    return np.stack([encode_state(s) for s in states])


def encode_state_torch(state: GameState, device: Optional[torch.device] = None) -> torch.Tensor:
    """Encode a single state as a (1, 5, 11, 11) tensor."""
    tensor = torch.from_numpy(encode_state(state)).unsqueeze(0)
    if device is not None:
        tensor = tensor.to(device)
    return tensor


def get_action_mask(state: GameState, moves: Optional[Sequence[Move]] = None) -> np.ndarray:
    """
    Boolean mask of legal actions over the action table.

    Args:
        state: Game state
        moves: Precomputed legal moves for `state`, if available
    """
    if moves is None:
        moves = legal_moves(state)
    mask = np.zeros(NUM_ACTIONS, dtype=bool)
    for move in moves:
        mask[move.action_index] = True
    return mask


def mask_illegal_logits(logits: torch.Tensor, mask: torch.Tensor) -> torch.Tensor:
    """Set illegal move logits to -inf so they get 0 probability after softmax."""
    masked = logits.clone()
    masked[~mask] = float("-inf")
    return masked


def decode_policy(logits: torch.Tensor, mask: torch.Tensor) -> torch.Tensor:
    """Convert logits to a probability distribution over legal moves."""
    return torch.softmax(mask_illegal_logits(logits, mask), dim=-1)


def policy_from_vector(moves: Sequence[Move], vector: np.ndarray) -> dict[Move, float]:
    """
    Restrict a policy vector to the given moves and renormalise.

    Falls back to uniform when the legal moves carry no probability mass.
    """
    if not moves:
        return {}
    probs = np.array([vector[m.action_index] for m in moves], dtype=np.float64)
    probs = np.where(np.isfinite(probs) & (probs > 0), probs, 0.0)
    total = probs.sum()
    if total <= 0:
        probs = np.full(len(moves), 1.0 / len(moves))
    else:
        probs /= total
    return {move: float(p) for move, p in zip(moves, probs)}


def policy_to_vector(policy: Mapping[Move, float]) -> np.ndarray:
    """Scatter a move -> probability mapping into a NUM_ACTIONS vector."""
    vector = np.zeros(NUM_ACTIONS, dtype=np.float32)
    for move, prob in policy.items():
        vector[move.action_index] = prob
    return vector
