"""
MCTS node data structure.

Each node represents a game state and stores, per legal move a:
- N[a]: visit counts
- W[a]: total value, from the perspective of the side to move here
- Q[a]: mean value (W[a] - VL[a]) / (N[a] + VL[a])
- P[a]: prior probabilities from the evaluator
- virtual_loss[a]: simulations currently in flight through the edge

Moves are kept in canonical order, so the first argmax over any of these
arrays is also the canonical tie-break.
"""

from __future__ import annotations

from dataclasses import dataclass, field
import math
import threading
from typing import Mapping, Optional, Sequence
import numpy as np

from ..game import GameState, Move


def _empty(dtype) -> np.ndarray:
    return np.zeros(0, dtype=dtype)


@dataclass(eq=False)
class SearchNode:
    """
    Search tree node.

    Edge statistics live on the parent; children are referenced by arena
    handle (-1 until the edge is first traversed).
    """

    state: GameState
    moves: list[Move] = field(default_factory=list)

    P: np.ndarray = field(default_factory=lambda: _empty(np.float64))
    P_raw: np.ndarray = field(default_factory=lambda: _empty(np.float64))
    N: np.ndarray = field(default_factory=lambda: _empty(np.int64))
    W: np.ndarray = field(default_factory=lambda: _empty(np.float64))
    virtual_loss: np.ndarray = field(default_factory=lambda: _empty(np.int64))
    children: np.ndarray = field(default_factory=lambda: _empty(np.int64))

    is_expanded: bool = False
    is_pending: bool = False  # Evaluation requested, result not yet in
    is_terminal: bool = False
    terminal_value: float = 0.0

    lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    ready: threading.Event = field(default_factory=threading.Event, repr=False)

    @property
    def Q(self) -> np.ndarray:
        """Mean action value including virtual loss (0 for unvisited edges)."""
        total_n = self.N + self.virtual_loss
        total_w = self.W - self.virtual_loss  # Virtual loss counts as -1

        with np.errstate(divide="ignore", invalid="ignore"):
            q = total_w / total_n
            q = np.nan_to_num(q, nan=0.0)
        return q

    @property
    def total_visits(self) -> int:
        """Completed simulations through this node (sum of edge visits)."""
        return int(self.N.sum())

    @property
    def mean_value(self) -> float:
        """Average backed-up value for the side to move, 0 if unvisited."""
        visits = self.total_visits
        return float(self.W.sum() / visits) if visits else 0.0

    def expand(self, moves: Sequence[Move], policy: Mapping[Move, float]) -> None:
        """
        Expand this node with evaluator priors.

        Args:
            moves: Legal moves in canonical order
            policy: Evaluator probabilities; renormalised over `moves`,
                uniform when no mass is left
        """
        n = len(moves)
        priors = np.array([policy.get(m, 0.0) for m in moves], dtype=np.float64)
        priors = np.nan_to_num(priors, nan=0.0, posinf=0.0, neginf=0.0)
        priors[priors < 0] = 0.0

        total = priors.sum()
        if total > 0:
            priors /= total
        elif n:
            priors = np.full(n, 1.0 / n)

        self.moves = list(moves)
        self.P = priors
        self.P_raw = priors.copy()
        self.N = np.zeros(n, dtype=np.int64)
        self.W = np.zeros(n, dtype=np.float64)
        self.virtual_loss = np.zeros(n, dtype=np.int64)
        self.children = np.full(n, -1, dtype=np.int64)
        self.is_expanded = True
        self.is_pending = False
        self.ready.set()

    def mark_terminal(self, value: float) -> None:
        """Record the true game result; terminal nodes are never expanded."""
        self.is_terminal = True
        self.terminal_value = value
        self.is_pending = False
        self.ready.set()

    def release(self) -> None:
        """Drop a pending evaluation so the node can be requested again."""
        self.is_pending = False
        self.ready.set()

    def select(self, c_puct: float) -> int:
        """
        PUCT selection.

        score = Q + c_puct * P * sqrt(N_parent) / (1 + N + VL), with N_parent
        counting in-flight simulations and floored at 1 so priors decide the
        first visit. Ties go to the lowest canonical index.
        """
        n_parent = self.N.sum() + self.virtual_loss.sum()
        sqrt_total = math.sqrt(max(n_parent, 1))
        u = c_puct * self.P * sqrt_total / (1 + self.N + self.virtual_loss)
        return int(np.argmax(self.Q + u))

    def select_underexplored(self, minimum: int) -> Optional[int]:
        """First edge (canonical order) with fewer than `minimum` visits, in-flight included."""
        if minimum <= 0:
            return None
        short = np.flatnonzero(self.N + self.virtual_loss < minimum)
        return int(short[0]) if len(short) else None

    def apply_virtual_loss(self, index: int, amount: int = 1) -> None:
        self.virtual_loss[index] += amount

    def revert_virtual_loss(self, index: int, amount: int = 1) -> None:
        self.virtual_loss[index] = max(0, self.virtual_loss[index] - amount)

    def add_dirichlet_noise(self, rng: np.random.Generator, alpha: float, epsilon: float) -> None:
        """Mix fresh Dirichlet noise into the evaluator priors."""
        if not self.moves:
            return
        noise = rng.dirichlet([alpha] * len(self.moves))
        self.P = (1 - epsilon) * self.P_raw + epsilon * noise

    def get_policy(self, temperature: float = 1.0) -> np.ndarray:
        """
        Distribution over this node's moves from visit counts.

        Args:
            temperature: 0 for greedy (max visits), otherwise N^(1/T)

        Returns:
            Probabilities aligned with `moves`; priors when nothing was visited
        """
        if self.N.sum() == 0:
            if temperature == 0:
                policy = np.zeros(len(self.moves))
                policy[int(np.argmax(self.P))] = 1.0
                return policy
            return self.P.copy()

        if temperature == 0:
            policy = np.zeros(len(self.moves))
            policy[int(np.argmax(self.N))] = 1.0
            return policy

        # Scale by the max first so large counts don't overflow at low T
        counts = (self.N / self.N.max()) ** (1.0 / temperature)
        return counts / counts.sum()

    def select_action(self, temperature: float, rng: np.random.Generator) -> int:
        """Pick a move index: greedy at temperature 0, sampled otherwise."""
        policy = self.get_policy(temperature)
        if temperature == 0:
            return int(np.argmax(policy))
        return int(rng.choice(len(policy), p=policy))

    def index_of(self, move: Move) -> Optional[int]:
        """Position of `move` among this node's moves, or None."""
        for i, m in enumerate(self.moves):
            if m.sort_key == move.sort_key:
                return i
        return None

    def __repr__(self) -> str:
        return (
            f"SearchNode(visits={self.total_visits}, expanded={self.is_expanded}, "
            f"terminal={self.is_terminal})"
        )
