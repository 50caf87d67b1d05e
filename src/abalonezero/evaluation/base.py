"""
Evaluator capability interface.

An evaluator maps game states to (policy, value) pairs:
- policy: probability for every legal move, summing to 1
- value: expected outcome in [-1, 1] for the side to move

Search code only depends on evaluate_batch, so model runtimes can be
swapped without touching the engine.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
import math
from typing import Optional, Sequence

from ..game import GameState, Move, legal_moves


@dataclass(frozen=True)
class Evaluation:
    """Evaluator output for a single state."""
    policy: dict[Move, float]
    value: float


class Evaluator(ABC):
    """
    Abstract policy/value evaluator.

    Implementations receive whole batches so they can amortise fixed
    per-call overhead (e.g. one network forward pass per batch).
    """

    @abstractmethod
    def evaluate_batch(
        self,
        states: Sequence[GameState],
        moves: Optional[Sequence[Sequence[Move]]] = None,
    ) -> list[Evaluation]:
        """
        Evaluate several states.

        Args:
            states: States to evaluate
            moves: Precomputed legal moves per state (computed if None)

        Returns:
            One Evaluation per state, in the same order

        Raises:
            EvaluationError: if the backend fails
        """

    def evaluate(self, state: GameState, moves: Optional[Sequence[Move]] = None) -> Evaluation:
        """Evaluate a single state."""
        return self.evaluate_batch([state], None if moves is None else [moves])[0]


def legal_moves_for(
    states: Sequence[GameState],
    moves: Optional[Sequence[Sequence[Move]]],
) -> list[Sequence[Move]]:
    """Use precomputed legal moves when given, otherwise generate them."""
    if moves is None:
        return [legal_moves(s) for s in states]
    return list(moves)


def uniform_policy(moves: Sequence[Move]) -> dict[Move, float]:
    """Equal probability over the given moves."""
    if not moves:
        return {}
    p = 1.0 / len(moves)
    return {m: p for m in moves}


class UniformEvaluator(Evaluator):
    """
    Uniform policy with a constant value.

    Useful for testing the search and as a model-free baseline.

    Args:
        value: Value returned for every state
    """

    def __init__(self, value: float = 0.0):
        self.value = value
        self.num_calls = 0
        self.num_states = 0

    def evaluate_batch(self, states, moves=None):
        self.num_calls += 1
        self.num_states += len(states)
        return [
            Evaluation(policy=uniform_policy(m), value=self.value)
            for m in legal_moves_for(states, moves)
        ]


class MaterialEvaluator(Evaluator):
    """
    Uniform policy, value from the ejected-marble balance.

    value = tanh(scale * (opponent_ejected - own_ejected))
    """

    def __init__(self, scale: float = 0.5):
        self.scale = scale

    def evaluate_batch(self, states, moves=None):
        results = []
        for state, m in zip(states, legal_moves_for(states, moves)):
            balance = state.ejected(state.opponent) - state.ejected(state.to_move)
            results.append(Evaluation(
                policy=uniform_policy(m),
                value=math.tanh(self.scale * balance),
            ))
        return results
