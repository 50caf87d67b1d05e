"""
Self-play worker for generating training games.

Plays games with the MCTS engine on both sides, collecting
(state, policy, value) samples for an external trainer.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional
import numpy as np

from ..game import (
    Marble,
    Move,
    apply_move,
    encode_state,
    initial_state,
    is_terminal,
    legal_moves,
    policy_to_vector,
)
from ..evaluation import uniform_policy
from ..mcts import MCTSEngine
from ..utils.config import SelfPlayConfig
from ..utils.logging import create_progress


@dataclass
class GameRecord:
    """Record of a complete self-play game."""

    states: List[np.ndarray]  # Encoded states
    policies: List[np.ndarray]  # Search policies over the action table
    players: List[Marble]  # Side to move at each recorded state
    outcome: float  # +1 Black wins, -1 White wins, 0 draw
    moves: List[Move]
    num_moves: int

    def value_targets(self) -> np.ndarray:
        """Game outcome from each recorded state's side to move."""
        return np.array(
            [self.outcome if p == Marble.BLACK else -self.outcome for p in self.players],
            dtype=np.float32,
        )


def _black_outcome(to_move: Marble, value: float) -> float:
    """Convert a side-to-move value into Black's perspective."""
    return value if to_move == Marble.BLACK else -value


class SelfPlayWorker:
    """
    Self-play game generator.

    The engine's tree is carried from move to move through commit, so each
    search starts from the subtree the previous one already explored.

    Args:
        engine: Search engine used for both sides
        config: Game length cap and start layout
    """

    def __init__(self, engine: MCTSEngine, config: Optional[SelfPlayConfig] = None):
        self.engine = engine
        self.config = config or SelfPlayConfig()

    def play_game(self) -> GameRecord:
        """
        Play a complete self-play game.

        Games reaching max_moves are scored as draws.
        """
        state = initial_state(self.config.layout)
        states: List[np.ndarray] = []
        policies: List[np.ndarray] = []
        players: List[Marble] = []
        moves: List[Move] = []

        while True:
            done, value = is_terminal(state)
            if done:
                outcome = _black_outcome(state.to_move, value)
                break
            if len(moves) >= self.config.max_moves:
                outcome = 0.0
                break

            self.engine.search(state)
            temperature = self.engine.temperature_for(state)

            states.append(encode_state(state))
            policies.append(self.engine.visit_policy(temperature))
            players.append(state.to_move)

            move = self.engine.select_move(temperature)
            self.engine.commit(move)
            moves.append(move)
            state = apply_move(state, move)

        return GameRecord(
            states=states,
            policies=policies,
            players=players,
            outcome=outcome,
            moves=moves,
            num_moves=len(moves),
        )

    def generate_games(self, num_games: Optional[int] = None, progress: bool = False) -> List[GameRecord]:
        """
        Generate multiple self-play games.

        Args:
            num_games: Number of games (defaults to config.num_games)
            progress: Show a rich progress bar

        Returns:
            List of GameRecords
        """
        if num_games is None:
            num_games = self.config.num_games

        if not progress:
            return [self.play_game() for _ in range(num_games)]

        games = []
        with create_progress() as bar:
            task = bar.add_task("Self-play", total=num_games)
            for _ in range(num_games):
                games.append(self.play_game())
                bar.advance(task)
        return games


def play_random_game(
    rng: np.random.Generator,
    layout: str = "belgian_daisy",
    max_moves: int = 200,
) -> GameRecord:
    """Play a game with uniformly random moves (for testing)."""
    state = initial_state(layout)
    states = []
    policies = []
    players = []
    moves = []

    while True:
        done, value = is_terminal(state)
        if done:
            outcome = _black_outcome(state.to_move, value)
            break
        if len(moves) >= max_moves:
            outcome = 0.0
            break

        legal = legal_moves(state)
        states.append(encode_state(state))
        policies.append(policy_to_vector(uniform_policy(legal)))
        players.append(state.to_move)

        move = legal[int(rng.integers(len(legal)))]
        moves.append(move)
        state = apply_move(state, move)

    return GameRecord(
        states=states,
        policies=policies,
        players=players,
        outcome=outcome,
        moves=moves,
        num_moves=len(moves),
    )
