"""Tests for self-play game generation."""

import numpy as np

from abalonezero.evaluation import MaterialEvaluator, UniformEvaluator
from abalonezero.game import NUM_ACTIONS, NUM_CHANNELS, Marble
from abalonezero.mcts import MCTSEngine
from abalonezero.selfplay import SelfPlayWorker, play_random_game
from abalonezero.utils import MCTSConfig, SelfPlayConfig


class TestSelfPlayWorker:
    def test_short_game(self):
        config = MCTSConfig(num_simulations=16, num_workers=2, add_noise=True)
        with MCTSEngine(UniformEvaluator(), config, rng=np.random.default_rng(0)) as engine:
            worker = SelfPlayWorker(engine, SelfPlayConfig(max_moves=6))
            record = worker.play_game()

        assert record.num_moves == 6
        assert record.outcome == 0.0
        assert len(record.states) == len(record.policies) == len(record.players) == 6
        assert record.states[0].shape == (NUM_CHANNELS, 11, 11)
        assert record.policies[0].shape == (NUM_ACTIONS,)
        assert np.isclose(record.policies[0].sum(), 1.0)
        assert record.players[:2] == [Marble.BLACK, Marble.WHITE]

    def test_generate_games(self):
        config = MCTSConfig(num_simulations=8, num_workers=1)
        with MCTSEngine(MaterialEvaluator(), config) as engine:
            worker = SelfPlayWorker(engine, SelfPlayConfig(num_games=2, max_moves=3))
            games = worker.generate_games()
        assert len(games) == 2
        assert all(g.num_moves == 3 for g in games)


class TestRandomGame:
    def test_random_game(self):
        record = play_random_game(np.random.default_rng(0), max_moves=30)
        assert record.num_moves == 30
        assert all(np.isclose(p.sum(), 1.0) for p in record.policies)

    def test_value_targets_follow_side_to_move(self):
        record = play_random_game(np.random.default_rng(1), max_moves=4)
        record.outcome = 1.0
        targets = record.value_targets()
        assert list(targets) == [1.0, -1.0, 1.0, -1.0]
