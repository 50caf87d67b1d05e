"""Tests for the search engine lifecycle and error handling."""

import threading
import time

import numpy as np
import pytest

from abalonezero.errors import (
    AbaloneZeroError,
    ConfigurationError,
    EvaluationError,
    GameOverError,
    IllegalMoveError,
)
from abalonezero.evaluation import Evaluator, UniformEvaluator
from abalonezero.game import (
    Marble,
    Move,
    MoveKind,
    apply_move,
    empty_board,
    from_board,
    initial_state,
    legal_moves,
)
from abalonezero.mcts import EngineState, MCTSEngine
from abalonezero.utils import Logger, MCTSConfig


class FailingEvaluator(Evaluator):
    """Works for the first `healthy` states, then raises."""

    def __init__(self, healthy=0):
        self.healthy = healthy
        self.inner = UniformEvaluator()

    def evaluate_batch(self, states, moves=None):
        if self.inner.num_states + len(states) > self.healthy:
            raise RuntimeError("backend unavailable")
        return self.inner.evaluate_batch(states, moves)


class SlowEvaluator(UniformEvaluator):
    def evaluate_batch(self, states, moves=None):
        time.sleep(0.002)
        return super().evaluate_batch(states, moves)


class FirstMoveEvaluator(UniformEvaluator):
    """Prior 0.9 on the first legal move everywhere."""

    def evaluate_batch(self, states, moves=None):
        results = super().evaluate_batch(states, moves)
        for result in results:
            first, *rest = result.policy
            result.policy[first] = 0.9
            for move in rest:
                result.policy[move] = 0.1 / len(rest)
        return results


class TestConfiguration:
    def test_zero_simulations_rejected(self):
        evaluator = UniformEvaluator()
        with pytest.raises(ConfigurationError):
            MCTSEngine(evaluator, MCTSConfig(num_simulations=0))
        assert evaluator.num_calls == 0

    def test_no_tree_created(self):
        config = MCTSConfig(num_simulations=0)
        engine = None
        with pytest.raises(ConfigurationError):
            engine = MCTSEngine(UniformEvaluator(), config)
        assert engine is None

    @pytest.mark.parametrize(
        "overrides",
        [
            {"num_workers": 0},
            {"c_puct": 0.0},
            {"c_puct": float("nan")},
            {"c_puct": float("inf")},
            {"time_budget": -1.0},
            {"num_simulations": None, "time_budget": None},
            {"batch_size": 0},
            {"batch_timeout": 0.0},
            {"temperature": -0.5},
            {"cache_size": -1},
            {"min_root_visits": 1.5},
        ],
    )
    def test_invalid_values_rejected(self, overrides):
        with pytest.raises(ConfigurationError):
            MCTSEngine(UniformEvaluator(), MCTSConfig(**overrides))

    def test_configuration_error_is_value_error(self):
        with pytest.raises(ValueError):
            MCTSConfig(num_workers=0).validate()


class TestLifecycle:
    def test_states(self):
        with MCTSEngine(UniformEvaluator(), MCTSConfig(num_simulations=30, num_workers=2)) as engine:
            assert engine.state is EngineState.IDLE
            engine.search(initial_state())
            assert engine.state is EngineState.CONVERGED
            move = engine.select_move(0.0)
            engine.commit(move)
            assert engine.state is EngineState.IDLE

    def test_select_before_search_fails(self):
        with MCTSEngine(UniformEvaluator(), MCTSConfig(num_simulations=10)) as engine:
            with pytest.raises(AbaloneZeroError):
                engine.select_move()

    def test_tree_reused_after_commit(self):
        state = initial_state()
        with MCTSEngine(UniformEvaluator(), MCTSConfig(num_simulations=100, num_workers=1)) as engine:
            engine.search(state)
            move = engine.select_move(0.0)
            engine.commit(move)
            child = apply_move(state, move)

            tree = engine.tree
            carried = tree.root_node.total_visits
            assert tree.root_node.state == child

            result = engine.search(child)
            assert engine.tree is tree
            assert result.visits.sum() == carried + 100

    def test_commit_opponent_reply(self):
        state = initial_state()
        with MCTSEngine(UniformEvaluator(), MCTSConfig(num_simulations=60, num_workers=1)) as engine:
            move = engine.decide(state)
            engine.commit(move)
            state = apply_move(state, move)

            reply = legal_moves(state)[-1]
            engine.commit(reply)
            state = apply_move(state, reply)
            assert engine.tree.root_node.state == state

    def test_commit_illegal_move(self):
        with MCTSEngine(UniformEvaluator(), MCTSConfig(num_simulations=20, num_workers=1)) as engine:
            engine.search(initial_state())
            with pytest.raises(IllegalMoveError):
                engine.commit(Move(((5, 5),), 2, MoveKind.INLINE))

    def test_new_position_builds_new_tree(self):
        with MCTSEngine(UniformEvaluator(), MCTSConfig(num_simulations=20, num_workers=1)) as engine:
            engine.search(initial_state())
            first = engine.tree
            engine.search(initial_state("belgian_daisy"))
            assert engine.tree is not first

    def test_game_over_rejected(self):
        board = empty_board()
        for cell in [(9, 1), (9, 2), (9, 3), (9, 4), (9, 5), (8, 1), (8, 2), (8, 3), (8, 4)]:
            board[cell] = Marble.BLACK
        for cell in [(1, 5), (1, 6), (1, 7), (1, 8), (1, 9), (2, 4), (2, 5), (2, 6)]:
            board[cell] = Marble.WHITE
        state = from_board(board)
        assert state.white_ejected == 6

        with MCTSEngine(UniformEvaluator(), MCTSConfig(num_simulations=10)) as engine:
            with pytest.raises(GameOverError):
                engine.search(state)
            assert engine.tree is None
            assert engine.state is EngineState.IDLE

    def test_temperature_schedule(self):
        config = MCTSConfig(num_simulations=10, temperature=1.0, temp_threshold=2)
        with MCTSEngine(UniformEvaluator(), config) as engine:
            state = initial_state()
            assert engine.temperature_for(state) == 1.0
            for _ in range(2):
                state = apply_move(state, legal_moves(state)[0])
            assert engine.temperature_for(state) == 0.0

    def test_dirichlet_noise_keeps_distribution(self):
        config = MCTSConfig(num_simulations=30, num_workers=1, add_noise=True)
        rng = np.random.default_rng(0)
        with MCTSEngine(UniformEvaluator(), config, rng=rng) as engine:
            engine.search(initial_state())
            root = engine.tree.root_node
            assert np.isclose(root.P.sum(), 1.0)
            assert not np.allclose(root.P, root.P_raw)
            assert np.allclose(root.P_raw, 1.0 / len(root.moves))


class TestEvaluationFailure:
    def test_failure_aborts_decision(self):
        with MCTSEngine(FailingEvaluator(healthy=0), MCTSConfig(num_simulations=50)) as engine:
            with pytest.raises(EvaluationError):
                engine.search(initial_state())
            assert engine.state is EngineState.IDLE

    def test_failure_mid_search_rolls_back(self):
        evaluator = FailingEvaluator(healthy=10)
        config = MCTSConfig(num_simulations=200, num_workers=4, batch_size=4)
        with MCTSEngine(evaluator, config) as engine:
            with pytest.raises(EvaluationError) as excinfo:
                engine.search(initial_state())
            assert isinstance(excinfo.value.__cause__, RuntimeError)
            assert engine.state is EngineState.IDLE

            tree = engine.tree
            for h in range(len(tree)):
                node = tree.node(h)
                assert node.virtual_loss.sum() == 0
                assert not node.is_pending
            assert tree.root_node.N.sum() < 200

    def test_engine_usable_after_failure(self):
        evaluator = FailingEvaluator(healthy=5)
        config = MCTSConfig(num_simulations=40, num_workers=2)
        with MCTSEngine(evaluator, config) as engine:
            with pytest.raises(EvaluationError):
                engine.search(initial_state())
            evaluator.healthy = 10_000
            result = engine.search(initial_state())
            assert result.simulations == 40


class TestBudgets:
    def test_time_budget_returns_move(self):
        config = MCTSConfig(num_simulations=None, time_budget=0.2, num_workers=2)
        with MCTSEngine(SlowEvaluator(), config) as engine:
            start = time.monotonic()
            result = engine.search(initial_state())
            elapsed = time.monotonic() - start

            assert result.simulations > 0
            assert result.visits.sum() == result.simulations
            assert elapsed < 2.0
            assert engine.select_move(0.0) in result.moves

    def test_time_budget_cuts_simulation_budget(self):
        config = MCTSConfig(num_simulations=1_000_000, time_budget=0.1, num_workers=2)
        with MCTSEngine(SlowEvaluator(), config) as engine:
            result = engine.search(initial_state())
            assert result.stopped_early
            assert result.simulations < 1_000_000

    def test_stop_from_another_thread(self):
        config = MCTSConfig(num_simulations=1_000_000, num_workers=2)
        with MCTSEngine(SlowEvaluator(), config) as engine:
            timer = threading.Timer(0.1, engine.stop)
            timer.start()
            result = engine.search(initial_state())
            timer.join()

            assert result.stopped_early
            assert result.visits.sum() == result.simulations


class TestLogging:
    def test_decision_metrics_written(self, tmp_path):
        logger = Logger(log_dir=str(tmp_path), verbose=False)
        config = MCTSConfig(num_simulations=40, num_workers=2)
        with MCTSEngine(UniformEvaluator(), config, logger=logger) as engine:
            engine.search(initial_state())

        assert len(logger.metrics_history) == 1
        metrics = logger.metrics_history[0]
        assert metrics.simulations == 40
        assert metrics.batches >= 1
        assert 0.0 <= metrics.inference_time <= metrics.elapsed
        assert logger.log_file.exists()
        assert len(logger.log_file.read_text().splitlines()) == 1

    def test_evaluation_failure_logged(self, capsys):
        logger = Logger(verbose=True)
        with MCTSEngine(FailingEvaluator(healthy=0), MCTSConfig(num_simulations=20), logger=logger) as engine:
            with pytest.raises(EvaluationError):
                engine.search(initial_state())

        assert "aborted" in capsys.readouterr().out
        assert logger.metrics_history == []

    def test_early_stop_logged(self, capsys):
        logger = Logger(verbose=True)
        config = MCTSConfig(num_simulations=1_000_000, time_budget=0.1, num_workers=2)
        with MCTSEngine(SlowEvaluator(), config, logger=logger) as engine:
            result = engine.search(initial_state())

        assert result.stopped_early
        assert "stopped early after" in capsys.readouterr().out

    def test_full_search_has_no_warning(self, capsys):
        logger = Logger(verbose=True)
        with MCTSEngine(UniformEvaluator(), MCTSConfig(num_simulations=20), logger=logger) as engine:
            engine.search(initial_state())

        assert "stopped early after" not in capsys.readouterr().out


class TestEvaluationCache:
    def test_disabled_by_default(self):
        with MCTSEngine(UniformEvaluator(), MCTSConfig(num_simulations=10)) as engine:
            assert engine.cache is None

    def test_cache_survives_new_tree(self):
        evaluator = UniformEvaluator()
        config = MCTSConfig(num_simulations=30, num_workers=1, cache_size=1000)
        with MCTSEngine(evaluator, config) as engine:
            engine.search(initial_state())
            engine.search(initial_state("belgian_daisy"))
            evaluated = evaluator.num_states

            result = engine.search(initial_state())
            assert result.simulations == 30
            assert evaluator.num_states == evaluated
            assert engine.cache.hits >= 31

    def test_cache_is_bounded(self):
        config = MCTSConfig(num_simulations=60, num_workers=2, cache_size=10)
        with MCTSEngine(UniformEvaluator(), config) as engine:
            engine.search(initial_state())
            assert len(engine.cache) == 10
            assert engine.cache.evictions > 0


class TestMinimumRootVisits:
    def test_every_root_move_visited(self):
        config = MCTSConfig(num_simulations=200, num_workers=2, min_root_visits=3)
        with MCTSEngine(FirstMoveEvaluator(), config) as engine:
            result = engine.search(initial_state())
            assert result.visits.min() >= 3
            assert result.visits.sum() == 200
            assert result.best_move == result.moves[0]

    def test_strong_prior_starves_siblings_without_minimum(self):
        config = MCTSConfig(num_simulations=200, num_workers=1)
        with MCTSEngine(FirstMoveEvaluator(), config) as engine:
            result = engine.search(initial_state())
            assert result.visits.min() == 0

    def test_negative_minimum_rejected(self):
        with pytest.raises(ConfigurationError):
            MCTSEngine(UniformEvaluator(), MCTSConfig(min_root_visits=-1))
