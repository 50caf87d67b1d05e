"""Tests for evaluators and the batching aggregator."""

from concurrent.futures import ThreadPoolExecutor, wait
import threading

import pytest

from abalonezero.errors import EvaluationError
from abalonezero.evaluation import (
    BatchingEvaluator,
    Evaluation,
    EvaluationCache,
    Evaluator,
    MaterialEvaluator,
    UniformEvaluator,
)
from abalonezero.game import Marble, empty_board, from_board, initial_state, legal_moves


class BrokenEvaluator(Evaluator):
    def evaluate_batch(self, states, moves=None):
        raise RuntimeError("device lost")


class ShortEvaluator(UniformEvaluator):
    """Drops the last result of every batch."""

    def evaluate_batch(self, states, moves=None):
        return super().evaluate_batch(states, moves)[:-1]


class GatedEvaluator(UniformEvaluator):
    """Blocks until released, so requests pile up in the queue."""

    def __init__(self):
        super().__init__()
        self.gate = threading.Event()
        self.batch_sizes = []

    def evaluate_batch(self, states, moves=None):
        self.gate.wait(5.0)
        self.batch_sizes.append(len(states))
        return super().evaluate_batch(states, moves)


class TestUniformEvaluator:
    def test_policy_sums_to_one(self):
        state = initial_state()
        result = UniformEvaluator().evaluate(state)
        assert set(result.policy) == set(legal_moves(state))
        assert sum(result.policy.values()) == pytest.approx(1.0)
        assert result.value == 0.0

    def test_uses_given_moves(self):
        state = initial_state()
        moves = legal_moves(state)[:3]
        result = UniformEvaluator().evaluate(state, moves)
        assert list(result.policy) == moves


class TestMaterialEvaluator:
    def test_even_material(self):
        assert MaterialEvaluator().evaluate(initial_state()).value == 0.0

    def test_ahead_in_material(self):
        board = empty_board()
        for c in range(1, 6):
            board[9, c] = Marble.BLACK
        for c in range(1, 7):
            board[8, c] = Marble.BLACK
        for c in range(5, 10):
            board[1, c] = Marble.WHITE
        for c in range(4, 9):
            board[2, c] = Marble.WHITE
        state = from_board(board)
        # Black lost 3, White lost 4
        value = MaterialEvaluator().evaluate(state).value
        assert 0.0 < value < 1.0


class TestBatchingEvaluator:
    def test_single_request(self):
        with BatchingEvaluator(UniformEvaluator(), max_batch_size=4) as batcher:
            result = batcher.submit(initial_state()).result(timeout=5)
            assert sum(result.policy.values()) == pytest.approx(1.0)

    def test_results_routed_to_requesters(self):
        states = [initial_state(), initial_state("belgian_daisy")] * 4
        with BatchingEvaluator(UniformEvaluator(), max_batch_size=8, max_latency=0.05) as batcher:
            with ThreadPoolExecutor(max_workers=8) as pool:
                futures = [pool.submit(batcher.evaluate, s) for s in states]
                results = [f.result(timeout=5) for f in futures]

        for state, result in zip(states, results):
            assert set(result.policy) == set(legal_moves(state))

    def test_requests_are_batched(self):
        inner = GatedEvaluator()
        batcher = BatchingEvaluator(inner, max_batch_size=4, max_latency=0.01)
        batcher.start()
        try:
            first = batcher.submit(initial_state())
            # Give the aggregator time to pick up the first request
            threading.Event().wait(0.1)
            rest = [batcher.submit(initial_state()) for _ in range(4)]
            inner.gate.set()
            for f in [first] + rest:
                f.result(timeout=5)
        finally:
            batcher.close()

        assert inner.batch_sizes[0] == 1
        assert inner.batch_sizes[1] == 4
        assert batcher.total_requests == 5
        assert batcher.total_batches == 2
        assert batcher.mean_batch_size == pytest.approx(2.5)

    def test_backend_error_reaches_every_request(self):
        with BatchingEvaluator(BrokenEvaluator(), max_batch_size=4, max_latency=0.05) as batcher:
            futures = [batcher.submit(initial_state()) for _ in range(3)]
            for f in futures:
                with pytest.raises(EvaluationError) as excinfo:
                    f.result(timeout=5)
                assert isinstance(excinfo.value.__cause__, RuntimeError)

    def test_aggregator_survives_errors(self):
        with BatchingEvaluator(BrokenEvaluator(), max_batch_size=1) as batcher:
            for _ in range(2):
                with pytest.raises(EvaluationError):
                    batcher.submit(initial_state()).result(timeout=5)

    def test_wrong_result_count(self):
        with BatchingEvaluator(ShortEvaluator(), max_batch_size=1) as batcher:
            with pytest.raises(EvaluationError):
                batcher.submit(initial_state()).result(timeout=5)

    def test_submit_after_close(self):
        batcher = BatchingEvaluator(UniformEvaluator())
        batcher.start()
        batcher.close()
        with pytest.raises(EvaluationError):
            batcher.submit(initial_state())

    def test_invalid_batch_size(self):
        with pytest.raises(ValueError):
            BatchingEvaluator(UniformEvaluator(), max_batch_size=0)

    def test_close_while_submitting(self):
        for _ in range(20):
            batcher = BatchingEvaluator(UniformEvaluator(), max_batch_size=4, max_latency=0.001)
            batcher.start()
            futures = []

            def flood():
                for _ in range(200):
                    try:
                        futures.append(batcher.submit(initial_state()))
                    except EvaluationError:
                        return

            thread = threading.Thread(target=flood)
            thread.start()
            batcher.close()
            thread.join()

            # Every accepted request is either served or failed, none left hanging
            _, pending = wait(futures, timeout=5)
            assert not pending


class TestEvaluationCache:
    def make_evaluation(self, value):
        return Evaluation(policy={}, value=value)

    def test_get_and_put(self):
        cache = EvaluationCache(max_entries=4)
        assert cache.get(1) is None
        cache.put(1, self.make_evaluation(0.5))
        assert cache.get(1).value == 0.5
        assert cache.hits == 1
        assert cache.misses == 1
        assert cache.hit_rate == pytest.approx(0.5)

    def test_least_recently_used_evicted(self):
        cache = EvaluationCache(max_entries=2)
        cache.put(1, self.make_evaluation(0.1))
        cache.put(2, self.make_evaluation(0.2))
        cache.get(1)
        cache.put(3, self.make_evaluation(0.3))

        assert 1 in cache
        assert 2 not in cache
        assert 3 in cache
        assert len(cache) == 2
        assert cache.evictions == 1

    def test_clear(self):
        cache = EvaluationCache(max_entries=2)
        cache.put(1, self.make_evaluation(0.1))
        cache.get(1)
        cache.clear()
        assert len(cache) == 0
        assert cache.hits == 0

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            EvaluationCache(max_entries=0)
