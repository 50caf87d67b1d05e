"""
Batched evaluation for concurrent search workers.

Workers submit single-state requests; one aggregator thread gathers them
into batches and calls the wrapped evaluator once per batch.

Aggregator loop:
1. Block (with timeout) until the first request arrives
2. Keep collecting until max_batch_size requests or max_latency elapsed
3. Evaluate the batch and resolve each request's future

Every request carries its own Future, so results are routed back to the
submitting worker regardless of completion order.
"""

from __future__ import annotations

from concurrent.futures import Future
from dataclasses import dataclass, field
from queue import Empty, Queue
import threading
import time
from typing import Optional, Sequence

from ..errors import EvaluationError
from ..game import GameState, Move, legal_moves
from .base import Evaluator


@dataclass
class EvaluationRequest:
    """A state waiting for evaluation, with the channel for its result."""
    state: GameState
    moves: Sequence[Move]
    future: Future = field(default_factory=Future)


class BatchingEvaluator(Evaluator):
    """
    Evaluator front-end that batches requests from many threads.

    Args:
        evaluator: Backend evaluator called once per batch
        max_batch_size: Maximum requests per backend call
        max_latency: Seconds to keep filling a batch after its first request
        poll_interval: Seconds between stop-flag checks while idle
    """

    def __init__(
        self,
        evaluator: Evaluator,
        max_batch_size: int = 8,
        max_latency: float = 0.005,
        poll_interval: float = 0.05,
    ):
        if max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        self.evaluator = evaluator
        self.max_batch_size = max_batch_size
        self.max_latency = max_latency
        self.poll_interval = poll_interval

        self.request_queue: Queue[EvaluationRequest] = Queue()

        self.running = False
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

        # Statistics
        self.total_requests = 0
        self.total_batches = 0
        self.total_inference_time = 0.0  # Seconds spent inside the backend

    def start(self) -> None:
        """Start the aggregator thread (no-op if already running)."""
        with self._lock:
            if self.running:
                return
            self.running = True
            self._thread = threading.Thread(
                target=self._serve, name="evaluation-aggregator", daemon=True
            )
            self._thread.start()

    def close(self) -> None:
        """Stop the aggregator and fail any request still queued."""
        with self._lock:
            if not self.running:
                return
            self.running = False
            thread = self._thread
            self._thread = None
        if thread is not None:
            thread.join()

        while True:
            try:
                request = self.request_queue.get_nowait()
            except Empty:
                break
            request.future.set_exception(EvaluationError("Evaluator was closed"))

    def __enter__(self) -> BatchingEvaluator:
        self.start()
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    @property
    def mean_batch_size(self) -> float:
        return self.total_requests / self.total_batches if self.total_batches else 0.0

    def submit(self, state: GameState, moves: Optional[Sequence[Move]] = None) -> Future:
        """
        Enqueue a state for evaluation.

        Returns:
            Future resolved with an Evaluation, or with EvaluationError
        """
        if moves is None:
            moves = legal_moves(state)
        request = EvaluationRequest(state=state, moves=moves)
        # close() drains the queue after clearing `running` under this lock,
        # so a request enqueued here is always either served or failed
        with self._lock:
            if not self.running:
                raise EvaluationError("Evaluator is not running")
            self.request_queue.put(request)
        return request.future

    def evaluate_batch(self, states, moves=None):
        """Submit every state and block until all results are in."""
        if moves is None:
            moves = [None] * len(states)
        futures = [self.submit(s, m) for s, m in zip(states, moves)]
        return [f.result() for f in futures]

    def _serve(self) -> None:
        while self.running:
            batch = self._collect_batch()
            if batch:
                self._process_batch(batch)

    def _collect_batch(self) -> list[EvaluationRequest]:
        """Wait for a first request, then fill until full or max_latency passes."""
        batch: list[EvaluationRequest] = []
        try:
            batch.append(self.request_queue.get(timeout=self.poll_interval))
        except Empty:
            return batch

        deadline = time.monotonic() + self.max_latency
        while len(batch) < self.max_batch_size:
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            try:
                batch.append(self.request_queue.get(timeout=remaining))
            except Empty:
                break
        return batch

    def _process_batch(self, batch: list[EvaluationRequest]) -> None:
        start = time.monotonic()
        try:
            results = self.evaluator.evaluate_batch(
                [r.state for r in batch],
                [r.moves for r in batch],
            )
            if len(results) != len(batch):
                raise EvaluationError(
                    f"Evaluator returned {len(results)} results for {len(batch)} states"
                )
        except EvaluationError as e:
            self._fail(batch, e)
            return
        except Exception as e:
            # Backend errors must reach the waiting workers, not kill this thread
            error = EvaluationError(f"Evaluator backend failed: {e}")
            error.__cause__ = e
            self._fail(batch, error)
            return

        self.total_requests += len(batch)
        self.total_batches += 1
        self.total_inference_time += time.monotonic() - start

        for request, result in zip(batch, results):
            request.future.set_result(result)

    @staticmethod
    def _fail(batch: list[EvaluationRequest], error: EvaluationError) -> None:
        for request in batch:
            request.future.set_exception(error)
