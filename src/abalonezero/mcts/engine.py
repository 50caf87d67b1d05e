"""
Parallel MCTS engine.

A fixed pool of worker threads runs simulations against one shared tree:

1. Select: descend with PUCT, adding virtual loss to every edge taken
2. Evaluate: submit the leaf to the batching evaluator and wait on its future
3. Expand: store the leaf's legal moves and priors
4. Backup: add the value to every edge on the path, flipping sign per ply,
   and remove the virtual loss

Virtual loss makes an in-flight edge look like a loss, which pushes other
workers onto different paths until the real value arrives. A worker that
still lands on a leaf whose evaluation is pending (a collision) backs out
its virtual loss, waits for the leaf to become ready and retries.

Only per-node locks guard statistics; there is no lock over the whole tree.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass
from enum import Enum
import threading
import time
from typing import Optional
import numpy as np

from ..errors import AbaloneZeroError, EvaluationError, GameOverError
from ..evaluation import (
    BatchingEvaluator,
    Evaluation,
    EvaluationCache,
    Evaluator,
    NetworkEvaluator,
)
from ..game import NUM_ACTIONS, GameState, Move, game_outcome, is_terminal, legal_moves
from ..net import create_model
from ..utils.config import Config, MCTSConfig
from ..utils.device import get_device
from ..utils.logging import DecisionMetrics, Logger
from ..utils.seed import make_rng, set_seed
from .tree import SearchTree

# Seconds a colliding worker waits for a pending leaf before re-checking
COLLISION_WAIT = 0.05


class EngineState(Enum):
    IDLE = "idle"
    RUNNING = "running"
    CONVERGED = "converged"


@dataclass
class SearchResult:
    """Root statistics after a search."""
    moves: list[Move]
    visits: np.ndarray
    priors: np.ndarray
    q_values: np.ndarray
    simulations: int
    elapsed: float
    stopped_early: bool
    root_value: float

    @property
    def best_move(self) -> Move:
        """Most visited move (highest prior if nothing was visited)."""
        if self.visits.sum() == 0:
            return self.moves[int(np.argmax(self.priors))]
        return self.moves[int(np.argmax(self.visits))]

    def visit_counts(self) -> dict[Move, int]:
        return {m: int(n) for m, n in zip(self.moves, self.visits)}


class _SearchContext:
    """Budget, deadline and stop flag shared by the workers of one search."""

    def __init__(self, budget: Optional[int], deadline: Optional[float], stop: threading.Event):
        self.budget = budget
        self.deadline = deadline
        self.stop = stop
        self.claimed = 0
        self.completed = 0
        self.collisions = 0
        self._lock = threading.Lock()

    def out_of_time(self) -> bool:
        return self.deadline is not None and time.monotonic() >= self.deadline

    def should_stop(self) -> bool:
        return self.stop.is_set() or self.out_of_time()

    def claim(self) -> bool:
        """Reserve one simulation slot; False once the budget is spent."""
        with self._lock:
            if self.should_stop():
                return False
            if self.budget is not None and self.claimed >= self.budget:
                return False
            self.claimed += 1
            return True

    def unclaim(self) -> None:
        with self._lock:
            self.claimed -= 1

    def finish(self) -> None:
        with self._lock:
            self.completed += 1

    def collided(self) -> None:
        with self._lock:
            self.collisions += 1


class MCTSEngine:
    """
    Multi-threaded MCTS with virtual loss and batched evaluation.

    Args:
        evaluator: Policy/value evaluator (wrapped in a BatchingEvaluator)
        config: Search configuration, validated before anything is built
        rng: Random generator for move sampling and root noise
        logger: Optional logger receiving one DecisionMetrics per search

    Raises:
        ConfigurationError: if the configuration is invalid
    """

    def __init__(
        self,
        evaluator: Evaluator,
        config: Optional[MCTSConfig] = None,
        rng: Optional[np.random.Generator] = None,
        logger: Optional[Logger] = None,
    ):
        self.config = config or MCTSConfig()
        self.config.validate()

        self.rng = rng if rng is not None else make_rng()
        self.logger = logger
        self.state = EngineState.IDLE
        self.tree: Optional[SearchTree] = None
        self.last_result: Optional[SearchResult] = None

        self._stop = threading.Event()
        self._batcher = BatchingEvaluator(
            evaluator,
            max_batch_size=min(self.config.batch_size, self.config.num_workers),
            max_latency=self.config.batch_timeout,
        )
        self._batcher.start()
        self.cache: Optional[EvaluationCache] = None
        if self.config.cache_size > 0:
            self.cache = EvaluationCache(self.config.cache_size)
        self._pool = ThreadPoolExecutor(
            max_workers=self.config.num_workers,
            thread_name_prefix="mcts-worker",
        )

    @classmethod
    def from_config(cls, config: Config, evaluator: Optional[Evaluator] = None) -> MCTSEngine:
        """
        Build an engine from a full Config.

        Seeds the global generators, then uses `evaluator` if given, the
        checkpoint if configured, or else a freshly initialised network.
        """
        set_seed(config.seed)
        if evaluator is None:
            device = get_device(config.device)
            if config.checkpoint is not None:
                evaluator = NetworkEvaluator.from_checkpoint(config.checkpoint, device)
            else:
                model = create_model(
                    num_channels=config.network.num_channels,
                    num_blocks=config.network.num_blocks,
                    device=device,
                )
                evaluator = NetworkEvaluator(model.freeze(), device)

        logger = Logger(config.log_dir, verbose=False) if config.log_dir else None
        return cls(evaluator, config.mcts, rng=make_rng(config.seed), logger=logger)

    def __enter__(self) -> MCTSEngine:
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def close(self) -> None:
        """Shut down the worker pool and the evaluation aggregator."""
        self._stop.set()
        self._pool.shutdown(wait=True)
        self._batcher.close()

    def stop(self) -> None:
        """Ask the running search to finish after its in-flight simulations."""
        self._stop.set()

    def search(self, state: GameState) -> SearchResult:
        """
        Run simulations from `state` until the budget or deadline is reached.

        The tree is reused when `state` is its current root (after commit).

        Raises:
            GameOverError: if `state` is terminal
            EvaluationError: if the evaluator fails; the engine returns to IDLE
        """
        if self.state is EngineState.RUNNING:
            raise AbaloneZeroError("A search is already running")
        done, _ = is_terminal(state)
        if done:
            raise GameOverError(f"Game is over at move {state.move_number}")

        if self.tree is None or self.tree.root_node.state != state:
            self.tree = SearchTree(state, transpositions=self.config.transpositions)

        self.state = EngineState.RUNNING
        self._stop.clear()
        start = time.monotonic()
        batches_before = self._batcher.total_batches
        requests_before = self._batcher.total_requests
        inference_before = self._batcher.total_inference_time

        deadline = None
        if self.config.time_budget is not None:
            deadline = start + self.config.time_budget
        ctx = _SearchContext(self.config.num_simulations, deadline, self._stop)

        try:
            self._prepare_root(self.tree)
            futures = [
                self._pool.submit(self._run_worker, self.tree, ctx)
                for _ in range(self.config.num_workers)
            ]
            wait(futures)
            errors = [f.exception() for f in futures if f.exception() is not None]
            if errors:
                evaluation_errors = [e for e in errors if isinstance(e, EvaluationError)]
                raise (evaluation_errors or errors)[0]
        except EvaluationError as e:
            self.state = EngineState.IDLE
            if self.logger is not None:
                self.logger.log_error(f"Search at move {state.move_number} aborted: {e}")
            raise
        except BaseException:
            self.state = EngineState.IDLE
            raise

        elapsed = time.monotonic() - start
        root = self.tree.root_node
        result = SearchResult(
            moves=list(root.moves),
            visits=root.N.copy(),
            priors=root.P.copy(),
            q_values=root.Q.copy(),
            simulations=ctx.completed,
            elapsed=elapsed,
            stopped_early=self._stop.is_set()
            or (self.config.num_simulations is not None and ctx.completed < self.config.num_simulations),
            root_value=root.mean_value,
        )
        self.last_result = result
        self.state = EngineState.CONVERGED

        if self.logger is not None:
            batches = self._batcher.total_batches - batches_before
            requests = self._batcher.total_requests - requests_before
            best = result.best_move
            self.logger.log_decision(DecisionMetrics(
                move_number=state.move_number,
                simulations=result.simulations,
                elapsed=elapsed,
                batches=batches,
                mean_batch_size=requests / batches if batches else 0.0,
                inference_time=self._batcher.total_inference_time - inference_before,
                collisions=ctx.collisions,
                tree_size=len(self.tree),
                best_move=str(best),
                best_visits=result.visit_counts()[best],
                root_value=result.root_value,
                stopped_early=result.stopped_early,
            ))
            if result.stopped_early:
                self.logger.log_warning(
                    f"Search at move {state.move_number} stopped early after "
                    f"{result.simulations} simulations"
                )

        return result

    def select_move(self, temperature: Optional[float] = None) -> Move:
        """
        Choose a root move from the last search.

        Args:
            temperature: 0 for greedy (canonical tie-break), otherwise sample
                from N^(1/T); defaults to the configured temperature
        """
        if self.state is not EngineState.CONVERGED or self.tree is None:
            raise AbaloneZeroError("select_move requires a completed search")
        if temperature is None:
            temperature = self.config.temperature
        root = self.tree.root_node
        return root.moves[root.select_action(temperature, self.rng)]

    def temperature_for(self, state: GameState) -> float:
        """Configured temperature early in the game, greedy afterwards."""
        if state.move_number < self.config.temp_threshold:
            return self.config.temperature
        return 0.0

    def decide(self, state: GameState) -> Move:
        """Search `state` and pick a move with the temperature schedule."""
        self.search(state)
        return self.select_move(self.temperature_for(state))

    def commit(self, move: Move) -> None:
        """
        Advance the tree past `move` (either side's) and return to IDLE.

        Raises:
            IllegalMoveError: if `move` is not legal at the root
        """
        if self.state is EngineState.RUNNING:
            raise AbaloneZeroError("Cannot commit while a search is running")
        if self.tree is not None:
            self.tree.reroot(move)
        self.state = EngineState.IDLE

    def visit_policy(self, temperature: float = 1.0) -> np.ndarray:
        """Root visit distribution over the full action table."""
        if self.tree is None:
            raise AbaloneZeroError("No search has been run")
        root = self.tree.root_node
        policy = np.zeros(NUM_ACTIONS, dtype=np.float32)
        for move, p in zip(root.moves, root.get_policy(temperature)):
            policy[move.action_index] = p
        return policy

    def _prepare_root(self, tree: SearchTree) -> None:
        root = tree.root_node
        if not root.is_expanded:
            value = self._evaluate_leaf(tree, tree.root)
            if value is None:
                raise AbaloneZeroError("Root evaluation did not complete")
        if self.config.add_noise:
            with root.lock:
                root.add_dirichlet_noise(
                    self.rng, self.config.dirichlet_alpha, self.config.dirichlet_epsilon
                )

    def _run_worker(self, tree: SearchTree, ctx: _SearchContext) -> None:
        try:
            while ctx.claim():
                self._simulate(tree, ctx)
        except BaseException:
            ctx.stop.set()
            raise

    def _simulate(self, tree: SearchTree, ctx: _SearchContext) -> None:
        """Run one simulation, retrying after collisions."""
        while True:
            path, leaf, cycle = self._descend(tree)

            if cycle:
                # Repeated position on the path: score the line as a draw
                self._backup(tree, path, 0.0)
                ctx.finish()
                return

            try:
                value = self._evaluate_leaf(tree, leaf)
            except BaseException:
                self._revert_path(tree, path)
                raise

            if value is not None:
                self._backup(tree, path, value)
                ctx.finish()
                return

            self._revert_path(tree, path)
            ctx.collided()
            tree.node(leaf).ready.wait(COLLISION_WAIT)
            if ctx.should_stop():
                ctx.unclaim()
                return

    def _descend(self, tree: SearchTree) -> tuple[list[tuple[int, int]], int, bool]:
        """Walk from the root to a leaf, applying virtual loss on the way."""
        vl = self.config.virtual_loss
        c_puct = self.config.c_puct
        path: list[tuple[int, int]] = []
        seen = {tree.root}
        handle = tree.root

        while True:
            node = tree.node(handle)
            with node.lock:
                if not node.is_expanded or node.is_terminal:
                    return path, handle, False
                index = None
                if handle == tree.root:
                    index = node.select_underexplored(self.config.min_root_visits)
                if index is None:
                    index = node.select(c_puct)
                node.apply_virtual_loss(index, vl)
                child = tree.child(handle, index)
            path.append((handle, index))
            handle = child
            if handle in seen:
                return path, handle, True
            seen.add(handle)

    def _evaluate_leaf(self, tree: SearchTree, handle: int) -> Optional[float]:
        """
        Value of a leaf for its side to move, expanding it if needed.

        Returns None when another worker owns the leaf's evaluation.
        """
        node = tree.node(handle)
        with node.lock:
            if node.is_terminal:
                return node.terminal_value
            if node.is_expanded or node.is_pending:
                return None
            node.is_pending = True
            node.ready.clear()

        try:
            outcome = game_outcome(node.state)
            moves = legal_moves(node.state) if outcome is None else []
            if outcome is None and not moves:
                outcome = 0.0
            if outcome is not None:
                with node.lock:
                    node.mark_terminal(outcome)
                return outcome

            evaluation = self._lookup(node.state, moves)
        except BaseException:
            with node.lock:
                node.release()
            raise

        with node.lock:
            node.expand(moves, evaluation.policy)
        return evaluation.value

    def _lookup(self, state: GameState, moves: list[Move]) -> Evaluation:
        """Evaluation from the cache if present, otherwise from the batcher."""
        if self.cache is not None:
            evaluation = self.cache.get(state.key)
            if evaluation is not None:
                return evaluation
        evaluation = self._batcher.submit(state, moves).result()
        if self.cache is not None:
            self.cache.put(state.key, evaluation)
        return evaluation

    def _backup(self, tree: SearchTree, path: list[tuple[int, int]], leaf_value: float) -> None:
        """Add the leaf value along the path, flipping sign at each ply."""
        vl = self.config.virtual_loss
        value = -leaf_value
        for handle, index in reversed(path):
            node = tree.node(handle)
            with node.lock:
                node.N[index] += 1
                node.W[index] += value
                node.revert_virtual_loss(index, vl)
            value = -value

    def _revert_path(self, tree: SearchTree, path: list[tuple[int, int]]) -> None:
        vl = self.config.virtual_loss
        for handle, index in path:
            node = tree.node(handle)
            with node.lock:
                node.revert_virtual_loss(index, vl)
