"""
Bounded evaluation cache with LRU eviction.

Evaluations are keyed by the position's Zobrist key (board plus side to
move), which is everything the network input depends on. The cache is
owned by the engine, so it survives tree rebuilds between decisions.
"""

from __future__ import annotations

from collections import OrderedDict
import threading
from typing import Optional

from .base import Evaluation


class EvaluationCache:
    """
    Thread-safe LRU map from position key to Evaluation.

    Args:
        max_entries: Maximum number of cached positions
    """

    def __init__(self, max_entries: int = 100_000):
        if max_entries < 1:
            raise ValueError("max_entries must be at least 1")
        self.max_entries = max_entries
        self._table: OrderedDict[int, Evaluation] = OrderedDict()
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, key: int) -> bool:
        return key in self._table

    def get(self, key: int) -> Optional[Evaluation]:
        with self._lock:
            evaluation = self._table.get(key)
            if evaluation is None:
                self.misses += 1
                return None
            self._table.move_to_end(key)
            self.hits += 1
            return evaluation

    def put(self, key: int, evaluation: Evaluation) -> None:
        with self._lock:
            if key in self._table:
                self._table.move_to_end(key)
            elif len(self._table) >= self.max_entries:
                self._table.popitem(last=False)
                self.evictions += 1
            self._table[key] = evaluation

    def clear(self) -> None:
        with self._lock:
            self._table.clear()
            self.hits = 0
            self.misses = 0
            self.evictions = 0

    @property
    def hit_rate(self) -> float:
        lookups = self.hits + self.misses
        return self.hits / lookups if lookups else 0.0
