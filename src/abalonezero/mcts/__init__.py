"""
Monte Carlo Tree Search module.
"""

from .node import SearchNode
from .tree import SearchTree
from .engine import EngineState, MCTSEngine, SearchResult

__all__ = [
    "SearchNode",
    "SearchTree",
    "EngineState",
    "MCTSEngine",
    "SearchResult",
]
