"""
abalonezero - AlphaZero-style search for Abalone.

Abalone rules and move generation, a batched policy/value evaluator
interface and a multi-threaded MCTS engine with virtual loss.

Usage:
    from abalonezero.game import initial_state
    from abalonezero.evaluation import UniformEvaluator
    from abalonezero.mcts import MCTSEngine
    from abalonezero.utils import MCTSConfig

    state = initial_state("belgian_daisy")
    with MCTSEngine(UniformEvaluator(), MCTSConfig(num_simulations=400)) as engine:
        move = engine.decide(state)
        engine.commit(move)
"""

__version__ = "0.1.0"

from . import errors
from . import game
from . import evaluation
from . import net
from . import mcts
from . import selfplay
from . import utils

__all__ = [
    "errors",
    "game",
    "evaluation",
    "net",
    "mcts",
    "selfplay",
    "utils",
    "__version__",
]
