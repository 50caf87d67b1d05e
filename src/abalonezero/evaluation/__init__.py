"""
Policy/value evaluators and request batching.
"""

from .base import (
    Evaluation,
    Evaluator,
    MaterialEvaluator,
    UniformEvaluator,
    uniform_policy,
)
from .batching import BatchingEvaluator, EvaluationRequest
from .cache import EvaluationCache
from .network import NetworkEvaluator

__all__ = [
    "Evaluation",
    "Evaluator",
    "MaterialEvaluator",
    "UniformEvaluator",
    "uniform_policy",
    "BatchingEvaluator",
    "EvaluationRequest",
    "EvaluationCache",
    "NetworkEvaluator",
]
