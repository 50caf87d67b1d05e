"""
Neural network module.
"""

from .model import (
    AbaloneNet,
    create_model,
    save_checkpoint,
    load_checkpoint,
)

__all__ = [
    "AbaloneNet",
    "create_model",
    "save_checkpoint",
    "load_checkpoint",
]
