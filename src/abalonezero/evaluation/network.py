"""
Evaluator backed by the policy/value network.
"""

from __future__ import annotations

from typing import Optional
import numpy as np
import torch

from ..errors import EvaluationError
from ..game import (
    NUM_ACTIONS,
    decode_policy,
    encode_state_batch,
    get_action_mask,
    policy_from_vector,
)
from ..net.model import load_checkpoint
from .base import Evaluation, Evaluator, legal_moves_for


class NetworkEvaluator(Evaluator):
    """
    Batch inference with a frozen torch model.

    The model must map (batch, 5, 11, 11) inputs to policy logits of shape
    (batch, NUM_ACTIONS) and values of shape (batch, 1).

    Args:
        model: Policy/value network (put into eval mode)
        device: Torch device for inference
    """

    def __init__(self, model: torch.nn.Module, device: Optional[torch.device] = None):
        self.device = device or torch.device("cpu")
        self.model = model.to(self.device)
        self.model.eval()

    @classmethod
    def from_checkpoint(cls, path: str, device: Optional[torch.device] = None) -> NetworkEvaluator:
        """Load the model artifact at `path` and wrap it."""
        try:
            model, _ = load_checkpoint(path, device)
        except (OSError, RuntimeError, ValueError, KeyError) as e:
            raise EvaluationError(f"Could not load model from {path}: {e}") from e
        return cls(model, device)

    @torch.no_grad()
    def evaluate_batch(self, states, moves=None):
        if not states:
            return []
        moves = legal_moves_for(states, moves)

        encoded = encode_state_batch(states)
        masks = np.stack([get_action_mask(s, m) for s, m in zip(states, moves)])

        try:
            x = torch.from_numpy(encoded).to(self.device)
            logits, values = self.model(x)
        except (RuntimeError, TypeError, ValueError) as e:
            raise EvaluationError(f"Model inference failed: {e}") from e

        batch = len(states)
        if tuple(logits.shape) != (batch, NUM_ACTIONS):
            raise EvaluationError(
                f"Policy output has shape {tuple(logits.shape)}, expected {(batch, NUM_ACTIONS)}"
            )
        if values.numel() != batch:
            raise EvaluationError(
                f"Value output has {values.numel()} elements, expected {batch}"
            )

        mask = torch.from_numpy(masks).to(logits.device)
        policies = decode_policy(logits.float(), mask).cpu().numpy()
        values = values.reshape(batch).float().clamp(-1.0, 1.0).cpu().numpy()

        return [
            Evaluation(policy=policy_from_vector(m, policies[i]), value=float(values[i]))
            for i, m in enumerate(moves)
        ]
