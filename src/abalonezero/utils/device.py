"""
Device selection for PyTorch.

Supports:
- MPS (Apple Silicon)
- CUDA (if available)
- CPU (fallback)
"""

from __future__ import annotations

from typing import Optional
import torch


def get_device(preference: Optional[str] = None) -> torch.device:
    """
    Get the best available device.

    Args:
        preference: Optional device preference ("mps", "cuda", "cpu").
                   "auto" or None auto-selects; an unavailable preference
                   falls back to auto-selection.
    """
    if preference == "cpu":
        return torch.device("cpu")
    if preference == "cuda" and torch.cuda.is_available():
        return torch.device("cuda")
    if preference == "mps" and torch.backends.mps.is_available():
        return torch.device("mps")

    if torch.cuda.is_available():
        return torch.device("cuda")
    elif torch.backends.mps.is_available():
        return torch.device("mps")
    else:
        return torch.device("cpu")

