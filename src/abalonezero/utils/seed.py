"""
Random seed management for reproducibility.
"""

from __future__ import annotations

import random
from typing import Optional
import numpy as np
import torch


def set_seed(seed: int) -> None:
    """
    Set global random seeds for reproducibility.

    Sets seeds for:
    - Python random
    - NumPy
    - PyTorch (CPU and GPU)

    Search itself never reads these; it uses the generator from make_rng.

    Args:
        seed: Random seed value
    """
    random.seed(seed)
    np.random.seed(seed)
    torch.manual_seed(seed)

    if torch.cuda.is_available():
        torch.cuda.manual_seed_all(seed)

    torch.backends.cudnn.deterministic = True
    torch.backends.cudnn.benchmark = False


def make_rng(seed: Optional[int] = None) -> np.random.Generator:
    """Create the explicit generator passed to an engine."""
    return np.random.default_rng(seed)
