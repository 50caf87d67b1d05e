"""Utilities module."""

from .config import (
    Config,
    MCTSConfig,
    NetworkConfig,
    SelfPlayConfig,
    get_default_config,
)
from .device import get_device
from .seed import set_seed, make_rng
from .logging import (
    Logger,
    DecisionMetrics,
    console,
    create_progress,
)

__all__ = [
    "Config",
    "MCTSConfig",
    "NetworkConfig",
    "SelfPlayConfig",
    "get_default_config",
    "get_device",
    "set_seed",
    "make_rng",
    "Logger",
    "DecisionMetrics",
    "console",
    "create_progress",
]
