"""
Configuration management for abalonezero.

Uses dataclasses for clean configuration with sensible defaults.
Supports loading from YAML files.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
import math
from numbers import Real
from typing import Optional
import yaml

from ..errors import ConfigurationError


@dataclass
class MCTSConfig:
    """
    Search configuration.

    At least one of num_simulations / time_budget must be set; when both
    are set the search stops at whichever is reached first.
    """

    num_simulations: Optional[int] = 200
    time_budget: Optional[float] = None  # Seconds per decision
    c_puct: float = 1.5
    temperature: float = 1.0
    temp_threshold: int = 30  # Moves before using greedy selection
    num_workers: int = 4
    batch_size: int = 8
    batch_timeout: float = 0.005  # Max seconds the aggregator waits to fill a batch
    transpositions: bool = False
    virtual_loss: int = 1
    min_root_visits: int = 0  # Visits every root move gets before PUCT takes over
    cache_size: int = 0  # Positions kept in the evaluation cache, 0 disables it
    add_noise: bool = False
    dirichlet_alpha: float = 0.3
    dirichlet_epsilon: float = 0.25

    def validate(self) -> None:
        """Raise ConfigurationError for any invalid value."""
        if self.num_simulations is None and self.time_budget is None:
            raise ConfigurationError("A simulation or time budget is required")
        if self.num_simulations is not None:
            if not _is_int(self.num_simulations) or self.num_simulations <= 0:
                raise ConfigurationError(
                    f"num_simulations must be a positive integer, got {self.num_simulations!r}"
                )
        if self.time_budget is not None:
            if not _is_finite(self.time_budget) or self.time_budget <= 0:
                raise ConfigurationError(
                    f"time_budget must be a positive number of seconds, got {self.time_budget!r}"
                )
        if not _is_finite(self.c_puct) or self.c_puct <= 0:
            raise ConfigurationError(f"c_puct must be a positive finite number, got {self.c_puct!r}")
        if not _is_finite(self.temperature) or self.temperature < 0:
            raise ConfigurationError(f"temperature must be non-negative, got {self.temperature!r}")
        if not _is_int(self.temp_threshold) or self.temp_threshold < 0:
            raise ConfigurationError(f"temp_threshold must be >= 0, got {self.temp_threshold!r}")
        if not _is_int(self.num_workers) or self.num_workers <= 0:
            raise ConfigurationError(f"num_workers must be >= 1, got {self.num_workers!r}")
        if not _is_int(self.batch_size) or self.batch_size <= 0:
            raise ConfigurationError(f"batch_size must be >= 1, got {self.batch_size!r}")
        if not _is_finite(self.batch_timeout) or self.batch_timeout <= 0:
            raise ConfigurationError(f"batch_timeout must be positive, got {self.batch_timeout!r}")
        if not _is_int(self.virtual_loss) or self.virtual_loss < 0:
            raise ConfigurationError(f"virtual_loss must be >= 0, got {self.virtual_loss!r}")
        if not _is_int(self.min_root_visits) or self.min_root_visits < 0:
            raise ConfigurationError(f"min_root_visits must be >= 0, got {self.min_root_visits!r}")
        if not _is_int(self.cache_size) or self.cache_size < 0:
            raise ConfigurationError(f"cache_size must be >= 0, got {self.cache_size!r}")
        if self.add_noise:
            if not _is_finite(self.dirichlet_alpha) or self.dirichlet_alpha <= 0:
                raise ConfigurationError("dirichlet_alpha must be positive")
            if not _is_finite(self.dirichlet_epsilon) or not 0 <= self.dirichlet_epsilon <= 1:
                raise ConfigurationError("dirichlet_epsilon must be in [0, 1]")


@dataclass
class NetworkConfig:
    """Neural network configuration."""

    num_channels: int = 64
    num_blocks: int = 6


@dataclass
class SelfPlayConfig:
    """Self-play configuration."""

    num_games: int = 1
    max_moves: int = 400
    layout: str = "belgian_daisy"


@dataclass
class Config:
    """Full engine configuration."""

    mcts: MCTSConfig = field(default_factory=MCTSConfig)
    network: NetworkConfig = field(default_factory=NetworkConfig)
    selfplay: SelfPlayConfig = field(default_factory=SelfPlayConfig)

    # Frozen model artifact supplied by the model provider
    checkpoint: Optional[str] = None
    log_dir: Optional[str] = None

    # Device (auto-detected if not specified)
    device: Optional[str] = None

    # Random seed
    seed: int = 42

    def save(self, path: str) -> None:
        """Save config to YAML file."""
        with open(path, "w") as f:
            yaml.dump(asdict(self), f, default_flow_style=False)

    @classmethod
    def load(cls, path: str) -> Config:
        """Load config from YAML file."""
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ConfigurationError(
                f"Malformed config file {path}: expected a mapping, got {type(data).__name__}"
            )

        try:
            config = cls(
                mcts=MCTSConfig(**data.get("mcts", {})),
                network=NetworkConfig(**data.get("network", {})),
                selfplay=SelfPlayConfig(**data.get("selfplay", {})),
                checkpoint=data.get("checkpoint"),
                log_dir=data.get("log_dir"),
                device=data.get("device"),
                seed=data.get("seed", 42),
            )
        except TypeError as e:
            raise ConfigurationError(f"Malformed config file {path}: {e}") from e
        config.mcts.validate()
        return config


def get_default_config() -> Config:
    """Get default configuration."""
    return Config()


def _is_int(value) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_finite(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)
