"""
Logging utilities with rich formatting.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, asdict
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table
from rich.progress import (
    Progress,
    SpinnerColumn,
    TextColumn,
    BarColumn,
    TimeElapsedColumn,
    TimeRemainingColumn,
    MofNCompleteColumn,
)


console = Console()


@dataclass
class DecisionMetrics:
    """Statistics for one search decision."""

    move_number: int
    simulations: int
    elapsed: float
    batches: int
    mean_batch_size: float
    inference_time: float
    collisions: int
    tree_size: int
    best_move: str
    best_visits: int
    root_value: float
    stopped_early: bool = False
    timestamp: str = ""

    def __post_init__(self):
        if not self.timestamp:
            self.timestamp = datetime.now().isoformat()

    @property
    def simulations_per_second(self) -> float:
        return self.simulations / self.elapsed if self.elapsed > 0 else 0.0


class Logger:
    """
    Search logger with rich output and JSON logging.

    Args:
        log_dir: Directory for JSONL metric files (None disables file output)
        verbose: Whether to print to console
    """

    def __init__(self, log_dir: Optional[str] = None, verbose: bool = True):
        self.verbose = verbose
        self.log_file: Optional[Path] = None

        if log_dir is not None:
            path = Path(log_dir)
            path.mkdir(parents=True, exist_ok=True)
            timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.log_file = path / f"search_{timestamp}.jsonl"

        self.metrics_history: list[DecisionMetrics] = []

    def log_decision(self, metrics: DecisionMetrics) -> None:
        """Log metrics for one decision."""
        self.metrics_history.append(metrics)

        if self.log_file is not None:
            with open(self.log_file, "a") as f:
                f.write(json.dumps(asdict(metrics)) + "\n")

        if self.verbose:
            self._print_decision(metrics)

    def _print_decision(self, m: DecisionMetrics) -> None:
        """Print decision summary to console."""
        table = Table(title=f"Move {m.move_number}", show_header=False, box=None)
        table.add_column("Metric", style="cyan")
        table.add_column("Value", style="white")

        table.add_row("Best move", m.best_move)
        table.add_row("Visits", f"{m.best_visits}/{m.simulations}")
        table.add_row("Root value", f"{m.root_value:+.3f}")
        table.add_row("Sims/s", f"{m.simulations_per_second:.0f}")
        table.add_row("Batches", f"{m.batches} (avg {m.mean_batch_size:.1f})")
        table.add_row("Inference", f"{m.inference_time:.3f}s")
        table.add_row("Collisions", str(m.collisions))
        table.add_row("Tree size", str(m.tree_size))
        if m.stopped_early:
            table.add_row("Status", "[yellow]Stopped early[/]")

        console.print(table)

    def log_message(self, message: str, style: str = "white") -> None:
        """Log a message."""
        if self.verbose:
            console.print(f"[{style}]{escape(message)}[/]")

    def log_warning(self, message: str) -> None:
        """Log warning message."""
        self.log_message(message, "yellow")

    def log_error(self, message: str) -> None:
        """Log error message."""
        self.log_message(message, "red")


def create_progress() -> Progress:
    """Create a rich progress bar with elapsed/remaining time."""
    return Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        TextColumn("eta"),
        TimeRemainingColumn(),
        console=console,
        transient=False,
    )

