"""
Exception hierarchy for abalonezero.

Every error raised by the library derives from AbaloneZeroError so callers
can catch engine failures without also catching unrelated exceptions.
"""

from __future__ import annotations


class AbaloneZeroError(Exception):
    """Base class for all abalonezero errors."""


class IllegalMoveError(AbaloneZeroError, ValueError):
    """A move is inconsistent with the board it is applied to (or undone from)."""


class GameOverError(AbaloneZeroError):
    """A search was requested for a position where the game has already ended."""


class EvaluationError(AbaloneZeroError):
    """The evaluator backend failed or returned malformed output."""


class ConfigurationError(AbaloneZeroError, ValueError):
    """Engine configuration is invalid."""
