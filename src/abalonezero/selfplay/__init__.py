"""Self-play module - game generation with the search engine."""

from .worker import GameRecord, SelfPlayWorker, play_random_game

__all__ = [
    "GameRecord",
    "SelfPlayWorker",
    "play_random_game",
]
