"""Top-level package for the Ace of Cards set engine."""

from . import cards, collaborators, config, effects, engine, notifications, piles, sets, transfer

__all__ = [
    "cards",
    "collaborators",
    "config",
    "effects",
    "engine",
    "notifications",
    "piles",
    "sets",
    "transfer",
]
