"""Tunable constants for the set engine and the move protocol."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Final

from .effects import MP_COST_PER_CARD

__all__ = ["EngineConfig", "DEFAULT_CONFIG"]


@dataclass(frozen=True, slots=True)
class EngineConfig:
    """Runtime configuration shared by transfer and orchestration helpers.

    ``batch_size`` and ``batch_delay`` only pace bulk moves so the host's
    change notifications keep up; they do not affect which cards move.
    """

    batch_size: int = 3
    batch_delay: float = 0.1
    starting_hand_size: int = 5
    mp_cost_per_card: int = MP_COST_PER_CARD
    module_id: str = "fu-ace-cards"

    def __post_init__(self) -> None:
        if self.batch_size <= 0:
            raise ValueError("batch_size must be positive")
        if self.batch_delay < 0:
            raise ValueError("batch_delay cannot be negative")
        if self.starting_hand_size < 0:
            raise ValueError("starting_hand_size cannot be negative")


DEFAULT_CONFIG: Final[EngineConfig] = EngineConfig()
