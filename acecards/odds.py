"""Monte Carlo estimate of how often each set type shows up in a random hand."""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import NDArray

from .cards import classify_cards, iter_full_deck
from .sets import SetType, detect_sets

__all__ = ["SetOdds", "sample_set_odds"]

_SET_ORDER = tuple(SetType)
_SET_INDEX = {set_type: index for index, set_type in enumerate(_SET_ORDER)}


@dataclass(frozen=True, slots=True)
class SetOdds:
    """Per set type tallies over ``samples`` random hands.

    ``hits`` counts hands holding at least one set of a type and ``found``
    counts every set detected, both indexed in :class:`SetType` order.
    """

    hand_size: int
    samples: int
    hits: NDArray[np.int64]
    found: NDArray[np.int64]

    def frequency(self, set_type: SetType) -> float:
        if not self.samples:
            return 0.0
        return float(self.hits[_SET_INDEX[set_type]]) / self.samples

    def mean_sets(self, set_type: SetType) -> float:
        if not self.samples:
            return 0.0
        return float(self.found[_SET_INDEX[set_type]]) / self.samples

    def frequencies(self) -> dict[SetType, float]:
        return {set_type: self.frequency(set_type) for set_type in _SET_ORDER}


def sample_set_odds(
    hand_size: int = 5,
    samples: int = 1000,
    seed: int | None = None,
    *,
    jokers: int = 2,
) -> SetOdds:
    """Deal ``samples`` hands of ``hand_size`` from a fresh deck and tally sets.

    Jokers stay unassigned, so they only ever complete a forbidden monarch.
    """

    deck = classify_cards(iter_full_deck(jokers=jokers))
    if not 0 < hand_size <= len(deck):
        raise ValueError(f"hand_size must be between 1 and {len(deck)}")
    if samples < 0:
        raise ValueError("samples cannot be negative")

    rng = np.random.default_rng(seed)
    hits = np.zeros(len(_SET_ORDER), dtype=np.int64)
    found = np.zeros(len(_SET_ORDER), dtype=np.int64)
    for _ in range(samples):
        picks = rng.choice(len(deck), size=hand_size, replace=False)
        detected = detect_sets(deck[int(index)] for index in picks)
        types = np.fromiter((_SET_INDEX[item.type] for item in detected), dtype=np.intp, count=len(detected))
        per_type = np.bincount(types, minlength=len(_SET_ORDER)).astype(np.int64)
        found += per_type
        hits += (per_type > 0).astype(np.int64)
    return SetOdds(hand_size=hand_size, samples=samples, hits=hits, found=found)
