from __future__ import annotations

import pytest

from acecards.odds import sample_set_odds
from acecards.sets import SetType


def test_sampling_is_reproducible() -> None:
    first = sample_set_odds(hand_size=6, samples=50, seed=11)
    second = sample_set_odds(hand_size=6, samples=50, seed=11)

    assert first.hits.tolist() == second.hits.tolist()
    assert first.found.tolist() == second.found.tolist()


def test_frequencies_are_bounded() -> None:
    odds = sample_set_odds(hand_size=10, samples=100, seed=3)
    frequencies = odds.frequencies()

    assert set(frequencies) == set(SetType)
    assert all(0.0 <= value <= 1.0 for value in frequencies.values())
    assert frequencies[SetType.MAGIC_PAIR] > 0.0
    assert odds.mean_sets(SetType.MAGIC_PAIR) >= frequencies[SetType.MAGIC_PAIR]


def test_whole_deck_has_no_magic_pair() -> None:
    odds = sample_set_odds(hand_size=30, samples=2, seed=0)
    frequencies = odds.frequencies()

    assert frequencies.pop(SetType.MAGIC_PAIR) == 0.0
    assert all(value == 1.0 for value in frequencies.values())


@pytest.mark.parametrize("hand_size", [0, 31])
def test_hand_size_must_fit_the_deck(hand_size: int) -> None:
    with pytest.raises(ValueError):
        sample_set_odds(hand_size=hand_size, samples=1)
