from __future__ import annotations

import pytest

from acecards.cards import Suit, classify_cards, parse_card_code
from acecards.effects import (
    DamageType,
    IllegalAllocation,
    StatusMode,
    TargetCardinality,
    allocate_healing,
    damage_type_for_suit,
    describe_effect,
    resolve_effect,
)
from acecards.sets import DetectedSet, SetType, detect_sets


def _detect(codes: str, set_type: SetType) -> DetectedSet:
    cards = classify_cards(parse_card_code(code, card_id=f"{code}#{index}") for index, code in enumerate(codes.split()))
    return next(item for item in detect_sets(cards) if item.type is set_type)


def test_magic_flush_damage_matches_suit() -> None:
    effect = resolve_effect(_detect("2H 3H 4H 5H", SetType.MAGIC_FLUSH))

    assert effect.damage_value == 39
    assert effect.damage_type is DamageType.FIRE
    assert effect.cost == 20
    assert effect.target_cardinality is TargetCardinality.ALL_ENEMIES


@pytest.mark.parametrize(("rank", "expected"), [(4, DamageType.LIGHT), (3, DamageType.DARK)])
def test_forbidden_monarch(rank: int, expected: DamageType) -> None:
    codes = " ".join(f"{rank}{suit}" for suit in "HDCS") + " JOKER"
    effect = resolve_effect(_detect(codes, SetType.FORBIDDEN_MONARCH))

    assert effect.damage_value == 777
    assert effect.damage_type is expected
    assert effect.ignores_resistance
    assert effect.ignores_immunity
    assert effect.cost == 25


def test_blinding_flush_type_follows_highest_value() -> None:
    effect = resolve_effect(_detect("3H 4D 5C 6S", SetType.BLINDING_FLUSH))

    assert effect.damage_value == 15 + 18
    assert effect.damage_type is DamageType.LIGHT


def test_jackpot_restores_and_revives() -> None:
    effect = resolve_effect(_detect("2H 2D 2C 2S", SetType.JACKPOT))

    assert (effect.heal_value, effect.mp_heal_value) == (777, 777)
    assert effect.revives
    assert effect.targets_allies
    assert not effect.deals_damage


@pytest.mark.parametrize(
    ("codes", "mode", "cardinality"),
    [
        ("3H 3D 3C 5H 5D", StatusMode.APPLY, TargetCardinality.ALL_ENEMIES),
        ("4H 4D 4C 2H 2D", StatusMode.REMOVE, TargetCardinality.ALL_ALLIES),
    ],
)
def test_full_status_parity(codes: str, mode: StatusMode, cardinality: TargetCardinality) -> None:
    effect = resolve_effect(_detect(codes, SetType.FULL_STATUS))

    assert effect.status_mode is mode
    assert effect.target_cardinality is cardinality
    assert effect.status_picks == 2
    assert len(effect.status_choices) == 4


def test_triple_support_pool() -> None:
    effect = resolve_effect(_detect("5H 5D 5C", SetType.TRIPLE_SUPPORT))

    assert effect.heal_value == 45
    assert effect.allocatable
    assert effect.cost == 15


def test_double_trouble_offers_suit_types() -> None:
    effect = resolve_effect(_detect("2H 2D 5C 5S", SetType.DOUBLE_TROUBLE))

    assert effect.damage_value == 15
    assert effect.damage_type is DamageType.CHOOSE
    assert effect.damage_type_choices == (DamageType.FIRE, DamageType.AIR, DamageType.EARTH, DamageType.ICE)
    assert effect.target_cardinality is TargetCardinality.UP_TO_TWO_ENEMIES


def test_magic_pair_single_suit() -> None:
    effect = resolve_effect(_detect("6S JOKER=6S", SetType.MAGIC_PAIR))

    assert effect.damage_type is DamageType.ICE
    assert effect.damage_value == 0
    assert effect.target_cardinality is TargetCardinality.SINGLE_FREE_ATTACK


def test_cost_per_card_is_configurable() -> None:
    effect = resolve_effect(_detect("6S 6D", SetType.MAGIC_PAIR), cost_per_card=3)

    assert effect.cost == 6


@pytest.mark.parametrize(
    ("suit", "expected"),
    [(Suit.HEARTS, DamageType.FIRE), (Suit.DIAMONDS, DamageType.AIR), (Suit.CLUBS, DamageType.EARTH), (None, DamageType.PHYSICAL)],
)
def test_damage_type_for_suit(suit: Suit | None, expected: DamageType) -> None:
    assert damage_type_for_suit(suit) is expected


def test_describe_effect_fills_numbers() -> None:
    text = describe_effect(_detect("2H 3H 4H 5H", SetType.MAGIC_FLUSH))

    assert "39" in text
    assert "fire" in text


def test_allocate_healing_within_pool() -> None:
    assert allocate_healing(45, {"a": (20, 5), "b": (10, 10)}) == {"a": (20, 5), "b": (10, 10)}


@pytest.mark.parametrize("requests", [{"a": (40, 10)}, {"a": (-1, 0)}])
def test_allocate_healing_rejects_bad_requests(requests: dict[str, tuple[int, int]]) -> None:
    with pytest.raises(IllegalAllocation):
        allocate_healing(45, requests)
