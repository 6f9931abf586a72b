"""Tests covering set detection over classified cards."""

from __future__ import annotations

import pytest

from acecards.cards import ClassifiedCard, RawCard, Suit, classify_card, classify_cards, parse_card_code
from acecards.sets import (
    DetectedSet,
    SetType,
    detect_set_type,
    detect_sets,
    find_consecutive,
    partition_cards,
)


def _hand(codes: str) -> list[ClassifiedCard]:
    return classify_cards(parse_card_code(code, card_id=f"{code}#{index}") for index, code in enumerate(codes.split()))


def _of_type(found: list[DetectedSet], set_type: SetType) -> list[DetectedSet]:
    return [item for item in found if item.type is set_type]


def test_four_of_a_kind_counts() -> None:
    found = detect_sets(_hand("4H 4D 4C 4S"))

    assert len(_of_type(found, SetType.JACKPOT)) == 1
    assert len(_of_type(found, SetType.TRIPLE_SUPPORT)) == 1
    assert _of_type(found, SetType.MAGIC_PAIR) == []
    assert _of_type(found, SetType.DOUBLE_TROUBLE) == []
    assert _of_type(found, SetType.FORBIDDEN_MONARCH) == []
    assert _of_type(found, SetType.JACKPOT)[0].common_rank == 4


def test_five_of_a_kind_is_not_a_jackpot() -> None:
    found = detect_sets(_hand("4H 4H 4D 4C 4S JOKER"))

    assert _of_type(found, SetType.JACKPOT) == []
    assert _of_type(found, SetType.FORBIDDEN_MONARCH) == []


def test_double_trouble_combines_each_pair_of_ranks_once() -> None:
    found = _of_type(detect_sets(_hand("2H 2D 3H 3D 5H 5D")), SetType.DOUBLE_TROUBLE)

    assert [item.pair_ranks for item in found] == [(2, 3), (2, 5), (3, 5)]
    assert all(len(item.cards) == 4 for item in found)


def test_magic_pairs_chunk_each_rank_group() -> None:
    found = _of_type(detect_sets(_hand("2H 2D 3H 3D 5H 5D")), SetType.MAGIC_PAIR)

    assert [item.common_rank for item in found] == [2, 3, 5]


@pytest.mark.parametrize(
    ("codes", "pairs", "triples"),
    [
        ("4H 4D", 1, 0),
        ("4H 4D 4C", 0, 1),
        ("4H 4D 4C 4S", 0, 1),
        ("4H 4D 4C 4S JOKER=4H", 1, 1),
        ("4H 4D 4C 4S JOKER=4H JOKER=4D", 0, 2),
    ],
)
def test_magic_pairs_come_from_cards_left_after_triples(codes: str, pairs: int, triples: int) -> None:
    found = detect_sets(_hand(codes))

    assert len(_of_type(found, SetType.MAGIC_PAIR)) == pairs
    assert len(_of_type(found, SetType.TRIPLE_SUPPORT)) == triples


def test_unassigned_wild_only_completes_forbidden_monarch() -> None:
    found = detect_sets(_hand("4H 4D 4C 4S JOKER"))
    monarch = _of_type(found, SetType.FORBIDDEN_MONARCH)

    assert len(monarch) == 1
    assert monarch[0].values == (4, 4, 4, 4)
    assert monarch[0].has_wild
    for item in found:
        if item.type is not SetType.FORBIDDEN_MONARCH:
            assert not any(card.is_wild for card in item.cards)


@pytest.mark.parametrize(
    "codes",
    ["3H 4H 5H JOKER", "5H 5D JOKER", "6C JOKER", "2H 2D 3C 3S JOKER"],
)
def test_unassigned_wild_never_fills_a_gap(codes: str) -> None:
    found = detect_sets(_hand(codes))

    assert all(not item.has_wild for item in found)
    assert _of_type(found, SetType.MAGIC_FLUSH) == []
    assert _of_type(found, SetType.TRIPLE_SUPPORT) == []


def test_resolved_wild_completes_a_flush() -> None:
    found = detect_sets(_hand("2H 3H JOKER=4H 5H"))
    flush = _of_type(found, SetType.MAGIC_FLUSH)

    assert len(flush) == 1
    assert flush[0].suit is Suit.HEARTS
    assert flush[0].values == (2, 3, 4, 5)
    assert flush[0].wild_cards[0][0] == "JOKER=4H#2"


def test_resolved_wild_never_counts_towards_jackpot() -> None:
    found = detect_sets(_hand("4H 4D 4C JOKER=4S"))

    assert _of_type(found, SetType.JACKPOT) == []
    assert len(_of_type(found, SetType.TRIPLE_SUPPORT)) == 1


def test_magic_flush_and_blinding_flush() -> None:
    found = detect_sets(_hand("2H 3H 4H 5H 6D"))

    magic = _of_type(found, SetType.MAGIC_FLUSH)
    blinding = _of_type(found, SetType.BLINDING_FLUSH)
    assert magic[0].values == (2, 3, 4, 5)
    assert magic[0].total == 14
    assert blinding[0].values == (2, 3, 4, 5)


def test_consecutive_run_skips_duplicate_ranks() -> None:
    pools = partition_cards(_hand("2H 3H 3D 4C 5S"))
    run = find_consecutive(pools.eligible)

    assert run is not None
    assert [card.id for card in run] == ["2H#0", "3H#1", "4C#3", "5S#4"]


def test_full_status_triple_and_pair() -> None:
    found = _of_type(detect_sets(_hand("3H 3D 3C 5H 5D")), SetType.FULL_STATUS)

    assert len(found) == 1
    assert (found[0].triple_rank, found[0].pair_rank) == (3, 5)
    assert found[0].highest == 5


def test_full_status_pair_may_precede_triple() -> None:
    found = _of_type(detect_sets(_hand("2H 2D 4H 4D 4C")), SetType.FULL_STATUS)

    assert (found[0].triple_rank, found[0].pair_rank) == (4, 2)


def test_full_status_later_triple_serves_as_pair() -> None:
    found = _of_type(detect_sets(_hand("2H 2D 2C 6H 6D 6C")), SetType.FULL_STATUS)

    assert (found[0].triple_rank, found[0].pair_rank) == (2, 6)
    assert len(found[0].cards) == 5


def test_full_status_takes_cards_in_input_order() -> None:
    found = _of_type(detect_sets(_hand("3C 3H 3D 3S 5H 5D")), SetType.FULL_STATUS)

    assert [card.id for card in found[0].cards[:3]] == ["3C#0", "3H#1", "3D#2"]


def test_input_order_decides_which_cards_fill_a_pair() -> None:
    first = _of_type(detect_sets(_hand("6H 6D 6C")), SetType.MAGIC_PAIR)
    second = _of_type(detect_sets(_hand("6C 6D 6H 6S 6H")), SetType.MAGIC_PAIR)

    assert first == []
    assert [card.id for card in second[0].cards] == ["6S#3", "6H#4"]


def test_unresolved_rank_is_excluded_from_grouping() -> None:
    blank = classify_card(RawCard(id="blank-1", name="blank", suit="hearts"))
    blank_two = classify_card(RawCard(id="blank-2", name="blank", suit="spades"))

    assert detect_sets([blank, blank_two]) == []


def test_detection_order_follows_set_types() -> None:
    found = detect_sets(_hand("4H 4D 4C 4S 5H 6H 7H JOKER"))
    order = [item.type for item in found]

    assert order == sorted(order, key=list(SetType).index)
    assert order[0] is SetType.JACKPOT
    assert order[-1] is SetType.FORBIDDEN_MONARCH


def test_detect_set_type_for_single_shape() -> None:
    pools = partition_cards(_hand("1S 1C 7H 7D"))

    assert len(detect_set_type(SetType.DOUBLE_TROUBLE, pools)) == 1
    assert detect_set_type(SetType.JACKPOT, pools) == []


def test_empty_hand_has_no_sets() -> None:
    assert detect_sets([]) == []


@pytest.mark.parametrize(
    ("text", "expected"),
    [("magic-flush", SetType.MAGIC_FLUSH), ("Double Trouble", SetType.DOUBLE_TROUBLE), ("triple_support", SetType.TRIPLE_SUPPORT)],
)
def test_set_type_parse(text: str, expected: SetType) -> None:
    assert SetType.parse(text) is expected
