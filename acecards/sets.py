"""Detection of the eight scored set shapes in a collection of cards."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Sequence, assert_never

from .cards import ClassifiedCard, Suit, WildAssignment

__all__ = [
    "RUN_LENGTH",
    "SetType",
    "DetectedSet",
    "CardPools",
    "partition_cards",
    "detect_sets",
    "detect_set_type",
    "find_jackpot",
    "find_magic_flush",
    "find_blinding_flush",
    "find_full_status",
    "find_triple_supports",
    "find_double_troubles",
    "find_magic_pairs",
    "find_forbidden_monarch",
    "find_consecutive",
]

RUN_LENGTH = 4
QUAD_SIZE = 4


class SetType(str, Enum):
    """Closed set of scored combinations, in detection order."""

    JACKPOT = "jackpot"
    MAGIC_FLUSH = "magic-flush"
    BLINDING_FLUSH = "blinding-flush"
    FULL_STATUS = "full-status"
    TRIPLE_SUPPORT = "triple-support"
    DOUBLE_TROUBLE = "double-trouble"
    MAGIC_PAIR = "magic-pair"
    FORBIDDEN_MONARCH = "forbidden-monarch"

    @property
    def display_name(self) -> str:
        return self.value.replace("-", " ").title()

    @classmethod
    def parse(cls, value: str) -> "SetType":
        """Return the set type for ``value`` accepting display names too."""

        normalised = value.strip().lower().replace(" ", "-").replace("_", "-")
        return cls(normalised)


@dataclass(frozen=True, slots=True)
class DetectedSet:
    """Ephemeral description of one scored combination.

    ``values`` holds the resolved ranks that feed the effect formulas; for a
    forbidden monarch this is the quad only, the wild card adds no value.
    """

    type: SetType
    cards: tuple[ClassifiedCard, ...]
    values: tuple[int, ...]
    common_rank: int | None = None
    suit: Suit | None = None
    triple_rank: int | None = None
    pair_rank: int | None = None
    pair_ranks: tuple[int, int] | None = None
    wild_cards: tuple[tuple[str, WildAssignment | None], ...] = field(default=())

    @property
    def card_ids(self) -> tuple[str, ...]:
        return tuple(card.id for card in self.cards)

    @property
    def total(self) -> int:
        return sum(self.values)

    @property
    def highest(self) -> int:
        return max(self.values)

    @property
    def has_wild(self) -> bool:
        return bool(self.wild_cards)

    @property
    def suits(self) -> tuple[Suit, ...]:
        """Distinct resolved suits of the set in card order."""

        seen: list[Suit] = []
        for card in self.cards:
            suit = card.effective_suit
            if suit is not None and suit not in seen:
                seen.append(suit)
        return tuple(seen)

    def label(self) -> str:
        return " ".join(card.label() for card in self.cards)


@dataclass(frozen=True, slots=True)
class CardPools:
    """Working populations derived from one detection input."""

    non_wild: tuple[ClassifiedCard, ...]
    wild: tuple[ClassifiedCard, ...]
    resolved_wild: tuple[ClassifiedCard, ...]
    eligible: tuple[ClassifiedCard, ...]


def _by_rank(cards: Iterable[ClassifiedCard]) -> tuple[ClassifiedCard, ...]:
    # sorted() is stable, so equal ranks keep input order.
    return tuple(sorted(cards, key=lambda card: card.effective_rank))


def partition_cards(cards: Iterable[ClassifiedCard]) -> CardPools:
    """Split ``cards`` into non-wild, wild, resolved-wild and eligible pools.

    Cards whose rank could not be resolved carry rank 0 and take no part in
    rank grouping.
    """

    ordered = list(cards)
    non_wild = tuple(card for card in ordered if not card.is_wild)
    wild = tuple(card for card in ordered if card.is_wild)
    resolved = tuple(card for card in wild if card.is_resolved_wild)
    eligible = _by_rank(
        card for card in ordered if (not card.is_wild or card.is_resolved_wild) and card.effective_rank > 0
    )
    return CardPools(
        non_wild=_by_rank(card for card in non_wild if card.rank > 0),
        wild=wild,
        resolved_wild=resolved,
        eligible=eligible,
    )


def _group_by_rank(cards: Sequence[ClassifiedCard]) -> list[tuple[int, list[ClassifiedCard]]]:
    groups: dict[int, list[ClassifiedCard]] = {}
    for card in cards:
        groups.setdefault(card.effective_rank, []).append(card)
    return sorted(groups.items())


def _group_by_suit(cards: Sequence[ClassifiedCard]) -> list[tuple[Suit, list[ClassifiedCard]]]:
    groups: dict[Suit, list[ClassifiedCard]] = {}
    for card in cards:
        suit = card.effective_suit
        if suit is None:
            continue
        groups.setdefault(suit, []).append(card)
    return list(groups.items())


def _chunks(group: Sequence[ClassifiedCard], size: int) -> list[list[ClassifiedCard]]:
    return [list(group[start : start + size]) for start in range(0, len(group) - size + 1, size)]


def _make_set(
    set_type: SetType,
    cards: Sequence[ClassifiedCard],
    *,
    values: Sequence[int] | None = None,
    **extra: Any,
) -> DetectedSet:
    if values is None:
        values = [card.effective_rank for card in cards]
    return DetectedSet(
        type=set_type,
        cards=tuple(cards),
        values=tuple(values),
        wild_cards=tuple((card.id, card.wild_assignment) for card in cards if card.is_wild),
        **extra,
    )


def find_consecutive(cards: Sequence[ClassifiedCard], length: int = RUN_LENGTH) -> list[ClassifiedCard] | None:
    """Return the first run of ``length`` consecutive ranks scanning left to right.

    ``cards`` must already be sorted by rank; duplicate ranks are skipped.
    """

    if len(cards) < length:
        return None
    for start in range(len(cards) - length + 1):
        run = [cards[start]]
        expected = cards[start].effective_rank + 1
        for candidate in cards[start + 1 :]:
            if len(run) == length:
                break
            if candidate.effective_rank == expected:
                run.append(candidate)
                expected += 1
        if len(run) == length:
            return run
    return None


def find_jackpot(pools: CardPools) -> DetectedSet | None:
    """Four non-wild cards of one rank; resolved wilds never count."""

    for rank, group in _group_by_rank(pools.non_wild):
        if len(group) == QUAD_SIZE:
            return _make_set(SetType.JACKPOT, group, common_rank=rank)
    return None


def find_magic_flush(pools: CardPools) -> DetectedSet | None:
    for suit, group in _group_by_suit(pools.eligible):
        if len(group) < RUN_LENGTH:
            continue
        run = find_consecutive(group)
        if run is not None:
            return _make_set(SetType.MAGIC_FLUSH, run, suit=suit)
    return None


def find_blinding_flush(pools: CardPools) -> DetectedSet | None:
    run = find_consecutive(pools.eligible)
    if run is None:
        return None
    return _make_set(SetType.BLINDING_FLUSH, run)


def find_full_status(pools: CardPools) -> DetectedSet | None:
    """First triple plus the first pair of a different rank.

    A rank group seen before the triple may become the pair, and a group of
    three or more seen after the triple is only ever used as the pair.
    """

    triple: tuple[int, list[ClassifiedCard]] | None = None
    pair: tuple[int, list[ClassifiedCard]] | None = None
    for rank, group in _group_by_rank(pools.eligible):
        if len(group) >= 3 and triple is None:
            triple = (rank, group[:3])
        elif len(group) >= 2 and pair is None and (triple is None or rank != triple[0]):
            pair = (rank, group[:2])
        if triple is not None and pair is not None:
            return _make_set(
                SetType.FULL_STATUS,
                triple[1] + pair[1],
                triple_rank=triple[0],
                pair_rank=pair[0],
            )
    return None


def find_triple_supports(pools: CardPools) -> list[DetectedSet]:
    found: list[DetectedSet] = []
    for rank, group in _group_by_rank(pools.eligible):
        for chunk in _chunks(group, 3):
            found.append(_make_set(SetType.TRIPLE_SUPPORT, chunk, common_rank=rank))
    return found


def _pair_chunks(pools: CardPools) -> list[tuple[int, list[ClassifiedCard]]]:
    pairs: list[tuple[int, list[ClassifiedCard]]] = []
    for rank, group in _group_by_rank(pools.eligible):
        pairs.extend((rank, chunk) for chunk in _chunks(group, 2))
    return pairs


def find_double_troubles(pools: CardPools) -> list[DetectedSet]:
    """Every combination of two disjoint pairs taken from different ranks."""

    pairs = _pair_chunks(pools)
    found: list[DetectedSet] = []
    for index, (first_rank, first_cards) in enumerate(pairs):
        for second_rank, second_cards in pairs[index + 1 :]:
            if first_rank == second_rank:
                continue
            found.append(
                _make_set(
                    SetType.DOUBLE_TROUBLE,
                    first_cards + second_cards,
                    pair_ranks=(first_rank, second_rank),
                )
            )
    return found


def find_magic_pairs(pools: CardPools) -> list[DetectedSet]:
    """Disjoint pairs per rank group, taken from the cards left over once the
    group has been chunked into triples (four of a kind yields no pair).
    """

    found: list[DetectedSet] = []
    for rank, group in _group_by_rank(pools.eligible):
        leftover = group[len(group) - len(group) % 3 :]
        found.extend(_make_set(SetType.MAGIC_PAIR, chunk, common_rank=rank) for chunk in _chunks(leftover, 2))
    return found


def find_forbidden_monarch(pools: CardPools) -> DetectedSet | None:
    """Four non-wild cards of one rank plus the first wild card, assigned or not."""

    if not pools.wild:
        return None
    for rank, group in _group_by_rank(pools.non_wild):
        if len(group) == QUAD_SIZE:
            return _make_set(
                SetType.FORBIDDEN_MONARCH,
                group + [pools.wild[0]],
                values=tuple(card.rank for card in group),
                common_rank=rank,
            )
    return None


def detect_set_type(set_type: SetType, pools: CardPools) -> list[DetectedSet]:
    """Run the detector for ``set_type`` against prepared ``pools``."""

    match set_type:
        case SetType.JACKPOT:
            found = find_jackpot(pools)
        case SetType.MAGIC_FLUSH:
            found = find_magic_flush(pools)
        case SetType.BLINDING_FLUSH:
            found = find_blinding_flush(pools)
        case SetType.FULL_STATUS:
            found = find_full_status(pools)
        case SetType.TRIPLE_SUPPORT:
            return find_triple_supports(pools)
        case SetType.DOUBLE_TROUBLE:
            return find_double_troubles(pools)
        case SetType.MAGIC_PAIR:
            return find_magic_pairs(pools)
        case SetType.FORBIDDEN_MONARCH:
            found = find_forbidden_monarch(pools)
        case _:
            assert_never(set_type)
    return [found] if found is not None else []


def detect_sets(cards: Iterable[ClassifiedCard]) -> list[DetectedSet]:
    """Return every valid set in ``cards``.

    Sets of different types may share cards; only a single shape's own
    extraction is kept disjoint.
    """

    pools = partition_cards(cards)
    detected: list[DetectedSet] = []
    for set_type in SetType:
        detected.extend(detect_set_type(set_type, pools))
    return detected
