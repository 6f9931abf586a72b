"""Card abstractions and wildcard resolution for the Ace of Cards deck."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping

__all__ = [
    "MIN_RANK",
    "MAX_RANK",
    "Suit",
    "WildAssignment",
    "RawCard",
    "ClassifiedCard",
    "InvalidCardCode",
    "InvalidWildAssignment",
    "classify_card",
    "classify_cards",
    "parse_card_code",
    "iter_full_deck",
]

MIN_RANK = 1
MAX_RANK = 7

_SUIT_PATTERN = re.compile(r"(clubs?|diamonds?|hearts?|spades?)")
_RANK_PATTERN = re.compile(r"\d+")


class Suit(str, Enum):
    """Enumeration of the four suits in an Ace of Cards deck."""

    HEARTS = "hearts"
    DIAMONDS = "diamonds"
    CLUBS = "clubs"
    SPADES = "spades"

    @property
    def symbol(self) -> str:
        return _SUIT_SYMBOLS[self]

    @classmethod
    def parse(cls, value: Any) -> "Suit | None":
        """Return the suit named by ``value`` or ``None`` when unrecognised.

        Singular names ("heart") and single-letter codes ("H") are accepted.
        """

        if isinstance(value, Suit):
            return value
        if not isinstance(value, str) or not value:
            return None
        text = value.strip().lower()
        if len(text) == 1:
            return _SUIT_LETTERS.get(text)
        if not text.endswith("s"):
            text += "s"
        try:
            return cls(text)
        except ValueError:
            return None


_SUIT_SYMBOLS = {
    Suit.HEARTS: "♥",
    Suit.DIAMONDS: "♦",
    Suit.CLUBS: "♣",
    Suit.SPADES: "♠",
}
_SUIT_LETTERS = {suit.value[0]: suit for suit in Suit}


class InvalidCardCode(ValueError):
    """Raised when a textual card code cannot be parsed."""


class InvalidWildAssignment(ValueError):
    """Raised when a phantom rank falls outside the deck's ranks."""


@dataclass(frozen=True, slots=True)
class WildAssignment:
    """Phantom rank and suit chosen by the owner of a wild card."""

    rank: int
    suit: Suit

    def __post_init__(self) -> None:
        if not MIN_RANK <= self.rank <= MAX_RANK:
            raise InvalidWildAssignment(f"phantom rank {self.rank} outside {MIN_RANK}-{MAX_RANK}")

    def label(self) -> str:
        return f"{self.rank}{self.suit.symbol}"


@dataclass(slots=True)
class RawCard:
    """Loosely typed card record as stored by the host pile substrate.

    Any of ``rank``/``suit`` may be missing; the host keeps auxiliary data in
    ``flags`` under the keys ``value``, ``suit``, ``isJoker``,
    ``phantomValue``, ``phantomSuit``, ``ownerId``, ``setType`` and ``setId``.
    """

    id: str
    name: str
    rank: int | None = None
    suit: str | None = None
    flags: dict[str, Any] = field(default_factory=dict)
    drawn: bool = False

    def copy(self) -> "RawCard":
        """Return a copy that does not share the flag mapping."""

        return RawCard(
            id=self.id,
            name=self.name,
            rank=self.rank,
            suit=self.suit,
            flags=dict(self.flags),
            drawn=self.drawn,
        )


@dataclass(frozen=True, slots=True)
class ClassifiedCard:
    """Strict value object produced once from a :class:`RawCard`."""

    id: str
    name: str
    rank: int
    suit: Suit | None
    is_wild: bool = False
    wild_assignment: WildAssignment | None = None
    drawn: bool = False
    owner_id: str | None = None
    set_type_tag: str | None = None
    set_id: str | None = None

    @property
    def is_resolved_wild(self) -> bool:
        return self.is_wild and self.wild_assignment is not None

    @property
    def effective_rank(self) -> int:
        """Rank used for grouping; phantom rank for wilds, 0 when unassigned."""

        if not self.is_wild:
            return self.rank
        if self.wild_assignment is None:
            return 0
        return self.wild_assignment.rank

    @property
    def effective_suit(self) -> Suit | None:
        if not self.is_wild:
            return self.suit
        if self.wild_assignment is None:
            return None
        return self.wild_assignment.suit

    def label(self) -> str:
        """Create a display label suitable for CLI representations."""

        if self.is_wild:
            if self.wild_assignment is None:
                return "🃏"
            return f"🃏={self.wild_assignment.label()}"
        suit = self.suit.symbol if self.suit is not None else "?"
        return f"{self.rank or '?'}{suit}"


def _in_range(rank: int) -> int:
    return rank if MIN_RANK <= rank <= MAX_RANK else 0


def _resolve_rank(raw: RawCard) -> int:
    if raw.rank:
        return _in_range(int(raw.rank))
    flagged = _as_int(raw.flags.get("value"))
    if flagged:
        return _in_range(flagged)
    match = _RANK_PATTERN.search(raw.name)
    if match:
        return _in_range(int(match.group(0)))
    return 0


def _resolve_suit(raw: RawCard) -> Suit | None:
    suit = Suit.parse(raw.suit)
    if suit is not None:
        return suit
    suit = Suit.parse(raw.flags.get("suit"))
    if suit is not None:
        return suit
    match = _SUIT_PATTERN.search(raw.name.lower())
    if match:
        return Suit.parse(match.group(0))
    return None


def _resolve_wild_assignment(flags: Mapping[str, Any]) -> WildAssignment | None:
    rank = _in_range(_as_int(flags.get("phantomValue")))
    suit = Suit.parse(flags.get("phantomSuit"))
    if not rank or suit is None:
        return None
    return WildAssignment(rank=rank, suit=suit)


def _as_int(value: Any) -> int:
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _is_wild(raw: RawCard) -> bool:
    return "joker" in raw.name.lower() or bool(raw.flags.get("isJoker"))


def classify_card(raw: RawCard) -> ClassifiedCard:
    """Normalise ``raw`` into a :class:`ClassifiedCard`.

    Unresolvable rank or suit is reported as ``0`` / ``None``; this function
    never raises for incomplete card data.
    """

    is_wild = _is_wild(raw)
    assignment = _resolve_wild_assignment(raw.flags) if is_wild else None
    owner = raw.flags.get("ownerId")
    tag = raw.flags.get("setType")
    set_id = raw.flags.get("setId")
    return ClassifiedCard(
        id=raw.id,
        name=raw.name,
        rank=0 if is_wild else _resolve_rank(raw),
        suit=None if is_wild else _resolve_suit(raw),
        is_wild=is_wild,
        wild_assignment=assignment,
        drawn=raw.drawn,
        owner_id=str(owner) if owner else None,
        set_type_tag=str(tag) if tag else None,
        set_id=str(set_id) if set_id else None,
    )


def classify_cards(raws: Iterable[RawCard]) -> list[ClassifiedCard]:
    return [classify_card(raw) for raw in raws]


def parse_card_code(code: str, *, card_id: str | None = None) -> RawCard:
    """Build a :class:`RawCard` from a short code.

    Accepted forms are ``<rank><suit letter>`` (``3H``, ``7s``), ``JOKER`` and
    ``JOKER=<rank><suit letter>`` for a joker with a phantom assignment.
    """

    text = code.strip().upper()
    if not text:
        raise InvalidCardCode("empty card code")
    identifier = card_id or text
    if text.startswith("JOKER"):
        flags: dict[str, Any] = {"isJoker": True}
        _, _, phantom = text.partition("=")
        if phantom:
            rank, suit = _split_face(phantom, code)
            flags["phantomValue"] = rank
            flags["phantomSuit"] = suit.value
        return RawCard(id=identifier, name="Joker", flags=flags)
    rank, suit = _split_face(text, code)
    return RawCard(id=identifier, name=f"{rank} of {suit.value.title()}", rank=rank, suit=suit.value)


def _split_face(face: str, original: str) -> tuple[int, Suit]:
    rank_text, suit_letter = face[:-1], face[-1:]
    suit = Suit.parse(suit_letter)
    if suit is None or not rank_text.isdigit():
        raise InvalidCardCode(f"invalid card code '{original}'")
    rank = int(rank_text)
    if not MIN_RANK <= rank <= MAX_RANK:
        raise InvalidCardCode(f"rank out of range in '{original}'")
    return rank, suit


def iter_full_deck(*, jokers: int = 2, prefix: str = "") -> Iterable[RawCard]:
    """Yield all physical cards in a fresh Ace of Cards deck."""

    for suit in Suit:
        for rank in range(MIN_RANK, MAX_RANK + 1):
            yield RawCard(
                id=f"{prefix}{rank}{suit.value[0].upper()}",
                name=f"{rank} of {suit.value.title()}",
                rank=rank,
                suit=suit.value,
            )
    for copy in range(jokers):
        yield RawCard(id=f"{prefix}JOKER{copy}", name="Joker", flags={"isJoker": True})
