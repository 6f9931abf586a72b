"""Pile store interface, player pile registry and an in-memory host."""

from __future__ import annotations

import logging
import random
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Protocol, Sequence

from .cards import RawCard

__all__ = [
    "PileRole",
    "DrawMode",
    "Pile",
    "CardUpdate",
    "PileStoreError",
    "PileNotFound",
    "CardNotInPile",
    "PileStore",
    "PlayerPiles",
    "TableContext",
    "InMemoryPileStore",
]

logger = logging.getLogger(__name__)


class PileRole(str, Enum):
    DECK = "deck"
    HAND = "hand"
    DISCARD = "discard"
    TABLE = "table"


class DrawMode(str, Enum):
    TOP = "top"
    RANDOM = "random"


@dataclass(slots=True)
class Pile:
    """Ordered, mutable collection of cards with a role."""

    id: str
    name: str
    role: PileRole
    cards: list[RawCard] = field(default_factory=list)

    def get(self, card_id: str) -> RawCard | None:
        for card in self.cards:
            if card.id == card_id:
                return card
        return None

    def has(self, card_id: str) -> bool:
        return self.get(card_id) is not None

    def card_ids(self) -> list[str]:
        return [card.id for card in self.cards]

    def undrawn(self) -> list[RawCard]:
        return [card for card in self.cards if not card.drawn]

    def __len__(self) -> int:
        return len(self.cards)


@dataclass(frozen=True, slots=True)
class CardUpdate:
    """Field changes for one card; ``None`` leaves a field untouched."""

    card_id: str
    drawn: bool | None = None
    flags: Mapping[str, Any] | None = None
    clear_flags: tuple[str, ...] = ()


class PileStoreError(RuntimeError):
    """Raised by a pile store when the host rejects a write."""


class PileNotFound(PileStoreError):
    """Raised when a pile id does not name a pile."""


class CardNotInPile(PileStoreError):
    """Raised when a card is not present in the pile it is taken from."""


class PileStore(Protocol):
    """Host substrate that owns the piles.

    Every method is a coroutine; a rejected write raises
    :class:`PileStoreError`.
    """

    async def get_pile(self, pile_id: str) -> Pile | None:  # pragma: no cover - protocol only
        ...

    async def move_cards(self, source_id: str, dest_id: str, card_ids: Sequence[str]) -> None:  # pragma: no cover
        ...

    async def shuffle_pile(self, pile_id: str) -> None:  # pragma: no cover - protocol only
        ...

    async def reset_pile(self, pile_id: str, *, shuffle: bool = True) -> None:  # pragma: no cover
        ...

    async def deal_cards(
        self,
        source_id: str,
        dest_ids: Sequence[str],
        count: int,
        mode: DrawMode = DrawMode.RANDOM,
    ) -> list[str]:  # pragma: no cover - protocol only
        ...

    async def update_cards(self, pile_id: str, updates: Sequence[CardUpdate]) -> None:  # pragma: no cover
        ...

    async def delete_card(self, pile_id: str, card_id: str) -> None:  # pragma: no cover - protocol only
        ...


@dataclass(frozen=True, slots=True)
class PlayerPiles:
    """Pile ids assigned to one player."""

    deck_id: str | None = None
    hand_id: str | None = None
    discard_id: str | None = None

    @property
    def complete(self) -> bool:
        return bool(self.deck_id and self.hand_id and self.discard_id)

    def require(self) -> tuple[str, str, str]:
        """Return ``(deck_id, hand_id, discard_id)`` or raise when any is unset."""

        if not (self.deck_id and self.hand_id and self.discard_id):
            raise PileNotFound("player piles are not fully assigned")
        return self.deck_id, self.hand_id, self.discard_id



@dataclass(slots=True)
class TableContext:
    """Explicit per-client view of pile assignments.

    ``user_id`` is the local client; ``piles_by_user`` maps every known user
    to their pile ids and ``table_id`` names the shared table pile.
    """

    user_id: str
    table_id: str | None = None
    piles_by_user: dict[str, PlayerPiles] = field(default_factory=dict)
    privileged_users: set[str] = field(default_factory=set)

    def piles_for(self, user_id: str | None = None) -> PlayerPiles | None:
        piles = self.piles_by_user.get(user_id or self.user_id)
        if piles is None or not piles.complete:
            return None
        return piles

    def assign(self, user_id: str, piles: PlayerPiles) -> None:
        self.piles_by_user[user_id] = piles

    @property
    def is_privileged(self) -> bool:
        return self.user_id in self.privileged_users


class InMemoryPileStore:
    """Reference :class:`PileStore` keeping every pile in process memory.

    ``fail_moves_for`` and ``fail_deletes_for`` name card ids whose moves or
    deletions are rejected, to exercise the repair paths.
    """

    def __init__(self, rng: random.Random | None = None) -> None:
        self.rng = rng or random.Random()
        self.piles: dict[str, Pile] = {}
        self.origins: dict[str, str] = {}
        self.fail_moves_for: set[str] = set()
        self.fail_deletes_for: set[str] = set()
        self.move_calls = 0

    def add_pile(self, pile_id: str, role: PileRole, cards: Iterable[RawCard] = (), *, name: str | None = None) -> Pile:
        pile = Pile(id=pile_id, name=name or pile_id, role=role, cards=[card.copy() for card in cards])
        self.piles[pile_id] = pile
        if role is PileRole.DECK:
            for card in pile.cards:
                self.origins.setdefault(card.id, pile_id)
        return pile

    def _require(self, pile_id: str) -> Pile:
        pile = self.piles.get(pile_id)
        if pile is None:
            raise PileNotFound(f"pile {pile_id} does not exist")
        return pile

    def locate(self, card_id: str) -> list[str]:
        """Return every pile id that currently holds ``card_id``."""

        return [pile.id for pile in self.piles.values() if pile.has(card_id)]

    async def get_pile(self, pile_id: str) -> Pile | None:
        return self.piles.get(pile_id)

    async def move_cards(self, source_id: str, dest_id: str, card_ids: Sequence[str]) -> None:
        self.move_calls += 1
        source = self._require(source_id)
        dest = self._require(dest_id)
        moving: list[RawCard] = []
        for card_id in card_ids:
            if card_id in self.fail_moves_for:
                raise PileStoreError(f"host rejected move of {card_id}")
            if dest.has(card_id):
                raise PileStoreError(f"card {card_id} already present in {dest_id}")
            card = source.get(card_id)
            if card is None:
                raise CardNotInPile(f"card {card_id} not in {source_id}")
            moving.append(card)
        for card in moving:
            source.cards.remove(card)
            dest.cards.append(card)

    async def shuffle_pile(self, pile_id: str) -> None:
        self.rng.shuffle(self._require(pile_id).cards)

    async def reset_pile(self, pile_id: str, *, shuffle: bool = True) -> None:
        """Return the cards of ``pile_id`` to the decks they were created in."""

        pile = self._require(pile_id)
        touched: set[str] = set()
        for card in list(pile.cards):
            origin_id = self.origins.get(card.id)
            if origin_id is None or origin_id == pile_id:
                continue
            origin = self._require(origin_id)
            pile.cards.remove(card)
            if not origin.has(card.id):
                origin.cards.append(card)
            touched.add(origin_id)
        if pile.role is PileRole.DECK:
            touched.add(pile_id)
        for origin_id in touched:
            origin = self._require(origin_id)
            for card in origin.cards:
                card.drawn = False
            if shuffle:
                self.rng.shuffle(origin.cards)

    async def deal_cards(
        self,
        source_id: str,
        dest_ids: Sequence[str],
        count: int,
        mode: DrawMode = DrawMode.RANDOM,
    ) -> list[str]:
        source = self._require(source_id)
        dealt: list[str] = []
        for dest_id in dest_ids:
            dest = self._require(dest_id)
            for _ in range(count):
                available = [card for card in source.undrawn() if not dest.has(card.id)]
                if not available:
                    break
                card = self.rng.choice(available) if mode is DrawMode.RANDOM else available[0]
                source.cards.remove(card)
                card.drawn = True
                dest.cards.append(card)
                dealt.append(card.id)
        return dealt

    async def update_cards(self, pile_id: str, updates: Sequence[CardUpdate]) -> None:
        pile = self._require(pile_id)
        for update in updates:
            card = pile.get(update.card_id)
            if card is None:
                raise CardNotInPile(f"card {update.card_id} not in {pile_id}")
            if update.drawn is not None:
                card.drawn = update.drawn
            if update.flags:
                card.flags.update(update.flags)
            for key in update.clear_flags:
                card.flags.pop(key, None)

    async def delete_card(self, pile_id: str, card_id: str) -> None:
        if card_id in self.fail_deletes_for:
            raise PileStoreError(f"host rejected deletion of {card_id}")
        pile = self._require(pile_id)
        card = pile.get(card_id)
        if card is None:
            raise CardNotInPile(f"card {card_id} not in {pile_id}")
        pile.cards.remove(card)
        logger.debug("Deleted card %s from pile %s", card_id, pile_id)
