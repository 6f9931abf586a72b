"""Move protocol for relocating cards between piles with self-repair.

The host substrate offers no atomicity across piles, so every helper here
checks presence before moving, removes duplicate instances instead of moving
them, and deletes a card from its source when the host rejects its move.
None of these helpers raise for host failures; they report outcomes.
"""

from __future__ import annotations

import asyncio
import logging
import random
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Mapping, Sequence

from .cards import RawCard
from .config import DEFAULT_CONFIG, EngineConfig
from .piles import CardNotInPile, CardUpdate, DrawMode, PileStore, PileStoreError, PlayerPiles, TableContext

__all__ = [
    "TABLE_FLAGS",
    "TransferStatus",
    "TransferOutcome",
    "FailureReason",
    "OperationResult",
    "DrawResult",
    "CleanupReport",
    "move_card",
    "move_cards",
    "move_in_batches",
    "find_duplicates",
    "repair_duplicates",
    "reshuffle_discard",
    "draw_card",
    "draw_starting_hand",
    "discard_card",
    "place_on_table",
    "return_card_to_hand",
    "reset_hand",
    "reset_deck",
    "clean_table",
    "clear_table_flags",
    "outcome_counts",
]

logger = logging.getLogger(__name__)

TABLE_FLAGS = ("ownerId", "setType", "setId")


class TransferStatus(str, Enum):
    MOVED = "moved"
    ALREADY_MOVED = "already_moved"
    DUPLICATE_REMOVED = "duplicate_removed"
    DELETED_FALLBACK = "deleted_fallback"
    FAILED = "failed"


class FailureReason(str, Enum):
    """Why an operation reported failure to its caller."""

    NO_PILES = "no_piles"
    NO_TABLE = "no_table"
    CARD_MISSING = "card_missing"
    UNASSIGNED_WILD = "unassigned_wild"
    INSUFFICIENT_MP = "insufficient_mp"
    NOT_OWNER = "not_owner"
    MOVE_FAILED = "move_failed"
    NO_TARGETS = "no_targets"
    DECK_EMPTY = "deck_empty"
    TABLE_EMPTY = "table_empty"
    ILLEGAL_ALLOCATION = "illegal_allocation"
    NOT_WILD = "not_wild"
    UPDATE_FAILED = "update_failed"


@dataclass(frozen=True, slots=True)
class TransferOutcome:
    card_id: str
    status: TransferStatus
    detail: str = ""

    @property
    def moved(self) -> bool:
        return self.status is TransferStatus.MOVED


@dataclass(frozen=True, slots=True)
class OperationResult:
    """Boolean result plus an optional reason, as handed to the UI layer."""

    ok: bool
    reason: FailureReason | None = None
    outcomes: tuple[TransferOutcome, ...] = ()

    def __bool__(self) -> bool:
        return self.ok

    @classmethod
    def success(cls, outcomes: Iterable[TransferOutcome] = ()) -> "OperationResult":
        return cls(ok=True, outcomes=tuple(outcomes))

    @classmethod
    def failure(cls, reason: FailureReason, outcomes: Iterable[TransferOutcome] = ()) -> "OperationResult":
        return cls(ok=False, reason=reason, outcomes=tuple(outcomes))


@dataclass(frozen=True, slots=True)
class DrawResult(OperationResult):
    card_id: str | None = None
    reshuffled: bool = False


@dataclass(slots=True)
class CleanupReport:
    """Summary of a table cleanup pass."""

    ok: bool = True
    reason: FailureReason | None = None
    outcomes: list[TransferOutcome] = field(default_factory=list)
    ownerless: list[str] = field(default_factory=list)
    owners_without_piles: list[str] = field(default_factory=list)

    @property
    def moved(self) -> int:
        return sum(1 for outcome in self.outcomes if outcome.moved)


async def _contains(store: PileStore, pile_id: str, card_id: str) -> bool:
    pile = await store.get_pile(pile_id)
    return pile is not None and pile.has(card_id)


async def _fallback_delete(store: PileStore, source_id: str, card_id: str, error: Exception) -> TransferOutcome:
    logger.error("Move of card %s out of %s failed: %s", card_id, source_id, error)
    try:
        await store.delete_card(source_id, card_id)
    except PileStoreError as delete_error:
        logger.error("Fallback deletion of card %s from %s failed: %s", card_id, source_id, delete_error)
        return TransferOutcome(card_id, TransferStatus.FAILED, str(delete_error))
    logger.warning("Repair: deleted card %s from %s after failed move", card_id, source_id)
    return TransferOutcome(card_id, TransferStatus.DELETED_FALLBACK, str(error))


async def move_card(
    store: PileStore,
    source_id: str,
    dest_id: str,
    card_id: str,
    *,
    check_duplicate: bool = False,
) -> TransferOutcome:
    """Move one card, repairing instead of raising.

    A card missing from ``source_id`` is reported as already moved. With
    ``check_duplicate`` a card already present in ``dest_id`` has its source
    instance deleted rather than moved.
    """

    source = await store.get_pile(source_id)
    if source is None:
        return TransferOutcome(card_id, TransferStatus.FAILED, f"pile {source_id} not found")
    if not source.has(card_id):
        logger.debug("Card %s no longer in %s; treating as already moved", card_id, source_id)
        return TransferOutcome(card_id, TransferStatus.ALREADY_MOVED)

    if check_duplicate and await _contains(store, dest_id, card_id):
        logger.warning("Repair: card %s already in %s, deleting duplicate from %s", card_id, dest_id, source_id)
        try:
            await store.delete_card(source_id, card_id)
        except PileStoreError as exc:
            logger.error("Could not delete duplicate card %s from %s: %s", card_id, source_id, exc)
            return TransferOutcome(card_id, TransferStatus.FAILED, str(exc))
        return TransferOutcome(card_id, TransferStatus.DUPLICATE_REMOVED)

    try:
        await store.move_cards(source_id, dest_id, [card_id])
    except CardNotInPile:
        return TransferOutcome(card_id, TransferStatus.ALREADY_MOVED)
    except PileStoreError as exc:
        return await _fallback_delete(store, source_id, card_id, exc)
    return TransferOutcome(card_id, TransferStatus.MOVED)


async def move_cards(
    store: PileStore,
    source_id: str,
    dest_id: str,
    card_ids: Sequence[str],
    *,
    check_duplicate: bool = False,
) -> list[TransferOutcome]:
    """Move each card independently; one failure never stops its siblings."""

    return [
        await move_card(store, source_id, dest_id, card_id, check_duplicate=check_duplicate)
        for card_id in card_ids
    ]


async def move_in_batches(
    store: PileStore,
    moves: Sequence[tuple[str, str, str]],
    config: EngineConfig = DEFAULT_CONFIG,
) -> list[TransferOutcome]:
    """Apply ``(source_id, dest_id, card_id)`` moves in small paced batches.

    Every move is duplicate-checked against its destination first.
    """

    outcomes: list[TransferOutcome] = []
    for start in range(0, len(moves), config.batch_size):
        if start and config.batch_delay:
            await asyncio.sleep(config.batch_delay)
        for source_id, dest_id, card_id in moves[start : start + config.batch_size]:
            outcomes.append(await move_card(store, source_id, dest_id, card_id, check_duplicate=True))
    return outcomes


async def find_duplicates(store: PileStore, pile_ids: Iterable[str]) -> dict[str, list[str]]:
    """Map every card id seen more than once across ``pile_ids`` to its piles.

    A pile listed twice is only scanned once; a card repeated inside a single
    pile appears once per instance.
    """

    seen: dict[str, list[str]] = defaultdict(list)
    for pile_id in dict.fromkeys(pile_ids):
        pile = await store.get_pile(pile_id)
        if pile is None:
            continue
        for card in pile.cards:
            seen[card.id].append(pile_id)
    return {card_id: piles for card_id, piles in seen.items() if len(piles) > 1}


async def repair_duplicates(store: PileStore, pile_ids: Sequence[str]) -> list[TransferOutcome]:
    """Delete every instance of a duplicated card but the first one found.

    ``pile_ids`` is ordered by precedence: the copy in the earliest pile wins.
    """

    outcomes: list[TransferOutcome] = []
    for card_id, holders in (await find_duplicates(store, pile_ids)).items():
        for pile_id in holders[1:]:
            try:
                await store.delete_card(pile_id, card_id)
            except PileStoreError as exc:
                logger.error("Could not delete duplicate card %s from %s: %s", card_id, pile_id, exc)
                outcomes.append(TransferOutcome(card_id, TransferStatus.FAILED, str(exc)))
                continue
            logger.warning("Repair: removed duplicate card %s from %s", card_id, pile_id)
            outcomes.append(TransferOutcome(card_id, TransferStatus.DUPLICATE_REMOVED, pile_id))
    return outcomes


async def reshuffle_discard(store: PileStore, piles: PlayerPiles) -> list[TransferOutcome]:
    """Move the discard pile into the deck, clear drawn flags and shuffle.

    Raises :class:`PileNotFound` when ``piles`` is not fully assigned.
    """

    deck_id, hand_id, discard_id = piles.require()
    # A discard card that is also held in hand or deck is corrupt; keep the
    # hand copy first, then the deck copy.
    outcomes = await repair_duplicates(store, [hand_id, deck_id, discard_id])
    discard = await store.get_pile(discard_id)
    if discard is None:
        return outcomes
    outcomes += await move_cards(store, discard_id, deck_id, discard.card_ids(), check_duplicate=True)
    deck = await store.get_pile(deck_id)
    if deck is not None and deck.cards:
        await store.update_cards(deck_id, [CardUpdate(card.id, drawn=False) for card in deck.cards])
        await store.shuffle_pile(deck_id)
        logger.info("Reshuffled %d cards from %s into %s", len(outcomes), discard_id, deck_id)
    return outcomes


async def draw_card(
    store: PileStore,
    piles: PlayerPiles | None,
    rng: random.Random,
    *,
    allow_reshuffle: bool = True,
) -> DrawResult:
    """Draw one undrawn card chosen uniformly at random into the hand.

    An exhausted deck is refilled from the discard pile once; a card that is
    somehow already in the hand is flagged drawn and another is picked.
    """

    if piles is None or not piles.complete:
        logger.error("Cannot draw: no deck assigned")
        return DrawResult(ok=False, reason=FailureReason.NO_PILES)
    deck_id, hand_id, discard_id = piles.require()
    deck = await store.get_pile(deck_id)
    hand = await store.get_pile(hand_id)
    if deck is None or hand is None:
        return DrawResult(ok=False, reason=FailureReason.NO_PILES)

    candidates = deck.undrawn()
    logger.debug("Deck %s has %d cards, %d available", deck.id, len(deck), len(candidates))
    while candidates:
        card = rng.choice(candidates)
        candidates.remove(card)
        if hand.has(card.id):
            logger.warning("Repair: card %s already in hand %s, marking it drawn in deck", card.id, hand.id)
            await store.update_cards(deck.id, [CardUpdate(card.id, drawn=True)])
            continue
        outcome = await move_card(store, deck.id, hand.id, card.id)
        if outcome.moved:
            await store.update_cards(hand.id, [CardUpdate(card.id, drawn=True)])
            return DrawResult(ok=True, outcomes=(outcome,), card_id=card.id)
        if outcome.status is TransferStatus.FAILED:
            return DrawResult(ok=False, reason=FailureReason.MOVE_FAILED, outcomes=(outcome,))

    discard = await store.get_pile(discard_id)
    if not allow_reshuffle or discard is None or not discard.cards:
        logger.info("Cannot draw: deck %s empty and no cards to reshuffle", deck.id)
        return DrawResult(ok=False, reason=FailureReason.DECK_EMPTY)
    try:
        await reshuffle_discard(store, piles)
    except PileStoreError as exc:
        logger.error("Error reshuffling %s: %s", discard_id, exc)
        return DrawResult(ok=False, reason=FailureReason.MOVE_FAILED)
    retried = await draw_card(store, piles, rng, allow_reshuffle=False)
    return DrawResult(
        ok=retried.ok,
        reason=retried.reason,
        outcomes=retried.outcomes,
        card_id=retried.card_id,
        reshuffled=True,
    )


async def draw_starting_hand(
    store: PileStore,
    piles: PlayerPiles | None,
    rng: random.Random,
    config: EngineConfig = DEFAULT_CONFIG,
) -> OperationResult:
    """Discard the current hand then deal ``config.starting_hand_size`` cards."""

    if piles is None or not piles.complete:
        return OperationResult.failure(FailureReason.NO_PILES)
    deck_id, hand_id, _ = piles.require()
    cleared = await reset_hand(store, piles)
    outcomes = list(cleared.outcomes)
    try:
        dealt = await store.deal_cards(deck_id, [hand_id], config.starting_hand_size, DrawMode.RANDOM)
    except PileStoreError as exc:
        logger.error("Error dealing starting hand into %s: %s", hand_id, exc)
        dealt = []
    outcomes.extend(TransferOutcome(card_id, TransferStatus.MOVED) for card_id in dealt)
    for _ in range(config.starting_hand_size - len(dealt)):
        result = await draw_card(store, piles, rng)
        if not result.ok:
            return OperationResult.failure(result.reason or FailureReason.DECK_EMPTY, outcomes)
        outcomes.extend(result.outcomes)
    return OperationResult.success(outcomes)


async def discard_card(store: PileStore, piles: PlayerPiles | None, card_id: str) -> OperationResult:
    if piles is None or not piles.complete:
        return OperationResult.failure(FailureReason.NO_PILES)
    _, hand_id, discard_id = piles.require()
    outcome = await move_card(store, hand_id, discard_id, card_id)
    if outcome.moved:
        return OperationResult.success([outcome])
    if outcome.status is TransferStatus.ALREADY_MOVED:
        return OperationResult.failure(FailureReason.CARD_MISSING, [outcome])
    return OperationResult.failure(FailureReason.MOVE_FAILED, [outcome])


def _wild_flags(card: RawCard) -> dict[str, Any]:
    return {key: card.flags[key] for key in ("phantomValue", "phantomSuit") if card.flags.get(key)}


async def place_on_table(
    store: PileStore,
    hand_id: str,
    table_id: str,
    card: RawCard,
    owner_id: str,
    set_type: str | None = None,
    set_id: str | None = None,
) -> TransferOutcome:
    """Move ``card`` from a hand to the table and stamp its table flags.

    ``set_id`` marks every card of one played set so the set can be found
    again among other table cards of the same type. Phantom assignments are
    re-applied from the pre-move record since the host does not carry them
    across a move.
    """

    outcome = await move_card(store, hand_id, table_id, card.id)
    if not outcome.moved:
        return outcome
    flags: dict[str, Any] = {"ownerId": owner_id}
    if set_type is not None:
        flags["setType"] = set_type
    if set_id is not None:
        flags["setId"] = set_id
    flags.update(_wild_flags(card))
    try:
        await store.update_cards(table_id, [CardUpdate(card.id, flags=flags)])
    except PileStoreError as exc:
        logger.error("Could not stamp table flags on card %s: %s", card.id, exc)
    return outcome


async def return_card_to_hand(store: PileStore, context: TableContext, card_id: str) -> OperationResult:
    """Move one of the local user's table cards back to their hand."""

    piles = context.piles_for()
    if piles is None:
        return OperationResult.failure(FailureReason.NO_PILES)
    if context.table_id is None:
        return OperationResult.failure(FailureReason.NO_TABLE)
    table = await store.get_pile(context.table_id)
    if table is None:
        return OperationResult.failure(FailureReason.NO_TABLE)
    card = table.get(card_id)
    if card is None:
        return OperationResult.failure(FailureReason.CARD_MISSING)
    if card.flags.get("ownerId") != context.user_id:
        return OperationResult.failure(FailureReason.NOT_OWNER)
    _, hand_id, _ = piles.require()
    outcome = await move_card(store, context.table_id, hand_id, card_id, check_duplicate=True)
    if not outcome.moved:
        return OperationResult.failure(FailureReason.MOVE_FAILED, [outcome])
    await store.update_cards(hand_id, [CardUpdate(card_id, clear_flags=TABLE_FLAGS)])
    return OperationResult.success([outcome])


async def reset_hand(store: PileStore, piles: PlayerPiles | None) -> OperationResult:
    """Send every card in the hand to the discard pile."""

    if piles is None or not piles.complete:
        return OperationResult.failure(FailureReason.NO_PILES)
    _, hand_id, discard_id = piles.require()
    hand = await store.get_pile(hand_id)
    if hand is None:
        return OperationResult.failure(FailureReason.NO_PILES)
    outcomes = await move_cards(store, hand_id, discard_id, hand.card_ids(), check_duplicate=True)
    return OperationResult.success(outcomes)


async def reset_deck(store: PileStore, piles: PlayerPiles | None) -> OperationResult:
    """Recall the discard pile into its deck and shuffle it."""

    if piles is None or not piles.complete:
        return OperationResult.failure(FailureReason.NO_PILES)
    deck_id, hand_id, discard_id = piles.require()
    try:
        await store.reset_pile(discard_id, shuffle=True)
        await store.reset_pile(deck_id, shuffle=True)
    except PileStoreError as exc:
        logger.error("Error resetting deck %s: %s", deck_id, exc)
        return OperationResult.failure(FailureReason.MOVE_FAILED)
    repaired = await repair_duplicates(store, [hand_id, deck_id])
    logger.info("Deck %s reset and shuffled", deck_id)
    return OperationResult.success(repaired)


async def clean_table(
    store: PileStore,
    context: TableContext,
    config: EngineConfig = DEFAULT_CONFIG,
) -> CleanupReport:
    """Return every owned table card to its owner's discard pile.

    Cards without an owner stay on the table. The report is marked failed
    when the table is missing or already empty.
    """

    if context.table_id is None:
        return CleanupReport(ok=False, reason=FailureReason.NO_TABLE)
    table = await store.get_pile(context.table_id)
    if table is None:
        logger.error("Table pile %s not available", context.table_id)
        return CleanupReport(ok=False, reason=FailureReason.NO_TABLE)
    if not table.cards:
        logger.info("Table is already empty")
        return CleanupReport(ok=False, reason=FailureReason.TABLE_EMPTY)

    report = CleanupReport()
    by_owner: dict[str, list[str]] = defaultdict(list)
    for card in table.cards:
        owner = card.flags.get("ownerId")
        if not owner:
            logger.warning("Card %s has no owner, will remain on table", card.name)
            report.ownerless.append(card.id)
            continue
        by_owner[str(owner)].append(card.id)

    moves: list[tuple[str, str, str]] = []
    destinations: dict[str, str] = {}
    for owner, card_ids in by_owner.items():
        piles = context.piles_for(owner)
        if piles is None or piles.discard_id is None:
            logger.warning("No discard pile found for %s", owner)
            report.owners_without_piles.append(owner)
            continue
        moves.extend((context.table_id, piles.discard_id, card_id) for card_id in card_ids)
        destinations.update((card_id, piles.discard_id) for card_id in card_ids)

    report.outcomes = await move_in_batches(store, moves, config)
    for outcome in report.outcomes:
        if outcome.moved:
            await clear_table_flags(store, destinations[outcome.card_id], outcome.card_id)
    logger.info("Table cleaned: %d cards returned to %d owners", report.moved, len(by_owner))
    return report


async def clear_table_flags(store: PileStore, pile_id: str, card_id: str) -> None:
    try:
        await store.update_cards(pile_id, [CardUpdate(card_id, clear_flags=TABLE_FLAGS)])
    except PileStoreError as exc:
        logger.warning("Could not clear table flags on %s: %s", card_id, exc)


def outcome_counts(outcomes: Iterable[TransferOutcome]) -> Mapping[TransferStatus, int]:
    """Tally outcomes by status."""

    counts: dict[TransferStatus, int] = defaultdict(int)
    for outcome in outcomes:
        counts[outcome.status] += 1
    return dict(counts)
