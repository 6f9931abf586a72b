"""Tests covering the move protocol and its repair paths."""

from __future__ import annotations

import random

import pytest

from acecards import transfer
from acecards.cards import RawCard, parse_card_code
from acecards.config import EngineConfig
from acecards.piles import InMemoryPileStore, PileNotFound, PileRole, PlayerPiles, TableContext
from acecards.transfer import FailureReason, TransferOutcome, TransferStatus, outcome_counts


def _raws(codes: str) -> list[RawCard]:
    return [parse_card_code(code) for code in codes.split()]


def _setup(
    deck: str = "1H 2H 3H 4H 5H 6H",
    hand: str = "",
    discard: str = "",
    table: list[RawCard] | None = None,
) -> tuple[InMemoryPileStore, PlayerPiles]:
    store = InMemoryPileStore(random.Random(7))
    store.add_pile("deck", PileRole.DECK, _raws(deck))
    store.add_pile("hand", PileRole.HAND, _raws(hand))
    store.add_pile("discard", PileRole.DISCARD, _raws(discard))
    store.add_pile("table", PileRole.TABLE, table or [])
    return store, PlayerPiles(deck_id="deck", hand_id="hand", discard_id="discard")


def _owned(code: str, owner: str | None) -> RawCard:
    card = parse_card_code(code)
    if owner is not None:
        card.flags.update({"ownerId": owner, "setType": "magic-pair"})
    return card


@pytest.mark.asyncio
async def test_draw_every_card_then_reshuffle() -> None:
    store, piles = _setup()
    rng = random.Random(3)

    drawn = [await transfer.draw_card(store, piles, rng) for _ in range(6)]

    assert all(result.ok for result in drawn)
    assert len({result.card_id for result in drawn}) == 6
    assert store.piles["deck"].undrawn() == []
    assert all(card.drawn for card in store.piles["hand"].cards)

    empty = await transfer.draw_card(store, piles, rng)
    assert not empty.ok
    assert empty.reason is FailureReason.DECK_EMPTY

    for card_id in ("1H", "2H"):
        assert (await transfer.discard_card(store, piles, card_id)).ok
    refilled = await transfer.draw_card(store, piles, rng)

    assert refilled.ok
    assert refilled.reshuffled
    assert refilled.card_id in {"1H", "2H"}
    assert len(store.piles["discard"]) == 0
    assert len(store.piles["hand"]) == 5


@pytest.mark.asyncio
async def test_draw_fails_when_reshuffle_leaves_nothing_to_draw() -> None:
    store, piles = _setup(deck="", hand="6D 7D", discard="6D 7D")

    result = await transfer.draw_card(store, piles, random.Random(1))

    assert (result.ok, result.reshuffled) == (False, True)
    assert result.reason is FailureReason.DECK_EMPTY
    assert store.locate("6D") == ["hand"]
    assert len(store.piles["deck"]) == 0


@pytest.mark.asyncio
async def test_reshuffle_requires_every_pile() -> None:
    store, _ = _setup(discard="1S")

    with pytest.raises(PileNotFound):
        await transfer.reshuffle_discard(store, PlayerPiles(deck_id="deck"))
    assert store.piles["discard"].card_ids() == ["1S"]


@pytest.mark.asyncio
async def test_draw_without_piles_fails() -> None:
    store, _ = _setup()

    result = await transfer.draw_card(store, PlayerPiles(deck_id="deck"), random.Random(1))

    assert not result.ok
    assert result.reason is FailureReason.NO_PILES


@pytest.mark.asyncio
async def test_draw_skips_card_already_in_hand() -> None:
    store, piles = _setup(deck="3H", hand="3H")

    result = await transfer.draw_card(store, piles, random.Random(1))

    assert not result.ok
    assert result.reason is FailureReason.DECK_EMPTY
    assert store.piles["deck"].cards[0].drawn
    assert len(store.piles["hand"]) == 1


@pytest.mark.asyncio
async def test_draw_guard_picks_another_card() -> None:
    store, piles = _setup(deck="3H 4H", hand="3H")

    result = await transfer.draw_card(store, piles, random.Random(1))

    assert result.ok
    assert result.card_id == "4H"
    assert store.piles["hand"].card_ids().count("3H") == 1


@pytest.mark.asyncio
async def test_move_of_absent_card_is_already_moved() -> None:
    store, _ = _setup()

    outcome = await transfer.move_card(store, "hand", "discard", "1H")

    assert outcome.status is TransferStatus.ALREADY_MOVED
    assert store.piles["deck"].has("1H")


@pytest.mark.asyncio
async def test_failed_move_falls_back_to_deletion() -> None:
    store, _ = _setup(deck="", hand="3H 4H")
    store.fail_moves_for.add("3H")

    outcomes = await transfer.move_cards(store, "hand", "discard", ["3H", "4H"])

    assert [outcome.status for outcome in outcomes] == [TransferStatus.DELETED_FALLBACK, TransferStatus.MOVED]
    assert store.locate("3H") == []
    assert store.piles["discard"].card_ids() == ["4H"]


@pytest.mark.asyncio
async def test_failed_fallback_deletion_is_reported() -> None:
    store, _ = _setup(hand="3H")
    store.fail_moves_for.add("3H")
    store.fail_deletes_for.add("3H")

    outcome = await transfer.move_card(store, "hand", "discard", "3H")

    assert outcome.status is TransferStatus.FAILED
    assert store.piles["hand"].has("3H")


@pytest.mark.asyncio
async def test_duplicate_in_destination_is_deleted_from_source() -> None:
    store, _ = _setup(deck="", discard="5C", table=[_owned("5C", "u1")])

    outcome = await transfer.move_card(store, "table", "discard", "5C", check_duplicate=True)

    assert outcome.status is TransferStatus.DUPLICATE_REMOVED
    assert store.locate("5C") == ["discard"]


@pytest.mark.asyncio
async def test_repair_duplicates_keeps_first_pile() -> None:
    store, _ = _setup(deck="1H 2H", hand="2H", discard="2H 1H")

    assert set(await transfer.find_duplicates(store, ["hand", "deck", "discard"])) == {"1H", "2H"}
    outcomes = await transfer.repair_duplicates(store, ["hand", "deck", "discard"])

    assert {outcome.status for outcome in outcomes} == {TransferStatus.DUPLICATE_REMOVED}
    assert store.locate("2H") == ["hand"]
    assert store.locate("1H") == ["deck"]


@pytest.mark.asyncio
async def test_reshuffle_repairs_discard_copies_of_hand_cards() -> None:
    store, piles = _setup(deck="", hand="6D", discard="6D 7D")

    await transfer.reshuffle_discard(store, piles)

    assert store.locate("6D") == ["hand"]
    assert store.piles["deck"].card_ids() == ["7D"]
    assert not store.piles["deck"].cards[0].drawn


@pytest.mark.asyncio
async def test_move_in_batches_paces_moves(monkeypatch: pytest.MonkeyPatch) -> None:
    store, _ = _setup(hand="1S 2S 3S 4S 5S")
    pauses: list[float] = []

    async def fake_sleep(delay: float) -> None:
        pauses.append(delay)

    monkeypatch.setattr(transfer.asyncio, "sleep", fake_sleep)
    moves = [("hand", "discard", card_id) for card_id in ["1S", "2S", "3S", "4S", "5S"]]
    outcomes = await transfer.move_in_batches(store, moves, EngineConfig(batch_size=2, batch_delay=0.5))

    assert all(outcome.moved for outcome in outcomes)
    assert pauses == [0.5, 0.5]
    assert len(store.piles["discard"]) == 5


@pytest.mark.asyncio
async def test_clean_table_returns_cards_to_owners() -> None:
    store, piles = _setup(deck="")
    store.add_pile("discard-2", PileRole.DISCARD)
    store.piles["table"].cards.extend([_owned("1C", "u1"), _owned("2C", "u2"), _owned("3C", None), _owned("4C", "u3")])
    context = TableContext(
        user_id="u1",
        table_id="table",
        piles_by_user={"u1": piles, "u2": PlayerPiles("deck", "hand", "discard-2")},
    )

    report = await transfer.clean_table(store, context, EngineConfig(batch_delay=0))

    assert report.ok
    assert report.moved == 2
    assert report.ownerless == ["3C"]
    assert report.owners_without_piles == ["u3"]
    assert store.piles["table"].card_ids() == ["3C", "4C"]
    assert store.piles["discard"].card_ids() == ["1C"]
    assert store.piles["discard-2"].card_ids() == ["2C"]
    assert "ownerId" not in store.piles["discard"].cards[0].flags


@pytest.mark.asyncio
async def test_clean_table_reports_missing_or_empty_table() -> None:
    store, piles = _setup()

    empty = await transfer.clean_table(store, TableContext(user_id="u1", table_id="table"))
    missing = await transfer.clean_table(store, TableContext(user_id="u1"))

    assert (empty.ok, empty.reason) == (False, FailureReason.TABLE_EMPTY)
    assert (missing.ok, missing.reason) == (False, FailureReason.NO_TABLE)


@pytest.mark.asyncio
async def test_place_on_table_stamps_flags_and_phantoms() -> None:
    joker = parse_card_code("JOKER=3H", card_id="J1")
    store, _ = _setup()
    store.piles["hand"].cards.append(joker.copy())

    outcome = await transfer.place_on_table(store, "hand", "table", joker, "u1", "magic-pair")

    assert outcome.moved
    flags = store.piles["table"].cards[0].flags
    assert flags["ownerId"] == "u1"
    assert "setId" not in flags
    assert flags["setType"] == "magic-pair"
    assert (flags["phantomValue"], flags["phantomSuit"]) == (3, "hearts")


@pytest.mark.asyncio
async def test_return_card_to_hand_requires_owner() -> None:
    store, piles = _setup(table=[_owned("2D", "u1"), _owned("3D", "u2")])
    context = TableContext(user_id="u1", table_id="table", piles_by_user={"u1": piles})

    denied = await transfer.return_card_to_hand(store, context, "3D")
    returned = await transfer.return_card_to_hand(store, context, "2D")

    assert denied.reason is FailureReason.NOT_OWNER
    assert returned.ok
    assert store.piles["hand"].card_ids() == ["2D"]
    assert store.piles["hand"].cards[0].flags == {}


@pytest.mark.asyncio
async def test_draw_starting_hand_discards_old_hand() -> None:
    store, piles = _setup(deck="1D 2D 3D 4D 5D 6D 7D", hand="1S 2S")

    result = await transfer.draw_starting_hand(store, piles, random.Random(2), EngineConfig(starting_hand_size=5))

    assert result.ok
    assert len(store.piles["hand"]) == 5
    assert store.piles["discard"].card_ids() == ["1S", "2S"]
    assert all(card.drawn for card in store.piles["hand"].cards)


@pytest.mark.asyncio
async def test_reset_deck_recalls_discard() -> None:
    store, piles = _setup(deck="1D 2D 3D")
    rng = random.Random(4)
    for _ in range(3):
        await transfer.draw_card(store, piles, rng)
    await transfer.reset_hand(store, piles)

    result = await transfer.reset_deck(store, piles)

    assert result.ok
    assert sorted(store.piles["deck"].card_ids()) == ["1D", "2D", "3D"]
    assert store.piles["deck"].undrawn() == store.piles["deck"].cards
    assert len(store.piles["discard"]) == 0


def test_outcome_counts_tallies_statuses() -> None:
    outcomes = [
        TransferOutcome("1H", TransferStatus.MOVED),
        TransferOutcome("2H", TransferStatus.MOVED),
        TransferOutcome("3H", TransferStatus.DUPLICATE_REMOVED),
    ]

    assert outcome_counts(outcomes) == {TransferStatus.MOVED: 2, TransferStatus.DUPLICATE_REMOVED: 1}
    assert outcome_counts([]) == {}
