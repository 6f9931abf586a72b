"""Scripted multi-player session on the in-memory pile store."""

from __future__ import annotations

import logging
import random
from collections import Counter
from dataclasses import dataclass, field
from typing import Iterable

from .cards import iter_full_deck
from .collaborators import (
    Combatant,
    Disposition,
    PrivilegedCoordinator,
    ProxyResourceMutator,
    ResourceLedger,
    StaticPermissions,
)
from .config import DEFAULT_CONFIG, EngineConfig
from .engine import SetEngine, TargetSelection
from .notifications import NotificationHub, RenderState
from .piles import InMemoryPileStore, PileRole, PlayerPiles, TableContext
from .transfer import TransferOutcome, outcome_counts

__all__ = ["Seat", "Table", "SimulationReport", "build_table", "run_simulation"]

logger = logging.getLogger(__name__)

TABLE_ID = "table"
GM_ID = "gm"
ENEMY_IDS = ("enemy-0", "enemy-1")


@dataclass(slots=True)
class Seat:
    user_id: str
    hero_id: str
    engine: SetEngine


@dataclass(slots=True)
class SimulationReport:
    events: list[str] = field(default_factory=list)
    combatants: list[Combatant] = field(default_factory=list)
    sets_played: Counter[str] = field(default_factory=Counter)
    moves: Counter[str] = field(default_factory=Counter)
    table_cards: int = 0

    def record_moves(self, outcomes: Iterable[TransferOutcome]) -> None:
        self.moves.update({status.value: count for status, count in outcome_counts(outcomes).items()})


@dataclass(slots=True)
class Table:
    store: InMemoryPileStore
    ledger: ResourceLedger
    hub: NotificationHub
    seats: list[Seat]
    view: RenderState


def build_table(players: int, seed: int | None = None, config: EngineConfig = DEFAULT_CONFIG) -> Table:
    """Create decks, piles, combatants and one engine per player."""

    rng = random.Random(seed)
    store = InMemoryPileStore(random.Random(rng.getrandbits(32)))
    store.add_pile(TABLE_ID, PileRole.TABLE, name="Table")
    ledger = ResourceLedger(
        Combatant(enemy_id, f"Enemy {index}", Disposition.ENEMY, hp=400, hp_max=400, mp=0, mp_max=0)
        for index, enemy_id in enumerate(ENEMY_IDS)
    )
    hub = NotificationHub()
    PrivilegedCoordinator(hub.connect(GM_ID), ledger)

    context_piles: dict[str, PlayerPiles] = {}
    for index in range(players):
        user_id = f"player-{index}"
        deck_id, hand_id, discard_id = f"{user_id}-deck", f"{user_id}-hand", f"{user_id}-discard"
        store.add_pile(deck_id, PileRole.DECK, iter_full_deck(prefix=f"P{index}-"), name=f"Deck {index}")
        store.add_pile(hand_id, PileRole.HAND, name=f"Hand {index}")
        store.add_pile(discard_id, PileRole.DISCARD, name=f"Discard {index}")
        context_piles[user_id] = PlayerPiles(deck_id=deck_id, hand_id=hand_id, discard_id=discard_id)
        ledger.add(Combatant(f"hero-{index}", f"Hero {index}", Disposition.ALLY, hp=60, hp_max=80, mp=60, mp_max=80))

    seats: list[Seat] = []
    for index, user_id in enumerate(context_piles):
        hero_id = f"hero-{index}"
        context = TableContext(user_id=user_id, table_id=TABLE_ID, piles_by_user=dict(context_piles))
        bus = hub.connect(user_id)
        permissions = StaticPermissions({hero_id})
        resources = ProxyResourceMutator(ledger, bus, permissions)
        engine = SetEngine(
            context,
            store,
            resources,
            ledger,
            bus,
            permissions,
            config,
            random.Random(rng.getrandbits(32)),
        )
        seats.append(Seat(user_id=user_id, hero_id=hero_id, engine=engine))

    view = RenderState(store, TABLE_ID)
    view.listen(hub.connect("observer"))
    return Table(store=store, ledger=ledger, hub=hub, seats=seats, view=view)


async def _assign_jokers(seat: Seat) -> None:
    """Give unassigned jokers in hand the most common rank already held."""

    cards = await seat.engine.hand_cards()
    faces = [card for card in cards if not card.is_wild and card.rank and card.suit is not None]
    if not faces:
        return
    rank, _ = Counter(card.rank for card in faces).most_common(1)[0]
    suit = next(card.suit for card in faces if card.rank == rank and card.suit is not None)
    for card in cards:
        if card.is_wild and not card.is_resolved_wild:
            await seat.engine.assign_wild(card.id, rank, suit)



async def _take_turn(seat: Seat, table: Table, report: SimulationReport) -> None:
    engine = seat.engine
    drawn = await engine.draw_card()
    report.record_moves(drawn.outcomes)
    if not drawn.ok:
        report.events.append(f"{seat.user_id} cannot draw ({drawn.reason.value if drawn.reason else 'unknown'})")
        return
    if drawn.reshuffled:
        report.events.append(f"{seat.user_id} reshuffled the discard pile")
    await _assign_jokers(seat)

    playable = [option for option in await engine.playable_sets(seat.hero_id) if option.playable]
    if not playable:
        return
    choice = min(playable, key=lambda option: option.cost)
    played = await engine.play_set_to_table(choice.detected, seat.hero_id)
    report.record_moves(played.outcomes)
    if not played.ok:
        report.events.append(f"{seat.user_id} failed to play {choice.detected.type.display_name}")
        return
    report.sets_played[choice.detected.type.value] += 1

    on_table = [
        detected
        for detected in await engine.table_sets()
        if set(detected.card_ids) == set(choice.detected.card_ids)
    ]
    if not on_table:
        report.events.append(f"{seat.user_id} left {choice.detected.type.display_name} on the table")
        return
    allies = tuple(other.hero_id for other in table.seats if other is not seat)
    result = await engine.activate_set(on_table[0], seat.hero_id, TargetSelection(hostile=ENEMY_IDS, friendly=allies))
    report.record_moves(result.outcomes)
    if result.ok and result.effect is not None:
        summary = f"{seat.user_id} activated {choice.detected.type.display_name} ({choice.detected.label()})"
        if result.effect.deals_damage:
            summary += f" for {result.effect.damage_value} damage"
        report.events.append(summary)
    else:
        report.events.append(f"{seat.user_id} could not activate {choice.detected.type.display_name}")


async def run_simulation(
    players: int = 2,
    turns: int = 5,
    seed: int | None = None,
    config: EngineConfig = DEFAULT_CONFIG,
) -> SimulationReport:
    """Play ``turns`` rounds where every player draws, plays and activates.

    Each player plays the cheapest affordable set in hand; the table is
    cleaned at the end of every round.
    """

    table = build_table(players, seed, config)
    report = SimulationReport()
    for seat in table.seats:
        await seat.engine.draw_starting_hand()
    for turn in range(1, turns + 1):
        report.events.append(f"Round {turn}")
        for seat in table.seats:
            await _take_turn(seat, table, report)
            await table.hub.flush()
        cleanup = await table.seats[0].engine.clean_table()
        report.record_moves(cleanup.outcomes)
        if cleanup.ok:
            report.events.append(f"Table cleaned, {cleanup.moved} cards returned")
        await table.hub.flush()
    report.combatants = list(table.ledger.combatants.values())
    report.table_cards = len(table.view.snapshot.card_ids)
    logger.info("Simulation finished after %d rounds", turns)
    return report
