"""Rendering helpers dedicated to the CLI experience."""

from __future__ import annotations

from typing import Iterable, Sequence

from rich import box
from rich.table import Table

from ..cards import ClassifiedCard, Suit
from ..collaborators import Combatant
from ..effects import describe_effect, resolve_effect
from ..odds import SetOdds
from ..sets import DetectedSet, SetType

_SUIT_COLOURS = {
    Suit.HEARTS: "red",
    Suit.DIAMONDS: "magenta",
    Suit.CLUBS: "green",
    Suit.SPADES: "cyan",
}


def format_card(card: ClassifiedCard) -> str:
    """Return a Rich-rendered label for ``card``."""

    suit = card.effective_suit
    if card.is_wild and suit is None:
        return "[magenta]🃏[/magenta]"
    colour = _SUIT_COLOURS.get(suit, "white") if suit is not None else "white"
    return f"[{colour}]{card.label()}[/{colour}]"


def format_cards(cards: Iterable[ClassifiedCard]) -> str:
    return " ".join(format_card(card) for card in cards) or "—"


def render_sets(detected: Sequence[DetectedSet], *, title: str = "Detected Sets") -> Table:
    table = Table(title=title, box=box.SIMPLE_HEAVY)
    table.add_column("Set", justify="left", no_wrap=True)
    table.add_column("Cards", justify="left")
    table.add_column("Cost", justify="right")
    table.add_column("Effect", justify="left")
    for item in detected:
        effect = resolve_effect(item)
        table.add_row(item.type.display_name, format_cards(item.cards), f"{effect.cost} MP", describe_effect(item))
    return table


def render_combatants(combatants: Sequence[Combatant]) -> Table:
    table = Table(title="Combatants", box=box.SIMPLE_HEAVY)
    table.add_column("Name", justify="left")
    table.add_column("HP", justify="right")
    table.add_column("MP", justify="right")
    table.add_column("Statuses", justify="left")
    for combatant in combatants:
        statuses = ", ".join(sorted(status.value for status in combatant.statuses)) or "—"
        table.add_row(
            combatant.name,
            f"{combatant.hp}/{combatant.hp_max}",
            f"{combatant.mp}/{combatant.mp_max}",
            statuses,
        )
    return table


def render_odds(odds: SetOdds) -> Table:
    table = Table(title=f"Set odds for {odds.hand_size}-card hands ({odds.samples} samples)", box=box.SIMPLE_HEAVY)
    table.add_column("Set", justify="left", no_wrap=True)
    table.add_column("Hands", justify="right")
    table.add_column("Sets per hand", justify="right")
    for set_type in SetType:
        table.add_row(
            set_type.display_name,
            f"{odds.frequency(set_type):.1%}",
            f"{odds.mean_sets(set_type):.2f}",
        )
    return table
