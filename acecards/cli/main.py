"""Typer entry-point wiring for the acecards CLI."""

from __future__ import annotations

import asyncio
import logging
from typing import List

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel

from .. import effects, odds, simulate
from ..cards import InvalidCardCode, classify_cards, parse_card_code
from ..sets import SetType, detect_sets
from .render import format_cards, render_combatants, render_odds, render_sets

app = typer.Typer(add_completion=False, rich_markup_mode="rich")
console = Console()


class _Placeholders(dict):
    def __missing__(self, key: str) -> str:
        return f"<{key}>"


@app.callback()
def configure(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log engine activity at debug level."),
) -> None:
    """Detect, describe and simulate Ace of Cards sets."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False)],
        force=True,
    )


@app.command()
def detect(
    cards: List[str] = typer.Argument(..., help="Card codes such as 3H, 7S, JOKER or JOKER=5D."),
) -> None:
    """List every set present in CARDS."""

    try:
        raws = [parse_card_code(code, card_id=f"{code.upper()}#{index}") for index, code in enumerate(cards)]
    except InvalidCardCode as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc

    classified = classify_cards(raws)
    console.print(f"Hand: {format_cards(classified)}")
    found = detect_sets(classified)
    if not found:
        console.print("[yellow]No sets found.[/yellow]")
        return
    console.print(render_sets(found))


@app.command()
def describe(set_type: str = typer.Argument(..., help="Set name, e.g. magic-flush or 'Double Trouble'.")) -> None:
    """Print the requirement and rules text of a set type."""

    try:
        parsed = SetType.parse(set_type)
    except ValueError as exc:
        names = ", ".join(item.value for item in SetType)
        console.print(f"[red]Unknown set type '{set_type}'. Choose one of: {names}[/red]")
        raise typer.Exit(code=2) from exc

    requirement, template = effects.SET_DESCRIPTIONS[parsed]
    body = f"[bold]Requirement:[/bold] {requirement}\n\n{template.format_map(_Placeholders())}"
    console.print(Panel(body, title=parsed.display_name, border_style="cyan"))


@app.command("simulate")
def simulate_cli(
    players: int = typer.Option(2, min=1, max=6, help="Number of seated players."),
    turns: int = typer.Option(5, min=1, help="Rounds to play."),
    seed: int | None = typer.Option(None, help="Random seed for reproducible sessions (omit for randomness)."),
) -> None:
    """Play a scripted session on the in-memory piles and print its log."""

    report = asyncio.run(simulate.run_simulation(players=players, turns=turns, seed=seed))
    for line in report.events:
        console.print(line)
    console.print(render_combatants(report.combatants))
    if report.sets_played:
        played = ", ".join(f"{name} x{count}" for name, count in sorted(report.sets_played.items()))
        console.print(f"[cyan]Sets played: {played}[/cyan]")
    if report.moves:
        moves = ", ".join(f"{status} x{count}" for status, count in sorted(report.moves.items()))
        console.print(f"Card moves: {moves}")


@app.command("odds")
def odds_cli(
    hand_size: int = typer.Option(5, min=1, help="Cards per sampled hand."),
    samples: int = typer.Option(1000, min=1, help="Number of hands to sample."),
    seed: int | None = typer.Option(None, help="Random seed for the sampler."),
) -> None:
    """Estimate how often each set type is available in a random hand."""

    try:
        result = odds.sample_set_odds(hand_size=hand_size, samples=samples, seed=seed)
    except ValueError as exc:
        console.print(f"[red]{exc}[/red]")
        raise typer.Exit(code=2) from exc
    console.print(render_odds(result))


def main() -> None:
    """Entry-point for ``python -m acecards.cli``."""

    app()


if __name__ == "__main__":  # pragma: no cover - CLI invocation
    main()
