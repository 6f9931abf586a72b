from __future__ import annotations

from typer.testing import CliRunner

from acecards.cli.main import app

runner = CliRunner()


def test_detect_lists_sets() -> None:
    result = runner.invoke(app, ["detect", "2H", "3H", "4H", "5H"])

    assert result.exit_code == 0
    assert "Magic Flush" in result.output
    assert "Blinding Flush" in result.output


def test_detect_without_sets() -> None:
    result = runner.invoke(app, ["detect", "1H", "3D"])

    assert result.exit_code == 0
    assert "No sets found" in result.output


def test_detect_rejects_bad_codes() -> None:
    result = runner.invoke(app, ["detect", "9Z"])

    assert result.exit_code == 2
    assert "invalid card code" in result.output


def test_describe_set_type() -> None:
    result = runner.invoke(app, ["describe", "forbidden-monarch"])

    assert result.exit_code == 0
    assert "Forbidden Monarch" in result.output
    assert "joker" in result.output


def test_describe_unknown_set_type() -> None:
    result = runner.invoke(app, ["describe", "royal-flush"])

    assert result.exit_code == 2


def test_odds_command() -> None:
    result = runner.invoke(app, ["odds", "--hand-size", "5", "--samples", "20", "--seed", "1"])

    assert result.exit_code == 0
    assert "Jackpot" in result.output


def test_simulate_command() -> None:
    result = runner.invoke(app, ["simulate", "--players", "2", "--turns", "2", "--seed", "5"])

    assert result.exit_code == 0
    assert "Round 2" in result.output
    assert "Combatants" in result.output
    assert "Card moves:" in result.output
