from __future__ import annotations

import json

import pytest

from game import GameResult  # type: ignore[import-not-found]
from protocol import GamePhase  # type: ignore[import-not-found]
from scoreboard import ScoreBoard  # type: ignore[import-not-found]

ALICE = "spiffe://a.domain/player"
BOB = "spiffe://b.domain/player"


def test_records_win_loss_and_draw(tmp_path) -> None:
    path = tmp_path / "scores.json"
    sb = ScoreBoard.load(path)
    sb.record_result(GameResult(ALICE, GamePhase.WIN, "Rock beats Scissors, initiator won"), ALICE, BOB)
    sb.record_result(GameResult(None, GamePhase.DRAW, "both choices are same"), ALICE, BOB)

    assert (sb.get(ALICE).wins, sb.get(ALICE).losses, sb.get(ALICE).draws) == (1, 0, 1)
    assert (sb.get(BOB).wins, sb.get(BOB).losses, sb.get(BOB).draws) == (0, 1, 1)

    data = json.loads(path.read_text(encoding="utf-8"))
    assert data["scores"][BOB] == {"wins": 0, "losses": 1, "draws": 1}

    reloaded = ScoreBoard.load(path)
    assert reloaded.get(ALICE) == sb.get(ALICE)


def test_responder_win_credited_to_responder() -> None:
    sb = ScoreBoard()
    sb.record_result(GameResult(BOB, GamePhase.WIN, "initiator attempt invalid"), ALICE, BOB)
    assert sb.get(BOB).wins == 1
    assert sb.get(ALICE).losses == 1


def test_unfinished_game_rejected() -> None:
    with pytest.raises(ValueError):
        ScoreBoard().record_result(GameResult(None, GamePhase.RESPONDED, ""), ALICE, BOB)


def test_format_table() -> None:
    sb = ScoreBoard()
    assert sb.format_table() == "(no games yet)"
    sb.record_result(GameResult(ALICE, GamePhase.WIN, ""), ALICE, BOB)
    table = sb.format_table().splitlines()
    assert table[0].startswith("identity")
    assert table[2].startswith(ALICE)
    assert table[3].startswith(BOB)
