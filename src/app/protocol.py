from __future__ import annotations

from enum import Enum, IntEnum
from typing import Literal

Outcome = Literal["initiator_win", "responder_win", "draw"]


class Choice(IntEnum):
    NONE = 0
    ROCK = 1
    PAPER = 2
    SCISSORS = 3

    @property
    def label(self) -> str:
        # Hashed into commitments, so these strings are part of the wire format.
        return _LABELS[self]


_LABELS = {
    Choice.NONE: "None",
    Choice.ROCK: "Rock",
    Choice.PAPER: "Paper",
    Choice.SCISSORS: "Scissors",
}


class Party(str, Enum):
    INITIATOR = "initiator"
    RESPONDER = "responder"

    @property
    def other(self) -> "Party":
        return Party.RESPONDER if self is Party.INITIATOR else Party.INITIATOR


class PlayerPhase(str, Enum):
    PENDING = "pending"
    PLAYED = "played"
    CHOICE_STORED = "choice_stored"


class GamePhase(str, Enum):
    INITIATED = "initiated"
    RESPONDED = "responded"
    WIN = "win"
    DRAW = "draw"

    @property
    def is_terminal(self) -> bool:
        return self in (GamePhase.WIN, GamePhase.DRAW)


_BEATS = {
    (Choice.ROCK, Choice.SCISSORS),
    (Choice.SCISSORS, Choice.PAPER),
    (Choice.PAPER, Choice.ROCK),
}


def is_valid_choice(value: object) -> bool:
    # bool is an int subclass; True would otherwise pass as Rock.
    if isinstance(value, bool) or not isinstance(value, int):
        return False
    return value in (Choice.ROCK, Choice.PAPER, Choice.SCISSORS)


def beats(a: Choice, b: Choice) -> bool:
    return (a, b) in _BEATS


def determine_outcome(initiator: Choice, responder: Choice) -> Outcome:
    if initiator == responder:
        return "draw"
    return "initiator_win" if beats(initiator, responder) else "responder_win"
