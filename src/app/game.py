from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field

from commit_reveal import verify_commitment
from errors import InvalidPhase, NotReady
from protocol import Choice, GamePhase, Party, PlayerPhase, determine_outcome

logger = logging.getLogger(__name__)


@dataclass
class PlayerSlot:
    identity: str
    phase: PlayerPhase = PlayerPhase.PENDING
    commitment: bytes | None = None
    choice: Choice = Choice.NONE
    secret: str | None = None

    def commit(self, commitment: bytes) -> None:
        if self.phase is not PlayerPhase.PENDING or self.commitment is not None:
            raise InvalidPhase(f"{self.identity} has already committed")
        self.commitment = commitment
        self.phase = PlayerPhase.PLAYED

    def store_choice(self, choice: Choice, secret: str) -> None:
        if self.phase is not PlayerPhase.PLAYED:
            raise InvalidPhase(f"{self.identity} cannot reveal in phase {self.phase.value}")
        self.choice = choice
        self.secret = secret
        self.phase = PlayerPhase.CHOICE_STORED

    def reveal_is_valid(self) -> bool:
        # NONE can never be legitimately committed, whatever its hash says.
        if self.choice is Choice.NONE or self.commitment is None or self.secret is None:
            return False
        return verify_commitment(
            expected_commitment=self.commitment,
            choice=self.choice,
            secret=self.secret,
        )


@dataclass(frozen=True)
class GameResult:
    winner: str | None
    phase: GamePhase
    comment: str


@dataclass
class GameInstance:
    """State machine for one game between an initiator and a responder.

    The initiator commits when the game is created; the responder commits
    next, then both reveal. The second reveal adjudicates the game in the
    same call. All operations run under the instance lock, so a game sees
    one call at a time no matter how many threads share it.
    """

    initiator: PlayerSlot
    responder: PlayerSlot
    phase: GamePhase = GamePhase.INITIATED
    winner: str | None = None
    comment: str = ""
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    @classmethod
    def create(cls, initiator_id: str, responder_id: str, initiator_commitment: bytes) -> "GameInstance":
        initiator = PlayerSlot(identity=initiator_id)
        initiator.commit(initiator_commitment)
        game = cls(initiator=initiator, responder=PlayerSlot(identity=responder_id))
        logger.debug("game created: %s vs %s", initiator_id, responder_id)
        return game

    def slot(self, party: Party) -> PlayerSlot:
        return self.initiator if party is Party.INITIATOR else self.responder

    def submit_responder_commitment(self, commitment: bytes) -> None:
        with self._lock:
            if self.phase is not GamePhase.INITIATED:
                raise InvalidPhase(f"responder cannot commit in phase {self.phase.value}")
            self.responder.commit(commitment)
            self.phase = GamePhase.RESPONDED

    def reveal_choice(self, party: Party, choice: Choice, secret: str) -> bool:
        """Record a reveal. Returns True when this call adjudicated the game."""
        with self._lock:
            if self.phase is not GamePhase.RESPONDED:
                raise InvalidPhase(f"cannot reveal in phase {self.phase.value}")
            self.slot(party).store_choice(Choice(choice), secret)
            if self.slot(party.other).phase is not PlayerPhase.CHOICE_STORED:
                return False
            self._adjudicate()
            return True

    def get_result(self) -> GameResult:
        with self._lock:
            ready = (
                self.phase.is_terminal
                and self.initiator.phase is PlayerPhase.CHOICE_STORED
                and self.responder.phase is PlayerPhase.CHOICE_STORED
            )
            if not ready:
                raise NotReady(f"game is still in phase {self.phase.value}")
            return GameResult(winner=self.winner, phase=self.phase, comment=self.comment)

    def _adjudicate(self) -> None:
        if self.phase.is_terminal:
            return

        a = self.initiator
        b = self.responder
        a_ok = a.reveal_is_valid()
        b_ok = b.reveal_is_valid()

        if (not a_ok and not b_ok) or (a.choice is Choice.NONE and b.choice is Choice.NONE):
            self._finish(None, "both attempts invalid")
            return
        if not a_ok:
            self._finish(b.identity, "initiator attempt invalid")
            return
        if not b_ok:
            self._finish(a.identity, "responder attempt invalid")
            return

        outcome = determine_outcome(a.choice, b.choice)
        if outcome == "draw":
            self._finish(None, "both choices are same")
        elif outcome == "initiator_win":
            self._finish(a.identity, f"{a.choice.label} beats {b.choice.label}, initiator won")
        else:
            self._finish(b.identity, f"{b.choice.label} beats {a.choice.label}, responder won")

    def _finish(self, winner: str | None, comment: str) -> None:
        self.phase = GamePhase.DRAW if winner is None else GamePhase.WIN
        self.winner = winner
        self.comment = comment
        logger.info(
            "game %s vs %s adjudicated: %s (%s)",
            self.initiator.identity,
            self.responder.identity,
            self.phase.value,
            comment,
        )
