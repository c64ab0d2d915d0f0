from __future__ import annotations

import logging
import threading
from dataclasses import dataclass, field
from typing import Callable

from commit_reveal import parse_commitment
from errors import GameNotFound, InvalidChoice, InvalidIdentity
from game import GameInstance, GameResult
from protocol import Choice, Party, is_valid_choice

logger = logging.getLogger(__name__)

PairKey = frozenset
ResultListener = Callable[[GameInstance, GameResult], None]


@dataclass
class GameRegistry:
    # One game per unordered pair; the roles live inside the instance.
    _games: dict[PairKey, GameInstance] = field(default_factory=dict)
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)
    # Called once per game, right after the reveal that adjudicated it.
    result_listeners: list[ResultListener] = field(default_factory=list)

    def __len__(self) -> int:
        with self._lock:
            return len(self._games)

    def __contains__(self, key: object) -> bool:
        if not isinstance(key, tuple) or len(key) != 2:
            return False
        try:
            self.get_game(*key)
        except GameNotFound:
            return False
        return True

    def create_game(self, initiator_id: str, responder_id: str, commitment: bytes | str) -> GameInstance:
        _check_identity(initiator_id)
        _check_identity(responder_id)
        if initiator_id == responder_id:
            raise InvalidIdentity("initiator and responder must differ")
        game = GameInstance.create(initiator_id, responder_id, parse_commitment(commitment))

        key = _pair_key(initiator_id, responder_id)
        with self._lock:
            replaced = key in self._games
            self._games[key] = game
        if replaced:
            logger.info("replaced game %s -> %s", initiator_id, responder_id)
        else:
            logger.info("created game %s -> %s", initiator_id, responder_id)
        return game

    def get_game(self, initiator_id: str, responder_id: str) -> GameInstance:
        """Strict lookup: the pair's game must have been started by ``initiator_id``."""
        with self._lock:
            game = self._games.get(_pair_key(initiator_id, responder_id))
        if game is None or game.initiator.identity != initiator_id:
            raise GameNotFound(f"no game from {initiator_id} to {responder_id}")
        return game

    def find_game(self, caller_id: str, counterparty_id: str) -> tuple[GameInstance, Party]:
        """Resolve the pair's game and the caller's role in it."""
        with self._lock:
            game = self._games.get(_pair_key(caller_id, counterparty_id))
        if game is None or caller_id == counterparty_id:
            raise GameNotFound(f"no game between {caller_id} and {counterparty_id}")
        party = Party.INITIATOR if game.initiator.identity == caller_id else Party.RESPONDER
        return game, party

    def submit_responder_commitment(self, responder_id: str, initiator_id: str, commitment: bytes | str) -> None:
        digest = parse_commitment(commitment)
        self.get_game(initiator_id, responder_id).submit_responder_commitment(digest)
        logger.info("responder %s committed against %s", responder_id, initiator_id)

    def reveal_choice(self, caller_id: str, counterparty_id: str, choice: int, secret: str) -> GameResult | None:
        """Forward a reveal. Returns the result if this reveal adjudicated the game."""
        if not is_valid_choice(choice):
            raise InvalidChoice(f"choice must be 1, 2 or 3, got {choice!r}")
        game, party = self.find_game(caller_id, counterparty_id)
        adjudicated = game.reveal_choice(party, Choice(choice), secret)
        logger.info("%s revealed as %s against %s", caller_id, party.value, counterparty_id)
        if not adjudicated:
            return None

        result = game.get_result()
        for listener in self.result_listeners:
            # The game is final by now; listener failures are logged, not raised.
            try:
                listener(game, result)
            except Exception:
                logger.exception("result listener %r failed", listener)
        return result

    def get_result(self, caller_id: str, counterparty_id: str) -> GameResult:
        game, _ = self.find_game(caller_id, counterparty_id)
        return game.get_result()


def _pair_key(a: str, b: str) -> PairKey:
    return frozenset((a, b))


def _check_identity(identity: object) -> None:
    if not isinstance(identity, str) or not identity.strip():
        raise InvalidIdentity(f"invalid identity {identity!r}")
    # Zero addresses such as "0x" or "0x0000...0000" stand for "nobody".
    digits = identity[2:] if identity[:2].lower() == "0x" else identity
    if not digits or set(digits) == {"0"}:
        raise InvalidIdentity(f"zero identity {identity!r}")
