from __future__ import annotations

from http import HTTPStatus


class GameError(Exception):
    """Base for failures reported synchronously to the caller.

    ``code`` is the machine-readable name sent over the wire and ``status``
    the HTTP status the API answers with.
    """

    code = "game_error"
    status = HTTPStatus.BAD_REQUEST


class InvalidPhase(GameError):
    """Operation attempted outside the phase it requires."""

    code = "invalid_phase"
    status = HTTPStatus.CONFLICT


class NotReady(GameError):
    """Result requested before adjudication. Not fatal, poll again."""

    code = "not_ready"
    status = HTTPStatus.TOO_EARLY


class GameNotFound(GameError):
    code = "game_not_found"
    status = HTTPStatus.NOT_FOUND


class InvalidChoice(GameError):
    code = "invalid_choice"


class InvalidIdentity(GameError):
    code = "invalid_identity"


class InvalidCommitment(GameError):
    code = "invalid_commitment"
