from __future__ import annotations

import json
import logging
import ssl
import threading
from dataclasses import dataclass, field
from http import HTTPStatus
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any
from urllib.parse import parse_qs, urlsplit

from errors import GameError
from game import GameInstance, GameResult
from identity import MtlsFiles, resolve_caller_identity
from registry import GameRegistry
from scoreboard import ScoreBoard

logger = logging.getLogger(__name__)


@dataclass
class ServerState:
    registry: GameRegistry = field(default_factory=GameRegistry)
    scoreboard: ScoreBoard = field(default_factory=ScoreBoard)
    mtls_files: MtlsFiles | None = None
    scoreboard_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self) -> None:
        self.registry.result_listeners.append(self._record_score)

    def _record_score(self, game: GameInstance, result: GameResult) -> None:
        with self.scoreboard_lock:
            self.scoreboard.record_result(result, game.initiator.identity, game.responder.identity)


class _BadRequest(Exception):
    pass


def make_server(
    *,
    host: str,
    port: int,
    state: ServerState,
    ssl_context: ssl.SSLContext | None = None,
) -> ThreadingHTTPServer:
    httpd = ThreadingHTTPServer((host, port), _make_handler(state))
    if ssl_context is not None:
        httpd.socket = ssl_context.wrap_socket(httpd.socket, server_side=True)
    return httpd


def run_server(
    *,
    host: str,
    port: int,
    state: ServerState,
    ssl_context: ssl.SSLContext | None = None,
) -> None:
    httpd = make_server(host=host, port=port, state=state, ssl_context=ssl_context)
    scheme = "https" if ssl_context is not None else "http"
    logger.info("listening on %s://%s:%s", scheme, host, httpd.server_address[1])
    try:
        httpd.serve_forever()
    finally:
        httpd.server_close()


def result_payload(result: GameResult) -> dict[str, Any]:
    return {"winner": result.winner, "phase": result.phase.value, "comment": result.comment}


def _make_handler(state: ServerState):
    class Handler(BaseHTTPRequestHandler):
        server_version = "rps-commit/0.1"

        def do_POST(self) -> None:  # noqa: N802
            routes = {
                "/v1/rps/games": self._handle_create,
                "/v1/rps/games/respond": self._handle_respond,
                "/v1/rps/games/reveal": self._handle_reveal,
            }
            handler = routes.get(urlsplit(self.path).path)
            if handler is None:
                self._json_error(HTTPStatus.NOT_FOUND, "not_found", "unknown path")
                return
            self._dispatch(lambda: handler(self._read_json()))

        def do_GET(self) -> None:  # noqa: N802
            url = urlsplit(self.path)
            query = {k: v[0] for k, v in parse_qs(url.query).items()}
            if url.path == "/v1/rps/games/result":
                self._dispatch(lambda: self._handle_result(query))
                return
            if url.path == "/v1/rps/scores":
                with state.scoreboard_lock:
                    scores = state.scoreboard.as_dict()
                self._json_ok({"scores": scores})
                return
            self._json_error(HTTPStatus.NOT_FOUND, "not_found", "unknown path")

        def _dispatch(self, call) -> None:
            try:
                call()
            except (json.JSONDecodeError, UnicodeDecodeError):
                self._json_error(HTTPStatus.BAD_REQUEST, "invalid_json", "invalid JSON")
            except _BadRequest as exc:
                self._json_error(HTTPStatus.BAD_REQUEST, "invalid_request", str(exc))
            except GameError as exc:
                self._json_error(exc.status, exc.code, str(exc))
            except Exception as exc:  # keep server alive
                logger.exception("unhandled error on %s %s", self.command, self.path)
                self._json_error(
                    HTTPStatus.INTERNAL_SERVER_ERROR,
                    "server_error",
                    f"{type(exc).__name__}: {exc}",
                )

        def _read_json(self) -> dict[str, Any]:
            length = int(self.headers.get("Content-Length", "0"))
            raw = self.rfile.read(length) if length > 0 else b"{}"
            body = json.loads(raw.decode("utf-8"))
            if not isinstance(body, dict):
                raise _BadRequest("body must be a JSON object")
            return body

        def _caller(self) -> str | None:
            caller = resolve_caller_identity(self.connection, self.headers, mtls=state.mtls_files is not None)
            if caller is None:
                self._json_error(HTTPStatus.UNAUTHORIZED, "unauthenticated", "caller identity required")
            return caller

        # --- Handlers ---
        def _handle_create(self, body: dict[str, Any]) -> None:
            responder_id = _require_str(body, "responder_id")
            commitment = _require_str(body, "commitment")
            caller = self._caller()
            if caller is None:
                return
            game = state.registry.create_game(caller, responder_id, commitment)
            self._json_ok({"initiator_id": caller, "responder_id": responder_id, "phase": game.phase.value})

        def _handle_respond(self, body: dict[str, Any]) -> None:
            initiator_id = _require_str(body, "initiator_id")
            commitment = _require_str(body, "commitment")
            caller = self._caller()
            if caller is None:
                return
            state.registry.submit_responder_commitment(caller, initiator_id, commitment)
            game = state.registry.get_game(initiator_id, caller)
            self._json_ok({"initiator_id": initiator_id, "responder_id": caller, "phase": game.phase.value})

        def _handle_reveal(self, body: dict[str, Any]) -> None:
            counterparty_id = _require_str(body, "counterparty_id")
            secret = _require_str(body, "secret", allow_empty=True)
            if "choice" not in body:
                raise _BadRequest("missing field 'choice'")
            caller = self._caller()
            if caller is None:
                return

            result = state.registry.reveal_choice(caller, counterparty_id, body["choice"], secret)
            payload: dict[str, Any] = {"adjudicated": result is not None}
            if result is not None:
                payload.update(result_payload(result))
            self._json_ok(payload)

        def _handle_result(self, query: dict[str, str]) -> None:
            counterparty_id = _require_str(query, "counterparty_id")
            caller = self._caller()
            if caller is None:
                return
            self._json_ok(result_payload(state.registry.get_result(caller, counterparty_id)))

        # --- Response helpers ---
        def _json_ok(self, payload: dict[str, Any]) -> None:
            self._send_json(HTTPStatus.OK, payload)

        def _json_error(self, status: HTTPStatus, code: str, message: str) -> None:
            self._send_json(status, {"error": code, "message": message})

        def _send_json(self, status: HTTPStatus, payload: dict[str, Any]) -> None:
            data = json.dumps(payload).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(data)))
            self.end_headers()
            self.wfile.write(data)

        def log_message(self, format: str, *args: Any) -> None:  # noqa: A002
            logger.info("%s %s %s - %s", self.address_string(), self.command, self.path, format % args)

    return Handler


def _require_str(body: dict[str, Any], name: str, *, allow_empty: bool = False) -> str:
    value = body.get(name)
    if not isinstance(value, str) or (not value and not allow_empty):
        raise _BadRequest(f"missing/invalid field {name!r}")
    return value
