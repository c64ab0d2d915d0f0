from __future__ import annotations

import json
import threading
import urllib.error
import urllib.request
from typing import Iterator

import pytest

from commit_reveal import compute_commitment  # type: ignore[import-not-found]
from http_api import ServerState, make_server  # type: ignore[import-not-found]
from protocol import Choice  # type: ignore[import-not-found]
from rps_client import ApiError, create_game, get_result, respond, reveal, wait_for_result  # type: ignore[import-not-found]

ALICE = "spiffe://a.domain/player"
BOB = "spiffe://b.domain/player"


@pytest.fixture
def server() -> Iterator[tuple[str, ServerState]]:
    state = ServerState()
    httpd = make_server(host="127.0.0.1", port=0, state=state)
    t = threading.Thread(target=httpd.serve_forever, daemon=True)
    t.start()
    try:
        yield f"http://127.0.0.1:{httpd.server_address[1]}", state
    finally:
        httpd.shutdown()
        httpd.server_close()


def test_full_game_over_http(server) -> None:
    url, state = server
    created = create_game(server_url=url, identity=ALICE, responder_id=BOB, choice=Choice.ROCK)
    assert created["game"] == {"initiator_id": ALICE, "responder_id": BOB, "phase": "initiated"}

    responded = respond(server_url=url, identity=BOB, initiator_id=ALICE, choice=Choice.SCISSORS)
    assert responded["game"]["phase"] == "responded"

    first = reveal(server_url=url, identity=ALICE, counterparty_id=BOB, choice=1, secret=created["secret"])
    assert first == {"adjudicated": False}

    with pytest.raises(ApiError) as excinfo:
        get_result(server_url=url, identity=BOB, counterparty_id=ALICE)
    assert excinfo.value.status == 425
    assert excinfo.value.code == "not_ready"

    second = reveal(server_url=url, identity=BOB, counterparty_id=ALICE, choice=3, secret=responded["secret"])
    assert second["adjudicated"] is True
    assert second["winner"] == ALICE
    assert second["comment"] == "Rock beats Scissors, initiator won"

    result = wait_for_result(server_url=url, identity=ALICE, counterparty_id=BOB, timeout_seconds=1)
    assert result == {"winner": ALICE, "phase": "win", "comment": "Rock beats Scissors, initiator won"}
    assert state.scoreboard.get(ALICE).wins == 1
    assert state.scoreboard.get(BOB).losses == 1


def test_reveal_before_respond_is_conflict(server) -> None:
    url, _ = server
    created = create_game(server_url=url, identity=ALICE, responder_id=BOB, choice=Choice.PAPER)
    with pytest.raises(ApiError) as excinfo:
        reveal(server_url=url, identity=ALICE, counterparty_id=BOB, choice=2, secret=created["secret"])
    assert excinfo.value.status == 409
    assert excinfo.value.code == "invalid_phase"


def test_input_validation_errors(server) -> None:
    url, _ = server
    with pytest.raises(ApiError) as excinfo:
        create_game(server_url=url, identity=ALICE, responder_id=ALICE, choice=Choice.ROCK)
    assert excinfo.value.code == "invalid_identity"

    with pytest.raises(ApiError) as excinfo:
        reveal(server_url=url, identity=ALICE, counterparty_id=BOB, choice=5, secret="s")
    assert excinfo.value.code == "invalid_choice"

    with pytest.raises(ApiError) as excinfo:
        get_result(server_url=url, identity=ALICE, counterparty_id=BOB)
    assert excinfo.value.status == 404
    assert excinfo.value.code == "game_not_found"


def _post_raw(url: str, data: bytes, headers: dict[str, str]) -> tuple[int, dict]:
    req = urllib.request.Request(url=url, data=data, method="POST", headers=headers)
    try:
        with urllib.request.urlopen(req, timeout=5) as resp:
            return resp.status, json.loads(resp.read())
    except urllib.error.HTTPError as exc:
        return exc.code, json.loads(exc.read())


def test_malformed_requests(server) -> None:
    url, _ = server
    headers = {"Content-Type": "application/json", "X-Debug-Spiffe-Id": ALICE}

    status, body = _post_raw(url + "/v1/rps/games", b"{not json", headers)
    assert (status, body["error"]) == (400, "invalid_json")

    status, body = _post_raw(url + "/v1/rps/games", b'{"responder_id": "x"}', headers)
    assert (status, body["error"]) == (400, "invalid_request")

    status, body = _post_raw(url + "/v1/rps/games", b'{"responder_id": "x", "commitment": "abcd"}', headers)
    assert (status, body["error"]) == (400, "invalid_commitment")

    status, body = _post_raw(url + "/v1/rps/nope", b"{}", headers)
    assert status == 404

    status, body = _post_raw(
        url + "/v1/rps/games",
        json.dumps({"responder_id": BOB, "commitment": "00" * 32}).encode(),
        {"Content-Type": "application/json"},
    )
    assert (status, body["error"]) == (401, "unauthenticated")


def test_scores_endpoint(server) -> None:
    url, _ = server
    with urllib.request.urlopen(url + "/v1/rps/scores", timeout=5) as resp:
        assert json.loads(resp.read()) == {"scores": {}}


def test_mismatched_empty_secret_is_adjudicated_not_rejected(server) -> None:
    url, _ = server
    created = create_game(server_url=url, identity=ALICE, responder_id=BOB, choice=Choice.ROCK)
    respond(server_url=url, identity=BOB, initiator_id=ALICE, choice=Choice.PAPER)

    reveal(server_url=url, identity=ALICE, counterparty_id=BOB, choice=1, secret=created["secret"])
    resp = reveal(server_url=url, identity=BOB, counterparty_id=ALICE, choice=2, secret="")
    assert resp["adjudicated"] is True
    assert resp["winner"] == ALICE
    assert resp["comment"] == "responder attempt invalid"


def test_empty_secret_commitment_verifies_over_http(server) -> None:
    url, state = server
    state.registry.create_game(ALICE, BOB, compute_commitment(choice=Choice.ROCK, secret=""))
    state.registry.submit_responder_commitment(BOB, ALICE, compute_commitment(choice=Choice.SCISSORS, secret="t"))

    first = reveal(server_url=url, identity=ALICE, counterparty_id=BOB, choice=1, secret="")
    assert first == {"adjudicated": False}
    second = reveal(server_url=url, identity=BOB, counterparty_id=ALICE, choice=3, secret="t")
    assert second["winner"] == ALICE
    assert second["comment"] == "Rock beats Scissors, initiator won"


def test_non_utf8_body_is_invalid_json(server) -> None:
    url, _ = server
    headers = {"Content-Type": "application/json", "X-Debug-Spiffe-Id": ALICE}
    status, body = _post_raw(url + "/v1/rps/games", b"\xff\xfe{}", headers)
    assert (status, body["error"]) == (400, "invalid_json")
