from __future__ import annotations

import json
import ssl
import time
import urllib.error
import urllib.parse
import urllib.request
from typing import Any

from commit_reveal import compute_commitment, generate_secret
from errors import NotReady
from identity import DEBUG_IDENTITY_HEADER, MtlsFiles, create_client_ssl_context
from protocol import Choice


class ApiError(Exception):
    def __init__(self, status: int, code: str, message: str) -> None:
        super().__init__(f"{status} {code}: {message}")
        self.status = status
        self.code = code
        self.message = message


def create_game(
    *,
    server_url: str,
    identity: str,
    responder_id: str,
    choice: Choice,
    mtls_files: MtlsFiles | None = None,
) -> dict[str, Any]:
    secret = generate_secret()
    commitment = compute_commitment(choice=choice, secret=secret)
    payload = {"responder_id": responder_id, "commitment": commitment.hex()}

    # Caller must remember choice+secret locally in order to reveal.
    return {
        "game": _request(server_url + "/v1/rps/games", identity, payload=payload, mtls_files=mtls_files),
        "secret": secret,
        "commitment": commitment.hex(),
    }


def respond(
    *,
    server_url: str,
    identity: str,
    initiator_id: str,
    choice: Choice,
    mtls_files: MtlsFiles | None = None,
) -> dict[str, Any]:
    secret = generate_secret()
    commitment = compute_commitment(choice=choice, secret=secret)
    payload = {"initiator_id": initiator_id, "commitment": commitment.hex()}
    return {
        "game": _request(server_url + "/v1/rps/games/respond", identity, payload=payload, mtls_files=mtls_files),
        "secret": secret,
        "commitment": commitment.hex(),
    }


def reveal(
    *,
    server_url: str,
    identity: str,
    counterparty_id: str,
    choice: int,
    secret: str,
    mtls_files: MtlsFiles | None = None,
) -> dict[str, Any]:
    payload = {"counterparty_id": counterparty_id, "choice": int(choice), "secret": secret}
    return _request(server_url + "/v1/rps/games/reveal", identity, payload=payload, mtls_files=mtls_files)


def get_result(
    *,
    server_url: str,
    identity: str,
    counterparty_id: str,
    mtls_files: MtlsFiles | None = None,
) -> dict[str, Any]:
    query = urllib.parse.urlencode({"counterparty_id": counterparty_id})
    return _request(f"{server_url}/v1/rps/games/result?{query}", identity, mtls_files=mtls_files)


def wait_for_result(
    *,
    server_url: str,
    identity: str,
    counterparty_id: str,
    timeout_seconds: float = 30,
    poll_interval: float = 0.5,
    mtls_files: MtlsFiles | None = None,
) -> dict[str, Any]:
    deadline = time.monotonic() + timeout_seconds
    while True:
        try:
            return get_result(
                server_url=server_url,
                identity=identity,
                counterparty_id=counterparty_id,
                mtls_files=mtls_files,
            )
        except ApiError as exc:
            if exc.code != NotReady.code or time.monotonic() >= deadline:
                raise
        time.sleep(poll_interval)


def _request(
    url: str,
    identity: str,
    *,
    payload: dict[str, Any] | None = None,
    mtls_files: MtlsFiles | None = None,
) -> dict[str, Any]:
    data = json.dumps(payload).encode("utf-8") if payload is not None else None
    req = urllib.request.Request(url=url, data=data, method="POST" if data is not None else "GET")
    if data is not None:
        req.add_header("Content-Type", "application/json")

    ssl_context: ssl.SSLContext | None = None
    if mtls_files is not None:
        ssl_context = create_client_ssl_context(mtls_files)
    else:
        # Dev fallback: without mTLS, pass identity explicitly.
        req.add_header(DEBUG_IDENTITY_HEADER, identity)

    try:
        with urllib.request.urlopen(req, timeout=10, context=ssl_context) as resp:
            raw = resp.read().decode("utf-8")
    except urllib.error.HTTPError as exc:
        body = _decode_error_body(exc)
        raise ApiError(exc.code, body.get("error", "http_error"), body.get("message", str(exc))) from None
    return json.loads(raw) if raw else {}


def _decode_error_body(exc: urllib.error.HTTPError) -> dict[str, Any]:
    try:
        body = json.loads(exc.read().decode("utf-8"))
    except (ValueError, UnicodeDecodeError):
        return {}
    return body if isinstance(body, dict) else {}
