from __future__ import annotations

import argparse
import json
import logging
import os
from typing import Any

from commit_reveal import compute_commitment, generate_secret
from http_api import ServerState, run_server
from identity import MtlsFiles, create_server_ssl_context, mtls_files_from_cert_dir
from protocol import Choice
from registry import GameRegistry
from rps_client import ApiError, create_game, get_result, respond, reveal, wait_for_result
from scoreboard import ScoreBoard

logger = logging.getLogger("rps")

_CHOICE_ALIASES = {
    "r": Choice.ROCK,
    "rock": Choice.ROCK,
    "1": Choice.ROCK,
    "p": Choice.PAPER,
    "paper": Choice.PAPER,
    "2": Choice.PAPER,
    "s": Choice.SCISSORS,
    "scissors": Choice.SCISSORS,
    "3": Choice.SCISSORS,
}


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="rps")
    parser.add_argument("--log-level", default="INFO", help="DEBUG, INFO, WARNING or ERROR")
    sub = parser.add_subparsers(dest="cmd", required=True)

    serve = sub.add_parser("serve", help="Run the game server")
    serve.add_argument("--bind", default="0.0.0.0:9002")
    serve.add_argument("--mtls", action="store_true", help="Enable SPIFFE mTLS using files from --cert-dir")
    serve.add_argument("--cert-dir", default=None, help="Directory containing svid.pem, svid_key.pem, svid_bundle.pem")
    serve.add_argument("--scores", default=_default_scores_path())

    commit = sub.add_parser("commit", help="Print a fresh secret and commitment for a choice (offline)")
    commit.add_argument("choice", help="rock|paper|scissors")
    commit.add_argument("--secret", default=None, help="Use this secret instead of a random one")

    create = sub.add_parser("create", help="Start a game against a responder")
    _add_client_args(create)
    create.add_argument("--responder", required=True, help="Responder identity")
    create.add_argument("--choice", default=None, help="rock|paper|scissors (if not provided, will prompt)")

    respond_p = sub.add_parser("respond", help="Commit to a game an initiator started")
    _add_client_args(respond_p)
    respond_p.add_argument("--initiator", required=True, help="Initiator identity")
    respond_p.add_argument("--choice", default=None, help="rock|paper|scissors (if not provided, will prompt)")

    reveal_p = sub.add_parser("reveal", help="Reveal your choice and secret")
    _add_client_args(reveal_p)
    reveal_p.add_argument("--counterparty", required=True)
    reveal_p.add_argument("--choice", required=True, help="rock|paper|scissors")
    reveal_p.add_argument("--secret", required=True)
    reveal_p.add_argument("--wait", action="store_true", help="Poll until the game is adjudicated")

    result = sub.add_parser("result", help="Show a game result")
    _add_client_args(result)
    result.add_argument("--counterparty", required=True)

    scores = sub.add_parser("scores", help="Print local scores")
    scores.add_argument("--scores", default=_default_scores_path())

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    if args.cmd == "scores":
        print(ScoreBoard.load(args.scores).format_table())
        return 0

    if args.cmd == "commit":
        choice = _parse_choice(args.choice)
        secret = args.secret or generate_secret()
        _print_json({"choice": choice.label, "secret": secret, "commitment": compute_commitment(choice=choice, secret=secret).hex()})
        return 0

    mtls_files = _mtls_files(args)

    if args.cmd == "serve":
        host, port = _parse_bind(args.bind)
        state = ServerState(registry=GameRegistry(), scoreboard=ScoreBoard.load(args.scores), mtls_files=mtls_files)
        ssl_context = create_server_ssl_context(mtls_files) if mtls_files is not None else None
        logger.info("scores at %s://%s:%s/v1/rps/scores", "https" if ssl_context else "http", host, port)
        run_server(host=host, port=port, state=state, ssl_context=ssl_context)
        return 0

    try:
        return _run_client_command(args, mtls_files)
    except ApiError as exc:
        logger.error("%s", exc)
        return 1


def _run_client_command(args: argparse.Namespace, mtls_files: MtlsFiles | None) -> int:
    common: dict[str, Any] = {"server_url": args.server.rstrip("/"), "identity": args.identity, "mtls_files": mtls_files}

    if args.cmd == "create":
        choice = _parse_choice(args.choice) if args.choice else _prompt_for_choice()
        resp = create_game(responder_id=args.responder, choice=choice, **common)
        _print_json({**resp, "choice": choice.label})
        print(f"Keep the secret; reveal with: rps reveal --counterparty {args.responder} --choice {choice.label.lower()} --secret {resp['secret']}")
        return 0

    if args.cmd == "respond":
        choice = _parse_choice(args.choice) if args.choice else _prompt_for_choice()
        resp = respond(initiator_id=args.initiator, choice=choice, **common)
        _print_json({**resp, "choice": choice.label})
        print(f"Keep the secret; reveal with: rps reveal --counterparty {args.initiator} --choice {choice.label.lower()} --secret {resp['secret']}")
        return 0

    if args.cmd == "reveal":
        choice = _parse_choice(args.choice)
        resp = reveal(counterparty_id=args.counterparty, choice=int(choice), secret=args.secret, **common)
        if not resp.get("adjudicated") and args.wait:
            resp = wait_for_result(counterparty_id=args.counterparty, **common)
        _print_json(resp)
        return 0

    if args.cmd == "result":
        _print_json(get_result(counterparty_id=args.counterparty, **common))
        return 0

    raise SystemExit("unhandled command")


def _add_client_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--server", default="http://127.0.0.1:9002", help="Server base URL")
    p.add_argument("--identity", required=True, help="Your SPIFFE ID (sent as a header unless --mtls)")
    p.add_argument("--mtls", action="store_true", help="Enable SPIFFE mTLS using files from --cert-dir")
    p.add_argument("--cert-dir", default=None, help="Directory containing svid.pem, svid_key.pem, svid_bundle.pem")


def _mtls_files(args: argparse.Namespace) -> MtlsFiles | None:
    if not getattr(args, "mtls", False):
        return None
    if not getattr(args, "cert_dir", None):
        raise SystemExit("--mtls requires --cert-dir")
    return mtls_files_from_cert_dir(args.cert_dir)


def _parse_choice(value: str) -> Choice:
    choice = _CHOICE_ALIASES.get(value.strip().lower())
    if choice is None:
        raise SystemExit("choice must be rock|paper|scissors")
    return choice


def _prompt_for_choice() -> Choice:
    while True:
        value = input("Choose your move - (r)ock, (p)aper, (s)cissors: ").strip().lower()
        choice = _CHOICE_ALIASES.get(value)
        if choice is not None:
            return choice
        print("Invalid choice. Please enter r, p, or s.")


def _parse_bind(bind: str) -> tuple[str, int]:
    if ":" not in bind:
        raise ValueError("--bind must be HOST:PORT")
    host, port_s = bind.rsplit(":", 1)
    return host, int(port_s)


def _default_scores_path() -> str:
    home = os.path.expanduser("~")
    return os.path.join(home, ".rps", "scores.json")


def _print_json(payload: dict[str, Any]) -> None:
    print(json.dumps(payload, indent=2, sort_keys=True))


if __name__ == "__main__":
    raise SystemExit(main())
