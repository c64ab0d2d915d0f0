from __future__ import annotations

import base64
import hashlib
import secrets
from typing import Final

from errors import InvalidCommitment
from protocol import Choice

SEPARATOR: Final[str] = "-"
COMMITMENT_SIZE: Final[int] = 32


def generate_secret(num_bytes: int = 16) -> str:
    raw = secrets.token_bytes(num_bytes)
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def canonical_string(*, choice: Choice, secret: str) -> str:
    return f"{choice.label}{SEPARATOR}{secret}"


def compute_commitment(*, choice: Choice, secret: str) -> bytes:
    payload = canonical_string(choice=choice, secret=secret).encode("utf-8")
    return hashlib.sha256(payload).digest()


def verify_commitment(*, expected_commitment: bytes, choice: Choice, secret: str) -> bool:
    computed = compute_commitment(choice=choice, secret=secret)
    return secrets.compare_digest(expected_commitment, computed)


def parse_commitment(value: object) -> bytes:
    """Accept a raw 32-byte digest or its hex form (``0x`` prefix allowed)."""
    if isinstance(value, (bytes, bytearray)):
        raw = bytes(value)
    elif isinstance(value, str):
        text = value[2:] if value[:2].lower() == "0x" else value
        try:
            raw = bytes.fromhex(text)
        except ValueError:
            raise InvalidCommitment("commitment must be hex encoded") from None
    else:
        raise InvalidCommitment("commitment must be bytes or a hex string")

    if len(raw) != COMMITMENT_SIZE:
        raise InvalidCommitment(f"commitment must be {COMMITMENT_SIZE} bytes, got {len(raw)}")
    return raw
