from __future__ import annotations

import os
import ssl
from dataclasses import dataclass
from typing import Any, Mapping

# Dev mode only: without mTLS the caller names itself in this header.
DEBUG_IDENTITY_HEADER = "X-Debug-Spiffe-Id"

_SVID_FILES = ("svid.pem", "svid_key.pem", "svid_bundle.pem")


@dataclass(frozen=True)
class MtlsFiles:
    cert_path: str
    key_path: str
    bundle_path: str


def mtls_files_from_cert_dir(cert_dir: str) -> MtlsFiles:
    cert_path, key_path, bundle_path = (os.path.join(cert_dir, name) for name in _SVID_FILES)

    missing = [p for p in (cert_path, key_path, bundle_path) if not os.path.exists(p)]
    if missing:
        raise FileNotFoundError(
            "Missing SPIFFE mTLS file(s): " + ", ".join(missing) + " (expected " + ", ".join(_SVID_FILES) + ")"
        )
    return MtlsFiles(cert_path=cert_path, key_path=key_path, bundle_path=bundle_path)


def create_server_ssl_context(files: MtlsFiles) -> ssl.SSLContext:
    ctx = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    ctx.load_cert_chain(files.cert_path, files.key_path)
    ctx.load_verify_locations(files.bundle_path)
    ctx.verify_mode = ssl.CERT_REQUIRED
    # Players are identified by SPIFFE URI SAN, not by DNS name.
    ctx.check_hostname = False
    return ctx


def create_client_ssl_context(files: MtlsFiles) -> ssl.SSLContext:
    ctx = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    ctx.load_cert_chain(files.cert_path, files.key_path)
    ctx.load_verify_locations(files.bundle_path)
    ctx.check_hostname = False
    return ctx


def spiffe_id_from_peer_cert(cert: Mapping[str, Any] | None) -> str | None:
    # getpeercert() lists SANs as ('URI', 'spiffe://...') tuples.
    if not cert:
        return None
    for san_type, san_value in cert.get("subjectAltName", ()):
        if san_type == "URI" and isinstance(san_value, str) and san_value.startswith("spiffe://"):
            return san_value
    return None


def resolve_caller_identity(connection: object, headers: Mapping[str, str], *, mtls: bool) -> str | None:
    """Identity of whoever sent the request, or None if it cannot be established."""
    if mtls:
        if not isinstance(connection, ssl.SSLSocket):
            return None
        return spiffe_id_from_peer_cert(connection.getpeercert())

    value = headers.get(DEBUG_IDENTITY_HEADER)
    return value.strip() if value and value.strip() else None
