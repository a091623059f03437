from __future__ import annotations

import base64
import hashlib
import secrets
from dataclasses import dataclass

# 32 random bytes -> 43 base64url characters, the RFC 7636 minimum length.
_VERIFIER_BYTES = 32
_STATE_BYTES = 32


@dataclass(frozen=True)
class PKCEPair:
    verifier: str
    challenge: str


def _b64url(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")


def challenge_from_verifier(verifier: str) -> str:
    """S256 code challenge for ``verifier``."""
    if not verifier:
        raise ValueError("verifier must be a non-empty string")
    digest = hashlib.sha256(verifier.encode("ascii")).digest()
    return _b64url(digest)


def generate_pkce() -> PKCEPair:
    verifier = _b64url(secrets.token_bytes(_VERIFIER_BYTES))
    return PKCEPair(verifier=verifier, challenge=challenge_from_verifier(verifier))


def generate_state() -> str:
    return secrets.token_urlsafe(_STATE_BYTES)
