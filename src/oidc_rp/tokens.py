from __future__ import annotations

from typing import Any

import jwt
from jwt import PyJWK, PyJWKSet
from jwt import exceptions as jwt_exceptions


def decode_unverified(token: str) -> dict[str, Any]:
    # Non-validating: reads claims of expired or foreign-issuer tokens as well.
    return jwt.decode(
        token,
        options={
            "verify_signature": False,
            "verify_exp": False,
            "verify_nbf": False,
            "verify_iat": False,
            "verify_aud": False,
            "verify_iss": False,
        },
    )


def _expected_kty_for_alg(alg: str) -> str | None:
    if alg.startswith("HS"):
        return "oct"
    if alg.startswith(("RS", "PS")):
        return "RSA"
    if alg.startswith("ES"):
        return "EC"
    if alg == "EdDSA":
        return "OKP"
    return None


def select_key(key_set: PyJWKSet, kid: str | None, *, alg: str) -> PyJWK:
    keys = key_set.keys
    if kid:
        for jwk in keys:
            if jwk.key_id == kid:
                return jwk
        raise jwt_exceptions.InvalidKeyError(f"kid not found in key set: {kid}")

    if len(keys) == 1:
        return keys[0]

    expected_kty = _expected_kty_for_alg(alg)
    matches = [jwk for jwk in keys if jwk.key_type == expected_kty]
    if len(matches) == 1:
        return matches[0]
    raise jwt_exceptions.InvalidKeyError("token has no kid and the key set is ambiguous")


def verify_with_key_set(
    token: str,
    key_set: PyJWKSet,
    *,
    issuer: str,
    audience: str | None = None,
) -> dict[str, Any]:
    """Verify signature and registered claims; return the payload.

    Raises ``jwt.ExpiredSignatureError`` for expired tokens and another
    ``jwt.PyJWTError`` for every other rejection.
    """
    header = jwt.get_unverified_header(token)
    alg = header.get("alg")
    if not isinstance(alg, str) or not alg:
        raise jwt_exceptions.InvalidAlgorithmError("missing alg in header")
    if alg == "none":
        raise jwt_exceptions.InvalidAlgorithmError("refusing to verify alg=none")

    kid = header.get("kid")
    jwk = select_key(key_set, kid if isinstance(kid, str) else None, alg=alg)
    expected_kty = _expected_kty_for_alg(alg)
    if expected_kty is None or jwk.key_type != expected_kty:
        raise jwt_exceptions.InvalidAlgorithmError(
            f"algorithm {alg} does not match key type {jwk.key_type}"
        )

    return jwt.decode(
        token,
        key=jwk.key,
        algorithms=[alg],
        issuer=issuer,
        audience=audience,
        options={"verify_aud": audience is not None},
    )


def describe_jwt_error(exc: jwt_exceptions.PyJWTError) -> str:
    if isinstance(exc, jwt_exceptions.ExpiredSignatureError):
        return "token is expired"
    if isinstance(exc, jwt_exceptions.ImmatureSignatureError):
        return "token is not valid yet"
    if isinstance(exc, jwt_exceptions.InvalidIssuerError):
        return "iss claim mismatch"
    if isinstance(exc, jwt_exceptions.InvalidAudienceError):
        return "aud claim mismatch"
    if isinstance(exc, jwt_exceptions.MissingRequiredClaimError):
        return f"missing required claim: {exc.claim}"
    if isinstance(exc, jwt_exceptions.InvalidSignatureError):
        return "signature verification failed"
    if isinstance(exc, jwt_exceptions.DecodeError):
        return "invalid token format"
    return str(exc)
