from __future__ import annotations

import json
import threading
import time
import urllib.parse
from collections.abc import Iterator
from dataclasses import dataclass, field
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from typing import Any, cast

import jwt
import pytest
from cryptography.hazmat.primitives.asymmetric import rsa
from jwt.algorithms import RSAAlgorithm
from pydantic import BaseModel

from oidc_rp.cache import DISCOVERY_PATH
from oidc_rp.transport import FetchInit

ISSUER = "https://auth.example.test"
CLIENT_ID = "my-client"
KID = "k1"

_INVALID_JSON = object()


class UserSubject(BaseModel):
    id: str
    email: str | None = None


class AccountSubject(BaseModel):
    account_id: int


SUBJECTS = {"user": UserSubject, "account": AccountSubject}


@dataclass
class Signer:
    private_key: rsa.RSAPrivateKey
    kid: str = KID

    def public_jwk(self) -> dict[str, Any]:
        jwk = json.loads(RSAAlgorithm.to_jwk(self.private_key.public_key()))
        jwk["kid"] = self.kid
        jwk["alg"] = "RS256"
        jwk["use"] = "sig"
        return cast(dict[str, Any], jwk)

    def jwks(self) -> dict[str, Any]:
        return {"keys": [self.public_jwk()]}

    def access_token(
        self,
        *,
        subject_type: str = "user",
        properties: dict[str, Any] | None = None,
        exp_in: int = 60,
        mode: str = "access",
        iss: str | None = ISSUER,
        aud: str = CLIENT_ID,
        now: float | None = None,
    ) -> str:
        issued = int(time.time() if now is None else now)
        claims: dict[str, Any] = {
            "mode": mode,
            "type": subject_type,
            "properties": {"id": "u1"} if properties is None else properties,
            "aud": aud,
            "iat": issued,
            "exp": issued + exp_in,
        }
        if iss is not None:
            claims["iss"] = iss
        return jwt.encode(claims, self.private_key, algorithm="RS256", headers={"kid": self.kid})


def _new_rsa_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def signer() -> Signer:
    return Signer(_new_rsa_key())


@pytest.fixture(scope="session")
def other_signer() -> Signer:
    # Same kid, different key: signatures from it must be rejected.
    return Signer(_new_rsa_key())


@dataclass
class StubResponse:
    status: int
    payload: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        if self.payload is _INVALID_JSON:
            raise ValueError("not json")
        return self.payload


@dataclass
class FakeAuthServer:
    """In-memory authorization server that records every request."""

    jwks: dict[str, Any]
    issuer: str = ISSUER
    token_responses: list[tuple[int, Any]] = field(default_factory=list)
    discovery_status: int = 200
    discovery_gate: threading.Barrier | None = None
    calls: list[tuple[str, FetchInit | None]] = field(default_factory=list)
    _lock: threading.Lock = field(default_factory=threading.Lock)

    def well_known(self) -> dict[str, Any]:
        return {
            "issuer": self.issuer,
            "jwks_uri": self.issuer + "/jwks",
            "token_endpoint": self.issuer + "/token",
            "authorization_endpoint": self.issuer + "/authorize",
        }

    def queue_tokens(self, access: str, refresh: str) -> None:
        self.token_responses.append((200, {"access_token": access, "refresh_token": refresh}))

    def queue_token_error(self, status: int = 400) -> None:
        self.token_responses.append((status, {"error": "invalid_grant"}))

    def queue_invalid_json(self) -> None:
        self.token_responses.append((200, _INVALID_JSON))

    def __call__(self, url: str, init: FetchInit | None = None) -> StubResponse:
        with self._lock:
            self.calls.append((url, init))
        if url == self.issuer + DISCOVERY_PATH:
            if self.discovery_gate is not None:
                self.discovery_gate.wait()
            return StubResponse(self.discovery_status, self.well_known())
        if url == self.issuer + "/jwks":
            return StubResponse(200, self.jwks)
        if url == self.issuer + "/token":
            with self._lock:
                status, payload = self.token_responses.pop(0)
            return StubResponse(status, payload)
        return StubResponse(404, {"error": "not_found"})

    def calls_to(self, suffix: str) -> list[tuple[str, FetchInit | None]]:
        return [call for call in self.calls if call[0].endswith(suffix)]

    def token_forms(self) -> list[dict[str, str]]:
        forms: list[dict[str, str]] = []
        for _, init in self.calls_to("/token"):
            assert init is not None and init.body is not None
            forms.append(dict(urllib.parse.parse_qsl(init.body, keep_blank_values=True)))
        return forms


@pytest.fixture
def server(signer: Signer) -> FakeAuthServer:
    return FakeAuthServer(jwks=signer.jwks())


def _send_json(handler: BaseHTTPRequestHandler, status: int, obj: object) -> None:
    body = json.dumps(obj).encode("utf-8")
    handler.send_response(status)
    handler.send_header("Content-Type", "application/json")
    handler.send_header("Content-Length", str(len(body)))
    handler.end_headers()
    handler.wfile.write(body)


@pytest.fixture
def http_issuer(signer: Signer) -> Iterator[str]:
    """A real HTTP authorization server on localhost; yields the issuer URL.

    It accepts the authorization code ``good`` and the refresh token
    ``good-refresh``; everything else is rejected with 400.
    """

    class IssuerHandler(BaseHTTPRequestHandler):
        def _base(self) -> str:
            host, port = cast(tuple[str | bytes, int], self.server.server_address)
            host_text = host.decode("ascii") if isinstance(host, bytes) else host
            return f"http://{host_text}:{port}"

        def do_GET(self) -> None:  # noqa: N802 - http handler API
            if self.path == "/issuer" + DISCOVERY_PATH:
                base = self._base()
                _send_json(
                    self,
                    200,
                    {
                        "jwks_uri": f"{base}/jwks",
                        "token_endpoint": f"{base}/issuer/token",
                        "authorization_endpoint": f"{base}/issuer/authorize",
                    },
                )
                return
            if self.path == "/jwks":
                _send_json(self, 200, signer.jwks())
                return
            _send_json(self, 404, {"error": "not_found"})

        def do_POST(self) -> None:  # noqa: N802 - http handler API
            length = int(self.headers.get("Content-Length", "0"))
            form = dict(urllib.parse.parse_qsl(self.rfile.read(length).decode("utf-8")))
            if self.path != "/issuer/token":
                _send_json(self, 404, {"error": "not_found"})
                return
            accepted = (
                form.get("grant_type") == "authorization_code" and form.get("code") == "good"
            ) or (
                form.get("grant_type") == "refresh_token"
                and form.get("refresh_token") == "good-refresh"
            )
            if not accepted:
                _send_json(self, 400, {"error": "invalid_grant"})
                return
            _send_json(
                self,
                200,
                {
                    "access_token": signer.access_token(iss=f"{self._base()}/issuer"),
                    "refresh_token": "next-refresh",
                    "token_type": "Bearer",
                },
            )

        def log_message(self, _fmt: str, *_args: object) -> None:
            return

    http_server = ThreadingHTTPServer(("127.0.0.1", 0), IssuerHandler)
    thread = threading.Thread(target=http_server.serve_forever, daemon=True)
    thread.start()
    host, port = cast(tuple[str | bytes, int], http_server.server_address)
    host_text = host.decode("ascii") if isinstance(host, bytes) else host
    try:
        yield f"http://{host_text}:{port}/issuer"
    finally:
        http_server.shutdown()
        http_server.server_close()
        thread.join(timeout=5)
