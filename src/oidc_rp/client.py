"""Relying-party client for an OAuth 2.0 authorization server.

Create one client per issuer and reuse it: the discovery document and key set
are fetched on first verification and kept for the life of the client.

    client = Client("my-client", issuer="https://auth.example.com")
    started = client.authorize("https://app.example.com/callback", "code", pkce=True)
    # redirect the user to started.url, keep started.challenge
    exchanged = client.exchange(code, "https://app.example.com/callback",
                                started.challenge.verifier)
    verified = client.verify({"user": User}, exchanged.tokens.access,
                             refresh=exchanged.tokens.refresh)
"""

from __future__ import annotations

import dataclasses
import logging
import os
import time
import urllib.parse
import warnings
from collections.abc import Callable
from typing import Any, cast

from jwt import exceptions as jwt_exceptions
from pydantic import ValidationError

from .cache import DiscoveryCache, KeySetCache
from .config import ISSUER_ENV, ClientConfig, normalize_issuer
from .errors import (
    InvalidAccessTokenError,
    InvalidAuthorizationCodeError,
    InvalidRefreshTokenError,
    InvalidSubjectError,
)
from .models import (
    AuthorizeResult,
    Challenge,
    ExchangeError,
    ExchangeOutcome,
    ExchangeSuccess,
    RefreshError,
    RefreshOutcome,
    RefreshSuccess,
    SubjectSchema,
    TokenResponse,
    Tokens,
    VerifiedSubject,
    VerifyError,
    VerifyOutcome,
    VerifyResult,
    WellKnown,
)
from .pkce import generate_pkce, generate_state
from .tokens import decode_unverified, describe_jwt_error, verify_with_key_set
from .transport import FORM_CONTENT_TYPE, Fetch, FetchInit, ResponseLike, UrllibFetch

logger = logging.getLogger(__name__)

# An access token this close to expiry is refreshed instead of reused.
REFRESH_SKEW_SECONDS = 30

_RESPONSE_TYPES = frozenset({"code", "token"})


class Client:
    """Client bound to a single issuer.

    ``issuer`` is matched against the ``iss`` claim exactly as given; a
    trailing ``/`` is only dropped when building endpoint URLs. ``clock``
    drives the refresh skew check in :meth:`refresh`; token expiry in
    :meth:`verify` is judged by PyJWT against the wall clock.
    """

    def __init__(
        self,
        client_id: str,
        issuer: str | None = None,
        fetch: Fetch | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        raw_issuer = issuer or os.getenv(ISSUER_ENV)
        self.client_id = client_id
        self.issuer = normalize_issuer(raw_issuer)
        self.expected_iss = cast(str, raw_issuer).strip()
        self._fetch: Fetch = fetch or UrllibFetch()
        self._clock = clock
        self._discovery = DiscoveryCache(self._fetch)
        self._key_sets = KeySetCache(self._discovery, self._fetch)

    @classmethod
    def from_config(cls, config: ClientConfig, fetch: Fetch | None = None) -> "Client":
        return cls(
            config.client_id,
            issuer=config.issuer,
            fetch=fetch or UrllibFetch(timeout=config.timeout),
        )

    @property
    def discovery_cache(self) -> DiscoveryCache:
        return self._discovery

    @property
    def key_set_cache(self) -> KeySetCache:
        return self._key_sets

    def well_known(self) -> WellKnown:
        return self._discovery.get(self.issuer)

    def _authorize_url(self, params: dict[str, str]) -> str:
        return f"{self.issuer}/authorize?{urllib.parse.urlencode(params)}"

    def authorize(
        self,
        redirect_uri: str,
        response_type: str,
        *,
        pkce: bool = False,
        provider: str | None = None,
    ) -> AuthorizeResult:
        """Build the URL to send the user to, plus the challenge to keep.

        The PKCE verifier is only returned in the challenge; it is never part
        of the URL.
        """
        if response_type not in _RESPONSE_TYPES:
            raise ValueError(f"response_type must be 'code' or 'token', got {response_type!r}")

        state = generate_state()
        verifier: str | None = None
        params = {
            "client_id": self.client_id,
            "redirect_uri": redirect_uri,
            "response_type": response_type,
            "state": state,
        }
        if provider:
            params["provider"] = provider
        if pkce and response_type == "code":
            pair = generate_pkce()
            params["code_challenge_method"] = "S256"
            params["code_challenge"] = pair.challenge
            verifier = pair.verifier

        return AuthorizeResult(
            challenge=Challenge(state=state, verifier=verifier),
            url=self._authorize_url(params),
        )

    def pkce(self, redirect_uri: str, *, provider: str | None = None) -> tuple[str, str]:
        """Return ``(verifier, url)`` for a PKCE code request without state.

        Deprecated: use ``authorize(redirect_uri, "code", pkce=True)``.
        """
        warnings.warn(
            "Client.pkce() is deprecated; use authorize(redirect_uri, 'code', pkce=True)",
            DeprecationWarning,
            stacklevel=2,
        )
        pair = generate_pkce()
        params: dict[str, str] = {}
        if provider:
            params["provider"] = provider
        params.update(
            {
                "client_id": self.client_id,
                "redirect_uri": redirect_uri,
                "response_type": "code",
                "code_challenge_method": "S256",
                "code_challenge": pair.challenge,
            }
        )
        return pair.verifier, self._authorize_url(params)

    def _post_token(self, form: dict[str, str]) -> ResponseLike:
        return self._fetch(
            self.issuer + "/token",
            FetchInit(
                method="POST",
                headers={"Content-Type": FORM_CONTENT_TYPE},
                body=urllib.parse.urlencode(form),
            ),
        )

    @staticmethod
    def _parse_tokens(response: ResponseLike) -> Tokens | None:
        try:
            body = TokenResponse.model_validate(response.json())
        except (ValueError, ValidationError):
            return None
        return Tokens(access=body.access_token, refresh=body.refresh_token)

    def exchange(
        self, code: str, redirect_uri: str, verifier: str | None = None
    ) -> ExchangeOutcome:
        logger.debug("exchanging authorization code at %s/token", self.issuer)
        response = self._post_token(
            {
                "grant_type": "authorization_code",
                "code": code,
                "redirect_uri": redirect_uri,
                "client_id": self.client_id,
                "code_verifier": verifier or "",
            }
        )
        if not response.ok:
            logger.warning("authorization code rejected by %s", self.issuer)
            return ExchangeError(InvalidAuthorizationCodeError())

        tokens = self._parse_tokens(response)
        if tokens is None:
            logger.warning("malformed token response from %s", self.issuer)
            return ExchangeError(
                InvalidAuthorizationCodeError("token endpoint returned a malformed response")
            )
        return ExchangeSuccess(tokens=tokens)

    def refresh(self, refresh_token: str, *, access: str | None = None) -> RefreshOutcome:
        """Trade ``refresh_token`` for a new pair.

        When ``access`` is given and stays valid for more than
        ``REFRESH_SKEW_SECONDS``, nothing is fetched and the success carries no
        tokens.
        """
        if access:
            try:
                claims = decode_unverified(access)
            except jwt_exceptions.PyJWTError as exc:
                return RefreshError(InvalidAccessTokenError(describe_jwt_error(exc)))
            exp = claims.get("exp")
            if isinstance(exp, (int, float)) and exp > self._clock() + REFRESH_SKEW_SECONDS:
                return RefreshSuccess()

        logger.debug("refreshing tokens at %s/token", self.issuer)
        response = self._post_token(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
            }
        )
        if not response.ok:
            logger.warning("refresh token rejected by %s", self.issuer)
            return RefreshError(InvalidRefreshTokenError())

        tokens = self._parse_tokens(response)
        if tokens is None:
            logger.warning("malformed token response from %s", self.issuer)
            return RefreshError(
                InvalidRefreshTokenError("token endpoint returned a malformed response")
            )
        return RefreshSuccess(tokens=tokens)

    def verify(
        self,
        subjects: SubjectSchema,
        token: str,
        *,
        refresh: str | None = None,
        audience: str | None = None,
    ) -> VerifyOutcome:
        """Verify ``token`` and bind its subject to the matching model in ``subjects``.

        An expired token is refreshed with ``refresh`` (if given) and the new
        access token verified once more; the new pair is then returned on the
        result. Discovery and key-set failures raise.
        """
        return self._verify(subjects, token, refresh=refresh, audience=audience, allow_refresh=True)

    def _verify(
        self,
        subjects: SubjectSchema,
        token: str,
        *,
        refresh: str | None,
        audience: str | None,
        allow_refresh: bool,
    ) -> VerifyOutcome:
        key_set = self._key_sets.get(self.issuer)
        try:
            claims = verify_with_key_set(
                token, key_set, issuer=self.expected_iss, audience=audience
            )
        except jwt_exceptions.ExpiredSignatureError as exc:
            if refresh and allow_refresh:
                return self._refresh_and_verify(subjects, refresh, audience=audience)
            logger.warning("access token rejected: %s", describe_jwt_error(exc))
            return VerifyError(InvalidAccessTokenError(describe_jwt_error(exc)))
        except jwt_exceptions.PyJWTError as exc:
            logger.warning("access token rejected: %s", describe_jwt_error(exc))
            return VerifyError(InvalidAccessTokenError(describe_jwt_error(exc)))

        return self._bind_subject(subjects, claims)

    def _refresh_and_verify(
        self, subjects: SubjectSchema, refresh_token: str, *, audience: str | None
    ) -> VerifyOutcome:
        logger.info("access token expired; refreshing")
        refreshed = self.refresh(refresh_token)
        if isinstance(refreshed, RefreshError):
            return VerifyError(refreshed.err)

        # refresh() without an access token always fetches, so tokens is set.
        tokens = cast(Tokens, refreshed.tokens)
        verified = self._verify(
            subjects,
            tokens.access,
            refresh=tokens.refresh,
            audience=audience,
            allow_refresh=False,
        )
        if isinstance(verified, VerifyError):
            return verified
        return dataclasses.replace(verified, tokens=tokens)

    @staticmethod
    def _bind_subject(subjects: SubjectSchema, claims: dict[str, Any]) -> VerifyOutcome:
        subject_type = claims.get("type")
        if not isinstance(subject_type, str):
            return VerifyError(InvalidSubjectError("type claim missing or not a string"))
        if claims.get("mode") != "access":
            return VerifyError(InvalidSubjectError("not an access token"))
        model = subjects.get(subject_type)
        if model is None:
            return VerifyError(InvalidSubjectError(f"unknown subject type: {subject_type}"))

        try:
            properties = model.model_validate(claims.get("properties"))
        except ValidationError as exc:
            logger.warning(
                "subject %s failed validation with %d issue(s)", subject_type, exc.error_count()
            )
            return VerifyError(InvalidSubjectError(f"invalid properties for {subject_type}"))

        return VerifyResult(
            aud=claims.get("aud"),
            subject=VerifiedSubject(type=subject_type, properties=properties),
        )
