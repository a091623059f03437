from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Literal, Union

from pydantic import BaseModel, ConfigDict, Field

from .errors import (
    InvalidAccessTokenError,
    InvalidAuthorizationCodeError,
    InvalidRefreshTokenError,
    InvalidSubjectError,
)

# Subject type label -> model validating the token's ``properties`` claim.
SubjectSchema = Mapping[str, type[BaseModel]]


class WellKnown(BaseModel):
    """OAuth 2.0 authorization server metadata (RFC 8414 subset)."""

    model_config = ConfigDict(extra="ignore", frozen=True)

    jwks_uri: str = Field(min_length=1)
    token_endpoint: str = Field(min_length=1)
    authorization_endpoint: str = Field(min_length=1)


class TokenResponse(BaseModel):
    model_config = ConfigDict(extra="ignore", strict=True)

    access_token: str = Field(min_length=1)
    refresh_token: str = Field(min_length=1)


@dataclass(frozen=True)
class Tokens:
    access: str
    refresh: str

    def __repr__(self) -> str:
        return "Tokens(access=<redacted>, refresh=<redacted>)"


@dataclass(frozen=True)
class Challenge:
    state: str
    verifier: str | None = None


@dataclass(frozen=True)
class AuthorizeResult:
    challenge: Challenge
    url: str


@dataclass(frozen=True)
class ExchangeSuccess:
    tokens: Tokens
    err: Literal[False] = False


@dataclass(frozen=True)
class ExchangeError:
    err: InvalidAuthorizationCodeError


@dataclass(frozen=True)
class RefreshSuccess:
    # None when the supplied access token was still valid and nothing was fetched.
    tokens: Tokens | None = None
    err: Literal[False] = False


@dataclass(frozen=True)
class RefreshError:
    err: InvalidRefreshTokenError | InvalidAccessTokenError


@dataclass(frozen=True)
class VerifiedSubject:
    type: str
    properties: BaseModel


@dataclass(frozen=True)
class VerifyResult:
    aud: str | list[str] | None
    subject: VerifiedSubject
    # Set only when verification went through a transparent refresh.
    tokens: Tokens | None = None
    err: None = None


@dataclass(frozen=True)
class VerifyError:
    err: InvalidRefreshTokenError | InvalidAccessTokenError | InvalidSubjectError


ExchangeOutcome = Union[ExchangeSuccess, ExchangeError]
RefreshOutcome = Union[RefreshSuccess, RefreshError]
VerifyOutcome = Union[VerifyResult, VerifyError]
