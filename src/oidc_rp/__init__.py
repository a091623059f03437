from .client import REFRESH_SKEW_SECONDS, Client
from .config import ClientConfig
from .errors import (
    DiscoveryError,
    InvalidAccessTokenError,
    InvalidAuthorizationCodeError,
    InvalidRefreshTokenError,
    InvalidSubjectError,
    OIDCClientError,
)
from .models import (
    AuthorizeResult,
    Challenge,
    ExchangeError,
    ExchangeSuccess,
    RefreshError,
    RefreshSuccess,
    SubjectSchema,
    Tokens,
    VerifiedSubject,
    VerifyError,
    VerifyResult,
    WellKnown,
)
from .transport import FetchInit, HTTPResponse, UrllibFetch
from .version import __version__

__all__ = [
    "REFRESH_SKEW_SECONDS",
    "AuthorizeResult",
    "Challenge",
    "Client",
    "ClientConfig",
    "DiscoveryError",
    "ExchangeError",
    "ExchangeSuccess",
    "FetchInit",
    "HTTPResponse",
    "InvalidAccessTokenError",
    "InvalidAuthorizationCodeError",
    "InvalidRefreshTokenError",
    "InvalidSubjectError",
    "OIDCClientError",
    "RefreshError",
    "RefreshSuccess",
    "SubjectSchema",
    "Tokens",
    "UrllibFetch",
    "VerifiedSubject",
    "VerifyError",
    "VerifyResult",
    "WellKnown",
    "__version__",
]
