from __future__ import annotations


class OIDCClientError(Exception):
    """Base class for every error produced by the client."""

    default_message = "oidc client error"

    def __init__(self, message: str | None = None) -> None:
        super().__init__(message or self.default_message)


class InvalidAuthorizationCodeError(OIDCClientError):
    default_message = "invalid authorization code"


class InvalidRefreshTokenError(OIDCClientError):
    default_message = "invalid refresh token"


class InvalidAccessTokenError(OIDCClientError):
    default_message = "invalid access token"


class InvalidSubjectError(OIDCClientError):
    default_message = "invalid subject"


class DiscoveryError(OIDCClientError):
    """The discovery document or key set could not be loaded.

    Unlike the other errors this one is raised, not returned: it signals that
    the authorization server is unreachable or misconfigured.
    """

    default_message = "failed to load issuer metadata"
