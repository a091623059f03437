from __future__ import annotations

import os
from dataclasses import dataclass

CLIENT_ID_ENV = "OIDC_RP_CLIENT_ID"
ISSUER_ENV = "OIDC_RP_ISSUER"
TIMEOUT_ENV = "OIDC_RP_TIMEOUT"

DEFAULT_TIMEOUT = 10.0


def normalize_issuer(issuer: str | None) -> str:
    """Issuer without a trailing ``/``, for building endpoint URLs."""
    cleaned = (issuer or "").strip().rstrip("/")
    if not cleaned:
        raise ValueError(f"No issuer; pass one or set {ISSUER_ENV}")
    return cleaned


@dataclass(frozen=True)
class ClientConfig:
    client_id: str
    # Kept as published: it is compared verbatim with the iss claim.
    issuer: str
    timeout: float = DEFAULT_TIMEOUT

    def __post_init__(self) -> None:
        if not self.client_id.strip():
            raise ValueError("client_id must be a non-empty string")
        normalize_issuer(self.issuer)
        object.__setattr__(self, "issuer", self.issuer.strip())
        if self.timeout <= 0:
            raise ValueError("timeout must be positive")

    @classmethod
    def from_env(
        cls,
        *,
        client_id: str | None = None,
        issuer: str | None = None,
        timeout: float | None = None,
    ) -> "ClientConfig":
        """Build from the environment; explicit arguments win over it."""
        if timeout is None:
            raw_timeout = os.getenv(TIMEOUT_ENV, "").strip()
            try:
                timeout = float(raw_timeout) if raw_timeout else DEFAULT_TIMEOUT
            except ValueError:
                raise ValueError(f"{TIMEOUT_ENV} must be a number, got {raw_timeout!r}") from None
        return cls(
            client_id=client_id or os.getenv(CLIENT_ID_ENV, ""),
            issuer=issuer or os.getenv(ISSUER_ENV, ""),
            timeout=timeout,
        )
