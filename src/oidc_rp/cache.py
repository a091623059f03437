"""Process-lifetime caches for issuer metadata and verification keys.

Entries are fetched on first use and never refreshed. A key rotation on the
authorization server is only picked up by a new client. Population is not
locked: two threads missing the cache at the same time both fetch, and the
second write replaces an equivalent first one.
"""

from __future__ import annotations

import logging
from typing import Any

from jwt import PyJWKSet
from jwt import exceptions as jwt_exceptions
from pydantic import ValidationError

from .errors import DiscoveryError
from .models import WellKnown
from .transport import Fetch, FetchInit

logger = logging.getLogger(__name__)

DISCOVERY_PATH = "/.well-known/oauth-authorization-server"


def _fetch_json(fetch: Fetch, url: str, what: str) -> Any:
    response = fetch(url, FetchInit(method="GET"))
    if not response.ok:
        raise DiscoveryError(f"failed to fetch {what} from {url}")
    try:
        return response.json()
    except ValueError as exc:
        raise DiscoveryError(f"{what} from {url} is not valid JSON") from exc


class DiscoveryCache:
    def __init__(self, fetch: Fetch) -> None:
        self._fetch = fetch
        self._entries: dict[str, WellKnown] = {}

    def __contains__(self, issuer: object) -> bool:
        return issuer in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, issuer: str) -> WellKnown:
        cached = self._entries.get(issuer)
        if cached is not None:
            return cached

        url = issuer + DISCOVERY_PATH
        document = _fetch_json(self._fetch, url, "discovery document")
        try:
            well_known = WellKnown.model_validate(document)
        except ValidationError as exc:
            raise DiscoveryError(f"malformed discovery document from {url}") from exc

        self._entries[issuer] = well_known
        logger.debug("cached discovery document for %s", issuer)
        return well_known


class KeySetCache:
    def __init__(self, discovery: DiscoveryCache, fetch: Fetch) -> None:
        self._discovery = discovery
        self._fetch = fetch
        self._entries: dict[str, PyJWKSet] = {}

    def __contains__(self, issuer: object) -> bool:
        return issuer in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, issuer: str) -> PyJWKSet:
        well_known = self._discovery.get(issuer)
        cached = self._entries.get(issuer)
        if cached is not None:
            return cached

        document = _fetch_json(self._fetch, well_known.jwks_uri, "key set")
        if not isinstance(document, dict):
            raise DiscoveryError(f"key set from {well_known.jwks_uri} must be an object")
        keys = document.get("keys")
        if isinstance(keys, list) and not all(isinstance(jwk, dict) for jwk in keys):
            raise DiscoveryError(f"key set from {well_known.jwks_uri} has non-object keys")
        try:
            key_set = PyJWKSet.from_dict(document)
        except jwt_exceptions.PyJWKSetError as exc:
            raise DiscoveryError(f"unusable key set from {well_known.jwks_uri}: {exc}") from exc

        self._entries[issuer] = key_set
        logger.debug("cached %d verification keys for %s", len(key_set.keys), issuer)
        return key_set
