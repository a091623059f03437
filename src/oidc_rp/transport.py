from __future__ import annotations

import json
import logging
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
_DEFAULT_TIMEOUT = 10.0
_DEFAULT_MAX_BYTES = 512 * 1024


@dataclass(frozen=True)
class FetchInit:
    method: str = "GET"
    headers: Mapping[str, str] = field(default_factory=dict)
    body: str | None = None


class ResponseLike(Protocol):
    @property
    def ok(self) -> bool: ...

    def json(self) -> Any: ...


class Fetch(Protocol):
    def __call__(self, url: str, init: FetchInit | None = None) -> ResponseLike: ...


@dataclass(frozen=True)
class HTTPResponse:
    status: int
    body: bytes

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))


class UrllibFetch:
    """Default transport built on ``urllib.request``.

    HTTP error statuses come back as responses with ``ok`` False; network
    failures and timeouts raise.
    """

    def __init__(
        self, *, timeout: float = _DEFAULT_TIMEOUT, max_bytes: int = _DEFAULT_MAX_BYTES
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self.timeout = timeout
        self.max_bytes = max_bytes

    def __call__(self, url: str, init: FetchInit | None = None) -> HTTPResponse:
        parsed = urllib.parse.urlparse(url)
        if parsed.scheme not in {"http", "https"}:
            raise ValueError(f"url must be http(s): {url}")

        init = init or FetchInit()
        headers = {"Accept": "application/json", **init.headers}
        data = init.body.encode("utf-8") if init.body is not None else None
        req = urllib.request.Request(url, data=data, headers=headers, method=init.method)
        logger.debug("%s %s", init.method, url)
        try:
            with urllib.request.urlopen(req, timeout=self.timeout) as response:
                status = int(response.status)
                body = response.read(self.max_bytes + 1)
        except urllib.error.HTTPError as exc:
            status = exc.code
            try:
                body = exc.read(self.max_bytes + 1)
            finally:
                exc.close()
        if len(body) > self.max_bytes:
            raise ValueError(f"response from {url} too large")
        return HTTPResponse(status=status, body=body)
