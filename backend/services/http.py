"""Shared plumbing for the outbound provider clients."""

from __future__ import annotations

import ipaddress
import logging
from typing import Any, Sequence
from urllib.parse import urlsplit

import httpx

from services.errors import MediaTooLargeError, ProviderError, RequestValidationError, SchemaError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = httpx.Timeout(120.0, connect=10.0)


class ProviderClient:
    """Base for clients that talk to one remote capability over httpx.

    Pass ``http`` to share a client (or inject ``httpx.MockTransport`` in tests);
    otherwise one is created lazily and closed by ``aclose()``.
    """

    name = "provider"

    def __init__(self, *, http: httpx.AsyncClient | None = None) -> None:
        self._http = http
        self._owns_http = http is None

    @property
    def http(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=DEFAULT_TIMEOUT)
        return self._http

    async def aclose(self) -> None:
        if self._http is not None and self._owns_http:
            await self._http.aclose()
            self._http = None

    def check(self, response: httpx.Response, what: str) -> httpx.Response:
        """Raise ProviderError for any non-2xx answer."""
        if response.is_success:
            return response
        detail = response.text[:500]
        logger.warning("[%s] %s failed (%d): %s", self.name, what, response.status_code, detail)
        raise ProviderError(f"{self.name} {what} failed ({response.status_code}): {detail}")

    def json_body(self, response: httpx.Response, what: str) -> Any:
        self.check(response, what)
        try:
            return response.json()
        except ValueError as exc:
            raise SchemaError(f"{self.name} {what} returned non-JSON body") from exc


def check_media_url(url: str, allowed_hosts: Sequence[str] = ()) -> str:
    """
    Refuse URLs the server should not fetch for a caller.

    Only http(s) is accepted, IP literals must be public, and when
    ``allowed_hosts`` is set the host must be one of them or a subdomain.
    """
    parts = urlsplit(url)
    host = (parts.hostname or "").lower()
    if parts.scheme not in ("http", "https") or not host:
        raise RequestValidationError("Media URL must be an http(s) URL")
    if host == "localhost" or host.endswith(".localhost"):
        raise RequestValidationError("Media URL host is not allowed")
    try:
        address = ipaddress.ip_address(host)
    except ValueError:
        address = None
    if address is not None and not address.is_global:
        raise RequestValidationError("Media URL host is not allowed")
    if allowed_hosts and not any(host == allowed or host.endswith(f".{allowed}") for allowed in allowed_hosts):
        raise RequestValidationError(f"Media URL host {host} is not allowed")
    return url


async def fetch_bytes(
    http: httpx.AsyncClient,
    url: str,
    what: str,
    *,
    max_bytes: int | None = None,
    follow_redirects: bool = True,
) -> bytes:
    """Download a remote asset, streaming so ``max_bytes`` is enforced; empty bodies are failures."""
    chunks: list[bytes] = []
    size = 0
    try:
        async with http.stream("GET", url, follow_redirects=follow_redirects) as response:
            if not response.is_success:
                raise ProviderError(f"Failed to fetch {what} ({response.status_code})")
            declared = response.headers.get("content-length", "")
            if max_bytes is not None and declared.isdigit() and int(declared) > max_bytes:
                raise MediaTooLargeError(f"{what} is larger than {max_bytes} bytes")
            async for chunk in response.aiter_bytes():
                size += len(chunk)
                if max_bytes is not None and size > max_bytes:
                    raise MediaTooLargeError(f"{what} is larger than {max_bytes} bytes")
                chunks.append(chunk)
    except httpx.HTTPError as exc:
        raise ProviderError(f"Failed to fetch {what}: {exc}") from exc
    if not size:
        raise ProviderError(f"Fetched {what} is empty")
    return b"".join(chunks)
