"""
Whitelisted fetch primitive for sandboxed expressions: get, get_text, post.

Backed by one httpx.AsyncClient per render. A URL is fetched only when its
host is in ``HTTP_ALLOWED_HOSTS`` and resolves to a public address. Every
call returns a coroutine; the executor awaits it under the expression's
async timeout.
"""

import ipaddress
import logging
import socket
from typing import Any
from urllib.parse import urlparse

import httpx

_log = logging.getLogger(__name__)

DEFAULT_HTTP_TIMEOUT = 5.0


def _resolve(host: str) -> ipaddress.IPv4Address | ipaddress.IPv6Address | None:
    try:
        return ipaddress.ip_address(host)
    except ValueError:
        pass
    try:
        infos = socket.getaddrinfo(host, None, socket.AF_UNSPEC, socket.SOCK_STREAM)
        return ipaddress.ip_address(infos[0][4][0])
    except (OSError, IndexError, ValueError):
        return None


def _is_private_ip(host: str) -> bool:
    """True for loopback, private, link-local, reserved or unresolvable targets."""
    addr = _resolve(host)
    if addr is None:
        return True
    return (
        addr.is_private
        or addr.is_loopback
        or addr.is_link_local
        or addr.is_reserved
        or addr.is_unspecified
        or addr.is_multicast
    )


def _host_matches(hostname: str, allowed_hosts: frozenset[str]) -> bool:
    """``*`` allows any host, ``*.example.com`` any subdomain, otherwise exact match."""
    if "*" in allowed_hosts or hostname in allowed_hosts:
        return True
    return any(p.startswith("*.") and hostname.endswith(p[1:]) for p in allowed_hosts)


def check_url_allowed(url: str, allowed_hosts: frozenset[str]) -> None:
    """Raise ``PermissionError`` unless *url* may be fetched."""
    if not isinstance(url, str):
        raise PermissionError("URL must be a string.")
    parsed = urlparse(url)
    if parsed.scheme not in ("http", "https"):
        raise PermissionError(f"URL scheme '{parsed.scheme}' is not allowed; only http/https.")
    hostname = (parsed.hostname or "").lower()
    if not hostname:
        raise PermissionError("URL has no hostname.")
    # Allow-list first: with an empty list nothing is resolved at all.
    if not _host_matches(hostname, allowed_hosts):
        raise PermissionError(
            f"Host '{hostname}' is not in HTTP_ALLOWED_HOSTS. "
            f"Allowed: {', '.join(sorted(allowed_hosts)) or '(none)'}."
        )
    if _is_private_ip(hostname):
        raise PermissionError(f"Requests to private/internal addresses are blocked: {hostname}")


class HttpModule:
    """Per-render HTTP object reusing one AsyncClient until ``aclose``."""

    __slots__ = ("_client", "_hosts", "_timeout")

    def __init__(
        self,
        *,
        timeout: float = DEFAULT_HTTP_TIMEOUT,
        allowed_hosts: frozenset[str] | None = None,
    ) -> None:
        self._timeout = timeout
        self._hosts = allowed_hosts if allowed_hosts is not None else frozenset()
        self._client: httpx.AsyncClient | None = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                timeout=self._timeout,
                headers={"Accept": "application/json"},
            )
        return self._client

    async def _request(self, method: str, url: str, *, as_text: bool = False, **kwargs: Any) -> Any:
        check_url_allowed(url, self._hosts)
        _log.debug("sandbox http %s %s", method, url)
        resp = await self._get_client().request(method, url, **kwargs)
        resp.raise_for_status()
        ct = resp.headers.get("content-type", "")
        if not as_text and "application/json" in ct:
            return resp.json()
        return resp.text

    def get(self, url: str, params: dict[str, Any] | None = None) -> Any:
        return self._request("GET", url, params=params)

    def get_text(self, url: str, params: dict[str, Any] | None = None) -> Any:
        return self._request("GET", url, as_text=True, params=params)

    def post(self, url: str, json: Any = None) -> Any:
        return self._request("POST", url, json=json)

    async def aclose(self) -> None:
        if self._client is not None:
            try:
                await self._client.aclose()
            except Exception as e:
                _log.warning("closing sandbox http client failed: %s", e)
            self._client = None


def make_http_module(
    *,
    timeout: float = DEFAULT_HTTP_TIMEOUT,
    allowed_hosts: frozenset[str] | None = None,
) -> HttpModule:
    """Build the ``http`` object: get, get_text, post.

    *allowed_hosts*: parsed from ``HTTP_ALLOWED_HOSTS``.
    Empty set means **no** outbound HTTP is permitted from expressions.
    """
    return HttpModule(timeout=timeout, allowed_hosts=allowed_hosts)
