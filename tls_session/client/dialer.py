"""
Dialers decide how the transport reaches a server.

A DirectDialer connects straight to the origin; a ConnectDialer routes
through a proxy (HTTP CONNECT tunnel, or SOCKS for socks* schemes). A
dialer is a description the transport factory turns into curl options;
it owns no sockets itself.

Proxy URL format: ``scheme://[user[:pass]@]host:port``.
"""

import ipaddress
import socket
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any
from urllib.parse import unquote, urlparse

from curl_cffi import CurlOpt

from tls_session.client.errors import TransportBuildError
from tls_session.utils.logging import get_logger

logger = get_logger(__name__)

SUPPORTED_PROXY_SCHEMES = ("http", "https", "socks4", "socks4a", "socks5", "socks5h")

# CURLHEADER_SEPARATE: CONNECT headers go only to the proxy
_CURLHEADER_SEPARATE = 1


def redact_proxy_url(url: str) -> str:
    """Mask the userinfo part of a proxy URL."""
    scheme, sep, rest = url.partition("://")
    if not sep or "@" not in rest:
        return url
    return f"{scheme}://***@{rest.rsplit('@', 1)[1]}"


@dataclass(frozen=True)
class ProxyURL:
    """Parsed and validated proxy URL."""

    url: str
    scheme: str
    host: str
    port: int
    username: str | None = None
    password: str | None = None

    @property
    def redacted(self) -> str:
        """URL with credentials masked, safe for logs and errors."""
        return redact_proxy_url(self.url)


def parse_proxy_url(url: str) -> ProxyURL:
    """Parse ``scheme://[user[:pass]@]host:port``.

    Args:
        url: Proxy URL.

    Returns:
        ProxyURL.

    Raises:
        TransportBuildError: If the URL is malformed, has an unsupported
            scheme, or lacks a host or port.
    """
    parsed = urlparse(url)
    scheme = parsed.scheme.lower()

    if scheme not in SUPPORTED_PROXY_SCHEMES:
        raise TransportBuildError(
            f"Unsupported proxy scheme '{parsed.scheme}' "
            f"(expected one of: {', '.join(SUPPORTED_PROXY_SCHEMES)})",
        )
    if not parsed.hostname:
        raise TransportBuildError("Proxy URL has no host")

    try:
        port = parsed.port
    except ValueError as e:
        raise TransportBuildError(f"Proxy URL has an invalid port: {e}") from e
    if port is None:
        raise TransportBuildError("Proxy URL has no port")

    return ProxyURL(
        url=url,
        scheme=scheme,
        host=parsed.hostname,
        port=port,
        username=unquote(parsed.username) if parsed.username is not None else None,
        password=unquote(parsed.password) if parsed.password is not None else None,
    )


class Dialer:
    """Describes how connections are opened.

    Subclass this to supply a custom low-level dialer: override
    ``curl_options`` to add connection settings. A custom dialer replaces
    the direct dialer and is wrapped when a proxy is configured.
    """

    def __init__(self, timeout: float, local_address: str | None = None) -> None:
        self.timeout = timeout
        self.local_address = local_address

    @property
    def proxy_url(self) -> str | None:
        """Proxy this dialer tunnels through, None for direct connections."""
        return None

    def curl_options(self) -> dict[CurlOpt, Any]:
        """curl options that implement this dialer."""
        options: dict[CurlOpt, Any] = {}
        if self.local_address:
            options[CurlOpt.INTERFACE] = self.local_address
        return options

    def __repr__(self) -> str:
        return f"{type(self).__name__}(timeout={self.timeout!r}, local_address={self.local_address!r})"


class DirectDialer(Dialer):
    """Connects straight to the origin server."""


class ConnectDialer(Dialer):
    """Routes connections through a proxy.

    For http/https proxies the transport issues a CONNECT request carrying
    ``connect_headers``; socks* proxies use the SOCKS handshake.
    """

    def __init__(
        self,
        proxy: ProxyURL,
        base: Dialer,
        connect_headers: Mapping[str, str] | None = None,
    ) -> None:
        super().__init__(base.timeout, base.local_address)
        self.proxy = proxy
        self.base = base
        self.connect_headers = dict(connect_headers or {})

    @property
    def proxy_url(self) -> str:
        return self.proxy.url

    def curl_options(self) -> dict[CurlOpt, Any]:
        options = self.base.curl_options()
        if self.connect_headers and self.proxy.scheme in ("http", "https"):
            options[CurlOpt.HEADEROPT] = _CURLHEADER_SEPARATE
            options[CurlOpt.PROXYHEADER] = [
                f"{name}: {value}".encode() for name, value in self.connect_headers.items()
            ]
        return options

    def probe(self) -> None:
        """Check the proxy accepts TCP connections.

        Raises:
            TransportBuildError: If the proxy cannot be resolved or reached
                within the dialer timeout.
        """
        source_address = None
        if self.local_address:
            try:
                ipaddress.ip_address(self.local_address)
                source_address = (self.local_address, 0)
            except ValueError:
                # interface names are only understood by curl
                pass

        try:
            conn = socket.create_connection(
                (self.proxy.host, self.proxy.port),
                timeout=self.timeout,
                source_address=source_address,
            )
        except OSError as e:
            raise TransportBuildError(
                f"Proxy {self.proxy.redacted} is unreachable: {e}",
                proxy_url=self.proxy.redacted,
            ) from e
        conn.close()

    def __repr__(self) -> str:
        return f"ConnectDialer(proxy={self.proxy.redacted!r}, base={self.base!r})"


def new_direct_dialer(
    timeout: float,
    local_address: str | None = None,
    custom_dialer: Dialer | None = None,
) -> Dialer:
    """Build the dialer used when no proxy is configured."""
    if custom_dialer is not None:
        return custom_dialer
    return DirectDialer(timeout, local_address)


def new_connect_dialer(
    proxy_url: str,
    timeout: float,
    local_address: str | None = None,
    custom_dialer: Dialer | None = None,
    connect_headers: Mapping[str, str] | None = None,
    *,
    probe: bool = True,
) -> ConnectDialer:
    """Build a dialer that tunnels through ``proxy_url``.

    Args:
        proxy_url: Proxy URL.
        timeout: Connect timeout in seconds.
        local_address: Local IP or interface to bind.
        custom_dialer: Caller-supplied base dialer.
        connect_headers: Headers for the CONNECT handshake.
        probe: Open a TCP connection to the proxy before returning.

    Returns:
        ConnectDialer.

    Raises:
        TransportBuildError: If the URL is invalid or the proxy is unreachable.
    """
    proxy = parse_proxy_url(proxy_url)
    base = new_direct_dialer(timeout, local_address, custom_dialer)
    dialer = ConnectDialer(proxy, base, connect_headers)

    if probe:
        dialer.probe()

    logger.debug("Proxy dialer created", proxy_url=proxy.redacted, scheme=proxy.scheme)
    return dialer


def build_dialer(
    proxy_url: str,
    timeout: float,
    local_address: str | None = None,
    custom_dialer: Dialer | None = None,
    connect_headers: Mapping[str, str] | None = None,
    *,
    probe: bool = True,
) -> Dialer:
    """Direct dialer for an empty ``proxy_url``, ConnectDialer otherwise."""
    if not proxy_url:
        return new_direct_dialer(timeout, local_address, custom_dialer)
    return new_connect_dialer(
        proxy_url,
        timeout,
        local_address,
        custom_dialer,
        connect_headers,
        probe=probe,
    )
