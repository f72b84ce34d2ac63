"""
Transport construction for the session runtime.

A TransportFactory turns a TransportSpec (profile + dialer + options) into
a RoundTripper. The default factory builds a CurlRoundTripper on top of
curl_cffi, which reproduces the profile's TLS and HTTP/2 fingerprint.

The round-tripper executes exactly one hop: redirects are never followed
here, and curl's own cookie engine and built-in impersonation headers are
disabled so the session is the only source of headers and cookies.
"""

import base64
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, Protocol

from curl_cffi import CurlECode, CurlError, CurlHttpVersion, CurlOpt
from curl_cffi import requests as curl_requests
from curl_cffi.const import CurlIpResolve
from pydantic import BaseModel, Field

from tls_session.client.dialer import Dialer, redact_proxy_url
from tls_session.client.errors import RequestExecutionError, TransportBuildError
from tls_session.client.headers import ordered_header_items
from tls_session.client.profiles import ClientProfile
from tls_session.client.request import Request
from tls_session.utils.logging import get_logger

logger = get_logger(__name__)

BadPinHandler = Callable[[Request], None]


class TransportOptions(BaseModel):
    """Connection-pool and socket tuning passed to the transport."""

    max_connections: int | None = Field(
        default=None, ge=1, description="Upper bound on cached connections"
    )
    tcp_keepalive: bool = Field(default=True, description="Enable TCP keep-alive probes")
    extra_curl_options: dict[int, Any] = Field(
        default_factory=dict,
        description="Raw CurlOpt -> value pairs applied after everything else",
    )


@dataclass(frozen=True)
class TransportSpec:
    """Everything a TransportFactory needs to build one round-tripper."""

    profile: ClientProfile
    dialer: Dialer
    options: TransportOptions = field(default_factory=TransportOptions)
    insecure_skip_verify: bool = False
    server_name_override: str = ""
    random_tls_extension_order: bool = False
    force_http1: bool = False
    disable_ipv4: bool = False
    disable_ipv6: bool = False
    certificate_pins: tuple[str, ...] = ()
    bad_pin_handler: BadPinHandler | None = None


@dataclass(frozen=True)
class ConnectionSecurity:
    """Connection metadata reported with a response."""

    secure: bool = False
    verified: bool = False
    pinned: bool = False
    server_name: str = ""
    remote_address: str = ""
    remote_port: int = 0
    local_address: str = ""
    local_port: int = 0


class RawBody(Protocol):
    """Streaming response body. Must be closed exactly once."""

    def __iter__(self) -> Iterator[bytes]: ...

    def close(self) -> None: ...


@dataclass
class RawResponse:
    """One hop as returned by a RoundTripper, body not yet read."""

    status_code: int
    reason: str
    proto: str
    proto_major: int
    proto_minor: int
    headers: list[tuple[str, str]]
    url: str
    request: Request
    body: RawBody
    trailer: list[tuple[str, str]] = field(default_factory=list)
    tls: ConnectionSecurity | None = None
    uncompressed: bool = False


class RoundTripper(Protocol):
    """Executes a single HTTP exchange."""

    def round_trip(self, request: Request, timeout: float) -> RawResponse: ...

    def close_idle_connections(self) -> None: ...


TransportFactory = Callable[[TransportSpec], RoundTripper]


# =============================================================================
# curl_cffi implementation
# =============================================================================

# CURLINFO_HTTP_VERSION -> (proto, major, minor)
_HTTP_VERSIONS: dict[int, tuple[str, int, int]] = {
    CurlHttpVersion.V1_0: ("HTTP/1.0", 1, 0),
    CurlHttpVersion.V1_1: ("HTTP/1.1", 1, 1),
    CurlHttpVersion.V2_0: ("HTTP/2.0", 2, 0),
    CurlHttpVersion.V3: ("HTTP/3.0", 3, 0),
}


def format_certificate_pins(pins: tuple[str, ...] | list[str]) -> str:
    """Render pins as a CURLOPT_PINNEDPUBLICKEY value.

    Accepts ``sha256/<base64>`` (HPKP style) or ``sha256//<base64>`` (curl
    style) entries holding a 32-byte SHA-256 digest.

    Raises:
        TransportBuildError: If an entry is malformed.
    """
    rendered = []
    for pin in pins:
        algorithm, sep, digest = pin.partition("/")
        digest = digest.lstrip("/")
        if algorithm.lower() != "sha256" or not sep or not digest:
            raise TransportBuildError(f"Invalid certificate pin (expected sha256/<base64>): {pin}")
        try:
            raw = base64.b64decode(digest, validate=True)
        except ValueError as e:
            raise TransportBuildError(f"Invalid certificate pin encoding: {pin}") from e
        if len(raw) != 32:
            raise TransportBuildError(f"Certificate pin is not a SHA-256 digest: {pin}")
        rendered.append(f"sha256//{digest}")
    return ";".join(rendered)


def build_curl_session_kwargs(spec: TransportSpec) -> dict[str, Any]:
    """Translate a TransportSpec into ``curl_cffi.requests.Session`` kwargs.

    Raises:
        TransportBuildError: If the spec asks for something curl cannot do.
    """
    if spec.server_name_override:
        raise TransportBuildError(
            "curl transport cannot send a server name different from the URL host"
        )

    curl_options: dict[Any, Any] = dict(spec.dialer.curl_options())

    if spec.disable_ipv6 and spec.disable_ipv4:
        raise TransportBuildError("Both IPv4 and IPv6 are disabled")
    if spec.disable_ipv6:
        curl_options[CurlOpt.IPRESOLVE] = CurlIpResolve.V4
    elif spec.disable_ipv4:
        curl_options[CurlOpt.IPRESOLVE] = CurlIpResolve.V6

    if spec.certificate_pins:
        curl_options[CurlOpt.PINNEDPUBLICKEY] = format_certificate_pins(spec.certificate_pins)

    if spec.options.max_connections is not None:
        curl_options[CurlOpt.MAXCONNECTS] = spec.options.max_connections
    curl_options[CurlOpt.TCP_KEEPALIVE] = 1 if spec.options.tcp_keepalive else 0
    curl_options.update(spec.options.extra_curl_options)

    kwargs: dict[str, Any] = {
        "impersonate": spec.profile.impersonate,
        "verify": not spec.insecure_skip_verify,
        "trust_env": False,
        "allow_redirects": False,
        "default_headers": False,
        "discard_cookies": True,
        "timeout": spec.dialer.timeout,
        "curl_options": curl_options,
    }
    if spec.profile.ja3:
        kwargs["ja3"] = spec.profile.ja3
    if spec.profile.akamai:
        kwargs["akamai"] = spec.profile.akamai
    if spec.random_tls_extension_order:
        kwargs["extra_fp"] = {"tls_permute_extensions": True}
    if spec.force_http1:
        kwargs["http_version"] = CurlHttpVersion.V1_1
    if spec.dialer.proxy_url:
        kwargs["proxy"] = spec.dialer.proxy_url
    return kwargs


class _CurlBody:
    """Adapts a streamed curl_cffi response to RawBody."""

    def __init__(self, response: Any) -> None:
        self._response = response
        self._closed = False

    def __iter__(self) -> Iterator[bytes]:
        try:
            yield from self._response.iter_content()
        except CurlError as e:
            raise OSError(f"body read failed: {e}") from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._response.close()
        except CurlError as e:
            # transfer already failed; the read path reports it
            logger.debug("Stream close reported error", error=str(e))


class CurlRoundTripper:
    """RoundTripper backed by a curl_cffi Session.

    The curl session is replaced wholesale by ``close_idle_connections``;
    requests already running keep the handle they started with.
    """

    def __init__(self, spec: TransportSpec) -> None:
        self._spec = spec
        self._session_kwargs = build_curl_session_kwargs(spec)
        self._lock = threading.Lock()
        try:
            self._session = curl_requests.Session(**self._session_kwargs)
        except (CurlError, TypeError, ValueError) as e:
            raise TransportBuildError(
                f"Failed to build curl transport: {e}",
                proxy_url=redact_proxy_url(spec.dialer.proxy_url or ""),
            ) from e

    @property
    def spec(self) -> TransportSpec:
        return self._spec

    def round_trip(self, request: Request, timeout: float) -> RawResponse:
        """Send ``request`` and return once response headers arrive.

        Raises:
            RequestExecutionError: On connect, TLS, write or read failure.
        """
        session = self._session
        headers = ordered_header_items(request.headers, request.header_order)

        try:
            response = session.request(
                request.method,
                request.url,
                headers=headers,
                content=request.body,
                timeout=timeout,
                allow_redirects=False,
                stream=True,
            )
        except CurlError as e:
            if (
                getattr(e, "code", None) == CurlECode.SSL_PINNEDPUBKEYNOTMATCH
                and self._spec.bad_pin_handler is not None
            ):
                self._spec.bad_pin_handler(request)
            raise RequestExecutionError(
                f"{request.method} {request.url} failed: {e}",
                url=request.url,
            ) from e

        proto, major, minor = _HTTP_VERSIONS.get(
            int(response.http_version or 0), ("HTTP/1.1", 1, 1)
        )
        raw_headers = [(name, value or "") for name, value in response.headers.multi_items()]
        is_https = request.scheme == "https"

        return RawResponse(
            status_code=response.status_code,
            reason=response.reason or "",
            proto=proto,
            proto_major=major,
            proto_minor=minor,
            headers=raw_headers,
            url=str(response.url or request.url),
            request=request,
            body=_CurlBody(response),
            tls=ConnectionSecurity(
                secure=is_https,
                verified=is_https and not self._spec.insecure_skip_verify,
                pinned=is_https and bool(self._spec.certificate_pins),
                server_name=request.hostname if is_https else "",
                remote_address=response.primary_ip or "",
                remote_port=response.primary_port or 0,
                local_address=response.local_ip or "",
                local_port=response.local_port or 0,
            ),
            # curl decodes transparently but keeps Content-Encoding
            uncompressed=any(name.lower() == "content-encoding" for name, _ in raw_headers),
        )

    def close_idle_connections(self) -> None:
        """Drop pooled connections by starting a fresh curl session."""
        with self._lock:
            self._session = curl_requests.Session(**self._session_kwargs)


def new_round_tripper(spec: TransportSpec) -> RoundTripper:
    """Default TransportFactory."""
    round_tripper = CurlRoundTripper(spec)
    logger.debug(
        "Transport built",
        profile=spec.profile.name,
        impersonate=spec.profile.impersonate,
        proxied=bool(spec.dialer.proxy_url),
        force_http1=spec.force_http1,
    )
    return round_tripper
