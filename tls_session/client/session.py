"""
Session runtime.

A Session owns one active transport (a round-tripper bound to a direct or
proxied route), the header defaults, both cookie stores and the redirect
policy. ``do`` runs one request end to end:

1. header defaults and header-order lower-casing are applied under a lock
2. the fast cookie store, when it holds cookies, becomes the Cookie header
3. hops are executed against the transport installed at call time; each
   hop's Set-Cookie headers reach both stores before any body is read
4. the final body is drained into memory and the response snapshot returned

``set_proxy`` builds a complete replacement transport and swaps it in with a
single attribute assignment, so concurrent ``do`` calls see either the old
or the new route, never a mix.
"""

import threading
import time
import uuid
from dataclasses import dataclass
from types import TracebackType
from typing import Any

from multidict import CIMultiDict

from tls_session.client.cookies import Cookie, CookieCoordinator, CookieJar, FastCookieStore
from tls_session.client.dialer import Dialer, build_dialer, redact_proxy_url
from tls_session.client.errors import (
    BodyReadError,
    ProxyRollbackError,
    RequestExecutionError,
    TransportBuildError,
)
from tls_session.client.headers import HeaderNormalizer
from tls_session.client.options import SessionConfig, default_config, validate_config
from tls_session.client.redirect import (
    RedirectDecision,
    RedirectMode,
    RedirectPolicy,
    build_redirect_request,
    is_redirect,
)
from tls_session.client.request import Request
from tls_session.client.response import (
    Response,
    drain_body,
    sentinel_response,
    translate_response,
    with_body,
)
from tls_session.client.transport import (
    RawResponse,
    RoundTripper,
    TransportFactory,
    TransportSpec,
    new_round_tripper,
)
from tls_session.utils.logging import LogContext, ensure_logging_configured, get_logger

ensure_logging_configured()
logger = get_logger(__name__)


@dataclass(frozen=True)
class _ActiveTransport:
    """Route and round-tripper, always replaced together."""

    proxy_url: str
    dialer: Dialer
    round_tripper: RoundTripper


class Session:
    """HTTP session with a fixed client fingerprint.

    Safe for concurrent ``do`` calls from multiple threads. ``set_proxy``
    calls are serialized against each other but never block ``do``.

    Example:
        with Session(default_config(proxy_url="http://127.0.0.1:8080")) as session:
            response = session.do(Request("GET", "https://example.com/"))
            print(response.status_code, len(response.body_bytes))
    """

    def __init__(
        self,
        config: SessionConfig | None = None,
        *,
        transport_factory: TransportFactory | None = None,
    ) -> None:
        """Build a session.

        Args:
            config: Options; ``default_config()`` when None. The session
                keeps its own copy.
            transport_factory: Builds round-trippers from a TransportSpec.
                Defaults to the curl_cffi transport.

        Raises:
            ConfigurationError: If the options are inconsistent.
            TransportBuildError: If the initial transport cannot be built.
        """
        config = default_config() if config is None else config.model_copy()
        validate_config(config)

        self._config = config
        self.session_id = uuid.uuid4().hex[:12]
        self._logger = logger.bind(session_id=self.session_id)
        self._transport_factory = transport_factory or new_round_tripper

        self._header_normalizer = HeaderNormalizer(
            config.default_headers,
            config.default_header_order,
        )
        self._cookies = CookieCoordinator(config.cookie_jar, config.fast_cookie_store)
        self._redirect_policy = RedirectPolicy.resolve(
            config.follow_redirects,
            config.custom_redirect_func,
            config.max_redirects,
        )

        self._proxy_lock = threading.Lock()
        self._active = self._build_transport(config.proxy_url)

        self._trace(
            "Session created",
            profile=config.profile.name,
            proxy_url=config.proxy_url,
            redirect_mode=self._redirect_policy.mode.value,
        )

    # =========================================================================
    # Request execution
    # =========================================================================

    def do(self, request: Request) -> Response:
        """Execute ``request`` and return the fully read response.

        The request is updated in place with the headers actually sent on
        the first hop.

        Args:
            request: Request to send.

        Returns:
            Response with ``body_bytes`` and ``body`` set.

        Raises:
            RequestExecutionError: Network failure, hop limit or redirect
                callback failure. ``.response`` has status_code -1.
            BodyReadError: Headers arrived but the body could not be read.
                ``.response`` is the header-only snapshot.
        """
        timeout = self._config.timeout_seconds
        if request.timeout is not None:
            timeout = min(timeout, request.timeout)
        deadline = time.monotonic() + timeout

        # one consistent view for the whole call
        active = self._active
        policy = self._redirect_policy

        with LogContext(request_method=request.method, request_url=request.url):
            # defaults see only the caller's headers, never the fast cookie
            if self._header_normalizer.apply(request):
                self._trace("Default headers applied", header_count=len(request.headers))

            if self._cookies.apply_fast_cookies(request):
                self._trace("Fast cookie store applied")

            try:
                raw = self._execute(request, active, policy, deadline)
            except RequestExecutionError as e:
                e.response = sentinel_response(request)
                self._trace("Request failed", error=str(e))
                raise

            response = translate_response(raw)

            try:
                body_bytes = drain_body(raw)
            except OSError as e:
                self._trace("Body read failed", status_code=response.status_code, error=str(e))
                raise BodyReadError(
                    f"Failed to read response body: {e}",
                    response=response,
                    url=response.url,
                ) from e

            self._trace(
                "Request completed",
                status_code=response.status_code,
                body_size=len(body_bytes),
            )
            return with_body(response, body_bytes)

    def _execute(
        self,
        request: Request,
        active: _ActiveTransport,
        policy: RedirectPolicy,
        deadline: float,
    ) -> RawResponse:
        """Run hops until a non-redirect response or a stop decision."""
        original_host = request.hostname
        via: list[Request] = []
        current = request

        while True:
            jar_applied = self._cookies.apply_jar_cookies(current)
            raw = self._round_trip(active.round_tripper, current, deadline)

            headers = CIMultiDict(raw.headers)
            self._cookies.extract_to_jar(raw.url, headers)
            self._cookies.extract_to_fast_store(headers)

            location = headers.get("Location")
            if policy.mode is RedirectMode.STOP or not is_redirect(raw.status_code, location):
                return raw

            try:
                try:
                    next_request = build_redirect_request(
                        current, raw.status_code, location, original_host
                    )
                except ValueError as e:
                    raise RequestExecutionError(
                        f"Invalid redirect location {location!r}: {e}",
                        url=current.url,
                    ) from e
                # jar cookies are scoped to the hop URL
                if jar_applied:
                    next_request.headers.popall("Cookie", None)
                via.append(current)
                if not self._should_follow(policy, next_request, via):
                    return raw
            except Exception:
                raw.body.close()
                raise

            self._trace(
                "Following redirect",
                status_code=raw.status_code,
                location=next_request.url,
                hop=len(via),
            )
            raw.body.close()

            self._cookies.apply_fast_cookies(next_request)
            current = next_request

    def _should_follow(
        self,
        policy: RedirectPolicy,
        next_request: Request,
        via: list[Request],
    ) -> bool:
        if policy.mode is RedirectMode.CUSTOM:
            try:
                decision = policy.func(next_request, list(via))
            except Exception as e:
                raise RequestExecutionError(
                    f"Redirect callback failed: {e}",
                    url=next_request.url,
                ) from e
            self._trace("Redirect callback decided", decision=str(decision), location=next_request.url)
            return decision == RedirectDecision.FOLLOW

        if len(via) > policy.max_redirects:
            raise RequestExecutionError(
                f"Stopped after {policy.max_redirects} redirects",
                url=next_request.url,
            )
        return True

    def _round_trip(
        self,
        round_tripper: RoundTripper,
        request: Request,
        deadline: float,
    ) -> RawResponse:
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise RequestExecutionError(
                f"{request.method} {request.url} timed out",
                url=request.url,
            )
        try:
            return round_tripper.round_trip(request, remaining)
        except OSError as e:
            raise RequestExecutionError(
                f"{request.method} {request.url} failed: {e}",
                url=request.url,
            ) from e

    # =========================================================================
    # Transport and proxy
    # =========================================================================

    def _build_transport(self, proxy_url: str) -> _ActiveTransport:
        """Build dialer and round-tripper for ``proxy_url`` ("" = direct).

        Raises:
            TransportBuildError: If either part cannot be built.
        """
        config = self._config
        dialer = build_dialer(
            proxy_url,
            config.timeout_seconds,
            config.local_address,
            config.dialer,
            config.connect_headers,
            probe=config.probe_proxy,
        )
        spec = TransportSpec(
            profile=config.profile,
            dialer=dialer,
            options=config.transport_options,
            insecure_skip_verify=config.insecure_skip_verify,
            server_name_override=config.server_name_override,
            random_tls_extension_order=config.random_tls_extension_order,
            force_http1=config.force_http1,
            disable_ipv4=config.disable_ipv4,
            disable_ipv6=config.disable_ipv6,
            certificate_pins=tuple(config.certificate_pins),
            bad_pin_handler=config.bad_pin_handler,
        )
        return _ActiveTransport(proxy_url, dialer, self._transport_factory(spec))

    def set_proxy(self, proxy_url: str) -> None:
        """Route all further requests through ``proxy_url`` ("" = direct).

        On failure the previous route is rebuilt and installed, and the
        original error is raised.

        Raises:
            TransportBuildError: The new route failed; the previous route is
                active again.
            ProxyRollbackError: The new route failed and rebuilding the
                previous one failed too. The previous transport object stays
                installed but the session should be discarded.
        """
        with self._proxy_lock:
            previous = self._active
            self._trace(
                "Changing proxy",
                previous_proxy_url=previous.proxy_url,
                proxy_url=proxy_url,
            )

            try:
                self._active = self._build_transport(proxy_url)
            except TransportBuildError as e:
                self._logger.error(
                    "Failed to apply proxy, rolling back",
                    proxy_url=proxy_url,
                    previous_proxy_url=previous.proxy_url,
                    error=e.message,
                )
                try:
                    self._active = self._build_transport(previous.proxy_url)
                except TransportBuildError as rollback_error:
                    self._logger.error(
                        "Failed to restore previous proxy",
                        previous_proxy_url=previous.proxy_url,
                        error=rollback_error.message,
                    )
                    raise ProxyRollbackError(
                        redact_proxy_url(proxy_url),
                        redact_proxy_url(previous.proxy_url),
                        original=e,
                        rollback=rollback_error,
                    ) from e
                self._config.proxy_url = previous.proxy_url
                raise

            self._config.proxy_url = proxy_url

    def get_proxy(self) -> str:
        """Proxy URL of the installed transport, "" for direct."""
        return self._active.proxy_url

    def close_idle_connections(self) -> None:
        """Release pooled idle connections of the installed transport."""
        self._active.round_tripper.close_idle_connections()

    def close(self) -> None:
        self.close_idle_connections()

    def __enter__(self) -> "Session":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        self.close()

    # =========================================================================
    # Redirect policy
    # =========================================================================

    def set_follow_redirect(self, follow_redirect: bool) -> None:
        """Enable or disable redirect following.

        When enabled, a configured custom redirect function decides each
        hop; otherwise redirects are followed up to ``max_redirects``.
        """
        self._trace(
            "Changing redirect following",
            previous=self._config.follow_redirects,
            follow_redirect=follow_redirect,
        )
        self._config.follow_redirects = follow_redirect
        self._redirect_policy = RedirectPolicy.resolve(
            follow_redirect,
            self._config.custom_redirect_func,
            self._config.max_redirects,
        )

    def get_follow_redirect(self) -> bool:
        return self._config.follow_redirects

    @property
    def redirect_policy(self) -> RedirectPolicy:
        return self._redirect_policy

    # =========================================================================
    # Cookies
    # =========================================================================

    def get_cookies(self, url: str) -> list[Cookie]:
        """Cookies the standard jar would send to ``url`` ([] without a jar)."""
        self._trace("Get cookies", url=url)
        jar = self._cookies.jar
        if jar is None:
            self._logger.warning("No cookie jar configured", url=url)
            return []
        return jar.cookies(url)

    def set_cookies(self, url: str, cookies: list[Cookie]) -> None:
        """Store ``cookies`` for ``url`` in the standard jar (no-op without a jar)."""
        self._trace("Set cookies", url=url, count=len(cookies))
        jar = self._cookies.jar
        if jar is None:
            self._logger.warning("No cookie jar configured", url=url)
            return
        jar.set_cookies(url, cookies)

    def set_cookie_jar(self, jar: CookieJar | None) -> None:
        """Replace the standard jar. Passing a new jar clears all cookies."""
        self._cookies.jar = jar
        self._config.cookie_jar = jar

    def get_cookie_jar(self) -> CookieJar | None:
        return self._cookies.jar

    def set_fast_cookie_store(self, store: FastCookieStore | None) -> None:
        self._cookies.fast_store = store
        self._config.fast_cookie_store = store

    def get_fast_cookie_store(self) -> FastCookieStore | None:
        return self._cookies.fast_store

    # =========================================================================
    # Internals
    # =========================================================================

    @property
    def config(self) -> SessionConfig:
        """Copy of the current options."""
        return self._config.model_copy()

    def _trace(self, event: str, **kwargs: Any) -> None:
        if self._config.debug:
            self._logger.debug(event, **kwargs)

    def __repr__(self) -> str:
        return (
            f"Session(id={self.session_id!r}, profile={self._config.profile.name!r}, "
            f"proxy={redact_proxy_url(self.get_proxy())!r})"
        )


def provide_default_session(**overrides: Any) -> Session:
    """Session built from ``default_config()``: settings defaults, fresh cookie jar."""
    return Session(default_config(**overrides))
