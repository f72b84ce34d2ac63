"""
tls-session Client Module.

Provides the session runtime: header framing, cookie stores, proxy dialers,
the curl_cffi transport, redirect policy and response snapshots.
"""

from tls_session.client.cookies import (
    Cookie,
    CookieCoordinator,
    CookieJar,
    FastCookieStore,
    parse_cookie_header,
    parse_set_cookie,
)

from tls_session.client.dialer import (
    ConnectDialer,
    Dialer,
    DirectDialer,
    ProxyURL,
    new_connect_dialer,
    new_direct_dialer,
    parse_proxy_url,
)

from tls_session.client.errors import (
    BodyReadError,
    ConfigurationError,
    ProxyRollbackError,
    RequestExecutionError,
    SessionError,
    SessionErrorCode,
    TransportBuildError,
)

from tls_session.client.headers import HeaderNormalizer

from tls_session.client.options import (
    SessionConfig,
    default_config,
    validate_config,
)

from tls_session.client.profiles import (
    DEFAULT_CLIENT_PROFILE,
    ClientProfile,
    get_profile,
    list_profiles,
)

from tls_session.client.redirect import (
    RedirectDecision,
    RedirectMode,
    RedirectPolicy,
)

from tls_session.client.request import Request

from tls_session.client.response import Response

from tls_session.client.session import Session, provide_default_session

from tls_session.client.transport import (
    ConnectionSecurity,
    CurlRoundTripper,
    RawResponse,
    RoundTripper,
    TransportFactory,
    TransportOptions,
    TransportSpec,
    new_round_tripper,
)

__all__ = [
    # Cookies
    "Cookie",
    "CookieCoordinator",
    "CookieJar",
    "FastCookieStore",
    "parse_cookie_header",
    "parse_set_cookie",
    # Dialers
    "ConnectDialer",
    "Dialer",
    "DirectDialer",
    "ProxyURL",
    "new_connect_dialer",
    "new_direct_dialer",
    "parse_proxy_url",
    # Errors
    "BodyReadError",
    "ConfigurationError",
    "ProxyRollbackError",
    "RequestExecutionError",
    "SessionError",
    "SessionErrorCode",
    "TransportBuildError",
    # Headers
    "HeaderNormalizer",
    # Options
    "SessionConfig",
    "default_config",
    "validate_config",
    # Profiles
    "DEFAULT_CLIENT_PROFILE",
    "ClientProfile",
    "get_profile",
    "list_profiles",
    # Redirects
    "RedirectDecision",
    "RedirectMode",
    "RedirectPolicy",
    # Request / Response
    "Request",
    "Response",
    # Session
    "Session",
    "provide_default_session",
    # Transport
    "ConnectionSecurity",
    "CurlRoundTripper",
    "RawResponse",
    "RoundTripper",
    "TransportFactory",
    "TransportOptions",
    "TransportSpec",
    "new_round_tripper",
]
