"""
Session configuration.

SessionConfig is the complete, per-session option set, applied once when a
Session is built and afterwards changed only through Session methods.
default_config() seeds a fresh SessionConfig from settings on every call, so
no two sessions ever share option containers.
"""

from typing import Any

from multidict import CIMultiDict
from pydantic import BaseModel, ConfigDict, Field, field_validator

from tls_session.client.cookies import CookieJar, FastCookieStore
from tls_session.client.dialer import Dialer, parse_proxy_url
from tls_session.client.errors import ConfigurationError, TransportBuildError
from tls_session.client.profiles import DEFAULT_CLIENT_PROFILE, ClientProfile, get_profile
from tls_session.client.redirect import RedirectFunc
from tls_session.client.transport import BadPinHandler, TransportOptions
from tls_session.utils.config import get_settings


class SessionConfig(BaseModel):
    """Options of a single Session."""

    model_config = ConfigDict(arbitrary_types_allowed=True, extra="forbid")

    # Timeouts and redirects
    timeout_seconds: float = Field(default=30.0, description="Bound on one do() call")
    follow_redirects: bool = Field(default=True, description="Initial redirect toggle")
    custom_redirect_func: RedirectFunc | None = Field(
        default=None, description="Decides each hop while redirects are followed"
    )
    max_redirects: int = Field(default=10, description="Hop limit when following")

    # Routing
    proxy_url: str = Field(default="", description="scheme://[user[:pass]@]host:port, empty = direct")
    connect_headers: dict[str, str] = Field(
        default_factory=dict, description="Headers sent in the proxy CONNECT request"
    )
    local_address: str | None = Field(default=None, description="Local IP or interface to bind")
    dialer: Dialer | None = Field(default=None, description="Custom low-level dialer")
    probe_proxy: bool = Field(default=True, description="Check proxy reachability on build")

    # Headers
    default_headers: CIMultiDict = Field(
        default_factory=CIMultiDict, description="Used when a request has no headers"
    )
    default_header_order: list[str] = Field(default_factory=list)

    # Fingerprint and TLS
    profile: ClientProfile = Field(default=DEFAULT_CLIENT_PROFILE)
    transport_options: TransportOptions = Field(default_factory=TransportOptions)
    server_name_override: str = ""
    insecure_skip_verify: bool = False
    random_tls_extension_order: bool = False
    force_http1: bool = False
    certificate_pins: list[str] = Field(default_factory=list)
    bad_pin_handler: BadPinHandler | None = None
    disable_ipv4: bool = False
    disable_ipv6: bool = False

    # Cookies
    cookie_jar: CookieJar | None = None
    fast_cookie_store: FastCookieStore | None = None

    debug: bool = Field(default=False, description="Emit per-call trace logs")

    @field_validator("default_headers", mode="before")
    @classmethod
    def _coerce_headers(cls, value: Any) -> CIMultiDict:
        if value is None:
            return CIMultiDict()
        if isinstance(value, CIMultiDict):
            return value
        return CIMultiDict(value)

    @field_validator("profile", mode="before")
    @classmethod
    def _resolve_profile(cls, value: Any) -> Any:
        if isinstance(value, str):
            return get_profile(value)
        return value


def validate_config(config: SessionConfig) -> None:
    """Reject option combinations a session cannot honour.

    Raises:
        ConfigurationError: On the first invalid option found.
    """
    if config.timeout_seconds <= 0:
        raise ConfigurationError("timeout_seconds must be positive", option="timeout_seconds")

    if config.max_redirects <= 0:
        raise ConfigurationError("max_redirects must be positive", option="max_redirects")

    if config.disable_ipv4 and config.disable_ipv6:
        raise ConfigurationError(
            "disable_ipv4 and disable_ipv6 cannot both be set",
            option="disable_ipv6",
        )

    if config.bad_pin_handler is not None and not config.certificate_pins:
        raise ConfigurationError(
            "bad_pin_handler requires certificate_pins",
            option="bad_pin_handler",
        )

    if config.proxy_url:
        try:
            parse_proxy_url(config.proxy_url)
        except TransportBuildError as e:
            raise ConfigurationError(f"Invalid proxy_url: {e.message}", option="proxy_url") from e


def default_config(**overrides: Any) -> SessionConfig:
    """Build a new SessionConfig from settings.

    Each call returns independent containers and a new CookieJar. Default
    headers follow the selected profile unless given explicitly.

    Args:
        **overrides: SessionConfig fields to set instead of the defaults.

    Returns:
        SessionConfig.
    """
    defaults = get_settings().session

    profile = overrides.get("profile", defaults.profile)
    if isinstance(profile, str):
        profile = get_profile(profile)

    values: dict[str, Any] = {
        "timeout_seconds": defaults.timeout_seconds,
        "random_tls_extension_order": defaults.random_tls_extension_order,
        "follow_redirects": defaults.follow_redirects,
        "max_redirects": defaults.max_redirects,
        "probe_proxy": defaults.probe_proxy,
        "default_headers": CIMultiDict(profile.headers),
        "default_header_order": profile.header_order,
        "cookie_jar": CookieJar(),
    }
    values.update(overrides)
    values["profile"] = profile

    return SessionConfig(**values)
