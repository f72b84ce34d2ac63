"""
Fingerprint profile descriptors.

A profile is a consistent identity bundle: the curl_cffi impersonate
target that shapes the TLS/HTTP2 handshake, an optional explicit JA3 /
Akamai fingerprint, and the User-Agent and header set that match it.
The session treats a profile as opaque and only hands it to the transport
factory.
"""

from dataclasses import dataclass, field

from tls_session.client.errors import ConfigurationError


@dataclass(frozen=True)
class ClientProfile:
    """A browser identity the transport should emulate."""

    name: str
    impersonate: str  # curl_cffi target, e.g. "chrome131"
    user_agent: str
    ja3: str | None = None
    akamai: str | None = None
    # Headers a browser of this kind sends on a top-level navigation, in order
    headers: tuple[tuple[str, str], ...] = field(default_factory=tuple)

    @property
    def header_order(self) -> list[str]:
        return [name.lower() for name, _ in self.headers]


_CHROME_ACCEPT = (
    "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,"
    "image/webp,image/apng,*/*;q=0.8,application/signed-exchange;v=b3;q=0.7"
)


def _chrome_headers(user_agent: str, sec_ch_ua: str, platform: str) -> tuple[tuple[str, str], ...]:
    return (
        ("sec-ch-ua", sec_ch_ua),
        ("sec-ch-ua-mobile", "?0"),
        ("sec-ch-ua-platform", platform),
        ("upgrade-insecure-requests", "1"),
        ("user-agent", user_agent),
        ("accept", _CHROME_ACCEPT),
        ("sec-fetch-site", "none"),
        ("sec-fetch-mode", "navigate"),
        ("sec-fetch-user", "?1"),
        ("sec-fetch-dest", "document"),
        ("accept-encoding", "gzip, deflate, br, zstd"),
        ("accept-language", "en-US,en;q=0.9"),
    )


def _firefox_headers(user_agent: str) -> tuple[tuple[str, str], ...]:
    return (
        ("user-agent", user_agent),
        ("accept", "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"),
        ("accept-language", "en-US,en;q=0.5"),
        ("accept-encoding", "gzip, deflate, br, zstd"),
        ("upgrade-insecure-requests", "1"),
        ("sec-fetch-dest", "document"),
        ("sec-fetch-mode", "navigate"),
        ("sec-fetch-site", "none"),
        ("sec-fetch-user", "?1"),
        ("priority", "u=0, i"),
    )


def _safari_headers(user_agent: str) -> tuple[tuple[str, str], ...]:
    return (
        ("sec-fetch-dest", "document"),
        ("user-agent", user_agent),
        ("accept", "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8"),
        ("sec-fetch-site", "none"),
        ("sec-fetch-mode", "navigate"),
        ("accept-language", "en-US,en;q=0.9"),
        ("priority", "u=0, i"),
        ("accept-encoding", "gzip, deflate, br"),
    )


_CHROME_120_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
_CHROME_124_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/124.0.0.0 Safari/537.36"
)
_CHROME_131_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/131.0.0.0 Safari/537.36"
)
_FIREFOX_133_UA = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64; rv:133.0) Gecko/20100101 Firefox/133.0"
)
_SAFARI_17_UA = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/605.1.15 "
    "(KHTML, like Gecko) Version/17.0 Safari/605.1.15"
)

# impersonate target MUST match the UA string
_PROFILES: dict[str, ClientProfile] = {
    profile.name: profile
    for profile in (
        ClientProfile(
            name="chrome_120",
            impersonate="chrome120",
            user_agent=_CHROME_120_UA,
            headers=_chrome_headers(
                _CHROME_120_UA,
                '"Not_A Brand";v="8", "Chromium";v="120", "Google Chrome";v="120"',
                '"Windows"',
            ),
        ),
        ClientProfile(
            name="chrome_124",
            impersonate="chrome124",
            user_agent=_CHROME_124_UA,
            headers=_chrome_headers(
                _CHROME_124_UA,
                '"Chromium";v="124", "Google Chrome";v="124", "Not-A.Brand";v="99"',
                '"Windows"',
            ),
        ),
        ClientProfile(
            name="chrome_131",
            impersonate="chrome131",
            user_agent=_CHROME_131_UA,
            headers=_chrome_headers(
                _CHROME_131_UA,
                '"Google Chrome";v="131", "Chromium";v="131", "Not_A Brand";v="24"',
                '"macOS"',
            ),
        ),
        ClientProfile(
            name="firefox_133",
            impersonate="firefox133",
            user_agent=_FIREFOX_133_UA,
            headers=_firefox_headers(_FIREFOX_133_UA),
        ),
        ClientProfile(
            name="safari_17_0",
            impersonate="safari170",
            user_agent=_SAFARI_17_UA,
            headers=_safari_headers(_SAFARI_17_UA),
        ),
    )
}

DEFAULT_CLIENT_PROFILE = _PROFILES["chrome_131"]


def get_profile(name: str) -> ClientProfile:
    """Look up a registered profile by name.

    Args:
        name: Profile name such as "chrome_131".

    Returns:
        The matching ClientProfile.

    Raises:
        ConfigurationError: If no profile has that name.
    """
    try:
        return _PROFILES[name]
    except KeyError:
        raise ConfigurationError(
            f"Unknown client profile: {name} (known: {', '.join(sorted(_PROFILES))})",
            option="profile",
        ) from None


def list_profiles() -> list[str]:
    """Names of all registered profiles."""
    return sorted(_PROFILES)
