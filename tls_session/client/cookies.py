"""
Cookie storage for the session runtime.

Two independent stores live side by side:
- FastCookieStore: one flat ``name=value; name=value`` string sent verbatim
  as the Cookie header of every request. Not scoped by domain.
- CookieJar: URL-keyed store with host/domain, path, Secure and expiry
  matching (an RFC 6265 subset, no public-suffix list).

CookieCoordinator injects cookies into outgoing requests and feeds
``Set-Cookie`` headers from responses into both stores.
"""

import threading
import time
from collections.abc import Iterable
from email.utils import parsedate_to_datetime
from urllib.parse import urlparse

from multidict import CIMultiDict, CIMultiDictProxy
from pydantic import BaseModel, ConfigDict, Field

from tls_session.client.request import Request
from tls_session.utils.logging import get_logger

logger = get_logger(__name__)


# =============================================================================
# Cookie model and parsing
# =============================================================================


class Cookie(BaseModel):
    """A single cookie with its attributes."""

    model_config = ConfigDict(frozen=False)

    name: str = Field(..., min_length=1, description="Cookie name")
    value: str = Field(default="", description="Cookie value")
    domain: str = Field(default="", description="Cookie domain; empty means the request host")
    path: str = Field(default="", description="Cookie path; empty means the default path")
    secure: bool = Field(default=False, description="Secure flag")
    http_only: bool = Field(default=False, description="HttpOnly flag")
    same_site: str | None = Field(default=None, description="SameSite attribute")
    expires: float | None = Field(default=None, description="Expiration as Unix timestamp")
    host_only: bool = Field(default=False, description="Set when no Domain attribute was given")

    def is_expired(self, now: float | None = None) -> bool:
        """Check if cookie has expired.

        Args:
            now: Reference timestamp, defaults to current time.

        Returns:
            True if cookie has expired. Session cookies never expire.
        """
        if self.expires is None:
            return False
        return (now if now is not None else time.time()) >= self.expires

    def matches_domain(self, host: str) -> bool:
        """Check if cookie is valid for ``host``.

        Host-only cookies need an exact match; domain cookies also match
        subdomains.
        """
        host = host.lower()
        cookie_domain = self.domain.lower().lstrip(".")

        if host == cookie_domain:
            return True
        if self.host_only:
            return False
        return host.endswith("." + cookie_domain)

    def matches_path(self, request_path: str) -> bool:
        """RFC 6265 path-match."""
        request_path = request_path or "/"
        cookie_path = self.path or "/"

        if request_path == cookie_path:
            return True
        if not request_path.startswith(cookie_path):
            return False
        return cookie_path.endswith("/") or request_path[len(cookie_path)] == "/"

    def to_header_value(self) -> str:
        """Convert to Cookie header pair.

        Returns:
            Cookie as "name=value" string.
        """
        return f"{self.name}={self.value}"


def default_cookie_path(url: str) -> str:
    """Directory of the request path, used when Set-Cookie has no Path."""
    path = urlparse(url).path
    if not path.startswith("/") or path.count("/") <= 1:
        return "/"
    return path[: path.rfind("/")]


def _parse_expires(value: str) -> float | None:
    try:
        return parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError, IndexError):
        return None


def parse_set_cookie(header_value: str, url: str | None = None) -> Cookie | None:
    """Parse one ``Set-Cookie`` header value.

    Max-Age takes precedence over Expires. A Max-Age of zero or less yields
    a cookie that is already expired, which removes it from a store.

    Args:
        header_value: Raw header value.
        url: URL of the response, used for default domain and path.

    Returns:
        Parsed Cookie, or None if the value has no usable name.
    """
    parts = header_value.split(";")
    pair = parts[0]
    if "=" not in pair:
        return None

    name, value = pair.split("=", 1)
    name = name.strip()
    value = value.strip()
    if not name:
        return None
    if len(value) >= 2 and value[0] == value[-1] == '"':
        value = value[1:-1]

    attrs: dict[str, str] = {}
    for part in parts[1:]:
        key, _, attr_value = part.partition("=")
        attrs[key.strip().lower()] = attr_value.strip()

    expires: float | None = None
    if "max-age" in attrs:
        try:
            max_age = int(attrs["max-age"])
            expires = time.time() + max_age if max_age > 0 else 0.0
        except ValueError:
            pass
    if expires is None and attrs.get("expires"):
        expires = _parse_expires(attrs["expires"])

    domain = attrs.get("domain", "").lstrip(".").lower()
    host_only = not domain
    if host_only and url:
        domain = (urlparse(url).hostname or "").lower()

    path = attrs.get("path", "")
    if not path.startswith("/"):
        path = default_cookie_path(url) if url else "/"

    return Cookie(
        name=name,
        value=value,
        domain=domain,
        path=path,
        secure="secure" in attrs,
        http_only="httponly" in attrs,
        same_site=attrs.get("samesite") or None,
        expires=expires,
        host_only=host_only,
    )


def parse_cookie_header(raw: str) -> list[tuple[str, str]]:
    """Split a ``name=value; name=value`` string into pairs.

    Segments without ``=`` or with an empty name are skipped.
    """
    pairs = []
    for segment in raw.split(";"):
        name, sep, value = segment.partition("=")
        name = name.strip()
        if not sep or not name:
            continue
        pairs.append((name, value.strip()))
    return pairs


# =============================================================================
# Fast cookie store
# =============================================================================


class FastCookieStore:
    """Flat cookie store rendered as a single Cookie header.

    Merges incoming ``Set-Cookie`` values by name (last write wins) and
    keeps first-seen order. All reads and merges happen under one lock so
    concurrent responses cannot lose each other's updates.
    """

    def __init__(self, raw: str = "") -> None:
        self._lock = threading.Lock()
        self._cookies: dict[str, str] = dict(parse_cookie_header(raw))

    def get_cookies(self) -> str:
        """Return the outgoing Cookie header value ("" when empty)."""
        with self._lock:
            return "; ".join(f"{name}={value}" for name, value in self._cookies.items())

    def set_cookies(self, raw: str) -> None:
        """Replace the whole store with the pairs in ``raw``."""
        pairs = dict(parse_cookie_header(raw))
        with self._lock:
            self._cookies = pairs

    def process_cookies(
        self,
        headers: CIMultiDict[str] | CIMultiDictProxy[str],
    ) -> int:
        """Merge every ``Set-Cookie`` header in ``headers`` into the store.

        Args:
            headers: Response headers.

        Returns:
            Number of Set-Cookie values applied.
        """
        parsed = [parse_set_cookie(value) for value in headers.getall("Set-Cookie", [])]
        cookies = [cookie for cookie in parsed if cookie is not None]
        if not cookies:
            return 0

        now = time.time()
        with self._lock:
            for cookie in cookies:
                if cookie.is_expired(now):
                    self._cookies.pop(cookie.name, None)
                else:
                    self._cookies[cookie.name] = cookie.value
        return len(cookies)

    def clear(self) -> None:
        with self._lock:
            self._cookies.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cookies)


# =============================================================================
# Standard cookie jar
# =============================================================================


class CookieJar:
    """URL-keyed cookie jar.

    Cookies are keyed by (domain, path, name). Setting an expired cookie
    deletes the stored one.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._cookies: dict[tuple[str, str, str], Cookie] = {}

    def set_cookies(self, url: str, cookies: Iterable[Cookie]) -> None:
        """Store ``cookies`` as received from ``url``.

        Empty domain or path attributes are filled from the URL. Cookies
        whose domain does not cover the URL host are rejected.
        """
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        now = time.time()

        with self._lock:
            for cookie in cookies:
                cookie = cookie.model_copy()
                if not cookie.domain:
                    cookie.domain = host
                    cookie.host_only = True
                else:
                    cookie.domain = cookie.domain.lstrip(".").lower()
                if not cookie.path:
                    cookie.path = default_cookie_path(url)

                if not cookie.matches_domain(host):
                    logger.debug(
                        "Cookie rejected: domain mismatch",
                        cookie=cookie.name,
                        cookie_domain=cookie.domain,
                        host=host,
                    )
                    continue

                key = (cookie.domain, cookie.path, cookie.name)
                if cookie.is_expired(now):
                    self._cookies.pop(key, None)
                else:
                    self._cookies[key] = cookie

    def cookies(self, url: str) -> list[Cookie]:
        """Return cookies to send to ``url``, longest path first."""
        parsed = urlparse(url)
        host = (parsed.hostname or "").lower()
        path = parsed.path or "/"
        is_secure = parsed.scheme.lower() in ("https", "wss")
        now = time.time()

        with self._lock:
            expired = [key for key, cookie in self._cookies.items() if cookie.is_expired(now)]
            for key in expired:
                del self._cookies[key]

            matched = [
                cookie
                for cookie in self._cookies.values()
                if cookie.matches_domain(host)
                and cookie.matches_path(path)
                and (is_secure or not cookie.secure)
            ]

        matched.sort(key=lambda cookie: len(cookie.path), reverse=True)
        return [cookie.model_copy() for cookie in matched]

    def clear(self) -> None:
        with self._lock:
            self._cookies.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._cookies)


# =============================================================================
# Coordinator
# =============================================================================


class CookieCoordinator:
    """Moves cookies between the two stores and requests/responses.

    Either store may be None. Precedence for the outgoing Cookie header:
    fast store (overwrites anything), then the caller's own header, then
    the jar.
    """

    def __init__(
        self,
        jar: CookieJar | None = None,
        fast_store: FastCookieStore | None = None,
    ) -> None:
        self.jar = jar
        self.fast_store = fast_store

    def apply_fast_cookies(self, request: Request) -> bool:
        """Overwrite the request's Cookie header with the fast store content.

        Returns:
            True if the header was set.
        """
        fast_store = self.fast_store
        if fast_store is None:
            return False

        cookies = fast_store.get_cookies()
        if not cookies:
            return False

        request.headers["Cookie"] = cookies
        return True

    def apply_jar_cookies(self, request: Request) -> bool:
        """Attach jar cookies when the request carries no Cookie header.

        Returns:
            True if the header was set.
        """
        jar = self.jar
        if jar is None or "Cookie" in request.headers:
            return False

        cookies = jar.cookies(request.url)
        if not cookies:
            return False

        request.headers["Cookie"] = "; ".join(cookie.to_header_value() for cookie in cookies)
        return True

    def extract_to_jar(
        self,
        url: str,
        headers: CIMultiDict[str] | CIMultiDictProxy[str],
    ) -> int:
        """Store ``Set-Cookie`` headers of a response from ``url`` in the jar."""
        jar = self.jar
        if jar is None:
            return 0

        parsed = [parse_set_cookie(value, url) for value in headers.getall("Set-Cookie", [])]
        cookies = [cookie for cookie in parsed if cookie is not None]
        if cookies:
            jar.set_cookies(url, cookies)
        return len(cookies)

    def extract_to_fast_store(
        self,
        headers: CIMultiDict[str] | CIMultiDictProxy[str],
    ) -> int:
        """Merge ``Set-Cookie`` headers into the fast store."""
        fast_store = self.fast_store
        if fast_store is None:
            return 0
        return fast_store.process_cookies(headers)
