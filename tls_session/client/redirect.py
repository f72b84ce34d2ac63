"""
Redirect policy.

The session decides every redirect hop itself; the transport never follows
one. RedirectPolicy is a tagged value:

- STOP: return the first 3xx response as a normal result
- FOLLOW: follow up to ``max_redirects`` hops
- CUSTOM: ask a caller-supplied function before each hop
"""

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from urllib.parse import urljoin, urlparse

from tls_session.client.request import Request

REDIRECT_STATUS_CODES = frozenset({301, 302, 303, 307, 308})

# Dropped when a redirect leaves the original host and its subdomains
SENSITIVE_HEADERS = ("Authorization", "WWW-Authenticate", "Cookie", "Cookie2")


class RedirectMode(str, Enum):
    FOLLOW = "follow"
    STOP = "stop"
    CUSTOM = "custom"


class RedirectDecision(str, Enum):
    """Answer of a custom redirect function."""

    FOLLOW = "follow"
    STOP = "stop"


RedirectFunc = Callable[[Request, list[Request]], RedirectDecision]


@dataclass(frozen=True)
class RedirectPolicy:
    """Redirect behaviour of a session."""

    mode: RedirectMode
    func: RedirectFunc | None = None
    max_redirects: int = 10

    @classmethod
    def resolve(
        cls,
        follow_redirects: bool,
        custom_func: RedirectFunc | None = None,
        max_redirects: int = 10,
    ) -> "RedirectPolicy":
        """Derive the policy from the follow flag and optional custom function.

        Disabled → STOP regardless of ``custom_func``; enabled → CUSTOM when a
        function is configured, otherwise FOLLOW.
        """
        if not follow_redirects:
            return cls(RedirectMode.STOP, None, max_redirects)
        if custom_func is not None:
            return cls(RedirectMode.CUSTOM, custom_func, max_redirects)
        return cls(RedirectMode.FOLLOW, None, max_redirects)

    @property
    def follows(self) -> bool:
        return self.mode is not RedirectMode.STOP


def is_redirect(status_code: int, location: str | None) -> bool:
    """True when the response asks the client to go elsewhere."""
    return status_code in REDIRECT_STATUS_CODES and bool(location)


def _is_same_site(original_host: str, new_host: str) -> bool:
    return new_host == original_host or new_host.endswith("." + original_host)


def build_redirect_request(
    request: Request,
    status_code: int,
    location: str,
    original_host: str,
) -> Request:
    """Build the request for the next hop.

    301/302/303 switch non-GET/HEAD methods to GET and drop the body;
    307/308 keep method and body. Credentials and cookies are dropped when
    the target leaves ``original_host`` and its subdomains.

    Args:
        request: Request of the hop that produced the redirect.
        status_code: Redirect status code.
        location: Raw Location header value.
        original_host: Host of the first request in the chain.

    Returns:
        New Request with independent header containers.
    """
    next_request = request.copy()
    next_request.url = urljoin(request.url, location)

    if status_code in (301, 302, 303) and request.method not in ("GET", "HEAD"):
        next_request.method = "GET"
        next_request.body = None
        for name in ("Content-Type", "Content-Length", "Transfer-Encoding"):
            next_request.headers.popall(name, None)

    new_host = (urlparse(next_request.url).hostname or "").lower()
    if not _is_same_site(original_host, new_host):
        for name in SENSITIVE_HEADERS:
            next_request.headers.popall(name, None)

    return next_request
