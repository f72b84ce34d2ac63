"""
Header framing for fingerprint-consistent requests.

The transport matches header-order entries against lower-cased field names,
so every order list is lower-cased before a request leaves the session.
Default headers fill in only when a request arrives with no headers at all.
"""

import threading
from collections.abc import Iterable

from multidict import CIMultiDict, CIMultiDictProxy

from tls_session.client.request import Request


def lower_header_order(order: Iterable[str]) -> list[str]:
    """Lower-case every entry of a header-order list, keeping positions."""
    return [name.lower() for name in order]


def ordered_header_items(
    headers: CIMultiDict[str] | CIMultiDictProxy[str],
    order: list[str],
) -> list[tuple[str, str]]:
    """Return header items sorted by their position in ``order``.

    Names missing from ``order`` keep their relative insertion order and
    follow the listed ones. Duplicate names stay adjacent in their
    original sequence.

    Args:
        headers: Header collection to emit.
        order: Lower-cased header-order list.

    Returns:
        List of (name, value) pairs in transmission order.
    """
    position: dict[str, int] = {}
    for index, name in enumerate(order):
        position.setdefault(name.lower(), index)

    unlisted = len(order)
    items = list(headers.items())
    # sorted() is stable, so insertion order breaks ties
    return sorted(items, key=lambda item: position.get(item[0].lower(), unlisted))


class HeaderNormalizer:
    """Applies default headers and lower-cases header order.

    Concurrent ``do`` calls share the default header configuration, so
    ``apply`` runs under a lock. The lock covers only this step.
    """

    def __init__(
        self,
        default_headers: CIMultiDict[str] | None = None,
        default_header_order: list[str] | None = None,
    ) -> None:
        self._lock = threading.Lock()
        self._default_headers = CIMultiDict(default_headers or {})
        self._default_header_order = list(default_header_order or [])

    def apply(self, request: Request) -> bool:
        """Normalize ``request`` in place.

        Args:
            request: Outgoing request.

        Returns:
            True if default headers were applied.
        """
        with self._lock:
            applied_defaults = False
            if len(request.headers) == 0:
                request.headers = self._default_headers.copy()
                if not request.header_order:
                    request.header_order = list(self._default_header_order)
                applied_defaults = True

            request.header_order = lower_header_order(request.header_order)
            return applied_defaults

    def set_defaults(
        self,
        default_headers: CIMultiDict[str],
        default_header_order: list[str] | None = None,
    ) -> None:
        """Replace the default headers used for header-less requests."""
        with self._lock:
            self._default_headers = CIMultiDict(default_headers)
            self._default_header_order = list(default_header_order or [])

    @property
    def default_headers(self) -> CIMultiDictProxy[str]:
        with self._lock:
            return CIMultiDictProxy(self._default_headers.copy())
