"""Outgoing request value passed to Session.do()."""

from dataclasses import dataclass, field
from urllib.parse import urlparse

from multidict import CIMultiDict


@dataclass
class Request:
    """An HTTP request with an explicit header order.

    ``headers`` is a case-insensitive multi-dict that keeps the caller's
    casing and duplicate names. ``header_order`` lists field names in the
    order the transport must transmit them; names not listed follow in
    insertion order.

    ``timeout`` bounds this request in seconds; the session timeout still
    applies and the smaller of the two wins.
    """

    method: str
    url: str
    headers: CIMultiDict[str] = field(default_factory=CIMultiDict)
    header_order: list[str] = field(default_factory=list)
    body: bytes | None = None
    timeout: float | None = None

    def __post_init__(self) -> None:
        self.method = self.method.upper()
        if not isinstance(self.headers, CIMultiDict):
            self.headers = CIMultiDict(self.headers or {})
        self.header_order = list(self.header_order)
        if isinstance(self.body, str):
            self.body = self.body.encode("utf-8")

    @property
    def hostname(self) -> str:
        """Lower-cased host of the request URL (no port)."""
        return (urlparse(self.url).hostname or "").lower()

    @property
    def scheme(self) -> str:
        return urlparse(self.url).scheme.lower()

    def copy(self) -> "Request":
        """Return a copy with independent header containers."""
        return Request(
            method=self.method,
            url=self.url,
            headers=CIMultiDict(self.headers),
            header_order=list(self.header_order),
            body=self.body,
            timeout=self.timeout,
        )
