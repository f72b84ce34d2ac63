"""
Response snapshots.

translate_response() turns a RawResponse into an immutable Response holding
everything but the body; drain_body() reads the body and always closes it;
with_body() attaches the drained body to a snapshot.
"""

import codecs
import dataclasses
from dataclasses import dataclass, field

from multidict import CIMultiDict, CIMultiDictProxy

from tls_session.client.request import Request
from tls_session.client.transport import ConnectionSecurity, RawResponse

# status_code of the response attached to a RequestExecutionError
SENTINEL_STATUS_CODE = -1


def _empty_headers() -> CIMultiDictProxy[str]:
    return CIMultiDictProxy(CIMultiDict())


@dataclass(frozen=True)
class Response:
    """Fully materialized result of Session.do().

    ``content_length`` is -1 when unknown. ``body_bytes`` and ``body`` are
    None until the body has been read successfully.

    ``body`` is ``body_bytes`` read as UTF-8 whatever the declared charset;
    invalid bytes are kept as lone surrogates, so
    ``body.encode("utf-8", "surrogateescape") == body_bytes``. Use
    ``body_bytes.decode(response.encoding)`` for charset-aware text.
    """

    status_code: int
    status: str = ""
    proto: str = ""
    proto_major: int = 0
    proto_minor: int = 0
    headers: CIMultiDictProxy[str] = field(default_factory=_empty_headers)
    content_length: int = -1
    transfer_encoding: tuple[str, ...] = ()
    close: bool = False
    uncompressed: bool = False
    trailer: CIMultiDictProxy[str] = field(default_factory=_empty_headers)
    request: Request | None = None
    tls: ConnectionSecurity | None = None
    url: str = ""
    body_bytes: bytes | None = None
    body: str | None = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status_code < 400

    @property
    def encoding(self) -> str:
        """Charset declared in Content-Type, utf-8 when absent or unknown."""
        return charset_from_content_type(self.headers.get("Content-Type", ""))


def sentinel_response(request: Request | None = None) -> Response:
    """Response returned alongside a network-level failure."""
    return Response(status_code=SENTINEL_STATUS_CODE, request=request)


def charset_from_content_type(content_type: str) -> str:
    for param in content_type.split(";")[1:]:
        key, _, value = param.partition("=")
        if key.strip().lower() == "charset":
            charset = value.strip().strip('"').strip("'")
            try:
                return codecs.lookup(charset).name
            except LookupError:
                break
    return "utf-8"


def _parse_content_length(headers: CIMultiDict[str], uncompressed: bool) -> int:
    if uncompressed or "Transfer-Encoding" in headers:
        return -1
    try:
        length = int(headers.get("Content-Length", ""))
    except ValueError:
        return -1
    return length if length >= 0 else -1


def _parse_transfer_encoding(headers: CIMultiDict[str]) -> tuple[str, ...]:
    codings = []
    for value in headers.getall("Transfer-Encoding", []):
        codings.extend(part.strip().lower() for part in value.split(",") if part.strip())
    return tuple(codings)


def _wants_close(proto_major: int, proto_minor: int, headers: CIMultiDict[str]) -> bool:
    tokens = {
        token.strip().lower()
        for value in headers.getall("Connection", [])
        for token in value.split(",")
    }
    if "close" in tokens:
        return True
    # HTTP/1.0 closes unless keep-alive was negotiated
    return (proto_major, proto_minor) == (1, 0) and "keep-alive" not in tokens


def translate_response(raw: RawResponse) -> Response:
    """Snapshot a raw response without touching its body.

    Header names keep their original casing; duplicate names are kept in
    arrival order. ``raw`` is not modified.
    """
    headers: CIMultiDict[str] = CIMultiDict(raw.headers)
    status = f"{raw.status_code} {raw.reason}".rstrip()

    return Response(
        status_code=raw.status_code,
        status=status,
        proto=raw.proto,
        proto_major=raw.proto_major,
        proto_minor=raw.proto_minor,
        headers=CIMultiDictProxy(headers),
        content_length=_parse_content_length(headers, raw.uncompressed),
        transfer_encoding=_parse_transfer_encoding(headers),
        close=_wants_close(raw.proto_major, raw.proto_minor, headers),
        uncompressed=raw.uncompressed,
        trailer=CIMultiDictProxy(CIMultiDict(raw.trailer)),
        request=raw.request,
        tls=raw.tls,
        url=raw.url,
    )


def drain_body(raw: RawResponse) -> bytes:
    """Read the whole body and close it, on success and on failure.

    Raises:
        OSError: If reading fails.
    """
    chunks: list[bytes] = []
    try:
        for chunk in raw.body:
            chunks.append(chunk)
    finally:
        raw.body.close()
    return b"".join(chunks)


def with_body(response: Response, body_bytes: bytes) -> Response:
    """Return ``response`` with byte and text views of the body attached."""
    body = body_bytes.decode("utf-8", errors="surrogateescape")
    return dataclasses.replace(response, body_bytes=body_bytes, body=body)
