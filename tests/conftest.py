"""
Pytest fixtures and configuration for tls-session tests.

=============================================================================
Test Classification
=============================================================================

Primary Markers (Execution Speed):
- @pytest.mark.unit: Single class/function, no external dependencies
  - Fast (<1s per test)
  - Transports are replaced by FakeRoundTripper, curl_cffi is mocked
  - DEFAULT: Tests without marker are auto-classified as unit

- @pytest.mark.integration: Multiple components against a loopback server
  - Uses the real curl_cffi transport and a local http.server
  - No access beyond 127.0.0.1

- @pytest.mark.e2e: Real network access (public hosts, real proxies)
  - DEFAULT EXCLUDED: Must use `pytest -m e2e` to run

- @pytest.mark.slow: Tests taking >5 seconds
  - DEFAULT EXCLUDED: Must use `pytest -m slow` to run

=============================================================================
Mock Strategy
=============================================================================

- Session tests inject FakeTransportFactory through Session(transport_factory=...)
- Response bodies are FakeBody instances that count close() calls
- Proxy reachability probes are disabled (probe_proxy=False) unless a test
  patches socket.create_connection
"""

import json
import os
import threading
from collections.abc import Callable, Generator, Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path

import pytest

# Set test environment before importing anything else
os.environ["TLS_SESSION_CONFIG_DIR"] = str(Path(__file__).parent.parent / "config")
os.environ["TLS_SESSION_GENERAL__LOG_LEVEL"] = "DEBUG"

from tls_session.client.errors import TransportBuildError  # noqa: E402
from tls_session.client.options import default_config  # noqa: E402
from tls_session.client.request import Request  # noqa: E402
from tls_session.client.session import Session  # noqa: E402
from tls_session.client.transport import RawResponse, TransportSpec  # noqa: E402

# =============================================================================
# Pytest Hooks for Test Classification
# =============================================================================


def pytest_configure(config):
    """Register custom markers for test classification."""
    config.addinivalue_line(
        "markers", "unit: Unit tests with no external dependencies (fast, <1s/test)"
    )
    config.addinivalue_line(
        "markers", "integration: Integration tests against a loopback server (<5s/test)"
    )
    config.addinivalue_line(
        "markers", "e2e: End-to-end tests requiring real network access (excluded by default)"
    )
    config.addinivalue_line(
        "markers", "slow: Tests that take more than 5 seconds (excluded by default)"
    )


def pytest_collection_modifyitems(config, items):
    """
    Auto-apply markers and skip excluded tests.

    Tests without explicit markers are assumed to be unit tests. E2E and slow
    tests are skipped unless selected with -m.
    """
    markexpr = config.getoption("-m", default="") or ""
    skip_e2e = pytest.mark.skip(reason="E2E tests need network access. Run with: pytest -m e2e")
    skip_slow = pytest.mark.skip(reason="Slow tests skipped. Run with: pytest -m slow")

    for item in items:
        has_classification = any(
            marker.name in ("unit", "integration", "e2e") for marker in item.iter_markers()
        )
        if not has_classification:
            item.add_marker(pytest.mark.unit)

        if "e2e" not in markexpr and any(m.name == "e2e" for m in item.iter_markers()):
            item.add_marker(skip_e2e)
        if "slow" not in markexpr and any(m.name == "slow" for m in item.iter_markers()):
            item.add_marker(skip_slow)


# =============================================================================
# Fake transport
# =============================================================================


class FakeBody:
    """RawBody that yields fixed chunks and counts close() calls."""

    def __init__(self, data: bytes = b"", *, chunk_size: int = 4, error: Exception | None = None):
        self._data = data
        self._chunk_size = chunk_size
        self._error = error
        self.close_count = 0

    def __iter__(self) -> Iterator[bytes]:
        for start in range(0, len(self._data), self._chunk_size):
            yield self._data[start : start + self._chunk_size]
        if self._error is not None:
            raise self._error

    def close(self) -> None:
        self.close_count += 1


def make_raw_response(
    request: Request,
    status: int = 200,
    headers: list[tuple[str, str]] | None = None,
    body: bytes = b"",
    *,
    reason: str = "OK",
    body_error: Exception | None = None,
    proto: tuple[str, int, int] = ("HTTP/1.1", 1, 1),
    trailer: list[tuple[str, str]] | None = None,
) -> RawResponse:
    """Build a RawResponse with a FakeBody."""
    name, major, minor = proto
    return RawResponse(
        status_code=status,
        reason=reason,
        proto=name,
        proto_major=major,
        proto_minor=minor,
        headers=list(headers or []),
        url=request.url,
        request=request,
        body=FakeBody(body, error=body_error),
        trailer=list(trailer or []),
    )


Handler = Callable[[Request], RawResponse]


class FakeRoundTripper:
    """RoundTripper that answers from a URL -> handler table."""

    def __init__(self, spec: TransportSpec, handlers: dict[str, Handler]) -> None:
        self.spec = spec
        self._handlers = handlers
        self._lock = threading.Lock()
        self.requests: list[Request] = []
        self.timeouts: list[float] = []
        self.responses: list[RawResponse] = []
        self.idle_closes = 0
        self.error: Exception | None = None

    def round_trip(self, request: Request, timeout: float) -> RawResponse:
        with self._lock:
            self.requests.append(request.copy())
            self.timeouts.append(timeout)
        if self.error is not None:
            raise self.error

        handler = self._handlers.get(request.url)
        if handler is None:
            raw = make_raw_response(request, 404, reason="Not Found")
        else:
            raw = handler(request)
        with self._lock:
            self.responses.append(raw)
        return raw

    def close_idle_connections(self) -> None:
        self.idle_closes += 1


class FakeTransportFactory:
    """TransportFactory recording every spec it builds.

    Proxy URLs listed in ``failing_proxies`` raise TransportBuildError; set
    ``fail_all`` to make every build fail.
    """

    def __init__(self) -> None:
        self.handlers: dict[str, Handler] = {}
        self.specs: list[TransportSpec] = []
        self.transports: list[FakeRoundTripper] = []
        self.failing_proxies: set[str] = set()
        self.fail_all = False

    def __call__(self, spec: TransportSpec) -> FakeRoundTripper:
        self.specs.append(spec)
        proxy_url = spec.dialer.proxy_url or ""
        if self.fail_all or proxy_url in self.failing_proxies:
            raise TransportBuildError(f"cannot build transport for {proxy_url!r}")
        transport = FakeRoundTripper(spec, self.handlers)
        self.transports.append(transport)
        return transport

    @property
    def current(self) -> FakeRoundTripper:
        return self.transports[-1]

    @property
    def all_requests(self) -> list[Request]:
        return [request for transport in self.transports for request in transport.requests]

    def route(
        self,
        url: str,
        status: int = 200,
        headers: list[tuple[str, str]] | None = None,
        body: bytes = b"",
        **kwargs,
    ) -> None:
        """Answer ``url`` with a fixed response."""
        self.handlers[url] = lambda request: make_raw_response(
            request, status, headers, body, **kwargs
        )

    def redirect(self, url: str, location: str, status: int = 302, **kwargs) -> None:
        """Answer ``url`` with a redirect to ``location``."""
        headers = [("Location", location)] + kwargs.pop("headers", [])
        self.route(url, status, headers, reason="Found", **kwargs)


@pytest.fixture
def transport_factory() -> FakeTransportFactory:
    """Fresh fake transport factory."""
    return FakeTransportFactory()


@pytest.fixture
def make_session(transport_factory: FakeTransportFactory) -> Callable[..., Session]:
    """Build sessions from default_config() overrides on the fake transport."""

    def _make(**overrides) -> Session:
        overrides.setdefault("probe_proxy", False)
        return Session(default_config(**overrides), transport_factory=transport_factory)

    return _make


# =============================================================================
# Loopback HTTP server
# =============================================================================


class _LoopbackHandler(BaseHTTPRequestHandler):
    """Small origin server used by integration tests."""

    protocol_version = "HTTP/1.1"

    def log_message(self, format, *args):  # noqa: A002
        pass

    def _send(self, status: int, headers: list[tuple[str, str]], body: bytes = b"") -> None:
        self.send_response(status)
        for name, value in headers:
            self.send_header(name, value)
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        if self.command != "HEAD":
            self.wfile.write(body)

    def _read_body(self) -> bytes:
        length = int(self.headers.get("Content-Length", "0") or 0)
        return self.rfile.read(length) if length else b""

    def _handle(self) -> None:
        body = self._read_body()
        path = self.path

        if path == "/hello":
            self._send(
                200,
                [
                    ("Content-Type", "text/plain; charset=utf-8"),
                    ("Set-Cookie", "a=1; Path=/"),
                    ("Set-Cookie", "b=2; Path=/"),
                ],
                "hello wörld".encode(),
            )
        elif path == "/redirect":
            self._send(302, [("Location", "/hello")])
        elif path.startswith("/chain/"):
            remaining = int(path.rsplit("/", 1)[1])
            target = "/hello" if remaining <= 1 else f"/chain/{remaining - 1}"
            self._send(302, [("Location", target)])
        elif path == "/echo":
            payload = {
                "method": self.command,
                "headers": [[name, value] for name, value in self.headers.items()],
                "body": body.decode("utf-8", errors="replace"),
            }
            self._send(200, [("Content-Type", "application/json")], json.dumps(payload).encode())
        else:
            self._send(404, [("Content-Type", "text/plain")], b"not found")

    do_GET = _handle
    do_POST = _handle
    do_HEAD = _handle


@pytest.fixture
def loopback_server() -> Generator[str, None, None]:
    """Run a threaded HTTP server on 127.0.0.1 and yield its base URL."""
    server = ThreadingHTTPServer(("127.0.0.1", 0), _LoopbackHandler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        host, port = server.server_address[:2]
        yield f"http://{host}:{port}"
    finally:
        server.shutdown()
        server.server_close()
        thread.join(timeout=5)
