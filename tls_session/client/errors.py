"""
Error definitions for the session runtime.

Every failure a session can report is a SessionError subclass carrying a
stable code:
- CONFIGURATION_ERROR: invalid option combination, raised at construction
- TRANSPORT_BUILD_ERROR: dialer or round-tripper could not be built
- PROXY_ROLLBACK_ERROR: proxy change failed and restoring the previous one failed too
- REQUEST_EXECUTION_ERROR: network-level failure while executing a request
- BODY_READ_ERROR: headers arrived but draining the body failed
"""

from enum import Enum
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from tls_session.client.response import Response


class SessionErrorCode(str, Enum):
    """Error codes for session failures."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Options are inconsistent. Fix the configuration and rebuild the session."""

    TRANSPORT_BUILD_ERROR = "TRANSPORT_BUILD_ERROR"
    """Dialer or transport construction failed (bad profile, unreachable proxy, bad pins)."""

    PROXY_ROLLBACK_ERROR = "PROXY_ROLLBACK_ERROR"
    """A proxy change failed and the previous route could not be rebuilt.
    The session should be discarded."""

    REQUEST_EXECUTION_ERROR = "REQUEST_EXECUTION_ERROR"
    """Connect, TLS, write or read failed before a response was obtained."""

    BODY_READ_ERROR = "BODY_READ_ERROR"
    """Response headers were received but the body could not be read."""


class SessionError(Exception):
    """
    Base exception for session errors.

    Provides a structured representation for logging and callers that
    need to branch on the failure kind.
    """

    def __init__(
        self,
        code: SessionErrorCode,
        message: str,
        *,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.code = code
        self.message = message
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """
        Convert error to a serializable dictionary.

        Returns:
            Dictionary with code, message and optional details.
        """
        result: dict[str, Any] = {
            "ok": False,
            "error_code": self.code.value,
            "error": self.message,
        }

        if self.details:
            result["details"] = self.details

        return result


class ConfigurationError(SessionError):
    """Raised when session options are invalid or contradictory."""

    def __init__(self, message: str, *, option: str | None = None):
        super().__init__(
            SessionErrorCode.CONFIGURATION_ERROR,
            message,
            details={"option": option} if option else None,
        )


class TransportBuildError(SessionError):
    """Raised when a dialer or round-tripper cannot be constructed."""

    def __init__(self, message: str, *, proxy_url: str | None = None):
        details = {}
        if proxy_url is not None:
            details["proxy_url"] = proxy_url
        super().__init__(
            SessionErrorCode.TRANSPORT_BUILD_ERROR,
            message,
            details=details or None,
        )


class ProxyRollbackError(SessionError):
    """Raised when a proxy change and the rollback to the previous proxy both failed.

    ``original`` is the failure of the requested change; ``rollback`` is the
    failure of rebuilding the previous route. The session's transport state
    must be treated as unknown.
    """

    def __init__(
        self,
        requested_proxy_url: str,
        previous_proxy_url: str,
        *,
        original: Exception,
        rollback: Exception,
    ):
        super().__init__(
            SessionErrorCode.PROXY_ROLLBACK_ERROR,
            f"Failed to apply proxy and failed to restore previous proxy: {original}",
            details={
                "requested_proxy_url": requested_proxy_url,
                "previous_proxy_url": previous_proxy_url,
                "original_error": str(original),
                "rollback_error": str(rollback),
            },
        )
        self.original = original
        self.rollback = rollback


class RequestExecutionError(SessionError):
    """Raised when a request fails at the network level.

    ``response`` is the sentinel Response (status_code -1) so callers always
    get a response value alongside the error.
    """

    def __init__(self, message: str, *, response: "Response | None" = None, url: str | None = None):
        super().__init__(
            SessionErrorCode.REQUEST_EXECUTION_ERROR,
            message,
            details={"url": url} if url else None,
        )
        self.response = response


class BodyReadError(SessionError):
    """Raised when the response body could not be drained.

    ``response`` is the header-only snapshot obtained before the failure.
    """

    def __init__(self, message: str, *, response: "Response | None" = None, url: str | None = None):
        super().__init__(
            SessionErrorCode.BODY_READ_ERROR,
            message,
            details={"url": url} if url else None,
        )
        self.response = response
