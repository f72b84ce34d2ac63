"""
tls-session: HTTP sessions with a reproducible client fingerprint.
"""

from tls_session.client import (
    Request,
    Response,
    Session,
    SessionConfig,
    default_config,
    provide_default_session,
)

__version__ = "0.1.0"

__all__ = [
    "Request",
    "Response",
    "Session",
    "SessionConfig",
    "default_config",
    "provide_default_session",
]
