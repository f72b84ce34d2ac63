"""
tls-session utilities module.
"""

from tls_session.utils.config import Settings, get_project_root, get_settings
from tls_session.utils.logging import (
    LogContext,
    configure_logging,
    ensure_logging_configured,
    get_logger,
)

__all__ = [
    "Settings",
    "get_settings",
    "get_project_root",
    "get_logger",
    "configure_logging",
    "ensure_logging_configured",
    "LogContext",
]
