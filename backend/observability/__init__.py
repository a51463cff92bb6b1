"""Error monitoring for the league assistant (Sentry)."""

from observability.sentry_integration import (
    add_breadcrumb,
    capture_exception,
    init_sentry,
)

__all__ = [
    "add_breadcrumb",
    "capture_exception",
    "init_sentry",
]
