"""Sentry integration for the league assistant.

Model failures that end a turn with an apology are reported here; tool rounds
leave breadcrumbs so a report shows which functions ran before the failure.
Every helper is safe to call when Sentry was never initialized.
"""

import logging
import os

import sentry_sdk
from sentry_sdk.integrations.asyncio import AsyncioIntegration
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

logger = logging.getLogger(__name__)

# Request headers scrubbed before an event leaves the process
SCRUBBED_HEADERS = ("authorization", "x-api-key", "cookie")


def init_sentry(
    dsn: str | None = None,
    environment: str = "development",
    release: str | None = None,
    traces_sample_rate: float = 0.1,
    enabled: bool = True,
) -> bool:
    """
    Set up the Sentry SDK.

    Args:
        dsn: Project DSN; falls back to SENTRY_DSN
        environment: Deployment name attached to every event
        release: Version attached to every event; falls back to APP_VERSION
        traces_sample_rate: Fraction of requests traced (0-1)
        enabled: False turns reporting off entirely

    Returns:
        True when events will be sent
    """
    dsn = dsn or os.getenv("SENTRY_DSN")
    if not enabled or not dsn:
        logger.info("Sentry reporting off (disabled or SENTRY_DSN unset)")
        return False

    try:
        sentry_sdk.init(
            dsn=dsn,
            environment=environment,
            release=release or os.getenv("APP_VERSION", "0.1.0"),
            traces_sample_rate=traces_sample_rate,
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                StarletteIntegration(transaction_style="endpoint"),
                AsyncioIntegration(),
                LoggingIntegration(level=logging.INFO, event_level=logging.ERROR),
            ],
            # Chat text and usernames stay out of events
            send_default_pii=False,
            attach_stacktrace=True,
            max_breadcrumbs=50,
            before_send=_scrub_event,
            before_send_transaction=_drop_health_transactions,
        )
    except Exception as e:
        logger.error(f"Sentry setup failed: {e}")
        return False

    logger.info(f"Sentry reporting on (environment: {environment})")
    return True


def _scrub_event(event: dict, hint: dict) -> dict | None:
    headers = (event.get("request") or {}).get("headers") or {}
    for name in SCRUBBED_HEADERS:
        if name in headers:
            headers[name] = "[Filtered]"
    return event


def _drop_health_transactions(event: dict, hint: dict) -> dict | None:
    if "health" in event.get("transaction", ""):
        return None
    return event


def capture_exception(
    exception: BaseException,
    extra: dict | None = None,
    tags: dict | None = None,
    level: str = "error",
) -> str | None:
    """
    Report an exception with optional context.

    Returns:
        The Sentry event id, or None when nothing was sent
    """
    try:
        with sentry_sdk.new_scope() as scope:
            for key, value in (extra or {}).items():
                scope.set_extra(key, value)
            for key, value in (tags or {}).items():
                scope.set_tag(key, value)
            scope.level = level
            return sentry_sdk.capture_exception(exception)
    except Exception as e:
        logger.error(f"Could not report exception to Sentry: {e}")
        return None


def add_breadcrumb(
    message: str,
    category: str = "agent",
    level: str = "info",
    data: dict | None = None,
):
    """Record a step that later error reports will include."""
    sentry_sdk.add_breadcrumb(message=message, category=category, level=level, data=data or {})
