"""
GlitchTip Error Monitoring

Initializes the Sentry-compatible client when GLITCHTIP_DSN is set and tags
events with the sync cycle they happened in. Without a DSN every call here
is a no-op.
"""

import logging

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

from order_sync import __version__
from order_sync.config.settings import Settings
from order_sync.core.logger import setup_logger

logger = setup_logger(__name__)


def init_error_monitoring(settings: Settings) -> bool:
    """Start GlitchTip reporting. Returns False when no DSN is configured."""
    if not settings.glitchtip_dsn:
        return False

    try:
        sentry_sdk.init(
            dsn=settings.glitchtip_dsn,
            environment=settings.environment,
            release=f"order-sync@{__version__}",
            integrations=[
                FastApiIntegration(transaction_style="endpoint"),
                LoggingIntegration(
                    level=None,  # Capture all log levels as breadcrumbs
                    event_level=logging.ERROR,  # Send ERROR logs as events
                ),
            ],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.0,
            send_default_pii=False,
        )
    except Exception as e:
        logger.error(f"Failed to initialize GlitchTip: {e}")
        return False

    logger.info("GlitchTip error monitoring initialized")
    return True


def set_sync_context(sync_type: str, incremental: bool) -> None:
    """Tag subsequent error events with the running sync cycle."""
    sentry_sdk.set_tag("sync.type", sync_type)
    sentry_sdk.set_context(
        "sync",
        {
            "sync_type": sync_type,
            "incremental": incremental,
        },
    )
