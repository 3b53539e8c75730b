"""Logfire cloud observability initialization and instrumentation."""

import logging

import logfire

from weekly_arena import __version__
from weekly_arena.config import Settings

logger = logging.getLogger(__name__)


def initialize_logfire(settings: Settings) -> bool:
    """
    Initialize Logfire and bridge standard logging into it.

    Must be called ONCE at startup, before any store client is created, so
    the HTTPX instrumentation sees the Firestore client.

    This function configures Logfire cloud tracking and instruments:
    - HTTPX clients (Firestore REST)
    - Python logging (fetch ladder fallbacks, snapshot sizes)

    Args:
        settings: Application settings containing the Logfire token

    Returns:
        True when Logfire was configured, False otherwise.
    """
    if not settings.logfire_token:
        logger.warning("Logfire token not set - observability disabled")
        return False

    try:
        logfire.configure(
            token=settings.logfire_token,
            service_name="weekly-arena",
            service_version=__version__,
            environment=settings.store.backend,
        )

        # Firestore REST traffic
        logfire.instrument_httpx()

        # Bridge Python logging to Logfire
        root_logger = logging.getLogger()
        root_logger.addHandler(logfire.LogfireLoggingHandler())

        logger.info("Logfire cloud tracking initialized")
        return True

    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")
        return False
