"""Sentry integration for error tracking and performance monitoring.

Sentry is initialized early in main() after logging setup. Without
PGCONSOLE_SENTRY_DSN the SDK is initialized disabled and every call
becomes a no-op.
"""

import os

import sentry_sdk

from pgconsole.__about__ import __version__

SENTRY_DSN_ENV = "PGCONSOLE_SENTRY_DSN"


def setup_sentry(environment: str = "local") -> None:
    """Initialize Sentry from the environment."""
    sentry_sdk.init(
        dsn=os.environ.get(SENTRY_DSN_ENV) or None,
        traces_sample_rate=0.03,
        environment=environment,
        release=__version__,
        attach_stacktrace=True,
        send_default_pii=False,
    )
