"""Sentry integration for error tracking and performance monitoring.

Sentry is only initialised when a DSN is configured, either through
GRIDSTREAM_SENTRY_DSN or the ``sentry_dsn`` config key.
"""

from __future__ import annotations

import os

import sentry_sdk

from gridstream.__about__ import __version__

SENTRY_DSN_ENV = "GRIDSTREAM_SENTRY_DSN"


def setup_sentry(dsn: str | None = None, environment: str = "local") -> bool:
    """Initialise Sentry. Returns False when no DSN is available."""
    dsn = dsn or os.environ.get(SENTRY_DSN_ENV)
    if not dsn:
        return False

    sentry_sdk.init(
        dsn=dsn,
        traces_sample_rate=0.05,
        environment=environment,
        release=f"gridstream@{__version__}",
        attach_stacktrace=True,
        send_default_pii=False,
    )
    return True
