"""Pixel sort sidecar entry point.

Prints the ports and auth token the front-end connects with, one
KEY=value line each, then serves until a shutdown command arrives.
"""

import logging
import os
import sys

import sentry_sdk

from _version import __version__
from diagnostics import APP_DIR, init_diagnostics
from security import strip_pii
from zmq_server import ZMQServer

logger = logging.getLogger(__name__)

MAX_MEMORY_BYTES = 4 * 1024 * 1024 * 1024


def telemetry_dsn() -> str:
    """SENTRY_DSN, but only once the user has written "yes" to the consent file."""
    consent = os.path.join(os.path.expanduser(APP_DIR), "telemetry_consent")
    try:
        with open(consent) as f:
            opted_in = f.read().strip() == "yes"
    except OSError:
        return ""
    return os.environ.get("SENTRY_DSN", "") if opted_in else ""


def init_sentry():
    sentry_sdk.init(
        dsn=telemetry_dsn(),
        release=f"pixelsort@{__version__}",
        environment=os.environ.get("SENTRY_ENV", "development"),
        before_send=strip_pii,
        max_breadcrumbs=50,
    )


def limit_memory(limit: int = MAX_MEMORY_BYTES):
    """Cap the address space where RLIMIT_AS exists (not on Windows)."""
    try:
        import resource
    except ImportError:
        return
    try:
        _, hard = resource.getrlimit(resource.RLIMIT_AS)
        if hard != resource.RLIM_INFINITY:
            limit = min(limit, hard)
        resource.setrlimit(resource.RLIMIT_AS, (limit, hard))
    except (ValueError, OSError) as e:
        logger.warning("Memory limit not applied: %s", e)


def main():
    init_sentry()
    init_diagnostics()
    limit_memory()
    server = ZMQServer()
    for key, value in (
        ("ZMQ_PORT", server.port),
        ("ZMQ_PING_PORT", server.ping_port),
        ("ZMQ_TOKEN", server.token),
    ):
        print(f"{key}={value}", file=sys.stdout, flush=True)
    server.run()


if __name__ == "__main__":
    main()
