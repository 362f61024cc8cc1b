"""Health check handler."""

import logging
from typing import Optional

from userdir.bootstrap.config import SECURITY_HEADERS
from userdir.domain.correlation_id import CorrelationLoggerAdapter
from userdir.domain.http_types import HttpResponse
from userdir.domain.response_builders import healthz_response
from userdir.lifecycle.state import ServerLifecycle

SYSTEM_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("userdir.handlers.system"), {}
)


def handle_healthz(lifecycle: Optional[ServerLifecycle]) -> HttpResponse:
    """Handle /healthz requests with current server state."""
    is_draining = lifecycle.is_draining() if lifecycle is not None else False
    if SYSTEM_LOGGER.logger.isEnabledFor(logging.DEBUG):
        SYSTEM_LOGGER.debug(
            "Health check performed",
            extra={"event": "healthz_check", "reason": "draining" if is_draining else "ok"},
        )
    return healthz_response(is_draining, SECURITY_HEADERS)
