"""Per-server bundle handed to every connection worker."""

from dataclasses import dataclass
from typing import Optional

from userdir.bootstrap.config import ServerConfig
from userdir.handlers.userdir_handler import UserdirHandler
from userdir.lifecycle.state import ServerLifecycle
from userdir.security.authorization import AuthorizationGate
from userdir.transport.connection_limiter import ConnectionLimiter


@dataclass
class WorkerContext:
    """The userdir handler and gate, plus optional transport collaborators.

    Unit tests build a context with only ``handler`` and ``gate``.
    """

    handler: UserdirHandler
    gate: AuthorizationGate
    connection_limiter: Optional[ConnectionLimiter] = None
    lifecycle: Optional[ServerLifecycle] = None
    config: Optional[ServerConfig] = None
