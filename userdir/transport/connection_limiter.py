"""Connection concurrency limiting logic."""

import threading
from collections import Counter
from typing import Optional

GLOBAL_LIMIT = "global"
PER_IP_LIMIT = "ip"


class ConnectionLimiter:
    """Enforces global and per-IP concurrent connection quotas.

    A limit of 0 disables that quota.
    """

    def __init__(self, max_connections: int, max_connections_per_ip: int) -> None:
        self._max_connections = max(0, max_connections)
        self._max_connections_per_ip = max(0, max_connections_per_ip)
        self._lock = threading.Lock()
        self._per_ip: Counter[str] = Counter()

    def acquire(self, client_ip: str) -> Optional[str]:
        """Claim a slot for ``client_ip``; return the exceeded limit type or None."""
        with self._lock:
            if (
                self._max_connections_per_ip
                and self._per_ip[client_ip] >= self._max_connections_per_ip
            ):
                return PER_IP_LIMIT
            if self._max_connections and self.active() >= self._max_connections:
                return GLOBAL_LIMIT
            self._per_ip[client_ip] += 1
            return None

    def release(self, client_ip: str) -> None:
        """Release a previously acquired connection slot."""
        with self._lock:
            if self._per_ip[client_ip] <= 1:
                del self._per_ip[client_ip]
            else:
                self._per_ip[client_ip] -= 1

    def active(self) -> int:
        """Return the number of slots currently held."""
        return sum(self._per_ip.values())
