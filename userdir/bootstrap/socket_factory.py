"""Listening socket creation and TLS configuration."""

import logging
import socket
import ssl
from typing import Optional

from userdir.bootstrap.config import ConfigurationError
from userdir.domain.correlation_id import CorrelationLoggerAdapter

SOCKET_LOGGER = CorrelationLoggerAdapter(logging.getLogger("userdir.socket"), {})

ACCEPT_POLL_SECONDS = 0.5


def create_server_socket(
    host: str, port: int, cert: Optional[str] = None, key: Optional[str] = None
) -> socket.socket:
    """Bind the listening socket, wrapping it in TLS when a key pair is given."""
    server_socket = socket.create_server((host, port), reuse_port=True)
    server_socket.settimeout(ACCEPT_POLL_SECONDS)
    if not (cert and key):
        return server_socket
    try:
        tls_context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        tls_context.load_cert_chain(cert, key)
    except (ssl.SSLError, OSError) as error:
        server_socket.close()
        SOCKET_LOGGER.critical(
            "Failed to load TLS certificates",
            extra={"event": "tls_setup_failed", "error_type": type(error).__name__},
        )
        raise ConfigurationError("Unable to load TLS certificate chain") from error
    return tls_context.wrap_socket(server_socket, server_side=True)
