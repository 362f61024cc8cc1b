"""Serve per-user public and private web trees out of LDAP home directories."""

import logging
import signal
import sys

from userdir.bootstrap.config import (
    ConfigurationError,
    ServerConfig,
    directory_settings_from,
    load_api_keys,
    parse_cli_args,
)
from userdir.bootstrap.logging_setup import configure_logging
from userdir.directory.resolver import DirectoryResolver
from userdir.directory.session import DirectorySessionManager
from userdir.domain.correlation_id import CorrelationLoggerAdapter
from userdir.domain.errors import DirectoryUnavailable
from userdir.handlers.userdir_handler import UserdirHandler
from userdir.lifecycle.state import ServerLifecycle
from userdir.security.authorization import build_gate
from userdir.transport.accept_loop import run_server

SERVER_LOGGER = CorrelationLoggerAdapter(logging.getLogger("userdir.server"), {})


def main(argv: list[str] | None = None) -> int:
    """Start the server and block until it has drained."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level, args.log_destination)

    try:
        settings = directory_settings_from(args)
    except ConfigurationError as error:
        SERVER_LOGGER.critical(
            "Invalid configuration",
            extra={"event": "configuration_error", "reason": str(error)},
        )
        return 1

    sessions = DirectorySessionManager(settings)
    try:
        sessions.start()
    except DirectoryUnavailable:
        SERVER_LOGGER.warning(
            "Directory unavailable at startup; lookups will retry",
            extra={"event": "ldap_startup_deferred"},
        )

    handler = UserdirHandler(DirectoryResolver(sessions, settings))
    gate = build_gate(load_api_keys())
    config = ServerConfig(
        socket_timeout=args.socket_timeout,
        shutdown_grace_seconds=args.shutdown_grace_seconds,
    )
    lifecycle = ServerLifecycle()

    def shutdown_handler(signum: int, _frame) -> None:
        SERVER_LOGGER.info(
            "Received shutdown signal", extra={"event": "signal", "signal": signum}
        )
        lifecycle.begin_draining()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    SERVER_LOGGER.info(
        "Starting userdir server",
        extra={
            "event": "server_starting",
            "host": args.host,
            "port": args.port,
            "ldap_server": sessions.server_uri,
            "log_destination": args.log_destination,
            "log_level": args.log_level,
            "tls": bool(args.cert and args.key),
            "socket_timeout": config.socket_timeout,
            "shutdown_grace_seconds": config.shutdown_grace_seconds,
        },
    )
    try:
        run_server(args, config, lifecycle, handler, gate)
    except ConfigurationError:
        return 1
    finally:
        sessions.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
