"""DNS SRV discovery of directory service endpoints."""

import logging
import random
from typing import Optional, Sequence

import dns.exception
import dns.resolver

from userdir.domain.correlation_id import CorrelationLoggerAdapter
from userdir.domain.errors import DirectoryUnavailable

DISCOVERY_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("userdir.directory.discovery"), {}
)

SRV_SERVICE = "_ldap._tcp"
LDAP_SCHEME = "ldaps"


def srv_record_name(domain: str) -> str:
    """Return the SRV owner name queried for a deployment domain."""
    return f"{SRV_SERVICE}.{domain.strip('.')}"


def discover_ldap_servers(
    domain: str, lifetime: float = 5.0, resolver: Optional[dns.resolver.Resolver] = None
) -> list[str]:
    """Look up candidate LDAP URIs advertised under ``_ldap._tcp.<domain>``."""
    record_name = srv_record_name(domain)
    active_resolver = resolver or dns.resolver.Resolver()
    try:
        answer = active_resolver.resolve(record_name, "SRV", lifetime=lifetime)
    except dns.exception.DNSException as exc:
        DISCOVERY_LOGGER.error(
            "SRV lookup failed",
            extra={
                "event": "srv_lookup_failed",
                "record": record_name,
                "error_type": type(exc).__name__,
            },
        )
        raise DirectoryUnavailable(f"SRV lookup for {record_name} failed") from exc

    servers = sorted(
        {
            f"{LDAP_SCHEME}://{record.target.to_text(omit_final_dot=True)}"
            for record in answer
        }
    )
    if not servers:
        raise DirectoryUnavailable(f"No LDAP servers advertised under {record_name}")
    DISCOVERY_LOGGER.info(
        "LDAP servers discovered",
        extra={"event": "srv_lookup_complete", "record": record_name, "count": len(servers)},
    )
    return servers


def choose_server(servers: Sequence[str], rng: Optional[random.Random] = None) -> str:
    """Pick one endpoint at random from the discovered candidates."""
    if not servers:
        raise DirectoryUnavailable("No LDAP servers to choose from")
    return (rng or random).choice(list(servers))
