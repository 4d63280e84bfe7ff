"""Hostname resolution with an external fallback for loopback overrides."""

import socket
from ipaddress import IPv4Address, IPv6Address, ip_address

import dns.exception
import dns.resolver

from ..common.config import EngineConfig
from ..common.logging import get_logger

logger = get_logger(__name__)

Address = IPv4Address | IPv6Address


def _unique(addresses: list[Address]) -> tuple[Address, ...]:
    seen: dict[Address, None] = {}
    for address in addresses:
        seen.setdefault(address, None)
    return tuple(seen)


class NameResolver:
    """Resolves hostnames to addresses.

    The system resolver is asked first. When every answer is a loopback
    address (an ``/etc/hosts`` override such as a local proxy redirect), the
    configured external DNS server is queried and its answers replace the
    local ones if it returns any. An unresolvable name yields an empty
    tuple, never an error: it may simply be an internal hostname.
    """

    def __init__(self, config: EngineConfig):
        self.config = config

    def resolve(self, host: str) -> tuple[Address, ...]:
        """Resolve ``host`` to unique addresses in resolver order."""
        local = self.resolve_local(host)
        if local and all(address.is_loopback for address in local):
            external = self.resolve_external(host)
            if external:
                logger.debug(
                    "Local resolution is a loopback override, using external DNS",
                    host=host,
                    local=[str(a) for a in local],
                    external=[str(a) for a in external],
                )
                return external
        return local

    def resolve_local(self, host: str) -> tuple[Address, ...]:
        try:
            infos = socket.getaddrinfo(host, None, proto=socket.IPPROTO_TCP)
        except (OSError, UnicodeError) as e:
            logger.debug("Local resolution failed", host=host, error=str(e))
            return ()

        addresses: list[Address] = []
        for _family, _type, _proto, _canon, sockaddr in infos:
            # IPv6 link-local answers carry a "%scope" suffix
            raw = str(sockaddr[0]).split("%", 1)[0]
            try:
                addresses.append(ip_address(raw))
            except ValueError:
                continue
        return _unique(addresses)

    def resolve_external(self, host: str) -> tuple[Address, ...]:
        resolver = dns.resolver.Resolver(configure=False)
        resolver.nameservers = [self.config.external_dns_server]
        resolver.timeout = self.config.dns_timeout
        resolver.lifetime = self.config.dns_timeout

        addresses: list[Address] = []
        for rdtype in ("A", "AAAA"):
            try:
                answer = resolver.resolve(host, rdtype)
            except dns.exception.DNSException as e:
                logger.debug(
                    "External resolution failed",
                    host=host,
                    rdtype=rdtype,
                    server=self.config.external_dns_server,
                    error=str(e),
                )
                continue
            for rdata in answer:
                try:
                    addresses.append(ip_address(rdata.address))
                except (AttributeError, ValueError):
                    continue
        return _unique(addresses)
