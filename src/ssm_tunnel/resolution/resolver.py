"""Path resolution: hostname -> direct instance, load-balancer relay or bastion relay."""

from collections.abc import Sequence

from ..common.config import EngineConfig
from ..common.exceptions import (
    AmbiguousInstance,
    InstanceNotFound,
    NoHopAvailable,
    NoPathFound,
    UpstreamQueryFailure,
)
from ..common.logging import get_logger
from ..common.utils import default_port_for_url, strip_url_to_host, validate_non_empty_string
from ..inventory.interfaces import InventoryClient
from ..inventory.models import Instance, LoadBalancer, LoadBalancerTarget
from .dns import Address, NameResolver
from .hops import HopSelector, allowed_source_groups
from .paths import BastionRelay, DirectInstance, RelayRoute, ResolutionPath

logger = get_logger(__name__)


def online_bastions(instances: Sequence[Instance], marker: str = "bastion") -> list[Instance]:
    """Running, agent-online instances whose name contains ``marker``."""
    marker = marker.lower()
    return [i for i in instances if marker in i.name.lower() and i.can_relay()]


def find_instance_by_name(instances: Sequence[Instance], pattern: str) -> Instance:
    """Find exactly one instance whose name contains ``pattern`` (case-insensitive).

    Raises:
        InstanceNotFound: If nothing matches
        AmbiguousInstance: If more than one instance matches
        ValueError: If ``pattern`` is blank
    """
    needle = validate_non_empty_string(pattern, "Instance name pattern").lower()
    matches = [i for i in instances if needle in i.name.lower()]
    if not matches:
        raise InstanceNotFound(pattern)
    if len(matches) > 1:
        raise AmbiguousInstance(pattern, len(matches))
    return matches[0]


class PathResolver:
    """Determines how to reach a hostname.

    Strategies run in order and the first success wins:

    1. direct match of a resolved address against instance addresses
    2. load balancer whose DNS answers intersect the host's answers, then a
       healthy target reachable from an online relay per security-group rules
    3. any online bastion, forwarding to the host as given

    Candidates are never scored; earlier enumeration order always wins.
    """

    def __init__(
        self,
        config: EngineConfig,
        inventory: InventoryClient,
        name_resolver: NameResolver | None = None,
        hop_selector: HopSelector | None = None,
    ):
        self.config = config
        self.inventory = inventory
        self.name_resolver = name_resolver or NameResolver(config)
        self.hop_selector = hop_selector or HopSelector(inventory)

    def resolve_path(self, host_or_url: str, remote_port: int | None = None) -> ResolutionPath:
        """Resolve the single best path to ``host_or_url``.

        Args:
            host_or_url: Hostname, IP or URL
            remote_port: Port already known from context; filters load
                balancer targets and overrides the scheme-derived port

        Raises:
            NoPathFound: If every strategy is exhausted
            UpstreamQueryFailure: If the instance inventory cannot be listed
        """
        candidates = self.resolve_candidates(host_or_url, remote_port)
        if not candidates:
            raise NoPathFound(strip_url_to_host(host_or_url), "no agent-online bastions found")
        return candidates[0]

    def resolve_candidates(
        self, host_or_url: str, remote_port: int | None = None
    ) -> list[ResolutionPath]:
        """All paths worth trying, in order.

        A direct or load-balancer match yields exactly one candidate; the
        bastion fallback yields one relay per online bastion. An empty list
        means no path exists.
        """
        host = strip_url_to_host(host_or_url)
        addresses = self.name_resolver.resolve(host)
        instances = self.inventory.list_instances()
        logger.info(
            "Resolving path",
            host=host,
            addresses=[str(a) for a in addresses],
            instances=len(instances),
        )

        direct = self.match_direct(addresses, instances)
        if direct is not None:
            logger.info("Direct instance match", host=host, instance_id=direct.instance_id)
            return [direct]

        try:
            relay = self._match_load_balancer(host, addresses, instances, remote_port)
        except NoHopAvailable as e:
            logger.info("Load balancer matched but no relay qualifies", host=host, error=str(e))
            relay = None
        except UpstreamQueryFailure as e:
            logger.warning("Load balancer lookup failed, skipping", host=host, error=str(e))
            relay = None
        if relay is not None:
            return [relay]

        port = remote_port or default_port_for_url(host_or_url)
        target_host = self._bastion_target(host, addresses)
        bastions = online_bastions(instances, self.config.bastion_marker)
        logger.info(
            "Falling back to bastion relay",
            host=host,
            target_host=target_host,
            target_port=port,
            bastions=[b.name for b in bastions],
        )
        return [
            BastionRelay(
                relay_instance_id=b.id,
                relay_name=b.name,
                target_host=target_host,
                target_port=port,
                route=RelayRoute.BASTION,
            )
            for b in bastions
        ]

    def resolve_load_balancer_path(
        self, host_or_url: str, remote_port: int | None = None
    ) -> BastionRelay | None:
        """Resolve only through the load-balancer strategy.

        Returns:
            The relay path, or None if no load balancer fronts the host

        Raises:
            NoHopAvailable: If a load balancer matched but no healthy target
                is reachable from an online relay
        """
        host = strip_url_to_host(host_or_url)
        addresses = self.name_resolver.resolve(host)
        instances = self.inventory.list_instances()
        return self._match_load_balancer(host, addresses, instances, remote_port)

    @staticmethod
    def match_direct(
        addresses: Sequence[Address], instances: Sequence[Instance]
    ) -> DirectInstance | None:
        """First instance whose private or public address equals a resolved address."""
        for address in addresses:
            needle = str(address)
            for instance in instances:
                if instance.has_address(needle):
                    return DirectInstance(instance_id=instance.id, display_name=instance.name)
        return None

    def find_load_balancer(self, target_ips: set[str]) -> LoadBalancer | None:
        """First load balancer whose DNS name resolves into ``target_ips``."""
        for lb in self.inventory.list_load_balancers():
            if not lb.dns_name:
                continue
            lb_ips = {str(a) for a in self.name_resolver.resolve(lb.dns_name)}
            if lb_ips & target_ips:
                logger.info("Load balancer match", load_balancer=lb.name, dns_name=lb.dns_name)
                return lb
        return None

    def healthy_targets(
        self, load_balancer: LoadBalancer, remote_port: int | None = None
    ) -> list[LoadBalancerTarget]:
        """Healthy targets across all target groups, in enumeration order."""
        targets: list[LoadBalancerTarget] = []
        for group in self.inventory.list_target_groups(load_balancer.arn):
            try:
                members = self.inventory.describe_target_health(group)
            except UpstreamQueryFailure as e:
                logger.warning("Skipping target group", target_group=group.arn, error=str(e))
                continue
            for target in members:
                if not target.is_usable:
                    continue
                if remote_port is not None and target.port != remote_port:
                    continue
                targets.append(target)
        return targets

    def _match_load_balancer(
        self,
        host: str,
        addresses: Sequence[Address],
        instances: Sequence[Instance],
        remote_port: int | None,
    ) -> BastionRelay | None:
        target_ips = {str(a) for a in addresses if not a.is_loopback}
        if not target_ips:
            return None

        load_balancer = self.find_load_balancer(target_ips)
        if load_balancer is None:
            return None

        targets = self.healthy_targets(load_balancer, remote_port)
        if not targets:
            logger.info("Load balancer has no healthy targets", load_balancer=load_balancer.name)
            return None

        considered: list[str] = []
        for target in targets:
            target_host = self._target_address(target, instances)
            if target_host is None:
                continue

            try:
                groups = self.inventory.security_groups_for_target(target.target_id)
                if not groups:
                    continue
                allowed = allowed_source_groups(self.inventory.inbound_rules(groups), target.port)
            except UpstreamQueryFailure as e:
                logger.warning("Skipping target", target=target.target_id, error=str(e))
                continue

            considered.extend(g for g in allowed if g not in considered)
            hop = self.hop_selector.find_hop(allowed, instances)
            if hop is None:
                continue

            logger.info(
                "Load balancer target reachable",
                target=target.target_id,
                port=target.port,
                relay=hop.name or hop.id,
            )
            return BastionRelay(
                relay_instance_id=hop.id,
                relay_name=hop.name,
                target_host=target_host,
                target_port=target.port,
                route=RelayRoute.LOAD_BALANCER,
            )

        raise NoHopAvailable(host, remote_port or targets[0].port, considered)

    @staticmethod
    def _target_address(target: LoadBalancerTarget, instances: Sequence[Instance]) -> str | None:
        # Instance-type targets are forwarded to by private address
        if not target.is_instance:
            return target.target_id
        for instance in instances:
            if instance.id == target.target_id:
                return instance.private_ip
        return None

    @staticmethod
    def _bastion_target(host: str, addresses: Sequence[Address]) -> str:
        for address in addresses:
            if not address.is_loopback:
                return str(address)
        return host
