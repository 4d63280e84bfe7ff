"""High-level API for SSM tunnels.

Each function wires the resolver, supervisor and prober together for one
common task. All of them block; run them through
:class:`ssm_tunnel.worker.BackgroundWorker` from a foreground loop.
"""

from .common.config import EngineConfig
from .common.exceptions import NoPathFound, PortAlreadyInUse
from .common.logging import get_logger
from .common.utils import (
    default_port_for_url,
    strip_url_to_host,
    validate_non_empty_string,
    validate_port,
)
from .inventory.client import Boto3InventoryClient
from .inventory.interfaces import InventoryClient
from .resolution.paths import BastionRelay, DirectInstance, RelayRoute, ResolutionPath
from .resolution.report import resolution_report
from .resolution.resolver import PathResolver, find_instance_by_name
from .tunnel.models import TunnelHandle
from .tunnel.probe import is_port_open
from .tunnel.prober import ProcessTableProber
from .tunnel.supervisor import TunnelSupervisor

logger = get_logger(__name__)


def _ensure_port_free(local_port: int, config: EngineConfig) -> None:
    validate_port(local_port, "Local port")
    if is_port_open(local_port, config.port_connect_timeout):
        raise PortAlreadyInUse(local_port)


def tunnel_to_url(
    url: str,
    local_port: int,
    config: EngineConfig,
    remote_port: int | None = None,
    *,
    inventory: InventoryClient | None = None,
) -> TunnelHandle:
    """Open a tunnel to whatever serves ``url``.

    The local port is checked before any inventory query. Direct instance
    matches forward to ``remote_port`` or the scheme's default port; relay
    paths forward to the port they were resolved with.

    Args:
        url: URL, hostname or IP address
        local_port: Loopback port to listen on
        config: Engine configuration
        remote_port: Remote port, overriding the scheme default
        inventory: Inventory client; a boto3 client is built when omitted

    Returns:
        Active tunnel handle

    Raises:
        PortAlreadyInUse: If the local port already accepts connections
        NoPathFound: If no strategy yields a path
        AggregateFallbackFailure: If every bastion candidate failed

    Example:
        >>> handle = tunnel_to_url("https://app.internal.example.test", 8443, config)
        >>> handle.local_port
        8443
    """
    _ensure_port_free(local_port, config)

    inventory = inventory or Boto3InventoryClient(config)
    resolver = PathResolver(config, inventory)
    candidates = resolver.resolve_candidates(url, remote_port)
    if not candidates:
        raise NoPathFound(strip_url_to_host(url), "no agent-online bastions found")

    port = remote_port
    if isinstance(candidates[0], DirectInstance):
        port = remote_port or default_port_for_url(url)

    logger.info(
        "Starting tunnel",
        url=url,
        local_port=local_port,
        candidates=[c.label for c in candidates],
    )
    return TunnelSupervisor(config).start_first(candidates, local_port, port)


def tunnel_to_instance(
    pattern: str,
    local_port: int,
    remote_port: int,
    config: EngineConfig,
    *,
    inventory: InventoryClient | None = None,
) -> TunnelHandle:
    """Open a tunnel straight to the single instance whose name contains ``pattern``.

    Raises:
        InstanceNotFound: If no instance matches
        AmbiguousInstance: If several instances match
    """
    _ensure_port_free(local_port, config)
    validate_port(remote_port, "Remote port")

    inventory = inventory or Boto3InventoryClient(config)
    instance = find_instance_by_name(inventory.list_instances(), pattern)
    if not instance.can_relay():
        logger.warning(
            "Instance may not accept sessions",
            instance_id=instance.id,
            state=instance.state_label,
            agent=instance.agent_status.value,
        )

    path: ResolutionPath = DirectInstance(instance_id=instance.id, display_name=instance.name)
    return TunnelSupervisor(config).start(path, local_port, remote_port)


def tunnel_via_relay(
    relay_pattern: str,
    host: str,
    local_port: int,
    remote_port: int,
    config: EngineConfig,
    *,
    inventory: InventoryClient | None = None,
) -> TunnelHandle:
    """Open a tunnel to ``host`` through the named relay instance.

    The host is forwarded to as given; the relay does its own resolution.
    """
    _ensure_port_free(local_port, config)
    validate_port(remote_port, "Remote port")
    target_host = strip_url_to_host(validate_non_empty_string(host, "Target host"))

    inventory = inventory or Boto3InventoryClient(config)
    relay = find_instance_by_name(inventory.list_instances(), relay_pattern)
    path = BastionRelay(
        relay_instance_id=relay.id,
        relay_name=relay.name,
        target_host=target_host,
        target_port=remote_port,
        route=RelayRoute.BASTION,
    )
    return TunnelSupervisor(config).start(path, local_port, remote_port)


def list_tunnels(config: EngineConfig) -> list[TunnelHandle]:
    """Running tunnels found in the process table, freshly probed."""
    return ProcessTableProber(config).detect_active_tunnels()


def stop_tunnel(pid: int, config: EngineConfig) -> bool:
    """Stop the tunnel whose agent process is ``pid``."""
    return TunnelSupervisor(config).stop(pid)


def stop_all_tunnels(config: EngineConfig) -> int:
    """Stop every tunnel; returns the number of processes signalled."""
    return TunnelSupervisor(config).stop_all()


def describe_route(
    url: str, config: EngineConfig, *, inventory: InventoryClient | None = None
) -> str:
    """Multi-line report of how ``url`` resolves and which relays could reach it."""
    inventory = inventory or Boto3InventoryClient(config)
    return resolution_report(url, config, inventory)
