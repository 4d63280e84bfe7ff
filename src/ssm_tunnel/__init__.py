"""SSM Tunnel - resolve internal hostnames and forward local ports through SSM sessions."""

# High-level API
from .api import (
    describe_route,
    list_tunnels,
    stop_all_tunnels,
    stop_tunnel,
    tunnel_to_instance,
    tunnel_to_url,
    tunnel_via_relay,
)

# Common utilities
from .common.config import EngineConfig
from .common.exceptions import (
    AgentLaunchError,
    AggregateFallbackFailure,
    AmbiguousInstance,
    InstanceNotFound,
    NoHopAvailable,
    NoPathFound,
    PortAlreadyInUse,
    PortNeverOpened,
    RemoteUnreachable,
    SSMTunnelError,
    TunnelError,
    UpstreamQueryFailure,
)
from .common.logging import get_logger, setup_logging
from .common.states import TunnelState

# Inventory
from .inventory import Boto3InventoryClient, Instance, InventoryClient

# Resolution
from .resolution import (
    BastionRelay,
    DirectInstance,
    HopSelector,
    NameResolver,
    PathResolver,
    RelayRoute,
    ResolutionPath,
    resolution_report,
)

# Tunnels
from .tunnel import ProcessTableProber, TunnelHandle, TunnelSupervisor
from .worker import BackgroundWorker, TunnelMonitor, WorkerMessage

__version__ = "0.1.0"

__all__ = [
    # High-level API
    "tunnel_to_url",
    "tunnel_to_instance",
    "tunnel_via_relay",
    "list_tunnels",
    "stop_tunnel",
    "stop_all_tunnels",
    "describe_route",
    # Configuration and logging
    "EngineConfig",
    "get_logger",
    "setup_logging",
    # Exceptions
    "SSMTunnelError",
    "UpstreamQueryFailure",
    "NoPathFound",
    "NoHopAvailable",
    "InstanceNotFound",
    "AmbiguousInstance",
    "TunnelError",
    "PortAlreadyInUse",
    "AgentLaunchError",
    "PortNeverOpened",
    "RemoteUnreachable",
    "AggregateFallbackFailure",
    # Inventory
    "InventoryClient",
    "Boto3InventoryClient",
    "Instance",
    # Resolution
    "NameResolver",
    "PathResolver",
    "HopSelector",
    "ResolutionPath",
    "DirectInstance",
    "BastionRelay",
    "RelayRoute",
    "resolution_report",
    # Tunnels
    "TunnelState",
    "TunnelHandle",
    "TunnelSupervisor",
    "ProcessTableProber",
    "BackgroundWorker",
    "TunnelMonitor",
    "WorkerMessage",
]
