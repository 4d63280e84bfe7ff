"""Common utilities and shared functionality."""

from .config import EngineConfig
from .exceptions import (
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
from .logging import get_logger, setup_logging
from .states import TunnelState
from .utils import (
    HTTP_PORT,
    HTTPS_PORT,
    MAX_PORT,
    MIN_PORT,
    default_port_for_url,
    strip_url_to_host,
    validate_non_empty_string,
    validate_port,
)

__all__ = [
    # Configuration
    "EngineConfig",
    "TunnelState",
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
    # Logging
    "get_logger",
    "setup_logging",
    # Utils
    "validate_port",
    "validate_non_empty_string",
    "strip_url_to_host",
    "default_port_for_url",
    "MIN_PORT",
    "MAX_PORT",
    "HTTP_PORT",
    "HTTPS_PORT",
]
