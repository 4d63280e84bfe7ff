"""Custom exceptions for the SSM tunnel engine."""

from __future__ import annotations

from .states import TunnelState


class SSMTunnelError(Exception):
    """Base exception for all SSM tunnel errors."""

    pass


class UpstreamQueryFailure(SSMTunnelError):
    """Raised when the cloud inventory query itself fails.

    Distinct from an empty result: the diagnostic carries the raw text
    reported by the underlying SDK.
    """

    def __init__(self, operation: str, diagnostic: str):
        self.operation = operation
        self.diagnostic = diagnostic
        super().__init__(f"{operation} failed: {diagnostic}")


class NoPathFound(SSMTunnelError):
    """Raised when every resolution strategy is exhausted."""

    def __init__(self, host: str, reason: str = "no direct, load balancer or bastion path"):
        self.host = host
        self.reason = reason
        super().__init__(f"No path found to {host}: {reason}")


class NoHopAvailable(SSMTunnelError):
    """Raised when the permission walk finds no relay for a target."""

    def __init__(self, target: str, port: int, allowed_groups: list[str] | None = None):
        self.target = target
        self.port = port
        self.allowed_groups = list(allowed_groups or [])
        groups = ", ".join(self.allowed_groups) or "none"
        super().__init__(
            f"No online relay can reach {target}:{port} (allowed source groups: {groups})"
        )


class InstanceNotFound(SSMTunnelError):
    """Raised when no instance matches a name pattern."""

    def __init__(self, pattern: str):
        self.pattern = pattern
        super().__init__(f"No instance found matching: {pattern}")


class AmbiguousInstance(SSMTunnelError):
    """Raised when more than one instance matches a name pattern."""

    def __init__(self, pattern: str, count: int):
        self.pattern = pattern
        self.count = count
        super().__init__(f"Multiple instances found matching: {pattern} ({count} matches)")


class TunnelError(SSMTunnelError):
    """Base exception for tunnel lifecycle failures."""

    failed_from: TunnelState | None = None

    def __init__(self, message: str, local_port: int):
        self.local_port = local_port
        super().__init__(message)


class PortAlreadyInUse(TunnelError):
    """Raised when the local port already accepts connections."""

    def __init__(self, local_port: int):
        super().__init__(
            f"Local port {local_port} already accepts connections (tunnel may be active)",
            local_port,
        )


class AgentLaunchError(TunnelError):
    """Raised when the forwarding agent cannot be spawned."""

    failed_from = TunnelState.STARTING

    def __init__(self, local_port: int, reason: str):
        self.reason = reason
        super().__init__(
            f"Failed to launch forwarding agent for port {local_port}: {reason}",
            local_port,
        )


class PortNeverOpened(TunnelError):
    """Raised when the local port did not open before the timeout."""

    failed_from = TunnelState.PROBING

    def __init__(self, local_port: int, pid: int, timeout: float):
        self.pid = pid
        self.timeout = timeout
        super().__init__(
            f"Port {local_port} is not open after {timeout:g}s (agent pid {pid} stopped)",
            local_port,
        )


class RemoteUnreachable(TunnelError):
    """Raised when the local port opened but the remote end never answered."""

    failed_from = TunnelState.PROBING

    def __init__(self, local_port: int, pid: int, timeout: float):
        self.pid = pid
        self.timeout = timeout
        super().__init__(
            f"Remote service unreachable: no response on port {local_port} "
            f"within {timeout:g}s (agent pid {pid} stopped)",
            local_port,
        )


class AggregateFallbackFailure(TunnelError):
    """Raised when every bastion candidate failed."""

    failed_from = TunnelState.PROBING

    def __init__(self, host: str, port: int, attempts: int, local_port: int):
        self.host = host
        self.port = port
        self.attempts = attempts
        super().__init__(
            f"All {attempts} bastion(s) failed to tunnel to {host}:{port}",
            local_port,
        )

