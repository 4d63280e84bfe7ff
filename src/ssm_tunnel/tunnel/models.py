"""Tunnel handle model."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from ..common.states import TunnelState


class TunnelHandle(BaseModel):
    """A forwarding session backed by an OS process.

    The spawned process is owned by the OS; the handle keeps only its pid.
    ``port_open`` and ``latency_ms`` are measured once, when the handle is
    created or detected, and never refreshed implicitly. Re-detect to get
    current values.
    """

    model_config = ConfigDict(frozen=True)

    pid: int = Field(gt=0, description="Forwarding agent process id")
    local_port: int = Field(ge=1, le=65535)
    remote_port: int | None = Field(default=None, ge=1, le=65535)
    remote_host: str | None = Field(default=None, description="Remote host in relay mode")
    instance_id: str = Field(default="", description="Target or relay instance id")
    instance_name: str = Field(default="", description="Display name for the target/relay")
    port_open: bool = False
    latency_ms: float | None = Field(default=None, ge=0)
    state: TunnelState = TunnelState.ACTIVE
    observed_at: datetime = Field(default_factory=datetime.now)

    @property
    def reachable(self) -> bool:
        """Local port accepted and the remote end answered at observation time."""
        return self.port_open and self.latency_ms is not None

    @property
    def label(self) -> str:
        return self.instance_name or self.remote_host or self.instance_id

    def with_state(self, state: TunnelState) -> "TunnelHandle":
        """Return a copy in ``state`` (immutable update)."""
        return self.model_copy(update={"state": state})

    def describe(self) -> dict[str, Any]:
        """Plain dictionary for display or logging."""
        return {
            "pid": self.pid,
            "local_port": self.local_port,
            "remote_port": self.remote_port,
            "remote_host": self.remote_host,
            "instance_id": self.instance_id,
            "instance_name": self.instance_name,
            "state": self.state.value,
            "reachable": self.reachable,
            "latency_ms": round(self.latency_ms, 1) if self.latency_ms is not None else None,
        }
