"""Resolution path: how a hostname is reached.

A path is one of two variants. Consumers dispatch on the concrete type and
treat anything else as a programming error.
"""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class RelayRoute(str, Enum):
    """Strategy that produced a relay path."""

    LOAD_BALANCER = "load_balancer"
    BASTION = "bastion"


class DirectInstance(BaseModel):
    """Forward straight to an instance whose address matched the host."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["direct"] = "direct"
    instance_id: str = Field(min_length=1)
    display_name: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.instance_id


class BastionRelay(BaseModel):
    """Forward through a relay instance to a host it can reach."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["relay"] = "relay"
    relay_instance_id: str = Field(min_length=1)
    relay_name: str = ""
    target_host: str = Field(min_length=1)
    target_port: int = Field(ge=1, le=65535)
    route: RelayRoute = RelayRoute.BASTION

    @property
    def label(self) -> str:
        return self.relay_name or self.relay_instance_id


ResolutionPath = DirectInstance | BastionRelay
