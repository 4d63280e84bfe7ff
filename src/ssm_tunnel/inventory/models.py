"""Inventory models for the cloud control plane.

Every model here is an immutable snapshot produced by a query. A refresh
replaces the whole list; nothing is mutated in place.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

ANY_PROTOCOL = "any"


class InstanceState(str, Enum):
    """Instance lifecycle state."""

    RUNNING = "running"
    STOPPED = "stopped"
    PENDING = "pending"
    STOPPING = "stopping"
    OTHER = "other"


class AgentStatus(str, Enum):
    """Connectivity-agent ping status."""

    ONLINE = "online"
    OFFLINE = "offline"
    UNKNOWN = "unknown"

    @classmethod
    def from_ping_status(cls, value: str | None) -> "AgentStatus":
        """Map the raw ``PingStatus`` string to a status."""
        if value == "Online":
            return cls.ONLINE
        if value in ("ConnectionLost", "Inactive", "Offline"):
            return cls.OFFLINE
        return cls.UNKNOWN


class SecurityGroupRef(BaseModel):
    """Security group membership (id + name)."""

    model_config = ConfigDict(frozen=True)

    group_id: str = Field(min_length=1)
    group_name: str = ""


class Instance(BaseModel):
    """Compute instance as seen by one inventory refresh."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1, description="Instance identifier")
    name: str = Field(default="", description="Value of the Name tag")
    instance_type: str = ""
    state: InstanceState = InstanceState.OTHER
    raw_state: str = Field(default="", description="State name as reported upstream")
    private_ip: str | None = None
    public_ip: str | None = None
    agent_status: AgentStatus = AgentStatus.UNKNOWN
    security_groups: tuple[SecurityGroupRef, ...] = ()

    @property
    def security_group_ids(self) -> list[str]:
        return [sg.group_id for sg in self.security_groups]

    @property
    def state_label(self) -> str:
        """State for display, preserving unrecognised raw values."""
        if self.state == InstanceState.OTHER and self.raw_state:
            return self.raw_state
        return self.state.value

    @property
    def is_running(self) -> bool:
        return self.state == InstanceState.RUNNING

    @property
    def agent_online(self) -> bool:
        return self.agent_status == AgentStatus.ONLINE

    def can_relay(self) -> bool:
        """True when the instance can host a forwarding session right now."""
        return self.is_running and self.agent_online

    def has_address(self, address: str) -> bool:
        return address in (self.private_ip, self.public_ip)

    @classmethod
    def from_api(
        cls, raw: dict[str, Any], agent_status: AgentStatus = AgentStatus.UNKNOWN
    ) -> "Instance":
        """Build an instance from a ``DescribeInstances`` item."""
        tags = {t.get("Key"): t.get("Value", "") for t in raw.get("Tags") or []}
        raw_state = (raw.get("State") or {}).get("Name", "")
        try:
            state = InstanceState(raw_state)
        except ValueError:
            state = InstanceState.OTHER

        groups = tuple(
            SecurityGroupRef(group_id=g["GroupId"], group_name=g.get("GroupName", ""))
            for g in raw.get("SecurityGroups") or []
            if g.get("GroupId")
        )

        return cls(
            id=raw["InstanceId"],
            name=tags.get("Name", ""),
            instance_type=raw.get("InstanceType", ""),
            state=state,
            raw_state=raw_state,
            private_ip=raw.get("PrivateIpAddress"),
            public_ip=raw.get("PublicIpAddress"),
            agent_status=agent_status,
            security_groups=groups,
        )


class SecurityGroupRule(BaseModel):
    """Inbound permission: an edge in the security-group permission graph."""

    model_config = ConfigDict(frozen=True)

    protocol: str = Field(description="'any' sentinel or a specific protocol")
    from_port: int | None = None
    to_port: int | None = None
    source_group_ids: tuple[str, ...] = ()

    def allows_port(self, port: int) -> bool:
        """Whether this rule admits traffic on ``port``."""
        if self.protocol == ANY_PROTOCOL:
            return True
        if self.from_port is None or self.to_port is None:
            return False
        return self.from_port <= port <= self.to_port

    @classmethod
    def from_api(cls, perm: dict[str, Any]) -> "SecurityGroupRule":
        """Build a rule from one ``IpPermissions`` entry."""
        protocol = perm.get("IpProtocol", "")
        return cls(
            protocol=ANY_PROTOCOL if protocol == "-1" else protocol,
            from_port=perm.get("FromPort"),
            to_port=perm.get("ToPort"),
            source_group_ids=tuple(
                pair["GroupId"] for pair in perm.get("UserIdGroupPairs") or [] if pair.get("GroupId")
            ),
        )


class LoadBalancer(BaseModel):
    model_config = ConfigDict(frozen=True)

    arn: str = Field(min_length=1)
    name: str = ""
    dns_name: str = ""


class TargetGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    arn: str = Field(min_length=1)
    name: str = ""
    port: int | None = None


class LoadBalancerTarget(BaseModel):
    """Target group member with its current health."""

    model_config = ConfigDict(frozen=True)

    target_id: str = Field(min_length=1, description="IP address or instance id")
    port: int = Field(ge=1, le=65535)
    health_state: str = ""

    @property
    def is_usable(self) -> bool:
        """Only healthy targets are candidates for a route."""
        return self.health_state == "healthy"

    @property
    def is_instance(self) -> bool:
        return self.target_id.startswith("i-")
