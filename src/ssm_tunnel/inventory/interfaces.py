"""Protocol interface for the cloud inventory client."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from .models import (
        AgentStatus,
        Instance,
        LoadBalancer,
        LoadBalancerTarget,
        SecurityGroupRule,
        TargetGroup,
    )


class InventoryClient(Protocol):
    """Read-mostly view of the cloud control plane.

    Every method either returns a structured result or raises
    ``UpstreamQueryFailure``; an empty result is never an error.
    """

    def list_instances(self) -> list[Instance]:
        """Full inventory refresh, agent status included."""
        ...

    def describe_agent_status(self) -> dict[str, AgentStatus]:
        """Agent ping status keyed by instance id."""
        ...

    def list_load_balancers(self) -> list[LoadBalancer]:
        """All application/network load balancers."""
        ...

    def list_target_groups(self, load_balancer_arn: str) -> list[TargetGroup]:
        """Target groups attached to a load balancer."""
        ...

    def describe_target_health(self, target_group: TargetGroup) -> list[LoadBalancerTarget]:
        """Members of a target group with their health state."""
        ...

    def security_groups_for_target(self, target_id: str) -> list[str]:
        """Security group ids of the network attachment behind a target."""
        ...

    def inbound_rules(self, group_ids: list[str]) -> list[SecurityGroupRule]:
        """Inbound permission rules attached to the given groups."""
        ...

    def run_shell_command(self, instance_id: str, command: str) -> str:
        """Run a shell command on an instance through its agent, returning stdout."""
        ...

    def start_instance(self, instance_id: str) -> None:
        ...

    def stop_instance(self, instance_id: str, force: bool = False) -> None:
        ...

    def modify_instance_type(self, instance_id: str, new_type: str) -> None:
        ...

    def caller_identity(self) -> dict[str, Any]:
        """Account and ARN of the active credentials."""
        ...
