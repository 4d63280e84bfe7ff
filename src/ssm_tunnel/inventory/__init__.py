"""Cloud inventory: models, client protocol and the boto3 implementation."""

from .client import Boto3InventoryClient
from .interfaces import InventoryClient
from .models import (
    ANY_PROTOCOL,
    AgentStatus,
    Instance,
    InstanceState,
    LoadBalancer,
    LoadBalancerTarget,
    SecurityGroupRef,
    SecurityGroupRule,
    TargetGroup,
)

__all__ = [
    "InventoryClient",
    "Boto3InventoryClient",
    "ANY_PROTOCOL",
    "AgentStatus",
    "Instance",
    "InstanceState",
    "LoadBalancer",
    "LoadBalancerTarget",
    "SecurityGroupRef",
    "SecurityGroupRule",
    "TargetGroup",
]
