"""Forwarding sessions: launch, confirmation, discovery and teardown."""

from ..common.states import TunnelState
from .agent import AgentInvocation, ForwardingAgent, encode_parameters, parse_invocation
from .models import TunnelHandle
from .probe import is_port_open, probe_remote, wait_for_port
from .process import process_alive, terminate_process
from .prober import ProcessTableProber
from .supervisor import TunnelSupervisor

__all__ = [
    "TunnelHandle",
    "TunnelState",
    "AgentInvocation",
    "ForwardingAgent",
    "encode_parameters",
    "parse_invocation",
    "TunnelSupervisor",
    "ProcessTableProber",
    "is_port_open",
    "wait_for_port",
    "probe_remote",
    "process_alive",
    "terminate_process",
]
