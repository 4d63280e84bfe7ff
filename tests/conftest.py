"""Shared pytest fixtures for SSM tunnel tests."""

import socket
import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

from ssm_tunnel.common.config import EngineConfig
from ssm_tunnel.common.exceptions import UpstreamQueryFailure
from ssm_tunnel.inventory.models import (
    AgentStatus,
    Instance,
    InstanceState,
    LoadBalancer,
    LoadBalancerTarget,
    SecurityGroupRef,
    SecurityGroupRule,
    TargetGroup,
)

FAKE_AGENT = Path(__file__).parent / "fixtures" / "fake_agent.py"


def free_port():
    """A loopback port nothing is listening on right now."""
    with socket.socket() as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


class FakeInventory:
    """In-memory inventory client.

    Lookups that have no configured answer return empty results. Any method
    name listed in ``failures`` raises ``UpstreamQueryFailure`` instead.
    """

    def __init__(
        self,
        instances=None,
        load_balancers=None,
        target_groups=None,
        target_health=None,
        target_security_groups=None,
        rules=None,
        command_output="",
        failures=(),
    ):
        self.instances = list(instances or [])
        self.load_balancers = list(load_balancers or [])
        self.target_groups = dict(target_groups or {})
        self.target_health = dict(target_health or {})
        self.target_security_groups = dict(target_security_groups or {})
        self.rules = dict(rules or {})
        self.command_output = command_output
        self.failures = set(failures)
        self.commands: list[tuple[str, str]] = []
        self.calls: list[str] = []

    def _enter(self, name):
        self.calls.append(name)
        if name in self.failures:
            raise UpstreamQueryFailure(name, "AccessDenied: not authorized")

    def list_instances(self):
        self._enter("list_instances")
        return list(self.instances)

    def describe_agent_status(self):
        self._enter("describe_agent_status")
        return {i.id: i.agent_status for i in self.instances}

    def list_load_balancers(self):
        self._enter("list_load_balancers")
        return list(self.load_balancers)

    def list_target_groups(self, load_balancer_arn):
        self._enter("list_target_groups")
        return list(self.target_groups.get(load_balancer_arn, []))

    def describe_target_health(self, target_group):
        self._enter("describe_target_health")
        return list(self.target_health.get(target_group.arn, []))

    def security_groups_for_target(self, target_id):
        self._enter("security_groups_for_target")
        return list(self.target_security_groups.get(target_id, []))

    def inbound_rules(self, group_ids):
        self._enter("inbound_rules")
        found = []
        for group_id in group_ids:
            found.extend(self.rules.get(group_id, []))
        return found

    def run_shell_command(self, instance_id, command):
        self._enter("run_shell_command")
        self.commands.append((instance_id, command))
        return self.command_output

    def start_instance(self, instance_id):
        self._enter("start_instance")

    def stop_instance(self, instance_id, force=False):
        self._enter("stop_instance")

    def modify_instance_type(self, instance_id, new_type):
        self._enter("modify_instance_type")

    def caller_identity(self):
        self._enter("caller_identity")
        return {"account": "123456789012", "arn": "arn:aws:iam::123456789012:user/test", "user_id": "AIDA"}


def make_instance(
    instance_id,
    name="",
    private_ip=None,
    public_ip=None,
    state=InstanceState.RUNNING,
    agent=AgentStatus.ONLINE,
    groups=(),
    instance_type="t3.micro",
):
    """Build an inventory instance with sensible defaults."""
    return Instance(
        id=instance_id,
        name=name,
        instance_type=instance_type,
        state=state,
        raw_state=state.value,
        private_ip=private_ip,
        public_ip=public_ip,
        agent_status=agent,
        security_groups=tuple(SecurityGroupRef(group_id=g) for g in groups),
    )


def tcp_rule(from_port, to_port, *sources):
    return SecurityGroupRule(
        protocol="tcp", from_port=from_port, to_port=to_port, source_group_ids=tuple(sources)
    )


@pytest.fixture
def config():
    """Config with short timeouts for fast tests."""
    return EngineConfig(
        port_wait_timeout=3.0,
        fallback_port_wait_timeout=2.0,
        port_poll_interval=0.05,
        port_connect_timeout=0.5,
        remote_probe_timeout=0.5,
        fallback_retry_delay=0,
        stop_grace_timeout=2.0,
        redetect_interval=15.0,
        tick_interval=0.01,
        command_poll_attempts=3,
        command_poll_interval=0,
    )


@pytest.fixture
def agent_config(config):
    """Config whose agent command runs the local fake agent script."""
    return config.model_copy(update={"agent_command": [sys.executable, str(FAKE_AGENT)]})


@pytest.fixture
def name_resolver():
    """Name resolver stub answering from a per-test mapping of host -> addresses."""
    from ipaddress import ip_address  # noqa: PLC0415

    answers: dict[str, list[str]] = {}
    resolver = Mock()
    resolver.answers = answers
    resolver.resolve.side_effect = lambda host: tuple(ip_address(a) for a in answers.get(host, []))
    resolver.resolve_local.side_effect = resolver.resolve.side_effect
    return resolver


@pytest.fixture
def load_balancer_inventory():
    """Inventory with one load balancer fronting two healthy IP targets.

    Only ``i-relay`` (in ``sg-relay``) may reach the targets on 8080.
    """
    lb = LoadBalancer(
        arn="arn:aws:elasticloadbalancing:us-east-1:123456789012:loadbalancer/app/internal/1",
        name="internal",
        dns_name="internal-lb.example.test",
    )
    group = TargetGroup(arn="arn:tg/web", name="web", port=8080)
    return FakeInventory(
        instances=[
            make_instance("i-other", "worker", private_ip="10.0.9.9", groups=["sg-other"]),
            make_instance("i-relay", "relay-1", private_ip="10.0.1.10", groups=["sg-relay"]),
        ],
        load_balancers=[lb],
        target_groups={lb.arn: [group]},
        target_health={
            group.arn: [
                LoadBalancerTarget(target_id="10.0.2.20", port=8080, health_state="healthy"),
                LoadBalancerTarget(target_id="10.0.2.21", port=8080, health_state="healthy"),
            ]
        },
        target_security_groups={"10.0.2.20": ["sg-web"], "10.0.2.21": ["sg-web"]},
        rules={"sg-web": [tcp_rule(8080, 8080, "sg-relay")]},
    )
