"""Unit tests for TunnelSupervisor with the agent and probes mocked out."""

import os
import socket
import sys
from unittest.mock import Mock, patch

import pytest
from structlog.testing import capture_logs

from ssm_tunnel.common.exceptions import (
    AgentLaunchError,
    AggregateFallbackFailure,
    PortAlreadyInUse,
    PortNeverOpened,
    RemoteUnreachable,
)
from ssm_tunnel.common.states import TunnelState
from ssm_tunnel.resolution.paths import BastionRelay, DirectInstance
from ssm_tunnel.tunnel.agent import AgentInvocation, ForwardingAgent
from ssm_tunnel.tunnel.models import TunnelHandle
from ssm_tunnel.tunnel.prober import _AgentProcess
from ssm_tunnel.tunnel.supervisor import TunnelSupervisor

MODULE = "ssm_tunnel.tunnel.supervisor"

DIRECT = DirectInstance(instance_id="i-web", display_name="web")


def relay(instance_id, host="app.internal", port=80):
    return BastionRelay(
        relay_instance_id=instance_id,
        relay_name=f"bastion-{instance_id}",
        target_host=host,
        target_port=port,
    )


@pytest.fixture
def agent():
    agent = Mock(spec=ForwardingAgent)
    agent.launch.return_value = 4242
    return agent


@pytest.fixture
def supervisor(config, agent):
    return TunnelSupervisor(config, agent=agent, prober=Mock())


@pytest.fixture
def probes():
    """Patch the socket probes; defaults describe a healthy tunnel."""
    with patch(f"{MODULE}.is_port_open", return_value=False) as is_open, patch(
        f"{MODULE}.wait_for_port", return_value=True
    ) as wait, patch(f"{MODULE}.probe_remote", return_value=12.5) as probe, patch(
        f"{MODULE}.terminate_process", return_value=True
    ) as terminate:
        yield Mock(is_open=is_open, wait=wait, probe=probe, terminate=terminate)


class TestStart:
    def test_direct_tunnel(self, supervisor, agent, probes):
        handle = supervisor.start(DIRECT, 8080, 80)

        agent.launch.assert_called_once_with("i-web", 8080, 80, None)
        assert handle.pid == 4242
        assert handle.local_port == 8080
        assert handle.remote_port == 80
        assert handle.instance_name == "web"
        assert handle.state == TunnelState.ACTIVE
        assert handle.reachable
        probes.terminate.assert_not_called()

    def test_logs_state_transitions(self, supervisor, probes):
        with capture_logs() as logs:
            supervisor.start(DIRECT, 8080, 80)

        states = [e["state"] for e in logs if e["event"] == "Tunnel state"]
        assert states == ["starting", "probing", "active"]

    def test_failure_logged_as_warning(self, supervisor, probes):
        probes.probe.return_value = None

        with capture_logs() as logs, pytest.raises(RemoteUnreachable):
            supervisor.start(DIRECT, 8080, 80)

        [failed] = [e for e in logs if e.get("state") == "failed"]
        assert failed["log_level"] == "warning"
        assert failed["reason"] == "remote unreachable"

    def test_relay_defaults_to_target_port(self, supervisor, agent, probes):
        handle = supervisor.start(relay("i-b1", "db.internal", 5432), 15432)

        agent.launch.assert_called_once_with("i-b1", 15432, 5432, "db.internal")
        assert handle.remote_host == "db.internal"
        assert handle.remote_port == 5432

    def test_direct_requires_remote_port(self, supervisor, agent, probes):
        with pytest.raises(ValueError, match="remote_port is required"):
            supervisor.start(DIRECT, 8080)
        agent.launch.assert_not_called()

    def test_rejects_unknown_path(self, supervisor, probes):
        with pytest.raises(TypeError):
            supervisor.start(object(), 8080, 80)  # type: ignore[arg-type]

    def test_port_in_use_refuses_before_launch(self, supervisor, agent, probes):
        probes.is_open.return_value = True

        with pytest.raises(PortAlreadyInUse):
            supervisor.start(DIRECT, 8080, 80)

        agent.launch.assert_not_called()

    def test_port_never_opened_terminates_agent(self, supervisor, probes):
        probes.wait.return_value = False

        with pytest.raises(PortNeverOpened) as exc_info:
            supervisor.start(DIRECT, 8080, 80, port_timeout=1.5)

        assert exc_info.value.pid == 4242
        assert exc_info.value.timeout == 1.5
        assert exc_info.value.failed_from == TunnelState.PROBING
        probes.terminate.assert_called_once_with(4242, supervisor.config.stop_grace_timeout)
        probes.probe.assert_not_called()

    def test_silent_remote_terminates_agent(self, supervisor, probes):
        probes.probe.return_value = None

        with pytest.raises(RemoteUnreachable) as exc_info:
            supervisor.start(DIRECT, 8080, 80)

        assert exc_info.value.failed_from == TunnelState.PROBING
        probes.terminate.assert_called_once_with(4242, supervisor.config.stop_grace_timeout)

    def test_launch_failure(self, supervisor, agent, probes):
        agent.launch.side_effect = AgentLaunchError(8080, "aws: not found")

        with pytest.raises(AgentLaunchError) as exc_info:
            supervisor.start(DIRECT, 8080, 80)

        assert exc_info.value.failed_from == TunnelState.STARTING
        probes.wait.assert_not_called()


def test_port_in_use_spawns_nothing(config):
    """A bound local port is refused without any process being created"""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.bind(("127.0.0.1", 0))
    server.listen(1)
    port = server.getsockname()[1]
    agent_config = config.model_copy(update={"agent_command": [sys.executable, "-c", "pass"]})

    try:
        with patch("subprocess.Popen") as mock_popen:
            with pytest.raises(PortAlreadyInUse):
                TunnelSupervisor(agent_config).start(DIRECT, port, 80)
        mock_popen.assert_not_called()
    finally:
        server.close()


class TestStartFirst:
    def handle(self, instance_id):
        return TunnelHandle(pid=77, local_port=8080, remote_port=80, instance_id=instance_id)

    def test_empty(self, supervisor):
        with pytest.raises(ValueError):
            supervisor.start_first([], 8080)

    def test_single_candidate_uses_normal_timeout(self, supervisor):
        with patch.object(supervisor, "start", return_value=self.handle("i-web")) as start:
            supervisor.start_first([DIRECT], 8080, 80)

        start.assert_called_once_with(DIRECT, 8080, 80)

    @patch(f"{MODULE}.time.sleep")
    def test_falls_through_to_working_bastion(self, mock_sleep, supervisor):
        candidates = [relay("i-b1"), relay("i-b2"), relay("i-b3")]
        outcomes = [
            PortNeverOpened(8080, 1, 2.0),
            RemoteUnreachable(8080, 2, 0.5),
            self.handle("i-b3"),
        ]

        with patch.object(supervisor, "start", side_effect=outcomes) as start:
            handle = supervisor.start_first(candidates, 8080)

        assert handle.instance_id == "i-b3"
        assert start.call_count == 3
        for call in start.call_args_list:
            assert call.kwargs["port_timeout"] == supervisor.config.fallback_port_wait_timeout
        assert mock_sleep.call_count == 2

    @patch(f"{MODULE}.time.sleep")
    def test_all_bastions_fail(self, mock_sleep, supervisor):
        candidates = [relay("i-b1", "app.internal", 443), relay("i-b2", "app.internal", 443)]
        failures = [AgentLaunchError(8443, "boom"), RemoteUnreachable(8443, 2, 0.5)]

        with patch.object(supervisor, "start", side_effect=failures):
            with pytest.raises(AggregateFallbackFailure) as exc_info:
                supervisor.start_first(candidates, 8443)

        err = exc_info.value
        assert err.attempts == 2
        assert err.host == "app.internal"
        assert err.port == 443
        assert str(err) == "All 2 bastion(s) failed to tunnel to app.internal:443"
        assert mock_sleep.call_count == 1

    def test_port_in_use_is_not_retried(self, supervisor):
        with patch.object(supervisor, "start", side_effect=PortAlreadyInUse(8080)) as start:
            with pytest.raises(PortAlreadyInUse):
                supervisor.start_first([relay("i-b1"), relay("i-b2")], 8080)

        assert start.call_count == 1


class TestStop:
    def test_stop_handle_marks_stopped(self, supervisor):
        handle = TunnelHandle(pid=55, local_port=8080)
        with patch(f"{MODULE}.terminate_process", return_value=True):
            assert supervisor.stop_handle(handle).state == TunnelState.STOPPED

    def test_stop_handle_keeps_state_when_process_survives(self, supervisor):
        handle = TunnelHandle(pid=55, local_port=8080)
        with patch(f"{MODULE}.terminate_process", return_value=False):
            assert supervisor.stop_handle(handle).state == TunnelState.ACTIVE

    def test_stop_all_sweeps_leftover_plugins(self, supervisor):
        supervisor.prober.scan.return_value = [
            _AgentProcess(
                pid=100,
                ppid=1,
                launcher=True,
                invocation=AgentInvocation(target="i-1", local_port=8080),
            )
        ]
        leftovers = [
            Mock(pid=100, info={"cmdline": ["aws", "ssm", "start-session"]}),
            Mock(pid=200, info={"cmdline": ["/usr/bin/session-manager-plugin", "{}"]}),
            Mock(pid=300, info={"cmdline": ["vim", "notes.txt"]}),
            Mock(pid=os.getpid(), info={"cmdline": ["pytest", "session-manager-plugin"]}),
        ]

        with patch(f"{MODULE}.terminate_process", return_value=True) as terminate, patch(
            f"{MODULE}.psutil.process_iter", return_value=leftovers
        ):
            assert supervisor.stop_all() == 2

        assert [c.args[0] for c in terminate.call_args_list] == [100, 200]
