"""Tunnel lifecycle: start, probe, fall back across candidates, stop."""

import os
import time
from collections.abc import Sequence

import psutil

from ..common.config import EngineConfig
from ..common.exceptions import (
    AgentLaunchError,
    AggregateFallbackFailure,
    PortAlreadyInUse,
    PortNeverOpened,
    RemoteUnreachable,
)
from ..common.logging import get_logger
from ..common.states import TunnelState
from ..common.utils import validate_port
from ..resolution.paths import BastionRelay, DirectInstance, ResolutionPath
from .agent import ForwardingAgent
from .models import TunnelHandle
from .probe import is_port_open, probe_remote, wait_for_port
from .process import terminate_process
from .prober import ProcessTableProber

logger = get_logger(__name__)


class TunnelSupervisor:
    """Starts forwarding sessions and confirms them reachable end to end.

    A started agent is detached and owned by the OS; the supervisor keeps no
    handle beyond the pid. If a session cannot be confirmed, its process is
    terminated before the failure is raised so no silently broken tunnel is
    left behind.
    """

    def __init__(
        self,
        config: EngineConfig,
        agent: ForwardingAgent | None = None,
        prober: ProcessTableProber | None = None,
    ):
        self.config = config
        self.agent = agent or ForwardingAgent(config)
        self.prober = prober or ProcessTableProber(config, self.agent)

    def start(
        self,
        path: ResolutionPath,
        local_port: int,
        remote_port: int | None = None,
        *,
        port_timeout: float | None = None,
    ) -> TunnelHandle:
        """Start a tunnel along ``path`` and wait until it is confirmed.

        Args:
            path: Resolved path to forward along
            local_port: Loopback port to listen on
            remote_port: Remote port; required for ``DirectInstance``,
                defaults to the relay's target port for ``BastionRelay``
            port_timeout: Seconds to wait for the local port to open

        Returns:
            Active tunnel handle with measured latency

        Raises:
            PortAlreadyInUse: If the local port already accepts connections
            AgentLaunchError: If the agent could not be spawned
            PortNeverOpened: If the local port did not open in time
            RemoteUnreachable: If the remote end never answered the probe
        """
        validate_port(local_port, "Local port")

        if isinstance(path, DirectInstance):
            if remote_port is None:
                raise ValueError("remote_port is required for a direct instance tunnel")
            target, host, name = path.instance_id, None, path.display_name
        elif isinstance(path, BastionRelay):
            remote_port = remote_port or path.target_port
            target, host, name = path.relay_instance_id, path.target_host, path.relay_name
        else:
            raise TypeError(f"Unsupported resolution path: {type(path).__name__}")

        if is_port_open(local_port, self.config.port_connect_timeout):
            logger.warning("Local port already in use", local_port=local_port)
            raise PortAlreadyInUse(local_port)

        self._transition(TunnelState.STARTING, local_port, target=target, host=host)
        try:
            pid = self.agent.launch(target, local_port, remote_port, host)
        except AgentLaunchError:
            self._transition(TunnelState.FAILED, local_port, failed_from=TunnelState.STARTING)
            raise

        timeout = port_timeout if port_timeout is not None else self.config.port_wait_timeout
        latency = self._confirm(pid, local_port, timeout)

        handle = TunnelHandle(
            pid=pid,
            local_port=local_port,
            remote_port=remote_port,
            remote_host=host,
            instance_id=target,
            instance_name=name or target,
            port_open=True,
            latency_ms=latency,
            state=TunnelState.ACTIVE,
        )
        logger.info("Tunnel active", **handle.describe())
        return handle

    def start_first(
        self,
        candidates: Sequence[ResolutionPath],
        local_port: int,
        remote_port: int | None = None,
    ) -> TunnelHandle:
        """Start along the first candidate that works.

        A single candidate is started with the normal timeout. Several
        candidates (the multi-bastion fallback) are tried in order with the
        shorter fallback timeout, pausing between failed attempts.

        Raises:
            ValueError: If ``candidates`` is empty
            AggregateFallbackFailure: If every candidate failed
        """
        if not candidates:
            raise ValueError("No resolution candidates to start")
        if len(candidates) == 1:
            return self.start(candidates[0], local_port, remote_port)

        for attempt, candidate in enumerate(candidates, start=1):
            try:
                return self.start(
                    candidate,
                    local_port,
                    remote_port,
                    port_timeout=self.config.fallback_port_wait_timeout,
                )
            except (AgentLaunchError, PortNeverOpened, RemoteUnreachable) as e:
                logger.warning(
                    "Candidate failed, trying next",
                    attempt=attempt,
                    of=len(candidates),
                    relay=candidate.label,
                    error=str(e),
                )
                if attempt < len(candidates):
                    time.sleep(self.config.fallback_retry_delay)

        first = candidates[0]
        if isinstance(first, BastionRelay):
            host, port = first.target_host, remote_port or first.target_port
        else:
            host, port = first.label, remote_port or 0
        raise AggregateFallbackFailure(host, port, len(candidates), local_port)

    def stop(self, pid: int) -> bool:
        """Terminate the agent process ``pid`` and its children."""
        stopped = terminate_process(pid, self.config.stop_grace_timeout)
        if stopped:
            logger.info("Tunnel state", state=TunnelState.STOPPED.value, pid=pid)
        return stopped

    def stop_handle(self, handle: TunnelHandle) -> TunnelHandle:
        """Stop a handle's process; the handle is only marked stopped once it is gone."""
        if not self.stop(handle.pid):
            logger.error("Tunnel process still running", pid=handle.pid)
            return handle
        return handle.with_state(TunnelState.STOPPED)

    def stop_all(self) -> int:
        """Stop every detected tunnel, then sweep any remaining agent processes.

        The sweep matches on the plugin name so sessions this engine did not
        start, or could not parse, are also stopped.

        Returns:
            Number of processes signalled
        """
        stopped: set[int] = set()
        for agent_proc in self.prober.scan():
            terminate_process(agent_proc.pid, self.config.stop_grace_timeout)
            stopped.add(agent_proc.pid)

        plugin = self.config.agent_plugin_name
        own_pid = os.getpid()
        for proc in psutil.process_iter(["pid", "cmdline"]):
            try:
                argv = proc.info.get("cmdline") or []
                if proc.pid == own_pid or proc.pid in stopped:
                    continue
                if not any(plugin in arg for arg in argv):
                    continue
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue
            terminate_process(proc.pid, self.config.stop_grace_timeout)
            stopped.add(proc.pid)

        logger.info("Stopped all tunnels", signalled=len(stopped))
        return len(stopped)

    def _confirm(self, pid: int, local_port: int, timeout: float) -> float:
        self._transition(TunnelState.PROBING, local_port, pid=pid, timeout=timeout)

        if not wait_for_port(
            local_port,
            timeout,
            interval=self.config.port_poll_interval,
            connect_timeout=self.config.port_connect_timeout,
        ):
            terminate_process(pid, self.config.stop_grace_timeout)
            self._transition(TunnelState.FAILED, local_port, pid=pid, reason="port never opened")
            raise PortNeverOpened(local_port, pid, timeout)

        latency = probe_remote(local_port, self.config.remote_probe_timeout)
        if latency is None:
            terminate_process(pid, self.config.stop_grace_timeout)
            self._transition(TunnelState.FAILED, local_port, pid=pid, reason="remote unreachable")
            raise RemoteUnreachable(local_port, pid, self.config.remote_probe_timeout)

        self._transition(TunnelState.ACTIVE, local_port, pid=pid, latency_ms=round(latency, 1))
        return latency

    @staticmethod
    def _transition(state: TunnelState, local_port: int, **context: object) -> None:
        context = {k: v.value if isinstance(v, TunnelState) else v for k, v in context.items()}
        if state == TunnelState.FAILED:
            logger.warning("Tunnel state", state=state.value, local_port=local_port, **context)
        else:
            logger.info("Tunnel state", state=state.value, local_port=local_port, **context)
