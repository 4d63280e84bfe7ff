"""Discovery of forwarding sessions from the OS process table."""

from dataclasses import dataclass

import psutil

from ..common.config import EngineConfig
from ..common.logging import get_logger
from ..common.states import TunnelState
from .agent import AgentInvocation, ForwardingAgent, parse_invocation
from .models import TunnelHandle
from .probe import is_port_open, probe_remote

logger = get_logger(__name__)


@dataclass(frozen=True)
class _AgentProcess:
    pid: int
    ppid: int
    launcher: bool
    invocation: AgentInvocation


class ProcessTableProber:
    """Reconstructs tunnel handles from running agent processes.

    No state is persisted: every call scans the process table and re-probes
    each session, so tunnels started by an earlier invocation are found too.
    """

    def __init__(self, config: EngineConfig, agent: ForwardingAgent | None = None):
        self.config = config
        self.agent = agent or ForwardingAgent(config)

    def scan(self) -> list[_AgentProcess]:
        """Agent processes with parsable launch parameters."""
        found: list[_AgentProcess] = []
        for proc in psutil.process_iter(["pid", "ppid", "cmdline", "status"]):
            try:
                info = proc.info
                if info.get("status") == psutil.STATUS_ZOMBIE:
                    continue
                argv = info.get("cmdline") or []
                if not argv or not self.agent.matches(argv):
                    continue
                invocation = parse_invocation(argv)
                if invocation is None:
                    continue
                found.append(
                    _AgentProcess(
                        pid=info["pid"],
                        ppid=info.get("ppid") or 0,
                        launcher=self.agent.is_launcher(argv),
                        invocation=invocation,
                    )
                )
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                continue

        # A plugin spawned by a known launcher belongs to the launcher's session
        launchers = {p.pid for p in found if p.launcher}
        return [p for p in found if p.launcher or p.ppid not in launchers]

    def detect_active_tunnels(self) -> list[TunnelHandle]:
        """Scan for agent processes and probe each one's current reachability."""
        handles: list[TunnelHandle] = []
        for agent_proc in self.scan():
            inv = agent_proc.invocation
            port_open = is_port_open(inv.local_port, self.config.port_connect_timeout)
            latency = (
                probe_remote(inv.local_port, self.config.remote_probe_timeout)
                if port_open
                else None
            )
            handle = TunnelHandle(
                pid=agent_proc.pid,
                local_port=inv.local_port,
                remote_port=inv.remote_port,
                remote_host=inv.host,
                instance_id=inv.target,
                instance_name=inv.host or inv.target,
                port_open=port_open,
                latency_ms=latency,
                state=TunnelState.ACTIVE if latency is not None else TunnelState.FAILED,
            )
            logger.debug("Detected tunnel", **handle.describe())
            handles.append(handle)

        logger.info("Detected active tunnels", count=len(handles))
        return handles

    def find(self, pid: int) -> TunnelHandle | None:
        """Detected handle for ``pid``, if it is still running."""
        for handle in self.detect_active_tunnels():
            if handle.pid == pid:
                return handle
        return None
