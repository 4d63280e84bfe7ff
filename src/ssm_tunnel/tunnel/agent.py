"""Forwarding agent invocation: launch command and its parameter codec.

The same JSON parameter document passed at launch is what the process
table prober reads back from running processes.
"""

import json
import logging
import os
import subprocess
from dataclasses import dataclass
from typing import Any

from ..common.config import EngineConfig
from ..common.exceptions import AgentLaunchError
from ..common.utils import first_value, parse_port, validate_port

logger = logging.getLogger(__name__)

DIRECT_DOCUMENT = "AWS-StartPortForwardingSession"
REMOTE_HOST_DOCUMENT = "AWS-StartPortForwardingSessionToRemoteHost"


@dataclass(frozen=True)
class AgentInvocation:
    """Launch parameters recovered from (or destined for) an agent process."""

    target: str
    local_port: int
    remote_port: int | None = None
    host: str | None = None


def encode_parameters(local_port: int, remote_port: int, host: str | None = None) -> str:
    """Encode port-forwarding parameters as the agent expects them."""
    params: dict[str, list[str]] = {}
    if host:
        params["host"] = [host]
    params["portNumber"] = [str(remote_port)]
    params["localPortNumber"] = [str(local_port)]
    return json.dumps(params, separators=(",", ":"))


def _json_objects(argv: list[str]) -> list[dict[str, Any]]:
    objects: list[dict[str, Any]] = []
    for arg in argv:
        text = arg.strip()
        if not text.startswith("{"):
            continue
        try:
            value = json.loads(text)
        except ValueError:
            continue
        if isinstance(value, dict):
            objects.append(value)
    return objects


def parse_invocation(argv: list[str]) -> AgentInvocation | None:
    """Recover launch parameters from an agent process command line.

    Parameters may sit at the top level of a JSON argument or be nested under
    ``Parameters``; the target comes from ``--target`` or a ``Target`` key.

    Returns:
        The invocation, or None when no local port can be found
    """
    target = ""
    local_port: int | None = None
    remote_port: int | None = None
    host: str | None = None

    for flag, value in zip(argv, argv[1:]):
        if flag == "--target":
            target = value

    for obj in _json_objects(argv):
        if isinstance(obj.get("Target"), str):
            target = obj["Target"]
        params = obj.get("Parameters")
        if not isinstance(params, dict):
            params = obj
        local_port = parse_port(first_value(params, "localPortNumber")) or local_port
        remote_port = parse_port(first_value(params, "portNumber")) or remote_port
        host = first_value(params, "host") or host

    if local_port is None:
        return None
    return AgentInvocation(target=target, local_port=local_port, remote_port=remote_port, host=host)


class ForwardingAgent:
    """Launches port-forwarding sessions through the SSM agent tooling."""

    def __init__(self, config: EngineConfig):
        self.config = config

    def build_command(
        self, target: str, local_port: int, remote_port: int, host: str | None = None
    ) -> list[str]:
        """Build the launch command line.

        Args:
            target: Instance id the session is opened against
            local_port: Loopback port to listen on
            remote_port: Port on the target (or on ``host`` in relay mode)
            host: Remote host the target relays to; None for direct mode
        """
        validate_port(local_port, "Local port")
        validate_port(remote_port, "Remote port")
        document = REMOTE_HOST_DOCUMENT if host else DIRECT_DOCUMENT
        return [
            *self.config.agent_command,
            *self.config.profile_args(),
            "ssm",
            "start-session",
            "--target",
            target,
            "--document-name",
            document,
            "--parameters",
            encode_parameters(local_port, remote_port, host),
        ]

    def launch(
        self, target: str, local_port: int, remote_port: int, host: str | None = None
    ) -> int:
        """Spawn a detached agent process and hand it over to the OS.

        The engine keeps only the pid: the process runs in its own session
        and is found again through the process table.

        Returns:
            Process id of the spawned agent

        Raises:
            AgentLaunchError: If the process cannot be spawned
        """
        command = self.build_command(target, local_port, remote_port, host)
        logger.debug(f"Launching forwarding agent: {' '.join(command)}")
        try:
            process = subprocess.Popen(
                command,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
                close_fds=True,
                env=os.environ.copy(),
            )
        except OSError as e:
            logger.error(f"Failed to launch forwarding agent for port {local_port}: {e}")
            raise AgentLaunchError(local_port, str(e)) from e

        logger.info(
            f"Forwarding agent started pid={process.pid} target={target} "
            f"localhost:{local_port} -> {host or target}:{remote_port}"
        )
        return process.pid

    def is_launcher(self, argv: list[str]) -> bool:
        """True for the ``... ssm start-session ...`` launcher process."""
        return any(a == "ssm" and b == "start-session" for a, b in zip(argv, argv[1:]))

    def is_plugin(self, argv: list[str]) -> bool:
        """True for the session plugin process the launcher spawns."""
        name = self.config.agent_plugin_name
        return any(os.path.basename(arg) == name for arg in argv[:2])

    def matches(self, argv: list[str]) -> bool:
        return self.is_launcher(argv) or self.is_plugin(argv)
