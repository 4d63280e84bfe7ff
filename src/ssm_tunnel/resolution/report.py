"""Human-readable diagnosis of how a hostname would be reached."""

import shlex
from ipaddress import ip_address

from ..common.config import EngineConfig
from ..common.exceptions import UpstreamQueryFailure
from ..common.logging import get_logger
from ..common.utils import strip_url_to_host
from ..inventory.interfaces import InventoryClient
from .dns import NameResolver
from .resolver import online_bastions

logger = get_logger(__name__)

RELAY_LOOKUP_FAILED = "FAIL"


def relay_lookup_command(host: str) -> str:
    """Shell snippet resolving ``host`` from inside a relay instance."""
    quoted = shlex.quote(host)
    return (
        f"dig +short {quoted} 2>/dev/null || "
        f"host {quoted} 2>/dev/null | awk '/has address/{{print $4}}' || "
        f"echo {RELAY_LOOKUP_FAILED}"
    )


def resolution_report(
    host_or_url: str,
    config: EngineConfig,
    inventory: InventoryClient,
    name_resolver: NameResolver | None = None,
) -> str:
    """Build a multi-line report of the DNS and inventory view of a host.

    Relay-side lookup failures end up in the text; only the inventory
    listing failing raises.

    Raises:
        UpstreamQueryFailure: If instances cannot be listed
    """
    resolver = name_resolver or NameResolver(config)
    host = strip_url_to_host(host_or_url)
    lines = [f"Resolving: {host}"]

    addresses = resolver.resolve_local(host)
    if addresses:
        lines.append(f"  DNS (local): {', '.join(str(a) for a in addresses)}")
    else:
        lines.append("  DNS (local): not resolvable, likely an internal hostname")

    instances = inventory.list_instances()
    bastions = online_bastions(instances, config.bastion_marker)

    direct_match = False
    for address in addresses:
        for instance in instances:
            if not instance.has_address(str(address)):
                continue
            direct_match = True
            lines.append("")
            lines.append(f"  EC2 match: {instance.name} ({instance.id})")
            lines.append(
                f"    type={instance.instance_type} state={instance.state_label} "
                f"agent={instance.agent_status.value}"
            )

    if direct_match:
        return "\n".join(lines)

    if not bastions:
        lines.append("")
        lines.append("  No agent-online bastions found to try remote resolution.")
        return "\n".join(lines)

    lines.append("")
    lines.append("  No direct EC2 IP match.")

    bastion = bastions[0]
    lines.append("")
    lines.append(f"  Trying resolution via bastion: {bastion.name} ({bastion.id})")
    try:
        output = inventory.run_shell_command(bastion.id, relay_lookup_command(host))
    except UpstreamQueryFailure as e:
        logger.warning("Relay-side resolution failed", relay=bastion.id, error=str(e))
        lines.append(f"  Bastion resolution failed: {e}")
    else:
        if output and output != RELAY_LOOKUP_FAILED:
            lines.append(f"  DNS (from bastion): {output.splitlines()[0]}")
            for raw in output.splitlines():
                candidate = raw.strip()
                try:
                    ip_address(candidate)
                except ValueError:
                    continue
                for instance in instances:
                    if instance.private_ip == candidate:
                        lines.append(
                            f"  EC2 match: {instance.name} ({instance.id}), reachable via bastion"
                        )
        else:
            lines.append(f"  Bastion could not resolve {host} either (not in VPC DNS?)")

    lines.append("")
    lines.append("  Available agent-online bastions:")
    for b in bastions:
        lines.append(f"    * {b.name} ({b.id})")
    lines.append("")
    lines.append(f"  Tunnel suggestion: tunnel-url {host_or_url} <local_port>")
    return "\n".join(lines)
