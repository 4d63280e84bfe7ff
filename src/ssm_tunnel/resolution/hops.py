"""Relay selection over the security-group permission graph."""

from collections.abc import Iterable, Sequence

from ..common.exceptions import NoHopAvailable
from ..common.logging import get_logger
from ..inventory.interfaces import InventoryClient
from ..inventory.models import Instance, SecurityGroupRule

logger = get_logger(__name__)


def allowed_source_groups(rules: Iterable[SecurityGroupRule], port: int) -> list[str]:
    """Source security groups permitted to reach ``port``.

    A rule matches when its protocol is the ``any`` sentinel or the port lies
    within ``[from, to]``. Order is first-seen, duplicates removed.
    """
    allowed: list[str] = []
    for rule in rules:
        if not rule.allows_port(port):
            continue
        for group_id in rule.source_group_ids:
            if group_id not in allowed:
                allowed.append(group_id)
    return allowed


class HopSelector:
    """Finds an already-connected relay that is a member of a permitted group."""

    def __init__(self, inventory: InventoryClient):
        self.inventory = inventory

    def find_hop(
        self,
        allowed_source_group_ids: Iterable[str],
        instances: Sequence[Instance] | None = None,
    ) -> Instance | None:
        """Return the first running, agent-online member of any allowed group.

        Args:
            allowed_source_group_ids: Security groups permitted as source
            instances: Inventory snapshot to scan; fetched when omitted

        Returns:
            The first qualifying instance in inventory order, or None
        """
        allowed = set(allowed_source_group_ids)
        if not allowed:
            return None

        if instances is None:
            instances = self.inventory.list_instances()

        for instance in instances:
            if not instance.can_relay():
                continue
            if allowed.intersection(instance.security_group_ids):
                logger.debug(
                    "Selected relay",
                    instance_id=instance.id,
                    name=instance.name,
                    allowed_groups=sorted(allowed),
                )
                return instance
        return None

    def require_hop(
        self,
        target: str,
        port: int,
        allowed_source_group_ids: Sequence[str],
        instances: Sequence[Instance] | None = None,
    ) -> Instance:
        """Like ``find_hop`` but raises ``NoHopAvailable`` when nothing qualifies."""
        hop = self.find_hop(allowed_source_group_ids, instances)
        if hop is None:
            raise NoHopAvailable(target, port, list(allowed_source_group_ids))
        return hop
