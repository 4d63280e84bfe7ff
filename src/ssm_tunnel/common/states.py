"""Tunnel lifecycle states."""

from enum import Enum


class TunnelState(str, Enum):
    """Tunnel lifecycle state.

    ``STARTING -> PROBING -> ACTIVE -> STOPPED``; ``FAILED`` is terminal and
    reachable from ``STARTING`` or ``PROBING`` only.
    """

    STARTING = "starting"
    PROBING = "probing"
    ACTIVE = "active"
    STOPPED = "stopped"
    FAILED = "failed"
