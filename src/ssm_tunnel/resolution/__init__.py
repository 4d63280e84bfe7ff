"""Hostname to reachable-endpoint resolution."""

from .dns import Address, NameResolver
from .hops import HopSelector, allowed_source_groups
from .paths import BastionRelay, DirectInstance, RelayRoute, ResolutionPath
from .report import resolution_report
from .resolver import PathResolver, find_instance_by_name, online_bastions

__all__ = [
    "Address",
    "NameResolver",
    "HopSelector",
    "allowed_source_groups",
    "BastionRelay",
    "DirectInstance",
    "RelayRoute",
    "ResolutionPath",
    "PathResolver",
    "find_instance_by_name",
    "online_bastions",
    "resolution_report",
]
