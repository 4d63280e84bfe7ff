"""Utility functions shared across the tunnel engine."""

from typing import Any
from urllib.parse import SplitResult, urlsplit

# Port range constants
MIN_PORT = 1
MAX_PORT = 65535

HTTP_PORT = 80
HTTPS_PORT = 443


def validate_port(port: int, port_name: str = "Port") -> None:
    """Validate port number range.

    Args:
        port: Port number to validate
        port_name: Name of the port for error messages

    Raises:
        ValueError: If port is not in valid range (1-65535)
    """
    if isinstance(port, bool) or not isinstance(port, int) or not (MIN_PORT <= port <= MAX_PORT):
        raise ValueError(f"{port_name} must be between {MIN_PORT} and {MAX_PORT}")


def validate_non_empty_string(value: str, field_name: str) -> str:
    """Strip ``value`` and reject it if nothing is left.

    Raises:
        ValueError: If the value is empty or only whitespace
    """
    stripped = (value or "").strip()
    if not stripped:
        raise ValueError(f"{field_name} cannot be empty")
    return stripped


def _split_url(value: str) -> SplitResult | None:
    text = value.strip()
    if "://" not in text:
        text = f"//{text}"
    try:
        return urlsplit(text)
    except ValueError:
        return None


def strip_url_to_host(value: str) -> str:
    """Reduce a URL or ``host[:port][/path]`` string to the bare hostname.

    Examples:
        >>> strip_url_to_host("https://app.example.test:8443/health")
        'app.example.test'
        >>> strip_url_to_host("[fd00::1]:80")
        'fd00::1'
    """
    parts = _split_url(value)
    host = parts.hostname if parts is not None else None
    return host or value.strip()


def default_port_for_url(value: str) -> int:
    """Port named in the URL, else 443 for ``https`` and 80 for everything else."""
    parts = _split_url(value)
    if parts is None:
        return HTTP_PORT
    try:
        port = parts.port
    except ValueError:
        port = None
    if port:
        return port
    return HTTPS_PORT if parts.scheme == "https" else HTTP_PORT


def first_value(params: dict[str, Any], key: str) -> str | None:
    """Return the first element of a list-valued agent parameter.

    Forwarding-agent parameters are encoded as ``{"key": ["value"]}``; a bare
    scalar is tolerated.
    """
    value = params.get(key)
    if isinstance(value, list):
        value = value[0] if value else None
    if value is None:
        return None
    return str(value)


def parse_port(value: str | None) -> int | None:
    """Parse a port number, returning None for anything out of range."""
    if value is None:
        return None
    try:
        port = int(value)
    except (TypeError, ValueError):
        return None
    if not (MIN_PORT <= port <= MAX_PORT):
        return None
    return port
