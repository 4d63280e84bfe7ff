"""Local port polling and end-to-end remote probing."""

import socket
import time

from ..common.logging import get_logger

logger = get_logger(__name__)

LOOPBACK = "127.0.0.1"

# HEAD forces an HTTP server to answer; other services send a banner or reset.
PROBE_PAYLOAD = b"HEAD / HTTP/1.0\r\nHost: localhost\r\nConnection: close\r\n\r\n"


def is_port_open(port: int, timeout: float = 1.0) -> bool:
    """True if something accepts TCP connections on the loopback port."""
    try:
        with socket.create_connection((LOOPBACK, port), timeout=timeout):
            return True
    except OSError:
        return False


def wait_for_port(
    port: int, timeout: float, interval: float = 0.5, connect_timeout: float = 1.0
) -> bool:
    """Poll the loopback port until it accepts or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while True:
        if is_port_open(port, connect_timeout):
            return True
        if time.monotonic() >= deadline:
            return False
        time.sleep(interval)


def probe_remote(port: int, timeout: float = 5.0) -> float | None:
    """Push a probe through the tunnel and time the first reaction.

    Data, EOF and a connection reset all mean the remote end responded,
    because the local agent only relays them once the far side acts.

    Returns:
        Round-trip latency in milliseconds, or None if nothing came back
        within ``timeout`` (remote unreachable)
    """
    try:
        sock = socket.create_connection((LOOPBACK, port), timeout=timeout)
    except OSError as e:
        logger.debug("Probe connect failed", port=port, error=str(e))
        return None

    with sock:
        sock.settimeout(timeout)
        started = time.monotonic()
        try:
            sock.sendall(PROBE_PAYLOAD)
            sock.recv(16)
        except socket.timeout:
            logger.debug("Probe timed out", port=port, timeout=timeout)
            return None
        except (ConnectionResetError, ConnectionAbortedError, BrokenPipeError):
            pass
        except OSError as e:
            logger.debug("Probe failed", port=port, error=str(e))
            return None
        return (time.monotonic() - started) * 1000.0
