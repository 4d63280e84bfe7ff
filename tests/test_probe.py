"""Tests for local port polling and remote probing, on real loopback sockets."""

import socket
import threading

import pytest

from ssm_tunnel.tunnel.probe import is_port_open, probe_remote, wait_for_port

from conftest import free_port


@pytest.fixture
def listener():
    """Listening socket; the test decides how connections are handled."""
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    server.bind(("127.0.0.1", 0))
    server.listen(8)
    yield server
    server.close()


def serve_once(server, handler):
    def _run():
        conn, _ = server.accept()
        with conn:
            handler(conn)

    thread = threading.Thread(target=_run, daemon=True)
    thread.start()
    return thread


def test_is_port_open(listener):
    assert is_port_open(listener.getsockname()[1], timeout=0.5)


def test_is_port_closed():
    assert not is_port_open(free_port(), timeout=0.5)


def test_wait_for_port_gives_up():
    assert not wait_for_port(free_port(), timeout=0.2, interval=0.05, connect_timeout=0.1)


def test_wait_for_port_sees_late_listener():
    port = free_port()
    server = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    server.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

    def open_later():
        server.bind(("127.0.0.1", port))
        server.listen(1)

    timer = threading.Timer(0.2, open_later)
    timer.start()
    try:
        assert wait_for_port(port, timeout=3.0, interval=0.05, connect_timeout=0.2)
    finally:
        timer.cancel()
        server.close()


def test_probe_measures_response(listener):
    def reply(conn):
        conn.recv(1024)
        conn.sendall(b"HTTP/1.0 200 OK\r\n\r\n")

    serve_once(listener, reply)
    latency = probe_remote(listener.getsockname()[1], timeout=2.0)

    assert latency is not None
    assert latency >= 0


def test_probe_counts_close_as_response(listener):
    serve_once(listener, lambda conn: conn.recv(1024))

    assert probe_remote(listener.getsockname()[1], timeout=2.0) is not None


def test_probe_silent_remote_is_unreachable(listener):
    release = threading.Event()
    serve_once(listener, lambda conn: release.wait(3.0))

    try:
        assert probe_remote(listener.getsockname()[1], timeout=0.3) is None
    finally:
        release.set()


def test_probe_closed_port_is_unreachable():
    assert probe_remote(free_port(), timeout=0.3) is None
