import ssl
import threading
import time
from http.server import BaseHTTPRequestHandler

import httpx
import pytest
from conftest import Servers, call_within, respond

from engine_client import CancelledError, Endpoint, TLSConfig
from engine_client.cancel import CallGuard
from engine_client.transport import Dialer, HttpTransport, SocketDialer


def ok(request: BaseHTTPRequestHandler) -> None:
    respond(request, 200, b"ok")


@pytest.mark.parametrize(("raw", "kind"), [("tcp://localhost:2375", "tcp"), ("unix:///run/engine.sock", "unix")])
def test_socket_dialer_kind(raw: str, kind: str) -> None:
    dialer = SocketDialer(Endpoint.parse(raw))
    assert isinstance(dialer, Dialer)
    assert dialer.kind == kind


def test_unix_dial_secure_stays_plain(servers: Servers, client_tls: TLSConfig) -> None:
    endpoint = Endpoint.parse(servers.http(ok, kind="unix"), tls=True)
    sock = SocketDialer(endpoint, ssl_context=client_tls.ssl_context()).dial_secure(1)
    try:
        assert not isinstance(sock, ssl.SSLSocket)
    finally:
        sock.close()


def test_tls_dial_secure_wraps_socket(servers: Servers, client_tls: TLSConfig) -> None:
    endpoint = Endpoint.parse(servers.http(ok, kind="tls"), tls=True)
    sock = SocketDialer(endpoint, ssl_context=client_tls.ssl_context()).dial_secure(1)
    try:
        assert isinstance(sock, ssl.SSLSocket)
    finally:
        sock.close()


def test_http_transport_routes_placeholder_host_to_socket(servers: Servers) -> None:
    endpoint = Endpoint.parse(servers.http(ok, kind="unix"))
    transport = HttpTransport(SocketDialer(endpoint))
    try:
        request = transport.build_request("GET", endpoint.request_url_for("/_ping"))
        assert request.url.host == "unix.sock"
        assert transport.send(request).text == "ok"
    finally:
        transport.close()


def test_http_transport_maps_connection_failures() -> None:
    endpoint = Endpoint.parse("tcp://127.0.0.1:1")
    transport = HttpTransport(SocketDialer(endpoint), timeout=1)
    try:
        with pytest.raises(httpx.ConnectError):
            transport.send(transport.build_request("GET", endpoint.url_for("/_ping")))
    finally:
        transport.close()


def test_dial_gives_up_when_guard_is_interrupted(full_backlog: str) -> None:
    guard = CallGuard()
    threading.Timer(0.1, guard.interrupt, args=(CancelledError(),)).start()
    dialer = SocketDialer(Endpoint.parse(full_backlog))
    started = time.monotonic()
    with pytest.raises(ConnectionAbortedError):
        call_within(2, lambda: dialer.dial(guard=guard))
    assert time.monotonic() - started < 1


def test_dial_times_out_on_full_backlog(full_backlog: str) -> None:
    dialer = SocketDialer(Endpoint.parse(full_backlog))
    with pytest.raises(TimeoutError):
        call_within(2, lambda: dialer.dial(0.1))


def test_dial_registers_connection_with_guard(servers: Servers) -> None:
    guard = CallGuard()
    sock = SocketDialer(Endpoint.parse(servers.http(ok, kind="unix"))).dial(1, guard=guard)
    try:
        guard.interrupt(CancelledError())
        assert sock.recv(1) == b""
    finally:
        sock.close()
