from __future__ import annotations

import os
import shutil
import socket
import socketserver
import ssl
import tempfile
import threading
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from typing import Any, Callable, Iterator

import pytest

from engine_client import TLSConfig
from engine_client.stdcopy import STDERR, STDOUT, encode_frame

DATA_DIR = Path(__file__).parent / "data"

Handler = Callable[[BaseHTTPRequestHandler], None]


class UnixHTTPServer(socketserver.ThreadingMixIn, socketserver.UnixStreamServer):
    daemon_threads = True


class UnixRawServer(socketserver.ThreadingMixIn, socketserver.UnixStreamServer):
    daemon_threads = True


class TCPRawServer(socketserver.ThreadingMixIn, socketserver.TCPServer):
    daemon_threads = True
    allow_reuse_address = True


def _handler_class(handler: Handler, requests: list[tuple[str, str]], lock: threading.Lock) -> type:
    class RequestHandler(BaseHTTPRequestHandler):
        def _dispatch(self) -> None:
            with lock:
                requests.append((self.command, self.path))
            try:
                handler(self)
            except (BrokenPipeError, ConnectionResetError):
                pass

        do_GET = do_POST = do_PUT = do_DELETE = do_HEAD = _dispatch

        def address_string(self) -> str:
            return "local"

        def log_message(self, format: str, *args: object) -> None:
            pass

    return RequestHandler


class RawHandler(socketserver.StreamRequestHandler):
    """Answers an upgrade request with 101 and then echoes input.

    ``/raw`` echoes bytes as-is; ``/hold`` stays silent after the upgrade;
    ``/once`` hangs up right after it; ``/greet`` sends a frame in the same
    write as the response head. ``/missing`` fails with 404 and ``/broken``
    with a chunked 500. ``/legacy`` answers 200 instead of switching
    protocols and echoes raw bytes as a close-delimited body. Every other
    path echoes input as stdout frames and upper-cased copies as stderr
    frames.
    """

    def handle(self) -> None:
        request_line = self.rfile.readline()
        if not request_line:
            return
        while self.rfile.readline() not in (b"\r\n", b"\n", b""):
            pass
        method, path, _ = request_line.decode("latin-1").split(" ", 2)
        with self.server.lock:  # type: ignore[attr-defined]
            self.server.requests.append((method, path))  # type: ignore[attr-defined]
        try:
            if path.startswith("/missing"):
                self.wfile.write(b"HTTP/1.1 404 Not Found\r\nContent-Length: 14\r\n\r\nno such thing\n")
                return
            if path.startswith("/broken"):
                self.wfile.write(
                    b"HTTP/1.1 500 Internal Server Error\r\nTransfer-Encoding: chunked\r\n\r\n"
                    b"3\r\nboo\r\n2\r\nm\n\r\n0\r\n\r\n"
                )
                return
            if path.startswith("/legacy"):
                self.wfile.write(b"HTTP/1.1 200 OK\r\nContent-Type: application/vnd.docker.raw-stream\r\n\r\n")
                self._echo(raw=True)
                return
            head = (
                b"HTTP/1.1 101 UPGRADED\r\n"
                b"Content-Type: application/vnd.docker.raw-stream\r\n"
                b"Connection: Upgrade\r\n"
                b"Upgrade: tcp\r\n\r\n"
            )
            if path.startswith("/greet"):
                head += encode_frame(STDOUT, b"ready\n")
            self.wfile.write(head)
            if path.startswith("/hold"):
                self.server.release.wait(5)  # type: ignore[attr-defined]
                return
            if path.startswith("/once"):
                return
            self._echo(raw=path.startswith("/raw"))
        except (BrokenPipeError, ConnectionResetError):
            pass

    def _echo(self, *, raw: bool) -> None:
        while True:
            data = self.rfile.read1(4096)
            if not data:
                return
            if raw:
                self.wfile.write(data)
            else:
                self.wfile.write(encode_frame(STDOUT, data) + encode_frame(STDERR, data.upper()))


def server_ssl_context() -> ssl.SSLContext:
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.load_cert_chain(DATA_DIR / "server.pem", DATA_DIR / "server-key.pem")
    return context


@pytest.fixture
def client_tls() -> TLSConfig:
    return TLSConfig.from_files(DATA_DIR / "cert.pem", DATA_DIR / "key.pem", DATA_DIR / "ca.pem")


class Servers:
    """Starts throwaway servers and hands back the endpoint to reach each one."""

    def __init__(self) -> None:
        self._servers: list[socketserver.BaseServer] = []
        self._release = threading.Event()
        self._tmpdir = tempfile.mkdtemp(prefix="ec-")
        self.requests: list[tuple[str, str]] = []
        self.lock = threading.Lock()

    def http(self, handler: Handler, *, kind: str = "tcp") -> str:
        handler_class = _handler_class(handler, self.requests, self.lock)
        if kind == "unix":
            path = self._socket_path()
            self._start(UnixHTTPServer(path, handler_class))
            return f"unix://{path}"
        server = ThreadingHTTPServer(("127.0.0.1", 0), handler_class)
        if kind == "tls":
            server.socket = server_ssl_context().wrap_socket(server.socket, server_side=True)
        self._start(server)
        return f"tcp://127.0.0.1:{server.server_address[1]}"

    def raw(self, *, kind: str = "tcp") -> str:
        if kind == "unix":
            path = self._socket_path()
            server: socketserver.BaseServer = UnixRawServer(path, RawHandler)
            endpoint = f"unix://{path}"
        else:
            server = TCPRawServer(("127.0.0.1", 0), RawHandler)
            if kind == "tls":
                server.socket = server_ssl_context().wrap_socket(server.socket, server_side=True)
            endpoint = f"tcp://127.0.0.1:{server.server_address[1]}"
        server.requests = self.requests  # type: ignore[attr-defined]
        server.lock = self.lock  # type: ignore[attr-defined]
        server.release = self._release  # type: ignore[attr-defined]
        self._start(server)
        return endpoint

    def seen(self) -> list[tuple[str, str]]:
        with self.lock:
            return list(self.requests)

    def close(self) -> None:
        self._release.set()
        for server in self._servers:
            server.shutdown()
            server.server_close()
        shutil.rmtree(self._tmpdir, ignore_errors=True)

    def _socket_path(self) -> str:
        return os.path.join(self._tmpdir, f"s{len(self._servers)}.sock")

    def _start(self, server: socketserver.BaseServer) -> None:
        thread = threading.Thread(target=server.serve_forever, kwargs={"poll_interval": 0.05}, daemon=True)
        thread.start()
        self._servers.append(server)


@pytest.fixture
def servers() -> Iterator[Servers]:
    pool = Servers()
    yield pool
    pool.close()


def respond(request: BaseHTTPRequestHandler, status: int = 200, body: bytes = b"", **headers: str) -> None:
    request.send_response(status)
    request.send_header("Content-Length", str(len(body)))
    for name, value in headers.items():
        request.send_header(name.replace("_", "-"), value)
    request.end_headers()
    if request.command != "HEAD":
        request.wfile.write(body)


@pytest.fixture
def full_backlog() -> Iterator[str]:
    """Unix endpoint whose listener never accepts and has no room left in its backlog."""
    tmpdir = tempfile.mkdtemp(prefix="ec-")
    path = os.path.join(tmpdir, "full.sock")
    listener = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    listener.bind(path)
    listener.listen(0)
    queued: list[socket.socket] = []
    try:
        for _ in range(64):
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            sock.setblocking(False)
            try:
                sock.connect(path)
            except BlockingIOError:
                sock.close()
                break
            queued.append(sock)
        yield f"unix://{path}"
    finally:
        for sock in queued:
            sock.close()
        listener.close()
        shutil.rmtree(tmpdir, ignore_errors=True)


def call_within(limit: float, call: Callable[[], Any]) -> Any:
    """Run ``call`` on a daemon thread and fail instead of hanging when it outlives ``limit``."""
    outcome: dict[str, Any] = {}

    def target() -> None:
        try:
            outcome["result"] = call()
        except BaseException as exc:
            outcome["error"] = exc

    thread = threading.Thread(target=target, daemon=True)
    thread.start()
    thread.join(limit)
    assert not thread.is_alive(), f"call still blocked after {limit}s"
    if "error" in outcome:
        raise outcome["error"]
    return outcome.get("result")
