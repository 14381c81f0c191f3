"""httpcore network backend that routes every connection through a dialer.

Streams opened here register themselves with the call currently running on
the thread (see :func:`bind_call`), so a cancellation or inactivity watcher
can shut down exactly the connection that call is blocked on, whether the
connection was freshly dialled or reused from the pool. Connects made on
behalf of the call hand the same guard to the dialer and give up once the
call is interrupted.
"""

from __future__ import annotations

import select
import socket
import ssl
import time
from contextlib import contextmanager, suppress
from contextvars import ContextVar
from typing import TYPE_CHECKING, Any, Iterator

import httpcore

if TYPE_CHECKING:
    from collections.abc import Iterable

    from ..cancel import CallGuard
    from .base import Dialer


_active_call: ContextVar["CallGuard | None"] = ContextVar("engine_client_active_call", default=None)


@contextmanager
def bind_call(guard: CallGuard) -> Iterator[None]:
    """Attach connections used by this thread to ``guard`` for the duration of the block."""
    token = _active_call.set(guard)
    try:
        yield
    finally:
        _active_call.reset(token)


@contextmanager
def _map_socket_errors(timeout_exc: type[Exception], error_exc: type[Exception]) -> Iterator[None]:
    try:
        yield
    except socket.timeout as exc:
        raise timeout_exc(exc) from exc
    except OSError as exc:
        raise error_exc(exc) from exc


def shutdown_socket(sock: socket.socket) -> None:
    """Unblock any thread reading or writing ``sock``; a no-op once it is closed."""
    with suppress(OSError):
        sock.shutdown(socket.SHUT_RDWR)


def is_readable(sock: socket.socket) -> bool:
    if sock.fileno() == -1:
        return True
    ready, _, _ = select.select([sock], [], [], 0)
    return bool(ready)


class SocketStream(httpcore.NetworkStream):
    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock
        self._guard: CallGuard | None = None

    def _bind(self) -> None:
        guard = _active_call.get()
        if guard is not None and guard is not self._guard:
            self._guard = guard
            guard.attach(self.shutdown)

    def shutdown(self) -> None:
        shutdown_socket(self._sock)

    def read(self, max_bytes: int, timeout: float | None = None) -> bytes:
        self._bind()
        with _map_socket_errors(httpcore.ReadTimeout, httpcore.ReadError):
            self._sock.settimeout(timeout)
            return self._sock.recv(max_bytes)

    def write(self, buffer: bytes, timeout: float | None = None) -> None:
        if not buffer:
            return
        self._bind()
        with _map_socket_errors(httpcore.WriteTimeout, httpcore.WriteError):
            while buffer:
                self._sock.settimeout(timeout)
                sent = self._sock.send(buffer)
                buffer = buffer[sent:]

    def close(self) -> None:
        self._sock.close()

    def start_tls(
        self,
        ssl_context: ssl.SSLContext,
        server_hostname: str | None = None,
        timeout: float | None = None,
    ) -> httpcore.NetworkStream:
        self._bind()
        if isinstance(server_hostname, bytes):
            server_hostname = server_hostname.decode("ascii")
        with _map_socket_errors(httpcore.ConnectTimeout, httpcore.ConnectError):
            try:
                wrapped = ssl_context.wrap_socket(
                    self._sock,
                    server_hostname=server_hostname,
                    do_handshake_on_connect=False,
                )
            except Exception:
                self.close()
                raise
            # wrap_socket detached the plain socket, so the TLS stream binds anew
            stream = SocketStream(wrapped)
            stream._bind()
            try:
                wrapped.settimeout(timeout)
                wrapped.do_handshake()
            except Exception:
                stream.close()
                raise
        return stream

    def get_extra_info(self, info: str) -> Any:
        if info == "ssl_object":
            return self._sock if isinstance(self._sock, ssl.SSLSocket) else None
        if info == "client_addr":
            return self._sock.getsockname()
        if info == "server_addr":
            return self._sock.getpeername()
        if info == "socket":
            return self._sock
        if info == "is_readable":
            return is_readable(self._sock)
        return None


class DialerBackend(httpcore.NetworkBackend):
    """Ignores the host and port httpcore asks for and dials the endpoint instead."""

    def __init__(self, dialer: Dialer) -> None:
        self._dialer = dialer

    def connect_tcp(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        local_address: str | None = None,
        socket_options: Iterable[Any] | None = None,
    ) -> httpcore.NetworkStream:
        return self._connect(timeout)

    def connect_unix_socket(
        self,
        path: str,
        timeout: float | None = None,
        socket_options: Iterable[Any] | None = None,
    ) -> httpcore.NetworkStream:
        return self._connect(timeout)

    def sleep(self, seconds: float) -> None:
        time.sleep(seconds)

    def _connect(self, timeout: float | None) -> httpcore.NetworkStream:
        with _map_socket_errors(httpcore.ConnectTimeout, httpcore.ConnectError):
            sock = self._dialer.dial(timeout, guard=_active_call.get())
        stream = SocketStream(sock)
        stream._bind()
        return stream


__all__ = ["DialerBackend", "SocketStream", "bind_call", "is_readable", "shutdown_socket"]
