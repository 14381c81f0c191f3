"""Socket dialer bound to a resolved endpoint, using the standard library socket module."""

from __future__ import annotations

import errno
import os
import select
import socket
import ssl
import time
from typing import TYPE_CHECKING, Any

from ..endpoint import Endpoint
from ..logger import BoundLogger, create_logger
from .base import TransportKind
from .stream import shutdown_socket

if TYPE_CHECKING:
    from ..cancel import CallGuard

# Granularity at which a pending connect notices an interrupted call
POLL_INTERVAL = 0.05

_PENDING = frozenset({errno.EINPROGRESS, errno.EALREADY, errno.EINTR})
# A Unix listener with a full backlog refuses non-blocking connects with EAGAIN
_RETRY = frozenset({errno.EAGAIN, errno.EWOULDBLOCK})


class SocketDialer:
    """Dials TCP or Unix-socket connections for one endpoint.

    For Unix sockets the request URL only carries a placeholder authority;
    the dialer always connects to the endpoint's socket path. TLS is applied
    by :meth:`dial_secure` for secure TCP endpoints and never for Unix sockets.

    When a :class:`CallGuard` is passed, the connect and TLS handshake give up
    as soon as the guard is interrupted, and the finished connection is
    registered with the guard so later I/O can be unblocked too.
    """

    def __init__(
        self,
        endpoint: Endpoint,
        *,
        ssl_context: ssl.SSLContext | None = None,
        connect_timeout: float | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._endpoint = endpoint
        self._ssl_context = ssl_context
        self._connect_timeout = connect_timeout
        self._logger = (logger or create_logger()).child("dialer")

    @property
    def kind(self) -> TransportKind:
        return "unix" if self._endpoint.is_unix else "tcp"

    @property
    def endpoint(self) -> Endpoint:
        return self._endpoint

    @property
    def ssl_context(self) -> ssl.SSLContext | None:
        return self._ssl_context

    def dial(self, timeout: float | None = None, *, guard: CallGuard | None = None) -> socket.socket:
        timeout = self._connect_timeout if timeout is None else timeout
        if self._endpoint.is_unix:
            self._logger.trace("Dialing unix socket %s", self._endpoint.path)
            sock = _open(socket.AF_UNIX, socket.SOCK_STREAM, 0, self._endpoint.path, timeout, guard)
        else:
            sock = self._dial_tcp(timeout, guard)
            sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        if guard is not None:
            guard.attach(lambda: shutdown_socket(sock))
        return sock

    def dial_secure(self, timeout: float | None = None, *, guard: CallGuard | None = None) -> socket.socket:
        sock = self.dial(timeout, guard=guard)
        if not self._endpoint.secure:
            return sock
        context = self._ssl_context or ssl.create_default_context()
        host, _ = self._endpoint.address
        try:
            wrapped = context.wrap_socket(sock, server_hostname=host, do_handshake_on_connect=False)
        except (OSError, ssl.SSLError):
            sock.close()
            raise
        # wrap_socket detached the plain socket, so the guard must reach the TLS one
        if guard is not None:
            guard.attach(lambda: shutdown_socket(wrapped))
        try:
            wrapped.settimeout(self._connect_timeout if timeout is None else timeout)
            wrapped.do_handshake()
        except (OSError, ssl.SSLError):
            wrapped.close()
            raise
        wrapped.settimeout(None)
        return wrapped

    def _dial_tcp(self, timeout: float | None, guard: CallGuard | None) -> socket.socket:
        host, port = self._endpoint.address
        self._logger.trace("Dialing %s:%s", host, port)
        last_error: OSError | None = None
        for family, kind, proto, _, address in socket.getaddrinfo(host, port, type=socket.SOCK_STREAM):
            try:
                return _open(family, kind, proto, address, timeout, guard)
            except OSError as exc:
                if guard is not None and guard.interrupted:
                    raise
                self._logger.debug("Connect to %s failed: %s", address, exc)
                last_error = exc
        if last_error is not None:
            raise last_error
        raise OSError(f"no addresses found for {host}")


def _open(
    family: int,
    kind: int,
    proto: int,
    address: Any,
    timeout: float | None,
    guard: CallGuard | None,
) -> socket.socket:
    sock = socket.socket(family, kind, proto)
    try:
        connect(sock, address, timeout=timeout, guard=guard)
    except BaseException:
        sock.close()
        raise
    return sock


def connect(
    sock: socket.socket,
    address: Any,
    *,
    timeout: float | None = None,
    guard: CallGuard | None = None,
) -> None:
    """Connect ``sock`` without blocking past ``timeout`` or an interrupt of ``guard``.

    Returns with the socket back in blocking mode. Raises ``socket.timeout``
    when the timeout elapses and ``ConnectionAbortedError`` when the guard
    was interrupted first.
    """
    expires = None if timeout is None else time.monotonic() + timeout
    sock.setblocking(False)
    err = sock.connect_ex(address)
    while err not in (0, errno.EISCONN):
        if err not in _PENDING and err not in _RETRY:
            raise OSError(err, os.strerror(err))
        if guard is not None and guard.interrupted:
            raise ConnectionAbortedError(errno.ECONNABORTED, "connect interrupted")
        wait = POLL_INTERVAL
        if expires is not None:
            remaining = expires - time.monotonic()
            if remaining <= 0:
                raise socket.timeout("timed out")
            wait = min(wait, remaining)
        if err in _RETRY:
            time.sleep(wait)
            err = sock.connect_ex(address)
            continue
        _, writable, _ = select.select([], [sock], [], wait)
        if writable:
            err = sock.getsockopt(socket.SOL_SOCKET, socket.SO_ERROR)
            if err != 0:
                raise OSError(err, os.strerror(err))
    sock.setblocking(True)


__all__ = ["POLL_INTERVAL", "SocketDialer", "connect"]
