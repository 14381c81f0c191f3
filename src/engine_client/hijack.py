"""Raw duplex sessions taken over from an HTTP request."""

from __future__ import annotations

import socket
import ssl
import threading
from typing import IO, TYPE_CHECKING, Callable, Mapping

import h11
import httpx

from .cancel import CallGuard, CancelToken
from .errors import ClientError
from .logger import BoundLogger, create_logger
from .stdcopy import copy_raw, demultiplex
from .transport.stream import shutdown_socket

if TYPE_CHECKING:
    from collections.abc import Iterator

    from .transport.base import Dialer
    from .types import HijackSpec

CHUNK_SIZE = 32 * 1024


class CloseWaiter:
    """Handle on a hijacked connection.

    :meth:`wait` blocks until the remote side finished sending; :meth:`close`
    tears the connection down at once. Both are idempotent and may be called
    from any thread.
    """

    def __init__(
        self,
        sock: socket.socket,
        chunks: Iterator[bytes],
        *,
        guard: CallGuard,
        release: Callable[[], None],
        logger: BoundLogger,
    ) -> None:
        self._sock = sock
        self._chunks = chunks
        self._guard = guard
        self._release = release
        self._logger = logger
        self._lock = threading.Lock()
        self._closed = False
        self._done = threading.Event()
        self._error: BaseException | None = None
        self._stdin_error: BaseException | None = None
        self._threads: list[threading.Thread] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def stdin_error(self) -> BaseException | None:
        """Failure while forwarding input, if any; output-side errors are raised by :meth:`wait`."""
        return self._stdin_error

    def start(self, spec: HijackSpec) -> None:
        out = threading.Thread(
            target=self._pump_output,
            args=(spec.stdout, spec.stderr, spec.raw_terminal),
            name="engine-client-hijack-out",
            daemon=True,
        )
        into = threading.Thread(
            target=self._pump_input,
            args=(spec.stdin,),
            name="engine-client-hijack-in",
            daemon=True,
        )
        self._threads = [out, into]
        out.start()
        into.start()

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the session ended; returns False if ``timeout`` elapsed first."""
        if not self._done.wait(timeout):
            return False
        if self._error is not None:
            raise self._error
        return True

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._logger.debug("Closing hijacked connection")
        shutdown_socket(self._sock)
        self._sock.close()

    def _pump_output(self, stdout: IO[bytes] | None, stderr: IO[bytes] | None, raw_terminal: bool) -> None:
        failure: BaseException | None = None
        try:
            if raw_terminal:
                copied = copy_raw(self._chunks, stdout)
            else:
                copied = demultiplex(self._chunks, stdout, stderr)
            self._logger.debug("Hijacked output finished bytes=%d", copied)
        except Exception as exc:
            failure = exc
        finally:
            interrupted = self._guard.finish()
            self._release()
        if interrupted is not None:
            self._logger.info("Hijacked session interrupted: %s", interrupted)
            self._error = interrupted
        elif failure is not None and not self._closed:
            self._error = failure
        self.close()
        self._done.set()

    def _pump_input(self, stdin: IO[bytes] | None) -> None:
        try:
            if stdin is not None:
                while True:
                    chunk = stdin.read(CHUNK_SIZE)
                    if not chunk:
                        break
                    self._sock.sendall(chunk)
            # ssl sockets cannot half-close without tearing down the session
            if not isinstance(self._sock, ssl.SSLSocket):
                self._sock.shutdown(socket.SHUT_WR)
        except OSError as exc:
            if not self._closed and not self._guard.interrupted:
                self._logger.debug("Forwarding input failed: %s", exc)
                self._stdin_error = exc


def open_session(
    dialer: Dialer,
    method: str,
    target: str,
    spec: HijackSpec,
    *,
    headers: Mapping[str, str],
    body: bytes | None,
    token: CancelToken | None,
    release: Callable[[], None],
    logger: BoundLogger | None = None,
) -> CloseWaiter:
    """Send the request head and hand the raw connection to a :class:`CloseWaiter`.

    The connection is taken over once the server switches protocols (101),
    or once a success status arrived from servers that stream the raw bytes
    as the response body instead.
    """
    log = (logger or create_logger()).child("hijack")
    guard = CallGuard()
    unregister = _watch(token, guard)

    def finish_call() -> None:
        unregister()
        release()

    try:
        if token is not None:
            token.raise_if_cancelled()
        sock = dialer.dial_secure(guard=guard)
    except Exception:
        interrupted = guard.finish()
        finish_call()
        if interrupted is not None:
            raise interrupted from None
        raise

    conn = h11.Connection(our_role=h11.CLIENT)
    try:
        log.debug("HIJACK %s %s", method, target)
        _send_request(sock, conn, method, target, dialer.endpoint.authority, headers, body)
        response = _read_response(sock, conn)
        log.debug("HIJACK <- %s status=%s", target, response.status_code)
        if response.status_code >= 400:
            raise ClientError.from_body(response.status_code, b"".join(_body_chunks(sock, conn)))
    except Exception:
        interrupted = guard.finish()
        finish_call()
        shutdown_socket(sock)
        sock.close()
        if interrupted is not None:
            raise interrupted from None
        raise

    if conn.their_state is h11.SWITCHED_PROTOCOL:
        pending, _ = conn.trailing_data
        chunks = _raw_chunks(sock, bytes(pending))
    else:
        chunks = _body_chunks(sock, conn)
    waiter = CloseWaiter(sock, chunks, guard=guard, release=finish_call, logger=log)
    spec.established.set()
    waiter.start(spec)
    return waiter


def _watch(token: CancelToken | None, guard: CallGuard) -> Callable[[], None]:
    if token is None:
        return lambda: None
    return token.on_cancel(lambda _reason: guard.interrupt(token.error()))


def _send_request(
    sock: socket.socket,
    conn: h11.Connection,
    method: str,
    target: str,
    host: str,
    headers: Mapping[str, str],
    body: bytes | None,
) -> None:
    request = h11.Request(method=method, target=target, headers=[("Host", host), *headers.items()])
    sock.sendall(conn.send(request))
    if body:
        sock.sendall(conn.send(h11.Data(data=body)))
    sock.sendall(conn.send(h11.EndOfMessage()))


def _next_event(sock: socket.socket, conn: h11.Connection) -> object:
    while True:
        try:
            event = conn.next_event()
        except h11.RemoteProtocolError as exc:
            raise httpx.RemoteProtocolError(str(exc)) from exc
        if event is not h11.NEED_DATA:
            return event
        conn.receive_data(sock.recv(CHUNK_SIZE))


def _read_response(sock: socket.socket, conn: h11.Connection) -> h11.Response | h11.InformationalResponse:
    while True:
        event = _next_event(sock, conn)
        if isinstance(event, h11.InformationalResponse):
            if event.status_code == 101:
                return event
            continue
        if isinstance(event, h11.Response):
            return event
        raise httpx.RemoteProtocolError("server closed the connection before sending a response")


def _body_chunks(sock: socket.socket, conn: h11.Connection) -> Iterator[bytes]:
    while True:
        event = _next_event(sock, conn)
        if isinstance(event, h11.Data):
            yield bytes(event.data)
        elif event is h11.PAUSED or isinstance(event, (h11.EndOfMessage, h11.ConnectionClosed)):
            return


def _raw_chunks(sock: socket.socket, pending: bytes) -> Iterator[bytes]:
    if pending:
        yield pending
    while True:
        chunk = sock.recv(CHUNK_SIZE)
        if not chunk:
            return
        yield chunk


__all__ = ["CloseWaiter", "open_session"]
