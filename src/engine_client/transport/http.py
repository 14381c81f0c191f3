"""HTTP transport built on top of httpx and httpcore's connection pool."""

from __future__ import annotations

import ssl
from contextlib import contextmanager
from typing import Any, Iterator

import httpcore
import httpx

from ..logger import BoundLogger, create_logger
from .base import Dialer
from .stream import DialerBackend

_HTTPCORE_EXCEPTIONS: dict[type[Exception], type[httpx.TransportError]] = {
    httpcore.TimeoutException: httpx.TimeoutException,
    httpcore.ConnectTimeout: httpx.ConnectTimeout,
    httpcore.ReadTimeout: httpx.ReadTimeout,
    httpcore.WriteTimeout: httpx.WriteTimeout,
    httpcore.PoolTimeout: httpx.PoolTimeout,
    httpcore.NetworkError: httpx.NetworkError,
    httpcore.ConnectError: httpx.ConnectError,
    httpcore.ReadError: httpx.ReadError,
    httpcore.WriteError: httpx.WriteError,
    httpcore.ProxyError: httpx.ProxyError,
    httpcore.UnsupportedProtocol: httpx.UnsupportedProtocol,
    httpcore.ProtocolError: httpx.ProtocolError,
    httpcore.LocalProtocolError: httpx.LocalProtocolError,
    httpcore.RemoteProtocolError: httpx.RemoteProtocolError,
}


@contextmanager
def map_httpcore_exceptions() -> Iterator[None]:
    try:
        yield
    except Exception as exc:
        for cls in type(exc).__mro__:
            mapped = _HTTPCORE_EXCEPTIONS.get(cls)
            if mapped is not None:
                raise mapped(str(exc)) from exc
        raise


class _ResponseStream(httpx.SyncByteStream):
    def __init__(self, core_stream: Any) -> None:
        self._core_stream = core_stream

    def __iter__(self) -> Iterator[bytes]:
        with map_httpcore_exceptions():
            for part in self._core_stream:
                yield part

    def close(self) -> None:
        if hasattr(self._core_stream, "close"):
            self._core_stream.close()


class PooledTransport(httpx.BaseTransport):
    """httpx transport whose connections all come from one dialer.

    The underlying :class:`httpcore.ConnectionPool` keeps its own bookkeeping
    thread-safe, so one instance is shared by every call a client makes.
    """

    def __init__(
        self,
        dialer: Dialer,
        *,
        ssl_context: ssl.SSLContext | None = None,
        max_connections: int | None = None,
        max_keepalive_connections: int | None = None,
        keepalive_expiry: float | None = 30.0,
    ) -> None:
        self._pool = httpcore.ConnectionPool(
            ssl_context=ssl_context,
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections,
            keepalive_expiry=keepalive_expiry,
            network_backend=DialerBackend(dialer),
        )

    @property
    def connections(self) -> list[Any]:
        return list(self._pool.connections)

    def handle_request(self, request: httpx.Request) -> httpx.Response:
        core_request = httpcore.Request(
            method=request.method,
            url=httpcore.URL(
                scheme=request.url.raw_scheme,
                host=request.url.raw_host,
                port=request.url.port,
                target=request.url.raw_path,
            ),
            headers=request.headers.raw,
            content=request.stream,
            extensions=request.extensions,
        )
        with map_httpcore_exceptions():
            core_response = self._pool.handle_request(core_request)

        return httpx.Response(
            status_code=core_response.status,
            headers=core_response.headers,
            stream=_ResponseStream(core_response.stream),
            extensions=core_response.extensions,
        )

    def close(self) -> None:
        self._pool.close()


class HttpTransport:
    """Shared HTTP client for one endpoint, owned by a single engine client."""

    def __init__(
        self,
        dialer: Dialer,
        *,
        ssl_context: ssl.SSLContext | None = None,
        timeout: float | None = None,
        max_connections: int | None = None,
        keepalive_expiry: float | None = 30.0,
        headers: dict[str, str] | None = None,
        logger: BoundLogger | None = None,
    ) -> None:
        self._logger = (logger or create_logger()).child("http")
        self._pool = PooledTransport(
            dialer,
            ssl_context=ssl_context,
            max_connections=max_connections,
            keepalive_expiry=keepalive_expiry,
        )
        # trust_env would mount proxy transports that bypass the dialer
        self._client = httpx.Client(
            transport=self._pool,
            timeout=httpx.Timeout(timeout),
            headers=headers,
            trust_env=False,
            follow_redirects=False,
        )

    @property
    def pool(self) -> PooledTransport:
        return self._pool

    @property
    def timeout(self) -> float | None:
        return self._client.timeout.read

    def set_timeout(self, timeout: float | None) -> None:
        self._client.timeout = httpx.Timeout(timeout)

    def build_request(
        self,
        method: str,
        url: str,
        *,
        headers: dict[str, str] | None = None,
        content: Any = None,
        json: Any = None,
    ) -> httpx.Request:
        return self._client.build_request(method, url, headers=headers, content=content, json=json)

    def send(self, request: httpx.Request, *, stream: bool = False) -> httpx.Response:
        self._logger.debug("HTTP %s %s", request.method, request.url)
        response = self._client.send(request, stream=stream)
        self._logger.debug("HTTP <- %s status=%s", request.url, response.status_code)
        return response

    def close(self) -> None:
        self._client.close()


__all__ = ["HttpTransport", "PooledTransport", "map_httpcore_exceptions"]
