"""Client core: endpoint setup and the do/stream/hijack executors."""

from __future__ import annotations

import json
import threading
from contextlib import contextmanager
from typing import Any, Callable, Iterator

import httpx

from .apiversion import APIVersion, parse_version
from .cancel import CallGuard, CancelToken, guarded
from .config import ClientConfig
from .endpoint import Endpoint
from .errors import ClientError, InactivityTimeoutError, MalformedVersionError
from .hijack import CloseWaiter, open_session
from .logger import BoundLogger, LoggerProtocol, LogLevel, create_logger
from .query import query_string
from .stdcopy import copy_raw, demultiplex
from .transport import HttpTransport, SocketDialer, TLSConfig, bind_call
from .transport.dialer import POLL_INTERVAL
from .types import HijackSpec, RequestSpec, StreamSpec
from .version import __version__
from .watchdog import InactivityWatchdog

USER_AGENT = f"engine-client/{__version__}"


class Client:
    """Primary entry point for talking to a container engine's remote API.

    The client holds no per-call state: concurrent ``do``/``stream``/``hijack``
    calls from different threads share only the pooled HTTP transport.
    """

    def __init__(
        self,
        endpoint: str,
        *,
        tls: TLSConfig | None = None,
        api_version: str | APIVersion | None = None,
        skip_server_version_check: bool | None = None,
        timeout: float | None = None,
        max_connections: int | None = None,
        keepalive_expiry: float | None = 30.0,
        logger: BoundLogger | LoggerProtocol | None = None,
        log_level: LogLevel = "info",
    ) -> None:
        config = ClientConfig(
            endpoint=endpoint,
            tls=tls,
            api_version=api_version,
            skip_server_version_check=skip_server_version_check,
            timeout=timeout,
            max_connections=max_connections,
            keepalive_expiry=keepalive_expiry,
            logger=logger,
            log_level=log_level,
        )
        self._config = config
        self._logger = create_logger(logger=config.logger, level=config.log_level).bind(endpoint=endpoint)
        self._endpoint = Endpoint.parse(endpoint, tls=config.tls is not None)
        ssl_context = config.tls.ssl_context() if config.tls is not None else None

        self._requested_api_version = parse_version(config.api_version)
        if config.skip_server_version_check is None:
            self.skip_server_version_check = self._requested_api_version is None
        else:
            self.skip_server_version_check = config.skip_server_version_check
        self._server_api_version: APIVersion | None = None
        self._expected_api_version: APIVersion | None = None
        self._version_lock = threading.Lock()

        self._dialer = SocketDialer(self._endpoint, ssl_context=ssl_context, logger=self._logger)
        self._http = HttpTransport(
            self._dialer,
            ssl_context=ssl_context,
            timeout=config.timeout,
            max_connections=config.max_connections,
            keepalive_expiry=config.keepalive_expiry,
            headers={"User-Agent": USER_AGENT},
            logger=self._logger,
        )
        self._logger.info("Initialized client for %s", self._endpoint.url)

    @classmethod
    def from_config(cls, config: ClientConfig) -> "Client":
        return cls(
            config.endpoint,
            tls=config.tls,
            api_version=config.api_version,
            skip_server_version_check=config.skip_server_version_check,
            timeout=config.timeout,
            max_connections=config.max_connections,
            keepalive_expiry=config.keepalive_expiry,
            logger=config.logger,
            log_level=config.log_level,
        )

    @classmethod
    def from_env(cls, api_version: str | APIVersion | None = None) -> "Client":
        return cls.from_config(ClientConfig.from_env(api_version))

    @property
    def endpoint(self) -> str:
        return self._endpoint.raw

    @property
    def endpoint_url(self) -> str:
        return self._endpoint.url

    @property
    def requested_api_version(self) -> APIVersion | None:
        return self._requested_api_version

    @property
    def server_api_version(self) -> APIVersion | None:
        return self._server_api_version

    @property
    def expected_api_version(self) -> APIVersion | None:
        return self._expected_api_version

    @property
    def timeout(self) -> float | None:
        return self._http.timeout

    def set_timeout(self, timeout: float | None) -> None:
        self._http.set_timeout(timeout)

    def get_url(self, path: str) -> str:
        return self._endpoint.url_for(path, self._path_version())

    def close(self) -> None:
        self._http.close()

    def __enter__(self) -> "Client":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def ping(self, spec: RequestSpec | None = None) -> None:
        response = self.do("GET", "/_ping", spec)
        if response.status_code != 200:
            raise ClientError.from_body(response.status_code, response.content)

    def version(self) -> dict[str, Any]:
        return self.do("GET", "/version").json()

    def do(self, method: str, path: str, spec: RequestSpec | None = None) -> httpx.Response:
        """Send one request and return the fully read response.

        Raises:
            ClientError: when the server answers outside 2xx/3xx
            CancelledError, DeadlineExceededError: when the call's token fires first
        """
        spec = spec or RequestSpec()
        with self._call_token(spec) as token:
            self._negotiate_api_version(token)
            return self._send(self._build_request(method, path, spec, self._path_version()), token)

    def stream(self, method: str, path: str, spec: StreamSpec | None = None) -> None:
        """Copy the response body into the spec's sinks until the server closes it.

        Bytes copied before a cancellation, deadline or inactivity timeout stay
        in the sinks.
        """
        spec = spec or StreamSpec()
        with self._call_token(spec) as token:
            self._negotiate_api_version(token)
            request = self._build_request(method, path, spec, self._path_version())
            guard = CallGuard()
            with guarded(guard, token), bind_call(guard):
                response = self._http.send(request, stream=True)
                try:
                    if not _is_success(response.status_code):
                        response.read()
                        raise ClientError.from_body(response.status_code, response.content)
                    self._copy_body(response, spec, guard)
                finally:
                    response.close()

    def hijack(self, method: str, path: str, spec: HijackSpec | None = None) -> CloseWaiter:
        """Take over the connection for raw duplex I/O; returns once headers were read."""
        spec = spec or HijackSpec()
        token, release = self._derive_token(spec)
        try:
            self._negotiate_api_version(token)
        except Exception:
            release()
            raise
        url = httpx.URL(self._request_url(path, spec, self._path_version()))
        body = _encode_body(spec)
        headers = {"User-Agent": USER_AGENT, "Connection": "Upgrade", "Upgrade": "tcp"}
        if spec.data is not None:
            headers["Content-Type"] = "application/json"
        if body is not None:
            headers["Content-Length"] = str(len(body))
        headers.update(spec.headers or {})
        return open_session(
            self._dialer,
            method,
            url.raw_path.decode("ascii"),
            spec,
            headers=headers,
            body=body,
            token=token,
            release=release,
            logger=self._logger,
        )

    def _send(self, request: httpx.Request, token: CancelToken | None) -> httpx.Response:
        guard = CallGuard()
        with guarded(guard, token), bind_call(guard):
            response = self._http.send(request)
        if not _is_success(response.status_code):
            raise ClientError.from_body(response.status_code, response.content)
        return response

    def _copy_body(self, response: httpx.Response, spec: StreamSpec, guard: CallGuard) -> None:
        chunks: Iterator[bytes] = response.iter_raw()
        watchdog: InactivityWatchdog | None = None
        if spec.inactivity_timeout:
            timeout = spec.inactivity_timeout

            def expire() -> None:
                self._logger.warn("Stream inactive for %ss, closing connection", timeout)
                guard.interrupt(InactivityTimeoutError(timeout))

            watchdog = InactivityWatchdog(timeout, expire).start()
            chunks = watchdog.watch(chunks)
        try:
            if spec.multiplexed and not spec.raw_terminal:
                copied = demultiplex(chunks, spec.stdout, spec.stderr)
            else:
                copied = copy_raw(chunks, spec.stdout)
            self._logger.debug("Stream finished bytes=%d", copied)
        finally:
            if watchdog is not None:
                watchdog.stop()

    @contextmanager
    def _call_token(self, spec: RequestSpec) -> Iterator[CancelToken | None]:
        token, release = self._derive_token(spec)
        try:
            yield token
        finally:
            release()

    def _derive_token(self, spec: RequestSpec) -> tuple[CancelToken | None, Callable[[], None]]:
        """Token covering the whole call, negotiation included, and the function that releases it."""
        token = spec.cancel_token
        if spec.timeout is None:
            return token, _noop
        derived = token.with_timeout(spec.timeout) if token is not None else CancelToken(spec.timeout)
        return derived, derived.close

    def _path_version(self) -> str | None:
        if self._requested_api_version is None or self.skip_server_version_check:
            return None
        return str(self._requested_api_version)

    def _request_url(self, path: str, spec: RequestSpec, version: str | None) -> str:
        url = self._endpoint.request_url_for(path, version)
        query = query_string(spec.query)
        return f"{url}?{query}" if query else url

    def _build_request(
        self,
        method: str,
        path: str,
        spec: RequestSpec,
        version: str | None,
    ) -> httpx.Request:
        headers = dict(spec.headers or {})
        if spec.data is None and method.upper() == "POST" and not _has_header(headers, "Content-Type"):
            headers["Content-Type"] = "plain/text"
        return self._http.build_request(
            method,
            self._request_url(path, spec, version),
            headers=headers,
            content=spec.content,
            json=spec.data,
        )

    def _negotiate_api_version(self, token: CancelToken | None = None) -> None:
        if self._requested_api_version is None or self.skip_server_version_check:
            return
        if self._expected_api_version is not None:
            return
        # another call may be negotiating; waiting for it still honours this call's token
        while not self._version_lock.acquire(timeout=POLL_INTERVAL):
            if token is not None:
                token.raise_if_cancelled()
        try:
            if self._expected_api_version is not None:
                return
            server = self._fetch_server_api_version(token)
            self._server_api_version = server
            self._expected_api_version = self._requested_api_version
        finally:
            self._version_lock.release()
        self._logger.info("Negotiated API version %s (server %s)", self._requested_api_version, server)
        if self._requested_api_version > server:
            self._logger.warn(
                "Requested API version %s is newer than the server's %s",
                self._requested_api_version,
                server,
            )

    def _fetch_server_api_version(self, token: CancelToken | None) -> APIVersion:
        response = self._send(self._build_request("GET", "/version", RequestSpec(), None), token)
        raw = response.json().get("ApiVersion")
        if not isinstance(raw, str):
            raise MalformedVersionError(str(raw))
        return APIVersion(raw)


def _is_success(status: int) -> bool:
    return 200 <= status < 400


def _has_header(headers: dict[str, str], name: str) -> bool:
    return any(key.lower() == name.lower() for key in headers)


def _encode_body(spec: RequestSpec) -> bytes | None:
    if spec.data is not None:
        return json.dumps(spec.data).encode("utf-8")
    if spec.content is None:
        return None
    if isinstance(spec.content, bytes):
        return spec.content
    return b"".join(spec.content)


def _noop() -> None:
    return None


__all__ = ["Client", "USER_AGENT"]
