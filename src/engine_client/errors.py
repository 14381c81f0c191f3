"""Custom exceptions raised by the engine client."""

from __future__ import annotations

from typing import Any


class EngineError(Exception):
    """Base error for all client failures."""

    def __init__(self, message: str, *, context: Any | None = None) -> None:
        super().__init__(message)
        self.context = context


class InvalidEndpointError(EngineError):
    """Raised when a connection string cannot be resolved to an endpoint."""

    def __init__(self, endpoint: str, reason: str = "invalid endpoint") -> None:
        super().__init__(f"{reason}: {endpoint!r}", context=endpoint)
        self.endpoint = endpoint


class InvalidCertificateError(EngineError):
    """Raised when the client certificate or key does not parse."""


class InvalidCAError(EngineError):
    """Raised when the CA material cannot be added to the trust pool."""


class MalformedVersionError(EngineError):
    """Raised when an API version string cannot be parsed."""

    def __init__(self, version: str) -> None:
        super().__init__(f"unable to parse version {version!r}", context=version)
        self.version = version


class ClientError(EngineError):
    """Non-success HTTP response carrying the server's diagnostic text."""

    def __init__(self, status: int, message: str) -> None:
        super().__init__(f"API error ({status}): {message}")
        self._status = status
        self._message = message

    @property
    def status(self) -> int:
        return self._status

    @property
    def message(self) -> str:
        return self._message

    @classmethod
    def from_body(cls, status: int, body: bytes) -> "ClientError":
        return cls(status, body.decode("utf-8", errors="replace").strip())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ClientError):
            return NotImplemented
        return (self._status, self._message) == (other._status, other._message)

    def __hash__(self) -> int:
        return hash((self._status, self._message))

    def __repr__(self) -> str:
        return f"ClientError(status={self._status!r}, message={self._message!r})"


class InactivityTimeoutError(EngineError):
    """Raised when a stream moved no bytes for the configured interval."""

    def __init__(self, timeout: float | None = None) -> None:
        message = "inactivity time exceeded timeout"
        if timeout is not None:
            message = f"{message} ({timeout}s)"
        super().__init__(message, context=timeout)
        self.timeout = timeout


class StreamCorruptionError(EngineError):
    """Raised when a multiplexed stdout/stderr frame is malformed."""


class CancellationError(EngineError):
    """Base for errors surfaced from a cancellation token."""


class CancelledError(CancellationError):
    """Raised when the caller explicitly cancelled the call."""

    def __init__(self, message: str = "request canceled") -> None:
        super().__init__(message)


class DeadlineExceededError(CancellationError):
    """Raised when the call's absolute deadline elapsed."""

    def __init__(self, message: str = "deadline exceeded") -> None:
        super().__init__(message)


__all__ = [
    "CancellationError",
    "CancelledError",
    "ClientError",
    "DeadlineExceededError",
    "EngineError",
    "InactivityTimeoutError",
    "InvalidCAError",
    "InvalidCertificateError",
    "InvalidEndpointError",
    "MalformedVersionError",
    "StreamCorruptionError",
]
