"""Common transport abstractions."""

from __future__ import annotations

import socket
from typing import TYPE_CHECKING, Literal, Protocol, runtime_checkable

from ..endpoint import Endpoint

if TYPE_CHECKING:
    from ..cancel import CallGuard

TransportKind = Literal["tcp", "unix"]


@runtime_checkable
class Dialer(Protocol):
    """Opens byte-stream connections to a resolved endpoint."""

    @property
    def kind(self) -> TransportKind: ...

    @property
    def endpoint(self) -> Endpoint: ...

    def dial(self, timeout: float | None = None, *, guard: CallGuard | None = None) -> socket.socket: ...

    def dial_secure(self, timeout: float | None = None, *, guard: CallGuard | None = None) -> socket.socket: ...


__all__ = ["Dialer", "TransportKind"]
