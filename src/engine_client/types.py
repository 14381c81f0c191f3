"""Per-call request descriptions shared by the executors."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import IO, Any, Iterable, Mapping

from .cancel import CancelToken
from .query import QueryOptions

Content = bytes | Iterable[bytes]


@dataclass
class RequestSpec:
    """Everything ``do`` needs beyond the method and path.

    Attributes:
        query: Options object serialized into the query string
        data: Value sent as a JSON body
        content: Raw request body (bytes or an iterable of byte chunks)
        headers: Extra headers merged over the defaults
        cancel_token: Token whose firing aborts the call
        timeout: Absolute deadline for the call, in seconds
    """

    query: QueryOptions | None = None
    data: Any = None
    content: Content | None = None
    headers: Mapping[str, str] | None = None
    cancel_token: CancelToken | None = None
    timeout: float | None = None


@dataclass
class StreamSpec(RequestSpec):
    """A request whose response body is copied into sinks until it ends.

    ``multiplexed`` responses carry framed stdout/stderr output that is
    demultiplexed unless ``raw_terminal`` is set. ``inactivity_timeout``
    aborts the stream once no bytes arrived for that many seconds.
    """

    stdout: IO[bytes] | None = None
    stderr: IO[bytes] | None = None
    multiplexed: bool = False
    raw_terminal: bool = False
    inactivity_timeout: float | None = None


@dataclass
class HijackSpec(RequestSpec):
    """A request whose connection becomes a raw duplex byte stream.

    ``stdin`` is forwarded to the connection; output is routed to
    ``stdout``/``stderr`` (demultiplexed unless ``raw_terminal``).
    ``established`` is set once the response headers were read.
    """

    stdin: IO[bytes] | None = None
    stdout: IO[bytes] | None = None
    stderr: IO[bytes] | None = None
    raw_terminal: bool = False
    established: threading.Event = field(default_factory=threading.Event)


__all__ = ["Content", "HijackSpec", "RequestSpec", "StreamSpec"]
