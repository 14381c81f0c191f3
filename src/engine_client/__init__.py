"""Public surface for the container engine client."""

from .apiversion import APIVersion
from .cancel import CancelReason, CancelToken
from .client import Client
from .config import ClientConfig
from .endpoint import Endpoint
from .errors import (
    CancellationError,
    CancelledError,
    ClientError,
    DeadlineExceededError,
    EngineError,
    InactivityTimeoutError,
    InvalidCAError,
    InvalidCertificateError,
    InvalidEndpointError,
    MalformedVersionError,
    StreamCorruptionError,
)
from .hijack import CloseWaiter
from .query import QueryBuilder, QueryOptions
from .transport import TLSConfig
from .types import HijackSpec, RequestSpec, StreamSpec
from .version import __version__

__all__ = [
    "__version__",
    "APIVersion",
    "CancelReason",
    "CancelToken",
    "CancellationError",
    "CancelledError",
    "Client",
    "ClientConfig",
    "ClientError",
    "CloseWaiter",
    "DeadlineExceededError",
    "Endpoint",
    "EngineError",
    "HijackSpec",
    "InactivityTimeoutError",
    "InvalidCAError",
    "InvalidCertificateError",
    "InvalidEndpointError",
    "MalformedVersionError",
    "QueryBuilder",
    "QueryOptions",
    "RequestSpec",
    "StreamCorruptionError",
    "StreamSpec",
    "TLSConfig",
]
