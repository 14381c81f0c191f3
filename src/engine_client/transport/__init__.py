"""Transport implementations exposed to users."""

from .base import Dialer, TransportKind
from .dialer import SocketDialer
from .http import HttpTransport, PooledTransport
from .stream import DialerBackend, SocketStream, bind_call
from .tls import TLSConfig

__all__ = [
    "Dialer",
    "DialerBackend",
    "HttpTransport",
    "PooledTransport",
    "SocketDialer",
    "SocketStream",
    "TLSConfig",
    "TransportKind",
    "bind_call",
]
