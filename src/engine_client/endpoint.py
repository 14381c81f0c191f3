"""Connection string parsing and request URL construction."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal
from urllib.parse import urlsplit

from .errors import InvalidEndpointError

Scheme = Literal["tcp", "unix", "http", "https"]

SCHEMES: frozenset[str] = frozenset({"tcp", "unix", "http", "https"})
PLACEHOLDER_HOST = "unix.sock"
DEFAULT_PORTS = {"http": 80, "https": 443}


@dataclass(frozen=True)
class Endpoint:
    """A resolved endpoint.

    ``scheme`` is the scheme the caller asked for and drives transport
    selection. ``url`` is the canonical URL used to build requests: ``tcp``
    becomes ``http`` (``https`` once TLS material is present) and ``unix``
    endpoints keep their original form.
    """

    raw: str
    scheme: Scheme
    url: str
    host: str = ""
    port: int | None = None
    path: str = ""

    @classmethod
    def parse(cls, raw: str, *, tls: bool = False) -> "Endpoint":
        if not raw:
            raise InvalidEndpointError(raw, "empty endpoint")
        normalized = raw if "://" in raw else f"tcp://{raw}"
        try:
            parts = urlsplit(normalized)
        except ValueError as exc:
            raise InvalidEndpointError(raw) from exc

        scheme = parts.scheme.lower()
        if scheme not in SCHEMES:
            raise InvalidEndpointError(raw, f"unsupported scheme {scheme!r}")

        if scheme == "unix":
            socket_path = f"{parts.netloc}{parts.path}"
            if not socket_path:
                raise InvalidEndpointError(raw, "missing socket path")
            return cls(raw=raw, scheme="unix", url=normalized, path=socket_path)

        host, port = _split_host_port(raw, parts.netloc)
        url_scheme = "https" if tls or scheme == "https" else "http"
        return cls(
            raw=raw,
            scheme=scheme,  # type: ignore[arg-type]
            url=f"{url_scheme}://{parts.netloc}{parts.path}",
            host=host,
            port=port,
            path=parts.path,
        )

    @property
    def is_unix(self) -> bool:
        return self.scheme == "unix"

    @property
    def secure(self) -> bool:
        return not self.is_unix and self.url.startswith("https://")

    @property
    def address(self) -> tuple[str, int]:
        """Host and port to dial; the port defaults from the canonical scheme."""
        port = self.port
        if port is None:
            port = DEFAULT_PORTS["https" if self.secure else "http"]
        return self.host.strip("[]"), port

    @property
    def authority(self) -> str:
        """Value for the Host header of hand-written requests."""
        if self.is_unix:
            return PLACEHOLDER_HOST
        if self.port is None:
            return self.host
        return f"{self.host}:{self.port}"

    def url_for(self, path: str, version: str | None = None) -> str:
        base = "" if self.is_unix else self.url.rstrip("/")
        return f"{base}{_versioned(path, version)}"

    def placeholder_url_for(self, path: str, version: str | None = None) -> str:
        return f"http://{PLACEHOLDER_HOST}{_versioned(path, version)}"

    def request_url_for(self, path: str, version: str | None = None) -> str:
        """URL handed to the HTTP client; Unix sockets get the placeholder authority."""
        if self.is_unix:
            return self.placeholder_url_for(path, version)
        return self.url_for(path, version)

    def __str__(self) -> str:
        return self.raw


def _versioned(path: str, version: str | None) -> str:
    if version is None:
        return path
    return f"/v{version}{path}"


def _split_host_port(raw: str, netloc: str) -> tuple[str, int | None]:
    hostinfo = netloc.rpartition("@")[2]
    if hostinfo.startswith("["):
        host, bracket, rest = hostinfo.partition("]")
        if not bracket or (rest and not rest.startswith(":")):
            raise InvalidEndpointError(raw, "malformed host")
        host = f"{host}]"
        port_text = rest[1:] if rest else None
    elif ":" in hostinfo:
        host, _, port_text = hostinfo.rpartition(":")
        if ":" in host:
            raise InvalidEndpointError(raw, "too many colons in address")
    else:
        host, port_text = hostinfo, None

    if not host:
        raise InvalidEndpointError(raw, "missing host")
    if port_text is None:
        return host, None
    if not port_text.isdigit() or not port_text.isascii():
        raise InvalidEndpointError(raw, "invalid port")
    port = int(port_text)
    if port > 65535:
        raise InvalidEndpointError(raw, "port out of range")
    return host, port


__all__ = ["Endpoint", "PLACEHOLDER_HOST", "Scheme"]
