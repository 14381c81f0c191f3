"""TLS client material and SSL context construction."""

from __future__ import annotations

import os
import ssl
import tempfile
from dataclasses import dataclass
from pathlib import Path

from ..errors import InvalidCAError, InvalidCertificateError

CERT_FILE = "cert.pem"
KEY_FILE = "key.pem"
CA_FILE = "ca.pem"


@dataclass(frozen=True)
class TLSConfig:
    """PEM encoded client certificate, key and CA bundle.

    A missing CA disables server certificate verification. A certificate is
    only presented when both ``cert`` and ``key`` are given.
    """

    cert: bytes | None = None
    key: bytes | None = None
    ca: bytes | None = None

    @classmethod
    def from_files(
        cls,
        cert_path: str | os.PathLike[str] | None,
        key_path: str | os.PathLike[str] | None,
        ca_path: str | os.PathLike[str] | None = None,
    ) -> "TLSConfig":
        return cls(cert=_read(cert_path), key=_read(key_path), ca=_read(ca_path))

    @classmethod
    def from_cert_dir(cls, directory: str | os.PathLike[str]) -> "TLSConfig":
        base = Path(directory).expanduser()
        return cls.from_files(base / CERT_FILE, base / KEY_FILE, base / CA_FILE)

    @property
    def verify(self) -> bool:
        return self.ca is not None

    def ssl_context(self) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        if self.cert is not None and self.key is not None:
            _load_cert_chain(context, self.cert, self.key)
        if self.ca is None:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE
        else:
            try:
                context.load_verify_locations(cadata=self.ca.decode("ascii"))
            except (ssl.SSLError, UnicodeDecodeError, ValueError) as exc:
                raise InvalidCAError(f"could not add CA certificate to the trust pool: {exc}") from exc
        return context


def _read(path: str | os.PathLike[str] | None) -> bytes | None:
    if path is None:
        return None
    return Path(path).read_bytes()


def _load_cert_chain(context: ssl.SSLContext, cert: bytes, key: bytes) -> None:
    # SSLContext only loads key pairs from files
    with tempfile.TemporaryDirectory(prefix="engine-client-tls-") as tmpdir:
        cert_file = Path(tmpdir) / CERT_FILE
        key_file = Path(tmpdir) / KEY_FILE
        cert_file.write_bytes(cert)
        key_file.write_bytes(key)
        key_file.chmod(0o600)
        try:
            context.load_cert_chain(certfile=str(cert_file), keyfile=str(key_file))
        except ssl.SSLError as exc:
            raise InvalidCertificateError(f"could not load client certificate: {exc}") from exc


__all__ = ["CA_FILE", "CERT_FILE", "KEY_FILE", "TLSConfig"]
