"""Client configuration, including the environment-derived form."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping

from .apiversion import APIVersion
from .logger import BoundLogger, LoggerProtocol, LogLevel
from .transport.tls import TLSConfig

DEFAULT_HOST = "unix:///var/run/docker.sock"
DEFAULT_CERT_PATH = "~/.docker"

ENV_HOST = "DOCKER_HOST"
ENV_TLS_VERIFY = "DOCKER_TLS_VERIFY"
ENV_CERT_PATH = "DOCKER_CERT_PATH"


@dataclass
class ClientConfig:
    endpoint: str
    tls: TLSConfig | None = None
    api_version: str | APIVersion | None = None
    skip_server_version_check: bool | None = None
    timeout: float | None = None
    max_connections: int | None = None
    keepalive_expiry: float | None = 30.0
    logger: BoundLogger | LoggerProtocol | None = None
    log_level: LogLevel = "info"

    @classmethod
    def from_env(
        cls,
        api_version: str | APIVersion | None = None,
        *,
        environ: Mapping[str, str] | None = None,
    ) -> "ClientConfig":
        """Build a configuration from ``DOCKER_HOST``, ``DOCKER_TLS_VERIFY`` and ``DOCKER_CERT_PATH``."""
        env = os.environ if environ is None else environ
        host = env.get(ENV_HOST) or DEFAULT_HOST
        tls = None
        if env.get(ENV_TLS_VERIFY, "") != "":
            cert_path = env.get(ENV_CERT_PATH) or DEFAULT_CERT_PATH
            tls = TLSConfig.from_cert_dir(cert_path)
        return cls(endpoint=host, tls=tls, api_version=api_version)


__all__ = ["ClientConfig", "DEFAULT_HOST"]
