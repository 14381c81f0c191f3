"""Logging wrapper shared by every client component."""

from __future__ import annotations

import logging
from typing import Any, Literal, Mapping, Protocol

LogLevel = Literal["trace", "debug", "info", "warn", "error"]

TRACE_LEVEL = 5
logging.addLevelName(TRACE_LEVEL, "TRACE")

LOGGER_NAME = "engine_client"

_LEVELS: dict[LogLevel, int] = {
    "trace": TRACE_LEVEL,
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "error": logging.ERROR,
}


class LoggerProtocol(Protocol):
    def log(self, level: int, msg: str, *args: Any, **kwargs: Any) -> None: ...


class BoundLogger:
    """Wraps a logging.Logger with a level floor and bound context fields.

    Bound fields (endpoint, component, ...) are rendered as a ``key=value``
    suffix on every record so concurrent calls stay distinguishable in logs.
    """

    def __init__(
        self,
        logger: LoggerProtocol | None = None,
        *,
        level: LogLevel = "info",
        fields: Mapping[str, Any] | None = None,
    ) -> None:
        self._logger = logger or _default_logger()
        self._level = level
        self._fields = dict(fields or {})

    @property
    def level(self) -> LogLevel:
        return self._level

    def trace(self, msg: str, *args: Any) -> None:
        self._emit("trace", msg, args)

    def debug(self, msg: str, *args: Any) -> None:
        self._emit("debug", msg, args)

    def info(self, msg: str, *args: Any) -> None:
        self._emit("info", msg, args)

    def warn(self, msg: str, *args: Any) -> None:
        self._emit("warn", msg, args)

    def error(self, msg: str, *args: Any) -> None:
        self._emit("error", msg, args)

    def child(self, name: str) -> "BoundLogger":
        """Derive a component logger anchored under the same Python logger."""
        base = self._logger.getChild(name) if isinstance(self._logger, logging.Logger) else self._logger
        return BoundLogger(base, level=self._level, fields=self._fields)

    def bind(self, **fields: Any) -> "BoundLogger":
        merged = {**self._fields, **fields}
        return BoundLogger(self._logger, level=self._level, fields=merged)

    def _emit(self, level: LogLevel, msg: str, args: tuple[Any, ...]) -> None:
        if _LEVELS[level] < _LEVELS[self._level]:
            return
        if self._fields:
            suffix = " ".join(f"{key}={value}" for key, value in self._fields.items())
            msg = f"{msg} [{suffix.replace('%', '%%')}]"
        try:
            self._logger.log(_LEVELS[level], msg, *args)
        except Exception:
            # Never let logging failures bubble up into client code
            pass


def _default_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if not logger.handlers:
        logger.addHandler(logging.NullHandler())
    return logger


def create_logger(
    *,
    logger: BoundLogger | LoggerProtocol | None = None,
    level: LogLevel = "info",
) -> BoundLogger:
    if isinstance(logger, BoundLogger):
        return logger
    return BoundLogger(logger, level=level)


__all__ = ["BoundLogger", "LOGGER_NAME", "LogLevel", "LoggerProtocol", "TRACE_LEVEL", "create_logger"]
