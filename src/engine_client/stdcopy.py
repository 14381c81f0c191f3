"""Multiplexed stdout/stderr frame codec.

Each frame is an 8-byte header (selector byte, three reserved bytes, 4-byte
big-endian payload length) followed by the payload.
"""

from __future__ import annotations

import struct
from typing import IO, Iterable, Iterator

from .errors import StreamCorruptionError

STDIN = 0
STDOUT = 1
STDERR = 2

HEADER_SIZE = 8
_HEADER = struct.Struct(">BxxxI")


class _ChunkBuffer:
    """Pulls exact-size reads out of an iterator of arbitrarily sized chunks."""

    def __init__(self, chunks: Iterable[bytes]) -> None:
        self._chunks: Iterator[bytes] = iter(chunks)
        self._buffer = bytearray()
        self._eof = False

    def read_exact(self, size: int) -> bytes | None:
        """Return ``size`` bytes, or None at a clean EOF before any byte arrived."""
        while len(self._buffer) < size and not self._eof:
            try:
                self._buffer.extend(next(self._chunks))
            except StopIteration:
                self._eof = True
        if len(self._buffer) < size:
            if not self._buffer:
                return None
            raise StreamCorruptionError(
                f"unexpected EOF: wanted {size} bytes, got {len(self._buffer)}",
                context=bytes(self._buffer),
            )
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data


def encode_frame(stream: int, payload: bytes) -> bytes:
    return _HEADER.pack(stream, len(payload)) + payload


def write_frame(sink: IO[bytes], stream: int, payload: bytes) -> None:
    sink.write(encode_frame(stream, payload))


def demultiplex(
    chunks: Iterable[bytes],
    stdout: IO[bytes] | None,
    stderr: IO[bytes] | None,
) -> int:
    """Route framed payloads to ``stdout``/``stderr``; returns the payload bytes copied."""
    reader = _ChunkBuffer(chunks)
    written = 0
    while True:
        header = reader.read_exact(HEADER_SIZE)
        if header is None:
            return written
        selector, length = _HEADER.unpack(header)
        if selector in (STDIN, STDOUT):
            sink = stdout
        elif selector == STDERR:
            sink = stderr
        else:
            raise StreamCorruptionError(f"unrecognized stream selector {selector}", context=header)
        if length == 0:
            continue
        payload = reader.read_exact(length)
        if payload is None:
            raise StreamCorruptionError(
                f"unexpected EOF: frame announced {length} bytes, got none",
                context=header,
            )
        if sink is not None:
            sink.write(payload)
        written += length


def copy_raw(chunks: Iterable[bytes], sink: IO[bytes] | None) -> int:
    written = 0
    for chunk in chunks:
        if sink is not None:
            sink.write(chunk)
        written += len(chunk)
    return written


__all__ = ["HEADER_SIZE", "STDERR", "STDIN", "STDOUT", "copy_raw", "demultiplex", "encode_frame", "write_frame"]
