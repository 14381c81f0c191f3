"""API version parsing and ordering."""

from __future__ import annotations

from .errors import MalformedVersionError


class APIVersion:
    """A dotted numeric version such as ``1.12`` or ``1.11-ubuntu0``.

    Anything after the first ``-`` is ignored. Components are compared
    numerically (``1.9 < 1.11``) and, when one version is a prefix of the
    other, the shorter one sorts first (``1.1 < 1.1.1``). All ordering
    operators derive from :meth:`compare`.
    """

    __slots__ = ("_parts", "_raw")

    def __init__(self, raw: str) -> None:
        numeric = raw.split("-", 1)[0]
        if not numeric:
            raise MalformedVersionError(raw)
        parts: list[int] = []
        for segment in numeric.split("."):
            if not segment.isdigit() or not segment.isascii():
                raise MalformedVersionError(raw)
            parts.append(int(segment))
        self._raw = raw
        self._parts = tuple(parts)

    @property
    def parts(self) -> tuple[int, ...]:
        return self._parts

    def compare(self, other: "APIVersion") -> int:
        """Return -1, 0 or 1 as this version sorts before, equal to or after ``other``."""
        if self._parts < other._parts:
            return -1
        if self._parts > other._parts:
            return 1
        return 0

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, APIVersion):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other: "APIVersion") -> bool:
        return self.compare(other) < 0

    def __le__(self, other: "APIVersion") -> bool:
        return self.compare(other) <= 0

    def __gt__(self, other: "APIVersion") -> bool:
        return self.compare(other) > 0

    def __ge__(self, other: "APIVersion") -> bool:
        return self.compare(other) >= 0

    def __hash__(self) -> int:
        return hash(self._parts)

    def __str__(self) -> str:
        return ".".join(str(part) for part in self._parts)

    def __repr__(self) -> str:
        return f"APIVersion({self._raw!r})"


def parse_version(raw: str | APIVersion | None) -> APIVersion | None:
    if raw is None or isinstance(raw, APIVersion):
        return raw
    return APIVersion(raw)


__all__ = ["APIVersion", "parse_version"]
