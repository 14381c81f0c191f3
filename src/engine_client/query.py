"""Query string construction for request options.

Each options type owns its mapping to query parameters by implementing
``to_query()`` with a :class:`QueryBuilder`. The builder applies the shared
rules: empty values are dropped unless marked required, booleans render as
``1``, and structured values are JSON encoded into a single parameter.
Fields that should never reach the wire are simply not added.
"""

from __future__ import annotations

import dataclasses
import json
from typing import Any, Mapping, Protocol, runtime_checkable
from urllib.parse import urlencode


@runtime_checkable
class QueryOptions(Protocol):
    def to_query(self) -> Mapping[str, str]: ...


class QueryBuilder:
    def __init__(self) -> None:
        self._items: dict[str, str] = {}

    def add(self, key: str, value: Any, *, required: bool = False) -> "QueryBuilder":
        if _is_empty(value) and not required:
            return self
        self._items[key] = format_query_value(value)
        return self

    def build(self) -> dict[str, str]:
        return dict(self._items)


def format_query_value(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        return repr(value) if not value.is_integer() else str(int(value))
    if isinstance(value, str):
        return value
    return json.dumps(_jsonable(value), separators=(",", ":"))


def query_string(options: Any) -> str:
    """Encode ``options`` as a query string; anything that is not an options type yields ``""``."""
    if options is None or not isinstance(options, QueryOptions):
        return ""
    items = options.to_query()
    return urlencode(sorted(items.items()))


def _is_empty(value: Any) -> bool:
    if value is None or value is False:
        return True
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return value == 0
    if isinstance(value, (str, bytes, list, tuple, dict, set, frozenset)):
        return len(value) == 0
    return False


def _jsonable(value: Any) -> Any:
    to_json = getattr(value, "to_json", None)
    if callable(to_json):
        return to_json()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return dataclasses.asdict(value)
    if isinstance(value, (set, frozenset)):
        return sorted(value)
    return value


__all__ = ["QueryBuilder", "QueryOptions", "format_query_value", "query_string"]
