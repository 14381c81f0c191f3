import itertools

import pytest

from engine_client import APIVersion, MalformedVersionError
from engine_client.apiversion import parse_version


@pytest.mark.parametrize(
    ("a", "b", "expected"),
    [
        ("1.11", "1.11", 0),
        ("1.10", "1.11", -1),
        ("1.11", "1.10", 1),
        ("1.9", "1.11", -1),
        ("1.11", "1.9", 1),
        ("1.1.1", "1.1", 1),
        ("1.1", "1.1.1", -1),
        ("1.1.0", "1.1", 1),
        ("2.0", "1.99", 1),
        ("1.11-ubuntu0", "1.11", 0),
        ("1.12-rc1", "1.11", 1),
    ],
)
def test_compare(a: str, b: str, expected: int) -> None:
    assert APIVersion(a).compare(APIVersion(b)) == expected
    assert APIVersion(b).compare(APIVersion(a)) == -expected


def test_operators_follow_compare() -> None:
    low, high = APIVersion("1.9"), APIVersion("1.12")
    assert low < high
    assert low <= high
    assert high > low
    assert high >= low
    assert low != high
    assert APIVersion("1.12") == APIVersion("1.12-dev")
    assert hash(APIVersion("1.12")) == hash(APIVersion("1.12-dev"))


def test_ordering_is_total() -> None:
    versions = [APIVersion(raw) for raw in ("1", "1.0", "1.1", "1.1.1", "1.9", "1.10", "1.11", "2.0")]
    for a, b in itertools.product(versions, repeat=2):
        assert sum([a < b, a == b, a > b]) == 1
    assert sorted(reversed(versions)) == versions


def test_str_drops_suffix() -> None:
    assert str(APIVersion("1.11-ubuntu0")) == "1.11"
    assert APIVersion("1.24").parts == (1, 24)


@pytest.mark.parametrize("raw", ["", "1.", ".1", "1..2", "a.b", "1.x", "-rc1", "1.2a"])
def test_malformed_versions(raw: str) -> None:
    with pytest.raises(MalformedVersionError):
        APIVersion(raw)


def test_parse_version_passthrough() -> None:
    version = APIVersion("1.24")
    assert parse_version(None) is None
    assert parse_version(version) is version
    assert parse_version("1.24") == version
