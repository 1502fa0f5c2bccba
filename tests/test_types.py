from types import SimpleNamespace

import pytest

from ledgerkit.types import (
    H128,
    H160,
    H256,
    H512,
    Version,
    address_to_h160,
    bytes_to_h512,
    ensure_version,
    h160_to_address,
    h256_to_hash,
    h256_to_int,
    h512_to_bytes,
    hash_to_h256,
    hashes_to_h256,
    int_to_h256,
    version_from_proto,
)


def test_hash_to_h256_word_order():
    h = hash_to_h256(bytes(range(32)))
    assert h.hi.hi == 0x0001020304050607
    assert h.lo.lo == 0x18191A1B1C1D1E1F


def test_hash_round_trip():
    data = bytes(range(100, 132))
    assert h256_to_hash(hash_to_h256(data)) == data


def test_hashes_to_h256_preserves_order():
    hashes = [bytes([i]) * 32 for i in range(3)]
    assert [h256_to_hash(h) for h in hashes_to_h256(hashes)] == hashes


def test_hash_wrong_length():
    with pytest.raises(ValueError):
        hash_to_h256(b"\x00" * 31)


def test_address_round_trip_and_layout():
    addr = bytes(range(1, 21))
    h = address_to_h160(addr)
    assert h.lo == 0x11121314
    assert h160_to_address(h) == addr
    with pytest.raises(ValueError):
        address_to_h160(b"\x00" * 21)


def test_int_round_trip():
    for value in (0, 1, 2**64, 2**255 + 12345, 2**256 - 1):
        assert h256_to_int(int_to_h256(value)) == value


def test_int_to_h256_least_significant_word():
    h = int_to_h256(5)
    assert h.lo.lo == 5
    assert h.hi == H128()


def test_int_to_h256_out_of_range():
    with pytest.raises(ValueError):
        int_to_h256(2**256)
    with pytest.raises(ValueError):
        int_to_h256(-1)


def test_h512_round_trip():
    data = bytes(range(64))
    assert h512_to_bytes(bytes_to_h512(data)) == data


def test_bytes_to_h512_pads_short_input():
    assert h512_to_bytes(bytes_to_h512(b"\x01\x02")) == b"\x01\x02" + b"\x00" * 62


def test_bytes_to_h512_uses_first_64_bytes():
    data = bytes(range(70))
    assert h512_to_bytes(bytes_to_h512(data)) == data[:64]


def test_word_range_checks():
    with pytest.raises(ValueError):
        H128(hi=2**64)
    with pytest.raises(ValueError):
        H160(lo=2**32)


def test_default_h512_is_zero():
    assert h512_to_bytes(H512()) == b"\x00" * 64
    assert h256_to_int(H256()) == 0


def test_version_str_and_from_proto():
    reply = SimpleNamespace(major=3, minor=1, patch=7)
    version = version_from_proto(reply)
    assert version == Version(3, 1, 7)
    assert str(version) == "3.1.7"


def test_ensure_version_allows_patch_difference_only():
    local = Version(2, 1, 0)
    assert ensure_version(local, SimpleNamespace(major=2, minor=1, patch=9)) is True
    assert ensure_version(local, SimpleNamespace(major=2, minor=2, patch=0)) is False
    assert ensure_version(local, SimpleNamespace(major=3, minor=1, patch=0)) is False