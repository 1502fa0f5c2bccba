"""Fixed-width hash words used on the wire, their conversions, and interface versions."""

from __future__ import annotations

import struct
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol

__all__ = [
    "H128",
    "H160",
    "H256",
    "H512",
    "Version",
    "h256_to_hash",
    "hash_to_h256",
    "hashes_to_h256",
    "h160_to_address",
    "address_to_h160",
    "h256_to_int",
    "int_to_h256",
    "h512_to_bytes",
    "bytes_to_h512",
    "version_from_proto",
    "ensure_version",
]

_U64 = 1 << 64
_U32 = 1 << 32


def _check_word(name: str, value: int, limit: int) -> None:
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < limit:
        raise ValueError(f"{name} out of range: {value!r}")


@dataclass(frozen=True)
class H128:
    hi: int = 0
    lo: int = 0

    def __post_init__(self) -> None:
        _check_word("H128.hi", self.hi, _U64)
        _check_word("H128.lo", self.lo, _U64)


@dataclass(frozen=True)
class H160:
    hi: H128 = H128()
    lo: int = 0

    def __post_init__(self) -> None:
        _check_word("H160.lo", self.lo, _U32)


@dataclass(frozen=True)
class H256:
    hi: H128 = H128()
    lo: H128 = H128()


@dataclass(frozen=True)
class H512:
    hi: H256 = H256()
    lo: H256 = H256()


def _require_length(name: str, data: bytes, size: int) -> None:
    if len(data) != size:
        raise ValueError(f"{name} must be {size} bytes, got {len(data)}")


def h256_to_hash(h256: H256) -> bytes:
    """Big-endian 32-byte form of an H256."""
    return struct.pack(">4Q", h256.hi.hi, h256.hi.lo, h256.lo.hi, h256.lo.lo)


def hash_to_h256(hash_: bytes) -> H256:
    """Split a 32-byte hash into an H256."""
    _require_length("hash", hash_, 32)
    a, b, c, d = struct.unpack(">4Q", hash_)
    return H256(hi=H128(hi=a, lo=b), lo=H128(hi=c, lo=d))


def hashes_to_h256(hashes: Iterable[bytes]) -> list[H256]:
    return [hash_to_h256(h) for h in hashes]


def h160_to_address(h160: H160) -> bytes:
    """Big-endian 20-byte address form of an H160."""
    return struct.pack(">QQI", h160.hi.hi, h160.hi.lo, h160.lo)


def address_to_h160(addr: bytes) -> H160:
    """Split a 20-byte address into an H160."""
    _require_length("address", addr, 20)
    hi, mid, lo = struct.unpack(">QQI", addr)
    return H160(hi=H128(hi=hi, lo=mid), lo=lo)


def h256_to_int(h256: H256) -> int:
    """Interpret an H256 as an unsigned 256-bit integer."""
    return int.from_bytes(h256_to_hash(h256), "big")


def int_to_h256(value: int) -> H256:
    """Encode an unsigned 256-bit integer as an H256."""
    if isinstance(value, bool) or not isinstance(value, int) or not 0 <= value < 1 << 256:
        raise ValueError(f"value does not fit in 256 bits: {value!r}")
    return hash_to_h256(value.to_bytes(32, "big"))


def h512_to_bytes(h512: H512) -> bytes:
    """Big-endian 64-byte form of an H512."""
    return h256_to_hash(h512.hi) + h256_to_hash(h512.lo)


def bytes_to_h512(b: bytes) -> H512:
    """Build an H512 from the first 64 bytes of b, zero-padding shorter input."""
    data = bytes(b[:64]).ljust(64, b"\x00")
    return H512(hi=hash_to_h256(data[:32]), lo=hash_to_h256(data[32:]))


class _VersionLike(Protocol):
    major: int
    minor: int
    patch: int


@dataclass(frozen=True)
class Version:
    """Interface version of a client, checked for compatibility on connect."""

    major: int = 0
    minor: int = 0
    patch: int = 0

    def __str__(self) -> str:
        return f"{self.major}.{self.minor}.{self.patch}"


def version_from_proto(reply: _VersionLike) -> Version:
    """Build a Version from anything carrying major, minor and patch."""
    return Version(major=reply.major, minor=reply.minor, patch=reply.patch)


def ensure_version(local: Version, remote: _VersionLike) -> bool:
    """Compatible when major and minor match; patch may differ."""
    return remote.major == local.major and remote.minor == local.minor