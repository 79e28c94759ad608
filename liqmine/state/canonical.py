"""
Canonical byte encodings shared by derivation, record layouts and request
signing. Two encoders given the same input must agree byte for byte.

- identities / derived addresses: 48 bytes, ``0x`` + lowercase hex
- asset ids: 32 bytes, ``0x`` + lowercase hex
- JSON payloads: sorted keys, no whitespace, ints and strings only
"""

from __future__ import annotations

import json
import string
import struct
from typing import Any

IDENTITY_NBYTES = 48  # BLS12-381 G1 compressed pubkey / derived address
ASSET_ID_NBYTES = 32

_SEED_LEN = struct.Struct(">H")
_HEXDIGITS = frozenset(string.hexdigits)


def _check_json_value(value: Any, path: str) -> None:
    if isinstance(value, (str, int)) or value is None:
        return
    if isinstance(value, dict):
        for k, v in value.items():
            if not isinstance(k, str):
                raise TypeError(f"{path}: object keys must be str")
            _check_json_value(v, f"{path}.{k}")
        return
    if isinstance(value, (list, tuple)):
        for i, item in enumerate(value):
            _check_json_value(item, f"{path}[{i}]")
        return
    raise TypeError(f"{path}: {type(value).__name__} is not allowed in canonical JSON")


def canonical_json_bytes(value: Any) -> bytes:
    """Sorted-key, whitespace-free UTF-8 JSON. Floats are rejected."""
    _check_json_value(value, "$")
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False).encode("utf-8")


def domain_sep_bytes(label: str, version: int = 1) -> bytes:
    """``liqmine:<label>:v<version>\\0``; NUL-terminated so prefixes never collide."""
    if not isinstance(label, str) or not label or "\x00" in label or not label.isascii():
        raise ValueError(f"domain label must be non-empty ASCII without NUL: {label!r}")
    if isinstance(version, bool) or not isinstance(version, int) or version < 1:
        raise ValueError(f"domain version must be a positive int: {version!r}")
    return f"liqmine:{label}:v{version}".encode("ascii") + b"\x00"


def encode_seed(value: bytes) -> bytes:
    """Seed bytes behind a 2-byte big-endian length."""
    if not isinstance(value, (bytes, bytearray)):
        raise TypeError("seed must be bytes")
    if len(value) > 0xFFFF:
        raise ValueError(f"seed too long: {len(value)} bytes")
    return _SEED_LEN.pack(len(value)) + bytes(value)


def _hex_body(value: Any, *, nbytes: int, name: str, require_prefix: bool) -> str:
    if not isinstance(value, str):
        raise TypeError(f"{name} must be a str")
    body = value if require_prefix else value.strip()
    if body[:2] == "0x" or (not require_prefix and body[:2] == "0X"):
        body = body[2:]
    elif require_prefix:
        raise ValueError(f"{name} must be 0x-prefixed")
    if len(body) != 2 * nbytes or not _HEXDIGITS.issuperset(body):
        raise ValueError(f"{name} must be {nbytes} bytes of hex")
    return body


def hex_to_bytes_fixed(value: str, *, nbytes: int, name: str) -> bytes:
    """Strict decode: ``0x`` prefix and exactly ``nbytes`` bytes."""
    return bytes.fromhex(_hex_body(value, nbytes=nbytes, name=name, require_prefix=True))


def bytes_to_hex(value: bytes) -> str:
    return "0x" + bytes(value).hex()


def canonical_identity(value: str, *, name: str = "identity") -> str:
    """Lenient parse (prefix optional, any case, surrounding whitespace) to canonical form."""
    return "0x" + _hex_body(value, nbytes=IDENTITY_NBYTES, name=name, require_prefix=False).lower()


def canonical_asset_id(value: str, *, name: str = "asset_id") -> str:
    return "0x" + _hex_body(value, nbytes=ASSET_ID_NBYTES, name=name, require_prefix=False).lower()
