"""
Fixed-width, versioned binary layouts for stored records.

Every record starts with a 9-byte header:

    discriminator (8 bytes) = SHA256("liqmine:record:<kind>")[:8]
    version       (1 byte)  = LAYOUT_VERSION

followed by a little-endian body:

    PoolConfig v1 (244 bytes total)
        admin                  48s
        lp_asset_id            32s
        reward_asset_id        32s
        total_staked           u64
        rewards_distributed    u64
        reward_rate            u64
        lp_vault_authority     48s
        lp_vault_bump          u8
        reward_vault_authority 48s
        reward_vault_bump      u8
        bump                   u8

    UserStakePosition v1 (130 bytes total)
        owner                  48s
        pool                   48s
        amount_staked          u64
        staked_at              i64
        last_claimed           i64
        bump                   u8
"""

from __future__ import annotations

import hashlib
import struct
from enum import Enum, unique
from typing import Union

from ..core.staking.errors import LayoutError
from ..core.staking.types import PoolConfig, UserStakePosition
from .canonical import (
    ASSET_ID_NBYTES,
    IDENTITY_NBYTES,
    bytes_to_hex,
    hex_to_bytes_fixed,
)

LAYOUT_VERSION = 1

_HEADER = struct.Struct("<8sB")
_POOL_BODY = struct.Struct("<48s32s32sQQQ48sB48sBB")
_POSITION_BODY = struct.Struct("<48s48sQqqB")

POOL_CONFIG_SIZE = _HEADER.size + _POOL_BODY.size
POSITION_SIZE = _HEADER.size + _POSITION_BODY.size

Record = Union[PoolConfig, UserStakePosition]


@unique
class RecordKind(Enum):
    POOL_CONFIG = "pool_config"
    POSITION = "position"


def discriminator(kind: RecordKind) -> bytes:
    return hashlib.sha256(b"liqmine:record:" + kind.value.encode("ascii")).digest()[:8]


def record_size(kind: RecordKind) -> int:
    return POOL_CONFIG_SIZE if kind is RecordKind.POOL_CONFIG else POSITION_SIZE


def _id(value: str, name: str) -> bytes:
    return hex_to_bytes_fixed(value, nbytes=IDENTITY_NBYTES, name=name)


def _asset(value: str, name: str) -> bytes:
    return hex_to_bytes_fixed(value, nbytes=ASSET_ID_NBYTES, name=name)


def encode_pool_config(pool: PoolConfig) -> bytes:
    try:
        body = _POOL_BODY.pack(
            _id(pool.admin, "admin"),
            _asset(pool.lp_asset_id, "lp_asset_id"),
            _asset(pool.reward_asset_id, "reward_asset_id"),
            pool.total_staked,
            pool.rewards_distributed,
            pool.reward_rate,
            _id(pool.lp_vault_authority, "lp_vault_authority"),
            pool.lp_vault_bump,
            _id(pool.reward_vault_authority, "reward_vault_authority"),
            pool.reward_vault_bump,
            pool.bump,
        )
    except (struct.error, ValueError, TypeError) as exc:
        raise LayoutError(f"cannot encode PoolConfig: {exc}") from exc
    return _HEADER.pack(discriminator(RecordKind.POOL_CONFIG), LAYOUT_VERSION) + body


def encode_position(position: UserStakePosition) -> bytes:
    try:
        body = _POSITION_BODY.pack(
            _id(position.owner, "owner"),
            _id(position.pool, "pool"),
            position.amount_staked,
            position.staked_at,
            position.last_claimed,
            position.bump,
        )
    except (struct.error, ValueError, TypeError) as exc:
        raise LayoutError(f"cannot encode UserStakePosition: {exc}") from exc
    return _HEADER.pack(discriminator(RecordKind.POSITION), LAYOUT_VERSION) + body


def _check_header(kind: RecordKind, data: bytes) -> None:
    if len(data) != record_size(kind):
        raise LayoutError(f"{kind.value} record must be {record_size(kind)} bytes, got {len(data)}")
    disc, version = _HEADER.unpack_from(data, 0)
    if disc != discriminator(kind):
        raise LayoutError(f"discriminator mismatch for {kind.value}")
    if version != LAYOUT_VERSION:
        raise LayoutError(f"unsupported {kind.value} layout version {version}")


def decode_pool_config(data: bytes) -> PoolConfig:
    _check_header(RecordKind.POOL_CONFIG, data)
    (
        admin,
        lp_asset_id,
        reward_asset_id,
        total_staked,
        rewards_distributed,
        reward_rate,
        lp_vault_authority,
        lp_vault_bump,
        reward_vault_authority,
        reward_vault_bump,
        bump,
    ) = _POOL_BODY.unpack_from(data, _HEADER.size)
    return PoolConfig(
        admin=bytes_to_hex(admin),
        lp_asset_id=bytes_to_hex(lp_asset_id),
        reward_asset_id=bytes_to_hex(reward_asset_id),
        reward_rate=reward_rate,
        lp_vault_authority=bytes_to_hex(lp_vault_authority),
        lp_vault_bump=lp_vault_bump,
        reward_vault_authority=bytes_to_hex(reward_vault_authority),
        reward_vault_bump=reward_vault_bump,
        bump=bump,
        total_staked=total_staked,
        rewards_distributed=rewards_distributed,
    )


def decode_position(data: bytes) -> UserStakePosition:
    _check_header(RecordKind.POSITION, data)
    owner, pool, amount_staked, staked_at, last_claimed, bump = _POSITION_BODY.unpack_from(data, _HEADER.size)
    return UserStakePosition(
        owner=bytes_to_hex(owner),
        pool=bytes_to_hex(pool),
        bump=bump,
        amount_staked=amount_staked,
        staked_at=staked_at,
        last_claimed=last_claimed,
    )


def encode_record(kind: RecordKind, record: Record) -> bytes:
    if kind is RecordKind.POOL_CONFIG and isinstance(record, PoolConfig):
        return encode_pool_config(record)
    if kind is RecordKind.POSITION and isinstance(record, UserStakePosition):
        return encode_position(record)
    raise LayoutError(f"record of type {type(record).__name__} does not match kind {kind.value}")


def decode_record(kind: RecordKind, data: bytes) -> Record:
    if kind is RecordKind.POOL_CONFIG:
        return decode_pool_config(data)
    return decode_position(data)
