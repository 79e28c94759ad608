"""
Caller authentication for staking requests.

Signing format:

    msg_hash  = SHA256( domain_sep("staking_request:<chain_id>", v1) || canonical_json_bytes(payload) )
    signature = BLS12-381 G2Basic.Sign(sk, msg_hash)

where ``payload`` is ``request_payload(...)`` for the operation. Identities are
48-byte compressed G1 public keys (0x-prefixed hex), signatures 96-byte G2
points.
"""

from __future__ import annotations

import hashlib
from typing import Any, Dict, Mapping, Optional, Tuple

from py_ecc.bls import G2Basic

from ..state.canonical import (
    IDENTITY_NBYTES,
    bytes_to_hex,
    canonical_json_bytes,
    domain_sep_bytes,
    hex_to_bytes_fixed,
)

SIGNATURE_NBYTES = 96


def request_payload(
    action: str, *, pool: str, user: str, amount: Optional[int] = None, **extra: Any
) -> Dict[str, Any]:
    d: Dict[str, Any] = {"action": action, "pool": pool, "user": user}
    if amount is not None:
        d["amount"] = int(amount)
    d.update(extra)
    return d


def request_message_hash(chain_id: str, payload: Mapping[str, Any]) -> bytes:
    msg = domain_sep_bytes(f"staking_request:{chain_id}", version=1) + canonical_json_bytes(dict(payload))
    return hashlib.sha256(msg).digest()


def sign_request(secret_key: int, chain_id: str, payload: Mapping[str, Any]) -> str:
    """Client-side helper: sign a request payload with a BLS secret key."""
    sig = G2Basic.Sign(secret_key, request_message_hash(chain_id, payload))
    return bytes_to_hex(sig)


def identity_from_secret(secret_key: int) -> str:
    return bytes_to_hex(G2Basic.SkToPk(secret_key))


class IdentityVerifier:
    """Interface for authenticating the caller of a request."""

    def verify(
        self, identity: str, payload: Mapping[str, Any], signature: Optional[str]
    ) -> Tuple[bool, Optional[str]]:
        raise NotImplementedError


class TrustedCallerVerifier(IdentityVerifier):
    """Caller identity was already authenticated by the surrounding layer."""

    def verify(
        self, identity: str, payload: Mapping[str, Any], signature: Optional[str]
    ) -> Tuple[bool, Optional[str]]:
        return True, None


class BlsRequestVerifier(IdentityVerifier):
    def __init__(self, chain_id: str) -> None:
        self._chain_id = str(chain_id)

    def verify(
        self, identity: str, payload: Mapping[str, Any], signature: Optional[str]
    ) -> Tuple[bool, Optional[str]]:
        if signature is None:
            return False, "missing request signature"
        try:
            pubkey_bytes = hex_to_bytes_fixed(identity, nbytes=IDENTITY_NBYTES, name="identity")
            sig_bytes = hex_to_bytes_fixed(signature, nbytes=SIGNATURE_NBYTES, name="signature")
        except (TypeError, ValueError) as exc:
            return False, str(exc)
        if not G2Basic.KeyValidate(pubkey_bytes):
            return False, "identity is not a valid BLS public key"
        msg_hash = request_message_hash(self._chain_id, payload)
        if not G2Basic.Verify(pubkey_bytes, msg_hash, sig_bytes):
            return False, "invalid request signature"
        return True, None
