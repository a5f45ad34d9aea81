"""Address decoding and key fingerprints.

Shelley addresses (CIP-19) are bech32 strings whose first payload byte
is a header: the high nibble selects the address type, which fixes how
the following 28-byte credential hashes are laid out.

Base addresses run past the 90 character limit enforced by
``bech32.bech32_decode``, so the string is split here and checked with
the library's checksum and bit-conversion primitives instead.
"""

from __future__ import annotations

import hashlib

import bech32

from .models import Credential

_HASH_LEN = 28

# Header types (high nibble of the first byte)
_BASE_TYPES = frozenset({0, 1, 2, 3})
_STAKE_KEY_BASE_TYPES = frozenset({0, 1})
_POINTER_TYPES = frozenset({4, 5})
_ENTERPRISE_TYPES = frozenset({6, 7})
_REWARD_KEY_TYPE = 14


def decode_bech32(text: str) -> tuple[str, bytes]:
    """Decode a bech32 string of any length into (hrp, payload bytes)."""
    if text.lower() != text and text.upper() != text:
        raise ValueError("mixed case bech32 string")
    lowered = text.lower()
    pos = lowered.rfind("1")
    if pos < 1 or pos + 7 > len(lowered):
        raise ValueError("missing bech32 separator or checksum")

    hrp = lowered[:pos]
    try:
        data = [bech32.CHARSET.index(c) for c in lowered[pos + 1:]]
    except ValueError:
        raise ValueError("invalid bech32 character") from None
    if not bech32.bech32_verify_checksum(hrp, data):
        raise ValueError("bech32 checksum mismatch")

    decoded = bech32.convertbits(data[:-6], 5, 8, False)
    if decoded is None:
        raise ValueError("error converting from bech32 words")
    return hrp, bytes(decoded)


def _address_payload(address: str) -> tuple[int, bytes] | None:
    try:
        _, payload = decode_bech32(address)
    except ValueError:
        return None  # Byron or garbage
    if not payload:
        return None
    return payload[0] >> 4, payload


def payment_credential(address: str) -> Credential | None:
    """Payment credential of a Shelley payment address."""
    parsed = _address_payload(address)
    if parsed is None:
        return None
    addr_type, payload = parsed
    if addr_type not in _BASE_TYPES | _POINTER_TYPES | _ENTERPRISE_TYPES:
        return None
    if len(payload) < 1 + _HASH_LEN:
        return None
    kind = "script" if addr_type & 1 else "pubkey"
    return Credential(kind=kind, hash=payload[1:1 + _HASH_LEN].hex())


def stake_key(address: str) -> str | None:
    """Stake key hash (hex) of a base address or a reward address.

    Script stake credentials and addresses without a stake part yield None.
    """
    parsed = _address_payload(address)
    if parsed is None:
        return None
    addr_type, payload = parsed
    if addr_type in _STAKE_KEY_BASE_TYPES:
        part = payload[1 + _HASH_LEN:1 + 2 * _HASH_LEN]
    elif addr_type == _REWARD_KEY_TYPE:
        part = payload[1:1 + _HASH_LEN]
    else:
        return None
    if len(part) != _HASH_LEN:
        return None
    return part.hex()


def key_fingerprint(raw: bytes) -> str:
    """Key hash (hex) identifying a signer.

    A 32-byte verification key is hashed with blake2b-224; anything else is
    taken to already be a key hash.
    """
    if len(raw) == 32:
        return hashlib.blake2b(raw, digest_size=_HASH_LEN).hexdigest()
    return raw.hex()


__all__ = [
    "decode_bech32",
    "key_fingerprint",
    "payment_credential",
    "stake_key",
]
