"""Seed derivation from a wallet signing secret.

The FHE keypair is regenerated from the wallet on demand, so nothing
besides the wallet needs storing. HKDF-SHA256 turns the secret into a
32-byte seed bound to fixed protocol labels.
"""

from __future__ import annotations

import base64
import binascii
import re

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from ..config import get_validated_config
from ..config_schema import KdfConfig
from ..peer.errors import ErrorCode, UsageError

SEED_LENGTH = 32

_HASHES: dict[str, type[hashes.HashAlgorithm]] = {"sha256": hashes.SHA256}

_HEX_RE = re.compile(r"^[0-9a-fA-F]+$")


def decode_secret(secret: bytes | bytearray | str) -> bytes:
    """Turn a wallet secret into raw key material.

    Bytes are used as-is. Text is tried as hex (even length), then as
    strict base64, then taken as UTF-8.
    """
    if isinstance(secret, (bytes, bytearray)):
        return bytes(secret)
    if not isinstance(secret, str):
        secret = str(secret)

    if _HEX_RE.match(secret) and len(secret) % 2 == 0:
        return bytes.fromhex(secret)
    try:
        decoded = base64.b64decode(secret, validate=True)
    except (binascii.Error, ValueError):
        decoded = b""
    if decoded:
        return decoded
    return secret.encode("utf-8")


def derive_seed(
    secret: bytes | bytearray | str | None,
    salt: str | bytes | None = None,
    info: str | bytes | None = None,
) -> bytes:
    """Derive the 32-byte keygen seed for a wallet secret.

    Labels default to the configured protocol labels; the hash and output
    length always come from `protocol.kdf`. Same secret and labels always
    give the same seed.

    Raises:
        UsageError: if the secret is missing or decodes to no bytes.
    """
    if secret is None:
        raise UsageError("Insufficient secret material for key derivation", code=ErrorCode.MISSING_SECRET)
    ikm = decode_secret(secret)
    if not ikm:
        raise UsageError("Insufficient secret material for key derivation", code=ErrorCode.MISSING_SECRET)

    kdf_config: KdfConfig = get_validated_config().protocol.kdf
    salt = kdf_config.salt if salt is None else salt
    info = kdf_config.info if info is None else info

    hkdf = HKDF(
        algorithm=_HASHES[kdf_config.hash](),
        length=kdf_config.length,
        salt=salt.encode("utf-8") if isinstance(salt, str) else salt,
        info=info.encode("utf-8") if isinstance(info, str) else info,
    )
    return hkdf.derive(ikm)
