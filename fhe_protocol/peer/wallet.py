"""Local signing identity.

Only the secret is consumed by the protocol, to seed FHE key generation.
Signing itself is the peer's concern and is not performed here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey

from ..fhe.kdf import decode_secret

WALLET_SECRET_ENV = "FHE_WALLET_SECRET"


def _public_hex(private_key: Ed25519PrivateKey) -> str:
    return private_key.public_key().public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    ).hex()


@dataclass
class Wallet:
    """An Ed25519 identity.

    secret_key is the hex seed (or whatever encoding the wallet was loaded
    from); public_key is hex when it could be computed.
    """

    secret_key: str | None = None
    public_key: str | None = None

    @property
    def has_keypair(self) -> bool:
        return bool(self.secret_key or self.public_key)

    @classmethod
    def generate(cls) -> Wallet:
        private_key = Ed25519PrivateKey.generate()
        seed = private_key.private_bytes(
            encoding=serialization.Encoding.Raw,
            format=serialization.PrivateFormat.Raw,
            encryption_algorithm=serialization.NoEncryption(),
        )
        return cls(secret_key=seed.hex(), public_key=_public_hex(private_key))

    @classmethod
    def from_secret(cls, secret: str) -> Wallet:
        """Load a wallet from its secret.

        32-byte seeds and 64-byte seed||public secrets yield a public key;
        other material is kept as-is without one.
        """
        raw = decode_secret(secret)
        public_key = None
        if len(raw) in (32, 64):
            public_key = _public_hex(Ed25519PrivateKey.from_private_bytes(raw[:32]))
        return cls(secret_key=secret, public_key=public_key)

    @classmethod
    def from_env(cls, var: str = WALLET_SECRET_ENV) -> Wallet | None:
        secret = os.environ.get(var)
        if not secret:
            return None
        return cls.from_secret(secret)
