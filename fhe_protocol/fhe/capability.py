"""Encryption capability contract and backend loading.

The homomorphic arithmetic itself lives in an external backend (a native
TFHE binding or similar). This module pins down the interface the
protocol relies on and loads the configured implementation.

The protocol only ever calls keygen_from_seed and
encrypt_u64_with_public_key; the remaining operations are the ones a
contract evaluating ciphertexts needs.

Backend selection (config.yaml):
    fhe:
      backend: "my_binding.kit:create"   # module:attribute

The attribute may be a FheCapability instance, or a zero-argument
callable returning one.
"""

from __future__ import annotations

import base64
import importlib
import logging
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

from ..config import get
from ..peer.errors import BackendNotConfigured

logger = logging.getLogger(__name__)

U64_MAX = 2**64 - 1


@dataclass(frozen=True)
class KeypairFull:
    """Serialized FHE key material.

    client_key decrypts and never leaves the deriving party. server_key
    enables homomorphic evaluation and public_key enables encryption; both
    are published.
    """

    client_key: bytes
    server_key: bytes
    public_key: bytes


@runtime_checkable
class FheCapability(Protocol):
    """Operations over serialized keys and ciphertexts (all bytes)."""

    # ---- keys ----
    def keygen(self) -> KeypairFull: ...
    def keygen_from_seed(self, seed: bytes) -> KeypairFull: ...
    def set_server_key(self, server_key: bytes) -> None: ...
    def gen_public_key(self, client_key: bytes) -> bytes: ...

    # ---- unsigned 64-bit integers ----
    def encrypt_u64(self, value: int, client_key: bytes) -> bytes: ...
    def encrypt_u64_with_public_key(self, value: int, public_key: bytes) -> bytes: ...
    def decrypt_u64(self, ct: bytes, client_key: bytes) -> int: ...
    def gt_u64(self, a: bytes, b: bytes) -> bytes: ...
    def lt_u64(self, a: bytes, b: bytes) -> bytes: ...
    def eq_u64(self, a: bytes, b: bytes) -> bytes: ...
    def gt_u64_clear(self, enc_a: bytes, clear_b: int) -> bytes: ...
    def select_u64(self, cond: bytes, then_ct: bytes, else_ct: bytes) -> bytes: ...
    def max_u64(self, a: bytes, b: bytes) -> bytes: ...
    def min_u64(self, a: bytes, b: bytes) -> bytes: ...

    # ---- booleans ----
    def decrypt_bool(self, ct: bytes, client_key: bytes) -> bool: ...
    def and_bool(self, a: bytes, b: bytes) -> bytes: ...
    def or_bool(self, a: bytes, b: bytes) -> bytes: ...
    def not_bool(self, a: bytes) -> bytes: ...

    # ---- ASCII strings ----
    def encrypt_ascii(self, s: str, client_key: bytes) -> bytes: ...
    def decrypt_ascii(self, ct: bytes, client_key: bytes) -> str: ...
    def to_lowercase(self, ct: bytes) -> bytes: ...
    def eq_strings(self, a: bytes, b: bytes) -> bytes: ...

    # ---- compression ----
    def compress_server_key(self, server_key: bytes) -> bytes: ...
    def decompress_server_key(self, compressed: bytes) -> bytes: ...
    def compress_public_key(self, public_key: bytes) -> bytes: ...
    def decompress_public_key(self, compressed: bytes) -> bytes: ...


def to_b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def from_b64(text: str | bytes) -> bytes:
    return base64.b64decode(text)


def check_u64(value: Any) -> int:
    """Validate a plaintext for u64 encryption."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"expected an integer, got {type(value).__name__}")
    if value < 0 or value > U64_MAX:
        raise ValueError(f"{value} does not fit in an unsigned 64-bit integer")
    return value


def load_backend(path: str) -> FheCapability:
    """Import a backend from a 'module:attribute' path."""
    module_name, sep, attr = path.partition(":")
    if not sep or not module_name or not attr:
        raise BackendNotConfigured(f"FHE backend path must be 'module:attribute', got '{path}'")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise BackendNotConfigured(f"FHE backend module '{module_name}' could not be imported: {e}") from e

    target = getattr(module, attr, None)
    if target is None:
        raise BackendNotConfigured(f"FHE backend '{path}' has no attribute '{attr}'")

    # Classes satisfy the protocol structurally, so instantiate them explicitly
    if isinstance(target, FheCapability) and not isinstance(target, type):
        backend = target
    elif callable(target):
        backend = target()
    else:
        backend = None
    if backend is None or not isinstance(backend, FheCapability):
        raise BackendNotConfigured(f"FHE backend '{path}' does not implement the capability interface")
    logger.info("Loaded FHE backend %s", path)
    return backend


def get_backend() -> FheCapability:
    """Load the backend named in config."""
    path = get("fhe.backend")
    if not path:
        raise BackendNotConfigured(
            "No FHE backend configured. Set fhe.backend in config.yaml to the "
            "'module:attribute' path of a compiled binding."
        )
    return load_backend(path)
