"""Typed schema for config/config.yaml.

Each YAML section maps to one model below. Models forbid extra keys, so
a misspelt option is a ValidationError instead of a silently ignored
setting. Every field has a default and an empty file is a valid config.

Usage:
    from fhe_protocol.config_schema import load_validated_config
    app = load_validated_config("config/config.yaml")
    app.protocol.kdf.salt
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator


# =============================================================================
# STRICT BASE
# =============================================================================

class StrictModel(BaseModel):
    """Rejects keys the schema does not declare."""

    model_config = ConfigDict(extra="forbid")


# =============================================================================
# PROTOCOL MODELS
# =============================================================================

class KdfConfig(StrictModel):
    """Context labels for deriving the FHE seed from a wallet secret.

    Changing any of these changes every derived keypair, so they are
    effectively part of the protocol version.
    """

    salt: str = Field(
        default="trac-fhe-v1",
        min_length=1,
        description="HKDF salt label"
    )
    info: str = Field(
        default="fhe-seed",
        min_length=1,
        description="HKDF info label"
    )
    hash: Literal["sha256"] = Field(
        default="sha256",
        description="Hash primitive for HKDF"
    )
    length: Literal[32] = Field(
        default=32,
        description="Seed length in bytes"
    )


class StateKeysConfig(StrictModel):
    """Shared-state slots holding the published FHE keys."""

    public_key: str = Field(
        default="fhe/publicKeyB64",
        min_length=1,
        description="View key of the base64 public key"
    )
    server_key: str = Field(
        default="fhe/serverKeyB64",
        min_length=1,
        description="View key of the base64 server key"
    )
    age_prefix: str = Field(
        default="fhe/age/",
        min_length=1,
        description="Prefix for per-address encrypted age entries"
    )


class ProtocolConfig(StrictModel):
    """Key bootstrap protocol configuration."""

    kdf: KdfConfig = Field(default_factory=KdfConfig)
    state_keys: StateKeysConfig = Field(default_factory=StateKeysConfig)


# =============================================================================
# FHE BACKEND MODEL
# =============================================================================

class FheConfig(StrictModel):
    """Encryption capability selection."""

    backend: str | None = Field(
        default=None,
        description="Import path 'package.module:factory' of the FHE backend"
    )

    @field_validator("backend")
    @classmethod
    def validate_backend_path(cls, v: str | None) -> str | None:
        """Backend must look like 'module:attr' when set."""
        if v is None:
            return v
        module, sep, attr = v.partition(":")
        if not sep or not module or not attr:
            raise ValueError(f"backend must be 'module:attribute', got '{v}'")
        return v


# =============================================================================
# PEER MODEL
# =============================================================================

class PeerConfig(StrictModel):
    """Local peer configuration."""

    api_tx_exposed: bool = Field(
        default=True,
        description="Expose automatic transaction broadcast to the protocol"
    )
    visibility_lag: int = Field(
        default=0,
        ge=0,
        description="Reads a committed write stays invisible (in-memory ledger)"
    )
    address: str | None = Field(
        default=None,
        description="Submitting address; defaults to the wallet public key"
    )


# =============================================================================
# LOGGING MODEL
# =============================================================================

class LoggingConfig(StrictModel):
    """Diagnostic logging and the protocol event log."""

    level: str = Field(
        default="WARNING",
        description="Python logging level name"
    )
    output_file: str | None = Field(
        default=None,
        description="JSONL file for protocol events (None keeps them in memory)"
    )
    default_recent: int = Field(
        default=50,
        gt=0,
        description="Events returned by EventLogger.recent() when n is omitted"
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Level must be a known logging level name."""
        upper = v.upper()
        if not isinstance(logging.getLevelName(upper), int):
            raise ValueError(f"unknown logging level '{v}'")
        return upper


# =============================================================================
# ROOT AND LOADERS
# =============================================================================

class AppConfig(StrictModel):
    """The whole config.yaml document."""

    protocol: ProtocolConfig = Field(default_factory=ProtocolConfig)
    fhe: FheConfig = Field(default_factory=FheConfig)
    peer: PeerConfig = Field(default_factory=PeerConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def validate_config_dict(config_dict: dict[str, Any]) -> AppConfig:
    """Validate an already-parsed config mapping.

    Raises:
        pydantic.ValidationError: unknown keys or invalid values.
    """
    return AppConfig.model_validate(config_dict)


def load_validated_config(config_path: str | Path = "config/config.yaml") -> AppConfig:
    """Parse a YAML config file and validate it.

    An empty file yields the defaults.

    Raises:
        FileNotFoundError: config_path does not exist.
        pydantic.ValidationError: unknown keys or invalid values.
    """
    path = Path(config_path)
    if not path.is_file():
        raise FileNotFoundError(f"No config file at {path}")
    raw = yaml.safe_load(path.read_text()) or {}
    if not isinstance(raw, dict):
        raise ValueError(f"{path} must contain a mapping at the top level")
    return validate_config_dict(raw)


__all__ = [
    "AppConfig",
    "FheConfig",
    "KdfConfig",
    "LoggingConfig",
    "PeerConfig",
    "ProtocolConfig",
    "StateKeysConfig",
    "StrictModel",
    "load_validated_config",
    "validate_config_dict",
]
