"""Process-wide configuration for the FHE protocol.

Protocol labels, state slots, the encryption backend and peer wiring are
read from config/config.yaml and checked against the pydantic schema in
config_schema, so a misspelt key stops the peer at startup.

Usage:
    from fhe_protocol.config import load_config, get, get_validated_config

    load_config()                                # once, at startup
    info = get("protocol.kdf.info")              # untyped dot-path lookup
    kdf = get_validated_config().protocol.kdf    # typed access
"""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Any

from .config_schema import AppConfig, load_validated_config, validate_config_dict

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR: str = "FHE_PROTOCOL_CONFIG"
DEFAULT_CONFIG_PATH: Path = Path(__file__).resolve().parent.parent / "config" / "config.yaml"

# Loaded state: the validated model and its plain-dict dump
_validated_config: AppConfig | None = None
_config: dict[str, Any] | None = None


def _install(config: AppConfig) -> AppConfig:
    global _config, _validated_config
    _validated_config = config
    _config = config.model_dump()
    return config


def _ensure_loaded() -> AppConfig:
    if _validated_config is None:
        load_config()
    if _validated_config is None:
        raise RuntimeError("Configuration is not loaded; call load_config() first.")
    return _validated_config


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    """Explicit path, else $FHE_PROTOCOL_CONFIG, else the bundled config.yaml."""
    if config_path:
        return Path(config_path)
    from_env = os.environ.get(CONFIG_ENV_VAR)
    return Path(from_env) if from_env else DEFAULT_CONFIG_PATH


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Read, validate and install a YAML config file.

    Returns the config as a dict with every default filled in.

    Raises:
        FileNotFoundError: the resolved path does not exist.
        pydantic.ValidationError: unknown keys or out-of-range values.
    """
    path = resolve_config_path(config_path)
    _install(load_validated_config(path))
    logger.debug("Loaded config from %s", path)
    return get_config()


def use_config(config: AppConfig | dict[str, Any]) -> AppConfig:
    """Install a config built in code instead of read from disk."""
    if isinstance(config, dict):
        config = validate_config_dict(config)
    return _install(config)


def reset_config() -> None:
    """Drop the installed config; the next lookup loads it again."""
    global _config, _validated_config
    _config = None
    _validated_config = None


def get_config() -> dict[str, Any]:
    """The installed config as a plain dict."""
    _ensure_loaded()
    if _config is None:
        raise RuntimeError("Configuration is not loaded; call load_config() first.")
    return _config


def get_validated_config() -> AppConfig:
    """The installed config as a typed AppConfig."""
    return _ensure_loaded()


def get(key: str, default: Any = None) -> Any:
    """Look up a dot-separated path, e.g. get("peer.api_tx_exposed").

    Returns `default` when any segment is missing.
    """
    node: Any = get_config()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def set_config_value(key: str, value: Any) -> None:
    """Override one dot-path value at runtime (CLI flags, tests).

    The whole config is validated again, so a bad override raises
    pydantic.ValidationError and leaves the previous config installed.
    """
    updated = get_validated_config().model_dump()
    *parents, leaf = key.split(".")
    node = updated
    for part in parents:
        if not isinstance(node.get(part), dict):
            node[part] = {}
        node = node[part]
    node[leaf] = value
    _install(validate_config_dict(updated))


def configure_logging(level: str | None = None) -> None:
    """Configure root logging at the given or configured level."""
    resolved = (level or get("logging.level") or "WARNING").upper()
    logging.basicConfig(
        level=getattr(logging, resolved, logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
