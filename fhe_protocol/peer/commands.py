"""Command envelopes and the tx command mapper.

The mapper is the untrusted-input boundary between operator text and the
contract. It recognizes a closed set of commands and copies only the
fields each one is allowed to carry. It performs no business validation:
ranges, base64 shape and key existence are enforced by the contract.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

logger = logging.getLogger(__name__)

# Bare literal accepted without JSON
STORE_SOMETHING_LITERAL = "something"


class OperationType(str, Enum):
    """Contract functions a command may target."""

    STORE_SOMETHING = "storeSomething"
    SUBMIT_SOMETHING = "submitSomething"
    SET_FHE_KEYS = "setFheKeys"
    SUBMIT_AGE = "submitAge"


class CommandOp(str, Enum):
    """Values of the JSON `op` field."""

    DO_SOMETHING = "do_something"
    SET_FHE_KEYS = "set_fhe_keys"
    SUBMIT_AGE = "submit_age"


@dataclass
class CommandEnvelope:
    """Base class for mapped commands.

    `type` names the contract function; `value` is the allow-listed
    payload (None when the operation takes none).
    """

    type: OperationType

    @property
    def value(self) -> dict[str, Any] | None:
        return None

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type.value, "value": self.value}

    def to_command(self) -> str:
        """The operator command string that maps back to this envelope."""
        raise NotImplementedError


@dataclass
class StoreSomethingCommand(CommandEnvelope):
    """Bare `something` literal"""

    def __init__(self) -> None:
        super().__init__(OperationType.STORE_SOMETHING)

    def to_command(self) -> str:
        return STORE_SOMETHING_LITERAL


@dataclass
class SubmitSomethingCommand(CommandEnvelope):
    """`do_something` op carrying a single opaque field"""

    some_key: str

    def __init__(self, some_key: str) -> None:
        super().__init__(OperationType.SUBMIT_SOMETHING)
        self.some_key = some_key

    @property
    def value(self) -> dict[str, Any]:
        return {"some_key": self.some_key}

    def to_command(self) -> str:
        return _compact({"op": CommandOp.DO_SOMETHING.value, "some_key": self.some_key})


@dataclass
class SetFheKeysCommand(CommandEnvelope):
    """Publish the contract-wide server and public keys"""

    server_key_b64: str
    public_key_b64: str

    def __init__(self, server_key_b64: str, public_key_b64: str) -> None:
        super().__init__(OperationType.SET_FHE_KEYS)
        self.server_key_b64 = server_key_b64
        self.public_key_b64 = public_key_b64

    @property
    def value(self) -> dict[str, Any]:
        return {"serverKeyB64": self.server_key_b64, "publicKeyB64": self.public_key_b64}

    def to_command(self) -> str:
        return _compact({
            "op": CommandOp.SET_FHE_KEYS.value,
            "serverKeyB64": self.server_key_b64,
            "publicKeyB64": self.public_key_b64,
        })


@dataclass
class SubmitAgeCommand(CommandEnvelope):
    """Submit an age ciphertext encrypted under the published public key"""

    ct_b64: str

    def __init__(self, ct_b64: str) -> None:
        super().__init__(OperationType.SUBMIT_AGE)
        self.ct_b64 = ct_b64

    @property
    def value(self) -> dict[str, Any]:
        return {"ctB64": self.ct_b64}

    def to_command(self) -> str:
        return _compact({"op": CommandOp.SUBMIT_AGE.value, "ctB64": self.ct_b64})


def _compact(data: dict[str, Any]) -> str:
    return json.dumps(data, separators=(",", ":"))


def _str_field(data: dict[str, Any], name: str) -> str | None:
    value = data.get(name)
    return value if isinstance(value, str) else None


def map_tx_command(command: str) -> CommandEnvelope | None:
    """Map a free-text tx command to an envelope.

    Returns None for anything not recognized: unknown literals, malformed
    JSON, non-object JSON, unknown ops, and known ops missing a required
    string field. Never raises for bad input.
    """
    if not isinstance(command, str):
        return None

    if command == STORE_SOMETHING_LITERAL:
        return StoreSomethingCommand()

    try:
        data: Any = json.loads(command)
    except (ValueError, RecursionError):
        # ValueError also covers oversized integer literals, not only JSONDecodeError
        logger.debug("Command is neither a literal nor JSON: %.40r", command)
        return None

    if not isinstance(data, dict):
        return None

    op = data.get("op")

    if op == CommandOp.DO_SOMETHING.value:
        some_key = _str_field(data, "some_key")
        if some_key is None:
            return None
        return SubmitSomethingCommand(some_key)

    elif op == CommandOp.SET_FHE_KEYS.value:
        server_key_b64 = _str_field(data, "serverKeyB64")
        public_key_b64 = _str_field(data, "publicKeyB64")
        if server_key_b64 is None or public_key_b64 is None:
            return None
        return SetFheKeysCommand(server_key_b64, public_key_b64)

    elif op == CommandOp.SUBMIT_AGE.value:
        ct_b64 = _str_field(data, "ctB64")
        if ct_b64 is None:
            return None
        return SubmitAgeCommand(ct_b64)

    return None


def format_tx_line(command: str) -> str:
    """Terminal line an operator can paste to submit `command` manually."""
    return f"/tx --command '{command}'"
