"""Contract execution for mapped commands.

The contract is where untrusted payloads are actually enforced. Each
operation registers a pydantic schema and a handler; the handler reads
committed state and returns the writes to append. Handlers never write
directly, so a rejected transaction leaves the ledger untouched.

FHE key slots are write-once: the first committed `setFheKeys` wins and
any later one is rejected.
"""

from __future__ import annotations

import base64
import binascii
import logging
from dataclasses import dataclass
from typing import Any, Callable

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..config import get_validated_config
from ..config_schema import StateKeysConfig
from .commands import CommandEnvelope, OperationType
from .errors import ContractError, ErrorCode
from .state import InMemoryLedger, LedgerRecord

logger = logging.getLogger(__name__)

SOMETHING_KEY = "something"
SOMETHING_PREFIX = "something/"


# =============================================================================
# PAYLOAD SCHEMAS
# =============================================================================

class PayloadModel(BaseModel):
    """Base schema: payloads may not carry fields beyond the allow-list."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


def _check_b64(v: str) -> str:
    try:
        decoded = base64.b64decode(v, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValueError(f"not valid base64: {e}") from e
    if not decoded:
        raise ValueError("decodes to zero bytes")
    return v


class SubmitSomethingPayload(PayloadModel):
    some_key: str = Field(min_length=1, max_length=256)


class SetFheKeysPayload(PayloadModel):
    server_key_b64: str = Field(alias="serverKeyB64", min_length=4)
    public_key_b64: str = Field(alias="publicKeyB64", min_length=4)

    @field_validator("server_key_b64", "public_key_b64")
    @classmethod
    def validate_b64(cls, v: str) -> str:
        return _check_b64(v)


class SubmitAgePayload(PayloadModel):
    ct_b64: str = Field(alias="ctB64", min_length=4)

    @field_validator("ct_b64")
    @classmethod
    def validate_b64(cls, v: str) -> str:
        return _check_b64(v)


# =============================================================================
# CONTRACT
# =============================================================================

Handler = Callable[[Any, str | None, InMemoryLedger], dict[str, Any]]


@dataclass
class ContractFunction:
    """A contract function reachable through a mapped command"""
    name: OperationType
    schema: type[PayloadModel] | None
    handler: Handler
    description: str


class Contract:
    """Applies command envelopes to an InMemoryLedger."""

    functions: dict[OperationType, ContractFunction]

    def __init__(self, state_keys: StateKeysConfig | None = None) -> None:
        self.state_keys = state_keys or get_validated_config().protocol.state_keys
        self.functions = {}

        self.register_function(
            OperationType.STORE_SOMETHING,
            handler=self._store_something,
            description="Store a fixed marker value",
        )
        self.register_function(
            OperationType.SUBMIT_SOMETHING,
            handler=self._submit_something,
            schema=SubmitSomethingPayload,
            description="Store an opaque value under the submitting address",
        )
        self.register_function(
            OperationType.SET_FHE_KEYS,
            handler=self._set_fhe_keys,
            schema=SetFheKeysPayload,
            description="Publish the contract-wide FHE server and public keys (write-once)",
        )
        self.register_function(
            OperationType.SUBMIT_AGE,
            handler=self._submit_age,
            schema=SubmitAgePayload,
            description="Store an age ciphertext for the submitting address",
        )

    def register_function(
        self,
        name: OperationType,
        handler: Handler,
        schema: type[PayloadModel] | None = None,
        description: str = "",
    ) -> None:
        """Register a contract function with its payload schema"""
        self.functions[name] = ContractFunction(
            name=name, schema=schema, handler=handler, description=description
        )

    def list_functions(self) -> list[dict[str, str]]:
        return [
            {"name": f.name.value, "description": f.description}
            for f in self.functions.values()
        ]

    def validate(self, envelope: CommandEnvelope) -> Any:
        """Validate an envelope's payload against its schema.

        Returns the parsed payload model (None for payload-less functions).
        """
        function = self.functions.get(envelope.type)
        if function is None:
            raise ContractError(
                f"No contract function for {envelope.type.value}",
                code=ErrorCode.UNKNOWN_COMMAND,
            )
        if function.schema is None:
            if envelope.value is not None:
                raise ContractError(f"{envelope.type.value} takes no payload")
            return None
        try:
            return function.schema.model_validate(envelope.value or {})
        except ValidationError as e:
            raise ContractError(
                f"{envelope.type.value} payload rejected: {e.errors()[0]['msg']}",
                code=ErrorCode.SCHEMA_VIOLATION,
            ) from e

    def plan(
        self,
        envelope: CommandEnvelope,
        address: str | None,
        ledger: InMemoryLedger,
    ) -> dict[str, Any]:
        """Validate and compute the writes for an envelope without committing."""
        payload = self.validate(envelope)
        return self.functions[envelope.type].handler(payload, address, ledger)

    async def execute(
        self,
        envelope: CommandEnvelope,
        address: str | None,
        ledger: InMemoryLedger,
    ) -> LedgerRecord:
        """Validate, compute writes and commit them as one transaction."""
        payload = self.validate(envelope)
        handler = self.functions[envelope.type].handler
        record = await ledger.apply(
            lambda state: handler(payload, address, state),
            op_type=envelope.type.value,
            address=address,
        )
        logger.info("Executed %s as tx %d", envelope.type.value, record.seq)
        return record

    # ---- handlers ----

    def _store_something(self, payload: None, address: str | None, ledger: InMemoryLedger) -> dict[str, Any]:
        return {SOMETHING_KEY: "stored"}

    def _submit_something(
        self, payload: SubmitSomethingPayload, address: str | None, ledger: InMemoryLedger
    ) -> dict[str, Any]:
        return {SOMETHING_PREFIX + _require_address(address): payload.some_key}

    def _set_fhe_keys(
        self, payload: SetFheKeysPayload, address: str | None, ledger: InMemoryLedger
    ) -> dict[str, Any]:
        pk_key = self.state_keys.public_key
        sk_key = self.state_keys.server_key
        if ledger.committed(pk_key) is not None or ledger.committed(sk_key) is not None:
            raise ContractError(
                "FHE keys are already published",
                code=ErrorCode.ALREADY_EXISTS,
            )
        return {
            sk_key: payload.server_key_b64,
            pk_key: payload.public_key_b64,
        }

    def _submit_age(
        self, payload: SubmitAgePayload, address: str | None, ledger: InMemoryLedger
    ) -> dict[str, Any]:
        if ledger.committed(self.state_keys.public_key) is None:
            raise ContractError(
                "Cannot accept ciphertexts before FHE keys are published",
                code=ErrorCode.KEYS_NOT_PUBLISHED,
            )
        return {self.state_keys.age_prefix + _require_address(address): payload.ct_b64}


def _require_address(address: str | None) -> str:
    if not address:
        raise ContractError("Transaction has no submitting address", code=ErrorCode.MISSING_ARGUMENT)
    return address
