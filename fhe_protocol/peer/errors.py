"""Error conventions for the key bootstrap protocol.

Every failure the protocol reports to an operator is a ProtocolError
subclass carrying a machine-readable code, a category and retry guidance.
The terminal prints the message; callers that need structured output use
to_response().

Usage:
    from fhe_protocol.peer.errors import UsageError, ErrorCode

    raise UsageError(
        "Please provide a non-negative integer age",
        code=ErrorCode.INVALID_ARGUMENT,
    )

Not every branch is an error. An unavailable broadcast capability ends the
run in the manual fallback, and an unrecognized command maps to None.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorCategory(str, Enum):
    """Where a failure originates.

    - VALIDATION: Operator provided bad input
    - STATE: Shared state is not (yet) in the expected shape
    - CAPABILITY: An optional collaborator is missing
    - CONTRACT: Contract-side schema or business rule rejected a tx
    - SYSTEM: Misconfiguration or internal error
    """

    VALIDATION = "validation"
    STATE = "state"
    CAPABILITY = "capability"
    CONTRACT = "contract"
    SYSTEM = "system"


class ErrorCode(str, Enum):
    """Specific error codes for programmatic handling."""

    # Validation errors
    MISSING_ARGUMENT = "missing_argument"
    INVALID_ARGUMENT = "invalid_argument"
    MISSING_SECRET = "missing_secret"

    # State errors
    KEYS_NOT_VISIBLE = "keys_not_visible"
    KEYS_NOT_PUBLISHED = "keys_not_published"
    ALREADY_EXISTS = "already_exists"

    # Capability errors
    TX_UNAVAILABLE = "tx_unavailable"

    # Contract errors
    UNKNOWN_COMMAND = "unknown_command"
    SCHEMA_VIOLATION = "schema_violation"

    # System errors
    NOT_CONFIGURED = "not_configured"
    INTERNAL_ERROR = "internal_error"


@dataclass
class ErrorResponse:
    """Serializable form of a ProtocolError, as written to the event log.

    `details` is omitted from the dict when empty.
    """

    success: bool = False
    error: str = ""
    code: str = ""
    category: str = ""
    retriable: bool = False
    details: dict[str, object] | None = None

    def to_dict(self) -> dict[str, object]:
        fields = ("success", "error", "code", "category", "retriable")
        data: dict[str, object] = {name: getattr(self, name) for name in fields}
        if self.details:
            data["details"] = self.details
        return data


class ProtocolError(Exception):
    """Base class for errors reported to the operator."""

    category: ErrorCategory = ErrorCategory.SYSTEM
    default_code: ErrorCode = ErrorCode.INTERNAL_ERROR
    retriable: bool = False

    def __init__(
        self,
        message: str,
        code: ErrorCode | None = None,
        **details: object,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code
        self.details = dict(details) if details else None

    def to_response(self) -> dict[str, object]:
        return ErrorResponse(
            error=self.message,
            code=self.code.value,
            category=self.category.value,
            retriable=self.retriable,
            details=self.details,
        ).to_dict()


class UsageError(ProtocolError):
    """Bad argument shape or value, or missing identity secret.

    Raised before any shared state is read or written.
    """

    category = ErrorCategory.VALIDATION
    default_code = ErrorCode.INVALID_ARGUMENT


class TransientStateError(ProtocolError):
    """Published keys are not visible in view state yet."""

    category = ErrorCategory.STATE
    default_code = ErrorCode.KEYS_NOT_VISIBLE
    retriable = True


class CapabilityUnavailable(ProtocolError):
    """The transaction broadcast capability is not wired up.

    Never reaches the operator: the orchestrator turns it into the
    manual fallback.
    """

    category = ErrorCategory.CAPABILITY
    default_code = ErrorCode.TX_UNAVAILABLE


class ContractError(ProtocolError):
    """Contract execution rejected a transaction."""

    category = ErrorCategory.CONTRACT
    default_code = ErrorCode.SCHEMA_VIOLATION


class BackendNotConfigured(ProtocolError):
    """No encryption backend could be loaded."""

    category = ErrorCategory.SYSTEM
    default_code = ErrorCode.NOT_CONFIGURED
