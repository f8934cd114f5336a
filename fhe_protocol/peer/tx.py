"""Transaction submission capability.

Broadcasting is optional: a peer may not expose it. Instead of probing
for methods at call time, every peer hands the protocol a TxCapability
whose `available` flag says up front whether automatic submission is
possible. UnavailableTx is the explicit "not wired" implementation.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from .commands import CommandEnvelope, map_tx_command
from .contract import Contract
from .errors import CapabilityUnavailable, ContractError, ErrorCode
from .logger import EventLogger
from .state import InMemoryLedger

logger = logging.getLogger(__name__)


@dataclass
class PreparedTx:
    """A command string mapped and bound to a submitting address."""

    command: str
    envelope: CommandEnvelope
    address: str | None = None


@dataclass
class TxResult:
    """Outcome of an executed (or simulated) transaction."""

    success: bool
    command: str
    simulated: bool = False
    seq: int | None = None
    writes: dict[str, Any] = field(default_factory=dict)
    message: str = ""

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "success": self.success,
            "command": self.command,
            "simulated": self.simulated,
            "message": self.message,
        }
        if self.seq is not None:
            result["seq"] = self.seq
        if self.writes:
            result["writes"] = sorted(self.writes)
        return result


@runtime_checkable
class TxCapability(Protocol):
    """Prepare and broadcast transactions on behalf of the protocol."""

    @property
    def available(self) -> bool:
        """False when automatic broadcast is not wired up."""
        ...

    def prepare_tx_command(self, command: str) -> PreparedTx:
        ...

    async def tx(self, target: Any, prepared: PreparedTx, sim: bool = False) -> TxResult:
        ...


class UnavailableTx:
    """TxCapability for peers that do not expose broadcast."""

    @property
    def available(self) -> bool:
        return False

    def prepare_tx_command(self, command: str) -> PreparedTx:
        raise CapabilityUnavailable("Transaction API is not exposed on this peer")

    async def tx(self, target: Any, prepared: PreparedTx, sim: bool = False) -> TxResult:
        raise CapabilityUnavailable("Transaction API is not exposed on this peer")


class LocalTxApi:
    """Executes transactions directly against a local InMemoryLedger.

    Stands in for a peer's broadcast path: the command is mapped, the
    contract validates it, and its writes are committed as one record.
    With sim=True the transaction runs against a scratch fork and nothing
    is committed.
    """

    def __init__(
        self,
        ledger: InMemoryLedger,
        contract: Contract,
        address: str | None = None,
        event_logger: EventLogger | None = None,
    ) -> None:
        self.ledger = ledger
        self.contract = contract
        self.address = address
        self.event_logger = event_logger

    @property
    def available(self) -> bool:
        return True

    def prepare_tx_command(self, command: str) -> PreparedTx:
        envelope = map_tx_command(command)
        if envelope is None:
            raise ContractError(
                f"Command does not map to a contract function: {command!r}",
                code=ErrorCode.UNKNOWN_COMMAND,
            )
        return PreparedTx(command=command, envelope=envelope, address=self.address)

    async def tx(self, target: Any, prepared: PreparedTx, sim: bool = False) -> TxResult:
        """Execute a prepared transaction.

        `target` selects the submitting address; None uses the prepared
        address. Contract rejections are raised as ContractError.
        """
        address = target or prepared.address
        op_type = prepared.envelope.type.value

        if sim:
            scratch = self.ledger.fork()
            writes = self.contract.plan(prepared.envelope, address, scratch)
            logger.info("Simulated %s: would write %s", op_type, sorted(writes))
            return TxResult(
                success=True,
                command=prepared.command,
                simulated=True,
                writes=writes,
                message="simulation ok",
            )

        try:
            record = await self.contract.execute(prepared.envelope, address, self.ledger)
        except ContractError as e:
            if self.event_logger is not None:
                self.event_logger.log("tx_rejected", {
                    "op_type": op_type,
                    "address": address,
                    "error": e.to_response(),
                })
            raise

        if self.event_logger is not None:
            self.event_logger.log("tx_executed", {
                "op_type": op_type,
                "address": address,
                "seq": record.seq,
                "keys": sorted(record.writes),
            })
        return TxResult(
            success=True,
            command=prepared.command,
            seq=record.seq,
            writes=record.writes,
            message=f"committed as tx {record.seq}",
        )
