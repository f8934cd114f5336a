"""Terminal protocol surface.

FheProtocol is what an operator talks to. It maps tx commands for the
contract and adds the protocol's own terminal commands:

    /print --text "..."            echo text
    /myage <age>                   encrypt an age and submit it
    /tx --command '<cmd>' [--sim 1]  execute (or simulate) a tx command
    /get --key <key>               read view state

Operator-facing lines go through `emit`; diagnostics go to logging.
"""

from __future__ import annotations

import logging
import shlex
from typing import Any, Callable

from ..config import get_validated_config
from ..fhe.bootstrap import BootstrapOutcome, KeyBootstrapOrchestrator, parse_age
from ..fhe.capability import FheCapability, get_backend
from .commands import CommandEnvelope, map_tx_command
from .contract import Contract
from .errors import ProtocolError, UsageError
from .logger import EventLogger
from .state import InMemoryLedger, entry_text
from .tx import LocalTxApi, TxCapability, TxResult, UnavailableTx
from .wallet import Wallet

logger = logging.getLogger(__name__)

Emit = Callable[[str], None]


def parse_args(input: str) -> dict[str, str]:
    """Collect `--name value` pairs from a terminal line.

    Flags without a value map to "1". Text before the first flag is ignored.
    """
    try:
        tokens = shlex.split(input)
    except ValueError as e:
        raise UsageError(f"Could not parse arguments: {e}") from e

    args: dict[str, str] = {}
    i = 1
    while i < len(tokens):
        token = tokens[i]
        if token.startswith("--"):
            name = token[2:]
            if i + 1 < len(tokens) and not tokens[i + 1].startswith("--"):
                args[name] = tokens[i + 1]
                i += 2
                continue
            args[name] = "1"
        i += 1
    return args


class FheProtocol:
    """Protocol commands for an FHE-enabled peer.

    The encryption backend is loaded lazily through `fhe_factory` so a
    peer without a compiled backend can still run every other command.
    """

    def __init__(
        self,
        ledger: InMemoryLedger,
        tx: TxCapability,
        wallet: Wallet | None,
        fhe_factory: Callable[[], FheCapability],
        emit: Emit = print,
        event_logger: EventLogger | None = None,
    ) -> None:
        self.ledger = ledger
        self.tx = tx
        self.wallet = wallet
        self._fhe_factory = fhe_factory
        self._fhe: FheCapability | None = None
        self.emit = emit
        self.event_logger = event_logger

    @classmethod
    def from_config(cls, wallet: Wallet | None = None, emit: Emit = print) -> FheProtocol:
        """Wire a local peer from the loaded configuration.

        The submitting address is `peer.address`, falling back to the
        wallet's public key.
        """
        config = get_validated_config()
        event_logger = EventLogger.from_config()
        ledger = InMemoryLedger(visibility_lag=config.peer.visibility_lag)

        tx: TxCapability
        if config.peer.api_tx_exposed:
            address = config.peer.address or (wallet.public_key if wallet else None)
            contract = Contract(state_keys=config.protocol.state_keys)
            tx = LocalTxApi(ledger, contract, address=address, event_logger=event_logger)
        else:
            tx = UnavailableTx()

        logger.info(
            "Peer ready (tx exposed=%s, visibility lag=%d)",
            config.peer.api_tx_exposed, config.peer.visibility_lag,
        )
        return cls(ledger, tx, wallet, get_backend, emit=emit, event_logger=event_logger)

    @property
    def fhe(self) -> FheCapability:
        if self._fhe is None:
            self._fhe = self._fhe_factory()
        return self._fhe

    def map_tx_command(self, command: str) -> CommandEnvelope | None:
        return map_tx_command(command)

    def print_options(self) -> None:
        self.emit(" ")
        self.emit("- Protocol Commands:")
        self.emit("- /print | use this flag to print some text to the terminal: '--text \"I am printing\"'")
        self.emit("- /myage <age> | encrypts <age> with FHE and submits it, or prints a ready-to-paste /tx command")
        self.emit("- /tx --command '<command>' [--sim 1] | execute or simulate a contract transaction")
        self.emit("- /get --key <key> | read a value from view state")

    async def custom_command(self, input: str) -> Any:
        """Dispatch one terminal line. Returns the command's result, if any.

        ProtocolErrors are reported to the operator and not re-raised.
        """
        command = input.strip()
        try:
            if command.startswith("/myage"):
                return await self.my_age(command)
            if command.startswith("/print"):
                text = parse_args(command).get("text")
                if text is not None:
                    self.emit(text)
                return None
            if command.startswith("/tx"):
                return await self.tx_command(command)
            if command.startswith("/get"):
                return await self.get_command(command)
            if command in ("/help", "/options"):
                self.print_options()
                return None
        except ProtocolError as e:
            logger.info("Command failed (%s): %s", e.code.value, e.message)
            self.emit(e.message)
            return None
        self.emit(f"Unknown command: {command.split()[0] if command else repr(command)}")
        return None

    async def my_age(self, input: str) -> BootstrapOutcome | None:
        parts = input.split()
        if len(parts) < 2:
            self.emit("Usage: /myage <age>")
            return None
        age = parse_age(parts[1])

        if self.wallet is None or not self.wallet.has_keypair:
            self.emit("[fhe] No wallet keypair available. Create or load a wallet first.")
            return None

        orchestrator = KeyBootstrapOrchestrator(
            view=self.ledger.view,
            tx=self.tx,
            fhe=self.fhe,
            emit=self.emit,
            event_logger=self.event_logger,
        )
        return await orchestrator.submit_age(age, self.wallet.secret_key)

    async def tx_command(self, input: str) -> TxResult | None:
        args = parse_args(input)
        command = args.get("command")
        if not command:
            raise UsageError("Usage: /tx --command '<command>' [--sim 1]")
        if not self.tx.available:
            raise UsageError("Transactions are not exposed on this peer")

        prepared = self.tx.prepare_tx_command(command)
        sim = args.get("sim", "0") not in ("0", "false", "")
        result = await self.tx.tx(None, prepared, sim=sim)
        self.emit(f"[tx] {result.message}")
        return result

    async def get_command(self, input: str) -> str | None:
        key = parse_args(input).get("key")
        if not key:
            raise UsageError("Usage: /get --key <key>")
        value = entry_text(await self.ledger.view.get(key))
        self.emit(value if value is not None else "null")
        return value
