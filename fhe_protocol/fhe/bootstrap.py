"""Key bootstrap and encrypted submission.

One run takes a plaintext value and the wallet secret, makes sure the
contract-wide FHE keys are published, encrypts the value under the
published public key and submits the ciphertext.

States:

    CHECK_KEYS -> KEYS_PRESENT -> ENCRYPT -> SUBMIT -> DONE
    CHECK_KEYS -> DERIVE_AND_PUBLISH -> AWAIT_VISIBILITY -> ENCRYPT -> ...
    DERIVE_AND_PUBLISH | SUBMIT -> FALLBACK_MANUAL

FALLBACK_MANUAL is a complete outcome, not an error: the operator gets
the exact command to paste. Keys are re-read exactly once after
publishing; if they are still not visible the run stops with
TransientStateError and the operator retries. There is no lock around
the check-then-publish window. Two runs may both publish; the contract
keeps the first committed keys.

Usage:
    orchestrator = KeyBootstrapOrchestrator(view, tx_api, backend)
    outcome = await orchestrator.submit_age(42, wallet.secret_key)
"""

from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

from ..config import get_validated_config
from ..config_schema import KdfConfig, StateKeysConfig
from ..peer.commands import SetFheKeysCommand, SubmitAgeCommand, format_tx_line
from ..peer.errors import ErrorCode, TransientStateError, UsageError
from ..peer.logger import EventLogger
from ..peer.state import ViewState, entry_text
from ..peer.tx import TxCapability, TxResult
from .capability import U64_MAX, FheCapability, from_b64, to_b64
from .kdf import derive_seed

logger = logging.getLogger(__name__)

Emit = Callable[[str], None]

_INT_RE = re.compile(r"^[+-]?[0-9]+$")


class BootstrapState(str, Enum):
    CHECK_KEYS = "check_keys"
    KEYS_PRESENT = "keys_present"
    DERIVE_AND_PUBLISH = "derive_and_publish"
    AWAIT_VISIBILITY = "await_visibility"
    ENCRYPT = "encrypt"
    SUBMIT = "submit"
    DONE = "done"
    FALLBACK_MANUAL = "fallback_manual"


TRANSITIONS: dict[BootstrapState, frozenset[BootstrapState]] = {
    BootstrapState.CHECK_KEYS: frozenset({
        BootstrapState.KEYS_PRESENT, BootstrapState.DERIVE_AND_PUBLISH,
    }),
    BootstrapState.KEYS_PRESENT: frozenset({BootstrapState.ENCRYPT}),
    BootstrapState.DERIVE_AND_PUBLISH: frozenset({
        BootstrapState.AWAIT_VISIBILITY, BootstrapState.FALLBACK_MANUAL,
    }),
    BootstrapState.AWAIT_VISIBILITY: frozenset({BootstrapState.ENCRYPT}),
    BootstrapState.ENCRYPT: frozenset({BootstrapState.SUBMIT}),
    BootstrapState.SUBMIT: frozenset({BootstrapState.DONE, BootstrapState.FALLBACK_MANUAL}),
    BootstrapState.DONE: frozenset(),
    BootstrapState.FALLBACK_MANUAL: frozenset(),
}

TERMINAL_STATES = frozenset({BootstrapState.DONE, BootstrapState.FALLBACK_MANUAL})


@dataclass
class BootstrapOutcome:
    """How a run ended.

    Attributes:
        state: DONE or FALLBACK_MANUAL
        history: Every state entered, in order
        published_keys: This run broadcast a set_fhe_keys transaction
        manual_command: Command handed to the operator on fallback
        ct_b64: Ciphertext produced by ENCRYPT, if reached
        submit_result: Result of the submit_age broadcast, if it succeeded
    """

    state: BootstrapState
    history: list[BootstrapState] = field(default_factory=list)
    published_keys: bool = False
    manual_command: str | None = None
    ct_b64: str | None = None
    submit_result: TxResult | None = None

    @property
    def is_fallback(self) -> bool:
        return self.state == BootstrapState.FALLBACK_MANUAL


def parse_age(raw: Any) -> int:
    """Validate an age argument.

    Accepts an int or decimal integer text. Anything else, negatives and
    values beyond u64 raise UsageError.
    """
    if isinstance(raw, bool):
        raise UsageError("Please provide a non-negative integer age")
    if isinstance(raw, str):
        text = raw.strip()
        if not _INT_RE.match(text):
            raise UsageError("Please provide a non-negative integer age")
        value = int(text)
    elif isinstance(raw, int):
        value = raw
    else:
        raise UsageError("Please provide a non-negative integer age")
    if value < 0 or value > U64_MAX:
        raise UsageError("Please provide a non-negative integer age")
    return value


class KeyBootstrapOrchestrator:
    """Runs the bootstrap state machine for one submission at a time.

    Holds no per-run state between calls; the current run's state lives
    in a _Run.
    """

    def __init__(
        self,
        view: ViewState,
        tx: TxCapability,
        fhe: FheCapability,
        emit: Emit = print,
        event_logger: EventLogger | None = None,
        state_keys: StateKeysConfig | None = None,
        kdf: KdfConfig | None = None,
    ) -> None:
        if state_keys is None or kdf is None:
            protocol_config = get_validated_config().protocol
            state_keys = state_keys or protocol_config.state_keys
            kdf = kdf or protocol_config.kdf
        self.view = view
        self.tx = tx
        self.fhe = fhe
        self.emit = emit
        self.event_logger = event_logger
        self.state_keys = state_keys
        self.kdf = kdf

    async def submit_age(self, age: Any, secret: bytes | str | None) -> BootstrapOutcome:
        """Encrypt and submit an age, publishing keys first if needed.

        Raises:
            UsageError: bad age, or keys absent and no secret to derive them
            TransientStateError: keys published but not visible on re-read
        """
        value = parse_age(age)
        run = _Run()

        pk_entry, sk_entry = await self._read_keys()
        if pk_entry is not None and sk_entry is not None:
            run.enter(BootstrapState.KEYS_PRESENT)
        else:
            run.enter(BootstrapState.DERIVE_AND_PUBLISH)
            set_keys = await self._derive_keys(secret)
            command = set_keys.to_command()
            if await self._broadcast(command, "Auto-publish") is None:
                return self._fallback(run, command, "Paste to publish keys:")
            run.published_keys = True
            self._log_event("keys_published", {})

            run.enter(BootstrapState.AWAIT_VISIBILITY)
            pk_entry, sk_entry = await self._read_keys()
            if pk_entry is None or sk_entry is None:
                logger.warning("Keys published but not visible on re-read")
                raise TransientStateError("[fhe] Keys not visible in state yet. Try again shortly.")

        run.enter(BootstrapState.ENCRYPT)
        ct_b64 = await self._encrypt(value, pk_entry)
        run.ct_b64 = ct_b64

        run.enter(BootstrapState.SUBMIT)
        command = SubmitAgeCommand(ct_b64).to_command()
        result = await self._broadcast(command, "Auto-submit")
        if result is None:
            return self._fallback(run, command, "Paste to submit age:")

        self._log_event("age_submitted", {"seq": result.seq})
        self.emit("[fhe] Submitted encrypted age transaction.")
        run.enter(BootstrapState.DONE)
        return run.outcome(submit_result=result)

    async def _read_keys(self) -> tuple[Any | None, Any | None]:
        pk_entry = await self.view.get(self.state_keys.public_key)
        sk_entry = await self.view.get(self.state_keys.server_key)
        return pk_entry, sk_entry

    async def _derive_keys(self, secret: bytes | str | None) -> SetFheKeysCommand:
        if not secret:
            raise UsageError(
                "[fhe] Wallet does not expose a private key for seeding. Cannot publish keys automatically.",
                code=ErrorCode.MISSING_SECRET,
            )
        seed = derive_seed(secret, salt=self.kdf.salt, info=self.kdf.info)
        keypair = await asyncio.to_thread(self.fhe.keygen_from_seed, seed)
        # The client key is dropped here: this flow never decrypts.
        return SetFheKeysCommand(
            server_key_b64=to_b64(keypair.server_key),
            public_key_b64=to_b64(keypair.public_key),
        )

    async def _encrypt(self, value: int, pk_entry: Any) -> str:
        pk_text = entry_text(pk_entry)
        if pk_text is None:
            raise TransientStateError("[fhe] Keys not visible in state yet. Try again shortly.")
        public_key = from_b64(pk_text)
        ct = await asyncio.to_thread(self.fhe.encrypt_u64_with_public_key, value, public_key)
        return to_b64(ct)

    async def _broadcast(self, command: str, label: str) -> TxResult | None:
        """Prepare and broadcast a command.

        Returns None when broadcast is unavailable, raises, or reports
        `success=False`; any of these means "do it manually", never a crash.
        """
        if not self.tx.available:
            logger.info("%s skipped: tx capability unavailable", label)
            return None
        try:
            prepared = self.tx.prepare_tx_command(command)
            result = await self.tx.tx(None, prepared)
        except Exception as e:
            logger.warning("%s failed: %s", label, e)
            self.emit(f"[fhe] {label} failed: {e}")
            return None
        if result is not None and not result.success:
            logger.warning("%s rejected: %s", label, result.message)
            self.emit(f"[fhe] {label} rejected: {result.message or 'no reason given'}")
            return None
        # Capabilities that report completion without a result still count as sent
        return result if result is not None else TxResult(success=True, command=command)

    def _fallback(self, run: _Run, command: str, prompt: str) -> BootstrapOutcome:
        run.enter(BootstrapState.FALLBACK_MANUAL)
        self.emit(prompt)
        self.emit(format_tx_line(command))
        self._log_event("fallback_manual", {"command": command, "after": run.history[-2].value})
        return run.outcome(manual_command=command)

    def _log_event(self, event_type: str, data: dict[str, Any]) -> None:
        if self.event_logger is not None:
            self.event_logger.log(event_type, data)


class _Run:
    """State tracker for a single orchestrator run."""

    def __init__(self) -> None:
        self.state = BootstrapState.CHECK_KEYS
        self.history: list[BootstrapState] = [self.state]
        self.published_keys = False
        self.ct_b64: str | None = None

    def enter(self, target: BootstrapState) -> None:
        if target not in TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid transition from '{self.state.value}' to '{target.value}'")
        logger.debug("Bootstrap %s -> %s", self.state.value, target.value)
        self.state = target
        self.history.append(target)

    def outcome(self, **kwargs: Any) -> BootstrapOutcome:
        if self.state not in TERMINAL_STATES:
            raise RuntimeError(f"Run not finished: '{self.state.value}'")
        return BootstrapOutcome(
            state=self.state,
            history=list(self.history),
            published_keys=self.published_keys,
            ct_b64=self.ct_b64,
            **kwargs,
        )
