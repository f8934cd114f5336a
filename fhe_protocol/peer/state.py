"""Shared ledger state as seen by the protocol.

The protocol treats the ledger as eventually-consistent key/value storage:
a committed write may not be readable yet. It never locks across a
read-then-write window; conflicting writes are settled by the contract.

Two pieces:
- ViewState: the read side (`await view.get(key)`), possibly unfinalized.
- InMemoryLedger: an append-only transaction log with a lagging view,
  used by the local peer and by tests.
"""

from __future__ import annotations

import asyncio
import copy
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ViewState(Protocol):
    """Read access to (possibly unfinalized) ledger view state."""

    async def get(self, key: str) -> Any | None:
        """Return the entry stored under key, or None if absent."""
        ...


@runtime_checkable
class StateWriter(Protocol):
    """Write side of shared state."""

    async def propose_write(self, key: str, value: Any) -> None:
        """Append a write for key. Visibility may lag."""
        ...


def unwrap_entry(entry: Any) -> Any:
    """Unwrap a view entry to its payload.

    Entries arrive either raw (bytes or text) or wrapped as a mapping or
    object with a `value` field.
    """
    if entry is None:
        return None
    if isinstance(entry, dict):
        return entry["value"] if "value" in entry else entry
    value = getattr(entry, "value", None)
    if value is not None and not isinstance(entry, (str, bytes, bytearray)):
        return value
    return entry


def entry_text(entry: Any) -> str | None:
    """Unwrap an entry and return it as text (bytes are decoded as ASCII)."""
    value = unwrap_entry(entry)
    if value is None:
        return None
    if isinstance(value, (bytes, bytearray)):
        return bytes(value).decode("ascii")
    return str(value)


@dataclass
class ViewEntry:
    """A committed key/value pair as returned by InMemoryLedger views."""

    value: Any
    seq: int
    committed_at: str


@dataclass
class LedgerRecord:
    """One committed transaction in the append-only log."""

    seq: int
    op_type: str
    address: str | None
    writes: dict[str, Any]
    committed_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())


class LedgerView:
    """View of an InMemoryLedger. Satisfies ViewState."""

    def __init__(self, ledger: InMemoryLedger) -> None:
        self._ledger = ledger

    async def get(self, key: str) -> ViewEntry | None:
        return self._ledger.read(key)


class InMemoryLedger:
    """Append-only transaction log with an eventually-consistent view.

    `visibility_lag` is the number of reads of a key that still see the
    value from before a fresh write: None for a new key, the previous
    entry for an overwrite. With lag 0 every commit is immediately readable.

    The log only grows; the view holds the latest write per key. Whether a
    second write to a slot is allowed is decided by the contract, not here.
    """

    def __init__(self, visibility_lag: int = 0) -> None:
        if visibility_lag < 0:
            raise ValueError(f"visibility_lag cannot be negative: {visibility_lag}")
        self.visibility_lag = visibility_lag
        self.log: list[LedgerRecord] = []
        self._entries: dict[str, ViewEntry] = {}
        # Per key: reads left before the pending write shows up, and the stale entry served until then
        self._pending: dict[str, tuple[int, ViewEntry | None]] = {}
        self._commit_lock = asyncio.Lock()
        self.view = LedgerView(self)

    def read(self, key: str) -> ViewEntry | None:
        """Synchronous view read honouring the visibility lag."""
        pending = self._pending.get(key)
        if pending is not None:
            remaining, stale = pending
            if remaining > 1:
                self._pending[key] = (remaining - 1, stale)
            else:
                del self._pending[key]
            logger.debug("Read of %s misses pending write (%d left)", key, remaining - 1)
            return stale
        return self._entries.get(key)

    def committed(self, key: str) -> Any | None:
        """Committed value for key, ignoring view lag."""
        entry = self._entries.get(key)
        return None if entry is None else entry.value

    def snapshot(self) -> dict[str, Any]:
        """Finalized key/value state regardless of view lag."""
        return {k: copy.deepcopy(e.value) for k, e in self._entries.items()}

    async def commit(
        self,
        writes: dict[str, Any],
        op_type: str = "write",
        address: str | None = None,
    ) -> LedgerRecord:
        """Append one transaction carrying all of `writes` atomically."""
        async with self._commit_lock:
            return self._append(writes, op_type, address)

    async def apply(
        self,
        planner: Callable[[InMemoryLedger], dict[str, Any]],
        op_type: str = "write",
        address: str | None = None,
    ) -> LedgerRecord:
        """Compute writes from committed state and append them under one lock.

        No other commit can land between the planner's reads and the
        append, so checks like "slot still empty" hold when committed.
        """
        async with self._commit_lock:
            return self._append(planner(self), op_type, address)

    def _append(self, writes: dict[str, Any], op_type: str, address: str | None) -> LedgerRecord:
        record = LedgerRecord(
            seq=len(self.log) + 1,
            op_type=op_type,
            address=address,
            writes=dict(writes),
        )
        self.log.append(record)
        for key, value in writes.items():
            if self.visibility_lag:
                # A write landing while an earlier one is pending keeps the older stale entry
                stale = self._pending[key][1] if key in self._pending else self._entries.get(key)
                self._pending[key] = (self.visibility_lag, stale)
            self._entries[key] = ViewEntry(
                value=value, seq=record.seq, committed_at=record.committed_at
            )
        logger.debug("Committed tx %d (%s): %s", record.seq, op_type, sorted(writes))
        return record

    async def propose_write(self, key: str, value: Any) -> None:
        await self.commit({key: value})

    def fork(self) -> InMemoryLedger:
        """Scratch copy for simulated execution; commits never reach self."""
        scratch = InMemoryLedger(visibility_lag=0)
        scratch._entries = copy.deepcopy(self._entries)
        scratch.log = list(self.log)
        return scratch
