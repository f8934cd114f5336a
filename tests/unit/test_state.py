"""Unit tests for the in-memory ledger and view entry helpers."""

import pytest

from fhe_protocol.peer.state import (
    InMemoryLedger,
    StateWriter,
    ViewEntry,
    ViewState,
    entry_text,
    unwrap_entry,
)


class TestEntryHelpers:
    def test_unwrap_raw(self) -> None:
        assert unwrap_entry("abc") == "abc"
        assert unwrap_entry(b"abc") == b"abc"
        assert unwrap_entry(None) is None

    def test_unwrap_mapping(self) -> None:
        assert unwrap_entry({"value": "abc", "seq": 3}) == "abc"

    def test_unwrap_object(self) -> None:
        assert unwrap_entry(ViewEntry(value="abc", seq=1, committed_at="t")) == "abc"

    def test_entry_text_decodes_bytes(self) -> None:
        assert entry_text(b"cGs=") == "cGs="
        assert entry_text({"value": b"cGs="}) == "cGs="
        assert entry_text(None) is None


class TestInMemoryLedger:
    def test_satisfies_protocols(self, ledger: InMemoryLedger) -> None:
        assert isinstance(ledger.view, ViewState)
        assert isinstance(ledger, StateWriter)

    @pytest.mark.asyncio
    async def test_missing_key(self, ledger: InMemoryLedger) -> None:
        assert await ledger.view.get("nothing") is None

    @pytest.mark.asyncio
    async def test_commit_is_one_record(self, ledger: InMemoryLedger) -> None:
        record = await ledger.commit({"a": "1", "b": "2"}, op_type="test", address="addr")

        assert record.seq == 1
        assert len(ledger.log) == 1
        assert ledger.log[0].writes == {"a": "1", "b": "2"}
        entry = await ledger.view.get("a")
        assert entry is not None
        assert entry.value == "1"
        assert entry.seq == 1

    @pytest.mark.asyncio
    async def test_log_is_append_only(self, ledger: InMemoryLedger) -> None:
        await ledger.propose_write("k", "v1")
        await ledger.propose_write("k", "v2")

        assert [r.seq for r in ledger.log] == [1, 2]
        assert [r.writes["k"] for r in ledger.log] == ["v1", "v2"]
        assert ledger.committed("k") == "v2"

    @pytest.mark.asyncio
    async def test_visibility_lag(self) -> None:
        ledger = InMemoryLedger(visibility_lag=2)
        await ledger.propose_write("k", "v")

        assert await ledger.view.get("k") is None
        assert await ledger.view.get("k") is None
        entry = await ledger.view.get("k")
        assert entry is not None and entry.value == "v"
        # Finalized state ignores view lag
        assert ledger.committed("k") == "v"

    @pytest.mark.asyncio
    async def test_overwrite_under_lag_serves_previous_value(self) -> None:
        ledger = InMemoryLedger(visibility_lag=1)
        await ledger.propose_write("k", "v1")
        assert await ledger.view.get("k") is None
        assert (await ledger.view.get("k")).value == "v1"

        await ledger.propose_write("k", "v2")
        await ledger.propose_write("k", "v3")

        stale = await ledger.view.get("k")
        assert stale is not None and stale.value == "v1"
        assert (await ledger.view.get("k")).value == "v3"
        assert ledger.committed("k") == "v3"

    def test_negative_lag_rejected(self) -> None:
        with pytest.raises(ValueError):
            InMemoryLedger(visibility_lag=-1)

    @pytest.mark.asyncio
    async def test_fork_is_isolated(self, ledger: InMemoryLedger) -> None:
        await ledger.propose_write("k", "v")
        scratch = ledger.fork()
        await scratch.propose_write("other", "x")

        assert scratch.committed("k") == "v"
        assert ledger.committed("other") is None
        assert len(ledger.log) == 1

    @pytest.mark.asyncio
    async def test_snapshot(self, ledger: InMemoryLedger) -> None:
        await ledger.commit({"a": {"nested": 1}})
        snap = ledger.snapshot()
        snap["a"]["nested"] = 2
        assert ledger.committed("a") == {"nested": 1}
