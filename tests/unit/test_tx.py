"""Tests for the transaction capabilities."""

import pytest

from fhe_protocol.peer.errors import CapabilityUnavailable, ContractError, ErrorCode
from fhe_protocol.peer.logger import EventLogger
from fhe_protocol.peer.state import InMemoryLedger
from fhe_protocol.peer.tx import LocalTxApi, TxCapability, TxResult, UnavailableTx

SET_KEYS = '{"op":"set_fhe_keys","serverKeyB64":"c2s=","publicKeyB64":"cGs="}'


class TestUnavailableTx:
    def test_not_available(self) -> None:
        tx = UnavailableTx()
        assert isinstance(tx, TxCapability)
        assert tx.available is False

    @pytest.mark.asyncio
    async def test_calls_raise(self) -> None:
        tx = UnavailableTx()
        with pytest.raises(CapabilityUnavailable):
            tx.prepare_tx_command("something")
        with pytest.raises(CapabilityUnavailable):
            await tx.tx(None, None, sim=False)  # type: ignore[arg-type]


class TestLocalTxApi:
    def test_is_capability(self, tx_api: LocalTxApi) -> None:
        assert isinstance(tx_api, TxCapability)
        assert tx_api.available is True

    def test_prepare_unknown_command(self, tx_api: LocalTxApi) -> None:
        with pytest.raises(ContractError) as exc_info:
            tx_api.prepare_tx_command("rm -rf /")
        assert exc_info.value.code == ErrorCode.UNKNOWN_COMMAND

    @pytest.mark.asyncio
    async def test_executes_and_logs(
        self, tx_api: LocalTxApi, ledger: InMemoryLedger, event_logger: EventLogger
    ) -> None:
        result = await tx_api.tx(None, tx_api.prepare_tx_command(SET_KEYS))

        assert result.success is True
        assert result.seq == 1
        assert ledger.committed("fhe/publicKeyB64") == "cGs="
        events = event_logger.recent(event_type="tx_executed")
        assert len(events) == 1
        assert events[0]["op_type"] == "setFheKeys"

    @pytest.mark.asyncio
    async def test_simulation_does_not_commit(
        self, tx_api: LocalTxApi, ledger: InMemoryLedger
    ) -> None:
        result = await tx_api.tx(None, tx_api.prepare_tx_command(SET_KEYS), sim=True)

        assert result.simulated is True
        assert set(result.writes) == {"fhe/publicKeyB64", "fhe/serverKeyB64"}
        assert ledger.log == []
        assert await ledger.view.get("fhe/publicKeyB64") is None

    @pytest.mark.asyncio
    async def test_simulation_reports_rejection(self, tx_api: LocalTxApi) -> None:
        prepared = tx_api.prepare_tx_command('{"op":"submit_age","ctB64":"AAEC"}')
        with pytest.raises(ContractError) as exc_info:
            await tx_api.tx(None, prepared, sim=True)
        assert exc_info.value.code == ErrorCode.KEYS_NOT_PUBLISHED

    @pytest.mark.asyncio
    async def test_rejection_logged_and_raised(
        self, tx_api: LocalTxApi, event_logger: EventLogger
    ) -> None:
        await tx_api.tx(None, tx_api.prepare_tx_command(SET_KEYS))
        with pytest.raises(ContractError):
            await tx_api.tx(None, tx_api.prepare_tx_command(SET_KEYS))

        rejected = event_logger.recent(event_type="tx_rejected")
        assert len(rejected) == 1
        assert rejected[0]["error"]["code"] == "already_exists"

    @pytest.mark.asyncio
    async def test_target_overrides_address(
        self, tx_api: LocalTxApi, ledger: InMemoryLedger
    ) -> None:
        await tx_api.tx("someone", tx_api.prepare_tx_command('{"op":"do_something","some_key":"x"}'))
        assert ledger.committed("something/someone") == "x"

    def test_result_to_dict(self) -> None:
        result = TxResult(success=True, command="something", seq=3, writes={"b": 1, "a": 2})
        assert result.to_dict() == {
            "success": True,
            "command": "something",
            "simulated": False,
            "message": "",
            "seq": 3,
            "writes": ["a", "b"],
        }
