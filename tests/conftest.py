"""Pytest fixtures for fhe_protocol tests.

Every test runs against the schema defaults (no config file) unless it
installs its own config.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest
from dotenv import load_dotenv

from fhe_protocol.config import reset_config, use_config
from fhe_protocol.peer.contract import Contract
from fhe_protocol.peer.logger import EventLogger
from fhe_protocol.peer.state import InMemoryLedger
from fhe_protocol.peer.tx import LocalTxApi

from .fakes import ADDRESS, FakeFhe

# Load environment variables from .env before any tests run
load_dotenv()


@pytest.fixture(autouse=True)
def default_config(monkeypatch: pytest.MonkeyPatch) -> Iterator[None]:
    """Install default config and keep wallet env vars out of tests."""
    monkeypatch.delenv("FHE_WALLET_SECRET", raising=False)
    monkeypatch.delenv("FHE_PROTOCOL_CONFIG", raising=False)
    use_config({})
    yield
    reset_config()


@pytest.fixture
def ledger() -> InMemoryLedger:
    """Fresh ledger with an immediately consistent view."""
    return InMemoryLedger()


@pytest.fixture
def contract() -> Contract:
    return Contract()


@pytest.fixture
def event_logger() -> EventLogger:
    return EventLogger()


@pytest.fixture
def tx_api(ledger: InMemoryLedger, contract: Contract, event_logger: EventLogger) -> LocalTxApi:
    """Local tx capability submitting as ADDRESS."""
    return LocalTxApi(ledger, contract, address=ADDRESS, event_logger=event_logger)


@pytest.fixture
def fhe() -> FakeFhe:
    return FakeFhe()


@pytest.fixture
def temp_log_file(tmp_path: Path) -> Path:
    return tmp_path / "events.jsonl"
