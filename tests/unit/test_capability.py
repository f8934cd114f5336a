"""Tests for encryption backend loading and helpers."""

import pytest

from fhe_protocol.config import set_config_value
from fhe_protocol.fhe.capability import (
    U64_MAX,
    FheCapability,
    check_u64,
    from_b64,
    get_backend,
    load_backend,
    to_b64,
)
from fhe_protocol.peer.errors import BackendNotConfigured, ErrorCode

from tests.fakes import FakeFhe

# Module-level instance so load_backend can resolve it by attribute
FAKE_INSTANCE = FakeFhe()
NOT_A_BACKEND = object()


class TestLoadBackend:
    def test_fake_satisfies_interface(self) -> None:
        assert isinstance(FakeFhe(), FheCapability)

    def test_factory(self) -> None:
        assert isinstance(load_backend("tests.fakes:create_fake_fhe"), FakeFhe)

    def test_class_is_instantiated(self) -> None:
        assert isinstance(load_backend("tests.fakes:FakeFhe"), FakeFhe)

    def test_instance(self) -> None:
        assert load_backend(f"{__name__}:FAKE_INSTANCE") is FAKE_INSTANCE

    @pytest.mark.parametrize(
        "path",
        [
            "no_colon",
            "definitely_not_a_module_xyz:create",
            "tests.fakes:missing_attribute",
            f"{__name__}:NOT_A_BACKEND",
        ],
    )
    def test_bad_paths(self, path: str) -> None:
        with pytest.raises(BackendNotConfigured) as exc_info:
            load_backend(path)
        assert exc_info.value.code == ErrorCode.NOT_CONFIGURED

    def test_unconfigured(self) -> None:
        with pytest.raises(BackendNotConfigured) as exc_info:
            get_backend()
        assert "fhe.backend" in exc_info.value.message

    def test_configured(self) -> None:
        set_config_value("fhe.backend", "tests.fakes:create_fake_fhe")
        assert isinstance(get_backend(), FakeFhe)


class TestHelpers:
    def test_b64(self) -> None:
        assert to_b64(b"\x00\x01\x02") == "AAEC"
        assert from_b64("AAEC") == b"\x00\x01\x02"
        assert from_b64(b"AAEC") == b"\x00\x01\x02"

    def test_check_u64(self) -> None:
        assert check_u64(0) == 0
        assert check_u64(U64_MAX) == U64_MAX
        for bad in (-1, U64_MAX + 1, True, 1.5, "1"):
            with pytest.raises(ValueError):
                check_u64(bad)


class TestFakeBackendOperations:
    """The double behaves like a backend for the contract-side operations."""

    def test_compare_and_select(self) -> None:
        fhe = FakeFhe()
        keys = fhe.keygen()
        a = fhe.encrypt_u64(30, keys.client_key)
        b = fhe.encrypt_u64_with_public_key(18, keys.public_key)

        assert fhe.decrypt_bool(fhe.gt_u64(a, b), keys.client_key) is True
        assert fhe.decrypt_bool(fhe.gt_u64_clear(b, 20), keys.client_key) is False
        older = fhe.select_u64(fhe.gt_u64(a, b), a, b)
        assert fhe.decrypt_u64(older, keys.client_key) == 30
        assert fhe.decrypt_u64(fhe.min_u64(a, b), keys.client_key) == 18

    def test_wrong_key_cannot_decrypt(self) -> None:
        fhe = FakeFhe()
        mine = fhe.keygen_from_seed(b"\x01" * 32)
        theirs = fhe.keygen_from_seed(b"\x02" * 32)
        ct = fhe.encrypt_u64_with_public_key(5, mine.public_key)

        with pytest.raises(ValueError):
            fhe.decrypt_u64(ct, theirs.client_key)
