"""Tests for obfuscated token storage."""

import json
import time
from pathlib import Path

import pytest

from snappy.core.config import constants
from snappy.core.secure_storage import FileStorage, MemoryStorage, SecureStorage, generate_key


@pytest.fixture
def backend() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def secure(backend: MemoryStorage) -> SecureStorage:
    return SecureStorage(backend, key="k3y")


class TestObfuscation:
    @pytest.mark.unit
    def test_token_is_not_stored_in_plain_text(self, secure: SecureStorage, backend: MemoryStorage) -> None:
        secure.set_token("eyJhbGciOi.payload.sig")

        stored = backend.get_item(constants.STORAGE_TOKEN_KEY)
        assert stored
        assert "payload" not in stored
        assert secure.decrypt(stored) == "eyJhbGciOi.payload.sig"

    @pytest.mark.unit
    def test_empty_values(self, secure: SecureStorage) -> None:
        assert secure.encrypt("") == ""
        assert secure.decrypt("") == ""

    @pytest.mark.unit
    def test_corrupt_payload_decrypts_to_empty(self, secure: SecureStorage) -> None:
        assert secure.decrypt("%%% not base64 %%%") == ""

    @pytest.mark.unit
    def test_other_key_cannot_read_token(self, backend: MemoryStorage) -> None:
        SecureStorage(backend, key="first").set_token("secret-token")

        assert SecureStorage(backend, key="second").get_token() != "secret-token"

    @pytest.mark.unit
    def test_generate_key_is_stable_base36(self) -> None:
        key = generate_key()

        assert key == generate_key()
        assert key
        assert set(key) <= set("0123456789abcdefghijklmnopqrstuvwxyz")


class TestExpiry:
    @pytest.mark.unit
    def test_set_token_records_expiry(self, secure: SecureStorage) -> None:
        before_ms = time.time() * 1000

        secure.set_token("access", expires_in=60)

        expiry = secure.get_token_expiry()
        assert expiry is not None
        assert before_ms + 59_000 <= expiry <= before_ms + 61_000
        assert secure.has_valid_token()

    @pytest.mark.unit
    def test_expired_token_is_purged_but_refresh_token_kept(
        self, secure: SecureStorage, backend: MemoryStorage
    ) -> None:
        secure.set_token("access", expires_in=-1)
        secure.set_refresh_token("refresh")

        assert secure.get_token() is None
        assert backend.get_item(constants.STORAGE_TOKEN_KEY) is None
        assert secure.get_token_expiry() is None
        assert secure.get_refresh_token() == "refresh"
        assert not secure.has_valid_token()

    @pytest.mark.unit
    def test_extend_session_slides_expiry(self, secure: SecureStorage) -> None:
        secure.set_token("access", expires_in=5)

        secure.extend_session(3600)

        assert secure.get_token_expiry() > (time.time() + 3500) * 1000

    @pytest.mark.unit
    def test_extend_session_without_token_is_noop(self, secure: SecureStorage) -> None:
        secure.extend_session(3600)

        assert secure.get_token_expiry() is None

    @pytest.mark.unit
    def test_malformed_expiry_is_ignored(self, secure: SecureStorage, backend: MemoryStorage) -> None:
        backend.set_item(constants.STORAGE_EXPIRY_KEY, "tomorrow")

        assert secure.get_token_expiry() is None

    @pytest.mark.unit
    def test_remove_token_clears_everything(self, secure: SecureStorage, backend: MemoryStorage) -> None:
        secure.set_token("access")
        secure.set_refresh_token("refresh")

        secure.remove_token()

        assert secure.get_token() is None
        assert secure.get_refresh_token() is None
        assert backend.get_item(constants.STORAGE_EXPIRY_KEY) is None

    @pytest.mark.unit
    def test_setting_empty_token_removes_it(self, secure: SecureStorage) -> None:
        secure.set_token("access")

        secure.set_token(None)

        assert secure.get_token() is None


class TestFileStorage:
    @pytest.mark.unit
    def test_tokens_survive_new_instance(self, tmp_path: Path) -> None:
        path = tmp_path / "nested" / "tokens.json"
        SecureStorage(FileStorage(path), key="k3y").set_token("access")

        assert SecureStorage(FileStorage(path), key="k3y").get_token() == "access"
        assert constants.STORAGE_TOKEN_KEY in json.loads(path.read_text())

    @pytest.mark.unit
    def test_missing_file_reads_empty(self, tmp_path: Path) -> None:
        storage = FileStorage(tmp_path / "absent.json")

        assert storage.get_item("anything") is None
        storage.remove_item("anything")
        assert not (tmp_path / "absent.json").exists()
