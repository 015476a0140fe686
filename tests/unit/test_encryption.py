"""Unit tests for AES-256-GCM encryption and master key handling."""

from pathlib import Path

import pytest

from gworkspace_extension.auth.token_storage.encryption import (
    DecryptionError,
    InvalidEncryptedDataError,
    decrypt,
    encrypt,
    load_or_create_master_key,
)


@pytest.mark.unit
class TestEncryptDecrypt:
    """Tests for encrypt() and decrypt()."""

    def test_should_round_trip_plaintext(self, master_key: bytes) -> None:
        """Verify decrypt recovers the encrypted text."""
        plaintext = '{"main-account": {"token": "é"}}'
        assert decrypt(encrypt(plaintext, master_key), master_key) == plaintext

    def test_should_produce_three_hex_segments(self, master_key: bytes) -> None:
        """Verify blob layout is nonce:tag:ciphertext."""
        nonce, tag, ciphertext = encrypt("hello", master_key).split(":")
        assert len(bytes.fromhex(nonce)) == 12
        assert len(bytes.fromhex(tag)) == 16
        assert len(bytes.fromhex(ciphertext)) == len("hello")

    def test_should_use_fresh_nonce_each_time(self, master_key: bytes) -> None:
        """Verify equal plaintexts encrypt differently."""
        assert encrypt("same", master_key) != encrypt("same", master_key)

    @pytest.mark.parametrize("blob", ["", "abc", "aa:bb", "aa:bb:cc:dd", "zz:yy:xx"])
    def test_should_reject_malformed_blob(self, master_key: bytes, blob: str) -> None:
        """Verify malformed blobs raise InvalidEncryptedDataError."""
        with pytest.raises(InvalidEncryptedDataError, match="Invalid encrypted data format"):
            decrypt(blob, master_key)

    def test_should_fail_with_wrong_key(self, master_key: bytes) -> None:
        """Verify decryption under another key fails closed."""
        blob = encrypt("secret", master_key)
        with pytest.raises(DecryptionError):
            decrypt(blob, bytes(32))

    def test_should_detect_tampered_ciphertext(self, master_key: bytes) -> None:
        """Verify flipping a ciphertext byte is detected."""
        nonce, tag, ciphertext = encrypt("secret", master_key).split(":")
        flipped = bytes([bytes.fromhex(ciphertext)[0] ^ 0x01]) + bytes.fromhex(ciphertext)[1:]
        with pytest.raises(DecryptionError):
            decrypt(f"{nonce}:{tag}:{flipped.hex()}", master_key)


@pytest.mark.unit
class TestMasterKey:
    """Tests for load_or_create_master_key()."""

    def test_should_create_key_with_owner_only_permissions(self, tmp_path: Path) -> None:
        """Verify a new 32-byte key is written with mode 0600."""
        key_path = tmp_path / "keys" / "master"
        key = load_or_create_master_key(key_path)

        assert len(key) == 32
        assert key_path.read_bytes() == key
        assert key_path.stat().st_mode & 0o777 == 0o600

    def test_should_reuse_existing_key(self, tmp_path: Path) -> None:
        """Verify an existing key is loaded, never regenerated."""
        key_path = tmp_path / "master"
        first = load_or_create_master_key(key_path)
        assert load_or_create_master_key(key_path) == first

    def test_should_reject_key_of_wrong_length(self, tmp_path: Path) -> None:
        """Verify a truncated key file is an error, not silently replaced."""
        key_path = tmp_path / "master"
        key_path.write_bytes(b"short")

        with pytest.raises(ValueError, match="expected 32"):
            load_or_create_master_key(key_path)
        assert key_path.read_bytes() == b"short"

    def test_should_propagate_read_errors_other_than_missing(self, tmp_path: Path) -> None:
        """Verify an unreadable key path raises instead of generating a new key."""
        key_path = tmp_path / "master"
        key_path.mkdir()

        with pytest.raises(OSError):
            load_or_create_master_key(key_path)
        assert key_path.is_dir()
        assert list(key_path.iterdir()) == []
