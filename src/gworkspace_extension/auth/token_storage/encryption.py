"""AES-256-GCM encryption for credential data at rest.

Encrypted blobs are three hex fields joined by colons::

    <nonce>:<auth tag>:<ciphertext>

The key is a 32-byte master key persisted once per installation with
owner-only permissions. Decryption fails closed: a malformed blob, a
tampered ciphertext or a wrong key always raises.
"""

import logging
import os
import secrets
from pathlib import Path

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

logger = logging.getLogger(__name__)

MASTER_KEY_BYTES = 32
NONCE_BYTES = 12
TAG_BYTES = 16
BLOB_SEPARATOR = ":"


class InvalidEncryptedDataError(ValueError):
    """Raised when an encrypted blob cannot be parsed."""


class DecryptionError(ValueError):
    """Raised when the authentication tag does not verify."""


def encrypt(plaintext: str, key: bytes) -> str:
    """Encrypt text with AES-256-GCM under a fresh random nonce.

    Args:
        plaintext: Text to encrypt.
        key: 32-byte master key.

    Returns:
        Hex-encoded ``nonce:tag:ciphertext`` blob.
    """
    nonce = secrets.token_bytes(NONCE_BYTES)
    sealed = AESGCM(key).encrypt(nonce, plaintext.encode("utf-8"), None)
    ciphertext, tag = sealed[:-TAG_BYTES], sealed[-TAG_BYTES:]
    return BLOB_SEPARATOR.join((nonce.hex(), tag.hex(), ciphertext.hex()))


def decrypt(blob: str, key: bytes) -> str:
    """Decrypt a blob produced by :func:`encrypt`.

    Args:
        blob: Hex-encoded ``nonce:tag:ciphertext`` blob.
        key: 32-byte master key.

    Returns:
        The original plaintext.

    Raises:
        InvalidEncryptedDataError: If the blob is not three hex segments.
        DecryptionError: If the data was tampered with or the key is wrong.
    """
    parts = blob.strip().split(BLOB_SEPARATOR)
    if len(parts) != 3:
        raise InvalidEncryptedDataError("Invalid encrypted data format")

    try:
        nonce, tag, ciphertext = (bytes.fromhex(part) for part in parts)
    except ValueError:
        raise InvalidEncryptedDataError("Invalid encrypted data format") from None

    if not nonce or len(tag) != TAG_BYTES:
        raise InvalidEncryptedDataError("Invalid encrypted data format")

    try:
        plaintext = AESGCM(key).decrypt(nonce, ciphertext + tag, None)
    except InvalidTag:
        raise DecryptionError(
            "Failed to decrypt data: authentication tag mismatch (wrong key or tampered data)"
        ) from None

    return plaintext.decode("utf-8")


def load_or_create_master_key(key_path: Path) -> bytes:
    """Load the master key, generating it on first use.

    An existing key is never overwritten. Errors other than a missing file
    propagate so that a corrupt or unreadable key cannot silently orphan
    previously encrypted data.

    Args:
        key_path: Location of the master key file.

    Returns:
        The 32-byte master key.

    Raises:
        ValueError: If the key file exists but is not 32 bytes long.
        OSError: If the key file cannot be read or written.
    """
    try:
        key = key_path.read_bytes()
    except FileNotFoundError:
        return _create_master_key(key_path)

    if len(key) != MASTER_KEY_BYTES:
        raise ValueError(
            f"Master key at {key_path} is {len(key)} bytes, expected {MASTER_KEY_BYTES}"
        )
    return key


def _create_master_key(key_path: Path) -> bytes:
    key = secrets.token_bytes(MASTER_KEY_BYTES)
    key_path.parent.mkdir(parents=True, exist_ok=True, mode=0o700)

    # O_EXCL: never clobber a key written by a concurrent process
    try:
        fd = os.open(key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    except FileExistsError:
        return key_path.read_bytes()
    with os.fdopen(fd, "wb") as f:
        f.write(key)

    logger.info("Created new encryption master key at %s", key_path)
    return key
