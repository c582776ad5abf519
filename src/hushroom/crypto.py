"""Cryptographic primitives for hushroom.

Includes:
- Room key derivation (SHA-256 over room name + password)
- AES-256-GCM message encryption with a fresh 12-byte nonce per message

Every client that knows a room's name and password derives the same key on
its own; the relay only ever sees ciphertext.
"""

from __future__ import annotations

import hashlib
import os
import secrets
from dataclasses import dataclass

from cryptography.exceptions import InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16


class DerivationError(Exception):
    """Raised when the AEAD primitive cannot be initialized."""

    pass


class DecryptError(Exception):
    """A single message could not be decrypted (wrong key, tampered or malformed)."""

    pass


class SessionKey:
    """Opaque AES-256-GCM key owned by one chat session.

    The raw key material is never exposed through repr() and the object
    offers no serialization. Two keys compare equal when their material is
    identical (constant-time comparison).
    """

    __slots__ = ("_material", "_aead")

    def __init__(self, material: bytes):
        if len(material) != KEY_SIZE:
            raise ValueError(f"Session key must be {KEY_SIZE} bytes, got {len(material)}")
        try:
            self._aead = AESGCM(material)
        except UnsupportedAlgorithm as e:
            raise DerivationError("Encryption initialization failed") from e
        self._material = material

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SessionKey):
            return NotImplemented
        return secrets.compare_digest(self._material, other._material)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return "SessionKey(<redacted>)"


@dataclass(frozen=True)
class Ciphertext:
    """AES-GCM output: encrypted bytes (tag appended) plus the nonce used."""

    data: bytes
    nonce: bytes


@dataclass(frozen=True)
class DecryptResult:
    """Outcome of decrypting one message.

    Exactly one of `plaintext` and `error` is set.
    """

    plaintext: str | None = None
    error: DecryptError | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, plaintext: str) -> "DecryptResult":
        return cls(plaintext=plaintext)

    @classmethod
    def failure(cls, reason: str) -> "DecryptResult":
        return cls(error=DecryptError(reason))


def derive_room_key(room_name: str, password: str) -> SessionKey:
    """
    Derive the symmetric key for a room.

    The room name and password are concatenated without a separator and
    hashed with SHA-256; the digest is used directly as the AES-256 key.
    There is no salt and no stretching, so every member of a room reaches
    the same key independently.

    Note that the missing separator makes the derivation ambiguous:
    ("ab", "cpassword") and ("abc", "password") produce the same key.

    Args:
        room_name: Room name (validated by the caller)
        password: Shared room password (validated by the caller)

    Returns:
        SessionKey for use with encrypt_message/decrypt_message

    Raises:
        DerivationError: If AES-GCM is unavailable in the crypto backend
    """
    digest = hashlib.sha256((room_name + password).encode("utf-8")).digest()
    return SessionKey(digest)


def encrypt_message(key: SessionKey, plaintext: str) -> Ciphertext:
    """
    Encrypt a chat message with AES-256-GCM.

    A fresh random 12-byte nonce is drawn for every call, so encrypting the
    same text twice never yields the same ciphertext.

    Args:
        key: Session key from derive_room_key
        plaintext: Message text (encoded as UTF-8)

    Returns:
        Ciphertext with the encrypted bytes (16-byte tag appended) and nonce
    """
    nonce = os.urandom(NONCE_SIZE)
    data = key._aead.encrypt(nonce, plaintext.encode("utf-8"), None)
    return Ciphertext(data=data, nonce=nonce)


def decrypt_message(key: SessionKey, ciphertext: Ciphertext) -> DecryptResult:
    """
    Decrypt a chat message.

    Never raises for bad input: authentication failures, malformed nonces
    and invalid UTF-8 are all reported through the returned result.

    Args:
        key: Session key from derive_room_key
        ciphertext: Encrypted bytes and nonce as received

    Returns:
        DecryptResult with either the plaintext or a DecryptError
    """
    try:
        plaintext = key._aead.decrypt(ciphertext.nonce, ciphertext.data, None)
    except InvalidTag:
        return DecryptResult.failure("Authentication tag mismatch")
    except (ValueError, TypeError) as e:
        # Nonce of the wrong length or non-bytes input
        return DecryptResult.failure(f"Malformed ciphertext: {e}")

    try:
        return DecryptResult.success(plaintext.decode("utf-8"))
    except UnicodeDecodeError:
        return DecryptResult.failure("Plaintext is not valid UTF-8")
