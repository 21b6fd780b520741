"""
AEAD cipher primitives.

Both variants take a 256-bit key and a 96-bit nonce and append a 16-byte
tag. The chunk codec only depends on the AEADCipher protocol, so adding a
cipher means adding a class and a registry entry.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import ClassVar, Protocol

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM, ChaCha20Poly1305

from streamcrypt.constants import KEY_SIZE, NONCE_SIZE, TAG_SIZE, Cipher
from streamcrypt.exceptions import AuthenticationError, ConfigurationError

__all__ = [
    "AEADCipher",
    "AESGCMCipher",
    "ChaCha20Poly1305Cipher",
    "new_cipher",
    "resolve_cipher",
]


class AEADCipher(Protocol):
    """Authenticated encryption with associated data, key bound at construction."""

    cipher_id: Cipher
    name: str

    def seal(self, nonce: bytes, associated_data: bytes, plaintext: bytes) -> bytes:
        """Encrypt and authenticate.

        Args:
            nonce: 12-byte nonce, never reused under this key
            associated_data: Authenticated but unencrypted bytes
            plaintext: Bytes to encrypt

        Returns:
            ciphertext || tag
        """
        ...

    def open(self, nonce: bytes, associated_data: bytes, sealed: bytes) -> bytes:
        """Verify and decrypt.

        Args:
            nonce: Nonce used by seal()
            associated_data: Associated data used by seal()
            sealed: ciphertext || tag

        Returns:
            Plaintext

        Raises:
            AuthenticationError: If the tag does not verify
        """
        ...


class _CryptographyAEAD(ABC):
    """Shared seal/open over a ``cryptography`` AEAD class."""

    cipher_id: ClassVar[Cipher]
    name: ClassVar[str]

    KEY_SIZE: ClassVar[int] = KEY_SIZE
    NONCE_SIZE: ClassVar[int] = NONCE_SIZE
    TAG_SIZE: ClassVar[int] = TAG_SIZE

    __slots__ = ("_aead",)

    def __init__(self, key: bytes) -> None:
        if len(key) != KEY_SIZE:
            raise ConfigurationError(f"Encryption key must be exactly {KEY_SIZE} bytes, got {len(key)}")
        self._aead = self._new_aead(bytes(key))

    @staticmethod
    @abstractmethod
    def _new_aead(key: bytes) -> AESGCM | ChaCha20Poly1305:
        """Build the ``cryptography`` AEAD object for ``key``."""

    def seal(self, nonce: bytes, associated_data: bytes, plaintext: bytes) -> bytes:
        return self._aead.encrypt(nonce, plaintext, associated_data)

    def open(self, nonce: bytes, associated_data: bytes, sealed: bytes) -> bytes:
        if len(sealed) < TAG_SIZE:
            raise AuthenticationError("Sealed data shorter than authentication tag")
        try:
            return self._aead.decrypt(nonce, sealed, associated_data)
        except InvalidTag as e:
            raise AuthenticationError(f"{self.name} decryption failed") from e

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class AESGCMCipher(_CryptographyAEAD):
    """AES-256-GCM."""

    cipher_id = Cipher.AES_256_GCM
    name = "AES-256-GCM"

    __slots__ = ()

    @staticmethod
    def _new_aead(key: bytes) -> AESGCM:
        return AESGCM(key)


class ChaCha20Poly1305Cipher(_CryptographyAEAD):
    """ChaCha20-Poly1305 (RFC 8439)."""

    cipher_id = Cipher.CHACHA20_POLY1305
    name = "ChaCha20-Poly1305"

    __slots__ = ()

    @staticmethod
    def _new_aead(key: bytes) -> ChaCha20Poly1305:
        return ChaCha20Poly1305(key)


_CIPHERS: dict[Cipher, type[_CryptographyAEAD]] = {
    Cipher.AES_256_GCM: AESGCMCipher,
    Cipher.CHACHA20_POLY1305: ChaCha20Poly1305Cipher,
}


def resolve_cipher(selector: Cipher | int) -> Cipher:
    """
    Coerce a selector to a supported Cipher.

    Raises:
        ConfigurationError: If the selector is not a supported cipher
    """
    if isinstance(selector, bool) or not isinstance(selector, int):
        raise ConfigurationError(f"Cipher selector must be a Cipher, got {type(selector).__name__}")
    try:
        cipher = Cipher(selector)
    except ValueError as e:
        raise ConfigurationError(f"Unknown cipher: 0x{selector:02x}") from e
    if cipher not in _CIPHERS:
        raise ConfigurationError(f"Unsupported cipher: {cipher.name}")
    return cipher


def new_cipher(selector: Cipher | int, key: bytes) -> AEADCipher:
    """
    Create the AEAD primitive for a cipher selector.

    Args:
        selector: Cipher identifier
        key: 32-byte key

    Returns:
        Primitive bound to ``key``

    Raises:
        ConfigurationError: If the selector is unknown or the key length is wrong
    """
    return _CIPHERS[resolve_cipher(selector)](key)
