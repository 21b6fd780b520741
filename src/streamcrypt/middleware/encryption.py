"""
Encryption middleware.

Binds a key and a cipher and hands out encrypting writers and decrypting
readers over caller-supplied streams.

Usage:
    from streamcrypt import Cipher
    from streamcrypt.middleware.encryption import EncryptionMiddleware

    middleware = EncryptionMiddleware(key=key, cipher=Cipher.CHACHA20_POLY1305)

    with middleware.writer(open("blob.enc", "wb")) as w:
        w.write(payload)

    with open("blob.enc", "rb") as f:
        payload = middleware.reader(f).read()

Omitting the key generates a random one, only usable within this process
unless the caller saves ``middleware.config.key``.
"""

from __future__ import annotations

import io
import secrets
from dataclasses import dataclass, field

from streamcrypt._logging import get_logger
from streamcrypt.aio import AsyncByteSink, AsyncByteSource, AsyncDecryptReader, AsyncEncryptWriter
from streamcrypt.cipher import AEADCipher, new_cipher, resolve_cipher
from streamcrypt.codec import validate_chunk_size
from streamcrypt.constants import CHUNK_SIZE, DEFAULT_CIPHER, KEY_SIZE, Cipher
from streamcrypt.exceptions import ConfigurationError, FramingError
from streamcrypt.streaming import BinarySink, BinarySource, DecryptReader, EncryptWriter

__all__ = [
    "EncryptionConfig",
    "EncryptionMiddleware",
]

_logger = get_logger(__name__)


def _generate_key() -> bytes:
    return secrets.token_bytes(KEY_SIZE)


@dataclass(frozen=True)
class EncryptionConfig:
    """
    Validated encryption settings.

    Immutable after construction, so one config may be shared by any number
    of concurrent streams.
    """

    key: bytes = field(default_factory=_generate_key, repr=False)
    """32-byte secret key (random if omitted)."""

    cipher: Cipher = DEFAULT_CIPHER
    """AEAD cipher, must match between writer and reader."""

    chunk_size: int = CHUNK_SIZE
    """Plaintext bytes per chunk (written into the stream header)."""

    def __post_init__(self) -> None:
        if not isinstance(self.key, (bytes, bytearray, memoryview)):
            raise ConfigurationError(f"Encryption key must be bytes, got {type(self.key).__name__}")
        key = bytes(self.key)
        if len(key) != KEY_SIZE:
            raise ConfigurationError(f"Encryption key must be exactly {KEY_SIZE} bytes, got {len(key)}")
        cipher = resolve_cipher(self.cipher)
        validate_chunk_size(self.chunk_size)

        # Frozen dataclass: normalized values are set through object.__setattr__
        object.__setattr__(self, "key", key)
        object.__setattr__(self, "cipher", cipher)


class EncryptionMiddleware:
    """
    Streaming AEAD encryption middleware.

    Every writer() call starts a new stream with a fresh random salt, so
    nonces never repeat across streams under the same key.
    """

    def __init__(
        self,
        key: bytes | None = None,
        cipher: Cipher | int = DEFAULT_CIPHER,
        *,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        """
        Args:
            key: 32-byte secret key (random if omitted)
            cipher: Cipher.AES_256_GCM (default) or Cipher.CHACHA20_POLY1305
            chunk_size: Plaintext bytes per chunk

        Raises:
            ConfigurationError: If any setting is invalid
        """
        if key is None:
            config = EncryptionConfig(cipher=cipher, chunk_size=chunk_size)  # type: ignore[arg-type]
        else:
            config = EncryptionConfig(key=key, cipher=cipher, chunk_size=chunk_size)  # type: ignore[arg-type]
        self._config = config
        _logger.debug(
            "Encryption middleware created: cipher=%s chunk_size=%d random_key=%s",
            config.cipher.name,
            config.chunk_size,
            key is None,
        )

    @classmethod
    def from_config(cls, config: EncryptionConfig) -> EncryptionMiddleware:
        """Create middleware from an existing config."""
        return cls(key=config.key, cipher=config.cipher, chunk_size=config.chunk_size)

    @property
    def config(self) -> EncryptionConfig:
        return self._config

    @property
    def cipher(self) -> Cipher:
        return self._config.cipher

    def _new_cipher(self) -> AEADCipher:
        return new_cipher(self._config.cipher, self._config.key)

    # ------------------------------------------------------------------
    # Middleware interface
    # ------------------------------------------------------------------

    def writer(self, sink: BinarySink, *, close_sink: bool = False) -> EncryptWriter:
        """
        Wrap ``sink`` in a new encrypting writer.

        The stream is only complete once the writer is closed.
        """
        return EncryptWriter(sink, self._new_cipher(), self._config.chunk_size, close_sink=close_sink)

    def reader(self, source: BinarySource, *, close_source: bool = False) -> DecryptReader:
        """Wrap ``source`` in a new decrypting reader."""
        return DecryptReader(source, self._new_cipher(), close_source=close_source)

    # ------------------------------------------------------------------
    # asyncio
    # ------------------------------------------------------------------

    def async_writer(self, sink: AsyncByteSink, *, close_sink: bool = False) -> AsyncEncryptWriter:
        """Wrap an asyncio.StreamWriter-like sink in a new encrypting writer."""
        return AsyncEncryptWriter(sink, self._new_cipher(), self._config.chunk_size, close_sink=close_sink)

    def async_reader(self, source: AsyncByteSource) -> AsyncDecryptReader:
        """Wrap an asyncio.StreamReader-like source in a new decrypting reader."""
        return AsyncDecryptReader(source, self._new_cipher())

    # ------------------------------------------------------------------
    # One-shot helpers
    # ------------------------------------------------------------------

    def encrypt(self, data: bytes) -> bytes:
        """Encrypt a complete payload into one stream."""
        output = io.BytesIO()
        with self.writer(output) as writer:
            writer.write(data)
        return output.getvalue()

    def decrypt(self, data: bytes) -> bytes:
        """
        Decrypt a complete stream.

        Raises:
            AuthenticationError: If any chunk fails verification
            FramingError: If the stream is malformed, truncated or has trailing bytes
        """
        source = io.BytesIO(data)
        reader = self.reader(source)
        plaintext = reader.read()
        if source.read(1):
            raise FramingError("Unexpected data after final chunk")
        return plaintext

    def __repr__(self) -> str:
        return f"EncryptionMiddleware(cipher={self._config.cipher.name}, chunk_size={self._config.chunk_size})"
