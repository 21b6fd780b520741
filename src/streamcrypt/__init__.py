"""
Streaming authenticated encryption for Python byte streams.

Encrypts and decrypts arbitrarily large streams in bounded memory, chunk by
chunk, with AES-256-GCM or ChaCha20-Poly1305. Tampering, reordering,
truncation and wrong keys are detected.

Usage:
    from streamcrypt import Cipher, EncryptionMiddleware

    middleware = EncryptionMiddleware(key=key, cipher=Cipher.AES_256_GCM)

    with middleware.writer(sink) as writer:
        for block in blocks:
            writer.write(block)

    reader = middleware.reader(source)
    while data := reader.read(65536):
        consume(data)
"""

from streamcrypt.constants import CHUNK_SIZE, KEY_SIZE, TAG_SIZE, Cipher
from streamcrypt.exceptions import (
    AuthenticationError,
    CipherMismatchError,
    ConfigurationError,
    CryptoError,
    FramingError,
    SequenceOverflowError,
    StreamClosedError,
    StreamFailedError,
    TruncatedStreamError,
)
from streamcrypt.middleware import Middleware, Pipeline
from streamcrypt.middleware.encryption import EncryptionConfig, EncryptionMiddleware

__all__ = [
    # Constants
    "CHUNK_SIZE",
    "KEY_SIZE",
    "TAG_SIZE",
    "Cipher",
    # Middleware
    "EncryptionConfig",
    "EncryptionMiddleware",
    "Middleware",
    "Pipeline",
    # Exceptions
    "AuthenticationError",
    "CipherMismatchError",
    "ConfigurationError",
    "CryptoError",
    "FramingError",
    "SequenceOverflowError",
    "StreamClosedError",
    "StreamFailedError",
    "TruncatedStreamError",
]

__version__ = "0.1.0"
