"""
Exception hierarchy for streamcrypt.

All stream and crypto errors inherit from CryptoError for easy catching.
Errors raised by the wrapped sink or source are not wrapped and propagate
unchanged.
"""


class CryptoError(Exception):
    """Base exception for all streamcrypt errors."""


class ConfigurationError(CryptoError, ValueError):
    """Invalid construction-time configuration.

    Raised for:
    - Key that is not exactly 32 bytes
    - Unknown cipher selector
    - Chunk size out of range
    """


class AuthenticationError(CryptoError):
    """Chunk failed authentication.

    Possible causes:
    - Wrong key
    - Corrupted or tampered ciphertext
    - Invalid authentication tag
    - Reordered chunks or altered stream header
    """


class FramingError(CryptoError):
    """Encrypted stream is malformed.

    - Unsupported format version
    - Invalid chunk flag or length
    - Short non-final chunk
    - Data after the final chunk
    """


class TruncatedStreamError(FramingError):
    """Stream ended before its final chunk was seen."""


class CipherMismatchError(FramingError):
    """Stream header names a different cipher than the reader was configured with."""

    def __init__(self, expected: int, received: int) -> None:
        self.expected = expected
        self.received = received
        super().__init__(f"Cipher mismatch: expected 0x{expected:02x}, stream uses 0x{received:02x}")


class SequenceOverflowError(CryptoError):
    """Chunk counter has reached its maximum value.

    Encrypting another chunk would reuse a nonce under the same key,
    which is catastrophic for both AES-GCM and ChaCha20-Poly1305.
    """


class StreamClosedError(CryptoError, ValueError):
    """Operation on a stream that was already finalized or closed."""


class StreamFailedError(CryptoError):
    """Operation on a stream that previously failed.

    The original failure is available as ``__cause__``.
    """


class ShortWriteError(OSError):
    """Underlying sink accepted zero bytes of a write."""
