"""Shared test fixtures for streamcrypt tests."""

import io
import logging
import secrets
from collections.abc import Callable

import pytest

from streamcrypt.constants import KEY_SIZE, Cipher
from streamcrypt.middleware.encryption import EncryptionMiddleware

# Enable streamcrypt debug logging during tests
logging.getLogger("streamcrypt").setLevel(logging.DEBUG)
logging.getLogger("streamcrypt").addHandler(logging.StreamHandler())


# === Size Constants ===

# Small chunk size so multi-chunk paths run on small payloads
SMALL_CHUNK_SIZE = 64

ALL_CIPHERS = [Cipher.AES_256_GCM, Cipher.CHACHA20_POLY1305]
ALL_CIPHER_IDS = ["aes-256-gcm", "chacha20-poly1305"]


# === Helpers ===


class FailingSink(io.RawIOBase):
    """Sink that raises OSError once ``fail_after`` bytes were accepted."""

    def __init__(self, fail_after: int = 0) -> None:
        super().__init__()
        self.fail_after = fail_after
        self.data = bytearray()
        self.calls = 0

    def writable(self) -> bool:
        return True

    def write(self, b: bytes) -> int:  # type: ignore[override]
        self.calls += 1
        if len(self.data) + len(b) > self.fail_after:
            raise OSError("disk full")
        self.data += b
        return len(b)


class TrickleSink(io.RawIOBase):
    """Sink that accepts at most ``max_write`` bytes per call."""

    def __init__(self, max_write: int) -> None:
        super().__init__()
        self.max_write = max_write
        self.data = bytearray()

    def writable(self) -> bool:
        return True

    def write(self, b: bytes) -> int:  # type: ignore[override]
        accepted = bytes(b[: self.max_write])
        self.data += accepted
        return len(accepted)


class TrickleSource(io.RawIOBase):
    """Source that returns at most ``max_read`` bytes per call."""

    def __init__(self, data: bytes, max_read: int) -> None:
        super().__init__()
        self._inner = io.BytesIO(data)
        self.max_read = max_read
        self.reads = 0

    def readable(self) -> bool:
        return True

    def readinto(self, b: bytearray) -> int:  # type: ignore[override]
        self.reads += 1
        size = min(len(b), self.max_read)
        data = self._inner.read(size)
        b[: len(data)] = data
        return len(data)


def encrypt_bytes(middleware: EncryptionMiddleware, data: bytes, write_size: int | None = None) -> bytes:
    """Encrypt through the streaming writer, optionally in fixed-size writes."""
    sink = io.BytesIO()
    with middleware.writer(sink) as writer:
        if write_size is None:
            writer.write(data)
        else:
            for offset in range(0, len(data), write_size):
                writer.write(data[offset : offset + write_size])
    return sink.getvalue()


def decrypt_bytes(middleware: EncryptionMiddleware, data: bytes, read_size: int | None = None) -> bytes:
    """Decrypt through the streaming reader, optionally in fixed-size reads."""
    reader = middleware.reader(io.BytesIO(data))
    if read_size is None:
        return reader.read()
    parts = []
    while chunk := reader.read(read_size):
        parts.append(chunk)
    return b"".join(parts)


# === Key Fixtures ===


@pytest.fixture
def key() -> bytes:
    """Random 32-byte key."""
    return secrets.token_bytes(KEY_SIZE)


@pytest.fixture(params=ALL_CIPHERS, ids=ALL_CIPHER_IDS)
def cipher_selector(request: pytest.FixtureRequest) -> Cipher:
    """Each supported cipher in turn."""
    return request.param


@pytest.fixture
def middleware(key: bytes, cipher_selector: Cipher) -> EncryptionMiddleware:
    """Middleware with the default chunk size, parametrized over ciphers."""
    return EncryptionMiddleware(key=key, cipher=cipher_selector)


@pytest.fixture
def small_middleware(key: bytes, cipher_selector: Cipher) -> EncryptionMiddleware:
    """Middleware with a 64-byte chunk size, parametrized over ciphers."""
    return EncryptionMiddleware(key=key, cipher=cipher_selector, chunk_size=SMALL_CHUNK_SIZE)


@pytest.fixture
def middleware_factory(key: bytes) -> Callable[..., EncryptionMiddleware]:
    """Factory for middleware sharing the test key unless overridden.

    Usage:
        def test_something(middleware_factory):
            m = middleware_factory(cipher=Cipher.CHACHA20_POLY1305, chunk_size=16)
    """

    def _make(**kwargs: object) -> EncryptionMiddleware:
        kwargs.setdefault("key", key)
        return EncryptionMiddleware(**kwargs)  # type: ignore[arg-type]

    return _make
