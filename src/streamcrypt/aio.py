"""
asyncio encrypting writer and decrypting reader.

Same wire format and failure rules as streamcrypt.streaming, for code that
works with asyncio streams. The only suspension points are the underlying
``drain()`` and ``read()`` awaits. Cancellation at either one leaves the
instance failed: it never resumes and never releases unauthenticated
plaintext.

Usage:
    reader, writer = await asyncio.open_connection(host, port)

    async with AsyncEncryptWriter(writer, cipher) as enc:
        await enc.write(payload)

    dec = AsyncDecryptReader(reader, cipher)
    async for chunk in dec:
        handle(chunk)
"""

from __future__ import annotations

import types
from collections.abc import AsyncIterator
from typing import Protocol

from typing_extensions import Self

from streamcrypt._logging import get_logger
from streamcrypt.cipher import AEADCipher
from streamcrypt.codec import StreamDecoder, StreamEncoder
from streamcrypt.constants import CHUNK_SIZE
from streamcrypt.exceptions import StreamClosedError, StreamFailedError

__all__ = [
    "AsyncByteSink",
    "AsyncByteSource",
    "AsyncDecryptReader",
    "AsyncEncryptWriter",
]

_logger = get_logger(__name__)


class AsyncByteSink(Protocol):
    """asyncio.StreamWriter-like sink."""

    def write(self, data: bytes, /) -> object: ...

    async def drain(self) -> None: ...


class AsyncByteSource(Protocol):
    """asyncio.StreamReader-like source."""

    async def read(self, n: int = -1, /) -> bytes: ...


class AsyncEncryptWriter:
    """
    Incremental encrypting sink for asyncio streams.

    Each sealed chunk is written and drained before the next one is produced,
    so at most one chunk of plaintext and one of ciphertext is held.
    """

    def __init__(
        self,
        sink: AsyncByteSink,
        cipher: AEADCipher,
        chunk_size: int = CHUNK_SIZE,
        *,
        close_sink: bool = False,
        salt: bytes | None = None,
    ) -> None:
        self._encoder = StreamEncoder(cipher, chunk_size, salt)
        self._sink = sink
        self._close_sink = close_sink
        self._buffer = bytearray()
        self._plaintext_bytes = 0
        self._closed = False
        self._error: BaseException | None = None
        _logger.debug("Async encrypting stream opened: cipher=%s chunk_size=%d", cipher.name, chunk_size)

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def failed(self) -> bool:
        return self._error is not None

    async def write(self, data: bytes | bytearray | memoryview) -> int:
        """
        Encrypt plaintext, writing and draining every chunk that fills up.

        Returns:
            Number of plaintext bytes accepted

        Raises:
            StreamClosedError: If the writer was closed
            StreamFailedError: If the writer previously failed or was cancelled
        """
        self._check_writable()
        view = memoryview(data).cast("B")
        size = len(view)
        chunk_size = self._encoder.chunk_size
        try:
            if self._buffer:
                take = min(chunk_size - len(self._buffer), len(view))
                self._buffer += view[:take]
                view = view[take:]
                if len(self._buffer) == chunk_size:
                    await self._emit(self._buffer)
                    self._buffer.clear()
            while len(view) >= chunk_size:
                await self._emit(view[:chunk_size])
                view = view[chunk_size:]
            self._buffer += view
        except BaseException as e:
            self._fail(e)
            raise
        self._plaintext_bytes += size
        return size

    async def aclose(self) -> None:
        """Write the final chunk (unless failed or aborted) and close. Idempotent."""
        if self._closed:
            return
        try:
            if self._error is None and not self._encoder.finished:
                try:
                    await self._emit(self._buffer, final=True)
                except BaseException as e:
                    self._fail(e)
                    raise
                self._buffer.clear()
                _logger.debug(
                    "Async encrypting stream finalized: chunks=%d plaintext_bytes=%d",
                    self._encoder.sequence,
                    self._plaintext_bytes,
                )
        finally:
            self._closed = True
            if self._close_sink:
                self._sink.close()  # type: ignore[attr-defined]
                wait_closed = getattr(self._sink, "wait_closed", None)
                if wait_closed is not None:
                    await wait_closed()

    async def abort(self) -> None:
        """Close without writing the final chunk."""
        if self._error is None and not self._encoder.finished:
            self._error = StreamClosedError("Stream aborted before finalization")
            _logger.debug("Async encrypting stream aborted: chunks=%d", self._encoder.sequence)
        await self.aclose()

    async def __aenter__(self) -> Self:
        self._check_writable()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        if exc_type is not None:
            await self.abort()
        else:
            await self.aclose()

    def _check_writable(self) -> None:
        if self._error is not None:
            raise StreamFailedError("Encrypting stream previously failed") from self._error
        if self._closed or self._encoder.finished:
            raise StreamClosedError("Write to finalized stream")

    def _fail(self, error: BaseException) -> None:
        if self._error is None:
            self._error = error
            _logger.debug("Async encrypting stream failed: error_type=%s", type(error).__name__)

    async def _emit(self, plaintext: bytes | bytearray | memoryview, *, final: bool = False) -> None:
        self._sink.write(self._encoder.encode_chunk(plaintext, final=final))
        await self._sink.drain()


class AsyncDecryptReader:
    """
    Incremental decrypting source for asyncio streams.

    ``read(n)`` returns up to n plaintext bytes, ``read()`` the rest of the
    stream, b"" after the final chunk. Iterating yields one chunk of plaintext
    at a time.
    """

    def __init__(self, source: AsyncByteSource, cipher: AEADCipher) -> None:
        self._decoder = StreamDecoder(cipher)
        self._source = source
        self._chunk = b""
        self._offset = 0
        self._error: BaseException | None = None

    @property
    def failed(self) -> bool:
        return self._error is not None

    @property
    def at_eof(self) -> bool:
        """True once the final chunk was verified and fully consumed."""
        return self._decoder.done and self._offset >= len(self._chunk)

    async def read(self, n: int = -1) -> bytes:
        """
        Read decrypted bytes.

        Args:
            n: Maximum bytes to return, -1 for everything up to the end of stream

        Raises:
            AuthenticationError: If a chunk fails verification
            FramingError: If the stream is malformed or truncated
            StreamFailedError: If the reader previously failed or was cancelled
        """
        if n < 0:
            parts = [chunk async for chunk in self]
            return b"".join(parts)
        if n == 0:
            self._check_readable()
            return b""

        if not await self._fill():
            return b""
        data = self._chunk[self._offset : self._offset + n]
        self._offset += len(data)
        return data

    def __aiter__(self) -> AsyncIterator[bytes]:
        return self._iter_chunks()

    async def _iter_chunks(self) -> AsyncIterator[bytes]:
        while await self._fill():
            data = self._chunk[self._offset :]
            self._offset = len(self._chunk)
            yield data

    def _check_readable(self) -> None:
        if self._error is not None:
            raise StreamFailedError("Decrypting stream previously failed") from self._error

    async def _fill(self) -> bool:
        """Ensure buffered plaintext is available. False at end of stream."""
        self._check_readable()
        try:
            while self._offset >= len(self._chunk):
                if self._decoder.done:
                    return False
                self._chunk = await self._next_chunk()
                self._offset = 0
        except BaseException as e:
            self._chunk = b""
            self._offset = 0
            self._error = e
            _logger.debug(
                "Async decrypting stream failed: chunk=%d error_type=%s",
                self._decoder.sequence,
                type(e).__name__,
            )
            raise
        return True

    async def _next_chunk(self) -> bytes:
        while True:
            data = await self._source.read(self._decoder.bytes_needed)
            if not data:
                self._decoder.finish()
                return b""
            plaintexts = self._decoder.feed(data)
            if plaintexts:
                if self._decoder.done:
                    _logger.debug("Async decrypting stream finished: chunks=%d", self._decoder.sequence)
                return b"".join(plaintexts)
