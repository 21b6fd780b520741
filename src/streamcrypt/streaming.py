"""
Blocking encrypting writer and decrypting reader.

Both are ``io.RawIOBase`` streams, so they compose with anything that speaks
Python's binary file protocol (BufferedReader, gzip.GzipFile, shutil.copyfileobj,
another streamcrypt stream).

Usage:
    with EncryptWriter(sink, new_cipher(Cipher.AES_256_GCM, key)) as writer:
        writer.write(b"hello")

    reader = DecryptReader(source, new_cipher(Cipher.AES_256_GCM, key))
    plaintext = reader.read()

Neither class is thread-safe. Serialize calls on one instance.
"""

from __future__ import annotations

import io
import types
from typing import Protocol

from typing_extensions import Buffer, Self

from streamcrypt._logging import get_logger
from streamcrypt.cipher import AEADCipher
from streamcrypt.codec import StreamDecoder, StreamEncoder
from streamcrypt.constants import CHUNK_SIZE
from streamcrypt.exceptions import ShortWriteError, StreamClosedError, StreamFailedError

__all__ = [
    "BinarySink",
    "BinarySource",
    "DecryptReader",
    "EncryptWriter",
]

_logger = get_logger(__name__)


class BinarySink(Protocol):
    """Anything with a binary ``write``."""

    def write(self, data: bytes, /) -> int | None: ...


class BinarySource(Protocol):
    """Anything with a binary ``read``, returning b"" at end of stream."""

    def read(self, size: int = -1, /) -> bytes | None: ...


class EncryptWriter(io.RawIOBase):
    """
    Incremental encrypting sink.

    Buffers plaintext until a full chunk is available, then seals and forwards
    it. ``close()`` seals the buffered remainder (possibly empty) as the final
    chunk. A writer that is dropped, aborted, or left through ``with`` by an
    exception is never finalized, so the reader sees a truncated stream
    rather than a short one that looks complete.

    Errors from the sink propagate unchanged and leave the writer failed:
    later calls raise StreamFailedError and nothing more is written.
    """

    def __init__(
        self,
        sink: BinarySink,
        cipher: AEADCipher,
        chunk_size: int = CHUNK_SIZE,
        *,
        close_sink: bool = False,
        salt: bytes | None = None,
    ) -> None:
        """
        Args:
            sink: Destination for the encrypted stream
            cipher: AEAD primitive bound to the stream key
            chunk_size: Plaintext bytes per chunk
            close_sink: Close the sink when this writer is closed
            salt: Fixed nonce salt (tests only, random otherwise)
        """
        self._encoder = StreamEncoder(cipher, chunk_size, salt)
        super().__init__()
        self._sink = sink
        self._close_sink = close_sink
        self._buffer = bytearray()
        self._plaintext_bytes = 0
        self._closing = False
        self._error: BaseException | None = None
        _logger.debug("Encrypting stream opened: cipher=%s chunk_size=%d", cipher.name, chunk_size)

    # ------------------------------------------------------------------
    # io.RawIOBase
    # ------------------------------------------------------------------

    def writable(self) -> bool:
        return True

    def write(self, b: Buffer) -> int:
        """
        Encrypt plaintext, forwarding every chunk that fills up.

        Returns:
            Number of plaintext bytes accepted (always all of them)

        Raises:
            StreamClosedError: If the writer was closed
            StreamFailedError: If the writer previously failed
        """
        self._check_writable()
        view = memoryview(b).cast("B")
        size = len(view)
        try:
            self._write(view)
        except BaseException as e:
            self._fail(e)
            raise
        self._plaintext_bytes += size
        return size

    def flush(self) -> None:
        """
        Flush the sink. Buffered plaintext stays buffered until a chunk fills or close().

        Raises:
            StreamFailedError: If the writer previously failed
        """
        super().flush()
        if self._error is not None:
            if self._closing:
                return
            raise StreamFailedError("Encrypting stream previously failed") from self._error
        flush = getattr(self._sink, "flush", None)
        if flush is not None:
            flush()

    def close(self) -> None:
        """
        Finalize the stream and close the writer.

        Writes the final chunk unless the writer failed or was aborted.
        Idempotent.
        """
        if self.closed:
            return
        self._closing = True
        try:
            if self._error is None and not self._encoder.finished:
                try:
                    self._emit(self._buffer, final=True)
                except BaseException as e:
                    self._fail(e)
                    raise
                self._buffer.clear()
                _logger.debug(
                    "Encrypting stream finalized: chunks=%d plaintext_bytes=%d",
                    self._encoder.sequence,
                    self._plaintext_bytes,
                )
        finally:
            try:
                super().close()
            finally:
                if self._close_sink:
                    self._sink.close()  # type: ignore[attr-defined]

    def abort(self) -> None:
        """Close without writing the final chunk. The partial stream will not decrypt as complete."""
        if self._error is None and not self._encoder.finished:
            self._error = StreamClosedError("Stream aborted before finalization")
            _logger.debug("Encrypting stream aborted: chunks=%d", self._encoder.sequence)
        self.close()

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: types.TracebackType | None,
    ) -> None:
        if exc_type is not None:
            self.abort()
        else:
            self.close()

    def __enter__(self) -> Self:
        self._check_writable()
        return self

    def __del__(self) -> None:
        # Dropped without close(): leave the stream unterminated.
        if getattr(self, "_error", False) is None and not self.closed and not self._encoder.finished:
            self._error = StreamClosedError("Writer discarded before close")
        super().__del__()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    @property
    def failed(self) -> bool:
        return self._error is not None

    def _check_writable(self) -> None:
        if self._error is not None:
            raise StreamFailedError("Encrypting stream previously failed") from self._error
        if self.closed or self._encoder.finished:
            raise StreamClosedError("Write to finalized stream")

    def _fail(self, error: BaseException) -> None:
        if self._error is None:
            self._error = error
            _logger.debug("Encrypting stream failed: error_type=%s", type(error).__name__)

    def _write(self, view: memoryview) -> None:
        chunk_size = self._encoder.chunk_size

        if self._buffer:
            take = min(chunk_size - len(self._buffer), len(view))
            self._buffer += view[:take]
            view = view[take:]
            if len(self._buffer) < chunk_size:
                return
            self._emit(self._buffer)
            self._buffer.clear()

        while len(view) >= chunk_size:
            self._emit(view[:chunk_size])
            view = view[chunk_size:]

        self._buffer += view

    def _emit(self, plaintext: bytes | bytearray | memoryview, *, final: bool = False) -> None:
        frame = self._encoder.encode_chunk(plaintext, final=final)
        offset = 0
        while offset < len(frame):
            written = self._sink.write(frame[offset:] if offset else frame)
            if written is None:
                # Sinks returning None are taken to have consumed the whole frame.
                return
            if written <= 0:
                raise ShortWriteError(f"Sink accepted no bytes ({len(frame) - offset} pending)")
            offset += written


class DecryptReader(io.RawIOBase):
    """
    Incremental decrypting source.

    Pulls one chunk at a time from the source, reading exactly the bytes that
    chunk needs, and serves plaintext from it. Reads after the final chunk
    return b"". End of source before the final chunk raises
    TruncatedStreamError. A non-blocking source that returns None makes
    ``readinto`` return None, as RawIOBase does; reading may resume later.

    Any error is fatal: later calls raise StreamFailedError and no further
    plaintext is released.
    """

    def __init__(self, source: BinarySource, cipher: AEADCipher, *, close_source: bool = False) -> None:
        """
        Args:
            source: Encrypted stream
            cipher: AEAD primitive bound to the stream key
            close_source: Close the source when this reader is closed
        """
        self._decoder = StreamDecoder(cipher)
        super().__init__()
        self._source = source
        self._close_source = close_source
        self._chunk = b""
        self._offset = 0
        self._plaintext_bytes = 0
        self._error: BaseException | None = None

    def readable(self) -> bool:
        return True

    def readinto(self, b: Buffer) -> int | None:
        """
        Read decrypted bytes into ``b``.

        Returns:
            Bytes read, 0 at end of stream, None if a non-blocking source
            has no data yet

        Raises:
            AuthenticationError: If a chunk fails verification
            FramingError: If the stream is malformed or truncated
            StreamFailedError: If the reader previously failed
        """
        self._check_readable()
        view = memoryview(b).cast("B")
        if not len(view):
            return 0

        try:
            while self._offset >= len(self._chunk):
                if self._decoder.done:
                    return 0
                chunk = self._next_chunk()
                if chunk is None:
                    return None
                self._chunk = chunk
                self._offset = 0
        except BaseException as e:
            self._fail(e)
            raise

        n = min(len(view), len(self._chunk) - self._offset)
        view[:n] = self._chunk[self._offset : self._offset + n]
        self._offset += n
        self._plaintext_bytes += n
        return n

    def close(self) -> None:
        if self.closed:
            return
        try:
            super().close()
        finally:
            self._chunk = b""
            if self._close_source:
                self._source.close()  # type: ignore[attr-defined]

    @property
    def failed(self) -> bool:
        return self._error is not None

    def _check_readable(self) -> None:
        if self._error is not None:
            raise StreamFailedError("Decrypting stream previously failed") from self._error
        if self.closed:
            raise StreamClosedError("Read from closed stream")

    def _fail(self, error: BaseException) -> None:
        self._chunk = b""
        self._offset = 0
        if self._error is None:
            self._error = error
            _logger.debug(
                "Decrypting stream failed: chunk=%d error_type=%s",
                self._decoder.sequence,
                type(error).__name__,
            )

    def _next_chunk(self) -> bytes | None:
        """
        Read and verify exactly one chunk (the header too, before chunk 0).

        Returns None when a non-blocking source has nothing to read yet. Bytes
        already read stay buffered in the decoder for the next call.
        """
        while True:
            data = self._source.read(self._decoder.bytes_needed)
            if data is None:
                return None
            if not data:
                self._decoder.finish()
                return b""
            plaintexts = self._decoder.feed(data)
            if plaintexts:
                if self._decoder.done:
                    _logger.debug(
                        "Decrypting stream finished: chunks=%d plaintext_bytes=%d",
                        self._decoder.sequence,
                        self._plaintext_bytes + sum(len(p) for p in plaintexts),
                    )
                return b"".join(plaintexts)
