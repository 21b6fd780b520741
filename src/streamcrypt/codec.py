"""
Chunked stream codec.

Sans-IO encoder and decoder for the streamcrypt wire format, shared by the
blocking streams (streamcrypt.streaming) and the asyncio streams
(streamcrypt.aio).

Wire format:
    stream = header || chunk* || final_chunk
    header = version(1B) || cipher_id(1B) || chunk_size(4B BE) || salt(8B)
    chunk  = flag(1B) || length(4B BE) || ciphertext || tag(16B)

Every chunk is sealed with:
    nonce = salt(8B) || sequence_be32(4B)
    aad   = header || sequence_be32(4B) || flag(1B)

The header in the associated data binds the cipher and chunk size into every
tag. The sequence and flag bind ordering and termination, so reordered,
dropped or truncated chunks fail authentication or framing.
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass

from streamcrypt.cipher import AEADCipher
from streamcrypt.constants import (
    CHUNK_HEADER_SIZE,
    CHUNK_LENGTH_SIZE,
    CHUNK_SIZE,
    FORMAT_VERSION,
    HEADER_SIZE,
    MAX_CHUNK_SIZE,
    MAX_SEQUENCE,
    MIN_CHUNK_SIZE,
    SALT_SIZE,
    SEQUENCE_SIZE,
    TAG_SIZE,
    ChunkFlag,
    Cipher,
)
from streamcrypt.exceptions import (
    CipherMismatchError,
    ConfigurationError,
    FramingError,
    SequenceOverflowError,
    StreamClosedError,
    StreamFailedError,
    TruncatedStreamError,
)

__all__ = [
    "StreamDecoder",
    "StreamEncoder",
    "StreamHeader",
    "chunk_aad",
    "chunk_nonce",
    "encoded_size",
    "validate_chunk_size",
]


def validate_chunk_size(chunk_size: int) -> int:
    """
    Check a configured chunk size.

    Raises:
        ConfigurationError: If chunk_size is not an int in range
    """
    if isinstance(chunk_size, bool) or not isinstance(chunk_size, int):
        raise ConfigurationError(f"Chunk size must be an int, got {type(chunk_size).__name__}")
    if not MIN_CHUNK_SIZE <= chunk_size <= MAX_CHUNK_SIZE:
        raise ConfigurationError(f"Chunk size must be between {MIN_CHUNK_SIZE} and {MAX_CHUNK_SIZE}, got {chunk_size}")
    return chunk_size


def chunk_nonce(salt: bytes, sequence: int) -> bytes:
    """
    Compute the 12-byte nonce for a chunk.

    nonce = salt (8B) || sequence_be32 (4B)
    """
    return salt + sequence.to_bytes(SEQUENCE_SIZE, "big")


def chunk_aad(header: bytes, sequence: int, flag: ChunkFlag) -> bytes:
    """
    Compute the associated data for a chunk.

    aad = header || sequence_be32 (4B) || flag (1B)
    """
    return header + sequence.to_bytes(SEQUENCE_SIZE, "big") + bytes([flag])


def encoded_size(plaintext_size: int, chunk_size: int = CHUNK_SIZE) -> int:
    """
    Size of the stream produced by a writer for ``plaintext_size`` bytes.

    The writer emits every full chunk as it fills, then a final chunk
    holding the remainder (empty when the plaintext is a multiple of
    chunk_size).
    """
    chunks = plaintext_size // chunk_size + 1
    return HEADER_SIZE + chunks * (CHUNK_HEADER_SIZE + TAG_SIZE) + plaintext_size


@dataclass(frozen=True)
class StreamHeader:
    """Parsed stream header."""

    version: int
    cipher_id: int
    chunk_size: int
    salt: bytes

    @classmethod
    def create(cls, cipher_id: Cipher, chunk_size: int = CHUNK_SIZE) -> StreamHeader:
        """Create a header with a fresh random salt."""
        return cls(
            version=FORMAT_VERSION,
            cipher_id=cipher_id,
            chunk_size=chunk_size,
            salt=secrets.token_bytes(SALT_SIZE),
        )

    def encode(self) -> bytes:
        """Encode to the 14-byte wire header."""
        return (
            self.version.to_bytes(1, "big")
            + self.cipher_id.to_bytes(1, "big")
            + self.chunk_size.to_bytes(4, "big")
            + self.salt
        )

    @classmethod
    def parse(cls, data: bytes) -> StreamHeader:
        """
        Parse a header from bytes.

        Args:
            data: At least 14 bytes starting with the header

        Raises:
            TruncatedStreamError: If data is too short
        """
        if len(data) < HEADER_SIZE:
            raise TruncatedStreamError(f"Stream header too short: {len(data)} bytes (minimum {HEADER_SIZE})")
        return cls(
            version=data[0],
            cipher_id=data[1],
            chunk_size=int.from_bytes(data[2:6], "big"),
            salt=bytes(data[6:HEADER_SIZE]),
        )

    def validate(self, expected_cipher: Cipher) -> None:
        """
        Check the header against what this reader can decode.

        Raises:
            FramingError: If version or chunk size is unsupported, or the cipher id is unknown
            CipherMismatchError: If the stream uses a different cipher
        """
        if self.version != FORMAT_VERSION:
            raise FramingError(f"Unsupported stream version: {self.version}")

        if not MIN_CHUNK_SIZE <= self.chunk_size <= MAX_CHUNK_SIZE:
            raise FramingError(f"Invalid chunk size in stream header: {self.chunk_size}")

        if self.cipher_id not in {c.value for c in Cipher}:
            raise FramingError(f"Unknown cipher in stream header: 0x{self.cipher_id:02x}")

        if self.cipher_id != expected_cipher:
            raise CipherMismatchError(expected_cipher, self.cipher_id)


class StreamEncoder:
    """
    Chunk encoder with counter-based nonces.

    Produces the header followed by sealed chunk frames. The caller decides
    chunk boundaries, the encoder enforces them: every non-final chunk must
    hold exactly chunk_size bytes, and nothing may follow the final chunk.

    Not thread-safe: the sequence counter is mutated on every chunk.
    """

    __slots__ = ("_cipher", "_header", "_header_bytes", "_header_sent", "_sequence", "_finished")

    def __init__(self, cipher: AEADCipher, chunk_size: int = CHUNK_SIZE, salt: bytes | None = None) -> None:
        """
        Args:
            cipher: AEAD primitive bound to the stream key
            chunk_size: Plaintext bytes per non-final chunk
            salt: 8-byte nonce prefix (random if omitted, override only in tests)
        """
        validate_chunk_size(chunk_size)
        if salt is None:
            header = StreamHeader.create(cipher.cipher_id, chunk_size)
        else:
            if len(salt) != SALT_SIZE:
                raise ConfigurationError(f"Salt must be exactly {SALT_SIZE} bytes, got {len(salt)}")
            header = StreamHeader(FORMAT_VERSION, cipher.cipher_id, chunk_size, bytes(salt))

        self._cipher = cipher
        self._header = header
        self._header_bytes = header.encode()
        self._header_sent = False
        self._sequence = 0
        self._finished = False

    @property
    def header(self) -> StreamHeader:
        return self._header

    @property
    def chunk_size(self) -> int:
        return self._header.chunk_size

    @property
    def sequence(self) -> int:
        """Sequence index of the next chunk."""
        return self._sequence

    @property
    def finished(self) -> bool:
        """True once the final chunk has been encoded."""
        return self._finished

    def encode_chunk(self, plaintext: bytes | bytearray | memoryview, *, final: bool = False) -> bytes:
        """
        Seal one chunk and frame it for the wire.

        The stream header is prepended to chunk 0.

        Args:
            plaintext: Exactly chunk_size bytes, or up to chunk_size for the final chunk
            final: Mark this chunk as the last one of the stream

        Returns:
            Wire bytes for this chunk (with the header before chunk 0)

        Raises:
            StreamClosedError: If the final chunk was already encoded
            SequenceOverflowError: If the chunk counter is exhausted
            ValueError: If plaintext violates the chunk length rules
        """
        if self._finished:
            raise StreamClosedError("Stream already finalized")

        size = len(plaintext)
        chunk_size = self._header.chunk_size
        if size > chunk_size:
            raise ValueError(f"Chunk of {size} bytes exceeds chunk size {chunk_size}")
        if not final and size != chunk_size:
            raise ValueError(f"Non-final chunk must be exactly {chunk_size} bytes, got {size}")

        if self._sequence > MAX_SEQUENCE:
            raise SequenceOverflowError("Stream chunk counter exhausted")

        flag = ChunkFlag.FINAL if final else ChunkFlag.DATA
        nonce = chunk_nonce(self._header.salt, self._sequence)
        aad = chunk_aad(self._header_bytes, self._sequence, flag)
        sealed = self._cipher.seal(nonce, aad, bytes(plaintext))

        frame = bytes([flag]) + len(sealed).to_bytes(CHUNK_LENGTH_SIZE, "big") + sealed
        if not self._header_sent:
            frame = self._header_bytes + frame
            self._header_sent = True

        self._sequence += 1
        if final:
            self._finished = True
        return frame


class StreamDecoder:
    """
    Incremental chunk decoder.

    Feed wire bytes in any split; complete chunks are verified and their
    plaintext returned. ``bytes_needed`` reports how many more bytes finish
    the current unit, so a reader can pull exactly one chunk at a time
    without reading past the end of the stream.

    Any error is fatal: later calls raise StreamFailedError.
    """

    _STATE_HEADER = 0
    _STATE_CHUNK_HEADER = 1
    _STATE_CHUNK_BODY = 2
    _STATE_DONE = 3

    __slots__ = (
        "_cipher",
        "_buffer",
        "_state",
        "_header",
        "_header_bytes",
        "_sequence",
        "_flag",
        "_body_len",
        "_error",
    )

    def __init__(self, cipher: AEADCipher) -> None:
        self._cipher = cipher
        self._buffer = bytearray()
        self._state = self._STATE_HEADER
        self._header: StreamHeader | None = None
        self._header_bytes = b""
        self._sequence = 0
        self._flag = ChunkFlag.DATA
        self._body_len = 0
        self._error: BaseException | None = None

    @property
    def header(self) -> StreamHeader | None:
        """Stream header, once parsed."""
        return self._header

    @property
    def sequence(self) -> int:
        """Sequence index of the next expected chunk."""
        return self._sequence

    @property
    def done(self) -> bool:
        """True once the final chunk has been verified."""
        return self._state == self._STATE_DONE

    @property
    def failed(self) -> bool:
        return self._error is not None

    @property
    def bytes_needed(self) -> int:
        """Bytes still required to complete the current header, frame header or chunk body."""
        if self._state == self._STATE_HEADER:
            target = HEADER_SIZE
        elif self._state == self._STATE_CHUNK_HEADER:
            target = CHUNK_HEADER_SIZE
        elif self._state == self._STATE_CHUNK_BODY:
            target = self._body_len
        else:
            return 0
        return max(target - len(self._buffer), 0)

    def feed(self, data: bytes | bytearray | memoryview) -> list[bytes]:
        """
        Feed wire bytes, return plaintext of every chunk they complete.

        Args:
            data: Next bytes of the encrypted stream

        Returns:
            Plaintexts in stream order (the final chunk may contribute b"")

        Raises:
            AuthenticationError: If a chunk fails verification
            FramingError: If the stream is malformed
            StreamFailedError: If the decoder already failed
        """
        self._check_usable()
        try:
            return self._feed(data)
        except BaseException as e:
            self._error = e
            raise

    def finish(self) -> None:
        """
        Signal end of input.

        Raises:
            TruncatedStreamError: If the final chunk was not seen
            StreamFailedError: If the decoder already failed
        """
        self._check_usable()
        if self._state == self._STATE_DONE:
            return
        if self._state == self._STATE_HEADER:
            err = TruncatedStreamError("Stream ended before header was complete")
        else:
            err = TruncatedStreamError(f"Stream ended before final chunk (after {self._sequence} chunks)")
        self._error = err
        raise err

    def _check_usable(self) -> None:
        if self._error is not None:
            raise StreamFailedError("Decoder previously failed") from self._error

    def _feed(self, data: bytes | bytearray | memoryview) -> list[bytes]:
        if self._state == self._STATE_DONE:
            if data:
                raise FramingError("Unexpected data after final chunk")
            return []

        self._buffer.extend(data)
        plaintexts: list[bytes] = []

        while self.bytes_needed == 0 and self._state != self._STATE_DONE:
            if self._state == self._STATE_HEADER:
                self._parse_header()
            elif self._state == self._STATE_CHUNK_HEADER:
                self._parse_chunk_header()
            else:
                plaintexts.append(self._open_chunk())

        if self._state == self._STATE_DONE and self._buffer:
            raise FramingError("Unexpected data after final chunk")
        return plaintexts

    def _take(self, size: int) -> bytes:
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def _parse_header(self) -> None:
        raw = self._take(HEADER_SIZE)
        header = StreamHeader.parse(raw)
        header.validate(self._cipher.cipher_id)
        self._header = header
        self._header_bytes = raw
        self._state = self._STATE_CHUNK_HEADER

    def _parse_chunk_header(self) -> None:
        assert self._header is not None
        raw = self._take(CHUNK_HEADER_SIZE)
        try:
            flag = ChunkFlag(raw[0])
        except ValueError as e:
            raise FramingError(f"Invalid chunk flag: 0x{raw[0]:02x}") from e

        length = int.from_bytes(raw[1:], "big")
        max_length = self._header.chunk_size + TAG_SIZE
        if length < TAG_SIZE:
            raise FramingError(f"Chunk too short: {length} bytes (minimum {TAG_SIZE})")
        if length > max_length:
            raise FramingError(f"Chunk too long: {length} bytes (maximum {max_length})")
        if flag == ChunkFlag.DATA and length != max_length:
            raise FramingError(f"Non-final chunk must be {max_length} bytes, got {length}")

        if self._sequence > MAX_SEQUENCE:
            raise SequenceOverflowError("Stream chunk counter exhausted")

        self._flag = flag
        self._body_len = length
        self._state = self._STATE_CHUNK_BODY

    def _open_chunk(self) -> bytes:
        assert self._header is not None
        sealed = self._take(self._body_len)
        nonce = chunk_nonce(self._header.salt, self._sequence)
        aad = chunk_aad(self._header_bytes, self._sequence, self._flag)
        plaintext = self._cipher.open(nonce, aad, sealed)

        self._sequence += 1
        if self._flag == ChunkFlag.FINAL:
            self._state = self._STATE_DONE
        else:
            self._state = self._STATE_CHUNK_HEADER
        return plaintext
