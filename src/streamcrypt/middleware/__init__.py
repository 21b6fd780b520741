"""
Stream middleware.

A middleware wraps a byte sink into a transforming sink and a byte source
into the reverse-transforming source. Stages compose by nesting one stream
inside another, which is what Pipeline does.

Usage:
    from streamcrypt.middleware import Pipeline
    from streamcrypt.middleware.encryption import EncryptionMiddleware

    pipeline = Pipeline(compression_stage, EncryptionMiddleware(key=key))
    with pipeline.writer(open("data.bin", "wb")) as w:
        w.write(payload)
"""

from __future__ import annotations

import io
import types
from typing import Protocol, runtime_checkable

from typing_extensions import Buffer, Self

from streamcrypt.exceptions import ConfigurationError, ShortWriteError, StreamClosedError
from streamcrypt.streaming import BinarySink, BinarySource

__all__ = [
    "Middleware",
    "Pipeline",
]


@runtime_checkable
class Middleware(Protocol):
    """Wraps sinks and sources to transform data on its way through."""

    def writer(self, sink: BinarySink) -> BinarySink:
        """Wrap ``sink``; closing the returned writer finalizes the transform."""
        ...

    def reader(self, source: BinarySource) -> BinarySource:
        """Wrap ``source`` to reverse what writer() applied."""
        ...


class Pipeline:
    """
    Ordered composition of middlewares.

    Data written flows through the stages in the order given, so
    ``Pipeline(compress, encrypt)`` compresses then encrypts. Reading
    reverses it.
    """

    def __init__(self, *stages: Middleware) -> None:
        if not stages:
            raise ConfigurationError("Pipeline needs at least one stage")
        for stage in stages:
            if not isinstance(stage, Middleware):
                raise ConfigurationError(f"Not a middleware: {type(stage).__name__}")
        self.stages = stages

    def writer(self, sink: BinarySink) -> _PipelineWriter:
        writers: list[BinarySink] = []
        inner = sink
        for stage in reversed(self.stages):
            inner = stage.writer(inner)
            writers.append(inner)
        writers.reverse()
        return _PipelineWriter(writers)

    def reader(self, source: BinarySource) -> BinarySource:
        inner = source
        for stage in reversed(self.stages):
            inner = stage.reader(inner)
        return inner


class _PipelineWriter(io.RawIOBase):
    """Writes into the outermost stage, closes stages outermost first."""

    def __init__(self, writers: list[BinarySink]) -> None:
        super().__init__()
        self._writers = writers

    def writable(self) -> bool:
        return True

    def write(self, b: Buffer) -> int:
        if self.closed:
            raise StreamClosedError("Write to closed pipeline")
        view = memoryview(b).cast("B")
        offset = 0
        while offset < len(view):
            written = self._writers[0].write(view[offset:])
            if written is None:
                # Stages returning None are taken to have consumed the whole buffer.
                break
            if written <= 0:
                raise ShortWriteError(f"Pipeline stage accepted no bytes ({len(view) - offset} pending)")
            offset += written
        return len(view)

    def close(self) -> None:
        if self.closed:
            return
        try:
            for writer in self._writers:
                writer.close()  # type: ignore[attr-defined]
        finally:
            super().close()

    def abort(self) -> None:
        """Abort every stage that supports it, then close the rest."""
        if self.closed:
            return
        try:
            for writer in self._writers:
                abort = getattr(writer, "abort", None)
                if abort is not None:
                    abort()
                else:
                    writer.close()  # type: ignore[attr-defined]
        finally:
            super().close()

    def __del__(self) -> None:
        # Dropped without close(): leave the stream unterminated.
        if not self.closed and hasattr(self, "_writers"):
            self.abort()
        super().__del__()

    def __enter__(self) -> Self:
        if self.closed:
            raise StreamClosedError("Pipeline writer is closed")
        return self

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
