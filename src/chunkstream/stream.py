from __future__ import annotations

from typing import Any, Callable, Iterable, Optional, Union

from .log import get_logger

"""
Execution engine
- Writer: capability-normalized wrapper around a byte destination
- Writer.write_chunks(chunks): run chunks in order, stop at the first failure
- Stream.write(*chunks): one run plus the flush/close lifecycle

A chunk is any callable taking a Writer and returning the number of bytes
it wrote. Failures are raised; the engine tags them with the chunk ordinal.
"""

_LOG = get_logger(__name__)

Chunk = Callable[["Writer"], int]
Rune = Union[str, int]


class ChunkError(Exception):
    """A chunk failed; carries its ordinal and the bytes written before it."""

    def __init__(self, index: int, cause: BaseException, written: int = 0) -> None:
        super().__init__(index, cause, written)
        self.index = index
        self.cause = cause
        self.written = written

    def __str__(self) -> str:
        # chunks are counted from 0
        return f"writing stream chunk {self.index}: {self.cause}"


class Writer:
    """
    Uniform write surface over a destination:

        write(bytes) -> int
        write_byte(int) -> None
        write_rune(str | int) -> int
        write_string(str) -> int
        read_from(readable) -> int
        write_chunks(chunks) -> int

    The five write functions are required; flush and close are optional and
    only driven by Stream.write().
    """

    __slots__ = (
        "_write_byte_slice",
        "_write_byte",
        "_write_rune",
        "_write_string",
        "_read_from",
        "flush",
        "close",
    )

    def __init__(
        self,
        write_byte_slice: Callable[[bytes], int],
        write_byte: Callable[[int], Any],
        write_rune: Callable[[Rune], int],
        write_string: Callable[[str], int],
        read_from: Callable[[Any], int],
        flush: Optional[Callable[[], Any]] = None,
        close: Optional[Callable[[], Any]] = None,
    ) -> None:
        required = {
            "write_byte_slice": write_byte_slice,
            "write_byte": write_byte,
            "write_rune": write_rune,
            "write_string": write_string,
            "read_from": read_from,
        }
        missing = [name for name, fn in required.items() if fn is None]
        if missing:
            raise TypeError(f"Writer is missing required functions: {', '.join(missing)}")

        self._write_byte_slice = write_byte_slice
        self._write_byte = write_byte
        self._write_rune = write_rune
        self._write_string = write_string
        self._read_from = read_from
        self.flush = flush
        self.close = close

    def write(self, buf: bytes) -> int:
        if not buf:
            return 0
        return self._write_byte_slice(buf)

    def write_byte(self, b: int) -> None:
        self._write_byte(b)

    def write_rune(self, ch: Rune) -> int:
        return self._write_rune(ch)

    def write_string(self, s: str) -> int:
        if not s:
            return 0
        return self._write_string(s)

    def read_from(self, src: Any) -> int:
        return self._read_from(src)

    # Useful when implementing a chunk composed from other chunks.
    def write_chunks(self, chunks: Iterable[Chunk]) -> int:
        n = 0
        for i, fn in enumerate(chunks):
            try:
                m = fn(self)
            except Exception as e:
                _LOG.debug("chunk %d failed after %d bytes: %s", i, n, e)
                raise ChunkError(i, e, n) from e
            n += m
        return n

    # Copy the source, then close it whatever the outcome of the copy.
    def read_from_and_close(self, src: Any) -> int:
        try:
            n = self.read_from(src)
        except BaseException:
            try:
                src.close()
            except Exception as e:
                _LOG.debug("closing source after failed copy: %s", e)
            raise
        src.close()
        return n


class Stream:
    """Lightweight handle around a Writer; write() does the actual writing."""

    __slots__ = ("writer",)

    def __init__(self, writer: Writer) -> None:
        self.writer = writer

    def write(self, *chunks: Chunk) -> int:
        """
        Run the chunks, flush on success, and always close the destination
        if the writer knows how to. A close failure is only raised when
        nothing failed before it.
        """
        w = self.writer
        try:
            n = w.write_chunks(chunks)
            if w.flush is not None:
                w.flush()
        except BaseException:
            if w.close is not None:
                try:
                    w.close()
                except Exception as e:
                    _LOG.warning("closing stream after failed write: %s", e)
            raise

        if w.close is not None:
            w.close()
        return n


__all__ = ["Chunk", "ChunkError", "Rune", "Stream", "Writer"]
