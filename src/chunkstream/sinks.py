from __future__ import annotations

import codecs
import socket
from typing import Any, Callable, Final, Optional

from .stream import Rune, Stream, Writer

"""
Sink adapters:
  - writer_stream(dest) / write_closer_stream(dest)
  - buffered_stream(dest) / buffered_closer_stream(dest)
  - bytes_stream(bytearray), text_stream(text writer)
  - tcp_stream(host, port)
Native capabilities of the destination are preferred; the rest are synthesized.
No logging here; the engine and callers report failures.
"""

DEFAULT_BUFFER_SIZE: Final[int] = 4096
COPY_CHUNK_SIZE: Final[int] = 32 * 1024


# This function encodes a code point (1-char string or int) as UTF-8.
def encode_rune(ch: Rune) -> bytes:
    if isinstance(ch, int):
        ch = chr(ch)
    if len(ch) != 1:
        raise ValueError(f"expected a single code point, got {ch!r}")
    return ch.encode("utf-8")


# This function makes sure the whole buffer reaches a destination whose write may be short.
def _write_all(write: Callable[[bytes], Optional[int]], buf: bytes) -> int:
    view = memoryview(buf)
    total = len(view)
    done = 0
    while done < total:
        m = write(buf if done == 0 else view[done:])
        if m is None:  # text-style writers and sockets' sendall report nothing
            return total
        if m <= 0:
            raise OSError(f"short write: {done} of {total} bytes accepted")
        done += m
    return total


# This function copies a readable source into a byte-writing function, returning the byte count.
def copy_stream(
    write: Callable[[bytes], int], src: Any, chunk_size: int = COPY_CHUNK_SIZE
) -> int:
    n = 0
    while True:
        block = src.read(chunk_size)
        if not block:
            return n
        if isinstance(block, str):
            block = block.encode("utf-8")
        n += write(block)


# This function builds a Writer from whatever the destination natively supports.
def _probe(dest: Any, chunk_size: int = COPY_CHUNK_SIZE) -> Writer:
    def write_byte_slice(buf: bytes) -> int:
        return _write_all(dest.write, buf)

    # 1. write_byte
    write_byte = getattr(dest, "write_byte", None)
    if write_byte is None:

        def write_byte(b: int) -> None:
            write_byte_slice(bytes((b,)))

    # 2. write_rune
    write_rune = getattr(dest, "write_rune", None)
    if write_rune is None:

        def write_rune(ch: Rune) -> int:
            return write_byte_slice(encode_rune(ch))

    # 3. write_string
    write_string = getattr(dest, "write_string", None)
    if write_string is None:

        def write_string(s: str) -> int:
            return write_byte_slice(s.encode("utf-8"))

    # 4. read_from
    read_from = getattr(dest, "read_from", None)
    if read_from is None:

        def read_from(src: Any) -> int:
            return copy_stream(write_byte_slice, src, chunk_size)

    # 5. flush
    flush = getattr(dest, "flush", None)

    return Writer(write_byte_slice, write_byte, write_rune, write_string, read_from, flush=flush)


class BufferedSink:
    """
    Buffering layer over any object with write(bytes). Data reaches the
    destination when the buffer fills up or on flush().
    """

    def __init__(self, dest: Any, size: int = DEFAULT_BUFFER_SIZE) -> None:
        if size <= 0:
            raise ValueError("buffer size must be positive")
        self._dest = dest
        self._size = size
        self._buf = bytearray()

    def buffered(self) -> int:
        return len(self._buf)

    def write(self, data: bytes) -> int:
        n = len(data)
        if not self._buf and n >= self._size:
            # large write with an empty buffer: skip the copy
            return _write_all(self._dest.write, data)
        self._buf += data
        if len(self._buf) >= self._size:
            self.flush()
        return n

    def write_byte(self, b: int) -> None:
        self._buf.append(b)
        if len(self._buf) >= self._size:
            self.flush()

    def write_rune(self, ch: Rune) -> int:
        return self.write(encode_rune(ch))

    def write_string(self, s: str) -> int:
        return self.write(s.encode("utf-8"))

    def read_from(self, src: Any) -> int:
        return copy_stream(self.write, src, self._size)

    def flush(self) -> None:
        if self._buf:
            data = bytes(self._buf)
            self._buf.clear()
            _write_all(self._dest.write, data)
        dest_flush = getattr(self._dest, "flush", None)
        if dest_flush is not None:
            dest_flush()


# This function constructs a stream from any object with write(bytes).
def writer_stream(dest: Any, *, chunk_size: int = COPY_CHUNK_SIZE) -> Stream:
    return Stream(_probe(dest, chunk_size))


# This function constructs a stream that also closes the destination when the write is over.
def write_closer_stream(dest: Any, *, chunk_size: int = COPY_CHUNK_SIZE) -> Stream:
    s = writer_stream(dest, chunk_size=chunk_size)
    s.writer.close = dest.close
    return s


# This function constructs a stream with a BufferedSink on top of the destination.
def buffered_stream(dest: Any, buffer_size: int = DEFAULT_BUFFER_SIZE) -> Stream:
    b = BufferedSink(dest, buffer_size)
    return Stream(
        Writer(
            b.write,
            b.write_byte,
            b.write_rune,
            b.write_string,
            b.read_from,
            flush=b.flush,
        )
    )


# This function is buffered_stream() plus closing the destination afterwards.
def buffered_closer_stream(dest: Any, buffer_size: int = DEFAULT_BUFFER_SIZE) -> Stream:
    s = buffered_stream(dest, buffer_size)
    s.writer.close = dest.close
    return s


# This function constructs a stream that accumulates bytes in memory.
def bytes_stream(buf: bytearray) -> Stream:
    def write_byte_slice(data: bytes) -> int:
        buf.extend(data)
        return len(data)

    def write_rune(ch: Rune) -> int:
        return write_byte_slice(encode_rune(ch))

    def write_string(s: str) -> int:
        return write_byte_slice(s.encode("utf-8"))

    return Stream(
        Writer(
            write_byte_slice,
            buf.append,
            write_rune,
            write_string,
            lambda src: copy_stream(write_byte_slice, src),
        )
    )


# This function constructs a stream over a text writer (io.StringIO, sys.stdout, ...).
def text_stream(buf: Any) -> Stream:
    """
    Byte input is decoded as UTF-8; counts are in encoded bytes. One
    incremental decoder spans all writes, so a multi-byte sequence may be
    split across chunks. Flush fails if a sequence is left unfinished.
    """
    decoder = codecs.getincrementaldecoder("utf-8")()
    buf_flush = getattr(buf, "flush", None)

    def write_byte_slice(data: bytes) -> int:
        text = decoder.decode(bytes(data))
        if text:
            buf.write(text)
        return len(data)

    def write_byte(b: int) -> None:
        write_byte_slice(bytes((b,)))

    def write_rune(ch: Rune) -> int:
        return write_byte_slice(encode_rune(ch))

    def write_string(s: str) -> int:
        # through the decoder too, to keep order behind any pending bytes
        return write_byte_slice(s.encode("utf-8"))

    def read_from(src: Any) -> int:
        return copy_stream(write_byte_slice, src)

    def flush() -> None:
        try:
            tail = decoder.decode(b"", final=True)
        finally:
            decoder.reset()
        if tail:
            buf.write(tail)
        if buf_flush is not None:
            buf_flush()

    return Stream(Writer(write_byte_slice, write_byte, write_rune, write_string, read_from, flush=flush))


class _SocketWriter:
    def __init__(self, sock: socket.socket) -> None:
        self._sock = sock

    def write(self, data: bytes) -> int:
        self._sock.sendall(data)
        return len(data)

    def close(self) -> None:
        self._sock.close()


# This function connects to host:port and returns a buffered stream that closes the connection.
def tcp_stream(
    host: str, port: int, *, timeout: float = 3.0, buffer_size: int = DEFAULT_BUFFER_SIZE
) -> Stream:
    sock = socket.create_connection((host, port), timeout=timeout)
    return buffered_closer_stream(_SocketWriter(sock), buffer_size)


__all__ = [
    "BufferedSink",
    "COPY_CHUNK_SIZE",
    "DEFAULT_BUFFER_SIZE",
    "buffered_closer_stream",
    "buffered_stream",
    "bytes_stream",
    "copy_stream",
    "encode_rune",
    "tcp_stream",
    "text_stream",
    "write_closer_stream",
    "writer_stream",
]
