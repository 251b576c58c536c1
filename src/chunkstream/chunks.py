from __future__ import annotations

from typing import Any, Callable

from .stream import Chunk, Rune, Writer
from .sinks import encode_rune

"""
Chunk constructors and combinators
- Literals: byte_slice, string, byte, rune (empty literals are the no-op chunk)
- Bulk copy: reader, read_closer, file
- Combinators: concat, join, repeat, repeat_n

Subprocess output lives in command.py, HTTP bodies in remote.py.
"""

Step = Callable[[int, Writer], int]


# This is the no-op chunk: writes nothing, never fails.
def nop(_w: Writer) -> int:
    return 0


# This function constructs a chunk that writes the given bytes.
def byte_slice(val: bytes) -> Chunk:
    if not val:
        return nop
    val = bytes(val)

    def chunk(w: Writer) -> int:
        return w.write(val)

    return chunk


# This function constructs a chunk that writes the given string as UTF-8.
def string(val: str) -> Chunk:
    if not val:
        return nop

    def chunk(w: Writer) -> int:
        return w.write_string(val)

    return chunk


# This function constructs a chunk that writes a single byte.
def byte(val: int) -> Chunk:
    if not 0 <= val <= 255:
        raise ValueError(f"byte value must be in 0..255, got {val}")

    def chunk(w: Writer) -> int:
        w.write_byte(val)
        return 1

    return chunk


# This function constructs a chunk that writes a single code point.
def rune(val: Rune) -> Chunk:
    encode_rune(val)  # reject multi-character strings up front

    def chunk(w: Writer) -> int:
        return w.write_rune(val)

    return chunk


# This function constructs a chunk that copies everything from a readable source.
def reader(src: Any) -> Chunk:
    def chunk(w: Writer) -> int:
        return w.read_from(src)

    return chunk


# This function is reader() plus closing the source once the copy is over.
def read_closer(src: Any) -> Chunk:
    def chunk(w: Writer) -> int:
        return w.read_from_and_close(src)

    return chunk


# This function constructs a chunk that copies the contents of a file on disk.
def file(pathname: str) -> Chunk:
    def chunk(w: Writer) -> int:
        return w.read_from_and_close(open(pathname, "rb"))

    return chunk


# This function constructs a sequential composition of the given chunks.
def concat(*chunks: Chunk) -> Chunk:
    items = tuple(chunks)

    def chunk(w: Writer) -> int:
        return w.write_chunks(items)

    return chunk


# This function constructs a chunk that writes the chunks with a separator between them.
def join(sep: str, *chunks: Chunk) -> Chunk:
    if not chunks:
        return nop
    if len(chunks) == 1:
        return chunks[0]
    if not sep:
        return concat(*chunks)

    sc = string(sep)
    items = [chunks[0]]
    for c in chunks[1:]:
        items += [sc, c]
    return concat(*items)


class Repeat:
    """
    Calls step(i, writer) for i = 0, 1, 2, ... until it raises. StopIteration
    ends the loop normally (its value, if any, is counted as bytes written);
    any other exception propagates to the enclosing run.
    """

    def __init__(self, step: Step) -> None:
        self.step = step

    def __call__(self, w: Writer) -> int:
        n = 0
        i = 0
        while True:
            try:
                m = self.step(i, w)
            except StopIteration as stop:
                return n + (stop.value or 0)
            n += m
            i += 1


class _RepeatStep:
    def __init__(self, num: int, chunk: Chunk) -> None:
        self.num = num
        self.chunk = chunk

    def __call__(self, i: int, w: Writer) -> int:
        if i < self.num:
            return self.chunk(w)
        raise StopIteration


# This function constructs a repetition driven by a step function (see Repeat).
def repeat(step: Step) -> Chunk:
    return Repeat(step)


# This function constructs a chunk that runs the given chunk num times.
def repeat_n(num: int, chunk: Chunk) -> Chunk:
    if num <= 0:
        return nop
    return Repeat(_RepeatStep(num, chunk))


__all__ = [
    "Repeat",
    "Step",
    "byte",
    "byte_slice",
    "concat",
    "file",
    "join",
    "nop",
    "read_closer",
    "reader",
    "repeat",
    "repeat_n",
    "rune",
    "string",
]
