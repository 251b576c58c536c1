"""Compose byte output from small write chunks and run them against any sink."""

from .chunks import (
    byte,
    byte_slice,
    concat,
    file,
    join,
    nop,
    read_closer,
    reader,
    repeat,
    repeat_n,
    rune,
    string,
)
from .command import CommandError, command
from .files import append_to_file, atomic_write_file, write_file, write_temp_file
from .remote import url
from .sinks import (
    BufferedSink,
    buffered_closer_stream,
    buffered_stream,
    bytes_stream,
    tcp_stream,
    text_stream,
    write_closer_stream,
    writer_stream,
)
from .stream import Chunk, ChunkError, Stream, Writer

__all__ = [
    "BufferedSink",
    "Chunk",
    "ChunkError",
    "CommandError",
    "Stream",
    "Writer",
    "append_to_file",
    "atomic_write_file",
    "buffered_closer_stream",
    "buffered_stream",
    "byte",
    "byte_slice",
    "bytes_stream",
    "command",
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
    "tcp_stream",
    "text_stream",
    "url",
    "write_closer_stream",
    "write_file",
    "write_temp_file",
    "writer_stream",
]
