from __future__ import annotations

import sys
from typing import List, Optional

from . import files as _files
from . import sinks as _sinks
from .chunks import file, join, repeat_n, string
from .command import command
from .config import AppConfig, Part, WriteSettings
from .log import get_logger
from .remote import url
from .stream import Chunk

"""
Emitter
- Build one chunk from the recipe parts, joined by the separator
- Write it to every configured output
- Errors in one output do not block the others; they are logged to STDERR
"""

_LOG = get_logger(__name__)


# This function turns one recipe part into a chunk.
def build_part(part: Part, settings: WriteSettings) -> Chunk:
    if part.text is not None:
        c = string(part.text)
    elif part.file is not None:
        c = file(part.file)
    elif part.command is not None:
        c = command(*part.command, stderr_limit=settings.stderr_limit)
    else:
        c = url(part.url, timeout=settings.http_timeout, chunk_size=settings.copy_chunk_size)
    if part.repeat != 1:
        c = repeat_n(part.repeat, c)
    return c


# This function builds the chunk for the whole recipe.
def build_chunk(cfg: AppConfig) -> Chunk:
    return join(cfg.separator, *(build_part(p, cfg.settings) for p in cfg.parts))


# This function writes the chunk to a single output and returns the byte count.
def write_output(out: str, chunk: Chunk, settings: WriteSettings) -> int:
    if out == "stdout":  # stdout stays open after the write
        sys.stdout.flush()
        stream = _sinks.writer_stream(sys.stdout.buffer, chunk_size=settings.copy_chunk_size)
        return stream.write(chunk)
    if out.startswith("file:"):
        path = out.split(":", 1)[1]
        return _files.write_file(
            path, chunk, perm=settings.perm, buffer_size=settings.buffer_size
        )
    if out.startswith("append:"):
        path = out.split(":", 1)[1]
        return _files.append_to_file(
            path, chunk, perm=settings.perm, buffer_size=settings.buffer_size
        )
    if out.startswith("atomic:"):
        path = out.split(":", 1)[1]
        return _files.atomic_write_file(
            path,
            chunk,
            perm=settings.perm,
            prefix=settings.temp_prefix,
            buffer_size=settings.buffer_size,
        )
    if out.startswith("tcp:"):
        _, host, port_str = out.split(":", 2)
        stream = _sinks.tcp_stream(host, int(port_str), buffer_size=settings.buffer_size)
        return stream.write(chunk)
    # validate_output() rejects anything else before we get here
    raise ValueError(f"unsupported output: {out}")


# This function writes the recipe to each output in turn. The result has one entry
# per output, in order: the byte count, or None where that output failed.
def emit(cfg: AppConfig, outputs: Optional[List[str]] = None) -> List[Optional[int]]:
    chunk = build_chunk(cfg)
    written: List[Optional[int]] = []
    for out in outputs or cfg.outputs:
        try:
            n = write_output(out, chunk, cfg.settings)
        except Exception as e:  # keep going with the other outputs
            _LOG.error("output failure for %s: %s", out, e)
            written.append(None)
            continue
        _LOG.debug("wrote %d bytes to %s", n, out)
        written.append(n)
    return written


__all__ = ["build_chunk", "build_part", "emit", "write_output"]
