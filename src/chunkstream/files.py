from __future__ import annotations

import os
import tempfile
from typing import Optional, Tuple

from .log import get_logger
from .sinks import DEFAULT_BUFFER_SIZE, buffered_closer_stream
from .stream import Chunk

"""
Durable writes to disk files
- write_file: create or truncate
- append_to_file: create or append
- atomic_write_file: temporary file in the target directory, renamed over
  the target only when everything succeeded
- write_temp_file: temporary file in the scratch directory, removed on failure

Temporaries are removed on every failure path, including KeyboardInterrupt
and other BaseExceptions, which are re-raised unchanged.
"""

_LOG = get_logger(__name__)

DEFAULT_PERM = 0o644
DEFAULT_TEMP_PREFIX = "tmp-"
_OWNER_RW = 0o600
_BINARY = getattr(os, "O_BINARY", 0)  # Windows only


def _open_for_write(pathname: str, flags: int, perm: int):
    fd = os.open(pathname, flags | os.O_WRONLY | os.O_CREAT | _BINARY, perm | _OWNER_RW)
    return os.fdopen(fd, "wb", buffering=0)


# This function removes a temporary file without hiding the error that led here.
def _remove_quietly(pathname: str) -> None:
    try:
        os.remove(pathname)
    except OSError as e:
        _LOG.warning("failed to remove temporary file %s: %s", pathname, e)


def _write_fd(fd: int, chunks: Tuple[Chunk, ...], buffer_size: int, sync: bool = False) -> int:
    fileobj = os.fdopen(fd, "wb", buffering=0)
    s = buffered_closer_stream(fileobj, buffer_size)
    if sync:
        flush = s.writer.flush

        # data must be on disk before the file is closed and renamed
        def flush_and_sync() -> None:
            flush()
            os.fsync(fileobj.fileno())

        s.writer.flush = flush_and_sync
    return s.write(*chunks)


# This function reads the process umask (there is no way to query it without setting it).
def _current_umask() -> int:
    mask = os.umask(0)
    os.umask(mask)
    return mask


# This function writes the chunks to a file, replacing any existing content.
def write_file(
    pathname: str,
    *chunks: Chunk,
    perm: int = DEFAULT_PERM,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> int:
    f = _open_for_write(pathname, os.O_TRUNC, perm)
    return buffered_closer_stream(f, buffer_size).write(*chunks)


# This function appends the chunks to a file, creating it if needed.
def append_to_file(
    pathname: str,
    *chunks: Chunk,
    perm: int = DEFAULT_PERM,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> int:
    f = _open_for_write(pathname, os.O_APPEND, perm)
    return buffered_closer_stream(f, buffer_size).write(*chunks)


def atomic_write_file(
    pathname: str,
    *chunks: Chunk,
    perm: int = DEFAULT_PERM,
    prefix: str = DEFAULT_TEMP_PREFIX,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> int:
    """
    Write the chunks to a temporary file next to `pathname`, then rename it
    over the target. The target is left unmodified on any failure, and the
    temporary is removed from the disk.
    """
    directory = os.path.dirname(os.path.abspath(pathname))
    fd, temp = tempfile.mkstemp(dir=directory, prefix=prefix)
    try:
        n = _write_fd(fd, chunks, buffer_size, sync=True)
        os.chmod(temp, (perm | _OWNER_RW) & ~_current_umask())
        os.replace(temp, pathname)
    except BaseException:
        _remove_quietly(temp)
        raise
    return n


def write_temp_file(
    *chunks: Chunk,
    prefix: str = DEFAULT_TEMP_PREFIX,
    dir: Optional[str] = None,
    buffer_size: int = DEFAULT_BUFFER_SIZE,
) -> Tuple[str, int]:
    """
    Write the chunks to a new temporary file and return (path, bytes written).
    The file lives in `dir`, or the default temporary directory. On failure
    it is removed and the error propagates.
    """
    fd, name = tempfile.mkstemp(dir=dir, prefix=prefix)
    try:
        n = _write_fd(fd, chunks, buffer_size)
    except BaseException:
        _remove_quietly(name)
        raise
    return name, n


__all__ = [
    "DEFAULT_PERM",
    "DEFAULT_TEMP_PREFIX",
    "append_to_file",
    "atomic_write_file",
    "write_file",
    "write_temp_file",
]
