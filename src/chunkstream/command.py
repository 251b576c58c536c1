from __future__ import annotations

import subprocess
import threading
from typing import IO, List, Optional, Sequence

from .stream import Chunk, Writer

"""
Subprocess output chunk
- command(name, *args): copy the program's STDOUT into the writer
- The first `stderr_limit` bytes of STDERR become the error text on a non-zero exit
- A copy failure closes the pipe, waits for the process, and wins over the exit status
- An optional threading.Event kills the process when set
"""

DEFAULT_STDERR_LIMIT = 2048
_CANCEL_POLL_SEC = 0.05


class CommandError(Exception):
    """The program exited with a non-zero status or was cancelled."""

    def __init__(self, message: str, *, returncode: Optional[int] = None, stderr: str = "") -> None:
        super().__init__(message)
        self.returncode = returncode
        self.stderr = stderr


# Keeps the first `limit` bytes of everything written to it, discarding the rest.
class _LimitedBuffer:
    def __init__(self, limit: int) -> None:
        self.limit = limit
        self.data = bytearray()

    def write(self, s: bytes) -> int:
        room = self.limit - len(self.data)
        if room > 0:
            self.data += s[:room]
        return len(s)

    def drain(self, pipe: IO[bytes]) -> None:
        with pipe:
            for block in iter(lambda: pipe.read(4096), b""):
                self.write(block)

    def text(self) -> str:
        # truncation may leave a broken UTF-8 sequence at the end
        data = bytes(self.data)
        for cut in range(4):
            try:
                s = data[: len(data) - cut].decode("utf-8")
            except UnicodeDecodeError:
                continue
            return s.strip()
        return data.decode("utf-8", "replace").strip()


def _exit_text(returncode: int) -> str:
    if returncode < 0:
        return f"signal {-returncode}"
    return f"exit status {returncode}"


class CommandChunk:
    """Chunk that runs a program and streams its standard output."""

    def __init__(
        self,
        args: Sequence[str],
        *,
        cancel: Optional[threading.Event] = None,
        stderr_limit: int = DEFAULT_STDERR_LIMIT,
    ) -> None:
        if not args:
            raise ValueError("command requires a program name")
        self.args: List[str] = list(args)
        self.cancel = cancel
        self.stderr_limit = stderr_limit

    @property
    def name(self) -> str:
        return self.args[0]

    def __repr__(self) -> str:
        return f"CommandChunk({self.args!r})"

    def __call__(self, w: Writer) -> int:
        stderr = _LimitedBuffer(self.stderr_limit)
        proc = subprocess.Popen(self.args, stdout=subprocess.PIPE, stderr=subprocess.PIPE)

        drain = threading.Thread(target=stderr.drain, args=(proc.stderr,), daemon=True)
        drain.start()

        done = threading.Event()
        killed = threading.Event()
        watcher: Optional[threading.Thread] = None
        if self.cancel is not None:
            watcher = threading.Thread(
                target=self._watch, args=(self.cancel, proc, done, killed), daemon=True
            )
            watcher.start()

        try:
            n = w.read_from(proc.stdout)
        except BaseException:
            # the failure may come from the destination: closing STDOUT makes the
            # program stop, and waiting on it leaves no zombie behind
            proc.stdout.close()
            self._finish(proc, drain, done, watcher)
            raise

        proc.stdout.close()
        returncode = self._finish(proc, drain, done, watcher)

        if killed.is_set():
            raise CommandError(
                f"command {self.name!r}: cancelled", returncode=returncode, stderr=stderr.text()
            )
        if returncode != 0:
            msg = stderr.text()
            raise CommandError(
                msg or f"command {self.name!r}: {_exit_text(returncode)}",
                returncode=returncode,
                stderr=msg,
            )
        return n

    def _finish(
        self,
        proc: subprocess.Popen,
        drain: threading.Thread,
        done: threading.Event,
        watcher: Optional[threading.Thread],
    ) -> int:
        returncode = proc.wait()
        drain.join()
        done.set()
        if watcher is not None:
            watcher.join()
        return returncode

    @staticmethod
    def _watch(
        cancel: threading.Event,
        proc: subprocess.Popen,
        done: threading.Event,
        killed: threading.Event,
    ) -> None:
        while not done.is_set():
            if cancel.wait(_CANCEL_POLL_SEC):
                if proc.poll() is None:
                    killed.set()
                    proc.kill()
                return


# This function constructs a chunk that copies the STDOUT of the given command.
def command(
    name: str,
    *args: str,
    cancel: Optional[threading.Event] = None,
    stderr_limit: int = DEFAULT_STDERR_LIMIT,
) -> Chunk:
    return CommandChunk([name, *args], cancel=cancel, stderr_limit=stderr_limit)


__all__ = ["CommandChunk", "CommandError", "DEFAULT_STDERR_LIMIT", "command"]
