from __future__ import annotations

import os
import stat
import tempfile

import pytest

from chunkstream.chunks import byte, repeat, rune, string
from chunkstream.files import append_to_file, atomic_write_file, write_file, write_temp_file
from chunkstream.sinks import write_closer_stream
from chunkstream.stream import ChunkError, Writer


class _Fault(BaseException):
    """Stands in for an abnormal termination raised from inside a chunk."""


def _leftovers(directory) -> list:
    return sorted(p.name for p in directory.iterdir() if p.name.startswith("tmp-"))


def _failing_after(count: int, text: str):
    def step(i: int, w: Writer) -> int:
        if i < count:
            return w.write_string(text)
        raise RuntimeError("test error")

    return repeat(step)


# This test checks a plain truncating write, multi-byte characters included.
def test_files__write_file(tmp_path):
    target = tmp_path / "out.txt"
    target.write_text("old content that is longer", encoding="utf-8")
    n = write_file(str(target), string("--- ZZZ ---"), byte(ord(" ")), rune("Ы"))
    expected = "--- ZZZ --- Ы".encode("utf-8")
    assert target.read_bytes() == expected
    assert n == len(expected)
    print("\n.✅test_files__write_file passed")


# This test checks that the permission mode always includes owner read/write.
@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
def test_files__write_file_forces_owner_rw(tmp_path):
    target = tmp_path / "ro.txt"
    write_file(str(target), string("x"), perm=0o044)
    assert stat.S_IMODE(os.stat(target).st_mode) & 0o600 == 0o600
    print("✅test_files__write_file_forces_owner_rw passed")


# This test checks appending to an existing file.
def test_files__append_to_file(tmp_path):
    name, n = write_temp_file(string("ZZZ"), dir=str(tmp_path))
    assert n == 3
    assert append_to_file(name, string("aaa")) == 3
    with open(name, "rb") as f:
        assert f.read() == b"ZZZaaa"
    print("✅test_files__append_to_file passed")


# This test checks a successful atomic write and its permissions.
def test_files__atomic_write_file(tmp_path):
    target = tmp_path / "atomic.txt"
    n = atomic_write_file(str(target), string("--- ZZZ ---"), perm=0o640)
    assert target.read_bytes() == b"--- ZZZ ---"
    assert n == 11
    assert _leftovers(tmp_path) == []
    if os.name != "nt":
        assert stat.S_IMODE(os.stat(target).st_mode) == 0o640
    print("✅test_files__atomic_write_file passed")


# This test checks that a failed atomic write leaves no target and no temporary.
def test_files__atomic_write_error_leaves_nothing(tmp_path):
    target = tmp_path / "test-atomic-write-error"
    with pytest.raises(ChunkError) as exc:
        atomic_write_file(str(target), _failing_after(5, "ZZZ"))
    assert str(exc.value) == "writing stream chunk 0: test error"
    assert not target.exists()
    assert _leftovers(tmp_path) == []
    print("✅test_files__atomic_write_error_leaves_nothing passed")


# This test checks that a failed atomic write keeps the previous content.
def test_files__atomic_write_error_keeps_target(tmp_path):
    target = tmp_path / "keep.txt"
    write_file(str(target), string("ZZZ"))
    with pytest.raises(ChunkError):
        atomic_write_file(str(target), string("AAA"), _failing_after(2, "AAA"))
    assert target.read_bytes() == b"ZZZ"
    assert _leftovers(tmp_path) == []
    print("✅test_files__atomic_write_error_keeps_target passed")


# This test checks that an abnormal termination propagates unchanged after cleanup.
def test_files__atomic_write_abnormal_termination(tmp_path):
    target = tmp_path / "test-atomic-write-panic"
    write_file(str(target), string("ZZZ"))
    fault = _Fault("this is a fault")

    def step(i: int, w: Writer) -> int:
        if i < 5:
            return w.write_string("AAA")
        raise fault

    with pytest.raises(_Fault) as exc:
        atomic_write_file(str(target), repeat(step))
    assert exc.value is fault
    assert target.read_bytes() == b"ZZZ"
    assert _leftovers(tmp_path) == []
    print("✅test_files__atomic_write_abnormal_termination passed")


# This test checks that the temporary is synced to disk before it is renamed over the target.
def test_files__atomic_write_syncs_before_rename(tmp_path, monkeypatch):
    import chunkstream.files as files_mod

    calls = []
    real_fsync = files_mod.os.fsync
    real_replace = files_mod.os.replace

    def fake_fsync(fd):
        calls.append("fsync")
        return real_fsync(fd)

    def fake_replace(src, dst):
        calls.append("replace")
        return real_replace(src, dst)

    monkeypatch.setattr(files_mod.os, "fsync", fake_fsync)
    monkeypatch.setattr(files_mod.os, "replace", fake_replace)

    target = tmp_path / "synced.txt"
    assert atomic_write_file(str(target), string("durable")) == 7
    assert calls == ["fsync", "replace"]
    assert target.read_bytes() == b"durable"
    print("✅test_files__atomic_write_syncs_before_rename passed")


# This test checks that a failed atomic write never syncs or renames.
def test_files__atomic_write_error_skips_sync(tmp_path, monkeypatch):
    import chunkstream.files as files_mod

    calls = []
    monkeypatch.setattr(files_mod.os, "fsync", lambda fd: calls.append("fsync"))

    with pytest.raises(ChunkError):
        atomic_write_file(str(tmp_path / "never.txt"), _failing_after(1, "x"))
    assert calls == []
    assert _leftovers(tmp_path) == []
    print("✅test_files__atomic_write_error_skips_sync passed")


# This test checks that atomic and plain writes agree on the mode under the same umask.
@pytest.mark.skipif(os.name == "nt", reason="POSIX permission bits")
def test_files__atomic_write_honours_umask(tmp_path):
    old = os.umask(0o022)
    try:
        plain = tmp_path / "plain.txt"
        atomic = tmp_path / "atomic.txt"
        write_file(str(plain), string("x"), perm=0o666)
        atomic_write_file(str(atomic), string("x"), perm=0o666)
    finally:
        os.umask(old)
    assert stat.S_IMODE(os.stat(plain).st_mode) == 0o644
    assert stat.S_IMODE(os.stat(atomic).st_mode) == 0o644
    print("✅test_files__atomic_write_honours_umask passed")


# This test checks the temporary file naming and location.
def test_files__write_temp_file_default_dir():
    name, n = write_temp_file(string("Hello, world!"))
    try:
        assert os.path.dirname(os.path.abspath(name)) == os.path.abspath(tempfile.gettempdir())
        assert os.path.basename(name).startswith("tmp-")
        with open(name, "rb") as f:
            assert f.read() == b"Hello, world!"
        assert n == 13
    finally:
        os.remove(name)
    print("✅test_files__write_temp_file_default_dir passed")


# This test checks that a failed temporary write removes the file.
def test_files__write_temp_file_error_removes_file(tmp_path):
    def fault(_w: Writer) -> int:
        raise _Fault("interrupted")

    with pytest.raises(ChunkError):
        write_temp_file(string("x"), _failing_after(1, "y"), dir=str(tmp_path))
    assert _leftovers(tmp_path) == []
    with pytest.raises(_Fault):
        write_temp_file(string("x"), fault, dir=str(tmp_path))
    assert _leftovers(tmp_path) == []
    print("✅test_files__write_temp_file_error_removes_file passed")


# This test checks a closable stream over an already-open file.
def test_files__write_closer_over_open_file(tmp_path):
    target = tmp_path / "fd.txt"
    f = open(target, "wb")
    n = write_closer_stream(f).write(string("--- ZZZ ---"))
    assert f.closed
    assert n == 11
    assert target.read_bytes() == b"--- ZZZ ---"
    print("✅test_files__write_closer_over_open_file passed")
