"""Filesystem helpers."""

from __future__ import annotations

import json
import os
import shutil
import stat
import tempfile
from pathlib import Path

__all__ = ["atomic_write_json", "atomic_write_text", "remove_tree"]


def atomic_write_text(path: Path, content: str, *, encoding: str = "utf-8") -> None:
    """Write text to path atomically using temp file + replace.

    The temp file lives next to `path` so the final `os.replace` never
    crosses a filesystem boundary. Readers see the old file or the new one,
    never a partial write.
    """
    path.parent.mkdir(parents=True, exist_ok=True)

    fd, tmp_name = tempfile.mkstemp(
        prefix=f".{path.name}.",
        suffix=".tmp",
        dir=str(path.parent),
    )
    tmp_path = Path(tmp_name)

    try:
        with os.fdopen(fd, "w", encoding=encoding, newline="") as handle:
            handle.write(content)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(tmp_path, path)
    finally:
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)


def atomic_write_json(path: Path, payload: object) -> None:
    atomic_write_text(path, json.dumps(payload, indent=2, sort_keys=False) + "\n")


def _make_writable_and_retry(func, path, _exc) -> None:  # type: ignore[no-untyped-def]
    # git marks pack files read-only; clear the bit and retry once
    os.chmod(path, stat.S_IWRITE | stat.S_IREAD)
    func(path)


def remove_tree(path: Path) -> None:
    """Delete a directory tree, including read-only git object files.

    Raises OSError on failure; callers collect it per repository.
    """
    if not path.exists():
        return
    shutil.rmtree(path, onexc=_make_writable_and_retry)
