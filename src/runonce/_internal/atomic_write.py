"""Atomic, fsync'ed file writes."""

import os
import tempfile
from pathlib import Path


def fsync_directory(directory: Path) -> None:
    """Persist directory entries (renames, unlinks) to disk."""
    if os.name == "nt":
        return
    dir_fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    try:
        os.fsync(dir_fd)
    finally:
        os.close(dir_fd)


def atomic_write_with_fsync(path: Path, content: str) -> None:
    """
    Write content to a file atomically with fsync for durability.

    The content goes to a temporary file in the same directory, is flushed
    and fsync'ed, then renamed over the target; the directory is synced so
    the rename survives a crash.

    Raises:
        OSError: If the write operation fails
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_path = tempfile.mkstemp(
        dir=path.parent,
        prefix=f".{path.name}.",
        suffix=".tmp"
    )
    try:
        with os.fdopen(fd, 'w', encoding='utf-8') as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(temp_path, path)
        fsync_directory(path.parent)
    except BaseException:
        try:
            os.unlink(temp_path)
        except FileNotFoundError:
            pass
        raise
