"""File system helpers shared by the storage backends.

All writes go through :func:`atomic_write`: the payload is written to a
sibling ``.tmp`` file, flushed to disk and then renamed over the target so
readers observe either the old or the new content, never a truncated file.
"""
from __future__ import annotations

import os
import shutil
from pathlib import Path

from .errors import StorageError

_SECURE_DIR_MODE = 0o700
_SECURE_FILE_MODE = 0o600


def _posix() -> bool:
    return os.name == "posix"


def ensure_dir(path: Path) -> None:
    """Create *path* (and parents) with owner-only permissions when new."""
    path = Path(path)
    if path.is_dir():
        return
    try:
        path.mkdir(parents=True, exist_ok=True)
        if _posix():
            os.chmod(path, _SECURE_DIR_MODE)
    except OSError as exc:
        raise StorageError(f"cannot create directory {path}: {exc}") from exc


def atomic_write(path: Path, data: bytes | str) -> None:
    path = Path(path)
    ensure_dir(path.parent)
    payload = data.encode("utf-8") if isinstance(data, str) else data
    tmp = path.with_suffix(path.suffix + ".tmp")
    try:
        with tmp.open("wb") as fh:
            fh.write(payload)
            fh.flush()
            os.fsync(fh.fileno())
        if _posix():
            os.chmod(tmp, _SECURE_FILE_MODE)
        tmp.replace(path)
    except OSError as exc:
        tmp.unlink(missing_ok=True)
        raise StorageError(f"cannot write {path}: {exc}") from exc


def remove_file(path: Path) -> bool:
    """Delete *path*; return ``False`` if it did not exist."""
    try:
        Path(path).unlink()
    except FileNotFoundError:
        return False
    except OSError as exc:
        raise StorageError(f"cannot remove {path}: {exc}") from exc
    return True


def remove_tree(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except FileNotFoundError:
        pass
    except OSError as exc:
        raise StorageError(f"cannot remove {path}: {exc}") from exc


def copy_tree(src: Path, dst: Path) -> None:
    try:
        shutil.copytree(src, dst)
    except OSError as exc:
        raise StorageError(f"cannot copy {src} to {dst}: {exc}") from exc


def move(src: Path, dst: Path) -> None:
    ensure_dir(Path(dst).parent)
    try:
        shutil.move(str(src), str(dst))
    except OSError as exc:
        raise StorageError(f"cannot move {src} to {dst}: {exc}") from exc
