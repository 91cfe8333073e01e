"""The ``.rcman`` container: a zip of ``manifest.json`` plus ``data/`` entries.

The manifest is always stored in plaintext so a container can be inspected
without the password.  When encrypted, each entry is sealed separately with
AES-256-GCM using its archive path as associated data, so entries cannot be
swapped or altered without failing authentication.
"""
from __future__ import annotations

import hashlib
import json
import zipfile
from pathlib import Path
from typing import Any

from ..crypto import KDF_PARAMS, derive_key, new_salt, seal, unseal
from ..errors import ChecksumMismatchError, InvalidBackupError, PasswordRequiredError, StorageError
from ..storage import ensure_dir, remove_file
from .types import DATA_PREFIX, MANIFEST_NAME, BackupManifest, EntryKind, ManifestEntry


def sha256(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


class ArchiveWriter:
    """Collect entries, then :meth:`finish` into a container file."""

    def __init__(self, password: str | None = None) -> None:
        self._blobs: dict[str, bytes] = {}
        self._entries: list[ManifestEntry] = []
        self._key: bytes | None = None
        self.encryption: dict[str, Any] | None = None
        if password is not None:
            salt = new_salt()
            self._key = derive_key(password, salt)
            self.encryption = {
                "cipher": "AES-256-GCM",
                "kdf": "scrypt",
                "kdf_params": dict(KDF_PARAMS),
                "salt": salt.hex(),
            }

    @property
    def entries(self) -> tuple[ManifestEntry, ...]:
        return tuple(self._entries)

    def add(self, path: str, data: bytes, kind: EntryKind, *, profile: str | None = None,
            category: str | None = None, name: str | None = None) -> ManifestEntry:
        if path in self._blobs:
            raise ValueError(f"duplicate entry {path}")
        stored = data if self._key is None else seal(self._key, data, path.encode("utf-8"))
        entry = ManifestEntry(
            path=path,
            kind=kind,
            size=len(data),
            sha256=sha256(data),
            stored_sha256=sha256(stored),
            profile=profile,
            category=category,
            name=name,
        )
        self._blobs[path] = stored
        self._entries.append(entry)
        return entry

    def finish(self, target: Path, manifest: BackupManifest) -> None:
        """Write the container atomically to *target*."""
        ensure_dir(target.parent)
        tmp = target.with_suffix(target.suffix + ".tmp")
        try:
            with zipfile.ZipFile(tmp, "w", compression=zipfile.ZIP_DEFLATED) as zf:
                zf.writestr(MANIFEST_NAME, json.dumps(manifest.to_dict(), indent=2))
                for path, blob in self._blobs.items():
                    zf.writestr(DATA_PREFIX + path, blob)
            tmp.replace(target)
        except OSError as exc:
            remove_file(tmp)
            raise StorageError(f"cannot write backup {target}: {exc}") from exc

    @property
    def stored_size(self) -> int:
        return sum(len(b) for b in self._blobs.values())


class ArchiveReader:
    """Read-only view of a container."""

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        try:
            self._zip = zipfile.ZipFile(self.path)
        except FileNotFoundError as exc:
            raise StorageError(f"backup not found: {self.path}") from exc
        except (zipfile.BadZipFile, OSError) as exc:
            raise InvalidBackupError(f"{self.path} is not a backup container: {exc}") from exc
        try:
            raw = self._zip.read(MANIFEST_NAME)
        except KeyError as exc:
            self._zip.close()
            raise InvalidBackupError(f"{self.path} has no manifest") from exc
        try:
            data = json.loads(raw.decode("utf-8"))
        except ValueError as exc:
            self._zip.close()
            raise InvalidBackupError(f"unreadable manifest: {exc}") from exc
        self.manifest = BackupManifest.from_dict(data)
        self._members = set(self._zip.namelist())
        self._key: bytes | None = None

    def __enter__(self) -> ArchiveReader:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    def close(self) -> None:
        self._zip.close()

    def has(self, entry: ManifestEntry) -> bool:
        return DATA_PREFIX + entry.path in self._members

    def read_stored(self, entry: ManifestEntry) -> bytes:
        try:
            return self._zip.read(DATA_PREFIX + entry.path)
        except KeyError as exc:
            raise InvalidBackupError(f"missing entry {entry.path}") from exc
        except (zipfile.BadZipFile, OSError) as exc:
            raise InvalidBackupError(f"corrupt entry {entry.path}: {exc}") from exc

    def unlock(self, password: str | None) -> None:
        if not self.manifest.encrypted:
            return
        if password is None:
            raise PasswordRequiredError("this backup is encrypted; a password is required")
        enc = self.manifest.encryption or {}
        try:
            salt = bytes.fromhex(enc["salt"])
            params = enc.get("kdf_params", KDF_PARAMS)
        except (KeyError, ValueError, TypeError) as exc:
            raise InvalidBackupError(f"bad encryption header: {exc}") from exc
        self._key = derive_key(password, salt, **params)

    def read_entry(self, entry: ManifestEntry, *, verify: bool = True) -> bytes:
        """Return the plaintext of *entry*, decrypting and verifying it."""
        stored = self.read_stored(entry)
        if self.manifest.encrypted:
            if self._key is None:
                raise PasswordRequiredError("call unlock() before reading encrypted entries")
            data = unseal(self._key, stored, entry.path.encode("utf-8"))
        else:
            data = stored
        if verify and sha256(data) != entry.sha256:
            raise ChecksumMismatchError(entry.path)
        return data
