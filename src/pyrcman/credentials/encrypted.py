from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any

from ..crypto import KDF_PARAMS, derive_key, new_salt, seal, unseal
from ..errors import CredentialError
from ..storage import atomic_write

logger = logging.getLogger("pyrcman.credentials")

_VERIFIER = b"pyrcman-credentials"
FORMAT_VERSION = 1


class EncryptedFileBackend:
    """AES-GCM encrypted JSON file of secrets.

    Each entry is sealed separately with a key derived from *password* by
    Scrypt.  The file also carries a sealed verifier so a wrong password is
    rejected before any entry is written with the wrong key.
    """

    def __init__(self, path: Path | str, password: str | bytes) -> None:
        self.path = Path(path)
        self._password = password
        self._lock = threading.Lock()
        self._key: bytes | None = None
        self._raw: dict[str, Any] | None = None

    def available(self) -> bool:
        return True

    # ----- file helpers -----

    def _load(self) -> dict[str, Any]:
        if self._raw is not None:
            return self._raw
        if self.path.exists():
            try:
                raw = json.loads(self.path.read_text(encoding="utf-8"))
                salt = bytes.fromhex(raw["salt"])
                kdf = raw.get("kdf_params", KDF_PARAMS)
                verifier = bytes.fromhex(raw["verifier"])
            except (OSError, ValueError, KeyError, TypeError) as exc:
                raise CredentialError(f"corrupt credential file {self.path}: {exc}") from exc
            key = derive_key(self._password, salt, **kdf)
            unseal(key, verifier)
            raw.setdefault("entries", {})
        else:
            salt = new_salt()
            key = derive_key(self._password, salt)
            raw = {
                "version": FORMAT_VERSION,
                "kdf": "scrypt",
                "kdf_params": dict(KDF_PARAMS),
                "salt": salt.hex(),
                "verifier": seal(key, _VERIFIER).hex(),
                "entries": {},
            }
        self._key = key
        self._raw = raw
        return raw

    def _flush(self, raw: dict[str, Any]) -> None:
        atomic_write(self.path, json.dumps(raw, indent=2))

    # ----- public API -----

    def store(self, key: str, value: str) -> None:
        with self._lock:
            raw = self._load()
            blob = seal(self._key, value.encode("utf-8"), key.encode("utf-8"))
            raw["entries"][key] = blob.hex()
            self._flush(raw)

    def retrieve(self, key: str) -> str | None:
        with self._lock:
            raw = self._load()
            blob = raw["entries"].get(key)
            if blob is None:
                return None
            return unseal(self._key, bytes.fromhex(blob), key.encode("utf-8")).decode("utf-8")

    def delete(self, key: str) -> bool:
        with self._lock:
            raw = self._load()
            if raw["entries"].pop(key, None) is None:
                return False
            self._flush(raw)
            return True

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._load()["entries"])
