from __future__ import annotations

import logging
import threading
from typing import Protocol

from ..errors import CredentialError
from .encrypted import EncryptedFileBackend

logger = logging.getLogger("pyrcman.credentials")


class CredentialBackend(Protocol):
    """Protocol for secret stores."""

    def available(self) -> bool:
        """Return True if the backend can be used at runtime."""

    def store(self, key: str, value: str) -> None:
        """Store *value* or raise :class:`CredentialError`."""

    def retrieve(self, key: str) -> str | None:
        """Return the secret for *key* or ``None``."""

    def delete(self, key: str) -> bool:
        """Remove *key*; return ``False`` if it was not stored."""


class KeyringBackend:
    """Secrets stored via the system keyring."""

    def __init__(self) -> None:
        import keyring
        from keyring.backends import fail

        self._keyring = keyring
        self._fail = fail

    def available(self) -> bool:
        return not isinstance(self._keyring.get_keyring(), self._fail.Keyring)

    def _service(self, key: str) -> tuple[str, str]:
        # keys are namespaced "service:rest" by CredentialManager
        service, _, user = key.partition(":")
        return (service, user) if user else ("pyrcman", key)

    def store(self, key: str, value: str) -> None:
        if not self.available():
            raise CredentialError("Keyring backend unavailable")
        try:
            self._keyring.set_password(*self._service(key), value)
        except Exception as exc:
            raise CredentialError(f"keyring write failed: {exc}") from exc

    def retrieve(self, key: str) -> str | None:
        if not self.available():
            return None
        try:
            return self._keyring.get_password(*self._service(key))
        except Exception as exc:
            raise CredentialError(f"keyring read failed: {exc}") from exc

    def delete(self, key: str) -> bool:
        if self.retrieve(key) is None:
            return False
        try:
            self._keyring.delete_password(*self._service(key))
        except Exception as exc:
            raise CredentialError(f"keyring delete failed: {exc}") from exc
        return True


class MemoryBackend:
    """Session-only store; nothing survives the process."""

    def __init__(self) -> None:
        self._values: dict[str, str] = {}
        self._lock = threading.Lock()

    def available(self) -> bool:
        return True

    def store(self, key: str, value: str) -> None:
        with self._lock:
            self._values[key] = value

    def retrieve(self, key: str) -> str | None:
        with self._lock:
            return self._values.get(key)

    def delete(self, key: str) -> bool:
        with self._lock:
            return self._values.pop(key, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._values)


class CredentialManager:
    """Namespace credential keys by service and, optionally, profile.

    Keys look like ``service:key`` or ``service:profiles:<profile>:key``.
    """

    def __init__(self, backend: CredentialBackend, service: str, profile: str | None = None) -> None:
        self.backend = backend
        self.service = service
        self._profile = profile
        self._lock = threading.Lock()

    @property
    def profile(self) -> str | None:
        with self._lock:
            return self._profile

    def set_profile(self, profile: str | None) -> None:
        with self._lock:
            self._profile = profile
        logger.debug("credential namespace switched to profile %s", profile)

    def for_profile(self, profile: str | None) -> CredentialManager:
        return CredentialManager(self.backend, self.service, profile)

    def key_for(self, key: str) -> str:
        profile = self.profile
        if profile is None:
            return f"{self.service}:{key}"
        return f"{self.service}:profiles:{profile}:{key}"

    def store(self, key: str, value: str) -> None:
        self.backend.store(self.key_for(key), value)

    def get(self, key: str) -> str | None:
        return self.backend.retrieve(self.key_for(key))

    def remove(self, key: str) -> bool:
        return self.backend.delete(self.key_for(key))


__all__ = [
    "CredentialBackend",
    "CredentialManager",
    "EncryptedFileBackend",
    "KeyringBackend",
    "MemoryBackend",
]
