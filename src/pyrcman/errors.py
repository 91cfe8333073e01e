from __future__ import annotations


class RcmanError(Exception):
    """Base class for pyrcman errors."""


class StorageError(RcmanError):
    """Raised for unexpected IO failures while reading or writing documents."""


class StorageLoadError(StorageError):
    """Raised when a backend fails to parse its file."""


class NotFoundError(RcmanError):
    """Raised when a document, entity or profile is absent."""


class DocumentNotFoundError(NotFoundError):
    pass


class EntityNotFoundError(NotFoundError):
    """Raised when a sub-settings entity does not exist."""

    def __init__(self, category: str, name: str) -> None:
        super().__init__(f"{category}: entity {name!r} not found")
        self.category = category
        self.name = name


class ProfileNotFoundError(NotFoundError):
    def __init__(self, name: str) -> None:
        super().__init__(f"profile {name!r} not found")
        self.name = name


class InvalidSettingValueError(RcmanError, ValueError):
    """Raised when a value violates its declared constraints."""

    def __init__(self, address: str, reason: str) -> None:
        super().__init__(f"invalid value for {address}: {reason}")
        self.address = address
        self.reason = reason


class UnknownSettingError(RcmanError, KeyError):
    """Raised when an address is not declared in the schema."""

    def __init__(self, address: str) -> None:
        super().__init__(address)
        self.address = address

    def __str__(self) -> str:
        return f"unknown setting: {self.address}"


class TypeMismatchError(RcmanError, TypeError):
    """Raised when a resolved value cannot be converted to the requested type."""

    def __init__(self, address: str, expected: str) -> None:
        super().__init__(f"expected {expected} for {address}")
        self.address = address
        self.expected = expected


class MigrationFailedError(RcmanError):
    def __init__(self, cause: str) -> None:
        super().__init__(f"migration failed: {cause}")
        self.cause = cause


class ConfigError(RcmanError):
    """Raised when a configuration object is inconsistent."""


class InvalidNameError(RcmanError, ValueError):
    """Raised for entity or profile names that are unsafe as path components."""


class InvalidProfileNameError(InvalidNameError):
    pass


class ProfileError(RcmanError):
    """Base class for profile lifecycle errors."""


class ProfileExistsError(ProfileError):
    def __init__(self, name: str) -> None:
        super().__init__(f"profile {name!r} already exists")
        self.name = name


class CannotDeleteActiveProfileError(ProfileError):
    def __init__(self, name: str) -> None:
        super().__init__(f"cannot delete active profile {name!r}")
        self.name = name


class ProtectedProfileError(ProfileError):
    """Raised when attempting to delete or rename the default profile."""


class ProfilesNotEnabledError(ProfileError):
    """Raised when a profile operation is used on a store without profiles."""


class CredentialError(RcmanError):
    """Raised for errors in the credential subsystem."""


class BackupError(RcmanError):
    """Base class for backup and restore errors."""


class InvalidBackupError(BackupError):
    """Raised when a container is structurally unusable."""


class PasswordRequiredError(BackupError):
    pass


class IncorrectPasswordError(BackupError, CredentialError):
    """Raised when authenticated decryption fails.

    Either the password is wrong or the ciphertext was tampered with; the
    cipher cannot tell these apart.
    """


class ChecksumMismatchError(BackupError):
    def __init__(self, entry: str) -> None:
        super().__init__(f"checksum mismatch for {entry}")
        self.entry = entry


class WouldOverwriteError(BackupError):
    def __init__(self, entity: str) -> None:
        super().__init__(f"restore would overwrite {entity}")
        self.entity = entity
