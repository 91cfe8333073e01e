"""Physical layouts for sub-settings collections."""
from __future__ import annotations

import logging
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from ..backends import get_backend_for_extension
from ..errors import DocumentNotFoundError, EntityNotFoundError
from ..migration import Migrator, migrate_document
from ..profiles import validate_name

logger = logging.getLogger("pyrcman.sub_settings")


class EntityStore(ABC):
    """Storage for the entities of one category.

    Stores cache what they read; the owning :class:`SubSettings` serialises
    mutations, while lazy cache fills are guarded by ``_fill_lock``.
    """

    def __init__(self, category: str, extension: str, migrator: Migrator | None) -> None:
        self.category = category
        self.extension = extension.lstrip(".")
        self.backend = get_backend_for_extension(self.extension)
        self.migrator = migrator
        self._fill_lock = threading.Lock()

    @property
    @abstractmethod
    def root(self) -> Path:
        """Directory (multi-file) or file (single-file) backing the store."""

    @abstractmethod
    def read(self, name: str) -> dict[str, Any]:
        pass

    @abstractmethod
    def write(self, name: str, value: dict[str, Any]) -> None:
        pass

    @abstractmethod
    def remove(self, name: str) -> None:
        pass

    @abstractmethod
    def names(self) -> list[str]:
        pass

    @abstractmethod
    def exists(self, name: str) -> bool:
        pass

    @abstractmethod
    def clear_cache(self) -> None:
        pass


class MultiFileStore(EntityStore):
    """One document per entity: ``<directory>/<entity>.<ext>``."""

    def __init__(self, category: str, directory: Path, extension: str = "json",
                 migrator: Migrator | None = None) -> None:
        super().__init__(category, extension, migrator)
        self.directory = Path(directory)
        self._cache: dict[str, dict[str, Any]] = {}

    @property
    def root(self) -> Path:
        return self.directory

    def path_for(self, name: str) -> Path:
        validate_name(name)
        return self.directory / f"{name}.{self.extension}"

    def read(self, name: str) -> dict[str, Any]:
        cached = self._cache.get(name)
        if cached is not None:
            return cached
        with self._fill_lock:
            cached = self._cache.get(name)
            if cached is not None:
                return cached
            path = self.path_for(name)
            try:
                doc = self.backend.read(path)
            except DocumentNotFoundError:
                raise EntityNotFoundError(self.category, name) from None
            doc = migrate_document(self.backend, path, doc, self.migrator)
            self._cache[name] = doc
            return doc

    def write(self, name: str, value: dict[str, Any]) -> None:
        self.backend.write(self.path_for(name), value)
        self._cache[name] = value

    def remove(self, name: str) -> None:
        if not self.backend.delete(self.path_for(name)):
            self._cache.pop(name, None)
            raise EntityNotFoundError(self.category, name)
        self._cache.pop(name, None)

    def names(self) -> list[str]:
        if not self.directory.is_dir():
            return []
        suffix = f".{self.extension}"
        return sorted(
            p.name[: -len(suffix)]
            for p in self.directory.iterdir()
            if p.is_file() and p.name.endswith(suffix) and not p.name.startswith(".")
        )

    def exists(self, name: str) -> bool:
        return name in self._cache or self.path_for(name).is_file()

    def clear_cache(self) -> None:
        self._cache.clear()


class SingleFileStore(EntityStore):
    """All entities as top-level keys of one document."""

    def __init__(self, category: str, path: Path, extension: str = "json",
                 migrator: Migrator | None = None) -> None:
        super().__init__(category, extension, migrator)
        self.path = Path(path)
        self._doc: dict[str, Any] | None = None

    @property
    def root(self) -> Path:
        return self.path

    def _data(self) -> dict[str, Any]:
        doc = self._doc
        if doc is not None:
            return doc
        with self._fill_lock:
            if self._doc is not None:
                return self._doc
            try:
                doc = self.backend.read(self.path)
                existed = True
            except DocumentNotFoundError:
                doc, existed = {}, False
            # the whole collection is migrated as one object
            doc = migrate_document(self.backend, self.path, doc, self.migrator, persist=existed)
            self._doc = doc
            return doc

    def read(self, name: str) -> dict[str, Any]:
        try:
            return self._data()[name]
        except KeyError:
            raise EntityNotFoundError(self.category, name) from None

    def write(self, name: str, value: dict[str, Any]) -> None:
        updated = dict(self._data())
        updated[name] = value
        self.backend.write(self.path, updated)
        self._doc = updated

    def remove(self, name: str) -> None:
        current = self._data()
        if name not in current:
            raise EntityNotFoundError(self.category, name)
        updated = {k: v for k, v in current.items() if k != name}
        self.backend.write(self.path, updated)
        self._doc = updated

    def names(self) -> list[str]:
        return sorted(self._data())

    def exists(self, name: str) -> bool:
        return name in self._data()

    def clear_cache(self) -> None:
        self._doc = None
