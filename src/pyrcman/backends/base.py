from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any

from ..errors import DocumentNotFoundError, StorageError, StorageLoadError
from ..storage import atomic_write, remove_file


class BaseBackend(ABC):
    """Abstract document backend.

    Subclasses only translate between text and a ``dict``; reading, empty
    file handling and atomic writes are shared.
    """

    suffixes: tuple[str, ...] = ()

    @abstractmethod
    def loads(self, text: str) -> Any:
        pass

    @abstractmethod
    def dumps(self, data: dict[str, Any]) -> str:
        pass

    def read(self, path: Path) -> dict[str, Any]:
        path = Path(path)
        try:
            raw = path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise DocumentNotFoundError(str(path)) from exc
        except OSError as exc:
            raise StorageError(f"cannot read {path}: {exc}") from exc
        if raw.strip() == "":
            return {}
        try:
            data = self.loads(raw)
        except Exception as exc:
            raise StorageLoadError(f"{path}: {exc}") from exc
        if data is None:
            return {}
        if not isinstance(data, dict):
            raise StorageLoadError(f"{path}: root must be an object")
        return data

    def write(self, path: Path, data: dict[str, Any]) -> None:
        try:
            text = self.dumps(data)
        except (TypeError, ValueError) as exc:
            raise StorageError(f"cannot serialise {path}: {exc}") from exc
        atomic_write(path, text)

    def exists(self, path: Path) -> bool:
        return Path(path).is_file()

    def delete(self, path: Path) -> bool:
        return remove_file(path)
