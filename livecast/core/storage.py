from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path

from .config import Settings


class Storage(ABC):
    @abstractmethod
    def exists(self, key: str) -> bool: ...

    @abstractmethod
    def read_bytes(self, key: str) -> bytes: ...

    @abstractmethod
    def write_bytes(self, key: str, payload: bytes) -> str: ...

    @abstractmethod
    def delete(self, key: str) -> None: ...

    @abstractmethod
    def is_writable(self) -> bool: ...


class LocalStorage(Storage):
    """Filesystem-backed storage for derived images."""

    def __init__(self, base_path: Path):
        self.base_path = base_path
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, key: str) -> Path:
        base = self.base_path.resolve()
        path = (base / key).resolve()
        if base not in path.parents:
            raise ValueError(f"Storage key escapes the storage root: {key}")
        return path

    def exists(self, key: str) -> bool:
        return self._resolve(key).exists()

    def read_bytes(self, key: str) -> bytes:
        return self._resolve(key).read_bytes()

    def write_bytes(self, key: str, payload: bytes) -> str:
        path = self._resolve(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
        return path.as_uri()

    def delete(self, key: str) -> None:
        self._resolve(key).unlink(missing_ok=True)

    def is_writable(self) -> bool:
        probe = self.base_path / ".write-probe"
        try:
            probe.write_bytes(b"")
            probe.unlink()
        except OSError:
            return False
        return True


def get_storage(settings: Settings) -> Storage:
    if settings.storage_backend == "local":
        return LocalStorage(base_path=Path(settings.storage_root))
    raise ValueError(f"Unsupported storage backend: {settings.storage_backend}")


__all__ = [
    "Storage",
    "LocalStorage",
    "get_storage",
]
