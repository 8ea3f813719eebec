"""
Key/value tiers behind the storage adapter.

Three mechanisms, tried in this order at startup:
- SessionDirectoryTier: per-process scratch directory, removed on close
- LocalDirectoryTier: directory that survives restarts
- MemoryTier: in-process dict, never persists

Directory tiers enforce a byte quota and raise QuotaExceededError when a
write would exceed it. Any other failure is raised as TierError.
"""

import base64
import shutil
import tempfile
from pathlib import Path
from typing import NamedTuple

from packvault.models.failure import QuotaExceededError


class TierError(Exception):
    """Raised when a tier cannot complete an operation."""

    pass


class StorageEstimate(NamedTuple):
    """Bytes used and bytes available in a tier."""

    used: int
    quota: int


class KeyValueTier:
    """Interface shared by all tiers."""

    name: str = "abstract"
    persistent: bool = False

    def get(self, key: str) -> str | None:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def keys(self) -> list[str]:
        raise NotImplementedError

    def clear(self) -> None:
        for key in self.keys():
            self.delete(key)

    def estimate(self) -> StorageEstimate | None:
        """Capacity report, or None when the tier cannot tell."""
        return None

    def close(self) -> None:
        pass


class MemoryTier(KeyValueTier):
    """In-process map. Always available, lost on exit."""

    name = "memory"

    def __init__(self) -> None:
        self._store: dict[str, str] = {}

    def get(self, key: str) -> str | None:
        return self._store.get(key)

    def set(self, key: str, value: str) -> None:
        self._store[key] = value

    def delete(self, key: str) -> None:
        self._store.pop(key, None)

    def keys(self) -> list[str]:
        return list(self._store)

    def clear(self) -> None:
        self._store.clear()


def _encode_key(key: str) -> str:
    return base64.urlsafe_b64encode(key.encode("utf-8")).decode("ascii") + ".json"


def _decode_key(filename: str) -> str:
    return base64.urlsafe_b64decode(filename.removesuffix(".json")).decode("utf-8")


class DirectoryTier(KeyValueTier):
    """
    One file per key inside a directory, capped at ``quota`` bytes.

    Raises TierError when the directory cannot be created or written.
    """

    name = "directory"
    persistent = True

    def __init__(self, directory: Path, quota: int) -> None:
        self.directory = directory
        self.quota = quota
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise TierError(f"Cannot create {directory}: {e}") from e

    def _path(self, key: str) -> Path:
        return self.directory / _encode_key(key)

    def _used_bytes(self, excluding: Path | None = None) -> int:
        total = 0
        for path in self.directory.glob("*.json"):
            if path != excluding:
                total += path.stat().st_size
        return total

    def get(self, key: str) -> str | None:
        path = self._path(key)
        try:
            return path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            raise TierError(f"Cannot read {key}: {e}") from e

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        data = value.encode("utf-8")
        try:
            used = self._used_bytes(excluding=path)
        except OSError as e:
            raise TierError(f"Cannot measure {self.directory}: {e}") from e

        if used + len(data) > self.quota:
            raise QuotaExceededError(self.name, needed=used + len(data), quota=self.quota)

        # Write to a sibling then rename so readers never see a partial file
        tmp = path.with_suffix(".tmp")
        try:
            tmp.write_bytes(data)
            tmp.replace(path)
        except OSError as e:
            tmp.unlink(missing_ok=True)
            raise TierError(f"Cannot write {key}: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._path(key).unlink(missing_ok=True)
        except OSError as e:
            raise TierError(f"Cannot delete {key}: {e}") from e

    def keys(self) -> list[str]:
        try:
            return sorted(_decode_key(path.name) for path in self.directory.glob("*.json"))
        except (OSError, ValueError) as e:
            raise TierError(f"Cannot list {self.directory}: {e}") from e

    def estimate(self) -> StorageEstimate | None:
        try:
            return StorageEstimate(used=self._used_bytes(), quota=self.quota)
        except OSError:
            return None


class SessionDirectoryTier(DirectoryTier):
    """Scratch directory that lives as long as this process."""

    name = "session"
    persistent = False

    def __init__(self, quota: int, root: Path | None = None) -> None:
        try:
            directory = Path(tempfile.mkdtemp(prefix="packvault-session-", dir=root))
        except OSError as e:
            raise TierError(f"Cannot create session directory: {e}") from e
        super().__init__(directory, quota)

    def close(self) -> None:
        shutil.rmtree(self.directory, ignore_errors=True)


class LocalDirectoryTier(DirectoryTier):
    """Directory that survives restarts."""

    name = "local"
