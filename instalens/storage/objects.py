"""Key/value object storage used by the object-backed job store.

Two backends: a directory on local disk, and a Supabase Storage bucket.
Both are blocking underneath, so calls are pushed to a thread.
"""

import asyncio
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from typing import List, Optional

logger = logging.getLogger(__name__)


class ObjectStorageError(Exception):
    """Raised when a storage backend call fails for a reason other than a missing key."""


class ObjectStorage(ABC):
    name = "abstract"

    @abstractmethod
    async def read(self, key: str) -> Optional[bytes]:
        """Return the object's bytes, or None when the key does not exist."""
        ...

    @abstractmethod
    async def write(self, key: str, data: bytes) -> None:
        ...

    @abstractmethod
    async def remove(self, key: str) -> None:
        ...

    @abstractmethod
    async def list_keys(self, prefix: str) -> List[str]:
        ...


class LocalObjectStorage(ObjectStorage):
    """Filesystem-backed objects, one file per key under ``base_dir``."""

    name = "local"

    def __init__(self, base_dir: Optional[str] = None):
        if base_dir:
            self._base_dir = base_dir
        else:
            self._base_dir = os.path.join(tempfile.gettempdir(), "instalens")
        os.makedirs(self._base_dir, exist_ok=True)

    @property
    def base_dir(self) -> str:
        return self._base_dir

    def _path(self, key: str) -> str:
        return os.path.join(self._base_dir, *key.split("/"))

    def _read(self, key: str) -> Optional[bytes]:
        try:
            with open(self._path(key), "rb") as fh:
                return fh.read()
        except FileNotFoundError:
            return None

    def _write(self, key: str, data: bytes) -> None:
        path = self._path(key)
        os.makedirs(os.path.dirname(path), exist_ok=True)
        # Write then rename so readers never see a half-written record
        fd, tmp_path = tempfile.mkstemp(dir=os.path.dirname(path), suffix=".tmp")
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
        os.replace(tmp_path, path)

    def _remove(self, key: str) -> None:
        try:
            os.remove(self._path(key))
        except FileNotFoundError:
            pass

    def _list_keys(self, prefix: str) -> List[str]:
        directory = self._path(prefix)
        if not os.path.isdir(directory):
            return []
        return [
            f"{prefix.rstrip('/')}/{entry}"
            for entry in sorted(os.listdir(directory))
            if not entry.endswith(".tmp")
        ]

    async def read(self, key: str) -> Optional[bytes]:
        return await asyncio.to_thread(self._read, key)

    async def write(self, key: str, data: bytes) -> None:
        await asyncio.to_thread(self._write, key, data)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

    async def list_keys(self, prefix: str) -> List[str]:
        return await asyncio.to_thread(self._list_keys, prefix)


def _is_not_found(exc: Exception) -> bool:
    status = getattr(exc, "status", None) or getattr(exc, "status_code", None)
    if str(status) == "404":
        return True
    details = exc.args[0] if exc.args and isinstance(exc.args[0], dict) else {}
    if str(details.get("statusCode")) == "404":
        return True
    # Storage API reports missing objects as 400 "Object not found"
    return "not found" in str(details.get("message") or exc).lower()


class SupabaseObjectStorage(ObjectStorage):
    """Objects in a Supabase Storage bucket."""

    name = "supabase"
    _PAGE_SIZE = 1000

    def __init__(self, client, bucket: str):
        self._client = client
        self._bucket_name = bucket

    @property
    def _bucket(self):
        return self._client.storage.from_(self._bucket_name)

    def _read(self, key: str) -> Optional[bytes]:
        try:
            return self._bucket.download(key)
        except Exception as exc:
            if _is_not_found(exc):
                return None
            raise ObjectStorageError(f"Failed to read {key}: {exc}") from exc

    def _write(self, key: str, data: bytes) -> None:
        try:
            self._bucket.upload(
                key,
                data,
                file_options={"content-type": "application/json", "upsert": "true"},
            )
        except Exception as exc:
            raise ObjectStorageError(f"Failed to write {key}: {exc}") from exc

    def _remove(self, key: str) -> None:
        try:
            self._bucket.remove([key])
        except Exception as exc:
            raise ObjectStorageError(f"Failed to remove {key}: {exc}") from exc

    def _list_keys(self, prefix: str) -> List[str]:
        folder = prefix.rstrip("/")
        keys: List[str] = []
        offset = 0
        while True:
            try:
                page = self._bucket.list(folder, {"limit": self._PAGE_SIZE, "offset": offset})
            except Exception as exc:
                raise ObjectStorageError(f"Failed to list {folder}: {exc}") from exc
            keys.extend(f"{folder}/{entry['name']}" for entry in page if entry.get("name"))
            if len(page) < self._PAGE_SIZE:
                return keys
            offset += self._PAGE_SIZE

    async def read(self, key: str) -> Optional[bytes]:
        return await asyncio.to_thread(self._read, key)

    async def write(self, key: str, data: bytes) -> None:
        await asyncio.to_thread(self._write, key, data)

    async def remove(self, key: str) -> None:
        await asyncio.to_thread(self._remove, key)

    async def list_keys(self, prefix: str) -> List[str]:
        return await asyncio.to_thread(self._list_keys, prefix)
