"""
Durable storage for the pending-event queue.

The queue is persisted as one JSON snapshot under a single key of a generic
key/value collaborator. Every save overwrites the whole snapshot.

Example:
    kv = FileKeyValueStore("~/.cache/myapp")
    store = PendingQueueStore(kv, key="pending_product_interactions")

    events = await store.load()
    await store.save(events)
"""

from __future__ import annotations

import asyncio
import json
import os
import re
import tempfile
from pathlib import Path
from typing import Optional, Protocol, Sequence

from loguru import logger
from pydantic import ValidationError

from .errors import StorageError
from .models import InteractionEvent

_SAFE_KEY = re.compile(r"^[A-Za-z0-9_.\-]+$")


class KeyValueStore(Protocol):
    """Async key/value persistence collaborator (browser storage, file, redis...)."""

    async def get(self, key: str) -> Optional[bytes]: ...

    async def set(self, key: str, value: bytes) -> None: ...


class InMemoryKeyValueStore:
    """Process-local store. Useful for tests and for hosts without persistence."""

    def __init__(self, initial: Optional[dict[str, bytes]] = None) -> None:
        self._data: dict[str, bytes] = dict(initial or {})

    async def get(self, key: str) -> Optional[bytes]:
        return self._data.get(key)

    async def set(self, key: str, value: bytes) -> None:
        self._data[key] = bytes(value)


class FileKeyValueStore:
    """One file per key under `root`.

    Writes go to a temp file in the same directory and are moved into place
    with os.replace, so a crash leaves either the old or the new snapshot.
    """

    def __init__(self, root: str | Path, *, mkdirs: bool = True) -> None:
        self._root = Path(root).expanduser()
        if mkdirs:
            self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        if not _SAFE_KEY.match(key):
            raise ValueError(f"invalid storage key: {key!r}")
        return self._root / f"{key}.json"

    async def get(self, key: str) -> Optional[bytes]:
        path = self._path(key)
        return await asyncio.to_thread(self._read, path)

    async def set(self, key: str, value: bytes) -> None:
        path = self._path(key)
        await asyncio.to_thread(self._write_atomic, path, value)

    @staticmethod
    def _read(path: Path) -> Optional[bytes]:
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    @staticmethod
    def _write_atomic(path: Path, value: bytes) -> None:
        fd, tmp = tempfile.mkstemp(prefix=f".{path.stem}-", suffix=".tmp", dir=path.parent)
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(value)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, path)
        except BaseException:
            try:
                os.unlink(tmp)
            except FileNotFoundError:
                pass
            raise


class PendingQueueStore:
    """Serializes the pending queue to and from a KeyValueStore."""

    def __init__(self, kv: KeyValueStore, key: str = "pending_product_interactions") -> None:
        if not key:
            raise ValueError("key must be non-empty")
        self._kv = kv
        self._key = key
        self._write_lock = asyncio.Lock()
        self._issued = 0
        self._written = 0

    @property
    def key(self) -> str:
        return self._key

    async def load(self) -> list[InteractionEvent]:
        """Read the persisted snapshot.

        Returns:
            Events in persisted order. Missing or undecodable snapshots load
            as an empty list; individual malformed entries are skipped.

        Raises:
            StorageError: the key/value collaborator itself failed
        """
        try:
            raw = await self._kv.get(self._key)
        except Exception as exc:
            raise StorageError(f"failed to read {self._key!r}: {exc}") from exc

        if not raw:
            return []

        try:
            items = json.loads(raw)
        except (ValueError, UnicodeDecodeError) as exc:
            logger.error(f"Pending queue snapshot {self._key!r} is corrupt, discarding: {exc}")
            return []

        if not isinstance(items, list):
            logger.error(
                f"Pending queue snapshot {self._key!r} is not a list "
                f"({type(items).__name__}), discarding"
            )
            return []

        events: list[InteractionEvent] = []
        skipped = 0
        for item in items:
            try:
                events.append(InteractionEvent.model_validate(item))
            except ValidationError:
                skipped += 1

        if skipped:
            logger.warning(f"Skipped {skipped} malformed entries in {self._key!r}")
        return events

    async def save(self, events: Sequence[InteractionEvent]) -> None:
        """Overwrite the snapshot with `events`.

        Writes are serialized in call order. A snapshot taken before one that
        has already been written is dropped, so storage never moves backwards
        even when the key/value writes themselves complete out of order.

        Raises:
            StorageError: serialization or the key/value write failed
        """
        self._issued += 1
        seq = self._issued
        try:
            payload = json.dumps([e.to_wire() for e in events]).encode("utf-8")
        except Exception as exc:
            raise StorageError(f"failed to encode {self._key!r}: {exc}") from exc

        async with self._write_lock:
            if seq < self._written:
                logger.debug(f"Dropping stale snapshot #{seq} of {self._key!r}")
                return
            try:
                await self._kv.set(self._key, payload)
            except Exception as exc:
                raise StorageError(f"failed to write {self._key!r}: {exc}") from exc
            self._written = seq

    async def save_quietly(self, events: Sequence[InteractionEvent]) -> bool:
        """save() for callers that must not fail; logs and returns False on error."""
        try:
            await self.save(events)
            return True
        except StorageError as exc:
            logger.error(f"Failed to save pending interactions to storage: {exc}")
            return False
