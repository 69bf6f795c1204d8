"""
Versioned State Store

Key-value store for job records and task snapshots. Every stored value is
wrapped with metadata: a version number incremented on every write, created
and updated timestamps, the last writer, and an append-only change history.

``StateStore`` is the contract the supervisor depends on; ``InMemoryStateStore``
is the implementation used in-process and in tests. TTL expiry is checked
lazily whenever a key is touched.

Example:
    ```python
    store = InMemoryStateStore()
    await store.save("job:42", {"status": "running"}, updated_by="supervisor")
    await store.update("job:42", {"progress": {"completed": 3}}, description="subtask done")
    meta = await store.get_metadata("job:42")
    meta["version"]   # 2
    ```
"""

import asyncio
import copy
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Protocol

from ..models.tasks import utc_now

logger = logging.getLogger(__name__)


class StateStore(Protocol):
    """Contract of the versioned key-value store."""

    async def save(self, key: str, value: Any, ttl: Optional[float] = None, **options: Any) -> None: ...

    async def load(self, key: str) -> Optional[Any]: ...

    async def update(self, key: str, partial: Any, **options: Any) -> None: ...

    async def has(self, key: str) -> bool: ...

    async def delete(self, key: str) -> bool: ...

    async def list(self, prefix: Optional[str] = None, predicate: Optional[Callable[[str], bool]] = None) -> List[str]: ...


@dataclass
class _Entry:
    data: Any
    metadata: Dict[str, Any]
    expires_at: Optional[float] = None
    history: List[Dict[str, Any]] = field(default_factory=list)


def deep_merge(base: Any, patch: Any) -> Any:
    """
    Recursively merge ``patch`` into a copy of ``base``.

    Nested dicts are merged key by key; any other value in ``patch``
    (lists included) replaces the one in ``base``.
    """
    if not isinstance(base, dict) or not isinstance(patch, dict):
        return copy.deepcopy(patch)
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


class InMemoryStateStore:
    """
    Process-local implementation of the versioned state store.

    Args:
        default_ttl: Seconds before entries expire; None keeps them forever
    """

    def __init__(self, default_ttl: Optional[float] = None):
        self.default_ttl = default_ttl
        self._entries: Dict[str, _Entry] = {}
        self._lock = asyncio.Lock()

    async def save(
        self,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
        updated_by: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        """Store ``value`` under ``key``, replacing any previous value as a new version."""
        async with self._lock:
            entry = self._live(key)
            self._write(
                key,
                entry,
                copy.deepcopy(value),
                ttl,
                updated_by,
                description or ("State overwritten" if entry else "Initial state creation"),
            )

    async def update(
        self,
        key: str,
        partial: Any,
        ttl: Optional[float] = None,
        updated_by: Optional[str] = None,
        description: Optional[str] = None,
    ) -> None:
        """Deep-merge ``partial`` into the stored value, creating it if absent."""
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                self._write(key, None, copy.deepcopy(partial), ttl, updated_by, description or "Initial state creation")
                return
            self._write(
                key,
                entry,
                deep_merge(entry.data, partial),
                ttl,
                updated_by,
                description or "State updated",
            )

    async def load(self, key: str) -> Optional[Any]:
        async with self._lock:
            entry = self._live(key)
            return copy.deepcopy(entry.data) if entry else None

    async def load_with_metadata(self, key: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            entry = self._live(key)
            if entry is None:
                return None
            return {"data": copy.deepcopy(entry.data), "metadata": self._metadata(entry)}

    async def get_metadata(self, key: str) -> Optional[Dict[str, Any]]:
        async with self._lock:
            entry = self._live(key)
            return self._metadata(entry) if entry else None

    async def has(self, key: str) -> bool:
        async with self._lock:
            return self._live(key) is not None

    async def delete(self, key: str) -> bool:
        async with self._lock:
            return self._entries.pop(key, None) is not None

    async def list(
        self,
        prefix: Optional[str] = None,
        predicate: Optional[Callable[[str], bool]] = None,
    ) -> List[str]:
        """Keys of live entries, filtered by prefix and/or predicate."""
        async with self._lock:
            keys = [key for key in list(self._entries) if self._live(key) is not None]
        if prefix is not None:
            keys = [key for key in keys if key.startswith(prefix)]
        if predicate is not None:
            keys = [key for key in keys if predicate(key)]
        return sorted(keys)

    async def clear(self) -> None:
        async with self._lock:
            self._entries.clear()

    # ------------------------------------------------------------------
    # Internals (caller holds the lock)
    # ------------------------------------------------------------------

    def _live(self, key: str) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at is not None and time.monotonic() >= entry.expires_at:
            logger.debug(f"[StateStore] {key} expired")
            del self._entries[key]
            return None
        return entry

    def _write(
        self,
        key: str,
        entry: Optional[_Entry],
        data: Any,
        ttl: Optional[float],
        updated_by: Optional[str],
        description: str,
    ) -> None:
        now = utc_now().isoformat()
        effective_ttl = ttl if ttl is not None else self.default_ttl
        expires_at = time.monotonic() + effective_ttl if effective_ttl else None

        if entry is None:
            version = 1
            created_at = now
            history: List[Dict[str, Any]] = []
        else:
            version = entry.metadata["version"] + 1
            created_at = entry.metadata["created_at"]
            history = entry.history
            if ttl is None and self.default_ttl is None:
                expires_at = entry.expires_at

        history.append(
            {"version": version, "timestamp": now, "updated_by": updated_by, "description": description}
        )
        self._entries[key] = _Entry(
            data=data,
            metadata={
                "id": key,
                "version": version,
                "created_at": created_at,
                "updated_at": now,
                "updated_by": updated_by,
            },
            expires_at=expires_at,
            history=history,
        )
        logger.debug(f"[StateStore] {key} -> v{version} ({description})")

    @staticmethod
    def _metadata(entry: _Entry) -> Dict[str, Any]:
        metadata = dict(entry.metadata)
        metadata["history"] = [dict(change) for change in entry.history]
        return metadata
