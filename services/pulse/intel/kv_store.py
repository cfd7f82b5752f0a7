"""
Key-value persistence for alert state.

The lifecycle store only needs get/set/delete of JSON documents by key.
MemoryKVStore backs tests and one-shot CLI runs; RedisKVStore is the
production backend.
"""
from __future__ import annotations

import copy
import json
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import redis


class KVStoreError(Exception):
    """Raised when the backing store cannot be read or written."""


class KVStore(ABC):
    """Abstract JSON document store addressed by string keys."""

    @abstractmethod
    def get(self, key: str) -> Optional[Any]:
        """Return the decoded document, or None when the key is absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: Any) -> None:
        pass

    @abstractmethod
    def delete(self, key: str) -> None:
        pass


class MemoryKVStore(KVStore):
    """In-process store. Values are deep-copied so callers never share state."""

    def __init__(self, initial: Optional[Dict[str, Any]] = None):
        self._data: Dict[str, Any] = copy.deepcopy(initial) if initial else {}

    def get(self, key: str) -> Optional[Any]:
        value = self._data.get(key)
        return copy.deepcopy(value) if value is not None else None

    def set(self, key: str, value: Any) -> None:
        try:
            # Mirror the JSON constraint of real backends
            json.dumps(value)
        except (TypeError, ValueError) as e:
            raise KVStoreError(f"value for {key} is not JSON-serializable: {e}") from e
        self._data[key] = copy.deepcopy(value)

    def delete(self, key: str) -> None:
        self._data.pop(key, None)

    def keys(self):
        return sorted(self._data)


class RedisKVStore(KVStore):
    """
    Redis-backed store. Documents are stored as JSON strings.

    Redis errors and undecodable payloads surface as KVStoreError.
    """

    def __init__(
        self,
        client: Optional[redis.Redis] = None,
        url: str = "redis://127.0.0.1:6379",
        ttl_seconds: Optional[int] = None,
    ):
        self._redis = client or redis.Redis.from_url(
            url, socket_timeout=2, decode_responses=True
        )
        self._ttl = ttl_seconds

    def get(self, key: str) -> Optional[Any]:
        try:
            raw = self._redis.get(key)
        except redis.RedisError as e:
            raise KVStoreError(f"redis get {key} failed: {e}") from e
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError) as e:
            raise KVStoreError(f"undecodable document at {key}: {e}") from e

    def set(self, key: str, value: Any) -> None:
        try:
            payload = json.dumps(value)
        except (TypeError, ValueError) as e:
            raise KVStoreError(f"value for {key} is not JSON-serializable: {e}") from e
        try:
            self._redis.set(key, payload, ex=self._ttl)
        except redis.RedisError as e:
            raise KVStoreError(f"redis set {key} failed: {e}") from e

    def delete(self, key: str) -> None:
        try:
            self._redis.delete(key)
        except redis.RedisError as e:
            raise KVStoreError(f"redis delete {key} failed: {e}") from e

    def close(self) -> None:
        self._redis.close()
