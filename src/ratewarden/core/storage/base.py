"""
Abstract base class for the remote counter store.

The evaluator and the limiter depend on this contract only, never on a
concrete client, so that:
- Unit tests run against InMemoryBackend (no Redis needed)
- Redis can be swapped for a cluster or ring client without touching
  the algorithm

The contract is deliberately small: register a procedure, invoke it,
read fields of a record, update one field of an existing record, and
delete a record.
"""

from abc import ABC, abstractmethod
from typing import Any

NO_SCRIPT_PREFIX = "NOSCRIPT "


class StorageBackend(ABC):
    """
    Remote store holding one hash record per (identity, strategy) pair.

    Records look like {"ct": <count>, "lt": <limit>} and carry a TTL set
    when they are created. Expiry is the store's job, not ours.

    Available implementations:
    - InMemoryBackend: For testing and development (single process)
    - RedisBackend: For production (shared by every service instance)
    """

    @abstractmethod
    async def script_load(self, body: str) -> str:
        """
        Register a procedure body with the store.

        Returns:
            The handle used to invoke it (the SHA1 digest for Redis).
        """
        pass

    @abstractmethod
    async def evalsha(self, handle: str, keys: list[str], args: list[str | int]) -> Any:
        """
        Invoke a registered procedure atomically.

        Raises:
            StoreError: On any store failure. When the handle is not known
                to the store the message starts with "NOSCRIPT ".
        """
        pass

    @abstractmethod
    async def hmget(self, key: str, fields: list[str]) -> list[str | None]:
        """
        Read several fields of a record.

        Returns:
            One value per field, None for a missing field or record.
        """
        pass

    @abstractmethod
    async def hset_if_exists(self, key: str, field: str, value: str | int) -> bool:
        """
        Set one field of a record that already exists.

        Never creates a record, so a record without TTL cannot appear.

        Returns:
            True if the record existed and was updated.
        """
        pass

    @abstractmethod
    async def delete(self, key: str) -> None:
        """Delete a record. No error if it does not exist."""
        pass

    async def close(self) -> None:
        """Release connections. Default is a no-op."""
        return None
