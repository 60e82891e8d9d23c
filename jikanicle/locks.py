"""Process-local advisory locks.

A LockManager tracks which resource ids are held. There is no ownership
token, no reentrancy and no waiting: acquiring a held id fails at once,
and any caller that knows an id can release it.
"""

import logging
from typing import FrozenSet, Set

from jikanicle.errors import StorageError, StorageErrorType
from jikanicle.result import Err, Ok, Result

logger = logging.getLogger(__name__)


class LockManager:
    """Set of currently held resource ids."""

    def __init__(self) -> None:
        self._locks: Set[str] = set()

    @property
    def locks(self) -> FrozenSet[str]:
        return frozenset(self._locks)

    def is_locked(self, resource_id: str) -> bool:
        return resource_id in self._locks

    async def acquire(self, resource_id: str) -> Result[None, StorageError]:
        """Mark resource_id as held.

        Returns:
            Ok(None), or Err(LOCK_ERROR) if it is already held
        """
        if resource_id in self._locks:
            return Err(StorageError(
                StorageErrorType.LOCK_ERROR,
                "Resource is already locked",
                resource_id,
            ))
        self._locks.add(resource_id)
        logger.debug("Acquired lock %s", resource_id)
        return Ok(None)

    async def release(self, resource_id: str) -> Result[None, StorageError]:
        """Mark resource_id as free.

        Returns:
            Ok(None), or Err(LOCK_ERROR) if it is not held
        """
        if resource_id not in self._locks:
            return Err(StorageError(
                StorageErrorType.LOCK_ERROR,
                "Resource is not locked",
                resource_id,
            ))
        self._locks.discard(resource_id)
        logger.debug("Released lock %s", resource_id)
        return Ok(None)
