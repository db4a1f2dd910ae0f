"""Advisory write locks backed by a DynamoDB table.

A lock is an item keyed by ``id`` whose ``ttl`` attribute holds its expiry in
epoch seconds.  An expired lock can be taken over by the next caller, so a
crashed holder never blocks others for longer than ``expires_in``.
"""

from __future__ import annotations

import logging
import time
from typing import Callable, Optional, TypeVar

from botocore.exceptions import ClientError

from workbench.db import DynamoTable
from workbench.errors import internal_error
from workbench.utils import is_conditional_check_failure
from workbench.validation import OBTAIN_LOCK_SCHEMA, ensure_valid

LOGGER = logging.getLogger("workbench.locks")

R = TypeVar("R")

DEFAULT_EXPIRES_IN = 25
DEFAULT_ATTEMPTS_COUNT = 15
RETRY_SLEEP_SECONDS = 1


class LockService:
    """Obtain and release named write locks."""

    def __init__(self, table: DynamoTable, sleep: Callable[[float], None] = time.sleep):
        self.table = table
        self._sleep = sleep

    def obtain_write_lock(self, lock_id: str, expires_in: int = DEFAULT_EXPIRES_IN) -> Optional[str]:
        """Try once to take the lock.

        Args:
            lock_id: Lock name
            expires_in: Seconds until the lock expires

        Returns:
            The lock id when obtained, None if someone else holds it
        """
        ensure_valid({"id": lock_id, "expires_in": expires_in}, OBTAIN_LOCK_SCHEMA)
        now = int(time.time())
        try:
            self.table.put(
                {"id": lock_id, "ttl": now + expires_in},
                condition="attribute_not_exists(id) OR #ttl < :now",
                names={"#ttl": "ttl"},
                values={":now": now},
            )
        except ClientError as e:
            if is_conditional_check_failure(e):
                LOGGER.debug("Lock %s is held by another caller", lock_id)
                return None
            raise
        LOGGER.debug("Obtained lock %s for %ss", lock_id, expires_in)
        return lock_id

    def release_write_lock(self, lock_id: str) -> None:
        try:
            self.table.delete({"id": lock_id}, condition="attribute_exists(id)")
        except ClientError as e:
            if not is_conditional_check_failure(e):
                raise
            LOGGER.debug("Lock %s was already released", lock_id)

    def try_write_lock(
        self,
        lock_id: str,
        expires_in: int = DEFAULT_EXPIRES_IN,
        attempts_count: int = DEFAULT_ATTEMPTS_COUNT,
    ) -> Optional[str]:
        """Try up to ``attempts_count`` times, sleeping a second between attempts."""
        for attempt in range(attempts_count):
            if attempt:
                self._sleep(RETRY_SLEEP_SECONDS)
            obtained = self.obtain_write_lock(lock_id, expires_in)
            if obtained:
                return obtained
        LOGGER.warning("Gave up on lock %s after %d attempts", lock_id, attempts_count)
        return None

    def try_write_lock_and_run(
        self,
        lock_id: str,
        fn: Callable[[], R],
        expires_in: int = DEFAULT_EXPIRES_IN,
        attempts_count: int = DEFAULT_ATTEMPTS_COUNT,
    ) -> R:
        """Run ``fn`` while holding the lock, always releasing it afterwards.

        Raises:
            ServiceError: ``internal_error`` if the lock could not be obtained
        """
        obtained = self.try_write_lock(lock_id, expires_in, attempts_count)
        if not obtained:
            raise internal_error("Could not obtain a lock", safe=True)
        try:
            return fn()
        finally:
            self.release_write_lock(obtained)
