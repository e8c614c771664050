# gold_ledger/ledger/store.py

"""
Ledger store: the transactional boundary of every ledger operation.

Services never open sessions themselves. Mutations run through
`LedgerStore.transaction()` / `run_in_transaction()`, which serialize work per
alliance (in-process locks taken in ascending id order + row locks + optimistic
version column) and commit all entity updates together with their ledger
entries, or none of them.
"""

import asyncio
from contextlib import AsyncExitStack, asynccontextmanager
from functools import lru_cache
from typing import (
    AsyncIterator, Awaitable, Callable, Dict, Iterable, List, Optional, Sequence, TypeVar,
)

from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from gold_ledger.core.config import settings
from gold_ledger.core.db import get_session_factory
from gold_ledger.utils.logger import get_logger, ledger_context
from gold_ledger.ledger.exceptions import NotFoundException, TransactionConflictException
from gold_ledger.ledger.repository import LedgerRepository

logger = get_logger(__name__)

T = TypeVar("T")

# MySQL lock wait timeout / deadlock, PostgreSQL serialization failure / deadlock
CONFLICT_ERROR_CODES = {1205, 1213, "40001", "40P01"}
CONFLICT_MESSAGES = ("database is locked", "deadlock", "could not serialize")


def is_conflict_error(exc: DBAPIError) -> bool:
    """Whether a driver error means a concurrent writer got in the way"""
    orig = getattr(exc, "orig", None)
    codes = set(getattr(orig, "args", ())[:1])
    pgcode = getattr(orig, "pgcode", None) or getattr(orig, "sqlstate", None)
    if pgcode:
        codes.add(pgcode)
    if codes & CONFLICT_ERROR_CODES:
        return True
    message = str(orig or exc).lower()
    return any(fragment in message for fragment in CONFLICT_MESSAGES)


class AllianceLocks:
    """
    asyncio locks keyed by alliance id, always taken in ascending id order.

    A lock is dropped from the map as soon as nobody holds or waits for it.
    """

    def __init__(self):
        self._locks: Dict[int, asyncio.Lock] = {}
        self._users: Dict[int, int] = {}

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def _hold_one(self, alliance_id: int) -> AsyncIterator[None]:
        lock = self._locks.setdefault(alliance_id, asyncio.Lock())
        self._users[alliance_id] = self._users.get(alliance_id, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[alliance_id] -= 1
            if not self._users[alliance_id]:
                del self._users[alliance_id]
                del self._locks[alliance_id]

    @asynccontextmanager
    async def hold(self, alliance_ids: Sequence[int]) -> AsyncIterator[None]:
        async with AsyncExitStack() as stack:
            for alliance_id in sorted(set(alliance_ids)):
                await stack.enter_async_context(self._hold_one(alliance_id))
            yield


def lock_order(alliance_id: Optional[int], alliance_ids: Iterable[int] = ()) -> List[int]:
    """Distinct alliance ids of a transaction in the order they are locked"""
    ids = set(alliance_ids)
    if alliance_id is not None:
        ids.add(alliance_id)
    return sorted(ids)


class LedgerStore:
    """
    Transactional access to the ledger entities.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        retry_attempts: Optional[int] = None,
        retry_backoff_seconds: Optional[float] = None,
    ):
        self.session_factory = session_factory
        self.retry_attempts = max(1, retry_attempts or settings.conflict_retry_attempts)
        self.retry_backoff_seconds = (
            settings.conflict_retry_backoff_seconds
            if retry_backoff_seconds is None else retry_backoff_seconds
        )
        self.locks = AllianceLocks()

    @asynccontextmanager
    async def reader(self) -> AsyncIterator[LedgerRepository]:
        """Unlocked read-only access; nothing is committed"""
        async with self.session_factory() as session:
            yield LedgerRepository(session)

    @asynccontextmanager
    async def transaction(
        self,
        alliance_id: Optional[int] = None,
        alliance_ids: Iterable[int] = (),
    ) -> AsyncIterator[LedgerRepository]:
        """
        Open a transaction, serialized on every alliance given.

        Alliances are locked in ascending id order, both in process and in
        the database. Commits when the block exits normally; any exception
        rolls back every change made through the yielded repository.
        """
        locked_ids = lock_order(alliance_id, alliance_ids)
        if len(locked_ids) == 1:
            log_values = {"alliance_id": locked_ids[0]}
        else:
            log_values = {"alliance_ids": locked_ids or None}

        async with self.locks.hold(locked_ids):
            with ledger_context(**log_values):
                async with self.session_factory() as session:
                    try:
                        async with session.begin():
                            repo = LedgerRepository(session)
                            for locked_id in locked_ids:
                                if await repo.lock_alliance(locked_id) is None:
                                    raise NotFoundException("Alliance", locked_id)
                            yield repo
                    except StaleDataError as e:
                        logger.warning("Stale alliance version detected")
                        raise TransactionConflictException(str(e)) from e
                    except DBAPIError as e:
                        if is_conflict_error(e):
                            logger.warning("Database reported a write conflict")
                            raise TransactionConflictException(str(e.orig or e)) from e
                        raise

    async def run_in_transaction(
        self,
        work: Callable[[LedgerRepository], Awaitable[T]],
        alliance_id: Optional[int] = None,
        alliance_ids: Iterable[int] = (),
    ) -> T:
        """
        Run `work` in a transaction, retrying the whole unit on conflicts.
        """
        locked_ids = lock_order(alliance_id, alliance_ids)
        attempt = 1
        while True:
            try:
                async with self.transaction(alliance_ids=locked_ids) as repo:
                    return await work(repo)
            except TransactionConflictException:
                if attempt >= self.retry_attempts:
                    logger.error(
                        "Giving up after transaction conflicts",
                        alliance_ids=locked_ids, attempts=attempt
                    )
                    raise
                logger.warning(
                    "Retrying after transaction conflict",
                    alliance_ids=locked_ids, attempt=attempt
                )
                await asyncio.sleep(self.retry_backoff_seconds * attempt)
                attempt += 1


@lru_cache
def get_ledger_store() -> LedgerStore:
    """Application wide store bound to the configured database"""
    return LedgerStore(get_session_factory())
