"""Transactional record store used by the workflow services.

Every mutating workflow operation runs inside exactly one ``RecordStore.atomic``
block. The block is the only suspension point of an operation: it serializes
writers per entity, commits everything written inside it as a single unit, and
turns store failures into ``UnavailableError`` after rolling back.
"""

import asyncio
import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import TypeVar

from sqlalchemy import select
from sqlalchemy import exc as sa_exc
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from knowledge_hub.config import settings
from knowledge_hub.exceptions import ConstraintViolationError, StaleWriteError, UnavailableError

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT")

# Postgres names the constraint, SQLite lists its columns
_VERSION_RACE_MARKERS = (
    "uq_document_version",
    "document_versions.document_id, document_versions.version_number",
)


def _is_version_race(error: sa_exc.IntegrityError) -> bool:
    """Whether ``error`` is a lost race for the next version number."""
    message = str(error.orig)
    return any(marker in message for marker in _VERSION_RACE_MARKERS)


class RecordStore:
    """Per-entity atomic read-modify-write over an async SQLAlchemy session factory.

    Entity keys look like ``"document:<id>"``. Writers touching the same key
    are serialized in-process with an asyncio lock; across processes the
    ``SELECT ... FOR UPDATE`` issued by ``get_for_update`` and the table
    constraints provide the ordering.
    """

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        timeout: float | None = None,
    ):
        self.session_maker = session_maker
        self.timeout = timeout if timeout is not None else settings.STORE_TIMEOUT_SECONDS
        self._locks: dict[str, asyncio.Lock] = {}
        # Units of work currently using each key; the lock is dropped at zero.
        self._lock_refs: dict[str, int] = {}

    def _lock_for(self, key: str) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    def _retain(self, key: str) -> asyncio.Lock:
        self._lock_refs[key] = self._lock_refs.get(key, 0) + 1
        return self._lock_for(key)

    def _discard(self, key: str) -> None:
        refs = self._lock_refs.get(key, 0) - 1
        if refs > 0:
            self._lock_refs[key] = refs
            return
        self._lock_refs.pop(key, None)
        lock = self._locks.get(key)
        if lock is not None and not lock.locked():
            del self._locks[key]

    @asynccontextmanager
    async def atomic(self, *entity_keys: str) -> AsyncIterator[AsyncSession]:
        """Open a transaction holding the locks for ``entity_keys``.

        Commits on normal exit. Any exception rolls back; store-level failures
        are re-raised as ``UnavailableError`` (``StaleWriteError`` when a
        version number lost a race), other constraint or value rejections as
        ``ConstraintViolationError``; workflow errors pass through.
        """
        # Sorted acquisition keeps multi-entity operations deadlock free.
        keys = sorted(set(entity_keys))
        held: list[asyncio.Lock] = []
        try:
            async with asyncio.timeout(self.timeout):
                locks = [self._retain(key) for key in keys]
                try:
                    for lock in locks:
                        await lock.acquire()
                        held.append(lock)
                    async with self.session_maker() as session:
                        async with session.begin():
                            yield session
                finally:
                    for lock in reversed(held):
                        lock.release()
                    for key in keys:
                        self._discard(key)
        except TimeoutError as e:
            logger.error(f"Record store timed out after {self.timeout}s for {keys}")
            raise UnavailableError(f"Record store timed out after {self.timeout}s") from e
        except sa_exc.IntegrityError as e:
            if _is_version_race(e):
                logger.warning(f"Concurrent write conflict for {keys}: {e.orig}")
                raise StaleWriteError("Concurrent write conflict; state unchanged") from e
            logger.error(f"Store constraint rejected write for {keys}: {e.orig}")
            raise ConstraintViolationError(f"Write rejected by store constraint: {e.orig}") from e
        except sa_exc.DataError as e:
            logger.error(f"Store rejected value for {keys}: {e.orig}")
            raise ConstraintViolationError(f"Value rejected by store: {e.orig}") from e
        except (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError) as e:
            logger.error(f"Record store unavailable for {keys}: {e}")
            raise UnavailableError("Record store unavailable") from e

    @asynccontextmanager
    async def read(self) -> AsyncIterator[AsyncSession]:
        """Read-only session with the same timeout and error translation."""
        try:
            async with asyncio.timeout(self.timeout):
                async with self.session_maker() as session:
                    yield session
        except TimeoutError as e:
            logger.error(f"Record store read timed out after {self.timeout}s")
            raise UnavailableError(f"Record store timed out after {self.timeout}s") from e
        except (sa_exc.OperationalError, sa_exc.InterfaceError, sa_exc.TimeoutError) as e:
            logger.error(f"Record store unavailable: {e}")
            raise UnavailableError("Record store unavailable") from e


async def get_for_update(
    session: AsyncSession,
    model: type[ModelT],
    entity_id: str,
) -> ModelT | None:
    """Point-read a row by primary key, locking it for the rest of the transaction."""
    stmt = select(model).where(model.id == entity_id).with_for_update()  # type: ignore[attr-defined]
    result = await session.execute(stmt)
    return result.scalars().first()


def document_key(document_id: str) -> str:
    return f"document:{document_id}"


def request_key(request_id: str) -> str:
    return f"knowledge_request:{request_id}"
