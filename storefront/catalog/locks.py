"""Per-product write serialization.

Matching is read-then-write, so two concurrent writers for the same product
could both miss a combination and both create it. Every mutating entry
point takes the product's lock through the session it writes with, and the
lock stays held until that session's transaction commits or rolls back.
The next writer therefore matches against committed groups. Different
products never contend.
"""

import asyncio
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from weakref import WeakValueDictionary

import structlog
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import Session, SessionTransaction

logger = structlog.get_logger()

HELD_LOCKS_KEY = "held_product_locks"


def _release_on_transaction_end(session: Session, transaction: SessionTransaction) -> None:
    # Savepoints end inside the outer transaction.
    if transaction.parent is not None:
        return
    held: dict[int, asyncio.Lock] = session.info.pop(HELD_LOCKS_KEY, {})
    for lock in held.values():
        lock.release()
    if held:
        logger.debug("Product locks released", product_ids=sorted(held))


class ProductLockRegistry:
    """Hands out one asyncio.Lock per product ID.

    A lock belongs to the session that took it, so ``hold`` is re-entrant
    per session: an orchestrating service can take the lock and call other
    services sharing its session that take it again.
    """

    def __init__(self) -> None:
        self._locks: WeakValueDictionary[int, asyncio.Lock] = WeakValueDictionary()

    def _lock_for(self, product_id: int) -> asyncio.Lock:
        lock = self._locks.get(product_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[product_id] = lock
        return lock

    def is_held(self, session: AsyncSession, product_id: int) -> bool:
        """True when ``session`` already holds the product's lock."""
        return product_id in session.info.get(HELD_LOCKS_KEY, {})

    @asynccontextmanager
    async def hold(self, session: AsyncSession, product_id: int) -> AsyncIterator[None]:
        """Take the product's lock for the rest of the session's transaction.

        The lock is not released when the block exits. It is released when
        the transaction ends, after its commit or rollback.
        """
        if not self.is_held(session, product_id):
            await self._acquire(session, product_id)
        yield

    async def _acquire(self, session: AsyncSession, product_id: int) -> None:
        lock = self._lock_for(product_id)
        await lock.acquire()

        sync_session = session.sync_session
        if not sync_session.in_transaction():
            sync_session.begin()
        session.info.setdefault(HELD_LOCKS_KEY, {})[product_id] = lock
        if not event.contains(sync_session, "after_transaction_end", _release_on_transaction_end):
            event.listen(sync_session, "after_transaction_end", _release_on_transaction_end)


product_locks = ProductLockRegistry()
