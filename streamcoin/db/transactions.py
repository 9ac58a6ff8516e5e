"""Multi-document atomic writes on top of Motor client sessions."""

from contextlib import asynccontextmanager
from typing import AsyncIterator

from motor.motor_asyncio import AsyncIOMotorClientSession

from streamcoin.core.config import get_settings
from streamcoin.db.init import get_client


def transactions_enabled() -> bool:
    return get_settings().mongodb_transactions and get_client() is not None


@asynccontextmanager
async def atomic() -> AsyncIterator[AsyncIOMotorClientSession | None]:
    """
    Yield a session with an open transaction; writes passing it commit together
    when the block exits and abort if it raises. Yields None when transactions
    are disabled, in which case each write is only atomic on its own document.
    """
    if not transactions_enabled():
        yield None
        return
    async with await get_client().start_session() as session:
        async with session.start_transaction():
            yield session
