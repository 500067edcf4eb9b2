"""
Async runner for dramatiq tasks.

Actors are synchronous; their async bodies run on one event loop per worker
thread, and each body gets its own NullPool engine so no connection is
shared across loops.
"""

import asyncio
import threading
from collections.abc import AsyncIterator, Coroutine
from contextlib import asynccontextmanager
from typing import Any, TypeVar

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from jobs.utils.database import create_task_engine, create_task_session_maker
from paylink.config.settings import Settings

T = TypeVar("T")

_thread_local = threading.local()


def get_event_loop() -> asyncio.AbstractEventLoop:
    """Event loop of the current worker thread, created on first use."""
    loop = getattr(_thread_local, "loop", None)
    if loop is None or loop.is_closed():
        loop = asyncio.new_event_loop()
        asyncio.set_event_loop(loop)
        _thread_local.loop = loop
        logger.debug(f"Created event loop for {threading.current_thread().name}")
    return loop


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """
    Run a job body to completion on the thread's loop.

    Errors are logged and re-raised so the Retries middleware sees them.
    """
    try:
        return get_event_loop().run_until_complete(coro)
    except Exception as e:
        logger.exception(f"Job body failed: {e}")
        raise


@asynccontextmanager
async def task_sessions(
    settings: Settings,
) -> AsyncIterator[async_sessionmaker[AsyncSession]]:
    """
    Session maker bound to a throwaway engine for one job run.

    Usage:
        async with task_sessions(settings) as session_maker:
            async with session_maker() as session:
                ...
    """
    engine = create_task_engine(settings)
    try:
        yield create_task_session_maker(engine)
    finally:
        await engine.dispose()
