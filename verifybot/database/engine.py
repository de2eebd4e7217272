"""
verifybot.database.engine — Engine, Sessions & the Thread Bridge
=================================================================

Two tables live behind this engine: the per-guild role cache and the
verified-user list.  Both are read and written with plain synchronous
SQLAlchemy functions, and the async side of the bot reaches them through
:func:`run_db`, which hands the call to a worker thread so a slow query
never stalls the gateway heartbeat.

Startup sequence::

    engine = create_db_engine()          # DATABASE_URL from the environment
    init_db(engine)                      # create missing tables

    verified = await run_db(user_exists, engine, member_id)
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import ParamSpec, TypeVar

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session

from verifybot.database.models import Base

logger = logging.getLogger(__name__)

P = ParamSpec("P")
T = TypeVar("T")


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------
def database_url(url: str | None = None) -> str:
    """Return *url*, falling back to ``DATABASE_URL``.

    Raises :class:`RuntimeError` when neither is set.
    """
    resolved = url or os.getenv("DATABASE_URL")
    if not resolved:
        raise RuntimeError(
            "DATABASE_URL is not set.  "
            "Copy .env.example to .env and point it at a PostgreSQL database."
        )
    return resolved


def create_db_engine(url: str | None = None) -> Engine:
    """Build the bot's :class:`Engine`.

    Traffic is light (role provisioning and one lookup per reconcile), so
    the pool stays small and connections are pinged before reuse.
    """
    engine = create_engine(
        database_url(url),
        pool_size=5,
        max_overflow=5,
        pool_pre_ping=True,
        pool_recycle=1800,
    )
    logger.info("Database engine ready (host: %s)", engine.url.host)
    return engine


def init_db(engine: Engine) -> None:
    """Create any missing tables.  Alembic owns the production schema."""
    Base.metadata.create_all(engine)
    logger.info("Database schema checked.")


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------
@contextmanager
def get_session(engine: Engine) -> Iterator[Session]:
    """Transactional session: commit when the block exits cleanly, else roll back."""
    with Session(engine) as session, session.begin():
        yield session


async def run_db(func: Callable[P, T], *args: P.args, **kwargs: P.kwargs) -> T:
    """Await a synchronous DB function on the default thread pool."""
    return await asyncio.to_thread(func, *args, **kwargs)
