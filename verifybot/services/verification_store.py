"""
verifybot.services.verification_store — SQL-backed Verification Lookup
=======================================================================

The verification website records each verified Discord account in the
``verified_users`` table.  The bot only asks one question of it: does a
row exist for this user?
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from verifybot.database.engine import run_db
from verifybot.database.models import VerifiedUser
from verifybot.engine.types import VerificationStoreError

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


def user_exists(engine: Engine, discord_id: int) -> bool:
    """Synchronous existence check.  Call through :func:`run_db`."""
    with Session(engine) as session:
        found = session.scalar(
            select(VerifiedUser.discord_id).where(VerifiedUser.discord_id == discord_id)
        )
        return found is not None


class SqlVerificationStore:
    """:class:`~verifybot.engine.types.VerificationStore` over ``verified_users``."""

    def __init__(self, engine: Engine) -> None:
        self._engine = engine

    async def is_verified(self, user_id: int) -> bool:
        try:
            return await run_db(user_exists, self._engine, user_id)
        except SQLAlchemyError as exc:
            logger.warning("Verification lookup failed for user %d: %s", user_id, exc)
            raise VerificationStoreError(str(exc)) from exc
