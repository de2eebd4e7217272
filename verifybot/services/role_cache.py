"""
verifybot.services.role_cache — Durable Guild → Verification Role Cache
========================================================================

Every guild gets exactly one verification role.  The first reconciliation
in a guild provisions it; every later one reads the id from memory.

Resolution order inside :meth:`RoleCache.get_or_create_role`:
  1. In-memory entry whose role still exists in the guild → return it.
  2. ``guild_verification_roles`` row (another process, or a restart).
  3. A role in the guild already carrying the configured name → adopt it.
  4. Create the role on the platform and record it.

First-creation is guarded twice.  Inside the process a per-guild
:class:`asyncio.Lock` lets only one task provision at a time; the others
wait and then find the entry.  Across processes the primary key on
``guild_id`` turns the write into an insert-if-absent: the loser reads the
winner's id, uses it, and deletes the duplicate role it created.

A role this process created, adopted or confirmed is trusted even when a
guild snapshot does not list it yet: the gateway cache learns about a new
role only when GUILD_ROLE_CREATE arrives.  Any other role missing from the
snapshot is checked against the REST role list, and only a role absent
there is dropped (compare-and-delete) and re-provisioned.  Deletions seen
on the gateway reach the cache through :meth:`RoleCache.role_deleted`.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from verifybot.constants import DEFAULT_ROLE_COLOR, DEFAULT_ROLE_NAME
from verifybot.database.engine import get_session, run_db
from verifybot.database.models import GuildVerificationRole
from verifybot.engine.types import GuildRecord, PlatformError, RoleCacheError

if TYPE_CHECKING:
    from sqlalchemy import Engine

    from verifybot.engine.types import PlatformClient

logger = logging.getLogger(__name__)

_INSERT_ATTEMPTS = 3


# ---------------------------------------------------------------------------
# Durable store (synchronous — call through run_db)
# ---------------------------------------------------------------------------
def load_role_map(engine: Engine) -> dict[int, int]:
    """Return every stored ``guild_id → role_id`` pair."""
    with Session(engine) as session:
        rows = session.scalars(select(GuildVerificationRole)).all()
        return {row.guild_id: row.role_id for row in rows}


def get_role_id(engine: Engine, guild_id: int) -> int | None:
    with Session(engine) as session:
        row = session.get(GuildVerificationRole, guild_id)
        return row.role_id if row else None


def insert_role_if_absent(engine: Engine, guild_id: int, role_id: int) -> int:
    """Record *role_id* for *guild_id* unless a mapping already exists.

    Returns the role id that ended up stored: *role_id* if this call won,
    otherwise the id written by whoever got there first.
    """
    for _ in range(_INSERT_ATTEMPTS):
        with Session(engine) as session:
            try:
                session.add(GuildVerificationRole(guild_id=guild_id, role_id=role_id))
                session.commit()
                return role_id
            except IntegrityError:
                session.rollback()

            existing = session.get(GuildVerificationRole, guild_id)
            if existing is not None:
                return existing.role_id
        # Row vanished between our failed insert and the read; try again.

    raise RoleCacheError(f"could not record verification role for guild {guild_id}")


def delete_role_if_matches(engine: Engine, guild_id: int, role_id: int) -> bool:
    """Delete the mapping only if it still points at *role_id*."""
    with get_session(engine) as session:
        result = session.execute(
            delete(GuildVerificationRole).where(
                GuildVerificationRole.guild_id == guild_id,
                GuildVerificationRole.role_id == role_id,
            )
        )
        return result.rowcount > 0


# ---------------------------------------------------------------------------
# RoleCache
# ---------------------------------------------------------------------------
class RoleCache:
    """Lazily provisioned, durable mapping of guild → verification role.

    Usage::

        cache = RoleCache(engine, platform)
        cache.warm()
        role_id = await cache.get_or_create_role(guild)
    """

    def __init__(
        self,
        engine: Engine,
        platform: PlatformClient,
        *,
        role_name: str = DEFAULT_ROLE_NAME,
        role_color: int = DEFAULT_ROLE_COLOR,
    ) -> None:
        self._engine = engine
        self._platform = platform
        self.role_name = role_name
        self.role_color = role_color

        # guild_id → role_id
        self._roles: dict[int, int] = {}
        # guild_id → role_id this process created, adopted or confirmed via REST
        self._confirmed: dict[int, int] = {}
        # guild_id → lock serializing first-creation
        self._locks: dict[int, asyncio.Lock] = {}

    # -------------------------------------------------------------------
    # Memory
    # -------------------------------------------------------------------
    def warm(self) -> int:
        """Load every stored mapping into memory.  Call once on startup."""
        self._roles.update(load_role_map(self._engine))
        logger.info("RoleCache loaded: %d guild roles", len(self._roles))
        return len(self._roles)

    def get(self, guild_id: int) -> int | None:
        return self._roles.get(guild_id)

    def forget(self, guild_id: int) -> None:
        """Drop the in-memory entry only; the durable row is kept."""
        self._roles.pop(guild_id, None)
        self._confirmed.pop(guild_id, None)

    def role_deleted(self, guild_id: int, role_id: int) -> bool:
        """Forget *role_id* if it is this guild's verification role.

        The next lookup re-checks the durable row against the REST role
        list and re-provisions.  Returns whether anything was forgotten.
        """
        if self._roles.get(guild_id) != role_id:
            return False
        self.forget(guild_id)
        return True

    def _trusted(self, guild: GuildRecord, role_id: int) -> bool:
        return self._confirmed.get(guild.id) == role_id or _role_listed(guild, role_id)

    def _lock_for(self, guild_id: int) -> asyncio.Lock:
        return self._locks.setdefault(guild_id, asyncio.Lock())

    # -------------------------------------------------------------------
    # Lookup / provisioning
    # -------------------------------------------------------------------
    async def get_or_create_role(self, guild: GuildRecord) -> int:
        """Return the guild's verification role id, creating the role if needed.

        Raises
        ------
        PlatformError
            If reading the role list or creating the role failed.  Nothing
            is recorded, so the next call tries again.
        RoleCacheError
            If the durable mapping could not be read or written.
        """
        role_id = self._roles.get(guild.id)
        if role_id is not None and self._trusted(guild, role_id):
            return role_id

        async with self._lock_for(guild.id):
            role_id = self._roles.get(guild.id)
            if role_id is None:
                role_id = await self._db(get_role_id, self._engine, guild.id)

            if role_id is not None:
                if self._trusted(guild, role_id) or await self._role_still_exists(guild.id, role_id):
                    self._remember(guild.id, role_id)
                    return role_id

                logger.warning(
                    "Verification role %d no longer exists in guild %d — re-provisioning",
                    role_id, guild.id,
                )
                await self._db(delete_role_if_matches, self._engine, guild.id, role_id)
                self._roles.pop(guild.id, None)

            role_id = await self._provision(guild)
            self._remember(guild.id, role_id)
            return role_id

    def _remember(self, guild_id: int, role_id: int) -> None:
        self._roles[guild_id] = role_id
        self._confirmed[guild_id] = role_id

    async def _role_still_exists(self, guild_id: int, role_id: int) -> bool:
        # The gateway cache lags behind role creation; ask the API.
        return role_id in await self._platform.fetch_role_ids(guild_id)

    async def _provision(self, guild: GuildRecord) -> int:
        existing = guild.find_role_named(self.role_name)
        if existing is not None:
            stored = await self._db(insert_role_if_absent, self._engine, guild.id, existing)
            logger.info(
                "Adopted existing role '%s' (%d) in guild %d",
                self.role_name, stored, guild.id,
            )
            return stored

        role = await self._platform.create_role(
            guild.id,
            name=self.role_name,
            color=self.role_color,
            hoist=True,
            mentionable=True,
        )
        stored = await self._db(insert_role_if_absent, self._engine, guild.id, role.id)
        if stored != role.id:
            logger.warning(
                "Guild %d already had verification role %d; removing duplicate %d",
                guild.id, stored, role.id,
            )
            try:
                await self._platform.delete_role(guild.id, role.id)
            except PlatformError:
                logger.warning(
                    "Could not delete duplicate role %d in guild %d",
                    role.id, guild.id, exc_info=True,
                )
        else:
            logger.info(
                "Created verification role '%s' (%d) in guild %d",
                self.role_name, role.id, guild.id,
            )
        return stored

    @staticmethod
    async def _db(func, *args):
        try:
            return await run_db(func, *args)
        except SQLAlchemyError as exc:
            raise RoleCacheError(str(exc)) from exc


def _role_listed(guild: GuildRecord, role_id: int) -> bool:
    # An empty mapping means the caller did not load roles; trust the cache.
    return not guild.roles or role_id in guild.roles
