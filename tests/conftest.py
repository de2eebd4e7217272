"""
tests/conftest.py — Shared Test Fixtures
=========================================

In-memory SQLite for the durable tables, plus in-process fakes for the
two collaborators the core talks to (platform client, verification store).
"""

from __future__ import annotations

import asyncio
import dataclasses

import pytest
from sqlalchemy import Engine, create_engine
from sqlalchemy.pool import StaticPool

from verifybot.database.models import Base
from verifybot.engine.types import (
    GuildRecord,
    MemberRecord,
    PlatformError,
    RoleRecord,
    VerificationStoreError,
)

GUILD_ID = 111222333
EVERYONE_ROLE_ID = GUILD_ID  # Discord's @everyone role shares the guild id
MUTATIONS = frozenset({"add_role", "rename_member", "create_role", "delete_role"})


@pytest.fixture
def db_engine() -> Engine:
    """Create an in-memory SQLite engine with all VerifyBot tables.

    Uses StaticPool so all threads share the same in-memory database
    (required by ``asyncio.to_thread`` used in ``run_db``).
    """
    engine = create_engine(
        "sqlite://",
        echo=False,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(engine)
    return engine


# ---------------------------------------------------------------------------
# Fakes
# ---------------------------------------------------------------------------
class FakePlatform:
    """In-memory PlatformClient that records every call.

    ``fail`` maps an operation name to the member ids (or ``"*"``) for
    which it should raise :class:`PlatformError`.
    """

    def __init__(self) -> None:
        self.roles: dict[int, dict[int, str]] = {GUILD_ID: {EVERYONE_ROLE_ID: "@everyone"}}
        self.members: dict[int, MemberRecord] = {}
        self.calls: list[tuple] = []
        self.fail: dict[str, set] = {}
        self._next_role_id = 9000

    # --- test helpers ---------------------------------------------------
    def add_member(
        self,
        member_id: int,
        display_name: str,
        *,
        role_ids: frozenset[int] = frozenset(),
        is_administrator: bool = False,
        guild_id: int = GUILD_ID,
    ) -> MemberRecord:
        record = MemberRecord(
            id=member_id,
            guild_id=guild_id,
            display_name=display_name,
            role_ids=role_ids,
            is_administrator=is_administrator,
        )
        self.members[member_id] = record
        return record

    def guild(self, guild_id: int = GUILD_ID) -> GuildRecord:
        return GuildRecord(id=guild_id, name="Test Guild", roles=dict(self.roles.setdefault(guild_id, {})))

    def calls_to(self, operation: str) -> list[tuple]:
        return [c for c in self.calls if c[0] == operation]

    def mutation_calls(self) -> list[tuple]:
        return [c for c in self.calls if c[0] in MUTATIONS]

    def _maybe_fail(self, operation: str, key: object = "*") -> None:
        targets = self.fail.get(operation, set())
        if "*" in targets or key in targets:
            raise PlatformError(operation, "403 Forbidden (Missing Permissions)")

    # --- PlatformClient -------------------------------------------------
    async def get_guild(self, guild_id: int) -> GuildRecord:
        self.calls.append(("get_guild", guild_id))
        self._maybe_fail("get_guild")
        return self.guild(guild_id)

    async def fetch_member(self, guild_id: int, user_id: int) -> MemberRecord:
        self.calls.append(("fetch_member", guild_id, user_id))
        self._maybe_fail("fetch_member", user_id)
        return self.members[user_id]

    async def list_members(self, guild_id: int, *, after=None, limit: int = 1000):
        self.calls.append(("list_members", guild_id, after, limit))
        self._maybe_fail("list_members")
        ordered = sorted(
            (m for m in self.members.values() if m.guild_id == guild_id),
            key=lambda m: m.id,
        )
        if after is not None:
            ordered = [m for m in ordered if m.id > after]
        return ordered[:limit]

    async def add_role(self, member: MemberRecord, role_id: int) -> None:
        self.calls.append(("add_role", member.id, role_id))
        self._maybe_fail("add_role", member.id)
        current = self.members.get(member.id, member)
        self.members[member.id] = dataclasses.replace(
            current, role_ids=current.role_ids | {role_id},
        )

    async def rename_member(self, member: MemberRecord, new_name: str) -> None:
        self.calls.append(("rename_member", member.id, new_name))
        self._maybe_fail("rename_member", member.id)
        current = self.members.get(member.id, member)
        self.members[member.id] = dataclasses.replace(current, display_name=new_name)

    async def create_role(self, guild_id, *, name, color, hoist, mentionable) -> RoleRecord:
        self.calls.append(("create_role", guild_id, name, color, hoist, mentionable))
        await asyncio.sleep(0)  # yield, so concurrent callers can interleave
        self._maybe_fail("create_role")
        self._next_role_id += 1
        self.roles.setdefault(guild_id, {})[self._next_role_id] = name
        return RoleRecord(id=self._next_role_id, guild_id=guild_id, name=name)

    async def fetch_role_ids(self, guild_id: int) -> frozenset[int]:
        self.calls.append(("fetch_role_ids", guild_id))
        self._maybe_fail("fetch_role_ids")
        return frozenset(self.roles.get(guild_id, {}))

    async def delete_role(self, guild_id: int, role_id: int) -> None:
        self.calls.append(("delete_role", guild_id, role_id))
        self._maybe_fail("delete_role")
        self.roles.get(guild_id, {}).pop(role_id, None)


class FakeStore:
    """VerificationStore answering from a set of verified user ids."""

    def __init__(self) -> None:
        self.verified: set[int] = set()
        self.broken = False
        self.lookups: list[int] = []

    async def is_verified(self, user_id: int) -> bool:
        self.lookups.append(user_id)
        if self.broken:
            raise VerificationStoreError("connection refused")
        return user_id in self.verified


@pytest.fixture
def platform() -> FakePlatform:
    return FakePlatform()


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def role_cache(db_engine, platform):
    from verifybot.services.role_cache import RoleCache

    return RoleCache(db_engine, platform)


@pytest.fixture
def reconciler(platform, store, role_cache):
    from verifybot.engine.reconcile import Reconciler

    return Reconciler(platform, store, role_cache)
