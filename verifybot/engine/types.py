"""
verifybot.engine.types — Records and Collaborator Contracts
============================================================

The reconciliation engine never touches discord.py objects directly.
Everything it reads is one of the frozen records below, and everything it
does goes through a :class:`PlatformClient` or a :class:`VerificationStore`.
That keeps the engine testable with plain fakes and lets the discord.py
adapter (:mod:`verifybot.bot.platform`) stay a thin translation layer.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Protocol

__all__ = [
    "GuildRecord",
    "MemberRecord",
    "PlatformClient",
    "PlatformError",
    "RoleCacheError",
    "RoleProvider",
    "RoleRecord",
    "VerificationStore",
    "VerificationStoreError",
]


# ---------------------------------------------------------------------------
# Errors raised by collaborators
# ---------------------------------------------------------------------------
class PlatformError(Exception):
    """A platform call failed (network, HTTP status, or missing permission)."""

    def __init__(self, operation: str, detail: str = "") -> None:
        self.operation = operation
        self.detail = detail
        super().__init__(f"{operation} failed: {detail}" if detail else f"{operation} failed")


class VerificationStoreError(Exception):
    """The verification store could not answer a lookup."""


class RoleCacheError(Exception):
    """The durable guild → role mapping could not be read or written."""


# ---------------------------------------------------------------------------
# Records
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class MemberRecord:
    """A member of one guild, as observed right before reconciliation."""

    id: int
    guild_id: int
    display_name: str
    role_ids: frozenset[int] = frozenset()
    is_administrator: bool = False


@dataclass(frozen=True, slots=True)
class GuildRecord:
    """A guild and its current roles (role id → role name)."""

    id: int
    name: str = ""
    roles: Mapping[int, str] = field(default_factory=dict)

    def find_role_named(self, name: str) -> int | None:
        """Return the lowest role id whose name is *name*, if any."""
        matches = [rid for rid, rname in self.roles.items() if rname == name]
        return min(matches) if matches else None


@dataclass(frozen=True, slots=True)
class RoleRecord:
    id: int
    guild_id: int
    name: str


# ---------------------------------------------------------------------------
# Contracts
# ---------------------------------------------------------------------------
class PlatformClient(Protocol):
    """Everything the core needs from the chat platform.

    Every method may raise :class:`PlatformError`.
    """

    async def get_guild(self, guild_id: int) -> GuildRecord: ...

    async def fetch_member(self, guild_id: int, user_id: int) -> MemberRecord: ...

    async def list_members(
        self, guild_id: int, *, after: int | None = None, limit: int = 1000,
    ) -> list[MemberRecord]:
        """Return one page of members with ids greater than *after*, ascending."""
        ...

    async def add_role(self, member: MemberRecord, role_id: int) -> None: ...

    async def rename_member(self, member: MemberRecord, new_name: str) -> None: ...

    async def create_role(
        self,
        guild_id: int,
        *,
        name: str,
        color: int,
        hoist: bool,
        mentionable: bool,
    ) -> RoleRecord: ...

    async def fetch_role_ids(self, guild_id: int) -> frozenset[int]:
        """Return the ids of every role in the guild, read from the API, not a cache."""
        ...

    async def delete_role(self, guild_id: int, role_id: int) -> None: ...


class RoleProvider(Protocol):
    """Resolves (and if needed provisions) a guild's verification role.

    May raise :class:`PlatformError` or :class:`RoleCacheError`.
    """

    def get(self, guild_id: int) -> int | None: ...

    async def get_or_create_role(self, guild: GuildRecord) -> int: ...


class VerificationStore(Protocol):
    """Read-only view of the verification system of record."""

    async def is_verified(self, user_id: int) -> bool: ...
