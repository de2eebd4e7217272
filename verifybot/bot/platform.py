"""
verifybot.bot.platform — discord.py PlatformClient
===================================================

Translates between discord.py objects and the plain records the engine
works with, and turns ``discord.HTTPException`` (which covers ``Forbidden``
and ``NotFound``) into :class:`~verifybot.engine.types.PlatformError`.

Guilds and members come from the gateway cache when available and from the
REST API otherwise.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord

from verifybot.constants import AUDIT_REASON, MEMBER_PAGE_LIMIT
from verifybot.engine.types import GuildRecord, MemberRecord, PlatformError, RoleRecord

if TYPE_CHECKING:
    from discord.ext import commands

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# discord.py → records
# ---------------------------------------------------------------------------
def member_record(member: discord.Member) -> MemberRecord:
    return MemberRecord(
        id=member.id,
        guild_id=member.guild.id,
        display_name=member.display_name,
        role_ids=frozenset(role.id for role in member.roles),
        is_administrator=member.guild_permissions.administrator,
    )


def guild_record(guild: discord.Guild) -> GuildRecord:
    return GuildRecord(
        id=guild.id,
        name=guild.name,
        roles={role.id: role.name for role in guild.roles},
    )


class DiscordPlatform:
    """:class:`~verifybot.engine.types.PlatformClient` backed by a discord.py bot."""

    def __init__(self, bot: commands.Bot) -> None:
        self._bot = bot

    async def _guild(self, guild_id: int) -> discord.Guild:
        guild = self._bot.get_guild(guild_id)
        if guild is not None:
            return guild
        try:
            return await self._bot.fetch_guild(guild_id)
        except discord.HTTPException as exc:
            raise PlatformError("get_guild", str(exc)) from exc

    async def _member(self, guild_id: int, user_id: int) -> discord.Member:
        guild = await self._guild(guild_id)
        member = guild.get_member(user_id)
        if member is not None:
            return member
        try:
            return await guild.fetch_member(user_id)
        except discord.HTTPException as exc:
            raise PlatformError("fetch_member", str(exc)) from exc

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    async def get_guild(self, guild_id: int) -> GuildRecord:
        return guild_record(await self._guild(guild_id))

    async def fetch_member(self, guild_id: int, user_id: int) -> MemberRecord:
        return member_record(await self._member(guild_id, user_id))

    async def list_members(
        self, guild_id: int, *, after: int | None = None, limit: int = MEMBER_PAGE_LIMIT,
    ) -> list[MemberRecord]:
        guild = await self._guild(guild_id)
        cursor = discord.Object(id=after) if after is not None else None
        try:
            return [
                member_record(m)
                async for m in guild.fetch_members(limit=limit, after=cursor)
            ]
        except discord.HTTPException as exc:
            raise PlatformError("list_members", str(exc)) from exc

    # -------------------------------------------------------------------
    # Mutations
    # -------------------------------------------------------------------
    async def add_role(self, member: MemberRecord, role_id: int) -> None:
        target = await self._member(member.guild_id, member.id)
        try:
            await target.add_roles(discord.Object(id=role_id), reason=AUDIT_REASON)
        except discord.HTTPException as exc:
            raise PlatformError("add_role", str(exc)) from exc

    async def rename_member(self, member: MemberRecord, new_name: str) -> None:
        target = await self._member(member.guild_id, member.id)
        try:
            await target.edit(nick=new_name, reason=AUDIT_REASON)
        except discord.HTTPException as exc:
            raise PlatformError("rename_member", str(exc)) from exc

    async def create_role(
        self,
        guild_id: int,
        *,
        name: str,
        color: int,
        hoist: bool,
        mentionable: bool,
    ) -> RoleRecord:
        guild = await self._guild(guild_id)
        try:
            role = await guild.create_role(
                name=name,
                colour=discord.Colour(color),
                hoist=hoist,
                mentionable=mentionable,
                reason=AUDIT_REASON,
            )
        except discord.HTTPException as exc:
            raise PlatformError("create_role", str(exc)) from exc
        logger.info("Created role %r (ID: %d) in guild %d", role.name, role.id, guild_id)
        return RoleRecord(id=role.id, guild_id=guild_id, name=role.name)

    async def fetch_role_ids(self, guild_id: int) -> frozenset[int]:
        guild = await self._guild(guild_id)
        try:
            roles = await guild.fetch_roles()
        except discord.HTTPException as exc:
            raise PlatformError("fetch_role_ids", str(exc)) from exc
        return frozenset(role.id for role in roles)

    async def delete_role(self, guild_id: int, role_id: int) -> None:
        try:
            await self._bot.http.delete_role(guild_id, role_id, reason=AUDIT_REASON)
        except discord.HTTPException as exc:
            raise PlatformError("delete_role", str(exc)) from exc
