"""
verifybot.bot.cogs.membership — Gateway-Triggered Reconciliation
=================================================================

Three gateway events reconcile members:

* ``on_member_join``      — the new member.
* ``on_guild_available`` / ``on_guild_join`` — every member in the guild
  snapshot (fires on startup for each guild, after member chunking).
* ``on_member_update``    — only when the nickname changed; the member is
  re-read from Discord first.

``on_guild_role_delete`` tells the role cache when the verification role
itself is deleted, so the next reconcile provisions a new one.

Results are discarded.  Failures are logged and never escape a listener.
The bot's own renames come back as ``on_member_update`` events; they
reconcile to a no-op.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord.ext import commands

from verifybot.bot.platform import guild_record, member_record
from verifybot.engine.reconcile import ReconcileError
from verifybot.engine.types import PlatformError

if TYPE_CHECKING:
    from verifybot.bot.core import VerifyBot
    from verifybot.engine.types import GuildRecord, MemberRecord

logger = logging.getLogger(__name__)


class Membership(commands.Cog, name="Membership"):
    """Keeps members in sync as gateway events arrive."""

    def __init__(self, bot: VerifyBot) -> None:
        self.bot = bot

    async def _reconcile_quietly(
        self, member: MemberRecord, guild: GuildRecord | None = None,
    ) -> None:
        try:
            await self.bot.reconciler.reconcile(member, guild)
        except ReconcileError as exc:
            logger.warning("Reconcile failed: %s", exc)
        except Exception:
            logger.exception(
                "Unexpected error reconciling member %d", member.id,
                extra={"user_id": member.id, "guild_id": member.guild_id},
            )

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        """GUILD_MEMBER_ADD → reconcile the new member."""
        logger.info("Member joined: %s (ID: %d)", member.display_name, member.id)
        await self._reconcile_quietly(member_record(member))

    @commands.Cog.listener()
    async def on_guild_available(self, guild: discord.Guild) -> None:
        """GUILD_CREATE → reconcile every member in the snapshot."""
        await self._reconcile_guild(guild)

    @commands.Cog.listener()
    async def on_guild_join(self, guild: discord.Guild) -> None:
        await self._reconcile_guild(guild)

    async def _reconcile_guild(self, guild: discord.Guild) -> None:
        snapshot = guild_record(guild)
        logger.info(
            "Guild available: %s (ID: %d) — reconciling %d members",
            guild.name, guild.id, len(guild.members),
        )
        for member in list(guild.members):
            await self._reconcile_quietly(member_record(member), snapshot)

    @commands.Cog.listener()
    async def on_guild_role_delete(self, role: discord.Role) -> None:
        """GUILD_ROLE_DELETE → forget the verification role if it was this one."""
        if self.bot.role_cache.role_deleted(role.guild.id, role.id):
            logger.warning(
                "Verification role %d deleted in guild %d; it will be re-provisioned",
                role.id, role.guild.id,
            )

    @commands.Cog.listener()
    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        """GUILD_MEMBER_UPDATE → reconcile, but only on nickname changes."""
        if before.nick == after.nick:
            return

        try:
            current = await self.bot.platform.fetch_member(after.guild.id, after.id)
        except PlatformError as exc:
            logger.warning(
                "Could not re-read member %d in guild %d: %s",
                after.id, after.guild.id, exc,
            )
            return

        await self._reconcile_quietly(current)


async def setup(bot: VerifyBot) -> None:
    await bot.add_cog(Membership(bot))
