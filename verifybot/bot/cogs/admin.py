"""
verifybot.bot.cogs.admin — Slash Commands
==========================================

- /rescan — reconcile every member of the guild (Administrator only)
- /help   — what the bot does and which commands it has

The Administrator check lives in the scan service, not in an
``app_commands`` check, so a denied rescan never touches Discord.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

import discord
from discord import app_commands
from discord.ext import commands

from verifybot.bot.platform import member_record
from verifybot.engine.types import PlatformError
from verifybot.services.scan_service import ScanResult

if TYPE_CHECKING:
    from verifybot.bot.core import VerifyBot

logger = logging.getLogger(__name__)

DENIED_TITLE = "You must be a guild admin to run this command."
DM_TITLE = "This command must be run inside of a guild, not a DM."
COMPLETED_TITLE = "Command Completed"


def build_scan_embed(result: ScanResult) -> discord.Embed:
    """Render a :class:`ScanResult` as the reply embed."""
    if not result.completed:
        return discord.Embed(title=DENIED_TITLE, color=discord.Color.red())

    embed = discord.Embed(title=COMPLETED_TITLE, color=discord.Color.green())
    embed.add_field(name="Scanned", value=str(result.scanned), inline=True)
    embed.add_field(name="Updated", value=str(result.changed), inline=True)
    embed.add_field(name="Failed", value=str(result.failed), inline=True)
    return embed


class Admin(commands.Cog, name="Admin"):
    """Verification maintenance commands."""

    def __init__(self, bot: VerifyBot) -> None:
        self.bot = bot

    # -------------------------------------------------------------------
    # /rescan
    # -------------------------------------------------------------------
    @app_commands.command(
        name="rescan",
        description="Check all users in the guild for nickname compliance",
    )
    async def rescan(self, interaction: discord.Interaction) -> None:
        if interaction.guild is None or not isinstance(interaction.user, discord.Member):
            await interaction.response.send_message(
                embed=discord.Embed(title=DM_TITLE), ephemeral=True,
            )
            return

        # Large guilds take a while; acknowledge within Discord's 3 s window.
        await interaction.response.defer(thinking=True)

        try:
            result = await self.bot.scanner.scan(
                member_record(interaction.user), interaction.guild.id,
            )
        except PlatformError as exc:
            logger.warning("Rescan of guild %d aborted: %s", interaction.guild.id, exc)
            await interaction.followup.send(
                embed=discord.Embed(
                    title="Rescan failed",
                    description=str(exc),
                    color=discord.Color.red(),
                ),
            )
            return

        await interaction.followup.send(embed=build_scan_embed(result))

    # -------------------------------------------------------------------
    # /help
    # -------------------------------------------------------------------
    @app_commands.command(name="help", description="Learn more about the bot and its commands")
    async def show_help(self, interaction: discord.Interaction) -> None:
        marker = self.bot.cfg.marker
        embed = discord.Embed(
            title="VerifyBot",
            description=(
                f"Verified members get the **{self.bot.cfg.role_name}** role and a "
                f"{marker} at the end of their nickname.  Any other {marker} in a "
                "nickname is replaced with `_`."
            ),
            color=discord.Color(self.bot.cfg.role_color),
        )
        embed.add_field(
            name="/rescan",
            value="Re-check every member of this server (admins only).",
            inline=False,
        )
        await interaction.response.send_message(embed=embed, ephemeral=True)


async def setup(bot: VerifyBot) -> None:
    await bot.add_cog(Admin(bot))
