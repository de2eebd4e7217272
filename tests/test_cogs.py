"""
tests/test_cogs.py — Gateway Listeners & Slash Commands
========================================================
The cogs are thin: they translate discord.py objects into records, call
the core, and never let a failure escape.
"""

from __future__ import annotations

import asyncio
import logging
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import discord

from verifybot.bot.cogs.admin import COMPLETED_TITLE, DENIED_TITLE, DM_TITLE, Admin
from verifybot.bot.cogs.membership import Membership
from verifybot.config import VerifyConfig
from verifybot.engine.reconcile import ReconcileError
from verifybot.engine.types import MemberRecord, PlatformError
from verifybot.services.scan_service import ScanResult, ScanStatus

GUILD_ID = 800


def run_async(coro):
    """Run an async coroutine in a fresh event loop."""
    return asyncio.run(coro)


def _member(member_id: int, nick: str | None = None, *, admin: bool = False) -> MagicMock:
    member = MagicMock(spec=discord.Member)
    member.id = member_id
    member.nick = nick
    member.display_name = nick or f"user{member_id}"
    member.guild = SimpleNamespace(id=GUILD_ID)
    member.roles = []
    member.guild_permissions = SimpleNamespace(administrator=admin)
    return member


def _bot() -> MagicMock:
    bot = MagicMock()
    bot.cfg = VerifyConfig()
    bot.reconciler.reconcile = AsyncMock(return_value=True)
    bot.platform.fetch_member = AsyncMock(
        return_value=MemberRecord(id=1, guild_id=GUILD_ID, display_name="fresh"),
    )
    bot.scanner.scan = AsyncMock()
    return bot


# ---------------------------------------------------------------------------
# Membership listeners
# ---------------------------------------------------------------------------
class TestMembershipCog:

    def test_join_reconciles_new_member(self):
        bot = _bot()
        run_async(Membership(bot).on_member_join(_member(1, "alice")))

        (record, guild), _ = bot.reconciler.reconcile.call_args
        assert record.id == 1
        assert record.display_name == "alice"
        assert guild is None

    def test_join_failure_is_logged_not_raised(self, caplog):
        bot = _bot()
        bot.reconciler.reconcile.side_effect = ReconcileError(
            1, GUILD_ID, "rename", PlatformError("rename_member", "403"),
        )

        with caplog.at_level(logging.WARNING, logger="verifybot.bot.cogs.membership"):
            run_async(Membership(bot).on_member_join(_member(1)))
        assert "rename failed" in caplog.text

    def test_unexpected_error_is_logged_not_raised(self, caplog):
        bot = _bot()
        bot.reconciler.reconcile.side_effect = RuntimeError("boom")

        with caplog.at_level(logging.ERROR, logger="verifybot.bot.cogs.membership"):
            run_async(Membership(bot).on_member_join(_member(1)))
        assert "Unexpected error reconciling member 1" in caplog.text

    def test_update_without_nick_change_is_ignored(self):
        bot = _bot()
        run_async(Membership(bot).on_member_update(_member(1, "same"), _member(1, "same")))

        bot.platform.fetch_member.assert_not_awaited()
        bot.reconciler.reconcile.assert_not_awaited()

    def test_nick_change_rereads_member_then_reconciles(self):
        bot = _bot()
        run_async(Membership(bot).on_member_update(_member(1, "old"), _member(1, "new")))

        bot.platform.fetch_member.assert_awaited_once_with(GUILD_ID, 1)
        (record, _), _ = bot.reconciler.reconcile.call_args
        assert record.display_name == "fresh"

    def test_nick_change_with_unreadable_member_is_dropped(self):
        bot = _bot()
        bot.platform.fetch_member.side_effect = PlatformError("fetch_member", "404")

        run_async(Membership(bot).on_member_update(_member(1, "old"), _member(1, None)))
        bot.reconciler.reconcile.assert_not_awaited()

    def test_guild_available_reconciles_every_member(self):
        bot = _bot()
        bot.reconciler.reconcile.side_effect = [
            True,
            ReconcileError(2, GUILD_ID, "add_role", PlatformError("add_role")),
            False,
        ]
        guild = MagicMock(spec=discord.Guild)
        guild.id = GUILD_ID
        guild.name = "Guild"
        guild.roles = [SimpleNamespace(id=GUILD_ID, name="@everyone")]
        guild.members = [_member(1), _member(2), _member(3)]

        run_async(Membership(bot).on_guild_available(guild))

        calls = bot.reconciler.reconcile.call_args_list
        assert [c.args[0].id for c in calls] == [1, 2, 3]
        assert all(c.args[1].id == GUILD_ID for c in calls)

    def test_verification_role_deletion_reaches_the_cache(self, caplog):
        bot = _bot()
        bot.role_cache.role_deleted.return_value = True
        role = SimpleNamespace(id=9001, guild=SimpleNamespace(id=GUILD_ID))

        with caplog.at_level(logging.WARNING, logger="verifybot.bot.cogs.membership"):
            run_async(Membership(bot).on_guild_role_delete(role))

        bot.role_cache.role_deleted.assert_called_once_with(GUILD_ID, 9001)
        assert "re-provisioned" in caplog.text


# ---------------------------------------------------------------------------
# /rescan
# ---------------------------------------------------------------------------
def _interaction(user, *, guild=True) -> MagicMock:
    interaction = MagicMock()
    interaction.guild = SimpleNamespace(id=GUILD_ID) if guild else None
    interaction.user = user
    interaction.response.send_message = AsyncMock()
    interaction.response.defer = AsyncMock()
    interaction.followup.send = AsyncMock()
    return interaction


def _sent_embed(mock: AsyncMock) -> discord.Embed:
    return mock.call_args.kwargs["embed"]


class TestRescanCommand:

    def test_dm_is_rejected(self):
        bot = _bot()
        interaction = _interaction(MagicMock(spec=discord.User), guild=False)

        run_async(Admin.rescan.callback(Admin(bot), interaction))

        assert _sent_embed(interaction.response.send_message).title == DM_TITLE
        bot.scanner.scan.assert_not_awaited()

    def test_completed_scan_reports_counts(self):
        bot = _bot()
        bot.scanner.scan.return_value = ScanResult(
            status=ScanStatus.COMPLETED, guild_id=GUILD_ID, scanned=10, changed=3,
        )
        interaction = _interaction(_member(1, admin=True))

        run_async(Admin.rescan.callback(Admin(bot), interaction))

        invoker, guild_id = bot.scanner.scan.call_args.args
        assert invoker.is_administrator is True
        assert guild_id == GUILD_ID
        embed = _sent_embed(interaction.followup.send)
        assert embed.title == COMPLETED_TITLE
        assert [f.value for f in embed.fields] == ["10", "3", "0"]

    def test_denied_scan_reports_permission_error(self):
        bot = _bot()
        bot.scanner.scan.return_value = ScanResult(
            status=ScanStatus.PERMISSION_DENIED, guild_id=GUILD_ID,
        )
        interaction = _interaction(_member(1))

        run_async(Admin.rescan.callback(Admin(bot), interaction))
        assert _sent_embed(interaction.followup.send).title == DENIED_TITLE

    def test_platform_failure_is_reported(self):
        bot = _bot()
        bot.scanner.scan.side_effect = PlatformError("list_members", "503")
        interaction = _interaction(_member(1, admin=True))

        run_async(Admin.rescan.callback(Admin(bot), interaction))
        assert _sent_embed(interaction.followup.send).title == "Rescan failed"


def test_help_is_ephemeral_and_mentions_the_role():
    bot = _bot()
    interaction = _interaction(_member(1))

    run_async(Admin.show_help.callback(Admin(bot), interaction))

    embed = _sent_embed(interaction.response.send_message)
    assert interaction.response.send_message.call_args.kwargs["ephemeral"] is True
    assert bot.cfg.role_name in embed.description
    assert embed.fields[0].name == "/rescan"
