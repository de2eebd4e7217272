"""
verifybot.bot.core — Bot Instance & Cog Loader
===============================================

Defines :class:`VerifyBot`, a ``commands.Bot`` subclass that owns every
piece of shared state and hands it to the cogs:

* ``bot.cfg`` / ``bot.secrets`` — soft settings and validated secrets.
* ``bot.engine`` — SQLAlchemy engine (role cache + verification store).
* ``bot.role_cache`` — per-guild verification role cache.
* ``bot.reconciler`` / ``bot.scanner`` — the reconciliation core.

Nothing lives in module globals; tests build the pieces directly.
"""

from __future__ import annotations

import logging
import os

import discord
from discord.ext import commands
from sqlalchemy import Engine

from verifybot.bot.platform import DiscordPlatform
from verifybot.config import Secrets, VerifyConfig
from verifybot.engine.reconcile import Reconciler
from verifybot.services.role_cache import RoleCache
from verifybot.services.scan_service import Scanner
from verifybot.services.verification_store import SqlVerificationStore

logger = logging.getLogger(__name__)

# Cog modules to load on startup.
EXTENSIONS: list[str] = [
    "verifybot.bot.cogs.membership",
    "verifybot.bot.cogs.admin",
]


class VerifyBot(commands.Bot):
    """Custom Bot subclass that carries project-wide state.

    Parameters
    ----------
    cfg:
        Soft settings from ``config.yaml``.
    secrets:
        Validated secrets (token, application id, shared key).
    engine:
        A SQLAlchemy :class:`Engine` holding the role cache and
        ``verified_users`` tables.
    """

    def __init__(self, cfg: VerifyConfig, secrets: Secrets, engine: Engine) -> None:
        # GUILD_MEMBERS is privileged (enable it in the Developer Portal):
        # needed for join/update events and the member list.
        intents = discord.Intents.default()
        intents.members = True
        intents.presences = False

        super().__init__(
            command_prefix=cfg.bot_prefix,
            intents=intents,
            application_id=secrets.application_id,
            description="Syncs the verified role and ✓ marker with verification status",
        )

        self.cfg = cfg
        self.secrets = secrets
        self.engine = engine

        self.platform = DiscordPlatform(self)
        self.verification_store = SqlVerificationStore(engine)
        self.role_cache = RoleCache(
            engine,
            self.platform,
            role_name=cfg.role_name,
            role_color=cfg.role_color,
        )
        self.reconciler = Reconciler(
            self.platform,
            self.verification_store,
            self.role_cache,
            marker=cfg.marker,
        )
        self.scanner = Scanner(self.platform, self.reconciler, page_size=cfg.scan_page_size)

    # -----------------------------------------------------------------------
    # Lifecycle hooks
    # -----------------------------------------------------------------------
    async def setup_hook(self) -> None:
        """Load every cog before connecting.

        A cog that fails to load is logged and skipped; the others still run.
        """
        for ext in EXTENSIONS:
            try:
                await self.load_extension(ext)
                logger.info("Loaded extension: %s", ext)
            except Exception as exc:
                logger.error("Failed to load extension %s: %s", ext, exc)

    async def on_ready(self) -> None:
        """Fired when the bot has connected and the cache is populated."""
        assert self.user is not None  # guaranteed after on_ready
        logger.info("Logged in as %s (ID: %s)", self.user.name, self.user.id)

        # --- Slash-command sync ---------------------------------------------
        dev_guild_id = os.getenv("DEV_GUILD_ID")
        if dev_guild_id:
            guild = discord.Object(id=int(dev_guild_id))
            self.tree.copy_global_to(guild=guild)
            synced = await self.tree.sync(guild=guild)
            logger.info("Synced %d commands to dev guild %s", len(synced), dev_guild_id)
        else:
            synced = await self.tree.sync()
            logger.info("Synced %d commands globally", len(synced))
