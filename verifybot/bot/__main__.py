"""
verifybot.bot.__main__ — Entry point for ``python -m verifybot.bot``
=====================================================================

Wiring:
1. Load .env (secrets) and validate them — any problem is fatal.
2. Load config.yaml (soft settings).
3. Create the SQLAlchemy engine and ensure tables exist.
4. Warm the role cache from the database.
5. Create the VerifyBot and start it (blocking — runs the asyncio loop).

Run with::

    python -m verifybot.bot
"""

from __future__ import annotations

import logging
import sys

from dotenv import load_dotenv

from verifybot.bot.core import VerifyBot
from verifybot.config import ConfigError, load_config, load_secrets
from verifybot.database.engine import create_db_engine, init_db

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s",
    datefmt="%H:%M:%S",
)
logger = logging.getLogger("verifybot")


def main() -> None:
    """Bootstrap and run the bot."""

    # 1. Environment variables (secrets).
    load_dotenv()
    try:
        secrets = load_secrets()
        # 2. Soft configuration.
        cfg = load_config()
    except ConfigError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    logger.info("Config loaded — role: %s, marker: %s", cfg.role_name, cfg.marker)

    # 3. Database.
    try:
        engine = create_db_engine()
    except RuntimeError as exc:
        logger.critical("%s", exc)
        sys.exit(1)
    init_db(engine)

    # 4 + 5. Bot, with the role cache warmed before the first event.
    bot = VerifyBot(cfg=cfg, secrets=secrets, engine=engine)
    bot.role_cache.warm()

    logger.info("Starting VerifyBot…")
    try:
        bot.run(secrets.token, log_handler=None)
    except KeyboardInterrupt:
        logger.info("Shutting down gracefully…")


if __name__ == "__main__":
    main()
