"""
verifybot.database.models — SQLAlchemy 2.0 Data Models
=======================================================

Tables:
- guild_verification_roles — one verification role per guild (role cache)
- verified_users           — Discord users who completed verification
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import BigInteger, DateTime, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all VerifyBot ORM models."""


# ---------------------------------------------------------------------------
# Role cache — guild snowflake → verification role snowflake
# ---------------------------------------------------------------------------
class GuildVerificationRole(Base):
    """The verification role provisioned for a guild.

    The primary key on ``guild_id`` is what makes first-creation safe:
    two writers racing for the same guild cannot both insert.
    """

    __tablename__ = "guild_verification_roles"

    guild_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    role_id: Mapped[int] = mapped_column(BigInteger, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    def __repr__(self) -> str:
        return f"<GuildVerificationRole guild={self.guild_id} role={self.role_id}>"


# ---------------------------------------------------------------------------
# Verified users — existence of a row means "verified"
# ---------------------------------------------------------------------------
class VerifiedUser(Base):
    """A Discord account that completed verification.

    Rows are written by the verification website; the bot only reads them.
    """

    __tablename__ = "verified_users"

    discord_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    verified_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )
