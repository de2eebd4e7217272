"""
VerifyBot — Verified-Member Reconciliation for Discord
=======================================================
Keeps every guild member in one of two states: holding the verification
role *and* wearing the ``✓`` marker at the end of their display name, or
neither.  Verification status comes from an external store; this package
only converges Discord to match it.

Package layout::

    verifybot/
    ├── config.py          # .env secrets + YAML soft settings
    ├── constants.py       # Marker glyph, role defaults, platform limits
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # guild_verification_roles, verified_users
    ├── engine/
    │   ├── types.py       # Member/guild records + collaborator contracts
    │   ├── nickname.py    # Marker sanitizing and desired-name policy
    │   └── reconcile.py   # Per-member convergence (Reconciler)
    ├── services/
    │   ├── role_cache.py          # Durable guild → role id, lazy creation
    │   ├── verification_store.py  # SQL-backed is_verified lookup
    │   └── scan_service.py        # Admin-gated bulk reconciliation
    └── bot/
        ├── core.py        # Bot subclass, cog loader, wiring
        ├── platform.py    # discord.py implementation of PlatformClient
        └── cogs/
            ├── membership.py  # join / update / guild-available triggers
            └── admin.py       # /rescan, /help
"""

__version__ = "0.1.0"
