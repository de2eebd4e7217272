"""
verifybot.constants — Shared Constants
=======================================

Single source of truth for the marker glyph, the default verification
role appearance, and the Discord limits the nickname policy has to respect.
"""

from __future__ import annotations

# ---------------------------------------------------------------------------
# Verification marker
# ---------------------------------------------------------------------------
VERIFIED_MARKER = "\u2713"  # ✓

# Embedded markers are rewritten to this so nobody can fake the suffix.
MARKER_REPLACEMENT = "_"

# ---------------------------------------------------------------------------
# Verification role defaults (overridable in config.yaml)
# ---------------------------------------------------------------------------
DEFAULT_ROLE_NAME = "UTexas Verified"
DEFAULT_ROLE_COLOR = 0xBF5700  # burnt orange

# ---------------------------------------------------------------------------
# Discord limits
# ---------------------------------------------------------------------------
NICKNAME_MAX_LENGTH = 32
MEMBER_PAGE_LIMIT = 1000  # max members per GET /guilds/{id}/members page

# Audit-log reason attached to every mutation the bot makes
AUDIT_REASON = "VerifyBot: verification status sync"
