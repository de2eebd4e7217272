"""
verifybot.engine.nickname — Marker & Nickname Policy
=====================================================

Pure functions, no I/O.  Given a display name and a verification status,
decide what the name *should* be and whether the member needs the role.

Rules:
    * Every marker glyph already in the name is replaced with ``_`` — only
      the bot may put a marker there.
    * A verified member whose name already ends with the marker keeps that
      trailing marker; only markers before it are sanitized, so a name that
      is already correct is never rewritten.
    * Otherwise a verified member gets ``" " + marker`` appended.
    * Names are kept within Discord's nickname limit by trimming the base,
      never the suffix.
"""

from __future__ import annotations

from dataclasses import dataclass

from verifybot.constants import MARKER_REPLACEMENT, NICKNAME_MAX_LENGTH, VERIFIED_MARKER

__all__ = ["DesiredState", "clean_display_name", "desired_state", "has_marker_suffix"]


@dataclass(frozen=True, slots=True)
class DesiredState:
    display_name: str
    needs_role: bool


def clean_display_name(name: str, marker: str = VERIFIED_MARKER) -> str:
    """Replace every occurrence of *marker* in *name* with ``_``."""
    return name.replace(marker, MARKER_REPLACEMENT)


def has_marker_suffix(name: str, marker: str = VERIFIED_MARKER) -> bool:
    return name.endswith(marker)


def _with_suffix(base: str, suffix: str, limit: int) -> str:
    room = limit - len(suffix)
    if len(base) > room:
        base = base[:room].rstrip()
    return base + suffix


def desired_state(
    display_name: str,
    verified: bool,
    *,
    marker: str = VERIFIED_MARKER,
    max_length: int = NICKNAME_MAX_LENGTH,
) -> DesiredState:
    """Compute the target display name and role membership.

    >>> desired_state("alice", True).display_name
    'alice ✓'
    >>> desired_state("bob✓fake", False).display_name
    'bob_fake'
    """
    if verified and has_marker_suffix(display_name, marker):
        base = clean_display_name(display_name[: -len(marker)], marker)
        return DesiredState(display_name=base + marker, needs_role=True)

    cleaned = clean_display_name(display_name, marker)
    if verified:
        cleaned = _with_suffix(cleaned, f" {marker}", max_length)
    return DesiredState(display_name=cleaned, needs_role=verified)
