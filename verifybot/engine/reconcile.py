"""
verifybot.engine.reconcile — Per-Member Convergence
====================================================

:class:`Reconciler` is the only code path that mutates members.  Every
trigger — join, nickname change, guild snapshot, ``/rescan`` — ends up in
:meth:`Reconciler.reconcile`.

One call:
    1. Ask the verification store whether the member is verified.
    2. If verified and missing the guild's verification role → add it.
    3. Compute the desired display name (see :mod:`verifybot.engine.nickname`)
       and rename only if it differs from the current one.
    4. Report whether anything was changed.

The role check and the name check are independent and both run on every
call.  Running ``reconcile`` again on unchanged state issues no calls and
returns ``False``.

Verification is one-way: a member who loses verified status keeps the role
and the marker.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from verifybot.constants import NICKNAME_MAX_LENGTH, VERIFIED_MARKER
from verifybot.engine.nickname import desired_state
from verifybot.engine.types import PlatformError, RoleCacheError, VerificationStoreError

if TYPE_CHECKING:
    from verifybot.engine.types import (
        GuildRecord,
        MemberRecord,
        PlatformClient,
        RoleProvider,
        VerificationStore,
    )

logger = logging.getLogger(__name__)

__all__ = ["ReconcileError", "Reconciler"]


class ReconcileError(Exception):
    """Reconciling one member failed.  Recoverable — other members are unaffected.

    ``step`` is one of ``"lookup"``, ``"role"``, ``"add_role"``, ``"rename"``.
    """

    def __init__(self, member_id: int, guild_id: int, step: str, cause: Exception) -> None:
        self.member_id = member_id
        self.guild_id = guild_id
        self.step = step
        self.cause = cause
        super().__init__(
            f"member {member_id} in guild {guild_id}: {step} failed: {cause}"
        )


class Reconciler:
    """Converges members to their verified / unverified state."""

    def __init__(
        self,
        platform: PlatformClient,
        store: VerificationStore,
        roles: RoleProvider,
        *,
        marker: str = VERIFIED_MARKER,
        max_name_length: int = NICKNAME_MAX_LENGTH,
    ) -> None:
        self._platform = platform
        self._store = store
        self._roles = roles
        self._marker = marker
        self._max_name_length = max_name_length

    async def reconcile(self, member: MemberRecord, guild: GuildRecord | None = None) -> bool:
        """Bring *member* in line with their verification status.

        *guild* may be passed by callers that already hold a fresh snapshot
        (bulk scans); otherwise it is fetched only when the role is needed.

        Returns ``True`` if a role was added or the member was renamed.

        Raises
        ------
        ReconcileError
            If the lookup, role provisioning, or a mutation failed.
        """
        try:
            verified = await self._store.is_verified(member.id)
        except VerificationStoreError as exc:
            raise ReconcileError(member.id, member.guild_id, "lookup", exc) from exc

        desired = desired_state(
            member.display_name,
            verified,
            marker=self._marker,
            max_length=self._max_name_length,
        )
        changed = False

        if desired.needs_role:
            role_id = self._roles.get(member.guild_id)
            # Holding the cached role proves it still exists; skip the guild read.
            if role_id is None or role_id not in member.role_ids:
                try:
                    if guild is None:
                        guild = await self._platform.get_guild(member.guild_id)
                    role_id = await self._roles.get_or_create_role(guild)
                except (PlatformError, RoleCacheError) as exc:
                    raise ReconcileError(member.id, member.guild_id, "role", exc) from exc

            if role_id not in member.role_ids:
                try:
                    await self._platform.add_role(member, role_id)
                except PlatformError as exc:
                    raise ReconcileError(member.id, member.guild_id, "add_role", exc) from exc
                logger.info(
                    "Granted verification role %d to member %d in guild %d",
                    role_id, member.id, member.guild_id,
                )
                changed = True

        if desired.display_name != member.display_name:
            try:
                await self._platform.rename_member(member, desired.display_name)
            except PlatformError as exc:
                raise ReconcileError(member.id, member.guild_id, "rename", exc) from exc
            logger.info(
                "Renamed member %d in guild %d: %r → %r",
                member.id, member.guild_id, member.display_name, desired.display_name,
            )
            changed = True

        if not changed:
            logger.debug("Member %d in guild %d already in sync", member.id, member.guild_id)
        return changed
