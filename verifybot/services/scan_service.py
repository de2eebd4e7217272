"""
verifybot.services.scan_service — Admin-Triggered Guild Rescan
===============================================================

Runs the reconciler over every member of a guild.

How it works:
    1. Refuse unless the invoking member has the Administrator permission
       (no platform calls at all in that case).
    2. Fetch the guild once, so every member shares one role snapshot.
    3. Page through the member list (1000 per page by default) by member
       id, reconciling each member in turn.
    4. Collect per-member failures; one bad member never stops the scan.

The scan always reports completion; the failure count rides along so the
command layer can show it.
"""

from __future__ import annotations

import enum
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from verifybot.constants import MEMBER_PAGE_LIMIT
from verifybot.engine.reconcile import ReconcileError

if TYPE_CHECKING:
    from verifybot.engine.reconcile import Reconciler
    from verifybot.engine.types import MemberRecord, PlatformClient

logger = logging.getLogger(__name__)


class ScanStatus(enum.StrEnum):
    COMPLETED = "completed"
    PERMISSION_DENIED = "permission_denied"


@dataclass(frozen=True, slots=True)
class ScanFailure:
    """One member the scan could not reconcile.  Plain values, no exception."""

    member_id: int
    step: str
    detail: str


@dataclass
class ScanResult:
    """Outcome of one ``/rescan``."""

    status: ScanStatus
    guild_id: int
    scanned: int = 0
    changed: int = 0
    failures: list[ScanFailure] = field(default_factory=list)

    @property
    def failed(self) -> int:
        return len(self.failures)

    @property
    def completed(self) -> bool:
        return self.status is ScanStatus.COMPLETED


class Scanner:
    """Bulk reconciliation over a guild roster."""

    def __init__(
        self,
        platform: PlatformClient,
        reconciler: Reconciler,
        *,
        page_size: int = MEMBER_PAGE_LIMIT,
    ) -> None:
        self._platform = platform
        self._reconciler = reconciler
        self._page_size = page_size

    async def scan(self, invoker: MemberRecord, guild_id: int) -> ScanResult:
        """Reconcile every member of *guild_id* on behalf of *invoker*.

        Raises
        ------
        PlatformError
            Only if the guild itself or a member page cannot be fetched.
            Per-member failures are recorded in the result instead.
        """
        if not invoker.is_administrator:
            logger.info(
                "Rescan denied for member %d in guild %d: not an administrator",
                invoker.id, guild_id,
            )
            return ScanResult(status=ScanStatus.PERMISSION_DENIED, guild_id=guild_id)

        guild = await self._platform.get_guild(guild_id)
        result = ScanResult(status=ScanStatus.COMPLETED, guild_id=guild_id)
        logger.info("Rescan of guild %d started by member %d", guild_id, invoker.id)

        after: int | None = None
        while True:
            page = await self._platform.list_members(
                guild_id, after=after, limit=self._page_size,
            )
            for member in page:
                result.scanned += 1
                try:
                    if await self._reconciler.reconcile(member, guild):
                        result.changed += 1
                except ReconcileError as exc:
                    logger.warning("Rescan: %s", exc)
                    result.failures.append(
                        ScanFailure(member_id=exc.member_id, step=exc.step, detail=str(exc.cause)),
                    )

            if len(page) < self._page_size:
                break
            after = max(m.id for m in page)

        logger.info(
            "Rescan of guild %d complete: scanned=%d changed=%d failed=%d",
            guild_id, result.scanned, result.changed, result.failed,
        )
        return result
