"""
Warning accumulator.

A member's warning total is the sum of their warning rows. Reading the
total, validating the change, writing the row and allocating the case all
happen in one serialised write transaction, so concurrent warnings for the
same member cannot lose updates.

Crossing a configured threshold dispatches the configured punishment once:
every threshold ``t`` with ``previous_total < t <= new_total`` fires exactly
one request, issued by the bot itself.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, List, Optional, Set

import discord

from casekeeper.database.db_connection import ConnectionManager
from casekeeper.datatypes.punishment_datatypes import (
    Case,
    MemberLike,
    NewCase,
    PunishmentRequest,
    PunishmentType,
    ThresholdPunishment,
    WarningRecord,
)
from casekeeper.moderation.case_ledger import CaseLedger
from casekeeper.moderation.errors import PunishmentError, ValidationError
from casekeeper.repositories.punishment_config_repo import PunishmentConfigRepo
from casekeeper.repositories.warning_repo import WarningRepo
from casekeeper.util.logger import get_logger

if TYPE_CHECKING:
    from casekeeper.moderation.punishment_executor import PunishmentExecutor

logger = get_logger("warnings")


@dataclass(slots=True)
class WarningResult:
    """New warning total of the member and the case recorded for the change."""

    total: int
    case: Case


class WarningAccumulator:
    """Adds and removes warnings and fires threshold punishments."""

    def __init__(self, db: ConnectionManager, ledger: CaseLedger, executor: "PunishmentExecutor") -> None:
        self._db = db
        self.ledger = ledger
        self.executor = executor
        self._pending: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def add_warning(
        self,
        member: MemberLike,
        moderator: discord.Member,
        reason: Optional[str] = None,
        amount: int = 1,
        **options,
    ) -> int:
        """Warn a member and return their new total.

        Raises:
            ValidationError: ``amount`` is not positive.
            EntitlementDenied: The moderator may not act on the member.
        """
        request = PunishmentRequest.create(
            member, moderator, PunishmentType.WARNING_ADDED, reason=reason, amount=amount, **options
        )
        await self.executor.authorize(request)
        result = await self.apply_warning(request)
        await self.executor.finish(request, result.case)
        return result.total

    async def remove_warnings(
        self,
        member: MemberLike,
        moderator: discord.Member,
        reason: Optional[str] = None,
        amount: Optional[int] = None,
        **options,
    ) -> int:
        """Remove ``amount`` warnings (all of them when None) and return the new total.

        Raises:
            ValidationError: The member has no warnings, or fewer than ``amount``.
        """
        request = PunishmentRequest.create(
            member, moderator, PunishmentType.WARNING_REMOVED, reason=reason, amount=amount, **options
        )
        await self.executor.authorize(request)
        result = await self.apply_removal(request)
        await self.executor.finish(request, result.case)
        return result.total

    async def total(self, guild_id: int, member_id: int) -> int:
        async with self._db.read() as conn:
            return await WarningRepo.total(conn, guild_id, member_id)

    async def history(self, guild_id: int, member_id: int) -> List[WarningRecord]:
        async with self._db.read() as conn:
            return await WarningRepo.history(conn, guild_id, member_id)

    # ------------------------------------------------------------------
    # Ledger writes (entitlement already checked)
    # ------------------------------------------------------------------

    async def apply_warning(self, request: PunishmentRequest) -> WarningResult:
        """Record a warning grant and dispatch any threshold it crosses."""
        guild_id = request.guild.id
        member_id = request.member.id
        amount = request.options.amount or 1

        async with self._db.transaction() as conn:
            previous = await WarningRepo.total(conn, guild_id, member_id)
            new_total = previous + amount
            if new_total < 0:
                raise ValidationError("Warning total cannot become negative.")

            await WarningRepo.insert(conn, guild_id, member_id, amount, request.options.reason)
            case = await self.ledger.record(self._new_case(request, amount), conn=conn)
            crossed = await PunishmentConfigRepo.crossed(conn, guild_id, previous, new_total)

        logger.info(
            "[WARNINGS] %s in guild %s now has %d warning(s) (+%d)",
            member_id, guild_id, new_total, amount,
        )
        for threshold in crossed:
            self._dispatch_threshold(request, threshold)
        return WarningResult(total=new_total, case=case)

    async def apply_removal(self, request: PunishmentRequest) -> WarningResult:
        """Record a warning removal. ``options.amount`` None removes everything."""
        guild_id = request.guild.id
        member_id = request.member.id
        amount = request.options.amount

        async with self._db.transaction() as conn:
            previous = await WarningRepo.total(conn, guild_id, member_id)
            if previous <= 0:
                raise ValidationError("That member has no warnings to remove.")

            if amount is None:
                await WarningRepo.delete_all(conn, guild_id, member_id)
                new_total = 0
            else:
                if amount > previous:
                    raise ValidationError(
                        f"That member only has {previous} warning(s); cannot remove {amount}."
                    )
                await WarningRepo.insert(conn, guild_id, member_id, -amount, request.options.reason)
                new_total = previous - amount

            case = await self.ledger.record(self._new_case(request, amount), conn=conn)

        logger.info(
            "[WARNINGS] %s in guild %s now has %d warning(s) (removed %s)",
            member_id, guild_id, new_total, "all" if amount is None else amount,
        )
        return WarningResult(total=new_total, case=case)

    # ------------------------------------------------------------------
    # Threshold configuration
    # ------------------------------------------------------------------

    async def set_threshold(self, punishment: ThresholdPunishment) -> None:
        if punishment.warnings < 1:
            raise ValidationError("Thresholds must be at least 1 warning.")
        if punishment.type.is_warning or punishment.type in _NOT_THRESHOLD_TYPES:
            raise ValidationError(f"{punishment.type.label} cannot be used as a threshold punishment.")
        async with self._db.transaction() as conn:
            await PunishmentConfigRepo.upsert(conn, punishment)

    async def remove_threshold(self, guild_id: int, warnings: int) -> bool:
        async with self._db.transaction() as conn:
            return await PunishmentConfigRepo.delete(conn, guild_id, warnings)

    async def thresholds(self, guild_id: int) -> List[ThresholdPunishment]:
        async with self._db.read() as conn:
            return await PunishmentConfigRepo.list_for_guild(conn, guild_id)

    # ------------------------------------------------------------------
    # Threshold dispatch
    # ------------------------------------------------------------------

    def _dispatch_threshold(self, origin: PunishmentRequest, threshold: ThresholdPunishment) -> None:
        guild = origin.guild
        request = PunishmentRequest.create(
            origin.member,
            guild.me,
            threshold.type,
            reason=f"Reached {threshold.warnings} warnings",
            time=threshold.time,
            soft=threshold.soft,
            days=threshold.days,
        )
        task = asyncio.get_running_loop().create_task(self._run_threshold(request, threshold))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _run_threshold(self, request: PunishmentRequest, threshold: ThresholdPunishment) -> None:
        try:
            case = await self.executor.apply(request)
        except PunishmentError as exc:
            logger.warning(
                "[WARNINGS] Threshold %d (%s) for %s in guild %s not applied: %s",
                threshold.warnings, threshold.type.value, request.member.id, request.guild.id, exc.message,
            )
        except Exception:
            logger.exception(
                "[WARNINGS] Threshold %d (%s) for %s in guild %s crashed",
                threshold.warnings, threshold.type.value, request.member.id, request.guild.id,
            )
        else:
            logger.info(
                "[WARNINGS] Threshold %d applied %s to %s in guild %s as case #%d",
                threshold.warnings, threshold.type.value, request.member.id, request.guild.id, case.index,
            )

    async def wait_pending(self) -> None:
        """Wait for every threshold punishment dispatched so far."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    @staticmethod
    def _new_case(request: PunishmentRequest, amount: Optional[int]) -> NewCase:
        return NewCase(
            guild_id=request.guild.id,
            victim_id=request.member.id,
            moderator_id=request.moderator.id,
            type=request.type,
            reason=request.options.reason,
            attachments=list(request.options.attachments),
            warning_amount=amount,
        )


_NOT_THRESHOLD_TYPES = {
    PunishmentType.UNBAN,
    PunishmentType.UNMUTE,
    PunishmentType.VOICE_UNMUTE,
    PunishmentType.VOICE_UNDEAFEN,
    PunishmentType.THREAD_MESSAGES_ADDED,
}
