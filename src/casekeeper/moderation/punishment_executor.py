"""
Punishment executor.

Turns a :class:`PunishmentRequest` into exactly one platform mutation and
exactly one :class:`Case`, in this order:

1. resolve the target member (REST fetch only for a bare reference)
2. entitlement check (hierarchy and bot permission)
3. the platform call for the punishment type
4. persist the case
5. schedule the timed reversal, if any
6. publish the case to the mod-log, if requested

A failed platform call raises :class:`PlatformError` before step 4, so a
case only ever exists for an action that happened.
A soft ban whose immediate unban fails keeps its case and hands the unban
to the reversal scheduler.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Dict, Optional

import discord

from casekeeper.datatypes.punishment_datatypes import (
    Case,
    FullMember,
    MemberReference,
    NewCase,
    PunishmentRequest,
    PunishmentType,
)
from casekeeper.moderation.case_ledger import CaseLedger
from casekeeper.moderation.entitlement import ensure_can_apply, required_permission_for
from casekeeper.moderation.errors import PlatformError, ValidationError
from casekeeper.moderation.modlog import ModLogPublisher
from casekeeper.repositories.scheduled_reversal_repo import ReversalJob
from casekeeper.scheduler.reversal_scheduler import ReversalScheduler
from casekeeper.settings.guild_settings_manager import GuildSettingsManager
from casekeeper.util.discord_utils import iter_manageable_channels
from casekeeper.util.logger import get_logger

if TYPE_CHECKING:
    from casekeeper.moderation.warnings import WarningAccumulator

logger = get_logger("punishment_executor")

# Types that act on a live member and cannot run against a bare id
_NEEDS_LIVE_MEMBER = {
    PunishmentType.KICK,
    PunishmentType.MUTE,
    PunishmentType.UNMUTE,
    PunishmentType.VOICE_MUTE,
    PunishmentType.VOICE_UNMUTE,
    PunishmentType.VOICE_DEAFEN,
    PunishmentType.VOICE_UNDEAFEN,
    PunishmentType.THREAD_MESSAGES_ADDED,
    PunishmentType.THREAD_MESSAGES_REMOVED,
}

# Applying one of these cancels a pending scheduled reversal of the same type
_CANCELS_PENDING = {
    PunishmentType.UNBAN,
    PunishmentType.UNMUTE,
    PunishmentType.VOICE_UNMUTE,
    PunishmentType.VOICE_UNDEAFEN,
    PunishmentType.THREAD_MESSAGES_ADDED,
}

REVERSAL_REASON = "Punishment duration expired."


class PunishmentExecutor:
    """Applies punishments against the platform and records them as cases."""

    def __init__(
        self,
        bot: discord.Client,
        ledger: CaseLedger,
        settings: GuildSettingsManager,
        scheduler: ReversalScheduler,
        modlog: ModLogPublisher,
        *,
        muted_role_name: str = "Muted",
    ) -> None:
        self.bot = bot
        self.ledger = ledger
        self.settings = settings
        self.scheduler = scheduler
        self.modlog = modlog
        self.muted_role_name = muted_role_name
        self.warnings: Optional["WarningAccumulator"] = None
        self._role_locks: Dict[int, asyncio.Lock] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def apply(self, request: PunishmentRequest) -> Case:
        """
        Apply a punishment and return the recorded case.

        Raises:
            ValidationError: The request cannot be carried out as given.
            EntitlementDenied: Hierarchy or bot permissions forbid the action.
            PlatformError: Discord rejected the action; no case was recorded.
        """
        target = await self.authorize(request)

        if request.type.is_warning:
            if self.warnings is None:
                raise RuntimeError("PunishmentExecutor.warnings is not wired")
            if request.type is PunishmentType.WARNING_ADDED:
                result = await self.warnings.apply_warning(request)
            else:
                result = await self.warnings.apply_removal(request)
            await self.finish(request, result.case)
            return result.case

        options = request.options
        try:
            voice_channel_id = await self._perform(request, target)
        except discord.HTTPException as exc:
            logger.warning(
                "[PUNISHMENTS] %s against %s in guild %s failed: %s",
                request.type.value, request.member.id, request.guild.id, exc,
            )
            raise PlatformError(exc.text or str(exc)) from exc
        unban_pending = (
            request.type is PunishmentType.BAN and options.soft
            and not await self._lift_soft_ban(request)
        )

        case = await self.ledger.record(
            NewCase(
                guild_id=request.guild.id,
                victim_id=request.member.id,
                moderator_id=request.moderator.id,
                type=request.type,
                reason=options.reason,
                attachments=list(options.attachments),
                soft=options.soft,
                time=None if options.soft else options.time,
                voice_channel_id=voice_channel_id,
            )
        )

        if request.type in _CANCELS_PENDING:
            await self._cancel_pending(request, request.type)
        elif request.type.reversal is not None and (options.time is None or options.soft):
            # A permanent punishment replaces any earlier timed one
            await self._cancel_pending(request, request.type.reversal)
        await self._schedule_reversal(request)
        if unban_pending:
            await self._retry_soft_unban(request)
        await self.finish(request, case)
        return case

    async def authorize(self, request: PunishmentRequest) -> Optional[discord.Member]:
        """Resolve the target and run the entitlement check.

        Returns:
            The live target member, or None when only an id is known.
        """
        target = await self._resolve_target(request)
        ensure_can_apply(
            request.moderator,
            target,
            required_permission_for(request.type),
            bot_member=request.guild.me,
        )
        return target

    async def finish(self, request: PunishmentRequest, case: Case) -> None:
        """Publish a freshly recorded case if the request asked for it."""
        if not request.options.publish:
            return
        try:
            await self.modlog.publish(case)
        except Exception:
            logger.exception("[PUNISHMENTS] Mod-log publish failed for case #%d", case.index)

    async def apply_reversal(self, job: ReversalJob) -> Optional[Case]:
        """
        Scheduler callback for a due reversal.

        Returns None without touching anything when the reversal is no longer
        needed (member unbanned, unmuted or left voice in the meantime), so a
        repeated delivery is harmless.
        """
        guild = self.bot.get_guild(job.guild_id)
        if guild is None:
            logger.warning("[PUNISHMENTS] Dropping %s for %s: guild %s unavailable", job.type.value, job.victim_id, job.guild_id)
            return None

        if not await self._reversal_needed(guild, job):
            logger.debug("[PUNISHMENTS] %s for %s in guild %s is no longer needed", job.type.value, job.victim_id, guild.id)
            return None

        moderator = guild.get_member(job.moderator_id) or guild.me
        cached = guild.get_member(job.victim_id)
        member = FullMember(cached) if cached is not None else MemberReference(id=job.victim_id, guild=guild)
        request = PunishmentRequest.create(member, moderator, job.type, reason=REVERSAL_REASON)
        return await self.apply(request)

    async def update_reason(self, guild: discord.Guild, index: int, reason: Optional[str]) -> Optional[Case]:
        """Rewrite the reason of a case and refresh its mod-log message."""
        case = await self.ledger.update_reason(guild.id, index, reason)
        if case is None:
            return None
        if case.message_id is not None:
            await self.modlog.edit(case)
        return case

    # ------------------------------------------------------------------
    # Target resolution
    # ------------------------------------------------------------------

    async def _resolve_target(self, request: PunishmentRequest) -> Optional[discord.Member]:
        member_like = request.member
        if isinstance(member_like, FullMember):
            return member_like.member
        if request.type is PunishmentType.UNBAN:
            return None

        try:
            return await member_like.resolve()
        except discord.NotFound:
            if request.type in _NEEDS_LIVE_MEMBER:
                raise ValidationError(f"<@{member_like.id}> is not a member of this server.")
            return None
        except discord.HTTPException as exc:
            raise PlatformError(exc.text or str(exc)) from exc

    # ------------------------------------------------------------------
    # Platform actions
    # ------------------------------------------------------------------

    async def _perform(self, request: PunishmentRequest, target: Optional[discord.Member]) -> Optional[int]:
        """Run the platform call for the request. Returns the voice channel id for voice actions."""
        guild = request.guild
        options = request.options
        reason = options.reason
        ptype = request.type

        if ptype is PunishmentType.BAN:
            snowflake = request.member.as_snowflake()
            if await self._is_banned(guild, snowflake.id):
                raise ValidationError(f"<@{snowflake.id}> is already banned.")
            await guild.ban(snowflake, reason=reason, delete_message_seconds=options.days * 86400)
        elif ptype is PunishmentType.UNBAN:
            await guild.unban(request.member.as_snowflake(), reason=reason)
        elif ptype is PunishmentType.KICK:
            await target.kick(reason=reason)
        elif ptype is PunishmentType.MUTE:
            role = await self.ensure_muted_role(guild)
            if role in target.roles:
                logger.debug("[PUNISHMENTS] %s already holds the muted role", target.id)
            else:
                await target.add_roles(role, reason=reason)
        elif ptype is PunishmentType.UNMUTE:
            role = self._muted_role(guild)
            if role is not None and role in target.roles:
                await target.remove_roles(role, reason=reason)
        elif ptype.is_voice:
            return await self._toggle_voice(request, target)
        elif ptype in (PunishmentType.THREAD_MESSAGES_REMOVED, PunishmentType.THREAD_MESSAGES_ADDED):
            await self._set_thread_messaging(guild, target, ptype is PunishmentType.THREAD_MESSAGES_ADDED, reason)
        else:
            raise ValidationError(f"Unsupported punishment type: {ptype.value}")
        return None

    async def _is_banned(self, guild: discord.Guild, user_id: int) -> bool:
        try:
            await guild.fetch_ban(discord.Object(id=user_id))
        except discord.NotFound:
            return False
        return True

    async def _lift_soft_ban(self, request: PunishmentRequest) -> bool:
        """Unban right after a soft ban. Returns False when Discord refused."""
        try:
            await request.guild.unban(request.member.as_snowflake(), reason="Soft ban")
        except discord.HTTPException as exc:
            logger.warning(
                "[PUNISHMENTS] Soft ban of %s in guild %s stayed in place, unban failed: %s",
                request.member.id, request.guild.id, exc,
            )
            return False
        return True

    async def _toggle_voice(self, request: PunishmentRequest, target: discord.Member) -> int:
        voice = target.voice
        if voice is None or voice.channel is None:
            raise ValidationError(f"{target.display_name} is not connected to a voice channel.")

        ptype = request.type
        if ptype in (PunishmentType.VOICE_MUTE, PunishmentType.VOICE_UNMUTE):
            wanted = ptype is PunishmentType.VOICE_MUTE
            if bool(voice.mute) != wanted:
                await target.edit(mute=wanted, reason=request.options.reason)
        else:
            wanted = ptype is PunishmentType.VOICE_DEAFEN
            if bool(voice.deaf) != wanted:
                await target.edit(deafen=wanted, reason=request.options.reason)

        if request.options.voice_channel is not None:
            return request.options.voice_channel.id
        return voice.channel.id

    async def _set_thread_messaging(
        self,
        guild: discord.Guild,
        target: discord.Member,
        allowed: bool,
        reason: Optional[str],
    ) -> None:
        for channel in iter_manageable_channels(guild):
            if not isinstance(channel, (discord.TextChannel, discord.ForumChannel)):
                continue
            overwrite = channel.overwrites_for(target)
            if allowed:
                if overwrite.send_messages_in_threads is not False:
                    continue
                overwrite.send_messages_in_threads = None
                if overwrite.is_empty():
                    await channel.set_permissions(target, overwrite=None, reason=reason)
                else:
                    await channel.set_permissions(target, overwrite=overwrite, reason=reason)
            elif overwrite.send_messages_in_threads is not False:
                overwrite.send_messages_in_threads = False
                await channel.set_permissions(target, overwrite=overwrite, reason=reason)

    # ------------------------------------------------------------------
    # Muted role
    # ------------------------------------------------------------------

    def _muted_role(self, guild: discord.Guild) -> Optional[discord.Role]:
        role_id = self.settings.get(guild.id).muted_role_id
        return guild.get_role(role_id) if role_id is not None else None

    async def ensure_muted_role(self, guild: discord.Guild) -> discord.Role:
        """
        Return the guild's muted role, creating it on first use.

        A new role is placed just below the bot's top role and denied
        sending messages, thread messages and reactions in every channel the
        bot can manage. Its id is stored in the guild settings.
        """
        lock = self._role_locks.setdefault(guild.id, asyncio.Lock())
        async with lock:
            role = self._muted_role(guild)
            if role is not None:
                return role

            role = discord.utils.get(guild.roles, name=self.muted_role_name)
            if role is None:
                role = await guild.create_role(
                    name=self.muted_role_name,
                    permissions=discord.Permissions.none(),
                    reason="Muted role for moderation",
                )
                logger.info("[PUNISHMENTS] Created muted role %s in guild %s", role.id, guild.id)
                await self._configure_muted_role(guild, role)

            self.settings.update(guild.id, muted_role_id=role.id)
            return role

    async def _configure_muted_role(self, guild: discord.Guild, role: discord.Role) -> None:
        position = max(guild.me.top_role.position - 1, 1)
        try:
            await role.edit(position=position)
        except discord.HTTPException as exc:
            logger.warning("[PUNISHMENTS] Could not move muted role in guild %s: %s", guild.id, exc)

        overwrite = discord.PermissionOverwrite(
            send_messages=False,
            send_messages_in_threads=False,
            add_reactions=False,
        )
        for channel in iter_manageable_channels(guild):
            try:
                await channel.set_permissions(role, overwrite=overwrite, reason="Muted role setup")
            except discord.HTTPException as exc:
                logger.warning(
                    "[PUNISHMENTS] Could not deny muted role in channel %s of guild %s: %s",
                    channel.id, guild.id, exc,
                )

    # ------------------------------------------------------------------
    # Reversals
    # ------------------------------------------------------------------

    async def _schedule_reversal(self, request: PunishmentRequest) -> None:
        options = request.options
        reversal = request.type.reversal
        if options.time is None or reversal is None or options.soft:
            return
        try:
            await self.scheduler.schedule(
                request.guild.id,
                request.member.id,
                request.moderator.id,
                reversal,
                options.time,
            )
        except Exception:
            logger.exception(
                "[PUNISHMENTS] Failed to schedule %s for %s in guild %s",
                reversal.value, request.member.id, request.guild.id,
            )

    async def _retry_soft_unban(self, request: PunishmentRequest) -> None:
        # The scheduler retries until the unban goes through
        try:
            await self.scheduler.schedule(
                request.guild.id,
                request.member.id,
                request.moderator.id,
                PunishmentType.UNBAN,
                0,
            )
        except Exception:
            logger.exception(
                "[PUNISHMENTS] Failed to queue the soft ban unban for %s in guild %s",
                request.member.id, request.guild.id,
            )

    async def _cancel_pending(self, request: PunishmentRequest, reversal: PunishmentType) -> None:
        try:
            await self.scheduler.cancel(request.guild.id, request.member.id, reversal)
        except Exception:
            logger.exception(
                "[PUNISHMENTS] Failed to cancel pending %s for %s",
                reversal.value, request.member.id,
            )

    async def _reversal_needed(self, guild: discord.Guild, job: ReversalJob) -> bool:
        if job.type is PunishmentType.UNBAN:
            return await self._is_banned(guild, job.victim_id)

        member = guild.get_member(job.victim_id)
        if member is None:
            try:
                member = await guild.fetch_member(job.victim_id)
            except discord.NotFound:
                return False

        if job.type is PunishmentType.UNMUTE:
            role = self._muted_role(guild)
            return role is not None and role in member.roles
        if job.type is PunishmentType.VOICE_UNMUTE:
            return member.voice is not None and bool(member.voice.mute)
        if job.type is PunishmentType.VOICE_UNDEAFEN:
            return member.voice is not None and bool(member.voice.deaf)
        if job.type is PunishmentType.THREAD_MESSAGES_ADDED:
            return any(
                channel.overwrites_for(member).send_messages_in_threads is False
                for channel in iter_manageable_channels(guild)
                if isinstance(channel, (discord.TextChannel, discord.ForumChannel))
            )
        return True
