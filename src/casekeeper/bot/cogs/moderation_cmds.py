"""
Moderation cog: slash commands that punish members and manage cases.

Every punishment command builds a :class:`PunishmentRequest` and hands it to
the punishment executor, which checks hierarchy and bot permissions,
performs the action, records the case and posts it to the mod-log.

Design notes and expectations
- The invoking moderator needs the same Discord permission the bot needs
  for the action (``manage_messages`` for warning and case commands).
- Errors are reported to the invoker via ephemeral responses.

Quick usage example
    # In your bot setup code
    from casekeeper.bot.cogs.moderation_cmds import ModerationActionCog
    bot.add_cog(ModerationActionCog(bot))
"""

from typing import Optional, Union

import discord
from discord import Option
from discord.ext import commands

from casekeeper.datatypes.punishment_datatypes import (
    PunishmentRequest,
    PunishmentType,
    to_member_like,
)
from casekeeper.moderation.entitlement import required_permission_for
from casekeeper.moderation.errors import PunishmentError
from casekeeper.util.discord_utils import (
    DELETE_MESSAGE_CHOICES,
    DURATION_CHOICES,
    PERMANENT_DURATION,
    has_permissions,
    parse_duration,
)
from casekeeper.util.logger import get_logger

logger = get_logger("moderation_cog")


class ModerationActionCog(commands.Cog):
    """Cog containing moderation-related slash commands."""

    def __init__(self, discord_bot_instance):
        """Store the bot instance; services are read from ``bot.services``.

        Parameters
        ----------
        discord_bot_instance:
            Active :class:`discord.Bot` instance carrying ``services``.
        """
        self.discord_bot_instance = discord_bot_instance
        logger.info("Moderation cog loaded")

    @property
    def services(self):
        return self.discord_bot_instance.services

    async def check_moderation_permissions(
        self,
        ctx: discord.ApplicationContext,
        target_user: Union[discord.Member, discord.User],
        required_permission_name: str,
    ) -> bool:
        """Run shared pre-checks for moderation commands.

        Returns
        -------
        bool
            ``True`` when allowed to proceed; ``False`` if an error was sent to invoker.
        """
        if ctx.guild is None:
            await ctx.send_followup("This command can only be used in a server.")
            return False

        if not has_permissions(ctx, **{required_permission_name: True}):
            await ctx.send_followup("You do not have permission to use this command.")
            return False

        if target_user.id == ctx.user.id:
            await ctx.send_followup("You cannot perform moderation actions on yourself.")
            return False

        return True

    async def execute_punishment(
        self,
        ctx: discord.ApplicationContext,
        user: Union[discord.Member, discord.User],
        punishment_type: PunishmentType,
        **options,
    ) -> None:
        """Apply a punishment and report the resulting case to the invoker."""
        await ctx.defer(ephemeral=True)

        permission = required_permission_for(punishment_type) or "manage_messages"
        if not await self.check_moderation_permissions(ctx, user, permission):
            return

        if punishment_type is PunishmentType.BAN and isinstance(user, discord.Member):
            target_permissions = user.guild_permissions
            if target_permissions.ban_members and not target_permissions.administrator:
                await ctx.send_followup("You cannot ban members who can ban others.")
                return

        try:
            request = PunishmentRequest.create(
                to_member_like(user, ctx.guild), ctx.author, punishment_type, **options
            )
            case = await self.services.executor.apply(request)
        except PunishmentError as exc:
            await ctx.send_followup(exc.message)
            return
        except Exception as e:
            logger.exception("Error executing moderation action: %s", e)
            await ctx.send_followup("An error occurred while processing the command.")
            return

        await ctx.send_followup(
            f"{punishment_type.emoji} **Case #{case.index}** · {punishment_type.label} {user.mention}."
        )

    @staticmethod
    def _evidence(attachment: Optional[discord.Attachment]) -> list:
        return [attachment.url] if attachment is not None else []

    # ------------------------------------------------------------------
    # Bans and kicks
    # ------------------------------------------------------------------

    @commands.slash_command(name="ban", description="Ban a user from the server.")
    async def ban(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to ban.", required=True),  # type: ignore
        duration: Option(str, "Duration of the ban.", choices=DURATION_CHOICES, default=PERMANENT_DURATION),  # type: ignore
        reason: Option(str, "Reason for the ban.", required=False, default=None),  # type: ignore
        delete_message_days: Option(int, "Delete messages from", choices=DELETE_MESSAGE_CHOICES, required=False, default=None),  # type: ignore
        evidence: Option(discord.Attachment, "Screenshot or file backing the ban.", required=False, default=None),  # type: ignore
    ) -> None:
        """Ban a user, optionally lifting the ban after ``duration``."""
        days = self.services.default_ban_days if delete_message_days is None else delete_message_days
        await self.execute_punishment(
            ctx, user, PunishmentType.BAN,
            reason=reason, time=parse_duration(duration), days=days, attachments=self._evidence(evidence),
        )

    @commands.slash_command(name="softban", description="Ban and immediately unban a user to purge their messages.")
    async def softban(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to softban.", required=True),  # type: ignore
        reason: Option(str, "Reason for the softban.", required=False, default=None),  # type: ignore
        delete_message_days: Option(int, "Delete messages from", choices=DELETE_MESSAGE_CHOICES, required=False, default=None),  # type: ignore
        evidence: Option(discord.Attachment, "Screenshot or file backing the softban.", required=False, default=None),  # type: ignore
    ) -> None:
        """Soft ban: purge recent messages without keeping the user out."""
        days = self.services.default_ban_days if delete_message_days is None else delete_message_days
        await self.execute_punishment(
            ctx, user, PunishmentType.BAN,
            reason=reason, soft=True, days=days, attachments=self._evidence(evidence),
        )

    @commands.slash_command(name="unban", description="Lift a user's ban.")
    async def unban(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to unban.", required=True),  # type: ignore
        reason: Option(str, "Reason for the unban.", required=False, default=None),  # type: ignore
    ) -> None:
        await self.execute_punishment(ctx, user, PunishmentType.UNBAN, reason=reason)

    @commands.slash_command(name="kick", description="Kick a member from the server.")
    async def kick(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to kick.", required=True),  # type: ignore
        reason: Option(str, "Reason for the kick.", required=False, default=None),  # type: ignore
        evidence: Option(discord.Attachment, "Screenshot or file backing the kick.", required=False, default=None),  # type: ignore
    ) -> None:
        await self.execute_punishment(
            ctx, user, PunishmentType.KICK, reason=reason, attachments=self._evidence(evidence)
        )

    # ------------------------------------------------------------------
    # Mutes
    # ------------------------------------------------------------------

    @commands.slash_command(name="mute", description="Give a member the muted role.")
    async def mute(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to mute.", required=True),  # type: ignore
        duration: Option(str, "Duration of the mute.", choices=DURATION_CHOICES, default="10 mins"),  # type: ignore
        reason: Option(str, "Reason for the mute.", required=False, default=None),  # type: ignore
        evidence: Option(discord.Attachment, "Screenshot or file backing the mute.", required=False, default=None),  # type: ignore
    ) -> None:
        await self.execute_punishment(
            ctx, user, PunishmentType.MUTE,
            reason=reason, time=parse_duration(duration), attachments=self._evidence(evidence),
        )

    @commands.slash_command(name="unmute", description="Remove the muted role from a member.")
    async def unmute(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to unmute.", required=True),  # type: ignore
        reason: Option(str, "Reason for the unmute.", required=False, default=None),  # type: ignore
    ) -> None:
        await self.execute_punishment(ctx, user, PunishmentType.UNMUTE, reason=reason)

    @commands.slash_command(name="voicemute", description="Server-mute a member in voice.")
    async def voicemute(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to voice mute.", required=True),  # type: ignore
        duration: Option(str, "Duration of the voice mute.", choices=DURATION_CHOICES, default=PERMANENT_DURATION),  # type: ignore
        reason: Option(str, "Reason for the voice mute.", required=False, default=None),  # type: ignore
    ) -> None:
        await self.execute_punishment(
            ctx, user, PunishmentType.VOICE_MUTE, reason=reason, time=parse_duration(duration)
        )

    @commands.slash_command(name="voiceunmute", description="Lift a member's voice mute.")
    async def voiceunmute(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to voice unmute.", required=True),  # type: ignore
        reason: Option(str, "Reason for the voice unmute.", required=False, default=None),  # type: ignore
    ) -> None:
        await self.execute_punishment(ctx, user, PunishmentType.VOICE_UNMUTE, reason=reason)

    @commands.slash_command(name="voicedeafen", description="Server-deafen a member in voice.")
    async def voicedeafen(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to deafen.", required=True),  # type: ignore
        duration: Option(str, "Duration of the deafen.", choices=DURATION_CHOICES, default=PERMANENT_DURATION),  # type: ignore
        reason: Option(str, "Reason for the deafen.", required=False, default=None),  # type: ignore
    ) -> None:
        await self.execute_punishment(
            ctx, user, PunishmentType.VOICE_DEAFEN, reason=reason, time=parse_duration(duration)
        )

    @commands.slash_command(name="voiceundeafen", description="Lift a member's voice deafen.")
    async def voiceundeafen(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to undeafen.", required=True),  # type: ignore
        reason: Option(str, "Reason for the undeafen.", required=False, default=None),  # type: ignore
    ) -> None:
        await self.execute_punishment(ctx, user, PunishmentType.VOICE_UNDEAFEN, reason=reason)

    @commands.slash_command(name="threadmute", description="Stop a member from posting in threads.")
    async def threadmute(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to restrict.", required=True),  # type: ignore
        duration: Option(str, "Duration of the restriction.", choices=DURATION_CHOICES, default=PERMANENT_DURATION),  # type: ignore
        reason: Option(str, "Reason for the restriction.", required=False, default=None),  # type: ignore
    ) -> None:
        await self.execute_punishment(
            ctx, user, PunishmentType.THREAD_MESSAGES_REMOVED, reason=reason, time=parse_duration(duration)
        )

    @commands.slash_command(name="threadunmute", description="Let a member post in threads again.")
    async def threadunmute(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to restore.", required=True),  # type: ignore
        reason: Option(str, "Reason for lifting the restriction.", required=False, default=None),  # type: ignore
    ) -> None:
        await self.execute_punishment(ctx, user, PunishmentType.THREAD_MESSAGES_ADDED, reason=reason)

    # ------------------------------------------------------------------
    # Warnings
    # ------------------------------------------------------------------

    @commands.slash_command(name="warn", description="Warn a member.")
    async def warn(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to warn.", required=True),  # type: ignore
        reason: Option(str, "Reason for the warning.", required=False, default=None),  # type: ignore
        amount: Option(int, "How many warnings to add.", min_value=1, max_value=50, default=1),  # type: ignore
        evidence: Option(discord.Attachment, "Screenshot or file backing the warning.", required=False, default=None),  # type: ignore
    ) -> None:
        """Add warnings; crossing a configured threshold triggers its punishment."""
        await ctx.defer(ephemeral=True)
        if not await self.check_moderation_permissions(ctx, user, "manage_messages"):
            return

        try:
            total = await self.services.warnings.add_warning(
                to_member_like(user, ctx.guild), ctx.author, reason, amount,
                attachments=self._evidence(evidence),
            )
        except PunishmentError as exc:
            await ctx.send_followup(exc.message)
            return
        except Exception as e:
            logger.exception("Error adding warnings: %s", e)
            await ctx.send_followup("An error occurred while processing the command.")
            return

        await ctx.send_followup(
            f"{PunishmentType.WARNING_ADDED.emoji} Warned {user.mention}. They now have **{total}** warning(s)."
        )

    @commands.slash_command(name="pardon", description="Remove warnings from a member.")
    async def pardon(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.Member, "The member to pardon.", required=True),  # type: ignore
        amount: Option(int, "How many warnings to remove. Leave empty to remove all.", min_value=1, required=False, default=None),  # type: ignore
        reason: Option(str, "Reason for the pardon.", required=False, default=None),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if not await self.check_moderation_permissions(ctx, user, "manage_messages"):
            return

        try:
            total = await self.services.warnings.remove_warnings(
                to_member_like(user, ctx.guild), ctx.author, reason, amount
            )
        except PunishmentError as exc:
            await ctx.send_followup(exc.message)
            return
        except Exception as e:
            logger.exception("Error removing warnings: %s", e)
            await ctx.send_followup("An error occurred while processing the command.")
            return

        await ctx.send_followup(
            f"{PunishmentType.WARNING_REMOVED.emoji} Pardoned {user.mention}. They now have **{total}** warning(s)."
        )

    @commands.slash_command(name="warnings", description="Show a member's warning total and recent cases.")
    async def warnings(
        self,
        ctx: discord.ApplicationContext,
        user: Option(discord.User, "The user to look up.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if not has_permissions(ctx, manage_messages=True):
            await ctx.send_followup("You do not have permission to use this command.")
            return

        total = await self.services.warnings.total(ctx.guild.id, user.id)
        cases = await self.services.ledger.list_for_member(ctx.guild.id, user.id, limit=10)
        lines = [
            f"`#{case.index}` {case.type.emoji} {case.type.label}: {case.reason or 'No reason'}"
            for case in cases
        ]
        embed = discord.Embed(
            title=f"{user} has {total} warning(s)",
            description="\n".join(lines) or "No cases on record.",
            colour=discord.Colour.orange(),
        )
        await ctx.send_followup(embed=embed)

    # ------------------------------------------------------------------
    # Cases
    # ------------------------------------------------------------------

    @commands.slash_command(name="case", description="Show a case from the ledger.")
    async def case(
        self,
        ctx: discord.ApplicationContext,
        index: Option(int, "Case number.", min_value=1, required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if not has_permissions(ctx, manage_messages=True):
            await ctx.send_followup("You do not have permission to use this command.")
            return

        found = await self.services.ledger.get(ctx.guild.id, index)
        if found is None:
            await ctx.send_followup(f"Case #{index} does not exist.")
            return

        content, embed = self.services.modlog.render(found, ctx.guild)
        await ctx.send_followup(content=content, embed=embed)

    @commands.slash_command(name="reason", description="Set or change the reason of a case.")
    async def reason(
        self,
        ctx: discord.ApplicationContext,
        index: Option(int, "Case number.", min_value=1, required=True),  # type: ignore
        reason: Option(str, "The new reason.", required=True),  # type: ignore
    ) -> None:
        await ctx.defer(ephemeral=True)
        if not has_permissions(ctx, manage_messages=True):
            await ctx.send_followup("You do not have permission to use this command.")
            return

        updated = await self.services.executor.update_reason(ctx.guild, index, reason.strip() or None)
        if updated is None:
            await ctx.send_followup(f"Case #{index} does not exist.")
            return
        await ctx.send_followup(f"Updated the reason of case #{index}.")


def setup(discord_bot_instance):
    """Cog setup entry point used by the bot loader."""
    discord_bot_instance.add_cog(ModerationActionCog(discord_bot_instance))
