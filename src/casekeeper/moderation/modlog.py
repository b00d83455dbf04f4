"""
Mod-log publisher.

Posts a rendered case to the guild's configured mod-log channel and edits
it later (for example after ``/reason``). Every message is rendered from the
stored :class:`Case`, never from the text of a previous message.

Everything here is best effort: a missing channel, missing permissions or a
REST failure is logged and swallowed so a punishment never fails because of
the mod-log.
"""

from __future__ import annotations

from typing import Optional, Tuple

import discord

from casekeeper.datatypes.punishment_datatypes import Case, PunishmentType
from casekeeper.moderation.case_ledger import CaseLedger
from casekeeper.settings.guild_settings_manager import GuildSettingsManager
from casekeeper.util.discord_utils import format_duration
from casekeeper.util.logger import get_logger

logger = get_logger("modlog")

MODLOG_COLOUR = 0xDAA2C6


def render_header(case: Case) -> str:
    return f"**[** {case.type.emoji} **~** Case #**{case.index}** ({case.type.label}) **]**"


def render_description(case: Case) -> str:
    if case.reason:
        lines = [case.reason]
    else:
        lines = [f"• No reason was provided. Use `/reason {case.index} <reason>` to update it!"]

    if case.attachments:
        lines.append("")
        lines.extend(
            f"• [**`Attachment #{number}`**]({url})"
            for number, url in enumerate(case.attachments, start=1)
        )
    return "\n".join(lines)


class ModLogPublisher:
    """Renders cases and posts them to the mod-log channel."""

    def __init__(self, bot: discord.Client, settings: GuildSettingsManager, ledger: CaseLedger) -> None:
        self.bot = bot
        self.settings = settings
        self.ledger = ledger

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def render(self, case: Case, guild: Optional[discord.Guild] = None) -> Tuple[str, discord.Embed]:
        """Return the message content and embed for a case."""
        embed = discord.Embed(colour=MODLOG_COLOUR, description=render_description(case))

        victim = self.bot.get_user(case.victim_id)
        victim_name = str(victim) if victim is not None else "Unknown User"
        if victim is not None:
            embed.set_author(name=f"{victim_name} ({case.victim_id})", icon_url=victim.display_avatar.url)
        else:
            embed.set_author(name=f"{victim_name} ({case.victim_id})")

        embed.add_field(name="• Moderator", value=f"<@{case.moderator_id}> (`{case.moderator_id}`)", inline=False)

        if case.type is PunishmentType.WARNING_REMOVED:
            amount = "All" if case.warning_amount is None else str(case.warning_amount)
            embed.add_field(name="• Warnings Removed", value=amount, inline=True)
        elif case.type is PunishmentType.WARNING_ADDED:
            embed.add_field(name="• Warnings Added", value=str(case.warning_amount or 1), inline=True)

        if case.voice_channel_id is not None:
            channel = guild.get_channel(case.voice_channel_id) if guild is not None else None
            name = channel.name if channel is not None else f"<#{case.voice_channel_id}>"
            embed.add_field(name="• Voice Channel", value=f"{name} (`{case.voice_channel_id}`)", inline=True)

        if case.time is not None:
            try:
                embed.add_field(name="• Time", value=format_duration(case.time), inline=True)
            except (ValueError, OverflowError) as exc:
                logger.debug("[MODLOG] Omitting duration of case #%d: %s", case.index, exc)

        if case.created_at is not None:
            embed.timestamp = case.created_at
        return render_header(case), embed

    # ------------------------------------------------------------------
    # Publishing
    # ------------------------------------------------------------------

    def _resolve_channel(self, guild_id: int) -> Optional[discord.TextChannel]:
        channel_id = self.settings.get(guild_id).modlog_channel_id
        if channel_id is None:
            return None

        guild = self.bot.get_guild(guild_id)
        if guild is None:
            logger.debug("[MODLOG] Guild %s is not cached; skipping", guild_id)
            return None

        channel = guild.get_channel(channel_id)
        if channel is None:
            logger.warning("[MODLOG] Mod-log channel %s of guild %s no longer exists", channel_id, guild_id)
            return None

        permissions = channel.permissions_for(guild.me)
        if not (permissions.send_messages and permissions.embed_links):
            logger.warning(
                "[MODLOG] Missing send/embed permission in mod-log channel %s of guild %s",
                channel_id, guild_id,
            )
            return None
        return channel

    async def publish(self, case: Case) -> Optional[discord.Message]:
        """Post a case to the mod-log and remember the message on the case.

        Returns:
            The posted message, or None if nothing was posted.
        """
        channel = self._resolve_channel(case.guild_id)
        if channel is None:
            return None

        content, embed = self.render(case, channel.guild)
        try:
            message = await channel.send(content=content, embed=embed)
        except discord.HTTPException as exc:
            logger.error("[MODLOG] Failed to post case #%d in guild %s: %s", case.index, case.guild_id, exc)
            return None

        try:
            await self.ledger.attach_message(case, message.id)
        except Exception:
            logger.exception("[MODLOG] Failed to store message id for case #%d", case.index)
        return message

    async def edit(self, case: Case, message_id: Optional[int] = None) -> bool:
        """Re-render a case into its existing mod-log message.

        Args:
            case: The authoritative case record.
            message_id: Message to edit; defaults to ``case.message_id``.

        Returns:
            True if the message was edited.
        """
        message_id = message_id or case.message_id
        if message_id is None:
            return False

        channel = self._resolve_channel(case.guild_id)
        if channel is None:
            return False

        content, embed = self.render(case, channel.guild)
        try:
            message = await channel.fetch_message(message_id)
            await message.edit(content=content, embed=embed)
        except discord.HTTPException as exc:
            logger.warning("[MODLOG] Failed to edit case #%d in guild %s: %s", case.index, case.guild_id, exc)
            return False
        return True
