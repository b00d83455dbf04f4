"""Automod listener Cog.

Runs the enabled automod detectors on new messages, member joins and
nickname changes, then applies their verdicts. A failing punishment is
logged and never propagated into the event loop.
"""

from typing import Optional

import discord
from discord.ext import commands

from casekeeper.automod.base import AutomodEvent, AutomodVerdict, MemberEvent, MessageEvent
from casekeeper.moderation.errors import PunishmentError
from casekeeper.util import discord_utils
from casekeeper.util.logger import get_logger

logger = get_logger("automod_listener_cog")


class AutomodListenerCog(commands.Cog):
    """Cog feeding gateway events through the automod detectors."""

    def __init__(self, discord_bot_instance):
        self.discord_bot_instance = discord_bot_instance
        logger.info("Automod listener cog loaded")

    @property
    def services(self):
        return self.discord_bot_instance.services

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    @commands.Cog.listener()
    async def on_message(self, message: discord.Message) -> None:
        if message.guild is None or discord_utils.is_ignored_author(message.author):
            return
        if discord_utils.has_elevated_permissions(message.author):
            return

        settings = self.services.settings.get(message.guild.id)
        await self.run_detectors(MessageEvent(message=message, settings=settings))

    @commands.Cog.listener()
    async def on_member_join(self, member: discord.Member) -> None:
        if member.bot:
            return
        settings = self.services.settings.get(member.guild.id)
        await self.run_detectors(MemberEvent(member=member, settings=settings, joined=True))

    @commands.Cog.listener()
    async def on_member_update(self, before: discord.Member, after: discord.Member) -> None:
        if after.bot or before.display_name == after.display_name:
            return
        if discord_utils.has_elevated_permissions(after):
            return
        settings = self.services.settings.get(after.guild.id)
        await self.run_detectors(MemberEvent(member=after, settings=settings, joined=False))

    # ------------------------------------------------------------------
    # Detector pipeline
    # ------------------------------------------------------------------

    async def run_detectors(self, event: AutomodEvent) -> Optional[AutomodVerdict]:
        """Evaluate enabled detectors in order and apply the first verdict."""
        for detector in self.services.detectors:
            if not detector.enabled_for(event.settings):
                continue
            try:
                verdict = await detector.evaluate(event)
            except Exception:
                logger.exception("[AUTOMOD] Detector %s crashed", detector.name)
                continue
            if verdict is not None:
                await self.apply_verdict(event, verdict)
                return verdict
        return None

    async def apply_verdict(self, event: AutomodEvent, verdict: AutomodVerdict) -> None:
        logger.info("[AUTOMOD] %s triggered in guild %s: %s", verdict.detector, event.guild.id, verdict.reason)

        if verdict.delete_message and isinstance(event, MessageEvent):
            await discord_utils.safe_delete_message(event.message)

        if verdict.nickname is not None and isinstance(event, MemberEvent):
            try:
                await event.member.edit(nick=verdict.nickname, reason=verdict.reason)
            except discord.HTTPException as exc:
                logger.warning("[AUTOMOD] Could not rename %s: %s", event.member.id, exc)

        if verdict.quote is not None and isinstance(event, MessageEvent):
            await self._send_quote(event.message, verdict.quote)

        if verdict.punishment is not None:
            try:
                await self.services.executor.apply(verdict.punishment)
            except PunishmentError as exc:
                logger.warning(
                    "[AUTOMOD] %s could not punish %s in guild %s: %s",
                    verdict.detector, verdict.punishment.member.id, event.guild.id, exc.message,
                )

    async def _send_quote(self, message: discord.Message, linked: discord.Message) -> None:
        embed = discord.Embed(
            description=linked.content or "*No text content*",
            colour=discord.Colour.blurple(),
            timestamp=linked.created_at,
        )
        embed.set_author(name=str(linked.author), icon_url=linked.author.display_avatar.url)
        embed.add_field(name="Jump", value=f"[Go to message]({linked.jump_url})", inline=False)
        try:
            await message.channel.send(embed=embed, reference=message, mention_author=False)
        except discord.HTTPException as exc:
            logger.debug("[AUTOMOD] Could not quote message %s: %s", linked.id, exc)


def setup(discord_bot_instance):
    """Cog setup entry point used by the bot loader."""
    discord_bot_instance.add_cog(AutomodListenerCog(discord_bot_instance))
