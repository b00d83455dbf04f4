"""
Settings cog: guild-scoped configuration for the mod-log, the muted role,
warning thresholds, automod toggles and the word blacklist.

All settings changes require the Manage Server permission.
Responses are ephemeral to avoid leaking configuration in public channels.
"""

import discord
from discord import Option
from discord.ext import commands

from casekeeper.datatypes.guild_settings import AUTOMOD_FLAG_FIELDS
from casekeeper.datatypes.punishment_datatypes import PunishmentType, ThresholdPunishment
from casekeeper.moderation.errors import PunishmentError
from casekeeper.util.discord_utils import DURATION_CHOICES, PERMANENT_DURATION, parse_duration
from casekeeper.util.logger import get_logger

logger = get_logger("settings_cog")

THRESHOLD_TYPES = {
    "ban": PunishmentType.BAN,
    "softban": PunishmentType.BAN,
    "kick": PunishmentType.KICK,
    "mute": PunishmentType.MUTE,
    "voicemute": PunishmentType.VOICE_MUTE,
    "voicedeafen": PunishmentType.VOICE_DEAFEN,
    "threadmute": PunishmentType.THREAD_MESSAGES_REMOVED,
}


class GuildSettingsCog(commands.Cog):
    """Guild-level settings for moderation and automod."""

    def __init__(self, discord_bot_instance):
        """Store the Discord bot reference; services are read from ``bot.services``."""
        self.discord_bot_instance = discord_bot_instance
        logger.info("Settings cog loaded")

    @property
    def services(self):
        return self.discord_bot_instance.services

    async def _ensure_manage_guild(self, ctx: discord.ApplicationContext) -> bool:
        if not ctx.guild_id:
            await ctx.respond("This command can only be used in a server.", ephemeral=True)
            return False

        permissions = getattr(ctx.user, "guild_permissions", None)
        if not (getattr(permissions, "manage_guild", False) or getattr(permissions, "administrator", False)):
            await ctx.respond("You need the Manage Server permission to configure moderation.", ephemeral=True)
            return False
        return True

    # ------------------------------------------------------------------
    # Mod-log and muted role
    # ------------------------------------------------------------------

    @commands.slash_command(name="modlog", description="Set or clear the mod-log channel.")
    async def modlog(
        self,
        ctx: discord.ApplicationContext,
        channel: Option(discord.TextChannel, "Channel for case messages. Leave empty to disable.", required=False, default=None),  # type: ignore
    ):
        if not await self._ensure_manage_guild(ctx):
            return

        self.services.settings.update(ctx.guild_id, modlog_channel_id=channel.id if channel else None)
        if channel is None:
            await ctx.respond("Mod-log disabled.", ephemeral=True)
        else:
            await ctx.respond(f"Cases will be posted in {channel.mention}.", ephemeral=True)

    @commands.slash_command(name="mutedrole", description="Use an existing role as the muted role.")
    async def mutedrole(
        self,
        ctx: discord.ApplicationContext,
        role: Option(discord.Role, "The role given to muted members.", required=True),  # type: ignore
    ):
        if not await self._ensure_manage_guild(ctx):
            return

        me = ctx.guild.me
        if role >= me.top_role:
            await ctx.respond("That role is above my highest role, so I could not assign it.", ephemeral=True)
            return

        self.services.settings.update(ctx.guild_id, muted_role_id=role.id)
        await ctx.respond(f"{role.mention} is now the muted role.", ephemeral=True)

    # ------------------------------------------------------------------
    # Warning thresholds
    # ------------------------------------------------------------------

    @commands.slash_command(name="threshold-set", description="Punish members automatically when they reach a warning count.")
    async def threshold_set(
        self,
        ctx: discord.ApplicationContext,
        warnings: Option(int, "Warning count that triggers the punishment.", min_value=1, required=True),  # type: ignore
        punishment: Option(str, "Punishment to apply.", choices=list(THRESHOLD_TYPES), required=True),  # type: ignore
        duration: Option(str, "How long the punishment lasts.", choices=DURATION_CHOICES, default=PERMANENT_DURATION),  # type: ignore
    ):
        if not await self._ensure_manage_guild(ctx):
            return

        threshold = ThresholdPunishment(
            guild_id=ctx.guild_id,
            warnings=warnings,
            type=THRESHOLD_TYPES[punishment],
            time=parse_duration(duration),
            soft=punishment == "softban",
            days=self.services.default_ban_days,
        )
        try:
            await self.services.warnings.set_threshold(threshold)
        except PunishmentError as exc:
            await ctx.respond(exc.message, ephemeral=True)
            return

        await ctx.respond(
            f"Members reaching **{warnings}** warning(s) will receive: {punishment} ({duration}).",
            ephemeral=True,
        )

    @commands.slash_command(name="threshold-remove", description="Remove the punishment for a warning count.")
    async def threshold_remove(
        self,
        ctx: discord.ApplicationContext,
        warnings: Option(int, "Warning count of the threshold.", min_value=1, required=True),  # type: ignore
    ):
        if not await self._ensure_manage_guild(ctx):
            return

        if await self.services.warnings.remove_threshold(ctx.guild_id, warnings):
            await ctx.respond(f"Removed the threshold at {warnings} warning(s).", ephemeral=True)
        else:
            await ctx.respond(f"There is no threshold at {warnings} warning(s).", ephemeral=True)

    @commands.slash_command(name="thresholds", description="List the warning thresholds of this server.")
    async def thresholds(self, ctx: discord.ApplicationContext):
        if not await self._ensure_manage_guild(ctx):
            return

        configured = await self.services.warnings.thresholds(ctx.guild_id)
        if not configured:
            await ctx.respond("No warning thresholds are configured.", ephemeral=True)
            return

        lines = []
        for threshold in configured:
            label = "Soft Banned" if threshold.soft else threshold.type.label
            line = f"**{threshold.warnings}** → {threshold.type.emoji} {label}"
            if threshold.time:
                line += f" for {threshold.time // 1000}s"
            lines.append(line)
        await ctx.respond("\n".join(lines), ephemeral=True)

    # ------------------------------------------------------------------
    # Automod
    # ------------------------------------------------------------------

    @commands.slash_command(name="automod-toggle", description="Enable or disable an automod detector.")
    async def automod_toggle(
        self,
        ctx: discord.ApplicationContext,
        detector: Option(str, "Detector to toggle.", choices=list(AUTOMOD_FLAG_FIELDS), required=True),  # type: ignore
        enabled: Option(bool, "Whether the detector runs.", required=True),  # type: ignore
    ):
        if not await self._ensure_manage_guild(ctx):
            return

        if not self.services.settings.set_automod_enabled(ctx.guild_id, detector, enabled):
            await ctx.respond(f"Unknown detector `{detector}`.", ephemeral=True)
            return
        state = "enabled" if enabled else "disabled"
        await ctx.respond(f"Automod `{detector}` {state}.", ephemeral=True)

    @commands.slash_command(name="blacklist-add", description="Add a word to the blacklist.")
    async def blacklist_add(
        self,
        ctx: discord.ApplicationContext,
        word: Option(str, "Word or phrase to block.", required=True),  # type: ignore
    ):
        if not await self._ensure_manage_guild(ctx):
            return

        if self.services.settings.add_blacklist_word(ctx.guild_id, word):
            await ctx.respond(f"Added `{word.strip().lower()}` to the blacklist.", ephemeral=True)
        else:
            await ctx.respond("That word is already blacklisted.", ephemeral=True)

    @commands.slash_command(name="blacklist-remove", description="Remove a word from the blacklist.")
    async def blacklist_remove(
        self,
        ctx: discord.ApplicationContext,
        word: Option(str, "Word or phrase to allow again.", required=True),  # type: ignore
    ):
        if not await self._ensure_manage_guild(ctx):
            return

        if self.services.settings.remove_blacklist_word(ctx.guild_id, word):
            await ctx.respond(f"Removed `{word.strip().lower()}` from the blacklist.", ephemeral=True)
        else:
            await ctx.respond("That word is not blacklisted.", ephemeral=True)


def setup(discord_bot_instance):
    """Cog setup entry point used by the bot loader."""
    discord_bot_instance.add_cog(GuildSettingsCog(discord_bot_instance))
