"""
Tests for the moderation, settings and automod listener cogs.
"""

from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from casekeeper.automod.base import AutomodVerdict
from casekeeper.bot.cogs.automod_listener import AutomodListenerCog
from casekeeper.bot.cogs.moderation_cmds import ModerationActionCog
from casekeeper.bot.cogs.settings_cmds import GuildSettingsCog
from casekeeper.datatypes.punishment_datatypes import FullMember, PunishmentRequest, PunishmentType
from casekeeper.util.discord_utils import PERMANENT_DURATION

from fakes import GUILD_ID, FakeRole, build_member, forbidden


@pytest.fixture
def staff(guild):
    return build_member(
        guild, 250, 60, name="staff",
        manage_messages=True, kick_members=True, ban_members=True, manage_guild=True,
    )


@pytest.fixture
def ctx(guild, staff):
    ctx = MagicMock()
    ctx.guild = guild
    ctx.guild_id = guild.id
    ctx.author = staff
    ctx.user = staff
    ctx.defer = AsyncMock()
    ctx.respond = AsyncMock()
    ctx.send_followup = AsyncMock()
    return ctx


@pytest.fixture
def wired_bot(bot, services):
    bot.services = services
    return bot


def followup_text(ctx):
    call = ctx.send_followup.await_args
    return call.args[0] if call.args else call.kwargs.get("content")


class TestModerationActionCog:
    """Slash commands that punish members."""

    @pytest.fixture
    def cog(self, wired_bot):
        return ModerationActionCog(wired_bot)

    async def test_kick_reports_case_number(self, cog, ctx, target):
        await cog.kick.callback(cog, ctx, target, "rude", None)

        target.kick.assert_awaited_once_with(reason="rude")
        assert "**Case #1**" in followup_text(ctx)
        ctx.defer.assert_awaited_once_with(ephemeral=True)

    async def test_ban_uses_default_purge_days(self, cog, ctx, guild, target):
        await cog.ban.callback(cog, ctx, target, PERMANENT_DURATION, None, None, None)

        assert guild.ban.await_args.kwargs["delete_message_seconds"] == 7 * 86400

    async def test_softban_records_soft_case(self, cog, ctx, services, guild, target):
        await cog.softban.callback(cog, ctx, target, "cleanup", 1, None)

        guild.unban.assert_awaited_once()
        case = await services.ledger.get(GUILD_ID, 1)
        assert case.soft is True

    async def test_missing_permission_is_reported(self, cog, ctx, guild, target):
        ctx.author = build_member(guild, 260, 40, name="helper")

        await cog.kick.callback(cog, ctx, target, None, None)

        target.kick.assert_not_awaited()
        assert "do not have permission" in followup_text(ctx)

    async def test_cannot_target_self(self, cog, ctx, staff):
        await cog.warn.callback(cog, ctx, staff, None, 1, None)

        assert "yourself" in followup_text(ctx)

    async def test_entitlement_error_is_forwarded(self, cog, ctx, guild):
        senior = build_member(guild, 270, 90, name="senior")

        await cog.kick.callback(cog, ctx, senior, None, None)

        assert "highest role" in followup_text(ctx)

    async def test_warn_and_pardon(self, cog, ctx, services, target):
        evidence = MagicMock(spec=discord.Attachment)
        evidence.url = "https://cdn.example/proof.png"

        await cog.warn.callback(cog, ctx, target, "spam", 2, evidence)
        assert "**2** warning(s)" in followup_text(ctx)
        case = await services.ledger.get(GUILD_ID, 1)
        assert case.attachments == ["https://cdn.example/proof.png"]

        await cog.pardon.callback(cog, ctx, target, 5, None)
        assert "cannot remove 5" in followup_text(ctx)

        await cog.pardon.callback(cog, ctx, target, None, "appeal")
        assert "**0** warning(s)" in followup_text(ctx)

    async def test_unexpected_warning_failure_gets_generic_reply(self, cog, ctx, services, target, monkeypatch):
        monkeypatch.setattr(services.warnings, "add_warning", AsyncMock(side_effect=RuntimeError("db gone")))
        monkeypatch.setattr(services.warnings, "remove_warnings", AsyncMock(side_effect=RuntimeError("db gone")))

        await cog.warn.callback(cog, ctx, target, None, 1, None)
        assert "An error occurred" in followup_text(ctx)

        await cog.pardon.callback(cog, ctx, target, None, None)
        assert "An error occurred" in followup_text(ctx)

    async def test_ban_refuses_members_who_can_ban(self, cog, ctx, guild):
        moderator_target = build_member(guild, 280, 5, name="mod", ban_members=True)

        await cog.ban.callback(cog, ctx, moderator_target, PERMANENT_DURATION, None, None, None)

        guild.ban.assert_not_awaited()
        assert "can ban others" in followup_text(ctx)

    async def test_ban_of_banned_user_is_reported(self, cog, ctx, guild, target):
        guild.banned_ids.add(target.id)

        await cog.ban.callback(cog, ctx, target, PERMANENT_DURATION, None, None, None)

        guild.ban.assert_not_awaited()
        assert "already banned" in followup_text(ctx)

    async def test_warnings_lists_cases(self, cog, ctx, target):
        await cog.warn.callback(cog, ctx, target, "spam", 1, None)

        await cog.warnings.callback(cog, ctx, target)

        embed = ctx.send_followup.await_args.kwargs["embed"]
        assert embed.title.endswith("has 1 warning(s)")
        assert "spam" in embed.description

    async def test_case_lookup(self, cog, ctx, target):
        await cog.case.callback(cog, ctx, 3)
        assert "Case #3 does not exist" in followup_text(ctx)

        await cog.kick.callback(cog, ctx, target, None, None)
        await cog.case.callback(cog, ctx, 1)
        assert "Case #**1**" in ctx.send_followup.await_args.kwargs["content"]

    async def test_reason_updates_case(self, cog, ctx, services, target):
        await cog.kick.callback(cog, ctx, target, None, None)

        await cog.reason.callback(cog, ctx, 1, "  actually spam ")

        assert (await services.ledger.get(GUILD_ID, 1)).reason == "actually spam"
        assert "Updated the reason of case #1" in followup_text(ctx)


class TestGuildSettingsCog:
    """Guild configuration commands."""

    @pytest.fixture
    def cog(self, wired_bot):
        return GuildSettingsCog(wired_bot)

    async def test_requires_manage_guild(self, cog, ctx, guild):
        ctx.user = build_member(guild, 260, 40, name="helper")

        await cog.modlog.callback(cog, ctx, None)

        assert "Manage Server" in ctx.respond.await_args.args[0]

    async def test_modlog_channel(self, cog, ctx, services):
        channel = MagicMock(spec=discord.TextChannel)
        channel.id = 800
        channel.mention = "<#800>"

        await cog.modlog.callback(cog, ctx, channel)
        assert services.settings.get(GUILD_ID).modlog_channel_id == 800

        await cog.modlog.callback(cog, ctx, None)
        assert services.settings.get(GUILD_ID).modlog_channel_id is None

    async def test_muted_role_must_be_below_bot(self, cog, ctx, services):
        await cog.mutedrole.callback(cog, ctx, FakeRole(31, 150, "Too High"))
        assert "above my highest role" in ctx.respond.await_args.args[0]

        await cog.mutedrole.callback(cog, ctx, FakeRole(32, 10, "Quiet"))
        assert services.settings.get(GUILD_ID).muted_role_id == 32

    async def test_thresholds(self, cog, ctx, services):
        await cog.threshold_set.callback(cog, ctx, 3, "softban", PERMANENT_DURATION)
        await cog.threshold_set.callback(cog, ctx, 2, "mute", "1 hour")

        configured = await services.warnings.thresholds(GUILD_ID)
        assert [(t.warnings, t.type, t.soft) for t in configured] == [
            (2, PunishmentType.MUTE, False),
            (3, PunishmentType.BAN, True),
        ]
        assert configured[0].time == 3_600_000

        await cog.thresholds.callback(cog, ctx)
        listing = ctx.respond.await_args.args[0]
        assert "Soft Banned" in listing and "3600s" in listing

        await cog.threshold_remove.callback(cog, ctx, 2)
        assert "Removed" in ctx.respond.await_args.args[0]

    async def test_automod_and_blacklist(self, cog, ctx, services):
        await cog.automod_toggle.callback(cog, ctx, "blacklist", True)
        assert services.settings.is_automod_enabled(GUILD_ID, "blacklist")

        await cog.blacklist_add.callback(cog, ctx, " Heck ")
        assert services.settings.get(GUILD_ID).blacklist_words == ["heck"]

        await cog.blacklist_remove.callback(cog, ctx, "darn")
        assert "not blacklisted" in ctx.respond.await_args.args[0]


class TestAutomodListenerCog:
    """Gateway events flowing through the detectors."""

    @pytest.fixture
    def cog(self, wired_bot):
        return AutomodListenerCog(wired_bot)

    def message_from(self, guild, author, content):
        message = MagicMock(spec=discord.Message)
        message.guild = guild
        message.author = author
        message.content = content
        message.created_at = datetime.now(timezone.utc)
        message.delete = AsyncMock()
        return message

    async def test_phishing_message_is_deleted_and_author_banned(self, cog, services, guild, target):
        services.settings.set_automod_enabled(GUILD_ID, "phishing", True)
        message = self.message_from(guild, target, "https://discord-nitro.gift/free")

        await cog.on_message(message)

        message.delete.assert_awaited_once()
        assert guild.ban.await_args.kwargs["delete_message_seconds"] == 86400
        case = await services.ledger.get(GUILD_ID, 1)
        assert case.type is PunishmentType.BAN
        assert case.moderator_id == guild.me.id

    async def test_disabled_detector_does_nothing(self, cog, guild, target):
        message = self.message_from(guild, target, "https://discord-nitro.gift/free")

        await cog.on_message(message)

        message.delete.assert_not_awaited()

    async def test_staff_and_bots_are_exempt(self, cog, services, guild, staff):
        services.settings.set_automod_enabled(GUILD_ID, "phishing", True)
        robot = build_member(guild, 600, 1, bot=True)

        for author in (staff, robot):
            message = self.message_from(guild, author, "https://discord-nitro.gift/free")
            await cog.on_message(message)
            message.delete.assert_not_awaited()

    async def test_blacklisted_word_adds_a_warning(self, cog, services, guild, target):
        services.settings.set_automod_enabled(GUILD_ID, "blacklist", True)
        services.settings.add_blacklist_word(GUILD_ID, "heck")

        await cog.on_message(self.message_from(guild, target, "what the heck"))

        assert await services.warnings.total(GUILD_ID, target.id) == 1

    async def test_nickname_change_is_dehoisted(self, cog, services, guild, target):
        services.settings.set_automod_enabled(GUILD_ID, "dehoist", True)
        before = build_member(guild, target.id, 5, name="target")
        target.display_name = "!!!target"

        await cog.on_member_update(before, target)

        target.edit.assert_awaited_once_with(nick="target", reason="Hoisting display name")

    async def test_failing_punishment_is_logged_not_raised(self, cog, services, guild, target):
        target.kick.side_effect = forbidden()
        event = MagicMock(guild=guild)
        verdict = AutomodVerdict(
            detector="raid",
            reason="test",
            punishment=PunishmentRequest.create(FullMember(target), guild.me, PunishmentType.KICK),
        )

        await cog.apply_verdict(event, verdict)

        assert await services.ledger.get(GUILD_ID, 1) is None

    async def test_crashing_detector_is_skipped(self, cog, services, guild, target):
        broken = MagicMock()
        broken.name = "broken"
        broken.enabled_for.return_value = True
        broken.evaluate = AsyncMock(side_effect=RuntimeError("bug"))
        services.detectors.insert(0, broken)
        services.settings.set_automod_enabled(GUILD_ID, "shortlinks", True)
        message = self.message_from(guild, target, "https://bit.ly/x")

        await cog.on_message(message)

        broken.evaluate.assert_awaited_once()
        message.delete.assert_awaited_once()
