"""Tests for mod-log rendering and publishing."""

from datetime import datetime
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from casekeeper.datatypes.punishment_datatypes import Case, FullMember, PunishmentRequest, PunishmentType
from casekeeper.moderation.modlog import MODLOG_COLOUR, render_description, render_header

from fakes import GUILD_ID, build_permissions, forbidden


def make_case(**overrides):
    fields = dict(guild_id=GUILD_ID, index=7, victim_id=300, moderator_id=200, type=PunishmentType.BAN)
    fields.update(overrides)
    return Case(**fields)


def field_map(embed):
    return {field.name: field.value for field in embed.fields}


@pytest.fixture
def modlog_channel(guild, services):
    channel = MagicMock(spec=discord.TextChannel)
    channel.id = 800
    channel.guild = guild
    channel.permissions_for.return_value = build_permissions(send_messages=True, embed_links=True)
    channel.send = AsyncMock(return_value=MagicMock(id=9001))
    guild.get_channel.side_effect = lambda channel_id: channel if channel_id == 800 else None
    services.settings.update(GUILD_ID, modlog_channel_id=800)
    return channel


class TestRendering:
    """Header, description and fields."""

    def test_header(self):
        assert render_header(make_case()) == "**[** \N{HAMMER} **~** Case #**7** (Banned) **]**"

    def test_description_without_reason_points_to_reason_command(self):
        assert "/reason 7 <reason>" in render_description(make_case())

    def test_description_lists_attachments(self):
        description = render_description(
            make_case(reason="spam", attachments=["https://a.example/1.png", "https://a.example/2.png"])
        )

        assert description.startswith("spam")
        assert "[**`Attachment #2`**](https://a.example/2.png)" in description

    def test_embed_fields(self, services):
        content, embed = services.modlog.render(
            make_case(time=90_000, created_at=datetime(2024, 1, 1, 12, 0, 0))
        )

        fields = field_map(embed)
        assert content.startswith("**[**")
        assert embed.colour.value == MODLOG_COLOUR
        assert embed.author.name == "Unknown User (300)"
        assert fields["• Moderator"] == "<@200> (`200`)"
        assert fields["• Time"] == "1 minute and 30 seconds"
        assert embed.timestamp is not None

    def test_unrenderable_duration_is_omitted(self, services):
        _, embed = services.modlog.render(make_case(time=0))

        assert "• Time" not in field_map(embed)

    def test_removed_warnings_render_all(self, services):
        _, embed = services.modlog.render(make_case(type=PunishmentType.WARNING_REMOVED, warning_amount=None))

        assert field_map(embed)["• Warnings Removed"] == "All"

    def test_voice_channel_field(self, services, guild):
        voice_channel = MagicMock()
        voice_channel.name = "General VC"
        guild.get_channel.side_effect = lambda channel_id: voice_channel
        _, embed = services.modlog.render(make_case(type=PunishmentType.VOICE_MUTE, voice_channel_id=555), guild)

        assert field_map(embed)["• Voice Channel"] == "General VC (`555`)"


class TestPublishing:
    """Posting and editing mod-log messages."""

    async def test_no_channel_configured_makes_no_calls(self, services, bot):
        assert await services.modlog.publish(make_case()) is None
        bot.get_guild.assert_not_called()

    async def test_publish_posts_and_stores_message_id(self, services, modlog_channel, moderator, target):
        case = await services.executor.apply(
            PunishmentRequest.create(FullMember(target), moderator, PunishmentType.KICK, reason="rude")
        )

        modlog_channel.send.assert_awaited_once()
        assert case.message_id == 9001
        assert (await services.ledger.get(GUILD_ID, case.index)).message_id == 9001

    async def test_publish_can_be_skipped(self, services, modlog_channel, moderator, target):
        await services.executor.apply(
            PunishmentRequest.create(FullMember(target), moderator, PunishmentType.KICK, publish=False)
        )

        modlog_channel.send.assert_not_awaited()

    async def test_missing_permissions_skip_publishing(self, services, modlog_channel):
        modlog_channel.permissions_for.return_value = build_permissions(send_messages=True, embed_links=False)

        assert await services.modlog.publish(make_case()) is None
        modlog_channel.send.assert_not_awaited()

    async def test_send_failure_does_not_fail_the_punishment(self, services, modlog_channel, moderator, target):
        modlog_channel.send.side_effect = forbidden()

        case = await services.executor.apply(
            PunishmentRequest.create(FullMember(target), moderator, PunishmentType.KICK)
        )

        assert case.message_id is None
        target.kick.assert_awaited_once()

    async def test_reason_update_edits_the_message(self, services, guild, modlog_channel, moderator, target):
        message = MagicMock()
        message.edit = AsyncMock()
        modlog_channel.fetch_message = AsyncMock(return_value=message)
        case = await services.executor.apply(
            PunishmentRequest.create(FullMember(target), moderator, PunishmentType.KICK)
        )

        updated = await services.executor.update_reason(guild, case.index, "New reason")

        modlog_channel.fetch_message.assert_awaited_once_with(9001)
        assert updated.reason == "New reason"
        assert message.edit.await_args.kwargs["embed"].description == "New reason"

    async def test_edit_without_message_returns_false(self, services, modlog_channel):
        assert await services.modlog.edit(make_case()) is False
