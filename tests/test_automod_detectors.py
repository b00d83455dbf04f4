"""Tests for the automod detectors."""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from casekeeper.automod.base import MemberEvent, MessageEvent, host_matches, iter_url_hosts
from casekeeper.automod.detectors import (
    BlacklistDetector,
    DehoistDetector,
    MessageLinkDetector,
    PhishingDetector,
    RaidDetector,
    ShortlinkDetector,
    SpamDetector,
)
from casekeeper.automod.registry import build_detectors
from casekeeper.configuration.app_configuration import AutomodSettings
from casekeeper.datatypes.guild_settings import GuildSettings
from casekeeper.datatypes.punishment_datatypes import PunishmentType

from fakes import GUILD_ID, build_member, build_permissions, not_found

START = datetime(2024, 1, 1, tzinfo=timezone.utc)


def message_event(guild, author, content="hello", created_at=START, **settings):
    message = MagicMock(spec=discord.Message)
    message.guild = guild
    message.author = author
    message.content = content
    message.created_at = created_at
    return MessageEvent(message=message, settings=GuildSettings(guild_id=GUILD_ID, **settings))


def member_event(member, joined=True):
    return MemberEvent(member=member, settings=GuildSettings(guild_id=GUILD_ID), joined=joined)


class TestHelpers:
    def test_iter_url_hosts(self):
        hosts = list(iter_url_hosts("see https://Bit.ly/x and http://example.com./y plus text"))

        assert hosts == ["bit.ly", "example.com"]

    def test_host_matches_subdomains_only(self):
        assert host_matches("cdn.discord-nitro.gift", "discord-nitro.gift")
        assert not host_matches("notdiscord-nitro.gift", "discord-nitro.gift")


class TestSpam:
    async def test_burst_triggers_mute_and_resets_window(self, guild, target):
        detector = SpamDetector(max_messages=3, per_seconds=5, mute_seconds=60)
        verdicts = [
            await detector.evaluate(message_event(guild, target, created_at=START + timedelta(seconds=i)))
            for i in range(4)
        ]

        assert verdicts[:3] == [None, None, None]
        verdict = verdicts[3]
        assert verdict.delete_message is True
        assert verdict.punishment.type is PunishmentType.MUTE
        assert verdict.punishment.options.time == 60_000
        assert verdict.punishment.moderator is guild.me

        assert await detector.evaluate(message_event(guild, target, created_at=START + timedelta(seconds=4))) is None

    async def test_slow_messages_never_trigger(self, guild, target):
        detector = SpamDetector(max_messages=2, per_seconds=5, mute_seconds=60)

        for i in range(6):
            event = message_event(guild, target, created_at=START + timedelta(seconds=i * 10))
            assert await detector.evaluate(event) is None

    async def test_idle_members_are_forgotten(self, guild):
        detector = SpamDetector(max_messages=5, per_seconds=5, mute_seconds=60)
        for member_id in range(1000, 2000):
            author = MagicMock(id=member_id)
            await detector.evaluate(message_event(guild, author, created_at=START))

        await detector.evaluate(message_event(guild, MagicMock(id=5), created_at=START + timedelta(minutes=1)))

        assert len(detector._cooldowns._cache) == 1


class TestRaid:
    async def test_join_flood_kicks_newcomers(self, guild):
        detector = RaidDetector(max_joins=2, per_seconds=10)
        results = []
        for i in range(3):
            member = build_member(guild, 500 + i, 1)
            member.joined_at = START + timedelta(seconds=i)
            results.append(await detector.evaluate(member_event(member)))

        assert results[:2] == [None, None]
        assert results[2].punishment.type is PunishmentType.KICK

    async def test_profile_updates_are_not_joins(self, guild, target):
        detector = RaidDetector(max_joins=0, per_seconds=10)

        assert await detector.evaluate(member_event(target, joined=False)) is None

    async def test_quiet_guilds_are_forgotten(self, guild):
        detector = RaidDetector(max_joins=5, per_seconds=10)
        for guild_id in range(1, 501):
            member = MagicMock(joined_at=START)
            member.guild.id = guild_id
            await detector.evaluate(member_event(member))

        await detector.evaluate(member_event(MagicMock(joined_at=START + timedelta(minutes=1), guild=guild)))

        assert len(detector._cooldowns._cache) == 1


class TestLinks:
    async def test_phishing_link_bans_with_one_day_purge(self, guild, target):
        detector = PhishingDetector(["discord-nitro.gift"])

        verdict = await detector.evaluate(message_event(guild, target, "free https://discord-nitro.gift/claim"))

        assert verdict.delete_message is True
        assert verdict.punishment.type is PunishmentType.BAN
        assert verdict.punishment.options.days == 1

    async def test_clean_link_passes(self, guild, target):
        detector = PhishingDetector(["discord-nitro.gift"])

        assert await detector.evaluate(message_event(guild, target, "https://discord.com")) is None

    async def test_shortlink_is_deleted_without_punishment(self, guild, target):
        detector = ShortlinkDetector(["bit.ly"])

        verdict = await detector.evaluate(message_event(guild, target, "https://bit.ly/abc"))

        assert verdict.delete_message is True
        assert verdict.punishment is None


class TestBlacklist:
    async def test_whole_word_match_warns(self, guild, target):
        verdict = await BlacklistDetector().evaluate(
            message_event(guild, target, "that is BadWord indeed", blacklist_words=["badword"])
        )

        assert verdict.punishment.type is PunishmentType.WARNING_ADDED
        assert verdict.punishment.options.amount == 1

    async def test_substring_does_not_match(self, guild, target):
        verdict = await BlacklistDetector().evaluate(
            message_event(guild, target, "classic", blacklist_words=["ass"])
        )

        assert verdict is None


class TestDehoist:
    @pytest.mark.parametrize(
        "name, expected",
        [("!!!Alice", "Alice"), ("!!!", "Dehoisted"), ("Bob", None)],
    )
    async def test_nicknames(self, target, name, expected):
        target.display_name = name

        verdict = await DehoistDetector("!").evaluate(member_event(target, joined=False))

        assert (verdict.nickname if verdict else None) == expected


class TestMessageLinks:
    async def test_same_guild_link_is_quoted(self, guild, target):
        linked = MagicMock(spec=discord.Message)
        channel = MagicMock()
        channel.permissions_for.return_value = build_permissions(read_messages=True)
        channel.fetch_message = AsyncMock(return_value=linked)
        guild.get_channel_or_thread.return_value = channel

        verdict = await MessageLinkDetector().evaluate(
            message_event(guild, target, f"look https://discord.com/channels/{GUILD_ID}/10/20")
        )

        channel.fetch_message.assert_awaited_once_with(20)
        assert verdict.quote is linked

    async def test_other_guild_link_is_ignored(self, guild, target):
        verdict = await MessageLinkDetector().evaluate(
            message_event(guild, target, "https://discord.com/channels/1/10/20")
        )

        assert verdict is None

    async def test_unreadable_channel_is_ignored(self, guild, target):
        channel = MagicMock()
        channel.permissions_for.return_value = build_permissions(read_messages=False)
        channel.fetch_message = AsyncMock()
        guild.get_channel_or_thread.return_value = channel

        verdict = await MessageLinkDetector().evaluate(
            message_event(guild, target, f"https://discord.com/channels/{GUILD_ID}/10/20")
        )

        assert verdict is None
        channel.fetch_message.assert_not_awaited()

    async def test_deleted_message_is_ignored(self, guild, target):
        channel = MagicMock()
        channel.permissions_for.return_value = build_permissions(read_messages=True)
        channel.fetch_message = AsyncMock(side_effect=not_found("Unknown Message"))
        guild.get_channel_or_thread.return_value = channel

        verdict = await MessageLinkDetector().evaluate(
            message_event(guild, target, f"https://discord.com/channels/{GUILD_ID}/10/20")
        )

        assert verdict is None


def test_registry_builds_every_detector():
    detectors = build_detectors(AutomodSettings())

    assert [detector.name for detector in detectors] == [
        "spam", "raid", "phishing", "blacklist", "dehoist", "message_links", "shortlinks",
    ]


def test_detectors_follow_guild_toggles():
    spam = SpamDetector(5, 5, 60)

    assert spam.enabled_for(GuildSettings(guild_id=GUILD_ID)) is False
    assert spam.enabled_for(GuildSettings(guild_id=GUILD_ID, automod_spam=True)) is True
