"""Tests for discord_utils module."""

from unittest.mock import AsyncMock, MagicMock

import discord
import pytest

from casekeeper.util.discord_utils import (
    DURATION_CHOICES,
    PERMANENT_DURATION,
    format_duration,
    has_elevated_permissions,
    has_permissions,
    is_ignored_author,
    iter_manageable_channels,
    parse_duration,
    safe_delete_message,
)

from fakes import build_guild, build_member, build_permissions, forbidden, not_found


class TestDurations:
    """Tests for the duration helpers."""

    def test_parse_duration(self):
        assert parse_duration("60 secs") == 60_000
        assert parse_duration("1 week") == 7 * 24 * 60 * 60 * 1000
        assert parse_duration(PERMANENT_DURATION) is None
        assert parse_duration("whenever") is None

    def test_every_choice_parses(self):
        assert all(parse_duration(label) or label == PERMANENT_DURATION for label in DURATION_CHOICES)

    def test_format_duration(self):
        assert format_duration(60_000) == "1 minute"
        assert format_duration(3_600_000 + 5_000) == "1 hour and 5 seconds"

    @pytest.mark.parametrize("value", [0, -1, None])
    def test_format_duration_rejects_non_positive(self, value):
        with pytest.raises(ValueError):
            format_duration(value)


class TestPermissionHelpers:
    """Tests for the permission helpers."""

    def test_is_ignored_author(self):
        guild = build_guild()
        assert is_ignored_author(build_member(guild, 2, 1)) is False
        assert is_ignored_author(build_member(guild, 3, 1, bot=True)) is True
        user = MagicMock(spec=discord.User)
        user.bot = False
        assert is_ignored_author(user) is True

    def test_has_elevated_permissions(self):
        guild = build_guild()
        assert has_elevated_permissions(build_member(guild, 2, 1, manage_messages=True)) is True
        assert has_elevated_permissions(build_member(guild, 3, 1, administrator=True)) is True
        assert has_elevated_permissions(build_member(guild, 4, 1)) is False
        assert has_elevated_permissions(MagicMock(spec=discord.User)) is False

    def test_has_permissions(self):
        guild = build_guild()
        ctx = MagicMock(spec=discord.ApplicationContext)
        ctx.author = build_member(guild, 2, 1, ban_members=True)

        assert has_permissions(ctx, ban_members=True) is True
        assert has_permissions(ctx, ban_members=True, kick_members=True) is False

        ctx.author = build_member(guild, 3, 1, administrator=True)
        assert has_permissions(ctx, kick_members=True) is True

        ctx.author = MagicMock(spec=discord.User)
        assert has_permissions(ctx, ban_members=True) is False

    def test_iter_manageable_channels(self):
        guild = build_guild()
        manageable = MagicMock()
        manageable.permissions_for.return_value = build_permissions(manage_channels=True)
        locked = MagicMock()
        locked.permissions_for.return_value = build_permissions()
        guild.channels = [manageable, locked]

        assert list(iter_manageable_channels(guild)) == [manageable]


class TestSafeDeleteMessage:
    """Tests for safe_delete_message."""

    async def test_success(self):
        message = MagicMock()
        message.delete = AsyncMock()

        assert await safe_delete_message(message) is True

    @pytest.mark.parametrize("error", [not_found(), forbidden()])
    async def test_errors_are_suppressed(self, error):
        message = MagicMock()
        message.delete = AsyncMock(side_effect=error)

        assert await safe_delete_message(message) is False
