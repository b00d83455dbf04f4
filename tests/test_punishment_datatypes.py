"""Tests for punishment types, member references and request validation."""

from unittest.mock import MagicMock

import discord
import pytest

from casekeeper.datatypes.punishment_datatypes import (
    FullMember,
    MemberReference,
    PunishmentOptions,
    PunishmentRequest,
    PunishmentType,
    to_member_like,
)
from casekeeper.moderation.errors import PunishmentError, ValidationError

from fakes import build_guild, build_member


class TestPunishmentType:
    def test_reversals(self):
        assert PunishmentType.BAN.reversal is PunishmentType.UNBAN
        assert PunishmentType.MUTE.reversal is PunishmentType.UNMUTE
        assert PunishmentType.VOICE_DEAFEN.reversal is PunishmentType.VOICE_UNDEAFEN
        assert PunishmentType.THREAD_MESSAGES_REMOVED.reversal is PunishmentType.THREAD_MESSAGES_ADDED
        assert PunishmentType.KICK.reversal is None
        assert PunishmentType.WARNING_ADDED.reversal is None

    def test_every_type_has_label_and_emoji(self):
        for punishment_type in PunishmentType:
            assert punishment_type.label
            assert punishment_type.emoji

    def test_classification(self):
        assert PunishmentType.WARNING_REMOVED.is_warning
        assert not PunishmentType.BAN.is_warning
        assert PunishmentType.VOICE_UNMUTE.is_voice
        assert not PunishmentType.MUTE.is_voice


class TestMemberLike:
    def test_member_is_wrapped_as_full_member(self):
        guild = build_guild()
        member = build_member(guild, 5, 1)

        wrapped = to_member_like(member, guild)

        assert isinstance(wrapped, FullMember)
        assert wrapped.id == 5
        assert wrapped.guild is guild

    def test_user_and_id_become_references(self):
        guild = build_guild()
        user = MagicMock(spec=discord.User)
        user.id = 6

        assert to_member_like(user, guild) == MemberReference(id=6, guild=guild)
        assert to_member_like(7, guild).as_snowflake().id == 7

    async def test_reference_resolves_cached_then_fetched(self):
        guild = build_guild()
        member = build_member(guild, 5, 1)

        assert await MemberReference(id=5, guild=guild).resolve() is member
        with pytest.raises(discord.NotFound):
            await MemberReference(id=99, guild=guild).resolve()


class TestOptions:
    def test_defaults(self):
        options = PunishmentOptions()

        assert options.publish is True
        assert options.soft is False
        assert options.days == 7
        assert options.attachments == []

    def test_blank_reason_becomes_none(self):
        assert PunishmentOptions(reason="   ").reason is None
        assert PunishmentOptions(reason=" spam ").reason == "spam"

    @pytest.mark.parametrize(
        "kwargs",
        [{"time": 0}, {"time": -1}, {"time": True}, {"time": 1.5}, {"days": -1}, {"days": 8}, {"amount": 0}],
    )
    def test_invalid_values(self, kwargs):
        with pytest.raises(ValidationError):
            PunishmentOptions(**kwargs)

    def test_create_rejects_missing_parts(self):
        guild = build_guild()
        member = FullMember(build_member(guild, 5, 1))

        with pytest.raises(ValidationError):
            PunishmentRequest.create(member, None, PunishmentType.KICK)
        with pytest.raises(ValidationError):
            PunishmentRequest.create(member, guild.me, "kick")

    def test_create_carries_options(self):
        guild = build_guild()
        member = FullMember(build_member(guild, 5, 1))

        request = PunishmentRequest.create(member, guild.me, PunishmentType.BAN, soft=True, days=0)

        assert request.guild is guild
        assert request.options.soft is True
        assert request.options.days == 0

    def test_errors_carry_a_user_message(self):
        assert ValidationError().message == ValidationError.user_message
        assert isinstance(ValidationError("x"), PunishmentError)
        assert str(ValidationError("bad")) == "bad"
