"""Tests for the per-guild case ledger."""

import asyncio

import pytest

from casekeeper.datatypes.punishment_datatypes import NewCase, PunishmentType
from casekeeper.moderation.case_ledger import CaseLedger


def new_case(guild_id=1000, victim_id=300, type=PunishmentType.KICK, **kwargs):
    return NewCase(guild_id=guild_id, victim_id=victim_id, moderator_id=200, type=type, **kwargs)


@pytest.fixture
def ledger(db):
    return CaseLedger(db)


class TestRecord:
    """Tests for CaseLedger.record."""

    async def test_indices_are_sequential_per_guild(self, ledger):
        first = await ledger.record(new_case())
        second = await ledger.record(new_case())
        other_guild = await ledger.record(new_case(guild_id=2000))

        assert (first.index, second.index) == (1, 2)
        assert other_guild.index == 1

    async def test_concurrent_records_never_share_an_index(self, ledger):
        cases = await asyncio.gather(*(ledger.record(new_case()) for _ in range(20)))

        assert sorted(case.index for case in cases) == list(range(1, 21))

    async def test_fields_round_trip_through_storage(self, ledger):
        recorded = await ledger.record(
            new_case(
                type=PunishmentType.VOICE_MUTE,
                reason="shouting",
                attachments=["https://cdn.example/a.png", "https://cdn.example/b.png"],
                time=60_000,
                voice_channel_id=555,
            )
        )

        stored = await ledger.get(1000, recorded.index)

        assert stored.type is PunishmentType.VOICE_MUTE
        assert stored.reason == "shouting"
        assert stored.attachments == ["https://cdn.example/a.png", "https://cdn.example/b.png"]
        assert stored.time == 60_000
        assert stored.voice_channel_id == 555
        assert stored.message_id is None
        assert stored.created_at is not None

    async def test_record_inside_open_transaction_rolls_back_with_it(self, db, ledger):
        with pytest.raises(RuntimeError):
            async with db.transaction() as conn:
                await ledger.record(new_case(), conn=conn)
                raise RuntimeError("abort")

        assert await ledger.get(1000, 1) is None
        assert (await ledger.record(new_case())).index == 1


class TestLookups:
    """Tests for reads and the message id / reason updates."""

    async def test_get_missing_case_returns_none(self, ledger):
        assert await ledger.get(1000, 42) is None

    async def test_list_for_member_is_newest_first(self, ledger):
        await ledger.record(new_case(victim_id=300))
        await ledger.record(new_case(victim_id=301))
        await ledger.record(new_case(victim_id=300, type=PunishmentType.BAN))

        cases = await ledger.list_for_member(1000, 300)

        assert [case.index for case in cases] == [3, 1]

    async def test_attach_message_only_sets_once(self, ledger):
        case = await ledger.record(new_case())

        assert await ledger.attach_message(case, 111) is True
        assert case.message_id == 111
        assert await ledger.attach_message(case, 222) is False
        assert (await ledger.get(1000, case.index)).message_id == 111

    async def test_update_reason(self, ledger):
        case = await ledger.record(new_case(reason="old"))

        updated = await ledger.update_reason(1000, case.index, "new")

        assert updated.reason == "new"
        assert await ledger.update_reason(1000, 99, "nope") is None
