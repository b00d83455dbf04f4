"""
Persistent storage for the per-guild case ledger.

Case indices are allocated as ``MAX(case_index) + 1`` for the guild. The
allocation and the insert must run on a connection obtained from
``db_connection.transaction()`` so concurrent allocations are serialised;
``PRIMARY KEY (guild_id, case_index)`` rejects any duplicate that slips past.

Attachments are stored as a JSON array of URLs.
"""

from __future__ import annotations

import json
from datetime import datetime, timezone
from typing import List, Optional

import aiosqlite

from casekeeper.datatypes.punishment_datatypes import Case, NewCase, PunishmentType
from casekeeper.util.logger import get_logger

logger = get_logger("case_repo")

_CASE_COLUMNS = (
    "guild_id, case_index, victim_id, moderator_id, type, reason, attachments, "
    "soft, time, message_id, warning_amount, voice_channel_id, created_at"
)


def _parse_timestamp(raw) -> Optional[datetime]:
    if raw is None:
        return None
    if isinstance(raw, datetime):
        return raw
    try:
        return datetime.fromisoformat(str(raw))
    except ValueError:
        return None


def _row_to_case(row) -> Case:
    try:
        attachments = json.loads(row[6]) if row[6] else []
    except json.JSONDecodeError:
        logger.warning("[CASES] Unreadable attachments for case %s#%s", row[0], row[1])
        attachments = []
    return Case(
        guild_id=row[0],
        index=row[1],
        victim_id=row[2],
        moderator_id=row[3],
        type=PunishmentType(row[4]),
        reason=row[5],
        attachments=list(attachments),
        soft=bool(row[7]),
        time=row[8],
        message_id=row[9],
        warning_amount=row[10],
        voice_channel_id=row[11],
        created_at=_parse_timestamp(row[12]),
    )


class CaseRepo:
    """Low-level CRUD for the ``guild_cases`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def next_index(conn: aiosqlite.Connection, guild_id: int) -> int:
        """Return the index the next case of ``guild_id`` will receive."""
        cursor = await conn.execute(
            "SELECT COALESCE(MAX(case_index), 0) + 1 FROM guild_cases WHERE guild_id = ?",
            (guild_id,),
        )
        row = await cursor.fetchone()
        return int(row[0])

    @staticmethod
    async def insert(conn: aiosqlite.Connection, new_case: NewCase) -> Case:
        """Allocate the next index for the guild and store ``new_case`` under it.

        Must be called inside a write transaction.
        """
        index = await CaseRepo.next_index(conn, new_case.guild_id)
        await conn.execute(
            """
            INSERT INTO guild_cases (
                guild_id, case_index, victim_id, moderator_id, type, reason,
                attachments, soft, time, warning_amount, voice_channel_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                new_case.guild_id,
                index,
                new_case.victim_id,
                new_case.moderator_id,
                new_case.type.value,
                new_case.reason,
                json.dumps(list(new_case.attachments)),
                1 if new_case.soft else 0,
                new_case.time,
                new_case.warning_amount,
                new_case.voice_channel_id,
            ),
        )
        return Case(
            guild_id=new_case.guild_id,
            index=index,
            victim_id=new_case.victim_id,
            moderator_id=new_case.moderator_id,
            type=new_case.type,
            reason=new_case.reason,
            attachments=list(new_case.attachments),
            soft=new_case.soft,
            time=new_case.time,
            warning_amount=new_case.warning_amount,
            voice_channel_id=new_case.voice_channel_id,
            created_at=datetime.now(timezone.utc).replace(tzinfo=None),
        )

    @staticmethod
    async def set_message_id(
        conn: aiosqlite.Connection,
        guild_id: int,
        index: int,
        message_id: int,
    ) -> bool:
        """Record the mod-log message of a case. Never overwrites an existing one.

        Returns:
            True if the row was updated.
        """
        cursor = await conn.execute(
            "UPDATE guild_cases SET message_id = ? "
            "WHERE guild_id = ? AND case_index = ? AND message_id IS NULL",
            (message_id, guild_id, index),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def update_reason(
        conn: aiosqlite.Connection,
        guild_id: int,
        index: int,
        reason: Optional[str],
    ) -> bool:
        """Rewrite the reason of a case. Returns True if the case exists."""
        cursor = await conn.execute(
            "UPDATE guild_cases SET reason = ? WHERE guild_id = ? AND case_index = ?",
            (reason, guild_id, index),
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get(conn: aiosqlite.Connection, guild_id: int, index: int) -> Optional[Case]:
        """Return a single case, or None if the guild has no such index."""
        cursor = await conn.execute(
            f"SELECT {_CASE_COLUMNS} FROM guild_cases WHERE guild_id = ? AND case_index = ?",
            (guild_id, index),
        )
        row = await cursor.fetchone()
        return _row_to_case(row) if row is not None else None

    @staticmethod
    async def list_for_member(
        conn: aiosqlite.Connection,
        guild_id: int,
        victim_id: int,
        limit: int = 25,
    ) -> List[Case]:
        """Return the most recent cases filed against a member, newest first."""
        cursor = await conn.execute(
            f"SELECT {_CASE_COLUMNS} FROM guild_cases "
            "WHERE guild_id = ? AND victim_id = ? ORDER BY case_index DESC LIMIT ?",
            (guild_id, victim_id, limit),
        )
        rows = await cursor.fetchall()
        return [_row_to_case(row) for row in rows]
