"""
Persistent storage for threshold punishments (``guild_punishments``).

A guild holds at most one punishment per warning count.
"""

from __future__ import annotations

from typing import List

import aiosqlite

from casekeeper.datatypes.punishment_datatypes import PunishmentType, ThresholdPunishment
from casekeeper.util.logger import get_logger

logger = get_logger("punishment_config_repo")


class PunishmentConfigRepo:
    """Low-level CRUD for the ``guild_punishments`` table."""

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, punishment: ThresholdPunishment) -> None:
        """Insert or replace the punishment configured for a warning count."""
        await conn.execute(
            """
            INSERT INTO guild_punishments (guild_id, warnings, type, time, soft, days)
            VALUES (?, ?, ?, ?, ?, ?)
            ON CONFLICT(guild_id, warnings) DO UPDATE SET
                type = excluded.type,
                time = excluded.time,
                soft = excluded.soft,
                days = excluded.days
            """,
            (
                punishment.guild_id,
                punishment.warnings,
                punishment.type.value,
                punishment.time,
                1 if punishment.soft else 0,
                punishment.days,
            ),
        )

    @staticmethod
    async def delete(conn: aiosqlite.Connection, guild_id: int, warnings: int) -> bool:
        """Remove the punishment for a warning count. Returns True if one existed."""
        cursor = await conn.execute(
            "DELETE FROM guild_punishments WHERE guild_id = ? AND warnings = ?",
            (guild_id, warnings),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def list_for_guild(conn: aiosqlite.Connection, guild_id: int) -> List[ThresholdPunishment]:
        """Return every configured threshold of a guild, lowest first."""
        cursor = await conn.execute(
            "SELECT guild_id, warnings, type, time, soft, days FROM guild_punishments "
            "WHERE guild_id = ? ORDER BY warnings",
            (guild_id,),
        )
        rows = await cursor.fetchall()
        return [
            ThresholdPunishment(
                guild_id=row[0],
                warnings=row[1],
                type=PunishmentType(row[2]),
                time=row[3],
                soft=bool(row[4]),
                days=row[5],
            )
            for row in rows
        ]

    @staticmethod
    async def crossed(
        conn: aiosqlite.Connection,
        guild_id: int,
        previous_total: int,
        new_total: int,
    ) -> List[ThresholdPunishment]:
        """Return thresholds ``t`` with ``previous_total < t <= new_total``, lowest first."""
        if new_total <= previous_total:
            return []
        cursor = await conn.execute(
            "SELECT guild_id, warnings, type, time, soft, days FROM guild_punishments "
            "WHERE guild_id = ? AND warnings > ? AND warnings <= ? ORDER BY warnings",
            (guild_id, previous_total, new_total),
        )
        rows = await cursor.fetchall()
        return [
            ThresholdPunishment(
                guild_id=row[0],
                warnings=row[1],
                type=PunishmentType(row[2]),
                time=row[3],
                soft=bool(row[4]),
                days=row[5],
            )
            for row in rows
        ]
