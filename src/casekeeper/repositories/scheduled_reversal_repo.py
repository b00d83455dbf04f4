"""
Persistent storage for scheduled reversals (timed unban, unmute, ...).

Timestamps are stored as INTEGER unix seconds (seconds since the epoch)
so comparisons are trivial and there is no string parsing or timezone
conversion needed.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List

import aiosqlite

from casekeeper.datatypes.punishment_datatypes import PunishmentType
from casekeeper.util.logger import get_logger

logger = get_logger("scheduled_reversal_repo")


@dataclass(frozen=True, slots=True)
class ReversalJob:
    """A single row from the ``scheduled_reversals`` table."""
    guild_id: int
    victim_id: int
    moderator_id: int
    type: PunishmentType   # the reversal to apply, e.g. UNBAN
    run_at: int            # unix seconds (UTC)

    @property
    def key(self) -> tuple[int, int, PunishmentType]:
        return (self.guild_id, self.victim_id, self.type)


class ScheduledReversalRepo:
    """Low-level CRUD for the ``scheduled_reversals`` table."""

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    @staticmethod
    async def upsert(conn: aiosqlite.Connection, job: ReversalJob) -> None:
        """Insert or replace a job (primary key = guild_id + victim_id + type)."""
        await conn.execute(
            """
            INSERT INTO scheduled_reversals (guild_id, victim_id, type, moderator_id, run_at)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(guild_id, victim_id, type) DO UPDATE SET
                moderator_id = excluded.moderator_id,
                run_at       = excluded.run_at
            """,
            (job.guild_id, job.victim_id, job.type.value, job.moderator_id, job.run_at),
        )

    @staticmethod
    async def delete(
        conn: aiosqlite.Connection,
        guild_id: int,
        victim_id: int,
        type: PunishmentType,
    ) -> bool:
        """Remove a job after it ran (or was cancelled)."""
        cursor = await conn.execute(
            "DELETE FROM scheduled_reversals WHERE guild_id = ? AND victim_id = ? AND type = ?",
            (guild_id, victim_id, type.value),
        )
        return cursor.rowcount > 0

    @staticmethod
    async def delete_job(conn: aiosqlite.Connection, job: ReversalJob) -> bool:
        """Remove exactly this job; a newer schedule for the same key is left alone."""
        cursor = await conn.execute(
            "DELETE FROM scheduled_reversals "
            "WHERE guild_id = ? AND victim_id = ? AND type = ? AND run_at = ?",
            (job.guild_id, job.victim_id, job.type.value, job.run_at),
        )
        return cursor.rowcount > 0

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @staticmethod
    async def get_all(conn: aiosqlite.Connection) -> List[ReversalJob]:
        """Return every pending job, soonest first."""
        cursor = await conn.execute(
            "SELECT guild_id, victim_id, moderator_id, type, run_at "
            "FROM scheduled_reversals ORDER BY run_at"
        )
        rows = await cursor.fetchall()
        return [
            ReversalJob(
                guild_id=row[0],
                victim_id=row[1],
                moderator_id=row[2],
                type=PunishmentType(row[3]),
                run_at=row[4],
            )
            for row in rows
        ]
