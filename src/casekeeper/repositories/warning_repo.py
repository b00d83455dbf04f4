"""
Persistent storage for member warnings.

Each grant is a row with a positive ``amount`` and each removal a row with a
negative one, so a member's total is ``SUM(amount)``. Callers read the total
and insert the next row inside the same write transaction.
"""

from __future__ import annotations

from typing import List, Optional

import aiosqlite

from casekeeper.datatypes.punishment_datatypes import WarningRecord
from casekeeper.util.logger import get_logger

logger = get_logger("warning_repo")


class WarningRepo:
    """Low-level CRUD for the ``warnings`` table."""

    @staticmethod
    async def insert(
        conn: aiosqlite.Connection,
        guild_id: int,
        member_id: int,
        amount: int,
        reason: Optional[str] = None,
    ) -> None:
        """Append a signed warning row."""
        await conn.execute(
            "INSERT INTO warnings (guild_id, member_id, amount, reason) VALUES (?, ?, ?, ?)",
            (guild_id, member_id, amount, reason),
        )

    @staticmethod
    async def total(conn: aiosqlite.Connection, guild_id: int, member_id: int) -> int:
        """Return the member's current warning total (0 when there are no rows)."""
        cursor = await conn.execute(
            "SELECT COALESCE(SUM(amount), 0) FROM warnings WHERE guild_id = ? AND member_id = ?",
            (guild_id, member_id),
        )
        row = await cursor.fetchone()
        return int(row[0])

    @staticmethod
    async def history(
        conn: aiosqlite.Connection,
        guild_id: int,
        member_id: int,
    ) -> List[WarningRecord]:
        """Return every warning row for a member, oldest first."""
        cursor = await conn.execute(
            "SELECT guild_id, member_id, amount, reason, created_at FROM warnings "
            "WHERE guild_id = ? AND member_id = ? ORDER BY id",
            (guild_id, member_id),
        )
        rows = await cursor.fetchall()
        return [
            WarningRecord(guild_id=row[0], member_id=row[1], amount=row[2], reason=row[3], created_at=row[4])
            for row in rows
        ]

    @staticmethod
    async def delete_all(conn: aiosqlite.Connection, guild_id: int, member_id: int) -> int:
        """Remove every warning row of a member. Returns the number of rows deleted."""
        cursor = await conn.execute(
            "DELETE FROM warnings WHERE guild_id = ? AND member_id = ?",
            (guild_id, member_id),
        )
        return cursor.rowcount
