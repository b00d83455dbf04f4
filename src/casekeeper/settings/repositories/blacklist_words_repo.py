"""
Repository for the guild_blacklist_words table.
"""

from __future__ import annotations

from typing import Dict, List

import aiosqlite

from casekeeper.util.logger import get_logger

logger = get_logger("blacklist_words_repo")


class BlacklistWordsRepository:
    """CRUD for the guild_blacklist_words table."""

    async def get_for_guild(
        self, conn: aiosqlite.Connection, guild_id: int
    ) -> List[str]:
        """Return all blacklisted words for a single guild, oldest first."""
        async with conn.execute(
            "SELECT word FROM guild_blacklist_words WHERE guild_id = ? ORDER BY created_at, word",
            (int(guild_id),),
        ) as cursor:
            rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def get_all(
        self, conn: aiosqlite.Connection
    ) -> Dict[int, List[str]]:
        """Return blacklisted words for every guild keyed by guild_id."""
        async with conn.execute(
            "SELECT guild_id, word FROM guild_blacklist_words ORDER BY created_at, word"
        ) as cursor:
            rows = await cursor.fetchall()

        result: Dict[int, List[str]] = {}
        for guild_id_int, word in rows:
            result.setdefault(guild_id_int, []).append(word)
        return result

    async def replace(
        self, conn: aiosqlite.Connection, guild_id: int, words: List[str]
    ) -> None:
        """Replace all blacklisted words for a guild atomically."""
        gid = int(guild_id)
        await conn.execute(
            "DELETE FROM guild_blacklist_words WHERE guild_id = ?", (gid,)
        )
        if words:
            await conn.executemany(
                "INSERT OR IGNORE INTO guild_blacklist_words (guild_id, word) VALUES (?, ?)",
                [(gid, word) for word in words],
            )
