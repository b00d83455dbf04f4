"""
Repository for core guild_settings table.

Handles only the guild_settings table. Blacklist words live in their own repository.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import aiosqlite

from casekeeper.util.logger import get_logger

logger = get_logger("guild_settings_repo")

_COLUMNS = (
    "guild_id, modlog_channel_id, muted_role_id, "
    "automod_spam, automod_raid, automod_phishing, automod_blacklist, "
    "automod_dehoist, automod_message_links, automod_shortlinks"
)


@dataclass
class GuildSettingsRow:
    """Raw DB row for a guild's core settings."""
    guild_id: int
    modlog_channel_id: int | None
    muted_role_id: int | None
    automod_spam: bool
    automod_raid: bool
    automod_phishing: bool
    automod_blacklist: bool
    automod_dehoist: bool
    automod_message_links: bool
    automod_shortlinks: bool


def _row_to_settings(row) -> GuildSettingsRow:
    return GuildSettingsRow(
        guild_id=row[0],
        modlog_channel_id=row[1],
        muted_role_id=row[2],
        automod_spam=bool(row[3]),
        automod_raid=bool(row[4]),
        automod_phishing=bool(row[5]),
        automod_blacklist=bool(row[6]),
        automod_dehoist=bool(row[7]),
        automod_message_links=bool(row[8]),
        automod_shortlinks=bool(row[9]),
    )


class GuildSettingsRepository:
    """CRUD for the guild_settings table only."""

    async def get(
        self, conn: aiosqlite.Connection, guild_id: int
    ) -> GuildSettingsRow | None:
        """Fetch a single guild's core settings row."""
        async with conn.execute(
            f"SELECT {_COLUMNS} FROM guild_settings WHERE guild_id = ?",
            (int(guild_id),),
        ) as cursor:
            row = await cursor.fetchone()

        if row is None:
            return None
        return _row_to_settings(row)

    async def get_all(
        self, conn: aiosqlite.Connection
    ) -> Dict[int, GuildSettingsRow]:
        """Fetch all guilds' core settings rows keyed by guild_id int."""
        async with conn.execute(f"SELECT {_COLUMNS} FROM guild_settings") as cursor:
            rows = await cursor.fetchall()

        return {row[0]: _row_to_settings(row) for row in rows}

    async def upsert(
        self, conn: aiosqlite.Connection, row: GuildSettingsRow
    ) -> None:
        """Insert or update a guild's core settings row."""
        await conn.execute(
            f"""
            INSERT INTO guild_settings ({_COLUMNS})
            VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(guild_id) DO UPDATE SET
                modlog_channel_id     = excluded.modlog_channel_id,
                muted_role_id         = excluded.muted_role_id,
                automod_spam          = excluded.automod_spam,
                automod_raid          = excluded.automod_raid,
                automod_phishing      = excluded.automod_phishing,
                automod_blacklist     = excluded.automod_blacklist,
                automod_dehoist       = excluded.automod_dehoist,
                automod_message_links = excluded.automod_message_links,
                automod_shortlinks    = excluded.automod_shortlinks
            """,
            (
                int(row.guild_id),
                row.modlog_channel_id,
                row.muted_role_id,
                1 if row.automod_spam else 0,
                1 if row.automod_raid else 0,
                1 if row.automod_phishing else 0,
                1 if row.automod_blacklist else 0,
                1 if row.automod_dehoist else 0,
                1 if row.automod_message_links else 0,
                1 if row.automod_shortlinks else 0,
            ),
        )

    async def delete(
        self, conn: aiosqlite.Connection, guild_id: int
    ) -> None:
        """Delete a guild row (CASCADE removes related rows)."""
        await conn.execute(
            "DELETE FROM guild_settings WHERE guild_id = ?",
            (int(guild_id),),
        )
