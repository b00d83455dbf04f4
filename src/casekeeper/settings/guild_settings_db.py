"""
Database access layer for guild settings.

Handles all database operations for persisting and retrieving guild configuration:
- load_all_guild_settings(): Load all guilds from database
- save_guild_settings(): Persist a guild's settings
- delete_guild_data(): Delete all data for a guild
"""

from typing import Dict

from casekeeper.database.db_connection import ConnectionManager, db_connection
from casekeeper.datatypes.guild_settings import GuildSettings
from casekeeper.settings.repositories import (
    BlacklistWordsRepository,
    GuildSettingsRepository,
    GuildSettingsRow,
)
from casekeeper.util.logger import get_logger

logger = get_logger("guild_settings_db")


class GuildSettingsDB:
    """Database access layer for guild settings."""

    def __init__(self, connection: ConnectionManager = db_connection):
        self._db = connection
        self._settings_repo = GuildSettingsRepository()
        self._words_repo = BlacklistWordsRepository()

    async def load_all_guild_settings(self) -> Dict[int, GuildSettings]:
        """
        Load all persisted guild settings from database.

        Returns:
            Dictionary mapping guild IDs to GuildSettings objects.
        """
        try:
            async with self._db.read() as conn:
                rows = await self._settings_repo.get_all(conn)
                words = await self._words_repo.get_all(conn)
        except Exception:
            logger.exception("[GUILD SETTINGS DB] Failed to load from database")
            return {}

        guilds: Dict[int, GuildSettings] = {}
        for guild_id, row in rows.items():
            guilds[guild_id] = GuildSettings(
                guild_id=guild_id,
                modlog_channel_id=row.modlog_channel_id,
                muted_role_id=row.muted_role_id,
                automod_spam=row.automod_spam,
                automod_raid=row.automod_raid,
                automod_phishing=row.automod_phishing,
                automod_blacklist=row.automod_blacklist,
                automod_dehoist=row.automod_dehoist,
                automod_message_links=row.automod_message_links,
                automod_shortlinks=row.automod_shortlinks,
                blacklist_words=list(words.get(guild_id, [])),
            )

        logger.info("[GUILD SETTINGS DB] Loaded %d guild settings from database", len(guilds))
        return guilds

    async def save_guild_settings(self, guild_id: int, settings: GuildSettings) -> bool:
        """
        Persist a single guild's settings to database.

        Args:
            guild_id: The guild ID to persist.
            settings: The GuildSettings object to save.

        Returns:
            True if successful, False otherwise.
        """
        row = GuildSettingsRow(
            guild_id=int(guild_id),
            modlog_channel_id=settings.modlog_channel_id,
            muted_role_id=settings.muted_role_id,
            automod_spam=settings.automod_spam,
            automod_raid=settings.automod_raid,
            automod_phishing=settings.automod_phishing,
            automod_blacklist=settings.automod_blacklist,
            automod_dehoist=settings.automod_dehoist,
            automod_message_links=settings.automod_message_links,
            automod_shortlinks=settings.automod_shortlinks,
        )
        try:
            async with self._db.transaction() as conn:
                await self._settings_repo.upsert(conn, row)
                await self._words_repo.replace(conn, guild_id, list(settings.blacklist_words))
        except Exception:
            logger.exception("[GUILD SETTINGS DB] Failed to persist guild %s", guild_id)
            return False

        logger.debug("[GUILD SETTINGS DB] Persisted settings for guild %s", guild_id)
        return True

    async def delete_guild_data(self, guild_id: int) -> bool:
        """Delete the settings row of a guild; blacklisted words go with it by cascade."""
        try:
            async with self._db.transaction() as conn:
                await self._settings_repo.delete(conn, guild_id)
        except Exception:
            logger.exception("[GUILD SETTINGS DB] Failed to delete guild %s", guild_id)
            return False
        return True
