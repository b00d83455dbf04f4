"""
Persistent per-guild configuration storage for the moderation bot.

Provides a simplified API for managing guild settings:
- get(guild_id) -> GuildSettings: Retrieve settings (creates default if missing)
- update(guild_id, **kwargs): Update fields and auto-persist
- is_automod_enabled/set_automod_enabled: Detector toggle helpers
- add_blacklist_word/remove_blacklist_word: Blacklist helpers
- save(guild_id): Explicit persist trigger

Database operations are delegated to GuildSettingsDB.
"""
import asyncio
from typing import Any, Dict, Optional, Set

from casekeeper.datatypes.guild_settings import AUTOMOD_FLAG_FIELDS, GuildSettings
from casekeeper.settings.guild_settings_db import GuildSettingsDB
from casekeeper.util.logger import get_logger

logger = get_logger("guild_settings_manager")


class GuildSettingsManager:
    """
    Manager for persistent per-guild settings.

    Reads are served from an in-memory cache loaded once at startup; every
    mutation is written back to the database by a background task.
    """

    def __init__(self, settings_db: Optional[GuildSettingsDB] = None):
        """Instantiate caches and persistence helpers."""
        self._db = settings_db or GuildSettingsDB()
        self._guilds: Dict[int, GuildSettings] = {}
        self._active_persists: Set[asyncio.Task] = set()
        self._loaded = False

    async def async_init(self) -> None:
        """Load every persisted guild into the cache."""
        if self._loaded:
            return
        self._guilds.update(await self._db.load_all_guild_settings())
        self._loaded = True
        logger.info("[GUILD SETTINGS MANAGER] Settings loaded for %d guilds", len(self._guilds))

    # ========== Core API ==========

    def get(self, guild_id: int) -> GuildSettings:
        """
        Retrieve settings for a guild, creating defaults if missing.

        Args:
            guild_id: The guild ID to fetch settings for.

        Returns:
            GuildSettings instance for the guild.
        """
        settings = self._guilds.get(guild_id)
        if settings is None:
            settings = GuildSettings(guild_id=guild_id)
            self._guilds[guild_id] = settings
        return settings

    def update(self, guild_id: int, **kwargs: Any) -> GuildSettings:
        """
        Update settings fields and auto-persist.

        Args:
            guild_id: The guild ID to update settings for.
            **kwargs: Field names and values to update (e.g., modlog_channel_id=123)

        Returns:
            Updated GuildSettings instance.
        """
        settings = self.get(guild_id)

        for field_name, value in kwargs.items():
            if field_name != "guild_id" and hasattr(settings, field_name):
                setattr(settings, field_name, value)
            else:
                logger.warning(
                    "[GUILD SETTINGS MANAGER] Unknown field %s for guild %s",
                    field_name, guild_id
                )

        self.save(guild_id)
        return settings

    def save(self, guild_id: int) -> None:
        """
        Schedule persistence of guild settings to database.

        Args:
            guild_id: The guild ID to persist.
        """
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            logger.warning(
                "[GUILD SETTINGS MANAGER] Cannot persist guild %s: no running event loop",
                guild_id
            )
            return

        task = loop.create_task(self._persist_guild(guild_id))
        self._active_persists.add(task)

        def _cleanup(completed: asyncio.Task) -> None:
            self._active_persists.discard(completed)
            try:
                if not completed.result():
                    logger.error("[GUILD SETTINGS MANAGER] Failed to persist guild %s", guild_id)
            except Exception:
                logger.exception("Error persisting guild %s", guild_id)

        task.add_done_callback(_cleanup)

    async def delete(self, guild_id: int) -> bool:
        """Forget a guild in memory and in the database."""
        self._guilds.pop(guild_id, None)
        return await self._db.delete_guild_data(guild_id)

    # ========== Automod Helpers ==========

    def is_automod_enabled(self, guild_id: int, detector_name: str) -> bool:
        """Return whether the named detector runs in the guild."""
        return self.get(guild_id).automod_enabled(detector_name)

    def set_automod_enabled(self, guild_id: int, detector_name: str, enabled: bool) -> bool:
        """
        Enable or disable a detector for the guild and auto-persist.

        Returns:
            True if successful, False if the detector name is unknown.
        """
        field_name = AUTOMOD_FLAG_FIELDS.get(detector_name)
        if field_name is None:
            logger.warning(
                "[GUILD SETTINGS MANAGER] Unsupported detector %s for guild %s",
                detector_name, guild_id
            )
            return False

        self.update(guild_id, **{field_name: bool(enabled)})
        return True

    def add_blacklist_word(self, guild_id: int, word: str) -> bool:
        """Add a word to the guild blacklist. Returns False if it was already there."""
        normalized = word.strip().lower()
        settings = self.get(guild_id)
        if not normalized or normalized in settings.blacklist_words:
            return False
        self.update(guild_id, blacklist_words=[*settings.blacklist_words, normalized])
        return True

    def remove_blacklist_word(self, guild_id: int, word: str) -> bool:
        """Remove a word from the guild blacklist. Returns False if it was not there."""
        normalized = word.strip().lower()
        settings = self.get(guild_id)
        if normalized not in settings.blacklist_words:
            return False
        self.update(guild_id, blacklist_words=[w for w in settings.blacklist_words if w != normalized])
        return True

    # ========== Lifecycle ==========

    async def shutdown(self) -> None:
        """Await any pending persistence tasks during shutdown."""
        await asyncio.gather(*self._active_persists, return_exceptions=True)
        self._active_persists.clear()
        logger.info("[GUILD SETTINGS MANAGER] Shutdown complete")

    async def _persist_guild(self, guild_id: int) -> bool:
        """Persist a single guild's settings to database."""
        settings = self._guilds.get(guild_id)
        if settings is None:
            logger.warning("[GUILD SETTINGS MANAGER] Cannot persist guild %s: not in cache", guild_id)
            return False

        return await self._db.save_guild_settings(guild_id, settings)
