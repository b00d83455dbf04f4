"""Repository layer for guild settings database access."""
from casekeeper.settings.repositories.guild_settings_repo import GuildSettingsRepository, GuildSettingsRow
from casekeeper.settings.repositories.blacklist_words_repo import BlacklistWordsRepository

__all__ = [
    "GuildSettingsRepository",
    "GuildSettingsRow",
    "BlacklistWordsRepository",
]
