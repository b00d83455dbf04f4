"""
Persistent per-guild configuration for the moderation bot.

Database schema:
- guild_settings table with columns: guild_id, modlog_channel_id, muted_role_id, automod_* flags
- guild_blacklist_words table with columns: guild_id, word
"""
from typing import Dict, List, Optional
from dataclasses import dataclass, field


# Maps each automod detector name to the boolean field on GuildSettings that enables it
AUTOMOD_FLAG_FIELDS: Dict[str, str] = {
    "spam": "automod_spam",
    "raid": "automod_raid",
    "phishing": "automod_phishing",
    "blacklist": "automod_blacklist",
    "dehoist": "automod_dehoist",
    "message_links": "automod_message_links",
    "shortlinks": "automod_shortlinks",
}


@dataclass(slots=True)
class GuildSettings:
    """Persistent per-guild configuration values."""

    guild_id: int
    modlog_channel_id: Optional[int] = None
    muted_role_id: Optional[int] = None
    automod_spam: bool = False
    automod_raid: bool = False
    automod_phishing: bool = False
    automod_blacklist: bool = False
    automod_dehoist: bool = False
    automod_message_links: bool = False
    automod_shortlinks: bool = False
    blacklist_words: List[str] = field(default_factory=list)

    def automod_enabled(self, detector_name: str) -> bool:
        """Return whether the named automod detector is switched on for this guild."""
        flag = AUTOMOD_FLAG_FIELDS.get(detector_name)
        return bool(flag and getattr(self, flag))
